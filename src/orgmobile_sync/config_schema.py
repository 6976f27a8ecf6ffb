"""Unified configuration schema for orgmobile-sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the canonical Org store, the MobileOrg staging area, phase
hooks, and logging.

Usage:
    from orgmobile_sync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"todo", "tags", "priority", "heading", "body"})

ViewType = Literal[
    "agenda",
    "alltodo",
    "todo",
    "tags",
    "tags-todo",
    "search",
    "block",
    "todo-tree",
    "tags-tree",
    "occur-tree",
]


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class OrgConfig(BaseModel):
    """Canonical Org store settings.

    Attributes:
        directory: Root of the canonical document set.
        files: Explicit documents to export (relative to ``directory`` or
            absolute).  Empty means every ``*.org`` file under ``directory``.
        files_exclude_regexp: Documents whose path matches are skipped.
        todo_keywords: Keyword sequences; ``"|"`` separates open from done.
        tag_groups: Tag tokens written first on the index ``#+TAGS:`` line,
            including ``{``/``}`` group markers.
        drawers: Drawer names advertised to the mobile client.
        archive_location: Org-style ``file-pattern::heading`` target for
            archived entries; ``%s`` is the source file path.
    """

    directory: str | None = Field(
        default=None, description="Canonical Org directory"
    )
    files: list[str] = Field(default_factory=list)
    files_exclude_regexp: str | None = None
    todo_keywords: list[list[str]] = Field(
        default_factory=lambda: [["TODO", "|", "DONE"]]
    )
    tag_groups: list[str] = Field(default_factory=list)
    drawers: list[str] = Field(
        default_factory=lambda: ["PROPERTIES", "CLOCK", "LOGBOOK", "RESULTS"]
    )
    archive_location: str = "%s_archive::"

    model_config = {"frozen": True}


class ViewBlock(BaseModel):
    """One sub-view of a ``block`` view definition."""

    type: ViewType
    match: str = ""

    model_config = {"frozen": True}


class ViewDefinition(BaseModel):
    """A saved search / report definition.

    Attributes:
        key: Dispatch key (``"a"``, ``"t"``, ...).
        description: Human-readable title.
        type: View type.
        match: Keyword list, tag match or search words depending on type.
        blocks: Sub-views when ``type == "block"``.
    """

    key: str
    description: str = ""
    type: ViewType
    match: str = ""
    blocks: list[ViewBlock] = Field(default_factory=list)

    model_config = {"frozen": True}


class MobileConfig(BaseModel):
    """MobileOrg staging area settings."""

    directory: str | None = Field(
        default=None, description="Staging directory shared with the client"
    )
    inbox_for_pull: str | None = Field(
        default=None,
        description="Canonical inbox receiving pulled captures",
    )
    capture_file: str = "mobileorg.org"
    index_file: str = "index.org"
    checksum_file: str = "checksums.dat"
    agenda_file: str = "agendas.org"
    checksum_algorithm: Literal["md5", "sha1", "sha256"] = "sha1"
    force_id_on_agenda_items: bool = True
    force_mobile_change: bool | list[str] = False
    all_priorities: str = "A B C"
    agendas: str | list[str] = "all"
    views: list[ViewDefinition] = Field(default_factory=list)
    actions: dict[str, str] = Field(default_factory=dict)
    review_flagged: bool = True
    body_snippet_lines: int = Field(default=10, ge=0, le=1000)

    model_config = {"frozen": True}

    @field_validator("force_mobile_change")
    @classmethod
    def _check_fields(cls, value: bool | list[str]) -> bool | list[str]:
        if isinstance(value, list):
            unknown = sorted(set(value) - EDITABLE_FIELDS)
            if unknown:
                raise ValueError(
                    f"Unknown fields in force_mobile_change: {unknown}. "
                    f"Valid fields: {sorted(EDITABLE_FIELDS)}"
                )
        return value

    @field_validator("agendas")
    @classmethod
    def _check_agendas(cls, value: str | list[str]) -> str | list[str]:
        if isinstance(value, str) and value not in (
            "all",
            "default",
            "custom",
        ):
            raise ValueError(
                f"Invalid agendas selection '{value}': "
                "use 'all', 'default', 'custom' or a list of view keys"
            )
        return value

    def remote_wins(self, field: str) -> bool:
        """Return ``True`` if the mobile value always wins for *field*."""
        if isinstance(self.force_mobile_change, bool):
            return self.force_mobile_change
        return field in self.force_mobile_change


class HooksConfig(BaseModel):
    """Shell commands run around each phase, in order."""

    pre_push: list[str] = Field(default_factory=list)
    post_push: list[str] = Field(default_factory=list)
    pre_pull: list[str] = Field(default_factory=list)
    post_pull: list[str] = Field(default_factory=list)
    before_process_capture: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid; locations may come from the
    environment instead.
    """

    org: OrgConfig = Field(default_factory=OrgConfig)
    mobile: MobileConfig = Field(default_factory=MobileConfig)
    hooks: HooksConfig = Field(default_factory=HooksConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
