"""Data contracts for the push and pull phases.

Defines the records passed between the sync modules:

- ``ChangeRequest`` / ``Target``: parsed flag entries and their resolved
  targets (mutable, they reference live outline nodes).
- ``RequestState``: lifecycle of one change request.
- ``SyncCounters``: the tally of one apply pass.
- ``RequestOutcome``, ``ApplyReport``, ``PushReport``, ``PullReport``,
  ``ManifestEntry``, ``StatusReport``: frozen result models.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import BaseModel

from orgmobile_sync.errors import RequestError
from orgmobile_sync.outline.model import Node, OutlineDocument


class RequestState(str, Enum):
    """Terminal states of a change request (``pending`` while in flight)."""

    PENDING = "pending"
    CONSUMED = "consumed"
    RETAINED = "retained-with-error"


@dataclass
class Target:
    """Resolved target of a change request.

    ``node`` is ``None`` when an outline-path link names a file only
    (``olp:notes.org``); only ``addheading`` accepts such a target.
    """

    document: OutlineDocument
    node: Node | None = None


@dataclass
class ChangeRequest:
    """One flag entry parsed from the inbox.

    Attributes:
        action: Action name; ``""`` for the default flag action.
        payload: Optional text after ``:`` in ``F(action:payload)``.
        link: The raw link target, e.g. ``id:ABC`` or ``olp:a.org:H1/H2``.
        start: Offset of the flag heading line in the inbox text.
        end: Offset just past the request's subtree.
        heading_end: Offset just past the flag heading's stars and space,
            where inline annotations are inserted.
        annotation: Inline error message left in front of ``F(`` by an
            earlier pass, including its trailing space; ``""`` if none.
        old: ``Old value`` block, ``None`` when absent.
        new: ``New value`` block, ``None`` when absent.
        note: Free text after the flag line, ``None`` when blank.
        target: Resolved target, ``None`` when resolution failed.
        error: Resolution error recorded during parsing.
    """

    action: str
    payload: str | None
    link: str
    start: int
    end: int
    heading_end: int
    annotation: str = ""
    old: str | None = None
    new: str | None = None
    note: str | None = None
    target: Target | None = None
    error: RequestError | None = None


class SyncCounters(BaseModel):
    """Outcome tally of one apply pass."""

    new: int = 0
    edits: int = 0
    flags: int = 0
    other: int = 0
    errors: int = 0


class RequestOutcome(BaseModel):
    """Outcome of one change request.

    Attributes:
        action: Action name (``""`` for the default flag action).
        payload: Action payload, if any.
        link: Target link text.
        state: ``consumed`` or ``retained-with-error``.
        error: Inline message written into the inbox on failure.
    """

    action: str
    payload: str | None = None
    link: str
    state: RequestState
    error: str | None = None

    model_config = {"frozen": True}


class ApplyReport(BaseModel):
    """Result of one apply pass over an inbox range.

    Attributes:
        counters: Final tally.
        outcomes: Per-request outcomes in inbox order.
        flagged_files: Documents carrying a review flag after a successful
            action, deduplicated, in first-seen order.
        modified_files: Canonical documents saved by the pass.
    """

    counters: SyncCounters
    outcomes: list[RequestOutcome] = []
    flagged_files: list[Path] = []
    modified_files: list[Path] = []

    model_config = {"frozen": True}

    @property
    def errors(self) -> list[RequestOutcome]:
        return [o for o in self.outcomes if o.state == RequestState.RETAINED]


class ManifestEntry(BaseModel):
    """One ``<digest>  <name>`` record of the checksum manifest."""

    name: str
    digest: str

    model_config = {"frozen": True}


class PushReport(BaseModel):
    """Result of a push.

    Attributes:
        staged: Manifest records written, in manifest order.
        created_ids: Number of identifiers created during the push.
        sections: Keys of the view sections written to the agenda file.
        started_at: ISO 8601 timestamp.
        completed_at: ISO 8601 timestamp.
    """

    staged: list[ManifestEntry] = []
    created_ids: int = 0
    sections: list[str] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}


class FlaggedEntry(BaseModel):
    """One entry of the post-pull review list."""

    file: str
    heading: str
    note: str | None = None

    model_config = {"frozen": True}


class PullReport(BaseModel):
    """Result of a pull.

    Attributes:
        captured_bytes: Length of the text moved from the capture file.
        apply: Result of applying the moved region.
        review: FLAGGED entries in the flagged documents.
    """

    captured_bytes: int = 0
    apply: ApplyReport
    review: list[FlaggedEntry] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}


class StatusReport(BaseModel):
    """Read-only snapshot of the staging area and inbox."""

    org_directory: str
    mobile_directory: str
    inbox: str
    manifest: list[ManifestEntry] = []
    capture_bytes: int = 0
    pending_requests: int = 0
    pending_captures: int = 0

    model_config = {"frozen": True}
