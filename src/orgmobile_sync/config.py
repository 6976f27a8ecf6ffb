"""Resolved runtime configuration for push and pull phases.

Reads the three location settings from CLI args, environment variables,
.env files, and the YAML config, then bundles them with the validated
config sections.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    ORG_DIRECTORY: Canonical Org directory (required)
    ORGMOBILE_DIRECTORY: Staging directory shared with the client (required)
    ORGMOBILE_INBOX: Inbox file for pulled captures
        (optional, default: ``$ORG_DIRECTORY/from-mobile.org``)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import (
    HooksConfig,
    MobileConfig,
    OrgConfig,
    UnifiedConfig,
    build_config,
)
from .errors import SetupError

logger = logging.getLogger(__name__)

DEFAULT_INBOX_NAME = "from-mobile.org"


@dataclass
class Config:
    org_directory: Path
    mobile_directory: Path
    inbox_for_pull: Path
    org: OrgConfig = field(default_factory=OrgConfig)
    mobile: MobileConfig = field(default_factory=MobileConfig)
    hooks: HooksConfig = field(default_factory=HooksConfig)

    @property
    def capture_path(self) -> Path:
        return self.mobile_directory / self.mobile.capture_file

    @property
    def checksum_path(self) -> Path:
        return self.mobile_directory / self.mobile.checksum_file

    @property
    def index_path(self) -> Path:
        return self.mobile_directory / self.mobile.index_file

    @property
    def agenda_path(self) -> Path:
        return self.mobile_directory / self.mobile.agenda_file


def _expand(value: str) -> Path:
    return Path(os.path.expandvars(value)).expanduser()


def load_config(
    org_directory: str | None = None,
    mobile_directory: str | None = None,
    inbox: str | None = None,
    unified: UnifiedConfig | None = None,
) -> Config:
    """Load configuration with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        org_directory: Override canonical directory (CLI).
        mobile_directory: Override staging directory (CLI).
        inbox: Override inbox file (CLI).
        unified: Validated YAML configuration; zero-config when ``None``.

    Returns:
        Config instance.  Locations are resolved but not checked; call
        ``check_setup()`` before running a phase.

    Raises:
        SetupError: If a required location is not configured anywhere.
    """
    unified = unified or UnifiedConfig()

    org_dir = (
        org_directory
        or os.getenv("ORG_DIRECTORY")
        or unified.org.directory
    )
    if not org_dir:
        raise SetupError(
            "Org directory not configured. Set ORG_DIRECTORY, pass "
            "--org-directory, or add 'org.directory' to config.yml."
        )

    mobile_dir = (
        mobile_directory
        or os.getenv("ORGMOBILE_DIRECTORY")
        or unified.mobile.directory
    )
    if not mobile_dir:
        raise SetupError(
            "MobileOrg staging directory not configured. Set "
            "ORGMOBILE_DIRECTORY, pass --mobile-directory, or add "
            "'mobile.directory' to config.yml."
        )

    inbox_path = (
        inbox
        or os.getenv("ORGMOBILE_INBOX")
        or unified.mobile.inbox_for_pull
    )
    org_path = _expand(org_dir)
    final_inbox = (
        _expand(inbox_path)
        if inbox_path
        else org_path / DEFAULT_INBOX_NAME
    )

    return Config(
        org_directory=org_path,
        mobile_directory=_expand(mobile_dir),
        inbox_for_pull=final_inbox,
        org=unified.org,
        mobile=unified.mobile,
        hooks=unified.hooks,
    )


def check_setup(config: Config) -> None:
    """Validate that every location a phase touches is usable.

    Raises:
        SetupError: On the first problem found.  Nothing has been
            mutated when this is raised.
    """
    if not config.org_directory.is_dir():
        raise SetupError(
            f"Org directory does not exist or is not a directory: {config.org_directory}"
        )
    if not os.access(config.org_directory, os.R_OK):
        raise SetupError(
            f"Org directory is not readable: {config.org_directory}"
        )
    if not config.mobile_directory.is_dir():
        raise SetupError(
            f"MobileOrg directory does not exist or is not a directory: {config.mobile_directory}"
        )
    if not os.access(config.mobile_directory, os.W_OK):
        raise SetupError(
            f"MobileOrg directory is not writable: {config.mobile_directory}"
        )
    if not config.inbox_for_pull.parent.is_dir():
        raise SetupError(
            f"Inbox directory does not exist: {config.inbox_for_pull.parent}"
        )
    if config.inbox_for_pull.is_dir():
        raise SetupError(
            f"Inbox must be a file, not a directory: {config.inbox_for_pull}"
        )

    capture = config.mobile.capture_file
    if not capture or "/" in capture or "\\" in capture:
        raise SetupError(
            f"Invalid capture file name '{capture}': must be a bare file name"
        )


def load_runtime_config(
    overrides: dict[str, str | None] | None = None,
) -> tuple[Config, UnifiedConfig, list[str]]:
    """Resolve configuration from every source.

    Loads ``.env`` first (so YAML ``${VAR}`` interpolation can use it),
    then the hierarchical YAML config, then applies *overrides* from the
    command line.

    Args:
        overrides: Optional ``org_directory`` / ``mobile_directory`` /
            ``inbox`` values.

    Returns:
        ``(config, unified, sources)`` where *sources* describes which
        sources contributed, for startup messages.

    Raises:
        SetupError: If a required location is not configured anywhere.
        pydantic.ValidationError: If the YAML config is invalid.
    """
    load_dotenv()
    sources = []
    config_files = discover_config_files()
    unified = build_config(load_hierarchical_config())
    if config_files:
        sources.append(f"config file: {config_files[0]}")

    overrides = {k: v for k, v in (overrides or {}).items() if v}
    if overrides:
        sources.append("CLI arguments")
    sources.append("environment variables")

    config = load_config(
        org_directory=overrides.get("org_directory"),
        mobile_directory=overrides.get("mobile_directory"),
        inbox=overrides.get("inbox"),
        unified=unified,
    )
    return config, unified, sources
