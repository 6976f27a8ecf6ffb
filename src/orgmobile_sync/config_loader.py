"""YAML configuration files for orgmobile-sync.

Every existing file on the search path contributes to the raw config.
Files nearer the project override files further away, one section key at
a time: a project ``org.directory`` replaces the global one while the
global ``org.todo_keywords`` still applies.

Inside a file, ``!include other.yml`` splices in another YAML file
(relative to the including file) and every string value may reference
the environment as ``${VAR}`` or ``${VAR:-default}``.

Usage:
    from orgmobile_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from .config_schema import UnifiedConfig
from .errors import SetupError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ORGMOBILE_CONFIG"

PROJECT_CONFIG_NAMES = ("config.yml", "config.yaml")

_ENV_REF = re.compile(
    r"\$\{(?P<name>[^}:]+?)(?::-(?P<default>[^}]*))?\}"
)


def expand_env(text: str) -> str:
    """Substitute ``${VAR}`` and ``${VAR:-default}`` references in *text*.

    An unset variable expands to ``""``; the default is used when the
    variable is unset or empty.  A ``${`` without a closing brace is kept.
    """
    return _ENV_REF.sub(
        lambda m: os.environ.get(m["name"]) or m["default"] or "", text
    )


# ---------------------------------------------------------------------------
# Reading one file
# ---------------------------------------------------------------------------


class IncludeLoader(yaml.SafeLoader):
    """SafeLoader that understands ``!include`` and expands ``${VAR}``.

    *chain* holds the files currently being read, outermost first.
    """

    def __init__(self, stream, chain: tuple[Path, ...]):
        super().__init__(stream)
        self.chain = chain

    def construct_include(self, node: yaml.ScalarNode) -> Any:
        origin = self.chain[-1]
        target = (origin.parent / expand_env(self.construct_scalar(node))).resolve()
        if target in self.chain:
            cycle = " -> ".join(str(p) for p in (*self.chain, target))
            raise ValueError(f"Circular include detected: {cycle}")
        if not target.is_file():
            raise FileNotFoundError(
                f"Include file not found: {target} (referenced from {origin})"
            )
        return read_config_file(target, _chain=self.chain)

    def construct_env_str(self, node: yaml.ScalarNode) -> str:
        return expand_env(self.construct_scalar(node))


IncludeLoader.add_constructor("!include", IncludeLoader.construct_include)
IncludeLoader.add_constructor("tag:yaml.org,2002:str", IncludeLoader.construct_env_str)


def read_config_file(path: Path, *, _chain: tuple[Path, ...] = ()) -> Any:
    """Parse *path* with ``!include`` and ``${VAR}`` support.

    Raises:
        FileNotFoundError: If an included file does not exist.
        ValueError: If files include each other in a cycle.
        yaml.YAMLError: If a file is not valid YAML.
    """
    path = path.resolve()
    with path.open(encoding="utf-8") as fh:
        loader = IncludeLoader(fh, (*_chain, path))
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Search path
# ---------------------------------------------------------------------------


def config_search_path() -> list[Path]:
    """Candidate config files, nearest first, whether or not they exist."""
    candidates = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    project_dir = Path.cwd() / ".orgmobile"
    candidates.extend(project_dir / name for name in PROJECT_CONFIG_NAMES)
    candidates.append(Path.home() / ".config" / "orgmobile" / "config.yml")
    return candidates


def discover_config_files() -> list[Path]:
    """Return the config files that exist, nearest first."""
    return [p for p in config_search_path() if p.is_file()]


def merge_sections(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Overlay *override* on *base* one section key at a time.

    Sections that are not mappings on both sides are replaced whole.
    """
    merged = dict(base)
    for section, value in override.items():
        current = merged.get(section)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[section] = {**current, **value}
        else:
            merged[section] = value
    return merged


def load_hierarchical_config() -> dict[str, Any]:
    """Read and merge every discovered config file.

    Returns ``{}`` when no file exists.

    Raises:
        SetupError: If a file cannot be read or parsed.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files()):
        logger.debug("Loading config: %s", path)
        try:
            data = read_config_file(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise SetupError(f"Cannot load config file {path}: {e}") from e
        if data is None:
            continue
        if not isinstance(data, dict):
            logger.warning(
                "Ignoring %s: top level is a %s, not a mapping",
                path,
                type(data).__name__,
            )
            continue
        merged = merge_sections(merged, data)
    return merged


# ---------------------------------------------------------------------------
# Starter file
# ---------------------------------------------------------------------------

_STARTER_HEADER = """\
# orgmobile-sync configuration
#
# Every setting below shows its built-in default; uncomment to change it.
# Locations can also come from ORG_DIRECTORY, ORGMOBILE_DIRECTORY and
# ORGMOBILE_INBOX.  Strings may use ${VAR} or ${VAR:-default}, and any
# value may be loaded from another file with !include.
#
"""


def render_starter_config() -> str:
    """Return the default configuration as a commented-out YAML document."""
    defaults = yaml.safe_dump(
        UnifiedConfig().model_dump(mode="json"),
        sort_keys=False,
        default_flow_style=False,
    )
    body = "".join(f"# {line}\n" for line in defaults.splitlines())
    return _STARTER_HEADER + body


def ensure_config(target: Path | None = None) -> Path:
    """Return the nearest config file, writing a starter file if none exists.

    The starter goes to *target*, or to ``.orgmobile/config.yml`` under
    the working directory.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    path = target or Path.cwd() / ".orgmobile" / PROJECT_CONFIG_NAMES[0]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_starter_config(), encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path
