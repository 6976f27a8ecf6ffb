"""Shared pytest fixtures for orgmobile-sync tests."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from orgmobile_sync.config import Config
from orgmobile_sync.config_schema import (
    HooksConfig,
    MobileConfig,
    OrgConfig,
)
from orgmobile_sync.outline.store import DocumentStore

TASKS_ORG = textwrap.dedent(
    """\
    #+TITLE: Tasks

    * TODO Call plumber                                                   :home:
      :PROPERTIES:
      :ID:       ID-PLUMBER
      :END:
    Kitchen sink leaks.
    * WAITING Renew passport
      SCHEDULED: <2026-10-20 Tue>
      :PROPERTIES:
      :ID:       ID-PASSPORT
      :END:
    * Projects
    ** Garden
    *** TODO Plant bulbs                                                :garden:
    ** Garden
    """
)

WORK_ORG = textwrap.dedent(
    """\
    * TODO Review budget                                                  :work:
      DEADLINE: <2026-10-18 Sun>
      :PROPERTIES:
      :ID:       ID-BUDGET
      :END:
    Numbers for Q4.
      Check the travel line.
    * DONE Send invoice
      :PROPERTIES:
      :ID:       ID-INVOICE
      :END:
    """
)


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def org_dir(tmp_path: Path) -> Path:
    """Canonical directory with ``tasks.org`` and ``work.org``."""
    root = tmp_path / "org"
    write(root / "tasks.org", TASKS_ORG)
    write(root / "work.org", WORK_ORG)
    return root


@pytest.fixture
def mobile_dir(tmp_path: Path) -> Path:
    path = tmp_path / "mobile"
    path.mkdir()
    return path


@pytest.fixture
def make_config(org_dir: Path, mobile_dir: Path):
    """Factory building a Config over the fixture directories.

    Keyword arguments are passed to ``MobileConfig``; ``org`` and ``hooks``
    may be given as dicts for their sections.
    """

    def _make(org: dict | None = None, hooks: dict | None = None, **mobile) -> Config:
        org_settings = {"todo_keywords": [["TODO", "WAITING", "|", "DONE"]]}
        org_settings.update(org or {})
        return Config(
            org_directory=org_dir,
            mobile_directory=mobile_dir,
            inbox_for_pull=org_dir / "from-mobile.org",
            org=OrgConfig(**org_settings),
            mobile=MobileConfig(**mobile),
            hooks=HooksConfig(**(hooks or {})),
        )

    return _make


@pytest.fixture
def config(make_config) -> Config:
    return make_config()


@pytest.fixture
def store(config: Config) -> DocumentStore:
    return DocumentStore(config)
