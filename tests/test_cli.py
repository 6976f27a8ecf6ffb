"""Tests for the orgmobile-sync command line.

Covers:
- Subcommand dispatch for push, pull, apply, status
- --json output
- Exit codes: 0 on success, 1 on configuration or phase errors,
  2 on an invalid apply range
- init-config
"""

import json
from unittest.mock import patch

import pytest

from conftest import write
from orgmobile_sync.cli import build_parser, main


@pytest.fixture(autouse=True)
def _environment(org_dir, mobile_dir, tmp_path, monkeypatch):
    """Point the CLI at the fixture directories with no config files."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for var in ("ORGMOBILE_CONFIG", "ORGMOBILE_INBOX", "LOG_LEVEL", "LOG_FILE"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("ORG_DIRECTORY", str(org_dir))
    monkeypatch.setenv("ORGMOBILE_DIRECTORY", str(mobile_dir))
    with patch("orgmobile_sync.cli.setup_logging"):
        yield


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_apply_defaults(self):
        args = build_parser().parse_args(["apply"])
        assert (args.start, args.end) == (0, None)


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------


class TestPhases:
    def test_push(self, mobile_dir, capsys):
        assert main(["push"]) == 0
        out = capsys.readouterr().out
        assert out.startswith("Pushed 5 files")
        assert (mobile_dir / "index.org").is_file()

    def test_push_json(self, capsys):
        assert main(["--json", "push"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [e["name"] for e in data["staged"]][-1] == "mobileorg.org"
        assert data["completed_at"] is not None

    def test_pull(self, mobile_dir, org_dir, capsys):
        write(mobile_dir / "mobileorg.org", "* Buy milk\n")
        assert main(["pull"]) == 0
        assert capsys.readouterr().out.startswith("1 new, 0 edits, 0 flags, 0 errors")
        assert (org_dir / "from-mobile.org").read_text() == "* Buy milk\n"

    def test_pull_json_tally(self, mobile_dir, capsys):
        write(mobile_dir / "mobileorg.org", "* F() [[id:NOPE][x]]\n")
        assert main(["--json", "pull"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["tally"] == "0 new, 0 edits, 0 flags, 1 error"

    def test_apply(self, org_dir, capsys):
        write(org_dir / "from-mobile.org", "* F() [[id:ID-PLUMBER][x]]\n")
        assert main(["apply", "--start", "0"]) == 0
        assert capsys.readouterr().out.startswith("0 new, 0 edits, 1 flag, 0 errors")

    def test_apply_invalid_range(self, capsys):
        assert main(["apply", "--start", "5", "--end", "2"]) == 2
        assert "invalid --start/--end" in capsys.readouterr().err

    def test_status(self, capsys):
        assert main(["status"]) == 0
        assert "Capture file:     0 bytes waiting" in capsys.readouterr().out

    def test_directory_overrides(self, tmp_path, monkeypatch, capsys):
        monkeypatch.delenv("ORG_DIRECTORY")
        assert main(["--org-directory", str(tmp_path / "org"), "status"]) == 0
        assert f"Org directory:    {tmp_path / 'org'}" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    def test_missing_configuration(self, monkeypatch, capsys):
        monkeypatch.delenv("ORG_DIRECTORY")
        assert main(["push"]) == 1
        assert "Org directory not configured" in capsys.readouterr().err

    def test_missing_mobile_directory(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("ORGMOBILE_DIRECTORY", str(tmp_path / "absent"))
        assert main(["push"]) == 1
        assert "MobileOrg directory does not exist" in capsys.readouterr().err

    def test_failing_hook(self, tmp_path, capsys):
        write(
            tmp_path / ".orgmobile" / "config.yml",
            "hooks:\n  pre_push:\n    - exit 4\n",
        )
        assert main(["push"]) == 1
        assert "Hook pre_push failed (exit 4)" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# init-config
# ---------------------------------------------------------------------------


class TestInitConfig:
    def test_creates_starter(self, tmp_path, capsys):
        assert main(["init-config"]) == 0
        path = tmp_path / ".orgmobile" / "config.yml"
        assert f"Config file: {path}" in capsys.readouterr().out
        assert path.read_text().startswith("# orgmobile-sync configuration")

    def test_keeps_existing(self, tmp_path):
        existing = write(tmp_path / ".orgmobile" / "config.yml", "org: {}\n")
        assert main(["init-config"]) == 0
        assert existing.read_text() == "org: {}\n"
