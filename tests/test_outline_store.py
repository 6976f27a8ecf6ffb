"""Tests for outline.store.DocumentStore.

Covers:
- Canonical file enumeration (auto-discovery, explicit list, exclusion)
- Identifier index lookup and creation
- Outline-path resolution (not-found / not-unique)
- TODO state changes and done keyword lookup
- Change stamping
- Archiving subtrees
"""

from __future__ import annotations

from datetime import datetime

import pytest

from conftest import write
from orgmobile_sync.errors import ActionExecutionError, ResolutionError
from orgmobile_sync.outline.store import CHANGE_STAMP_PREFIX, DocumentStore

# ---------------------------------------------------------------------------
# canonical_files
# ---------------------------------------------------------------------------


class TestCanonicalFiles:
    def test_discovers_org_files_sorted(self, store, org_dir):
        names = [p.name for p in store.canonical_files()]
        assert names == ["tasks.org", "work.org"]

    def test_inbox_is_not_canonical(self, store, org_dir):
        write(org_dir / "from-mobile.org", "* F() [[id:X][x]]\n")
        names = [p.name for p in store.canonical_files()]
        assert "from-mobile.org" not in names

    def test_nested_files_are_found(self, store, org_dir):
        write(org_dir / "sub" / "notes.org", "* Note\n")
        names = [p.name for p in store.canonical_files()]
        assert "notes.org" in names

    def test_explicit_files_keep_order(self, make_config, org_dir):
        config = make_config(org={"files": ["work.org", "tasks.org"]})
        names = [p.name for p in DocumentStore(config).canonical_files()]
        assert names == ["work.org", "tasks.org"]

    def test_missing_explicit_file_is_skipped(self, make_config):
        config = make_config(org={"files": ["tasks.org", "gone.org"]})
        names = [p.name for p in DocumentStore(config).canonical_files()]
        assert names == ["tasks.org"]

    def test_exclude_regexp(self, make_config):
        config = make_config(org={"files_exclude_regexp": r"work\.org$"})
        names = [p.name for p in DocumentStore(config).canonical_files()]
        assert names == ["tasks.org"]

    def test_load_is_cached(self, store, org_dir):
        first = store.load(org_dir / "tasks.org")
        assert store.load(org_dir / "tasks.org") is first


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


class TestIdentifiers:
    def test_find_by_id_across_documents(self, store):
        doc, node = store.find_by_id("ID-BUDGET")
        assert doc.path.name == "work.org"
        assert node.title == "Review budget"

    def test_unknown_id(self, store):
        with pytest.raises(ResolutionError) as exc_info:
            store.find_by_id("NOPE")
        assert exc_info.value.kind == "unresolved-id"
        assert "NOPE" in str(exc_info.value)

    def test_removed_node_is_unresolved(self, store):
        doc, node = store.find_by_id("ID-PLUMBER")
        doc.remove_subtree(node)
        with pytest.raises(ResolutionError):
            store.find_by_id("ID-PLUMBER")

    def test_ensure_id_creates_and_indexes(self, store, org_dir):
        doc = store.load(org_dir / "tasks.org")
        projects = doc.nodes[2]
        identifier = store.ensure_id(doc, projects)
        assert identifier == identifier.upper()
        assert projects.id == identifier
        assert doc.modified
        assert store.find_by_id(identifier) == (doc, projects)

    def test_ensure_id_keeps_existing(self, store, org_dir):
        doc = store.load(org_dir / "tasks.org")
        assert store.ensure_id(doc, doc.nodes[0]) == "ID-PLUMBER"
        assert not doc.modified


# ---------------------------------------------------------------------------
# Outline paths
# ---------------------------------------------------------------------------


class TestFindOlp:
    def test_unique_path(self, store, org_dir):
        doc, node = store.find_olp(org_dir / "tasks.org", ["Renew passport"])
        assert node.id == "ID-PASSPORT"

    def test_nested_not_unique(self, store, org_dir):
        with pytest.raises(ResolutionError) as exc_info:
            store.find_olp(org_dir / "tasks.org", ["Projects", "Garden"])
        assert exc_info.value.kind == "not-unique"
        assert "level 2" in str(exc_info.value)

    def test_not_found(self, store, org_dir):
        with pytest.raises(ResolutionError) as exc_info:
            store.find_olp(org_dir / "tasks.org", ["Projects", "Kitchen"])
        assert exc_info.value.kind == "not-found"

    def test_missing_file(self, store, org_dir):
        with pytest.raises(ResolutionError) as exc_info:
            store.find_olp(org_dir / "nope.org", ["x"])
        assert exc_info.value.kind == "not-found"

    def test_link_name_is_relative(self, store, org_dir, tmp_path):
        write(org_dir / "sub" / "notes.org", "* Note\n")
        assert store.link_name(org_dir / "sub" / "notes.org") == "sub/notes.org"
        outside = write(tmp_path / "elsewhere" / "far.org", "")
        assert store.link_name(outside) == "far.org"


# ---------------------------------------------------------------------------
# Entry edits
# ---------------------------------------------------------------------------


class TestEdits:
    def test_set_todo(self, store, org_dir):
        doc = store.load(org_dir / "tasks.org")
        store.set_todo(doc, doc.nodes[0], "DONE")
        assert doc.nodes[0].todo == "DONE"
        store.set_todo(doc, doc.nodes[0], "")
        assert doc.nodes[0].todo is None

    def test_set_todo_rejects_unknown_keyword(self, store, org_dir):
        doc = store.load(org_dir / "tasks.org")
        with pytest.raises(ActionExecutionError, match="NEXT"):
            store.set_todo(doc, doc.nodes[0], "NEXT")
        assert doc.nodes[0].todo == "TODO"

    def test_done_keyword(self, store, org_dir):
        doc = store.load(org_dir / "tasks.org")
        assert store.done_keyword(doc, doc.nodes[0]) == "DONE"

    def test_stamp_change_inserts_then_replaces(self, store, org_dir):
        doc = store.load(org_dir / "tasks.org")
        store.stamp_change(doc, datetime(2026, 10, 16, 9, 30))
        store.stamp_change(doc, datetime(2026, 10, 16, 9, 45))
        stamps = [ln for ln in doc.preamble if ln.startswith(CHANGE_STAMP_PREFIX)]
        assert stamps == [f"{CHANGE_STAMP_PREFIX} 2026-10-16 09:45:00\n"]
        assert doc.preamble[0] == stamps[0]

    def test_save_all_writes_modified_only(self, store, org_dir):
        tasks = store.load(org_dir / "tasks.org")
        store.load(org_dir / "work.org")
        tasks.nodes[0].title = "Call the plumber"
        tasks.modified = True
        written = store.save_all()
        assert [p.name for p in written] == ["tasks.org"]
        assert "* TODO Call the plumber" in (org_dir / "tasks.org").read_text()


class TestArchive:
    def test_archive_to_sibling_file(self, store, org_dir):
        doc, node = store.find_by_id("ID-PLUMBER")
        target = store.archive_subtree(doc, node)
        assert target.name == "tasks.org_archive"
        assert not doc.contains(node)
        store.save_all()
        archived = target.read_text()
        assert "Call plumber" in archived
        assert ":ARCHIVE_FILE:" in archived
        assert ":ARCHIVE_CATEGORY: tasks" in archived
        assert "Call plumber" not in (org_dir / "tasks.org").read_text()

    def test_archived_id_is_reindexed(self, store):
        doc, node = store.find_by_id("ID-PLUMBER")
        store.archive_subtree(doc, node)
        archive_doc, found = store.find_by_id("ID-PLUMBER")
        assert found is node
        assert archive_doc.path.name == "tasks.org_archive"

    def test_archive_under_heading_in_same_file(self, make_config):
        store = DocumentStore(make_config(org={"archive_location": "::* Archive"}))
        doc, node = store.find_by_id("ID-PLUMBER")
        store.archive_subtree(doc, node)
        archive = doc.roots()[-1]
        assert archive.title == "Archive"
        children = doc.children_of(archive)
        assert children[0] is node
        assert node.level == 2
        assert node.properties["ARCHIVE_TODO"] == "TODO"

    def test_archive_same_file_without_heading(self, make_config):
        store = DocumentStore(make_config(org={"archive_location": "::"}))
        doc, node = store.find_by_id("ID-PLUMBER")
        with pytest.raises(ActionExecutionError):
            store.archive_subtree(doc, node)
