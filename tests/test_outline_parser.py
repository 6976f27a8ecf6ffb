"""Tests for outline.parser and outline.model.

Covers:
- Heading decomposition (TODO keyword, priority, tags)
- Planning lines and property drawers
- Byte-identical rendering of untouched documents
- Re-rendering of modified entries
- Per-file TODO declarations
- Arena links, subtree operations, snapshot/restore
"""

from __future__ import annotations

from pathlib import Path

from orgmobile_sync.outline.model import Node, OutlineDocument, TodoSequence
from orgmobile_sync.outline.parser import (
    format_heading,
    parse_document,
    parse_heading,
    render_document,
)

from conftest import TASKS_ORG, WORK_ORG

VOCAB = [TodoSequence.from_tokens(["TODO", "WAITING", "|", "DONE"])]
KEYWORDS = {"TODO", "WAITING", "DONE"}


# ---------------------------------------------------------------------------
# TodoSequence
# ---------------------------------------------------------------------------


class TestTodoSequence:
    def test_split_on_bar(self):
        seq = TodoSequence.from_tokens(["TODO(t)", "NEXT(n)", "|", "DONE(d!)"])
        assert seq.open == ["TODO", "NEXT"]
        assert seq.done == ["DONE"]

    def test_last_word_is_done_without_bar(self):
        seq = TodoSequence.from_tokens(["OPEN", "CLOSED"])
        assert seq.open == ["OPEN"]
        assert seq.done == ["CLOSED"]

    def test_tokens_include_separator(self):
        seq = TodoSequence.from_tokens(["TODO", "|", "DONE"])
        assert seq.tokens() == ["TODO", "|", "DONE"]


# ---------------------------------------------------------------------------
# Headings
# ---------------------------------------------------------------------------


class TestParseHeading:
    def test_full_heading(self):
        result = parse_heading("** TODO [#A] Write report   :work:urgent:", KEYWORDS)
        assert result == (2, "TODO", "A", "Write report", ["work", "urgent"])

    def test_plain_heading(self):
        assert parse_heading("* Projects", KEYWORDS) == (1, None, None, "Projects", [])

    def test_unknown_keyword_is_title(self):
        result = parse_heading("* NEXT thing", KEYWORDS)
        assert result[1] is None
        assert result[3] == "NEXT thing"

    def test_not_a_heading(self):
        assert parse_heading("*bold* text", KEYWORDS) is None
        assert parse_heading("plain", KEYWORDS) is None

    def test_colon_inside_title_is_not_tags(self):
        result = parse_heading("* Meeting at 10:30", KEYWORDS)
        assert result[3] == "Meeting at 10:30"
        assert result[4] == []

    def test_format_heading_aligns_tags(self):
        node = Node(level=1, title="Call plumber", todo="TODO", tags=["home"])
        line = format_heading(node)
        assert line.startswith("* TODO Call plumber ")
        assert line.endswith(":home:")
        assert len(line) == 77


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TestParseDocument:
    def test_entries_and_fields(self):
        doc = parse_document(TASKS_ORG, Path("tasks.org"), VOCAB)
        titles = [n.title for n in doc.nodes]
        assert titles == [
            "Call plumber",
            "Renew passport",
            "Projects",
            "Garden",
            "Plant bulbs",
            "Garden",
        ]
        plumber = doc.nodes[0]
        assert plumber.todo == "TODO"
        assert plumber.tags == ["home"]
        assert plumber.id == "ID-PLUMBER"
        assert plumber.body == "Kitchen sink leaks.\n"

    def test_planning_is_not_body(self):
        doc = parse_document(TASKS_ORG, Path("tasks.org"), VOCAB)
        passport = doc.nodes[1]
        assert passport.planning == ["SCHEDULED: <2026-10-20 Tue>"]
        assert passport.id == "ID-PASSPORT"
        assert passport.body == ""

    def test_preamble(self):
        doc = parse_document(TASKS_ORG, Path("tasks.org"), VOCAB)
        assert doc.preamble == ["#+TITLE: Tasks\n", "\n"]

    def test_round_trip_is_byte_identical(self):
        for text in (TASKS_ORG, WORK_ORG, "no headings\n", ""):
            doc = parse_document(text, Path("x.org"), VOCAB)
            assert render_document(doc) == text

    def test_round_trip_without_trailing_newline(self):
        text = "* TODO a\nbody"
        doc = parse_document(text, Path("x.org"), VOCAB)
        assert render_document(doc) == text

    def test_modified_entry_is_rerendered(self):
        doc = parse_document(WORK_ORG, Path("work.org"), VOCAB)
        doc.nodes[0].todo = "DONE"
        text = render_document(doc)
        assert text.startswith("* DONE Review budget")
        assert "DEADLINE: <2026-10-18 Sun>\n" in text
        assert ":ID:       ID-BUDGET\n" in text
        assert "Numbers for Q4.\n" in text
        # untouched entry keeps its original text
        assert "* DONE Send invoice\n  :PROPERTIES:\n" in text

    def test_file_declared_sequences_override_vocabulary(self):
        text = "#+TODO: OPEN STARTED | CLOSED\n* OPEN thing\n* TODO other\n"
        doc = parse_document(text, Path("x.org"), VOCAB)
        assert doc.todo_sequences[0].open == ["OPEN", "STARTED"]
        assert doc.nodes[0].todo == "OPEN"
        assert doc.nodes[1].todo is None


# ---------------------------------------------------------------------------
# Arena
# ---------------------------------------------------------------------------


class TestArena:
    def _doc(self) -> OutlineDocument:
        return parse_document(TASKS_ORG, Path("tasks.org"), VOCAB)

    def test_parent_and_children(self):
        doc = self._doc()
        projects = doc.nodes[2]
        assert [c.title for c in doc.children_of(projects)] == ["Garden", "Garden"]
        assert doc.parent_of(doc.nodes[4]) is doc.nodes[3]
        assert [r.title for r in doc.roots()] == [
            "Call plumber",
            "Renew passport",
            "Projects",
        ]

    def test_outline_path(self):
        doc = self._doc()
        assert doc.outline_path(doc.nodes[4]) == ["Projects", "Garden", "Plant bulbs"]

    def test_remove_subtree_keeps_node_identity(self):
        doc = self._doc()
        projects = doc.nodes[2]
        plumber = doc.nodes[0]
        removed = doc.remove_subtree(projects)
        assert len(removed) == 4
        assert not doc.contains(projects)
        assert doc.contains(plumber)
        assert doc.modified

    def test_append_child_sets_level(self):
        doc = self._doc()
        projects = doc.nodes[2]
        child = doc.append_child(projects, Node(level=1, title="Kitchen"))
        assert child.level == 2
        assert doc.parent_of(child) is projects
        assert doc.nodes[-1] is child

    def test_snapshot_restore(self):
        doc = self._doc()
        plumber = doc.nodes[0]
        snap = doc.snapshot()
        plumber.tags.append("FLAGGED")
        plumber.properties["X"] = "1"
        doc.remove_subtree(doc.nodes[2])
        doc.restore(snap)
        assert plumber.tags == ["home"]
        assert "X" not in plumber.properties
        assert len(doc.nodes) == 6
        assert doc.nodes[0] is plumber
        assert not doc.modified
        assert render_document(doc) == TASKS_ORG
