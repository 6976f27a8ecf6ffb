"""Tests for sync.parser (change-request parsing and resolution).

Covers:
- Capture counting
- Flag entry decomposition (action, payload, link, offsets)
- Old / New value blocks and notes
- id: and olp: resolution, including file-only targets
- Resolution errors recorded on the request
- Change stamping once per document
- Region-limited parsing
"""

from __future__ import annotations

import textwrap

import pytest

from orgmobile_sync.errors import ResolutionError
from orgmobile_sync.outline.store import CHANGE_STAMP_PREFIX
from orgmobile_sync.sync.parser import ChangeRequestParser, count_captures

INBOX = textwrap.dedent(
    """\
    * Buy milk
    [2026-10-16 Fri 08:12]
    * F() [[id:ID-PLUMBER][Call plumber]]
    Ask about the price
    * F(edit:todo) [[id:ID-BUDGET][Review budget]]
    ** Old value
    TODO
    ** New value
    DONE
    ** End of edit
    * F(edit:body) [[olp:tasks.org:Renew%20passport][Renew passport]]
    ** Old value
    ** New value

       Bring two photos.
         Keep the receipt.

    """
)


@pytest.fixture
def parser(store):
    return ChangeRequestParser(store)


class TestCountCaptures:
    def test_counts_plain_entries_only(self):
        assert count_captures(INBOX) == 1

    def test_single_character_headings_are_ignored(self):
        assert count_captures("* x\n* Real note\n") == 1

    def test_annotated_flag_entries_are_not_captures(self):
        text = "* BAD FLAG: unknown action 'x' F(x) [[id:ID-PLUMBER][y]]\n"
        assert count_captures(text) == 0

    def test_region(self):
        text = "* One note\n* Two note\n"
        assert count_captures(text, len("* One note\n")) == 1


class TestParse:
    def test_requests_in_order(self, parser):
        result = parser.parse(INBOX)
        assert result.captures == 1
        assert [(r.action, r.payload) for r in result.requests] == [
            ("", None),
            ("edit", "todo"),
            ("edit", "body"),
        ]

    def test_offsets_cover_each_subtree(self, parser):
        requests = parser.parse(INBOX).requests
        first = requests[0]
        assert INBOX[first.start : first.end] == (
            "* F() [[id:ID-PLUMBER][Call plumber]]\nAsk about the price\n"
        )
        assert first.heading_end == first.start + 2
        assert requests[1].end == requests[2].start
        assert requests[2].end == len(INBOX)

    def test_note(self, parser):
        flag = parser.parse(INBOX).requests[0]
        assert flag.link == "id:ID-PLUMBER"
        assert flag.note == "Ask about the price"

    def test_old_and_new_values_are_trimmed(self, parser):
        edit = parser.parse(INBOX).requests[1]
        assert edit.old == "TODO"
        assert edit.new == "DONE"

    def test_body_value_keeps_indentation(self, parser):
        body = parser.parse(INBOX).requests[2]
        assert body.old is None
        assert body.new == "   Bring two photos.\n     Keep the receipt."

    def test_resolves_targets(self, parser):
        requests = parser.parse(INBOX).requests
        assert requests[0].target.node.id == "ID-PLUMBER"
        assert requests[1].target.document.path.name == "work.org"
        assert requests[2].target.node.id == "ID-PASSPORT"
        assert all(r.error is None for r in requests)

    def test_stamps_each_document_once(self, parser, store):
        result = parser.parse(INBOX)
        assert sorted(p.name for p in result.stamped) == ["tasks.org", "work.org"]
        doc, _ = store.find_by_id("ID-PLUMBER")
        stamps = [ln for ln in doc.preamble if ln.startswith(CHANGE_STAMP_PREFIX)]
        assert len(stamps) == 1

    def test_unresolved_target_is_recorded(self, parser):
        text = "* F() [[id:MISSING][gone]]\n"
        request = parser.parse(text).requests[0]
        assert request.target is None
        assert isinstance(request.error, ResolutionError)
        assert request.error.kind == "unresolved-id"

    def test_region_limits_requests(self, parser):
        start = INBOX.index("* F(edit:todo)")
        end = INBOX.index("* F(edit:body)")
        result = parser.parse(INBOX, start, end)
        assert [r.payload for r in result.requests] == ["todo"]
        assert result.captures == 0

    def test_deeper_flag_entries(self, parser):
        text = "* Batch\n** F() [[id:ID-INVOICE][Send invoice]]\nnote\n"
        request = parser.parse(text).requests[0]
        assert request.heading_end == len("* Batch\n** ")
        assert request.end == len(text)

    def test_nested_flag_entry_ends_the_outer_request(self, parser):
        text = (
            "* F() [[id:ID-PLUMBER][Call plumber]]\n"
            "Ask about the price\n"
            "** F(edit:todo) [[id:ID-BUDGET][Review budget]]\n"
            "*** Old value\nTODO\n*** New value\nDONE\n"
            "* Buy milk\n"
        )
        outer, inner = parser.parse(text).requests
        assert outer.end == inner.start
        assert outer.note == "Ask about the price"
        assert (inner.old, inner.new) == ("TODO", "DONE")
        assert inner.end == text.index("* Buy milk")

    def test_entry_with_earlier_message(self, parser):
        text = "* BAD REFERENCE: unresolved ID NOPE F(edit:todo) [[id:ID-PLUMBER][x]]\n"
        request = parser.parse(text).requests[0]
        assert request.annotation == "BAD REFERENCE: unresolved ID NOPE "
        assert request.heading_end == 2
        assert (request.action, request.payload) == ("edit", "todo")

    def test_lowercase_prefix_is_a_capture(self, parser):
        text = "* f(edit:todo) [[id:ID-PLUMBER][x]]\n"
        result = parser.parse(text)
        assert result.requests == []
        assert result.captures == 1

    def test_non_flag_links_are_ignored(self, parser):
        text = "* F() [[file:tasks.org][tasks]]\n* F(x [[id:ID-PLUMBER]]\n"
        assert parser.parse(text).requests == []


class TestResolve:
    def test_olp_file_only(self, parser):
        target = parser.resolve("olp", "work.org")
        assert target.node is None
        assert target.document.path.name == "work.org"

    def test_olp_not_unique(self, parser):
        with pytest.raises(ResolutionError) as exc_info:
            parser.resolve("olp", "tasks.org:Projects/Garden")
        assert exc_info.value.kind == "not-unique"

    def test_olp_percent_decoded_slash(self, parser, store, org_dir):
        doc = store.load(org_dir / "tasks.org")
        doc.nodes[0].title = "Plumber/Electrician"
        target = parser.resolve("olp", "tasks.org:Plumber%2FElectrician")
        assert target.node is doc.nodes[0]

    def test_olp_missing_file(self, parser):
        with pytest.raises(ResolutionError) as exc_info:
            parser.resolve("olp", "nope.org")
        assert exc_info.value.kind == "not-found"

    def test_olp_without_file_is_bad_link(self, parser):
        with pytest.raises(ResolutionError) as exc_info:
            parser.resolve("olp", ":Heading")
        assert exc_info.value.kind == "bad-link"
