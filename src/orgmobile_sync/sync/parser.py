"""Change-request parser (first stage of a pull).

Scans a region of the inbox text, counts plain captures, and turns each
flag entry into a ``ChangeRequest`` with its target resolved against the
canonical store.  Nothing in the canonical store is changed here except the
``#+LAST_MOBILE_CHANGE:`` stamp on every document a request resolves to.

A flag entry looks like::

    * F(edit:todo) [[id:6A1B...][Call the plumber]]
    ** Old value
    TODO
    ** New value
    DONE

Resolution failures are recorded on the request (``request.error``) rather
than raised, so the apply stage reports them like any other request error.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import unquote

from orgmobile_sync.errors import ResolutionError
from orgmobile_sync.outline.store import DocumentStore

from .models import ChangeRequest, Target

logger = logging.getLogger(__name__)

CAPTURE_RE = re.compile(r"^\* (.*)$", re.MULTILINE)
FLAG_RE = re.compile(
    r"^(\*+[ \t]+)((?:[^\n]*?[ \t])??)F\(([A-Za-z0-9]*)(?::([^()\n]*))?\)[ \t]+"
    r"\[\[((id|olp):([^\]\n]+))\](?:\[[^\]\n]*\])?\]",
    re.MULTILINE,
)
ANY_HEADING_RE = re.compile(r"^(\*+)[ \t]", re.MULTILINE)
OLD_VALUE_RE = re.compile(r"^\*+[ \t]+Old value[ \t]*$", re.MULTILINE)
NEW_VALUE_RE = re.compile(r"^\*+[ \t]+New value[ \t]*$", re.MULTILINE)
_LEADING_BLANK_RE = re.compile(r"\A(?:[ \t]*\n)+")


@dataclass
class ParseResult:
    """Captures counted and requests found in one region."""

    captures: int = 0
    requests: list[ChangeRequest] = field(default_factory=list)
    stamped: list[Path] = field(default_factory=list)


def count_captures(text: str, start: int = 0, end: int | None = None) -> int:
    """Count top-level entries that are plain captures.

    Flag entries are skipped, including ones already carrying an inline
    error message in front of ``F(``.
    """
    end = len(text) if end is None else end
    count = 0
    for m in CAPTURE_RE.finditer(text, start, end):
        heading = m.group(1)
        if len(heading) < 2 or heading.startswith("F("):
            continue
        if FLAG_RE.match(text, m.start(), end):
            continue
        count += 1
    return count


def subtree_end(text: str, line_start: int, level: int, limit: int) -> int:
    """Offset of the next heading at *level* or shallower, else *limit*."""
    eol = text.find("\n", line_start, limit)
    if eol < 0:
        return limit
    for m in ANY_HEADING_RE.finditer(text, eol + 1, limit):
        if len(m.group(1)) <= level:
            return m.start()
    return limit


def _block_value(
    text: str, pattern: re.Pattern, start: int, end: int, trim: bool
) -> str | None:
    """Return the text under an ``** Old value`` / ``** New value`` heading."""
    m = pattern.search(text, start, end)
    if m is None:
        return None
    body_start = m.end() + 1 if m.end() < end else end
    nxt = ANY_HEADING_RE.search(text, body_start, end)
    value = text[body_start : nxt.start() if nxt else end]
    if not value.strip():
        return None
    if trim:
        return value.strip()
    return _LEADING_BLANK_RE.sub("", value).rstrip()


class ChangeRequestParser:
    """Parse and resolve flag entries.

    Args:
        store: Canonical document store used for resolution.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def parse(
        self, text: str, start: int = 0, end: int | None = None
    ) -> ParseResult:
        """Parse the region ``text[start:end]``.

        Each document a request resolves to is stamped with a change marker
        the first time it is touched in this call.
        """
        end = len(text) if end is None else end
        result = ParseResult(captures=count_captures(text, start, end))
        stamped: set[Path] = set()

        matches = list(FLAG_RE.finditer(text, start, end))
        for i, m in enumerate(matches):
            level = len(m.group(1).rstrip())
            stop = subtree_end(text, m.start(), level, end)
            # a nested flag entry starts a request of its own
            if i + 1 < len(matches):
                stop = min(stop, matches[i + 1].start())
            field_name = m.group(4)
            request = ChangeRequest(
                action=m.group(3),
                payload=field_name,
                link=m.group(5),
                start=m.start(),
                end=stop,
                heading_end=m.start() + len(m.group(1)),
                annotation=m.group(2),
            )
            trim = field_name != "body"
            request.old = _block_value(text, OLD_VALUE_RE, m.end(), stop, trim)
            request.new = _block_value(text, NEW_VALUE_RE, m.end(), stop, trim)
            eol = text.find("\n", m.end(), stop)
            if eol >= 0:
                note = text[eol + 1 : stop].strip()
                request.note = note or None

            try:
                request.target = self.resolve(m.group(6), m.group(7))
            except ResolutionError as exc:
                request.error = exc
                logger.warning("Unresolved target %s: %s", request.link, exc)
            else:
                doc = request.target.document
                if doc.path not in stamped:
                    self.store.stamp_change(doc)
                    stamped.add(doc.path)
                    result.stamped.append(doc.path)
            result.requests.append(request)

        logger.debug(
            "Parsed %d captures and %d requests",
            result.captures,
            len(result.requests),
        )
        return result

    def resolve(self, scheme: str, reference: str) -> Target:
        """Resolve an ``id:`` or ``olp:`` link target.

        ``olp:FILE`` names a whole file; ``olp:FILE:H1/H2`` walks the
        heading path.  Both parts are percent-decoded.

        Raises:
            ResolutionError: If the target cannot be resolved.
        """
        if scheme == "id":
            doc, node = self.store.find_by_id(reference.strip())
            return Target(document=doc, node=node)

        file_part, sep, path_part = reference.partition(":")
        if not file_part:
            raise ResolutionError("bad-link", f"BAD REFERENCE: olp:{reference}")
        path = Path(unquote(file_part)).expanduser()
        if not path.is_absolute():
            path = self.store.config.org_directory / path
        if not sep or not path_part:
            if not path.is_file():
                raise ResolutionError("not-found", f"File not found: {path}")
            return Target(document=self.store.load(path), node=None)
        headings = [unquote(h) for h in path_part.split("/")]
        doc, node = self.store.find_olp(path, headings)
        return Target(document=doc, node=node)
