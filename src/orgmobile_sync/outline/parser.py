"""Parse Org outline text into ``OutlineDocument`` arenas and render back.

Only the structure the sync engine needs is interpreted: heading stars,
TODO keyword, ``[#A]`` priority, trailing ``:tag:`` lists, the planning
line, and the ``:PROPERTIES:`` drawer.  Everything else is body text and
is carried verbatim.  Entries whose fields are unchanged render from their
original text, so an untouched document round-trips byte-for-byte.
"""

from __future__ import annotations

import re
from pathlib import Path

from .model import Node, OutlineDocument, TodoSequence

HEADING_RE = re.compile(r"^(\*+)[ \t]+(.*?)[ \t]*$")
PRIORITY_RE = re.compile(r"^\[#([A-Z0-9])\](?:[ \t]+|$)")
TAGS_RE = re.compile(r"^(.*?)[ \t]*(:[\w@#%:]+:)$")
PLANNING_RE = re.compile(r"^[ \t]*(SCHEDULED|DEADLINE|CLOSED):")
DRAWER_START_RE = re.compile(r"^[ \t]*:PROPERTIES:[ \t]*$")
DRAWER_END_RE = re.compile(r"^[ \t]*:END:[ \t]*$")
PROPERTY_RE = re.compile(r"^[ \t]*:([^:\s]+):(?:[ \t]+(.*?))?[ \t]*$")
TODO_DECL_RE = re.compile(
    r"^#\+(?:SEQ_|TYP_)?TODO:[ \t]*(.*?)[ \t]*$", re.IGNORECASE
)

TAGS_COLUMN = 77


# =============================================================================
# Headings
# =============================================================================


def parse_heading(
    line: str, keywords: set[str]
) -> tuple[int, str | None, str | None, str, list[str]] | None:
    """Split a heading line into its components.

    Args:
        line: One line of text without its line ending.
        keywords: TODO keywords recognised for this document.

    Returns:
        ``(level, todo, priority, title, tags)`` or ``None`` when *line*
        is not a heading.
    """
    m = HEADING_RE.match(line)
    if m is None:
        return None
    level = len(m.group(1))
    rest = m.group(2)

    todo = None
    first, _, remainder = rest.partition(" ")
    if first in keywords:
        todo = first
        rest = remainder.lstrip(" \t")

    priority = None
    pm = PRIORITY_RE.match(rest)
    if pm:
        priority = pm.group(1)
        rest = rest[pm.end() :]

    tags: list[str] = []
    tm = TAGS_RE.match(rest)
    if tm and (tm.group(1) == "" or rest[len(tm.group(1))] in " \t"):
        tags = [t for t in tm.group(2).split(":") if t]
        rest = tm.group(1)

    return level, todo, priority, rest.strip(), tags


def format_heading(node: Node) -> str:
    """Render the heading line of *node* (no line ending)."""
    parts = ["*" * node.level]
    if node.todo:
        parts.append(node.todo)
    if node.priority:
        parts.append(f"[#{node.priority}]")
    if node.title:
        parts.append(node.title)
    line = " ".join(parts)
    if node.tags:
        tag_str = ":" + ":".join(node.tags) + ":"
        pad = max(1, TAGS_COLUMN - len(line) - len(tag_str))
        line = line + " " * pad + tag_str
    return line


def format_property_drawer(properties: dict[str, str]) -> list[str]:
    lines = [":PROPERTIES:\n"]
    for key, value in properties.items():
        lines.append(f"{':' + key + ':':<10} {value}".rstrip() + "\n")
    lines.append(":END:\n")
    return lines


# =============================================================================
# Documents
# =============================================================================


def declared_sequences(preamble: list[str]) -> list[TodoSequence]:
    """Return TODO sequences declared with ``#+TODO:`` style lines."""
    sequences = []
    for line in preamble:
        m = TODO_DECL_RE.match(line.rstrip("\r\n"))
        if m and m.group(1):
            sequences.append(TodoSequence.from_tokens(m.group(1).split()))
    return sequences


def _parse_entry(
    lines: list[str], keywords: set[str]
) -> Node:
    """Build a Node from one heading line plus its section lines."""
    level, todo, priority, title, tags = parse_heading(  # type: ignore[misc]
        lines[0].rstrip("\r\n"), keywords
    )
    i = 1
    planning: list[str] = []
    while i < len(lines) and PLANNING_RE.match(lines[i]):
        planning.append(lines[i].rstrip("\r\n").strip())
        i += 1

    properties: dict[str, str] = {}
    if i < len(lines) and DRAWER_START_RE.match(lines[i]):
        end = i + 1
        while end < len(lines) and not DRAWER_END_RE.match(lines[end]):
            end += 1
        if end < len(lines):
            for prop_line in lines[i + 1 : end]:
                pm = PROPERTY_RE.match(prop_line.rstrip("\r\n"))
                if pm:
                    properties[pm.group(1)] = pm.group(2) or ""
            i = end + 1

    node = Node(
        level=level,
        title=title,
        todo=todo,
        priority=priority,
        tags=tags,
        properties=properties,
        planning=planning,
        body="".join(lines[i:]),
        raw="".join(lines),
    )
    node.fingerprint = node.field_state()
    return node


def parse_document(
    text: str,
    path: Path,
    vocabulary: list[TodoSequence] | None = None,
) -> OutlineDocument:
    """Parse *text* into an ``OutlineDocument``.

    Args:
        text: Full file content.
        path: Canonical path recorded on the document.
        vocabulary: Configured TODO sequences, used unless the file
            declares its own.
    """
    lines = text.splitlines(keepends=True)
    first_heading = next(
        (i for i, ln in enumerate(lines) if HEADING_RE.match(ln.rstrip("\r\n"))),
        len(lines),
    )
    preamble = lines[:first_heading]
    declared = declared_sequences(preamble)
    sequences = declared or list(vocabulary or [])
    keywords = {kw for seq in sequences for kw in seq.keywords}

    nodes: list[Node] = []
    entry: list[str] = []
    for line in lines[first_heading:]:
        if entry and HEADING_RE.match(line.rstrip("\r\n")):
            nodes.append(_parse_entry(entry, keywords))
            entry = []
        entry.append(line)
    if entry:
        nodes.append(_parse_entry(entry, keywords))

    return OutlineDocument(
        path=path,
        preamble=preamble,
        nodes=nodes,
        todo_sequences=declared,
    )


def render_node(node: Node) -> str:
    if not node.is_dirty():
        return node.raw  # type: ignore[return-value]
    out = [format_heading(node) + "\n"]
    out.extend(line + "\n" for line in node.planning)
    if node.properties:
        out.extend(format_property_drawer(node.properties))
    body = node.body
    if body and not body.endswith("\n"):
        body += "\n"
    out.append(body)
    return "".join(out)


def render_document(doc: OutlineDocument) -> str:
    """Render *doc* back to Org text."""
    preamble = "".join(doc.preamble)
    if preamble and doc.nodes and not preamble.endswith("\n"):
        preamble += "\n"
    parts = [preamble]
    for i, node in enumerate(doc.nodes):
        text = render_node(node)
        if i + 1 < len(doc.nodes) and not text.endswith("\n"):
            text += "\n"
        parts.append(text)
    return "".join(parts)
