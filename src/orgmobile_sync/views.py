"""Saved-search views over the canonical store.

Executes the configured view definitions and returns their result rows
together with provenance: every ``ViewRow`` records the section it belongs
to, its prefix text, and the document and node it was produced from.  The
staging builder consults these records when flattening the views into the
exported aggregated document; nothing is recovered from rendered text.

Supported types:

- ``agenda``    -- open entries with a SCHEDULED or DEADLINE timestamp.
- ``alltodo``   -- every open TODO entry.
- ``todo``      -- open entries whose keyword is in ``match`` (``A|B``).
- ``tags``      -- entries matching a tag expression (``+a-b|c/NEXT``).
- ``tags-todo`` -- like ``tags`` but only open TODO entries.
- ``search``    -- entries containing every word of ``match``.
- ``block``     -- an ordered list of the above.

Tree types (``todo-tree``, ``tags-tree``, ``occur-tree``) and searches with
an empty match (which would prompt interactively) cannot be flattened and
are skipped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from orgmobile_sync.config_schema import ViewDefinition
from orgmobile_sync.outline.model import Node, OutlineDocument
from orgmobile_sync.outline.store import DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_VIEWS = [
    ViewDefinition(key="a", description="Agenda", type="agenda"),
    ViewDefinition(key="t", description="ALL TODO", type="alltodo"),
]
TREE_TYPES = frozenset({"todo-tree", "tags-tree", "occur-tree"})
INTERACTIVE_TYPES = frozenset({"search", "tags", "tags-todo"})

_PLANNING_TS_RE = re.compile(r"(SCHEDULED|DEADLINE):\s*(<[^>]+>)")
_PREFIX_LABELS = {"SCHEDULED": "Scheduled:", "DEADLINE": "Deadline:"}


@dataclass
class ViewRow:
    """Provenance record for one rendered result row."""

    section: str
    prefix: str
    document: OutlineDocument
    node: Node


@dataclass
class ViewSection:
    """One flattened result section.

    Attributes:
        key: Section key; block sub-views are numbered ``KEY#N``.
        title: Display title (the definition's description, or its type /
            match when the description is empty).
        rows: Result rows in display order.
    """

    key: str
    title: str
    rows: list[ViewRow] = field(default_factory=list)

    @property
    def annotation(self) -> str:
        return f"<after>KEYS={self.key} TITLE: {self.title}</after>"


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def select_views(
    definitions: list[ViewDefinition], selection: str | list[str]
) -> list[ViewDefinition]:
    """Apply the ``agendas`` selection to the configured definitions.

    ``"all"`` keeps every custom definition and adds the defaults whose
    keys are not taken; ``"default"`` uses only the defaults; ``"custom"``
    only the configured ones; a list keeps the named keys.
    """
    if selection == "default":
        return list(DEFAULT_VIEWS)
    if selection == "custom":
        return list(definitions)
    if selection == "all":
        keys = {d.key for d in definitions}
        defaults = [d for d in DEFAULT_VIEWS if d.key not in keys]
        return defaults + list(definitions)
    pool = {d.key: d for d in DEFAULT_VIEWS}
    pool.update({d.key: d for d in definitions})
    return [pool[k] for k in selection if k in pool]


def is_exportable(view_type: str, match: str) -> bool:
    if view_type in TREE_TYPES:
        return False
    if view_type in INTERACTIVE_TYPES and not match.strip():
        return False
    return True


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def _inherited_tags(doc: OutlineDocument, node: Node) -> set[str]:
    tags: set[str] = set()
    current: Node | None = node
    while current is not None:
        tags.update(current.tags)
        current = doc.parent_of(current)
    return tags


def match_tags(expression: str, tags: set[str], todo: str | None) -> bool:
    """Evaluate an Org-style tag match against *tags* and *todo*.

    ``|`` separates alternatives; within one alternative ``+tag`` (or a
    bare tag) is required and ``-tag`` forbidden.  A ``/KW1|KW2`` suffix
    restricts the TODO keyword.
    """
    tag_part, _, todo_part = expression.partition("/")
    if todo_part:
        wanted = {kw for kw in todo_part.lstrip("!").split("|") if kw}
        if wanted and todo not in wanted:
            return False
    if not tag_part.strip():
        return True
    for alternative in tag_part.split("|"):
        terms = re.findall(r"([+-]?)([\w@#%]+)", alternative.replace("&", "+"))
        if not terms:
            continue
        if all((tag in tags) != (sign == "-") for sign, tag in terms):
            return True
    return False


class ViewEngine:
    """Execute view definitions against loaded canonical documents.

    Args:
        store: The document store (for TODO vocabularies).
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def _is_done(self, doc: OutlineDocument, node: Node) -> bool:
        return any(
            node.todo in seq.done for seq in self.store.sequences_for(doc)
        )

    def _is_open_todo(self, doc: OutlineDocument, node: Node) -> bool:
        return node.todo is not None and not self._is_done(doc, node)

    def execute(
        self,
        section: str,
        view_type: str,
        match: str,
        documents: list[OutlineDocument],
    ) -> list[ViewRow]:
        """Run one non-block view and return its rows."""
        rows: list[ViewRow] = []
        if view_type == "agenda":
            dated = []
            for doc in documents:
                for node in doc.nodes:
                    if self._is_done(doc, node):
                        continue
                    for line in node.planning:
                        for kind, stamp in _PLANNING_TS_RE.findall(line):
                            dated.append(
                                (stamp, f"{_PREFIX_LABELS[kind]} {stamp}", doc, node)
                            )
            dated.sort(key=lambda item: item[0])
            return [
                ViewRow(section=section, prefix=p, document=d, node=n)
                for _, p, d, n in dated
            ]

        words = match.lower().split()
        keywords = {kw for kw in match.split("|") if kw}
        for doc in documents:
            for node in doc.nodes:
                if view_type in ("alltodo", "todo"):
                    hit = self._is_open_todo(doc, node) and (
                        view_type == "alltodo"
                        or not keywords
                        or node.todo in keywords
                    )
                elif view_type in ("tags", "tags-todo"):
                    hit = match_tags(
                        match, _inherited_tags(doc, node), node.todo
                    ) and (
                        view_type == "tags" or self._is_open_todo(doc, node)
                    )
                elif view_type == "search":
                    haystack = f"{node.title}\n{node.body}".lower()
                    hit = all(w in haystack for w in words)
                else:
                    logger.warning("Unsupported view type: %s", view_type)
                    return []
                if hit:
                    rows.append(
                        ViewRow(section=section, prefix="", document=doc, node=node)
                    )
        return rows

    def run(
        self,
        definitions: list[ViewDefinition],
        documents: list[OutlineDocument],
    ) -> list[ViewSection]:
        """Flatten *definitions* into exportable sections.

        Block definitions yield one section per sub-view, numbered
        ``KEY#1``, ``KEY#2``...; non-exportable definitions are skipped.
        """
        sections: list[ViewSection] = []
        for definition in definitions:
            if definition.type == "block":
                for count, block in enumerate(definition.blocks, start=1):
                    if not is_exportable(block.type, block.match):
                        logger.debug(
                            "Skipping %s#%d (%s)", definition.key, count, block.type
                        )
                        continue
                    key = f"{definition.key}#{count}"
                    title = definition.description or block.match or block.type
                    sections.append(
                        ViewSection(
                            key=key,
                            title=title,
                            rows=self.execute(key, block.type, block.match, documents),
                        )
                    )
                continue
            if not is_exportable(definition.type, definition.match):
                logger.debug(
                    "Skipping view %s (%s)", definition.key, definition.type
                )
                continue
            sections.append(
                ViewSection(
                    key=definition.key,
                    title=definition.description or definition.type,
                    rows=self.execute(
                        definition.key,
                        definition.type,
                        definition.match,
                        documents,
                    ),
                )
            )
        return sections

    def flagged(self, documents: list[OutlineDocument]) -> list[ViewRow]:
        """Rows for every entry carrying the review flag in *documents*."""
        return [
            ViewRow(section="?", prefix="", document=doc, node=node)
            for doc in documents
            for node in doc.nodes
            if node.is_flagged()
        ]
