"""In-memory outline documents.

A document is an arena: ``nodes`` holds every heading in document order
and each ``Node`` refers to its parent and children by arena index.  Because
the arena order *is* the file order, structural edits only need to splice
the list and call ``link()`` to recompute the indices.

Node objects keep their identity across ``link()``, ``snapshot()`` and
``restore()``, so references held by pending change requests stay valid
while other requests reshape the same document.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path

FLAGGED_TAG = "FLAGGED"


@dataclass
class TodoSequence:
    """One TODO keyword sequence, e.g. ``TODO NEXT | DONE CANCELLED``."""

    open: list[str] = field(default_factory=list)
    done: list[str] = field(default_factory=list)

    @classmethod
    def from_tokens(cls, tokens: list[str]) -> TodoSequence:
        """Build a sequence from Org-style tokens.

        Fast-access suffixes such as ``TODO(t)`` are dropped.  Without a
        ``"|"`` separator the last keyword is the only done state.
        """
        words = [_strip_fast_access(t) for t in tokens if t.strip()]
        if "|" in words:
            cut = words.index("|")
            open_kw = [w for w in words[:cut] if w != "|"]
            done_kw = [w for w in words[cut + 1 :] if w != "|"]
        elif len(words) > 1:
            open_kw, done_kw = words[:-1], words[-1:]
        else:
            open_kw, done_kw = words, []
        return cls(open=open_kw, done=done_kw)

    @property
    def keywords(self) -> list[str]:
        return self.open + self.done

    def tokens(self) -> list[str]:
        """Return the sequence as index-file tokens (with ``"|"``)."""
        return self.open + ["|"] + self.done


def _strip_fast_access(token: str) -> str:
    token = token.strip()
    if token.endswith(")") and "(" in token:
        return token[: token.index("(")]
    return token


@dataclass(eq=False)
class Node:
    """One heading entry.

    ``body`` is the free text after the planning line and property drawer,
    kept verbatim including line endings.  ``raw`` holds the entry's
    original text and ``fingerprint`` the parsed field values; the entry is
    re-rendered only when its fields no longer match the fingerprint.
    """

    level: int
    title: str
    todo: str | None = None
    priority: str | None = None
    tags: list[str] = field(default_factory=list)
    properties: dict[str, str] = field(default_factory=dict)
    planning: list[str] = field(default_factory=list)
    body: str = ""
    raw: str | None = None
    fingerprint: tuple | None = None
    index: int = -1
    parent: int | None = None
    children: list[int] = field(default_factory=list)

    @property
    def id(self) -> str | None:
        return self.properties.get("ID")

    def is_flagged(self) -> bool:
        return FLAGGED_TAG in self.tags

    def field_state(self) -> tuple:
        """Return the values that decide whether ``raw`` is still valid."""
        return (
            self.level,
            self.todo,
            self.priority,
            self.title,
            tuple(self.tags),
            tuple(self.properties.items()),
            tuple(self.planning),
            self.body,
        )

    def is_dirty(self) -> bool:
        return self.raw is None or self.field_state() != self.fingerprint


@dataclass(eq=False)
class OutlineDocument:
    """A parsed outline file.

    Attributes:
        path: Canonical (resolved) file path.
        preamble: Raw lines before the first heading.
        nodes: Arena of headings in document order.
        todo_sequences: Sequences declared in the file itself; empty when
            the file relies on the configured vocabulary.
        modified: Set by the store whenever anything is mutated.
    """

    path: Path
    preamble: list[str] = field(default_factory=list)
    nodes: list[Node] = field(default_factory=list)
    todo_sequences: list[TodoSequence] = field(default_factory=list)
    modified: bool = False

    def __post_init__(self) -> None:
        self.link()

    # ------------------------------------------------------------------
    # Arena maintenance
    # ------------------------------------------------------------------

    def link(self) -> None:
        """Recompute ``index``, ``parent`` and ``children`` from levels."""
        stack: list[Node] = []
        for i, node in enumerate(self.nodes):
            node.index = i
            node.children = []
            while stack and stack[-1].level >= node.level:
                stack.pop()
            if stack:
                node.parent = stack[-1].index
                stack[-1].children.append(i)
            else:
                node.parent = None
            stack.append(node)

    def roots(self) -> list[Node]:
        return [n for n in self.nodes if n.parent is None]

    def children_of(self, node: Node | None) -> list[Node]:
        """Return direct children of *node*, or the roots for ``None``."""
        if node is None:
            return self.roots()
        return [self.nodes[i] for i in node.children]

    def parent_of(self, node: Node) -> Node | None:
        if node.parent is None:
            return None
        return self.nodes[node.parent]

    def contains(self, node: Node) -> bool:
        return (
            0 <= node.index < len(self.nodes)
            and self.nodes[node.index] is node
        )

    def subtree_end(self, node: Node) -> int:
        """Return the arena index just past *node*'s subtree."""
        i = node.index + 1
        while i < len(self.nodes) and self.nodes[i].level > node.level:
            i += 1
        return i

    def subtree(self, node: Node) -> list[Node]:
        return self.nodes[node.index : self.subtree_end(node)]

    def outline_path(self, node: Node) -> list[str]:
        """Return the heading titles from the root down to *node*."""
        path = []
        current: Node | None = node
        while current is not None:
            path.append(current.title)
            current = self.parent_of(current)
        return list(reversed(path))

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------

    def remove_subtree(self, node: Node) -> list[Node]:
        """Detach *node* and its descendants; return them in order."""
        start, end = node.index, self.subtree_end(node)
        removed = self.nodes[start:end]
        del self.nodes[start:end]
        self.link()
        self.modified = True
        return removed

    def insert_subtree(self, position: int, nodes: list[Node]) -> None:
        self.nodes[position:position] = nodes
        self.link()
        self.modified = True

    def append_child(self, parent: Node | None, child: Node) -> Node:
        """Append *child* as the last child of *parent* (or as a root)."""
        if parent is None:
            child.level = 1
            position = len(self.nodes)
        else:
            child.level = parent.level + 1
            position = self.subtree_end(parent)
        self.insert_subtree(position, [child])
        return child

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> tuple:
        """Capture enough state to undo any edit made through the store."""
        return (
            list(self.preamble),
            list(self.nodes),
            [copy.deepcopy(vars(n)) for n in self.nodes],
            self.modified,
        )

    def restore(self, snap: tuple) -> None:
        """Roll back to *snap*, keeping the original Node objects."""
        preamble, nodes, states, modified = snap
        self.preamble = preamble
        self.nodes = nodes
        for node, state in zip(nodes, states):
            node.__dict__.update(state)
        self.modified = modified
        self.link()
