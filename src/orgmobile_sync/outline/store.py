"""Canonical document store.

``DocumentStore`` is the capability surface the sync engine works
through: it enumerates and caches canonical documents, maintains the
process-wide identifier index, resolves outline paths, and performs the
entry-level edits (TODO state, archiving) that need vocabulary or
cross-document knowledge.  Field values on a ``Node`` are otherwise set
directly by callers.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime
from pathlib import Path

from orgmobile_sync.config import Config
from orgmobile_sync.errors import ActionExecutionError, ResolutionError
from orgmobile_sync.file_handler import atomic_write, read_text
from orgmobile_sync.outline.model import Node, OutlineDocument, TodoSequence
from orgmobile_sync.outline.parser import parse_document, render_document

logger = logging.getLogger(__name__)

CHANGE_STAMP_PREFIX = "#+LAST_MOBILE_CHANGE:"
ARCHIVE_TIME_FORMAT = "%Y-%m-%d %a %H:%M"


class DocumentStore:
    """Load, index, mutate and save canonical outline documents.

    Args:
        config: Resolved runtime configuration.
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.vocabulary = [
            TodoSequence.from_tokens(seq) for seq in config.org.todo_keywords
        ]
        self._documents: dict[Path, OutlineDocument] = {}
        self._id_index: dict[str, tuple[Path, Node]] = {}
        self._id_index_built = False

    # ------------------------------------------------------------------
    # Enumeration and loading
    # ------------------------------------------------------------------

    def canonical_files(self) -> list[Path]:
        """Return the documents that make up the canonical set.

        Uses ``org.files`` when configured, otherwise every ``*.org`` file
        under the canonical root except the pull inbox.  Files matching ``files_exclude_regexp``
        and files that do not exist are dropped.  Order is preserved and
        duplicates are not removed here.
        """
        root = self.config.org_directory
        if self.config.org.files:
            candidates = []
            for entry in self.config.org.files:
                p = Path(entry).expanduser()
                candidates.append(p if p.is_absolute() else root / p)
        else:
            inbox = self.config.inbox_for_pull.resolve()
            candidates = sorted(
                p
                for p in root.rglob("*.org")
                if p.is_file() and p.resolve() != inbox
            )

        exclude = self.config.org.files_exclude_regexp
        pattern = re.compile(exclude) if exclude else None
        result = []
        for path in candidates:
            if pattern and pattern.search(str(path)):
                logger.debug("Excluded by files_exclude_regexp: %s", path)
                continue
            if not path.is_file():
                logger.warning("Skipping missing canonical file: %s", path)
                continue
            result.append(path)
        return result

    def load(self, path: Path) -> OutlineDocument:
        """Return the cached document for *path*, parsing it on first use."""
        key = path.resolve()
        doc = self._documents.get(key)
        if doc is None:
            doc = parse_document(read_text(key), key, self.vocabulary)
            self._documents[key] = doc
            if self._id_index_built:
                self._index_document(doc)
        return doc

    def documents(self) -> list[OutlineDocument]:
        return list(self._documents.values())

    def sequences_for(self, doc: OutlineDocument) -> list[TodoSequence]:
        return doc.todo_sequences or self.vocabulary

    # ------------------------------------------------------------------
    # Identifier index
    # ------------------------------------------------------------------

    def _index_document(self, doc: OutlineDocument) -> None:
        for node in doc.nodes:
            if node.id:
                if node.id in self._id_index:
                    other = self._id_index[node.id][0]
                    if other != doc.path:
                        logger.warning(
                            "Duplicate ID %s in %s and %s",
                            node.id,
                            other,
                            doc.path,
                        )
                        continue
                self._id_index[node.id] = (doc.path, node)

    def build_id_index(self) -> None:
        """Index identifiers across every canonical document."""
        self._id_index.clear()
        for path in self.canonical_files():
            self.load(path)
        for doc in self._documents.values():
            self._index_document(doc)
        self._id_index_built = True
        logger.debug("Indexed %d identifiers", len(self._id_index))

    def find_by_id(self, identifier: str) -> tuple[OutlineDocument, Node]:
        """Resolve *identifier* through the identifier index.

        Raises:
            ResolutionError: kind ``unresolved-id`` if it is unknown or the
                node it named has since been removed.
        """
        if not self._id_index_built:
            self.build_id_index()
        hit = self._id_index.get(identifier)
        if hit is not None:
            doc = self._documents[hit[0]]
            node = hit[1]
            if doc.contains(node) and node.id == identifier:
                return doc, node
        raise ResolutionError(
            "unresolved-id", f"BAD REFERENCE: unresolved ID {identifier}"
        )

    def ensure_id(self, doc: OutlineDocument, node: Node) -> str:
        """Return *node*'s identifier, creating and indexing one if absent."""
        if node.id:
            return node.id
        identifier = str(uuid.uuid4()).upper()
        node.properties["ID"] = identifier
        doc.modified = True
        self._id_index[identifier] = (doc.path, node)
        return identifier

    # ------------------------------------------------------------------
    # Outline paths
    # ------------------------------------------------------------------

    def find_olp(
        self, path: Path, headings: list[str]
    ) -> tuple[OutlineDocument, Node]:
        """Walk *headings* level by level from the top of *path*.

        At each level exactly one child of the previous match must carry
        the heading text.

        Raises:
            ResolutionError: ``not-found`` for zero matches (or a missing
                file), ``not-unique`` for more than one.
        """
        if not path.is_file():
            raise ResolutionError(
                "not-found", f"File not found: {path}"
            )
        if not headings:
            raise ResolutionError(
                "not-found", f"Empty outline path in {path.name}"
            )
        doc = self.load(path)
        parent: Node | None = None
        for depth, heading in enumerate(headings, start=1):
            matches = [
                n for n in doc.children_of(parent) if n.title == heading
            ]
            if not matches:
                raise ResolutionError(
                    "not-found",
                    f"Heading not found on level {depth}: {heading}",
                )
            if len(matches) > 1:
                raise ResolutionError(
                    "not-unique",
                    f"Heading not unique on level {depth}: {heading}",
                )
            parent = matches[0]
        return doc, parent  # type: ignore[return-value]

    def link_name(self, path: Path) -> str:
        """Path of *path* relative to the canonical root, or its base name."""
        root = self.config.org_directory.resolve()
        resolved = path.resolve()
        if resolved.is_relative_to(root):
            return resolved.relative_to(root).as_posix()
        return resolved.name

    # ------------------------------------------------------------------
    # Entry-level edits
    # ------------------------------------------------------------------

    def stamp_change(self, doc: OutlineDocument, when: datetime | None = None) -> None:
        """Write or refresh the ``#+LAST_MOBILE_CHANGE:`` line of *doc*."""
        stamp = (when or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{CHANGE_STAMP_PREFIX} {stamp}\n"
        for i, existing in enumerate(doc.preamble):
            if existing.startswith(CHANGE_STAMP_PREFIX):
                doc.preamble[i] = line
                break
        else:
            doc.preamble.insert(0, line)
        doc.modified = True

    def set_todo(
        self, doc: OutlineDocument, node: Node, state: str | None
    ) -> None:
        """Set the TODO keyword; ``None`` or ``""`` removes it.

        Raises:
            ActionExecutionError: If *state* is not in the document's
                vocabulary.
        """
        if state:
            known = {kw for seq in self.sequences_for(doc) for kw in seq.keywords}
            if state not in known:
                raise ActionExecutionError(
                    f"Unknown TODO keyword '{state}' in {doc.path.name}"
                )
        node.todo = state or None
        doc.modified = True

    def done_keyword(self, doc: OutlineDocument, node: Node) -> str:
        """Return the done keyword of the sequence *node* is currently in."""
        sequences = self.sequences_for(doc)
        for seq in sequences:
            if node.todo in seq.keywords and seq.done:
                return seq.done[0]
        for seq in sequences:
            if seq.done:
                return seq.done[0]
        raise ActionExecutionError(
            f"No done keyword configured for {doc.path.name}"
        )

    def archive_path(self, doc: OutlineDocument) -> tuple[Path, str]:
        """Return the archive file and optional parent heading for *doc*."""
        location = self.config.org.archive_location
        file_part, _, heading = location.partition("::")
        if not file_part:
            target = doc.path
        else:
            target = Path(file_part.replace("%s", str(doc.path))).expanduser()
            if not target.is_absolute():
                target = doc.path.parent / target
        return target, heading.strip().lstrip("*").strip()

    def archive_subtree(self, doc: OutlineDocument, node: Node) -> Path:
        """Move *node*'s subtree into the archive location.

        Adds the ``ARCHIVE_*`` context properties Org records, then files
        the subtree at the end of the archive file (under the configured
        heading when one is given).

        Returns:
            The archive file path.
        """
        target_path, heading = self.archive_path(doc)
        if target_path.resolve() == doc.path and not heading:
            raise ActionExecutionError(
                "archive_location points at the source file without a heading"
            )

        olpath = "/".join(doc.outline_path(node)[:-1])
        archive_props = {
            "ARCHIVE_TIME": datetime.now().strftime(ARCHIVE_TIME_FORMAT),
            "ARCHIVE_FILE": str(doc.path),
        }
        if olpath:
            archive_props["ARCHIVE_OLPATH"] = olpath
        archive_props["ARCHIVE_CATEGORY"] = doc.path.stem
        if node.todo:
            archive_props["ARCHIVE_TODO"] = node.todo

        archive_doc = self._load_or_create(target_path)
        removed = doc.remove_subtree(node)

        parent: Node | None = None
        if heading:
            parent = next(
                (r for r in archive_doc.roots() if r.title == heading), None
            )
            if parent is None:
                parent = archive_doc.append_child(None, Node(level=1, title=heading))
        shift = (parent.level + 1 if parent else 1) - removed[0].level
        for moved in removed:
            moved.level += shift
        removed[0].properties.update(archive_props)
        position = (
            archive_doc.subtree_end(parent) if parent else len(archive_doc.nodes)
        )
        archive_doc.insert_subtree(position, removed)
        for moved in removed:
            if moved.id:
                self._id_index[moved.id] = (archive_doc.path, moved)
        logger.info("Archived '%s' to %s", removed[0].title, target_path)
        return target_path

    def _load_or_create(self, path: Path) -> OutlineDocument:
        key = path.resolve()
        if key in self._documents:
            return self._documents[key]
        if key.exists():
            return self.load(key)
        doc = OutlineDocument(
            path=key,
            preamble=["#    -*- mode: org -*-\n", "\n"],
            modified=True,
        )
        self._documents[key] = doc
        return doc

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, doc: OutlineDocument) -> None:
        atomic_write(doc.path, render_document(doc))
        doc.modified = False
        logger.debug("Saved %s", doc.path)

    def save_all(self) -> list[Path]:
        """Save every modified document; return the paths written."""
        written = []
        for doc in self._documents.values():
            if doc.modified:
                self.save(doc)
                written.append(doc.path)
        return written
