"""Staging builder for the push phase.

Produces the self-contained mirror the mobile client downloads:

1. Byte-for-byte copies of every canonical document, named by link name.
2. ``index.org`` advertising the TODO, tag, drawer and priority
   vocabularies plus one link per document.
3. ``agendas.org`` flattening the exportable saved-search views.
4. An (empty if new) capture file.
5. The checksum manifest covering all of the above.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from orgmobile_sync.config import Config
from orgmobile_sync.file_handler import atomic_write, copy_file, write_file
from orgmobile_sync.outline.model import Node, OutlineDocument, TodoSequence
from orgmobile_sync.outline.parser import format_heading, format_property_drawer
from orgmobile_sync.outline.store import DocumentStore
from orgmobile_sync.views import ViewEngine, ViewRow, ViewSection, select_views

from .manifest import ChecksumManifest
from .models import ManifestEntry

logger = logging.getLogger(__name__)

READONLY = "#+READONLY\n"
SNIPPET_INDENT = "   "


@dataclass
class StagedDocument:
    """A canonical document selected for export."""

    link_name: str
    document: OutlineDocument


@dataclass
class StagingResult:
    entries: list[ManifestEntry]
    created_ids: int
    sections: list[str]


class StagingBuilder:
    """Build the staging mirror from the canonical store.

    Args:
        config: Resolved runtime configuration.
        store: Document store the canonical documents are loaded from.
        manifest: Manifest the staged digests are written to.
    """

    def __init__(
        self,
        config: Config,
        store: DocumentStore,
        manifest: ChecksumManifest,
    ) -> None:
        self.config = config
        self.store = store
        self.manifest = manifest
        self.views = ViewEngine(store)
        self._created_ids = 0

    # ------------------------------------------------------------------
    # Document selection
    # ------------------------------------------------------------------

    def collect(self) -> list[StagedDocument]:
        """Return the canonical documents to export, deduplicated.

        Documents are deduplicated by resolved path; a later document whose
        link name is already taken is skipped (first occurrence wins).
        """
        seen_paths: set[Path] = set()
        seen_names: set[str] = set()
        staged = []
        for path in self.store.canonical_files():
            real = path.resolve()
            if real in seen_paths:
                continue
            seen_paths.add(real)
            name = self.store.link_name(real)
            if name in seen_names:
                logger.warning(
                    "Link name %s already exported, skipping %s", name, real
                )
                continue
            seen_names.add(name)
            staged.append(StagedDocument(name, self.store.load(real)))
        return staged

    def _ensure_id(self, doc: OutlineDocument, node: Node) -> str:
        if not node.id:
            self._created_ids += 1
        return self.store.ensure_id(doc, node)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self) -> StagingResult:
        """Write the mirror and the manifest.

        The caller has already run ``check_setup()``; nothing here is
        attempted against a missing directory.
        """
        self._created_ids = 0
        staged = self.collect()
        documents = [s.document for s in staged]
        self.store.build_id_index()

        definitions = select_views(
            self.config.mobile.views, self.config.mobile.agendas
        )
        sections = self.views.run(definitions, documents)
        agenda_text = self.render_agendas(sections)

        if self.config.mobile.force_id_on_agenda_items:
            for doc in documents:
                for node in doc.nodes:
                    self._ensure_id(doc, node)

        saved = self.store.save_all()
        if saved:
            logger.info("Saved %d canonical documents before copying", len(saved))

        mobile_dir = self.config.mobile_directory
        entries: list[ManifestEntry] = []
        for item in staged:
            target = mobile_dir / item.link_name
            copy_file(item.document.path, target)
            entries.append(
                ManifestEntry(
                    name=item.link_name,
                    digest=self.manifest.digest_file(target),
                )
            )
            logger.debug("Staged %s", item.link_name)

        agenda_path = self.config.agenda_path
        atomic_write(agenda_path, agenda_text)
        entries.append(
            ManifestEntry(
                name=self.config.mobile.agenda_file,
                digest=self.manifest.digest_file(agenda_path),
            )
        )

        capture = self.config.capture_path
        if not capture.exists():
            write_file(capture, "")
            logger.info("Created empty capture file %s", capture)
        entries.append(
            ManifestEntry(
                name=self.config.mobile.capture_file,
                digest=self.manifest.digest_file(capture),
            )
        )

        index_text = self.render_index(staged)
        atomic_write(self.config.index_path, index_text)
        entries.insert(
            0,
            ManifestEntry(
                name=self.config.mobile.index_file,
                digest=self.manifest.digest_text(index_text),
            ),
        )

        self.manifest.write_all(entries)
        return StagingResult(
            entries=entries,
            created_ids=self._created_ids,
            sections=[s.key for s in sections],
        )

    # ------------------------------------------------------------------
    # Index document
    # ------------------------------------------------------------------

    def todo_sequences(self, staged: list[StagedDocument]) -> list[TodoSequence]:
        """Configured sequences followed by file-declared ones, deduplicated."""
        result: list[TodoSequence] = []
        seen: set[tuple[str, ...]] = set()
        candidates = list(self.store.vocabulary)
        for item in staged:
            candidates.extend(item.document.todo_sequences)
        for seq in candidates:
            key = tuple(seq.tokens())
            if key not in seen:
                seen.add(key)
                result.append(seq)
        return result

    def tag_tokens(self, staged: list[StagedDocument]) -> list[str]:
        """Tag groups first, then observed tags sorted case-insensitively."""
        groups = list(self.config.org.tag_groups)
        known = set(groups)
        observed: dict[str, None] = {}
        for item in staged:
            for node in item.document.nodes:
                for tag in node.tags:
                    if tag not in known:
                        observed[tag] = None
        return groups + sorted(observed, key=str.lower)

    def render_index(self, staged: list[StagedDocument]) -> str:
        lines = [READONLY]
        for seq in self.todo_sequences(staged):
            lines.append("#+TODO: " + " ".join(seq.tokens()) + "\n")
        lines.append("#+TAGS: " + " ".join(self.tag_tokens(staged)) + "\n")
        drawers = list(self.config.org.drawers)
        if "PROPERTIES" not in drawers:
            drawers.insert(0, "PROPERTIES")
        lines.append("#+DRAWERS: " + " ".join(drawers) + "\n")
        lines.append(f"#+ALLPRIORITIES: {self.config.mobile.all_priorities}\n")
        if self.config.agenda_path.exists():
            lines.append(
                f"* [[file:{self.config.mobile.agenda_file}][Agenda Views]]\n"
            )
        for item in sorted(staged, key=lambda s: s.link_name):
            lines.append(f"* [[file:{item.link_name}][{item.link_name}]]\n")
        return "".join(lines)

    # ------------------------------------------------------------------
    # Aggregated view document
    # ------------------------------------------------------------------

    def render_agendas(self, sections: list[ViewSection]) -> str:
        out = [READONLY]
        for section in sections:
            out.append(f"* {section.title}{section.annotation}\n")
            for row in section.rows:
                out.append(self.render_row(row))
        return "".join(out)

    def render_row(self, row: ViewRow) -> str:
        """Render one result row with its prefix, snippet and identifier."""
        node = row.node
        title = node.title
        if row.prefix:
            title = f"{title}<before>{row.prefix}</before>"
        heading = format_heading(
            Node(
                level=2,
                title=title,
                todo=node.todo,
                priority=node.priority,
                tags=list(node.tags),
            )
        )
        lines = [heading + "\n"]
        lines.extend(self.snippet(node))

        if self.config.mobile.force_id_on_agenda_items:
            original = self._ensure_id(row.document, node)
        else:
            original = node.id or self.olp_link(row.document, node)
        lines.extend(
            SNIPPET_INDENT + line
            for line in format_property_drawer({"ORIGINAL_ID": original})
        )
        return "".join(lines)

    def snippet(self, node: Node) -> list[str]:
        limit = self.config.mobile.body_snippet_lines
        body = [ln.rstrip() for ln in node.body.splitlines()]
        while body and not body[0]:
            body.pop(0)
        while body and not body[-1]:
            body.pop()
        return [SNIPPET_INDENT + ln.strip() + "\n" for ln in body[:limit]]

    def olp_link(self, doc: OutlineDocument, node: Node) -> str:
        path = "/".join(
            title.replace("/", "%2F") for title in doc.outline_path(node)
        )
        return f"olp:{self.store.link_name(doc.path)}:{path}"
