"""Phase orchestration for MobileOrg synchronisation.

``MobileSync`` exposes the externally invoked entry points:

- ``push()``   -- check setup, run hooks, build the staging mirror.
- ``pull()``   -- move new captures into the inbox, apply them, and
  collect the flagged entries for review.
- ``apply()``  -- apply the requests in an explicit inbox range (manual
  reprocessing after fixing retained entries).
- ``status()`` -- read-only report of the staging area and inbox.

Setup and hook failures propagate; everything per request is handled by
the apply engine.  Each phase works on a freshly loaded document store so
edits made outside the process between phases are picked up.
"""

from __future__ import annotations

import logging
import subprocess
from datetime import datetime, timezone

from orgmobile_sync.config import Config, check_setup
from orgmobile_sync.errors import HookError
from orgmobile_sync.file_handler import atomic_write, read_text, write_file
from orgmobile_sync.outline.store import DocumentStore
from orgmobile_sync.views import ViewEngine

from .actions import NOTE_PROPERTY, ActionRegistry
from .apply import ApplyEngine
from .manifest import ChecksumManifest
from .models import (
    ApplyReport,
    FlaggedEntry,
    PullReport,
    PushReport,
    StatusReport,
    SyncCounters,
)
from .parser import FLAG_RE, count_captures
from .staging import StagingBuilder

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MobileSync:
    """Run push, pull and apply phases for one configuration.

    Args:
        config: Resolved runtime configuration.
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.manifest = ChecksumManifest(
            config.checksum_path, config.mobile.checksum_algorithm
        )
        self.registry = ActionRegistry.from_config(config)

    def _store(self) -> DocumentStore:
        return DocumentStore(self.config)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def run_hooks(self, hook: str) -> None:
        """Run the shell commands configured for *hook*, in order.

        Raises:
            HookError: On the first command exiting non-zero.
        """
        for command in getattr(self.config.hooks, hook):
            logger.info("Running %s hook: %s", hook, command)
            result = subprocess.run(
                command,
                shell=True,
                cwd=str(self.config.org_directory),
                capture_output=True,
                text=True,
            )
            if result.stdout.strip():
                logger.debug("%s output: %s", hook, result.stdout.strip())
            if result.returncode != 0:
                logger.error(
                    "%s hook failed: %s", hook, result.stderr.strip()
                )
                raise HookError(hook, command, result.returncode)

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def push(self) -> PushReport:
        """Export the canonical documents to the staging directory.

        Raises:
            SetupError: If a location is unusable; nothing is written.
        """
        started_at = _now()
        check_setup(self.config)
        self.run_hooks("pre_push")

        builder = StagingBuilder(self.config, self._store(), self.manifest)
        result = builder.build()

        self.run_hooks("post_push")
        logger.info(
            "Pushed %d files to %s", len(result.entries), self.config.mobile_directory
        )
        return PushReport(
            staged=result.entries,
            created_ids=result.created_ids,
            sections=result.sections,
            started_at=started_at,
            completed_at=_now(),
        )

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def move_captures(self) -> tuple[int, int]:
        """Append the capture file to the inbox and empty it.

        Returns:
            ``(offset, length)`` of the appended region in the inbox.
        """
        capture_path = self.config.capture_path
        inbox_path = self.config.inbox_for_pull
        captured = read_text(capture_path)
        inbox = read_text(inbox_path)
        if inbox and not inbox.endswith("\n"):
            inbox += "\n"
        offset = len(inbox)
        length = 0

        if captured.strip():
            if not captured.endswith("\n"):
                captured += "\n"
            length = len(captured)
            atomic_write(inbox_path, inbox + captured)
            logger.info(
                "Moved %d characters from %s to %s",
                length,
                capture_path.name,
                inbox_path,
            )
        if captured:
            write_file(capture_path, "")
            self.manifest.update_entry(
                self.config.mobile.capture_file, self.manifest.digest_text("")
            )
        return offset, length

    def pull(self) -> PullReport:
        """Ingest new captures and apply the change requests among them.

        Raises:
            SetupError: If a location is unusable or a hook fails.
        """
        started_at = _now()
        check_setup(self.config)
        self.run_hooks("pre_pull")

        offset, length = self.move_captures()
        self.run_hooks("before_process_capture")

        store = self._store()
        if length:
            report = self._apply_inbox(store, offset, None)
        else:
            report = ApplyReport(counters=SyncCounters())

        self.run_hooks("post_pull")
        review = (
            self.review(store, report) if self.config.mobile.review_flagged else []
        )
        return PullReport(
            captured_bytes=length,
            apply=report,
            review=review,
            started_at=started_at,
            completed_at=_now(),
        )

    def review(self, store: DocumentStore, report: ApplyReport) -> list[FlaggedEntry]:
        """Entries carrying the review flag in the flagged documents."""
        documents = [store.load(path) for path in report.flagged_files]
        entries = []
        for row in ViewEngine(store).flagged(documents):
            note = row.node.properties.get(NOTE_PROPERTY)
            entries.append(
                FlaggedEntry(
                    file=store.link_name(row.document.path),
                    heading=row.node.title,
                    note=note.replace("\\n", "\n") if note else None,
                )
            )
        return entries

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(self, start: int = 0, end: int | None = None) -> ApplyReport:
        """Apply the requests in ``inbox[start:end]``.

        Raises:
            SetupError: If a location is unusable.
        """
        check_setup(self.config)
        return self._apply_inbox(self._store(), start, end)

    def _apply_inbox(
        self, store: DocumentStore, start: int, end: int | None
    ) -> ApplyReport:
        inbox_path = self.config.inbox_for_pull
        text = read_text(inbox_path)
        start = max(0, min(start, len(text)))
        if end is not None:
            end = max(start, min(end, len(text)))
        engine = ApplyEngine(self.config, store, self.registry)
        updated, report = engine.apply(text, start, end)
        if updated != text:
            atomic_write(inbox_path, updated)
        return report

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> StatusReport:
        """Describe the staging area and inbox without changing anything."""
        capture = self.config.capture_path
        inbox = read_text(self.config.inbox_for_pull)
        return StatusReport(
            org_directory=str(self.config.org_directory),
            mobile_directory=str(self.config.mobile_directory),
            inbox=str(self.config.inbox_for_pull),
            manifest=self.manifest.read(),
            capture_bytes=capture.stat().st_size if capture.is_file() else 0,
            pending_requests=len(FLAG_RE.findall(inbox)),
            pending_captures=count_captures(inbox),
        )
