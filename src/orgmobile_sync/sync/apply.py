"""Apply engine (second stage of a pull).

Runs every parsed change request independently against the canonical
store.  A request ends in exactly one of two states:

* **consumed** -- the handler succeeded; the entry is deleted from the
  inbox text.
* **retained-with-error** -- resolution, lookup or execution failed; the
  target document is rolled back to its state before the handler ran, an
  inline message is inserted after the entry's stars (replacing one left
  by an earlier pass), and the error is counted.  The entry still parses as
  a flag entry, so a later pass retries it.

Inbox edits are collected while the requests run and applied back-to-front
afterwards, so the offsets recorded by the parser stay valid throughout.
"""

from __future__ import annotations

import logging
from pathlib import Path

from orgmobile_sync.config import Config
from orgmobile_sync.errors import ActionExecutionError, RequestError
from orgmobile_sync.outline.model import Node, OutlineDocument
from orgmobile_sync.outline.store import DocumentStore

from .actions import ActionContext, ActionRegistry
from .models import (
    ApplyReport,
    ChangeRequest,
    RequestOutcome,
    RequestState,
    SyncCounters,
)
from .parser import ChangeRequestParser

logger = logging.getLogger(__name__)

EXECUTION_FAILED = "EXECUTION FAILED"


class ApplyEngine:
    """Resolve, execute and consume the change requests of an inbox region.

    Args:
        config: Resolved runtime configuration.
        store: Canonical document store.
        registry: Action table; built from ``config`` when omitted.
    """

    def __init__(
        self,
        config: Config,
        store: DocumentStore,
        registry: ActionRegistry | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.registry = registry or ActionRegistry.from_config(config)
        self.parser = ChangeRequestParser(store)

    def apply(
        self, text: str, start: int = 0, end: int | None = None
    ) -> tuple[str, ApplyReport]:
        """Apply the requests found in ``text[start:end]``.

        Returns:
            The rewritten inbox text and the pass report.  Modified
            canonical documents have been saved.
        """
        end = len(text) if end is None else end
        parsed = self.parser.parse(text, start, end)
        counters = SyncCounters(new=parsed.captures)
        outcomes: list[RequestOutcome] = []
        flagged: list[Path] = []
        # (offset, end, replacement) splices on the inbox text
        splices: list[tuple[int, int, str]] = []

        for request in parsed.requests:
            try:
                kind = self._execute(request)
            except RequestError as exc:
                message = str(exc) or EXECUTION_FAILED
                self._retain(request, message, splices, outcomes)
                counters.errors += 1
                continue
            except Exception as exc:  # noqa: BLE001 - custom handlers
                logger.exception("Handler for %s raised", request.link)
                message = f"{EXECUTION_FAILED}: {exc}" if str(exc) else EXECUTION_FAILED
                self._retain(request, message, splices, outcomes)
                counters.errors += 1
                continue

            splices.append((request.start, request.end, ""))
            outcomes.append(
                RequestOutcome(
                    action=request.action,
                    payload=request.payload,
                    link=request.link,
                    state=RequestState.CONSUMED,
                )
            )
            if kind == "edit":
                counters.edits += 1
            elif kind == "flag":
                counters.flags += 1
            else:
                counters.other += 1

            owner = self._flagged_owner(request)
            if owner is not None and owner.path not in flagged:
                flagged.append(owner.path)

        for offset, stop, replacement in sorted(splices, reverse=True):
            text = text[:offset] + replacement + text[stop:]

        modified = self.store.save_all()
        report = ApplyReport(
            counters=counters,
            outcomes=outcomes,
            flagged_files=flagged,
            modified_files=modified,
        )
        logger.info(
            "Applied %d requests: %d edits, %d flags, %d errors",
            len(outcomes),
            counters.edits,
            counters.flags,
            counters.errors,
        )
        return text, report

    # ------------------------------------------------------------------
    # Per-request execution
    # ------------------------------------------------------------------

    def _execute(self, request: ChangeRequest) -> str:
        """Run one request as a unit and return its counter kind.

        Raises:
            RequestError: On resolution, lookup or handler failure.  The
                target document has been restored.
        """
        if request.error is not None:
            raise request.error
        if request.target is None:
            raise ActionExecutionError(f"No target for {request.link}")
        action = self.registry.get(request.action)
        doc = request.target.document
        snap = doc.snapshot()
        context = ActionContext(
            store=self.store,
            config=self.config,
            request=request,
            target=request.target,
        )
        try:
            action.handler(context)
        except BaseException:
            doc.restore(snap)
            raise
        return action.kind

    def _retain(
        self,
        request: ChangeRequest,
        message: str,
        splices: list[tuple[int, int, str]],
        outcomes: list[RequestOutcome],
    ) -> None:
        logger.warning("Request %s retained: %s", request.link, message)
        # replaces the message left by an earlier pass, if any
        stop = request.heading_end + len(request.annotation)
        splices.append((request.heading_end, stop, message + " "))
        outcomes.append(
            RequestOutcome(
                action=request.action,
                payload=request.payload,
                link=request.link,
                state=RequestState.RETAINED,
                error=message,
            )
        )

    def _flagged_owner(self, request: ChangeRequest) -> OutlineDocument | None:
        """Document that holds the target if it still carries the flag."""
        node: Node | None = request.target.node if request.target else None
        if node is None or not node.is_flagged():
            return None
        doc = request.target.document  # type: ignore[union-attr]
        if doc.contains(node):
            return doc
        for other in self.store.documents():
            if other.contains(node):
                return other
        return None
