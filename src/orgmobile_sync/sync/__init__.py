"""MobileOrg store-and-forward synchronisation.

Push exports the canonical documents to a staging directory; pull ingests
the captures and change requests the mobile client left there and applies
them with per-field compare-and-swap semantics.

Modules:

- ``engine``   -- ``MobileSync``: push / pull / apply / status phases.
- ``staging``  -- ``StagingBuilder``: mirror, index and agenda documents.
- ``manifest`` -- ``ChecksumManifest``: ``<digest>  <name>`` records.
- ``parser``   -- ``ChangeRequestParser``: flag entries and targets.
- ``actions``  -- ``ActionRegistry`` and the flag / edit handlers.
- ``apply``    -- ``ApplyEngine``: per-request execution and inbox edits.
- ``models``   -- data contracts.
- ``reporter`` -- human-readable and JSON report formatting.

Usage example
-------------
::

    from orgmobile_sync.config import load_config
    from orgmobile_sync.sync import MobileSync, format_tally

    sync = MobileSync(load_config())
    sync.push()
    report = sync.pull()
    print(format_tally(report.apply.counters))
"""

from .actions import ActionRegistry
from .apply import ApplyEngine
from .engine import MobileSync
from .manifest import ChecksumManifest
from .models import (
    ApplyReport,
    ChangeRequest,
    PullReport,
    PushReport,
    StatusReport,
    SyncCounters,
)
from .parser import ChangeRequestParser
from .reporter import (
    format_apply_report,
    format_pull_report,
    format_push_report,
    format_status,
    format_tally,
    report_to_json,
)
from .staging import StagingBuilder

__all__ = [
    "ActionRegistry",
    "ApplyEngine",
    "ApplyReport",
    "ChangeRequest",
    "ChangeRequestParser",
    "ChecksumManifest",
    "MobileSync",
    "PullReport",
    "PushReport",
    "StagingBuilder",
    "StatusReport",
    "SyncCounters",
    "format_apply_report",
    "format_pull_report",
    "format_push_report",
    "format_status",
    "format_tally",
    "report_to_json",
]
