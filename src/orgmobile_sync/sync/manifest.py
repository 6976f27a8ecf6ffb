"""Checksum manifest of the staging area.

The manifest is a plain text file with one ``<hex-digest>  <name>`` record
per staged file.  The mobile client compares it against its previous copy
to decide which files to download.  Digests are change-detection hints
only.

Two write modes exist:

* ``write_all()`` -- serialise every record (push).
* ``update_entry()`` -- replace the digest of one record in place (pull,
  after the capture file has been emptied).
"""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path

from orgmobile_sync.file_handler import atomic_write, read_text

from .models import ManifestEntry

logger = logging.getLogger(__name__)

_RECORD_RE = re.compile(r"^([0-9a-fA-F]+)\s+(.+?)[ \t]*$")


class ChecksumManifest:
    """Read and write the staging checksum file.

    Args:
        path: Location of the checksum file.
        algorithm: ``hashlib`` algorithm name (``md5``, ``sha1``, ``sha256``).
    """

    def __init__(self, path: Path, algorithm: str = "sha1") -> None:
        self.path = path
        self.algorithm = algorithm

    # ------------------------------------------------------------------
    # Digests
    # ------------------------------------------------------------------

    def digest_bytes(self, data: bytes) -> str:
        return hashlib.new(self.algorithm, data).hexdigest()

    def digest_text(self, text: str) -> str:
        return self.digest_bytes(text.encode("utf-8"))

    def digest_file(self, path: Path) -> str:
        return self.digest_bytes(path.read_bytes())

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def read(self) -> list[ManifestEntry]:
        """Parse the manifest; a missing file yields no records."""
        entries = []
        for line in read_text(self.path).splitlines():
            m = _RECORD_RE.match(line)
            if m:
                entries.append(ManifestEntry(digest=m.group(1), name=m.group(2)))
        return entries

    def write_all(self, entries: list[ManifestEntry]) -> None:
        """Atomically replace the manifest with *entries*, in order."""
        content = "".join(f"{e.digest}  {e.name}\n" for e in entries)
        atomic_write(self.path, content)
        logger.debug("Wrote %d manifest records to %s", len(entries), self.path)

    def update_entry(self, name: str, digest: str) -> bool:
        """Replace the digest recorded for *name*, leaving other lines alone.

        Returns:
            ``True`` if a record was found and rewritten.  A missing record
            is not added; the next push rebuilds the manifest.
        """
        text = read_text(self.path)
        pattern = re.compile(
            r"^([0-9a-fA-F]{30,})([ \t]+" + re.escape(name) + r"[ \t]*)$",
            re.MULTILINE,
        )
        m = pattern.search(text)
        if m is None:
            logger.warning("No manifest record for %s in %s", name, self.path)
            return False
        updated = text[: m.start(1)] + digest + text[m.end(1) :]
        atomic_write(self.path, updated)
        logger.debug("Updated manifest record for %s", name)
        return True
