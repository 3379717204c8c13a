"""Keep the ``ElectronAsarIntegrity`` hash in Info.plist in step with app.asar.

Electron refuses to load an archive whose header hash differs from the one
recorded in the app's Info.plist, so every rebuild must be followed by
:meth:`PlistManifest.write_hash`.
"""

from __future__ import annotations

import hashlib
import logging
import subprocess
from pathlib import Path

from .archive import PRELUDE, read_prelude
from .errors import ManifestError

LOGGER = logging.getLogger(__name__)

PLIST_BUDDY = "/usr/libexec/PlistBuddy"
ASAR_HASH_KEY = "ElectronAsarIntegrity:Resources/app.asar:hash"


def header_digest(data: bytes) -> str:
    """SHA-256 hex digest of the header JSON declared by the prelude."""
    prelude = read_prelude(data)
    return hashlib.sha256(data[PRELUDE.size : prelude.header_end]).hexdigest()


class PlistManifest:
    """A single string field of a property list, accessed via PlistBuddy."""

    def __init__(
        self,
        path: Path | str,
        key_path: str = ASAR_HASH_KEY,
        tool: str = PLIST_BUDDY,
    ) -> None:
        self.path = Path(path)
        self.key_path = key_path
        self.tool = tool

    def read_hash(self) -> str:
        out = self._run(f"Print :{self.key_path}", "Could not read asar hash from Info.plist")
        return out.strip()

    def write_hash(self, digest: str) -> None:
        self._run(
            f"Set :{self.key_path} {digest}",
            "Could not update asar hash in Info.plist",
        )
        LOGGER.info("Info.plist %s set to %s", self.key_path, digest)

    def _run(self, command: str, failure: str) -> str:
        try:
            proc = subprocess.run(
                [self.tool, "-c", command, str(self.path)],
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as exc:
            raise ManifestError(f"{failure}: {self.tool} not found") from exc
        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout).strip()
            raise ManifestError(f"{failure}: {detail}")
        return proc.stdout
