from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .backup import BackupSet
from .errors import NotFoundError

LOGGER = logging.getLogger(__name__)

DEFAULT_APP_PATH = Path("/Applications/Codex.app")
BACKUP_SUFFIX = ".bak-darcula"


def ensure_exists(path: Path, description: str) -> None:
    if not path.exists():
        raise NotFoundError(f"{description} not found: {path}")


@dataclass(frozen=True)
class AppBundle:
    """Paths inside a macOS ``.app`` bundle that the patcher touches."""

    app_path: Path

    @property
    def resources_dir(self) -> Path:
        return self.app_path / "Contents" / "Resources"

    @property
    def info_plist(self) -> Path:
        return self.app_path / "Contents" / "Info.plist"

    @property
    def asar_path(self) -> Path:
        return self.resources_dir / "app.asar"

    @property
    def asar_backup(self) -> Path:
        return self.resources_dir / f"app.asar{BACKUP_SUFFIX}"

    @property
    def info_plist_backup(self) -> Path:
        return self.resources_dir / f"Info.plist{BACKUP_SUFFIX}"

    @property
    def meta_path(self) -> Path:
        return self.resources_dir / "app.asar.darcula-meta.json"

    @property
    def temp_path(self) -> Path:
        return self.resources_dir / "app.asar.tmp-darcula"

    def backup_set(self) -> BackupSet:
        return BackupSet(
            archive_path=self.asar_path,
            manifest_path=self.info_plist,
            archive_backup=self.asar_backup,
            manifest_backup=self.info_plist_backup,
            temp_path=self.temp_path,
        )


def try_codesign(app_path: Path) -> bool:
    """Ad-hoc re-sign *app_path*.  Failure is logged, never raised."""
    cmd = ["codesign", "--force", "--deep", "--sign", "-", str(app_path)]
    try:
        proc = subprocess.run(cmd)
    except FileNotFoundError:
        LOGGER.warning("codesign not found; the app was not re-signed.")
        return False
    if proc.returncode != 0:
        LOGGER.warning(
            "codesign failed; app may still run, but macOS can reject it in some cases."
        )
        return False
    LOGGER.info("codesign completed.")
    return True
