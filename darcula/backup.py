from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from .errors import NotFoundError

LOGGER = logging.getLogger(__name__)


def atomic_write(path: Path, data: bytes, temp_path: Path | None = None) -> None:
    """Write *data* to *temp_path* and rename it over *path*.

    Readers of *path* see either the old or the new content, never a mix.
    """
    tmp = temp_path if temp_path is not None else path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_bytes(data)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    tmp.replace(path)


@dataclass(frozen=True)
class BackupSet:
    """The pristine app.asar and Info.plist, saved before the first patch."""

    archive_path: Path
    manifest_path: Path
    archive_backup: Path
    manifest_backup: Path
    temp_path: Path

    @property
    def has_archive_backup(self) -> bool:
        return self.archive_backup.exists()

    @property
    def has_manifest_backup(self) -> bool:
        return self.manifest_backup.exists()

    def ensure_backup(self, archive_data: bytes | None = None) -> bool:
        """Snapshot the archive and manifest unless a snapshot already exists.

        Args:
            archive_data: Current archive bytes, if already read; otherwise the
                          live archive is read from disk.

        Returns:
            ``True`` if either backup was created by this call.
        """
        created = False
        if not self.has_archive_backup:
            if archive_data is None:
                archive_data = self.archive_path.read_bytes()
            self.archive_backup.write_bytes(archive_data)
            LOGGER.info("Backup created: %s", self.archive_backup)
            created = True
        else:
            LOGGER.info("Backup exists: %s", self.archive_backup)

        if not self.has_manifest_backup:
            shutil.copyfile(self.manifest_path, self.manifest_backup)
            LOGGER.info("Backup created: %s", self.manifest_backup)
            created = True
        else:
            LOGGER.info("Backup exists: %s", self.manifest_backup)
        return created

    def restore(self) -> None:
        """Put the backed-up archive and manifest back in place.

        The backups are left intact, so restoring twice is harmless.

        Raises:
            NotFoundError: If no archive backup exists.
        """
        if not self.has_archive_backup:
            raise NotFoundError(f"Darcula backup not found: {self.archive_backup}")
        atomic_write(self.archive_path, self.archive_backup.read_bytes(), self.temp_path)

        if self.has_manifest_backup:
            shutil.copyfile(self.manifest_backup, self.manifest_path)
        else:
            LOGGER.warning(
                "Info.plist backup not found (%s), keeping current Info.plist.",
                self.manifest_backup,
            )
