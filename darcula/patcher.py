from __future__ import annotations

import enum
import json
import logging
from datetime import datetime, timezone

from .archive import AsarArchive
from .backup import atomic_write
from .bundle import AppBundle, ensure_exists, try_codesign
from .config import Settings
from .errors import FormatError, NotFoundError
from .integrity import PlistManifest, header_digest
from .patch import apply_patch, default_anchors, is_already_patched
from .status import StatusReport
from .theme import PATCH_MARKER

LOGGER = logging.getLogger(__name__)


class PatchOutcome(enum.Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already-applied"
    HASH_FIXED = "hash-fixed"


class ThemePatcher:
    """Runs ``status``, ``patch`` and ``restore`` against one app bundle."""

    def __init__(
        self,
        bundle: AppBundle,
        settings: Settings | None = None,
        manifest: PlistManifest | None = None,
    ) -> None:
        self.bundle = bundle
        self.settings = settings if settings is not None else Settings(app=bundle.app_path)
        self.manifest = manifest if manifest is not None else PlistManifest(bundle.info_plist)
        self.backups = bundle.backup_set()
        self.anchors = default_anchors(self.settings.css)

    # ------------------------------------------------------------------ #
    #  Commands                                                            #
    # ------------------------------------------------------------------ #

    def status(self) -> StatusReport:
        self._require_bundle()
        data = self.bundle.asar_path.read_bytes()
        _, source = self._load(data)
        return StatusReport(
            app=str(self.bundle.app_path),
            asar=str(self.bundle.asar_path),
            backup=self.backups.has_archive_backup,
            plist_backup=self.backups.has_manifest_backup,
            patched=is_already_patched(source),
            asar_header_sha256=header_digest(data),
            plist_sha256=self.manifest.read_hash(),
        )

    def patch(self) -> PatchOutcome:
        """Inject the theme into app.asar and re-sync Info.plist.

        Nothing on disk changes unless the patch succeeds in memory first;
        the new archive is published with a single atomic rename.
        """
        self._require_bundle()
        original = self.bundle.asar_path.read_bytes()
        original_hash = header_digest(original)
        original_plist_hash = self.manifest.read_hash()
        archive, source = self._load(original)
        result = apply_patch(source, self.anchors)

        if result.already_patched:
            if original_plist_hash == original_hash:
                LOGGER.info("Darcula patch is already applied.")
                return PatchOutcome.ALREADY_APPLIED
            self.backups.ensure_backup(original)
            self.manifest.write_hash(original_hash)
            LOGGER.info("Darcula patch already present; Info.plist hash fixed.")
            self._codesign()
            return PatchOutcome.HASH_FIXED

        self.backups.ensure_backup(original)
        archive.replace(self.settings.target, result.text.encode("utf-8"))
        rebuilt = archive.to_bytes()
        rebuilt_hash = header_digest(rebuilt)

        atomic_write(self.bundle.asar_path, rebuilt, self.bundle.temp_path)
        self.manifest.write_hash(rebuilt_hash)
        self._write_meta(
            oldPlistSha256=original_plist_hash,
            oldSha256=original_hash,
            newPlistSha256=rebuilt_hash,
            newSha256=rebuilt_hash,
        )
        LOGGER.info("Darcula patch applied: %s -> %s", original_hash, rebuilt_hash)
        self._codesign()
        return PatchOutcome.APPLIED

    def restore(self) -> None:
        ensure_exists(self.bundle.info_plist, "Info.plist")
        self.backups.restore()
        LOGGER.info("Original app.asar restored from backup.")
        self._codesign()

    # ------------------------------------------------------------------ #
    #  Private helpers                                                     #
    # ------------------------------------------------------------------ #

    def _require_bundle(self) -> None:
        ensure_exists(self.bundle.info_plist, "Info.plist")
        ensure_exists(self.bundle.asar_path, "app.asar")

    def _load(self, data: bytes) -> tuple[AsarArchive, str]:
        archive = AsarArchive.from_bytes(data, self.bundle.asar_path)
        target = self.settings.target
        if target not in archive.entries:
            raise NotFoundError(f"Target bundle not found: {target}")
        try:
            source = archive.read(target).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FormatError(f"Target bundle {target} is not valid UTF-8: {exc}") from exc
        return archive, source

    def _write_meta(self, **hashes: str) -> None:
        payload = {
            "patchedAt": datetime.now(timezone.utc).isoformat(),
            "backupPath": str(self.bundle.asar_backup),
            "infoPlistBackupPath": str(self.bundle.info_plist_backup),
            "targetBundlePath": self.settings.target,
            "marker": PATCH_MARKER,
            **hashes,
        }
        self.bundle.meta_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def _codesign(self) -> None:
        if self.settings.codesign:
            try_codesign(self.bundle.app_path)
