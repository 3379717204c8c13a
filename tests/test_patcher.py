"""End-to-end tests for status / patch / restore against a fake Codex.app."""

import json

import pytest

from darcula.archive import AsarArchive
from darcula.bundle import AppBundle
from darcula.config import Settings
from darcula.errors import AnchorNotFoundError, FormatError, ManifestError, NotFoundError
from darcula.integrity import PlistManifest, header_digest
from darcula.patch import HELPER_CALL, TARGET_BUNDLE_PATH, THEME_SOURCE_ANCHOR
from darcula.patcher import PatchOutcome, ThemePatcher
from darcula.theme import PATCH_MARKER
from helpers import BUNDLE_SOURCE, make_app, read_plist_hash, write_plist_hash


def patcher_for(app, **settings):
    return ThemePatcher(AppBundle(app), Settings(app=app, **settings))


def test_status_unpatched(app, tools):
    report = patcher_for(app).status()
    assert report.app == str(app)
    assert not report.patched
    assert not report.backup
    assert not report.plist_backup
    assert report.integrity_match


def test_fresh_patch(app, tools):
    bundle = AppBundle(app)
    original_asar = bundle.asar_path.read_bytes()
    original_plist = bundle.info_plist.read_bytes()
    patcher = patcher_for(app)

    assert patcher.patch() is PatchOutcome.APPLIED

    live = bundle.asar_path.read_bytes()
    source = AsarArchive.from_bytes(live).read(TARGET_BUNDLE_PATH).decode()
    assert source.count(PATCH_MARKER) == 1
    assert HELPER_CALL + ",!U.app.isPackaged" in source
    assert read_plist_hash(bundle.info_plist) == header_digest(live)

    report = patcher.status()
    assert report.patched
    assert report.integrity_match
    assert report.backup and report.plist_backup

    assert bundle.asar_backup.read_bytes() == original_asar
    assert bundle.info_plist_backup.read_bytes() == original_plist
    assert not bundle.temp_path.exists()
    assert len(tools.codesign_calls) == 1
    assert tools.codesign_calls[0][-1] == str(app)


def test_patch_keeps_other_entries(app, tools):
    bundle = AppBundle(app)
    before = AsarArchive.open(bundle.asar_path)
    patcher_for(app).patch()
    after = AsarArchive.open(bundle.asar_path)

    assert before.list_files() == after.list_files()
    for path, content in before.entries.items():
        if path != TARGET_BUNDLE_PATH:
            assert after.read(path) == content


def test_patch_writes_meta(app, tools):
    bundle = AppBundle(app)
    old_hash = header_digest(bundle.asar_path.read_bytes())
    patcher_for(app).patch()

    meta = json.loads(bundle.meta_path.read_text())
    assert meta["marker"] == PATCH_MARKER
    assert meta["targetBundlePath"] == TARGET_BUNDLE_PATH
    assert meta["oldSha256"] == old_hash
    assert meta["newSha256"] == header_digest(bundle.asar_path.read_bytes())
    assert meta["backupPath"] == str(bundle.asar_backup)


def test_already_patched(app, tools):
    bundle = AppBundle(app)
    patcher = patcher_for(app)
    patcher.patch()
    patched = bundle.asar_path.read_bytes()
    backup = bundle.asar_backup.read_bytes()
    backup_mtime = bundle.asar_backup.stat().st_mtime_ns

    assert patcher.patch() is PatchOutcome.ALREADY_APPLIED
    assert bundle.asar_path.read_bytes() == patched
    assert bundle.asar_backup.read_bytes() == backup
    assert bundle.asar_backup.stat().st_mtime_ns == backup_mtime
    assert len(tools.codesign_calls) == 1


def test_already_patched_fixes_plist_hash(app, tools):
    bundle = AppBundle(app)
    patcher = patcher_for(app)
    patcher.patch()
    write_plist_hash(bundle.info_plist, "0" * 64)
    assert not patcher.status().integrity_match

    assert patcher.patch() is PatchOutcome.HASH_FIXED
    assert patcher.status().integrity_match
    assert len(tools.codesign_calls) == 2


def test_missing_anchor_leaves_container_untouched(tmp_path, tools):
    app = make_app(tmp_path / "Codex.app", BUNDLE_SOURCE.replace(THEME_SOURCE_ANCHOR, ""))
    bundle = AppBundle(app)
    before = bundle.asar_path.read_bytes()
    plist_before = bundle.info_plist.read_bytes()

    with pytest.raises(AnchorNotFoundError):
        patcher_for(app).patch()

    assert bundle.asar_path.read_bytes() == before
    assert bundle.info_plist.read_bytes() == plist_before
    assert not bundle.asar_backup.exists()
    assert tools.codesign_calls == []


def test_restore_without_backup(app, tools):
    bundle = AppBundle(app)
    before = bundle.asar_path.read_bytes()
    with pytest.raises(NotFoundError):
        patcher_for(app).restore()
    assert bundle.asar_path.read_bytes() == before


def test_patch_then_restore(app, tools):
    bundle = AppBundle(app)
    original_asar = bundle.asar_path.read_bytes()
    original_plist = bundle.info_plist.read_bytes()
    patcher = patcher_for(app)
    patcher.patch()

    patcher.restore()
    patcher.restore()

    assert bundle.asar_path.read_bytes() == original_asar
    assert bundle.info_plist.read_bytes() == original_plist
    report = patcher.status()
    assert not report.patched
    assert report.integrity_match


def test_no_codesign(app, tools):
    patcher = patcher_for(app, codesign=False)
    patcher.patch()
    patcher.restore()
    assert tools.codesign_calls == []


def test_codesign_failure_is_not_fatal(app, tools, caplog):
    tools.codesign_returncode = 1
    assert patcher_for(app).patch() is PatchOutcome.APPLIED
    assert "codesign failed" in caplog.text
    assert patcher_for(app).status().integrity_match


def test_missing_target_bundle(app, tools):
    with pytest.raises(NotFoundError, match="Target bundle not found"):
        patcher_for(app, target=".vite/build/main-XXXX.js").patch()


def test_missing_info_plist(app, tools):
    AppBundle(app).info_plist.unlink()
    with pytest.raises(NotFoundError, match="Info.plist not found"):
        patcher_for(app).patch()
    with pytest.raises(NotFoundError, match="Info.plist not found"):
        patcher_for(app).status()


def test_manifest_failure_aborts_before_writing(app, tools):
    bundle = AppBundle(app)
    before = bundle.asar_path.read_bytes()
    manifest = PlistManifest(bundle.info_plist, key_path="ElectronAsarIntegrity:Missing:hash")
    patcher = ThemePatcher(bundle, Settings(app=app), manifest)

    with pytest.raises(ManifestError):
        patcher.patch()
    assert bundle.asar_path.read_bytes() == before
    assert not bundle.asar_backup.exists()


def test_target_bundle_not_utf8(tmp_path, tools):
    app = make_app(tmp_path / "Codex.app")
    bundle = AppBundle(app)
    archive = AsarArchive.open(bundle.asar_path)
    archive.replace(TARGET_BUNDLE_PATH, BUNDLE_SOURCE.encode() + b"\xff\xfe")
    bundle.asar_path.write_bytes(archive.to_bytes())
    write_plist_hash(bundle.info_plist, header_digest(bundle.asar_path.read_bytes()))
    before = bundle.asar_path.read_bytes()

    with pytest.raises(FormatError, match="is not valid UTF-8"):
        patcher_for(app).patch()
    with pytest.raises(FormatError, match="is not valid UTF-8"):
        patcher_for(app).status()
    assert bundle.asar_path.read_bytes() == before
    assert not bundle.asar_backup.exists()
