"""Builders shared by the test modules."""

from __future__ import annotations

import json
import plistlib
import struct
import subprocess
from pathlib import Path
from typing import Any

from darcula.integrity import header_digest
from darcula.patch import TARGET_BUNDLE_PATH, THEME_SOURCE_ANCHOR, WINDOW_CREATION_ANCHOR

BUNDLE_SOURCE = (
    '"use strict";const U=require("electron");'
    + THEME_SOURCE_ANCHOR
    + "class M{create(y,u,l){"
    + WINDOW_CREATION_ANCHOR
    + "&&y.webContents.openDevTools();return y}}"
)


def pack_header(header: dict[str, Any], data: bytes, pad: bool = True) -> bytes:
    hj = json.dumps(header, separators=(",", ":")).encode()
    sz = len(hj)
    aligned = (sz + 3) & ~3 if pad else sz
    return (
        struct.pack("<4I", 4, aligned + 8, aligned + 4, sz)
        + hj
        + b"\x00" * (aligned - sz)
        + data
    )


def make_asar(tree: dict[str, Any], pad: bool = True, string_offsets: bool = True) -> bytes:
    """Pack a nested ``{name: bytes | dict}`` tree into an asar container."""
    header: dict[str, Any] = {"files": {}}
    chunks: list[bytes] = []
    offset = 0

    def walk(src: dict[str, Any], dst: dict[str, Any]) -> None:
        nonlocal offset
        for name, value in src.items():
            if isinstance(value, dict):
                dst[name] = {"files": {}}
                walk(value, dst[name]["files"])
            else:
                dst[name] = {
                    "size": len(value),
                    "offset": str(offset) if string_offsets else offset,
                }
                chunks.append(value)
                offset += len(value)

    walk(tree, header["files"])
    return pack_header(header, b"".join(chunks), pad)


def app_tree(source: str = BUNDLE_SOURCE) -> dict[str, Any]:
    build_dir, name = TARGET_BUNDLE_PATH.rsplit("/", 1)
    tree: dict[str, Any] = {}
    node = tree
    for part in build_dir.split("/"):
        node = node.setdefault(part, {})
    node[name] = source.encode()
    node["preload.js"] = b"window.preload=1;"
    tree["package.json"] = b'{"name":"openai-codex-electron","main":".vite/build/main.js"}'
    return tree


def make_app(app_path: Path, source: str = BUNDLE_SOURCE) -> Path:
    """Create a minimal Codex.app with a consistent Info.plist hash."""
    resources = app_path / "Contents" / "Resources"
    resources.mkdir(parents=True)
    asar = make_asar(app_tree(source))
    (resources / "app.asar").write_bytes(asar)
    write_plist_hash(app_path / "Contents" / "Info.plist", header_digest(asar))
    return app_path


def write_plist_hash(path: Path, digest: str) -> None:
    data = {
        "CFBundleName": "Codex",
        "ElectronAsarIntegrity": {
            "Resources/app.asar": {"algorithm": "SHA256", "hash": digest},
        },
    }
    with open(path, "wb") as f:
        plistlib.dump(data, f)


def read_plist_hash(path: Path) -> str:
    with open(path, "rb") as f:
        return plistlib.load(f)["ElectronAsarIntegrity"]["Resources/app.asar"]["hash"]


class FakeTools:
    """Stands in for ``subprocess.run``: emulates PlistBuddy and codesign."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.codesign_returncode = 0

    @property
    def codesign_calls(self) -> list[list[str]]:
        return [c for c in self.calls if c[0] == "codesign"]

    def __call__(self, cmd: list[str], *args: Any, **kwargs: Any) -> subprocess.CompletedProcess:
        self.calls.append(list(cmd))
        if cmd[0] == "codesign":
            return subprocess.CompletedProcess(cmd, self.codesign_returncode)
        if cmd[0].endswith("PlistBuddy"):
            return self._plist_buddy(cmd)
        raise AssertionError(f"unexpected command {cmd}")

    def _plist_buddy(self, cmd: list[str]) -> subprocess.CompletedProcess:
        _, flag, command, path = cmd
        assert flag == "-c"
        verb, rest = command.split(" ", 1)
        value = None
        if verb == "Set":
            key, value = rest.split(" ", 1)
        else:
            key = rest
        parts = key.lstrip(":").split(":")

        with open(path, "rb") as f:
            data = plistlib.load(f)
        try:
            node = data
            for part in parts[:-1]:
                node = node[part]
            current = node[parts[-1]]
        except (KeyError, TypeError):
            return subprocess.CompletedProcess(
                cmd, 1, stdout="", stderr=f'{verb}: Entry, "{key}", Does Not Exist\n'
            )

        if verb == "Print":
            return subprocess.CompletedProcess(cmd, 0, stdout=f"{current}\n", stderr="")
        node[parts[-1]] = value
        with open(path, "wb") as f:
            plistlib.dump(data, f)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")
