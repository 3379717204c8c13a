"""
darcula.patch
=============

Textual patching of the minified Electron main-process bundle.

The bundle has no stable API to hook, so the patch is expressed as an ordered
list of :class:`Anchor` objects: exact snippets of the shipped minified source
plus a function producing their replacement.  When the upstream bundle
changes, only the anchors need updating::

    result = apply_patch(source)
    if not result.already_patched:
        write(result.text)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from .errors import AnchorNotFoundError, PatchVerificationError
from .theme import DARCULA_CSS, PATCH_MARKER

LOGGER = logging.getLogger(__name__)

# Archive-relative path of the bundle that creates the BrowserWindows.
TARGET_BUNDLE_PATH = ".vite/build/main-CQwPb0Th.js"

THEME_SOURCE_ANCHOR = (
    'function dB(t){t==="light"||t==="dark"?U.nativeTheme.themeSource=t'
    ':U.nativeTheme.themeSource="system"}'
)
WINDOW_CREATION_ANCHOR = (
    "this.installNativeContextMenu(y),l&&this.installLiquidGlass(y,u),!U.app.isPackaged"
)

HELPER_DEFINITION = "function cdpApplyDarcula(win){"
HELPER_CALL = "cdpApplyDarcula(y)"

_HELPER_BODY = (
    "function cdpApplyDarcula(win){if(!win||win.isDestroyed())return;"
    "const apply=()=>{if(win.isDestroyed())return;"
    "try{const wc=win.webContents;if(!wc||wc.isDestroyed())return;"
    "wc.insertCSS(cdpDarculaCss).catch(()=>{});}catch{}};"
    'win.webContents.once("did-finish-load",apply);'
    "if(!win.webContents.isLoadingMainFrame())apply();}"
)


@dataclass(frozen=True)
class Anchor:
    """One insertion point in the bundle.

    Attributes:
        name:    Human-readable label used in error messages.
        search:  Exact text that must occur in the bundle.
        replace: Produces the replacement from the matched *search* text.
        expect:  Text that must be present once the patch is applied.
    """

    name: str
    search: str
    replace: Callable[[str], str]
    expect: str | None = None


@dataclass(frozen=True)
class PatchResult:
    text: str
    already_patched: bool


def helper_source(css: str) -> str:
    """JS defining the CSS constant and the ``cdpApplyDarcula`` helper."""
    return f"const cdpDarculaCss={json.dumps(css)};{_HELPER_BODY}"


def default_anchors(css: str = DARCULA_CSS) -> tuple[Anchor, ...]:
    """Anchors for the current Codex bundle, injecting *css*."""
    return (
        Anchor(
            name="nativeTheme",
            search=THEME_SOURCE_ANCHOR,
            replace=lambda found: found + helper_source(css),
            expect=HELPER_DEFINITION,
        ),
        Anchor(
            name="BrowserWindow hook",
            search=WINDOW_CREATION_ANCHOR,
            replace=lambda found: found.replace(
                "!U.app.isPackaged", f"{HELPER_CALL},!U.app.isPackaged"
            ),
            expect=HELPER_CALL,
        ),
    )


DEFAULT_ANCHORS = default_anchors()


def is_already_patched(text: str, marker: str = PATCH_MARKER) -> bool:
    return marker in text


def apply_patch(
    text: str,
    anchors: Sequence[Anchor] = DEFAULT_ANCHORS,
    marker: str = PATCH_MARKER,
) -> PatchResult:
    """Insert the theme hook into *text*.

    Args:
        text:    Source of the target bundle.
        anchors: Insertion points, applied in order.  Each replaces the first
                 occurrence of its search text only.
        marker:  Token whose presence means the bundle is already patched.

    Returns:
        A :class:`PatchResult`; ``text`` is unchanged when already patched.

    Raises:
        AnchorNotFoundError:    If an anchor's search text is missing.
        PatchVerificationError: If the marker or an anchor's expected text is
                                absent from the result.
    """
    if is_already_patched(text, marker):
        LOGGER.debug("Marker %s already present", marker)
        return PatchResult(text, already_patched=True)

    patched = text
    for anchor in anchors:
        if anchor.search not in patched:
            raise AnchorNotFoundError(
                f"Could not find {anchor.name} anchor in bundle"
            )
        patched = patched.replace(anchor.search, anchor.replace(anchor.search), 1)
        LOGGER.debug("Applied anchor %s", anchor.name)

    required = [marker] + [a.expect for a in anchors if a.expect]
    missing = [fragment for fragment in required if fragment not in patched]
    if missing:
        raise PatchVerificationError(
            f"Patch verification failed: missing {', '.join(map(repr, missing))}"
        )
    return PatchResult(patched, already_patched=False)
