"""pydarcula – apply a Darcula theme to the Codex desktop app."""

from .archive import AsarArchive, extract_entries, parse, rebuild
from .bundle import AppBundle
from .config import Settings
from .errors import (
    AnchorNotFoundError,
    DarculaError,
    FormatError,
    ManifestError,
    NotFoundError,
    PatchVerificationError,
)
from .patch import Anchor, apply_patch, is_already_patched
from .patcher import PatchOutcome, ThemePatcher

__all__ = [
    "AsarArchive",
    "parse",
    "extract_entries",
    "rebuild",
    "AppBundle",
    "Settings",
    "Anchor",
    "apply_patch",
    "is_already_patched",
    "ThemePatcher",
    "PatchOutcome",
    "DarculaError",
    "FormatError",
    "AnchorNotFoundError",
    "PatchVerificationError",
    "ManifestError",
    "NotFoundError",
]
