"""
darcula.status
==============

The report printed by ``pydarcula status``, renderable in several formats.

Usage::

    report = ThemePatcher(AppBundle(app)).status()
    print(report.render("plain"))   # key: value lines
    print(report.render("json"))    # JSON object
    print(report.render("yaml"))    # YAML mapping
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import yaml

# All supported output formats.
FORMATS: tuple[str, ...] = ("plain", "json", "yaml")


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


@dataclass(frozen=True)
class StatusReport:
    app: str
    asar: str
    backup: bool
    plist_backup: bool
    patched: bool
    asar_header_sha256: str
    plist_sha256: str

    @property
    def integrity_match(self) -> bool:
        """``True`` when Info.plist records the archive's actual header hash."""
        return self.asar_header_sha256 == self.plist_sha256

    def as_dict(self) -> dict[str, Any]:
        return {
            "app": self.app,
            "asar": self.asar,
            "backup": self.backup,
            "plist-backup": self.plist_backup,
            "darcula-patched": self.patched,
            "asar-header-sha256": self.asar_header_sha256,
            "plist-sha256": self.plist_sha256,
            "integrity-match": self.integrity_match,
        }

    def render(self, fmt: str) -> str:
        """Render the report in the requested *fmt*.

        Raises:
            ValueError: If *fmt* is not one of :data:`FORMATS`.
        """
        try:
            renderer = _RENDERERS[fmt]
        except KeyError:
            raise ValueError(
                f"Unknown format {fmt!r}. Valid formats: {', '.join(FORMATS)}"
            )
        return renderer(self.as_dict())


# ------------------------------------------------------------------ #
#  Private renderers                                                   #
# ------------------------------------------------------------------ #


def _render_plain(values: dict[str, Any]) -> str:
    return "\n".join(
        f"{key}: {_yes_no(value) if isinstance(value, bool) else value}"
        for key, value in values.items()
    )


def _render_json(values: dict[str, Any]) -> str:
    return json.dumps(values, indent=2)


def _render_yaml(values: dict[str, Any]) -> str:
    return yaml.safe_dump(values, sort_keys=False, allow_unicode=True)


_RENDERERS: dict[str, Any] = {
    "plain": _render_plain,
    "json": _render_json,
    "yaml": _render_yaml,
}
