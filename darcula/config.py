"""
darcula.config
==============

Optional YAML configuration for the CLI.  Every key is optional::

    app:      /Applications/Codex.app   # app bundle to patch
    codesign: true                      # re-sign after patch / restore
    target:   .vite/build/main-CQwPb0Th.js
    css_file: ./my-theme.css            # replaces the built-in Darcula CSS
    port:     9222                      # DevTools port for ``inject``
    interval: 1.2                       # ``inject`` poll interval, seconds

Relative paths are resolved against the directory containing the config
file, so configs are portable.  The whole file is validated before anything
is used.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .bundle import DEFAULT_APP_PATH
from .errors import ConfigError
from .patch import TARGET_BUNDLE_PATH
from .theme import DARCULA_CSS, marked_css

DEFAULT_PORT = 9222
DEFAULT_INTERVAL = 1.2

_KEYS: dict[str, type | tuple[type, ...]] = {
    "app": str,
    "codesign": bool,
    "target": str,
    "css_file": str,
    "port": int,
    "interval": (int, float),
}


@dataclass(frozen=True)
class Settings:
    app: Path = DEFAULT_APP_PATH
    codesign: bool = True
    target: str = TARGET_BUNDLE_PATH
    css: str = DARCULA_CSS
    port: int = DEFAULT_PORT
    interval: float = DEFAULT_INTERVAL

    @classmethod
    def load(cls, path: Path | str) -> Settings:
        """Read settings from a YAML file.

        Raises:
            ConfigError: If the file is missing, not a mapping, or has an
                         unknown key or a value of the wrong type.
        """
        config_path = Path(path).resolve()
        if not config_path.is_file():
            raise ConfigError(f"config file '{config_path}' not found.")

        try:
            raw: Any = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigError(f"config file is not valid YAML: {exc}") from exc
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError("config file must be a YAML mapping.")

        for key, value in raw.items():
            if key not in _KEYS:
                raise ConfigError(f"config has unknown key '{key}'.")
            expected = _KEYS[key]
            # bool is an int subclass; only accept it where a bool is wanted.
            if (isinstance(value, bool) and expected is not bool) or not isinstance(
                value, expected
            ):
                raise ConfigError(f"config key '{key}' has invalid value {value!r}.")

        config_dir = config_path.parent

        def _resolve(p: str) -> Path:
            candidate = Path(p).expanduser()
            return candidate if candidate.is_absolute() else (config_dir / candidate).resolve()

        values: dict[str, Any] = {}
        if "app" in raw:
            values["app"] = _resolve(raw["app"])
        if "css_file" in raw:
            css_path = _resolve(raw["css_file"])
            if not css_path.is_file():
                raise ConfigError(f"css file '{css_path}' not found.")
            values["css"] = marked_css(css_path.read_text(encoding="utf-8"))
        for key in ("codesign", "target", "port"):
            if key in raw:
                values[key] = raw[key]
        if "interval" in raw:
            values["interval"] = float(raw["interval"])

        if values.get("port", DEFAULT_PORT) <= 0:
            raise ConfigError("config key 'port' must be positive.")
        if values.get("interval", DEFAULT_INTERVAL) <= 0:
            raise ConfigError("config key 'interval' must be positive.")
        return cls(**values)

    def override(self, **changes: Any) -> Settings:
        """Return a copy with every non-``None`` value in *changes* applied."""
        names = {f.name for f in fields(self)}
        return replace(
            self, **{k: v for k, v in changes.items() if k in names and v is not None}
        )
