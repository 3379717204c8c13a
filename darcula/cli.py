"""
pydarcula CLI
=============

Usage examples
--------------
Show whether the app is patched and its integrity hash is consistent::

    pydarcula status
    pydarcula status --format json

Patch app.asar (a backup is taken on the first run)::

    pydarcula patch --app /Applications/Codex.app

Undo the patch from the backup, without re-signing::

    pydarcula restore --no-codesign

Theme a running instance over the DevTools protocol instead::

    pydarcula inject --start-app
    pydarcula inject --once
    pydarcula inject --remove

Every command accepts ``--config FILE`` (see :mod:`darcula.config`);
command-line flags take precedence over the file.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from .bundle import AppBundle
from .config import Settings
from .errors import DarculaError
from .inject import inject_to_targets, start_app, watch
from .integrity import header_digest
from .patcher import PatchOutcome, ThemePatcher
from .status import FORMATS

APP_START_DELAY = 1.6

_OUTCOME_MESSAGES = {
    PatchOutcome.APPLIED: "Darcula patch applied.",
    PatchOutcome.ALREADY_APPLIED: "Darcula patch is already applied.",
    PatchOutcome.HASH_FIXED: "Darcula patch already present; Info.plist hash fixed.",
}


# ------------------------------------------------------------------ #
#  Helpers                                                             #
# ------------------------------------------------------------------ #


def _die(message: str, code: int = 1) -> None:
    """Print *message* to stderr and exit with *code*."""
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(code)


def _settings(args: argparse.Namespace) -> Settings:
    settings = Settings.load(args.config) if args.config else Settings()
    return settings.override(
        app=Path(args.app).expanduser() if args.app else None,
        codesign=False if getattr(args, "no_codesign", False) else None,
        port=getattr(args, "port", None),
        interval=getattr(args, "interval", None),
    )


def _patcher(args: argparse.Namespace) -> ThemePatcher:
    settings = _settings(args)
    return ThemePatcher(AppBundle(settings.app), settings)


# ------------------------------------------------------------------ #
#  Sub-command handlers                                                #
# ------------------------------------------------------------------ #


def cmd_status(args: argparse.Namespace) -> None:
    """Report patch, backup and integrity state."""
    print(_patcher(args).status().render(args.format))


def cmd_patch(args: argparse.Namespace) -> None:
    """Inject the theme into app.asar."""
    patcher = _patcher(args)
    outcome = patcher.patch()
    print(_OUTCOME_MESSAGES[outcome])
    if outcome is PatchOutcome.APPLIED:
        digest = header_digest(patcher.bundle.asar_path.read_bytes())
        print(f"new sha256: {digest}")


def cmd_restore(args: argparse.Namespace) -> None:
    """Put the original app.asar and Info.plist back."""
    _patcher(args).restore()
    print("Original app.asar restored from backup.")


def cmd_inject(args: argparse.Namespace) -> None:
    """Theme (or un-theme) a running instance over CDP."""
    settings = _settings(args)
    if args.port is not None and args.port <= 0:
        _die("invalid --port value.")
    if args.interval is not None and args.interval <= 0:
        _die("invalid --interval value.")

    if args.start_app:
        start_app(settings.app, settings.port)
        time.sleep(APP_START_DELAY)

    processed: set[str] = set()
    if args.once or args.remove:
        count = inject_to_targets(settings.port, processed, remove=args.remove, css=settings.css)
        verb = "removed from" if args.remove else "injected into"
        print(f"{verb} {len(processed)} of {count} page target(s)")
        return

    print(f"watch mode: CDP http://127.0.0.1:{settings.port} (Ctrl-C to stop)")
    watch(settings.port, settings.interval, processed, css=settings.css)


# ------------------------------------------------------------------ #
#  Argument parser                                                     #
# ------------------------------------------------------------------ #


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pydarcula",
        description="Apply a Darcula theme to the Codex desktop app.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        default=None,
        help="YAML config file (see darcula.config).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log progress messages.",
    )
    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        metavar="<command>",
    )
    subparsers.required = True

    app_opts = argparse.ArgumentParser(add_help=False)
    app_opts.add_argument(
        "--app",
        metavar="PATH",
        default=None,
        help="Path to Codex.app (default: /Applications/Codex.app).",
    )

    sign_opts = argparse.ArgumentParser(add_help=False)
    sign_opts.add_argument(
        "--no-codesign",
        action="store_true",
        help="Do not re-sign the app bundle afterwards.",
    )

    # -- status ---------------------------------------------------------
    p_status = subparsers.add_parser(
        "status",
        parents=[app_opts],
        help="Show patch and integrity state.",
        description="Report whether app.asar is patched and Info.plist matches it.",
    )
    p_status.add_argument(
        "-f",
        "--format",
        choices=FORMATS,
        default="plain",
        metavar="FORMAT",
        help=f"Output format. Choices: {', '.join(FORMATS)}.",
    )
    p_status.set_defaults(func=cmd_status)

    # -- patch ----------------------------------------------------------
    p_patch = subparsers.add_parser(
        "patch",
        parents=[app_opts, sign_opts],
        help="Patch app.asar to load the theme.",
        description=(
            "Inject the theme into the app's main bundle, rebuild app.asar\n"
            "and update the asar hash in Info.plist. The original files are\n"
            "backed up on the first run."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p_patch.set_defaults(func=cmd_patch)

    # -- restore --------------------------------------------------------
    p_restore = subparsers.add_parser(
        "restore",
        parents=[app_opts, sign_opts],
        help="Restore the original app.asar from the backup.",
        description="Copy the backed-up app.asar and Info.plist back in place.",
    )
    p_restore.set_defaults(func=cmd_restore)

    # -- inject ---------------------------------------------------------
    p_inject = subparsers.add_parser(
        "inject",
        parents=[app_opts],
        help="Theme a running app over the DevTools protocol.",
        description=(
            "Insert the theme into every page of a running instance started\n"
            "with --remote-debugging-port. Watches for new pages by default."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p_inject.add_argument(
        "--port",
        type=int,
        default=None,
        metavar="N",
        help="DevTools port (default: 9222).",
    )
    p_inject.add_argument(
        "--interval",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Poll interval in watch mode (default: 1.2).",
    )
    p_inject.add_argument(
        "--start-app",
        action="store_true",
        help="Launch the app with --remote-debugging-port first.",
    )
    p_inject.add_argument(
        "--once",
        action="store_true",
        help="Inject once and exit.",
    )
    p_inject.add_argument(
        "--remove",
        action="store_true",
        help="Remove the injected style instead of adding it.",
    )
    p_inject.set_defaults(func=cmd_inject)

    return parser


# ------------------------------------------------------------------ #
#  Entry point                                                         #
# ------------------------------------------------------------------ #


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    try:
        args.func(args)
    except DarculaError as exc:
        _die(str(exc))
    except OSError as exc:
        _die(str(exc))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
