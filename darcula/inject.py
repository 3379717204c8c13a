"""
darcula.inject
==============

Live theming over the Chrome DevTools Protocol.  Nothing on disk is touched:
each page target gets a ``<style>`` element that is created (or updated) on
inject and removed on ``--remove``.  The style is lost when the app restarts.

The app has to be started with ``--remote-debugging-port``; :func:`start_app`
does that on macOS.
"""

from __future__ import annotations

import json
import logging
import subprocess
import time
from pathlib import Path
from typing import Any

import requests
import websocket

from .errors import CdpError, CdpUnavailableError
from .theme import DARCULA_CSS, strip_marker

LOGGER = logging.getLogger(__name__)

STYLE_ID = "cdp-darcula-runtime-style"
CDP_HOST = "127.0.0.1"
HTTP_TIMEOUT = 5.0
WS_TIMEOUT = 10.0


def start_app(app_path: Path | str, port: int) -> None:
    """Launch the app detached, with the DevTools endpoint on *port*."""
    subprocess.Popen(
        ["open", "-na", str(app_path), "--args", f"--remote-debugging-port={port}"],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


def fetch_targets(port: int, session: requests.Session | None = None) -> list[dict[str, Any]]:
    """Return the target list served at ``/json/list``.

    Raises:
        CdpUnavailableError: If the endpoint cannot be reached or replies
                             with an error status or a malformed body.
    """
    url = f"http://{CDP_HOST}:{port}/json/list"
    http = session if session is not None else requests
    try:
        response = http.get(url, timeout=HTTP_TIMEOUT)
    except requests.exceptions.RequestException as exc:
        raise CdpUnavailableError(
            f"CDP endpoint is unavailable on port {port}. Start Codex with "
            f"--remote-debugging-port={port} (or run with --start-app)."
        ) from exc
    if not response.ok:
        raise CdpUnavailableError(f"CDP endpoint {url} returned {response.status_code}")
    try:
        targets = response.json()
    except ValueError as exc:
        raise CdpUnavailableError(f"CDP endpoint {url} returned invalid JSON: {exc}") from exc
    if not isinstance(targets, list):
        raise CdpUnavailableError(f"CDP endpoint {url} did not return a target list")
    return targets


def cdp_evaluate(ws_url: str, expression: str) -> Any:
    """Evaluate *expression* in the page behind *ws_url*.

    Returns:
        The ``result`` of the ``Runtime.evaluate`` reply.

    Raises:
        CdpError: If the target answers a command with an error.
    """
    ws = websocket.create_connection(ws_url, timeout=WS_TIMEOUT)
    seq = 0

    def send(method: str, params: dict[str, Any]) -> Any:
        nonlocal seq
        seq += 1
        ws.send(json.dumps({"id": seq, "method": method, "params": params}))
        while True:
            try:
                message = json.loads(ws.recv())
            except json.JSONDecodeError:
                continue
            if message.get("id") != seq:
                continue
            if "error" in message:
                raise CdpError(json.dumps(message["error"]))
            return message.get("result")

    try:
        send("Runtime.enable", {})
        return send("Runtime.evaluate", {"expression": expression, "returnByValue": True})
    finally:
        ws.close()


def build_inject_expression(css: str = DARCULA_CSS) -> str:
    return f"""(() => {{
    const id = {json.dumps(STYLE_ID)};
    let style = document.getElementById(id);
    if (!style) {{
      style = document.createElement('style');
      style.id = id;
      document.documentElement.appendChild(style);
    }}
    style.textContent = {json.dumps(strip_marker(css))};
    return 'injected';
  }})()"""


def build_remove_expression() -> str:
    return f"""(() => {{
    const id = {json.dumps(STYLE_ID)};
    const style = document.getElementById(id);
    if (style) style.remove();
    return 'removed';
  }})()"""


def inject_to_targets(
    port: int,
    processed: set[str],
    remove: bool = False,
    css: str = DARCULA_CSS,
    session: requests.Session | None = None,
) -> int:
    """Inject into (or remove from) every page target once.

    Args:
        port:      DevTools port.
        processed: Ids of targets already themed; updated in place.  Targets
                   in it are skipped unless *remove* is set.
        remove:    Remove the style element instead of injecting it.
        css:       Stylesheet to inject.
        session:   Optional :class:`requests.Session` for the target listing.

    Returns:
        The number of page targets found.
    """
    targets = fetch_targets(port, session)
    pages = [t for t in targets if t.get("type") == "page" and t.get("webSocketDebuggerUrl")]
    expression = build_remove_expression() if remove else build_inject_expression(css)

    for target in pages:
        target_id = target.get("id", "")
        label = target.get("title") or target_id
        if target_id in processed and not remove:
            continue
        try:
            cdp_evaluate(target["webSocketDebuggerUrl"], expression)
        except (CdpError, websocket.WebSocketException, OSError, ValueError) as exc:
            LOGGER.warning("failed on %s: %s", label, exc)
            continue
        processed.add(target_id)
        LOGGER.info("%s: %s", "removed" if remove else "injected", label)
    return len(pages)


def watch(
    port: int,
    interval: float,
    processed: set[str],
    css: str = DARCULA_CSS,
    session: requests.Session | None = None,
) -> None:
    """Keep injecting into new page targets until interrupted."""
    while True:
        try:
            inject_to_targets(port, processed, css=css, session=session)
        except CdpUnavailableError as exc:
            LOGGER.warning("waiting for Codex CDP endpoint: %s", exc)
        time.sleep(interval)
