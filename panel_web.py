"""Servo panel: Flask + Socket.IO web server for the ESP32 servo switches.

Features:
- Web UI with one spring toggle per switch plus the Game Boy button pad
- Pointer/click events forwarded over Socket.IO and interpreted server-side
- Real-time switch status and display message pushed to every client
- Small JSON API for status and direct (caller-driven) commits

All toggles, timers and servo commands live on one asyncio event loop running
in a background thread; web threads only hand work over to it.
"""

from __future__ import annotations

import argparse
import asyncio
import concurrent.futures
import json
import logging
import threading
from typing import Any, Callable, Dict, Optional

from flask import Flask, jsonify, request
from flask_socketio import SocketIO, emit
from markupsafe import escape

from page_template import HTML_PAGE
from servo_dispatch import ENCODINGS, ServoDispatcher
from servo_types import CommitEvent, TrackGeometry, parse_direction
from state import PanelState, get_config, get_message
from switch_panel import POINTER_KINDS, SwitchPanel

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)s - %(message)s"

# ---------------------------------------------------------------------------
# Event loop thread
# ---------------------------------------------------------------------------
class LoopThread:
    """Runs an asyncio event loop in a daemon thread and accepts work from others."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread: Optional[threading.Thread] = None

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def start(self) -> None:
        """Start the loop thread."""
        if self._thread and self._thread.is_alive():
            logger.info("Event loop already running.")
            return
        self._thread = threading.Thread(target=self._run, name="servo-loop", daemon=True)
        self._thread.start()

    def call_soon(self, fn: Callable[..., Any], *args: Any) -> None:
        self.loop.call_soon_threadsafe(fn, *args)

    def submit(self, coro) -> "Any":
        """Schedule a coroutine on the loop; returns a concurrent Future."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self) -> None:
        """Stop the loop and wait for the thread to exit."""
        if not self._thread:
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)
        self._thread = None
        self.loop.close()
        logger.info("Event loop stopped.")


# ---------------------------------------------------------------------------
# Flask + Socket.IO
# ---------------------------------------------------------------------------
app = Flask(__name__)
# Events from one client are handled in delivery order (one thread per client).
socketio = SocketIO(app, async_mode="threading", async_handlers=False)

_panel: Optional[SwitchPanel] = None
_runner: Optional[Any] = None


def bind_panel(panel: Optional[SwitchPanel], runner: Optional[Any]) -> None:
    """Attach the panel and the loop runner used by routes and socket handlers."""
    global _panel, _runner  # pylint: disable=global-statement
    _panel = panel
    _runner = runner


def _require_panel() -> SwitchPanel:
    if _panel is None or _runner is None:
        raise RuntimeError("Servo panel is not running")
    return _panel


def socketio_emit_switch(msg=None) -> None:
    """Emit a status update to all clients.

    Payload fields (dict updates):
      - event : position | commit | outcome | button
      - switch / button, status, outcome, position, msg
    Plain strings are sent as {"msg": ...}.
    """
    if isinstance(msg, dict):
        payload: Dict[str, Any] = dict(msg)
    else:
        payload = {"msg": str(msg or get_message())}
    socketio.emit("switch", payload)


def _geometry(data: Dict[str, Any]) -> TrackGeometry:
    width = float(data["width"])
    if width <= 0:
        raise ValueError("track width must be positive")
    return TrackGeometry(left=float(data.get("left", 0.0)), width=width)


def _render_page() -> str:
    html = HTML_PAGE
    html = html.replace("{{esp}}", str(escape(get_config("ESP_BASE_URL"))))
    html = html.replace("{{msg}}", str(escape(get_message())))
    html = html.replace("{{switches_json}}", json.dumps(PanelState.switch_numbers()))
    html = html.replace("{{buttons_json}}", json.dumps(sorted(get_config("BUTTON_ANGLES") or {})))
    return html


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.route("/", methods=["GET"])
def index():
    """Render the panel page."""
    return _render_page()


@app.route("/api/status", methods=["GET"])
def status():
    """Return the current switch statuses, toggle positions and message."""
    try:
        return jsonify(_require_panel().snapshot())
    except RuntimeError as e:
        return jsonify({"error": str(e)}), 503


@app.route("/api/switch/<int:switch>", methods=["POST"])
def commit_switch(switch: int):
    """Commit a direction for one switch without a gesture (caller-driven retry)."""
    data = request.get_json(silent=True) or {}
    try:
        panel = _require_panel()
        panel.toggle(switch)
        direction = parse_direction(data.get("direction", ""))
    except RuntimeError as e:
        return jsonify({"error": str(e)}), 503
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    _runner.call_soon(panel.commit, CommitEvent(switch, direction))
    return jsonify({"switch": switch, "direction": direction.value}), 202


# ---------------------------------------------------------------------------
# Socket handlers
# ---------------------------------------------------------------------------
@socketio.on("connect")
def on_connect(auth=None):
    if _panel is not None:
        emit("snapshot", _panel.snapshot())


@socketio.on("pointer")
def on_pointer(data):
    """Pointer events from a toggle track: {switch, type, x, left, width}."""
    try:
        panel = _require_panel()
        switch = int(data["switch"])
        kind = str(data["type"]).lower()
        panel.toggle(switch)
        if kind not in POINTER_KINDS:
            raise ValueError(f"Unknown pointer event: {kind!r}")
        x = geometry = None
        if kind == "move":
            x = float(data["x"])
            geometry = _geometry(data)
        _runner.call_soon(panel.handle_pointer, switch, kind, x, geometry)
    except (KeyError, TypeError, ValueError, RuntimeError) as e:
        logger.warning("Rejected pointer event %r: %s", data, e)
        return {"ok": False, "error": f"Error: {e}"}
    return {"ok": True}


@socketio.on("toggle_click")
def on_toggle_click(data):
    """Click on a toggle track: {switch, x, left, width}."""
    try:
        panel = _require_panel()
        switch = int(data["switch"])
        panel.toggle(switch)
        x = float(data["x"])
        geometry = _geometry(data)
        _runner.call_soon(panel.handle_click, switch, x, geometry)
    except (KeyError, TypeError, ValueError, RuntimeError) as e:
        logger.warning("Rejected click %r: %s", data, e)
        return {"ok": False, "error": f"Error: {e}"}
    return {"ok": True}


@socketio.on("button")
def on_button(data):
    """Button-pad press: {name}."""
    try:
        panel = _require_panel()
        name = str(data["name"]).strip()
        if not name:
            raise ValueError("button name is empty")
        _runner.call_soon(panel.press_button, name)
    except (KeyError, TypeError, ValueError, RuntimeError) as e:
        logger.warning("Rejected button press %r: %s", data, e)
        return {"ok": False, "error": f"Error: {e}"}
    return {"ok": True}


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def build_dispatcher() -> ServoDispatcher:
    """Dispatcher configured from PanelState."""
    return ServoDispatcher(
        get_config("ESP_BASE_URL"),
        path=get_config("SERVO_PATH"),
        timeout=float(get_config("COMMAND_TIMEOUT_SEC")),
        encoding=str(get_config("STATE_ENCODING")),
        on_angle=int(get_config("ON_ANGLE")),
        off_angle=int(get_config("OFF_ANGLE")),
        reason_max_chars=int(get_config("REASON_MAX_CHARS")),
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ESP32 servo switch panel")
    parser.add_argument("--esp", help="ESP32 base URL (e.g., http://192.168.81.215)")
    parser.add_argument("--config", help="Path to a config.json to load")
    parser.add_argument("--encoding", choices=ENCODINGS, help="Command body encoding")
    parser.add_argument("--timeout", type=float, help="Command timeout in seconds (default: 4)")
    parser.add_argument("--host", default="0.0.0.0", help="Web server bind address")
    parser.add_argument("--port", type=int, default=5000, help="Web server port (default: 5000)")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser.parse_args(argv)


def apply_args(args: argparse.Namespace) -> None:
    """Load the config file and apply CLI overrides on top of it."""
    if args.config:
        PanelState.set_config_path(args.config)
    overrides: Dict[str, Any] = {}
    if args.esp:
        overrides["ESP_BASE_URL"] = args.esp
    if args.encoding:
        overrides["STATE_ENCODING"] = args.encoding
    if args.timeout is not None:
        overrides["COMMAND_TIMEOUT_SEC"] = args.timeout
    if overrides:
        PanelState.update_config(overrides)


def main(argv=None) -> None:
    """Entry point for the servo panel."""
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO, format=LOG_FORMAT)
    apply_args(args)

    runner = LoopThread()
    dispatcher = build_dispatcher()
    panel = SwitchPanel.from_config(dispatcher, loop=runner.loop, update_callback=socketio_emit_switch)
    bind_panel(panel, runner)
    runner.start()

    logger.info("Servo endpoint: %s", dispatcher.url)
    logger.info("Starting web server at http://localhost:%d", args.port)
    try:
        socketio.run(app, host=args.host, port=args.port, allow_unsafe_werkzeug=True)
    except KeyboardInterrupt:
        logger.info("Shutting down servo panel.")
    finally:
        runner.call_soon(panel.close)
        try:
            runner.submit(dispatcher.aclose()).result(timeout=5)
        except (RuntimeError, concurrent.futures.TimeoutError) as err:
            logger.warning("Failed to close HTTP client: %s", err)
        runner.stop()
        bind_panel(None, None)


if __name__ == "__main__":
    main()
