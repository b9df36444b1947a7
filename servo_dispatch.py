"""Actuator dispatch for the servo panel.

Sends one JSON command per committed gesture to the ESP32 servo endpoint and
turns whatever happens into a single CommandOutcome:

- any non-error HTTP status          -> SUCCESS (body is informational)
- an error status / transport error  -> FAILURE with a bounded diagnostic
- no answer within the timeout       -> TIMEOUT (the in-flight request is cancelled)

Nothing raised by the transport escapes ``dispatch``; retrying is left to the
caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from servo_types import (
    CommandOutcome,
    Direction,
    SwitchState,
    Target,
    desired_state,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 4.0
DEFAULT_REASON_MAX_CHARS = 100

ENCODINGS = ("switch", "angle")

# Errors outside httpx.HTTPError: malformed URLs and failures raised by a transport.
REQUEST_ERRORS = (httpx.InvalidURL, httpx.CookieConflict, ValueError, TypeError, RuntimeError, OSError)

__all__ = [
    "ServoDispatcher",
    "build_payload",
    "truncate_reason",
    "ENCODINGS",
]


def truncate_reason(text: str, max_chars: int = DEFAULT_REASON_MAX_CHARS) -> str:
    """Trim a diagnostic to at most ``max_chars`` characters for display."""
    text = " ".join(str(text).split())
    return text[: max(0, int(max_chars))]


def build_payload(
    target: Target,
    state: SwitchState,
    encoding: str = "switch",
    on_angle: int = 180,
    off_angle: int = 0,
) -> Dict[str, Any]:
    """Body for one switch command.

    ``switch`` encoding: {"switch": n, "state": 1|0}
    ``angle`` encoding:  {"switch": n, "angle": on_angle|off_angle}
    """
    on = state is SwitchState.ON
    if encoding == "switch":
        return {"switch": target, "state": 1 if on else 0}
    if encoding == "angle":
        return {"switch": target, "angle": int(on_angle if on else off_angle)}
    raise ValueError(f"Unknown state encoding: {encoding!r}")


class ServoDispatcher:
    """Issues servo commands to a fixed endpoint under a client-side timeout.

    Args:
        base_url: ESP32 address, e.g. ``http://192.168.81.215``.
        path: Command resource on the endpoint.
        timeout: Seconds to wait for a response before giving up.
        encoding: ``"switch"`` (on/off) or ``"angle"`` (integer angle) body.
        on_angle / off_angle: Angles used by the ``angle`` encoding.
        reason_max_chars: Upper bound for FAILURE diagnostics.
        client: Optional pre-built ``httpx.AsyncClient`` (tests inject a
            ``MockTransport`` this way). A client passed in is not closed by
            ``aclose``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        path: str = "/servo",
        timeout: float = DEFAULT_TIMEOUT_SEC,
        encoding: str = "switch",
        on_angle: int = 180,
        off_angle: int = 0,
        reason_max_chars: int = DEFAULT_REASON_MAX_CHARS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if encoding not in ENCODINGS:
            raise ValueError(f"Unknown state encoding: {encoding!r} (expected one of {ENCODINGS})")
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        self.base_url = str(base_url).rstrip("/")
        self.path = "/" + str(path).lstrip("/")
        self.timeout = float(timeout)
        self.encoding = encoding
        self.on_angle = int(on_angle)
        self.off_angle = int(off_angle)
        self.reason_max_chars = int(reason_max_chars)

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.path}"

    # ------------------ Commands ------------------
    async def dispatch(self, target: Target, direction: Direction) -> CommandOutcome:
        """Send one on/off command for ``target`` and return its outcome."""
        state = desired_state(direction)
        payload = build_payload(target, state, self.encoding, self.on_angle, self.off_angle)
        logger.info("Switch %s -> %s", target, state.value.upper())
        return await self._send(payload, label=f"switch {target}")

    async def send_angles(self, angles: Sequence[int]) -> CommandOutcome:
        """Send a raw angle array (button pad) and return its outcome."""
        payload: List[int] = [int(a) for a in angles]
        return await self._send(payload, label=f"angles {payload}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------ Transport ------------------
    async def _post(self, payload: Any) -> CommandOutcome:
        response = await self._client.post(self.url, json=payload)
        text = response.text
        if response.is_error:
            reason = truncate_reason(f"HTTP {response.status_code} {text}".strip(), self.reason_max_chars)
            return CommandOutcome.failure(reason, status_code=response.status_code)
        return CommandOutcome.success(text, status_code=response.status_code)

    async def _send(self, payload: Any, label: str) -> CommandOutcome:
        logger.debug("POST %s %s", self.url, payload)
        request = asyncio.ensure_future(self._post(payload))
        try:
            done, _ = await asyncio.wait({request}, timeout=self.timeout)
        except asyncio.CancelledError:
            request.cancel()
            raise

        if not done:
            request.cancel()
            try:
                await request
            except (asyncio.CancelledError, httpx.HTTPError, *REQUEST_ERRORS):
                pass
            logger.warning("%s: no response within %.1fs", label, self.timeout)
            return CommandOutcome.timeout()

        try:
            outcome = request.result()
        except httpx.TimeoutException as err:
            logger.warning("%s: transport timeout: %s", label, err)
            return CommandOutcome.timeout()
        except httpx.HTTPError as err:
            reason = truncate_reason(f"{type(err).__name__}: {err}", self.reason_max_chars)
            logger.warning("%s: request failed: %s", label, reason)
            return CommandOutcome.failure(reason)
        except REQUEST_ERRORS as err:
            reason = truncate_reason(f"{type(err).__name__}: {err}", self.reason_max_chars)
            logger.error("%s: request could not be sent: %s", label, reason)
            return CommandOutcome.failure(reason)

        if outcome.ok:
            logger.info("%s: OK (%s)", label, truncate_reason(outcome.detail, self.reason_max_chars))
        else:
            logger.warning("%s: %s", label, outcome.reason)
        return outcome
