"""The switch panel: owns the toggles and turns commits into servo commands.

Every commit produces at least two visible status transitions:
  1. an optimistic one, written before the command is sent, and
  2. a final one once the outcome resolves (confirmed, or reverted to UNKNOWN).

Commands to the same switch are not serialized. Each resolution writes its own
reconciled status, so whichever command resolves last decides what the panel
shows.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Union

from servo_dispatch import ServoDispatcher
from servo_types import (
    CommandOutcome,
    CommitEvent,
    Direction,
    GestureState,
    OutcomeKind,
    SwitchState,
    TrackGeometry,
    optimistic_status,
    reconcile_status,
)
from spring_toggle import (
    DEFAULT_CLICK_FRACTION,
    DEFAULT_DRAG_THRESHOLD,
    DEFAULT_RECENTER_DELAY_SEC,
    SpringToggle,
)
from state import PanelState

logger = logging.getLogger(__name__)

# Callback payload may be a plain string or a dict with fields like:
#   {"event": "outcome", "switch": 3, "status": "on", "msg": "..."}
UpdatePayload = Union[str, Dict[str, Any]]
UpdateCallback = Optional[Callable[[UpdatePayload], None]]

POINTER_KINDS = ("down", "move", "up", "leave")

# Buttons whose success message reports the air conditioner instead of a toggle.
AC_MESSAGES = {"A": "AC is turned off", "B": "AC is turned on"}
NOT_RESPONDING = "Error: ESP32 Not Responding"


def _label(direction: Direction) -> str:
    return "ON" if direction is Direction.RIGHT else "OFF"


def commit_message(switch: int, direction: Direction) -> str:
    return f"Switch {switch} → {_label(direction)}"


def outcome_message(switch: int, direction: Direction, outcome: CommandOutcome) -> str:
    """Final display text for one resolved command."""
    if outcome.ok:
        verb = "activated" if direction is Direction.RIGHT else "deactivated"
        return f"Switch {switch} {verb} successfully"
    if outcome.kind is OutcomeKind.TIMEOUT:
        return f"{_label(direction)} failed (Switch {switch}): not responding"
    return f"{_label(direction)} failed (Switch {switch}): {outcome.reason}"


class SwitchPanel:
    """Caller-side owner of switch statuses and the single commit entry point.

    Args:
        dispatcher: Sends the actual servo commands.
        loop: Event loop that runs toggle timers and command tasks.
        switches: Switch numbers to create toggles for (defaults to config).
        update_callback: Receives status payloads for the display layer.
    """

    def __init__(
        self,
        dispatcher: ServoDispatcher,
        *,
        loop: asyncio.AbstractEventLoop,
        switches: Optional[Iterable[int]] = None,
        update_callback: UpdateCallback = None,
        drag_threshold: float = DEFAULT_DRAG_THRESHOLD,
        click_fraction: float = DEFAULT_CLICK_FRACTION,
        recenter_delay: float = DEFAULT_RECENTER_DELAY_SEC,
    ) -> None:
        self.dispatcher = dispatcher
        self.update_callback = update_callback
        self._loop = loop
        numbers = PanelState.switch_numbers() if switches is None else [int(s) for s in switches]
        self.toggles: Dict[int, SpringToggle] = {
            n: SpringToggle(
                n,
                self.commit,
                scheduler=loop,
                drag_threshold=drag_threshold,
                click_fraction=click_fraction,
                recenter_delay=recenter_delay,
                on_position=self._on_position,
            )
            for n in numbers
        }

    @classmethod
    def from_config(
        cls,
        dispatcher: ServoDispatcher,
        *,
        loop: asyncio.AbstractEventLoop,
        update_callback: UpdateCallback = None,
    ) -> "SwitchPanel":
        """Build a panel using the thresholds from PanelState config."""
        return cls(
            dispatcher,
            loop=loop,
            update_callback=update_callback,
            drag_threshold=float(PanelState.get_config("DRAG_THRESHOLD")),
            click_fraction=float(PanelState.get_config("CLICK_THRESHOLD_FRACTION")),
            recenter_delay=float(PanelState.get_config("RECENTER_DELAY_SEC")),
        )

    # ----------------- Inbound events -----------------
    def toggle(self, switch: int) -> SpringToggle:
        try:
            return self.toggles[int(switch)]
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"Unknown switch: {switch!r}") from None

    def handle_pointer(
        self,
        switch: int,
        kind: str,
        x: Optional[float] = None,
        geometry: Optional[TrackGeometry] = None,
    ) -> None:
        """Route one pointer event (down/move/up/leave) to a switch's toggle."""
        toggle = self.toggle(switch)
        if kind == "down":
            toggle.pointer_down()
        elif kind == "move":
            if x is None or geometry is None:
                raise ValueError("move events need x and track geometry")
            toggle.pointer_move(x, geometry)
        elif kind == "up":
            toggle.pointer_up()
        elif kind == "leave":
            toggle.pointer_leave()
        else:
            raise ValueError(f"Unknown pointer event: {kind!r}")

    def handle_click(self, switch: int, x: float, geometry: TrackGeometry) -> None:
        self.toggle(switch).click(x, geometry)

    # ----------------- Commit → dispatch -----------------
    def commit(self, event: CommitEvent) -> "asyncio.Task[CommandOutcome]":
        """Apply the optimistic status, then send the command in the background."""
        switch = int(event.target)
        tentative = optimistic_status(event.direction)
        msg = commit_message(switch, event.direction)

        PanelState.set_switch_status(switch, tentative)
        PanelState.set_message(msg)
        logger.info(msg)
        self._emit({"event": "commit", "switch": switch, "status": tentative.value, "msg": msg})

        return self._loop.create_task(self.run_command(switch, event.direction))

    async def run_command(self, switch: int, direction: Direction) -> CommandOutcome:
        """Dispatch one command and write its reconciled status."""
        tentative = optimistic_status(direction)
        outcome = await self.dispatcher.dispatch(switch, direction)

        status = reconcile_status(tentative, outcome)
        msg = outcome_message(switch, direction, outcome)
        PanelState.set_switch_status(switch, status)
        PanelState.set_message(msg)
        if outcome.ok:
            logger.info(msg)
        else:
            logger.warning(msg)
        self._emit(
            {
                "event": "outcome",
                "switch": switch,
                "status": status.value,
                "outcome": outcome.kind.value,
                "msg": msg,
            }
        )
        return outcome

    # ----------------- Button pad -----------------
    def press_button(self, name: str) -> "asyncio.Task[CommandOutcome]":
        return self._loop.create_task(self.run_button(name))

    async def run_button(self, name: str) -> CommandOutcome:
        """Send a button's angle array.

        Any HTTP answer counts as delivered, error statuses included; only a
        request that got no response at all reports the ESP32 as not responding.
        """
        outcome = await self.dispatcher.send_angles(PanelState.button_angles(name))
        payload: Dict[str, Any] = {"event": "button", "button": name, "outcome": outcome.kind.value}

        if not outcome.responded:
            msg = NOT_RESPONDING
        elif name in AC_MESSAGES:
            msg = AC_MESSAGES[name]
        else:
            active = PanelState.flip_button(name)
            payload["active"] = active
            msg = f"{name.upper()} {'activated' if active else 'deactivated'}"

        PanelState.set_message(msg)
        payload["msg"] = msg
        self._emit(payload)
        return outcome

    # ----------------- Display -----------------
    def snapshot(self) -> Dict[str, Any]:
        """Current panel state for the UI (statuses, toggle positions, message)."""
        statuses = PanelState.get_switch_statuses()
        return {
            "msg": PanelState.get_message(),
            "switches": {
                str(n): {
                    "status": statuses.get(n, SwitchState.UNKNOWN).value,
                    "position": toggle.position.value,
                }
                for n, toggle in self.toggles.items()
            },
            "buttons": PanelState.get_button_states(),
        }

    def close(self) -> None:
        for toggle in self.toggles.values():
            toggle.close()

    def _on_position(self, switch: Any, state: GestureState) -> None:
        self._emit(
            {
                "event": "position",
                "switch": switch,
                "position": state.position.value,
                "dragging": state.dragging,
            }
        )

    def _emit(self, payload: UpdatePayload) -> None:
        if not self.update_callback:
            return
        try:
            self.update_callback(payload)
        except (RuntimeError, ValueError, OSError) as err:
            logger.warning("Status update failed: %s", err)
