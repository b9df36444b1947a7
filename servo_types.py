"""Shared types for the servo panel.

Provides:
- Zone / Direction / SwitchState enums
- GestureState and TrackGeometry (gesture interpreter inputs and state)
- CommandOutcome and CommitEvent (messages between interpreter, dispatcher and panel)
- The two-phase status rules used by the panel (tentative write, then reconcile)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

# Numbered switch (1..N) or a named button of the button pad.
Target = Union[int, str]


class Zone(str, Enum):
    """Where the knob currently sits on the track."""
    CENTER = "center"
    LEFT = "left"
    RIGHT = "right"


class Direction(str, Enum):
    """The two committable outcomes of a gesture."""
    LEFT = "left"
    RIGHT = "right"

    @property
    def zone(self) -> Zone:
        return Zone(self.value)


class SwitchState(str, Enum):
    ON = "on"
    OFF = "off"
    UNKNOWN = "unknown"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


@dataclass
class GestureState:
    """Per-control state of a spring toggle. Private to one toggle."""
    position: Zone = Zone.CENTER
    dragging: bool = False


@dataclass(frozen=True)
class TrackGeometry:
    """Horizontal bounding box of the toggle track, in the pointer's coordinates."""
    left: float
    width: float

    @property
    def center(self) -> float:
        return self.left + self.width / 2.0


@dataclass(frozen=True)
class CommitEvent:
    """Emitted once per completed gesture."""
    target: Target
    direction: Direction


@dataclass(frozen=True)
class CommandOutcome:
    """Terminal result of one dispatched command.

    ``reason`` is set for FAILURE and TIMEOUT; ``detail`` holds the
    (informational) response body of a SUCCESS. ``status_code`` is the HTTP
    status when the endpoint answered at all.
    """
    kind: OutcomeKind
    reason: str = ""
    detail: str = ""
    status_code: Optional[int] = None

    @classmethod
    def success(cls, detail: str = "OK", status_code: Optional[int] = None) -> "CommandOutcome":
        return cls(OutcomeKind.SUCCESS, detail=detail or "OK", status_code=status_code)

    @classmethod
    def failure(cls, reason: str, status_code: Optional[int] = None) -> "CommandOutcome":
        return cls(OutcomeKind.FAILURE, reason=reason or "unknown error", status_code=status_code)

    @classmethod
    def timeout(cls, reason: str = "not responding") -> "CommandOutcome":
        return cls(OutcomeKind.TIMEOUT, reason=reason)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def responded(self) -> bool:
        """True when an HTTP response came back, whatever its status."""
        return self.status_code is not None


def desired_state(direction: Direction) -> SwitchState:
    """LEFT turns a switch off, RIGHT turns it on."""
    return SwitchState.ON if direction is Direction.RIGHT else SwitchState.OFF


def optimistic_status(direction: Direction) -> SwitchState:
    """Tentative status written the instant a gesture commits."""
    return desired_state(direction)


def reconcile_status(tentative: SwitchState, outcome: CommandOutcome) -> SwitchState:
    """Confirm the tentative status on success, otherwise fall back to UNKNOWN."""
    return tentative if outcome.ok else SwitchState.UNKNOWN


def parse_direction(value: str) -> Direction:
    """Parse 'left'/'right' (also 'off'/'on') into a Direction.

    Raises:
        ValueError: for anything else.
    """
    text = str(value or "").strip().lower()
    aliases = {"left": Direction.LEFT, "off": Direction.LEFT,
               "right": Direction.RIGHT, "on": Direction.RIGHT}
    try:
        return aliases[text]
    except KeyError:
        raise ValueError(f"Unknown direction: {value!r}") from None
