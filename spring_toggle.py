"""Spring-loaded two-sided toggle: turns pointer input into one command per gesture.

Drag the knob (or click a side of the track) left for OFF, right for ON; the
knob springs back to the centre on its own a short delay after leaving it.

Two input paths:
  * Drag: pointer_down → pointer_move* → pointer_up / pointer_leave.
    Commits on release only, using a fixed deadzone around the track centre.
  * Click: click(x, geometry). Independent of the drag path and uses a wider
    deadzone (a fraction of the track width).

Auto-recenter is a cancellable timer owned by the toggle. Each transition of
the knob bumps a generation counter; a timer only acts if its generation is
still current, so a superseded timer can never move the knob.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from servo_types import (
    CommitEvent,
    Direction,
    GestureState,
    Target,
    TrackGeometry,
    Zone,
)

logger = logging.getLogger(__name__)

DEFAULT_DRAG_THRESHOLD = 30.0
DEFAULT_CLICK_FRACTION = 1.0 / 3.0
DEFAULT_RECENTER_DELAY_SEC = 0.2

CommitCallback = Callable[[CommitEvent], Any]
PositionCallback = Optional[Callable[[Target, GestureState], None]]


def classify(x: float, center: float, threshold: float) -> Zone:
    """Return LEFT/RIGHT when x lies strictly beyond center ± threshold, else CENTER."""
    if x < center - threshold:
        return Zone.LEFT
    if x > center + threshold:
        return Zone.RIGHT
    return Zone.CENTER


class SpringToggle:
    """Gesture interpreter for one switch.

    Args:
        target: Switch this toggle drives.
        on_commit: Receives a CommitEvent at most once per gesture.
        scheduler: Anything with ``call_later(delay, callback)`` returning a
            handle with ``cancel()`` (an asyncio event loop in production).
        drag_threshold: Deadzone half-width for the drag path.
        click_fraction: Deadzone half-width for the click path, as a fraction
            of the track width.
        recenter_delay: Seconds before the knob springs back to the centre.
        on_position: Optional observer called on every knob movement.
    """

    def __init__(
        self,
        target: Target,
        on_commit: CommitCallback,
        *,
        scheduler: Any,
        drag_threshold: float = DEFAULT_DRAG_THRESHOLD,
        click_fraction: float = DEFAULT_CLICK_FRACTION,
        recenter_delay: float = DEFAULT_RECENTER_DELAY_SEC,
        on_position: PositionCallback = None,
    ) -> None:
        self.target = target
        self.on_commit = on_commit
        self.on_position = on_position
        self.drag_threshold = float(drag_threshold)
        self.click_fraction = float(click_fraction)
        self.recenter_delay = float(recenter_delay)

        self._scheduler = scheduler
        self._state = GestureState()
        self._generation = 0
        self._timer: Optional[Any] = None
        # Set when pointer_up committed; the browser's trailing click is the same gesture.
        self._swallow_click = False

    # ----------------- Introspection -----------------
    @property
    def state(self) -> GestureState:
        """Copy of the current gesture state."""
        return GestureState(self._state.position, self._state.dragging)

    @property
    def position(self) -> Zone:
        return self._state.position

    @property
    def dragging(self) -> bool:
        return self._state.dragging

    @property
    def generation(self) -> int:
        return self._generation

    # ----------------- Drag path -----------------
    def pointer_down(self) -> None:
        self._state.dragging = True
        self._swallow_click = False

    def pointer_move(self, x: float, geometry: TrackGeometry) -> None:
        if not self._state.dragging:
            return
        self._set_position(classify(float(x), geometry.center, self.drag_threshold))

    def pointer_up(self) -> Optional[Direction]:
        """Finish a drag. Returns the committed direction, if any."""
        if not self._state.dragging:
            return None
        direction = self._direction_for(self._state.position)
        self._state.dragging = False
        if direction is not None:
            self._swallow_click = True
            self._commit(direction)
        return direction

    def pointer_leave(self) -> Optional[Direction]:
        """Leaving the track while pressed ends the drag exactly like a release."""
        direction = self.pointer_up()
        self._swallow_click = False
        return direction

    # ----------------- Click path -----------------
    def click(self, x: float, geometry: TrackGeometry) -> Optional[Direction]:
        if self._swallow_click:
            self._swallow_click = False
            logger.debug("Switch %s: click after drag commit ignored", self.target)
            return None

        threshold = geometry.width * self.click_fraction
        zone = classify(float(x), geometry.center, threshold)
        direction = self._direction_for(zone)
        if direction is None:
            return None
        self._set_position(zone)
        self._commit(direction)
        return direction

    # ----------------- Internals -----------------
    @staticmethod
    def _direction_for(zone: Zone) -> Optional[Direction]:
        if zone is Zone.LEFT:
            return Direction.LEFT
        if zone is Zone.RIGHT:
            return Direction.RIGHT
        return None

    def _commit(self, direction: Direction) -> None:
        logger.debug("Switch %s: commit %s", self.target, direction.value)
        self.on_commit(CommitEvent(self.target, direction))

    def _set_position(self, zone: Zone) -> None:
        if zone is self._state.position:
            return
        self._state.position = zone
        self._generation += 1
        self._cancel_timer()
        if zone is not Zone.CENTER:
            generation = self._generation
            self._timer = self._scheduler.call_later(
                self.recenter_delay, lambda: self._recenter(generation)
            )
        self._notify()

    def _recenter(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._timer = None
        self._set_position(Zone.CENTER)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self) -> None:
        if self.on_position:
            self.on_position(self.target, self.state)

    def close(self) -> None:
        """Drop any pending recenter timer (e.g. on shutdown)."""
        self._generation += 1
        self._cancel_timer()
