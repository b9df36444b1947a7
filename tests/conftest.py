from typing import Any, Callable, List, Optional

import pytest

from servo_types import CommitEvent, TrackGeometry
from state import PanelState


class FakeHandle:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock with a ``call_later`` compatible with asyncio loops.

    ``honor_cancel=False`` fires cancelled handles too, which lets tests prove
    that a superseded timer is harmless even if cancellation never happened.
    """

    def __init__(self, honor_cancel: bool = True) -> None:
        self.now = 0.0
        self.honor_cancel = honor_cancel
        self._handles: List[FakeHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(self.now + delay, callback)
        self._handles.append(handle)
        return handle

    def _live(self, handle: FakeHandle) -> bool:
        return not (self.honor_cancel and handle.cancelled)

    @property
    def pending(self) -> List[FakeHandle]:
        return [h for h in self._handles if not h.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self._handles if self._live(h) and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self._handles.remove(handle)
            self.now = handle.when
            handle.callback()
        self.now = target


class CommitSink:
    """Records CommitEvents emitted by a toggle."""

    def __init__(self) -> None:
        self.events: List[CommitEvent] = []

    def __call__(self, event: CommitEvent) -> None:
        self.events.append(event)

    @property
    def directions(self) -> List[Any]:
        return [e.direction for e in self.events]


class UpdateRecorder:
    """Collects payloads sent to a panel's update_callback."""

    def __init__(self) -> None:
        self.payloads: List[Any] = []

    def __call__(self, payload: Any) -> None:
        self.payloads.append(payload)

    def events(self, switch: Optional[int] = None) -> List[str]:
        return [
            p["event"]
            for p in self.payloads
            if isinstance(p, dict) and (switch is None or p.get("switch") == switch)
        ]


@pytest.fixture(autouse=True)
def clean_panel_state(monkeypatch):
    monkeypatch.setattr(PanelState, "_CONFIG_FILE", PanelState._CONFIG_FILE)
    PanelState.reset()
    PanelState.reset_config()
    yield
    PanelState.reset()
    PanelState.reset_config()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def sink() -> CommitSink:
    return CommitSink()


@pytest.fixture
def track() -> TrackGeometry:
    # Centre at 48; drag deadzone 18..78 with the default threshold of 30.
    return TrackGeometry(left=0.0, width=96.0)
