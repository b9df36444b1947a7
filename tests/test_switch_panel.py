import asyncio
import json

import httpx
import pytest

from conftest import UpdateRecorder
from servo_dispatch import ServoDispatcher
from servo_types import CommitEvent, Direction, OutcomeKind, SwitchState, TrackGeometry
from state import PanelState
from switch_panel import SwitchPanel

TRACK = TrackGeometry(left=0.0, width=96.0)


def run_panel(handler, scenario, *, timeout=4.0, switches=range(1, 6)):
    """Run ``scenario(panel, updates)`` with a panel wired to a MockTransport endpoint."""

    async def _main():
        updates = UpdateRecorder()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            dispatcher = ServoDispatcher("http://esp.test", client=client, timeout=timeout)
            panel = SwitchPanel(
                dispatcher,
                loop=asyncio.get_running_loop(),
                switches=switches,
                update_callback=updates,
            )
            try:
                return await scenario(panel, updates)
            finally:
                panel.close()

    return asyncio.run(_main())


def ok(request):
    return httpx.Response(200, text="done")


def test_success_keeps_optimistic_on():
    async def scenario(panel, updates):
        task = panel.commit(CommitEvent(3, Direction.RIGHT))
        assert PanelState.get_switch_status(3) is SwitchState.ON
        assert PanelState.get_message() == "Switch 3 → ON"
        outcome = await task
        return outcome, updates

    outcome, updates = run_panel(ok, scenario)
    assert outcome.kind is OutcomeKind.SUCCESS
    assert PanelState.get_switch_status(3) is SwitchState.ON
    assert PanelState.get_message() == "Switch 3 activated successfully"
    assert updates.events(3) == ["commit", "outcome"]


def test_optimistic_status_is_written_before_the_request_is_sent():
    during_request = []

    def handler(request):
        sw = json.loads(request.content)["switch"]
        during_request.append(PanelState.get_switch_status(sw))
        return httpx.Response(200)

    async def scenario(panel, updates):
        await panel.commit(CommitEvent(2, Direction.LEFT))

    run_panel(handler, scenario)
    assert during_request == [SwitchState.OFF]
    assert PanelState.get_message() == "Switch 2 deactivated successfully"


def test_timeout_reverts_to_unknown_after_the_bound():
    async def never(request):
        await asyncio.Event().wait()

    async def scenario(panel, updates):
        loop = asyncio.get_running_loop()
        start = loop.time()
        task = panel.commit(CommitEvent(4, Direction.LEFT))
        assert PanelState.get_switch_status(4) is SwitchState.OFF
        outcome = await task
        return outcome, loop.time() - start

    outcome, elapsed = run_panel(never, scenario, timeout=0.25)
    assert outcome.kind is OutcomeKind.TIMEOUT
    assert 0.24 <= elapsed < 0.4
    assert PanelState.get_switch_status(4) is SwitchState.UNKNOWN
    assert PanelState.get_message() == "OFF failed (Switch 4): not responding"


def test_error_status_reverts_to_unknown_with_diagnostic():
    async def scenario(panel, updates):
        outcome = await panel.commit(CommitEvent(1, Direction.RIGHT))
        return outcome, updates

    outcome, updates = run_panel(lambda r: httpx.Response(500, text="brownout"), scenario)
    assert outcome.kind is OutcomeKind.FAILURE
    assert outcome.reason
    assert PanelState.get_switch_status(1) is SwitchState.UNKNOWN
    assert PanelState.get_message() == "ON failed (Switch 1): HTTP 500 brownout"
    final = updates.payloads[-1]
    assert final["event"] == "outcome" and final["status"] == "unknown" and final["outcome"] == "failure"


def _gated_handler(gates, results):
    async def handler(request):
        state = json.loads(request.content)["state"]
        await gates[state].wait()
        return httpx.Response(results[state])

    return handler


@pytest.mark.parametrize(
    "results, expected",
    [
        ({1: 200, 0: 200}, SwitchState.ON),
        ({1: 500, 0: 200}, SwitchState.UNKNOWN),
    ],
)
def test_overlapping_commands_last_resolved_wins(results, expected):
    gates = {}

    async def scenario(panel, updates):
        gates[0], gates[1] = asyncio.Event(), asyncio.Event()
        first = panel.commit(CommitEvent(5, Direction.RIGHT))   # issued first
        second = panel.commit(CommitEvent(5, Direction.LEFT))   # issued last
        assert PanelState.get_switch_status(5) is SwitchState.OFF

        gates[0].set()               # the later command resolves first ...
        await second
        assert PanelState.get_switch_status(5) is SwitchState.OFF
        gates[1].set()               # ... and the earlier one resolves last
        await first

    run_panel(_gated_handler(gates, results), scenario)
    assert PanelState.get_switch_status(5) is expected


def test_gesture_flows_into_dispatch():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200)

    async def scenario(panel, updates):
        panel.handle_pointer(2, "down")
        panel.handle_pointer(2, "move", 90, TRACK)
        panel.handle_pointer(2, "up")
        await asyncio.sleep(0.05)
        panel.handle_click(3, 1, TRACK)
        await asyncio.sleep(0.05)
        return updates

    updates = run_panel(handler, scenario)
    assert bodies == [{"switch": 2, "state": 1}, {"switch": 3, "state": 0}]
    assert PanelState.get_switch_status(2) is SwitchState.ON
    assert PanelState.get_switch_status(3) is SwitchState.OFF
    assert "position" in updates.events(2)


def test_knob_recenters_on_the_event_loop():
    async def scenario(panel, updates):
        panel.handle_pointer(1, "down")
        panel.handle_pointer(1, "move", 2, TRACK)
        assert panel.toggle(1).position.value == "left"
        await asyncio.sleep(0.3)
        return panel.toggle(1).position.value

    assert run_panel(ok, scenario) == "center"


def test_invalid_events_are_rejected():
    async def scenario(panel, updates):
        with pytest.raises(ValueError):
            panel.handle_pointer(99, "down")
        with pytest.raises(ValueError):
            panel.handle_pointer(1, "hover")
        with pytest.raises(ValueError):
            panel.handle_pointer(1, "move")
        with pytest.raises(ValueError):
            panel.toggle("abc")

    run_panel(ok, scenario)


def test_button_pad_toggles_on_success():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200)

    async def scenario(panel, updates):
        await panel.press_button("up")
        first = PanelState.get_message()
        await panel.press_button("up")
        return first

    first = run_panel(handler, scenario)
    assert first == "UP activated"
    assert PanelState.get_message() == "UP deactivated"
    assert PanelState.get_button_states() == {"up": False}
    assert bodies == [[0, 45, 90], [0, 45, 90]]


def test_button_pad_ac_messages():
    async def scenario(panel, updates):
        await panel.run_button("A")
        off = PanelState.get_message()
        await panel.run_button("B")
        return off

    assert run_panel(ok, scenario) == "AC is turned off"
    assert PanelState.get_message() == "AC is turned on"


def test_button_pad_error_status_still_counts_as_delivered():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(502)

    async def scenario(panel, updates):
        return await panel.run_button("mystery")

    outcome = run_panel(handler, scenario)
    assert not outcome.ok
    assert bodies == [[90]]
    assert PanelState.get_message() == "MYSTERY activated"
    assert PanelState.get_button_states() == {"mystery": True}


def test_button_pad_without_response_keeps_state():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario(panel, updates):
        await panel.run_button("A")
        ac = PanelState.get_message()
        await panel.run_button("up")
        return ac, updates

    ac, updates = run_panel(handler, scenario)
    assert ac == "Error: ESP32 Not Responding"
    assert PanelState.get_message() == "Error: ESP32 Not Responding"
    assert PanelState.get_button_states() == {}
    assert "active" not in updates.payloads[-1]


def test_unexpected_transport_error_reverts_to_unknown():
    def handler(request):
        raise RuntimeError("socket closed mid-write")

    async def scenario(panel, updates):
        return await panel.commit(CommitEvent(2, Direction.RIGHT))

    outcome = run_panel(handler, scenario)
    assert outcome.kind is OutcomeKind.FAILURE
    assert PanelState.get_switch_status(2) is SwitchState.UNKNOWN
    assert PanelState.get_message() == "ON failed (Switch 2): RuntimeError: socket closed mid-write"


def test_snapshot_reports_statuses_and_positions():
    async def scenario(panel, updates):
        await panel.commit(CommitEvent(1, Direction.RIGHT))
        return panel.snapshot()

    snap = run_panel(ok, scenario, switches=[1, 2])
    assert snap["switches"] == {
        "1": {"status": "on", "position": "center"},
        "2": {"status": "unknown", "position": "center"},
    }
    assert snap["msg"] == "Switch 1 activated successfully"


def test_from_config_uses_configured_thresholds():
    PanelState.update_config({"DRAG_THRESHOLD": 5, "RECENTER_DELAY_SEC": 1.5, "SWITCH_COUNT": 4})

    async def _main():
        async with httpx.AsyncClient() as client:
            dispatcher = ServoDispatcher("http://esp.test", client=client)
            return SwitchPanel.from_config(dispatcher, loop=asyncio.get_running_loop())

    panel = asyncio.run(_main())
    assert sorted(panel.toggles) == [1, 2, 3, 4]
    assert panel.toggle(1).drag_threshold == 5.0
    assert panel.toggle(1).recenter_delay == 1.5
