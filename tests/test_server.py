"""
Tests for the simulator bridge: frame parsing, sessions and CSV recording.
"""

import asyncio
import csv
import json

import numpy as np
import pytest

from mpc_driver.data_collector import CONTROL_COLUMNS, TELEMETRY_COLUMNS, DataCollector
from mpc_driver.frame import body_to_map
from mpc_driver.server import MANUAL_MESSAGE, DrivingSession, extract_payload, format_event
from mpc_driver.state import Pose


def telemetry_message(body_x, body_y, pose=Pose(0.0, 0.0, 0.0), speed=10.0):
    ptsx, ptsy = body_to_map(body_x, body_y, pose)
    return {
        "ptsx": [float(v) for v in ptsx],
        "ptsy": [float(v) for v in ptsy],
        "x": pose.x,
        "y": pose.y,
        "psi": pose.psi,
        "speed": speed,
        "steering_angle": 0.0,
        "throttle": 0.0,
    }


def telemetry_frame(message):
    return "42" + json.dumps(["telemetry", message])


@pytest.fixture
def curve_message():
    xs = np.arange(0.0, 30.0, 5.0)
    return telemetry_message(xs, 0.02 * xs**2)


class FakeWebSocket:
    """Replays a list of frames and records what is sent back."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.sent = []

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame

    async def send(self, message):
        self.sent.append(message)


def test_extract_payload():
    frame = '42["telemetry",{"x":1.0,"ptsx":[1,2]}]'

    assert extract_payload(frame) == '["telemetry",{"x":1.0,"ptsx":[1,2]}]'


def test_extract_payload_null_frame():
    assert extract_payload('42["telemetry",null]') is None


def test_extract_payload_without_object():
    assert extract_payload('42["ping"]') is None


def test_format_event():
    assert format_event("manual", {}) == MANUAL_MESSAGE


def test_non_event_frames_are_ignored(controller):
    session = DrivingSession(controller, actuation_delay=0.0)

    assert session.handle_frame("2") == (None, False)
    assert session.handle_frame("0{\"sid\":\"abc\"}") == (None, False)


def test_null_telemetry_gets_manual_reply(controller):
    session = DrivingSession(controller, actuation_delay=0.0)

    assert session.handle_frame('42["telemetry",null]') == (MANUAL_MESSAGE, False)
    assert session.ticks == 0


def test_other_events_are_ignored(controller):
    session = DrivingSession(controller, actuation_delay=0.0)

    assert session.handle_frame('42["reset",{"a":1}]') == (None, False)


def test_malformed_telemetry_is_dropped(controller, curve_message):
    session = DrivingSession(controller, actuation_delay=0.0)
    del curve_message["speed"]

    assert session.handle_frame(telemetry_frame(curve_message)) == (None, False)
    assert session.ticks == 0


def test_telemetry_frame_gets_steer_reply(controller, curve_message):
    session = DrivingSession(controller, actuation_delay=0.0)

    reply, delayed = session.handle_frame(telemetry_frame(curve_message).encode("utf-8"))

    assert delayed is True
    assert reply.startswith('42["steer",')
    event, payload = json.loads(reply[2:])
    assert event == "steer"
    assert -1.0 <= payload["steering_angle"] <= 1.0
    assert len(payload["mpc_x"]) == controller.config.horizon - 1
    assert session.ticks == 1
    assert session.memory.warm_start is not None


def test_session_records_every_tick(controller, curve_message, tmp_path):
    run_dir = tmp_path / "run"
    with DataCollector(run_dir=str(run_dir)) as collector:
        session = DrivingSession(controller, collector, actuation_delay=0.0)
        session.handle_telemetry(curve_message, timestamp=1.0)
        session.handle_telemetry(telemetry_message([0.0, 1.0], [0.0, 0.0]), timestamp=2.0)

    with open(run_dir / "telemetry_data.csv", newline="") as f:
        telemetry_rows = list(csv.DictReader(f))
    with open(run_dir / "control_data.csv", newline="") as f:
        control_rows = list(csv.DictReader(f))

    assert list(telemetry_rows[0]) == TELEMETRY_COLUMNS
    assert list(control_rows[0]) == CONTROL_COLUMNS
    assert len(telemetry_rows) == len(control_rows) == 2
    assert telemetry_rows[1]["n_waypoints"] == "2"
    assert control_rows[0]["fallback"] == ""
    assert control_rows[0]["status"] != ""
    assert control_rows[1]["fallback"] == "DegenerateFit"
    assert control_rows[1]["status"] == ""
    assert control_rows[1]["cte"] == ""


def test_run_replies_to_each_frame(controller, curve_message):
    session = DrivingSession(controller, actuation_delay=0.01)
    websocket = FakeWebSocket(
        [
            "0{}",
            '42["telemetry",null]',
            telemetry_frame(curve_message),
        ]
    )

    asyncio.run(session.run(websocket))

    assert websocket.sent[0] == MANUAL_MESSAGE
    assert websocket.sent[1].startswith('42["steer",')
    assert len(websocket.sent) == 2


def test_undecodable_binary_frame_is_dropped(controller):
    session = DrivingSession(controller, actuation_delay=0.0)

    assert session.handle_frame(b'42["telemetry",\xff]') == (None, False)
    assert session.ticks == 0


def test_concurrent_sessions_are_told_apart_in_csv(controller, curve_message, tmp_path):
    run_dir = tmp_path / "shared"
    with DataCollector(run_dir=str(run_dir)) as collector:
        first = DrivingSession(controller, collector, actuation_delay=0.0, session_id=1)
        second = DrivingSession(controller, collector, actuation_delay=0.0, session_id=2)
        first.handle_telemetry(curve_message, timestamp=1.0)
        second.handle_telemetry(curve_message, timestamp=1.05)
        first.handle_telemetry(curve_message, timestamp=1.1)

    with open(run_dir / "telemetry_data.csv", newline="") as f:
        telemetry_sessions = [row["session"] for row in csv.DictReader(f)]
    with open(run_dir / "control_data.csv", newline="") as f:
        control_sessions = [row["session"] for row in csv.DictReader(f)]

    assert telemetry_sessions == ["1", "2", "1"]
    assert control_sessions == ["1", "2", "1"]
