"""
Tests for the outbound command packager.
"""

import math

import pytest

from mpc_driver.packager import package
from mpc_driver.state import ActuatorCommand

MAX_STEER = math.radians(25.0)


def test_steering_is_normalized_by_steering_lock():
    out = package(ActuatorCommand(MAX_STEER / 2, 0.3), MAX_STEER)

    assert out.steering == pytest.approx(0.5)
    assert out.throttle == pytest.approx(0.3)


@pytest.mark.parametrize(
    "steering, throttle, expected",
    [
        (2 * MAX_STEER, 0.0, (1.0, 0.0)),
        (-3 * MAX_STEER, 0.0, (-1.0, 0.0)),
        (0.0, 1.7, (0.0, 1.0)),
        (0.0, -4.0, (0.0, -1.0)),
    ],
)
def test_out_of_range_commands_are_clipped(steering, throttle, expected):
    out = package(ActuatorCommand(steering, throttle), MAX_STEER)

    assert (out.steering, out.throttle) == pytest.approx(expected)


def test_message_layout():
    out = package(
        ActuatorCommand(0.1, 0.2),
        MAX_STEER,
        predicted_xy=([1.0, 2.0], [0.0, 0.1]),
        reference_xy=([2.5, 5.0], [0.2, 0.4]),
    )

    message = out.to_message()

    assert set(message) == {"steering_angle", "throttle", "mpc_x", "mpc_y", "next_x", "next_y"}
    assert message["mpc_x"] == [1.0, 2.0]
    assert message["next_y"] == [0.2, 0.4]
    assert all(isinstance(v, float) for v in message["mpc_y"])


def test_fallback_output_has_empty_trajectories():
    message = package(ActuatorCommand.zero(), MAX_STEER).to_message()

    assert message["mpc_x"] == message["mpc_y"] == []
    assert message["next_x"] == message["next_y"] == []
