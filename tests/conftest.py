"""
Shared fixtures for the MPC driver tests.
"""

import dataclasses

import numpy as np
import pytest

from mpc_driver.config import MPCConfig
from mpc_driver.controller import MPCController
from mpc_driver.frame import body_to_map
from mpc_driver.mpc import MPCSolver
from mpc_driver.state import ActuatorCommand, Pose, Telemetry


def build_telemetry(body_x, body_y, pose=Pose(0.0, 0.0, 0.0), speed=10.0, applied=None):
    """Telemetry whose waypoints sit at the given body-frame positions relative to `pose`."""
    if applied is None:
        applied = ActuatorCommand.zero()
    ptsx, ptsy = body_to_map(body_x, body_y, pose)
    return Telemetry(
        ptsx=tuple(float(v) for v in ptsx),
        ptsy=tuple(float(v) for v in ptsy),
        pose=pose,
        speed=speed,
        applied=applied,
    )


@pytest.fixture(scope="session")
def config():
    # Generous CPU budget so slow CI machines do not trip the divergence fallback
    return dataclasses.replace(MPCConfig(), max_cpu_time=5.0)


@pytest.fixture(scope="session")
def solver(config):
    return MPCSolver(config)


@pytest.fixture(scope="session")
def controller(config):
    return MPCController(config)


@pytest.fixture
def make_telemetry():
    return build_telemetry


@pytest.fixture
def straight_road():
    """Six waypoints on a straight line 0.3m to the left of the vehicle."""
    xs = np.arange(0.0, 60.0, 10.0)
    return xs, np.full_like(xs, 0.3)


@pytest.fixture
def sharp_left():
    """Six waypoints on a left-hand curve of radius ~10m at the vehicle."""
    xs = np.arange(0.0, 30.0, 5.0)
    return xs, 0.05 * xs**2
