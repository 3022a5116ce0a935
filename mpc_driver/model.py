"""
Kinematic bicycle model of the vehicle.

This module provides the vehicle motion model shared by the latency
compensator and the MPC solver:
    x'    = x + v * cos(psi) * dt
    y'    = y + v * sin(psi) * dt
    psi'  = psi - v * steering / Lf * dt
    v'    = v + throttle * dt
    cte'  = (f(x) - y) + v * sin(epsi) * dt
    epsi' = (psi - atan(f'(x))) - v * steering / Lf * dt

where f is the reference curve and Lf the distance from the center of mass
to the front axle.
"""

import math
from typing import Sequence, Tuple

import numpy as np

from .path import polyeval, tangent_heading
from .state import ActuatorCommand, Pose


def normalize_angle(angle: float) -> float:
    """Wrap an angle to [-pi, pi]."""
    return math.atan2(math.sin(angle), math.cos(angle))


def compensate_latency(
    pose: Pose, speed: float, applied: ActuatorCommand, latency: float, lf: float
) -> Tuple[Pose, float]:
    """
    Project the pose and speed forward by the actuation latency.

    The command computed this tick only takes effect after `latency` seconds,
    during which the vehicle keeps executing `applied`. A single bicycle-model
    step over that window gives the state to plan from.

    Args:
        pose: Measured map-frame pose
        speed: Measured speed
        applied: Command being executed during the latency window
        latency: Actuation latency in seconds (0 disables compensation)
        lf: Center of mass to front axle distance (m)

    Returns:
        tuple[Pose, float]: Predicted pose and speed at now + latency

    Example:
        >>> pose, v = compensate_latency(Pose(0.0, 0.0, 0.0), 10.0, ActuatorCommand(0.0, 0.5), 0.1, 2.67)
        >>> # pose.x == 1.0, v == 10.05
    """
    if latency == 0.0:
        return pose, speed

    x = pose.x + speed * math.cos(pose.psi) * latency
    y = pose.y + speed * math.sin(pose.psi) * latency
    psi = pose.psi - speed * applied.steering / lf * latency
    v = speed + applied.throttle * latency

    return Pose(x, y, normalize_angle(psi)), v


def step(
    state: Sequence[float], steering: float, throttle: float, coeffs: Sequence[float], dt: float, lf: float
) -> np.ndarray:
    """Advance the 6-scalar state (x, y, psi, v, cte, epsi) by one horizon step."""
    x, y, psi, v, _cte, epsi = state
    f0 = polyeval(coeffs, x)
    psides0 = tangent_heading(coeffs, x)
    return np.array(
        [
            x + v * math.cos(psi) * dt,
            y + v * math.sin(psi) * dt,
            psi - v * steering / lf * dt,
            v + throttle * dt,
            (f0 - y) + v * math.sin(epsi) * dt,
            (psi - psides0) - v * steering / lf * dt,
        ],
        dtype=float,
    )


def rollout(
    state: Sequence[float], actuators: np.ndarray, coeffs: Sequence[float], dt: float, lf: float
) -> np.ndarray:
    """
    Simulate the model from `state` under a sequence of actuator pairs.

    Args:
        state: Initial 6-scalar state
        actuators: Array of shape (M, 2) with (steering, throttle) rows
        coeffs: Reference curve coefficients
        dt: Step duration (s)
        lf: Center of mass to front axle distance (m)

    Returns:
        Array of shape (M + 1, 6); row 0 is the initial state
    """
    states = np.empty((len(actuators) + 1, 6), dtype=float)
    states[0] = np.asarray(state, dtype=float)
    for t, (steering, throttle) in enumerate(actuators):
        states[t + 1] = step(states[t], steering, throttle, coeffs, dt, lf)
    return states
