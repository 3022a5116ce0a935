"""Map-frame to body-frame coordinate transforms.

The body frame has its origin at the vehicle, x pointing along the heading
and y pointing to the vehicle's left.
"""

from typing import Sequence, Tuple

import numpy as np

from .state import Pose


def map_to_body(
    ptsx: Sequence[float], ptsy: Sequence[float], pose: Pose
) -> Tuple[np.ndarray, np.ndarray]:
    """Transform map-frame points into the body frame of `pose`.

    Each point is translated by (-x, -y) and rotated by -psi:
        x_b =  dx * cos(psi) + dy * sin(psi)
        y_b = -dx * sin(psi) + dy * cos(psi)

    Args:
        ptsx: Map-frame x coordinates
        ptsy: Map-frame y coordinates
        pose: Vehicle pose defining the body frame

    Returns:
        Tuple of (x_body, y_body) arrays

    Raises:
        ValueError: If no points are given or the coordinate lists differ in length.
    """
    px = np.asarray(ptsx, dtype=float)
    py = np.asarray(ptsy, dtype=float)
    if px.size == 0 or px.shape != py.shape:
        raise ValueError("map_to_body needs a non-empty, equal-length set of points")

    dx = px - pose.x
    dy = py - pose.y
    cos_psi = np.cos(pose.psi)
    sin_psi = np.sin(pose.psi)

    x_body = dx * cos_psi + dy * sin_psi
    y_body = -dx * sin_psi + dy * cos_psi
    return x_body, y_body


def body_to_map(
    xs: Sequence[float], ys: Sequence[float], pose: Pose
) -> Tuple[np.ndarray, np.ndarray]:
    """Inverse of `map_to_body`: rotate by +psi, then translate by (x, y)."""
    bx = np.asarray(xs, dtype=float)
    by = np.asarray(ys, dtype=float)
    if bx.size == 0 or bx.shape != by.shape:
        raise ValueError("body_to_map needs a non-empty, equal-length set of points")

    cos_psi = np.cos(pose.psi)
    sin_psi = np.sin(pose.psi)

    x_map = bx * cos_psi - by * sin_psi + pose.x
    y_map = bx * sin_psi + by * cos_psi + pose.y
    return x_map, y_map
