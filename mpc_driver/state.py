"""Value types passed between pipeline stages.

All types are immutable and owned by a single tick of the control loop.
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

import numpy as np


@dataclass(frozen=True)
class Pose:
    """Vehicle pose in the map frame.

    Attributes:
        x: Position x (m)
        y: Position y (m)
        psi: Heading (rad), counter-clockwise from the map x-axis
    """

    x: float
    y: float
    psi: float


@dataclass(frozen=True)
class ActuatorCommand:
    """Steering and throttle in model units.

    Steering is in radians. Positive steering turns the vehicle to the right,
    since the model integrates heading as psi - v * steering / Lf * dt.
    """

    steering: float
    throttle: float

    @classmethod
    def zero(cls) -> "ActuatorCommand":
        """Neutral command: wheels straight, no throttle."""
        return cls(0.0, 0.0)


@dataclass(frozen=True)
class VehicleState:
    """The 6-scalar state the optimizer plans from.

    After latency compensation and the body-frame transform the vehicle is
    the origin, so x, y and psi are zero.
    """

    x: float
    y: float
    psi: float
    v: float
    cte: float
    epsi: float

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.psi, self.v, self.cte, self.epsi], dtype=float)


@dataclass(frozen=True)
class Telemetry:
    """One inbound telemetry sample from the simulator.

    Attributes:
        ptsx: Waypoint x coordinates in the map frame, in map order
        ptsy: Waypoint y coordinates in the map frame
        pose: Measured vehicle pose
        speed: Measured speed
        applied: Command the vehicle is currently executing (model units)
    """

    ptsx: Tuple[float, ...]
    ptsy: Tuple[float, ...]
    pose: Pose
    speed: float
    applied: ActuatorCommand

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "Telemetry":
        """Build telemetry from the simulator's JSON payload.

        Args:
            data: Payload with keys ptsx, ptsy, x, y, psi, speed,
                steering_angle (radians) and throttle.

        Returns:
            Parsed telemetry.

        Raises:
            ValueError: If a key is missing or the waypoint lists differ in length.
        """
        try:
            ptsx = tuple(float(v) for v in data["ptsx"])
            ptsy = tuple(float(v) for v in data["ptsy"])
            pose = Pose(float(data["x"]), float(data["y"]), float(data["psi"]))
            speed = float(data["speed"])
            applied = ActuatorCommand(float(data["steering_angle"]), float(data["throttle"]))
        except KeyError as e:
            raise ValueError(f"Telemetry is missing field {e}") from e
        except TypeError as e:
            raise ValueError(f"Telemetry has a malformed field: {e}") from e

        if len(ptsx) != len(ptsy):
            raise ValueError(
                f"Waypoint coordinate lists differ in length: {len(ptsx)} vs {len(ptsy)}"
            )

        return cls(ptsx=ptsx, ptsy=ptsy, pose=pose, speed=speed, applied=applied)
