"""Conversion of a solve result into the outbound simulator command."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from .state import ActuatorCommand


@dataclass(frozen=True)
class ControlOutput:
    """Outbound command for one tick.

    Attributes:
        steering: Steering normalized to [-1, 1] (steering / max_steer)
        throttle: Throttle in [-1, 1]
        mpc_x, mpc_y: Predicted trajectory in the body frame
        next_x, next_y: Reference curve samples in the body frame
    """

    steering: float
    throttle: float
    mpc_x: List[float] = field(default_factory=list)
    mpc_y: List[float] = field(default_factory=list)
    next_x: List[float] = field(default_factory=list)
    next_y: List[float] = field(default_factory=list)

    def to_message(self) -> Dict[str, Any]:
        """JSON-serializable payload of the simulator's "steer" event."""
        return {
            "steering_angle": self.steering,
            "throttle": self.throttle,
            "mpc_x": list(self.mpc_x),
            "mpc_y": list(self.mpc_y),
            "next_x": list(self.next_x),
            "next_y": list(self.next_y),
        }


def _as_list(values: Sequence[float]) -> List[float]:
    return [float(v) for v in values]


def package(
    command: ActuatorCommand,
    max_steer: float,
    predicted_xy: Tuple[Sequence[float], Sequence[float]] = ((), ()),
    reference_xy: Tuple[Sequence[float], Sequence[float]] = ((), ()),
) -> ControlOutput:
    """Build the outbound command.

    Steering is converted from radians to the simulator's [-1, 1] convention
    by dividing by the steering lock. Both channels are clipped to [-1, 1].

    Args:
        command: Command to apply, in model units
        max_steer: Steering lock (rad)
        predicted_xy: Predicted (x, y) positions, body frame
        reference_xy: Reference curve samples (x, y), body frame

    Returns:
        ControlOutput ready to serialize
    """
    steering = float(np.clip(command.steering / max_steer, -1.0, 1.0))
    throttle = float(np.clip(command.throttle, -1.0, 1.0))

    return ControlOutput(
        steering=steering,
        throttle=throttle,
        mpc_x=_as_list(predicted_xy[0]),
        mpc_y=_as_list(predicted_xy[1]),
        next_x=_as_list(reference_xy[0]),
        next_y=_as_list(reference_xy[1]),
    )
