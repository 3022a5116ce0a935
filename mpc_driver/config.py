"""Configuration parameters for the MPC driving controller.

This module centralizes all configuration parameters including:
- Physical vehicle parameters
- Actuation latency
- Prediction horizon and solver budget
- Cost function weights
- Reference curve fitting
- WebSocket server parameters

All parameters are documented with their purpose, valid ranges, and tuning rationale.
The values are fixed at process start; `MPCConfig` bundles them and is validated
once before the control loop runs.
"""

import math
from dataclasses import dataclass, field

from .errors import InvalidConfiguration

# ============================================================================
# Physical Vehicle Parameters
# ============================================================================

LF = 2.67
"""Distance from the center of mass to the front axle (meters).

Calibrated by driving the simulator vehicle in a circle at constant steering
angle and speed until the simulated radius matched the model radius.
"""

MAX_STEER = math.radians(25.0)
"""Steering lock (radians). Physical limit of the steering rack, ±25°."""

THROTTLE_MIN = -1.0
"""Minimum throttle (full brake). Actuator limit."""

THROTTLE_MAX = 1.0
"""Maximum throttle. Actuator limit."""


# ============================================================================
# Latency
# ============================================================================

LATENCY = 0.1
"""Actuation latency (seconds) used to project the state forward.

Matches ACTUATION_DELAY below: a command computed now only reaches the wheels
100ms later, so the optimizer plans from the pose the vehicle will be in then.
Set to 0.0 for backtesting without a physical delay.
"""


# ============================================================================
# Prediction Horizon
# ============================================================================

HORIZON_STEPS = 10
"""Number of predicted states N (range: [2, 25]).

Tuning rationale:
- N * dt = 1.0s lookahead covers the six waypoints the simulator provides
- Larger N costs solve time without improving the first command much
"""

HORIZON_DT = 0.1
"""Duration of one horizon step (seconds).

Tuning rationale:
- Equal to the latency so one predicted step spans one actuation delay
- Smaller dt (0.05) gives finer control but needs a larger N for the same lookahead
"""

REF_SPEED = 40.0
"""Target cruising speed v_ref (simulator speed units)."""


# ============================================================================
# Cost Weights
# ============================================================================

W_CTE = 2000.0
"""Weight on squared cross-track error.

Tuning rationale:
- Dominant term together with W_EPSI; keeps the vehicle on the path in curves
"""

W_EPSI = 2000.0
"""Weight on squared heading error."""

W_V = 1.0
"""Weight on squared deviation from REF_SPEED.

Tuning rationale:
- Small so the vehicle gives up speed before it gives up the path
"""

W_STEER = 5.0
"""Weight on squared steering effort."""

W_THROTTLE = 5.0
"""Weight on squared throttle effort."""

W_DSTEER = 200.0
"""Weight on squared steering change between consecutive steps.

Tuning rationale:
- Reduced oscillation on straights at 40+ speed; values above 500 make
  curve entry sluggish
"""

W_DTHROTTLE = 10.0
"""Weight on squared throttle change between consecutive steps."""


# ============================================================================
# Reference Curve
# ============================================================================

FIT_ORDER = 3
"""Polynomial order of the reference curve. A cubic fits most road segments."""

MIN_WAYPOINTS = 4
"""Minimum number of waypoints per tick. Must exceed FIT_ORDER."""

REFERENCE_SPACING = 2.5
"""Spacing along the body x-axis of the reference samples sent back (meters)."""

REFERENCE_COUNT = 25
"""Reference samples are taken at REFERENCE_SPACING * i for i in [1, REFERENCE_COUNT)."""


# ============================================================================
# Solver Budget (Ipopt)
# ============================================================================

SOLVER_MAX_ITER = 200
"""Maximum Ipopt iterations per tick."""

SOLVER_MAX_CPU_TIME = 0.5
"""Maximum Ipopt CPU time per tick (seconds)."""

SOLVER_TOL = 1e-6
"""Ipopt convergence tolerance."""

SOLVER_ACCEPTABLE_TOL = 1e-4
"""Ipopt acceptable tolerance; solutions at this level are still applied."""


# ============================================================================
# Visualization Colors
# ============================================================================

PLOT_ORANGE = "#f74823"
"""Primary plot color, used for measured signals and applied commands."""

PLOT_BLUE = "#2374f7"
"""Secondary plot color, used for references and predictions."""

PLOT_TAUPE = "#686a5f"
"""Neutral color for guides, grids, and fallback markers."""

# Terminal color codes (ANSI escape sequences)
TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for the primary orange (RGB: 247, 72, 35)."""

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for complementary blue (RGB: 35, 116, 247)."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""


# ============================================================================
# WebSocket Configuration
# ============================================================================

WS_HOST = "0.0.0.0"
"""Interface the simulator bridge listens on."""

WS_PORT = 4567
"""Port the simulator connects to."""

ACTUATION_DELAY = 0.1
"""Artificial delay before each command is sent back (seconds).

Mimics real driving conditions where the car does not actuate commands
instantly. This is not solver latency; LATENCY above compensates for it.
"""


@dataclass(frozen=True)
class CostWeights:
    """Weights of the MPC cost terms."""

    cte: float = W_CTE
    epsi: float = W_EPSI
    v: float = W_V
    steer: float = W_STEER
    throttle: float = W_THROTTLE
    dsteer: float = W_DSTEER
    dthrottle: float = W_DTHROTTLE

    def as_dict(self) -> dict:
        return {
            "cte": self.cte,
            "epsi": self.epsi,
            "v": self.v,
            "steer": self.steer,
            "throttle": self.throttle,
            "dsteer": self.dsteer,
            "dthrottle": self.dthrottle,
        }


@dataclass(frozen=True)
class MPCConfig:
    """Process-wide controller configuration.

    Defaults come from the module-level constants above. Instances are
    immutable; build a new one with `dataclasses.replace` to override values.

    Attributes:
        horizon: Number of predicted states N.
        dt: Horizon step duration (s).
        latency: Actuation latency compensated before solving (s).
        lf: Center of mass to front axle distance (m).
        max_steer: Steering lock (rad).
        throttle_min: Lower throttle bound.
        throttle_max: Upper throttle bound.
        ref_speed: Target cruising speed.
        weights: Cost function weights.
        fit_order: Reference polynomial order.
        min_waypoints: Fewer waypoints than this make a tick degenerate.
        reference_spacing: Spacing of the reference samples (m).
        reference_count: Number of reference sample slots.
        max_iter: Ipopt iteration budget.
        max_cpu_time: Ipopt CPU time budget (s).
        tol: Ipopt tolerance.
        acceptable_tol: Ipopt acceptable tolerance.
    """

    horizon: int = HORIZON_STEPS
    dt: float = HORIZON_DT
    latency: float = LATENCY
    lf: float = LF
    max_steer: float = MAX_STEER
    throttle_min: float = THROTTLE_MIN
    throttle_max: float = THROTTLE_MAX
    ref_speed: float = REF_SPEED
    weights: CostWeights = field(default_factory=CostWeights)
    fit_order: int = FIT_ORDER
    min_waypoints: int = MIN_WAYPOINTS
    reference_spacing: float = REFERENCE_SPACING
    reference_count: int = REFERENCE_COUNT
    max_iter: int = SOLVER_MAX_ITER
    max_cpu_time: float = SOLVER_MAX_CPU_TIME
    tol: float = SOLVER_TOL
    acceptable_tol: float = SOLVER_ACCEPTABLE_TOL

    def validate(self) -> "MPCConfig":
        """Check every parameter against its valid range.

        Returns:
            Self, so construction and validation can be chained.

        Raises:
            InvalidConfiguration: On the first parameter out of range.
        """
        if self.horizon < 2:
            raise InvalidConfiguration(f"horizon must be >= 2, got {self.horizon}")
        if self.dt <= 0:
            raise InvalidConfiguration(f"dt must be > 0, got {self.dt}")
        if self.latency < 0:
            raise InvalidConfiguration(f"latency must be >= 0, got {self.latency}")
        if self.lf <= 0:
            raise InvalidConfiguration(f"lf must be > 0, got {self.lf}")
        if self.max_steer <= 0:
            raise InvalidConfiguration(f"max_steer must be > 0, got {self.max_steer}")
        if not -1.0 <= self.throttle_min < self.throttle_max <= 1.0:
            raise InvalidConfiguration(
                f"throttle bounds must satisfy -1 <= min < max <= 1, "
                f"got [{self.throttle_min}, {self.throttle_max}]"
            )
        for name, weight in self.weights.as_dict().items():
            if weight < 0:
                raise InvalidConfiguration(f"weight '{name}' must be >= 0, got {weight}")
        if self.fit_order < 1:
            raise InvalidConfiguration(f"fit_order must be >= 1, got {self.fit_order}")
        if self.fit_order >= self.min_waypoints:
            raise InvalidConfiguration(
                f"fit_order ({self.fit_order}) must be below min_waypoints ({self.min_waypoints})"
            )
        if self.reference_spacing <= 0 or self.reference_count < 2:
            raise InvalidConfiguration(
                f"reference sampling needs spacing > 0 and count >= 2, "
                f"got spacing={self.reference_spacing}, count={self.reference_count}"
            )
        if self.max_iter < 1 or self.max_cpu_time <= 0:
            raise InvalidConfiguration(
                f"solver budget must be positive, got max_iter={self.max_iter}, "
                f"max_cpu_time={self.max_cpu_time}"
            )
        if self.tol <= 0 or self.acceptable_tol <= 0:
            raise InvalidConfiguration("solver tolerances must be > 0")
        return self
