"""Per-tick control pipeline.

This module chains the pipeline stages once per telemetry sample:
1. Latency compensation (model.py): project the pose forward by the actuation delay
2. Frame transform (frame.py): waypoints into the compensated body frame
3. Curve fitting (path.py): cubic reference curve through the waypoints
4. Error extraction (path.py): cross-track and heading error at the origin
5. MPC solve (mpc.py): optimal actuator sequence over the horizon
6. Packaging (packager.py): normalized command plus diagnostics

Fallback policy:
- DegenerateFit: the previous command is reused unchanged
- SolverDivergence: the previous steering is held with zero throttle
- InfeasibleProblem: logged and re-raised, never silently recovered

The only state carried between ticks is `ControllerMemory`, which the caller
passes in and receives back explicitly.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from .component_modes import ComponentMode
from .config import MPCConfig
from .errors import DegenerateFit, InfeasibleProblem, SolverDivergence
from .frame import map_to_body
from .model import compensate_latency
from .mpc import MPCSolution, MPCSolver, WarmStart
from .packager import ControlOutput, package
from .path import polyfit, reference_samples, tracking_errors
from .state import ActuatorCommand, Telemetry, VehicleState


@dataclass(frozen=True)
class ControllerMemory:
    """State carried from one tick to the next.

    Attributes:
        last_command: Command emitted on the previous tick (model units)
        warm_start: Previous solution's actuators, None after a fallback
    """

    last_command: ActuatorCommand = field(default_factory=ActuatorCommand.zero)
    warm_start: Optional[WarmStart] = None


@dataclass(frozen=True)
class TickResult:
    """Everything one tick produced.

    Attributes:
        output: Command to send to the simulator
        memory: Memory to pass into the next tick
        state: Compensated body-frame state (None if the fit failed)
        coeffs: Reference curve coefficients (None if the fit failed)
        solution: Solver result (None on any fallback)
        fallback: Name of the recovered error, None on a normal tick
    """

    output: ControlOutput
    memory: ControllerMemory
    state: Optional[VehicleState] = None
    coeffs: Optional[np.ndarray] = None
    solution: Optional[MPCSolution] = None
    fallback: Optional[str] = None


class MPCController:
    """Runs the full control pipeline for one tick at a time.

    Attributes:
        config: Validated controller configuration
        mode: Active pipeline components
        solver: MPC solver built from the configuration
    """

    def __init__(self, config: Optional[MPCConfig] = None, mode: Optional[ComponentMode] = None) -> None:
        """Initialize the controller.

        Args:
            config: Controller configuration (default: module constants).
            mode: ComponentMode for backtesting and component isolation.

        Raises:
            InvalidConfiguration: If the configuration is out of range.
        """
        if config is None:
            config = MPCConfig()
        if mode is None:
            mode = ComponentMode()

        self.config: MPCConfig = config.validate()
        self.mode: ComponentMode = mode
        self.solver = MPCSolver(self.config)

    @property
    def latency(self) -> float:
        """Latency actually compensated, 0 when compensation is disabled."""
        return self.config.latency if self.mode.use_latency_compensation else 0.0

    def prepare(self, telemetry: Telemetry) -> Tuple[VehicleState, np.ndarray]:
        """Compensate latency, transform and fit: the solver's inputs.

        Args:
            telemetry: Inbound telemetry sample

        Returns:
            Tuple of (body-frame state, curve coefficients)

        Raises:
            DegenerateFit: If the waypoints cannot support the fit.
        """
        if len(telemetry.ptsx) < self.config.min_waypoints:
            raise DegenerateFit(
                f"{len(telemetry.ptsx)} waypoints received, need at least {self.config.min_waypoints}"
            )

        pose, speed = compensate_latency(
            telemetry.pose, telemetry.speed, telemetry.applied, self.latency, self.config.lf
        )
        xs, ys = map_to_body(telemetry.ptsx, telemetry.ptsy, pose)
        coeffs = polyfit(xs, ys, self.config.fit_order)
        cte, epsi = tracking_errors(coeffs)

        return VehicleState(0.0, 0.0, 0.0, speed, cte, epsi), coeffs

    def step(self, telemetry: Telemetry, memory: Optional[ControllerMemory] = None) -> TickResult:
        """Run one control tick.

        Args:
            telemetry: Inbound telemetry sample
            memory: Memory returned by the previous tick (None on the first tick)

        Returns:
            TickResult with the command to send and the memory for the next tick

        Raises:
            InfeasibleProblem: If the optimization problem has no feasible point.
        """
        if memory is None:
            memory = ControllerMemory()
        max_steer = self.config.max_steer

        try:
            state, coeffs = self.prepare(telemetry)
        except DegenerateFit as e:
            logging.warning(f"Skipping tick, reusing previous command: {e}")
            command = memory.last_command
            return TickResult(
                output=package(command, max_steer),
                memory=ControllerMemory(last_command=command),
                fallback=DegenerateFit.__name__,
            )

        reference_xy = reference_samples(
            coeffs, self.config.reference_spacing, self.config.reference_count
        )
        warm_start = memory.warm_start if self.mode.use_warm_start else None

        try:
            solution, next_warm_start = self.solver.solve(state, coeffs, warm_start)
        except SolverDivergence as e:
            logging.warning(f"{e}; holding steering with zero throttle")
            command = ActuatorCommand(memory.last_command.steering, 0.0)
            return TickResult(
                output=package(command, max_steer, reference_xy=reference_xy),
                memory=ControllerMemory(last_command=command),
                state=state,
                coeffs=coeffs,
                fallback=SolverDivergence.__name__,
            )
        except InfeasibleProblem as e:
            logging.error(f"{e}: state={state}, coeffs={np.round(coeffs, 6).tolist()}")
            raise

        command = solution.command
        return TickResult(
            output=package(command, max_steer, solution.predicted_xy, reference_xy),
            memory=ControllerMemory(last_command=command, warm_start=next_warm_start),
            state=state,
            coeffs=coeffs,
            solution=solution,
        )
