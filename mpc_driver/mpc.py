"""Model Predictive Controller for reference curve tracking.

This module implements the receding-horizon optimization that turns the
latency-compensated vehicle state and the fitted reference curve into an
actuator sequence:
- Decision variables: N states (x, y, psi, v, cte, epsi) and N-1 actuator
  pairs (steering, throttle)
- Equality constraints: initial state and the kinematic bicycle dynamics
  between consecutive steps
- Bounds: steering lock and throttle range
- Cost: tracking and speed error, actuator effort, actuator smoothness

The nonlinear program is built once with CasADi and solved every tick with
Ipopt. The initial state and curve coefficients enter as parameters, so the
same compiled solver serves every tick.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import casadi as ca
import numpy as np

from .config import MPCConfig
from .errors import InfeasibleProblem, SolverDivergence
from .model import rollout
from .state import ActuatorCommand, VehicleState

N_STATE = 6
N_ACTUATOR = 2

UNBOUNDED = 1.0e19
"""Bound used for state variables; Ipopt treats |bound| >= 1e19 as infinite."""

ACCEPTABLE_STATUSES = frozenset({"Solve_Succeeded", "Solved_To_Acceptable_Level"})
INFEASIBLE_STATUSES = frozenset({"Infeasible_Problem_Detected"})


@dataclass(frozen=True)
class MPCSolution:
    """Optimal trajectory returned by one solve.

    Attributes:
        states: Array (N, 6) of predicted states; row 0 is the input state
        actuators: Array (N-1, 2) of (steering, throttle) rows
        cost: Objective value at the solution
        status: Ipopt return status
        iterations: Ipopt iteration count
        solve_time: Wall-clock solve time (s)
    """

    states: np.ndarray
    actuators: np.ndarray
    cost: float
    status: str
    iterations: int
    solve_time: float

    @property
    def command(self) -> ActuatorCommand:
        """First actuator pair, the one applied this tick."""
        return ActuatorCommand(float(self.actuators[0, 0]), float(self.actuators[0, 1]))

    @property
    def predicted_xy(self) -> Tuple[np.ndarray, np.ndarray]:
        """Predicted (x, y) positions for steps 1..N-1 in the body frame."""
        return self.states[1:, 0].copy(), self.states[1:, 1].copy()


@dataclass(frozen=True)
class WarmStart:
    """Actuator sequence carried from one tick's solve into the next.

    Attributes:
        actuators: Array (N-1, 2) from the previous solution
    """

    actuators: np.ndarray


def check_solver_status(stats: Dict[str, Any]) -> str:
    """Map the solver statistics to an outcome.

    Args:
        stats: Dictionary from `casadi.Function.stats()`

    Returns:
        The return status string when the solution is acceptable.

    Raises:
        InfeasibleProblem: If Ipopt proved the constraints infeasible.
        SolverDivergence: For any other unsuccessful return (iteration or CPU
            budget exhausted, restoration failure, ...).
    """
    status = str(stats.get("return_status", "unknown"))
    if status in ACCEPTABLE_STATUSES or (
        stats.get("success", False) and status not in INFEASIBLE_STATUSES
    ):
        return status
    if status in INFEASIBLE_STATUSES:
        raise InfeasibleProblem(f"MPC problem is infeasible ({status})", status=status)
    raise SolverDivergence(f"MPC solver did not converge ({status})", status=status)


class MPCSolver:
    """Receding-horizon solver over the kinematic bicycle model.

    The solver itself keeps no state between ticks. The previous solution's
    actuators are threaded through explicitly as a `WarmStart`.

    Attributes:
        config: Validated controller configuration
        horizon: Number of predicted states N
    """

    def __init__(self, config: MPCConfig):
        """Build the nonlinear program.

        Args:
            config: Controller configuration; validated here.
        """
        self.config = config.validate()
        self.horizon = config.horizon
        self.n_coeffs = config.fit_order + 1
        self.n_state_vars = N_STATE * self.horizon
        self.n_actuator_vars = N_ACTUATOR * (self.horizon - 1)

        self._solver = self._build_nlp()
        self._lbx, self._ubx = self._variable_bounds()

        logging.debug(
            f"MPC built: N={self.horizon}, dt={config.dt}, "
            f"{self.n_state_vars + self.n_actuator_vars} variables, "
            f"{self.n_state_vars} equality constraints"
        )

    def _build_nlp(self) -> ca.Function:
        cfg = self.config
        w = cfg.weights
        N = self.horizon

        X = ca.SX.sym("X", N_STATE, N)
        U = ca.SX.sym("U", N_ACTUATOR, N - 1)
        params = ca.SX.sym("p", N_STATE + self.n_coeffs)
        x0 = params[:N_STATE]
        coeffs = params[N_STATE:]

        def curve(x):
            return sum(coeffs[i] * x**i for i in range(self.n_coeffs))

        def curve_slope(x):
            return sum(i * coeffs[i] * x ** (i - 1) for i in range(1, self.n_coeffs))

        cost = 0
        for t in range(N):
            cost += w.cte * X[4, t] ** 2
            cost += w.epsi * X[5, t] ** 2
            cost += w.v * (X[3, t] - cfg.ref_speed) ** 2

        for t in range(N - 1):
            cost += w.steer * U[0, t] ** 2
            cost += w.throttle * U[1, t] ** 2

        for t in range(N - 2):
            cost += w.dsteer * (U[0, t + 1] - U[0, t]) ** 2
            cost += w.dthrottle * (U[1, t + 1] - U[1, t]) ** 2

        g = [X[:, 0] - x0]
        for t in range(N - 1):
            x, y, psi, v, epsi = X[0, t], X[1, t], X[2, t], X[3, t], X[5, t]
            steering, throttle = U[0, t], U[1, t]
            psides = ca.atan(curve_slope(x))
            predicted = ca.vertcat(
                x + v * ca.cos(psi) * cfg.dt,
                y + v * ca.sin(psi) * cfg.dt,
                psi - v * steering / cfg.lf * cfg.dt,
                v + throttle * cfg.dt,
                (curve(x) - y) + v * ca.sin(epsi) * cfg.dt,
                (psi - psides) - v * steering / cfg.lf * cfg.dt,
            )
            g.append(X[:, t + 1] - predicted)

        nlp = {
            "x": ca.vertcat(ca.reshape(X, -1, 1), ca.reshape(U, -1, 1)),
            "f": cost,
            "g": ca.vertcat(*g),
            "p": params,
        }
        opts = {
            "ipopt.print_level": 0,
            "ipopt.sb": "yes",
            "ipopt.max_iter": cfg.max_iter,
            "ipopt.max_cpu_time": cfg.max_cpu_time,
            "ipopt.tol": cfg.tol,
            "ipopt.acceptable_tol": cfg.acceptable_tol,
            "print_time": 0,
            "error_on_fail": False,
        }
        return ca.nlpsol("mpc", "ipopt", nlp, opts)

    def _variable_bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        cfg = self.config
        lbx = np.full(self.n_state_vars + self.n_actuator_vars, -UNBOUNDED)
        ubx = np.full(self.n_state_vars + self.n_actuator_vars, UNBOUNDED)

        lbx[self.n_state_vars :: 2] = -cfg.max_steer
        ubx[self.n_state_vars :: 2] = cfg.max_steer
        lbx[self.n_state_vars + 1 :: 2] = cfg.throttle_min
        ubx[self.n_state_vars + 1 :: 2] = cfg.throttle_max
        return lbx, ubx

    def _initial_actuators(self, warm_start: Optional[WarmStart]) -> np.ndarray:
        """Shift the previous actuator sequence by one step, or start from zero."""
        shape = (self.horizon - 1, N_ACTUATOR)
        if warm_start is None or warm_start.actuators.shape != shape:
            return np.zeros(shape)

        previous = warm_start.actuators
        shifted = np.vstack([previous[1:], previous[-1:]])
        shifted[:, 0] = np.clip(shifted[:, 0], -self.config.max_steer, self.config.max_steer)
        shifted[:, 1] = np.clip(shifted[:, 1], self.config.throttle_min, self.config.throttle_max)
        return shifted

    def initial_guess(
        self, state: np.ndarray, coeffs: np.ndarray, warm_start: Optional[WarmStart] = None
    ) -> np.ndarray:
        """Dynamically feasible starting point for the solver.

        The actuator guess is rolled out through the model from `state`, so
        every equality constraint holds at the starting point.

        Returns:
            Flat decision vector (states, then actuators)
        """
        actuators = self._initial_actuators(warm_start)
        states = rollout(state, actuators, coeffs, self.config.dt, self.config.lf)
        return np.concatenate([states.ravel(), actuators.ravel()])

    def solve(
        self,
        state: VehicleState,
        coeffs: Sequence[float],
        warm_start: Optional[WarmStart] = None,
    ) -> Tuple[MPCSolution, WarmStart]:
        """Solve the MPC problem for one tick.

        Args:
            state: Latency-compensated body-frame state
            coeffs: Reference curve coefficients (length fit_order + 1)
            warm_start: Actuators from the previous tick's solution, if any

        Returns:
            Tuple of (solution, warm start for the next tick)

        Raises:
            ValueError: If the number of coefficients does not match fit_order.
            SolverDivergence: If the solver exhausts its budget.
            InfeasibleProblem: If the constraints admit no feasible point.
        """
        coeffs = np.asarray(coeffs, dtype=float)
        if coeffs.size != self.n_coeffs:
            raise ValueError(f"Expected {self.n_coeffs} curve coefficients, got {coeffs.size}")

        x0 = state.as_array()
        z0 = self.initial_guess(x0, coeffs, warm_start)

        start = time.perf_counter()
        result = self._solver(
            x0=z0,
            lbx=self._lbx,
            ubx=self._ubx,
            lbg=0.0,
            ubg=0.0,
            p=np.concatenate([x0, coeffs]),
        )
        solve_time = time.perf_counter() - start

        stats = self._solver.stats()
        status = check_solver_status(stats)

        z = np.asarray(result["x"], dtype=float).ravel()
        solution = MPCSolution(
            states=z[: self.n_state_vars].reshape(self.horizon, N_STATE),
            actuators=z[self.n_state_vars :].reshape(self.horizon - 1, N_ACTUATOR),
            cost=float(result["f"]),
            status=status,
            iterations=int(stats.get("iter_count", -1)),
            solve_time=solve_time,
        )

        logging.debug(
            f"MPC solved: status={status}, iterations={solution.iterations}, "
            f"cost={solution.cost:.3f}, time={solve_time * 1000.0:.1f}ms"
        )

        return solution, WarmStart(solution.actuators.copy())
