"""
Tests for the per-tick control pipeline and its fallback policy.
"""

import dataclasses
import math

import numpy as np
import pytest

from mpc_driver.component_modes import ComponentMode
from mpc_driver.config import MPCConfig
from mpc_driver.controller import ControllerMemory, MPCController
from mpc_driver.errors import DegenerateFit, InfeasibleProblem, InvalidConfiguration, SolverDivergence
from mpc_driver.mpc import WarmStart
from mpc_driver.state import ActuatorCommand, Pose


def test_straight_road_tick(controller, make_telemetry, straight_road):
    """Slight left offset on a straight road: gentle steering, accelerate."""
    result = controller.step(make_telemetry(*straight_road))

    assert result.fallback is None
    assert abs(result.output.steering) < 0.5
    assert result.output.throttle > 0.0
    assert result.state.cte == pytest.approx(0.3, abs=1e-6)
    assert result.state.epsi == pytest.approx(0.0, abs=1e-6)


def test_sharp_left_tick(controller, make_telemetry, sharp_left):
    result = controller.step(make_telemetry(*sharp_left))

    assert result.fallback is None
    assert result.output.steering < -0.05
    assert result.output.mpc_y[-1] > 0.0
    assert result.output.mpc_y[-1] > result.output.mpc_y[0]


def test_output_carries_prediction_and_reference(controller, make_telemetry, sharp_left):
    result = controller.step(make_telemetry(*sharp_left))
    out = result.output

    assert len(out.mpc_x) == len(out.mpc_y) == controller.config.horizon - 1
    assert len(out.next_x) == len(out.next_y) == controller.config.reference_count - 1
    assert out.next_x[0] == pytest.approx(controller.config.reference_spacing)


def test_state_is_at_the_body_origin(controller, make_telemetry, sharp_left):
    result = controller.step(make_telemetry(*sharp_left, pose=Pose(30.0, -12.0, 2.0), speed=15.0))

    assert (result.state.x, result.state.y, result.state.psi) == (0.0, 0.0, 0.0)
    assert result.state.v == pytest.approx(15.0)


def test_waypoints_are_fitted_from_the_compensated_pose(controller, make_telemetry, straight_road):
    """The vehicle advances v*latency before the body transform."""
    result = controller.step(make_telemetry(*straight_road, speed=10.0))

    # Line is y = 0.3 in a frame shifted 1m along x: still y = 0.3
    np.testing.assert_allclose(result.coeffs, [0.3, 0.0, 0.0, 0.0], atol=1e-6)


def test_memory_is_threaded_between_ticks(controller, make_telemetry, sharp_left):
    first = controller.step(make_telemetry(*sharp_left))
    second = controller.step(make_telemetry(*sharp_left), first.memory)

    assert first.memory.last_command == first.solution.command
    assert isinstance(first.memory.warm_start, WarmStart)
    assert second.fallback is None
    assert second.output.steering == pytest.approx(first.output.steering, abs=0.05)


def test_degenerate_waypoints_reuse_previous_command(controller, make_telemetry):
    """Fewer than min_waypoints: the previous command is sent again unchanged."""
    previous = ActuatorCommand(0.1, 0.4)
    memory = ControllerMemory(last_command=previous, warm_start=WarmStart(np.zeros((9, 2))))

    result = controller.step(make_telemetry([0.0, 10.0, 20.0], [0.0, 0.0, 0.0]), memory)

    assert result.fallback == "DegenerateFit"
    assert result.memory.last_command == previous
    assert result.memory.warm_start is None
    assert result.output.steering == pytest.approx(0.1 / controller.config.max_steer)
    assert result.output.throttle == pytest.approx(0.4)
    assert result.output.mpc_x == [] and result.output.next_x == []


def test_stacked_waypoints_are_degenerate(controller, make_telemetry):
    result = controller.step(make_telemetry([5.0] * 5, [0.0, 1.0, 2.0, 3.0, 4.0]))

    assert result.fallback == "DegenerateFit"
    assert result.solution is None


def test_first_tick_degenerate_sends_zero_command(controller, make_telemetry):
    result = controller.step(make_telemetry([0.0, 1.0], [0.0, 0.0]))

    assert result.output.steering == 0.0
    assert result.output.throttle == 0.0


def test_prepare_rejects_short_waypoint_lists(controller, make_telemetry):
    with pytest.raises(DegenerateFit):
        controller.prepare(make_telemetry([0.0, 10.0, 20.0], [0.0, 1.0, 2.0]))


def test_divergence_holds_steering_with_zero_throttle(controller, make_telemetry, sharp_left, monkeypatch):
    def diverge(*args, **kwargs):
        raise SolverDivergence("budget exhausted", status="Maximum_Iterations_Exceeded")

    monkeypatch.setattr(controller.solver, "solve", diverge)
    memory = ControllerMemory(last_command=ActuatorCommand(-0.2, 0.7), warm_start=WarmStart(np.zeros((9, 2))))

    result = controller.step(make_telemetry(*sharp_left), memory)

    assert result.fallback == "SolverDivergence"
    assert result.memory.last_command == ActuatorCommand(-0.2, 0.0)
    assert result.memory.warm_start is None
    assert result.output.throttle == 0.0
    assert result.output.steering == pytest.approx(-0.2 / controller.config.max_steer)
    assert result.output.mpc_x == []
    assert len(result.output.next_x) == controller.config.reference_count - 1


def test_infeasible_problem_propagates(controller, make_telemetry, sharp_left, monkeypatch):
    def infeasible(*args, **kwargs):
        raise InfeasibleProblem("no feasible point", status="Infeasible_Problem_Detected")

    monkeypatch.setattr(controller.solver, "solve", infeasible)

    with pytest.raises(InfeasibleProblem):
        controller.step(make_telemetry(*sharp_left))


def test_no_latency_mode_plans_from_measured_pose(config, make_telemetry):
    controller = MPCController(config, ComponentMode(use_latency_compensation=False))
    telemetry = make_telemetry(
        [0.0, 10.0, 20.0, 30.0, 40.0], [0.0, 1.0, 2.0, 3.0, 4.0], speed=20.0,
        applied=ActuatorCommand(0.3, 1.0),
    )

    result = controller.step(telemetry)

    assert controller.latency == 0.0
    assert result.state.v == pytest.approx(20.0)
    assert result.state.cte == pytest.approx(0.0, abs=1e-9)
    assert result.state.epsi == pytest.approx(-math.atan(0.1), abs=1e-9)


def test_cold_start_mode_ignores_warm_start(config, make_telemetry, sharp_left, monkeypatch):
    controller = MPCController(config, ComponentMode(use_warm_start=False))
    seen = []
    real_solve = controller.solver.solve

    def spy(state, coeffs, warm_start=None):
        seen.append(warm_start)
        return real_solve(state, coeffs, warm_start)

    monkeypatch.setattr(controller.solver, "solve", spy)
    memory = ControllerMemory(warm_start=WarmStart(np.zeros((config.horizon - 1, 2))))

    controller.step(make_telemetry(*sharp_left), memory)

    assert seen == [None]


def test_invalid_configuration_is_rejected():
    with pytest.raises(InvalidConfiguration):
        MPCController(dataclasses.replace(MPCConfig(), horizon=1))


@pytest.mark.parametrize("curvature", [-0.08, -0.02, 0.0, 0.02, 0.08])
@pytest.mark.parametrize("speed", [5.0, 35.0])
def test_outputs_stay_in_unit_range(controller, make_telemetry, curvature, speed):
    xs = np.arange(0.0, 30.0, 5.0)
    result = controller.step(make_telemetry(xs, curvature * xs**2 + 0.5, speed=speed))

    assert -1.0 <= result.output.steering <= 1.0
    assert -1.0 <= result.output.throttle <= 1.0
