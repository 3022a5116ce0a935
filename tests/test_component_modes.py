"""
Tests for component isolation flags and the command-line entry point.
"""

import pytest

from mpc_driver.__main__ import run
from mpc_driver.component_modes import ComponentMode, parse_component_flags


def test_defaults_enable_everything():
    mode, remaining = parse_component_flags([])

    assert mode == ComponentMode()
    assert remaining == []


def test_flags_disable_components_and_keep_other_args():
    mode, remaining = parse_component_flags(["--no-latency", "-v", "--no-warm-start", "--port", "5000"])

    assert not mode.use_latency_compensation
    assert not mode.use_warm_start
    assert remaining == ["-v", "--port", "5000"]
    assert str(mode) == "Measured State → MPC(Cold Start)"


def test_invalid_configuration_exits_before_serving():
    with pytest.raises(SystemExit) as excinfo:
        run(["--horizon", "1", "--no-record"])

    assert excinfo.value.code == 2
