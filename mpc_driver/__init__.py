"""MPC Driver - Model Predictive Control for Autonomous Driving

A receding-horizon controller that turns noisy, delayed telemetry (pose, speed,
sparse map waypoints) into a steering and throttle command every control tick.

## Architecture Overview

Each telemetry sample runs the pipeline once, left to right:

### Stage 1: Latency Compensation (model.py)
Projects the measured pose forward by the actuation delay with the kinematic
bicycle model, so the optimizer plans from where the vehicle will be when the
command takes effect.

### Stage 2: Frame Transform (frame.py)
Moves the waypoints into the compensated body frame (x ahead, y left).

### Stage 3: Reference Curve (path.py)
Fits a cubic through the body-frame waypoints by QR least squares and reads
the cross-track and heading errors off it at the origin.

### Stage 4: MPC Solve (mpc.py)
Optimizes N states and N-1 actuator pairs over the bicycle dynamics with
CasADi + Ipopt. Cost: tracking, speed, actuator effort and smoothness.

### Stage 5: Packaging (packager.py)
Normalizes the first command to [-1, 1] and attaches the predicted trajectory
and reference samples for the simulator overlay.

## Modules

### Core Control Modules
- `config.py` - Centralized configuration parameters with documentation
- `state.py` - Value types passed between stages
- `frame.py` - Map/body frame transforms
- `model.py` - Kinematic bicycle model and latency compensation
- `path.py` - Reference curve fitting and error extraction
- `mpc.py` - Nonlinear MPC solver
- `packager.py` - Outbound command packaging
- `controller.py` - Per-tick pipeline and fallback policy
- `errors.py` - Error taxonomy

### Communication & Data
- `server.py` - WebSocket bridge to the simulator
- `data_collector.py` - CSV data logging per tick
- `diagnostic_plots.py` - Post-run diagnostics

## Quick Start

```bash
python -m mpc_driver            # listen on ws://0.0.0.0:4567
python -m mpc_driver --no-latency -v
python -m mpc_driver.diagnostic_plots results/run_20260101_120000
```

## Version

0.1.0 - Initial implementation
"""

__version__ = "0.1.0"

# Export key classes for convenience
from .config import CostWeights, MPCConfig
from .controller import ControllerMemory, MPCController, TickResult
from .errors import (
    ControlError,
    DegenerateFit,
    InfeasibleProblem,
    InvalidConfiguration,
    SolverDivergence,
)
from .mpc import MPCSolution, MPCSolver, WarmStart
from .state import ActuatorCommand, Pose, Telemetry, VehicleState

__all__ = [
    "MPCConfig",
    "CostWeights",
    "MPCController",
    "ControllerMemory",
    "TickResult",
    "MPCSolver",
    "MPCSolution",
    "WarmStart",
    "Pose",
    "ActuatorCommand",
    "Telemetry",
    "VehicleState",
    "ControlError",
    "DegenerateFit",
    "SolverDivergence",
    "InfeasibleProblem",
    "InvalidConfiguration",
]
