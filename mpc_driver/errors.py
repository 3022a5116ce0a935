"""Error taxonomy for the control pipeline.

Per-tick errors (`DegenerateFit`, `SolverDivergence`) are recovered by the
controller with a fallback command. `InfeasibleProblem` and
`InvalidConfiguration` indicate a configuration or programming error and are
surfaced to the caller.
"""

from typing import Optional


class ControlError(Exception):
    """Base class for all controller errors."""


class DegenerateFit(ControlError):
    """Too few or degenerate waypoints to fit the reference curve."""


class InvalidConfiguration(ControlError):
    """A configuration parameter is out of range. Fatal at startup."""


class SolverError(ControlError):
    """The nonlinear solver did not return an acceptable solution.

    Attributes:
        status: Solver return status string (e.g. 'Maximum_Iterations_Exceeded').
    """

    def __init__(self, message: str, status: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status


class SolverDivergence(SolverError):
    """The solver exhausted its iteration or time budget without converging."""


class InfeasibleProblem(SolverError):
    """Bounds and dynamics constraints admit no feasible point."""
