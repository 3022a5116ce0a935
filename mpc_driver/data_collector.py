"""Data collection and CSV logging for telemetry and controller output.

This module provides CSV data logging for:
- Telemetry (measured pose, speed, applied command, waypoint count)
- Control output (compensated state, errors, commands, solver statistics, fallbacks)
"""

import csv
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, TextIO

from .config import TERM_BLUE, TERM_RESET
from .controller import TickResult
from .state import Telemetry

TELEMETRY_COLUMNS = [
    "timestamp",
    "session",
    "x",
    "y",
    "psi",
    "speed",
    "applied_steering",
    "applied_throttle",
    "n_waypoints",
]

CONTROL_COLUMNS = [
    "timestamp",
    "session",
    "v",
    "cte",
    "epsi",
    "steering",
    "throttle",
    "steering_normalized",
    "status",
    "iterations",
    "cost",
    "solve_time_ms",
    "fallback",
]


class DataCollector:
    """Manages CSV file creation and logging for one run.

    A run may span several simulator connections; every row carries the
    connection number in its `session` column.

    This class handles all data logging responsibilities:
    - Creates timestamped output directories
    - Initializes CSV files with headers
    - Writes telemetry and control data every tick
    - Ensures proper cleanup on shutdown

    Attributes:
        run_dir: Directory path for this run's output files.
        telemetry_csv_file: File handle for telemetry CSV.
        control_csv_file: File handle for control output CSV.
    """

    def __init__(self, output_dir: str = ".", run_dir: Optional[str] = None) -> None:
        """Initialize the data collector.

        Args:
            output_dir: Base directory for output files (default: current directory).
            run_dir: Optional specific run directory. If None, creates timestamped
                directory. Can also be set via RUN_DIR environment variable.

        Raises:
            ValueError: If output_dir is not a valid directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.telemetry_csv_file: Optional[TextIO] = None
        self.telemetry_csv_writer: Any = None
        self.control_csv_file: Optional[TextIO] = None
        self.control_csv_writer: Any = None

        if run_dir:
            self.run_dir: Path = Path(run_dir)
        elif env_run_dir := os.environ.get("RUN_DIR"):
            self.run_dir = Path(env_run_dir)
        else:
            # Create timestamped directory: results/run_YYYYMMDD_HHMMSS/
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.run_dir = output_path / "results" / f"run_{timestamp}"

        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.telemetry_output_path: Path = self.run_dir / "telemetry_data.csv"
        self.control_output_path: Path = self.run_dir / "control_data.csv"

    def setup(self) -> None:
        """Initialize CSV files with headers.

        Must be called before writing data.
        """
        self.telemetry_csv_file = open(self.telemetry_output_path, "w", newline="")
        self.telemetry_csv_writer = csv.writer(self.telemetry_csv_file)
        self.telemetry_csv_writer.writerow(TELEMETRY_COLUMNS)
        self.telemetry_csv_file.flush()

        self.control_csv_file = open(self.control_output_path, "w", newline="")
        self.control_csv_writer = csv.writer(self.control_csv_file)
        self.control_csv_writer.writerow(CONTROL_COLUMNS)
        self.control_csv_file.flush()

        print(f"{TERM_BLUE}✓ Initialized data collection to {self.run_dir}/{TERM_RESET}")

    def log_telemetry(self, timestamp: float, telemetry: Telemetry, session: int = 0) -> None:
        """Log one telemetry sample to CSV.

        Args:
            timestamp: Receive time (seconds).
            telemetry: Parsed telemetry.
            session: Connection the sample arrived on.
        """
        self.telemetry_csv_writer.writerow(
            [
                timestamp,
                session,
                telemetry.pose.x,
                telemetry.pose.y,
                telemetry.pose.psi,
                telemetry.speed,
                telemetry.applied.steering,
                telemetry.applied.throttle,
                len(telemetry.ptsx),
            ]
        )
        if self.telemetry_csv_file:
            self.telemetry_csv_file.flush()

    def log_control(self, timestamp: float, result: TickResult, session: int = 0) -> None:
        """Log the controller output of one tick to CSV.

        Fields the tick did not produce (no state after a degenerate fit, no
        solver statistics after a fallback) are written as empty cells.

        Args:
            timestamp: Receive time of the telemetry the tick answered (seconds).
            result: Result of `MPCController.step`.
            session: Connection the tick ran on.
        """
        state = result.state
        solution = result.solution
        command = result.memory.last_command

        self.control_csv_writer.writerow(
            [
                timestamp,
                session,
                state.v if state is not None else "",
                state.cte if state is not None else "",
                state.epsi if state is not None else "",
                command.steering,
                command.throttle,
                result.output.steering,
                solution.status if solution is not None else "",
                solution.iterations if solution is not None else "",
                solution.cost if solution is not None else "",
                solution.solve_time * 1000.0 if solution is not None else "",
                result.fallback or "",
            ]
        )
        if self.control_csv_file:
            self.control_csv_file.flush()

    def cleanup(self) -> None:
        """Close all CSV files and log final output location."""
        if self.telemetry_csv_file:
            self.telemetry_csv_file.close()
        if self.control_csv_file:
            self.control_csv_file.close()

        print(f"{TERM_BLUE}✓ Saved run data to {self.run_dir}/{TERM_RESET}")

    def __enter__(self) -> "DataCollector":
        """Context manager entry point.

        Returns:
            Self reference for use in with statement.
        """
        self.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit point - ensures cleanup is called."""
        self.cleanup()
