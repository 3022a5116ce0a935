"""Diagnostic plots for MPC driving performance analysis.

This module loads the telemetry and control CSV files recorded by the
DataCollector and generates diagnostic plots to identify tracking errors,
actuator saturation, fallback ticks and solver timing problems.
"""

import argparse
import csv
from pathlib import Path
from typing import Dict, Iterable, Optional

import matplotlib.pyplot as plt
import numpy as np

from .config import PLOT_BLUE, PLOT_ORANGE, PLOT_TAUPE

TEXT_COLUMNS = ("status", "fallback")


def load_csv_to_dict(csv_path: Path, text_columns: Iterable[str] = TEXT_COLUMNS) -> Dict[str, np.ndarray]:
    """Load CSV file into dictionary of numpy arrays.

    Numeric columns become float arrays (empty cells are NaN); columns listed
    in `text_columns` are kept as string arrays.

    Args:
        csv_path: Path to CSV file
        text_columns: Column names to keep as strings

    Returns:
        Dictionary mapping column names to numpy arrays
    """
    text_columns = set(text_columns)
    with open(csv_path, 'r') as f:
        reader = csv.DictReader(f)
        data = {key: [] for key in reader.fieldnames or []}
        for row in reader:
            for key, value in row.items():
                if key in text_columns:
                    data[key].append(value)
                    continue
                try:
                    data[key].append(float(value))
                except (ValueError, TypeError):
                    data[key].append(np.nan)

    return {
        key: np.array(values, dtype=str if key in text_columns else float)
        for key, values in data.items()
    }


def load_run_data(run_dir: Path) -> Dict[str, Dict[str, np.ndarray]]:
    """Load all CSV data from a run directory.

    Args:
        run_dir: Path to the run directory containing CSV files

    Returns:
        Dictionary containing data dicts for 'telemetry' and 'control'
    """
    data = {}

    telemetry_path = run_dir / "telemetry_data.csv"
    if telemetry_path.exists():
        data['telemetry'] = load_csv_to_dict(telemetry_path)
    else:
        print(f"Warning: {telemetry_path} not found. Trajectory plots will be missing.")

    control_path = run_dir / "control_data.csv"
    if control_path.exists():
        data['control'] = load_csv_to_dict(control_path)
    else:
        print(f"Warning: {control_path} not found. Control plots will be missing.")

    return data


def _elapsed(columns: Dict[str, np.ndarray]) -> np.ndarray:
    t = columns['timestamp']
    return t - t[0] if t.size else t


def _save(fig, save_path: Optional[Path]) -> None:
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Saved plot: {save_path}")
    else:
        fig.tight_layout()


def plot_xy_trajectory(data: Dict[str, Dict[str, np.ndarray]], save_path: Path = None) -> None:
    """Plot the driven map-frame trajectory colored by speed.

    Args:
        data: Dictionary containing data dicts
        save_path: Optional path to save the figure
    """
    if 'telemetry' not in data:
        print("Warning: Missing telemetry data. Cannot plot trajectory.")
        return

    telemetry = data['telemetry']
    fig, ax = plt.subplots(figsize=(10, 8))

    scatter = ax.scatter(telemetry['x'], telemetry['y'], c=telemetry['speed'],
                         cmap='viridis', s=10, alpha=0.8, label='Measured pose')
    fig.colorbar(scatter, ax=ax, label='Speed')
    if telemetry['x'].size:
        ax.plot(telemetry['x'][0], telemetry['y'][0], 'go', markersize=10, label='Start')

    ax.set_xlabel('X Position (m)', fontsize=12)
    ax.set_ylabel('Y Position (m)', fontsize=12)
    ax.set_title('Driven Trajectory', fontsize=14, fontweight='bold')
    ax.grid(True, alpha=0.3)
    ax.legend(loc='best')
    ax.axis('equal')

    _save(fig, save_path)


def plot_tracking_errors(data: Dict[str, Dict[str, np.ndarray]], save_path: Path = None) -> None:
    """Plot cross-track and heading error over time.

    Args:
        data: Dictionary containing data dicts
        save_path: Optional path to save the figure
    """
    if 'control' not in data:
        print("Warning: Missing control data. Cannot plot tracking errors.")
        return

    control = data['control']
    t = _elapsed(control)
    cte = control['cte']
    epsi_deg = np.degrees(control['epsi'])

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8), sharex=True)

    ax1.plot(t, cte, color=PLOT_ORANGE, linewidth=1.5, label='CTE')
    ax1.axhline(y=0, color='k', linestyle='--', alpha=0.3)
    ax1.axhline(y=np.nanmean(np.abs(cte)), color=PLOT_TAUPE, linestyle='--',
                label=f'Mean |CTE|: {np.nanmean(np.abs(cte)):.3f} m', linewidth=2)
    ax1.set_ylabel('Cross-Track Error (m)', fontsize=12)
    ax1.set_title('Tracking Errors', fontsize=14, fontweight='bold')
    ax1.grid(True, alpha=0.3)
    ax1.legend(loc='best')

    ax2.plot(t, epsi_deg, color=PLOT_BLUE, linewidth=1.5, label='Heading error')
    ax2.axhline(y=0, color='k', linestyle='--', alpha=0.3)
    ax2.set_xlabel('Elapsed Time (s)', fontsize=12)
    ax2.set_ylabel('Heading Error (degrees)', fontsize=12)
    ax2.grid(True, alpha=0.3)
    ax2.legend(loc='best')

    _save(fig, save_path)


def plot_actuators(data: Dict[str, Dict[str, np.ndarray]], save_path: Path = None) -> None:
    """Plot normalized steering and throttle, marking fallback ticks.

    Args:
        data: Dictionary containing data dicts
        save_path: Optional path to save the figure
    """
    if 'control' not in data:
        print("Warning: Missing control data. Cannot plot actuators.")
        return

    control = data['control']
    t = _elapsed(control)
    fallback = control['fallback'] != ''

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8), sharex=True)

    ax1.plot(t, control['steering_normalized'], color=PLOT_ORANGE, linewidth=1.5, label='Steering')
    ax1.set_ylim(-1.05, 1.05)
    ax1.set_ylabel('Steering (normalized)', fontsize=12)
    ax1.set_title('Actuator Commands', fontsize=14, fontweight='bold')

    ax2.plot(t, control['throttle'], color=PLOT_BLUE, linewidth=1.5, label='Throttle')
    ax2.set_ylim(-1.05, 1.05)
    ax2.set_xlabel('Elapsed Time (s)', fontsize=12)
    ax2.set_ylabel('Throttle', fontsize=12)

    for ax in (ax1, ax2):
        for tick in t[fallback]:
            ax.axvline(x=tick, color=PLOT_TAUPE, alpha=0.4, linewidth=1)
        ax.grid(True, alpha=0.3)
        ax.legend(loc='best')

    _save(fig, save_path)


def plot_solver_performance(data: Dict[str, Dict[str, np.ndarray]], save_path: Path = None) -> None:
    """Plot solve time and iteration count per tick.

    Args:
        data: Dictionary containing data dicts
        save_path: Optional path to save the figure
    """
    if 'control' not in data:
        print("Warning: Missing control data. Cannot plot solver performance.")
        return

    control = data['control']
    t = _elapsed(control)
    solve_ms = control['solve_time_ms']

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8), sharex=True)

    ax1.plot(t, solve_ms, color=PLOT_ORANGE, linewidth=1.5, label='Solve time')
    if np.any(np.isfinite(solve_ms)):
        ax1.axhline(y=np.nanpercentile(solve_ms, 95), color=PLOT_TAUPE, linestyle='--',
                    label=f'p95: {np.nanpercentile(solve_ms, 95):.1f} ms', linewidth=2)
    ax1.set_ylabel('Solve Time (ms)', fontsize=12)
    ax1.set_title('Solver Performance', fontsize=14, fontweight='bold')
    ax1.grid(True, alpha=0.3)
    ax1.legend(loc='best')

    ax2.plot(t, control['iterations'], color=PLOT_BLUE, linewidth=1.5, label='Iterations')
    ax2.set_xlabel('Elapsed Time (s)', fontsize=12)
    ax2.set_ylabel('Ipopt Iterations', fontsize=12)
    ax2.grid(True, alpha=0.3)
    ax2.legend(loc='best')

    _save(fig, save_path)


def find_latest_run(results_dir: Path) -> Path:
    """Find the most recent run directory.

    Args:
        results_dir: Path to the results directory.

    Returns:
        Path to the most recent run directory.

    Raises:
        FileNotFoundError: If no run directories are found.
    """
    if not results_dir.exists():
        raise FileNotFoundError(f"Results directory not found: {results_dir}")

    run_dirs = sorted(
        [d for d in results_dir.iterdir() if d.is_dir() and d.name.startswith("run_")]
    )

    if not run_dirs:
        raise FileNotFoundError(f"No run directories found in {results_dir}")

    return run_dirs[-1]


def generate_diagnostic_report(run_dir: Path, output_dir: Path = None) -> None:
    """Generate complete diagnostic report with all plots.

    Args:
        run_dir: Path to the run directory containing CSV files
        output_dir: Optional directory to save plots (default: run_dir)
    """
    if output_dir is None:
        output_dir = run_dir

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    print(f"\nLoading data from: {run_dir}")
    data = load_run_data(run_dir)

    print("\nGenerating diagnostic plots...")

    plot_xy_trajectory(data, output_dir / "01_xy_trajectory.png")
    plot_tracking_errors(data, output_dir / "02_tracking_errors.png")
    plot_actuators(data, output_dir / "03_actuators.png")
    plot_solver_performance(data, output_dir / "04_solver_performance.png")

    print(f"\n✓ Diagnostic report generated in: {output_dir}")


def main(argv=None):
    """Command-line interface for diagnostic plots."""
    parser = argparse.ArgumentParser(
        description="Generate diagnostic plots for MPC driving runs"
    )
    parser.add_argument(
        "run_dir",
        type=str,
        nargs="?",
        default=None,
        help="Path to run directory containing CSV files (default: latest run in results/)"
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Output directory for plots (default: same as run_dir)"
    )
    parser.add_argument(
        "--show",
        action="store_true",
        help="Display plots interactively instead of just saving"
    )

    args = parser.parse_args(argv)

    if args.run_dir is None:
        try:
            run_dir = find_latest_run(Path("results"))
        except FileNotFoundError as e:
            print(f"Error: {e}")
            return 1
    else:
        run_dir = Path(args.run_dir)
        if not run_dir.exists():
            print(f"Error: Run directory not found: {run_dir}")
            return 1

    output_dir = Path(args.output_dir) if args.output_dir else run_dir

    generate_diagnostic_report(run_dir, output_dir)

    if args.show:
        print("\nDisplaying plots...")
        plt.show()

    return 0


if __name__ == "__main__":
    exit(main())
