"""
Component isolation modes for modular testing.

This module defines which pipeline components are active/bypassed
to enable backtesting and systematic evaluation of each component's contribution.
"""

from dataclasses import dataclass
import argparse
import sys


@dataclass
class ComponentMode:
    """Configuration for which pipeline components are active."""

    # State Estimation Layer
    use_latency_compensation: bool = True  # If False, plan from the measured state (delta = 0)

    # Optimization Layer
    use_warm_start: bool = True  # If False, every solve starts from zero actuators

    def __str__(self):
        """Human-readable description of active components."""
        components = []

        if self.use_latency_compensation:
            components.append("Latency Compensation")
        else:
            components.append("Measured State")

        if self.use_warm_start:
            components.append("MPC(Warm Start)")
        else:
            components.append("MPC(Cold Start)")

        return " → ".join(components)

    def to_dict(self):
        """Convert to dictionary for logging."""
        return {
            'use_latency_compensation': self.use_latency_compensation,
            'use_warm_start': self.use_warm_start,
        }


def parse_component_flags(args=None):
    """
    Parse command-line flags to determine which components are active.

    Args:
        args: List of command-line arguments (default: sys.argv[1:])

    Returns:
        tuple: (ComponentMode, remaining_args)
            - ComponentMode with appropriate settings
            - List of remaining arguments not consumed
    """
    parser = argparse.ArgumentParser(add_help=False)

    parser.add_argument('--no-latency', action='store_true',
                        help='Disable latency compensation (plan from the measured state)')
    parser.add_argument('--no-warm-start', action='store_true',
                        help='Start every solve from zero actuators')

    # Parse known args, keep the rest
    if args is None:
        args = sys.argv[1:]

    known_args, remaining_args = parser.parse_known_args(args)

    mode = ComponentMode(
        use_latency_compensation=not known_args.no_latency,
        use_warm_start=not known_args.no_warm_start,
    )

    return mode, remaining_args
