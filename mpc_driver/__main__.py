"""
Main entry point when running the mpc_driver module with python -m.
"""

import argparse
import asyncio
import dataclasses
import logging
import sys

from .component_modes import parse_component_flags
from .config import (
    ACTUATION_DELAY,
    HORIZON_DT,
    HORIZON_STEPS,
    LATENCY,
    REF_SPEED,
    WS_HOST,
    WS_PORT,
    MPCConfig,
)
from .controller import MPCController
from .errors import InvalidConfiguration
from .server import main, setup_logging


def run(argv=None) -> None:
    component_mode, remaining_args = parse_component_flags(argv)

    parser = argparse.ArgumentParser(
        description="MPC driving controller: WebSocket bridge for the driving simulator"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    parser.add_argument("--host", default=WS_HOST, help=f"Interface to listen on (default: {WS_HOST})")
    parser.add_argument("--port", type=int, default=WS_PORT, help=f"Port to listen on (default: {WS_PORT})")
    parser.add_argument("--horizon", type=int, default=HORIZON_STEPS, help="Number of horizon steps N")
    parser.add_argument("--dt", type=float, default=HORIZON_DT, help="Horizon step duration (s)")
    parser.add_argument("--latency", type=float, default=LATENCY, help="Compensated actuation latency (s)")
    parser.add_argument(
        "--delay", type=float, default=ACTUATION_DELAY, help="Artificial delay before each command (s)"
    )
    parser.add_argument("--ref-speed", type=float, default=REF_SPEED, help="Target cruising speed")
    parser.add_argument("--output-dir", default=".", help="Base directory for CSV logs")
    parser.add_argument("--no-record", action="store_true", help="Do not log ticks to CSV")
    args = parser.parse_args(remaining_args)

    setup_logging(args.verbose)

    config = dataclasses.replace(
        MPCConfig(),
        horizon=args.horizon,
        dt=args.dt,
        latency=args.latency,
        ref_speed=args.ref_speed,
    )

    # Configuration errors are fatal before the control loop starts
    try:
        controller = MPCController(config, component_mode)
    except InvalidConfiguration as e:
        logging.error(f"Invalid configuration: {e}")
        sys.exit(2)

    try:
        asyncio.run(
            main(
                controller,
                host=args.host,
                port=args.port,
                actuation_delay=args.delay,
                output_dir=args.output_dir,
                record=not args.no_record,
            )
        )
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)


if __name__ == "__main__":
    run()
