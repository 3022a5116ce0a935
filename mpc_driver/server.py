#!/usr/bin/env python3
"""
WebSocket Server bridging the driving simulator and the MPC controller

This module accepts simulator connections, parses the simulator's Socket.IO
style text frames, runs one control tick per telemetry event and replies with
the steering/throttle command after the artificial actuation delay. Every
tick is logged to CSV files through the DataCollector.

Frame format:
    inbound:  42["telemetry", {"ptsx": [...], "ptsy": [...], "x": .., ...}]
    outbound: 42["steer", {"steering_angle": .., "throttle": .., ...}]
              42["manual", {}]  when the frame carries no data
"""

import asyncio
import json
import logging
import signal
import time
from typing import Any, Optional, Tuple

import websockets

from mpc_driver.config import (
    ACTUATION_DELAY,
    TERM_BLUE,
    TERM_ORANGE,
    TERM_RESET,
    WS_HOST,
    WS_PORT,
)
from mpc_driver.controller import ControllerMemory, MPCController
from mpc_driver.data_collector import DataCollector
from mpc_driver.state import Telemetry

EVENT_PREFIX = "42"
"""Socket.IO prefix: 4 = websocket message, 2 = event."""

MANUAL_MESSAGE = EVENT_PREFIX + '["manual",{}]'
"""Reply telling the simulator to stay in manual mode."""


class CustomFormatter(logging.Formatter):
    """Custom logging formatter that removes timestamps from INFO messages.

    This formatter provides clean console output by showing INFO messages without
    timestamps while preserving full context for WARNING, ERROR, and DEBUG messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record based on its level.

        Args:
            record: The log record to format.

        Returns:
            Formatted log message string.
        """
        if record.levelno == logging.INFO:
            return record.getMessage()
        else:
            return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        formatter = CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(formatter)
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


def extract_payload(frame: str) -> Optional[str]:
    """Extract the JSON array from a simulator frame.

    Args:
        frame: Raw frame text, prefix included.

    Returns:
        The substring from the first '[' through the last '}]', or None if the
        frame contains "null" or has no such array.
    """
    if "null" in frame:
        return None
    start = frame.find("[")
    end = frame.rfind("}]")
    if start == -1 or end == -1:
        return None
    return frame[start : end + 2]


def format_event(event: str, payload: Any) -> str:
    """Serialize an outbound event frame."""
    return EVENT_PREFIX + json.dumps([event, payload])


class DrivingSession:
    """Control state of one simulator connection.

    The session owns the memory threaded between ticks (last emitted command
    and solver warm start), so concurrent connections never share it.

    Attributes:
        controller: Shared pipeline (stateless between ticks)
        data_collector: CSV logger, or None when recording is disabled
        actuation_delay: Seconds to wait before sending each command
        memory: Carried controller memory, replaced every tick
        ticks: Number of telemetry events handled
        session_id: Connection number written to every CSV row
    """

    def __init__(
        self,
        controller: MPCController,
        data_collector: Optional[DataCollector] = None,
        actuation_delay: float = ACTUATION_DELAY,
        session_id: int = 0,
    ) -> None:
        self.controller = controller
        self.data_collector = data_collector
        self.actuation_delay = actuation_delay
        self.session_id = session_id
        self.memory = ControllerMemory()
        self.ticks: int = 0

    def handle_telemetry(self, data: Any, timestamp: Optional[float] = None) -> str:
        """Run one control tick and build the "steer" reply.

        Args:
            data: Telemetry payload (the event's JSON object).
            timestamp: Receive time, defaults to now.

        Returns:
            Outbound frame text.

        Raises:
            ValueError: If the payload is malformed.
            InfeasibleProblem: Propagated from the controller.
        """
        if timestamp is None:
            timestamp = time.time()
        if not isinstance(data, dict):
            raise ValueError(f"Telemetry payload must be an object, got {type(data).__name__}")

        telemetry = Telemetry.from_message(data)
        result = self.controller.step(telemetry, self.memory)
        self.memory = result.memory
        self.ticks += 1

        if self.data_collector is not None:
            self.data_collector.log_telemetry(timestamp, telemetry, self.session_id)
            self.data_collector.log_control(timestamp, result, self.session_id)

        if self.ticks == 1:
            logging.info(f"{TERM_BLUE}✓ Running MPC control{TERM_RESET}")

        return format_event("steer", result.output.to_message())

    def handle_frame(self, frame: Any) -> Tuple[Optional[str], bool]:
        """Parse a frame and compute the reply.

        Args:
            frame: Raw frame (str or bytes).

        Returns:
            Tuple of (reply frame or None, whether the reply is a command that
            must wait for the actuation delay).
        """
        if isinstance(frame, bytes):
            try:
                frame = frame.decode("utf-8")
            except UnicodeDecodeError as e:
                logging.error(f"Dropping undecodable frame: {e}")
                return None, False
        if len(frame) <= 2 or not frame.startswith(EVENT_PREFIX):
            return None, False

        payload = extract_payload(frame)
        if payload is None:
            return MANUAL_MESSAGE, False

        try:
            message = json.loads(payload)
            event = message[0]
            if event != "telemetry":
                logging.debug(f"Ignoring event: {event}")
                return None, False
            return self.handle_telemetry(message[1]), True

        except json.JSONDecodeError as e:
            logging.error(f"Error parsing JSON: {e}")
        except (IndexError, KeyError, TypeError, ValueError) as e:
            logging.error(f"Error processing telemetry: {e}")
        return None, False

    async def run(self, websocket: Any) -> None:
        """Serve one connection until the simulator disconnects."""
        async for frame in websocket:
            reply, delayed = self.handle_frame(frame)
            if reply is None:
                continue
            if delayed and self.actuation_delay > 0:
                await asyncio.sleep(self.actuation_delay)
            await websocket.send(reply)


class DrivingServer:
    """WebSocket server accepting simulator connections.

    Attributes:
        controller: Pipeline shared by all sessions
        host: Interface to listen on
        port: Port to listen on
        actuation_delay: Delay before each command is sent (s)
        data_collector: CSV logger, or None when recording is disabled
    """

    def __init__(
        self,
        controller: MPCController,
        host: str = WS_HOST,
        port: int = WS_PORT,
        actuation_delay: float = ACTUATION_DELAY,
        output_dir: str = ".",
        record: bool = True,
    ) -> None:
        self.controller = controller
        self.host = host
        self.port = port
        self.actuation_delay = actuation_delay
        self.data_collector: Optional[DataCollector] = (
            DataCollector(output_dir=output_dir) if record else None
        )
        self._stop: Optional[asyncio.Event] = None
        self._connections: int = 0

        logging.info(f"{TERM_BLUE}Component Configuration: {controller.mode}{TERM_RESET}")

    async def handle_connection(self, websocket: Any) -> None:
        """Run a DrivingSession for one simulator connection."""
        logging.info(f"{TERM_BLUE}✓ Simulator connected{TERM_RESET}")
        self._connections += 1
        session = DrivingSession(
            self.controller, self.data_collector, self.actuation_delay, session_id=self._connections
        )
        try:
            await session.run(websocket)
        except websockets.exceptions.ConnectionClosed:
            logging.warning("Connection closed by simulator")
        finally:
            logging.info(f"{TERM_ORANGE}Simulator disconnected after {session.ticks} ticks{TERM_RESET}")

    async def serve_forever(self) -> None:
        """Listen until `stop` is called."""
        self._stop = asyncio.Event()
        async with websockets.serve(self.handle_connection, self.host, self.port):
            logging.info(f"{TERM_BLUE}Listening on ws://{self.host}:{self.port}{TERM_RESET}")
            await self._stop.wait()

    def stop(self) -> None:
        """Signal the server to stop."""
        if self._stop is not None:
            self._stop.set()

    def __enter__(self) -> "DrivingServer":
        if self.data_collector is not None:
            self.data_collector.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.data_collector is not None:
            self.data_collector.cleanup()


async def main(
    controller: MPCController,
    host: str = WS_HOST,
    port: int = WS_PORT,
    actuation_delay: float = ACTUATION_DELAY,
    output_dir: str = ".",
    record: bool = True,
) -> None:
    """Main entry point for the simulator bridge.

    Creates a DrivingServer, sets up signal handlers for graceful shutdown, and
    serves until interrupted.

    Args:
        controller: Configured controller (configuration already validated).
        host: Interface to listen on.
        port: Port to listen on.
        actuation_delay: Artificial delay before each command (s).
        output_dir: Base directory for CSV logs.
        record: Whether to log ticks to CSV.
    """
    with DrivingServer(controller, host, port, actuation_delay, output_dir, record) as server:
        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            """Handle shutdown signals (SIGINT, SIGTERM)."""
            logging.info("\nShutdown signal received...")
            server.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

        await server.serve_forever()
