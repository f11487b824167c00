"""
Main Simulator Entry Point
==========================

Starts the chiller simulation and its Modbus/TCP server.

Author: Guilherme F. G. Santos
Date: January 2026
"""

import argparse
import logging
import signal
import sys
import threading
import time
from contextlib import suppress
from typing import List, Optional

from .core import SimulationLoop, ChillerProcessModel, DEFAULT_PERIOD_SEC
from .modbus import (
    ChillerRegisterMap,
    ModbusServerConfig,
    ModbusSlave,
    RegisterStore,
    StoreAccessHooks,
)

logger = logging.getLogger(__name__)


def positive_float(value: str) -> float:
    number = float(value)
    if not number > 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def build_parser(env_config: ModbusServerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chiller-simulator", description="Chiller Modbus/TCP Simulator"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=env_config.host,
        help="Modbus bind address (env CHILLER_MODBUS_HOST)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=env_config.port,
        help="Modbus TCP port (env CHILLER_MODBUS_PORT)",
    )
    parser.add_argument(
        "--unit-id",
        type=int,
        default=env_config.unit_id,
        help="Modbus unit identifier (env CHILLER_MODBUS_UNIT_ID)",
    )
    parser.add_argument(
        "--period",
        type=positive_float,
        default=DEFAULT_PERIOD_SEC,
        help="Publishing period [seconds]",
    )
    parser.add_argument(
        "--duration",
        type=positive_float,
        default=float("inf"),
        help="Total run time [seconds]",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument(
        "--no-modbus",
        action="store_true",
        help="Run without Modbus server (testing mode)",
    )
    parser.add_argument(
        "--print-map",
        action="store_true",
        help="Log the memory map and exit",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        env_config = ModbusServerConfig.from_env()
    except ValueError as e:
        logger.error(f"Invalid environment configuration: {e}")
        return 1

    args = build_parser(env_config).parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    register_map = ChillerRegisterMap()
    if args.print_map:
        register_map.log_register_map(logger)
        return 0

    modbus_config = ModbusServerConfig(
        host=args.host, port=args.port, unit_id=args.unit_id
    )
    try:
        modbus_config.validate()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info("=" * 70)
    logger.info("CHILLER MODBUS/TCP SIMULATOR")
    logger.info("=" * 70)

    store = RegisterStore()
    simulation = SimulationLoop(store, ChillerProcessModel(), period_sec=args.period)

    stop_event = threading.Event()

    def signal_handler(sig, frame):
        logger.info("Shutdown signal received. Stopping simulation...")
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    slave = None
    if not args.no_modbus:
        try:
            slave = ModbusSlave(StoreAccessHooks(store), store, modbus_config)
            slave.start(blocking=False)
            logger.info(f"Listening on {args.host}:{args.port}")

        except RuntimeError as e:
            logger.error(f"Modbus server startup failed: {e}")
            logger.warning("Continuing in no-Modbus mode")
            slave = None
    else:
        logger.info("Skipping Modbus (--no-modbus)")

    register_map.log_register_map(logger)
    logger.info("=== Status ===")

    simulation.initialize_registers()
    simulation.start()

    started = time.monotonic()
    try:
        while not stop_event.wait(0.5):
            if time.monotonic() - started >= args.duration:
                break

    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")

    finally:
        logger.info("Shutting down...")
        simulation.stop()

        if slave:
            with suppress(Exception):
                slave.stop()

        logger.info("Simulator stopped cleanly")

    return 0


if __name__ == "__main__":
    sys.exit(main())
