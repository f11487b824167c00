"""
Modbus TCP Slave Server
=====================================================

Bridges pymodbus to the chiller register store.

pymodbus owns the wire protocol (framing, sockets, connections).
Every client request is routed through RegisterAccessHooks, so the
register store stays the single source of truth and its validation
and locking rules apply to network clients too.

Author: Guilherme F. G. Santos
Date: January 2026
License: MIT
"""

import asyncio
import logging
import os
import threading
from abc import ABC, abstractmethod
from contextlib import suppress
from dataclasses import dataclass
from typing import List, Mapping, Optional

from pymodbus import ModbusDeviceIdentification
from pymodbus.server import StartAsyncTcpServer, ServerAsyncStop
from pymodbus.datastore import (
    ModbusSequentialDataBlock,
    ModbusDeviceContext,
    ModbusServerContext,
)

from .store import RegisterStore

# ModbusDeviceContext adds 1 to every wire address before it reaches
# the data block.
BLOCK_OFFSET = 1


class RegisterAccessHooks(ABC):
    """Callbacks the protocol adapter invokes for each client request."""

    @abstractmethod
    def on_read_register(self, address: int) -> int:
        """Input register read (FC 04)."""

    @abstractmethod
    def on_read_holding_register(self, address: int, unit_id: int) -> int:
        """Holding register read (FC 03)."""

    @abstractmethod
    def on_write_register(self, address: int, value: int):
        """Holding register write (FC 06/16)."""

    @abstractmethod
    def on_read_coil(self, address: int) -> bool:
        """Coil read (FC 01)."""

    @abstractmethod
    def on_write_coil(self, address: int, value: bool):
        """Coil write (FC 05/15)."""


class StoreAccessHooks(RegisterAccessHooks):
    """Hooks backed by a RegisterStore (single logical unit)."""

    def __init__(self, store: RegisterStore):
        self.store = store

    def on_read_register(self, address: int) -> int:
        return self.store.read_register(address)

    def on_read_holding_register(self, address: int, unit_id: int) -> int:
        return self.store.read_register(address)

    def on_write_register(self, address: int, value: int):
        self.store.write_register(address, value)

    def on_read_coil(self, address: int) -> bool:
        return self.store.read_coil(address)

    def on_write_coil(self, address: int, value: bool):
        self.store.write_coil(address, value)


class HookDataBlock(ModbusSequentialDataBlock):
    """
    Data block that forwards every access to RegisterAccessHooks.

    All addresses validate: out-of-map reads answer 0 / False and
    out-of-map writes are logged and dropped by the store, rather than
    returning a Modbus exception to the client.
    """

    def __init__(
        self,
        hooks: RegisterAccessHooks,
        kind: str,
        store: RegisterStore,
        unit_id: int = 1,
    ):
        super().__init__(0, [0])
        self.hooks = hooks
        self.kind = kind  # 'ir', 'hr' or 'co'
        self.store = store
        self.unit_id = unit_id

    def validate(self, address: int, count: int = 1) -> bool:
        return True

    def getValues(self, address: int, count: int = 1) -> List:
        start = address - BLOCK_OFFSET

        with self.store.locked():
            if self.kind == "ir":
                return [self.hooks.on_read_register(start + i) for i in range(count)]
            if self.kind == "hr":
                return [
                    self.hooks.on_read_holding_register(start + i, self.unit_id)
                    for i in range(count)
                ]
            return [self.hooks.on_read_coil(start + i) for i in range(count)]

    def setValues(self, address: int, values):
        start = address - BLOCK_OFFSET
        if not isinstance(values, list):
            values = [values]

        # One lock for the whole request: an FC16 float write is never torn
        with self.store.locked():
            for i, value in enumerate(values):
                if self.kind == "co":
                    self.hooks.on_write_coil(start + i, bool(value))
                elif self.kind == "hr":
                    self.hooks.on_write_register(start + i, int(value))
                else:
                    logging.warning(f"Write to read-only input register {start + i}")


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None


@dataclass
class ModbusServerConfig:
    """Configuration for Modbus TCP server."""

    host: str = "0.0.0.0"
    port: int = 503
    unit_id: int = 1

    # Server identification
    vendor_name: str = "Chiller Simulator"
    product_code: str = "CHS-1000"
    vendor_url: str = "https://github.com/chiller-sim"
    product_name: str = "Chilled Water Controller Simulator"
    model_name: str = "Virtual Chiller v1.0"
    version: str = "1.0.0"

    # Timeouts
    startup_timeout_sec: float = 5.0
    shutdown_timeout_sec: float = 3.0

    def validate(self):
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Port {self.port} out of range [1, 65535]")
        if not 0 <= self.unit_id <= 247:
            raise ValueError(f"Unit id {self.unit_id} out of range [0, 247]")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None):
        """
        Build a config from CHILLER_MODBUS_HOST, CHILLER_MODBUS_PORT and
        CHILLER_MODBUS_UNIT_ID.

        Raises:
            ValueError: If a variable is malformed or out of range
        """
        if environ is None:
            environ = os.environ

        defaults = cls()
        config = cls(
            host=environ.get("CHILLER_MODBUS_HOST") or defaults.host,
            port=_env_int(environ, "CHILLER_MODBUS_PORT", defaults.port),
            unit_id=_env_int(environ, "CHILLER_MODBUS_UNIT_ID", defaults.unit_id),
        )
        config.validate()
        return config


class ModbusSlave:
    """
    Modbus TCP server for the simulated chiller.

    The pymodbus server is created INSIDE its own event loop, running
    in a background thread.
    """

    def __init__(
        self,
        hooks: RegisterAccessHooks,
        store: RegisterStore,
        config: Optional[ModbusServerConfig] = None,
    ):
        self.hooks = hooks
        self.store = store
        self.config = config or ModbusServerConfig()
        self.config.validate()

        unit_id = self.config.unit_id
        device_context = ModbusDeviceContext(
            di=ModbusSequentialDataBlock(0, [0] * 10),
            co=HookDataBlock(hooks, "co", store, unit_id),
            hr=HookDataBlock(hooks, "hr", store, unit_id),
            ir=HookDataBlock(hooks, "ir", store, unit_id),
        )

        self.context = ModbusServerContext(
            devices={unit_id: device_context}, single=False
        )

        self.identity = ModbusDeviceIdentification()
        self.identity.VendorName = self.config.vendor_name
        self.identity.ProductCode = self.config.product_code
        self.identity.VendorUrl = self.config.vendor_url
        self.identity.ProductName = self.config.product_name
        self.identity.ModelName = self.config.model_name
        self.identity.MajorMinorRevision = self.config.version

        self.server_thread: Optional[threading.Thread] = None
        self._event_loop: Optional[asyncio.AbstractEventLoop] = None

        self._running = threading.Event()
        self._server_ready = threading.Event()
        self._shutdown_requested = threading.Event()

        logging.info(
            f"Modbus slave initialized: {self.config.host}:{self.config.port}, "
            f"unit_id={unit_id}"
        )

    def start(self, blocking: bool = True):
        """
        Start Modbus server.

        Args:
            blocking: If True, block until server stops
                     If False, run in background thread

        Raises:
            RuntimeError: If the server is not ready within the startup timeout
        """
        if self._running.is_set():
            logging.warning("Modbus server already running")
            return

        self._running.set()
        self._server_ready.clear()
        self._shutdown_requested.clear()

        if blocking:
            self._run_server()
            return

        self.server_thread = threading.Thread(
            target=self._run_server, daemon=True, name="ModbusTCPServer"
        )
        self.server_thread.start()

        if not self._server_ready.wait(timeout=self.config.startup_timeout_sec):
            self._running.clear()
            raise RuntimeError("Server startup timeout")

        if not self._running.is_set():
            raise RuntimeError("Server failed to start")

        logging.info(f"Modbus server started on {self.config.host}:{self.config.port}")

    def _run_server(self):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._event_loop = loop

        try:
            loop.run_until_complete(self._async_run_server())

        except Exception as e:
            logging.error(f"Modbus server error: {type(e).__name__}: {e}")
            self._running.clear()

        finally:
            # Unblock start() even on error
            self._server_ready.set()

            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()

            with suppress(Exception):
                loop.run_until_complete(
                    asyncio.gather(*pending, return_exceptions=True)
                )

            loop.close()
            self._event_loop = None

    async def _async_run_server(self):
        server_task = asyncio.create_task(
            StartAsyncTcpServer(
                context=self.context,
                identity=self.identity,
                address=(self.config.host, self.config.port),
            )
        )

        # Give the listener a moment to bind (or fail) before reporting ready
        await asyncio.sleep(0.2)
        if server_task.done():
            server_task.result()
        self._server_ready.set()

        try:
            while not self._shutdown_requested.is_set():
                if server_task.done():
                    server_task.result()
                    break
                await asyncio.sleep(0.1)

        finally:
            with suppress(Exception):
                await ServerAsyncStop()

            server_task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await server_task

    def stop(self):
        """Stop Modbus server (graceful shutdown)."""
        if not self._running.is_set():
            return

        self._shutdown_requested.set()
        self._running.clear()

        if self.server_thread and self.server_thread.is_alive():
            self.server_thread.join(timeout=self.config.shutdown_timeout_sec)

            if self.server_thread.is_alive():
                logging.warning("Server thread did not terminate cleanly")

        logging.info("Modbus server stopped")

    @property
    def is_running(self) -> bool:
        return self._running.is_set()
