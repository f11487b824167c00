"""
Register Store
==============

Thread-safe memory of the simulated chiller controller.

Owns the 1000 holding register cells and the three control coils.
Every access is bounds-checked: invalid addresses are logged and
answered with 0 / False, never raised.

A single reentrant lock covers registers AND coils together, so
multi-cell operations (float pairs, FC16 writes, a whole simulation
tick) can be made atomic with ``store.locked()``.

Author: Guilherme F. G. Santos
Date: January 2026
License: MIT
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence

import numpy as np

from .register_map import COIL_DEFAULTS, REGISTER_COUNT

logger = logging.getLogger(__name__)

UINT16_MAX = 0xFFFF


class RegisterStore:
    """
    Holding registers and coils of a single Modbus unit.

    Registers are unsigned 16-bit cells addressed 0..size-1, all zero
    at startup. Coils are restricted to a fixed address set.
    """

    def __init__(
        self,
        size: int = REGISTER_COUNT,
        coil_defaults: Optional[Dict[int, bool]] = None,
    ):
        self._registers = np.zeros(size, dtype=np.uint16)
        self._coils: Dict[int, bool] = dict(
            COIL_DEFAULTS if coil_defaults is None else coil_defaults
        )
        self._lock = threading.RLock()

    @property
    def size(self) -> int:
        return len(self._registers)

    @property
    def coil_addresses(self) -> List[int]:
        return sorted(self._coils)

    @contextmanager
    def locked(self) -> Iterator["RegisterStore"]:
        """Hold the store lock across several operations."""
        with self._lock:
            yield self

    def is_valid_register(self, address: int) -> bool:
        return 0 <= address < len(self._registers)

    def is_valid_coil(self, address: int) -> bool:
        return address in self._coils

    # ------------------------------------------------------------------
    # Registers
    # ------------------------------------------------------------------

    def read_register(self, address: int) -> int:
        """Return the cell value, or 0 for an address outside the map."""
        if not self.is_valid_register(address):
            return 0

        with self._lock:
            return int(self._registers[address])

    def write_register(self, address: int, value: int) -> bool:
        """
        Store a 16-bit value.

        Returns:
            True if the cell was written, False if the request was
            rejected (invalid address or value out of uint16 range)
        """
        if not self.is_valid_register(address):
            logger.warning(f"Invalid register address: {address}")
            return False

        if not 0 <= value <= UINT16_MAX:
            logger.warning(f"Invalid register value {value} for address {address}")
            return False

        with self._lock:
            self._registers[address] = value

        logger.debug(f"Register {address} set to {value}")
        return True

    def read_registers(self, address: int, count: int) -> List[int]:
        """Read consecutive cells atomically; invalid cells read as 0."""
        with self._lock:
            return [self.read_register(address + i) for i in range(count)]

    def write_registers(self, address: int, values: Sequence[int]) -> bool:
        """
        Write consecutive cells atomically.

        The whole block is rejected when any target cell is invalid,
        so a partial float is never left behind.
        """
        end = address + len(values) - 1
        if not (self.is_valid_register(address) and self.is_valid_register(end)):
            logger.warning(f"Invalid register range: {address}-{end}")
            return False

        if any(not 0 <= value <= UINT16_MAX for value in values):
            logger.warning(f"Invalid register values for {address}-{end}: {list(values)}")
            return False

        with self._lock:
            self._registers[address : end + 1] = values

        logger.debug(f"Registers {address}-{end} set to {list(values)}")
        return True

    # ------------------------------------------------------------------
    # Coils
    # ------------------------------------------------------------------

    def read_coil(self, address: int) -> bool:
        """Return the coil state, or False for an address outside the set."""
        with self._lock:
            return self._coils.get(address, False)

    def write_coil(self, address: int, value: bool) -> bool:
        """
        Set a coil.

        numpy booleans are accepted. Any other non-bool value is logged
        and ignored, like an invalid address.
        """
        if isinstance(value, np.bool_):
            value = bool(value)

        if not isinstance(value, bool):
            logger.warning(
                f"Invalid coil value for {address}: {value!r} (expected bool)"
            )
            return False

        if not self.is_valid_coil(address):
            logger.warning(f"Invalid coil address: {address}")
            return False

        with self._lock:
            self._coils[address] = value

        logger.info(f"Coil {address} set to {'ON' if value else 'OFF'}")
        return True

    def snapshot(self, address: int = 0, count: Optional[int] = None) -> bytes:
        """Big-endian byte image of a register range."""
        if count is None:
            count = len(self._registers) - address

        with self._lock:
            return self._registers[address : address + count].astype(">u2").tobytes()
