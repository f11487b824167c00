"""
Modbus Register Map
===================

Defines the fixed memory map of the simulated chiller controller.

This module contains ONLY the layout - it does not:
- Store register values
- Run the chiller simulation
- Talk to the network

Register Types:
- Holding Registers (FC 03/06/16): 1000 cells, 16 bits each
- Coils (FC 01/05/15): three control flags at 300-302

Register Encoding:
- All temperatures use IEEE 754 single-precision (32-bit)
- Each float occupies 2 consecutive 16-bit registers
- Byte order: Big-endian, high word first

Author: Guilherme F. G. Santos
Date: January 2026
License: MIT
"""

import logging
from dataclasses import dataclass
from typing import List
from enum import IntEnum

logger = logging.getLogger(__name__)

# Size of the holding register array (addresses 0..999)
REGISTER_COUNT = 1000

# Float32 register pairs
REG_SETTING_TEMP = 0  # 40001-40002
REG_ENTERING_TEMP = 2  # 40003-40004
REG_LEAVING_TEMP = 4  # 40005-40006

# Control coils
COIL_PUBLISH_ENABLE = 300
COIL_RESET = 301
COIL_SIMULATION_ENABLE = 302

COIL_DEFAULTS = {
    COIL_PUBLISH_ENABLE: True,
    COIL_RESET: False,
    COIL_SIMULATION_ENABLE: True,
}


class RegisterType(IntEnum):
    """Modbus register types."""

    COIL = 0  # Discrete output (read/write)
    HOLDING_REGISTER = 4  # Analog output (read/write)


@dataclass
class RegisterDefinition:
    """
    Definition of a single Modbus register (or register pair for floats).

    Attributes:
        address: Starting register address (0-based)
        name: Human-readable identifier
        register_type: Coil or holding register
        data_type: 'float32', 'uint16' or 'bool'
        units: Physical units (e.g., '°C')
        description: What this register represents
    """

    address: int
    name: str
    register_type: RegisterType
    data_type: str
    units: str
    description: str

    def validate(self):
        """Validate register definition."""
        if self.data_type not in ["float32", "uint16", "bool"]:
            raise ValueError(f"Unknown data type: {self.data_type}")

        if self.register_type == RegisterType.HOLDING_REGISTER:
            if self.address < 0 or self.address + self.size_words > REGISTER_COUNT:
                raise ValueError(
                    f"Register {self.name} at {self.address} outside [0, {REGISTER_COUNT})"
                )
        elif self.data_type != "bool":
            raise ValueError(f"Coil {self.name} must be of type bool")

    @property
    def size_words(self) -> int:
        """Number of 16-bit words this register occupies."""
        if self.data_type == "float32":
            return 2
        return 1


class ChillerRegisterMap:
    """
    Memory map of the chiller controller.

    It only defines WHERE data lives in the Modbus address space;
    values are held by RegisterStore.
    """

    def __init__(self):
        """Initialize register map with the chiller layout."""
        self.holding_registers: List[RegisterDefinition] = [
            RegisterDefinition(
                address=REG_SETTING_TEMP,
                name="leaving_temp_setting",
                register_type=RegisterType.HOLDING_REGISTER,
                data_type="float32",
                units="°C",
                description="Leaving chilled water temperature setting",
            ),
            RegisterDefinition(
                address=REG_ENTERING_TEMP,
                name="entering_temp",
                register_type=RegisterType.HOLDING_REGISTER,
                data_type="float32",
                units="°C",
                description="Entering chilled water temperature",
            ),
            RegisterDefinition(
                address=REG_LEAVING_TEMP,
                name="leaving_temp",
                register_type=RegisterType.HOLDING_REGISTER,
                data_type="float32",
                units="°C",
                description="Leaving chilled water temperature",
            ),
        ]

        self.coils: List[RegisterDefinition] = [
            RegisterDefinition(
                address=COIL_PUBLISH_ENABLE,
                name="publish_enable",
                register_type=RegisterType.COIL,
                data_type="bool",
                units="",
                description="Enable/disable publishing",
            ),
            RegisterDefinition(
                address=COIL_RESET,
                name="reset",
                register_type=RegisterType.COIL,
                data_type="bool",
                units="",
                description="Reset to default values",
            ),
            RegisterDefinition(
                address=COIL_SIMULATION_ENABLE,
                name="simulation_enable",
                register_type=RegisterType.COIL,
                data_type="bool",
                units="",
                description="Enable/disable simulation",
            ),
        ]

        self._validate_all()

    def _validate_all(self):
        """Validate all register definitions and check for overlaps."""
        for reg in self.holding_registers + self.coils:
            reg.validate()

        self._check_address_conflicts(self.holding_registers, "Holding registers")
        self._check_address_conflicts(self.coils, "Coils")

    def _check_address_conflicts(
        self, registers: List[RegisterDefinition], type_name: str
    ):
        """Check for overlapping register addresses."""
        address_ranges = sorted(
            (reg.address, reg.address + reg.size_words - 1, reg.name)
            for reg in registers
        )

        for (curr_start, curr_end, curr_name), (next_start, next_end, next_name) in zip(
            address_ranges, address_ranges[1:]
        ):
            if curr_end >= next_start:
                raise ValueError(
                    f"{type_name} address conflict: {curr_name} "
                    f"[{curr_start}-{curr_end}] overlaps with {next_name} "
                    f"[{next_start}-{next_end}]"
                )

    def log_register_map(self, log: logging.Logger = logger):
        """Log the memory map banner shown at device startup."""
        log.info("=== Memory Map ===")
        log.info("Holding Registers (Float32 - 2 registers each):")
        for reg in self.holding_registers:
            modbus_addr = 40001 + reg.address
            log.info(
                f"  {modbus_addr}-{modbus_addr + reg.size_words - 1} "
                f"(addr {reg.address}-{reg.address + reg.size_words - 1}): "
                f"{reg.description} [{reg.units}]"
            )

        log.info("Control Coils:")
        for reg in self.coils:
            default = "ON" if COIL_DEFAULTS[reg.address] else "OFF"
            log.info(f"  {reg.address}: {reg.description} (default {default})")
