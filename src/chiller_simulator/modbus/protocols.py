"""
Modbus Protocol Encoding/Decoding
==================================

Data conversion utilities for Modbus register encoding.

This module handles ONLY data format conversion:
- Python floats ↔ Modbus register pairs (IEEE 754 single precision)
- Float values ↔ consecutive cells of a RegisterStore

Byte Order: Big-endian, high word in the lower address.

Author: Guilherme F. G. Santos
Date: January 2026
License: MIT
"""

import struct
import numpy as np
from typing import Tuple

from .store import RegisterStore


class ModbusEncoder:
    """
    Encoder for converting Python values to Modbus register format.

    Modbus uses 16-bit registers. A float32 is stored in two
    consecutive registers.
    """

    @staticmethod
    def float32_to_registers(value: float) -> Tuple[int, int]:
        """
        Convert Python float to two 16-bit Modbus registers.

        The value is first narrowed to IEEE 754 single precision.
        Magnitudes beyond the float32 range become ±inf rather than
        raising, so the encoding is total.

        Args:
            value: Python float

        Returns:
            Tuple of two 16-bit register values (high word, low word)

        Example:
            >>> ModbusEncoder.float32_to_registers(7.0)
            (16608, 0)
        """
        with np.errstate(over="ignore"):
            narrowed = np.float32(value)

        packed = struct.pack(">f", float(narrowed))

        high, low = struct.unpack(">HH", packed)

        return high, low


class ModbusDecoder:
    """
    Decoder for converting Modbus register format to Python values.

    Performs the inverse operations of ModbusEncoder.
    """

    @staticmethod
    def registers_to_float32(high: int, low: int) -> float:
        """
        Convert two 16-bit Modbus registers to Python float.

        Args:
            high: High 16-bit register
            low: Low 16-bit register

        Returns:
            Python float (single precision value widened to double)

        Example:
            >>> ModbusDecoder.registers_to_float32(16608, 0)
            7.0
        """
        packed = struct.pack(">HH", high, low)

        (result,) = struct.unpack(">f", packed)

        return result


def encode_float32(value: float) -> Tuple[int, int]:
    return ModbusEncoder.float32_to_registers(value)


def decode_float32(high: int, low: int) -> float:
    return ModbusDecoder.registers_to_float32(high, low)


def set_float_at(store: RegisterStore, start_address: int, value: float) -> bool:
    """Write a float32 to ``start_address`` and ``start_address + 1``."""
    return store.write_registers(start_address, encode_float32(value))


def get_float_at(store: RegisterStore, start_address: int) -> float:
    """Read the float32 held in ``start_address`` and ``start_address + 1``."""
    high, low = store.read_registers(start_address, 2)
    return decode_float32(high, low)
