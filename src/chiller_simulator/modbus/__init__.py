"""
Modbus Interface Package
=========================

Memory model and Modbus/TCP adapter of the simulated chiller.

Components:
- register_map.py: Address space definition
- store.py: Thread-safe registers and coils
- protocols.py: Float32 encoding/decoding
- slave.py: pymodbus TCP server bridged to the store

Usage Example:
>>> from chiller_simulator.modbus import RegisterStore, set_float_at, get_float_at
>>>
>>> store = RegisterStore()
>>> set_float_at(store, 0, 7.0)
>>> store.read_registers(0, 2)
[16608, 0]
>>> get_float_at(store, 0)
7.0

Architecture:

┌─────────────────┐
│  SCADA / BMS    │  Supervisory client
└────────┬────────┘
         │ Modbus/TCP
┌────────▼────────┐
│  ModbusSlave    │  pymodbus server + HookDataBlock
└────────┬────────┘
         │ RegisterAccessHooks
┌────────▼────────┐
│  RegisterStore  │◄── SimulationLoop (every 2 s)
└─────────────────┘

Author: Guilherme F. G. Santos
Date: January 2026
License: MIT
"""

from .register_map import (
    ChillerRegisterMap,
    RegisterDefinition,
    RegisterType,
    REGISTER_COUNT,
    REG_SETTING_TEMP,
    REG_ENTERING_TEMP,
    REG_LEAVING_TEMP,
    COIL_PUBLISH_ENABLE,
    COIL_RESET,
    COIL_SIMULATION_ENABLE,
    COIL_DEFAULTS,
)

from .store import RegisterStore

from .protocols import (
    ModbusEncoder,
    ModbusDecoder,
    encode_float32,
    decode_float32,
    set_float_at,
    get_float_at,
)

from .slave import (
    ModbusSlave,
    ModbusServerConfig,
    RegisterAccessHooks,
    StoreAccessHooks,
    HookDataBlock,
)

__all__ = [
    # Register mapping
    "ChillerRegisterMap",
    "RegisterDefinition",
    "RegisterType",
    "REGISTER_COUNT",
    "REG_SETTING_TEMP",
    "REG_ENTERING_TEMP",
    "REG_LEAVING_TEMP",
    "COIL_PUBLISH_ENABLE",
    "COIL_RESET",
    "COIL_SIMULATION_ENABLE",
    "COIL_DEFAULTS",
    # Memory
    "RegisterStore",
    # Encoding
    "ModbusEncoder",
    "ModbusDecoder",
    "encode_float32",
    "decode_float32",
    "set_float_at",
    "get_float_at",
    # Server
    "ModbusSlave",
    "ModbusServerConfig",
    "RegisterAccessHooks",
    "StoreAccessHooks",
    "HookDataBlock",
]
