import logging
import socket

import pytest
from pymodbus.client import ModbusTcpClient
from pymodbus.datastore import ModbusDeviceContext, ModbusSequentialDataBlock

from chiller_simulator.core.simulation import SimulationLoop
from chiller_simulator.modbus.protocols import encode_float32, get_float_at
from chiller_simulator.modbus.register_map import COIL_PUBLISH_ENABLE, COIL_RESET
from chiller_simulator.modbus.slave import (
    HookDataBlock,
    ModbusServerConfig,
    ModbusSlave,
    RegisterAccessHooks,
    StoreAccessHooks,
)
from chiller_simulator.modbus.store import RegisterStore

# Modbus function codes
READ_COILS = 1
READ_HOLDING = 3
READ_INPUT = 4
WRITE_COIL = 5
WRITE_REGISTER = 6
WRITE_MULTIPLE_REGISTERS = 16


@pytest.fixture
def store():
    return RegisterStore()


@pytest.fixture
def device(store):
    """Device context wired the same way ModbusSlave wires it."""
    hooks = StoreAccessHooks(store)
    return ModbusDeviceContext(
        di=ModbusSequentialDataBlock(0, [0] * 10),
        co=HookDataBlock(hooks, "co", store),
        hr=HookDataBlock(hooks, "hr", store),
        ir=HookDataBlock(hooks, "ir", store),
    )


class RecordingHooks(RegisterAccessHooks):
    def __init__(self):
        self.calls = []

    def on_read_register(self, address):
        self.calls.append(("read_register", address))
        return 1

    def on_read_holding_register(self, address, unit_id):
        self.calls.append(("read_holding_register", address, unit_id))
        return 2

    def on_write_register(self, address, value):
        self.calls.append(("write_register", address, value))

    def on_read_coil(self, address):
        self.calls.append(("read_coil", address))
        return True

    def on_write_coil(self, address, value):
        self.calls.append(("write_coil", address, value))


class TestStoreAccessHooks:
    """Tests for the store-backed callback interface."""

    def test_register_hooks(self, store):
        hooks = StoreAccessHooks(store)
        hooks.on_write_register(10, 77)

        assert hooks.on_read_register(10) == 77
        assert hooks.on_read_holding_register(10, unit_id=5) == 77
        assert hooks.on_read_register(1000) == 0

    def test_coil_hooks(self, store):
        hooks = StoreAccessHooks(store)
        hooks.on_write_coil(COIL_RESET, True)

        assert hooks.on_read_coil(COIL_RESET) is True
        assert hooks.on_read_coil(303) is False

    def test_abstract_interface(self):
        with pytest.raises(TypeError):
            RegisterAccessHooks()


class TestHookDataBlock:
    """Tests for routing pymodbus block access to hooks."""

    def test_block_addresses_are_shifted_to_wire_addresses(self):
        hooks = RecordingHooks()
        block = HookDataBlock(hooks, "hr", RegisterStore(), unit_id=7)

        assert block.getValues(1, 2) == [2, 2]
        assert hooks.calls == [
            ("read_holding_register", 0, 7),
            ("read_holding_register", 1, 7),
        ]

    def test_input_and_coil_blocks(self):
        hooks = RecordingHooks()
        store = RegisterStore()

        assert HookDataBlock(hooks, "ir", store).getValues(5) == [1]
        assert HookDataBlock(hooks, "co", store).getValues(301) == [True]
        assert hooks.calls == [("read_register", 4), ("read_coil", 300)]

    def test_writes_convert_types_explicitly(self):
        hooks = RecordingHooks()
        store = RegisterStore()

        HookDataBlock(hooks, "co", store).setValues(301, [1])
        HookDataBlock(hooks, "hr", store).setValues(1, 5)

        assert hooks.calls == [("write_coil", 300, True), ("write_register", 0, 5)]

    def test_input_register_writes_are_dropped(self, caplog):
        hooks = RecordingHooks()

        with caplog.at_level(logging.WARNING):
            HookDataBlock(hooks, "ir", RegisterStore()).setValues(1, [5])

        assert hooks.calls == []
        assert "read-only input register 0" in caplog.text

    def test_every_address_validates(self):
        block = HookDataBlock(RecordingHooks(), "hr", RegisterStore())
        assert block.validate(0, 1)
        assert block.validate(5000, 10)


class TestDeviceContext:
    """Tests for client requests as pymodbus delivers them."""

    def test_holding_register_read(self, device, store):
        store.write_registers(0, list(encode_float32(7.0)))
        assert device.getValues(READ_HOLDING, 0, count=2) == [16608, 0]

    def test_input_registers_mirror_holding_registers(self, device, store):
        store.write_registers(4, [1, 2])
        assert device.getValues(READ_INPUT, 4, count=2) == [1, 2]

    def test_out_of_map_read_returns_zero(self, device):
        assert device.getValues(READ_HOLDING, 999, count=3) == [0, 0, 0]

    def test_single_register_write(self, device, store):
        device.setValues(WRITE_REGISTER, 42, [1234])
        assert store.read_register(42) == 1234

    def test_multiple_register_write(self, device, store):
        device.setValues(WRITE_MULTIPLE_REGISTERS, 0, list(encode_float32(15.0)))
        assert get_float_at(store, 0) == 15.0

    def test_out_of_map_write_is_ignored(self, device, store, caplog):
        before = store.snapshot()

        with caplog.at_level(logging.WARNING):
            device.setValues(WRITE_REGISTER, 1000, [5])

        assert store.snapshot() == before
        assert "Invalid register address: 1000" in caplog.text

    def test_coil_read_and_write(self, device, store):
        assert device.getValues(READ_COILS, 300, count=3) == [True, False, True]

        device.setValues(WRITE_COIL, COIL_PUBLISH_ENABLE, [False])

        assert store.read_coil(COIL_PUBLISH_ENABLE) is False

    def test_unknown_coils(self, device, store):
        device.setValues(WRITE_COIL, 400, [True])

        assert device.getValues(READ_COILS, 299, count=1) == [False]
        assert store.read_coil(400) is False

    def test_client_setting_reaches_simulation(self, device, store):
        loop = SimulationLoop(store, clock=lambda: 0.0)
        loop.initialize_registers()

        device.setValues(WRITE_MULTIPLE_REGISTERS, 0, list(encode_float32(12.5)))
        loop.tick()

        assert loop.state.setting_temp == 12.5
        assert device.getValues(READ_HOLDING, 0, count=2) == list(encode_float32(12.5))

    def test_client_reset_request(self, device, store):
        loop = SimulationLoop(store, clock=lambda: 0.0)
        loop.model.state.leaving_temp = 20.0
        device.setValues(WRITE_COIL, COIL_RESET, [True])

        loop.tick()

        assert device.getValues(READ_COILS, COIL_RESET, count=1) == [False]
        assert loop.state.leaving_temp == pytest.approx(7.45)


class TestServerConfig:
    """Tests for transport configuration."""

    def test_defaults(self):
        config = ModbusServerConfig.from_env({})
        assert (config.host, config.port, config.unit_id) == ("0.0.0.0", 503, 1)

    def test_environment_overrides(self):
        config = ModbusServerConfig.from_env(
            {
                "CHILLER_MODBUS_HOST": "127.0.0.1",
                "CHILLER_MODBUS_PORT": "5020",
                "CHILLER_MODBUS_UNIT_ID": "3",
            }
        )
        assert (config.host, config.port, config.unit_id) == ("127.0.0.1", 5020, 3)

    def test_blank_values_fall_back_to_defaults(self):
        config = ModbusServerConfig.from_env(
            {"CHILLER_MODBUS_HOST": "", "CHILLER_MODBUS_PORT": " "}
        )
        assert (config.host, config.port) == ("0.0.0.0", 503)

    @pytest.mark.parametrize(
        "environ",
        [
            {"CHILLER_MODBUS_PORT": "abc"},
            {"CHILLER_MODBUS_PORT": "0"},
            {"CHILLER_MODBUS_PORT": "70000"},
            {"CHILLER_MODBUS_UNIT_ID": "248"},
            {"CHILLER_MODBUS_UNIT_ID": "1.5"},
        ],
    )
    def test_invalid_environment_raises(self, environ):
        with pytest.raises(ValueError):
            ModbusServerConfig.from_env(environ)

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("CHILLER_MODBUS_PORT", "1502")
        assert ModbusServerConfig.from_env().port == 1502


class TestModbusSlave:
    """Tests for server construction (no sockets opened)."""

    def test_construction(self, store):
        slave = ModbusSlave(
            StoreAccessHooks(store), store, ModbusServerConfig(port=5020, unit_id=2)
        )

        assert not slave.is_running
        assert slave.identity.VendorName == "Chiller Simulator"

    def test_invalid_config_raises(self, store):
        with pytest.raises(ValueError):
            ModbusSlave(StoreAccessHooks(store), store, ModbusServerConfig(port=0))

    def test_stop_without_start_is_noop(self, store):
        ModbusSlave(StoreAccessHooks(store), store).stop()


@pytest.fixture
def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestLiveServer:
    """End-to-end tests over a real TCP connection."""

    def test_client_setting_round_trip(self, store, free_port):
        loop = SimulationLoop(store, clock=lambda: 0.0)
        loop.initialize_registers()

        slave = ModbusSlave(
            StoreAccessHooks(store),
            store,
            ModbusServerConfig(host="127.0.0.1", port=free_port),
        )
        slave.start(blocking=False)
        client = ModbusTcpClient("127.0.0.1", port=free_port)

        try:
            assert client.connect()

            response = client.write_registers(0, list(encode_float32(15.0)))
            assert not response.isError()

            result = loop.tick()
            assert result.state.setting_temp == 15.0

            response = client.read_holding_registers(0, count=2)
            assert not response.isError()
            assert tuple(response.registers) == encode_float32(15.0)

            response = client.read_coils(COIL_PUBLISH_ENABLE, count=1)
            assert response.bits[0] is True

        finally:
            client.close()
            slave.stop()

        assert not slave.is_running
