import struct

import pytest

from cyberdrive.can_interface import MemoryCanInterface
from cyberdrive.defs import (
    KD_MIN,
    KP_MAX,
    P_MAX,
    T_MAX,
    V_MIN,
    Address,
    Command,
    RunMode,
)
from cyberdrive.driver import CybergearDriver

MASTER = 0x00
TARGET = 0x7F


@pytest.fixture
def bus():
    return MemoryCanInterface()


@pytest.fixture
def driver(bus):
    drv = CybergearDriver(MASTER, TARGET)
    drv.init(bus)
    return drv


def frame_id(command, option, target=TARGET):
    return (command << 24) | (option << 8) | target


def response_id(command=Command.RESPONSE, motor=TARGET, master=MASTER):
    return (command << 24) | (motor << 8) | master


def test_enable_motor_wire_frame(driver, bus):
    driver.enable_motor()
    assert len(bus.sent) == 1
    msg = bus.sent[0]
    assert msg.can_id == 0x0300007F
    assert msg.data == bytes(8)
    assert msg.extended is True


def test_init_motor_resets_then_sets_mode(driver, bus):
    driver.init_motor(RunMode.SPEED)
    assert [m.can_id >> 24 for m in bus.sent] == [Command.RESET, Command.RAM_WRITE]
    assert driver.run_mode == RunMode.SPEED


def test_set_run_mode_frame(driver, bus):
    driver.set_run_mode(RunMode.CURRENT)
    msg = bus.sent[0]
    assert msg.can_id == frame_id(Command.RAM_WRITE, MASTER)
    assert msg.data[0:2] == int(Address.RUN_MODE).to_bytes(2, "little")
    assert msg.data[4] == RunMode.CURRENT
    assert len(msg.data) == 8


def test_set_limit_speed_writes_float(driver, bus):
    driver.set_limit_speed(10.0)
    msg = bus.sent[0]
    assert msg.can_id >> 24 == Command.RAM_WRITE
    assert msg.data[0:2] == int(Address.LIMIT_SPEED).to_bytes(2, "little")
    assert struct.unpack("<f", msg.data[4:8])[0] == 10.0


def test_write_float_sends_value_unclipped(driver, bus):
    driver.set_limit_speed(50.0)
    assert struct.unpack("<f", bus.sent[0].data[4:8])[0] == 50.0


def test_set_current_ki_sends_nothing(driver, bus):
    driver.set_current_ki(0.5)
    assert bus.sent == []
    assert driver.send_count == 0


def test_motor_control_extremes(driver, bus):
    driver.motor_control(P_MAX, V_MIN, T_MAX, KP_MAX, KD_MIN)
    msg = bus.sent[0]
    assert msg.can_id >> 24 == Command.POSITION
    assert (msg.can_id >> 8) & 0xFFFF == 0xFFFF
    assert msg.can_id & 0xFF == TARGET
    assert msg.data[0:2] == b"\xff\xff"
    assert msg.data[2:4] == b"\x00\x00"
    assert msg.data[4:6] == b"\xff\xff"
    assert msg.data[6:8] == b"\x00\x00"


def test_motor_control_clips_out_of_range(driver, bus):
    driver.motor_control(1000.0, -1000.0, 1000.0, 1e6, -5.0)
    clipped = bus.sent[0]
    driver.motor_control(P_MAX, V_MIN, T_MAX, KP_MAX, KD_MIN)
    exact = bus.sent[1]
    assert clipped == exact


def test_read_ram_data_frame(driver, bus):
    driver.read_ram_data(Address.VBUS)
    msg = bus.sent[0]
    assert msg.can_id == frame_id(Command.RAM_READ, MASTER)
    assert msg.data[0:2] == int(Address.VBUS).to_bytes(2, "little")
    assert msg.data[2:] == bytes(6)


@pytest.mark.parametrize(
    "method, address",
    [
        ("get_mech_position", Address.MECH_POS),
        ("get_mech_velocity", Address.MECH_VEL),
        ("get_vbus", Address.VBUS),
        ("get_rotation", Address.ROTATION),
    ],
)
def test_getters_request_address(driver, bus, method, address):
    getattr(driver, method)()
    assert int.from_bytes(bus.sent[0].data[0:2], "little") == address


def test_dump_motor_param_requests_every_address(driver, bus):
    driver.dump_motor_param()
    indexes = [int.from_bytes(m.data[0:2], "little") for m in bus.sent]
    assert len(indexes) == len(Address)
    assert set(indexes) == {int(a) for a in Address}
    assert indexes[0] == Address.RUN_MODE


def test_change_motor_can_id(driver, bus):
    driver.change_motor_can_id(0x05)
    msg = bus.sent[0]
    assert msg.can_id >> 24 == Command.CHANGE_CAN_ID
    assert (msg.can_id >> 16) & 0xFF == 0x05
    assert (msg.can_id >> 8) & 0xFF == MASTER
    assert driver.motor_id == TARGET


def test_set_mech_position_to_zero(driver, bus):
    driver.set_mech_position_to_zero()
    msg = bus.sent[0]
    assert msg.can_id >> 24 == Command.SET_MECH_POSITION_TO_ZERO
    assert msg.data[0] == 1
    assert msg.data[1:] == bytes(7)


def test_send_count_counts_frames(driver):
    driver.enable_motor()
    driver.reset_motor()
    driver.set_speed_ref(1.0)
    assert driver.send_count == 3


def test_unbound_driver_raises():
    drv = CybergearDriver(MASTER, TARGET)
    with pytest.raises(RuntimeError):
        drv.enable_motor()


def test_update_motor_status_response(driver):
    data = struct.pack(">4H", 0xFFFF, 0x0000, 0xFFFF, 300)
    assert driver.update_motor_status(response_id(), data) is True
    status = driver.motor_status
    assert status.position == pytest.approx(P_MAX)
    assert status.velocity == pytest.approx(V_MIN)
    assert status.effort == pytest.approx(T_MAX)
    assert status.temperature == 300.0
    assert status.raw_temperature == 300
    assert status.motor_id == TARGET


def test_update_motor_status_rejects_other_master(driver):
    data = struct.pack(">4H", 1, 2, 3, 4)
    assert driver.update_motor_status(response_id(master=0x10), data) is False
    assert driver.motor_status.raw_position == 0


def test_update_motor_status_rejects_other_motor(driver):
    data = struct.pack(">4H", 1, 2, 3, 4)
    assert driver.update_motor_status(response_id(motor=0x01), data) is False


def test_update_motor_status_rejects_unknown_type(driver):
    assert driver.update_motor_status(response_id(Command.ENABLE), bytes(8)) is False


def test_update_motor_status_accepts_fault_report(driver):
    assert driver.update_motor_status(response_id(Command.GET_MOTOR_FAIL), bytes(8)) is True


def test_read_float_parameter(driver):
    data = int(Address.VBUS).to_bytes(2, "little") + b"\0\0" + struct.pack("<f", 24.0)
    assert driver.update_motor_status(response_id(Command.RAM_READ), data) is True
    param = driver.motor_param
    assert param.vbus == 24.0
    assert param.stamp_usec > 0


def test_read_rotation_parameter(driver):
    data = int(Address.ROTATION).to_bytes(2, "little") + b"\0\0" + struct.pack("<h", -3) + b"\0\0"
    driver.update_motor_status(response_id(Command.RAM_READ), data)
    assert driver.motor_param.rotation == -3


def test_read_run_mode_parameter(driver):
    data = int(Address.RUN_MODE).to_bytes(2, "little") + b"\0\0" + bytes([RunMode.SPEED, 0, 0, 0])
    driver.update_motor_status(response_id(Command.RAM_READ), data)
    assert driver.motor_param.run_mode == RunMode.SPEED


def test_read_unknown_parameter_leaves_params(driver):
    data = (0x1234).to_bytes(2, "little") + b"\0\0" + struct.pack("<f", 9.0)
    assert driver.update_motor_status(response_id(Command.RAM_READ), data) is True
    assert driver.motor_param.stamp_usec == 0


def test_process_packet_reads_all_frames(driver, bus):
    bus.inject(response_id(), struct.pack(">4H", 1, 2, 3, 4))
    bus.inject(response_id(), struct.pack(">4H", 5, 6, 7, 8))
    assert driver.process_packet() is True
    assert driver.motor_status.raw_position == 5
    assert bus.available() is False


def test_process_packet_stops_at_foreign_frame(driver, bus):
    bus.inject(response_id(motor=0x01), struct.pack(">4H", 1, 2, 3, 4))
    bus.inject(response_id(), struct.pack(">4H", 5, 6, 7, 8))
    assert driver.process_packet() is False
    assert bus.available() is True


def test_process_packet_empty_bus(driver):
    assert driver.process_packet() is False


def test_motor_status_is_a_copy(driver):
    driver.update_motor_status(response_id(), struct.pack(">4H", 1, 2, 3, 4))
    status = driver.motor_status
    status.raw_position = 999
    assert driver.motor_status.raw_position == 1