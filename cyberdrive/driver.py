"""Driver for a single motor addressed over the CAN bus."""

from __future__ import annotations

import dataclasses
import logging
import struct
import time

from .can_interface import CanInterface
from .defs import (
    CURRENT_FILTER_GAIN_MAX,
    CURRENT_FILTER_GAIN_MIN,
    IQ_MAX,
    IQ_MIN,
    KD_MAX,
    KD_MIN,
    KP_MAX,
    KP_MIN,
    P_MAX,
    P_MIN,
    T_MAX,
    T_MIN,
    V_MAX,
    V_MIN,
    Address,
    Command,
    RunMode,
)
from .motor import MotorParameter, MotorStatus, float_to_uint, uint_to_float

_log = logging.getLogger(__name__)

# RAM parameters holding a little-endian float32 and the field they fill.
_FLOAT_PARAMETERS = {
    Address.IQ_REF: "iq_ref",
    Address.SPEED_REF: "spd_ref",
    Address.LIMIT_TORQUE: "limit_torque",
    Address.CURRENT_KP: "cur_kp",
    Address.CURRENT_KI: "cur_ki",
    Address.CURRENT_FILTER_GAIN: "cur_filt_gain",
    Address.LOC_REF: "loc_ref",
    Address.LIMIT_SPEED: "limit_spd",
    Address.LIMIT_CURRENT: "limit_cur",
    Address.MECH_POS: "mech_pos",
    Address.IQF: "iqf",
    Address.MECH_VEL: "mech_vel",
    Address.VBUS: "vbus",
    Address.LOC_KP: "loc_kp",
    Address.SPD_KP: "spd_kp",
    Address.SPD_KI: "spd_ki",
}

_DUMP_ORDER = (
    Address.RUN_MODE,
    Address.IQ_REF,
    Address.SPEED_REF,
    Address.LIMIT_TORQUE,
    Address.CURRENT_KP,
    Address.CURRENT_KI,
    Address.CURRENT_FILTER_GAIN,
    Address.LOC_REF,
    Address.LIMIT_SPEED,
    Address.LIMIT_CURRENT,
    Address.MECH_POS,
    Address.IQF,
    Address.MECH_VEL,
    Address.VBUS,
    Address.ROTATION,
    Address.LOC_KP,
    Address.SPD_KP,
    Address.SPD_KI,
)

_FRAME_SIZE = 8


def _micros() -> int:
    return time.monotonic_ns() // 1000


class CybergearDriver:
    """Sends commands to one motor and keeps the feedback it reports."""

    def __init__(self, master_can_id: int = 0, target_can_id: int = 0) -> None:
        self.master_can_id = master_can_id
        self.target_can_id = target_can_id
        self._can: CanInterface | None = None
        self._wait_usec = 0
        self._run_mode = int(RunMode.MOTION)
        self._status = MotorStatus()
        self._param = MotorParameter()
        self._send_count = 0

    # -- state -------------------------------------------------------------

    @property
    def run_mode(self) -> int:
        """Run mode last sent to the motor."""
        return self._run_mode

    @property
    def motor_id(self) -> int:
        """CAN id of the driven motor."""
        return self.target_can_id

    @property
    def motor_status(self) -> MotorStatus:
        """A copy of the latest feedback."""
        return dataclasses.replace(self._status)

    @property
    def motor_param(self) -> MotorParameter:
        """A copy of the parameters read back so far."""
        return dataclasses.replace(self._param)

    @property
    def send_count(self) -> int:
        """Number of frames this driver has sent."""
        return self._send_count

    # -- setup -------------------------------------------------------------

    def init(self, can: CanInterface, wait_response_time_usec: int = 0) -> None:
        """Bind the driver to a bus; wait the given time after every frame sent."""
        self._can = can
        self._wait_usec = wait_response_time_usec

    def init_motor(self, run_mode: int) -> None:
        """Reset the motor, then select its run mode."""
        self.reset_motor()
        self.set_run_mode(run_mode)

    def enable_motor(self) -> None:
        self._send_command(Command.ENABLE, self.master_can_id, bytes(_FRAME_SIZE))

    def reset_motor(self) -> None:
        self._send_command(Command.RESET, self.master_can_id, bytes(_FRAME_SIZE))

    def set_run_mode(self, run_mode: int) -> None:
        self._run_mode = int(run_mode)
        payload = bytes([int(run_mode) & 0xFF, 0, 0, 0])
        self._send_command(
            Command.RAM_WRITE, self.master_can_id, self._ram_frame(Address.RUN_MODE, payload)
        )

    # -- motion ------------------------------------------------------------

    def motor_control(
        self, position: float, speed: float, torque: float, kp: float, kd: float
    ) -> None:
        """Send a motion-mode command; every argument is clipped to its range."""
        data = struct.pack(
            ">4H",
            float_to_uint(position, P_MIN, P_MAX, 16),
            float_to_uint(speed, V_MIN, V_MAX, 16),
            float_to_uint(kp, KP_MIN, KP_MAX, 16),
            float_to_uint(kd, KD_MIN, KD_MAX, 16),
        )
        torque_raw = float_to_uint(torque, T_MIN, T_MAX, 16)
        self._send_command(Command.POSITION, torque_raw, data)

    def set_limit_speed(self, speed: float) -> None:
        self._write_float(Address.LIMIT_SPEED, speed, 0.0, V_MAX)

    def set_limit_current(self, current: float) -> None:
        self._write_float(Address.LIMIT_CURRENT, current, 0.0, IQ_MAX)

    def set_current_kp(self, kp: float) -> None:
        self._write_float(Address.CURRENT_KP, kp, 0.0, KP_MAX)

    def set_current_ki(self, ki: float) -> None:
        """Accepted for symmetry; the motor's range for this gain is unknown, so nothing is sent."""
        _log.debug("current ki write is disabled, ignoring %r", ki)

    def set_current_filter_gain(self, gain: float) -> None:
        self._write_float(
            Address.CURRENT_FILTER_GAIN, gain, CURRENT_FILTER_GAIN_MIN, CURRENT_FILTER_GAIN_MAX
        )

    def set_limit_torque(self, torque: float) -> None:
        self._write_float(Address.LIMIT_TORQUE, torque, 0.0, T_MAX)

    def set_position_kp(self, kp: float) -> None:
        self._write_float(Address.LOC_KP, kp, 0.0, 200.0)

    def set_velocity_kp(self, kp: float) -> None:
        self._write_float(Address.SPD_KP, kp, 0.0, 200.0)

    def set_velocity_ki(self, ki: float) -> None:
        self._write_float(Address.SPD_KI, ki, 0.0, 200.0)

    def set_position_ref(self, position: float) -> None:
        self._write_float(Address.LOC_REF, position, P_MIN, P_MAX)

    def set_speed_ref(self, speed: float) -> None:
        self._write_float(Address.SPEED_REF, speed, V_MIN, V_MAX)

    def set_current_ref(self, current: float) -> None:
        self._write_float(Address.IQ_REF, current, IQ_MIN, IQ_MAX)

    def set_mech_position_to_zero(self) -> None:
        data = bytes([0x01]) + bytes(_FRAME_SIZE - 1)
        self._send_command(Command.SET_MECH_POSITION_TO_ZERO, self.master_can_id, data)

    def change_motor_can_id(self, can_id: int) -> None:
        """Ask the motor to take a new CAN id."""
        option = ((can_id & 0xFF) << 8) | (self.master_can_id & 0xFF)
        self._send_command(Command.CHANGE_CAN_ID, option, bytes(_FRAME_SIZE))

    # -- parameter reads ---------------------------------------------------

    def read_ram_data(self, index: int) -> None:
        """Request one RAM parameter; the reply lands in motor_param."""
        data = (int(index) & 0xFFFF).to_bytes(2, "little") + bytes(_FRAME_SIZE - 2)
        self._send_command(Command.RAM_READ, self.master_can_id, data)

    def get_mech_position(self) -> None:
        self.read_ram_data(Address.MECH_POS)

    def get_mech_velocity(self) -> None:
        self.read_ram_data(Address.MECH_VEL)

    def get_vbus(self) -> None:
        self.read_ram_data(Address.VBUS)

    def get_rotation(self) -> None:
        self.read_ram_data(Address.ROTATION)

    def dump_motor_param(self) -> None:
        """Request every known parameter, pausing a millisecond between requests."""
        for index in _DUMP_ORDER:
            self.read_ram_data(index)
            time.sleep(0.001)

    # -- reception ---------------------------------------------------------

    def process_packet(self) -> bool:
        """Read frames from the bus until one is not for this motor; report any update."""
        updated = False
        while self._receive_motor_data():
            updated = True
        return updated

    def update_motor_status(self, can_id: int, data: bytes) -> bool:
        """Apply a received frame; return whether it was a reply from this motor."""
        if can_id & 0xFF != self.master_can_id:
            return False
        if (can_id & 0xFF00) >> 8 != self.target_can_id:
            return False

        frame = bytes(data).ljust(_FRAME_SIZE, b"\0")
        packet_type = (can_id & 0x3F000000) >> 24
        if packet_type == Command.RESPONSE:
            self._process_motor_packet(frame)
        elif packet_type == Command.RAM_READ:
            self._process_read_parameter_packet(frame)
        elif packet_type == Command.GET_MOTOR_FAIL:
            pass
        else:
            _log.debug(
                "invalid command response [0x%x] id=%X data=%s",
                packet_type,
                can_id,
                bytes(data).hex(" ").upper(),
            )
            return False
        return True

    # -- internals ---------------------------------------------------------

    def _receive_motor_data(self) -> bool:
        message = self._bus.read_message()
        if message is None:
            return False
        receive_can_id = message.can_id & 0xFF
        if receive_can_id != self.master_can_id:
            _log.debug(
                "invalid master can id: expected 0x%02x, got 0x%02x (raw %x)",
                self.master_can_id,
                receive_can_id,
                message.can_id,
            )
            return False
        motor_can_id = (message.can_id & 0xFF00) >> 8
        if motor_can_id != self.target_can_id:
            _log.debug(
                "invalid target can id: expected 0x%02x, got 0x%02x (raw %x)",
                self.target_can_id,
                motor_can_id,
                message.can_id,
            )
            return False
        return self.update_motor_status(message.can_id, message.data)

    def _process_motor_packet(self, frame: bytes) -> None:
        raw_position, raw_velocity, raw_effort, raw_temperature = struct.unpack(">4H", frame[:8])
        self._status = MotorStatus(
            stamp_usec=_micros(),
            motor_id=self.target_can_id,
            position=uint_to_float(raw_position, P_MIN, P_MAX),
            velocity=uint_to_float(raw_velocity, V_MIN, V_MAX),
            effort=uint_to_float(raw_effort, T_MIN, T_MAX),
            temperature=float(raw_temperature),
            raw_position=raw_position,
            raw_velocity=raw_velocity,
            raw_effort=raw_effort,
            raw_temperature=raw_temperature,
        )

    def _process_read_parameter_packet(self, frame: bytes) -> None:
        index = int.from_bytes(frame[0:2], "little")
        if index == Address.RUN_MODE:
            self._param.run_mode = frame[4]
        elif index == Address.ROTATION:
            (self._param.rotation,) = struct.unpack("<h", frame[4:6])
        elif index in _FLOAT_PARAMETERS:
            (value,) = struct.unpack("<f", frame[4:8])
            setattr(self._param, _FLOAT_PARAMETERS[Address(index)], value)
        else:
            _log.debug("unknown parameter index [0x%04x]", index)
            return
        self._param.stamp_usec = _micros()

    @staticmethod
    def _ram_frame(address: int, payload: bytes) -> bytes:
        return (int(address) & 0xFFFF).to_bytes(2, "little") + b"\0\0" + payload

    def _write_float(self, address: int, value: float, low: float, high: float) -> None:
        # The motor receives the value as given; low/high document its range only.
        _log.debug("write 0x%04x = %r (range %r..%r)", address, value, low, high)
        payload = struct.pack("<f", value)
        self._send_command(Command.RAM_WRITE, self.master_can_id, self._ram_frame(address, payload))

    @property
    def _bus(self) -> CanInterface:
        if self._can is None:
            raise RuntimeError("driver is not bound to a CAN interface")
        return self._can

    def _send_command(self, command: int, option: int, data: bytes) -> None:
        can_id = (
            (int(command) << 24) | ((int(option) & 0xFFFF) << 8) | (self.target_can_id & 0xFF)
        ) & 0xFFFFFFFF
        self._bus.send_message(can_id, data, True)
        if self._wait_usec > 0:
            time.sleep(self._wait_usec / 1_000_000)
        self._send_count += 1