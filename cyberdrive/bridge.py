"""Bridge between a host on a byte stream and the motors on the CAN bus."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from .configs import MotionCommand
from .controller import CybergearController, MotorIdError
from .packet import (
    COMMAND_PACKET_SIZE,
    HEADER,
    ControlCurrentRequest,
    ControlMotionRequest,
    ControlPositionRequest,
    ControlSpeedRequest,
    EnableRequest,
    MotorStatusResponse,
    PacketError,
    PacketIndex,
    RequestType,
    ResetRequest,
    SetLimitCurrentRequest,
    SetLimitSpeedRequest,
    SetLimitTorqueRequest,
    SetMechPosToZeroRequest,
    SetPositionControlGainRequest,
    SetVelocityControlGainRequest,
    parse_request,
)

_log = logging.getLogger(__name__)

RECEIVE_BUFFER_SIZE = 512


class ByteStream(Protocol):
    """A byte stream to the host.

    ``read()`` returns the bytes available now (empty when there are none).
    Streams with an ``in_waiting`` attribute are read with ``read(in_waiting)``.
    """

    def read(self, *args: Any) -> bytes: ...

    def write(self, data: bytes) -> Any: ...


class CybergearBridge:
    """Turns host requests into motor commands and motor feedback into responses."""

    def __init__(self, controller: CybergearController, stream: ByteStream) -> None:
        self._controller = controller
        self._stream = stream
        self._buffer = bytearray()
        self._handlers: dict[int, Callable[[Any], None]] = {
            RequestType.ENABLE: self._enable,
            RequestType.RESET: self._reset,
            RequestType.CONTROL_MOTION: self._control_motion,
            RequestType.CONTROL_SPEED: self._control_speed,
            RequestType.CONTROL_POSITION: self._control_position,
            RequestType.CONTROL_CURRENT: self._control_current,
            RequestType.SET_MECH_POS_TO_ZERO: self._set_mech_pos_to_zero,
            RequestType.SET_LIMIT_SPEED: self._set_limit_speed,
            RequestType.SET_LIMIT_CURRENT: self._set_limit_current,
            RequestType.SET_LIMIT_TORQUE: self._set_limit_torque,
            RequestType.SET_POSITION_CONTROL_GAIN: self._set_position_control_gain,
            RequestType.SET_VELOCITY_CONTROL_GAIN: self._set_velocity_control_gain,
        }

    def process_request_command(self) -> None:
        """Handle every complete request waiting on the stream."""
        while (packet := self.next_packet()) is not None:
            handler = self._handlers.get(packet[PacketIndex.PACKET_TYPE])
            if handler is None:
                _log.debug("ignoring packet of unknown type %d", packet[PacketIndex.PACKET_TYPE])
                continue
            try:
                request = parse_request(packet)
            except PacketError as exc:
                _log.debug("ignoring invalid packet: %s", exc)
                continue
            try:
                handler(request)
            except MotorIdError as exc:
                _log.debug("ignoring request: %s", exc)
            self._controller.process_packet()

    def process_motor_response(self) -> None:
        """Read motor feedback and report every updated motor to the host."""
        self._controller.process_packet()
        for motor_id in self._controller.motor_ids():
            if self._controller.check_update_flag(motor_id):
                self._send_motor_status(motor_id, 0)
                self._controller.reset_update_flag(motor_id)

    def next_packet(self) -> bytes | None:
        """Take the next complete packet out of the receive buffer, or None."""
        self._fill_buffer()

        start = self._buffer.find(HEADER)
        if start < 0:
            self._buffer.clear()
            return None
        del self._buffer[:start]

        if len(self._buffer) < PacketIndex.PACKET_SIZE:
            return None
        total = COMMAND_PACKET_SIZE + self._buffer[PacketIndex.DATA_FRAME_SIZE]
        if len(self._buffer) < total:
            return None

        packet = bytes(self._buffer[:total])
        del self._buffer[:total]
        return packet

    # -- internals ---------------------------------------------------------

    def _fill_buffer(self) -> None:
        waiting = getattr(self._stream, "in_waiting", None)
        if waiting is not None:
            data = self._stream.read(waiting) if waiting else b""
        else:
            data = self._stream.read() or b""
        room = RECEIVE_BUFFER_SIZE - len(self._buffer)
        if room > 0:
            self._buffer += bytes(data)[:room]

    def _send_motor_status(self, motor_id: int, sequence: int) -> None:
        status = self._controller.get_motor_status(motor_id)
        response = MotorStatusResponse(
            status.motor_id,
            status.position,
            status.velocity,
            status.effort,
            status.temperature,
            sequence,
        )
        self._stream.write(response.pack())
        flush = getattr(self._stream, "flush", None)
        if flush is not None:
            flush()

    def _enable(self, request: EnableRequest) -> None:
        self._controller.enable_motor(request.motor_id, request.control_mode)

    def _reset(self, request: ResetRequest) -> None:
        self._controller.reset_motor(request.motor_id)

    def _control_position(self, request: ControlPositionRequest) -> None:
        self._controller.send_position_command(request.motor_id, request.ref_position)

    def _control_speed(self, request: ControlSpeedRequest) -> None:
        self._controller.send_speed_command(request.motor_id, request.ref_speed)

    def _control_current(self, request: ControlCurrentRequest) -> None:
        self._controller.send_current_command(request.motor_id, request.ref_current)

    def _control_motion(self, request: ControlMotionRequest) -> None:
        cmd = MotionCommand(
            position=request.ref_position,
            velocity=request.ref_velocity,
            effort=request.ref_current,
            kp=request.kp,
            kd=request.kd,
        )
        self._controller.send_motion_command(request.motor_id, cmd)

    def _set_mech_pos_to_zero(self, request: SetMechPosToZeroRequest) -> None:
        self._controller.set_mech_position_to_zero(request.motor_id)

    def _set_limit_speed(self, request: SetLimitSpeedRequest) -> None:
        self._controller.set_speed_limit(request.motor_id, request.limit_speed)

    def _set_limit_current(self, request: SetLimitCurrentRequest) -> None:
        self._controller.set_current_limit(request.motor_id, request.limit_current)

    def _set_limit_torque(self, request: SetLimitTorqueRequest) -> None:
        self._controller.set_torque_limit(request.motor_id, request.limit_torque)

    def _set_position_control_gain(self, request: SetPositionControlGainRequest) -> None:
        self._controller.set_position_control_gain(request.motor_id, request.kp)

    def _set_velocity_control_gain(self, request: SetVelocityControlGainRequest) -> None:
        self._controller.set_velocity_control_gain(request.motor_id, request.kp, request.ki)