"""Framing of the serial protocol between a host and the motor bridge.

Every packet starts with an 8-byte command frame::

    header | type | motor id | data size | sequence | optional1 | optional2 | checksum

and may be followed by a data frame of ``data size`` bytes whose last byte is
the checksum of the bytes before it.  Numbers in the data frame are
little-endian float32 values.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar

HEADER = 0x89
COMMAND_PACKET_SIZE = 8


class PacketError(ValueError):
    """Raised when bytes do not form a valid request packet."""


class PacketIndex(IntEnum):
    """Byte offsets inside the command frame."""

    FRAME_HEADER = 0
    PACKET_TYPE = 1
    TARGET_MOTOR_ID = 2
    DATA_FRAME_SIZE = 3
    PACKET_SEQUENCE = 4
    REQUEST_TYPE = 5
    OPTIONAL = 6
    CHECKSUM = 7
    PACKET_SIZE = 8


class RequestType(IntEnum):
    """Kinds of request a host can send."""

    ENABLE = 0
    RESET = 1
    CONTROL_MOTION = 2
    CONTROL_SPEED = 3
    CONTROL_POSITION = 4
    CONTROL_CURRENT = 5
    SET_MECH_POS_TO_ZERO = 6
    SET_LIMIT_SPEED = 7
    SET_LIMIT_CURRENT = 8
    SET_LIMIT_TORQUE = 9
    SET_POSITION_CONTROL_GAIN = 10
    SET_VELOCITY_CONTROL_GAIN = 11


class ResponseType(IntEnum):
    """Kinds of response the bridge sends back."""

    MOTOR_STATUS = 0


def checksum(data: bytes) -> int:
    """Sum of the given bytes modulo 256."""
    return sum(data) & 0xFF


@dataclass(frozen=True)
class CommandHeader:
    """The fields of an 8-byte command frame."""

    header: int
    packet_type: int
    motor_id: int
    data_size: int
    sequence: int
    optional1: int
    optional2: int
    checksum: int


def parse_command_header(packet: bytes) -> CommandHeader:
    """Split the first eight bytes of a packet into their fields."""
    packet = bytes(packet)
    if len(packet) < COMMAND_PACKET_SIZE:
        raise PacketError(
            f"command frame needs {COMMAND_PACKET_SIZE} bytes, got {len(packet)}"
        )
    return CommandHeader(*packet[:COMMAND_PACKET_SIZE])


@dataclass(frozen=True)
class _Request:
    motor_id: int
    sequence: int = 0

    request_type: ClassVar[RequestType]
    _float_fields: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def _decode(cls, header: CommandHeader, data: bytes) -> _Request:
        needed = 4 * len(cls._float_fields)
        if len(data) < needed:
            raise PacketError(
                f"{cls.request_type.name} needs {needed} data bytes, got {len(data)}"
            )
        values = struct.unpack_from(f"<{len(cls._float_fields)}f", data)
        return cls(
            motor_id=header.motor_id,
            sequence=header.sequence,
            **dict(zip(cls._float_fields, values)),
        )


@dataclass(frozen=True)
class EnableRequest(_Request):
    """Enable a motor in the given control mode."""

    control_mode: int = 0

    request_type: ClassVar[RequestType] = RequestType.ENABLE

    @classmethod
    def _decode(cls, header: CommandHeader, data: bytes) -> EnableRequest:
        return cls(
            motor_id=header.motor_id,
            sequence=header.sequence,
            control_mode=header.optional1,
        )


@dataclass(frozen=True)
class ResetRequest(_Request):
    """Reset (disable) a motor."""

    request_type: ClassVar[RequestType] = RequestType.RESET


@dataclass(frozen=True)
class SetMechPosToZeroRequest(_Request):
    """Take the current mechanical position as zero."""

    request_type: ClassVar[RequestType] = RequestType.SET_MECH_POS_TO_ZERO


@dataclass(frozen=True)
class SetLimitSpeedRequest(_Request):
    """Set a motor's speed limit."""

    limit_speed: float = 0.0

    request_type: ClassVar[RequestType] = RequestType.SET_LIMIT_SPEED
    _float_fields: ClassVar[tuple[str, ...]] = ("limit_speed",)


@dataclass(frozen=True)
class SetLimitCurrentRequest(_Request):
    """Set a motor's current limit."""

    limit_current: float = 0.0

    request_type: ClassVar[RequestType] = RequestType.SET_LIMIT_CURRENT
    _float_fields: ClassVar[tuple[str, ...]] = ("limit_current",)


@dataclass(frozen=True)
class SetLimitTorqueRequest(_Request):
    """Set a motor's torque limit."""

    limit_torque: float = 0.0

    request_type: ClassVar[RequestType] = RequestType.SET_LIMIT_TORQUE
    _float_fields: ClassVar[tuple[str, ...]] = ("limit_torque",)


@dataclass(frozen=True)
class SetPositionControlGainRequest(_Request):
    """Set the position loop gain."""

    kp: float = 0.0

    request_type: ClassVar[RequestType] = RequestType.SET_POSITION_CONTROL_GAIN
    _float_fields: ClassVar[tuple[str, ...]] = ("kp",)


@dataclass(frozen=True)
class SetVelocityControlGainRequest(_Request):
    """Set the velocity loop gains."""

    kp: float = 0.0
    ki: float = 0.0

    request_type: ClassVar[RequestType] = RequestType.SET_VELOCITY_CONTROL_GAIN
    _float_fields: ClassVar[tuple[str, ...]] = ("kp", "ki")


@dataclass(frozen=True)
class ControlPositionRequest(_Request):
    """Position-mode target."""

    ref_position: float = 0.0

    request_type: ClassVar[RequestType] = RequestType.CONTROL_POSITION
    _float_fields: ClassVar[tuple[str, ...]] = ("ref_position",)


@dataclass(frozen=True)
class ControlSpeedRequest(_Request):
    """Speed-mode target."""

    ref_speed: float = 0.0

    request_type: ClassVar[RequestType] = RequestType.CONTROL_SPEED
    _float_fields: ClassVar[tuple[str, ...]] = ("ref_speed",)


@dataclass(frozen=True)
class ControlCurrentRequest(_Request):
    """Current-mode target."""

    ref_current: float = 0.0

    request_type: ClassVar[RequestType] = RequestType.CONTROL_CURRENT
    _float_fields: ClassVar[tuple[str, ...]] = ("ref_current",)


@dataclass(frozen=True)
class ControlMotionRequest(_Request):
    """Motion-mode target with its gains."""

    ref_position: float = 0.0
    ref_velocity: float = 0.0
    ref_current: float = 0.0
    kp: float = 0.0
    kd: float = 0.0

    request_type: ClassVar[RequestType] = RequestType.CONTROL_MOTION
    _float_fields: ClassVar[tuple[str, ...]] = (
        "ref_position",
        "ref_velocity",
        "ref_current",
        "kp",
        "kd",
    )


_REQUEST_CLASSES: dict[RequestType, type[_Request]] = {
    cls.request_type: cls
    for cls in (
        EnableRequest,
        ResetRequest,
        SetMechPosToZeroRequest,
        SetLimitSpeedRequest,
        SetLimitCurrentRequest,
        SetLimitTorqueRequest,
        SetPositionControlGainRequest,
        SetVelocityControlGainRequest,
        ControlPositionRequest,
        ControlSpeedRequest,
        ControlCurrentRequest,
        ControlMotionRequest,
    )
}


def parse_request(packet: bytes) -> _Request:
    """Validate a complete request packet and decode it into its request class."""
    packet = bytes(packet)
    header = parse_command_header(packet)
    data = packet[COMMAND_PACKET_SIZE:]

    if header.header != HEADER:
        raise PacketError(f"invalid header 0x{header.header:02x}")
    try:
        request_type = RequestType(header.packet_type)
    except ValueError:
        raise PacketError(f"invalid packet type {header.packet_type}") from None
    if header.data_size != len(data):
        raise PacketError(
            f"data size field is {header.data_size} but {len(data)} bytes follow"
        )
    if checksum(packet[: COMMAND_PACKET_SIZE - 1]) != header.checksum:
        raise PacketError("invalid command frame checksum")
    if data and checksum(data[:-1]) != data[-1]:
        raise PacketError("invalid data frame checksum")

    return _REQUEST_CLASSES[request_type]._decode(header, data)


def encode_request(
    request_type: int,
    motor_id: int,
    data: bytes = b"",
    sequence: int = 0,
    optional1: int = 0,
    optional2: int = 0,
) -> bytes:
    """Build a request packet; a non-empty payload gets its checksum appended."""
    data = bytes(data)
    data_frame = data + bytes([checksum(data)]) if data else b""
    command = bytes(
        [
            HEADER,
            int(request_type) & 0xFF,
            motor_id & 0xFF,
            len(data_frame) & 0xFF,
            sequence & 0xFF,
            optional1 & 0xFF,
            optional2 & 0xFF,
        ]
    )
    return command + bytes([checksum(command)]) + data_frame


@dataclass(frozen=True)
class MotorStatusResponse:
    """Motor feedback sent from the bridge to the host."""

    motor_id: int
    position: float
    velocity: float
    effort: float
    temperature: float
    sequence: int = 0

    packet_size: ClassVar[int] = COMMAND_PACKET_SIZE + 16 + 1

    def pack(self) -> bytes:
        """Encode as a command frame followed by four floats and their checksum."""
        payload = struct.pack(
            "<4f", self.position, self.velocity, self.effort, self.temperature
        )
        data_frame = payload + bytes([checksum(payload)])
        command = bytes(
            [
                HEADER,
                int(ResponseType.MOTOR_STATUS),
                self.motor_id & 0xFF,
                self.packet_size - COMMAND_PACKET_SIZE,
                self.sequence & 0xFF,
                0x00,
                0x00,
            ]
        )
        return command + bytes([checksum(command)]) + data_frame