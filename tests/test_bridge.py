import struct

import pytest

from cyberdrive.bridge import CybergearBridge
from cyberdrive.can_interface import MemoryCanInterface
from cyberdrive.controller import CybergearController
from cyberdrive.defs import P_MAX, P_MIN, Address, Command, RunMode
from cyberdrive.motor import uint_to_float
from cyberdrive.packet import HEADER, RequestType, ResponseType, checksum, encode_request


class FakeStream:
    def __init__(self):
        self.incoming = bytearray()
        self.outgoing = bytearray()
        self.flushes = 0

    def feed(self, data):
        self.incoming += data

    def read(self):
        data = bytes(self.incoming)
        self.incoming.clear()
        return data

    def write(self, data):
        self.outgoing += data

    def flush(self):
        self.flushes += 1


MASTER = 0x00


@pytest.fixture
def setup():
    can = MemoryCanInterface(interrupt=True)
    controller = CybergearController(MASTER)
    controller.init([1, 2], RunMode.POSITION, can)
    stream = FakeStream()
    bridge = CybergearBridge(controller, stream)
    return can, controller, stream, bridge


def _fields(message):
    return message.can_id >> 24, (message.can_id >> 8) & 0xFFFF, message.can_id & 0xFF


def test_enable_request_resets_sets_mode_and_enables(setup):
    can, _, stream, bridge = setup
    before = len(can.sent)
    stream.feed(encode_request(RequestType.ENABLE, 1, optional1=RunMode.SPEED))
    bridge.process_request_command()
    new = can.sent[before:]
    assert [_fields(m)[0] for m in new] == [Command.RESET, Command.RAM_WRITE, Command.ENABLE]
    assert all(_fields(m)[2] == 1 for m in new)
    assert new[1].data[4] == RunMode.SPEED


def test_position_request_writes_loc_ref(setup):
    can, _, stream, bridge = setup
    before = len(can.sent)
    stream.feed(encode_request(RequestType.CONTROL_POSITION, 2, struct.pack("<f", 1.0)))
    bridge.process_request_command()
    (message,) = can.sent[before:]
    assert _fields(message) == (Command.RAM_WRITE, MASTER, 2)
    assert int.from_bytes(message.data[0:2], "little") == Address.LOC_REF
    assert struct.unpack("<f", message.data[4:8])[0] == 1.0


def test_speed_request_is_clamped_by_software_limit(setup):
    can, controller, stream, bridge = setup
    before = len(can.sent)
    stream.feed(encode_request(RequestType.CONTROL_SPEED, 1, struct.pack("<f", 100.0)))
    bridge.process_request_command()
    (message,) = can.sent[before:]
    assert int.from_bytes(message.data[0:2], "little") == Address.SPEED_REF
    limit = controller.get_software_config(1).limit_speed
    assert struct.unpack("<f", message.data[4:8])[0] == pytest.approx(limit)


def test_motion_request_sends_position_command(setup):
    can, _, stream, bridge = setup
    before = len(can.sent)
    payload = struct.pack("<5f", 0.0, 0.0, 0.0, 1.0, 0.5)
    stream.feed(encode_request(RequestType.CONTROL_MOTION, 1, payload))
    bridge.process_request_command()
    (message,) = can.sent[before:]
    assert _fields(message)[0] == Command.POSITION
    assert _fields(message)[2] == 1


def test_velocity_gain_request_sends_two_writes(setup):
    can, _, stream, bridge = setup
    before = len(can.sent)
    payload = struct.pack("<2f", 2.0, 0.5)
    stream.feed(encode_request(RequestType.SET_VELOCITY_CONTROL_GAIN, 2, payload))
    bridge.process_request_command()
    addresses = [int.from_bytes(m.data[0:2], "little") for m in can.sent[before:]]
    assert addresses == [Address.SPD_KP, Address.SPD_KI]


def test_garbage_before_header_is_skipped(setup):
    can, _, stream, bridge = setup
    before = len(can.sent)
    stream.feed(b"\x00\x01\x02" + encode_request(RequestType.RESET, 1))
    bridge.process_request_command()
    (message,) = can.sent[before:]
    assert _fields(message)[0] == Command.RESET


def test_partial_packet_waits_for_rest(setup):
    can, _, stream, bridge = setup
    before = len(can.sent)
    packet = encode_request(RequestType.CONTROL_CURRENT, 1, struct.pack("<f", 2.0))
    stream.feed(packet[:10])
    bridge.process_request_command()
    assert len(can.sent) == before
    stream.feed(packet[10:])
    bridge.process_request_command()
    assert len(can.sent) == before + 1
    assert int.from_bytes(can.sent[-1].data[0:2], "little") == Address.IQ_REF


def test_bad_checksum_is_dropped_and_next_packet_handled(setup):
    can, _, stream, bridge = setup
    before = len(can.sent)
    bad = bytearray(encode_request(RequestType.RESET, 1))
    bad[7] ^= 0xFF
    stream.feed(bytes(bad) + encode_request(RequestType.SET_MECH_POS_TO_ZERO, 2))
    bridge.process_request_command()
    (message,) = can.sent[before:]
    assert _fields(message)[0] == Command.SET_MECH_POSITION_TO_ZERO
    assert _fields(message)[2] == 2


def test_unknown_motor_is_ignored(setup):
    can, _, stream, bridge = setup
    before = len(can.sent)
    stream.feed(encode_request(RequestType.RESET, 9))
    bridge.process_request_command()
    assert len(can.sent) == before


def test_next_packet_returns_exact_packet(setup):
    _, _, stream, bridge = setup
    packet = encode_request(RequestType.SET_LIMIT_TORQUE, 1, struct.pack("<f", 3.0))
    stream.feed(packet)
    assert bridge.next_packet() == packet
    assert bridge.next_packet() is None


def test_next_packet_without_header_discards_bytes(setup):
    _, _, stream, bridge = setup
    stream.feed(b"\x01\x02\x03")
    assert bridge.next_packet() is None
    packet = encode_request(RequestType.RESET, 2)
    stream.feed(packet)
    assert bridge.next_packet() == packet


def test_receive_buffer_overflow_drops_bytes(setup):
    _, _, stream, bridge = setup
    stream.feed(bytes([HEADER]) + bytes(505) + encode_request(RequestType.RESET, 1))
    # The first header claims no data, so the leading 8 bytes form one packet.
    first = bridge.next_packet()
    assert first[:1] == bytes([HEADER])
    assert len(first) == 8
    assert bridge.next_packet() is None


def test_motor_response_is_reported_once(setup):
    can, controller, stream, bridge = setup
    can_id = (Command.RESPONSE << 24) | (1 << 8) | MASTER
    can.inject(can_id, struct.pack(">4H", 0x8000, 0x8000, 0x8000, 25))
    bridge.process_motor_response()

    out = bytes(stream.outgoing)
    assert len(out) == 25
    assert out[0] == HEADER
    assert out[1] == ResponseType.MOTOR_STATUS
    assert out[2] == 1
    assert out[3] == 17
    assert out[7] == checksum(out[:7])
    assert out[24] == checksum(out[8:24])
    position, _, _, temperature = struct.unpack("<4f", out[8:24])
    assert position == pytest.approx(uint_to_float(0x8000, P_MIN, P_MAX), abs=1e-6)
    assert temperature == 25.0
    assert stream.flushes == 1
    assert controller.check_update_flag(1) is False

    bridge.process_motor_response()
    assert len(stream.outgoing) == 25


def test_no_response_without_feedback(setup):
    _, _, stream, bridge = setup
    bridge.process_motor_response()
    assert bytes(stream.outgoing) == b""