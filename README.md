# cyberdrive

Drive CyberGear motors over a CAN bus from Python, and speak the small framed
serial protocol that a host uses to talk to a bridge in front of that bus.

## What is in the package

- `cyberdrive.defs` – protocol constants: the `Command`, `Address`, `RunMode`
  and `Direction` enums, and the value ranges and defaults (`P_MIN`, `V_MAX`,
  `IQ_MAX`, `DEFAULT_POSITION_KP`, …).
- `cyberdrive.can_interface` – the abstract `CanInterface` (`send_message`,
  `read_message`, `available`, `support_interrupt`), the `CanMessage` frame, and
  `MemoryCanInterface`, a bus kept in memory: frames sent are recorded in its
  `sent` list, frames to be received are queued with `inject(can_id, data)`.
- `cyberdrive.motor` – the `MotorStatus`, `MotorFault` and `MotorParameter`
  records and the wire conversions `float_to_uint` and `uint_to_float`.
- `cyberdrive.driver.CybergearDriver` – one motor: enable, reset, select a run
  mode, send a motion-mode command (`motor_control`), position/speed/current
  references, limits and gains, zero the mechanical position, change the
  motor's CAN id, request RAM parameters (`read_ram_data`, `get_vbus`,
  `dump_motor_param`, …), and apply received frames with
  `update_motor_status` / `process_packet`. The latest feedback is in the
  `motor_status` and `motor_param` properties.
- `cyberdrive.configs` – `HardwareConfig` (limits and gains written into a
  motor), `SoftwareConfig` (host-side limits, direction and position offset)
  and `MotionCommand`.
- `cyberdrive.controller.CybergearController` – several motors on one bus. The
  software config of each motor is applied to every command sent and every
  status returned by `get_motor_status` / `get_motor_statuses`.
  `process_packet` dispatches waiting frames to their motors and sets update
  flags (`check_update_flag`, `reset_update_flag`); `send_count` and
  `recv_count` count frames.
- `cyberdrive.packet` – the serial frames: `checksum`, `parse_command_header`,
  `parse_request` (returns one of the request classes such as
  `ControlPositionRequest` or `ControlMotionRequest`), `encode_request`, and
  `MotorStatusResponse.pack`.
- `cyberdrive.bridge.CybergearBridge` – reads request packets from a byte
  stream, turns them into controller calls (`process_request_command`), and
  writes a `MotorStatusResponse` for every motor whose status was updated
  (`process_motor_response`).

## Install

```
pip install cyberdrive
```

For the test suite:

```
pip install "cyberdrive[test]"
pytest
```

## Controlling motors

```python
from cyberdrive.can_interface import MemoryCanInterface
from cyberdrive.configs import MotionCommand, SoftwareConfig
from cyberdrive.controller import CybergearController
from cyberdrive.defs import Direction, RunMode

bus = MemoryCanInterface(interrupt=False)
controller = CybergearController(master_can_id=0x00)
controller.init(
    [127],
    RunMode.MOTION,
    bus,
    sw_configs=[SoftwareConfig(id=127, direction=Direction.CCW, limit_speed=10.0)],
)
controller.enable_motors()

controller.send_motion_command(
    127, MotionCommand(position=1.0, velocity=0.0, effort=0.0, kp=10.0, kd=1.0)
)
print(len(bus.sent), "frames sent")

controller.process_packet()
status = controller.get_motor_status(127)
print(status.position, status.velocity, status.effort)
```

`init` resets every motor and selects the run mode. When the bus reports
`support_interrupt()` as false, the controller polls for received frames after
each frame it sends to a group of motors.

## Running a bridge

The bridge works on any object with `read()` returning the bytes available now
(or `read(n)` when it has an `in_waiting` attribute) and `write(data)`; a
`flush()` method is called after each response if present.

```python
import struct

from cyberdrive.bridge import CybergearBridge
from cyberdrive.can_interface import MemoryCanInterface
from cyberdrive.controller import CybergearController
from cyberdrive.defs import Command, RunMode
from cyberdrive.packet import RequestType, encode_request


class Pipe:
    def __init__(self, incoming: bytes) -> None:
        self.incoming = bytearray(incoming)
        self.outgoing = bytearray()

    def read(self, *args):
        data = bytes(self.incoming)
        self.incoming.clear()
        return data

    def write(self, data):
        self.outgoing += data


bus = MemoryCanInterface()
controller = CybergearController(0x00)
controller.init([127], RunMode.POSITION, bus)

request = encode_request(RequestType.CONTROL_POSITION, 127, struct.pack("<f", 1.0))
stream = Pipe(request)
bridge = CybergearBridge(controller, stream)
bridge.process_request_command()

# A status frame from motor 127 arrives on the bus...
bus.inject((Command.RESPONSE << 24) | (127 << 8) | 0x00, bytes([0x80, 0, 0x80, 0, 0x80, 0, 0, 25]))
bridge.process_motor_response()
print(stream.outgoing.hex())  # one packed MotorStatusResponse
```

Packets with a bad header, type, size or checksum, and requests for motors the
controller does not manage, are skipped.

## Errors

- `cyberdrive.controller.MotorIdError` (a `LookupError`) – a command named a
  motor id that was never registered. Commands for a list of motors send to
  every known motor first and then raise with all unknown ids.
- `ValueError` – lists of ids and values of different lengths.
- `cyberdrive.packet.PacketError` (a `ValueError`) – bytes that are not a valid
  request packet.
- `RuntimeError` – a driver or controller used before it was bound to a bus.

## Behaviour worth knowing

- `CybergearDriver.set_current_ki` sends nothing: the motor's range for that
  gain is unknown.
- RAM writes of limits, gains and references send the value as given; only the
  motion-mode command clamps its arguments to the wire ranges. Host-side
  clamping comes from `SoftwareConfig` in the controller.
- Replies to motor fault requests are accepted but not decoded.

## What the package does not do

It has no CAN driver for real hardware: `MemoryCanInterface` is the only
`CanInterface` included, and attaching an adapter means writing your own
subclass. It opens no serial port and has no command-line program; the bridge
is a class you feed a stream object and call in your own loop.