"""Per-motor configuration records and motion commands."""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass

from .defs import Direction
from .motor import MotorStatus


def _clamp(value: float, low: float, high: float) -> float:
    return max(min(value, high), low)


@dataclass
class HardwareConfig:
    """Limits and gains written into a motor's RAM."""

    id: int = 0xFF
    direction: int = Direction.CW
    limit_speed: float = 2.0
    limit_current: float = 27.0
    limit_torque: float = 12.0
    current_kp: float = 0.025
    current_ki: float = 0.0258
    current_filter_gain: float = 0.1


@dataclass
class SoftwareConfig:
    """Limits, direction and offset applied on the host side."""

    id: int = 0xFF
    direction: int = Direction.CW
    limit_speed: float = 30.0
    limit_current: float = 27.0
    limit_torque: float = 12.0
    upper_position_limit: float = 4.0 * math.pi
    lower_position_limit: float = -4.0 * math.pi
    calib_direction: int = Direction.CW
    position_offset: float = 0.0

    def command_position(self, position: float) -> float:
        """Clamp a user position to the limits and convert it to motor coordinates."""
        pos = _clamp(position, self.lower_position_limit, self.upper_position_limit)
        return (pos - self.position_offset) * self.direction

    def command_velocity(self, velocity: float) -> float:
        """Apply direction and the symmetric speed limit."""
        return _clamp(self.direction * velocity, -self.limit_speed, self.limit_speed)

    def command_effort(self, effort: float) -> float:
        """Apply direction and the symmetric torque limit."""
        return _clamp(self.direction * effort, -self.limit_torque, self.limit_torque)

    def command_current(self, current: float) -> float:
        """Apply direction and the symmetric current limit."""
        return _clamp(self.direction * current, -self.limit_current, self.limit_current)

    def to_user_status(self, status: MotorStatus) -> MotorStatus:
        """Return a copy of motor feedback expressed in user coordinates."""
        return dataclasses.replace(
            status,
            position=self.direction * status.position + self.position_offset,
            velocity=status.velocity * self.direction,
            effort=status.effort * self.direction,
        )


@dataclass
class MotionCommand:
    """Target of a motion-mode command."""

    position: float = 0.0
    velocity: float = 0.0
    effort: float = 0.0
    kp: float = 0.0
    kd: float = 0.0