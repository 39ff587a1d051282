"""Motor state records and the fixed-point conversions used on the wire."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class MotorStatus:
    """Feedback reported by a motor."""

    stamp_usec: int = 0
    motor_id: int = 0
    position: float = 0.0
    velocity: float = 0.0
    effort: float = 0.0
    temperature: float = 0.0
    raw_position: int = 0
    raw_velocity: int = 0
    raw_effort: int = 0
    raw_temperature: int = 0


@dataclass
class MotorFault:
    """Fault flags of a motor."""

    encoder_not_calibrated: bool = False
    over_current_phase_a: bool = False
    over_current_phase_b: bool = False
    over_voltage: bool = False
    under_voltage: bool = False
    driver_chip: bool = False
    motor_over_temperature: bool = False


@dataclass
class MotorParameter:
    """Parameters read back from a motor's RAM."""

    stamp_usec: int = 0
    run_mode: int = 0
    iq_ref: float = 0.0
    spd_ref: float = 0.0
    limit_torque: float = 0.0
    cur_kp: float = 0.0
    cur_ki: float = 0.0
    cur_filt_gain: float = 0.0
    loc_ref: float = 0.0
    limit_spd: float = 0.0
    limit_cur: float = 0.0
    mech_pos: float = 0.0
    iqf: float = 0.0
    mech_vel: float = 0.0
    vbus: float = 0.0
    rotation: int = 0
    loc_kp: float = 0.0
    spd_kp: float = 0.0
    spd_ki: float = 0.0


def float_to_uint(x: float, x_min: float, x_max: float, bits: int) -> int:
    """Clamp x to [x_min, x_max] and scale it onto an unsigned integer of `bits` bits."""
    span = x_max - x_min
    x = min(max(x, x_min), x_max)
    return int((x - x_min) * float((1 << bits) - 1) / span)


def uint_to_float(x: int, x_min: float, x_max: float) -> float:
    """Scale a 16-bit unsigned value back onto [x_min, x_max]."""
    span = x_max - x_min
    return float(x) / 0xFFFF * span + x_min