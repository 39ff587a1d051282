"""Protocol constants for the motor CAN bus: commands, RAM addresses and ranges."""

from enum import IntEnum


class Command(IntEnum):
    """Communication type carried in bits 24..28 of the extended CAN id."""

    POSITION = 1
    RESPONSE = 2
    ENABLE = 3
    RESET = 4
    SET_MECH_POSITION_TO_ZERO = 6
    CHANGE_CAN_ID = 7
    RAM_READ = 17
    RAM_WRITE = 18
    GET_MOTOR_FAIL = 21


class Address(IntEnum):
    """Indexes of the motor's RAM parameters."""

    RUN_MODE = 0x7005
    IQ_REF = 0x7006
    SPEED_REF = 0x700A
    LIMIT_TORQUE = 0x700B
    CURRENT_KP = 0x7010
    CURRENT_KI = 0x7011
    CURRENT_FILTER_GAIN = 0x7014
    LOC_REF = 0x7016
    LIMIT_SPEED = 0x7017
    LIMIT_CURRENT = 0x7018
    MECH_POS = 0x7019
    IQF = 0x701A
    MECH_VEL = 0x701B
    VBUS = 0x701C
    ROTATION = 0x701D
    LOC_KP = 0x701E
    SPD_KP = 0x701F
    SPD_KI = 0x7020


class RunMode(IntEnum):
    """Control mode of a motor."""

    MOTION = 0x00
    POSITION = 0x01
    SPEED = 0x02
    CURRENT = 0x03


class Direction(IntEnum):
    """Sign applied to commands and readings of a motor."""

    CW = 1
    CCW = -1


P_MIN = -12.5
P_MAX = 12.5
V_MIN = -30.0
V_MAX = 30.0
KP_MIN = 0.0
KP_MAX = 500.0
KD_MIN = 0.0
KD_MAX = 5.0
T_MIN = -12.0
T_MAX = 12.0
IQ_MIN = -27.0
IQ_MAX = 27.0
CURRENT_FILTER_GAIN_MIN = 0.0
CURRENT_FILTER_GAIN_MAX = 1.0

IQ_REF_MAX = 23.0
IQ_REF_MIN = -23.0
SPD_REF_MAX = 30.0
SPD_REF_MIN = -30.0
LIMIT_TORQUE_MAX = 12.0
LIMIT_TORQUE_MIN = 0.0
CUR_KP_MAX = 200.0
CUR_KP_MIN = 0.0
CUR_KI_MAX = 200.0
CUR_KI_MIN = 0.0
LOC_KP_MAX = 200.0
LOC_KP_MIN = 0.0
SPD_KP_MAX = 200.0
SPD_KP_MIN = 0.0
LIMIT_SPD_MAX = 30.0
LIMIT_SPD_MIN = 0.0
LIMIT_CURRENT_MAX = 27.0
LIMIT_CURRENT_MIN = 0.0

DEFAULT_CURRENT_KP = 0.125
DEFAULT_CURRENT_KI = 0.0158
DEFAULT_CURRENT_FILTER_GAIN = 0.1
DEFAULT_POSITION_KP = 30.0
DEFAULT_VELOCITY_KP = 2.0
DEFAULT_VELOCITY_KI = 0.002
DEFAULT_VELOCITY_LIMIT = 2.0
DEFAULT_CURRENT_LIMIT = 27.0
DEFAULT_TORQUE_LIMIT = 12.0

RESPONSE_TIME_USEC = 250