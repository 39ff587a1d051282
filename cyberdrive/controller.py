"""Controller that drives several motors sharing one CAN bus."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

from .can_interface import CanInterface
from .configs import HardwareConfig, MotionCommand, SoftwareConfig
from .driver import CybergearDriver
from .motor import MotorStatus

_log = logging.getLogger(__name__)

_T = TypeVar("_T")


class MotorIdError(LookupError):
    """Raised when a command names a motor the controller does not manage."""

    def __init__(self, motor_ids: int | Iterable[int]) -> None:
        if isinstance(motor_ids, int):
            motor_ids = [motor_ids]
        self.motor_ids = list(motor_ids)
        listed = ", ".join(f"0x{i:02x}" for i in self.motor_ids)
        super().__init__(f"unknown motor id: {listed}")


class CybergearController:
    """Sends commands to a set of motors and collects their feedback."""

    def __init__(self, master_can_id: int) -> None:
        self.master_can_id = master_can_id
        self._can: CanInterface | None = None
        self._motor_ids: list[int] = []
        self._update_flags: dict[int, bool] = {}
        self._drivers: dict[int, CybergearDriver] = {}
        self._hw_configs: dict[int, HardwareConfig] = {}
        self._sw_configs: dict[int, SoftwareConfig] = {}
        self.control_mode: int | None = None
        self._recv_count = 0

    # -- setup -------------------------------------------------------------

    def init(
        self,
        ids: Sequence[int],
        mode: int,
        can: CanInterface,
        sw_configs: Sequence[SoftwareConfig] | None = None,
        wait_response_time_usec: int = 0,
    ) -> None:
        """Create a driver per motor, reset each and select the run mode."""
        ids = list(ids)
        if sw_configs is None:
            sw_configs = [SoftwareConfig(id=motor_id) for motor_id in ids]
        if len(ids) != len(sw_configs):
            raise ValueError(
                f"{len(ids)} motor ids but {len(sw_configs)} software configs"
            )

        self._can = can
        self._motor_ids = ids
        self.control_mode = mode

        for motor_id in ids:
            driver = CybergearDriver(self.master_can_id, motor_id)
            driver.init(can, wait_response_time_usec)
            driver.init_motor(mode)
            self._drivers[motor_id] = driver
            self._update_flags[motor_id] = False

        for config in sw_configs:
            self._sw_configs[config.id] = dataclasses.replace(config)

    # -- run mode ----------------------------------------------------------

    def set_run_mode(self, mode: int) -> None:
        """Select the same run mode on every motor."""
        for motor_id in self._motor_ids:
            self._drivers[motor_id].set_run_mode(mode)
            self._poll()

    def set_motor_run_mode(self, motor_id: int, mode: int) -> None:
        self._driver(motor_id).set_run_mode(mode)

    def set_run_modes(self, ids: Sequence[int], modes: Sequence[int]) -> None:
        self._for_each(ids, modes, self.set_motor_run_mode)

    # -- configuration -----------------------------------------------------

    def set_motor_config(self, config: HardwareConfig) -> None:
        """Write a motor's limits and current-loop gains into its RAM."""
        driver = self._driver(config.id)
        driver.set_limit_speed(config.limit_speed)
        driver.set_limit_torque(config.limit_torque)
        driver.set_limit_current(config.limit_current)
        driver.set_current_kp(config.current_kp)
        driver.set_current_ki(config.current_ki)
        driver.set_current_filter_gain(config.current_filter_gain)

    def set_motor_configs(self, configs: Iterable[HardwareConfig]) -> None:
        """Apply every config; unknown motors are reported after the rest are sent."""
        missing: list[int] = []
        for config in configs:
            try:
                self.set_motor_config(config)
            except MotorIdError:
                missing.append(config.id)
            else:
                self._hw_configs[config.id] = dataclasses.replace(config)
        if missing:
            raise MotorIdError(missing)

    def set_speed_limit(self, motor_id: int, limit: float) -> None:
        self._driver(motor_id).set_limit_speed(limit)

    def set_torque_limit(self, motor_id: int, limit: float) -> None:
        self._driver(motor_id).set_limit_torque(limit)

    def set_current_limit(self, motor_id: int, limit: float) -> None:
        self._driver(motor_id).set_limit_current(limit)

    def set_position_control_gain(self, motor_id: int, kp: float) -> None:
        self._driver(motor_id).set_position_kp(kp)

    def set_velocity_control_gain(self, motor_id: int, kp: float, ki: float) -> None:
        driver = self._driver(motor_id)
        driver.set_velocity_kp(kp)
        driver.set_velocity_ki(ki)

    def set_current_control_param(
        self, motor_id: int, kp: float, ki: float, gain: float
    ) -> None:
        driver = self._driver(motor_id)
        driver.set_current_kp(kp)
        driver.set_current_ki(ki)
        driver.set_current_filter_gain(gain)

    # -- enable / reset ----------------------------------------------------

    def enable_motors(self) -> None:
        for motor_id in self._motor_ids:
            self._drivers[motor_id].enable_motor()
            self._poll()

    def enable_motor(self, motor_id: int, mode: int) -> None:
        """Reset the motor, select the run mode and enable it."""
        driver = self._driver(motor_id)
        driver.init_motor(mode)
        driver.enable_motor()

    def reset_motors(self) -> None:
        for motor_id in self._motor_ids:
            self._drivers[motor_id].reset_motor()
            self._poll()

    def reset_motor(self, motor_id: int) -> None:
        self._driver(motor_id).reset_motor()

    # -- commands ----------------------------------------------------------

    def send_motion_command(self, motor_id: int, cmd: MotionCommand) -> None:
        driver = self._driver(motor_id)
        config = self._sw_configs[motor_id]
        driver.motor_control(
            config.command_position(cmd.position),
            config.command_velocity(cmd.velocity),
            config.command_effort(cmd.effort),
            cmd.kp,
            cmd.kd,
        )

    def send_motion_commands(
        self, ids: Sequence[int], cmds: Sequence[MotionCommand]
    ) -> None:
        self._for_each(ids, cmds, self.send_motion_command)

    def send_position_command(self, motor_id: int, position: float) -> None:
        driver = self._driver(motor_id)
        driver.set_position_ref(self._sw_configs[motor_id].command_position(position))

    def send_position_commands(
        self, ids: Sequence[int], positions: Sequence[float]
    ) -> None:
        self._for_each(ids, positions, self.send_position_command)

    def send_speed_command(self, motor_id: int, speed: float) -> None:
        driver = self._driver(motor_id)
        driver.set_speed_ref(self._sw_configs[motor_id].command_velocity(speed))

    def send_speed_commands(self, ids: Sequence[int], speeds: Sequence[float]) -> None:
        self._for_each(ids, speeds, self.send_speed_command)

    def send_current_command(self, motor_id: int, current: float) -> None:
        driver = self._driver(motor_id)
        driver.set_current_ref(self._sw_configs[motor_id].command_current(current))

    def send_current_commands(
        self, ids: Sequence[int], currents: Sequence[float]
    ) -> None:
        self._for_each(ids, currents, self.send_current_command)

    def set_mech_position_to_zero(self, motor_id: int) -> None:
        self._driver(motor_id).set_mech_position_to_zero()

    # -- feedback ----------------------------------------------------------

    def get_motor_status(self, motor_id: int) -> MotorStatus:
        """Latest feedback of a motor in user coordinates."""
        driver = self._driver(motor_id)
        return self._sw_configs[motor_id].to_user_status(driver.motor_status)

    def get_motor_statuses(self) -> list[MotorStatus]:
        """Latest feedback of every motor, in the order of motor_ids()."""
        return [self.get_motor_status(motor_id) for motor_id in self._motor_ids]

    def get_software_config(self, motor_id: int) -> SoftwareConfig:
        self._driver(motor_id)
        return dataclasses.replace(self._sw_configs[motor_id])

    def process_packet(self) -> bool:
        """Dispatch every waiting frame to its motor; report whether any was updated."""
        can = self._bus
        updated = False
        while can.available():
            message = can.read_message()
            if message is None:
                continue

            receive_can_id = message.can_id & 0xFF
            if receive_can_id != self.master_can_id:
                _log.debug(
                    "invalid master can id: expected 0x%02x, got 0x%02x (raw %x)",
                    self.master_can_id,
                    receive_can_id,
                    message.can_id,
                )
                continue

            motor_can_id = (message.can_id & 0xFF00) >> 8
            driver = self._drivers.get(motor_can_id)
            if driver is None:
                continue

            if driver.update_motor_status(message.can_id, message.data):
                self._update_flags[motor_can_id] = True
                updated = True
                self._recv_count += 1
        return updated

    def check_update_flag(self, motor_id: int) -> bool:
        self._driver(motor_id)
        return self._update_flags[motor_id]

    def reset_update_flag(self, motor_id: int) -> None:
        self._driver(motor_id)
        self._update_flags[motor_id] = False

    def motor_ids(self) -> list[int]:
        return list(self._motor_ids)

    def send_count(self) -> int:
        """Frames sent by all drivers together."""
        return sum(self._drivers[motor_id].send_count for motor_id in self._motor_ids)

    def recv_count(self) -> int:
        """Frames that updated a motor's state."""
        return self._recv_count

    # -- internals ---------------------------------------------------------

    @property
    def _bus(self) -> CanInterface:
        if self._can is None:
            raise RuntimeError("controller is not initialised")
        return self._can

    def _driver(self, motor_id: int) -> CybergearDriver:
        driver = self._drivers.get(motor_id)
        if driver is None or motor_id not in self._sw_configs:
            raise MotorIdError(motor_id)
        return driver

    def _poll(self) -> None:
        if not self._bus.support_interrupt():
            self.process_packet()

    def _for_each(
        self,
        ids: Sequence[int],
        values: Sequence[_T],
        send: Callable[[int, _T], None],
    ) -> None:
        if len(ids) != len(values):
            raise ValueError(f"{len(ids)} motor ids but {len(values)} values")
        missing: list[int] = []
        for motor_id, value in zip(ids, values):
            try:
                send(motor_id, value)
            except MotorIdError:
                missing.append(motor_id)
            self._poll()
        if missing:
            raise MotorIdError(missing)