"""Abstract CAN bus access and an in-memory bus for use without hardware."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CanMessage:
    """One CAN frame."""

    can_id: int
    data: bytes = field(default=b"")
    extended: bool = True


class CanInterface(ABC):
    """A CAN bus that frames can be sent to and read from."""

    @abstractmethod
    def send_message(self, can_id: int, data: bytes, extended: bool) -> None:
        """Transmit a frame; raise on failure."""

    @abstractmethod
    def read_message(self) -> CanMessage | None:
        """Return the next received frame, or None when nothing is waiting."""

    @abstractmethod
    def available(self) -> bool:
        """Whether a received frame is waiting."""

    @abstractmethod
    def support_interrupt(self) -> bool:
        """Whether reception happens in the background without polling."""


class MemoryCanInterface(CanInterface):
    """A bus kept in memory: sent frames are recorded, received ones injected."""

    def __init__(self, interrupt: bool = False) -> None:
        self._interrupt = interrupt
        self._received: deque[CanMessage] = deque()
        self.sent: list[CanMessage] = []

    def send_message(self, can_id: int, data: bytes, extended: bool = True) -> None:
        self.sent.append(CanMessage(can_id, bytes(data), extended))

    def read_message(self) -> CanMessage | None:
        if not self._received:
            return None
        return self._received.popleft()

    def available(self) -> bool:
        return bool(self._received)

    def support_interrupt(self) -> bool:
        return self._interrupt

    def inject(self, can_id: int, data: bytes) -> None:
        """Queue a frame as if it had arrived from the bus."""
        self._received.append(CanMessage(can_id, bytes(data), True))