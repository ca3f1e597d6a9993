from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime


class ClockPort(ABC):
    """Wall-clock and elapsed-time source.

    Session titles, message timestamps and processing times all come from
    here, so tests pin both with a fake clock.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""

    @abstractmethod
    def monotonic(self) -> float:
        """Seconds from an arbitrary origin; only differences are meaningful."""

    def elapsed_ms(self, started: float) -> int:
        return int((self.monotonic() - started) * 1000)
