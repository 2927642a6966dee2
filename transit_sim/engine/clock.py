"""
Simulation clock for the OnTime transit simulator.

The clock holds a virtual time value that an external tick source advances.
Virtual time wraps at a configurable period, so it always stays within
[0, period_seconds).
"""

import logging

logger = logging.getLogger(__name__)


class SimulationClock:
    """
    Monotonically advancing virtual time with pause/resume and reset.

    States are Running(value) and Stopped(value). The tick source is expected
    to call tick(1) once per wall-clock second while the clock runs.
    """

    def __init__(self, period_seconds: int = 86400, running: bool = False):
        """
        Initialize the clock at virtual time zero.

        Args:
            period_seconds: Virtual time wraps back to zero at this value
            running: Whether the clock starts in the Running state

        Raises:
            ValueError: If period_seconds is not positive
        """
        if period_seconds <= 0:
            raise ValueError(f"period_seconds must be positive, got {period_seconds}")

        self.period_seconds = period_seconds
        self._virtual_seconds = 0
        self._tick_count = 0
        self._running = running

    @property
    def virtual_seconds(self) -> int:
        return self._virtual_seconds

    @property
    def tick_count(self) -> int:
        """Number of ticks applied since construction or the last reset."""
        return self._tick_count

    @property
    def running(self) -> bool:
        return self._running

    def tick(self, delta_seconds: int = 1) -> bool:
        """
        Advance virtual time by `delta_seconds`, wrapping at the period.

        Ticks received while the clock is stopped are ignored.

        Returns:
            True if the clock advanced, False if it is stopped
        """
        if not self._running:
            return False

        self._virtual_seconds = (self._virtual_seconds + delta_seconds) % self.period_seconds
        self._tick_count += 1
        return True

    def pause(self) -> None:
        self._running = False

    def resume(self) -> None:
        self._running = True

    def reset(self) -> None:
        """Set virtual time back to zero, keeping the running/stopped mode."""
        self._virtual_seconds = 0
        self._tick_count = 0
        logger.debug("Simulation clock reset")

    def format(self) -> str:
        """Virtual time as HH:MM:SS."""
        hours, remainder = divmod(self._virtual_seconds, 3600)
        minutes, seconds = divmod(remainder, 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"

    def __repr__(self) -> str:
        state = "Running" if self._running else "Stopped"
        return f"SimulationClock({state}({self._virtual_seconds}), period={self.period_seconds})"
