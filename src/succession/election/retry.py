"""Exponential backoff for retrying transient coordination failures."""

from __future__ import annotations


class Backoff:
    """Exponential backoff state.

    The first delay is `initial`; each further delay is multiplied by
    `multiplier` and capped at `maximum`. reset() after a success.
    """

    def __init__(self, initial: float = 0.5, maximum: float = 30.0, multiplier: float = 2.0):
        self.initial = initial
        self.maximum = maximum
        self.multiplier = multiplier
        self.attempts = 0
        self._current = initial

    def next_delay(self) -> float:
        """Return the delay to wait before the next attempt and advance."""
        delay = self._current
        self.attempts += 1
        self._current = min(self._current * self.multiplier, self.maximum)
        return delay

    def reset(self) -> None:
        self.attempts = 0
        self._current = self.initial
