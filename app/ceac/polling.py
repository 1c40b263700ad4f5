"""Cancellable, time-bounded polling with reset-on-change."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]

LOGGER = logging.getLogger(__name__)


class DeadlinePoller(Generic[T]):
    """Call a check every ``interval_seconds`` until it yields or time runs out.

    The check receives the poller so it can call :meth:`reset` when it
    observes a change that should restore the full timeout.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float,
        interval_seconds: float,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        name: str = "poll",
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._timeout = float(timeout_seconds)
        self._interval = float(interval_seconds)
        self._clock = clock
        self._sleep = sleep
        self._name = name
        self._deadline: float | None = None
        self._cancelled = False
        self.polls = 0
        self.resets = 0
        self.reset_reasons: list[str] = []

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def remaining(self) -> float:
        if self._deadline is None:
            return self._timeout
        return max(0.0, self._deadline - self._clock())

    def reset(self, reason: str) -> None:
        """Restart the full timeout from now."""
        self._deadline = self._clock() + self._timeout
        self.resets += 1
        self.reset_reasons.append(reason)
        LOGGER.info(
            "%s deadline reset at poll %s",
            self._name,
            self.polls,
            extra={"reason": reason},
        )

    def cancel(self) -> None:
        self._cancelled = True

    async def run(self, check: Callable[["DeadlinePoller[T]"], Awaitable[T | None]]) -> T | None:
        """Return the first non-``None`` check result, or ``None`` on timeout."""
        self._deadline = self._clock() + self._timeout
        self._cancelled = False
        while not self._cancelled:
            self.polls += 1
            result = await check(self)
            if result is not None:
                return result
            if self._clock() >= self._deadline:
                LOGGER.info(
                    "%s timed out after %s polls",
                    self._name,
                    self.polls,
                )
                return None
            await self._sleep(self._interval)
        return None
