"""
Send Pacing

Chunks are spaced out so a fast sender does not flood the channel or the
receiver's buffer. Pacing is policy, not correctness: any Pacer works.

The sleep function is injectable so tests can drive a virtual clock
instead of waiting on the wall clock.
"""

import asyncio
from typing import Callable, Awaitable

SleepFunc = Callable[[float], Awaitable[None]]

# Default gap between chunks (seconds)
DEFAULT_SEND_INTERVAL = 0.1


class Pacer:
    """Decides how long the transmitter waits before the next chunk."""

    async def wait(self):
        raise NotImplementedError


class FixedDelayPacer(Pacer):
    """Waits a fixed interval between consecutive chunks."""

    def __init__(self, interval: float = DEFAULT_SEND_INTERVAL,
                 sleep: SleepFunc = asyncio.sleep):
        if interval < 0:
            raise ValueError(f"Pacing interval must be >= 0, got {interval}")
        self.interval = interval
        self._sleep = sleep

    async def wait(self):
        await self._sleep(self.interval)

    def __repr__(self) -> str:
        return f"FixedDelayPacer(interval={self.interval})"


class NoPacing(Pacer):
    """Only yields to the event loop between chunks."""

    async def wait(self):
        await asyncio.sleep(0)

    def __repr__(self) -> str:
        return "NoPacing()"
