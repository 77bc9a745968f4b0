from __future__ import annotations

import asyncio
from typing import List, Tuple

import pytest

from codedrop.transfer.message import TransferMessage
from codedrop.transfer.pacing import Pacer


class VirtualClock:
    """Stands in for asyncio.sleep: records delays, advances instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    async def sleep(self, delay: float):
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


class CollectingSink:
    """File sink that keeps finished files in memory."""

    def __init__(self):
        self.files: List[Tuple[bytes, str, str]] = []

    async def __call__(self, data: bytes, file_name: str, file_type: str):
        self.files.append((data, file_name, file_type))
        return file_name


class HookPacer(Pacer):
    """Calls hook(n) before the n-th pacing wait (1-based)."""

    def __init__(self, hook):
        self.hook = hook
        self.calls = 0

    async def wait(self):
        self.calls += 1
        await self.hook(self.calls)
        await asyncio.sleep(0)


def collect_messages(channel) -> List[TransferMessage]:
    received: List[TransferMessage] = []

    async def handler(message: TransferMessage):
        received.append(message)

    channel.on_message(handler)
    channel.start()
    return received


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()
