from __future__ import annotations

import asyncio
import os

import pytest

from codedrop.file.chunker import FileChunker
from codedrop.file.source import FileSource
from codedrop.transfer.channel import MemoryChannel
from codedrop.transfer.errors import TransferAborted
from codedrop.transfer.message import ChunkMessage, TransferMessageType
from codedrop.transfer.pacing import FixedDelayPacer, NoPacing
from codedrop.transfer.transmitter import ChunkTransmitter

from conftest import HookPacer, collect_messages


def _source(size: int, name: str = "report.pdf") -> FileSource:
    return FileSource(name=name, data=os.urandom(size), mime_type="application/pdf")


def test_sends_chunks_in_ascending_order(clock):
    source = _source(40000)
    percents = []

    async def run():
        sender_end, receiver_end = MemoryChannel.pair()
        received = collect_messages(receiver_end)
        sender_end.start()

        transmitter = ChunkTransmitter(
            sender_end, FileChunker(16384),
            pacer=FixedDelayPacer(0.1, sleep=clock.sleep),
            on_progress=percents.append,
        )
        progress = await transmitter.send(source)
        await asyncio.sleep(0)
        return progress, received

    progress, received = asyncio.run(run())
    chunks = [ChunkMessage.from_message(m) for m in received]

    assert [c.index for c in chunks] == [0, 1, 2]
    assert {c.total for c in chunks} == {3}
    assert {(c.file_name, c.file_type) for c in chunks} == {("report.pdf", "application/pdf")}
    assert b"".join(c.chunk for c in chunks) == source.data

    assert progress.phase == "complete"
    assert progress.done_chunks == 3
    assert percents[:3] == pytest.approx([100 / 3, 200 / 3, 100])
    assert percents == sorted(percents)


def test_pacing_waits_between_chunks_only(clock):
    async def run():
        sender_end, receiver_end = MemoryChannel.pair()
        collect_messages(receiver_end)
        sender_end.start()
        transmitter = ChunkTransmitter(
            sender_end, FileChunker(10),
            pacer=FixedDelayPacer(0.1, sleep=clock.sleep),
        )
        await transmitter.send(_source(45))

    asyncio.run(run())
    assert clock.sleeps == [0.1] * 4
    assert clock.now == pytest.approx(0.4)


def test_empty_file_sends_marker(clock):
    async def run():
        sender_end, receiver_end = MemoryChannel.pair()
        received = collect_messages(receiver_end)
        sender_end.start()
        transmitter = ChunkTransmitter(sender_end, pacer=FixedDelayPacer(0.1, sleep=clock.sleep))
        progress = await transmitter.send(FileSource(name="empty", data=b""))
        await asyncio.sleep(0)
        return progress, received

    progress, received = asyncio.run(run())
    assert len(received) == 1
    marker = ChunkMessage.from_message(received[0])
    assert marker.is_empty_transfer
    assert progress.progress_percent == 100
    assert clock.sleeps == []


def test_closed_channel_aborts_before_first_chunk():
    async def run():
        sender_end, receiver_end = MemoryChannel.pair()
        sender_end.start()
        await sender_end.close()
        transmitter = ChunkTransmitter(sender_end, pacer=NoPacing())
        with pytest.raises(TransferAborted):
            await transmitter.send(_source(100))
        return transmitter

    transmitter = asyncio.run(run())
    assert transmitter.progress.phase == "aborted"
    assert transmitter.progress.done_chunks == 0


def test_channel_closing_mid_transfer_stops_sending():
    async def run():
        sender_end, receiver_end = MemoryChannel.pair()
        received = collect_messages(receiver_end)
        sender_end.start()

        async def close_after_two(call):
            if call == 2:
                await receiver_end.close()
                await asyncio.sleep(0)

        transmitter = ChunkTransmitter(sender_end, FileChunker(10),
                                       pacer=HookPacer(close_after_two))
        with pytest.raises(TransferAborted):
            await transmitter.send(_source(100))
        return transmitter, received

    transmitter, received = asyncio.run(run())
    assert transmitter.progress.done_chunks == 2
    assert len(received) == 2
    assert all(m.type is TransferMessageType.CHUNK for m in received)


def test_cancel_interrupts_pacing_wait():
    async def run():
        sender_end, receiver_end = MemoryChannel.pair()
        received = collect_messages(receiver_end)
        sender_end.start()

        transmitter = ChunkTransmitter(sender_end, FileChunker(10),
                                       pacer=FixedDelayPacer(3600))
        task = asyncio.create_task(transmitter.send(_source(30)))
        while not received:
            await asyncio.sleep(0)

        transmitter.cancel()
        with pytest.raises(TransferAborted):
            await asyncio.wait_for(task, timeout=1)
        return transmitter, received

    transmitter, received = asyncio.run(run())
    assert transmitter.cancelled
    assert transmitter.progress.phase == "aborted"
    assert len(received) == 1


def test_transmitter_sends_once():
    async def run():
        sender_end, receiver_end = MemoryChannel.pair()
        collect_messages(receiver_end)
        sender_end.start()
        transmitter = ChunkTransmitter(sender_end, pacer=NoPacing())
        await transmitter.send(_source(10))
        with pytest.raises(RuntimeError):
            await transmitter.send(_source(10))

    asyncio.run(run())


def test_negative_interval_is_rejected():
    with pytest.raises(ValueError):
        FixedDelayPacer(-1)
