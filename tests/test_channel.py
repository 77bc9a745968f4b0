from __future__ import annotations

import asyncio
import socket
import struct

import pytest

from codedrop.transfer.channel import ChannelServer, MemoryChannel, open_channel
from codedrop.transfer.message import ChunkMessage, TransferMessage, TransferMessageType

from conftest import collect_messages


def test_memory_channel_preserves_order():
    async def run():
        left, right = MemoryChannel.pair()
        received = collect_messages(right)
        left.start()
        for i in range(20):
            await left.send(ChunkMessage(i, 20, "f", "", bytes([i])).to_message())
        await asyncio.sleep(0)
        return received

    received = asyncio.run(run())
    assert [m.headers["index"] for m in received] == list(range(20))


def test_memory_close_delivers_in_flight_messages_then_closes_peer():
    closes = []

    async def run():
        left, right = MemoryChannel.pair()
        right.on_close(lambda: closes.append("right"))
        left.on_close(lambda: closes.append("left"))
        left.start()

        # right is not dispatching yet, so the message stays in flight
        await left.send(TransferMessage.hello("111111"))
        await left.close()
        await left.close()

        received = collect_messages(right)
        await asyncio.wait_for(right.wait_closed(), timeout=1)

        with pytest.raises(ConnectionError):
            await left.send(TransferMessage.cancel())
        with pytest.raises(ConnectionError):
            await right.send(TransferMessage.cancel())
        return received

    received = asyncio.run(run())
    assert [m.type for m in received] == [TransferMessageType.HELLO]
    assert closes == ["left", "right"]


def test_stream_channel_over_tcp():
    async def run():
        server_received = []
        server_closed = asyncio.Event()

        async def on_channel(channel):
            async def handler(message):
                server_received.append(message)
                if message.type is TransferMessageType.HELLO:
                    await channel.send(TransferMessage.reject("busy"))

            channel.on_message(handler)
            channel.on_close(server_closed.set)

        server = ChannelServer(on_channel, host="127.0.0.1", port=0)
        await server.start()
        assert server.port != 0

        client = await open_channel("127.0.0.1", server.port)
        client_received = collect_messages(client)

        payload = bytes(range(256)) * 10
        await client.send(ChunkMessage(0, 1, "bin", "", payload).to_message())
        await client.send(TransferMessage.hello("123456"))

        while not client_received:
            await asyncio.sleep(0.01)

        await client.close()
        await asyncio.wait_for(server_closed.wait(), timeout=2)
        await server.stop()
        return server_received, client_received

    server_received, client_received = asyncio.run(run())
    assert [m.type for m in server_received] == [TransferMessageType.CHUNK, TransferMessageType.HELLO]
    assert server_received[0].data == bytes(range(256)) * 10
    assert client_received[0].headers == {"reason": "busy"}


def test_stream_channel_drops_bad_frame_and_keeps_going():
    async def run():
        received = []
        got_two = asyncio.Event()

        async def on_channel(channel):
            async def handler(message):
                received.append(message)
                got_two.set()

            channel.on_message(handler)

        server = ChannelServer(on_channel, host="127.0.0.1", port=0)
        await server.start()

        reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
        bad = b'{"type": "NOPE"}'
        writer.write(struct.pack(">I", len(bad)) + struct.pack(">I", len(bad)) + bad)
        writer.write(TransferMessage.hello("654321").to_bytes())
        await writer.drain()

        await asyncio.wait_for(got_two.wait(), timeout=2)
        writer.close()
        await server.stop()
        return received

    received = asyncio.run(run())
    assert [m.headers for m in received] == [{"code": "654321"}]


def test_stream_channel_closes_on_framing_error():
    async def run():
        closed = asyncio.Event()

        async def on_channel(channel):
            channel.on_close(closed.set)

        server = ChannelServer(on_channel, host="127.0.0.1", port=0)
        await server.start()

        reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
        writer.write(struct.pack(">I", 0xFFFFFFFF) + b"\x00" * 8)
        await writer.drain()

        await asyncio.wait_for(closed.wait(), timeout=2)
        writer.close()
        await server.stop()

    asyncio.run(run())


def test_open_channel_to_nothing_raises_connection_error():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]

    async def run():
        with pytest.raises(ConnectionError):
            await open_channel("127.0.0.1", port, timeout=2)

    asyncio.run(run())
