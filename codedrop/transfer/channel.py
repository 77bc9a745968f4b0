"""
Message Channels

Design Decision: Channel Abstraction
====================================

The transfer core never touches sockets directly. It talks to a Channel:
an ordered, bidirectional, message-oriented pipe between exactly two peers.

Options Considered:
1. Pass raw (reader, writer) pairs around
   - Couples the protocol to TCP
   - Hard to test without real sockets

2. Callback-based Channel with a per-channel dispatch task
   - send(message) / on_message(handler) / on_close(handler)
   - Same shape as a browser data channel
   - Swappable transport (TCP stream, in-memory pair)

Decision: Callback-based Channel
- Each channel owns one dispatch task that awaits the handler before
  reading the next message, so handlers never run concurrently and the
  receiver's buffer has a single writer without any locking
- Close is reported exactly once to every close handler

Implementations:
- StreamChannel: length-prefixed frames over asyncio streams (TCP)
- MemoryChannel: connected in-process pair (tests, loopback)
"""

import asyncio
import logging
from typing import Optional, Tuple, Callable, Awaitable, List, Set

from .errors import FramingError, ProtocolError
from .message import TransferMessage

logger = logging.getLogger(__name__)

# Handler types
MessageHandler = Callable[[TransferMessage], Awaitable[None]]
CloseHandler = Callable[[], None]


class Channel:
    """
    Base class for a two-party message channel.

    Subclasses provide send() and the task that feeds _dispatch().
    """

    def __init__(self, name: str = 'channel'):
        self.name = name
        self._message_handler: Optional[MessageHandler] = None
        self._close_handlers: List[CloseHandler] = []
        self._closed = False
        self._closed_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def on_message(self, handler: MessageHandler) -> MessageHandler:
        """Register the handler for incoming messages (replaces any previous one)."""
        self._message_handler = handler
        return handler

    def on_close(self, handler: CloseHandler) -> CloseHandler:
        """Register a callback fired once when the channel closes."""
        self._close_handlers.append(handler)
        return handler

    def start(self):
        """Start dispatching incoming messages."""
        raise NotImplementedError

    async def send(self, message: TransferMessage):
        """Send a message. Raises ConnectionError if the channel is closed."""
        raise NotImplementedError

    async def close(self):
        """Close the channel."""
        raise NotImplementedError

    async def wait_closed(self):
        """Wait until the channel is closed."""
        await self._closed_event.wait()

    async def _dispatch(self, message: TransferMessage):
        """Hand one message to the registered handler."""
        handler = self._message_handler
        if handler is None:
            logger.warning(f"[{self.name}] No handler for {message.type.value}, dropping")
            return

        try:
            await handler(message)
        except ProtocolError as e:
            logger.warning(f"[{self.name}] Dropped {message.type.value} message: {e}")

    def _mark_closed(self):
        """Flip to closed and notify close handlers (once)."""
        if self._closed:
            return
        self._closed = True
        self._closed_event.set()
        logger.debug(f"[{self.name}] Channel closed")

        for handler in list(self._close_handlers):
            try:
                handler()
            except Exception:
                logger.exception(f"[{self.name}] Close handler failed")

    def _cancel_task(self):
        """Stop the dispatch task unless we are running inside it."""
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()


class StreamChannel(Channel):
    """
    Channel over an asyncio stream pair (TCP).

    Writes are serialized with a lock so concurrent senders never
    interleave frames.
    """

    def __init__(self, reader: asyncio.StreamReader,
                 writer: asyncio.StreamWriter):
        peer = writer.get_extra_info('peername')
        super().__init__(name=f"{peer[0]}:{peer[1]}" if peer else 'stream')
        self.reader = reader
        self.writer = writer
        self._write_lock = asyncio.Lock()

    def start(self):
        if self._task is None:
            self._task = asyncio.create_task(self._read_loop())

    async def send(self, message: TransferMessage):
        if self._closed:
            raise ConnectionError("Channel closed")

        data = message.to_bytes()
        async with self._write_lock:
            try:
                self.writer.write(data)
                await self.writer.drain()
            except OSError as e:
                await self.close()
                raise ConnectionError(f"Send failed on {self.name}: {e}") from e

    async def close(self):
        if self._closed:
            return
        self._mark_closed()
        self._cancel_task()
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as e:
            logger.debug(f"[{self.name}] Error while closing: {e}")

    async def _read_loop(self):
        """Read frames and dispatch them one at a time."""
        try:
            while not self._closed:
                try:
                    message = await TransferMessage.from_reader(self.reader)
                except FramingError as e:
                    logger.error(f"[{self.name}] Framing error, closing: {e}")
                    break
                except ProtocolError as e:
                    logger.warning(f"[{self.name}] Dropped malformed message: {e}")
                    continue

                if message is None:
                    break

                await self._dispatch(message)

        except OSError as e:
            logger.debug(f"[{self.name}] Connection lost: {e}")
        except Exception:
            logger.exception(f"[{self.name}] Message handler failed, closing")
        finally:
            if not self._closed:
                self._mark_closed()
                self.writer.close()


class MemoryChannel(Channel):
    """
    In-process channel; use MemoryChannel.pair() to get both ends.

    Messages already sent are still delivered after the sending side
    closes, the same as data in flight on a TCP connection.
    """

    def __init__(self, name: str = 'memory'):
        super().__init__(name=name)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._peer: Optional['MemoryChannel'] = None

    @classmethod
    def pair(cls, names: Tuple[str, str] = ('left', 'right')) -> Tuple['MemoryChannel', 'MemoryChannel']:
        """Create two connected channels."""
        left, right = cls(names[0]), cls(names[1])
        left._peer = right
        right._peer = left
        return left, right

    def start(self):
        if self._task is None:
            self._task = asyncio.create_task(self._pump())

    async def send(self, message: TransferMessage):
        peer = self._peer
        if self._closed or peer is None or peer._closed:
            raise ConnectionError("Channel closed")

        peer._queue.put_nowait(message)
        # Let the other side run, as a socket write would
        await asyncio.sleep(0)

    async def close(self):
        if self._closed:
            return
        self._mark_closed()
        self._cancel_task()
        if self._peer is not None:
            # End-of-stream marker, delivered after anything in flight
            self._peer._queue.put_nowait(None)

    async def _pump(self):
        try:
            while not self._closed:
                message = await self._queue.get()
                if message is None:
                    break
                await self._dispatch(message)
        except Exception:
            logger.exception(f"[{self.name}] Message handler failed, closing")
            if self._peer is not None:
                self._peer._queue.put_nowait(None)
        finally:
            self._mark_closed()


# Type for new-connection callbacks
ChannelCallback = Callable[[StreamChannel], Awaitable[None]]


class ChannelServer:
    """
    TCP server that turns each accepted connection into a StreamChannel.

    The callback registers handlers on the channel; the server starts the
    channel afterwards, so no message can arrive before a handler exists.
    """

    def __init__(self, on_channel: ChannelCallback,
                 host: str = '0.0.0.0', port: int = 8470):
        self.host = host
        self.port = port
        self.server: Optional[asyncio.AbstractServer] = None
        self._on_channel = on_channel
        self._channels: Set[StreamChannel] = set()

    @property
    def is_running(self) -> bool:
        return self.server is not None

    async def start(self):
        """Start listening."""
        self.server = await asyncio.start_server(
            self._handle_connection,
            self.host,
            self.port
        )
        addr = self.server.sockets[0].getsockname()
        # Port 0 asks the OS for a free port
        self.port = addr[1]
        logger.info(f"Channel server listening on {addr[0]}:{addr[1]}")

    async def stop(self):
        """Stop listening and close open channels."""
        for channel in list(self._channels):
            await channel.close()
        self._channels.clear()

        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
            logger.info("Channel server stopped")

    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter):
        """Handle an incoming connection."""
        channel = StreamChannel(reader, writer)
        logger.debug(f"New connection from {channel.name}")
        self._channels.add(channel)

        try:
            await self._on_channel(channel)
            channel.start()
            await channel.wait_closed()
        except Exception as e:
            logger.error(f"Error handling connection from {channel.name}: {e}")
            await channel.close()
        finally:
            self._channels.discard(channel)


async def open_channel(host: str, port: int,
                       timeout: float = 10.0) -> StreamChannel:
    """
    Connect to a peer and return an unstarted StreamChannel.

    Register handlers, then call start().

    Raises:
        ConnectionError: if the connection could not be established
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout
        )
    except (OSError, asyncio.TimeoutError) as e:
        raise ConnectionError(f"Failed to connect to {host}:{port}: {e}") from e

    return StreamChannel(reader, writer)
