"""
Transfer Sessions - Main Controller

Wires the transfer core to a channel for each role:

- SendSession: listens for a receiver, checks its share code, streams the file
- ReceiveSession: connects with a share code, rebuilds the file, hands it to a sink

Handshake:
```
receiver                      sender
   | ---- HELLO {code} ------->  |   wrong code / busy: REJECT + close
   | <--- CHUNK 0..n-1 --------  |
   | <--- close ---------------  |
```
Either side may send CANCEL at any time; both then drop the transfer.
"""

import asyncio
import logging
import secrets
from typing import Any, Optional

from .config import Config
from .file.chunker import FileChunker
from .file.sink import DirectorySink, FileSinkFunc
from .file.source import FileSource
from .transfer.channel import Channel, ChannelServer, open_channel
from .transfer.errors import ProtocolError, TransferAborted
from .transfer.message import ChunkMessage, TransferMessage, TransferMessageType
from .transfer.pacing import Pacer, FixedDelayPacer
from .transfer.progress import TransferProgress, ProgressCallback
from .transfer.reassembler import Reassembler, ReceiverState
from .transfer.transmitter import ChunkTransmitter

logger = logging.getLogger(__name__)

CODE_LENGTH = 6


def generate_code() -> str:
    """Six-digit share code, 100000-999999."""
    low = 10 ** (CODE_LENGTH - 1)
    return str(low + secrets.randbelow(9 * low))


def is_valid_code(code: str) -> bool:
    return len(code) == CODE_LENGTH and code.isdigit()


class SendSession:
    """
    Sender side of one transfer.

    Serves exactly one receiver: the first whose HELLO carries the
    right code. Others are rejected.
    """

    def __init__(self, config: Config, source: FileSource,
                 code: Optional[str] = None, pacer: Pacer = None,
                 on_progress: Optional[ProgressCallback] = None):
        self.config = config
        self.source = source
        self.code = code or generate_code()
        self.chunker = FileChunker(chunk_size=config.chunk_size)
        self.pacer = pacer or FixedDelayPacer(config.send_interval)
        self.on_progress = on_progress

        self.server: Optional[ChannelServer] = None
        self.transmitter: Optional[ChunkTransmitter] = None
        self._channel: Optional[Channel] = None
        self._send_task: Optional[asyncio.Task] = None
        self._done: Optional[asyncio.Future] = None

        # Statistics
        self.rejected = 0

    @property
    def port(self) -> Optional[int]:
        return self.server.port if self.server else None

    @property
    def progress(self) -> Optional[TransferProgress]:
        return self.transmitter.progress if self.transmitter else None

    async def start(self):
        """Listen for the receiver."""
        self._ensure_future()
        self.server = ChannelServer(
            self._attach,
            host=self.config.host,
            port=self.config.port
        )
        await self.server.start()
        logger.info(f"Sharing {self.source.name} ({self.source.size:,} bytes) "
                    f"with code {self.code} on port {self.server.port}")

    async def serve_channel(self, channel: Channel):
        """Run the sender protocol over an already open channel."""
        self._ensure_future()
        await self._attach(channel)
        channel.start()

    async def wait(self) -> TransferProgress:
        """
        Wait for the transfer to finish.

        Raises:
            TransferAborted: if the transfer was cancelled or the channel dropped
        """
        self._ensure_future()
        return await self._done

    def cancel(self):
        """Stop sending now."""
        if self._in_flight():
            self.transmitter.cancel()
        elif self.transmitter is None:
            self._finish(exc=TransferAborted("Cancelled before a receiver connected"))

    async def stop(self):
        """Cancel any transfer and tear everything down."""
        if self._channel is not None and not self._channel.closed and self._in_flight():
            try:
                await self._channel.send(TransferMessage.cancel('Sender stopped'))
            except ConnectionError:
                pass
        self.cancel()

        if self._send_task is not None:
            await asyncio.gather(self._send_task, return_exceptions=True)
        if self._channel is not None:
            await self._channel.close()
        if self.server is not None:
            await self.server.stop()

    # === Channel handling ===

    def _ensure_future(self):
        if self._done is None:
            self._done = asyncio.get_running_loop().create_future()

    def _in_flight(self) -> bool:
        return (self.transmitter is not None
                and self.transmitter.progress.phase in ('waiting', 'transferring'))

    async def _attach(self, channel: Channel):
        async def handle(message: TransferMessage):
            await self._handle_message(channel, message)

        channel.on_message(handle)
        channel.on_close(lambda: self._on_close(channel))

    async def _handle_message(self, channel: Channel, message: TransferMessage):
        if message.type == TransferMessageType.HELLO:
            await self._handle_hello(channel, message)
        elif message.type == TransferMessageType.CANCEL:
            if channel is self._channel and self._in_flight():
                logger.info(f"Receiver cancelled: {message.headers.get('reason', '')}")
                self.transmitter.cancel()
        else:
            raise ProtocolError(f"Unexpected {message.type.value} message from receiver")

    async def _handle_hello(self, channel: Channel, message: TransferMessage):
        if self._channel is not None:
            await self._reject(channel, 'Sender is busy')
            return
        if message.headers.get('code') != self.code:
            self.rejected += 1
            logger.warning(f"Rejected {channel.name}: invalid code")
            await self._reject(channel, 'Invalid code')
            return

        logger.info(f"Receiver {channel.name} connected")
        self._channel = channel
        self.transmitter = ChunkTransmitter(
            channel,
            chunker=self.chunker,
            pacer=self.pacer,
            on_progress=self.on_progress,
        )
        # Sending runs beside the dispatch loop so CANCEL can still arrive
        self._send_task = asyncio.create_task(self._transmit(channel))

    async def _reject(self, channel: Channel, reason: str):
        try:
            await channel.send(TransferMessage.reject(reason))
        except ConnectionError:
            pass
        await channel.close()

    async def _transmit(self, channel: Channel):
        try:
            progress = await self.transmitter.send(self.source)
        except TransferAborted as e:
            self._finish(exc=e)
        else:
            self._finish(result=progress)
        finally:
            await channel.close()

    def _on_close(self, channel: Channel):
        if channel is self._channel and self._in_flight():
            logger.warning(f"Channel to {channel.name} closed mid-transfer")
            self.transmitter.cancel()

    def _finish(self, result: Any = None, exc: Optional[BaseException] = None):
        self._ensure_future()
        if self._done.done():
            return
        if exc is not None:
            self._done.set_exception(exc)
        else:
            self._done.set_result(result)

    def get_stats(self) -> dict:
        """Get sender statistics."""
        return {
            'file_name': self.source.name,
            'file_size': self.source.size,
            'code': self.code,
            'port': self.port,
            'rejected': self.rejected,
            'progress': self.progress.to_dict() if self.progress else None,
        }


class ReceiveSession:
    """
    Receiver side of one transfer.
    """

    def __init__(self, config: Config, sink: Optional[FileSinkFunc] = None,
                 on_progress: Optional[ProgressCallback] = None):
        self.config = config
        self.sink = sink or DirectorySink(config.output_dir)
        self.reassembler = Reassembler(
            self.sink,
            on_progress=on_progress,
            on_complete=self._on_complete,
        )
        self._channel: Optional[Channel] = None
        self._done: Optional[asyncio.Future] = None

        # Statistics
        self.protocol_errors = 0

    @property
    def progress(self) -> TransferProgress:
        return self.reassembler.progress

    @property
    def state(self) -> ReceiverState:
        return self.reassembler.state

    async def receive(self, host: str, port: int, code: str) -> Any:
        """
        Connect to a sender and receive its file.

        Returns:
            Whatever the sink returned (a Path for DirectorySink)

        Raises:
            ConnectionError: if the sender is unreachable
            TransferAborted: if the transfer did not complete
        """
        logger.info(f"Connecting to {host}:{port}...")
        channel = await open_channel(host, port, timeout=self.config.connect_timeout)
        return await self.receive_channel(channel, code)

    async def receive_channel(self, channel: Channel, code: str) -> Any:
        """Run the receiver protocol over an already open channel."""
        # Every connection carries a fresh transfer
        self.reassembler.reset()
        self._done = asyncio.get_running_loop().create_future()
        self._channel = channel
        channel.on_message(self._handle_message)
        channel.on_close(lambda: self._on_close(channel))
        channel.start()

        try:
            await channel.send(TransferMessage.hello(code))
            return await self._done
        finally:
            await channel.close()

    async def cancel(self, reason: str = 'Receiver cancelled'):
        """Tell the sender to stop and drop the partial file."""
        channel = self._channel
        if channel is not None and not channel.closed:
            try:
                await channel.send(TransferMessage.cancel(reason))
            except ConnectionError:
                pass
        self.reassembler.abort(reason)
        self._fail(TransferAborted(reason))
        if channel is not None:
            await channel.close()

    def reset(self):
        """Back to a clean slate, ready for another transfer."""
        self.reassembler.reset()
        self.protocol_errors = 0
        self._channel = None
        self._done = None

    # === Channel handling ===

    async def _handle_message(self, message: TransferMessage):
        if message.type == TransferMessageType.CHUNK:
            try:
                await self.reassembler.accept(ChunkMessage.from_message(message))
            except ProtocolError as e:
                self.protocol_errors += 1
                logger.warning(f"Dropped chunk: {e}")
            except TransferAborted:
                logger.debug("Chunk after abort, ignoring")
            except OSError as e:
                logger.error(f"Could not save {self.reassembler.file_name}: {e}")
                self._fail(e)

        elif message.type == TransferMessageType.REJECT:
            reason = message.headers.get('reason', 'rejected')
            self.reassembler.abort(reason)
            self._fail(TransferAborted(f"Sender rejected the connection: {reason}"))

        elif message.type == TransferMessageType.CANCEL:
            reason = message.headers.get('reason', '')
            self.reassembler.abort(reason)
            self._fail(TransferAborted(f"Sender cancelled the transfer: {reason}"))

        else:
            raise ProtocolError(f"Unexpected {message.type.value} message from sender")

    def _on_complete(self, result: Any):
        if self._done is not None and not self._done.done():
            self._done.set_result(result)

    def _on_close(self, channel: Channel):
        if channel is not self._channel:
            return
        if self.reassembler.state != ReceiverState.COMPLETE:
            self.reassembler.abort('channel closed')
            self._fail(TransferAborted("Channel closed before the transfer completed"))
        else:
            # Complete, but the sink never handed back a result
            self._fail(TransferAborted("Channel closed before the file was saved"))

    def _fail(self, exc: BaseException):
        if self._done is not None and not self._done.done():
            self._done.set_exception(exc)

    def get_stats(self) -> dict:
        """Get receiver statistics."""
        return {
            **self.reassembler.get_stats(),
            'protocol_errors': self.protocol_errors,
        }
