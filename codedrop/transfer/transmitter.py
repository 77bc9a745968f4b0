"""
Chunk Transmitter

Design Decision: Send Strategy
==============================

Options Considered:
1. Schedule every chunk up front on its own timer (index * delay)
   - Simple, but cancelling means hunting down every pending timer
   - Chunks keep firing after the channel is gone

2. One coroutine that sends, then waits on a pacer, then sends again
   - Exactly one pending wait at any time
   - Cancelling the coroutine cancels that wait, nothing is orphaned

3. Windowed send with acknowledgments
   - Needed for retransmission
   - The receiver never acknowledges in this protocol

Decision: Single paced coroutine
- Chunks are issued strictly in ascending index order
- Progress is updated after every successful send
- Channel close or cancel() stops the loop and raises TransferAborted
- No automatic retry of chunks that were already sent

Send Flow:
1. Split the file into chunks (empty file: one empty-transfer marker)
2. For each chunk: wait on the pacer (except before the first), send
3. Update progress, notify the progress sink
"""

import asyncio
import logging
from typing import Optional

from .channel import Channel
from .errors import TransferAborted
from .message import ChunkMessage
from .pacing import Pacer, FixedDelayPacer
from .progress import TransferProgress, ProgressCallback
from ..file.chunker import FileChunker

logger = logging.getLogger(__name__)


class ChunkTransmitter:
    """
    Sends one file over a channel as paced CHUNK messages.

    One transmitter handles one transfer.
    """

    def __init__(self, channel: Channel, chunker: FileChunker = None,
                 pacer: Pacer = None,
                 on_progress: Optional[ProgressCallback] = None):
        self.channel = channel
        self.chunker = chunker or FileChunker()
        self.pacer = pacer or FixedDelayPacer()
        self.on_progress = on_progress

        self.progress = TransferProgress(role='sender')
        self._cancelled = False
        self._started = False
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        """Stop sending; the running send() raises TransferAborted."""
        if self._cancelled:
            return
        self._cancelled = True
        logger.info(f"Cancelling transfer of {self.progress.file_name or 'file'}")
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()

    async def send(self, source) -> TransferProgress:
        """
        Send a whole file.

        Args:
            source: object with name, mime_type and data (see FileSource)

        Returns:
            Final sender progress

        Raises:
            TransferAborted: if the channel closed or cancel() was called
        """
        if self._started:
            raise RuntimeError("A transmitter can only send once")
        self._started = True
        self._task = asyncio.current_task()

        chunks = self.chunker.split(source.data)
        total = len(chunks)

        self.progress.total_chunks = total
        self.progress.file_name = source.name
        self.progress.file_size = len(source.data)
        self.progress.phase = 'transferring'

        logger.info(f"Sending {source.name}: {len(source.data):,} bytes in {total} chunks "
                    f"of {self.chunker.chunk_size:,} bytes")

        try:
            if total == 0:
                await self._send_one(ChunkMessage(
                    index=0, total=0,
                    file_name=source.name, file_type=source.mime_type,
                    chunk=b'',
                ))
            else:
                for chunk in chunks:
                    if chunk.index > 0:
                        self._check_open()
                        await self.pacer.wait()
                    await self._send_one(ChunkMessage(
                        index=chunk.index,
                        total=chunk.total,
                        file_name=source.name,
                        file_type=source.mime_type,
                        chunk=chunk.payload,
                    ))
                    self.progress.record(chunk.size)
                    self._notify()

        except asyncio.CancelledError:
            if not self._cancelled:
                raise
            # The cancellation was ours; the task itself keeps running
            task = asyncio.current_task()
            if task is not None and hasattr(task, 'uncancel'):
                task.uncancel()
            self._abort()
            raise TransferAborted(
                f"Transfer cancelled after {self.progress.done_chunks}/{total} chunks"
            ) from None
        except TransferAborted:
            self._abort()
            raise
        finally:
            self._task = None

        self.progress.phase = 'complete'
        self._notify()
        logger.info(f"Sent {source.name} ({total} chunks)")
        return self.progress

    def _check_open(self):
        if self._cancelled:
            raise TransferAborted("Transfer cancelled")
        if self.channel.closed:
            raise TransferAborted(
                f"Channel closed after {self.progress.done_chunks}/"
                f"{self.progress.total_chunks} chunks"
            )

    async def _send_one(self, message: ChunkMessage):
        """Send one chunk, converting channel failures to TransferAborted."""
        self._check_open()
        try:
            await self.channel.send(message.to_message())
        except ConnectionError as e:
            raise TransferAborted(f"Channel failed: {e}") from e

        logger.debug(f"Sent chunk {message.index + 1}/{message.total} "
                     f"({len(message.chunk):,} bytes)")

    def _abort(self):
        self.progress.phase = 'aborted'
        logger.warning(f"Transfer of {self.progress.file_name} aborted at "
                       f"{self.progress.progress_percent:.0f}%")

    def _notify(self):
        if self.on_progress:
            self.on_progress(self.progress.progress_percent)
