"""
Chunk Reassembler

Design Decision: Reassembly Strategy
====================================

Options Considered:
1. Append chunks as they arrive
   - Only correct if the channel never reorders
   - Duplicates corrupt the output

2. Indexed slots, rescan for completeness on every chunk
   - Order independent
   - O(n) per chunk, O(n^2) per transfer

3. Indexed slots plus a running filled-count
   - Order independent, duplicates detected per slot
   - O(1) completeness check

Decision: Indexed slots with a running count
- Each slot is written at most once; the first write wins
- Slots are sparse (keyed by index); nothing is allocated up front
- A repeated index is a DuplicateChunk, logged and ignored
- Completion fires exactly once, when the count reaches the total

Receiver State Machine (one transfer):
```
AWAITING_FIRST_CHUNK --first chunk--> RECEIVING --last slot--> COMPLETE
                                         |  ^
                                         +--+ (more chunks, still short)
```

A chunk whose total differs from the current transfer starts a new
transfer and discards the old buffer. Same total with a different file
name or type while receiving is rejected: two transfers cannot be
interleaved on one channel.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .errors import DuplicateChunk, ProtocolError, TransferAborted
from .message import ChunkMessage
from .progress import TransferProgress, ProgressCallback
from ..file.sink import FileSinkFunc

logger = logging.getLogger(__name__)

CompleteCallback = Callable[[Any], None]


class ReceiverState(Enum):
    """Receiver-side transfer states."""
    AWAITING_FIRST_CHUNK = "awaiting_first_chunk"
    RECEIVING = "receiving"
    COMPLETE = "complete"


class ReassemblyBuffer:
    """
    Write-once slots for one transfer, keyed by chunk index.

    Slots are kept sparse, so memory follows the chunks actually
    received rather than the total a peer announces.
    """

    def __init__(self, total: int):
        if total < 0:
            raise ValueError(f"Total chunks must be >= 0, got {total}")
        self.total = total
        self._slots: Dict[int, bytes] = {}

    @property
    def filled(self) -> int:
        return len(self._slots)

    @property
    def is_full(self) -> bool:
        return self.filled == self.total

    def put(self, index: int, payload: bytes):
        """
        Fill one slot.

        Raises:
            IndexError: if index is outside [0, total)
            DuplicateChunk: if the slot is already filled
        """
        if index < 0 or index >= self.total:
            raise IndexError(f"Chunk index {index} out of range [0, {self.total})")
        if index in self._slots:
            raise DuplicateChunk(index)

        self._slots[index] = payload

    def missing(self) -> List[int]:
        """Indices not received yet."""
        return [i for i in range(self.total) if i not in self._slots]

    def assemble(self) -> bytes:
        """Concatenate all slots in index order."""
        if not self.is_full:
            raise ValueError(f"Buffer incomplete: {self.filled}/{self.total} chunks")
        return b''.join(self._slots[i] for i in range(self.total))

    def discard(self):
        """Drop all payloads."""
        self._slots.clear()


class CompletionDetector:
    """Fires once per transfer, when every slot is filled."""

    def __init__(self):
        self.fired = False

    def reset(self):
        self.fired = False

    def check(self, buffer: ReassemblyBuffer) -> bool:
        return not self.fired and buffer.is_full

    def materialize(self, buffer: ReassemblyBuffer) -> bytes:
        self.fired = True
        return buffer.assemble()


class Reassembler:
    """
    Rebuilds files from CHUNK messages arriving in any order.

    Must be fed from a single task (a channel's dispatch loop does this).
    """

    def __init__(self, sink: FileSinkFunc,
                 on_progress: Optional[ProgressCallback] = None,
                 on_complete: Optional[CompleteCallback] = None):
        self.sink = sink
        self.on_progress = on_progress
        self.on_complete = on_complete

        self.state = ReceiverState.AWAITING_FIRST_CHUNK
        self.buffer: Optional[ReassemblyBuffer] = None
        self.detector = CompletionDetector()
        self.progress = TransferProgress(role='receiver')
        self.file_name = ''
        self.file_type = ''
        self.result: Any = None
        self.aborted = False

        # Statistics
        self.transfers_started = 0
        self.transfers_completed = 0
        self.duplicates = 0
        self.late_chunks = 0

    async def accept(self, chunk: ChunkMessage) -> bool:
        """
        Take one chunk.

        Returns:
            True if the chunk was stored, False if it was ignored
            (duplicate, or late after completion)

        Raises:
            ProtocolError: invalid chunk; nothing was changed
            TransferAborted: this reassembler was aborted
        """
        if self.aborted:
            raise TransferAborted("Transfer was aborted")

        self._validate(chunk)

        if self._starts_new_transfer(chunk):
            self._begin(chunk)
        elif self.state == ReceiverState.COMPLETE:
            self.late_chunks += 1
            logger.debug(f"Ignoring late chunk {chunk.index} of completed {self.file_name}")
            return False
        elif (chunk.file_name, chunk.file_type) != (self.file_name, self.file_type):
            raise ProtocolError(
                f"Chunk for {chunk.file_name!r} interleaved with transfer of "
                f"{self.file_name!r}"
            )

        if not chunk.is_empty_transfer:
            try:
                self.buffer.put(chunk.index, chunk.chunk)
            except DuplicateChunk as e:
                self.duplicates += 1
                logger.debug(f"{e}, ignoring")
                return False

            self.progress.record(len(chunk.chunk))
            logger.debug(f"Stored chunk {chunk.index + 1}/{chunk.total} "
                         f"({self.buffer.filled}/{self.buffer.total} filled)")
            self._notify()

        if self.detector.check(self.buffer):
            await self._complete()

        return True

    def abort(self, reason: str = ''):
        """
        Discard the in-progress buffer.

        State and progress are left as they were so the last value can
        still be shown; no output is produced for this transfer.
        """
        if self.aborted or self.state == ReceiverState.COMPLETE:
            return

        self.aborted = True
        if self.buffer is not None:
            self.buffer.discard()
        self.progress.phase = 'aborted'
        logger.warning(f"Transfer of {self.file_name or 'file'} aborted at "
                       f"{self.progress.progress_percent:.0f}%"
                       f"{': ' + reason if reason else ''}")

    def reset(self):
        """Forget everything and wait for a new transfer."""
        if self.buffer is not None:
            self.buffer.discard()
        self.state = ReceiverState.AWAITING_FIRST_CHUNK
        self.buffer = None
        self.detector.reset()
        self.progress = TransferProgress(role='receiver')
        self.file_name = ''
        self.file_type = ''
        self.result = None
        self.aborted = False

    def _validate(self, chunk: ChunkMessage):
        if chunk.total < 0:
            raise ProtocolError(f"Negative total: {chunk.total}")
        if chunk.total == 0:
            if not chunk.is_empty_transfer:
                raise ProtocolError(
                    f"Chunk {chunk.index} with {len(chunk.chunk)} bytes in an empty transfer"
                )
            return
        if chunk.index < 0 or chunk.index >= chunk.total:
            raise ProtocolError(f"Chunk index {chunk.index} out of range [0, {chunk.total})")

    def _starts_new_transfer(self, chunk: ChunkMessage) -> bool:
        if self.state == ReceiverState.AWAITING_FIRST_CHUNK:
            return True
        if chunk.total != self.buffer.total:
            return True
        if self.state == ReceiverState.COMPLETE:
            return (chunk.file_name, chunk.file_type) != (self.file_name, self.file_type)
        return False

    def _begin(self, chunk: ChunkMessage):
        buffer = ReassemblyBuffer(chunk.total)
        if self.state == ReceiverState.RECEIVING:
            logger.warning(f"New transfer {chunk.file_name!r} replaces unfinished "
                           f"{self.file_name!r} ({self.buffer.filled}/{self.buffer.total} chunks)")
            self.buffer.discard()

        self.buffer = buffer
        self.detector.reset()
        self.state = ReceiverState.RECEIVING
        self.file_name = chunk.file_name
        self.file_type = chunk.file_type
        self.result = None
        self.progress = TransferProgress(
            role='receiver',
            total_chunks=chunk.total,
            file_name=chunk.file_name,
            phase='transferring',
        )
        self.transfers_started += 1
        logger.info(f"Receiving {chunk.file_name} ({chunk.total} chunks, "
                    f"{chunk.file_type or 'unknown type'})")

    async def _complete(self):
        data = self.detector.materialize(self.buffer)
        self.state = ReceiverState.COMPLETE
        self.progress.file_size = len(data)
        self.progress.phase = 'complete'
        self.buffer.discard()
        self._notify()

        logger.info(f"Received {self.file_name} ({len(data):,} bytes)")
        self.result = await self.sink(data, self.file_name, self.file_type)
        self.transfers_completed += 1

        if self.on_complete:
            self.on_complete(self.result)

    def _notify(self):
        if self.on_progress:
            self.on_progress(self.progress.progress_percent)

    def get_stats(self) -> dict:
        """Get reassembler statistics."""
        return {
            'state': self.state.value,
            'aborted': self.aborted,
            'progress': self.progress.to_dict(),
            'transfers_started': self.transfers_started,
            'transfers_completed': self.transfers_completed,
            'duplicates': self.duplicates,
            'late_chunks': self.late_chunks,
        }
