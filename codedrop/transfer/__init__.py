"""
Transfer Module - Chunked File Transfer Protocol

Streams chunks over a two-party channel and rebuilds the file on the
other side.
"""

from .errors import (
    TransferError, FileReadError, ProtocolError, FramingError,
    TransferAborted, DuplicateChunk,
)
from .message import TransferMessage, TransferMessageType, ChunkMessage
from .channel import Channel, StreamChannel, MemoryChannel, ChannelServer, open_channel
from .pacing import Pacer, FixedDelayPacer, NoPacing
from .progress import TransferProgress
from .transmitter import ChunkTransmitter
from .reassembler import Reassembler, ReassemblyBuffer, CompletionDetector, ReceiverState

__all__ = [
    'TransferError',
    'FileReadError',
    'ProtocolError',
    'FramingError',
    'TransferAborted',
    'DuplicateChunk',
    'TransferMessage',
    'TransferMessageType',
    'ChunkMessage',
    'Channel',
    'StreamChannel',
    'MemoryChannel',
    'ChannelServer',
    'open_channel',
    'Pacer',
    'FixedDelayPacer',
    'NoPacing',
    'TransferProgress',
    'ChunkTransmitter',
    'Reassembler',
    'ReassemblyBuffer',
    'CompletionDetector',
    'ReceiverState',
]
