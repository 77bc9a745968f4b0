"""
codedrop - Code-Paired File Transfer

Sends one file to one peer over an ordered message channel:
- Fixed-size chunking with dense indices
- Paced, in-order transmission with live progress
- Order-independent, write-once reassembly on the receiver
"""

from .config import Config, load_config
from .file import FileChunker, FileSource, DirectorySink, CHUNK_SIZE
from .session import SendSession, ReceiveSession, generate_code
from .transfer import (
    ChunkTransmitter, Reassembler, ReceiverState, TransferProgress,
    TransferError, FileReadError, ProtocolError, TransferAborted, DuplicateChunk,
)

__version__ = "0.1.0"

__all__ = [
    'Config',
    'load_config',
    'FileChunker',
    'FileSource',
    'DirectorySink',
    'CHUNK_SIZE',
    'SendSession',
    'ReceiveSession',
    'generate_code',
    'ChunkTransmitter',
    'Reassembler',
    'ReceiverState',
    'TransferProgress',
    'TransferError',
    'FileReadError',
    'ProtocolError',
    'TransferAborted',
    'DuplicateChunk',
]
