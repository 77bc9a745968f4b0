"""
Chunk Transfer Messages

Design Decision: Wire Format
============================

Options Considered:
1. Pickle - Trivial, but unsafe across peers
2. Pure JSON with base64 payloads - Readable, ~33% payload overhead
3. Custom binary struct per message type - Compact, rigid
4. Length-prefixed JSON header + raw binary data

Decision: Length-prefixed JSON header + raw binary data
- Chunk payloads travel as raw bytes, no encoding overhead
- Header stays human readable and easy to extend
- Same framing for control messages (HELLO, REJECT, CANCEL)

Message Format:
```
+----------------+----------------+----------------+----------------+
| Length (4B)    | Hdr Len (4B)   | Header (JSON)  | Data (binary)  |
+----------------+----------------+----------------+----------------+

Chunk header JSON:
{
    "type": "CHUNK",
    "index": 0,
    "total": 3,
    "fileName": "photo.jpg",
    "fileType": "image/jpeg",
    "data_length": 16384
}
```

An empty file is announced with a single CHUNK carrying
index 0, total 0 and no data.
"""

import asyncio
import json
import struct
import logging
from enum import Enum
from typing import Optional, Dict, Any
from dataclasses import dataclass

from .errors import FramingError, ProtocolError

logger = logging.getLogger(__name__)

# Upper bound for a single frame (header + data)
MAX_MESSAGE_SIZE = 100 * 1024 * 1024  # 100MB

_LENGTH = struct.Struct('>I')


class TransferMessageType(Enum):
    """Channel message types."""
    # Handshake
    HELLO = "HELLO"
    REJECT = "REJECT"

    # Data
    CHUNK = "CHUNK"

    # Control
    CANCEL = "CANCEL"


@dataclass
class TransferMessage:
    """A framed channel message."""
    type: TransferMessageType
    headers: Dict[str, Any]
    data: bytes = b''

    def to_bytes(self) -> bytes:
        """Serialize message to bytes."""
        header_dict = {
            'type': self.type.value,
            'data_length': len(self.data),
            **self.headers
        }
        header_bytes = json.dumps(header_dict).encode('utf-8')

        total_length = len(header_bytes) + len(self.data)
        if total_length > MAX_MESSAGE_SIZE:
            raise ValueError(f"Message too large: {total_length}")

        return (
            _LENGTH.pack(total_length) +
            _LENGTH.pack(len(header_bytes)) +
            header_bytes +
            self.data
        )

    @classmethod
    def from_frame(cls, header_bytes: bytes, data: bytes) -> 'TransferMessage':
        """Build a message from an already split header and data block."""
        try:
            header_dict = json.loads(header_bytes.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProtocolError(f"Invalid message header: {e}") from e

        if not isinstance(header_dict, dict):
            raise ProtocolError("Message header is not an object")

        try:
            msg_type = TransferMessageType(header_dict.pop('type', None))
        except ValueError as e:
            raise ProtocolError(f"Unknown message type: {e}") from e

        data_length = header_dict.pop('data_length', len(data))
        if data_length != len(data):
            raise ProtocolError(
                f"Data length mismatch: header says {data_length}, got {len(data)}"
            )

        return cls(type=msg_type, headers=header_dict, data=data)

    @classmethod
    async def from_reader(cls, reader: asyncio.StreamReader) -> Optional['TransferMessage']:
        """
        Read one message from a stream.

        Returns:
            The message, or None on a clean end of stream

        Raises:
            FramingError: if the frame boundaries cannot be trusted
            ProtocolError: if a complete frame carries a bad header
        """
        try:
            length_bytes = await reader.readexactly(4)
        except asyncio.IncompleteReadError:
            return None

        total_length = _LENGTH.unpack(length_bytes)[0]
        if total_length > MAX_MESSAGE_SIZE:
            raise FramingError(f"Message too large: {total_length}")

        try:
            header_length = _LENGTH.unpack(await reader.readexactly(4))[0]
            if header_length > total_length:
                raise FramingError(
                    f"Header length {header_length} exceeds frame length {total_length}"
                )
            header_bytes = await reader.readexactly(header_length)
            data_length = total_length - header_length
            data = await reader.readexactly(data_length) if data_length > 0 else b''
        except asyncio.IncompleteReadError:
            # Peer went away mid-frame
            return None

        return cls.from_frame(header_bytes, data)

    # === Constructors for control messages ===

    @classmethod
    def hello(cls, code: str) -> 'TransferMessage':
        return cls(type=TransferMessageType.HELLO, headers={'code': code})

    @classmethod
    def reject(cls, reason: str) -> 'TransferMessage':
        return cls(type=TransferMessageType.REJECT, headers={'reason': reason})

    @classmethod
    def cancel(cls, reason: str = '') -> 'TransferMessage':
        return cls(type=TransferMessageType.CANCEL, headers={'reason': reason})


def _require_int(headers: Dict[str, Any], key: str) -> int:
    value = headers.get(key)
    # bool is an int subclass, but never a valid position
    if not isinstance(value, int) or isinstance(value, bool):
        raise ProtocolError(f"Field '{key}' must be an integer, got {value!r}")
    return value


def _require_str(headers: Dict[str, Any], key: str) -> str:
    value = headers.get(key, '')
    if not isinstance(value, str):
        raise ProtocolError(f"Field '{key}' must be a string, got {value!r}")
    return value


@dataclass(frozen=True)
class ChunkMessage:
    """One chunk plus the transfer metadata it carries on the wire."""
    index: int
    total: int
    file_name: str
    file_type: str
    chunk: bytes

    @property
    def is_empty_transfer(self) -> bool:
        """True for the marker announcing a zero-length file."""
        return self.total == 0 and self.index == 0 and not self.chunk

    def to_message(self) -> TransferMessage:
        """Wrap as a CHUNK transfer message."""
        return TransferMessage(
            type=TransferMessageType.CHUNK,
            headers={
                'index': self.index,
                'total': self.total,
                'fileName': self.file_name,
                'fileType': self.file_type,
            },
            data=self.chunk,
        )

    @classmethod
    def from_message(cls, message: TransferMessage) -> 'ChunkMessage':
        """
        Extract a chunk from a CHUNK message.

        Only field types are checked here; range checks belong to the
        reassembler, which knows the current transfer.
        """
        if message.type != TransferMessageType.CHUNK:
            raise ProtocolError(f"Expected CHUNK message, got {message.type.value}")

        return cls(
            index=_require_int(message.headers, 'index'),
            total=_require_int(message.headers, 'total'),
            file_name=_require_str(message.headers, 'fileName'),
            file_type=_require_str(message.headers, 'fileType'),
            chunk=message.data,
        )
