"""
Transfer Errors

Failure taxonomy shared by the sender and receiver sides:

| Error           | Fatal? | Effect                                         |
|-----------------|--------|------------------------------------------------|
| FileReadError   | yes    | Transfer never starts                          |
| ProtocolError   | no     | Offending message is dropped, transfer goes on |
| FramingError    | yes    | Stream is out of sync, channel is closed       |
| TransferAborted | yes    | In-flight transfer ends, partial state dropped |
| DuplicateChunk  | no     | Repeated index is ignored                      |
"""


class TransferError(Exception):
    """Base class for all transfer failures."""


class FileReadError(TransferError, OSError):
    """The source file could not be read to completion."""


class ProtocolError(TransferError):
    """A malformed or out-of-range message was received."""


class FramingError(ProtocolError):
    """The byte stream lost its message boundaries; the channel cannot continue."""


class TransferAborted(TransferError):
    """The channel closed or the transfer was cancelled mid-flight."""


class DuplicateChunk(TransferError):
    """A chunk index that is already filled was delivered again."""

    def __init__(self, index: int):
        super().__init__(f"Chunk {index} already received")
        self.index = index
