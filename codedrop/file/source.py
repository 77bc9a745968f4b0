"""
File Source

Loads the file to send into memory with a single asynchronous read.
"""

import logging
import mimetypes
from pathlib import Path
from dataclasses import dataclass

import aiofiles

from ..transfer.errors import FileReadError

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class FileSource:
    """A file's name, advisory content type and full contents."""
    name: str
    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    async def from_path(cls, file_path: Path) -> 'FileSource':
        """
        Read a whole file.

        Raises:
            FileReadError: if the file is missing, unreadable, or changed
                size while being read
        """
        file_path = Path(file_path)

        try:
            expected_size = file_path.stat().st_size
            async with aiofiles.open(file_path, 'rb') as f:
                data = await f.read()
        except OSError as e:
            raise FileReadError(f"Cannot read {file_path}: {e}") from e

        if len(data) != expected_size:
            raise FileReadError(
                f"Short read on {file_path}: expected {expected_size} bytes, "
                f"got {len(data)}"
            )

        logger.debug(f"Loaded {file_path.name} ({len(data):,} bytes)")
        return cls(
            name=file_path.name,
            data=data,
            mime_type=guess_mime_type(file_path),
        )


def guess_mime_type(file_path: Path) -> str:
    """Guess MIME type from file extension."""
    mime_type, _ = mimetypes.guess_type(str(file_path))
    return mime_type or DEFAULT_MIME_TYPE
