"""
File Sink

Design Decision: Output Strategy
================================

Options Considered:
1. Write chunks straight into the destination as they arrive
   - Low memory, but a half-written file looks like a real one
2. Write to a temp file, rename when complete
   - Destination only ever holds finished files
   - Rename is atomic on the same filesystem

Decision: Temp file + rename
- The sink is only called with a complete, reassembled file
- Existing files are never overwritten; a numbered name is picked instead

Storage Layout:
```
downloads/
├── photo.jpg
├── photo (1).jpg     # second transfer of the same name
└── .partial/         # temp files during the final write
```
"""

import uuid
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)

# Sink type: (data, file_name, file_type) -> anything
FileSinkFunc = Callable[[bytes, str, str], Awaitable[Any]]

FALLBACK_NAME = "download"


def safe_file_name(file_name: str) -> str:
    """Strip any directory parts a peer put in the name."""
    name = Path(file_name.replace('\\', '/')).name.strip()
    if name in ('', '.', '..'):
        return FALLBACK_NAME
    return name


class DirectorySink:
    """
    Writes finished files into an output directory.
    """

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)
        self.temp_dir = self.output_dir / ".partial"

        # Statistics
        self.files_written = 0
        self.bytes_written = 0

    def _unique_path(self, file_name: str) -> Path:
        """Pick a path that does not exist yet."""
        candidate = self.output_dir / file_name
        if not candidate.exists():
            return candidate

        stem, suffix = candidate.stem, candidate.suffix
        counter = 1
        while True:
            candidate = self.output_dir / f"{stem} ({counter}){suffix}"
            if not candidate.exists():
                return candidate
            counter += 1

    async def __call__(self, data: bytes, file_name: str, file_type: str) -> Path:
        """
        Write a complete file.

        Returns:
            Path of the written file
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

        output_path = self._unique_path(safe_file_name(file_name))
        temp_path = self.temp_dir / f"{uuid.uuid4().hex}.tmp"

        try:
            async with aiofiles.open(temp_path, 'wb') as f:
                await f.write(data)
            await aiofiles.os.rename(temp_path, output_path)
        except OSError:
            if temp_path.exists():
                await aiofiles.os.remove(temp_path)
            raise

        self.files_written += 1
        self.bytes_written += len(data)
        logger.info(f"Saved {output_path.name} ({len(data):,} bytes, {file_type or 'unknown type'})")

        return output_path

    def get_stats(self) -> dict:
        """Get sink statistics."""
        return {
            'output_dir': str(self.output_dir),
            'files_written': self.files_written,
            'bytes_written': self.bytes_written,
        }
