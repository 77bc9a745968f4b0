"""
File Chunker

Design Decision: Chunk Size
===========================

Options Considered:
| Size    | Pros                          | Cons                            |
|---------|-------------------------------|---------------------------------|
| 4KB     | Very smooth progress          | Per-message overhead dominates  |
| 16KB    | Safe message size for peer    | More messages for big files     |
|         | data channels, smooth progress|                                 |
| 64KB    | Fewer messages                | Some channels fragment or drop  |
| 256KB   | Minimal overhead              | Coarse progress, large buffers  |

Decision: 16KB (16,384 bytes)
- Fits comfortably in a single channel message everywhere
- Progress updates stay fine-grained for typical file sizes
- Configurable per transfer if a channel handles more

Chunking Strategy: Fixed-Size, whole file in memory
- The file is read once, completely, before chunking starts
- Chunk i covers bytes [i * size, (i + 1) * size)
- Deterministic: chunking the same bytes twice gives the same chunks
- An empty file gives zero chunks
"""

from typing import Iterator, List, Tuple
from dataclasses import dataclass

# Chunk size: 16KB
CHUNK_SIZE = 16 * 1024  # 16,384 bytes


@dataclass(frozen=True)
class Chunk:
    """One ordered fragment of a file."""
    index: int
    total: int
    payload: bytes

    @property
    def size(self) -> int:
        return len(self.payload)


class FileChunker:
    """
    Splits file contents into fixed-size, densely indexed chunks.
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError(f"Chunk size must be >= 1, got {chunk_size}")
        self.chunk_size = chunk_size

    def get_chunk_count(self, file_size: int) -> int:
        """Calculate number of chunks for a file of given size."""
        return (file_size + self.chunk_size - 1) // self.chunk_size

    def get_chunk_bounds(self, chunk_index: int, file_size: int) -> Tuple[int, int]:
        """
        Get byte range for a specific chunk.

        Returns:
            (start_offset, length) tuple
        """
        chunk_count = self.get_chunk_count(file_size)
        if chunk_index < 0 or chunk_index >= chunk_count:
            raise IndexError(f"Chunk {chunk_index} out of range [0, {chunk_count})")

        start = chunk_index * self.chunk_size
        length = min(self.chunk_size, file_size - start)
        return start, length

    def iter_chunks(self, data: bytes) -> Iterator[Chunk]:
        """
        Split data into chunks, in ascending index order.

        Yields:
            Chunk objects; none at all for empty data
        """
        view = memoryview(data)
        chunk_count = self.get_chunk_count(len(data))

        for chunk_index in range(chunk_count):
            start = chunk_index * self.chunk_size
            yield Chunk(
                index=chunk_index,
                total=chunk_count,
                payload=bytes(view[start:start + self.chunk_size]),
            )

    def split(self, data: bytes) -> List[Chunk]:
        """Split data into a list of chunks."""
        return list(self.iter_chunks(data))
