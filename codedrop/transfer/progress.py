"""
Transfer Progress

Progress is derived from chunk counts: sent/total on the sender,
filled/total on the receiver. It never goes backwards within one transfer.
"""

import time
from typing import Callable
from dataclasses import dataclass, field

# Progress sink: receives a percentage in [0, 100]
ProgressCallback = Callable[[float], None]


@dataclass
class TransferProgress:
    """Track one side of a transfer."""
    role: str  # 'sender' or 'receiver'
    total_chunks: int = 0
    done_chunks: int = 0
    bytes_done: int = 0
    file_name: str = ''
    file_size: int = 0
    phase: str = 'waiting'  # 'waiting', 'transferring', 'complete', 'aborted'
    start_time: float = field(default_factory=time.time)

    @property
    def progress(self) -> float:
        """Progress as 0.0 to 1.0."""
        if self.total_chunks == 0:
            return 1.0 if self.phase == 'complete' else 0.0
        return min(1.0, self.done_chunks / self.total_chunks)

    @property
    def progress_percent(self) -> float:
        """Progress as percentage."""
        return self.progress * 100

    @property
    def elapsed_seconds(self) -> float:
        """Time elapsed since start."""
        return time.time() - self.start_time

    @property
    def speed_bytes_per_sec(self) -> float:
        """Throughput in bytes/second."""
        elapsed = self.elapsed_seconds
        if elapsed <= 0:
            return 0
        return self.bytes_done / elapsed

    def record(self, nbytes: int):
        """Count one more finished chunk."""
        self.done_chunks += 1
        self.bytes_done += nbytes

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'role': self.role,
            'total_chunks': self.total_chunks,
            'done_chunks': self.done_chunks,
            'bytes_done': self.bytes_done,
            'progress_percent': self.progress_percent,
            'speed_bytes_per_sec': self.speed_bytes_per_sec,
            'elapsed_seconds': self.elapsed_seconds,
            'phase': self.phase,
            'file_name': self.file_name,
            'file_size': self.file_size,
        }
