"""
File Module - Chunking, Loading, and Saving

This module handles file operations on both ends of a transfer.
"""

from .chunker import Chunk, FileChunker, CHUNK_SIZE
from .source import FileSource, guess_mime_type
from .sink import DirectorySink, FileSinkFunc, safe_file_name

__all__ = [
    'Chunk',
    'FileChunker',
    'CHUNK_SIZE',
    'FileSource',
    'guess_mime_type',
    'DirectorySink',
    'FileSinkFunc',
    'safe_file_name',
]
