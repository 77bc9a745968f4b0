from __future__ import annotations

import os

import pytest

from codedrop.file.chunker import CHUNK_SIZE, FileChunker


def test_default_chunk_size():
    assert CHUNK_SIZE == 16384
    assert FileChunker().chunk_size == 16384


def test_40000_bytes_gives_three_chunks():
    data = os.urandom(40000)
    chunks = FileChunker(16384).split(data)

    assert [c.index for c in chunks] == [0, 1, 2]
    assert [c.size for c in chunks] == [16384, 16384, 7232]
    assert all(c.total == 3 for c in chunks)


@pytest.mark.parametrize("chunk_size", [1, 7, 1000, 16384])
@pytest.mark.parametrize("multiple,extra", [(0, 1), (1, 0), (1, 1), (3, 5), (300, 0), (300, 11)])
def test_chunks_cover_data_exactly(chunk_size, multiple, extra):
    length = chunk_size * multiple + extra
    data = os.urandom(length)
    chunker = FileChunker(chunk_size)

    chunks = chunker.split(data)
    expected_total = -(-length // chunk_size)

    assert len(chunks) == expected_total == chunker.get_chunk_count(length)
    assert [c.index for c in chunks] == list(range(expected_total))
    for chunk in chunks[:-1]:
        assert chunk.size == chunk_size
    assert chunks[-1].size == length - chunk_size * (expected_total - 1)
    assert b"".join(c.payload for c in chunks) == data


def test_empty_data_gives_no_chunks():
    chunker = FileChunker(16)
    assert chunker.split(b"") == []
    assert chunker.get_chunk_count(0) == 0


def test_chunking_is_restartable():
    data = os.urandom(5000)
    chunker = FileChunker(512)
    assert chunker.split(data) == chunker.split(data)
    assert list(chunker.iter_chunks(data)) == chunker.split(data)


def test_chunk_bounds():
    chunker = FileChunker(100)
    assert chunker.get_chunk_bounds(0, 250) == (0, 100)
    assert chunker.get_chunk_bounds(2, 250) == (200, 50)
    with pytest.raises(IndexError):
        chunker.get_chunk_bounds(3, 250)
    with pytest.raises(IndexError):
        chunker.get_chunk_bounds(-1, 250)


@pytest.mark.parametrize("size", [0, -16])
def test_rejects_non_positive_chunk_size(size):
    with pytest.raises(ValueError):
        FileChunker(size)
