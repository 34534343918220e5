"""Tests for chunked streaming between producer and uploader."""

import io
import sys
import threading
import time
from pathlib import Path

import pytest

from pybtrsync.exceptions import SnapshotSendError
from pybtrsync.sync.transport import (
    Chunk,
    ChunkChannel,
    ChunkReader,
    LocalProcessSource,
    btrfs_send,
    iter_chunks,
)


def _read_all(data: bytes, chunk_size: int, capacity: int = 2) -> list[Chunk]:
    channel = ChunkChannel(capacity)
    reader = ChunkReader(io.BytesIO(data), channel, chunk_size)
    reader.start()
    chunks = list(iter_chunks(channel))
    reader.join(timeout=5)
    return chunks


class _TrickleStream(io.RawIOBase):
    """Stream that returns at most a few bytes per read, like a pipe."""

    def __init__(self, data: bytes, step: int):
        self._data = data
        self._pos = 0
        self._step = step

    def readable(self):
        return True

    def read(self, size=-1):
        end = self._pos + min(self._step, size if size >= 0 else self._step)
        piece = self._data[self._pos : end]
        self._pos = end
        return piece


class _FailingStream(io.RawIOBase):
    def readable(self):
        return True

    def read(self, size=-1):
        raise OSError("broken pipe")


class TestChunkReader:
    """Tests for ChunkReader."""

    @pytest.mark.parametrize(
        "size", [1, 3, 4, 5, 8, 9, 37], ids=lambda n: f"{n}-bytes"
    )
    def test_concatenation_reproduces_stream(self, size):
        data = bytes(range(size))

        chunks = _read_all(data, chunk_size=4)

        assert b"".join(c.data for c in chunks) == data
        assert [c.index for c in chunks] == list(range(len(chunks)))
        assert all(len(c) == 4 for c in chunks[:-1])
        assert 0 < len(chunks[-1]) <= 4

    def test_empty_stream_yields_single_empty_chunk(self):
        chunks = _read_all(b"", chunk_size=4)
        assert chunks == [Chunk(index=0, data=b"")]

    def test_exact_multiple_has_no_trailing_empty_chunk(self):
        chunks = _read_all(b"x" * 12, chunk_size=4)
        assert [len(c) for c in chunks] == [4, 4, 4]

    def test_short_reads_fill_whole_chunks(self):
        data = bytes(range(20))
        channel = ChunkChannel(10)
        reader = ChunkReader(_TrickleStream(data, step=3), channel, chunk_size=8)

        reader.run()
        chunks = list(iter_chunks(channel))

        assert [len(c) for c in chunks] == [8, 8, 4]
        assert b"".join(c.data for c in chunks) == data

    def test_read_error_is_raised_by_consumer(self):
        channel = ChunkChannel(2)
        reader = ChunkReader(_FailingStream(), channel, chunk_size=4)
        reader.start()

        with pytest.raises(OSError, match="broken pipe"):
            list(iter_chunks(channel))
        reader.join(timeout=5)

    def test_stops_when_channel_closed(self):
        """A closed channel makes the worker stop early without error."""
        channel = ChunkChannel(1)
        channel.poll_interval = 0.01
        reader = ChunkReader(io.BytesIO(b"y" * 100), channel, chunk_size=4)
        reader.start()

        first = channel.receive()
        channel.close()
        reader.join(timeout=5)

        assert isinstance(first, Chunk)
        assert not reader._thread.is_alive()
        assert reader.chunks_read < 25

    def test_backpressure_bounds_chunks_in_memory(self):
        """The worker never holds more than capacity + 1 chunks unconsumed."""
        capacity = 2
        channel = ChunkChannel(capacity)
        reader = ChunkReader(io.BytesIO(b"z" * 400), channel, chunk_size=4)
        reader.start()

        deadline = time.monotonic() + 5
        while len(channel) < capacity and time.monotonic() < deadline:
            time.sleep(0.01)
        time.sleep(0.2)

        # capacity chunks queued plus one blocked in send()
        assert reader.chunks_read <= capacity + 1

        consumed = 0
        for chunk in iter_chunks(channel):
            consumed += 1
            assert reader.chunks_read - consumed <= capacity + 1
        reader.join(timeout=5)
        assert consumed == 100

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            ChunkReader(io.BytesIO(b""), ChunkChannel(1), chunk_size=0)


class TestChunkChannel:
    """Tests for ChunkChannel."""

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ChunkChannel(0)

    def test_send_blocks_when_full(self):
        channel = ChunkChannel(1)
        channel.poll_interval = 0.01
        assert channel.send(Chunk(0, b"a"))

        accepted = []
        sender = threading.Thread(
            target=lambda: accepted.append(channel.send(Chunk(1, b"b")))
        )
        sender.start()
        time.sleep(0.1)
        assert accepted == []

        assert channel.receive() == Chunk(0, b"a")
        sender.join(timeout=5)
        assert accepted == [True]
        assert channel.receive() == Chunk(1, b"b")

    def test_send_after_close_returns_false(self):
        channel = ChunkChannel(1)
        channel.close()
        assert channel.closed
        assert channel.send(Chunk(0, b"a")) is False

    def test_close_drops_buffered_chunks(self):
        channel = ChunkChannel(3)
        channel.send(Chunk(0, b"a"))
        channel.send(Chunk(1, b"b"))
        channel.close()
        assert len(channel) == 0


class TestLocalProcessSource:
    """Tests for LocalProcessSource."""

    def test_streams_stdout(self):
        source = LocalProcessSource(
            [sys.executable, "-c", "import sys; sys.stdout.buffer.write(b'abc' * 1000)"]
        )
        stream = source.start()
        try:
            assert stream.read() == b"abc" * 1000
            source.wait()
        finally:
            source.close()

    def test_nonzero_exit_reports_stderr(self):
        source = LocalProcessSource(
            [
                sys.executable,
                "-c",
                "import sys; sys.stderr.write('ERROR: not a subvolume'); sys.exit(3)",
            ]
        )
        stream = source.start()
        try:
            stream.read()
            with pytest.raises(SnapshotSendError, match="not a subvolume") as exc_info:
                source.wait()
        finally:
            source.close()
        assert "status 3" in str(exc_info.value)
        assert exc_info.value.stderr == "ERROR: not a subvolume"

    def test_spawn_failure(self, tmp_path):
        source = LocalProcessSource([str(tmp_path / "no-such-binary")])
        with pytest.raises(SnapshotSendError, match="Failed to start"):
            source.start()

    def test_close_kills_running_process(self):
        source = LocalProcessSource(
            [sys.executable, "-c", "import time; time.sleep(60)"]
        )
        source.start()
        source.close()
        assert source._process.poll() is not None

    def test_wait_without_start(self):
        with pytest.raises(SnapshotSendError, match="never started"):
            LocalProcessSource(["true"]).wait()


class TestBtrfsSend:
    """Tests for the btrfs send command line."""

    def test_full(self, tmp_path):
        source = btrfs_send("2021-01-01T00:00:00+00:00", cwd=tmp_path)
        assert source.args == ["btrfs", "send", "2021-01-01T00:00:00+00:00"]
        assert source.cwd == tmp_path

    def test_incremental(self):
        source = btrfs_send("b", parent="a", cwd=Path("/snapshots"))
        assert source.args == ["btrfs", "send", "-p", "a", "b"]
