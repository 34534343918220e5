"""Byte-stream transport between the snapshot producer and the uploader.

A :class:`ChunkReader` worker thread cuts the producer's output into
fixed-size chunks and hands them to the uploading thread through a
bounded :class:`ChunkChannel`. The channel's capacity is the only flow
control: when the network falls behind, the worker blocks on a full
channel and stops reading, which in turn stalls the producer.
"""

import logging
import queue
import subprocess
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Optional, Protocol, Union

from ..exceptions import SnapshotSendError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Chunk:
    """A slice of the snapshot stream."""

    index: int
    """Position of the chunk in the stream, starting at 0"""

    data: bytes
    """Chunk contents"""

    def __len__(self) -> int:
        return len(self.data)


class _EndOfStream:
    """Marker sent through the channel after the last chunk."""

    def __init__(self, error: Optional[BaseException] = None):
        self.error = error


class ChunkChannel:
    """Bounded channel with blocking send and receive.

    ``send`` blocks while the channel is full and ``receive`` blocks while
    it is empty. Once the receiving side calls :meth:`close`, pending and
    future sends return False instead of blocking forever.
    """

    poll_interval: float = 0.1

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"Channel capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._queue: "queue.Queue[Union[Chunk, _EndOfStream]]" = queue.Queue(
            maxsize=capacity
        )
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def __len__(self) -> int:
        return self._queue.qsize()

    def send(self, item: Union[Chunk, _EndOfStream]) -> bool:
        """Put an item into the channel, waiting for room.

        Returns:
            True if the item was accepted, False if the channel was closed
        """
        while not self._closed.is_set():
            try:
                self._queue.put(item, timeout=self.poll_interval)
                return True
            except queue.Full:
                continue
        return False

    def receive(self) -> Union[Chunk, _EndOfStream]:
        """Take the next item, waiting until one is available."""
        return self._queue.get()

    def close(self) -> None:
        """Stop accepting items and drop whatever is still buffered."""
        self._closed.set()
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break


class ChunkReader:
    """Worker that reads a stream into chunks and sends them to a channel.

    At least one chunk is always produced, so an empty stream results in a
    single empty chunk rather than no chunk at all.
    """

    def __init__(self, stream: IO[bytes], channel: ChunkChannel, chunk_size: int):
        """Initialize chunk reader.

        Args:
            stream: Readable binary stream (producer output)
            channel: Channel receiving the chunks
            chunk_size: Target size of each chunk in bytes
        """
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")
        self.stream = stream
        self.channel = channel
        self.chunk_size = chunk_size
        self.chunks_read = 0
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start reading in a background thread."""
        self._thread = threading.Thread(
            target=self.run, name="pybtrsync-chunk-reader", daemon=True
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the background thread to finish."""
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        """Read the whole stream; called in the worker thread."""
        try:
            while True:
                data = self._read_chunk()
                if not data and self.chunks_read > 0:
                    break
                chunk = Chunk(index=self.chunks_read, data=data)
                self.chunks_read += 1
                if not self.channel.send(chunk):
                    logger.debug("Channel closed, reader stopping early")
                    return
                if len(data) < self.chunk_size:
                    break
        except Exception as e:
            logger.debug("Reading snapshot stream failed: %s", e)
            self.channel.send(_EndOfStream(error=e))
            return
        self.channel.send(_EndOfStream())

    def _read_chunk(self) -> bytes:
        """Read until the chunk is full or the stream ends."""
        parts = []
        remaining = self.chunk_size
        while remaining > 0:
            data = self.stream.read(remaining)
            if not data:
                break
            parts.append(data)
            remaining -= len(data)
        return b"".join(parts)


def iter_chunks(channel: ChunkChannel):
    """Yield chunks from a channel until the end-of-stream marker.

    Raises:
        Exception: Whatever error ended the reader, re-raised here
    """
    while True:
        item = channel.receive()
        if isinstance(item, _EndOfStream):
            if item.error is not None:
                raise item.error
            return
        yield item


class StreamSource(Protocol):
    """A producer of a snapshot byte stream."""

    def start(self) -> IO[bytes]:
        """Start producing and return the readable output stream."""
        ...

    def wait(self) -> None:
        """Wait for the producer to finish; raise if it failed."""
        ...

    def close(self) -> None:
        """Release resources, stopping the producer if still running."""
        ...


class LocalProcessSource:
    """Stream source backed by a local process's standard output."""

    def __init__(self, args: list[str], cwd: Optional[Path] = None):
        """Initialize process source.

        Args:
            args: Command line to run
            cwd: Working directory for the process
        """
        self.args = args
        self.cwd = cwd
        self._process: Optional[subprocess.Popen] = None
        self._stderr: Optional[IO[bytes]] = None

    def start(self) -> IO[bytes]:
        """Spawn the process.

        Raises:
            SnapshotSendError: If the process cannot be started
        """
        logger.debug("Running %s in %s", " ".join(self.args), self.cwd)
        # stderr goes to a file so a chatty producer never blocks on a full pipe
        self._stderr = tempfile.TemporaryFile()
        try:
            self._process = subprocess.Popen(
                self.args,
                cwd=self.cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=self._stderr,
            )
        except OSError as e:
            self._stderr.close()
            self._stderr = None
            raise SnapshotSendError(f"Failed to start {self.args[0]}: {e}") from e

        assert self._process.stdout is not None
        return self._process.stdout

    def wait(self) -> None:
        """Wait for the process to exit.

        Raises:
            SnapshotSendError: If the process exited with a non-zero status
        """
        if self._process is None:
            raise SnapshotSendError(f"{self.args[0]} was never started")

        if self._process.stdout is not None:
            self._process.stdout.close()
        returncode = self._process.wait()
        if returncode != 0:
            raise SnapshotSendError(
                f"{' '.join(self.args)} exited with status {returncode}",
                stderr=self._read_stderr(),
            )

    def close(self) -> None:
        """Kill the process if it is still running and release its pipes."""
        if self._process is not None and self._process.poll() is None:
            self._process.kill()
            self._process.wait()
        if self._process is not None and self._process.stdout is not None:
            self._process.stdout.close()
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None

    def _read_stderr(self) -> str:
        if self._stderr is None:
            return ""
        self._stderr.seek(0)
        return self._stderr.read().decode("utf-8", errors="replace")


def btrfs_send(
    snapshot: str, parent: Optional[str] = None, cwd: Optional[Path] = None
) -> LocalProcessSource:
    """Create a source running ``btrfs send`` for a snapshot.

    Args:
        snapshot: Snapshot directory name (relative to ``cwd``)
        parent: Parent snapshot name for an incremental stream
        cwd: Local snapshot root

    Returns:
        LocalProcessSource ready to be started
    """
    args = ["btrfs", "send"]
    if parent is not None:
        args += ["-p", parent]
    args.append(snapshot)
    return LocalProcessSource(args, cwd=cwd)
