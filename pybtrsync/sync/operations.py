"""Remote-side operations for a single snapshot transfer.

The remote root holds one staging directory while a transfer is in
flight. Chunks are written to it as numbered files, concatenated into
``btrfs receive`` once the stream is complete, and the directory is
removed again. A staging directory that still exists when a transfer
starts was left behind by an interrupted run.
"""

import logging
import shlex
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Protocol

from ..exceptions import SnapshotReceiveError, StagingError
from .transport import Chunk

logger = logging.getLogger(__name__)

# Digits in a chunk file name; fixed width keeps glob order equal to stream order
CHUNK_NAME_WIDTH = 8


@dataclass
class CommandResult:
    """Outcome of a remote command."""

    exit_status: int
    """Exit status of the command"""

    stdout: str
    """Captured standard output"""

    stderr: str
    """Captured standard error"""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class RemoteSession(Protocol):
    """What a transfer needs from a connection to the remote host."""

    def run(self, command: str) -> CommandResult:
        """Run a shell command and wait for it to exit."""
        ...

    def write_file(self, path: str, data: bytes) -> None:
        """Create or replace a remote file with the given contents."""
        ...


def chunk_file_name(index: int) -> str:
    """Return the staging file name for a chunk index.

    Examples:
        >>> chunk_file_name(0)
        '00000000'
        >>> chunk_file_name(42)
        '00000042'
    """
    if not 0 <= index < 10**CHUNK_NAME_WIDTH:
        raise ValueError(f"Chunk index out of range: {index}")
    return f"{index:0{CHUNK_NAME_WIDTH}d}"


class StagingArea:
    """The remote staging directory of the transfer in flight."""

    def __init__(
        self,
        session: RemoteSession,
        path: PurePosixPath,
    ):
        """Initialize staging area.

        Args:
            session: Connected remote session
            path: Staging directory, directly below the remote snapshot root
        """
        self.session = session
        self.path = path
        self.remote_root = path.parent

    @property
    def _quoted(self) -> str:
        return shlex.quote(str(self.path))

    def reset(self) -> bool:
        """Remove any leftover staging directory and create an empty one.

        Returns:
            True if a leftover directory from an interrupted run was removed

        Raises:
            StagingError: If the directory cannot be created
        """
        stale = self.session.run(f"rm -r -- {self._quoted}").ok
        if stale:
            logger.info(
                "Removed stale staging directory %s; "
                "a previous upload did not complete",
                self.path,
            )

        result = self.session.run(f"mkdir -- {self._quoted}")
        if not result.ok:
            raise StagingError(
                f"Failed to create staging directory {self.path}: "
                f"{result.stderr.strip()}"
            )
        return stale

    def write_chunk(self, chunk: Chunk) -> None:
        """Upload one chunk as a numbered staging file."""
        path = self.path / chunk_file_name(chunk.index)
        logger.debug(
            "Uploading chunk %d (%d bytes) to %s", chunk.index, len(chunk), path
        )
        self.session.write_file(str(path), chunk.data)

    def receive_command(self, snapshot: str) -> str:
        """Build the command that feeds the staged chunks to ``btrfs receive``.

        A writable subvolume named like the snapshot is what an interrupted
        receive leaves behind; it is deleted first so the receive can
        recreate it. A read-only one is a completed snapshot and is kept,
        which makes the receive fail instead of overwriting it.
        """
        root = shlex.quote(str(self.remote_root))
        target = shlex.quote(str(self.remote_root / snapshot))
        return (
            f"if [ -d {target} ] && "
            f'[ "$(btrfs property get -ts {target} ro)" = "ro=false" ]; '
            f"then btrfs subvolume delete {target} || exit 1; fi; "
            f"cat -- {self._quoted}/* | btrfs receive {root}"
        )

    def reassemble(self, snapshot: str) -> None:
        """Concatenate the staged chunks into ``btrfs receive``.

        Raises:
            SnapshotReceiveError: If the receiving command fails
        """
        result = self.session.run(self.receive_command(snapshot))
        if not result.ok:
            raise SnapshotReceiveError(
                f"btrfs receive of {snapshot} failed "
                f"with exit status {result.exit_status}",
                stdout=result.stdout,
                stderr=result.stderr,
            )

    def remove(self) -> None:
        """Delete the staging directory after a successful receive.

        Raises:
            StagingError: If the directory cannot be removed
        """
        result = self.session.run(f"rm -r -- {self._quoted}")
        if not result.ok:
            raise StagingError(
                f"Failed to remove staging directory {self.path}: "
                f"{result.stderr.strip()}"
            )
