"""Sync engine: executes a transfer plan against the remote host."""

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from ..config import SyncConfig
from ..exceptions import PlanError, SnapshotSendError
from ..output import OutputFormatter
from ..utils import format_duration, format_size, format_timestamp
from .operations import RemoteSession, StagingArea
from .planner import Plan, Transfer
from .progress import ProgressCallback, TransferProgressEvent, TransferProgressInfo
from .transport import ChunkChannel, ChunkReader, StreamSource, btrfs_send, iter_chunks

logger = logging.getLogger(__name__)

SourceFactory = Callable[[str, Optional[str], Path], StreamSource]


@dataclass
class TransferResult:
    """Outcome of one completed transfer."""

    snapshot: str
    parent: Optional[str]
    bytes_sent: int
    chunks: int
    elapsed: float
    """Seconds from producer start until the staging directory was removed"""
    stale_staging: bool = False
    """True if a leftover staging directory had to be cleaned up first"""


class SyncEngine:
    """Sends the snapshots of a plan, one after another.

    Each transfer streams ``btrfs send`` output in chunks into a remote
    staging directory, then replays the staged chunks into
    ``btrfs receive``. Transfers run strictly in plan order because each
    delta needs its parent on the remote side. The first failure aborts
    the run; completed transfers stay in place.
    """

    def __init__(
        self,
        session: RemoteSession,
        config: SyncConfig,
        output: Optional[OutputFormatter] = None,
        source_factory: SourceFactory = btrfs_send,
    ):
        """Initialize sync engine.

        Args:
            session: Connected remote session
            config: Run configuration
            output: Output formatter for status messages
            source_factory: Creates the snapshot stream source for
                (snapshot, parent, local_root)
        """
        self.session = session
        self.config = config
        self.output = output or OutputFormatter(quiet=True)
        self.source_factory = source_factory

    def execute(
        self,
        plan: Plan,
        local: Mapping[datetime, str],
        remote: Mapping[datetime, str],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> dict:
        """Run every transfer of a plan in order.

        Args:
            plan: Non-empty transfer plan
            local: Local inventory
            remote: Remote inventory
            progress_callback: Optional callback receiving progress events

        Returns:
            Dictionary with statistics: number of transfers, bytes sent,
            elapsed seconds and the per-transfer results

        Raises:
            PlanError: If the plan is empty or references unknown snapshots
            TransferError: If a transfer fails
            RemoteError: If the remote session fails
        """
        if plan.is_empty:
            raise PlanError("Nothing to transfer")

        start_time = time.monotonic()
        results: list[TransferResult] = []
        total_bytes = 0

        for step, transfer in enumerate(plan, start=1):
            result = self._transfer(
                transfer,
                local,
                remote,
                step=step,
                total_steps=len(plan),
                bytes_before=total_bytes,
                progress_callback=progress_callback,
            )
            results.append(result)
            total_bytes += result.bytes_sent

        elapsed = time.monotonic() - start_time
        logger.info(
            "Transferred %d snapshot(s), %d bytes in %s",
            len(results),
            total_bytes,
            format_duration(elapsed),
        )
        return {
            "transfers": len(results),
            "bytes": total_bytes,
            "elapsed": elapsed,
            "results": results,
        }

    def resolve(
        self,
        transfer: Transfer,
        local: Mapping[datetime, str],
        remote: Mapping[datetime, str],
    ) -> tuple[str, Optional[str]]:
        """Find the snapshot and parent names for a transfer.

        The snapshot itself must exist locally. The parent is looked up
        locally first and then remotely; names are derived from timestamps,
        so they are the same on both sides.

        Returns:
            (snapshot name, parent name or None)

        Raises:
            PlanError: If a name cannot be found
        """
        snapshot = local.get(transfer.timestamp)
        if snapshot is None:
            raise PlanError(
                f"Snapshot {format_timestamp(transfer.timestamp)} "
                "does not exist locally"
            )

        parent_ts = transfer.parent
        if parent_ts is None:
            return snapshot, None

        parent = local.get(parent_ts)
        if parent is None:
            parent = remote.get(parent_ts)
            if parent is not None:
                logger.debug("Parent %s only known on the remote side", parent)
        if parent is None:
            raise PlanError(
                f"Parent {format_timestamp(parent_ts)} of {snapshot} "
                "is unknown on both sides"
            )
        return snapshot, parent

    def _transfer(
        self,
        transfer: Transfer,
        local: Mapping[datetime, str],
        remote: Mapping[datetime, str],
        step: int,
        total_steps: int,
        bytes_before: int,
        progress_callback: Optional[ProgressCallback],
    ) -> TransferResult:
        """Send a single snapshot through the staging directory."""
        snapshot, parent = self.resolve(transfer, local, remote)

        def notify(event: TransferProgressEvent, step_bytes: int, chunks: int):
            if progress_callback is not None:
                progress_callback(
                    TransferProgressInfo(
                        event=event,
                        snapshot=snapshot,
                        parent=parent,
                        step=step,
                        total_steps=total_steps,
                        step_bytes=step_bytes,
                        total_bytes=bytes_before + step_bytes,
                        chunks=chunks,
                    )
                )

        if parent is None:
            logger.info("[%s] transmitting full snapshot", snapshot)
        else:
            logger.info("[%s] transmitting delta from %s", snapshot, parent)
        notify(TransferProgressEvent.STEP_START, 0, 0)

        staging = StagingArea(self.session, self.config.staging_path)
        stale = staging.reset()
        if stale:
            self.output.warning(
                f"Removed leftover staging directory {staging.path} "
                "from an interrupted run"
            )

        source = self.source_factory(snapshot, parent, self.config.local_root)
        start_time = time.monotonic()
        stream = source.start()

        channel = ChunkChannel(self.config.queue_capacity)
        reader = ChunkReader(stream, channel, self.config.chunk_size)
        bytes_sent = 0
        chunks = 0

        try:
            reader.start()
            try:
                received = iter_chunks(channel)
                while True:
                    # only errors of the reader count as a failed producer
                    try:
                        chunk = next(received, None)
                    except OSError as e:
                        raise SnapshotSendError(
                            f"Reading the snapshot stream of {snapshot} failed: {e}"
                        ) from e
                    if chunk is None:
                        break
                    staging.write_chunk(chunk)
                    bytes_sent += len(chunk)
                    chunks += 1
                    notify(TransferProgressEvent.CHUNK_UPLOADED, bytes_sent, chunks)
            finally:
                channel.close()
            reader.join()

            staging.reassemble(snapshot)
            source.wait()
        finally:
            source.close()
            reader.join()

        staging.remove()

        elapsed = time.monotonic() - start_time
        logger.info(
            "[%s] sent %d bytes in %s", snapshot, bytes_sent, format_duration(elapsed)
        )
        self.output.success(
            f"[{snapshot}] sent {format_size(bytes_sent)} "
            f"in {format_duration(elapsed)}"
        )
        notify(TransferProgressEvent.STEP_COMPLETE, bytes_sent, chunks)

        return TransferResult(
            snapshot=snapshot,
            parent=parent,
            bytes_sent=bytes_sent,
            chunks=chunks,
            elapsed=elapsed,
            stale_staging=stale,
        )
