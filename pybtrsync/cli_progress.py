"""CLI progress display for snapshot transfers.

This module provides a Rich-based progress display fed by the progress
events of the sync engine.
"""

from typing import Optional

from rich.progress import (
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)

from .sync.progress import TransferProgressEvent, TransferProgressInfo


class TransferProgressDisplay:
    """Rich-based progress display for a running plan.

    The size of a snapshot stream is not known in advance, so the display
    shows bytes sent, throughput and elapsed time for the current snapshot
    rather than a percentage.
    """

    def __init__(self) -> None:
        """Initialize the progress display."""
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    def handle_event(self, info: TransferProgressInfo) -> None:
        """Handle a progress event from the engine.

        Args:
            info: Progress information
        """
        if self._progress is None:
            return

        if info.event == TransferProgressEvent.STEP_START:
            if self._task is not None:
                self._progress.remove_task(self._task)
            self._task = self._progress.add_task(
                f"[{info.step}/{info.total_steps}] {info.snapshot}",
                total=None,
                chunks=0,
            )

        elif info.event == TransferProgressEvent.CHUNK_UPLOADED:
            if self._task is not None:
                self._progress.update(
                    self._task, completed=info.step_bytes, chunks=info.chunks
                )

        elif info.event == TransferProgressEvent.STEP_COMPLETE:
            if self._task is not None:
                # Freeze the bar at its final size
                self._progress.update(
                    self._task,
                    total=info.step_bytes,
                    completed=info.step_bytes,
                    chunks=info.chunks,
                )
                self._progress.stop_task(self._task)

    def __enter__(self) -> "TransferProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            DownloadColumn(),
            TextColumn("[cyan]{task.fields[chunks]} chunk(s)"),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            refresh_per_second=4,
        )
        self._progress.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None


def run_backup_with_progress(engine, plan, local, remote, show_progress: bool = True):
    """Execute a plan, rendering a Rich progress display while it runs.

    Args:
        engine: SyncEngine instance
        plan: Plan to execute
        local: Local inventory
        remote: Remote inventory
        show_progress: If False, run without a progress display

    Returns:
        Dictionary with sync statistics
    """
    if not show_progress:
        return engine.execute(plan, local, remote)

    with TransferProgressDisplay() as display:
        return engine.execute(
            plan, local, remote, progress_callback=display.handle_event
        )
