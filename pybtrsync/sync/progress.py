"""Progress events emitted by the sync engine."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class TransferProgressEvent(str, Enum):
    """Kinds of progress events."""

    STEP_START = "step_start"
    """A snapshot transfer is starting"""

    CHUNK_UPLOADED = "chunk_uploaded"
    """A chunk was copied to the staging directory"""

    STEP_COMPLETE = "step_complete"
    """A snapshot was received on the remote side"""


@dataclass
class TransferProgressInfo:
    """State of the running plan at the time of an event."""

    event: TransferProgressEvent
    snapshot: str
    parent: Optional[str]
    step: int
    """1-based position of the current transfer in the plan"""
    total_steps: int
    step_bytes: int = 0
    """Bytes uploaded for the current snapshot"""
    total_bytes: int = 0
    """Bytes uploaded since the plan started"""
    chunks: int = 0
    """Chunks uploaded for the current snapshot"""


ProgressCallback = Callable[[TransferProgressInfo], None]
