"""Snapshot sync core: inventories, planning and the transfer engine."""

from .comparator import Presence, PresenceComparator, classify_presence
from .engine import SyncEngine, TransferResult
from .inventory import Inventory, scan_local
from .operations import CommandResult, RemoteSession, StagingArea, chunk_file_name
from .planner import DeltaFrom, Full, Plan, Transfer, TransferKind, plan_transfers
from .progress import TransferProgressEvent, TransferProgressInfo
from .transport import (
    Chunk,
    ChunkChannel,
    ChunkReader,
    LocalProcessSource,
    StreamSource,
    btrfs_send,
    iter_chunks,
)

__all__ = [
    "SyncEngine",
    "TransferResult",
    "Inventory",
    "scan_local",
    "Presence",
    "classify_presence",
    "PresenceComparator",
    "Plan",
    "Transfer",
    "TransferKind",
    "Full",
    "DeltaFrom",
    "plan_transfers",
    "CommandResult",
    "RemoteSession",
    "StagingArea",
    "chunk_file_name",
    "TransferProgressEvent",
    "TransferProgressInfo",
    "Chunk",
    "ChunkChannel",
    "ChunkReader",
    "LocalProcessSource",
    "StreamSource",
    "btrfs_send",
    "iter_chunks",
]
