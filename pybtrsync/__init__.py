"""pybtrsync - mirror btrfs snapshots to a remote host over SSH."""

__version__ = "0.1.0"

from .config import RemoteSpec, SyncConfig
from .exceptions import (
    AuthenticationError,
    ConfigError,
    InventoryError,
    PlanError,
    PyBtrSyncError,
    RemoteCommandError,
    RemoteConnectionError,
    RemoteError,
    SnapshotReceiveError,
    SnapshotSendError,
    StagingError,
    TransferError,
)
from .remote import SSHSession, list_remote
from .sync import Inventory, SyncEngine, classify_presence, plan_transfers, scan_local

__all__ = [
    "__version__",
    "RemoteSpec",
    "SyncConfig",
    "SSHSession",
    "list_remote",
    "Inventory",
    "SyncEngine",
    "classify_presence",
    "plan_transfers",
    "scan_local",
    "PyBtrSyncError",
    "AuthenticationError",
    "ConfigError",
    "InventoryError",
    "PlanError",
    "RemoteCommandError",
    "RemoteConnectionError",
    "RemoteError",
    "SnapshotReceiveError",
    "SnapshotSendError",
    "StagingError",
    "TransferError",
]
