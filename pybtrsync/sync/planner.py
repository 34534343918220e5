"""Transfer planning: which snapshots to send, and relative to what.

A delta can only be received on top of a parent that already exists,
byte-identical, on the destination. The planner therefore chains the
pending snapshots so that each one depends on the snapshot sent right
before it, and the first one on the newest local snapshot that the
remote side already has.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional, Union

from ..utils import format_timestamp
from .inventory import Inventory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Full:
    """Send the whole snapshot."""

    def __str__(self) -> str:
        return "full"


@dataclass(frozen=True)
class DeltaFrom:
    """Send only the difference to an existing parent snapshot."""

    parent: datetime
    """Timestamp of the parent snapshot"""

    def __str__(self) -> str:
        return f"delta from {format_timestamp(self.parent)}"


TransferKind = Union[Full, DeltaFrom]


@dataclass(frozen=True)
class Transfer:
    """One step of a plan."""

    timestamp: datetime
    """Snapshot to send"""

    kind: TransferKind
    """Full or incremental transfer"""

    @property
    def parent(self) -> Optional[datetime]:
        """Parent timestamp for a delta, None for a full transfer."""
        if isinstance(self.kind, DeltaFrom):
            return self.kind.parent
        return None

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary."""
        parent = self.parent
        return {
            "timestamp": format_timestamp(self.timestamp),
            "kind": "full" if parent is None else "delta",
            "parent": format_timestamp(parent) if parent is not None else None,
        }


@dataclass
class Plan:
    """Ordered chain of transfers.

    Steps must be executed in order: every delta references either the
    previous step's snapshot or ``last_common``.
    """

    transfers: list[Transfer] = field(default_factory=list)
    """Transfers, earliest snapshot first"""

    last_common: Optional[datetime] = None
    """Newest local snapshot assumed present on the remote side"""

    @property
    def is_empty(self) -> bool:
        """True if there is nothing to transfer."""
        return not self.transfers

    def __len__(self) -> int:
        return len(self.transfers)

    def __iter__(self) -> Iterator[Transfer]:
        return iter(self.transfers)

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary."""
        return {
            "last_common": (
                format_timestamp(self.last_common)
                if self.last_common is not None
                else None
            ),
            "transfers": [transfer.to_dict() for transfer in self.transfers],
        }


def plan_transfers(
    local: Inventory,
    remote: Inventory,
    include_all: bool = False,
) -> Plan:
    """Compute the transfers needed to mirror local snapshots to the remote.

    By default only the newest run of local snapshots missing on the remote
    is planned: scanning from newest to oldest, planning stops at the first
    snapshot the remote already has. Older gaps are left alone.

    Args:
        local: Local inventory
        remote: Remote inventory
        include_all: Plan every local snapshot missing on the remote,
            not just the newest run

    Returns:
        Plan (empty if nothing needs to be sent)
    """
    newest_first = reversed(list(local))
    if include_all:
        pending = [ts for ts in newest_first if ts not in remote]
    else:
        pending = []
        for ts in newest_first:
            if ts in remote:
                break
            pending.append(ts)
    pending.reverse()

    if not pending:
        logger.debug("No local snapshots missing on the remote")
        return Plan()

    head = pending[0]
    last_common = local.before(head)
    head_kind: TransferKind = Full() if last_common is None else DeltaFrom(last_common)

    transfers = [Transfer(head, head_kind)]
    for parent, child in zip(pending, pending[1:]):
        transfers.append(Transfer(child, DeltaFrom(parent)))

    logger.debug(
        "Planned %d transfer(s), last common snapshot: %s",
        len(transfers),
        last_common,
    )
    return Plan(transfers=transfers, last_common=last_common)
