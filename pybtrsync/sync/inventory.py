"""Snapshot inventories and the local snapshot scanner."""

import bisect
import logging
from collections.abc import Iterable, Iterator, Mapping
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..exceptions import ConfigError
from ..utils import parse_timestamp, path_as_utf8

logger = logging.getLogger(__name__)


class Inventory(Mapping):
    """Snapshots known on one side, keyed by timestamp in ascending order.

    Values are the snapshot identifiers, i.e. the directory names the
    timestamps were parsed from. An inventory never changes after it has
    been built.
    """

    def __init__(self, entries: Iterable[tuple[datetime, str]] = ()):
        """Initialize inventory.

        Args:
            entries: (timestamp, identifier) pairs in any order. A later
                pair with an equal timestamp replaces an earlier one.
        """
        items: dict[datetime, str] = {}
        for timestamp, identifier in entries:
            items[timestamp] = identifier
        self._keys: list[datetime] = sorted(items)
        self._items = {key: items[key] for key in self._keys}

    def __getitem__(self, timestamp: datetime) -> str:
        return self._items[timestamp]

    def __iter__(self) -> Iterator[datetime]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        return f"Inventory({list(self._items.values())!r})"

    def before(self, timestamp: datetime) -> Optional[datetime]:
        """Return the latest timestamp strictly earlier than ``timestamp``."""
        pos = bisect.bisect_left(self._keys, timestamp)
        if pos == 0:
            return None
        return self._keys[pos - 1]


def scan_local(root: Path) -> Inventory:
    """List the snapshots stored under a local directory.

    Only directories whose names parse as timestamps are considered;
    anything else (plain files, other names, names that are not valid
    UTF-8) is skipped.

    Args:
        root: Local snapshot root

    Returns:
        Inventory of local snapshots

    Raises:
        ConfigError: If the root does not exist or is not a directory
    """
    if not root.exists():
        raise ConfigError(f"Local directory does not exist: {root}")
    if not root.is_dir():
        raise ConfigError(f"Local path is not a directory: {root}")

    entries = []
    for item in root.iterdir():
        if not item.is_dir():
            continue
        try:
            name = path_as_utf8(item.name)
            timestamp = parse_timestamp(name)
        except ValueError:
            logger.debug("Skipping non-snapshot entry: %r", item.name)
            continue
        entries.append((timestamp, name))

    inventory = Inventory(entries)
    logger.debug("Found %d local snapshot(s) in %s", len(inventory), root)
    return inventory
