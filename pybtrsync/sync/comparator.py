"""Snapshot presence classification for listing."""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum

from ..utils import format_timestamp


class Presence(str, Enum):
    """Where a snapshot exists."""

    LOCAL_ONLY = "local"
    """Snapshot exists only on the local host"""

    REMOTE_ONLY = "remote"
    """Snapshot exists only on the remote host"""

    BOTH = "local+remote"
    """Snapshot exists on both hosts"""


def classify_presence(
    local: Mapping[datetime, str],
    remote: Mapping[datetime, str],
) -> dict[datetime, Presence]:
    """Classify every known timestamp by where its snapshot exists.

    Args:
        local: Local inventory
        remote: Remote inventory

    Returns:
        Dictionary mapping each timestamp of either side to its Presence,
        ordered by timestamp
    """
    presence: dict[datetime, Presence] = {}

    for timestamp in local:
        presence[timestamp] = Presence.LOCAL_ONLY

    for timestamp in remote:
        if presence.get(timestamp) is Presence.LOCAL_ONLY:
            presence[timestamp] = Presence.BOTH
        else:
            presence[timestamp] = Presence.REMOTE_ONLY

    return {timestamp: presence[timestamp] for timestamp in sorted(presence)}


class PresenceComparator:
    """Compares the local and remote inventories for listing."""

    def compare(
        self,
        local: Mapping[datetime, str],
        remote: Mapping[datetime, str],
    ) -> dict[datetime, Presence]:
        """Classify every timestamp of either side by where it exists.

        Args:
            local: Local inventory
            remote: Remote inventory

        Returns:
            Dictionary mapping timestamp to Presence, oldest first
        """
        return classify_presence(local, remote)

    def rows(
        self,
        local: Mapping[datetime, str],
        remote: Mapping[datetime, str],
    ) -> list[dict[str, str]]:
        """Compare and render the result as table or JSON rows."""
        return [
            {"timestamp": format_timestamp(timestamp), "presence": where.value}
            for timestamp, where in self.compare(local, remote).items()
        ]
