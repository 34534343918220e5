"""Tests for presence classification."""

from conftest import name, ts

from pybtrsync.sync.comparator import (
    Presence,
    PresenceComparator,
    classify_presence,
)
from pybtrsync.sync.inventory import Inventory


def _inventory(*minutes: int) -> Inventory:
    return Inventory((ts(m), name(m)) for m in minutes)


class TestClassifyPresence:
    """Tests for classify_presence."""

    def test_empty(self):
        assert classify_presence(_inventory(), _inventory()) == {}

    def test_local_only(self):
        result = classify_presence(_inventory(10, 20), _inventory())
        assert result == {ts(10): Presence.LOCAL_ONLY, ts(20): Presence.LOCAL_ONLY}

    def test_remote_only(self):
        result = classify_presence(_inventory(), _inventory(10))
        assert result == {ts(10): Presence.REMOTE_ONLY}

    def test_mixed(self):
        """Every timestamp appears once with the right classification."""
        local = _inventory(10, 20, 40)
        remote = _inventory(20, 30, 40, 50)

        result = classify_presence(local, remote)

        assert result == {
            ts(10): Presence.LOCAL_ONLY,
            ts(20): Presence.BOTH,
            ts(30): Presence.REMOTE_ONLY,
            ts(40): Presence.BOTH,
            ts(50): Presence.REMOTE_ONLY,
        }

    def test_result_ordered_by_timestamp(self):
        local = _inventory(50, 10)
        remote = _inventory(30, 40, 20)

        result = classify_presence(local, remote)

        assert list(result) == [ts(10), ts(20), ts(30), ts(40), ts(50)]

    def test_inputs_not_modified(self):
        local = _inventory(10)
        remote = _inventory(10, 20)

        classify_presence(local, remote)

        assert list(local) == [ts(10)]
        assert list(remote) == [ts(10), ts(20)]

    def test_presence_values(self):
        """Presence values are the labels shown by the list command."""
        assert Presence.LOCAL_ONLY.value == "local"
        assert Presence.REMOTE_ONLY.value == "remote"
        assert Presence.BOTH.value == "local+remote"


class TestPresenceComparator:
    """Tests for PresenceComparator."""

    def test_compare_matches_classify_presence(self):
        local = _inventory(10, 20)
        remote = _inventory(20, 30)

        assert PresenceComparator().compare(local, remote) == classify_presence(
            local, remote
        )

    def test_rows(self):
        rows = PresenceComparator().rows(_inventory(20, 10), _inventory(10, 5))

        assert rows == [
            {"timestamp": name(5), "presence": "remote"},
            {"timestamp": name(10), "presence": "local+remote"},
            {"timestamp": name(20), "presence": "local"},
        ]

    def test_rows_empty(self):
        assert PresenceComparator().rows(_inventory(), _inventory()) == []
