"""Shared test doubles for the remote session and the snapshot producer."""

import io
import re
import shlex
from datetime import datetime, timedelta, timezone
from pathlib import PurePosixPath
from typing import Optional

import pytest

from pybtrsync.config import RemoteSpec, SyncConfig
from pybtrsync.exceptions import SnapshotSendError
from pybtrsync.sync.operations import CommandResult

_RECEIVE_RE = re.compile(r"cat -- (?P<staging>\S+)/\* \| btrfs receive (?P<root>\S+)$")

BASE_TIME = datetime(2021, 1, 1, tzinfo=timezone.utc)


def ts(n: int) -> datetime:
    """Timestamp ``n`` minutes after a fixed base time."""
    return BASE_TIME + timedelta(minutes=n)


def name(n: int) -> str:
    """Snapshot name for ``ts(n)``."""
    return ts(n).isoformat()


class FakeSession:
    """In-memory remote host understanding the commands the engine issues."""

    def __init__(self, listing: Optional[list[str]] = None):
        self.listing = listing or []
        self.dirs: set[str] = set()
        self.files: dict[str, bytes] = {}
        self.received: list[bytes] = []
        self.commands: list[str] = []
        self.writes: list[str] = []
        self.fail: dict[str, CommandResult] = {}

    def _result(self, command: str, default: CommandResult) -> CommandResult:
        for prefix, result in self.fail.items():
            if command.startswith(prefix) or prefix in command:
                return result
        return default

    def run(self, command: str) -> CommandResult:
        self.commands.append(command)

        match = _RECEIVE_RE.search(command)
        if match:
            result = self._result(command, CommandResult(0, "", ""))
            if result.ok:
                staging = shlex.split(match.group("staging"))[0]
                names = sorted(
                    path for path in self.files if path.startswith(staging + "/")
                )
                self.received.append(b"".join(self.files[path] for path in names))
            return result

        args = shlex.split(command)
        if args[:2] == ["rm", "-r"]:
            path = args[-1]
            if path not in self.dirs:
                return self._result(
                    command, CommandResult(1, "", f"rm: cannot remove '{path}'\n")
                )
            result = self._result(command, CommandResult(0, "", ""))
            if result.ok:
                self.dirs.discard(path)
                for file_path in [p for p in self.files if p.startswith(path + "/")]:
                    del self.files[file_path]
            return result
        if args[0] == "mkdir":
            result = self._result(command, CommandResult(0, "", ""))
            if result.ok:
                self.dirs.add(args[-1])
            return result
        if args[0] == "ls":
            return self._result(
                command,
                CommandResult(0, "".join(f"{n}\n" for n in self.listing), ""),
            )
        return CommandResult(127, "", f"unknown command: {command}\n")

    def write_file(self, path: str, data: bytes) -> None:
        parent = str(PurePosixPath(path).parent)
        if parent not in self.dirs:
            raise OSError(f"No such directory: {parent}")
        self.writes.append(path)
        self.files[path] = data

    def close(self) -> None:
        pass


class BytesSource:
    """Snapshot producer yielding a fixed byte string."""

    def __init__(self, data: bytes = b"", returncode: int = 0, stderr: str = ""):
        self.data = data
        self.returncode = returncode
        self.stderr = stderr
        self.started = False
        self.waited = False
        self.closed = False

    def start(self):
        self.started = True
        return io.BytesIO(self.data)

    def wait(self) -> None:
        self.waited = True
        if self.returncode != 0:
            raise SnapshotSendError(
                f"btrfs send exited with status {self.returncode}",
                stderr=self.stderr,
            )

    def close(self) -> None:
        self.closed = True


class SourceRecorder:
    """Source factory returning prepared sources and recording calls."""

    def __init__(self, payloads: Optional[dict[str, bytes]] = None, **source_kwargs):
        self.payloads = payloads or {}
        self.source_kwargs = source_kwargs
        self.calls: list[tuple] = []
        self.sources: list[BytesSource] = []

    def __call__(self, snapshot, parent, cwd):
        self.calls.append((snapshot, parent, cwd))
        source = BytesSource(self.payloads.get(snapshot, b""), **self.source_kwargs)
        self.sources.append(source)
        return source


@pytest.fixture
def remote_spec():
    """Remote specification used by the tests."""
    return RemoteSpec.parse("backup@nas:/backups")


@pytest.fixture
def sync_config(tmp_path, remote_spec):
    """Small-chunk configuration rooted in a temporary directory."""
    return SyncConfig(
        local_root=tmp_path,
        remote=remote_spec,
        chunk_size=4,
        queue_capacity=2,
    )


@pytest.fixture
def fake_session():
    """An empty in-memory remote host."""
    return FakeSession()
