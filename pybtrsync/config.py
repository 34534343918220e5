"""Configuration for pybtrsync runs.

A single :class:`SyncConfig` is built by the CLI from its options and passed
explicitly to every component that needs it.
"""

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Optional

from .exceptions import ConfigError
from .utils import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_QUEUE_CAPACITY,
    DEFAULT_SSH_PORT,
    STAGING_DIR_NAME,
    path_as_utf8,
)


@dataclass(frozen=True)
class RemoteSpec:
    """Parsed ``user@host[:port]:path`` remote specification."""

    username: str
    """Login name on the remote host"""

    host: str
    """Remote host name or address"""

    path: PurePosixPath
    """Snapshot root directory on the remote host"""

    port: int = DEFAULT_SSH_PORT
    """SSH port"""

    @classmethod
    def parse(cls, spec: str) -> "RemoteSpec":
        """Parse a remote specification.

        The last ``:`` separates the path, the first ``@`` separates the user
        from the host. The host part may carry a ``:port`` suffix.

        Args:
            spec: Remote specification (e.g., "backup@nas:2222:/mnt/backups")

        Returns:
            RemoteSpec instance

        Raises:
            ConfigError: If the specification is malformed

        Examples:
            >>> RemoteSpec.parse("me@nas:/srv/snap").port
            22
            >>> RemoteSpec.parse("me@nas:2222:/srv/snap").port
            2222
        """
        rest, sep, path = spec.rpartition(":")
        if not sep:
            raise ConfigError(f"Missing ...:path in remote '{spec}'")
        if not path:
            raise ConfigError(f"Empty path in remote '{spec}'")

        username, sep, address = rest.partition("@")
        if not sep:
            raise ConfigError(f"Missing user@... in remote '{spec}'")
        if not username:
            raise ConfigError(f"Empty user name in remote '{spec}'")

        host, sep, port_text = address.partition(":")
        if not host:
            raise ConfigError(f"Empty host in remote '{spec}'")

        port = DEFAULT_SSH_PORT
        if sep:
            try:
                port = int(port_text)
            except ValueError:
                raise ConfigError(
                    f"Invalid port '{port_text}' in remote '{spec}'"
                ) from None
            if not 0 < port < 65536:
                raise ConfigError(f"Port out of range in remote '{spec}'")

        return cls(username=username, host=host, path=PurePosixPath(path), port=port)

    @property
    def address(self) -> str:
        """Host and port as ``host:port``."""
        return f"{self.host}:{self.port}"

    def __str__(self) -> str:
        return f"{self.username}@{self.address}:{self.path}"


@dataclass
class SyncConfig:
    """Settings shared by all components of one run."""

    local_root: Path
    """Directory holding the local snapshots"""

    remote: RemoteSpec
    """Where the snapshots are mirrored to"""

    privkey: Optional[Path] = None
    """Private key file used to authenticate to the remote host"""

    privkey_pass: Optional[str] = field(default=None, repr=False)
    """Passphrase of the private key, if it is encrypted"""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    """Size of one staged upload chunk in bytes"""

    queue_capacity: int = DEFAULT_QUEUE_CAPACITY
    """Maximum number of filled chunks waiting for upload"""

    staging_dir_name: str = STAGING_DIR_NAME
    """Name of the staging directory below the remote root"""

    @property
    def staging_path(self) -> PurePosixPath:
        """Full remote path of the staging directory."""
        return self.remote.path / self.staging_dir_name

    def validate(self) -> None:
        """Check the settings before any network activity.

        Raises:
            ConfigError: If a setting is unusable
        """
        if self.chunk_size <= 0:
            raise ConfigError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.queue_capacity <= 0:
            raise ConfigError(
                f"Queue capacity must be positive, got {self.queue_capacity}"
            )
        if not self.staging_dir_name or "/" in self.staging_dir_name:
            raise ConfigError(
                f"Invalid staging directory name: {self.staging_dir_name!r}"
            )
        if self.privkey is not None and not self.privkey.is_file():
            raise ConfigError(f"Private key file not found: {self.privkey}")
        for label, path in (
            ("local path", self.local_root),
            ("remote path", self.remote.path),
        ):
            try:
                path_as_utf8(path)
            except ValueError as e:
                raise ConfigError(f"Invalid {label}: {e}") from e
