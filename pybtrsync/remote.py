"""SSH session to the backup host and remote snapshot listing."""

import io
import logging
import shlex
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import paramiko

from .config import SyncConfig
from .exceptions import (
    AuthenticationError,
    InventoryError,
    RemoteCommandError,
    RemoteConnectionError,
    RemoteError,
)
from .sync.inventory import Inventory
from .sync.operations import CommandResult, RemoteSession
from .utils import parse_timestamp

logger = logging.getLogger(__name__)


class SSHSession:
    """Authenticated SSH connection that runs commands and copies files."""

    def __init__(self, config: SyncConfig):
        """Initialize SSH session.

        Args:
            config: Run configuration (remote address and credentials)
        """
        self.config = config
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    def connect(self) -> "SSHSession":
        """Open the connection and authenticate.

        Raises:
            AuthenticationError: If the remote host rejects the credentials
            RemoteConnectionError: If the host cannot be reached
        """
        remote = self.config.remote
        logger.info("Connecting to %s@%s", remote.username, remote.address)

        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        kw: dict = dict(
            hostname=remote.host,
            port=remote.port,
            username=remote.username,
        )
        if self.config.privkey is not None:
            kw["key_filename"] = str(self.config.privkey)
            kw["passphrase"] = self.config.privkey_pass
            kw["look_for_keys"] = False

        try:
            client.connect(**kw)
        except paramiko.AuthenticationException as e:
            client.close()
            raise AuthenticationError(
                f"Authentication failed for {remote.username}@{remote.host}: {e}"
            ) from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise RemoteConnectionError(
                f"Could not connect to {remote.address}: {e}"
            ) from e

        self._client = client
        logger.debug("Connected to %s", remote.address)
        return self

    def _require_client(self) -> paramiko.SSHClient:
        if self._client is None:
            raise RemoteConnectionError("Not connected")
        return self._client

    def run(self, command: str) -> CommandResult:
        """Run a shell command on the remote host.

        Args:
            command: Command line, interpreted by the remote shell

        Returns:
            CommandResult with exit status and decoded output
        """
        client = self._require_client()
        logger.debug("Remote command: %s", command)
        try:
            stdin, stdout, stderr = client.exec_command(command)
            stdin.close()
            # stderr is drained while stdout is read
            with ThreadPoolExecutor(max_workers=1) as executor:
                err_future = executor.submit(stderr.read)
                out_bytes = stdout.read()
                err_bytes = err_future.result()
            status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            raise RemoteError(f"Failed to run remote command {command!r}: {e}") from e

        out = out_bytes.decode("utf-8", errors="replace")
        err = err_bytes.decode("utf-8", errors="replace")

        logger.debug("Remote command exited with status %d", status)
        return CommandResult(exit_status=status, stdout=out, stderr=err)

    def write_file(self, path: str, data: bytes) -> None:
        """Copy bytes to a remote file over SFTP.

        Raises:
            RemoteError: If the copy fails
        """
        client = self._require_client()
        try:
            if self._sftp is None:
                self._sftp = client.open_sftp()
            self._sftp.putfo(io.BytesIO(data), path, file_size=len(data))
        except (paramiko.SSHException, OSError) as e:
            raise RemoteError(f"Failed to copy {len(data)} bytes to {path}: {e}") from e

    def close(self) -> None:
        """Close the SFTP channel and the connection."""
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "SSHSession":
        if self._client is None:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def list_remote(session: RemoteSession, config: SyncConfig) -> Inventory:
    """List the snapshots stored in the remote root.

    Every line of the listing must be a snapshot timestamp; anything else
    means the remote root holds foreign data and the listing is rejected.

    Args:
        session: Connected remote session
        config: Run configuration

    Returns:
        Inventory of remote snapshots

    Raises:
        RemoteCommandError: If the listing command fails
        InventoryError: If a listed name is not a timestamp
    """
    command = f"ls -1NU -- {shlex.quote(str(config.remote.path))}"
    result = session.run(command)
    if not result.ok:
        raise RemoteCommandError(
            command, result.exit_status, result.stdout, result.stderr
        )

    entries = []
    for line in result.stdout.splitlines():
        if not line:
            continue
        try:
            entries.append((parse_timestamp(line), line))
        except ValueError as e:
            raise InventoryError(
                f"Unexpected entry {line!r} in remote directory "
                f"{config.remote.path}: {e}"
            ) from e

    inventory = Inventory(entries)
    logger.debug("Found %d remote snapshot(s)", len(inventory))
    return inventory
