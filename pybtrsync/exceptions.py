"""Exceptions raised by pybtrsync."""

from typing import Optional


class PyBtrSyncError(Exception):
    """Base class for all pybtrsync errors."""

    def __init__(self, message: str):
        super().__init__(message)


class ConfigError(PyBtrSyncError):
    """Invalid configuration such as a malformed remote or an unusable path."""

    pass


class RemoteError(PyBtrSyncError):
    """Base class for errors talking to the remote host."""

    pass


class RemoteConnectionError(RemoteError):
    """The TCP connection or SSH handshake to the remote host failed."""

    pass


class AuthenticationError(RemoteError):
    """The remote host rejected our credentials."""

    pass


class RemoteCommandError(RemoteError):
    """A remote command exited with a non-zero status.

    Args:
        command: The command line that was executed
        exit_status: Exit status reported by the remote shell
        stdout: Captured standard output
        stderr: Captured standard error
    """

    def __init__(
        self,
        command: str,
        exit_status: int,
        stdout: str = "",
        stderr: str = "",
    ):
        self.command = command
        self.exit_status = exit_status
        self.stdout = stdout
        self.stderr = stderr
        message = f"Remote command failed with exit status {exit_status}: {command}"
        if stderr:
            message += f"\nstderr:\n{stderr}"
        super().__init__(message)


class InventoryError(PyBtrSyncError):
    """A snapshot listing could not be parsed."""

    pass


class PlanError(PyBtrSyncError):
    """A transfer plan cannot be executed as given."""

    pass


class TransferError(PyBtrSyncError):
    """Base class for failures while transferring a single snapshot."""

    pass


class StagingError(TransferError):
    """The remote staging directory could not be created or removed."""

    pass


class SnapshotSendError(TransferError):
    """The local snapshot producer failed to start or exited unsuccessfully.

    Args:
        message: Error description
        stderr: Captured standard error of the producer, if any
    """

    def __init__(self, message: str, stderr: Optional[str] = None):
        self.stderr = stderr
        if stderr:
            message = f"{message}:\n{stderr}"
        super().__init__(message)


class SnapshotReceiveError(TransferError):
    """The remote snapshot consumer exited unsuccessfully.

    Both output streams are kept verbatim so the operator sees exactly what
    the receiving side reported.
    """

    def __init__(self, message: str, stdout: str = "", stderr: str = ""):
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"{message}\nstdout:\n{stdout}\nstderr:\n{stderr}")
