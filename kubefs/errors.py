"""
Exceptions raised by the kubefs file systems.

Failures are reported through builtin exception types wherever one exists, so a caller
can simply write `except FileNotFoundError` regardless of the file system behind it.
The OSError based types carry their errno just like the exceptions raised by the os
module:

    raise RemoteNotFoundError.for_path("/tmp/missing")

Every exception also derives from RemoteFsError, whose retry_safe flag tells whether
the operation definitely did not happen (safe to retry) or whether its outcome is
unknown because the transport or the remote command failed halfway.
"""

import errno
import os
import re
from typing import Any, ClassVar, Dict, List, Optional, Pattern, Tuple, Type

import kubefs.constants as constants


class RemoteFsError(Exception):
    """Base class of all kubefs errors."""

    retry_safe: ClassVar[bool] = False


class _RemoteOSError(RemoteFsError, OSError):
    """Base class of errors that map onto an errno."""

    retry_safe = True
    errno_code: ClassVar[int] = errno.EIO

    @classmethod
    def for_path(cls, path: str, detail: Optional[str] = None) -> "_RemoteOSError":
        """Instantiate with the errno of this error type for the given remote path."""
        return cls(cls.errno_code, detail or os.strerror(cls.errno_code), path)


class RemoteConnectionError(RemoteFsError, ConnectionError):
    """The exec stream or the cluster API could not be reached."""


class NotConnectedError(RemoteFsError, ConnectionError):
    """An operation was attempted on a file system that is not connected."""

    retry_safe = True


class RemoteNotFoundError(_RemoteOSError, FileNotFoundError):
    errno_code = errno.ENOENT


class RemoteExistsError(_RemoteOSError, FileExistsError):
    errno_code = errno.EEXIST


class RemoteNotADirectoryError(_RemoteOSError, NotADirectoryError):
    errno_code = errno.ENOTDIR


class RemoteIsADirectoryError(_RemoteOSError, IsADirectoryError):
    errno_code = errno.EISDIR


class DirectoryNotEmptyError(_RemoteOSError):
    errno_code = errno.ENOTEMPTY


class RemotePermissionError(_RemoteOSError, PermissionError):
    errno_code = errno.EACCES


class UnsupportedOperationError(RemoteFsError, NotImplementedError):
    """The operation has no viable mapping onto shell commands."""

    retry_safe = True


class ExecutionError(RemoteFsError, RuntimeError):
    """A remote command failed in a way that doesn't match a more specific error."""

    def __init__(self, message: str, exit_code: Optional[int] = None, stderr: str = ""):
        """Instantiate with the exit code and captured stderr of the failed command."""
        super().__init__(message)

        self.exit_code = exit_code
        self.stderr = stderr

    def __str__(self) -> str:
        message = super().__str__()

        if self.stderr:
            return f"{message} (exit code {self.exit_code}): {self.stderr.strip()}"
        else:
            return f"{message} (exit code {self.exit_code})"


class MissingUtilityError(ExecutionError):
    """The container lacks a utility that the operation relies on."""

    retry_safe = True


class SetStatError(ExecutionError):
    """One of the commands applying new file attributes failed."""

    def __init__(self, command: str, exit_code: Optional[int] = None, stderr: str = ""):
        """Instantiate with the sub-command that failed first."""
        super().__init__(
            f"failed to apply attributes with '{command}'", exit_code, stderr
        )

        self.command = command


class TargetNotFoundError(RemoteFsError, LookupError):
    """A target selector didn't match any configured target."""

    retry_safe = True


class AggregateError(RemoteFsError):
    """
    Every target of a fan-out operation failed.

    The per-target outcomes are kept in results, a mapping from Target to TargetResult.
    """

    def __init__(self, operation: str, results: Dict[Any, Any]):
        """Instantiate with the name of the operation and its per-target results."""
        super().__init__(f"{operation} failed on all {len(results)} targets")

        self.operation = operation
        self.results = results

    @property
    def retry_safe(self) -> bool:  # type: ignore[override]
        """Only retry-safe if the operation definitely failed on every target."""
        return all(
            getattr(result.error, "retry_safe", False)
            for result in self.results.values()
        )


# Shell messages for missing commands (bash, dash and busybox ash respectively)
_MISSING_UTILITY_RE = re.compile(
    r"command not found|: not found$|applet not found", re.M
)

# Ordered stderr patterns of coreutils and busybox error messages
_STDERR_PATTERNS: List[Tuple[Pattern, Type[_RemoteOSError]]] = [
    (re.compile(r"No such file or directory", re.I), RemoteNotFoundError),
    (
        re.compile(r"Permission denied|Operation not permitted", re.I),
        RemotePermissionError,
    ),
    (re.compile(r"File exists", re.I), RemoteExistsError),
    (re.compile(r"Directory not empty", re.I), DirectoryNotEmptyError),
    (re.compile(r"Not a directory", re.I), RemoteNotADirectoryError),
    (re.compile(r"Is a directory", re.I), RemoteIsADirectoryError),
]


def classify_failure(path: str, exit_code: int, stderr: str) -> RemoteFsError:
    """
    Turn a failed remote command into the most specific error type.

    The exit code of shells for a missing command (127) and messages like "sh: rmdir:
    not found" both indicate that the container lacks a required utility. Failures
    without a recognizable message become a generic ExecutionError with the stderr.
    """
    if exit_code == constants.COMMAND_NOT_FOUND_CODE or _MISSING_UTILITY_RE.search(
        stderr
    ):
        return MissingUtilityError(
            "required utility missing in container", exit_code, stderr
        )

    for pattern, error_type in _STDERR_PATTERNS:
        if pattern.search(stderr):
            return error_type.for_path(path)

    return ExecutionError(f"remote command failed on {path}", exit_code, stderr)
