"""Module defining the interface shared by all remote file systems."""

from abc import ABC, abstractmethod
from typing import Any, BinaryIO

import kubefs.constants as constants
from kubefs.errors import UnsupportedOperationError
from kubefs.filesystem.common import Metadata, Welcome


class RemoteFs(ABC):
    """
    Base class for a remote file system.

    Paths may be absolute or relative to the working directory. Failures are raised as
    the exceptions in kubefs.errors, which derive from the matching builtin exceptions:
    a missing path raises FileNotFoundError, an occupied one FileExistsError and so on.
    Every operation apart from connect(), disconnect() and is_connected() raises
    NotConnectedError when the file system isn't connected.

    The exec primitive doesn't support writing at an offset or keeping remote files
    open, so the stream based operations (append_file, append, create, open) always
    raise UnsupportedOperationError. Use create_file() and open_file() instead.
    """

    #
    # Session
    #

    @abstractmethod
    def connect(self) -> Welcome:
        """Connect to the remote and initialize the working directory."""

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect after running operations finish. Repeated calls do nothing."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the file system is connected and the remote is reachable."""

    @abstractmethod
    def pwd(self) -> Any:
        """Return the current working directory."""

    @abstractmethod
    def change_dir(self, path: str) -> Any:
        """Change the working directory to an existing directory and return it."""

    #
    # Metadata access
    #

    @abstractmethod
    def list_dir(self, path: str) -> Any:
        """List the entries of a directory, without '.' and '..', in listing order."""

    @abstractmethod
    def stat(self, path: str) -> Any:
        """Retrieve the metadata of an entry without following symlinks."""

    @abstractmethod
    def exists(self, path: str) -> Any:
        """Check if an entry exists. Absent paths are False, not an error."""

    @abstractmethod
    def find(self, path: str, pattern: str) -> Any:
        """Search recursively for entries whose name matches a glob pattern."""

    #
    # Metadata modification
    #

    @abstractmethod
    def setstat(self, path: str, metadata: Metadata) -> Any:
        """Apply the mode, owner, group and timestamps that are set in metadata."""

    #
    # File system structure
    #

    @abstractmethod
    def create_dir(self, path: str, mode: int = constants.DEFAULT_DIR_MODE) -> Any:
        """Create a directory. The parent must exist and the path must not."""

    @abstractmethod
    def remove_file(self, path: str) -> Any:
        """Remove a file or symlink."""

    @abstractmethod
    def remove_dir(self, path: str) -> Any:
        """Remove an empty directory."""

    @abstractmethod
    def remove_dir_all(self, path: str) -> Any:
        """Remove an entry recursively. A missing path is an error."""

    @abstractmethod
    def copy(self, src: str, dst: str) -> Any:
        """
        Copy a file or directory recursively like `cp -rf`.

        An existing destination file is overwritten. If the destination is an existing
        directory, the source is copied into it instead of replacing it.
        """

    @abstractmethod
    def mov(self, src: str, dst: str) -> Any:
        """Move an entry. The destination must not exist."""

    @abstractmethod
    def symlink(self, path: str, target: str) -> Any:
        """Create a symlink at path pointing to target."""

    #
    # File contents
    #

    @abstractmethod
    def create_file(self, path: str, metadata: Metadata, reader: BinaryIO) -> Any:
        """
        Create or truncate a file with the contents of reader.

        If metadata.size is set then exactly that many bytes are read from reader,
        otherwise reader is read until its end. Returns the number of bytes written.
        """

    @abstractmethod
    def open_file(self, path: str, writer: BinaryIO) -> Any:
        """Write the contents of a file into writer and return the number of bytes."""

    def append_file(self, path: str, metadata: Metadata, reader: BinaryIO) -> Any:
        """Append to a file. Not supported."""
        raise UnsupportedOperationError("append_file is not supported")

    def append(self, path: str, metadata: Metadata) -> Any:
        """Open a stream that appends to a file. Not supported."""
        raise UnsupportedOperationError("append is not supported")

    def create(self, path: str, metadata: Metadata) -> Any:
        """Open a stream that writes a new file. Not supported."""
        raise UnsupportedOperationError("create is not supported")

    def open(self, path: str) -> Any:
        """Open a stream that reads a file. Not supported."""
        raise UnsupportedOperationError("open is not supported")

    #
    # Miscellaneous
    #

    @abstractmethod
    def exec(self, command: str) -> Any:
        """
        Execute a command line verbatim in the working directory.

        The command is NOT quoted or escaped in any way and may have arbitrary side
        effects. Returns the exit code and stdout.
        """
