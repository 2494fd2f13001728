"""Data structures used by multiple file system components."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import auto, Enum
import posixpath
from typing import Optional


class FileType(Enum):
    """Type of a file system entry."""

    FILE = auto()
    DIRECTORY = auto()
    SYMLINK = auto()


class UnixPex:
    """Helpers to convert between ls style permission strings and numeric modes."""

    # Bit values of the r, w and x columns of one class (user, group or others)
    _CLASS_BITS = (4, 2, 1)

    @classmethod
    def from_string(cls, pex: str) -> int:
        """
        Convert a 9 character permission string like 'rwxr-xr-x' into a mode.

        Special bits are recognized in the execute column: s/S (setuid or setgid) and
        t/T (sticky). Upper case means the bit is set without the execute permission.
        """
        if len(pex) != 9:
            raise ValueError(f"invalid permission string '{pex}'")

        mode = 0

        for shift, offset in ((6, 0), (3, 3), (0, 6)):
            bits = 0

            for i, c in enumerate(pex[offset : offset + 3]):
                if c in "rwxst":
                    bits |= cls._CLASS_BITS[i]
                elif c not in "-ST":
                    raise ValueError(f"invalid permission string '{pex}'")

            mode |= bits << shift

        if pex[2] in "sS":
            mode |= 0o4000
        if pex[5] in "sS":
            mode |= 0o2000
        if pex[8] in "tT":
            mode |= 0o1000

        return mode

    @staticmethod
    def to_string(mode: int) -> str:
        """Convert the permission bits of a mode into a 'rwxr-xr-x' style string."""
        chars = []

        for shift in (6, 3, 0):
            for bit, char in zip((4, 2, 1), "rwx"):
                chars.append(char if mode >> shift & bit else "-")

        return "".join(chars)


@dataclass
class Metadata:
    """
    Metadata of a remote file system entry.

    The same structure is used to pass new attributes to setstat() and the expected
    size to create_file(), in which case unset fields are left untouched.
    """

    file_type: FileType = FileType.FILE
    size: Optional[int] = None
    modified: Optional[datetime] = None
    accessed: Optional[datetime] = None
    created: Optional[datetime] = None
    mode: Optional[int] = None
    uid: Optional[int] = None
    gid: Optional[int] = None
    symlink: Optional[str] = None

    def with_type(self, file_type: FileType) -> Metadata:
        """Copy the metadata with a different file type."""
        return dataclasses.replace(self, file_type=file_type)


@dataclass
class FileEntry:
    """A remote file system entry with its absolute path and metadata."""

    path: str
    metadata: Metadata = field(default_factory=Metadata)

    @property
    def name(self) -> str:
        return posixpath.basename(self.path) or "/"

    @property
    def extension(self) -> Optional[str]:
        _, ext = posixpath.splitext(self.name)
        return ext[1:] if ext else None

    @property
    def is_dir(self) -> bool:
        return self.metadata.file_type == FileType.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.metadata.file_type == FileType.FILE

    @property
    def is_symlink(self) -> bool:
        return self.metadata.file_type == FileType.SYMLINK


@dataclass
class Welcome:
    """Information returned by a file system upon connecting."""

    banner: Optional[str] = None
