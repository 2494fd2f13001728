"""
Pure functions that build shell command lines and parse their output.

Nothing in here performs I/O. Paths are always shell-quoted before they end up in a
command line, and listings are parsed from the output of `ls -ln`, which is available
in both coreutils and busybox based containers. Numeric ids (-n) are used so that the
owner and group can be reported without a passwd lookup.
"""

from datetime import datetime, timezone
import posixpath
import re
import shlex
from typing import List, Optional, Tuple

from kubefs.errors import RemoteNotFoundError
from kubefs.filesystem.common import FileEntry, FileType, Metadata, UnixPex

# Permissions may be followed by an ACL (+) or SELinux context (.) marker.
LS_RE = re.compile(
    r"^([\-ld])([\-rwxsStT]{9})[.+@]?\s+(\d+)\s+(\S+)\s+(\S+)\s+(\d+)\s+"
    r"(\w{3}\s+\d{1,2}\s+(?:\d{1,2}:\d{1,2}|\d{4}))\s+(.+)$"
)

_FILE_TYPES = {"-": FileType.FILE, "d": FileType.DIRECTORY, "l": FileType.SYMLINK}

_EPOCH = datetime.fromtimestamp(0, timezone.utc)


def quote(path: str) -> str:
    """Quote a path so that it is passed to a remote command as a single argument."""
    return shlex.quote(path)


def absolutize(cwd: str, path: str) -> str:
    """Resolve a path relative to the working directory into a normalized one."""
    resolved = posixpath.normpath(posixpath.join(cwd, path))

    # POSIX allows normpath to keep exactly two leading slashes
    if resolved.startswith("//"):
        resolved = "/" + resolved.lstrip("/")

    return resolved


def split_name_and_link(token: str) -> Tuple[str, Optional[str]]:
    """Split the name column of a symlink ('name -> target') into both parts."""
    name, sep, link = token.partition(" -> ")
    return name, link if sep else None


def parse_ls_time(text: str, now: Optional[datetime] = None) -> datetime:
    """
    Parse the modification time column of ls.

    Recent files are shown as 'Jun 13 21:11' without a year, in which case the year is
    the current one unless that would put the time in the future. Older files are shown
    as 'Nov  7  2020'. Timestamps that can't be parsed (for example because of a
    non-English locale) are reported as the UNIX epoch.
    """
    now = now or datetime.now(timezone.utc)
    text = " ".join(text.split())

    try:
        parsed = datetime.strptime(text, "%b %d %Y")
        return parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    try:
        # Year is included to avoid a missing Feb 29 in the default year 1900
        parsed = datetime.strptime(f"{now.year} {text}", "%Y %b %d %H:%M")
    except ValueError:
        return _EPOCH

    parsed = parsed.replace(tzinfo=timezone.utc)

    if (parsed - now).days >= 1:
        try:
            parsed = parsed.replace(year=now.year - 1)
        except ValueError:
            # Feb 29 doesn't exist in the previous year
            parsed = parsed.replace(year=now.year - 1, day=28)

    return parsed


def format_touch_time(time: datetime) -> str:
    """Format a timestamp for `touch -t` in UTC."""
    if time.tzinfo is not None:
        time = time.astimezone(timezone.utc)

    return time.strftime("%Y%m%d%H%M.%S")


def parse_ls_line(parent: str, line: str) -> Optional[FileEntry]:
    """
    Parse a single line of `ls -ln` output into a file entry.

    Relative names are resolved against the parent directory. None is returned for
    lines that don't describe a regular file, directory or symlink (like the 'total'
    header and device files), and for the '.' and '..' entries.
    """
    match = LS_RE.match(line.rstrip("\r\n"))

    if match is None:
        return None

    type_flag, pex, _, uid, gid, size, time, name_col = match.groups()

    try:
        mode = UnixPex.from_string(pex)
    except ValueError:
        return None

    file_type = _FILE_TYPES[type_flag]

    if file_type == FileType.SYMLINK:
        name, link = split_name_and_link(name_col)
    else:
        name, link = name_col, None

    if posixpath.basename(name) in (".", ".."):
        return None

    metadata = Metadata(
        file_type=file_type,
        size=int(size),
        modified=parse_ls_time(time),
        mode=mode,
        uid=int(uid) if uid.isdigit() else None,
        gid=int(gid) if gid.isdigit() else None,
        symlink=link,
    )

    return FileEntry(path=absolutize(parent, name), metadata=metadata)


def parse_ls_output(path: str, output: str) -> List[FileEntry]:
    """Parse a directory listing into file entries, in the order they were listed."""
    entries = []

    for line in output.splitlines():
        entry = parse_ls_line(path, line)

        if entry is not None:
            entries.append(entry)

    return entries


def parse_stat(path: str, output: str) -> FileEntry:
    """
    Parse the `ls -ldn` output of a single path.

    The reported path is always the requested (absolute) path rather than the name
    printed by ls.
    """
    for line in output.splitlines():
        entry = parse_ls_line(posixpath.dirname(path), line)

        if entry is not None:
            entry.path = path
            return entry

    raise RemoteNotFoundError.for_path(path)
