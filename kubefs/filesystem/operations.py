"""
Module that maps file system operations onto shell commands for a single target.

Every operation is a coroutine so that the multi-target file system can run the same
operation on several containers concurrently. Paths are resolved against the working
directory of the target and shell-quoted before they are put into a command line.

Most operations first probe the path with the shell's test builtin. That turns the
ambiguous exit codes of utilities like rm and mv into well-defined errors and makes
sure that, for example, remove_dir_all() on a missing path fails instead of succeeding
silently like `rm -rf` would.
"""

import contextlib
from dataclasses import dataclass
import posixpath
import shutil
import tarfile
import tempfile
from typing import BinaryIO, Iterator, List, Optional, Tuple

import kubefs.constants as constants
from kubefs.errors import (
    classify_failure,
    ExecutionError,
    RemoteConnectionError,
    RemoteExistsError,
    RemoteIsADirectoryError,
    RemoteNotADirectoryError,
    RemoteNotFoundError,
    SetStatError,
)
from kubefs.executor import CommandResult, Executor
from kubefs.filesystem import parser
from kubefs.filesystem.common import FileEntry, Metadata
from kubefs.filesystem.parser import quote
from kubefs.logger import log
from kubefs.target import Target


@dataclass
class Probe:
    """Result of probing a remote path with the test builtin."""

    exists: bool
    is_dir: bool
    is_link: bool


@contextlib.contextmanager
def sized_source(
    reader: BinaryIO, size: Optional[int]
) -> Iterator[Tuple[BinaryIO, int]]:
    """
    Make sure that the size of a byte source is known before it is uploaded.

    Sources of unknown size are first spooled, in memory for small files and in a
    temporary file beyond SPOOL_MAX_SIZE.
    """
    if size is not None:
        yield reader, size
        return

    with tempfile.SpooledTemporaryFile(max_size=constants.SPOOL_MAX_SIZE) as spool:
        shutil.copyfileobj(reader, spool, constants.CHUNK_SIZE)

        size = spool.tell()
        spool.seek(0)

        yield spool, size  # type: ignore[misc]


class ContainerOperations:
    """File system operations on one target, tracking its working directory."""

    def __init__(self, target: Target, executor: Executor):
        """Instantiate operations for the target using the given executor."""
        self.target = target
        self.cwd = "/"

        self._executor = executor

    def resolve(self, path: str) -> str:
        """Resolve a path against the working directory of the target."""
        return parser.absolutize(self.cwd, path)

    async def _run(self, command: str) -> CommandResult:
        return await self._executor.run(self.target, command)

    async def _check(self, command: str, path: str) -> CommandResult:
        """Run a command and raise the matching error if it fails."""
        result = await self._run(command)

        if not result.ok:
            raise classify_failure(path, result.exit_code, result.stderr)

        return result

    async def probe(self, path: str) -> Probe:
        """
        Check if an (absolute) path exists, and whether it is a directory or symlink.

        Dangling symlinks count as existing entries. Directory checks follow symlinks.
        """
        q = quote(path)

        result = await self._check(
            f"s=; [ -e {q} ] && s=${{s}}e; [ -d {q} ] && s=${{s}}d; "
            f'[ -L {q} ] && s=${{s}}l; echo "$s"',
            path,
        )

        flags = result.stdout.strip()

        return Probe(
            exists="e" in flags or "l" in flags,
            is_dir="d" in flags,
            is_link="l" in flags,
        )

    async def _existing(self, path: str) -> Probe:
        probe = await self.probe(path)

        if not probe.exists:
            raise RemoteNotFoundError.for_path(path)

        return probe

    #
    # Session
    #

    async def connect(self) -> str:
        """Check that the pod of the target exists and retrieve its workdir."""
        await self._executor.read_pod(self.target)

        result = await self._check("pwd", "/")
        wrkdir = result.stdout.strip()

        if not wrkdir.startswith("/"):
            raise RemoteConnectionError(
                f"bad pwd response from {self.target}: {wrkdir}"
            )

        self.cwd = wrkdir

        return wrkdir

    async def is_alive(self) -> bool:
        """Check if the pod of the target is still running."""
        pod = await self._executor.read_pod_status(self.target)

        return pod.status is not None and pod.status.phase == "Running"

    async def change_dir(self, path: str) -> str:
        path = self.resolve(path)
        log.debug(f"changing working directory of {self.target} to {path}")

        probe = await self._existing(path)

        if not probe.is_dir:
            raise RemoteNotADirectoryError.for_path(path)

        self.cwd = path

        return path

    #
    # Metadata access
    #

    async def exists(self, path: str) -> bool:
        path = self.resolve(path)

        return (await self.probe(path)).exists

    async def stat(self, path: str) -> FileEntry:
        path = self.resolve(path)
        log.debug(f"stat {path} on {self.target}")

        await self._existing(path)
        result = await self._check(f"ls -ldn {quote(path)}", path)

        return parser.parse_stat(path, result.stdout)

    async def list_dir(self, path: str) -> List[FileEntry]:
        path = self.resolve(path)
        log.debug(f"listing {path} on {self.target}")

        probe = await self._existing(path)

        if not probe.is_dir:
            raise RemoteNotADirectoryError.for_path(path)

        # Trailing slash lists the contents of symlinked directories
        result = await self._check(f"ls -lan {quote(path.rstrip('/') + '/')}", path)
        entries = parser.parse_ls_output(path, result.stdout)

        log.debug(f"found {len(entries)} entries in {path}")

        return entries

    async def find(self, path: str, pattern: str) -> List[FileEntry]:
        """Search recursively for entries with a name matching the glob pattern."""
        path = self.resolve(path)
        log.debug(f"searching {path} on {self.target} for {pattern}")

        await self._existing(path)

        result = await self._run(
            f"find {quote(path)} -name {quote(pattern)} -exec ls -ldn {{}} +"
        )

        # Unreadable subdirectories make find fail, but other matches are still valid
        if not result.ok and not result.stdout:
            raise classify_failure(path, result.exit_code, result.stderr)

        return parser.parse_ls_output(path, result.stdout)

    #
    # Metadata modification
    #

    async def setstat(self, path: str, metadata: Metadata) -> None:
        """
        Apply the mode, ownership and timestamps that are set in the metadata.

        The commands are executed in that order and the first one that fails aborts
        the operation, so attributes may have been partially applied.
        """
        path = self.resolve(path)
        log.debug(f"setting attributes of {path} on {self.target}")

        await self._existing(path)

        q = quote(path)
        commands = []

        if metadata.mode is not None:
            commands.append(f"chmod {metadata.mode & 0o7777:o} {q}")

        if metadata.uid is not None:
            group = f":{metadata.gid}" if metadata.gid is not None else ""
            commands.append(f"chown {metadata.uid}{group} {q}")
        elif metadata.gid is not None:
            commands.append(f"chgrp {metadata.gid} {q}")

        if metadata.accessed is not None:
            stamp = parser.format_touch_time(metadata.accessed)
            commands.append(f"touch -c -a -t {stamp} {q}")

        if metadata.modified is not None:
            stamp = parser.format_touch_time(metadata.modified)
            commands.append(f"touch -c -m -t {stamp} {q}")

        for command in commands:
            result = await self._run(command)

            if not result.ok:
                raise SetStatError(command, result.exit_code, result.stderr)

    #
    # File system structure
    #

    async def create_dir(self, path: str, mode: int) -> None:
        path = self.resolve(path)
        log.debug(f"creating directory {path} with mode {mode:o} on {self.target}")

        if (await self.probe(path)).exists:
            raise RemoteExistsError.for_path(path)

        await self._check(f"mkdir -m {mode & 0o7777:o} {quote(path)}", path)

    async def remove_file(self, path: str) -> None:
        path = self.resolve(path)
        log.debug(f"removing file {path} on {self.target}")

        probe = await self._existing(path)

        if probe.is_dir and not probe.is_link:
            raise RemoteIsADirectoryError.for_path(path)

        await self._check(f"rm -f {quote(path)}", path)

    async def remove_dir(self, path: str) -> None:
        path = self.resolve(path)
        log.debug(f"removing directory {path} on {self.target}")

        probe = await self._existing(path)

        if not probe.is_dir or probe.is_link:
            raise RemoteNotADirectoryError.for_path(path)

        await self._check(f"rmdir {quote(path)}", path)

    async def remove_dir_all(self, path: str) -> None:
        path = self.resolve(path)
        log.debug(f"removing {path} recursively on {self.target}")

        await self._existing(path)
        await self._check(f"rm -rf {quote(path)}", path)

    async def copy(self, src: str, dst: str) -> None:
        src = self.resolve(src)
        dst = self.resolve(dst)
        log.debug(f"copying {src} to {dst} on {self.target}")

        await self._existing(src)
        await self._check(f"cp -rf {quote(src)} {quote(dst)}", dst)

    async def mov(self, src: str, dst: str) -> None:
        src = self.resolve(src)
        dst = self.resolve(dst)
        log.debug(f"moving {src} to {dst} on {self.target}")

        await self._existing(src)

        if (await self.probe(dst)).exists:
            raise RemoteExistsError.for_path(dst)

        await self._check(f"mv {quote(src)} {quote(dst)}", dst)

    async def symlink(self, path: str, target: str) -> None:
        """Create a symlink at path pointing to target, which is stored verbatim."""
        path = self.resolve(path)
        log.debug(f"creating symlink {path} -> {target} on {self.target}")

        if (await self.probe(path)).exists:
            raise RemoteExistsError.for_path(path)

        await self._check(f"ln -s {quote(target)} {quote(path)}", path)

    #
    # File contents
    #

    async def create_file(self, path: str, reader: BinaryIO, size: int) -> int:
        """Write exactly size bytes from reader into a (new or truncated) file."""
        path = self.resolve(path)
        log.debug(f"uploading {size} bytes to {path} on {self.target}")

        if (await self.probe(path)).is_dir:
            raise RemoteIsADirectoryError.for_path(path)

        result = await self._executor.upload(
            self.target, f"head -c {size} > {quote(path)}", reader, size
        )

        if not result.ok:
            raise classify_failure(path, result.exit_code, result.stderr)

        return size

    async def open_file(self, path: str, writer: BinaryIO) -> int:
        """Stream the contents of a file into writer and return the number of bytes."""
        path = self.resolve(path)
        log.debug(f"downloading {path} from {self.target}")

        probe = await self._existing(path)

        if probe.is_dir:
            raise RemoteIsADirectoryError.for_path(path)

        parent, name = posixpath.split(path)

        # -h archives the file a symlink points to instead of the link itself
        command = f"tar chf - -C {quote(parent)} {quote('./' + name)}"

        def extract(stdout: BinaryIO) -> int:
            try:
                with tarfile.open(fileobj=stdout, mode="r|") as archive:
                    member = archive.next()

                    if member is None or not member.isfile():
                        raise RemoteNotFoundError.for_path(path)

                    contents = archive.extractfile(member)

                    if contents is None:
                        raise ExecutionError(f"archive of {path} has no contents")

                    copied = 0

                    while True:
                        chunk = contents.read(constants.CHUNK_SIZE)

                        if not chunk:
                            return copied

                        writer.write(chunk)
                        copied += len(chunk)
            except tarfile.TarError as e:
                raise ExecutionError(f"invalid archive of {path} received: {e}")

        copied = await self._executor.download(self.target, command, extract)
        log.debug(f"downloaded {copied} bytes from {path}")

        return copied

    #
    # Miscellaneous
    #

    async def exec(self, command: str) -> Tuple[int, str]:
        """Run a command line verbatim in the working directory of the target."""
        log.debug(f"executing '{command}' on {self.target}")

        result = await self._executor.run(
            self.target, command, cwd=self.cwd, portable=False
        )

        return result.exit_code, result.stdout
