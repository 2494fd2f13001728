"""Module that implements the commands of the command-line interface."""

import contextlib
import os
import sys
from typing import Any, Callable, Dict, Optional

from kubefs.args import Arguments
from kubefs.config import Config
import kubefs.constants as constants
from kubefs.errors import TargetNotFoundError
from kubefs.filesystem import KubeContainerFs, KubeMultiTargetFs, RemoteFs
from kubefs.filesystem.common import FileEntry, FileType, Metadata, UnixPex
from kubefs.logger import log
from kubefs.target import Target

_TYPE_CHARS = {FileType.FILE: "-", FileType.DIRECTORY: "d", FileType.SYMLINK: "l"}


def format_entry(entry: FileEntry) -> str:
    """Format an entry as a line of a directory listing."""
    meta = entry.metadata

    mode = UnixPex.to_string(meta.mode) if meta.mode is not None else "?" * 9
    modified = meta.modified.strftime("%Y-%m-%d %H:%M") if meta.modified else "-"

    line = (
        f"{_TYPE_CHARS[meta.file_type]}{mode} {meta.uid or 0:>5} {meta.gid or 0:>5}"
        f" {meta.size or 0:>10} {modified} {entry.name}"
    )

    if meta.symlink is not None:
        line += f" -> {meta.symlink}"

    return line


class Commands:
    """Class that runs a single command-line command against one or more targets."""

    def __init__(self, args: Arguments):
        """Initialize the command based on command-line arguments."""
        self._args = args

    def run(self) -> int:
        """Run the command and disconnect properly in case of errors."""
        with contextlib.ExitStack() as stack:
            fs = self._open_fs()

            fs.connect()
            stack.callback(fs.disconnect)

            command: Callable[[RemoteFs], int] = getattr(self, f"_{self._args.command}")

            return command(fs)

        # https://github.com/python/mypy/issues/7726
        assert False, "unreachable"

    def _open_fs(self) -> RemoteFs:
        """Create the file system for the target on the command line."""
        args = self._args
        config = Config.load(os.path.expanduser(args.config))

        namespace = args.namespace or config.kube.namespace
        options: Dict[str, Any] = {
            "kubeconfig": args.kubeconfig or config.kube.kubeconfig,
            "context": args.context or config.kube.context,
            "timeout": args.timeout or config.kube.timeout,
            "workers": args.workers,
        }

        if args.target == constants.ALL_TARGETS:
            targets = config.targets(args.namespace)

            if not targets:
                raise TargetNotFoundError(f"no targets defined in {args.config}")

            return KubeMultiTargetFs(targets, namespace=namespace, **options)

        named = dict(zip(config.target_configs, config.targets(args.namespace)))
        target = named.get(args.target) or Target.parse(args.target, namespace)

        return KubeContainerFs(
            target.pod, target.container, target.namespace, **options
        )

    @staticmethod
    def _report(value: Any, show: Callable[[Any], None]) -> int:
        """Show the value of a single target or the per-target results of a fan-out."""
        if not isinstance(value, dict):
            show(value)
            return 0

        exit_code = 0

        for target, result in value.items():
            if result.ok:
                print(f"{target}:")
                show(result.value)
            else:
                log.error(f"{target}: {result.error}")
                exit_code = constants.KUBEFS_ERROR_CODE

        return exit_code

    #
    # Commands
    #

    def _ls(self, fs: RemoteFs) -> int:
        def show(entries: Any) -> None:
            for entry in entries:
                print(format_entry(entry))

        return self._report(fs.list_dir(self._args.path), show)

    def _stat(self, fs: RemoteFs) -> int:
        return self._report(
            fs.stat(self._args.path), lambda entry: print(format_entry(entry))
        )

    def _get(self, fs: RemoteFs) -> int:
        with self._open_local(self._args.local_path, "wb") as writer:
            fs.open_file(self._args.remote_path, writer)

        return 0

    def _put(self, fs: RemoteFs) -> int:
        with self._open_local(self._args.local_path, "rb") as reader:
            size: Optional[int] = None

            if reader is not sys.stdin.buffer:
                size = os.fstat(reader.fileno()).st_size

            return self._report(
                fs.create_file(self._args.remote_path, Metadata(size=size), reader),
                lambda copied: log.info(f"uploaded {copied} bytes"),
            )

    def _rm(self, fs: RemoteFs) -> int:
        if self._args.recursive:
            value = fs.remove_dir_all(self._args.path)
        else:
            value = fs.remove_file(self._args.path)

        return self._report(value, lambda _: None)

    def _mkdir(self, fs: RemoteFs) -> int:
        return self._report(
            fs.create_dir(self._args.path, self._args.mode), lambda _: None
        )

    def _exec(self, fs: RemoteFs) -> int:
        exit_codes = []

        def show(outcome: Any) -> None:
            exit_code, stdout = outcome

            sys.stdout.write(stdout)
            sys.stdout.flush()

            exit_codes.append(exit_code)

        failure = self._report(fs.exec(" ".join(self._args.cmdline)), show)

        return failure or next((c for c in exit_codes if c != 0), 0)

    @staticmethod
    @contextlib.contextmanager
    def _open_local(path: str, mode: str) -> Any:
        """Open a local file, where - stands for stdin or stdout."""
        if path == "-":
            yield sys.stdin.buffer if "r" in mode else sys.stdout.buffer
        else:
            with open(path, mode) as f:
                yield f
