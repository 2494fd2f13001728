"""Module defining the command-line arguments and providing a parser for them."""

from __future__ import annotations

import argparse
from typing import List, Optional

from kubefs.constants import ALL_TARGETS, DEFAULT_DIR_MODE, VERSION


class Arguments(argparse.Namespace):
    """Parsed command-line arguments."""

    target: str
    command: str

    path: str
    remote_path: str
    local_path: str
    recursive: bool
    mode: int
    cmdline: List[str]

    config: str
    namespace: Optional[str]
    kubeconfig: Optional[str]
    context: Optional[str]

    debug: bool
    timeout: Optional[int]
    workers: Optional[int]

    @classmethod
    def parse(cls, args: Optional[List[str]] = None) -> Arguments:
        """
        Parse command-line arguments from the given list of strings.

        Defaults to sys.argv if none are specified.
        """
        return cls._get_parser().parse_args(args, namespace=cls())

    @classmethod
    def _get_parser(cls) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Access the file system of Kubernetes containers over exec.",
            usage="kubefs [option...] target command [arg...]",
        )

        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {VERSION}",
            help="show the program version",
        )

        # Primary arguments
        parser.add_argument(
            "target",
            type=str,
            help=f"pod[/container], a target name from the config or {ALL_TARGETS}",
        )

        commands = parser.add_subparsers(dest="command", metavar="command")
        commands.required = True

        ls = commands.add_parser("ls", help="list a directory")
        ls.add_argument("path", type=str, nargs="?", default=".")

        stat = commands.add_parser("stat", help="show the metadata of an entry")
        stat.add_argument("path", type=str)

        get = commands.add_parser("get", help="download a file")
        get.add_argument("remote_path", type=str)
        get.add_argument(
            "local_path", type=str, nargs="?", default="-", help="default is stdout"
        )

        put = commands.add_parser("put", help="upload a file")
        put.add_argument("local_path", type=str, help="use - for stdin")
        put.add_argument("remote_path", type=str)

        rm = commands.add_parser("rm", help="remove a file or directory")
        rm.add_argument("path", type=str)
        rm.add_argument(
            "-r",
            "--recursive",
            action="store_true",
            help="remove directories and their contents",
        )

        mkdir = commands.add_parser("mkdir", help="create a directory")
        mkdir.add_argument("path", type=str)
        mkdir.add_argument(
            "-m",
            "--mode",
            type=cls._parse_mode,
            default=DEFAULT_DIR_MODE,
            help="octal permissions (default is 755)",
        )

        exec_ = commands.add_parser("exec", help="execute a command line")
        exec_.add_argument("cmdline", type=str, nargs=argparse.REMAINDER)

        # Path to (optional) config file
        parser.add_argument(
            "--config",
            type=str,
            help="path to config file (default is ~/.kubefs/config)",
            default="~/.kubefs/config",
        )

        # Cluster selection, overriding the config file
        parser.add_argument("--namespace", "-n", type=str, help="namespace of the pod")
        parser.add_argument("--kubeconfig", type=str, help="path to kubeconfig file")
        parser.add_argument("--context", type=str, help="kubeconfig context to use")

        # Enable debug output for development
        parser.add_argument(
            "--debug", action="store_true", help="enable debug information"
        )

        # Configure network timeout
        parser.add_argument(
            "--timeout",
            type=cls._parse_timeout,
            help="timeout for cluster connections in seconds",
        )

        # Configure number of exec workers
        parser.add_argument(
            "--workers", type=int, help="number of concurrent exec streams"
        )

        return parser

    @staticmethod
    def _parse_mode(arg: str) -> int:
        try:
            val = int(arg, 8)
            assert 0 <= val <= 0o7777
            return val
        except (ValueError, AssertionError):
            raise argparse.ArgumentTypeError("expected octal mode like 755")

    @staticmethod
    def _parse_timeout(arg: str) -> int:
        try:
            val = int(arg)
            assert val > 0
            return val
        except (ValueError, AssertionError):
            raise argparse.ArgumentTypeError("expected number > 0")
