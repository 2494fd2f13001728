"""
Module implementing the command-line interface and invoking the main logic of kubefs.

kubefs runs a single file system command against a container, or against every target
defined in the config file at once, and prints the result. The exit code is that of the
remote command for exec, 0 for other successful commands, and KUBEFS_ERROR_CODE for
kubefs failures.
"""

import logging
import signal
import sys
from typing import List, NoReturn, Optional

from kubefs.commands import Commands
import kubefs.constants as constants
from kubefs.logger import log
from .args import Arguments


def main(arguments: Optional[List[str]] = None) -> NoReturn:
    """
    Run a kubefs command with the given arguments.

    Defaults to parsing command-line arguments from sys.argv if none are specified.
    """
    # Parse command-line arguments.
    args = Arguments.parse(arguments)

    # Configure debug logging.
    if args.debug:
        log.setLevel(logging.DEBUG)
    else:
        log.setLevel(logging.ERROR)

    try:
        exit_code = Commands(args).run()
    except KeyboardInterrupt:
        exit_code = 128 + signal.SIGINT
    except Exception as e:
        log.error(f"failed to run command: {e}")
        exit_code = constants.KUBEFS_ERROR_CODE

    sys.exit(exit_code)