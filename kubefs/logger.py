"""Module containing utilities for logging, along with a standard logger."""

import logging
import time
from typing import Any, Optional


def _get_logger(name: Optional[str] = "kubefs") -> logging.Logger:
    stderrOutput = logging.StreamHandler()

    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    stderrOutput.setFormatter(formatter)

    logger = logging.getLogger(name)
    logger.addHandler(stderrOutput)

    return logger


def summarize(obj: Any, max_length: int = 255) -> str:
    """Return a stringified representation of the object up to the given length."""
    stringified_obj = str(obj)

    if len(stringified_obj) <= max_length:
        return stringified_obj
    else:
        return stringified_obj[: max_length - 3] + "..."


def log_exec(target: Any, command: str, exit_code: int, t_start: float) -> None:
    """Log a finished remote command with its exit code and duration at debug level."""
    # Explicit check before logging because summarize is relatively slow
    if log.isEnabledFor(logging.DEBUG):
        t_millis = round((time.time() - t_start) * 1000)
        log.debug(f"exec::{target} {summarize(command)} = {exit_code} - {t_millis} ms")


# Default logger
log = _get_logger()
