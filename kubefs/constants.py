"""Module defining various global constants."""

# kubefs version
VERSION = "1.0.0"

# Special exit code for when kubefs itself fails.
KUBEFS_ERROR_CODE = 254

# Namespace used when neither the caller nor the config file picks one.
DEFAULT_NAMESPACE = "default"

# Shell used to interpret every command line inside a container.
SHELL = "/bin/sh"

# Exit code reported by POSIX shells when a command does not exist.
COMMAND_NOT_FOUND_CODE = 127

# Size of the chunks written to or read from an exec stream during file transfers.
CHUNK_SIZE = 64 * 1024

# Files of unknown size are spooled in memory up to this size, then to disk.
SPOOL_MAX_SIZE = 8 * 1024 * 1024

# Default permissions of directories created without an explicit mode.
DEFAULT_DIR_MODE = 0o755

# Selector that addresses every configured target of a multi-target file system.
ALL_TARGETS = "*"
