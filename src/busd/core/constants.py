"""Compiled-in paths, exit codes and banners."""

from __future__ import annotations

from busd import __version__

SYSTEM_CONFIG_FILE = "/etc/busd/system.yaml"
SESSION_CONFIG_FILE = "/etc/busd/session.yaml"

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

# Highest descriptor number accepted by --print-address
MAX_DESCRIPTOR = 2**31 - 1

# Descriptors 0-2 are inherited standard streams and are never closed
LAST_STANDARD_STREAM = 2

USAGE = "busd [--version] [--session] [--system] [--config-file=FILE] [--print-address[=descriptor]]"

VERSION_BANNER = (
    f"busd message bus daemon {__version__}\n"
    "This is free software; see the source for copying conditions.\n"
    "There is NO warranty; not even for MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE."
)
