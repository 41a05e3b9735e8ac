from __future__ import annotations

from typing import Final

CONNECTOR_NAME: Final[str] = "singer"
SOURCE_TYPE: Final[str] = "singer"

# Only directories with this prefix under the venv root are treated as taps.
TAP_DIR_PREFIX: Final[str] = "tap-"
TMP_DIR_NAME: Final[str] = "tmp"

# Relative to a tap's isolated runtime directory.
VENV_BIN_DIR: Final[str] = "bin"
VENV_PYTHON: Final[str] = "python3"
VENV_PIP: Final[str] = "pip3"

# External process timeouts (seconds)
VENV_TIMEOUT_S: Final[int] = 10 * 60
PIP_UPGRADE_TIMEOUT_S: Final[int] = 10 * 60
TAP_INSTALL_TIMEOUT_S: Final[int] = 20 * 60
TAP_UPDATE_TIMEOUT_S: Final[int] = 20 * 60
DISCOVER_TIMEOUT_S: Final[int] = 2 * 60
SYNC_TIMEOUT_S: Final[int] = 60 * 60

DEFAULT_INSTALL_WORKERS: Final[int] = 4

# Streaming parser line bound
MAX_LINE_BYTES: Final[int] = 1024 * 1024

# Line-protocol message types
SCHEMA: Final[str] = "SCHEMA"
STATE: Final[str] = "STATE"
RECORD: Final[str] = "RECORD"

REFRESH_WINDOW_HOURS: Final[int] = 24
