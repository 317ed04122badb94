"""Application identifiers and default filesystem locations for shepherd.

The registry file lives under the XDG config directory. Nothing is created
at import time.
"""

import os
from pathlib import Path

# --- Identity ---
APP_NAME = "shepherd"
"""str: The application name, also used as the logger name."""

CONFIG_ENV_VAR = "SHEPHERD_CONFIG"
"""str: Environment variable overriding the config file location."""

# --- Configuration Paths ---
_XDG_CONFIG = os.environ.get("XDG_CONFIG_HOME")
CONFIG_DIR: Path = (
    Path(_XDG_CONFIG) if _XDG_CONFIG else Path.home() / ".config"
) / APP_NAME
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.yaml"
"""Path: The default registry file."""

# --- Defaults ---
DEFAULT_SOURCE_DIR = "~/sources"
"""str: Root of the working-copy tree when the registry does not set one."""

DEFAULT_REMOTE = "origin"
"""str: The remote fetched for every working copy."""

MAX_LOG_SIZE = 5 * 1024 * 1024
"""int: Bytes before the log file is rotated."""

LOG_BACKUP_COUNT = 5
"""int: Rotated log files kept on disk."""
