"""
This module contains the configuration settings for reliable-mcp.
It defines shutdown timings, exit status conventions, logging options and
the paths used by the CLI. Values can be overridden through environment
variables (or a `.env` file) prefixed with `RELIABLE_MCP_`.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

#* --- Core Paths ---
HOME_DIR = pathlib.Path(os.getenv("RELIABLE_MCP_HOME", pathlib.Path.home() / ".reliable-mcp"))
OVERRIDES_JSON_PATH = HOME_DIR / "overrides.json"

#* --- Identification ---
APP_NAME = "reliable-mcp"
APP_VERSION = "1.0.0"
PROCESS_TITLE_PREFIX = APP_NAME

#* --- Shutdown Settings ---
GRACEFUL_SHUTDOWN_TIMEOUT = float(os.getenv("RELIABLE_MCP_GRACEFUL_SHUTDOWN_TIMEOUT", "3"))   # seconds before force-killing
TERMINATION_CONFIRM_TIMEOUT = float(os.getenv("RELIABLE_MCP_TERMINATION_CONFIRM_TIMEOUT", "2"))  # seconds to confirm the root is gone
SIGNAL_EXIT_GRACE = float(os.getenv("RELIABLE_MCP_SIGNAL_EXIT_GRACE", "5"))  # seconds before the wrapper force-exits after a signal
FAULT_EXIT_GRACE = float(os.getenv("RELIABLE_MCP_FAULT_EXIT_GRACE", "1"))    # seconds before the wrapper force-exits after a crash

#* --- Exit Status Conventions ---
TIMEOUT_EXIT_CODE = 124
SIGNAL_EXIT_BASE = 128          # child killed by signal N exits with 128 + N
SPAWN_NOT_FOUND_EXIT_CODE = 127
SPAWN_PERMISSION_EXIT_CODE = 126
SPAWN_FAILURE_EXIT_CODE = 1
FAULT_EXIT_CODE = 1

#* --- Logging ---
LOG_LEVEL = os.getenv("RELIABLE_MCP_LOG_LEVEL", "WARNING").upper()
LOG_FILE_PATH = pathlib.Path(os.environ["RELIABLE_MCP_LOG_FILE"]) if os.getenv("RELIABLE_MCP_LOG_FILE") else None
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 3

#* --- Process Discovery (list / cleanup commands) ---
CLEANUP_PATTERNS = ("mcp", "modelcontextprotocol", "reliable-mcp")
DEFAULT_CLEANUP_PATTERN = "mcp"
COMMAND_LINE_DISPLAY_WIDTH = 100

#* --- MODIFIABLE SETTINGS (Changeable through overrides.json) ---
MODIFIABLE_SETTINGS = {
    "GRACEFUL_SHUTDOWN_TIMEOUT", "TERMINATION_CONFIRM_TIMEOUT",
    "SIGNAL_EXIT_GRACE", "FAULT_EXIT_GRACE",
    "LOG_LEVEL", "LOG_FILE_PATH",
    "CLEANUP_PATTERNS",
}
