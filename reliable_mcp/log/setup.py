import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from reliable_mcp.local.config import effective_settings as config


class MainFormatter(logging.Formatter):
    """
    Formats wrapper diagnostics with a `[reliable-mcp]` prefix.

    Records carrying a `label` attribute (set through `extra=`) are prefixed
    with `[reliable-mcp:<label>]` so output from several wrapped servers in
    one client log can be told apart.
    """

    def __init__(self, with_timestamp: bool = False) -> None:
        fmt = '[%(prefix)s] %(levelname)s: %(message)s'
        if with_timestamp:
            fmt = '%(asctime)s - ' + fmt
        super().__init__(fmt)

    def format(self, record):
        label = getattr(record, "label", None)
        record.prefix = f"{config.APP_NAME}:{label}" if label else config.APP_NAME
        return super().format(record)


def _resolve_level(level_name: str) -> int:
    level = logging.getLevelName(str(level_name).upper())
    return level if isinstance(level, int) else logging.WARNING


def setup_logging(console_level: Optional[int] = None) -> None:
    """
    Configures the root logger for the wrapper.
    Sets up a console handler on stderr (stdout belongs to the wrapped process)
    and an optional rotating file handler, clearing any previously configured
    handlers to prevent duplication.

    :param console_level: The logging level for the console output. Defaults to `LOG_LEVEL`.
    """
    if console_level is None:
        console_level = _resolve_level(config.LOG_LEVEL)

    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    # --- File Handler (conditional) ---
    if config.LOG_FILE_PATH:
        try:
            config.LOG_FILE_PATH.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                config.LOG_FILE_PATH,
                maxBytes=config.LOG_FILE_MAX_BYTES,
                backupCount=config.LOG_FILE_BACKUP_COUNT,
                encoding="utf-8",
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(MainFormatter(with_timestamp=True))
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.error(f"Failed to initialize file logging handler at '{config.LOG_FILE_PATH}': {e}")
