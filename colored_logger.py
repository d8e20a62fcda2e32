import logging
import sys
from typing import Any, Dict, Optional

# Custom levels used by the export pipeline
TRACE_LEVEL = 5
PROGRESS_LEVEL = 22
SUCCESS_LEVEL = 25
NOTICE_LEVEL = 35
FAILURE_LEVEL = 45

logging.addLevelName(TRACE_LEVEL, "TRACE")
logging.addLevelName(PROGRESS_LEVEL, "PROGRESS")
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")
logging.addLevelName(NOTICE_LEVEL, "NOTICE")
logging.addLevelName(FAILURE_LEVEL, "FAILURE")

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the whole line by level when writing to a terminal."""

    COLORS = {
        "TRACE": "\033[90m",  # Gray
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "PROGRESS": "\033[94m",  # Bright Blue
        "SUCCESS": "\033[92m",  # Bright Green
        "WARNING": "\033[33m",  # Yellow
        "NOTICE": "\033[96m",  # Bright Cyan
        "ERROR": "\033[31m",  # Red
        "FAILURE": "\033[91m",  # Bright Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_color: Optional[bool] = None,
    ):
        super().__init__(fmt, datefmt)
        self.use_color = use_color

    def _should_color(self) -> bool:
        if self.use_color is not None:
            return self.use_color
        return sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if not self._should_color():
            return message

        level_color = self.COLORS.get(record.levelname, "")
        return f"{level_color}{message}{self.RESET}"


def parse_log_level(level: Any, default: int = logging.INFO) -> int:
    """
    Accept either a numeric level or a level name ("debug", "PROGRESS", ...).
    Unknown names fall back to `default`.
    """
    if isinstance(level, int):
        return level
    if not level:
        return default

    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else default


def setup_colored_logging(
    level: int = logging.INFO, log_file: Optional[str] = None
) -> None:
    """
    Configure the root logger for an export worker.

    Args:
        level: Logging level (default: logging.INFO)
        log_file: Optional path of a plain-text log file written alongside stderr
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Avoid duplicate lines when a worker is configured more than once
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            ColoredFormatter(LOG_FORMAT, DATE_FORMAT, use_color=False)
        )
        root_logger.addHandler(file_handler)


class EnhancedLogger:
    """Logger wrapper exposing the custom levels and an optional context prefix."""

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        self._logger = logger
        self._context = dict(context or {})
        self._prefix = (
            "[" + " ".join(f"{k}={v}" for k, v in self._context.items()) + "] "
            if self._context
            else ""
        )

    def with_context(self, **fields: Any) -> "EnhancedLogger":
        """Return a logger that prefixes every message with the given fields."""
        merged = dict(self._context)
        merged.update(fields)
        return EnhancedLogger(self._logger, merged)

    @property
    def context(self) -> Dict[str, Any]:
        return dict(self._context)

    def _log(self, level: int, msg, args, kwargs) -> None:
        if self._prefix:
            msg = self._prefix + str(msg)
        self._logger.log(level, msg, *args, **kwargs)

    def trace(self, msg, *args, **kwargs):
        """Very detailed debugging, e.g. every index query."""
        self._log(TRACE_LEVEL, msg, args, kwargs)

    def debug(self, msg, *args, **kwargs):
        self._log(logging.DEBUG, msg, args, kwargs)

    def info(self, msg, *args, **kwargs):
        self._log(logging.INFO, msg, args, kwargs)

    def progress(self, msg, *args, **kwargs):
        """Periodic progress updates while archiving."""
        self._log(PROGRESS_LEVEL, msg, args, kwargs)

    def success(self, msg, *args, **kwargs):
        self._log(SUCCESS_LEVEL, msg, args, kwargs)

    def warning(self, msg, *args, **kwargs):
        self._log(logging.WARNING, msg, args, kwargs)

    def notice(self, msg, *args, **kwargs):
        """Important but expected conditions, e.g. a size-constrained export."""
        self._log(NOTICE_LEVEL, msg, args, kwargs)

    def error(self, msg, *args, **kwargs):
        self._log(logging.ERROR, msg, args, kwargs)

    def failure(self, msg, *args, **kwargs):
        """An export that could not be completed."""
        self._log(FAILURE_LEVEL, msg, args, kwargs)

    def critical(self, msg, *args, **kwargs):
        self._log(logging.CRITICAL, msg, args, kwargs)

    # Delegate other logger methods
    def __getattr__(self, name):
        return getattr(self._logger, name)


def get_colored_logger(name: str, **context: Any) -> EnhancedLogger:
    """
    Get an enhanced logger with the custom export levels.

    Args:
        name: Logger name (typically __name__)
        **context: Optional fields prefixed to every message

    Returns:
        EnhancedLogger instance
    """
    return EnhancedLogger(logging.getLogger(name), context)
