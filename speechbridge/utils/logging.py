"""Logging configuration and utilities."""

import json
import logging
import logging.handlers
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

import structlog


REDACTED = "***"

_SECRET_KEY = re.compile(r"(secret|api_key|apikey|token|password|authorization|credential)", re.IGNORECASE)

# Attributes every LogRecord carries; anything else was added by the caller
_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


def redact_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """structlog processor masking values stored under secret-looking keys."""
    for key in list(event_dict):
        if key != "event" and _SECRET_KEY.search(key) and event_dict[key] is not None:
            event_dict[key] = REDACTED
    return event_dict


def setup_logging(
    debug: bool = False,
    log_file: bool = False,
    log_level: str = "INFO",
    log_format: str = "json",
    log_dir: Optional[Union[str, Path]] = None,
    file_rotation_mb: int = 10,
    file_backup_count: int = 7,
) -> Optional[Path]:
    """
    Configure structured logging for the application.

    Args:
        debug: Enable debug logging (overrides log_level)
        log_file: Whether to log to file in addition to the console
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Console format, ``json`` or ``dev``
        log_dir: Directory for log files
        file_rotation_mb: File rotation size in MB
        file_backup_count: Number of rotated files to keep

    Returns:
        Path of the log file, when file logging is enabled
    """
    if debug:
        log_level = "DEBUG"
    level = getattr(logging, log_level.upper(), logging.INFO)

    dev_console = log_format == "dev" or (sys.stderr.isatty() and log_format != "json")

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            redact_secrets,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
            if dev_console else structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Console output goes to stderr so command output on stdout stays clean
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        if dev_console else JsonFormatter()
    )
    root_logger.addHandler(console_handler)
    root_logger.setLevel(level)

    if not log_file:
        return None

    log_dir = Path(log_dir or "./logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"speechbridge_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}.log"

    file_handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=file_rotation_mb * 1024 * 1024,
        backupCount=file_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(JsonFormatter())
    root_logger.addHandler(file_handler)

    structlog.get_logger().info("Logging configured", log_file=str(log_path),
                                log_level=log_level, log_format=log_format)
    return log_path


def setup_logging_from_settings(config, debug: bool = False) -> Optional[Path]:
    """Configure logging from a ``Settings`` instance's logging section."""
    section = config.logging
    return setup_logging(
        debug=debug,
        log_file=section.file_enabled,
        log_level=section.level,
        log_format=section.format,
        file_rotation_mb=section.file_rotation_mb,
        file_backup_count=section.file_backup_count,
    )


class JsonFormatter(logging.Formatter):
    """One JSON object per stdlib log record."""

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_dict: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_dict["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra = {
                key: REDACTED if _SECRET_KEY.search(key) else value
                for key, value in record.__dict__.items()
                if key not in _RECORD_FIELDS and not key.startswith("_")
            }
            if extra:
                log_dict["extra"] = extra

        return json.dumps(log_dict, ensure_ascii=False, separators=(",", ":"), default=str)
