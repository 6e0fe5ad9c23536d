"""Logging setup for the adarank package and its command line tool."""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import List, Optional, Union
from ..config.settings import get_logging_config


PACKAGE_LOGGER = "adarank"

_SIZE_UNITS = {"KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def _parse_size(size: Union[str, int]) -> int:
    """Parse a size such as '10MB' or 512 into bytes."""
    text = str(size).strip().upper()
    for suffix, factor in _SIZE_UNITS.items():
        if text.endswith(suffix):
            return int(text[:-len(suffix)]) * factor
    return int(text)


def _build_handlers(formatter: logging.Formatter, file_logging: bool,
                    log_file: str, max_file_size: Union[str, int],
                    backup_count: int) -> List[logging.Handler]:
    # Training tables go to stdout next to the CLI's own output
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if file_logging:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=_parse_size(max_file_size),
            backupCount=backup_count
        ))

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    logger_name: Optional[str] = None,
    file_logging: Optional[bool] = None,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure the package logger.

    Module loggers (``adarank.models.adarank`` and friends) propagate to it,
    so one call covers the round table, loader and pipeline messages.
    Arguments left as None fall back to the ``logging`` configuration section.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Log record format
        logger_name: Logger to configure (defaults to 'adarank')
        file_logging: Also write to a rotating log file
        log_file: Path of the log file

    Returns:
        The configured logger

    Raises:
        ValueError: If the level name is unknown
    """
    log_config = get_logging_config()

    log_level = _resolve_level(level or log_config.get("level", "INFO"))
    formatter = logging.Formatter(
        format_string or log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    if file_logging is None:
        file_logging = log_config.get("file_logging", False)

    logger = logging.getLogger(logger_name or PACKAGE_LOGGER)
    logger.setLevel(log_level)

    # Repeated setup replaces handlers instead of stacking them
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    for handler in _build_handlers(
        formatter,
        file_logging,
        log_file or log_config.get("log_file", "logs/adarank.log"),
        log_config.get("max_file_size", "10MB"),
        log_config.get("backup_count", 5),
    ):
        handler.setLevel(log_level)
        logger.addHandler(handler)

    logger.propagate = False
    logger.debug("Logging configured at %s (file logging %s)",
                 logging.getLevelName(log_level), "on" if file_logging else "off")
    return logger
