"""
Logging setup for KomRPC with console and optional file output.
"""
import logging
import sys
from pathlib import Path
from typing import Optional, Union

_logger: Optional[logging.Logger] = None

LOGGER_NAME = "KomRPC"


def resolve_level(level: Union[str, int, None]) -> int:
    """Turn a level name ("debug", "INFO") or number into a logging constant."""
    if isinstance(level, int):
        return level
    if not level:
        return logging.INFO
    candidate = str(level).strip().upper()
    value = getattr(logging, candidate, None)
    if isinstance(value, int):
        return value
    if candidate.isdigit():
        return int(candidate)
    return logging.INFO


def setup_logger(name: str = LOGGER_NAME, log_file: Optional[str] = "komrpc.log", level: Union[str, int] = logging.INFO) -> logging.Logger:
    """
    Set up the application logger with a console handler and, optionally, a file handler.

    Calling it again reconfigures the same logger, so the entry point can apply
    the level and file from the loaded configuration.

    Args:
        name: Logger name
        log_file: Path to log file. If None, only console logging is enabled
        level: Logging level name or number

    Returns:
        Configured logger instance
    """
    global _logger

    level = resolve_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    detailed_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_formatter = logging.Formatter('[%(levelname)s] %(message)s')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # file gets everything
            file_handler.setFormatter(detailed_formatter)
            logger.addHandler(file_handler)
            logger.setLevel(min(level, logging.DEBUG))
        except OSError as e:
            logger.warning(f"Could not set up file logging: {e}")

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Get the configured logger instance."""
    global _logger
    if _logger is None:
        _logger = setup_logger(log_file=None)
    return _logger
