"""Logging configuration utilities"""
import logging
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO", format_string: Optional[str] = None) -> None:
    """
    Configure root logging for the runner.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=format_string or LOG_FORMAT,
        stream=sys.stdout,
        force=True  # Force reconfiguration of root logger
    )

    # aiohttp access/client noise stays at WARNING unless debugging
    if level.upper() != "DEBUG":
        logging.getLogger("aiohttp").setLevel(logging.WARNING)


def log_slot_outcome(logger: logging.Logger, index: int, total: int, outcome: str, details: str = ""):
    """
    Log one fan-out slot outcome in a consistent format.

    Args:
        logger: Logger instance
        index: 0-based slot index
        total: Number of slots in the batch
        outcome: Outcome description
        details: Additional details
    """
    log_msg = f"Slot {index + 1}/{total} | {outcome}"
    if details:
        log_msg += f" | {details}"
    logger.info(log_msg)


def log_error_with_context(
    logger: logging.Logger,
    error: Exception,
    context: str,
    index: Optional[int] = None
):
    """
    Log error with context information.

    Args:
        logger: Logger instance
        error: Exception object
        context: Context description
        index: Optional slot index
    """
    slot_info = f"Slot {index + 1} | " if index is not None else ""
    logger.error(
        f"{slot_info}{context}: {type(error).__name__}: {str(error)}",
        exc_info=True
    )
