"""Logging configuration for the LLM vetting tool."""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

NOISY_LOGGERS = ["httpx", "httpcore", "uvicorn.access"]


def setup_logging(
    verbosity: int = 1,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Set up logging with Rich formatting.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2=DEBUG, 3=DEBUG+libs).
        log_file: Optional path to log file.

    Returns:
        Configured package logger.
    """
    level_map = {
        0: logging.WARNING,
        1: logging.INFO,
        2: logging.DEBUG,
        3: logging.DEBUG,
    }
    level = level_map.get(verbosity, logging.DEBUG if verbosity > 3 else logging.INFO)

    logger = logging.getLogger("llm_vetting")
    logger.setLevel(level)
    logger.handlers.clear()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=verbosity >= 2,
        show_path=verbosity >= 2,
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 3,
    )
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # file always gets everything
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)

    if verbosity < 3:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return logger

