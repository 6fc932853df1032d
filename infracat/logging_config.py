"""
Logging Configuration
Sets up the package logger for the launcher.
"""
import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: int = logging.INFO, log_file: str | None = None, console: bool = True) -> None:
    """
    Configures the logger for the 'infracat' namespace.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
        console: Log to stderr. Off for the dashboard, which owns the terminal.
    """
    logger = logging.getLogger("infracat")
    logger.setLevel(level)

    # Avoid duplicate handlers when called twice
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    if console:
        console_handler = RichHandler(console=Console(stderr=True), show_path=False)
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    logger.propagate = False

    logger.debug("Logging initialized.")
