import logging
import sys
from typing import Optional

CONSOLE_FORMAT = '[%(asctime)s %(levelname)7s] %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_file: Optional[str] = None, level: int = logging.INFO):
    """
    Sets up logging to the console and, optionally, a file.
    """
    logger = logging.getLogger("onpolicy")
    logger.setLevel(level)

    # Prevent adding handlers multiple times
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str):
    """
    Returns a child logger for specific modules.
    e.g. get_logger("trainer") -> "onpolicy.trainer"
    """
    return logging.getLogger(f"onpolicy.{name}")
