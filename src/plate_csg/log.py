"""Optional logging setup for scripts that drive a plate build.

The library modules only create loggers; nothing here runs on import.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOGGER_NAME = "plate_csg"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: int = logging.INFO,
                  log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """Attach a stdout handler (and optionally a file handler) to the package logger.

    Calling it again replaces the handlers it installed before.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S")

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug("Logging initialized at level %s", logging.getLevelName(level))
    return logger
