"""
Logging for the command-line tools.

Progress banners go to stdout; log records go to stderr (and optionally a
file) so the two never interleave in a redirected run.
"""
import logging
import sys
from typing import Optional


PACKAGE_LOGGER_NAME = "airway_generation_labeling"

CONSOLE_FORMAT = '%(levelname)s %(name)s: %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Route the package's log records to stderr and, optionally, a log file.

    Args:
        level: Console logging level (e.g. logging.DEBUG, logging.WARNING)
        log_file: Optional path of a log file. The file receives INFO and up
            even when the console is quieter, so a batch run keeps a
            per-case record.
    """
    logger = logging.getLogger(PACKAGE_LOGGER_NAME)

    # A second call (batch driver, tests) replaces the handlers of the first
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    file_level = min(level, logging.INFO)
    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%H:%M:%S'))
        logger.addHandler(file_handler)

    logger.setLevel(file_level if log_file else level)
    logger.debug("Logging initialized (console level %s)", logging.getLevelName(level))
    return logger
