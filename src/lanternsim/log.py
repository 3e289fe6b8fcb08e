"""
Console logging setup for scripts and demos.

Library modules only create module-level loggers; nothing is configured
until an application calls setup_logging().
"""

import copy
import logging
import sys

from colorama import Fore, Style, just_fix_windows_console

just_fix_windows_console()


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": Fore.CYAN,
        "INFO": Fore.GREEN,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "CRITICAL": Fore.RED + Style.BRIGHT,
    }

    def format(self, record):
        # Other handlers see the same record, so color a copy
        record = copy.copy(record)
        color = self.COLORS.get(record.levelname)
        if color:
            record.levelname = f"{color}{record.levelname}{Style.RESET_ALL}"

        # lanternsim.core.simulator -> l.c.simulator
        parts = record.name.split(".")
        if len(record.name) > 20 and len(parts) > 2:
            record.name = ".".join([p[0] for p in parts[:-1]] + [parts[-1]])

        return super().format(record)


def setup_logging(log_level=logging.INFO, log_file=None, logger_name="lanternsim"):
    """
    Send lanternsim logs to stdout (colored) and optionally to a file.

    Args:
        log_level: Minimum level to emit
        log_file: Optional path for a plain-text copy of the log
        logger_name: Logger to configure ("" for the root logger)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_format = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s"
    console_handler.setFormatter(ColoredFormatter(console_format, datefmt="%H:%M:%S"))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_format = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
        file_handler.setFormatter(logging.Formatter(file_format))
        logger.addHandler(file_handler)

    return logger
