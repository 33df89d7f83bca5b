"""
Logging configuration for the websession API server and management commands.

Everything under the "websession" logger goes to stdout and, when
LOG_FILE is set, to a file as well. The SSH and LDAP client libraries
log every connection they make; they are held at WARNING so that
delegated logins do not flood the log.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

from websession.core.settings import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Client libraries used by the delegated auth methods
QUIET_LOGGERS = ("paramiko", "ldap3")


def resolve_level(level: Union[int, str, None]) -> int:
    """Turn a level name such as "debug" into a number; unknown names give INFO."""
    if level is None:
        level = settings.log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(
    name: str = "websession",
    level: Union[int, str, None] = None,
    log_file: Optional[Path] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Configure the websession logger.

    Args:
        name: Logger to configure
        level: Level number or name; defaults to LOG_LEVEL
        log_file: Also log to this file; defaults to LOG_FILE
        console: Log to stdout

    Returns:
        The configured logger

    Example:
        >>> setup_logging(level="DEBUG")
        >>> logging.getLogger("websession.session.handler").debug("Touching session")
    """
    level = resolve_level(level)
    if log_file is None and settings.log_file:
        log_file = Path(settings.log_file)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for library in QUIET_LOGGERS:
        logging.getLogger(library).setLevel(max(level, logging.WARNING))

    return logger
