"""
Logging configuration
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from tasksync.config.settings import settings
from tasksync.config.constants import LOG_FORMAT, LOG_DATE_FORMAT

# Transport libraries log every Motion request at INFO
QUIET_LOGGERS = ("httpx", "httpcore")


def _with_format(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    return handler


def setup_logger(
    name: str = "tasksync",
    level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the sync logger
    
    The console shows INFO and above. A log file, when configured, also
    receives the DEBUG lines of operation log transitions.
    
    Args:
        name: Logger name
        level: Level name, defaults to LOG_LEVEL (unknown names mean INFO)
        log_file: Log file path, defaults to LOG_FILE
        
    Returns:
        Configured logger instance
    """
    level = level or settings.LOG_LEVEL
    log_file = log_file or settings.LOG_FILE
    
    sync_logger = logging.getLogger(name)
    sync_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(sync_logger.handlers):
        sync_logger.removeHandler(handler)
        handler.close()
    
    sync_logger.addHandler(_with_format(logging.StreamHandler(sys.stdout), logging.INFO))
    
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        sync_logger.addHandler(_with_format(logging.FileHandler(log_path), logging.DEBUG))
    
    for quiet in QUIET_LOGGERS:
        logging.getLogger(quiet).setLevel(logging.WARNING)
    
    return sync_logger


# Global logger instance
logger = setup_logger()
