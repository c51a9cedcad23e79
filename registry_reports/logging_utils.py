# registry_reports/logging_utils.py

import logging
import os
import sys
import threading
from logging.handlers import TimedRotatingFileHandler
from typing import Dict, Optional

_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Daily log files, one month kept
LOG_RETENTION_DAYS = 31

# One rotating handler per log file, shared by every logger writing to it
_file_handlers: Dict[str, logging.Handler] = {}
_file_handlers_lock = threading.Lock()


def _file_handler(log_dir: str) -> logging.Handler:
    path = os.path.abspath(os.path.join(log_dir, "registry_reports.log"))
    with _file_handlers_lock:
        handler = _file_handlers.get(path)
        if handler is None:
            handler = _new_file_handler(path)
            _file_handlers[path] = handler
    return handler


def _new_file_handler(path: str) -> logging.Handler:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    handler = TimedRotatingFileHandler(
        path,
        when="midnight",
        backupCount=LOG_RETENTION_DAYS,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    return handler


def get_logger(name: str = "registry_reports", level: Optional[str] = None) -> logging.Logger:
    """
    Return a logger writing to stdout, and to LOG_DIR when that is set.

    Handlers are attached once per logger name; later calls return the
    configured instance unchanged. All loggers share a single rotating
    handler per log file so midnight rollover happens exactly once.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    logger.addHandler(handler)

    log_dir = os.getenv("LOG_DIR", "").strip()
    if log_dir:
        logger.addHandler(_file_handler(log_dir))
    return logger
