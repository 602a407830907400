"""Logging setup for the gamification service.

Handlers are attached to the ``voltquest`` logger tree only, so an embedding
application keeps ownership of the root logger. Nothing is configured at
import time; ``create_app`` calls :func:`configure_logging` with the
``LOG_DIR`` and ``LOG_LEVEL`` settings.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Mapping, Optional, Union


PACKAGE_LOGGER = "voltquest"
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
LOG_FILENAME = "voltquest.log"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# Marks handlers installed here so a reconfigure only replaces its own.
_HANDLER_FLAG = "_voltquest_handler"


def configure_logging(
    log_dir: Optional[str] = None, level: Union[str, int] = "INFO"
) -> Optional[Path]:
    """Install a stream handler and, when ``log_dir`` is set, a rotating file.

    Returns the log file path, or ``None`` when logging only to stderr.
    """

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        if getattr(handler, _HANDLER_FLAG, False):
            package_logger.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_path = None
    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        log_path = directory / LOG_FILENAME
        handlers.append(
            RotatingFileHandler(
                log_path,
                maxBytes=MAX_LOG_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        )

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_FLAG, True)
        package_logger.addHandler(handler)

    package_logger.setLevel(level.upper() if isinstance(level, str) else level)
    return log_path


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """Logger under the package tree, whatever module name is passed in."""
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


def describe_context(context: Mapping[str, object]) -> str:
    """Render ``{"user_id": 3, "item_id": "x"}`` as ``item_id=x user_id=3``."""
    if not context:
        return "-"
    return " ".join(f"{key}={context[key]}" for key in sorted(context))
