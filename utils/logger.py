import logging
import os
from typing import Optional

LOGGER_NAME = "playlist_submit"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_logger = logging.getLogger(LOGGER_NAME)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure root logging for the console and (optionally) a log file."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=str(level or "INFO").upper(), format=LOG_FORMAT, handlers=handlers, force=True)

    # httpx logs every request at INFO; the dispatcher already does.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def log_info(message: str) -> None:
    _logger.info(message)


def log_success(message: str) -> None:
    _logger.info(f"✅ {message}")


def log_warning(message: str) -> None:
    _logger.warning(message)


def log_error(message: str) -> None:
    _logger.error(message)
