"""Logging setup for the subtitle service.

Console output always. Rotating files for service and error logs outside
tests. JSON lines in production.
"""

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict, List, Optional

from toolbox_subtitles.config import settings

APP_LOGGER = "toolbox_subtitles"

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(filename)s %(lineno)d %(message)s"

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = {
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "aiosqlite": "WARNING",
    "alembic": "INFO",
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
}


def _file_handlers(log_dir: Path, formatter: str) -> Dict[str, Dict[str, Any]]:
    log_dir.mkdir(parents=True, exist_ok=True)
    rotating = {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": formatter,
        "maxBytes": settings.log_file_max_bytes,
        "backupCount": settings.log_file_backup_count,
        "encoding": "utf-8",
    }
    return {
        "service_file": {**rotating, "level": "INFO", "filename": str(log_dir / "subtitles.log")},
        "error_file": {**rotating, "level": "ERROR", "filename": str(log_dir / "errors.log")},
    }


def build_logging_config(
    environment: str,
    log_level: str = "INFO",
    log_dir: Optional[Path] = None,
) -> Dict[str, Any]:
    """Return a ``dictConfig`` mapping for the given environment.

    File handlers are only added when ``log_dir`` is given and the
    environment is not ``testing``.
    """
    formatter = "json" if environment == "production" else "text"
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": "DEBUG" if environment == "development" else "INFO",
            "formatter": formatter,
            "stream": "ext://sys.stdout",
        }
    }
    if log_dir is not None and environment != "testing":
        handlers.update(_file_handlers(log_dir, formatter))
    handler_names: List[str] = list(handlers)

    loggers: Dict[str, Dict[str, Any]] = {
        APP_LOGGER: {"level": log_level, "handlers": handler_names, "propagate": False},
        "sqlalchemy.engine": {
            "level": "INFO" if environment == "development" else "WARNING",
            "handlers": handler_names,
            "propagate": False,
        },
    }
    for name, level in QUIET_LOGGERS.items():
        loggers[name] = {"level": level, "handlers": handler_names, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "text": {"format": TEXT_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
            "json": {"()": "pythonjsonlogger.jsonlogger.JsonFormatter", "format": JSON_FORMAT},
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": log_level, "handlers": handler_names},
    }


def setup_logging() -> None:
    """Apply the logging configuration for the current settings."""
    logging.config.dictConfig(
        build_logging_config(settings.environment, settings.log_level, Path(settings.log_dir))
    )
    logging.getLogger(APP_LOGGER).info(
        "Logging initialized - Environment: %s, Level: %s",
        settings.environment,
        settings.log_level,
    )


def get_logger(name: str) -> logging.Logger:
    """Logger nested under the application logger."""
    if name == APP_LOGGER or name.startswith(f"{APP_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_LOGGER}.{name}")
