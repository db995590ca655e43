import json
import logging
import os
from logging.config import dictConfig
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line; quotes, newlines and tracebacks are escaped."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def default_log_level() -> str:
    """LOG_LEVEL wins; otherwise DEBUG for local development and INFO elsewhere."""
    level = os.getenv("LOG_LEVEL")
    if level:
        return level.upper()
    return "DEBUG" if os.getenv("ENV") == "dev" else "INFO"


def setup_logging(level: Optional[str] = None) -> None:
    formatter = "json" if os.getenv("LOG_FORMAT", "text").lower() == "json" else "default"
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT},
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter,
                },
            },
            "root": {
                "level": level or default_log_level(),
                "handlers": ["console"],
            },
            "loggers": {
                # SQL echo is controlled by SQL_DEBUG, keep the engine quiet otherwise
                "sqlalchemy.engine": {"level": "WARNING"},
                "httpx": {"level": "WARNING"},
            },
        }
    )
