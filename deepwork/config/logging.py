# deepwork/config/logging.py
import json
import logging
import os
import time
from logging.config import dictConfig

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("LOG_JSON", "0") in ("1", "true", "True")


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": int(time.time() * 1000),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _json_formatter():
    return JsonFormatter()


def configure_logging(level: str = None, as_json: bool = None) -> None:
    """
    Configure root logging. Call once at app start.
    Uses JSON if LOG_JSON=1, otherwise pretty console.
    """
    level = (level or LOG_LEVEL).upper()
    as_json = LOG_JSON if as_json is None else as_json

    if as_json:
        formatter = {"()": "deepwork.config.logging._json_formatter"}
    else:
        formatter = {
            "format": "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
            "datefmt": "%H:%M:%S"
        }

    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": level
            }
        },
        "root": {"level": level, "handlers": ["console"]},
    })
