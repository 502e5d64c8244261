"""Logging setup shared by the API process and the Celery worker."""

import logging
import logging.config

from core.config import settings


def configure_logging(level: str | None = None) -> None:
    level = (level or settings.LOG_LEVEL).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {"handlers": ["console"], "level": level},
            "loggers": {
                # SQL echo is controlled by SQLALCHEMY_ECHO, keep the logger itself quiet
                "sqlalchemy.engine": {"level": "WARNING"},
                "urllib3": {"level": "WARNING"},
            },
        }
    )
