# grading_progress/core/logging_config.py
import logging.config

from grading_progress.core.config import settings


def setup_logging(level: str | None = None) -> None:
    """Configure root logging with a single console handler."""
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
            "root": {
                "handlers": ["console"],
                "level": (level or settings.LOG_LEVEL).upper(),
            },
            "loggers": {
                # request lines for every poll round are noise at INFO
                "httpx": {"level": "WARNING"},
            },
        }
    )
