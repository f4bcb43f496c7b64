from __future__ import annotations

import logging
import logging.config

from circlerank.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    resolved = (level or settings.log_level or "INFO").upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": LOG_FORMAT}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {"handlers": ["console"], "level": resolved},
            # access log only surfaces warnings in prod
            "loggers": {
                "uvicorn.access": {"level": "WARNING" if settings.app_env == "prod" else resolved},
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
