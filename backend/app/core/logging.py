from __future__ import annotations

import logging.config

from backend.app.core.config import LOG_LEVEL


def configure_logging(level: str | None = None) -> None:
    """
    Configuration logging applicative (stdlib).

    - un seul handler console (root), format horodaté
    - les loggers `backend.*` suivent LOG_LEVEL et remontent au root
    - sqlalchemy reste en WARNING (utiliser SQLALCHEMY_ECHO pour le SQL)
    """
    lvl = (level or LOG_LEVEL).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": "ext://sys.stderr",
                },
            },
            "root": {"handlers": ["console"], "level": "WARNING"},
            "loggers": {
                "backend": {"level": lvl},
                "sqlalchemy": {"level": "WARNING"},
            },
        }
    )
