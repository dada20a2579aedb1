"""
Centralized logging configuration.

Sets up:
- Console handler (level from LOG_LEVEL, INFO by default)
- Rotating file handler for app.log (DEBUG level)
- Separate file handler for errors.log (ERROR level)
- Quieter pymongo and realtime-hub loggers
"""

import logging
import logging.config
import os

from configs.config import get_config

cfg = get_config()


def setup_logging() -> None:
    """Configure logging once at application startup."""
    if cfg.LOG_DIR:
        os.makedirs(cfg.LOG_DIR, exist_ok=True)

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": cfg.LOG_LEVEL,
                "formatter": "default",
            },
            "app_log_handler": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": "DEBUG",
                "formatter": "default",
                "filename": os.path.join(cfg.LOG_DIR, cfg.LOG_FILE_APP),
                "maxBytes": cfg.LOG_MAX_BYTES,
                "backupCount": cfg.LOG_BACKUP_COUNT,
                "encoding": "utf8",
            },
            "error_log_handler": {
                "class": "logging.FileHandler",
                "level": "ERROR",
                "formatter": "default",
                "filename": os.path.join(cfg.LOG_DIR, cfg.LOG_FILE_ERRORS),
                "encoding": "utf8",
            },
        },
        "loggers": {
            # chatty at DEBUG
            "src.game.realtime": {"level": "INFO"},
            "pymongo": {"level": "WARNING"},
        },
        "root": {
            "level": "DEBUG",
            "handlers": ["console", "app_log_handler", "error_log_handler"],
        },
    }

    logging.config.dictConfig(logging_config)
    logging.info(
        "Logging configured (console=%s, dir=%s)",
        cfg.LOG_LEVEL, cfg.LOG_DIR or ".",
    )
