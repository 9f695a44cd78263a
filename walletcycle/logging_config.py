import logging
import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def build_logging_config(log_file: str = "walletcycle.log", level: str = LOG_LEVEL) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-6s %(name)s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": sys.stdout,
            },
            "file": {
                "class": "logging.FileHandler",
                "formatter": "default",
                "filename": log_file,
                "mode": "a",
            },
        },
        "loggers": {
            "walletcycle": {
                "level": level,
                "handlers": ["console", "file"],
                "propagate": False,
            },
            # Keep library chatter down
            "web3": {
                "level": "WARNING",
                "handlers": ["console", "file"],
                "propagate": False,
            },
            "aiohttp": {
                "level": "WARNING",
                "handlers": ["console", "file"],
                "propagate": False,
            },
        },
        "root": {
            "level": "WARNING",
            "handlers": ["console"],
        },
    }


def setup_logging(log_file: str = "walletcycle.log", level: str = LOG_LEVEL):
    """Apply the logging configuration."""
    logging.config.dictConfig(build_logging_config(log_file, level))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
