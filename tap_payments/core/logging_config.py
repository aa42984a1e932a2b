import logging.config
import sys

# Canal operacional: fallas que no llegan al usuario pero alguien debe ver
# (auditoría no escrita, Redis degradado).
OPERATIONAL_LOGGER = "tap_payments.operational"


def setup_logging(log_level: str = "INFO") -> None:
    log_level = log_level.upper()

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "simple": {
                "format": "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s",
            },
        },
        "handlers": {
            "console": {
                "formatter": "simple",
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
            },
            "error_console": {
                "formatter": "simple",
                "class": "logging.StreamHandler",
                "stream": sys.stderr,
                "level": "WARNING",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": log_level,
            },
            "uvicorn.access": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False,
            },
            "tap_payments": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False,
            },
            OPERATIONAL_LOGGER: {
                "handlers": ["error_console"],
                "level": "WARNING",
                "propagate": False,
            },
        },
    }
    logging.config.dictConfig(logging_config)
