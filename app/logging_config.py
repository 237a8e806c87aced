import logging, logging.config

# Client libraries that log every request at INFO; fetch and query runs log their own summaries
QUIET_LOGGERS = ("httpx", "httpcore", "google_genai", "asyncio")


def setup_logging(level: str = "INFO", access_log: bool = True, quiet_level: str = "WARNING"):
    level = level.upper()
    loggers = {
        "uvicorn.error": {"level": level, "handlers": ["console"], "propagate": False},
        "uvicorn.access": {"level": ("INFO" if access_log else "WARNING"),
                           "handlers": ["access"], "propagate": False},
        # scheduler ticks, job retries and pipeline progress
        "app": {"level": level, "handlers": ["console"], "propagate": False},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": quiet_level.upper(), "handlers": ["console"], "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                        "datefmt": "%Y-%m-%d %H:%M:%S"},
            "access_simple": {"format": "%(message)s"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "default"},
            "access": {"class": "logging.StreamHandler", "formatter": "access_simple"},
        },
        "loggers": loggers,
        "root": {"level": level, "handlers": ["console"]},
    })
