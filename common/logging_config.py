# common/logging_config.py
import logging
import os

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """
    Configure root logging for a service process.

    Safe to call more than once; handlers are only installed the first time.
    """
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
