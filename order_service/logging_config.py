"""
logging_config.py — Log setup for the order service process

One format for every logger: request threads and the cache listener thread
are told apart by thread name. Output goes to stdout and, when a file is
configured, to that file as well. Chatty client libraries are held at WARNING.
"""

import logging
import sys

LOG_FORMAT = '%(asctime)s - %(levelname)s - [PID:%(process)d] [%(threadName)s] - %(name)s - %(message)s'

QUIET_LIBRARIES = ("pika", "httpx", "sqlalchemy.engine")


def setup_logging(level="INFO", log_file="order_service.log"):
    """
    Installs the root handlers. Called once by the app factory at startup.

    Args:
        level (str): Root level name; unknown names fall back to INFO.
        log_file (str | None): Extra file destination, skipped when empty.
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name):
    return logging.getLogger(name)
