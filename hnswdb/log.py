"""Logging setup for applications embedding hnswdb."""

import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: int = logging.INFO, name: str = "hnswdb") -> logging.Logger:
    """
    Attach a stream handler to the library logger.

    Safe to call more than once; a logger that already has handlers is left
    as it is apart from its level.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
