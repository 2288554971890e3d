"""Logger factories for caches and stores.

Any logging.Logger can be handed to a LoadingCache; these helpers build the
two common ones.
"""

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def nop_logger(name: str = "fcache.nop") -> logging.Logger:
    """Return a logger that discards everything."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger


def stdout_logger(name: str = "fcache", level: int = logging.INFO) -> logging.Logger:
    """Return a logger writing to standard output."""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if any(getattr(h, "_fcache_stdout", False) for h in logger.handlers):
        return logger
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._fcache_stdout = True
    logger.addHandler(handler)
    logger.propagate = False
    return logger
