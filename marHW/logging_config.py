"""
Logging configuration for marHW.

All modules log through children of the ``marHW`` logger. Nothing is
configured on import; call :func:`configure_logging` (or pass ``verbose`` /
``quiet`` to the batch driver) to attach a stream handler.
"""

import logging
import sys
from typing import Optional

PACKAGE_LOGGER = 'marHW'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%H:%M:%S'

# Libraries that are chatty at INFO level when a distributed client is in use
NOISY_LOGGERS = (
    'distributed.scheduler',
    'distributed.shuffle._scheduler_plugin',
    'distributed.worker',
)


def get_logger(name: str) -> logging.Logger:
    """Return a logger nested under the package logger."""
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + '.'):
        return logging.getLogger(name)
    return logging.getLogger(f'{PACKAGE_LOGGER}.{name}')


def configure_logging(verbose: Optional[bool] = None,
                      quiet: Optional[bool] = None,
                      stream=None) -> logging.Logger:
    """
    Configure the package logger.

    Parameters
    ----------
    verbose : bool, optional
        Log at DEBUG level.
    quiet : bool, optional
        Log warnings and errors only. Takes precedence over ``verbose``.
    stream : file-like, optional
        Destination for log records. Defaults to ``sys.stderr``.

    Returns
    -------
    logging.Logger
        The configured package logger.
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    # Replace our own handler rather than stacking a new one on every call
    for handler in list(logger.handlers):
        if getattr(handler, '_marHW_handler', False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler._marHW_handler = True
    logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)

    return logger
