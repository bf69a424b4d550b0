from __future__ import annotations

import logging
import sys

ROOT_LOGGER_NAME = "epicflow"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Route epicflow progress output to stdout.

    Safe to call more than once; the previous handler is replaced so each CLI
    invocation writes to the stream that is current at call time.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if verbose:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    else:
        handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger
