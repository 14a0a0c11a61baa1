"""
Logging Configuration Module
============================

Helper to configure console logging for scripts and interactive sessions.

Library modules only create module loggers via ``logging.getLogger(__name__)``
and never configure handlers themselves.

Author: Manuel Schwenke
Date: 2025-02-05
"""

import logging


DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def setup_logging(level: int = logging.INFO, fmt: str = DEFAULT_FORMAT) -> None:
    """
    Configure the root logger with a single console handler.

    Parameters
    ----------
    level : int
        Root logger level, e.g. logging.DEBUG to trace index rebuilds.
    fmt : str
        Format string of the console formatter.
    """
    root = logging.getLogger()
    root.setLevel(level)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S"))

    # avoid duplicate handlers on repeated calls
    root.handlers.clear()
    root.addHandler(handler)

    # pandapower and numba are chatty at INFO level
    logging.getLogger("pandapower").setLevel(logging.WARNING)
    logging.getLogger("numba").setLevel(logging.WARNING)
