"""Process-wide logging setup.

Modules log through ``logging.getLogger(__name__)``; entry points call
:func:`configure_logging` once.
"""

from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d - %(message)s"

# Third-party loggers that are noisy at INFO.
_QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "httpx")


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger with a single stderr handler."""
    logging.basicConfig(
        level=level.upper(),
        format=_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger(__name__).debug("Logging configured - level=%s", level)
