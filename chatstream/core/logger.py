"""
Application logger setup.
"""

import logging
import sys

from chatstream.core.config import get_settings

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logger(name: str = "chatstream") -> logging.Logger:
    """Return a configured logger; handlers are attached only once per name."""
    log = logging.getLogger(name)
    if log.handlers:
        return log

    settings = get_settings()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    log.addHandler(handler)
    log.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    return log


logger = setup_logger()
