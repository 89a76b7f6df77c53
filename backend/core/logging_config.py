"""
core/logging_config.py
──────────────────────
One-shot logging setup for the API process.

Modules only ever call ``logging.getLogger(__name__)``; the level and
format are decided here, once, at application start.
"""

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(*, debug: bool = False) -> None:
    """Configure the root logger with the appropriate level."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    # httpx logs every request at INFO; keep that for debug runs only.
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)
