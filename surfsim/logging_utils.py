# -*- coding: utf-8 -*-
"""Logging setup for surfsim."""

# Import logging.
import logging


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for console output."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # Keep the package logger at the requested level even if basicConfig was already called.
    logging.getLogger("surfsim").setLevel(getattr(logging, str(level).upper(), logging.INFO))
