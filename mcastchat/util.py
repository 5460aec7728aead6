#!/usr/bin/env python3
"""Logging setup shared by the transport and the command-line front-ends."""

from __future__ import annotations
import logging                           # Python stdlib logging framework
import sys                               # For stdout handle
from logging.handlers import RotatingFileHandler

__all__ = ["LOG", "configure_logging"]

# Library code logs through this logger; handlers are only attached by
# configure_logging() so importing the package has no side effects.
LOG = logging.getLogger("mcastchat")

_FORMAT = logging.Formatter("[%(asctime)s] %(levelname)-8s %(message)s", "%H:%M:%S")


def configure_logging(level: int = logging.INFO, log_file: str | None = None) -> logging.Logger:
    """Attach console (and optionally rotating file) output to :data:`LOG`.

    Safe to call more than once: handlers installed by an earlier call are
    replaced, never duplicated.
    """
    LOG.setLevel(level)

    for handler in list(LOG.handlers):      # Drop handlers from a previous call
        LOG.removeHandler(handler)
        handler.close()

    # ----- Console handler (stdout) -----
    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(_FORMAT)
    LOG.addHandler(sh)

    # ----- Rotating file handler -----
    # Rotates once file hits 1 MiB, keeps 3 backups.
    if log_file:
        fh = RotatingFileHandler(
            log_file,
            maxBytes=1_048_576,
            backupCount=3,
            encoding="utf-8",
        )
        fh.setFormatter(_FORMAT)
        LOG.addHandler(fh)

    return LOG
