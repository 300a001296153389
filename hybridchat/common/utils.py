"""Helper signatures: configure_logging, sha256_hex, format_fingerprint."""

from __future__ import annotations

import hashlib
import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | int = logging.WARNING) -> None:
    """
    Installs a single stream handler on the package logger.

    Called once by the entry point; calling it again only updates the level.
    """
    logger = logging.getLogger("hybridchat")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)


def sha256_hex(data: bytes) -> str:
    """Returns the SHA-256 hash of data as a hex string."""
    return hashlib.sha256(data).hexdigest()


def format_fingerprint(hex_digest: str, group: int = 4) -> str:
    """Splits a hex digest into colon-separated groups for reading aloud."""
    hex_digest = hex_digest.upper()
    return ":".join(hex_digest[i:i + group] for i in range(0, len(hex_digest), group))
