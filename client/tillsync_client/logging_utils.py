# Overview: Client logging setup; bearer tokens never reach a handler.

from __future__ import annotations

import logging
import re

_BEARER_RE = re.compile(r"Bearer\s+[A-Za-z0-9\-_.]+", re.IGNORECASE)


def redact(text: str) -> str:
    return _BEARER_RE.sub("Bearer [REDACTED]", text)


class RedactingFilter(logging.Filter):
    """Rewrites `Bearer <token>` in the fully formatted message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Attach a stream handler with redaction to the `tillsync_client` logger.

    Safe to call more than once; the handler is only added the first time.
    """
    logger = logging.getLogger("tillsync_client")
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        handler.addFilter(RedactingFilter())
        logger.addHandler(handler)

    return logger
