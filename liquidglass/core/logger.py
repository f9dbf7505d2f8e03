from __future__ import annotations

import logging
import os
import re
from logging.handlers import RotatingFileHandler

from liquidglass.core.redaction import mask_url


LOGGER_NAME = "liquidglass"
LOG_FILE = "liquidglass.log"

_URL_RE = re.compile(r"https?://[^\s\"'<>]+")


class UrlMaskingFilter(logging.Filter):
    """Masks sensitive query values in any URL that appears in a log line."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        masked = _URL_RE.sub(lambda m: mask_url(m.group(0)), message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def setup_logging(log_dir: str = "logs", *, level: int = logging.INFO, console: bool = True) -> logging.Logger:
    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # handler-level filters also see records propagated from child loggers
    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        h = RotatingFileHandler(os.path.join(log_dir, LOG_FILE), maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        h.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        h.addFilter(UrlMaskingFilter())
        logger.addHandler(h)

    if console and not any(type(h) is logging.StreamHandler for h in logger.handlers):
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        sh.addFilter(UrlMaskingFilter())
        logger.addHandler(sh)

    return logger
