"""
Logging setup shared by every module.
"""
import logging
import sys

from tender.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging() -> None:
    """Configure the root logger once; later calls are no-ops."""
    root = logging.getLogger()
    if getattr(root, "_tender_configured", False):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # boto's wire-level debug output drowns everything else
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    root._tender_configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


logger = get_logger("tender")
