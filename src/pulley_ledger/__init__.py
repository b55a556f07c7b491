"""Pulley ledger package.

Importing the package configures the shared ``log`` used by every layer:
ledger mutations are written at INFO to ``.logs/pulley_ledger.log`` (or the
directory named by ``PULLEY_LEDGER_LOG_DIR``), while the console only shows
warnings so CLI reports stay readable.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = Path(os.environ.get("PULLEY_LEDGER_LOG_DIR", PROJECT_ROOT / ".logs"))
LOG_FILE = LOG_DIR / "pulley_ledger.log"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def _build_ledger_file_handler(log_file: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    """Audit trail of committed records, client and settings changes."""

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(formatter)
    return handler


def _build_console_handler(formatter: logging.Formatter) -> logging.StreamHandler:
    # stdout carries CLI reports; diagnostics go to stderr.
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.WARNING)
    handler.setFormatter(formatter)
    return handler


def _configure_logging() -> logging.Logger:
    """Attach the ledger file handler and the console handler once."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    try:
        logger.addHandler(_build_ledger_file_handler(LOG_FILE, formatter))
    except OSError as exc:
        print(f"Warning: ledger audit log disabled, cannot open '{LOG_FILE}': {exc}", file=sys.stderr)

    logger.addHandler(_build_console_handler(formatter))
    return logger


log = _configure_logging()
log.info("Pulley ledger logging started (audit file: %s)", LOG_FILE)
