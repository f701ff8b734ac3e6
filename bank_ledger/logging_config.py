"""
Logging configuration.

Every module logs through logging.getLogger(__name__), which puts
it under the "bank_ledger" logger. setup_logging() attaches one
handler to that logger at startup. In production the handler emits
one JSON object per line so log shippers can index the ledger
fields (transaction id, account, principal) without parsing text.
"""

import json
import logging
from datetime import datetime, timezone

ROOT_LOGGER = "bank_ledger"

# Attributes passed through `extra=` that are promoted to
# top-level JSON keys.
STRUCTURED_FIELDS = (
    "action",
    "transaction_id",
    "account",
    "target_account",
    "principal",
    "amount",
    "status",
)


class JSONFormatter(logging.Formatter):
    """Render a log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Logger:
    """
    Configure the application logger.

    Safe to call more than once: existing handlers are replaced,
    so reloading the app in development does not duplicate lines.
    """
    logger = logging.getLogger(ROOT_LOGGER)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False
    return logger
