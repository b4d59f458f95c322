"""Logging configuration for blobsync.

All loggers live under the ``blobsync`` namespace. Sync operations are
written as pipe-delimited lines so they stay grep-able in container logs:

    SYNC | statements/statements | upsert | count=3 | ok
"""

import logging
import sys

ROOT_LOGGER = "blobsync"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Attach a stderr handler to the blobsync logger (idempotent)."""
    global _configured
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    if _configured:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger, namespacing it under ``blobsync`` if needed."""
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


_sync_logger = get_logger("blobsync.sync")
_auth_logger = get_logger("blobsync.auth")


def log_sync_operation(
    database: str,
    collection: str,
    operation: str,
    count: int,
    success: bool,
    error: str | None = None,
) -> None:
    """Log one mutating request against a collection."""
    status = "ok" if success else f"failed: {error}"
    level = logging.INFO if success else logging.WARNING
    _sync_logger.log(
        level,
        f"SYNC | {database}/{collection} | {operation} | count={count} | {status}",
    )


def log_auth_event(event: str, client: str | None, detail: str | None = None) -> None:
    """Log a rejected request at the access guard."""
    line = f"AUTH | {event} | client={client or 'unknown'}"
    if detail:
        line += f" | {detail}"
    _auth_logger.warning(line)
