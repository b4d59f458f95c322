"""File-backed databases and the (database, collection) router."""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from collections.abc import Sequence
from contextlib import suppress
from pathlib import Path
from typing import Annotated, Any

from fastapi import Depends, Request

from .config import Settings
from .errors import PersistenceError, UnknownCollectionError
from .logging_config import get_logger
from .store import Record, RecordStore

logger = get_logger("blobsync.database")


def _write_atomic(path: Path, text: str) -> None:
    """Write text to path via a synced temp file and rename."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise
    _fsync_dir(path.parent)


def _fsync_dir(directory: Path) -> None:
    """Flush a directory entry so a completed rename survives a crash (POSIX only)."""
    if not hasattr(os, "O_DIRECTORY"):
        return
    fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class JsonDatabase:
    """
    One database: a fixed set of collections stored together in a JSON file.

    The file holds an object mapping collection name to a list of records.
    Collections found in the file but not declared are carried through
    every write untouched; they are never routable.
    """

    def __init__(self, name: str, path: Path, collections: Sequence[str]):
        self.name = name
        self.path = Path(path)
        self.stores: dict[str, RecordStore] = {c: RecordStore(self, c) for c in collections}
        # Serializes read-mutate-persist across all stores sharing this file
        self.lock = asyncio.Lock()
        self._undeclared: dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"JsonDatabase({self.name!r}, {str(self.path)!r})"

    def _read(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Failed to read {self.path}: {e}") from e
        if not raw.strip():
            return None
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise PersistenceError(f"Corrupt database file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Database file {self.path} must contain a JSON object")
        return data

    async def load(self) -> None:
        """Load collections from disk; a missing file means empty collections."""
        data = await asyncio.to_thread(self._read)
        if data is None:
            logger.info(f"No file for database '{self.name}' at {self.path}, starting empty")
            return

        for collection, records in data.items():
            if collection not in self.stores:
                self._undeclared[collection] = records
                continue
            if not isinstance(records, list):
                raise PersistenceError(
                    f"Collection '{collection}' in {self.path} must be a JSON array"
                )
            self.stores[collection] = RecordStore(self, collection, records)

        if self._undeclared:
            logger.warning(
                f"Database '{self.name}' has undeclared collections "
                f"{sorted(self._undeclared)}; they are kept but not served"
            )
        counts = ", ".join(f"{c}={len(s)}" for c, s in self.stores.items())
        logger.info(f"Loaded database '{self.name}' from {self.path} ({counts})")

    def serialize(self, overrides: dict[str, list[Record]] | None = None) -> str:
        """Render the whole database, substituting pending collection contents."""
        overrides = overrides or {}
        data: dict[str, Any] = {
            name: overrides.get(name, store.snapshot()) for name, store in self.stores.items()
        }
        data.update(self._undeclared)
        return json.dumps(data, indent=2, ensure_ascii=False)

    async def write(self, overrides: dict[str, list[Record]] | None = None) -> None:
        """
        Durably persist the database file.

        ``overrides`` maps collection names to their pending contents; other
        collections are written as they currently stand. Callers must hold
        ``self.lock``. Raises PersistenceError if the write fails.
        """
        text = self.serialize(overrides)
        try:
            await asyncio.to_thread(_write_atomic, self.path, text)
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e


class DatabaseRouter:
    """Maps (database, collection) pairs to their record stores."""

    def __init__(self, databases: dict[str, JsonDatabase], data_dir: Path | None = None):
        self.databases = databases
        self.data_dir = data_dir

    @classmethod
    def from_settings(cls, settings: Settings) -> DatabaseRouter:
        data_dir = Path(settings.data_dir)
        databases = {
            name: JsonDatabase(name, data_dir / f"{name}.json", collections)
            for name, collections in settings.databases.items()
        }
        return cls(databases, data_dir)

    async def open(self) -> None:
        """Create the data directory if needed and load every database."""
        if self.data_dir is not None:
            try:
                self.data_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise PersistenceError(f"Cannot create data directory {self.data_dir}: {e}") from e
        for database in self.databases.values():
            await database.load()

    def resolve(self, database: str, collection: str) -> RecordStore:
        """Return the store for a declared pair, else raise UnknownCollectionError."""
        db = self.databases.get(database)
        if db is None:
            raise UnknownCollectionError(database, collection)
        store = db.stores.get(collection)
        if store is None:
            raise UnknownCollectionError(database, collection)
        return store


def get_databases(request: Request) -> DatabaseRouter:
    """FastAPI dependency for the database router opened at startup."""
    return request.app.state.databases


# Type alias for dependency injection
Databases = Annotated[DatabaseRouter, Depends(get_databases)]
