"""Record store: one named collection of opaque encrypted records."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from .errors import RecordNotFoundError, RecordValidationError

if TYPE_CHECKING:
    from .database import JsonDatabase

ID_FIELD = "id"
PAYLOAD_FIELD = "encryptedData"
# Fields a client needs to diff its local state against the server
META_FIELDS = ("id", "lastModified", "version")

Record = dict[str, Any]


def project_metadata(record: Record) -> Record:
    """Reduce a record to its sync metadata, dropping the payload.

    Keys the record does not carry are omitted rather than sent as null.
    """
    return {key: record[key] for key in META_FIELDS if key in record}


def validate_record(record: Any, index: int = 0) -> Record:
    """Check a single inbound record has an id and a payload."""
    if not isinstance(record, dict):
        raise RecordValidationError(f"Record {index} must be a JSON object")
    record_id = record.get(ID_FIELD)
    if not isinstance(record_id, str) or not record_id:
        raise RecordValidationError(f"Record {index} is missing '{ID_FIELD}'")
    if not record.get(PAYLOAD_FIELD):
        raise RecordValidationError(f"Record {index} is missing '{PAYLOAD_FIELD}'")
    return record


class RecordStore:
    """In-memory view of one collection, written through to its database file.

    The store is the only owner of its record list. Mutations build a new
    list, persist it through the owning database, and swap it in only once
    the write succeeded, so readers never see state that is not on disk.
    """

    def __init__(self, database: JsonDatabase, name: str, records: list[Record] | None = None):
        self.database = database
        self.name = name
        self._records: list[Record] = list(records or [])

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"RecordStore({self.database.name}/{self.name}, {len(self._records)} records)"

    def snapshot(self) -> list[Record]:
        """Current records as persisted (shared references, do not mutate)."""
        return self._records

    def list(self) -> list[Record]:
        """All records, payload included."""
        return list(self._records)

    def list_metadata(self) -> list[Record]:
        """Every record reduced to ``{id, lastModified, version}``."""
        return [project_metadata(r) for r in self._records]

    def get(self, record_id: str) -> Record:
        for record in self._records:
            if record.get(ID_FIELD) == record_id:
                return record
        raise RecordNotFoundError(record_id)

    async def upsert_many(self, records: Sequence[Any]) -> int:
        """
        Insert or replace each record by id, then persist once.

        The whole batch is validated before anything is applied: one bad
        record rejects the batch and leaves the collection untouched.
        Returns the number of records processed.
        """
        batch = [validate_record(rec, i) for i, rec in enumerate(records)]
        if not batch:
            return 0

        async with self.database.lock:
            updated = list(self._records)
            positions = {rec.get(ID_FIELD): i for i, rec in enumerate(updated)}
            for rec in batch:
                idx = positions.get(rec[ID_FIELD])
                if idx is not None:
                    updated[idx] = rec
                else:
                    positions[rec[ID_FIELD]] = len(updated)
                    updated.append(rec)

            await self.database.write({self.name: updated})
            self._records = updated

        return len(batch)

    async def delete(self, record_id: str) -> bool:
        """Remove a record by id. Returns False (and writes nothing) if absent."""
        async with self.database.lock:
            remaining = [r for r in self._records if r.get(ID_FIELD) != record_id]
            if len(remaining) == len(self._records):
                return False

            await self.database.write({self.name: remaining})
            self._records = remaining

        return True
