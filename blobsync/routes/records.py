"""Record routes: list, fetch, upsert and delete encrypted records.

Every route resolves ``/{db}/{collection}`` first, so an undeclared pair
is a 404 before the request body or id is looked at.
"""

import json
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request

from ..auth import get_app_settings
from ..config import Settings
from ..database import Databases
from ..errors import PayloadTooLargeError, RecordValidationError, SyncError
from ..logging_config import get_logger, log_sync_operation
from ..models import DeleteResponse, ErrorResponse, RecordMeta, UpsertResponse

logger = get_logger("blobsync.records")

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Unknown db/collection or record"}}

router = APIRouter(tags=["records"], responses=_NOT_FOUND)


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


async def read_records_body(request: Request, max_bytes: int) -> list[Any]:
    """
    Parse an upsert body into a list of candidate records.

    Accepts a single JSON object or an array of them. Field-level checks
    happen in the store so the whole batch is validated together.
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise PayloadTooLargeError()
    # Content-Length may be absent (chunked), so count while streaming
    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            raise PayloadTooLargeError()
        chunks.append(chunk)
    raw = b"".join(chunks)

    try:
        body = json.loads(raw, parse_constant=_reject_constant)
    except ValueError:
        raise RecordValidationError("Request body must be valid JSON")

    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        return [body]
    raise RecordValidationError("Request body must be a record object or an array of records")


@router.get(
    "/{db}/{collection}/meta",
    response_model=list[RecordMeta],
    response_model_exclude_unset=True,
)
async def list_metadata(db: str, collection: str, databases: Databases):
    """
    List every record's sync metadata (id, lastModified, version).

    Clients diff this against local state to decide what to pull or push.
    """
    store = databases.resolve(db, collection)
    metas = store.list_metadata()
    logger.debug(f"META | {db}/{collection} | {len(metas)} records")
    return metas


@router.get("/{db}/{collection}", response_model=list[dict[str, Any]])
async def list_records(db: str, collection: str, databases: Databases):
    """List all records in a collection, encrypted payloads included."""
    store = databases.resolve(db, collection)
    records = store.list()
    logger.debug(f"LIST | {db}/{collection} | {len(records)} records")
    return records


@router.get("/{db}/{collection}/{record_id}", response_model=dict[str, Any])
async def get_record(db: str, collection: str, record_id: str, databases: Databases):
    """Get one record (full encrypted blob)."""
    store = databases.resolve(db, collection)
    return store.get(record_id)


@router.post(
    "/{db}/{collection}",
    response_model=UpsertResponse,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}},
)
async def upsert_records(
    db: str,
    collection: str,
    request: Request,
    databases: Databases,
    settings: Annotated[Settings, Depends(get_app_settings)],
):
    """
    Insert or replace records by id.

    The body is one record or an array of records, each with a non-empty
    ``id`` and ``encryptedData``. If any record is invalid nothing is
    written. The response is sent only after the database file is on disk.
    """
    store = databases.resolve(db, collection)
    try:
        records = await read_records_body(request, settings.max_body_bytes)
        count = await store.upsert_many(records)
    except SyncError as e:
        log_sync_operation(db, collection, "upsert", 0, False, e.message)
        raise

    log_sync_operation(db, collection, "upsert", count, True)
    return UpsertResponse(count=count)


@router.delete("/{db}/{collection}/{record_id}", response_model=DeleteResponse)
async def delete_record(db: str, collection: str, record_id: str, databases: Databases):
    """
    Delete a record by id.

    Idempotent: deleting an id that is not present still returns ok.
    """
    store = databases.resolve(db, collection)
    try:
        removed = await store.delete(record_id)
    except SyncError as e:
        log_sync_operation(db, collection, "delete", 0, False, e.message)
        raise

    log_sync_operation(db, collection, "delete", int(removed), True)
    return DeleteResponse()
