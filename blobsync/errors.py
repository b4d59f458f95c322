"""Error taxonomy for the sync server.

Every error raised below the HTTP layer derives from ``SyncError`` and
carries the status code and client-facing message it maps to. A single
exception handler in ``main`` renders them as ``{"error": message}``.
"""

from fastapi import status


class SyncError(Exception):
    """Base class for errors surfaced to clients."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class Unauthenticated(SyncError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Missing Authorization header"


class Forbidden(SyncError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Invalid API key"


class UnknownCollectionError(SyncError):
    """Raised when a (database, collection) pair is not declared."""

    status_code = status.HTTP_404_NOT_FOUND
    message = "Invalid db or collection"

    def __init__(self, database: str, collection: str):
        self.database = database
        self.collection = collection
        super().__init__()


class RecordNotFoundError(SyncError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__()


class RecordValidationError(SyncError):
    """Raised when an upsert body is malformed or a record lacks a required field."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Missing id or encryptedData"


class PayloadTooLargeError(SyncError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    message = "Request body too large"


class PersistenceError(SyncError):
    """Raised when a database file cannot be read or durably written.

    The client only sees the generic message; the cause is logged server-side.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Database error: operation failed"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__()

    def __str__(self) -> str:
        return self.detail
