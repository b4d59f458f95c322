"""Shared-secret access guard for the sync API."""

import secrets

from fastapi import Request
from fastapi.responses import JSONResponse

from .config import Settings
from .errors import Forbidden, Unauthenticated
from .logging_config import log_auth_event

AUTH_SCHEME = "Bearer"


def get_app_settings(request: Request) -> Settings:
    """FastAPI dependency for the settings the app was built with."""
    return request.app.state.settings


def parse_authorization(header: str) -> tuple[str, str]:
    """Split an Authorization header on single spaces into (scheme, credential).

    No whitespace is trimmed: ``"Bearer  key"`` yields an empty credential.
    """
    parts = header.split(" ")
    credential = parts[1] if len(parts) > 1 else ""
    return parts[0], credential


def check_api_key(header: str | None, api_key: str) -> None:
    """
    Validate an Authorization header against the configured secret.

    Raises Unauthenticated when the header is missing and Forbidden when
    the scheme is not ``Bearer`` or the secret does not match.
    """
    if not header:
        raise Unauthenticated()
    scheme, credential = parse_authorization(header)
    if scheme != AUTH_SCHEME:
        raise Forbidden()
    if not secrets.compare_digest(credential.encode(), api_key.encode()):
        raise Forbidden()


async def require_api_key(request: Request, call_next):
    """
    HTTP middleware: reject the request before routing.

    Runs ahead of every path, including unmatched ones and the OpenAPI docs.
    """
    settings = get_app_settings(request)
    header = request.headers.get("authorization")
    client = request.client.host if request.client else None
    try:
        check_api_key(header, settings.api_key)
    except Unauthenticated as e:
        log_auth_event("missing_header", client, request.url.path)
        return JSONResponse(status_code=e.status_code, content={"error": e.message})
    except Forbidden as e:
        log_auth_event("invalid_key", client, request.url.path)
        return JSONResponse(status_code=e.status_code, content={"error": e.message})
    return await call_next(request)
