"""Optional API-key auth middleware.

When ``DOCCHAT_API_KEY`` is set, every ``/api/*`` request must carry the
key in ``X-API-Key``. Stored images under the asset store's public prefix
stay public: the chat UI embeds their URLs directly in rendered markdown.
"""

from __future__ import annotations

import hmac
import logging
import os

from fastapi import Request
from fastapi.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

_PUBLIC_PATH_PREFIXES = (
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
)

_MIN_API_KEY_LENGTH = 32


def validate_api_key_strength() -> None:
    """Validate that the configured API key meets minimum strength requirements.

    Raises:
        ValueError: If DOCCHAT_API_KEY is set but shorter than 32 characters.
    """
    key = get_expected_api_key()
    if key and len(key) < _MIN_API_KEY_LENGTH:
        raise ValueError(
            f"DOCCHAT_API_KEY is too short ({len(key)} chars). "
            f"Minimum length is {_MIN_API_KEY_LENGTH} characters."
        )


def get_expected_api_key() -> str:
    """Return configured API key; empty string means auth disabled."""
    return os.environ.get("DOCCHAT_API_KEY", "").strip()


def _asset_prefixes(request: Request) -> tuple[str, ...]:
    store = getattr(request.app.state, "asset_store", None)
    prefix = store.public_prefix.rstrip("/") if store is not None else ""
    # A root mount must not exempt the API itself
    return (prefix + "/",) if prefix else ()


def should_authenticate(path: str, public_prefixes: tuple[str, ...] = ()) -> bool:
    """Return True when this path should be protected by API-key auth.

    ``public_prefixes`` adds app-specific exemptions such as the image mount.
    """
    if path.startswith(_PUBLIC_PATH_PREFIXES + public_prefixes):
        return False
    return path.startswith("/api/")


async def maybe_require_api_key(request: Request, call_next) -> Response:
    """FastAPI middleware entrypoint for optional API-key auth."""
    if request.method.upper() == "OPTIONS":
        return await call_next(request)

    expected_key = get_expected_api_key()
    if not expected_key or not should_authenticate(request.url.path, _asset_prefixes(request)):
        return await call_next(request)

    provided_key = request.headers.get("X-API-Key", "")
    if not provided_key or not hmac.compare_digest(provided_key, expected_key):
        client = request.client.host if request.client else "unknown"
        logger.warning("Rejected request to %s from %s: bad API key", request.url.path, client)
        return JSONResponse(
            status_code=401,
            content={"detail": "Invalid or missing API key"},
        )
    return await call_next(request)
