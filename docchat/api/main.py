"""FastAPI application for DocChat.

Provides the application instance with the asset routes, the optional
API-key middleware and the static mount that serves stored session
images at their public paths.
"""

import logging
import os
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import version as _pkg_version

from fastapi import FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("docchat").setLevel(logging.INFO)

from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response
from starlette.types import Scope

from docchat.api.middleware.auth import maybe_require_api_key, validate_api_key_strength
from docchat.api.routes import assets
from docchat.errors import DocChatError, NotFoundError, ValidationError
from docchat.services.asset_paths import CATALOG_FILENAME
from docchat.services.asset_store import SessionAssetStore, build_asset_store

logger = logging.getLogger(__name__)


def _parse_allowed_origins() -> list[str]:
    """Parse comma-separated CORS allowlist from ALLOWED_ORIGINS env var."""
    raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _package_version() -> str:
    try:
        return _pkg_version("docchat")
    except Exception:
        return "unknown"


class SessionAssetFiles(StaticFiles):
    """Static mount over the storage root that only serves image files.

    Session catalogs and hidden names (including in-flight catalog temp
    files) answer 404.
    """

    async def get_response(self, path: str, scope: Scope) -> Response:
        name = os.path.basename(path)
        if name == CATALOG_FILENAME or name.startswith("."):
            raise StarletteHTTPException(status_code=404)
        return await super().get_response(path, scope)


def create_app(store: SessionAssetStore | None = None) -> FastAPI:
    """Build the API application around an asset store.

    Args:
        store: Asset store to serve; defaults to ``build_asset_store()``
            (storage root from ``DOCCHAT_ASSET_DIR`` or the project data dir).
    """
    asset_store = store or build_asset_store()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        validate_api_key_strength()
        asset_store.root.mkdir(parents=True, exist_ok=True)
        app.state.started_at = _time.time()
        logger.info("Serving session assets from %s at %s", asset_store.root, asset_store.public_prefix)
        yield

    app = FastAPI(
        title="DocChat API",
        description="Session-scoped storage for images extracted from documents",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.asset_store = asset_store
    app.state.started_at = 0.0

    # Optional API auth for /api/* when DOCCHAT_API_KEY is configured.
    app.middleware("http")(maybe_require_api_key)

    # CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
    allowed_origins = _parse_allowed_origins()
    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization", "X-API-Key"],
        )

    @app.exception_handler(DocChatError)
    async def docchat_error_handler(request: Request, exc: DocChatError) -> JSONResponse:
        """Render DocChatError as a 400 with code and remediation."""
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    app.include_router(assets.router, prefix="/api/v1")

    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint with storage status."""
        started_at = app.state.started_at
        uptime = int(_time.time() - started_at) if started_at else 0
        return {
            "status": "healthy",
            "version": _package_version(),
            "uptime_seconds": uptime,
            "asset_root": str(asset_store.root),
            "asset_root_exists": asset_store.root.is_dir(),
        }

    # Public paths handed out by the store resolve here byte-for-byte.
    app.mount(
        asset_store.public_prefix,
        SessionAssetFiles(directory=asset_store.root, check_dir=False),
        name="ocr-images",
    )

    return app


app = create_app()
