"""FastAPI routes for session image storage.

Provides REST endpoints to store a batch of OCR-extracted images, inspect
a session's catalog and images, and delete a session. The stored files
themselves are served by the static mount at ``/assets/ocr-images``.
"""

import logging

from fastapi import APIRouter, Depends, Request

from docchat.api.schemas import (
    AssetErrorResponse,
    DeleteSessionResponse,
    IngestRequest,
    IngestResponse,
    SessionAssetsResponse,
    SessionCatalogResponse,
    StoredAssetResponse,
)
from docchat.errors import NotFoundError, ValidationError
from docchat.services.asset_store import SessionAssetStore
from docchat.services.markdown_refs import rewrite_image_refs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assets", tags=["assets"])


def get_asset_store(request: Request) -> SessionAssetStore:
    """Dependency returning the store the app was built with."""
    return request.app.state.asset_store


@router.post("", response_model=IngestResponse)
def ingest_assets(
    payload: IngestRequest,
    store: SessionAssetStore = Depends(get_asset_store),
) -> IngestResponse:
    """Store a batch of encoded images under a (new or existing) session.

    Images that fail to decode or write are left out of ``assets`` and
    reported in ``errors``; the request still succeeds. An invalid
    ``session_id`` or an empty ``images`` map fails the whole request with
    400.
    """
    if not payload.images:
        raise ValidationError("images must contain at least one entry")
    report = store.ingest_with_report(payload.images, payload.session_id)

    markdown = None
    if payload.markdown is not None:
        markdown = rewrite_image_refs(payload.markdown, report.assets)

    logger.info(
        "Stored %d/%d images for session %s",
        len(report.assets),
        len(payload.images),
        report.session_id,
    )
    return IngestResponse(
        session_id=report.session_id,
        assets={
            logical_id: StoredAssetResponse.from_asset(asset)
            for logical_id, asset in report.assets.items()
        },
        errors=[AssetErrorResponse.from_error(e) for e in report.errors],
        markdown=markdown,
    )


@router.get("/sessions", response_model=list[SessionCatalogResponse])
def list_sessions(
    store: SessionAssetStore = Depends(get_asset_store),
) -> list[SessionCatalogResponse]:
    """List every session that has a catalog, newest first."""
    return [SessionCatalogResponse.from_catalog(c) for c in store.list_sessions()]


@router.get("/sessions/{session_id}", response_model=SessionCatalogResponse)
def get_session(
    session_id: str,
    store: SessionAssetStore = Depends(get_asset_store),
) -> SessionCatalogResponse:
    """Return a session's catalog.

    Raises:
        NotFoundError: 404 if the session has no catalog.
    """
    catalog = store.get_catalog(session_id)
    if catalog is None:
        raise NotFoundError("Session", session_id)
    return SessionCatalogResponse.from_catalog(catalog)


@router.get("/sessions/{session_id}/images", response_model=SessionAssetsResponse)
def list_session_images(
    session_id: str,
    store: SessionAssetStore = Depends(get_asset_store),
) -> SessionAssetsResponse:
    """List the images stored for a session (empty for unknown sessions)."""
    assets = store.list_assets(session_id)
    return SessionAssetsResponse(
        session_id=session_id,
        assets=[StoredAssetResponse.from_asset(a) for a in assets],
        total=len(assets),
    )


@router.delete("/sessions/{session_id}", response_model=DeleteSessionResponse)
def delete_session(
    session_id: str,
    store: SessionAssetStore = Depends(get_asset_store),
) -> DeleteSessionResponse:
    """Delete every stored image of a session.

    Raises:
        NotFoundError: 404 if the session directory does not exist.
    """
    if not store.session_exists(session_id):
        raise NotFoundError("Session", session_id)
    deleted = store.delete_session(session_id)
    return DeleteSessionResponse(session_id=session_id, deleted=deleted)
