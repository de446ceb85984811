"""Pydantic schemas for API request/response validation.

Asset payloads are serialized in camelCase (``originalId``, ``publicPath``)
to match the on-disk catalog and what the chat frontend consumes. Requests
accept either camelCase or snake_case field names.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from docchat.errors import DocChatError
from docchat.services.asset_store import SessionCatalog, StoredAsset


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IngestRequest(_CamelModel):
    """Request schema for storing a batch of extracted images."""

    images: dict[str, str] = Field(
        ..., description="Logical image ID -> base64 or data URI payload."
    )
    session_id: str | None = None
    markdown: str | None = Field(
        None, description="OCR markdown whose image references should be rewritten."
    )


class StoredAssetResponse(_CamelModel):
    """Response schema for one stored image."""

    id: str
    original_id: str
    file_path: str
    public_path: str
    mime_type: str
    width: int | None = None
    height: int | None = None

    @classmethod
    def from_asset(cls, asset: StoredAsset) -> "StoredAssetResponse":
        return cls(
            id=asset.id,
            original_id=asset.original_id,
            file_path=asset.file_path,
            public_path=asset.public_path,
            mime_type=asset.mime_type,
            width=asset.width,
            height=asset.height,
        )


class AssetErrorResponse(BaseModel):
    """One per-asset ingestion failure."""

    error_code: str
    message: str
    remediation: str
    asset_ids: list[str] = []

    @classmethod
    def from_error(cls, error: DocChatError) -> "AssetErrorResponse":
        return cls(
            error_code=error.code,
            message=error.message,
            remediation=error.remediation,
            asset_ids=list(error.asset_ids),
        )


class IngestResponse(_CamelModel):
    """Response schema for a stored batch."""

    session_id: str
    assets: dict[str, StoredAssetResponse]
    errors: list[AssetErrorResponse] = []
    markdown: str | None = None


class SessionCatalogResponse(_CamelModel):
    """Response schema for a session catalog."""

    session_id: str
    created_at: datetime
    image_count: int

    @classmethod
    def from_catalog(cls, catalog: SessionCatalog) -> "SessionCatalogResponse":
        return cls(
            session_id=catalog.session_id,
            created_at=catalog.created_at,
            image_count=catalog.image_count,
        )


class SessionAssetsResponse(_CamelModel):
    """Response schema for the images currently stored in a session."""

    session_id: str
    assets: list[StoredAssetResponse]
    total: int


class DeleteSessionResponse(_CamelModel):
    """Response schema for session deletion."""

    session_id: str
    deleted: bool
