"""Service layer for DocChat.

Provides the session asset store and the helpers around it: payload
decoding, path resolution and markdown reference rewriting.
"""

from docchat.services.asset_store import (
    IngestReport,
    SessionAssetStore,
    SessionCatalog,
    StoredAsset,
    build_asset_store,
)

__all__ = [
    "SessionAssetStore",
    "SessionCatalog",
    "StoredAsset",
    "IngestReport",
    "build_asset_store",
]
