"""Pytest fixtures for API tests.

Each test gets an app built around its own temporary storage root, so the
static mount and the routes see the same files.
"""

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from docchat.api.main import create_app
from docchat.services.asset_store import SessionAssetStore


@pytest.fixture
def api_store(tmp_path: Path) -> SessionAssetStore:
    return SessionAssetStore(root=tmp_path / "public" / "assets" / "ocr-images")


@pytest.fixture
def api_app(api_store: SessionAssetStore) -> FastAPI:
    return create_app(api_store)


@pytest.fixture
def client(api_app: FastAPI) -> Generator[TestClient, None, None]:
    """TestClient with lifespan run (creates the storage root)."""
    with TestClient(api_app) as c:
        yield c
