"""Root-level pytest fixtures shared by all test packages.

Provides an isolated storage root per test plus encoded image payloads
(real PNG/JPEG bytes made with Pillow, and deliberately broken ones).
"""

import base64
import io
from pathlib import Path

import pytest
from PIL import Image

from docchat.services.asset_store import SessionAssetStore


def make_image_bytes(width: int = 3, height: int = 2, fmt: str = "PNG") -> bytes:
    """Encode a solid-colour image with Pillow."""
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 30, 30)).save(buf, format=fmt)
    return buf.getvalue()


def as_data_uri(data: bytes, media_type: str = "image/png") -> str:
    return f"data:{media_type};base64,{base64.b64encode(data).decode('ascii')}"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path: Path):
    """Keep env-driven config from leaking in from the developer machine."""
    for var in ("DOCCHAT_API_KEY", "DOCCHAT_DATA_DIR", "DOCCHAT_PUBLIC_PREFIX", "ALLOWED_ORIGINS"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DOCCHAT_ASSET_DIR", str(tmp_path / "env-assets"))


@pytest.fixture
def asset_root(tmp_path: Path) -> Path:
    return tmp_path / "ocr-images"


@pytest.fixture
def store(asset_root: Path) -> SessionAssetStore:
    return SessionAssetStore(root=asset_root)


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes(3, 2, "PNG")


@pytest.fixture
def png_data_uri(png_bytes: bytes) -> str:
    return as_data_uri(png_bytes, "image/png")


@pytest.fixture
def jpeg_data_uri() -> str:
    return as_data_uri(make_image_bytes(5, 4, "JPEG"), "image/jpeg")


@pytest.fixture
def corrupt_payload() -> str:
    return "data:image/png;base64,@@not-base64@@"
