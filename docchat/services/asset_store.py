"""Session-partitioned storage for images extracted from documents.

Each ingestion call writes decoded images into ``<root>/<session_id>/`` and
overwrites the session catalog (``session-info.json``). The catalog is the
existence marker: a session directory without one lists as empty.

All operations are synchronous filesystem calls with no locking. Two
ingestions racing on one session both keep their files (names carry a
random suffix and are created exclusively); the catalog is last-writer-wins.
"""

from __future__ import annotations

import io
import json
import logging
import os
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Mapping

from PIL import Image, UnidentifiedImageError

from docchat.errors import DocChatError, InvalidIdentifierError
from docchat.services.asset_codec import decode_payload, extension_for, media_type_of
from docchat.services.asset_paths import (
    CATALOG_FILENAME,
    PUBLIC_PREFIX,
    asset_file_path,
    catalog_path,
    is_valid_identifier,
    public_path,
    session_dir,
    split_asset_filename,
    validate_identifier,
)

logger = logging.getLogger(__name__)

_MAX_NAME_ATTEMPTS = 5


@dataclass
class StoredAsset:
    """One image persisted under a session directory."""

    id: str
    original_id: str
    file_path: str
    public_path: str
    mime_type: str
    width: int | None = None
    height: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """camelCase view used by the catalog manifest and JSON output."""
        data: dict[str, Any] = {
            "id": self.id,
            "originalId": self.original_id,
            "filePath": self.file_path,
            "publicPath": self.public_path,
            "mimeType": self.mime_type,
        }
        if self.width is not None:
            data["width"] = self.width
        if self.height is not None:
            data["height"] = self.height
        return data


@dataclass
class SessionCatalog:
    """Contents of ``session-info.json``."""

    session_id: str
    created_at: datetime
    image_count: int
    assets: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "createdAt": _format_timestamp(self.created_at),
            "imageCount": self.image_count,
            "assets": self.assets,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionCatalog":
        """Parse catalog JSON.

        Raises:
            ValueError: If required keys are missing or malformed.
        """
        try:
            session_id = str(data["sessionId"])
            created_at = _parse_timestamp(str(data["createdAt"]))
            image_count = int(data["imageCount"])
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed session catalog: {exc}") from exc
        assets = data.get("assets") or []
        if not isinstance(assets, list):
            assets = []
        return cls(
            session_id=session_id,
            created_at=created_at,
            image_count=image_count,
            assets=[a for a in assets if isinstance(a, dict)],
        )


@dataclass
class IngestReport:
    """Outcome of one ingestion batch.

    ``assets`` holds only the entries that were stored; every omitted entry
    has a matching error in ``errors``.
    """

    session_id: str
    assets: dict[str, StoredAsset] = field(default_factory=dict)
    errors: list[DocChatError] = field(default_factory=list)
    catalog_written: bool = True


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _probe_dimensions(data: bytes) -> tuple[int | None, int | None]:
    """Pixel size of raster image bytes, or ``(None, None)``."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.width, img.height
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        logger.debug("Could not read image dimensions: %s", exc)
        return None, None


class SessionAssetStore:
    """Filesystem-backed asset store partitioned by session ID.

    Args:
        root: Storage root; every session directory lives directly under it.
        public_prefix: URL prefix the static mount serves ``root`` at.
    """

    def __init__(self, root: str | Path, public_prefix: str = PUBLIC_PREFIX) -> None:
        self.root = Path(root)
        self.public_prefix = public_prefix

    # Session directories

    def session_path(self, session_id: str) -> Path:
        return session_dir(self.root, session_id)

    def _lookup_session(self, session_id: str) -> Path | None:
        """Session directory for query and cleanup paths.

        None when the ID is not a safe path component or the entry resolves
        outside the root (e.g. a symlink to another directory).
        """
        try:
            return self.session_path(session_id)
        except InvalidIdentifierError as exc:
            logger.warning("Ignoring session %r: %s", session_id, exc)
            return None

    def session_exists(self, session_id: str) -> bool:
        """True when the session directory is on disk (catalog or not)."""
        directory = self._lookup_session(session_id)
        return directory is not None and directory.is_dir()

    def ensure_session(self, session_id: str | None = None) -> str:
        """Create the session directory if needed and return the session ID.

        A fresh uuid4 is assigned when ``session_id`` is None or empty.

        Raises:
            InvalidIdentifierError: If the supplied ID is not a safe path
                component.
        """
        session = session_id or str(uuid.uuid4())
        directory = self.session_path(session)
        directory.mkdir(parents=True, exist_ok=True)
        return session

    # Ingestion

    def ingest(
        self,
        assets: Mapping[str, str],
        session_id: str | None = None,
    ) -> dict[str, StoredAsset]:
        """Decode and persist a batch of images.

        Returns the stored assets keyed by logical ID. Entries that fail are
        omitted and logged; use ``ingest_with_report`` to get the errors.
        """
        return self.ingest_with_report(assets, session_id).assets

    def ingest_with_report(
        self,
        assets: Mapping[str, str],
        session_id: str | None = None,
    ) -> IngestReport:
        """Decode and persist a batch of images, collecting per-asset errors.

        The session catalog is overwritten afterwards with the number of
        assets stored by this call.

        Raises:
            InvalidIdentifierError: If ``session_id`` is not a safe path
                component. Nothing is written in that case.
        """
        session = self.ensure_session(session_id)
        directory = self.session_path(session)
        report = IngestReport(session_id=session)

        for logical_id, encoded in assets.items():
            try:
                stored = self._store_one(session, directory, logical_id, encoded)
            except DocChatError as exc:
                logger.warning("Failed to save image %s: %s", logical_id, exc)
                report.errors.append(exc)
                continue
            except OSError as exc:
                logger.warning("Failed to save image %s: %s", logical_id, exc)
                report.errors.append(
                    DocChatError.from_code(
                        "E-4001",
                        asset_id=logical_id,
                        reason=exc.strerror or str(exc),
                        asset_ids=[logical_id],
                    )
                )
                continue
            report.assets[logical_id] = stored
            logger.info("Image saved: %s", stored.public_path)

        catalog = SessionCatalog(
            session_id=session,
            created_at=datetime.now(UTC),
            image_count=len(report.assets),
            assets=[_manifest_entry(a) for a in report.assets.values()],
        )
        try:
            self._write_catalog(directory, catalog)
        except OSError as exc:
            error = DocChatError.from_code(
                "E-4002", session_id=session, reason=exc.strerror or str(exc)
            )
            logger.error("%s", error)
            report.errors.append(error)
            report.catalog_written = False

        return report

    def _store_one(self, session: str, directory: Path, logical_id: str, encoded: str) -> StoredAsset:
        validate_identifier(logical_id, "asset")
        if not isinstance(encoded, str):
            raise DocChatError.from_code(
                "E-1001",
                asset_id=logical_id,
                reason=f"expected a string, got {type(encoded).__name__}",
                asset_ids=[logical_id],
            )

        mime_type = media_type_of(encoded)
        extension = extension_for(mime_type)
        data = decode_payload(encoded, asset_id=logical_id)
        path = self._write_unique(directory, logical_id, extension, data)
        width, height = _probe_dimensions(data)

        return StoredAsset(
            id=path.name.rsplit(".", 1)[0],
            original_id=logical_id,
            file_path=str(path),
            public_path=public_path(session, path.name, self.public_prefix),
            mime_type=mime_type,
            width=width,
            height=height,
        )

    @staticmethod
    def _write_unique(directory: Path, logical_id: str, extension: str, data: bytes) -> Path:
        for _ in range(_MAX_NAME_ATTEMPTS):
            path = asset_file_path(directory, logical_id, extension)
            try:
                with open(path, "xb") as fh:
                    fh.write(data)
            except FileExistsError:
                continue
            except OSError:
                path.unlink(missing_ok=True)
                raise
            return path
        raise FileExistsError(f"No free filename for {logical_id} after {_MAX_NAME_ATTEMPTS} attempts")

    @staticmethod
    def _write_catalog(directory: Path, catalog: SessionCatalog) -> None:
        target = catalog_path(directory)
        tmp = directory / f".{CATALOG_FILENAME}.{uuid.uuid4().hex[:8]}.tmp"
        try:
            tmp.write_text(json.dumps(catalog.to_dict()), encoding="utf-8")
            os.replace(tmp, target)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    # Queries

    def get_catalog(self, session_id: str) -> SessionCatalog | None:
        """Read a session's catalog; None when absent, unreadable or invalid."""
        directory = self._lookup_session(session_id)
        if directory is None:
            return None
        path = catalog_path(directory)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read catalog for session %s: %s", session_id, exc)
            return None
        try:
            return SessionCatalog.from_dict(json.loads(raw))
        except ValueError as exc:
            logger.warning("Ignoring corrupt catalog for session %s: %s", session_id, exc)
            return None

    def list_assets(self, session_id: str) -> list[StoredAsset]:
        """Assets currently on disk for a session, sorted by filename.

        Returns an empty list when the session or its catalog does not exist,
        when the ID is invalid, or when the directory vanishes mid-listing.
        """
        directory = self._lookup_session(session_id)
        if directory is None or not directory.is_dir() or not catalog_path(directory).exists():
            return []

        catalog = self.get_catalog(session_id)
        manifest = {entry.get("id"): entry for entry in catalog.assets} if catalog else {}

        try:
            names = sorted(
                entry.name
                for entry in directory.iterdir()
                if entry.name != CATALOG_FILENAME and not entry.name.startswith(".")
            )
        except FileNotFoundError:
            return []

        assets: list[StoredAsset] = []
        for name in names:
            asset_id, original_id, extension = split_asset_filename(name)
            recorded = manifest.get(asset_id, {})
            assets.append(
                StoredAsset(
                    id=asset_id,
                    original_id=recorded.get("originalId") or original_id,
                    file_path=str(directory / name),
                    public_path=public_path(session_id, name, self.public_prefix),
                    mime_type=recorded.get("mimeType") or f"image/{extension}",
                    width=recorded.get("width"),
                    height=recorded.get("height"),
                )
            )
        return assets

    def list_sessions(self) -> list[SessionCatalog]:
        """Catalogs of every session under the root, newest first."""
        if not self.root.is_dir():
            return []
        catalogs = []
        for entry in self.root.iterdir():
            if not entry.is_dir() or not is_valid_identifier(entry.name):
                continue
            catalog = self.get_catalog(entry.name)
            if catalog is not None:
                catalogs.append(catalog)
        return sorted(catalogs, key=lambda c: c.created_at, reverse=True)

    # Cleanup

    def delete_session(self, session_id: str) -> bool:
        """Remove every file of a session and then its directory.

        Best effort: all entries are attempted even after a failure. Returns
        True only when the directory is gone; False when it never existed or
        anything could not be removed.
        """
        directory = self._lookup_session(session_id)
        if directory is None or not directory.is_dir():
            return False

        failures: list[str] = []
        try:
            entries = list(directory.iterdir())
        except OSError as exc:
            entries = []
            failures.append(str(exc))

        for entry in entries:
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            except OSError as exc:
                failures.append(f"{entry.name}: {exc.strerror or exc}")

        if not failures:
            try:
                directory.rmdir()
            except OSError as exc:
                failures.append(f"{directory.name}: {exc.strerror or exc}")

        if failures:
            error = DocChatError.from_code(
                "E-4003",
                session_id=session_id,
                reason="; ".join(failures),
                details={"failures": failures},
            )
            logger.error("Failed to delete session %s: %s", session_id, error)
            return False
        return True

    def prune_sessions(self, older_than: timedelta, now: datetime | None = None) -> list[str]:
        """Delete sessions created before ``now - older_than``.

        The catalog ``createdAt`` decides the age; sessions without a readable
        catalog fall back to the directory modification time.

        Returns:
            IDs of the sessions that were fully deleted.
        """
        if not self.root.is_dir():
            return []
        cutoff = (now or datetime.now(UTC)) - older_than
        deleted: list[str] = []
        for entry in sorted(self.root.iterdir()):
            if not entry.is_dir() or not is_valid_identifier(entry.name):
                continue
            if self._lookup_session(entry.name) is None:
                continue
            catalog = self.get_catalog(entry.name)
            if catalog is not None:
                created = catalog.created_at
            else:
                try:
                    created = datetime.fromtimestamp(entry.stat().st_mtime, tz=UTC)
                except FileNotFoundError:
                    continue
            if created >= cutoff:
                continue
            if self.delete_session(entry.name):
                logger.info("Pruned session %s (created %s)", entry.name, _format_timestamp(created))
                deleted.append(entry.name)
        return deleted


def _manifest_entry(asset: StoredAsset) -> dict[str, Any]:
    return {
        "id": asset.id,
        "originalId": asset.original_id,
        "mimeType": asset.mime_type,
        "width": asset.width,
        "height": asset.height,
    }


def build_asset_store(root: str | Path | None = None, public_prefix: str | None = None) -> SessionAssetStore:
    """Build the asset store from explicit arguments or environment/config.

    ``root`` defaults to ``get_asset_root()`` (``DOCCHAT_ASSET_DIR`` when set)
    and ``public_prefix`` to ``DOCCHAT_PUBLIC_PREFIX`` or ``/assets/ocr-images``.
    """
    from docchat.utils.paths import get_asset_root

    return SessionAssetStore(
        root=Path(root).expanduser() if root else get_asset_root(),
        public_prefix=public_prefix or os.environ.get("DOCCHAT_PUBLIC_PREFIX") or PUBLIC_PREFIX,
    )


__all__ = [
    "IngestReport",
    "SessionAssetStore",
    "SessionCatalog",
    "StoredAsset",
    "build_asset_store",
]
