"""Tests for the session-partitioned asset store."""

import json
import os
import re
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from docchat.errors import InvalidIdentifierError
from docchat.services.asset_paths import CATALOG_FILENAME
from docchat.services.asset_store import SessionAssetStore, build_asset_store

UUID_PATTERN = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"


def read_catalog(store: SessionAssetStore, session_id: str) -> dict:
    return json.loads((store.root / session_id / CATALOG_FILENAME).read_text())


def link_foreign_session(store: SessionAssetStore, tmp_path: Path, data_uri: str) -> Path:
    """Symlink root/linked to a real session directory outside the root."""
    foreign = SessionAssetStore(tmp_path / "elsewhere")
    foreign.ingest({"x": data_uri}, session_id="foreign")
    target = foreign.root / "foreign"
    store.root.mkdir(parents=True, exist_ok=True)
    os.symlink(target, store.root / "linked", target_is_directory=True)
    return target


class TestEnsureSession:
    """Tests for session directory creation."""

    def test_generates_id_when_missing(self, store: SessionAssetStore):
        session_id = store.ensure_session()
        assert re.fullmatch(UUID_PATTERN, session_id)
        assert (store.root / session_id).is_dir()

    def test_idempotent(self, store: SessionAssetStore):
        """Calling twice with the same ID never fails and yields one directory."""
        first = store.ensure_session("doc-1")
        second = store.ensure_session("doc-1")
        assert first == second == "doc-1"
        assert [p.name for p in store.root.iterdir()] == ["doc-1"]

    def test_creates_missing_root(self, tmp_path: Path):
        store = SessionAssetStore(tmp_path / "a" / "b" / "c")
        store.ensure_session("s")
        assert (tmp_path / "a" / "b" / "c" / "s").is_dir()

    @pytest.mark.parametrize("bad", ["../escape", "a/b", ".."])
    def test_rejects_traversal(self, store: SessionAssetStore, bad: str):
        with pytest.raises(InvalidIdentifierError):
            store.ensure_session(bad)
        assert not (store.root.parent / "escape").exists()


class TestIngest:
    """Tests for batch ingestion."""

    def test_scenario_single_png(self, store: SessionAssetStore):
        """fig1 data URI without a session ID lands under a generated session."""
        result = store.ingest({"fig1": "data:image/png;base64,iVBORw0KGgo="})

        assert list(result) == ["fig1"]
        asset = result["fig1"]
        assert asset.mime_type == "image/png"
        assert asset.original_id == "fig1"
        match = re.fullmatch(
            rf"/assets/ocr-images/({UUID_PATTERN})/fig1-[0-9a-f]{{8}}\.png",
            asset.public_path,
        )
        assert match is not None
        assert Path(asset.file_path).read_bytes() == b"\x89PNG\r\n\x1a\n"
        assert asset.id == Path(asset.file_path).stem
        # Signature only: not a decodable image
        assert asset.width is None and asset.height is None

    def test_file_inside_session_directory(self, store: SessionAssetStore, png_data_uri: str):
        result = store.ingest({"a": png_data_uri}, session_id="s1")
        path = Path(result["a"].file_path)
        assert path.parent == (store.root / "s1").resolve()

    def test_records_dimensions_and_type(self, store: SessionAssetStore, jpeg_data_uri: str):
        result = store.ingest({"photo": jpeg_data_uri}, session_id="s1")
        asset = result["photo"]
        assert asset.mime_type == "image/jpeg"
        assert asset.file_path.endswith(".jpeg")
        assert (asset.width, asset.height) == (5, 4)

    def test_bare_base64_defaults_to_png(self, store: SessionAssetStore, png_bytes: bytes):
        import base64

        result = store.ingest({"raw": base64.b64encode(png_bytes).decode()}, session_id="s1")
        assert result["raw"].mime_type == "image/png"
        assert Path(result["raw"].file_path).read_bytes() == png_bytes
        assert (result["raw"].width, result["raw"].height) == (3, 2)

    def test_partial_failure_isolation(
        self, store: SessionAssetStore, png_data_uri: str, corrupt_payload: str
    ):
        """One corrupt payload in three is dropped without raising."""
        report = store.ingest_with_report(
            {"ok-1": png_data_uri, "bad": corrupt_payload, "ok-2": png_data_uri},
            session_id="s1",
        )

        assert sorted(report.assets) == ["ok-1", "ok-2"]
        assert [e.code for e in report.errors] == ["E-1001"]
        assert report.errors[0].asset_ids == ["bad"]
        assert read_catalog(store, "s1")["imageCount"] == 2

    def test_ingest_returns_only_stored(
        self, store: SessionAssetStore, png_data_uri: str, corrupt_payload: str
    ):
        result = store.ingest({"a": png_data_uri, "b": corrupt_payload, "c": png_data_uri})
        assert len(result) == 2

    def test_unsafe_asset_id_is_skipped(self, store: SessionAssetStore, png_data_uri: str):
        report = store.ingest_with_report(
            {"../../evil": png_data_uri, "good": png_data_uri}, session_id="s1"
        )
        assert list(report.assets) == ["good"]
        assert report.errors[0].code == "E-2002"
        assert not any(p.name.startswith("evil") for p in store.root.parent.rglob("*"))

    def test_invalid_session_id_raises_before_writing(self, store: SessionAssetStore, png_data_uri: str):
        with pytest.raises(InvalidIdentifierError):
            store.ingest({"a": png_data_uri}, session_id="../other")
        assert not store.root.exists() or list(store.root.iterdir()) == []

    def test_write_failure_is_isolated(
        self, store: SessionAssetStore, png_data_uri: str, monkeypatch
    ):
        original = SessionAssetStore._write_unique

        def flaky(directory, logical_id, extension, data):
            if logical_id == "disk-full":
                raise OSError(28, "No space left on device")
            return original(directory, logical_id, extension, data)

        monkeypatch.setattr(SessionAssetStore, "_write_unique", staticmethod(flaky))
        report = store.ingest_with_report(
            {"disk-full": png_data_uri, "fine": png_data_uri}, session_id="s1"
        )
        assert list(report.assets) == ["fine"]
        assert report.errors[0].code == "E-4001"
        assert "No space left" in report.errors[0].message

    def test_catalog_contents(self, store: SessionAssetStore, png_data_uri: str):
        result = store.ingest({"fig1": png_data_uri}, session_id="s1")
        catalog = read_catalog(store, "s1")

        assert catalog["sessionId"] == "s1"
        assert catalog["imageCount"] == 1
        assert catalog["createdAt"].endswith("Z")
        datetime.fromisoformat(catalog["createdAt"].replace("Z", "+00:00"))
        assert catalog["assets"] == [
            {
                "id": result["fig1"].id,
                "originalId": "fig1",
                "mimeType": "image/png",
                "width": 3,
                "height": 2,
            }
        ]

    def test_catalog_written_for_all_failed_batch(self, store: SessionAssetStore, corrupt_payload: str):
        report = store.ingest_with_report({"bad": corrupt_payload}, session_id="s1")
        assert report.assets == {}
        assert read_catalog(store, "s1")["imageCount"] == 0

    def test_repeated_ingest_overwrites_catalog(self, store: SessionAssetStore, png_data_uri: str):
        """Catalog count reflects only the latest batch; earlier files stay on disk."""
        store.ingest({"a": png_data_uri, "b": png_data_uri}, session_id="s1")
        store.ingest({"c": png_data_uri}, session_id="s1")

        assert read_catalog(store, "s1")["imageCount"] == 1
        assert len(store.list_assets("s1")) == 3

    def test_same_logical_id_twice_keeps_both_files(self, store: SessionAssetStore, png_data_uri: str):
        first = store.ingest({"fig": png_data_uri}, session_id="s1")["fig"]
        second = store.ingest({"fig": png_data_uri}, session_id="s1")["fig"]
        assert first.file_path != second.file_path
        assert Path(first.file_path).exists() and Path(second.file_path).exists()

    def test_suffix_collision_retries(self, store: SessionAssetStore, png_data_uri: str, monkeypatch):
        suffixes = iter(["aaaaaaaa", "aaaaaaaa", "bbbbbbbb"])
        monkeypatch.setattr(
            "docchat.services.asset_paths.new_suffix", lambda: next(suffixes)
        )
        first = store.ingest({"x": png_data_uri}, session_id="s1")["x"]
        second = store.ingest({"x": png_data_uri}, session_id="s1")["x"]
        assert first.id == "x-aaaaaaaa"
        assert second.id == "x-bbbbbbbb"

    def test_no_temp_files_left(self, store: SessionAssetStore, png_data_uri: str):
        store.ingest({"a": png_data_uri}, session_id="s1")
        names = [p.name for p in (store.root / "s1").iterdir()]
        assert not [n for n in names if n.endswith(".tmp")]


class TestListAssets:
    """Tests for listing a session's stored images."""

    def test_unknown_session_is_empty(self, store: SessionAssetStore):
        assert store.list_assets("nonexistent-id") == []

    def test_invalid_session_is_empty(self, store: SessionAssetStore):
        assert store.list_assets("../etc") == []

    def test_directory_without_catalog_is_empty(self, store: SessionAssetStore, png_bytes: bytes):
        store.ensure_session("s1")
        (store.root / "s1" / "orphan-0123abcd.png").write_bytes(png_bytes)
        assert store.list_assets("s1") == []

    def test_lists_from_manifest(self, store: SessionAssetStore, jpeg_data_uri: str):
        stored = store.ingest({"img-0.jpeg": jpeg_data_uri}, session_id="s1")["img-0.jpeg"]
        [listed] = store.list_assets("s1")

        assert listed.id == stored.id
        assert listed.original_id == "img-0.jpeg"
        assert listed.mime_type == "image/jpeg"
        assert listed.public_path == stored.public_path
        assert listed.file_path == stored.file_path
        assert (listed.width, listed.height) == (5, 4)

    def test_falls_back_to_filename(self, store: SessionAssetStore, png_data_uri: str, png_bytes: bytes):
        """Files outside the latest manifest are rebuilt from their names."""
        store.ingest({"a": png_data_uri}, session_id="s1")
        (store.root / "s1" / "page-2-0123abcd.gif").write_bytes(png_bytes)

        listed = {a.id: a for a in store.list_assets("s1")}
        legacy = listed["page-2-0123abcd"]
        assert legacy.original_id == "page-2"
        assert legacy.mime_type == "image/gif"
        assert legacy.public_path == "/assets/ocr-images/s1/page-2-0123abcd.gif"
        assert legacy.width is None

    def test_skips_catalog_and_hidden_files(self, store: SessionAssetStore, png_data_uri: str):
        store.ingest({"a": png_data_uri}, session_id="s1")
        (store.root / "s1" / ".DS_Store").write_bytes(b"")
        names = [Path(a.file_path).name for a in store.list_assets("s1")]
        assert len(names) == 1
        assert CATALOG_FILENAME not in names

    def test_partition_isolation(self, store: SessionAssetStore, png_data_uri: str):
        """Assets ingested under A never appear when listing B."""
        store.ingest({"a1": png_data_uri, "a2": png_data_uri}, session_id="A")
        store.ingest({"b1": png_data_uri}, session_id="B")

        assert {a.original_id for a in store.list_assets("A")} == {"a1", "a2"}
        assert {a.original_id for a in store.list_assets("B")} == {"b1"}

    def test_corrupt_catalog_still_lists(self, store: SessionAssetStore, png_data_uri: str):
        store.ingest({"a": png_data_uri}, session_id="s1")
        (store.root / "s1" / CATALOG_FILENAME).write_text("{not json")
        [listed] = store.list_assets("s1")
        assert listed.original_id == "a"
        assert listed.mime_type == "image/png"

    def test_symlink_outside_root_is_empty(
        self, store: SessionAssetStore, tmp_path: Path, png_data_uri: str
    ):
        link_foreign_session(store, tmp_path, png_data_uri)
        assert store.list_assets("linked") == []
        assert store.session_exists("linked") is False

    def test_directory_removed_mid_listing(self, store: SessionAssetStore, png_data_uri: str, monkeypatch):
        store.ingest({"a": png_data_uri}, session_id="s1")

        def vanished(self):
            raise FileNotFoundError(str(self))

        monkeypatch.setattr(Path, "iterdir", vanished)
        assert store.list_assets("s1") == []


class TestCatalogQueries:
    """Tests for catalog reads and session enumeration."""

    def test_get_catalog(self, store: SessionAssetStore, png_data_uri: str):
        store.ingest({"a": png_data_uri}, session_id="s1")
        catalog = store.get_catalog("s1")
        assert catalog is not None
        assert catalog.session_id == "s1"
        assert catalog.image_count == 1
        assert catalog.created_at.tzinfo is not None

    def test_get_catalog_missing(self, store: SessionAssetStore):
        assert store.get_catalog("nope") is None

    def test_get_catalog_missing_keys(self, store: SessionAssetStore):
        store.ensure_session("s1")
        (store.root / "s1" / CATALOG_FILENAME).write_text(json.dumps({"sessionId": "s1"}))
        assert store.get_catalog("s1") is None

    def test_list_sessions_newest_first(self, store: SessionAssetStore, png_data_uri: str):
        store.ingest({"a": png_data_uri}, session_id="old")
        store.ingest({"a": png_data_uri}, session_id="new")
        catalog_path = store.root / "old" / CATALOG_FILENAME
        data = json.loads(catalog_path.read_text())
        data["createdAt"] = "2020-01-01T00:00:00.000Z"
        catalog_path.write_text(json.dumps(data))

        assert [c.session_id for c in store.list_sessions()] == ["new", "old"]

    def test_symlink_outside_root_is_skipped(
        self, store: SessionAssetStore, tmp_path: Path, png_data_uri: str
    ):
        """One escaping entry does not break enumeration of the others."""
        store.ingest({"a": png_data_uri}, session_id="good")
        link_foreign_session(store, tmp_path, png_data_uri)

        assert store.get_catalog("linked") is None
        assert [c.session_id for c in store.list_sessions()] == ["good"]

    def test_list_sessions_empty_root(self, tmp_path: Path):
        assert SessionAssetStore(tmp_path / "missing").list_sessions() == []


class TestDeleteSession:
    """Tests for best-effort session cleanup."""

    def test_missing_session_returns_false(self, store: SessionAssetStore):
        assert store.delete_session("never-created") is False

    def test_invalid_session_returns_false(self, store: SessionAssetStore):
        assert store.delete_session("..") is False

    def test_deletes_everything(self, store: SessionAssetStore, png_data_uri: str):
        store.ingest({"a": png_data_uri, "b": png_data_uri}, session_id="s1")
        (store.root / "s1" / ".hidden").write_text("x")

        assert store.delete_session("s1") is True
        assert not (store.root / "s1").exists()

    def test_second_delete_returns_false(self, store: SessionAssetStore, png_data_uri: str):
        store.ingest({"a": png_data_uri}, session_id="s1")
        assert store.delete_session("s1") is True
        assert store.delete_session("s1") is False

    def test_leaves_other_sessions(self, store: SessionAssetStore, png_data_uri: str):
        store.ingest({"a": png_data_uri}, session_id="s1")
        store.ingest({"a": png_data_uri}, session_id="s2")
        store.delete_session("s1")
        assert len(store.list_assets("s2")) == 1

    def test_symlink_outside_root_not_deleted(
        self, store: SessionAssetStore, tmp_path: Path, png_data_uri: str
    ):
        target = link_foreign_session(store, tmp_path, png_data_uri)
        assert store.delete_session("linked") is False
        assert (target / CATALOG_FILENAME).exists()

    def test_partial_failure_attempts_every_file(
        self, store: SessionAssetStore, png_data_uri: str, monkeypatch
    ):
        """A file that cannot be removed does not stop the others."""
        store.ingest({"keep": png_data_uri, "b": png_data_uri, "c": png_data_uri}, session_id="s1")
        original_unlink = Path.unlink

        def unlink(self, missing_ok=False):
            if self.name.startswith("keep-"):
                raise PermissionError(13, "Permission denied")
            return original_unlink(self, missing_ok=missing_ok)

        monkeypatch.setattr(Path, "unlink", unlink)

        assert store.delete_session("s1") is False
        remaining = sorted(p.name for p in (store.root / "s1").iterdir())
        assert len(remaining) == 1
        assert remaining[0].startswith("keep-")


class TestPruneSessions:
    """Tests for age-based garbage collection."""

    def test_prunes_only_old_sessions(self, store: SessionAssetStore, png_data_uri: str):
        store.ingest({"a": png_data_uri}, session_id="old")
        store.ingest({"a": png_data_uri}, session_id="fresh")
        now = datetime.now(UTC)
        catalog_path = store.root / "old" / CATALOG_FILENAME
        data = json.loads(catalog_path.read_text())
        data["createdAt"] = (now - timedelta(hours=48)).isoformat()
        catalog_path.write_text(json.dumps(data))

        deleted = store.prune_sessions(timedelta(hours=24), now=now)

        assert deleted == ["old"]
        assert not (store.root / "old").exists()
        assert (store.root / "fresh").exists()

    def test_uses_mtime_without_catalog(self, store: SessionAssetStore):
        store.ensure_session("empty")
        old = (datetime.now(UTC) - timedelta(days=3)).timestamp()
        os.utime(store.root / "empty", (old, old))

        assert store.prune_sessions(timedelta(hours=24)) == ["empty"]

    def test_skips_symlink_outside_root(
        self, store: SessionAssetStore, tmp_path: Path, png_data_uri: str
    ):
        store.ingest({"a": png_data_uri}, session_id="good")
        target = link_foreign_session(store, tmp_path, png_data_uri)
        later = datetime.now(UTC) + timedelta(hours=1)

        assert store.prune_sessions(timedelta(0), now=later) == ["good"]
        assert (store.root / "linked").is_symlink()
        assert len(list(target.iterdir())) == 2

    def test_missing_root(self, tmp_path: Path):
        assert SessionAssetStore(tmp_path / "missing").prune_sessions(timedelta(0)) == []


class TestBuildAssetStore:
    """Tests for store construction from environment."""

    def test_uses_env_root(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("DOCCHAT_ASSET_DIR", str(tmp_path / "from-env"))
        assert build_asset_store().root == tmp_path / "from-env"

    def test_explicit_root_wins(self, tmp_path: Path):
        store = build_asset_store(tmp_path / "explicit", "/media")
        assert store.root == tmp_path / "explicit"
        assert store.public_prefix == "/media"
