"""Tests for the path-keyed artifact store."""

import os
import threading
from unittest.mock import patch

import pytest

from wxcache.cache.store import (
    ArtifactNotFound,
    CacheKey,
    LocalCacheStore,
    MemoryCacheStore,
    StorageError,
)


@pytest.fixture(params=["local", "memory"])
def store(request, tmp_path):
    """Each test runs against both media."""
    if request.param == "local":
        return LocalCacheStore(tmp_path / "cache")
    return MemoryCacheStore()


class TestCacheKey:
    """Tests for CacheKey."""

    def test_path(self):
        """Segments are joined with '/'."""
        key = CacheKey.of("layer", "wxfcs", "Precipitation_Rate", "2016-03-10T09:00:00", "3.png")
        assert key.path == "layer/wxfcs/Precipitation_Rate/2016-03-10T09:00:00/3.png"
        assert str(key) == key.path
        assert key.leaf == "3.png"

    def test_equality_is_segment_equality(self):
        assert CacheKey.of("a", "b") == CacheKey(("a", "b"))
        assert CacheKey.of("a", "b") != CacheKey.of("b", "a")
        assert hash(CacheKey.of("a", 1)) == hash(CacheKey.of("a", "1"))

    def test_from_path(self):
        assert CacheKey.from_path("/txt/wxfcs/x.json") == CacheKey.of("txt", "wxfcs", "x.json")

    @pytest.mark.parametrize(
        "segments",
        [
            (),
            ("a", ""),
            ("a", "."),
            ("..", "etc"),
            ("a/b",),
            ("a\\b",),
        ],
    )
    def test_invalid_segments(self, segments):
        """Empty, relative or separator-containing segments are rejected."""
        with pytest.raises(ValueError):
            CacheKey(segments)


class TestStoreContract:
    """Behaviour shared by every medium."""

    def test_missing_key(self, store):
        """Missing artifacts: exists is False, read raises ArtifactNotFound."""
        key = CacheKey.of("txt", "missing.json")
        assert store.exists(key) is False
        with pytest.raises(ArtifactNotFound):
            store.read(key)

    def test_write_then_read(self, store):
        """Written bytes are read back unchanged."""
        key = CacheKey.of("layer", "wxfcs", "L1", "T", "0.png")
        store.write(key, b"\x89PNG\r\n")

        assert store.exists(key)
        assert store.read(key) == b"\x89PNG\r\n"

    def test_overwrite_replaces(self, store):
        key = CacheKey.of("a", "b")
        store.write(key, b"old")
        store.write(key, b"new")
        assert store.read(key) == b"new"

    def test_json_helpers(self, store):
        key = CacheKey.of("txt", "doc.json")
        store.write_json(key, {"RegionalFcst": {"issuedAt": "x"}})
        assert store.read_json(key) == {"RegionalFcst": {"issuedAt": "x"}}

    def test_corrupt_json_raises_storage_error(self, store):
        """Undecodable JSON surfaces as StorageError."""
        key = CacheKey.of("txt", "bad.json")
        store.write(key, b"{not json")
        with pytest.raises(StorageError):
            store.read_json(key)

    def test_relative_path(self, store):
        key = CacheKey.of("txt", "wxfcs", "regionalforecast", "2016", "sw.json")
        assert store.relative_path(key) == "txt/wxfcs/regionalforecast/2016/sw.json"


class TestLocalCacheStore:
    """Tests specific to the filesystem medium."""

    def test_layout_on_disk(self, local_store):
        """Artifacts live at root/prefix/resource/version/leaf."""
        key = CacheKey.of("layer", "wxfcs", "L1", "2016-03-10T09:00:00", "3.png")
        local_store.write(key, b"img")

        path = local_store.root / "layer" / "wxfcs" / "L1" / "2016-03-10T09:00:00" / "3.png"
        assert path.read_bytes() == b"img"
        assert local_store.path_for(key) == path

    def test_no_temporary_files_left(self, local_store):
        key = CacheKey.of("a", "b", "c.json")
        local_store.write(key, b"{}")
        assert sorted(p.name for p in local_store.path_for(key).parent.iterdir()) == ["c.json"]

    def test_failed_replace_keeps_old_content(self, local_store):
        """A failed write leaves the previous artifact intact and no temp file."""
        key = CacheKey.of("a", "b.json")
        local_store.write(key, b"old")

        with patch("wxcache.cache.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                local_store.write(key, b"new")

        assert local_store.read(key) == b"old"
        assert sorted(os.listdir(local_store.path_for(key).parent)) == ["b.json"]

    def test_exists_ignores_directories(self, local_store):
        """A directory at the key's path is not an artifact."""
        local_store.write(CacheKey.of("a", "b", "c"), b"x")
        assert local_store.exists(CacheKey.of("a", "b")) is False

    def test_persists_across_instances(self, tmp_path):
        key = CacheKey.of("a", "b")
        LocalCacheStore(tmp_path).write(key, b"kept")
        assert LocalCacheStore(tmp_path).read(key) == b"kept"

    def test_concurrent_writes_same_key(self, local_store):
        """Concurrent writers of one key leave one complete payload."""
        key = CacheKey.of("a", "same.bin")
        payloads = [bytes([i]) * 4096 for i in range(8)]

        threads = [threading.Thread(target=local_store.write, args=(key, p)) for p in payloads]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert local_store.read(key) in payloads


class TestMemoryCacheStore:
    """Tests specific to the in-memory medium."""

    def test_keys_and_len(self, memory_store):
        memory_store.write(CacheKey.of("a"), b"1")
        memory_store.write(CacheKey.of("b"), b"2")
        assert len(memory_store) == 2
        assert set(memory_store.keys()) == {CacheKey.of("a"), CacheKey.of("b")}
