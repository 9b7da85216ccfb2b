"""Tests for the fetch log database."""

import tempfile
import threading
from datetime import datetime
from pathlib import Path

import pytest

from wxcache.cache.database import CacheDatabase
from wxcache.cache.models import FetchLog


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.duckdb"
        db = CacheDatabase(db_path)
        yield db
        db.close()


class TestCacheDatabase:
    """Tests for CacheDatabase."""

    def test_init_creates_tables(self, temp_db):
        """Database initialization creates the fetch log table."""
        tables = temp_db.conn.execute(
            "SELECT table_name FROM information_schema.tables WHERE table_schema = 'main'"
        ).fetchall()
        table_names = [t[0] for t in tables]

        assert "fetch_log" in table_names

    def test_reopen_existing_database(self, tmp_path):
        """Schema creation is idempotent."""
        db_path = tmp_path / "db" / "log.duckdb"
        db = CacheDatabase(db_path)
        db.log_fetch("layers", "success", 3, 100)
        db.close()

        db = CacheDatabase(db_path)
        try:
            assert len(db.get_recent_fetches()) == 1
        finally:
            db.close()

    def test_close_is_idempotent(self, temp_db):
        temp_db.close()
        temp_db.close()


class TestFetchLog:
    """Tests for fetch logging."""

    def test_log_and_read_back(self, temp_db):
        """Logged reloads are returned as FetchLog entries."""
        temp_db.log_fetch("layers", "success", records_added=12, duration_ms=5300)

        entries = temp_db.get_recent_fetches()

        assert len(entries) == 1
        entry = entries[0]
        assert isinstance(entry, FetchLog)
        assert entry.source == "layers"
        assert entry.status == "success"
        assert entry.records_added == 12
        assert entry.duration_ms == 5300
        assert entry.error_message is None
        assert isinstance(entry.timestamp, datetime)

    def test_newest_first_and_limit(self, temp_db):
        for i in range(5):
            temp_db.log_fetch("regional", "success", i, 10)

        entries = temp_db.get_recent_fetches(limit=3)

        assert [e.records_added for e in entries] == [4, 3, 2]

    def test_filter_by_source(self, temp_db):
        temp_db.log_fetch("layers", "success", 1, 10)
        temp_db.log_fetch("regional", "error", 0, 10, error_message="HTTP 500")

        entries = temp_db.get_recent_fetches(source="regional")

        assert len(entries) == 1
        assert entries[0].error_message == "HTTP 500"

    def test_last_success_ignores_errors(self, temp_db):
        temp_db.log_fetch("layers", "error", 0, 10, error_message="down")
        assert temp_db.get_last_success("layers") is None

        temp_db.log_fetch("layers", "success", 4, 10)
        assert temp_db.get_last_success("layers") is not None
        assert temp_db.get_last_success("regional") is None

    def test_stats(self, temp_db):
        """Stats count reloads and errors per database."""
        temp_db.log_fetch("layers", "success", 4, 10)
        temp_db.log_fetch("layers", "error", 0, 10)
        temp_db.log_fetch("regional", "success", 17, 10)

        stats = temp_db.get_stats()

        assert stats["fetch_count"] == 3
        assert stats["error_count"] == 1
        assert set(stats["last_success"]) == {"layers", "regional"}
        assert stats["db_path"] == str(temp_db.db_path)

    def test_concurrent_logging(self, temp_db):
        """Catalog threads can share one database."""

        def worker(source):
            for _ in range(10):
                temp_db.log_fetch(source, "success", 1, 1)

        threads = [threading.Thread(target=worker, args=(s,)) for s in ("layers", "regional")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert temp_db.get_stats()["fetch_count"] == 20
