"""DuckDB fetch log for wxcache.

Records the outcome of every catalog reload so cache health can be inspected
with ``python -m wxcache.cache.refresh --status``. The artifacts themselves
live in the CacheStore, not here.
"""

import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

import duckdb

from wxcache.cache.models import FetchLog
from wxcache.utils.io import get_project_root, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = get_project_root() / "data" / "db" / "wxcache.duckdb"

# SQL schema - DuckDB uses sequences for auto-increment
SCHEMA_SQL = """
CREATE SEQUENCE IF NOT EXISTS seq_fetch_log_id START 1;

-- Fetch log for debugging/monitoring
CREATE TABLE IF NOT EXISTS fetch_log (
    id INTEGER DEFAULT nextval('seq_fetch_log_id') PRIMARY KEY,
    source VARCHAR NOT NULL,
    timestamp TIMESTAMP NOT NULL,
    status VARCHAR NOT NULL,
    records_added INTEGER,
    duration_ms INTEGER,
    error_message VARCHAR
);

CREATE INDEX IF NOT EXISTS idx_fetch_log_time ON fetch_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_fetch_log_source ON fetch_log(source);
"""


class CacheDatabase:
    """DuckDB fetch log manager.

    The connection is shared between catalog threads, so every statement is
    serialised with a lock.

    Example:
        >>> db = CacheDatabase()
        >>> db.log_fetch("layers", "success", records_added=12, duration_ms=5300)
        >>> db.get_recent_fetches(limit=1)
        [FetchLog(source='layers', ...)]
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize database connection.

        Args:
            db_path: Path to DuckDB file. Creates if doesn't exist.
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = None
        self._lock = threading.RLock()
        self._init_schema()

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get database connection (lazy initialization with retry)."""
        if self._conn is None:
            self._conn = self._connect_with_retry()
        return self._conn

    def _connect_with_retry(self, max_retries: int = 3) -> duckdb.DuckDBPyConnection:
        """Connect to database with retry logic for lock handling."""
        last_error = None
        for attempt in range(max_retries):
            try:
                return duckdb.connect(str(self.db_path))
            except duckdb.IOException as e:
                last_error = e
                if "lock" in str(e).lower() and attempt < max_retries - 1:
                    wait_time = 0.5 * (2 ** attempt)  # Exponential backoff
                    logger.warning(f"Database locked, retrying in {wait_time}s...")
                    time.sleep(wait_time)
                else:
                    raise
        raise last_error

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._lock:
            for statement in SCHEMA_SQL.split(";"):
                statement = statement.strip()
                if statement:
                    self.conn.execute(statement)
        logger.info(f"Fetch log initialized at {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def log_fetch(
        self,
        source: str,
        status: str,
        records_added: int,
        duration_ms: int,
        error_message: Optional[str] = None,
    ) -> None:
        """Log a reload outcome."""
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO fetch_log (source, timestamp, status, records_added, duration_ms, error_message)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [source, utcnow(), status, records_added, duration_ms, error_message],
            )

    def get_recent_fetches(
        self, source: Optional[str] = None, limit: int = 20
    ) -> list[FetchLog]:
        """Most recent log entries, newest first.

        Args:
            source: Only entries for this catalog, or all when None
            limit: Maximum number of entries
        """
        query = """
            SELECT source, timestamp, status, records_added, duration_ms, error_message
            FROM fetch_log
        """
        params: list = []
        if source is not None:
            query += " WHERE source = ?"
            params.append(source)
        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._lock:
            rows = self.conn.execute(query, params).fetchall()

        return [
            FetchLog(
                source=row[0],
                timestamp=row[1],
                status=row[2],
                records_added=row[3] or 0,
                duration_ms=row[4] or 0,
                error_message=row[5],
            )
            for row in rows
        ]

    def get_last_success(self, source: str) -> Optional[datetime]:
        """Timestamp of the latest successful reload for source."""
        with self._lock:
            result = self.conn.execute(
                "SELECT MAX(timestamp) FROM fetch_log WHERE source = ? AND status = 'success'",
                [source],
            ).fetchone()
        return result[0] if result and result[0] else None

    def get_stats(self) -> dict:
        """Get fetch log statistics."""
        with self._lock:
            fetch_count = self.conn.execute("SELECT COUNT(*) FROM fetch_log").fetchone()[0]
            error_count = self.conn.execute(
                "SELECT COUNT(*) FROM fetch_log WHERE status = 'error'"
            ).fetchone()[0]
            sources = [
                row[0]
                for row in self.conn.execute(
                    "SELECT DISTINCT source FROM fetch_log ORDER BY source"
                ).fetchall()
            ]

        return {
            "fetch_count": fetch_count,
            "error_count": error_count,
            "last_success": {s: self.get_last_success(s) for s in sources},
            "db_path": str(self.db_path),
        }
