"""
Persistent tracking of generated export directories.

Each export records its directory when it starts and an expiry timestamp when
it completes successfully. Removing expired exports is left to a separate
cleanup process, which reads the records through `list_expired`.
"""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from colored_logger import get_colored_logger
from models import TrackingRecord

logger = get_colored_logger(__name__)


class TrackingStore:
    """
    SQLite-backed store of TrackingRecord rows, keyed by export directory.

    Connections are opened per operation so several worker processes can
    share one database file.
    """

    def __init__(self, db_path: str = "export_tracking.db", enable_wal: bool = True):
        self.db_path = Path(db_path)
        self.enable_wal = enable_wal
        self._lock = threading.Lock()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()
        logger.debug("Tracking store initialized with database: %s", self.db_path)

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        if self.enable_wal:
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._create_connection()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    def _init_database(self) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS export_tracking (
                    directory TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL,
                    expires_at TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_export_tracking_expires_at
                ON export_tracking (expires_at)
                """
            )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> TrackingRecord:
        return TrackingRecord(
            directory=row["directory"],
            created_at=datetime.fromisoformat(row["created_at"]),
            expires_at=(
                datetime.fromisoformat(row["expires_at"]) if row["expires_at"] else None
            ),
        )

    def create(self, directory: str, created_at: Optional[datetime] = None) -> TrackingRecord:
        record = TrackingRecord(
            directory=str(directory), created_at=created_at or datetime.now()
        )
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO export_tracking (directory, created_at, expires_at) "
                "VALUES (?, ?, NULL)",
                (record.directory, record.created_at.isoformat()),
            )
        logger.debug("Tracking record created for %s", record.directory)
        return record

    def set_expiry(self, directory: str, expires_at: datetime) -> None:
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE export_tracking SET expires_at = ? WHERE directory = ?",
                (expires_at.isoformat(), str(directory)),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"No tracking record for {directory}")

    def get(self, directory: str) -> Optional[TrackingRecord]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM export_tracking WHERE directory = ?", (str(directory),)
            ).fetchone()
        return self._row_to_record(row) if row else None

    def list_expired(self, now: Optional[datetime] = None) -> List[TrackingRecord]:
        now = now or datetime.now()
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM export_tracking "
                "WHERE expires_at IS NOT NULL ORDER BY expires_at"
            ).fetchall()
        records = [self._row_to_record(row) for row in rows]
        return [record for record in records if record.is_expired(now)]

    def delete(self, directory: str) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM export_tracking WHERE directory = ?", (str(directory),)
            )
            return cursor.rowcount > 0
