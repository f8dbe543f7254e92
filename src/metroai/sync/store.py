"""SQLite-backed persistent store for capture records and user stats."""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path

from metroai.sync.artifacts import ArtifactStore
from metroai.sync.errors import RecordNotFoundError, StoreError
from metroai.sync.models import CaptureRecord, UploadStatus, UserStats, as_utc, utc_now

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = (
    "id",
    "artifact_ref",
    "thumbnail_ref",
    "defect_type_id",
    "notes",
    "status",
    "captured_at",
    "uploaded_at",
    "retry_count",
    "latitude",
    "longitude",
    "location_accuracy",
    "station_id",
    "last_error",
)


def _to_text(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value is not None else None


def _from_text(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class RecordStore:
    """SQLite-backed persistent store for capture records.

    Records are the unit of work of the upload queue: they survive process
    restarts, and every write is committed before the call returns unless it
    runs inside transaction(). Deleting a record also deletes its image files
    when an ArtifactStore is attached.
    """

    def __init__(self, db_path: Path, artifacts: ArtifactStore | None = None) -> None:
        """Initialize the record store.

        Args:
            db_path: Path to the SQLite database file
            artifacts: Artifact store owning the records' image files
        """
        self.db_path = Path(db_path)
        self.artifacts = artifacts
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA synchronous = FULL")
        self._tx_depth = 0
        self._create_tables()

    def _create_tables(self) -> None:
        """Create the tables if they don't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS capture_records (
                id TEXT PRIMARY KEY,
                artifact_ref TEXT NOT NULL,
                thumbnail_ref TEXT,
                defect_type_id TEXT NOT NULL CHECK (defect_type_id <> ''),
                notes TEXT,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'uploading', 'uploaded', 'failed')),
                captured_at TEXT NOT NULL,
                uploaded_at TEXT,
                retry_count INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0),
                latitude REAL,
                longitude REAL,
                location_accuracy REAL,
                station_id TEXT,
                last_error TEXT,
                CHECK ((status = 'uploaded') = (uploaded_at IS NOT NULL))
            )
        """)
        # Index for FIFO scans and status queries
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_records_status_captured
            ON capture_records (status, captured_at)
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS user_stats (
                user_id TEXT PRIMARY KEY,
                photos_uploaded INTEGER NOT NULL DEFAULT 0,
                total_points INTEGER NOT NULL DEFAULT 0,
                last_synced_at TEXT,
                current_rank INTEGER NOT NULL DEFAULT 0
            )
        """)
        self._conn.commit()

    def _commit(self) -> None:
        if self._tx_depth == 0:
            try:
                self._conn.commit()
            except sqlite3.Error as e:
                raise StoreError(f"Commit failed: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several writes into one commit.

        Rolls back every write made inside the block if it raises.

        Raises:
            StoreError: If the final commit fails. Nothing is kept.
        """
        self._tx_depth += 1
        try:
            yield
        except BaseException:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self._conn.rollback()
            raise
        self._tx_depth -= 1
        if self._tx_depth == 0:
            try:
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise StoreError(f"Commit failed: {e}") from e

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> CaptureRecord:
        return CaptureRecord(
            id=row["id"],
            artifact_ref=row["artifact_ref"],
            thumbnail_ref=row["thumbnail_ref"],
            defect_type_id=row["defect_type_id"],
            notes=row["notes"],
            status=UploadStatus(row["status"]),
            captured_at=_from_text(row["captured_at"]),
            uploaded_at=_from_text(row["uploaded_at"]),
            retry_count=row["retry_count"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            location_accuracy=row["location_accuracy"],
            station_id=row["station_id"],
            last_error=row["last_error"],
        )

    @staticmethod
    def _record_values(record: CaptureRecord) -> tuple:
        return (
            record.id,
            record.artifact_ref,
            record.thumbnail_ref,
            record.defect_type_id,
            record.notes,
            record.status.value,
            _to_text(record.captured_at),
            _to_text(record.uploaded_at),
            record.retry_count,
            record.latitude,
            record.longitude,
            record.location_accuracy,
            record.station_id,
            record.last_error,
        )

    def insert(self, record: CaptureRecord) -> None:
        """Add a new capture record.

        Raises:
            StoreError: If a record with the same id exists or a constraint fails
        """
        placeholders = ", ".join("?" for _ in _RECORD_COLUMNS)
        try:
            self._conn.execute(
                f"INSERT INTO capture_records ({', '.join(_RECORD_COLUMNS)}) "
                f"VALUES ({placeholders})",
                self._record_values(record),
            )
        except sqlite3.IntegrityError as e:
            raise StoreError(f"Cannot insert record {record.id}: {e}") from e
        self._commit()

    def get(self, record_id: str) -> CaptureRecord:
        """Fetch a single record.

        Raises:
            RecordNotFoundError: If the id is unknown
            StoreError: If the database cannot be read
        """
        try:
            row = self._conn.execute(
                "SELECT * FROM capture_records WHERE id = ?",
                (record_id,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot read record {record_id}: {e}") from e
        if row is None:
            raise RecordNotFoundError(record_id)
        return self._row_to_record(row)

    def fetch_ordered_by_captured_at(self) -> list[CaptureRecord]:
        """Get all records, oldest capture first."""
        cursor = self._conn.execute(
            "SELECT * FROM capture_records ORDER BY captured_at ASC, rowid ASC"
        )
        return [self._row_to_record(row) for row in cursor.fetchall()]

    def fetch_by_status(self, status: UploadStatus) -> list[CaptureRecord]:
        """Get records with the given status, oldest capture first."""
        cursor = self._conn.execute(
            """
            SELECT * FROM capture_records
            WHERE status = ?
            ORDER BY captured_at ASC, rowid ASC
            """,
            (UploadStatus(status).value,),
        )
        return [self._row_to_record(row) for row in cursor.fetchall()]

    def update(self, record: CaptureRecord) -> None:
        """Persist all mutable fields of a record.

        Raises:
            RecordNotFoundError: If the record no longer exists
            StoreError: If a constraint fails or the database is unavailable
        """
        assignments = ", ".join(f"{column} = ?" for column in _RECORD_COLUMNS[1:])
        values = self._record_values(record)
        try:
            cursor = self._conn.execute(
                f"UPDATE capture_records SET {assignments} WHERE id = ?",
                (*values[1:], record.id),
            )
        except sqlite3.Error as e:
            raise StoreError(f"Cannot update record {record.id}: {e}") from e
        if cursor.rowcount == 0:
            raise RecordNotFoundError(record.id)
        self._commit()

    def delete(self, record: CaptureRecord) -> None:
        """Delete a record together with its image files.

        Args:
            record: Record to remove
        """
        self._conn.execute(
            "DELETE FROM capture_records WHERE id = ?",
            (record.id,),
        )
        self._commit()
        if self.artifacts is not None:
            self.artifacts.delete(record.artifact_ref, record.thumbnail_ref)

    def get_stats(self) -> dict[str, int]:
        """Get queue statistics.

        Returns:
            Dictionary with counts by status
        """
        cursor = self._conn.execute(
            """
            SELECT status, COUNT(*) as count
            FROM capture_records
            GROUP BY status
            """
        )

        stats = {"pending": 0, "uploading": 0, "uploaded": 0, "failed": 0, "total": 0}
        for row in cursor.fetchall():
            stats[row["status"]] = row["count"]
            stats["total"] += row["count"]

        return stats

    def cleanup_uploaded(self, days: int, now: datetime | None = None) -> int:
        """Remove uploaded records (and their files) older than N days.

        Args:
            days: Age in days after upload at which records are removed
            now: Reference time, defaults to the current time

        Returns:
            Number of records removed
        """
        cutoff = _to_text((now or utc_now()) - timedelta(days=days))
        cursor = self._conn.execute(
            """
            SELECT * FROM capture_records
            WHERE status = 'uploaded' AND uploaded_at < ?
            """,
            (cutoff,),
        )
        expired = [self._row_to_record(row) for row in cursor.fetchall()]
        for record in expired:
            self.delete(record)
        if expired:
            logger.info("Cleaned up uploaded records: count=%d, days=%d", len(expired), days)
        return len(expired)

    # --- User stats ---

    def get_user_stats(self, user_id: str) -> UserStats | None:
        """Fetch the stats aggregate for a user, if one exists."""
        row = self._conn.execute(
            "SELECT * FROM user_stats WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        return UserStats(
            user_id=row["user_id"],
            photos_uploaded=row["photos_uploaded"],
            total_points=row["total_points"],
            last_synced_at=_from_text(row["last_synced_at"]),
            current_rank=row["current_rank"],
        )

    def save_user_stats(self, stats: UserStats) -> None:
        """Insert or replace the stats aggregate for a user.

        Raises:
            StoreError: If the database is unavailable
        """
        try:
            self._conn.execute(
                """
                INSERT INTO user_stats (user_id, photos_uploaded, total_points,
                                        last_synced_at, current_rank)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    photos_uploaded = excluded.photos_uploaded,
                    total_points = excluded.total_points,
                    last_synced_at = excluded.last_synced_at,
                    current_rank = excluded.current_rank
                """,
                (
                    stats.user_id,
                    stats.photos_uploaded,
                    stats.total_points,
                    _to_text(stats.last_synced_at),
                    stats.current_rank,
                ),
            )
        except sqlite3.Error as e:
            raise StoreError(f"Cannot save stats for {stats.user_id}: {e}") from e
        self._commit()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
