"""Upload orchestrator wiring storage, transport, and the queue coordinator."""

import asyncio
import logging
from pathlib import Path
from typing import Any

import httpx

from metroai.config import Settings
from metroai.sync import (
    ArtifactStore,
    CaptureRecord,
    RecordStore,
    RunLock,
    RunSummary,
    StatsReconciler,
    TokenFileAuth,
    TransportClient,
    UploadCoordinator,
    UploadStatus,
)
from metroai.sync.errors import LocalIOError, StoreError
from metroai.sync.models import LeaderboardEntry

logger = logging.getLogger(__name__)


class UploadOrchestrator:
    """High-level entry point for the capture queue.

    Builds the record store, artifact store, auth, transport, stats
    reconciler, and coordinator from settings. The CLI and any embedding
    application go through this class.

    Example:
        async with UploadOrchestrator(settings) as orchestrator:
            orchestrator.add_capture(Path("photo.jpg"), defect_type_id="seat")
            await orchestrator.process_queue()
    """

    def __init__(
        self,
        config: Settings,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Settings instance with all configuration
            http_transport: Optional httpx transport override
        """
        self.config = config

        self.artifacts = ArtifactStore(config.artifacts_path)
        self.store = RecordStore(config.db_path, artifacts=self.artifacts)
        self.auth = TokenFileAuth(config.token_path)
        self.transport = TransportClient(
            base_url=config.api_base_url,
            auth=self.auth,
            timeout=config.upload_timeout,
            transport=http_transport,
        )
        self.stats = StatsReconciler(self.store, config.current_username)
        self.coordinator = UploadCoordinator(
            store=self.store,
            artifacts=self.artifacts,
            uploader=self.transport,
            stats=self.stats,
            max_retry_attempts=config.max_retry_attempts,
            run_lock=RunLock(config.lock_path),
        )

        self._running = False

    @property
    def queue_size(self) -> int:
        """Get number of records still waiting for upload."""
        stats = self.store.get_stats()
        return stats.get("pending", 0) + stats.get("uploading", 0)

    def add_capture(
        self,
        image_path: Path,
        defect_type_id: str,
        notes: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        location_accuracy: float | None = None,
        station_id: str | None = None,
        thumbnail_path: Path | None = None,
    ) -> CaptureRecord:
        """Store an image and queue a pending record for it.

        Raises:
            LocalIOError: If the image cannot be read or stored
            StoreError: If the record cannot be inserted
            ValueError: If defect_type_id is empty
        """
        if not defect_type_id:
            raise ValueError("defect_type_id is required")

        try:
            data = Path(image_path).read_bytes()
            thumbnail = Path(thumbnail_path).read_bytes() if thumbnail_path else None
        except OSError as e:
            raise LocalIOError(f"Cannot read image: {e}") from e

        ref, thumb_ref = self.artifacts.save(data, thumbnail)
        record = CaptureRecord.new(
            artifact_ref=ref,
            defect_type_id=defect_type_id,
            thumbnail_ref=thumb_ref,
            notes=notes,
            latitude=latitude,
            longitude=longitude,
            location_accuracy=location_accuracy,
            station_id=station_id,
        )
        try:
            self.store.insert(record)
        except StoreError:
            self.artifacts.delete(ref, thumb_ref)
            raise

        logger.info("Capture queued: record_id=%s, size=%d", record.id, len(data))
        return record

    def list_records(self, status: UploadStatus | None = None) -> list[CaptureRecord]:
        """List records in capture order, optionally filtered by status."""
        if status is None:
            return self.store.fetch_ordered_by_captured_at()
        return self.store.fetch_by_status(status)

    def delete_record(self, record_id: str) -> None:
        """Delete a record and its image files.

        Raises:
            RecordNotFoundError: If the id is unknown
        """
        record = self.store.get(record_id)
        self.store.delete(record)
        logger.info("Capture deleted: record_id=%s, status=%s", record.id, record.status.value)

    def cleanup(self, days: int | None = None) -> int:
        """Remove uploaded records past the retention period."""
        if days is None:
            days = self.config.photo_retention_days
        return self.store.cleanup_uploaded(days)

    async def process_queue(self) -> RunSummary:
        """Run the upload queue once."""
        return await self.coordinator.process_queue()

    async def retry_all_failed(self) -> RunSummary:
        """Reset failed records and run the queue."""
        return await self.coordinator.retry_all_failed()

    async def retry_record(self, record_id: str) -> RunSummary:
        """Reset one record and run the queue."""
        return await self.coordinator.retry_record(record_id)

    async def refresh_stats(self) -> None:
        """Pull the user's stats from the server into the local aggregate."""
        snapshot = await self.transport.fetch_user_stats()
        self.stats.apply_server_snapshot(snapshot)

    async def fetch_leaderboard(self, limit: int = 50, offset: int = 0) -> list[LeaderboardEntry]:
        """Fetch a leaderboard page and remember the active user's rank."""
        entries = await self.transport.fetch_leaderboard(limit=limit, offset=offset)
        self.stats.apply_leaderboard(entries)
        return entries

    async def watch(self, interval: float | None = None) -> None:
        """Run the queue periodically until stopped.

        Stands in for the app-foreground trigger: every tick starts a run,
        which is dropped if the previous one is still active.
        """
        interval = interval or float(self.config.watch_interval)
        self._running = True
        logger.info("Queue watch started: interval=%.1fs", interval)

        while self._running:
            try:
                summary = await self.coordinator.process_queue()
                if summary.auth_required:
                    logger.warning("Authentication required, uploads parked")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Queue watch error: %s", e)

            await asyncio.sleep(interval)

    def stop(self) -> None:
        """Stop the watch loop after the current tick."""
        self._running = False

    def get_status(self) -> dict[str, Any]:
        """Get current queue and stats status.

        Returns:
            Dictionary with queue counts, auth state, and local stats
        """
        queue_stats = self.store.get_stats()
        user_stats = self.stats.current()

        return {
            "queue": {
                "pending": queue_stats.get("pending", 0),
                "uploading": queue_stats.get("uploading", 0),
                "uploaded": queue_stats.get("uploaded", 0),
                "failed": queue_stats.get("failed", 0),
                "total": queue_stats.get("total", 0),
            },
            "authenticated": self.auth.is_authenticated,
            "user": self.config.current_username,
            "stats": (
                {
                    "photos_uploaded": user_stats.photos_uploaded,
                    "total_points": user_stats.total_points,
                    "current_rank": user_stats.current_rank,
                    "last_synced_at": (
                        user_stats.last_synced_at.isoformat()
                        if user_stats.last_synced_at
                        else None
                    ),
                }
                if user_stats
                else None
            ),
            "data_dir": str(self.config.data_path),
        }

    async def close(self) -> None:
        """Close the HTTP client and the database."""
        self._running = False
        await self.transport.close()
        self.store.close()

    async def __aenter__(self) -> "UploadOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
