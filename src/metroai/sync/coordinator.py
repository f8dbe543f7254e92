"""Single-flight upload coordinator for the offline capture queue."""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from metroai.logging import (
    log_status_change,
    log_stuck_reset,
    log_upload_failed,
    log_upload_success,
)
from metroai.sync.artifacts import ArtifactStore
from metroai.sync.errors import (
    FailureClass,
    RecordNotFoundError,
    StoreError,
    UploadError,
    classify_failure,
)
from metroai.sync.lock import RunLock
from metroai.sync.models import CaptureRecord, RunSummary, UploadMetadata, UploadStatus, utc_now
from metroai.sync.stats import StatsReconciler
from metroai.sync.store import RecordStore

logger = logging.getLogger(__name__)


class PhotoUploader(Protocol):
    """The part of the transport the coordinator depends on."""

    async def upload_photo(self, metadata: UploadMetadata, image_bytes: bytes) -> int:
        ...


class UploadCoordinator:
    """Drains the pending queue one record at a time.

    At most one run is active per coordinator, and with a RunLock at most
    one per queue database across processes; triggers that arrive during a
    run are dropped. Each run first repairs records stuck in "uploading"
    (left behind when the process died mid-upload), then uploads the pending
    batch in capture order, committing every status change before moving on.

    Example:
        coordinator = UploadCoordinator(store, artifacts, transport, stats)
        summary = await coordinator.process_queue()
    """

    def __init__(
        self,
        store: RecordStore,
        artifacts: ArtifactStore,
        uploader: PhotoUploader,
        stats: StatsReconciler,
        max_retry_attempts: int = 3,
        clock: Callable[[], datetime] = utc_now,
        run_lock: RunLock | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            store: Record store to read and transition records in
            artifacts: Artifact store holding the image bytes
            uploader: Transport used for the upload call
            stats: Reconciler applying successful upload side effects
            max_retry_attempts: Application failures before a record fails
            clock: Source of timestamps
            run_lock: Lock shared by every process using the same store
        """
        if max_retry_attempts < 1:
            raise ValueError("max_retry_attempts must be at least 1")

        self.store = store
        self.artifacts = artifacts
        self.uploader = uploader
        self.stats = stats
        self.max_retry_attempts = max_retry_attempts
        self._clock = clock
        self.run_lock = run_lock

        self._running = False
        self._current_record_id: str | None = None

    @property
    def is_running(self) -> bool:
        """Whether a queue run is in progress."""
        return self._running

    @property
    def current_record_id(self) -> str | None:
        """Id of the record being uploaded right now."""
        return self._current_record_id

    async def process_queue(self) -> RunSummary:
        """Run the queue once: repair stuck records, then upload pending ones.

        Returns:
            RunSummary; skipped=True when another run was already active
        """
        if self._running:
            logger.debug("Queue run already in progress, trigger dropped")
            return RunSummary(skipped=True)

        if self.run_lock is not None and not self.run_lock.acquire():
            logger.info("Queue run active in another process, trigger dropped")
            return RunSummary(skipped=True)

        self._running = True
        try:
            return await self._run()
        finally:
            self._running = False
            self._current_record_id = None
            if self.run_lock is not None:
                self.run_lock.release()

    async def _run(self) -> RunSummary:
        summary = RunSummary()
        records = self.store.fetch_ordered_by_captured_at()

        stuck = [r for r in records if r.status == UploadStatus.UPLOADING]
        if stuck:
            with self.store.transaction():
                for record in stuck:
                    record.repair()
                    self.store.update(record)
                    log_stuck_reset(logger, record.id)
            summary.repaired = len(stuck)

        batch = [r for r in records if r.status == UploadStatus.PENDING]
        logger.info(
            "Queue run started: pending=%d, repaired=%d", len(batch), summary.repaired
        )

        for queued in batch:
            try:
                record = self.store.get(queued.id)
            except RecordNotFoundError:
                logger.debug("Record deleted during run: record_id=%s", queued.id)
                continue
            except StoreError:
                logger.exception("Cannot load record: record_id=%s", queued.id)
                continue
            if record.status != UploadStatus.PENDING:
                continue
            try:
                await self._upload_record(record, summary)
            except RecordNotFoundError:
                logger.info("Record deleted during upload: record_id=%s", record.id)
            except StoreError:
                # Whatever was committed stays; an "uploading" row is repaired next run
                logger.exception("Store write failed: record_id=%s", record.id)

        logger.info(
            "Queue run finished: attempted=%d, uploaded=%d, requeued=%d, failed=%d",
            summary.attempted,
            summary.uploaded,
            summary.requeued,
            summary.failed,
        )
        return summary

    async def _upload_record(self, record: CaptureRecord, summary: RunSummary) -> None:
        """Attempt one upload and persist the resulting status."""
        self._current_record_id = record.id
        summary.attempted += 1

        record.claim()
        self.store.update(record)
        log_status_change(logger, record.id, "pending", "uploading", trigger="queue_run")

        started = time.monotonic()
        try:
            image_bytes = self.artifacts.read_bytes(record.artifact_ref)
            metadata = record.build_metadata()
            points = await self.uploader.upload_photo(metadata, image_bytes)
        except Exception as e:
            self._apply_failure(record, e, summary)
            return

        now = self._clock()
        with self.store.transaction():
            record.mark_uploaded(now)
            self.store.update(record)
            self.stats.apply_upload(points, now)

        summary.uploaded += 1
        summary.uploaded_ids.append(record.id)
        log_status_change(logger, record.id, "uploading", "uploaded", trigger="upload_success")
        log_upload_success(
            logger, record.id, points, (time.monotonic() - started) * 1000.0
        )

    def _apply_failure(
        self,
        record: CaptureRecord,
        error: Exception,
        summary: RunSummary,
    ) -> None:
        """Turn a failed attempt into a status transition."""
        failure_class = classify_failure(error)
        message = str(error) or type(error).__name__

        if failure_class == FailureClass.APPLICATION:
            record.record_failure(self.max_retry_attempts, error=message)
            if record.status == UploadStatus.FAILED:
                summary.failed += 1
            else:
                summary.requeued += 1
        else:
            record.requeue(error=message)
            summary.requeued += 1
            if failure_class == FailureClass.AUTHORIZATION:
                summary.auth_required = True

        self.store.update(record)

        if not isinstance(error, UploadError):
            logger.exception("Unexpected upload error: record_id=%s", record.id, exc_info=error)
        log_upload_failed(
            logger, record.id, message, failure_class.value, record.retry_count
        )
        log_status_change(
            logger, record.id, "uploading", record.status.value, trigger=failure_class.value
        )

    def trigger(self) -> "asyncio.Task[RunSummary] | None":
        """Schedule a queue run on the running event loop.

        Returns:
            The scheduled task, or None if a run is already in progress
        """
        if self._running:
            return None
        return asyncio.create_task(self.process_queue())

    def _reset(self, record: CaptureRecord) -> None:
        old_status = record.status.value
        record.reset_for_retry()
        self.store.update(record)
        log_status_change(logger, record.id, old_status, "pending", trigger="user_retry")

    async def retry_all_failed(self) -> RunSummary:
        """Reset every failed record to pending and run the queue once."""
        failed = self.store.fetch_by_status(UploadStatus.FAILED)
        with self.store.transaction():
            for record in failed:
                self._reset(record)
        logger.info("Retrying failed uploads: count=%d", len(failed))
        return await self.process_queue()

    async def retry_record(self, record_id: str) -> RunSummary:
        """Reset one record and run the whole queue.

        Raises:
            RecordNotFoundError: If the id is unknown
            InvalidTransitionError: If the record is uploading or uploaded
        """
        record = self.store.get(record_id)
        self._reset(record)
        return await self.process_queue()
