"""Shared fixtures for the uploader tests."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from metroai.sync.artifacts import ArtifactStore
from metroai.sync.coordinator import UploadCoordinator
from metroai.sync.models import CaptureRecord
from metroai.sync.stats import StatsReconciler
from metroai.sync.store import RecordStore

BASE_TIME = datetime(2026, 3, 1, 8, 30, tzinfo=timezone.utc)


class FakeUploader:
    """Scripted stand-in for TransportClient.upload_photo.

    Each call consumes the next outcome: an int is returned as the point
    total, an exception instance is raised. When the script runs out the
    default outcome is used.
    """

    def __init__(self, outcomes=None, default=10):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.calls = []

    async def upload_photo(self, metadata, image_bytes):
        self.calls.append((metadata, image_bytes))
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def artifacts(tmp_path):
    """Artifact store in a temp directory."""
    return ArtifactStore(tmp_path / "photos")


@pytest.fixture
def store(tmp_path, artifacts):
    """Record store in a temp directory with artifact cascade."""
    s = RecordStore(tmp_path / "queue.db", artifacts=artifacts)
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def stats(store):
    """Stats reconciler for user 'alice'."""
    return StatsReconciler(store, "alice")


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def coordinator(store, artifacts, uploader, stats):
    """Coordinator with max 3 attempts and a fixed clock."""
    return UploadCoordinator(
        store=store,
        artifacts=artifacts,
        uploader=uploader,
        stats=stats,
        max_retry_attempts=3,
        clock=lambda: BASE_TIME + timedelta(hours=1),
    )


@pytest.fixture
def make_record(store, artifacts):
    """Factory storing an image and inserting a pending record."""

    def _make(offset_minutes=0, data=b"\xff\xd8jpeg-bytes", **fields):
        ref, thumb_ref = artifacts.save(data, thumbnail=b"thumb")
        fields.setdefault("defect_type_id", "seat-damage")
        record = CaptureRecord.new(
            artifact_ref=ref,
            thumbnail_ref=thumb_ref,
            captured_at=BASE_TIME + timedelta(minutes=offset_minutes),
            **fields,
        )
        store.insert(record)
        return record

    return _make


@pytest.fixture
def restore_logging():
    """Put back root handlers replaced by setup_logging()."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
