"""Sync module for the offline capture upload queue."""

from metroai.sync.artifacts import ArtifactStore
from metroai.sync.auth import AuthProvider, TokenFileAuth
from metroai.sync.coordinator import UploadCoordinator
from metroai.sync.lock import RunLock
from metroai.sync.models import CaptureRecord, RunSummary, UploadStatus, UserStats
from metroai.sync.stats import StatsReconciler
from metroai.sync.store import RecordStore
from metroai.sync.transport import TransportClient

__all__ = [
    "ArtifactStore",
    "AuthProvider",
    "CaptureRecord",
    "RecordStore",
    "RunLock",
    "RunSummary",
    "StatsReconciler",
    "TokenFileAuth",
    "TransportClient",
    "UploadCoordinator",
    "UploadStatus",
    "UserStats",
]
