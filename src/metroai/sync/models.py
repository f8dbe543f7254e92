"""Capture record model, upload status state machine, and stats aggregate."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from metroai.sync.errors import InvalidTransitionError


class UploadStatus(str, Enum):
    """Upload state of a capture record."""

    PENDING = "pending"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"

    def can_transition_to(self, new_status: "UploadStatus") -> bool:
        """Check whether the state machine allows moving to new_status."""
        return new_status in _TRANSITIONS[self]


_TRANSITIONS: dict[UploadStatus, frozenset[UploadStatus]] = {
    UploadStatus.PENDING: frozenset({UploadStatus.UPLOADING, UploadStatus.PENDING}),
    UploadStatus.UPLOADING: frozenset(
        {UploadStatus.UPLOADED, UploadStatus.PENDING, UploadStatus.FAILED}
    ),
    UploadStatus.FAILED: frozenset({UploadStatus.PENDING}),
    UploadStatus.UPLOADED: frozenset(),
}


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class UploadMetadata:
    """Immutable metadata payload sent with a photo upload."""

    defect_id: str
    captured_at: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    station_id: str | None = None
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the API's JSON shape, omitting unset fields."""
        data: dict[str, Any] = {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "station_id": self.station_id,
            "captured_at": (
                as_utc(self.captured_at).strftime("%Y-%m-%dT%H:%M:%SZ")
                if self.captured_at
                else None
            ),
            "defect_id": self.defect_id,
            "notes": self.notes,
        }
        return {key: value for key, value in data.items() if value is not None}


@dataclass
class CaptureRecord:
    """A user-submitted defect capture awaiting or having completed upload."""

    id: str
    artifact_ref: str
    defect_type_id: str
    captured_at: datetime
    status: UploadStatus = UploadStatus.PENDING
    notes: str | None = None
    thumbnail_ref: str | None = None
    uploaded_at: datetime | None = None
    retry_count: int = 0
    latitude: float | None = None
    longitude: float | None = None
    location_accuracy: float | None = None  # meters, not sent to the API
    station_id: str | None = None
    last_error: str | None = None

    def __post_init__(self) -> None:
        if not self.defect_type_id:
            raise ValueError("defect_type_id is required")
        if self.retry_count < 0:
            raise ValueError("retry_count must not be negative")
        self.status = UploadStatus(self.status)
        self.captured_at = as_utc(self.captured_at)
        if self.uploaded_at is not None:
            self.uploaded_at = as_utc(self.uploaded_at)
        if (self.uploaded_at is not None) != (self.status == UploadStatus.UPLOADED):
            raise ValueError("uploaded_at must be set exactly when status is uploaded")

    @classmethod
    def new(
        cls,
        artifact_ref: str,
        defect_type_id: str,
        captured_at: datetime | None = None,
        **fields: Any,
    ) -> "CaptureRecord":
        """Create a fresh pending record with a generated id."""
        return cls(
            id=str(uuid.uuid4()),
            artifact_ref=artifact_ref,
            defect_type_id=defect_type_id,
            captured_at=captured_at or utc_now(),
            **fields,
        )

    @property
    def has_location(self) -> bool:
        """Whether this record carries GPS coordinates."""
        return self.latitude is not None and self.longitude is not None

    @property
    def location_string(self) -> str | None:
        """Formatted coordinates for display."""
        if not self.has_location:
            return None
        return f"{self.latitude:.6f}, {self.longitude:.6f}"

    def build_metadata(self) -> UploadMetadata:
        """Build the upload payload from the current record fields."""
        return UploadMetadata(
            defect_id=self.defect_type_id,
            captured_at=self.captured_at,
            latitude=self.latitude,
            longitude=self.longitude,
            station_id=self.station_id,
            notes=self.notes,
        )

    # --- State transitions ---

    def _move_to(self, new_status: UploadStatus) -> None:
        if not self.status.can_transition_to(new_status):
            raise InvalidTransitionError(self.id, self.status.value, new_status.value)
        self.status = new_status

    def claim(self) -> None:
        """pending -> uploading, right before the network call."""
        if self.status != UploadStatus.PENDING:
            raise InvalidTransitionError(
                self.id, self.status.value, UploadStatus.UPLOADING.value
            )
        self._move_to(UploadStatus.UPLOADING)

    def mark_uploaded(self, now: datetime) -> None:
        """uploading -> uploaded, stamping uploaded_at once."""
        if self.status != UploadStatus.UPLOADING:
            raise InvalidTransitionError(
                self.id, self.status.value, UploadStatus.UPLOADED.value
            )
        self._move_to(UploadStatus.UPLOADED)
        self.uploaded_at = as_utc(now)
        self.last_error = None

    def requeue(self, error: str | None = None) -> None:
        """uploading -> pending without touching retry_count."""
        if self.status != UploadStatus.UPLOADING:
            raise InvalidTransitionError(
                self.id, self.status.value, UploadStatus.PENDING.value
            )
        self._move_to(UploadStatus.PENDING)
        if error is not None:
            self.last_error = error

    def record_failure(self, max_attempts: int, error: str | None = None) -> None:
        """uploading -> pending or failed after an application failure.

        Increments retry_count; the record fails once the count reaches
        max_attempts.
        """
        if self.status != UploadStatus.UPLOADING:
            raise InvalidTransitionError(
                self.id, self.status.value, UploadStatus.FAILED.value
            )
        self.retry_count += 1
        if self.retry_count >= max_attempts:
            self._move_to(UploadStatus.FAILED)
        else:
            self._move_to(UploadStatus.PENDING)
        self.last_error = error

    def repair(self) -> None:
        """uploading -> pending for a record left behind by an interrupted run."""
        self.requeue(error="Interrupted upload")

    def reset_for_retry(self) -> None:
        """User-initiated retry: failed/pending -> pending, retry_count = 0."""
        if self.status not in (UploadStatus.FAILED, UploadStatus.PENDING):
            raise InvalidTransitionError(
                self.id, self.status.value, UploadStatus.PENDING.value
            )
        self._move_to(UploadStatus.PENDING)
        self.retry_count = 0
        self.last_error = None


@dataclass
class UserStats:
    """Local gamification aggregate for one user."""

    user_id: str
    photos_uploaded: int = 0
    total_points: int = 0
    last_synced_at: datetime | None = None
    current_rank: int = 0  # 0 if not ranked


@dataclass(frozen=True)
class UserStatsSnapshot:
    """Server-side stats as returned by GET /api/user/stats."""

    user_id: str
    username: str
    points: int
    photos_uploaded: int


@dataclass(frozen=True)
class LeaderboardEntry:
    """One row of GET /api/leaderboard."""

    user_id: str
    username: str
    points: int
    rank: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "points": self.points,
            "rank": self.rank,
        }


@dataclass
class RunSummary:
    """Outcome counters for one coordinator run."""

    skipped: bool = False
    repaired: int = 0
    attempted: int = 0
    uploaded: int = 0
    requeued: int = 0
    failed: int = 0
    auth_required: bool = False
    uploaded_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Plain dictionary for JSON output."""
        return {
            "skipped": self.skipped,
            "repaired": self.repaired,
            "attempted": self.attempted,
            "uploaded": self.uploaded,
            "requeued": self.requeued,
            "failed": self.failed,
            "auth_required": self.auth_required,
        }
