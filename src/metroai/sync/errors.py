"""Error taxonomy and failure classification for upload attempts.

Every failure the transport and artifact layers can produce is one of the
closed set of UploadError subclasses below. The coordinator only looks at
the FailureClass returned by classify_failure() to pick the next status.
"""

from enum import Enum


class MetroAIError(Exception):
    """Base exception for all MetroAI uploader errors."""


class StoreError(MetroAIError):
    """Raised when a record store operation fails."""


class RecordNotFoundError(StoreError):
    """Raised when a record id does not exist in the store."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record not found: {record_id}")
        self.record_id = record_id


class InvalidTransitionError(MetroAIError):
    """Raised when a status change is not allowed by the state machine."""

    def __init__(self, record_id: str, old_status: str, new_status: str) -> None:
        super().__init__(
            f"Invalid status transition for {record_id}: {old_status} -> {new_status}"
        )
        self.record_id = record_id
        self.old_status = old_status
        self.new_status = new_status


class FailureKind(Enum):
    """Origin of an upload failure."""

    NETWORK = "network"
    SERVER = "server"
    UNAUTHORIZED = "unauthorized"
    LOCAL_IO = "local_io"
    DECODE = "decode"


class FailureClass(Enum):
    """Retry policy bucket an upload failure falls into."""

    NETWORK_TRANSIENT = "network_transient"
    APPLICATION = "application"
    AUTHORIZATION = "authorization"


class UploadError(MetroAIError):
    """Base class for failures at the transport and artifact boundary."""

    kind: FailureKind


class NetworkError(UploadError):
    """Connectivity failure: no connection, DNS, timeout, connection lost."""

    kind = FailureKind.NETWORK


class ServerRejectedError(UploadError):
    """Well-formed non-2xx server response (other than 401)."""

    kind = FailureKind.SERVER

    def __init__(self, status_code: int, detail: str | None = None) -> None:
        message = f"Server error: {status_code}"
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)
        self.status_code = status_code


class UnauthorizedError(UploadError):
    """Server answered 401, or no bearer token is available."""

    kind = FailureKind.UNAUTHORIZED


class LocalIOError(UploadError):
    """Artifact missing or unreadable on local storage."""

    kind = FailureKind.LOCAL_IO


class DecodeError(UploadError):
    """Server response could not be decoded."""

    kind = FailureKind.DECODE


_CLASS_BY_KIND = {
    FailureKind.NETWORK: FailureClass.NETWORK_TRANSIENT,
    FailureKind.UNAUTHORIZED: FailureClass.AUTHORIZATION,
    FailureKind.SERVER: FailureClass.APPLICATION,
    FailureKind.LOCAL_IO: FailureClass.APPLICATION,
    FailureKind.DECODE: FailureClass.APPLICATION,
}


def classify_failure(exc: BaseException) -> FailureClass:
    """Map an exception raised during an upload attempt to a retry bucket.

    Exceptions outside the UploadError taxonomy are programming or
    environment defects that will not heal on their own, so they are
    classified as APPLICATION and count toward the retry limit.

    Args:
        exc: Exception raised by the attempt

    Returns:
        FailureClass deciding the record's next status
    """
    if isinstance(exc, UploadError):
        return _CLASS_BY_KIND[exc.kind]
    return FailureClass.APPLICATION
