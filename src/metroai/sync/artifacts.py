"""Filesystem storage for captured images and their thumbnails."""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from metroai.sync.errors import LocalIOError

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Flat image store rooted at a single directory.

    Files are stored as {base_path}/{timestamp}_{uuid}.jpg with an optional
    {timestamp}_{uuid}_thumb.jpg next to them. Records keep only the file
    name (the "ref"), so the store can be relocated with the data directory.
    """

    def __init__(self, base_path: Path) -> None:
        """Initialize artifact storage.

        Args:
            base_path: Root directory for image files.
                       Will be created if it doesn't exist.
        """
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def path_for(self, ref: str) -> Path:
        """Resolve a ref to a path inside the store.

        Raises:
            LocalIOError: If the ref points outside the store root.
        """
        root = self.base_path.resolve()
        path = (root / ref).resolve()
        if path.parent != root:
            raise LocalIOError(f"Invalid artifact reference: {ref}")
        return path

    def save(self, data: bytes, thumbnail: bytes | None = None) -> tuple[str, str | None]:
        """Store image bytes and an optional thumbnail.

        Args:
            data: Encoded image bytes.
            thumbnail: Encoded thumbnail bytes, if one was produced.

        Returns:
            Tuple of (ref, thumbnail_ref).

        Raises:
            LocalIOError: If writing fails. A partially stored image is removed.
        """
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        stem = f"{stamp}_{uuid.uuid4().hex}"
        ref = f"{stem}.jpg"
        thumb_ref = f"{stem}_thumb.jpg" if thumbnail is not None else None

        try:
            self.path_for(ref).write_bytes(data)
            if thumb_ref is not None:
                self.path_for(thumb_ref).write_bytes(thumbnail)
        except OSError as e:
            self.delete(ref, thumb_ref)
            raise LocalIOError(f"Failed to store artifact: {e}") from e

        return ref, thumb_ref

    def read_bytes(self, ref: str) -> bytes:
        """Read stored image bytes for upload.

        Raises:
            LocalIOError: If the file is missing or unreadable.
        """
        path = self.path_for(ref)
        try:
            return path.read_bytes()
        except OSError as e:
            raise LocalIOError(f"Failed to read artifact {ref}: {e}") from e

    def exists(self, ref: str) -> bool:
        """Check whether a stored file exists."""
        return self.path_for(ref).is_file()

    def delete(self, ref: str, thumbnail_ref: str | None = None) -> None:
        """Delete an image and its thumbnail.

        Missing files and refs outside the store are logged and skipped.
        """
        for item in (ref, thumbnail_ref):
            if item is None:
                continue
            try:
                self.path_for(item).unlink(missing_ok=True)
            except (OSError, LocalIOError) as e:
                logger.warning("Artifact delete failed: ref=%s, error=%s", item, e)
