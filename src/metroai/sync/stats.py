"""Local user stats updated from successful uploads."""

import logging
from datetime import datetime

from metroai.sync.models import LeaderboardEntry, UserStats, UserStatsSnapshot, utc_now
from metroai.sync.store import RecordStore

logger = logging.getLogger(__name__)


class StatsReconciler:
    """Applies upload side effects to the active user's stats aggregate.

    The server is the single source of truth for points, so totals are
    always overwritten with the server value, never summed locally.
    """

    def __init__(self, store: RecordStore, user_id: str | None) -> None:
        """Initialize the reconciler.

        Args:
            store: Record store holding the user_stats table
            user_id: Active user, or None when nobody is signed in
        """
        self.store = store
        self.user_id = user_id

    def _load_or_create(self, user_id: str) -> UserStats:
        return self.store.get_user_stats(user_id) or UserStats(user_id=user_id)

    def current(self) -> UserStats | None:
        """Get the active user's aggregate, if any."""
        if not self.user_id:
            return None
        return self.store.get_user_stats(self.user_id)

    def apply_upload(self, points: int, now: datetime | None = None) -> UserStats | None:
        """Record one successful upload.

        Args:
            points: User point total reported by the server
            now: Sync timestamp, defaults to the current time

        Returns:
            Updated aggregate, or None when there is no active user
        """
        if not self.user_id:
            logger.debug("No active user, skipping stats update")
            return None

        stats = self._load_or_create(self.user_id)
        stats.total_points = points
        stats.photos_uploaded += 1
        stats.last_synced_at = now or utc_now()
        self.store.save_user_stats(stats)
        return stats

    def apply_server_snapshot(
        self,
        snapshot: UserStatsSnapshot,
        now: datetime | None = None,
    ) -> UserStats | None:
        """Bring the aggregate in line with the server's stats endpoint."""
        if not self.user_id:
            return None

        stats = self._load_or_create(self.user_id)
        stats.total_points = snapshot.points
        stats.photos_uploaded = max(stats.photos_uploaded, snapshot.photos_uploaded)
        stats.last_synced_at = now or utc_now()
        self.store.save_user_stats(stats)
        return stats

    def apply_leaderboard(self, entries: list[LeaderboardEntry]) -> UserStats | None:
        """Take the active user's rank from a leaderboard page.

        The user is matched by username or server user id. A page that does
        not list the user leaves the stored rank as it was.
        """
        if not self.user_id:
            return None

        entry = next(
            (e for e in entries if self.user_id in (e.username, e.user_id)),
            None,
        )
        if entry is None:
            return self.store.get_user_stats(self.user_id)

        stats = self._load_or_create(self.user_id)
        stats.current_rank = entry.rank
        self.store.save_user_stats(stats)
        logger.debug("Leaderboard rank updated: user=%s, rank=%d", self.user_id, entry.rank)
        return stats
