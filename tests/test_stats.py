"""Tests for the stats reconciler."""

from datetime import timedelta

from conftest import BASE_TIME
from metroai.sync.models import LeaderboardEntry, UserStatsSnapshot
from metroai.sync.stats import StatsReconciler


def test_first_upload_creates_aggregate(stats):
    assert stats.current() is None

    result = stats.apply_upload(101, now=BASE_TIME)

    assert result.photos_uploaded == 1
    assert result.total_points == 101
    assert stats.current() == result


def test_points_are_server_authoritative(stats):
    stats.apply_upload(100, now=BASE_TIME)
    stats.apply_upload(90, now=BASE_TIME + timedelta(minutes=1))

    current = stats.current()
    assert current.total_points == 90
    assert current.photos_uploaded == 2
    assert current.last_synced_at == BASE_TIME + timedelta(minutes=1)


def test_no_active_user_is_noop(store):
    reconciler = StatsReconciler(store, None)

    assert reconciler.apply_upload(5) is None
    assert reconciler.current() is None


def test_stats_are_per_user(store):
    StatsReconciler(store, "alice").apply_upload(10)
    StatsReconciler(store, "bob").apply_upload(20)

    assert store.get_user_stats("alice").total_points == 10
    assert store.get_user_stats("bob").total_points == 20


def test_server_snapshot(stats):
    stats.apply_upload(10, now=BASE_TIME)
    snapshot = UserStatsSnapshot(user_id="u1", username="alice", points=300, photos_uploaded=7)

    result = stats.apply_server_snapshot(snapshot, now=BASE_TIME)

    assert result.total_points == 300
    assert result.photos_uploaded == 7


def test_server_snapshot_never_lowers_upload_count(stats):
    for _ in range(3):
        stats.apply_upload(10)
    snapshot = UserStatsSnapshot(user_id="u1", username="alice", points=30, photos_uploaded=1)

    result = stats.apply_server_snapshot(snapshot)

    assert result.photos_uploaded == 3


def test_leaderboard_sets_rank_of_active_user(stats):
    stats.apply_upload(250, now=BASE_TIME)
    entries = [
        LeaderboardEntry(user_id="u2", username="boris", points=900, rank=1),
        LeaderboardEntry(user_id="u1", username="alice", points=250, rank=2),
    ]

    result = stats.apply_leaderboard(entries)

    assert result.current_rank == 2
    assert result.total_points == 250
    assert stats.current().current_rank == 2


def test_leaderboard_page_without_user_keeps_rank(stats):
    stats.apply_leaderboard([LeaderboardEntry(user_id="u1", username="alice", points=5, rank=7)])

    result = stats.apply_leaderboard(
        [LeaderboardEntry(user_id="u2", username="boris", points=900, rank=1)]
    )

    assert result.current_rank == 7


def test_leaderboard_without_active_user(store):
    entry = LeaderboardEntry(user_id="u1", username="alice", points=5, rank=1)

    assert StatsReconciler(store, None).apply_leaderboard([entry]) is None
    assert store.get_user_stats("alice") is None
