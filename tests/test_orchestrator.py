"""Integration tests wiring the orchestrator to a mocked HTTP server."""

import asyncio

import httpx
import pytest

from metroai.config import Settings
from metroai.engine import UploadOrchestrator
from metroai.sync.errors import LocalIOError, RecordNotFoundError
from metroai.sync.models import UploadStatus


class FakeServer:
    """Mock API answering uploads with an increasing point total."""

    def __init__(self, statuses=None):
        self.statuses = list(statuses or [])
        self.points = 0
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if request.url.path == "/api/user/stats":
            return httpx.Response(
                200,
                json={"user_id": "u1", "username": "alice", "points": 999, "photos_uploaded": 50},
            )
        if request.url.path == "/api/leaderboard":
            return httpx.Response(
                200,
                json=[
                    {"user_id": "u2", "username": "boris", "points": 1200, "rank": 1},
                    {"user_id": "u1", "username": "alice", "points": 999, "rank": 2},
                ],
            )
        status = self.statuses.pop(0) if self.statuses else 201
        if status >= 300:
            return httpx.Response(status)
        self.points += 10
        return httpx.Response(status, json={"points": self.points})


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path / "data",
        api_base_url="http://api.test",
        current_username="alice",
        _env_file=None,
    )


@pytest.fixture
def image(tmp_path):
    path = tmp_path / "capture.jpg"
    path.write_bytes(b"\xff\xd8jpeg")
    return path


def run_with(settings, server, action):
    async def _main():
        async with UploadOrchestrator(settings, http_transport=httpx.MockTransport(server)) as o:
            o.auth.save_token("token-1")
            return await action(o)

    return asyncio.run(_main())


def test_capture_and_upload(settings, image):
    server = FakeServer()

    async def action(o):
        record = o.add_capture(image, "seat-damage", notes="Seat 12", station_id="st-2")
        summary = await o.process_queue()
        return o.store.get(record.id), summary, o.get_status()

    record, summary, status = run_with(settings, server, action)

    assert summary.uploaded == 1
    assert record.status == UploadStatus.UPLOADED
    assert status["queue"]["uploaded"] == 1
    assert status["stats"]["photos_uploaded"] == 1
    assert status["stats"]["total_points"] == 10
    assert status["authenticated"] is True
    assert server.requests[0].headers["Authorization"] == "Bearer token-1"


def test_server_errors_end_in_failed_then_retry_all(settings, image):
    server = FakeServer(statuses=[500, 500, 500])

    async def action(o):
        record = o.add_capture(image, "graffiti")
        for _ in range(3):
            await o.process_queue()
        failed = o.store.get(record.id)
        summary = await o.retry_all_failed()
        return failed, o.store.get(record.id), summary

    failed, final, summary = run_with(settings, server, action)

    assert failed.status == UploadStatus.FAILED
    assert failed.retry_count == 3
    assert summary.uploaded == 1
    assert final.status == UploadStatus.UPLOADED
    assert final.retry_count == 0


def test_unreachable_server_keeps_record_pending(settings, image):
    def server(request):
        raise httpx.ConnectError("no route to host")

    async def action(o):
        record = o.add_capture(image, "graffiti")
        summary = await o.process_queue()
        return o.store.get(record.id), summary

    record, summary = run_with(settings, server, action)

    assert summary.requeued == 1
    assert record.status == UploadStatus.PENDING
    assert record.retry_count == 0


def test_signed_out_flags_auth_required(settings, image):
    async def action(o):
        o.auth.clear_session()
        o.add_capture(image, "graffiti")
        return await o.process_queue()

    summary = run_with(settings, FakeServer(), action)

    assert summary.auth_required is True


def test_delete_removes_record_and_files(settings, image):
    async def action(o):
        record = o.add_capture(image, "graffiti", thumbnail_path=image)
        o.delete_record(record.id)
        with pytest.raises(RecordNotFoundError):
            o.store.get(record.id)
        return record, list(o.artifacts.base_path.iterdir())

    _, files = run_with(settings, FakeServer(), action)

    assert files == []


def test_add_capture_missing_image(settings, tmp_path):
    async def action(o):
        with pytest.raises(LocalIOError):
            o.add_capture(tmp_path / "nope.jpg", "graffiti")
        with pytest.raises(ValueError):
            o.add_capture(tmp_path / "nope.jpg", "")
        return o.store.get_stats()["total"]

    assert run_with(settings, FakeServer(), action) == 0


def test_refresh_stats(settings):
    async def action(o):
        await o.refresh_stats()
        return o.stats.current()

    stats = run_with(settings, FakeServer(), action)

    assert stats.total_points == 999
    assert stats.photos_uploaded == 50


def test_watch_runs_until_stopped(settings, image):
    server = FakeServer()

    async def action(o):
        o.add_capture(image, "graffiti")
        task = asyncio.create_task(o.watch(interval=0.01))
        while o.queue_size:
            await asyncio.sleep(0.01)
        o.stop()
        await asyncio.wait_for(task, timeout=1.0)
        return o.get_status()

    status = run_with(settings, server, action)

    assert status["queue"]["uploaded"] == 1


def test_leaderboard_records_rank(settings):
    server = FakeServer()

    async def action(o):
        entries = await o.fetch_leaderboard(limit=10)
        return entries, o.get_status()["stats"]

    entries, stats = run_with(settings, server, action)

    assert [e.username for e in entries] == ["boris", "alice"]
    assert stats["current_rank"] == 2
    assert server.requests[0].url.params["limit"] == "10"


def test_cleanup_zero_days_removes_all_uploaded(settings, image):
    async def action(o):
        o.add_capture(image, "graffiti")
        await o.process_queue()
        kept = o.cleanup()
        removed = o.cleanup(0)
        return kept, removed, o.store.get_stats()["total"]

    kept, removed, total = run_with(settings, FakeServer(), action)

    assert kept == 0
    assert removed == 1
    assert total == 0


def test_queue_run_skipped_while_another_orchestrator_holds_lock(settings, image):
    server = FakeServer()

    async def action(o):
        o.add_capture(image, "graffiti")
        other = UploadOrchestrator(settings, http_transport=httpx.MockTransport(server))
        try:
            assert other.coordinator.run_lock.acquire()
            skipped = await o.process_queue()
        finally:
            other.coordinator.run_lock.release()
            await other.close()
        return skipped, await o.process_queue()

    skipped, summary = run_with(settings, server, action)

    assert skipped.skipped is True
    assert skipped.attempted == 0
    assert summary.uploaded == 1
    assert len(server.requests) == 1
