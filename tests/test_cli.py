"""Tests for the typer CLI."""

import json

import httpx
import pytest
from typer.testing import CliRunner

from metroai import __version__
from metroai.cli import app
from metroai.cli_commands import common
from metroai.config import get_settings
from metroai.engine import UploadOrchestrator

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch, restore_logging):
    """Point the CLI at a temp data dir with quiet logging."""
    monkeypatch.setenv("METROAI_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("METROAI_LOG_LEVEL", "CRITICAL")
    monkeypatch.setenv("METROAI_API_BASE_URL", "http://127.0.0.1:9")
    monkeypatch.setenv("METROAI_UPLOAD_TIMEOUT", "1")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def image(tmp_path):
    path = tmp_path / "capture.jpg"
    path.write_bytes(b"\xff\xd8jpeg")
    return path


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_config_show_json(tmp_path):
    result = runner.invoke(app, ["config", "show", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["max_retry_attempts"] == 3
    assert data["data_dir"] == str(tmp_path / "data")


def test_add_list_delete(image):
    result = runner.invoke(app, ["queue", "add", str(image), "--defect", "graffiti", "--no-upload", "--json"])
    assert result.exit_code == 0
    record_id = json.loads(result.stdout)["record"]["id"]

    result = runner.invoke(app, ["queue", "list", "--json"])
    assert result.exit_code == 0
    records = json.loads(result.stdout)["records"]
    assert [r["id"] for r in records] == [record_id]
    assert records[0]["status"] == "pending"

    result = runner.invoke(app, ["queue", "delete", record_id])
    assert result.exit_code == 0

    result = runner.invoke(app, ["queue", "list"])
    assert "Queue is empty." in result.stdout


def test_add_missing_image(tmp_path):
    result = runner.invoke(app, ["queue", "add", str(tmp_path / "nope.jpg"), "--defect", "x"])
    assert result.exit_code == 1


def test_process_without_token_requires_auth(image):
    runner.invoke(app, ["queue", "add", str(image), "--defect", "graffiti", "--no-upload"])

    result = runner.invoke(app, ["queue", "process", "--json"])

    assert result.exit_code == 0
    summary = json.loads(result.stdout)
    assert summary["auth_required"] is True
    assert summary["requeued"] == 1


def test_retry_unknown_record():
    result = runner.invoke(app, ["queue", "retry", "missing"])
    assert result.exit_code == 1
    assert "Record not found" in result.stdout


def test_auth_login_logout():
    result = runner.invoke(app, ["auth", "login", "--token", "abc"])
    assert result.exit_code == 0

    result = runner.invoke(app, ["auth", "status", "--json"])
    assert json.loads(result.stdout) == {"authenticated": True}

    runner.invoke(app, ["auth", "logout"])
    result = runner.invoke(app, ["auth", "status", "--json"])
    assert json.loads(result.stdout) == {"authenticated": False}


def test_status_json(image):
    runner.invoke(app, ["queue", "add", str(image), "--defect", "graffiti", "--no-upload"])

    result = runner.invoke(app, ["status", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["queue"]["pending"] == 1
    assert data["authenticated"] is False


def test_cleanup_rejects_negative_days():
    result = runner.invoke(app, ["queue", "cleanup", "--days", "-1"])
    assert result.exit_code != 0


def test_leaderboard_without_token_fails():
    result = runner.invoke(app, ["stats", "leaderboard"])

    assert result.exit_code == 1
    assert "Failed to fetch leaderboard" in result.stdout


def test_leaderboard_marks_current_user(monkeypatch):
    monkeypatch.setenv("METROAI_CURRENT_USERNAME", "alice")
    get_settings.cache_clear()
    requests = []

    def server(request):
        requests.append(request)
        return httpx.Response(
            200,
            json=[
                {"user_id": "u2", "username": "boris", "points": 900, "rank": 1},
                {"user_id": "u1", "username": "alice", "points": 250, "rank": 2},
            ],
        )

    monkeypatch.setattr(
        common,
        "UploadOrchestrator",
        lambda config: UploadOrchestrator(config, http_transport=httpx.MockTransport(server)),
    )
    runner.invoke(app, ["auth", "login", "--token", "abc"])

    result = runner.invoke(app, ["stats", "leaderboard", "--limit", "5"])

    assert result.exit_code == 0
    lines = result.stdout.splitlines()
    assert lines[0].startswith("  #1")
    assert lines[1].startswith("* #2")
    assert requests[0].url.params["limit"] == "5"

    result = runner.invoke(app, ["stats", "show", "--json"])
    assert json.loads(result.stdout)["current_rank"] == 2
