import json

import pytest

import main
from listsync.config import DEFAULT_CONFIG


@pytest.fixture
def workspace(tmp_path, client, monkeypatch):
    cfg = json.loads(json.dumps(DEFAULT_CONFIG))
    cfg["Logging"]["logFile"] = str(tmp_path / "sync.log")
    (tmp_path / "config.json").write_text(json.dumps(cfg), encoding="utf-8")
    (tmp_path / ".env").write_text("SHAREPOINT_ACCESS_TOKEN=tok\n", encoding="utf-8")
    (tmp_path / "export.csv").write_text(
        "AssetTag,SerialNumber,Status,Model,PurchaseDate\n"
        "A1,SN1,Active,X1,2024-01-02\n"
        ",,Active,X1,2024-01-02\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(main, "SharePointListClient", lambda creds: client)
    return tmp_path


def _argv(ws, *extra):
    return ["--csv", str(ws / "export.csv"), "--config", str(ws / "config.json"), "--env", str(ws / ".env"), *extra]


def test_main_syncs_and_writes_report(workspace, client, capsys):
    code = main.main(_argv(workspace, "--report", str(workspace / "report.csv")))

    assert code == 0
    assert len(client.calls_named("create")) == 1
    out = capsys.readouterr().out
    assert "created=1" in out
    assert "skipped=1" in out
    assert (workspace / "report.csv").exists()
    assert (workspace / "sync.log").read_text(encoding="utf-8")


def test_main_dry_run_creates_nothing(workspace, client):
    assert main.main(_argv(workspace, "--dry-run")) == 0
    assert client.calls_named("create") == []


def test_main_reports_row_failures_in_exit_code(workspace, client):
    client.fail_create = True
    assert main.main(_argv(workspace)) == 1


def test_main_stops_on_connection_failure(workspace, client):
    client.fail_connect = True
    assert main.main(_argv(workspace)) == 2


def test_main_creates_missing_config(tmp_path, capsys):
    code = main.main(["--csv", "x.csv", "--config", str(tmp_path / "config.json")])
    assert code == 2
    assert (tmp_path / "config.json").exists()
    assert "Config error" in capsys.readouterr().out


def test_main_requires_credentials(workspace):
    (workspace / ".env").write_text("", encoding="utf-8")
    assert main.main(_argv(workspace)) == 2


def test_main_stops_on_unreadable_csv(workspace, client):
    (workspace / "export.csv").write_bytes(b"AssetTag,SerialNumber\n\xff\xfeA1,SN1\n")

    assert main.main(_argv(workspace)) == 2
    assert client.calls == []
