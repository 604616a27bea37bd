import io
import json

import pytest

from listsync.logs import run_logger


def _lines(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_events_are_written_to_console_and_file(tmp_path):
    path = tmp_path / "logs" / "sync.log"
    console = io.StringIO()
    with run_logger("INFO", path, stream=console) as log:
        log.bind(row=2).error("date_parse_failed", field="PurchaseDate")

    [entry] = _lines(path)
    assert entry["event"] == "date_parse_failed"
    assert entry["level"] == "error"
    assert entry["row"] == 2
    assert "timestamp" in entry
    assert "date_parse_failed" in console.getvalue()


def test_level_threshold_filters_events(tmp_path):
    path = tmp_path / "sync.log"
    with run_logger("WARNING", path, stream=io.StringIO()) as log:
        log.info("row_created")
        log.warning("duplicate_identity")

    assert [e["event"] for e in _lines(path)] == ["duplicate_identity"]


def test_log_file_is_cleared_per_run(tmp_path):
    path = tmp_path / "sync.log"
    for event in ("first_run", "second_run"):
        with run_logger("INFO", path, stream=io.StringIO()) as log:
            log.info(event)

    assert [e["event"] for e in _lines(path)] == ["second_run"]


def test_handlers_are_released_when_the_run_ends(tmp_path):
    path = tmp_path / "sync.log"
    console = io.StringIO()
    with run_logger("INFO", path, stream=console) as log:
        log.info("sync_started")

    log.info("after_run")

    assert [e["event"] for e in _lines(path)] == ["sync_started"]
    assert "after_run" not in console.getvalue()


def test_handlers_are_released_on_error(tmp_path):
    path = tmp_path / "sync.log"
    with pytest.raises(RuntimeError):
        with run_logger("INFO", path, stream=io.StringIO()) as log:
            log.info("sync_started")
            raise RuntimeError("boom")

    log.info("after_run")
    assert [e["event"] for e in _lines(path)] == ["sync_started"]
