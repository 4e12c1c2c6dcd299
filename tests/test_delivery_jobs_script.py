from __future__ import annotations

import json
from pathlib import Path

from accessgate.core.database import SqliteDatabase
from accessgate.delivery.jobs import JobStatus
from accessgate.delivery.queue import DeliveryQueue, QueueSettings
import web_api
from scripts.delivery_jobs import run


def _failed_job(db_path: Path) -> str:
    db = SqliteDatabase(db_path)
    try:
        queue = DeliveryQueue(db, QueueSettings(max_attempts=1))
        queue.enqueue("verification_email", {"to": "x"}, "key-1")
        job = queue.claim("w1")
        queue.fail(job.job_id, "w1", "smtp down")
        return job.job_id
    finally:
        db.close()


def test_delivery_jobs_lists_and_requeues_failed(tmp_path: Path, capsys) -> None:
    db_path = tmp_path / "state.db"
    job_id = _failed_job(db_path)

    assert run(["--database", str(db_path), "list"]) == 0
    listed = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert [item["job_id"] for item in listed] == [job_id]
    assert listed[0]["last_error"] == "smtp down"

    assert run(["--database", str(db_path), "requeue", job_id]) == 0
    assert run(["--database", str(db_path), "requeue", job_id]) == 1

    db = SqliteDatabase(db_path)
    try:
        assert DeliveryQueue(db).get(job_id).status is JobStatus.PENDING
    finally:
        db.close()


def test_delivery_jobs_counts(tmp_path: Path, capsys) -> None:
    db_path = tmp_path / "state.db"
    _failed_job(db_path)

    assert run(["--database", str(db_path), "counts"]) == 0

    counts = json.loads(capsys.readouterr().out)
    assert counts["failed"] == 1
    assert counts["pending"] == 0


def test_delivery_jobs_resolves_relative_state_path_from_app_root(
    tmp_path: Path, monkeypatch, capsys
) -> None:
    app_root = tmp_path / "root"
    elsewhere = tmp_path / "elsewhere"
    elsewhere.mkdir()
    _failed_job(app_root / "runtime" / "state.db")
    monkeypatch.setattr(web_api, "APP_ROOT", app_root)
    monkeypatch.setenv("STATE_SQLITE_PATH", "runtime/state.db")
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.chdir(elsewhere)

    assert run(["counts"]) == 0

    assert json.loads(capsys.readouterr().out)["failed"] == 1
    assert not (elsewhere / "runtime").exists()
