# tests/test_scheduler.py
import json

import run_ingest
from listing_explorer import scheduler, schemas


def test_scheduler_disabled_without_feed_dir(monkeypatch):
    monkeypatch.setattr(scheduler, "FEED_DIR", None)
    assert scheduler.start_scheduler() is False
    assert not scheduler.scheduler.running


def test_ingest_feed_dir_ingests_every_json_file(tmp_path, monkeypatch, fake_db):
    (tmp_path / "b.json").write_text("[]")
    (tmp_path / "a.json").write_text("[]")
    (tmp_path / "notes.txt").write_text("ignored")
    seen = []

    def fake_ingest(db, path):
        seen.append(path.name)
        if path.name == "a.json":
            raise ValueError("broken feed")
        return schemas.IngestResult()

    monkeypatch.setattr(scheduler, "SessionLocal", lambda: fake_db)
    monkeypatch.setattr(scheduler, "ingest_feed_file", fake_ingest)
    scheduler.ingest_feed_dir(tmp_path)
    assert seen == ["a.json", "b.json"]


def test_run_ingest_cli(tmp_path, monkeypatch, capsys, fake_db):
    assert run_ingest.main([]) == 2

    feed = tmp_path / "feed.json"
    feed.write_text(json.dumps([]))
    monkeypatch.setattr("listing_explorer.db.SessionLocal", lambda: fake_db)
    assert run_ingest.main([str(feed)]) == 0
    assert "0 ingested" in capsys.readouterr().out
    assert run_ingest.main([str(tmp_path / "missing.json")]) == 1
