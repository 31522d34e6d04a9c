"""Tests for the scripts/evaluate.py CLI."""

from __future__ import annotations

import json
import sys
from pathlib import Path

# Ensure scripts/ is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from scripts.evaluate import main
from gradebot.store.grade_store import SqliteGradeStore

SAMPLE_SLATE = Path(__file__).resolve().parent.parent / "data" / "sample_slate.json"


def _run(monkeypatch, *argv):
    monkeypatch.setattr("gradebot.logging_config.setup_logging", lambda: "test-run")
    monkeypatch.setattr(sys, "argv", ["evaluate.py", "--events", str(SAMPLE_SLATE), *argv])
    main()


class TestEvaluateScript:
    def test_db_flag_uses_sqlite_store(self, monkeypatch, db_path, capsys):
        _run(monkeypatch, "--db", str(db_path), "--json")

        payload = json.loads(capsys.readouterr().out)
        assert set(payload) == {
            "mlb-2026-06-01-nyy-bos",
            "mlb-2026-06-01-sd-lad",
            "mlb-2026-05-31-stl-chc",
        }
        store = SqliteGradeStore(db_path)
        assert store.count() == 2
        assert "mlb-2026-05-31-stl-chc" in store.terminal_events()

    def test_rerun_serves_cached_grades(self, monkeypatch, db_path, capsys):
        _run(monkeypatch, "--db", str(db_path), "--json", "--full")
        first = json.loads(capsys.readouterr().out)
        _run(monkeypatch, "--db", str(db_path), "--json", "--full")
        second = json.loads(capsys.readouterr().out)

        assert first["mlb-2026-06-01-nyy-bos"] == second["mlb-2026-06-01-nyy-bos"]
        assert SqliteGradeStore(db_path).count() == 2

    def test_without_db_uses_memory(self, monkeypatch, capsys):
        _run(monkeypatch, "--full")
        out = capsys.readouterr().out
        assert "Boston Red Sox ML" in out
        assert "mlb-2026-05-31-stl-chc: no recommendations" in out
