# tests/test_cli.py
# How to run:
#   pytest -q
#
# Verifies the trace-integrity entry point:
#   - analyze prints the result record (exit 0), client errors exit 2, faults exit 1
#   - an unusable essay archive path never fails the analysis
#   - --assessment-host replaces the allowed tab-switch hosts
#   - screen prints the activity summary
#   - essay reads an archived text back

import json

import pytest

from integrity_app import cli
from integrity_core.crypto.key_manager import MasterKeyManager
from integrity_core.storage.essay_store import EssayStore

@pytest.fixture(autouse=True)
def _no_api_key(monkeypatch):
    monkeypatch.delenv("GPTZERO_API_KEY", raising=False)

def _write(tmp_path, name, obj):
    p = tmp_path / name
    p.write_text(json.dumps(obj), encoding="utf-8")
    return str(p)

def test_analyze_prints_result(tmp_path, capsys):
    req = _write(tmp_path, "req.json", {"actions": [{"type": "insert", "timestamp": 1000, "content": "H"}]})
    rc = cli.main(["analyze", req, "--no-store"])
    out = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert out["riskLevel"] == "low"
    assert out["isHuman"] is True
    assert out["confidenceScore"] == pytest.approx(0.86)

def test_analyze_archives_essay(tmp_path, capsys):
    req = _write(tmp_path, "req.json", {
        "actions": [{"type": "insert", "timestamp": 0, "content": "x"}],
        "textContent": "Short essay body.",
        "submissionId": "s-7",
    })
    db, secrets = str(tmp_path / "e.sqlite3"), str(tmp_path / "secrets")
    rc = cli.main(["analyze", req, "--db", db, "--secrets", secrets])
    out = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert out["essayStorageKey"] == "essays/s-7.txt"

    rc = cli.main(["essay", "essays/s-7.txt", "--db", db, "--secrets", secrets])
    assert rc == 0
    assert capsys.readouterr().out == "Short essay body.\n"

def _blocked_paths(tmp_path):
    # a regular file where the archive directories should be
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    return ["--db", str(blocker / "essays.sqlite3"), "--secrets", str(blocker / "secrets")]

def test_analyze_survives_unwritable_archive(tmp_path, capsys):
    req = _write(tmp_path, "req.json", {
        "actions": [{"type": "insert", "timestamp": 0, "content": "x"}],
        "textContent": "Short essay body.",
        "submissionId": "s-8",
    })
    rc = cli.main(["analyze", req] + _blocked_paths(tmp_path))
    out = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert out["riskLevel"] == "low"
    assert "essayStorageKey" not in out

def test_analyze_without_text_never_opens_archive(tmp_path, capsys):
    req = _write(tmp_path, "req.json", {"actions": [{"type": "insert", "timestamp": 1000, "content": "H"}]})
    rc = cli.main(["analyze", req] + _blocked_paths(tmp_path))
    out = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert out["confidenceScore"] == pytest.approx(0.86)
    assert not (tmp_path / "secrets").exists()

def test_analyze_with_screen_events(tmp_path, capsys):
    req = _write(tmp_path, "req.json", {"actions": [{"type": "insert", "timestamp": 0, "content": "x"}]})
    events = _write(tmp_path, "events.json", [{"type": "navigation", "timestamp": 10, "url": "https://claude.ai/"}])
    rc = cli.main(["analyze", req, "--no-store", "--screen", events])
    out = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert out["riskLevel"] == "critical"
    assert out["suspiciousActivities"][0]["type"] == "ai_tool_detected"

def test_analyze_client_error_exit_2(tmp_path, capsys):
    req = _write(tmp_path, "req.json", {"actions": []})
    rc = cli.main(["analyze", req, "--no-store"])
    assert rc == 2
    assert json.loads(capsys.readouterr().out) == {"error": "No actions provided for analysis"}

def test_analyze_internal_fault_exit_1(tmp_path, capsys, monkeypatch):
    def boom(self, request, cancel=None, screen_activities=()):
        raise RuntimeError("numerics exploded")
    monkeypatch.setattr("integrity_app.analyzer.IntegrityAnalyzer.analyze", boom)
    req = _write(tmp_path, "req.json", {"actions": [{"type": "insert", "timestamp": 0, "content": "x"}]})
    rc = cli.main(["analyze", req, "--no-store"])
    assert rc == 1
    assert json.loads(capsys.readouterr().out) == {"error": "Failed to analyze typing behavior"}

def test_screen_summary(tmp_path, capsys):
    events = _write(tmp_path, "events.json", [
        {"type": "window_blur", "timestamp": 0},
        {"type": "window_focus", "timestamp": 45000},
    ])
    rc = cli.main(["screen", events])
    out = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert out["totalTimeOutOfFocus"] == 45000
    assert [a["type"] for a in out["activities"]] == ["window_blur", "window_focus"]

def test_essay_missing_key(tmp_path, capsys):
    EssayStore(str(tmp_path / "e.sqlite3"), MasterKeyManager(str(tmp_path / "secrets")))
    rc = cli.main(["essay", "essays/none.txt", "--db", str(tmp_path / "e.sqlite3"),
                   "--secrets", str(tmp_path / "secrets")])
    assert rc == 2
    assert "No essay stored" in json.loads(capsys.readouterr().out)["error"]

def test_screen_assessment_host_option(tmp_path, capsys):
    events = _write(tmp_path, "events.json", [
        {"type": "tab_switch", "timestamp": 0, "url": "https://exam.school.edu/essay"},
        {"type": "tab_switch", "timestamp": 10, "url": "http://localhost:3000/"},
    ])
    rc = cli.main(["screen", events, "--assessment-host", "exam.school.edu"])
    out = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert [a["url"] for a in out["activities"]] == ["http://localhost:3000/"]
