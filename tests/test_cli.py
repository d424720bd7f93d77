"""Tests for the operator CLI."""
from __future__ import annotations

import json

import pytest

from aura.cli import main


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "experiment.yaml"
    path.write_text(
        "experiment_id: fitts\n"
        "user_id: 2\n"
        "available_conditions: [Small, Medium, Large]\n"
        "remote:\n"
        "  couchdb_url: http://couch.invalid:5984\n"
        "  db_name: aura\n"
        f"storage:\n  data_dir: {tmp_path / 'data'}\n"
    )
    return path


def test_summary(config_file, capsys):
    assert main(["--config", str(config_file), "summary"]) == 0

    out = capsys.readouterr().out
    assert out.startswith("=== Counterbalancing Summary ===")
    assert "Current Participant: 2 (Group 2)" in out
    assert "Current Order: Large -> Small -> Medium" in out
    assert "All Groups (3 total):" in out


def test_order(config_file, capsys):
    assert main(["--config", str(config_file), "order"]) == 0

    result = json.loads(capsys.readouterr().out)
    assert result == {"success": True, "order": ["Large", "Small", "Medium"], "server_aware": False}


def test_status(config_file, capsys):
    assert main(["--config", str(config_file), "status"]) == 0

    result = json.loads(capsys.readouterr().out)
    assert result["success"]
    assert result["pending_entries"] == 0
    assert result["archive_path"].endswith("fitts_2.jsonl")


def test_sync_with_empty_queue(config_file, capsys):
    assert main(["--config", str(config_file), "sync"]) == 0

    result = json.loads(capsys.readouterr().out)
    assert result["success"]
    assert result["files_uploaded"] == 0


def test_missing_config_reports_error(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "missing.yaml"), "status"]) == 1

    result = json.loads(capsys.readouterr().out)
    assert not result["success"]
    assert "not found" in result["error"]
