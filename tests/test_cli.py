from __future__ import annotations

import json

from typer.testing import CliRunner

from automediarename.cli import app
from automediarename.runner import EXIT_DEGRADED, EXIT_ERROR, EXIT_OK

runner = CliRunner()


def test_init_writes_config_and_rules_lists_it(state_root, tmp_path):
    result = runner.invoke(app, ["init", "--root", str(tmp_path)])
    assert result.exit_code == EXIT_OK
    config = json.loads((state_root / "config.json").read_text(encoding="utf-8"))
    assert config["media_root"] == str(tmp_path)
    assert config["selection_rules"]

    result = runner.invoke(app, ["rules"])
    assert result.exit_code == EXIT_OK
    assert "1. " in result.output
    assert "PXL_" in result.output


def test_init_refuses_to_overwrite(state_root):
    (state_root / "config.json").write_text("{}", encoding="utf-8")
    result = runner.invoke(app, ["init"])
    assert result.exit_code == EXIT_ERROR
    assert (state_root / "config.json").read_text(encoding="utf-8") == "{}"


def test_status_without_history(state_root):
    result = runner.invoke(app, ["status"])
    assert result.exit_code == EXIT_ERROR
    assert "No status found" in result.output


def test_status_reports_last_run(state_root):
    (state_root / "meta" / "status.json").write_text(
        json.dumps(
            {
                "last_run": "2026-01-01T10:00:00+00:00",
                "processed": 3,
                "last_exit_code": EXIT_DEGRADED,
                "counts": {"RENAMED": 2, "FAILED": 1},
                "failures_by_reason": {"COMMIT_RENAME": 1},
            }
        ),
        encoding="utf-8",
    )
    result = runner.invoke(app, ["status"])
    assert result.exit_code == EXIT_DEGRADED
    assert "processed: 3" in result.output
    assert "COMMIT_RENAME: 1" in result.output
