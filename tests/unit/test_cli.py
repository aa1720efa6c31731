"""Unit tests for the typer CLI against a throwaway SQLite database."""

from __future__ import annotations

from typer.testing import CliRunner

from convoprobe.cli import app

runner = CliRunner()


def _db(tmp_path) -> list[str]:
    return ["--database-url", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"]


class TestCli:

    def test_init_db(self, tmp_path) -> None:
        result = runner.invoke(app, ["init-db", *_db(tmp_path)])
        assert result.exit_code == 0
        assert "Database initialized." in result.output

    def test_process_empty_queue(self, tmp_path) -> None:
        runner.invoke(app, ["init-db", *_db(tmp_path)])
        result = runner.invoke(app, ["process", *_db(tmp_path)])
        assert result.exit_code == 0
        assert "Processed 0 run(s)." in result.output

    def test_retry_unknown_run(self, tmp_path) -> None:
        runner.invoke(app, ["init-db", *_db(tmp_path)])
        result = runner.invoke(app, ["retry", "missing", *_db(tmp_path)])
        assert result.exit_code == 1
        assert "Run with id 'missing' not found" in result.output

    def test_invalid_log_format(self, tmp_path) -> None:
        result = runner.invoke(app, ["init-db", *_db(tmp_path), "--log-format", "xml"])
        assert result.exit_code == 1
        assert "Invalid log format" in result.output
