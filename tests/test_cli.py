"""Tests for the command line interface."""

import pytest
from typer.testing import CliRunner

from defarm_engine.cli import app
from defarm_engine.engines import DfidEngine
from defarm_engine.engines.dfid_engine import compute_checksum

runner = CliRunner()


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path}/defarm.db"


class TestDfidCommands:
    def test_validate_valid(self):
        dfid = f"DFID-20240926-000001-{compute_checksum('20240926', '000001')}"
        result = runner.invoke(app, ["validate-dfid", dfid])
        assert result.exit_code == 0
        assert "2024-09-26" in result.stdout

    def test_validate_invalid(self):
        result = runner.invoke(app, ["validate-dfid", "DFID-20240926-000001-XXXX"])
        assert result.exit_code == 1

    def test_generate_uses_persisted_sequence(self, database_url):
        first = runner.invoke(
            app, ["generate-dfid", "--count", "2", "--database-url", database_url]
        )
        second = runner.invoke(app, ["generate-dfid", "--database-url", database_url])

        assert first.exit_code == 0
        assert second.exit_code == 0
        dfids = [
            token
            for token in (first.stdout + second.stdout).split()
            if token.startswith("DFID-")
        ]
        assert len(dfids) == 3
        assert all(DfidEngine.validate_dfid(d) for d in dfids)
        assert [d.split("-")[2] for d in dfids] == ["000001", "000002", "000003"]


class TestDatabaseCommands:
    def test_init_db(self, database_url):
        result = runner.invoke(app, ["init-db", "--database-url", database_url])
        assert result.exit_code == 0
        assert "initialized" in result.stdout

    def test_stats_on_empty_database(self, database_url):
        result = runner.invoke(app, ["stats", "--database-url", database_url])
        assert result.exit_code == 0
        assert "Total" in result.stdout

    def test_history_missing(self, database_url):
        result = runner.invoke(
            app, ["history", "DFID-20240926-000001-TEST", "--database-url", database_url]
        )
        assert result.exit_code == 1
