"""Tests for the command-line interface."""

from datetime import UTC, datetime, timedelta

import pytest
from conftest import TEST_SOURCES_CONFIG, make_candidate, write_config
from typer.testing import CliRunner

from concert_agent import __version__
from concert_agent.cli.main import app
from concert_agent.db.engine import get_session, init_db, reset_engine
from concert_agent.db.repositories import ConcertRepository, DeletionRepository
from concert_agent.ingestion.registry import reset_default_registry

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    """Temporary database and sources config for every command."""
    monkeypatch.setenv("DATABASE_URL", str(tmp_path / "cli.db"))
    monkeypatch.setenv("SOURCES_CONFIG_PATH", str(write_config(tmp_path / "sources.yaml", TEST_SOURCES_CONFIG)))
    for var in ("EXTRACTION_BACKEND", "FIRECRAWL_API_KEY", "SCRAPE_TRIGGER_URL"):
        monkeypatch.delenv(var, raising=False)
    reset_engine()
    reset_default_registry()
    init_db()
    yield
    reset_engine()
    reset_default_registry()


def _seed(*candidates) -> None:
    with get_session() as session:
        repo = ConcertRepository(session)
        for candidate in candidates:
            repo.upsert(candidate.to_record())
        session.commit()


class TestInfoCommands:
    """Tests for version and plan."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert f"Concert Agent v{__version__}" in result.output

    def test_plan(self) -> None:
        result = runner.invoke(app, ["scrape", "plan"])
        assert result.exit_code == 0
        assert "Batch Plan (5 batches)" in result.output
        assert "Chaining:" in result.output


class TestScrapeRun:
    """Tests for scrape run."""

    def test_batch_out_of_range(self) -> None:
        result = runner.invoke(app, ["scrape", "run", "--batch", "9"])
        assert result.exit_code == 1
        assert "between 1 and 5" in result.output

    def test_missing_credentials(self) -> None:
        result = runner.invoke(app, ["scrape", "run", "--batch", "2"])
        assert result.exit_code == 1
        assert "FIRECRAWL_API_KEY" in result.output


class TestConcertCommands:
    """Tests for deleting and cleaning up stored concerts."""

    def test_delete_writes_tombstone(self) -> None:
        _seed(make_candidate(), make_candidate(artist="Kent", venue="Nalen"))

        result = runner.invoke(app, ["concerts", "delete", "--artist", "robyn", "--by", "ops", "--yes"])

        assert result.exit_code == 0
        assert "Deleted 1 concert(s)" in result.output
        with get_session() as session:
            assert [c.artist for c in ConcertRepository(session).find()] == ["Kent"]
            [record] = DeletionRepository(session).list_all()
            assert record.artist == "Robyn"
            assert record.deleted_by == "ops"

        listing = runner.invoke(app, ["concerts", "deleted"])
        assert "Robyn" in listing.output

    def test_delete_aborted(self) -> None:
        _seed(make_candidate())
        result = runner.invoke(app, ["concerts", "delete", "--artist", "Robyn"], input="n\n")
        assert result.exit_code == 0
        with get_session() as session:
            assert ConcertRepository(session).count() == 1

    def test_delete_needs_a_filter(self) -> None:
        result = runner.invoke(app, ["concerts", "delete", "--yes"])
        assert result.exit_code == 1

    def test_delete_bad_date(self) -> None:
        result = runner.invoke(app, ["concerts", "delete", "--date", "20 nov", "--yes"])
        assert result.exit_code == 1
        assert "Invalid date" in result.output

    def test_delete_no_match(self) -> None:
        result = runner.invoke(app, ["concerts", "delete", "--artist", "Nobody", "--yes"])
        assert result.exit_code == 1
        assert "No matching concerts" in result.output

    def test_cleanup(self) -> None:
        _seed(
            make_candidate(artist="Gone", date=datetime.now(UTC) - timedelta(days=30)),
            make_candidate(artist="Soon", date=datetime.now(UTC) + timedelta(days=30)),
        )
        result = runner.invoke(app, ["concerts", "cleanup"])
        assert result.exit_code == 0
        assert "Removed 1 past event(s)" in result.output

    def test_no_tombstones(self) -> None:
        result = runner.invoke(app, ["concerts", "deleted"])
        assert result.exit_code == 0
        assert "No deleted concerts" in result.output
