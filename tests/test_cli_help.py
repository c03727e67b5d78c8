# ==============================================================================
# Tests for CLI Commands
# ==============================================================================
"""
Tests that the CLI command tree is wired up and that the read commands work.

Verifies that every command and subcommand in the visitortrack CLI:
- Exits with code 0 when invoked with --help
- Contains the expected description text
- Lists the expected subcommands or options

These tests use the real app from visitortrack.app (not minimal Typer apps)
so Typer introspects every command function signature. Commands that need
Valkey get the fakeredis-backed service graph from conftest.py.
"""

import json

import pytest
from typer.testing import CliRunner

from visitortrack.app import app
from visitortrack.core.errors import StoreUnavailableError

runner = CliRunner()


@pytest.fixture()
def cli_services(services, monkeypatch):
    """Route every command's open_services() to the fakeredis service graph."""
    for module in ("analytics", "data", "export", "sweeper"):
        monkeypatch.setattr(f"visitortrack.cli.{module}.open_services", lambda: services)
    return services


# ==============================================================================
# Root App
# ==============================================================================


class TestRootHelp:
    """Tests for the root `visitortrack --help` output."""

    def test_exit_code(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0

    def test_description(self):
        result = runner.invoke(app, ["--help"])
        assert "Visitor session tracking and analytics CLI" in result.output

    def test_lists_all_subcommands(self):
        """Root --help lists every top-level command."""
        result = runner.invoke(app, ["--help"])
        for cmd in ["analytics", "config", "data", "db", "export", "live", "serve", "sweeper"]:
            assert cmd in result.output, f"Missing command: {cmd}"


# ==============================================================================
# Command Groups
# ==============================================================================


class TestGroupHelp:
    @pytest.mark.parametrize(
        "group, description, subcommands",
        [
            ("sweeper", "Idle session sweeper", ["run", "once"]),
            ("db", "Session archive (PostgreSQL) operations", ["init", "reset"]),
            ("data", "Data management operations", ["reset"]),
            ("config", "Configuration management", ["show"]),
        ],
    )
    def test_group(self, group, description, subcommands):
        result = runner.invoke(app, [group, "--help"])
        assert result.exit_code == 0
        assert description in result.output
        for cmd in subcommands:
            assert cmd in result.output, f"Missing {group} subcommand: {cmd}"


class TestCommandHelp:
    @pytest.mark.parametrize(
        "args, options",
        [
            (["serve"], ["--host", "--port", "--no-sweeper"]),
            (["analytics"], ["--start", "--end", "--json"]),
            (["live"], ["--search", "--json"]),
            (["export"], ["--format", "--start", "--end", "--output"]),
            (["sweeper", "once"], ["--json"]),
            (["data", "reset"], ["--yes"]),
            (["db", "reset"], ["--yes"]),
            (["config", "show"], ["--json"]),
        ],
    )
    def test_options(self, args, options):
        result = runner.invoke(app, [*args, "--help"])
        assert result.exit_code == 0
        for option in options:
            assert option in result.output, f"Missing option {option} for {' '.join(args)}"


# ==============================================================================
# Commands against fakeredis
# ==============================================================================


class TestCommands:
    def test_config_show_json(self):
        result = runner.invoke(app, ["config", "show", "--json"])
        assert result.exit_code == 0
        config = json.loads(result.output)
        assert "tracking" in config
        assert "valkey" in config

    def test_live_json(self, cli_services, store, clock, enrich):
        store.record_page_view("v1", "/pricing", None, clock(), enrich)

        result = runner.invoke(app, ["live", "--json"])

        assert result.exit_code == 0
        visitors = json.loads(result.output)
        assert [v["visitorId"] for v in visitors] == ["v1"]

    def test_live_table(self, cli_services, store, clock, enrich):
        store.record_page_view("v1", "/pricing", None, clock(), enrich)
        result = runner.invoke(app, ["live"])
        assert result.exit_code == 0
        assert "/pricing" in result.output

    def test_analytics_json(self, cli_services, store, clock, enrich):
        store.record_page_view("v1", "/home", None, clock(), enrich)

        result = runner.invoke(app, ["analytics", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["totalVisitors"] == 1

    def test_analytics_bad_range(self, cli_services):
        result = runner.invoke(app, ["analytics", "--start", "2024-06-30", "--end", "2024-06-01"])
        assert result.exit_code != 0

    def test_sweeper_once_json(self, cli_services, store, clock, enrich):
        store.record_page_view("v1", "/home", None, clock(), enrich)
        clock.advance(seconds=301)

        result = runner.invoke(app, ["sweeper", "once", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["ended"] == 1

    def test_export_to_file(self, cli_services, store, clock, enrich, tmp_path):
        store.record_page_view("v1", "/home", None, clock(), enrich)
        output = tmp_path / "out.csv"

        result = runner.invoke(app, ["export", "--output", str(output)])

        assert result.exit_code == 0
        lines = output.read_text().splitlines()
        assert lines[0].startswith("Timestamp,Event Type")
        assert len(lines) == 2
        assert [p.name for p in tmp_path.iterdir()] == ["out.csv"]

    def test_export_failure_leaves_no_file(
        self, cli_services, store, clock, enrich, tmp_path, monkeypatch
    ):
        for i in range(2):
            store.record_page_view(f"v{i}", "/home", None, clock(), enrich)
            clock.advance(seconds=1)
        real_pages = cli_services.event_log.iter_pages

        def failing_pages(start_ms, end_ms, page_size=500):
            pages = real_pages(start_ms, end_ms, 1)
            yield next(pages)
            raise StoreUnavailableError("Valkey unavailable during event log read")

        monkeypatch.setattr(cli_services.event_log, "iter_pages", failing_pages)
        output = tmp_path / "out.csv"
        output.write_text("previous export")

        result = runner.invoke(app, ["export", "--output", str(output)])

        assert result.exit_code == 1
        assert "Export failed" in result.output
        assert output.read_text() == "previous export"
        assert [p.name for p in tmp_path.iterdir()] == ["out.csv"]

    def test_data_reset(self, cli_services, store, clock, enrich, fake_redis):
        store.record_page_view("v1", "/home", None, clock(), enrich)

        result = runner.invoke(app, ["data", "reset", "-y"])

        assert result.exit_code == 0
        assert "Deleted" in result.output
        assert fake_redis.keys("vt:*") == []

    def test_data_reset_aborts_without_confirmation(self, cli_services, store, clock, enrich):
        store.record_page_view("v1", "/home", None, clock(), enrich)
        result = runner.invoke(app, ["data", "reset"], input="n\n")
        assert result.exit_code != 0
        assert store.get_session("v1_1") is not None
