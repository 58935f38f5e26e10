"""Tests for the leadsheet CLI.

Every test runs against an empty data directory with no session and no
public key, so commands resolve from the offline store seeded with the
reference dataset.
"""

import json

import pytest

from leadsheet import __version__
from leadsheet.cli import app


@pytest.fixture
def run(cli_runner, cli_env):
    def _run(*args):
        return cli_runner.invoke(app, list(args))
    return _run


class TestVersion:
    """Tests for the version command."""

    def test_version(self, run):
        result = run("version")

        assert result.exit_code == 0
        assert f"leadsheet v{__version__}" in result.output

    def test_verbose_flag(self, run):
        result = run("--verbose", "version")
        assert result.exit_code == 0


class TestSyncCommands:
    """Tests for sync, leads and health."""

    def test_sync_offline(self, run):
        result = run("sync", "--force")

        assert result.exit_code == 0
        assert "Leads: 3" in result.output
        assert "local" in result.output
        assert "read-only" in result.output

    def test_leads_json(self, run):
        result = run("leads", "--json")

        assert result.exit_code == 0
        leads = json.loads(result.output)
        assert [lead["lead_id"] for lead in leads] == ["LD-2025-001", "LD-2025-002", "LD-2025-003"]

    def test_leads_stage_filter(self, run):
        result = run("leads", "--stage", "new", "--json")

        assert result.exit_code == 0
        assert [lead["lead_id"] for lead in json.loads(result.output)] == ["LD-2025-003"]

    def test_leads_table(self, run):
        result = run("leads")

        assert result.exit_code == 0
        assert "Leads (3)" in result.output

    def test_health(self, run):
        result = run("health")

        assert result.exit_code == 0
        assert "Lead Health" in result.output


class TestMoveCommand:
    """Tests for the move command."""

    def test_move_saves_offline(self, run):
        result = run("move", "LD-2025-002", "Qualified")

        assert result.exit_code == 0
        assert "Contacted -> Qualified" in result.output

        leads = json.loads(run("leads", "--stage", "Qualified", "--json").output)
        assert [lead["lead_id"] for lead in leads] == ["LD-2025-002"]
        assert leads[0]["next_action"] == "Create Proposal / Plan"

    def test_move_missing_fields(self, run):
        result = run("move", "LD-2025-003", "Assigned")

        assert result.exit_code == 1
        assert "Move rejected" in result.output
        assert "yds_poc" in result.output

    def test_move_forbidden(self, run):
        result = run("move", "LD-2025-003", "Won")

        assert result.exit_code == 1
        assert "Cannot move directly from New to Won" in result.output

    def test_move_unknown_lead(self, run):
        result = run("move", "LD-2025-404", "Assigned")

        assert result.exit_code == 1
        assert "Lead not found" in result.output


class TestSchemaCommand:
    """Tests for the schema command."""

    def test_no_schema_offline(self, run):
        result = run("schema")

        assert result.exit_code == 0
        assert "No schema map available" in result.output


class TestAuthCommands:
    """Tests for auth status, login and logout."""

    def test_status_logged_out(self, run):
        result = run("auth", "status")

        assert result.exit_code == 0
        assert "Not logged in" in result.output

    def test_login_status_logout(self, run):
        result = run("auth", "login", "--token", "ya29.token", "--email", "ops@example.com")
        assert result.exit_code == 0
        assert "Session saved" in result.output

        status = run("auth", "status")
        assert "Valid" in status.output
        assert "ops@example.com" in status.output

        assert "Logged out" in run("auth", "logout").output
        assert "Not logged in" in run("auth", "status").output

    def test_expired_session(self, run):
        run("auth", "login", "--token", "ya29.token", "--expires-in", "60")
        assert "Expired" in run("auth", "status").output

    def test_logout_without_session(self, run):
        result = run("auth", "logout")

        assert result.exit_code == 0
        assert "No active session" in result.output
