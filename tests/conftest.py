"""Shared test fixtures for the leadsheet test suite."""

import time
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from leadsheet.config import SyncSettings
from leadsheet.storage import BlobStorage, SessionData
from leadsheet.sync.context import SyncContext
from leadsheet.sync.schema import EXPECTED_HEADERS, TABLE_FLOWS, TABLE_IDENTITY

SAMPLE_SPREADSHEET_ID = "sheet_test123"
SAMPLE_TOKEN = "ya29.test-access-token"
SAMPLE_API_KEY = "AIza-test-key"

LEADS_HEADERS = list(EXPECTED_HEADERS[TABLE_IDENTITY])
FLOWS_HEADERS = list(EXPECTED_HEADERS[TABLE_FLOWS])


# ============================================================================
# Mock Sheet Data
# ============================================================================

MOCK_IDENTITY = {
    "lead_id": "LD-2025-001",
    "name": "Tony S",
    "phone": "9876543210",
    "email": "tony@stark.com",
    "company": "Stark Industries Corp",
    "city": "Mumbai",
    "source_refs": "Instagram",
    "category": "Corporate",
    "created_by": "Admin",
    "Status": "Active",
    "created_at": "2025-02-18T10:00:00Z",
    "note/description": "Needs urgent delivery by Friday",
}

MOCK_FLOW = {
    "flow_id": "FLOW-2025-001",
    "lead_id": "LD-2025-001",
    "channel": "B2B",
    "owner": "Chandan",
    "status": "Negotiation",
    "stage": "Negotiation",
    "created_at": "2025-02-18T10:00:00Z",
    "updated_at": "2025-02-22T14:00:00Z",
    "start_date": "2025-02-18",
    "notes": "Black hoodies, red puff print logo chest",
    "estimated_qty": 500,
    "product_type": "Hoodie",
    "print_type": "Puff",
    "priority": "🔴 High",
    "payment_update": "Pending",
    "next_action_type": "Finalize Invoice",
    "next_action_date": "2025-02-23",
    "intent": "Corporate",
    "category": "Corporate",
    "stage_changed_date": "2025-02-22",
}

MOCK_STAGE_RULES = [
    ["from_stage", "to_stage", "trigger", "auto_set_field", "auto_set_value", "requires_field"],
    ["New", "Assigned", "", "", "", "ydsPoc,priority"],
    ["Negotiation", "Ready to Route", "", "", "", "expectedCloseDate"],
]

MOCK_SLA_RULES = [
    ["rule_name", "stage", "condition", "threshold_hours", "alert_level", "alert_action"],
    ["New SLA", "New", "", 24, "High", ""],
    ["Negotiation SLA", "Negotiation", "", 48, "High", ""],
]

MOCK_AUTO_ACTIONS = [
    ["trigger_stage", "trigger_event", "default_next_action", "default_days"],
    ["Assigned", "on_enter", "First Call Attempt", 0],
]

MOCK_LEGENDS = [
    ["list_name", "value", "display_order", "color", "is_default", "is_active", "probability"],
    ["stage_list", "New", 1, "", "TRUE", "TRUE", ""],
    ["stage_list", "Negotiation", 2, "", "", "", 0.6],
    ["stage_list", "Won", 3, "", "", "", 1],
    ["owner_list", "Chandan", 1, "", "", "TRUE", ""],
]


def make_row(headers: list[str], record: dict[str, Any]) -> list[Any]:
    """Lay a header -> value record out in ``headers`` order."""
    return [record.get(h, "") for h in headers]


def make_tables(
    identities: list[dict[str, Any]] | None = None,
    flows: list[dict[str, Any]] | None = None,
    leads_headers: list[str] | None = None,
    flows_headers: list[str] | None = None,
) -> dict[str, list[list[Any]]]:
    """batch_get payload for the two lead ranges, header row first."""
    leads_headers = leads_headers or LEADS_HEADERS
    flows_headers = flows_headers or FLOWS_HEADERS
    identities = [MOCK_IDENTITY] if identities is None else identities
    flows = [MOCK_FLOW] if flows is None else flows
    return {
        "Leads!A1:ZZ": [list(leads_headers)] + [make_row(leads_headers, r) for r in identities],
        "LEAD_FLOWS!A1:ZZ": [list(flows_headers)] + [make_row(flows_headers, r) for r in flows],
    }


MOCK_CONFIG_RANGES = {
    "Legend!A:G": MOCK_LEGENDS,
    "Stage_Rules!A:F": MOCK_STAGE_RULES,
    "SLA_Rules!A:F": MOCK_SLA_RULES,
    "Auto_Actions!A:D": MOCK_AUTO_ACTIONS,
}


# ============================================================================
# Client Fixtures
# ============================================================================

def make_sheets_client(
    tables: dict[str, list[list[Any]]] | None = None,
    config_ranges: dict[str, list[list[Any]]] | None = None,
) -> MagicMock:
    """Mock SheetsClient usable as an async context manager."""
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)

    tables = make_tables() if tables is None else tables
    config_ranges = MOCK_CONFIG_RANGES if config_ranges is None else config_ranges

    client.batch_get = AsyncMock(side_effect=lambda ranges: {r: tables.get(r, []) for r in ranges})
    client.get_range = AsyncMock(side_effect=lambda a1_range: config_ranges.get(a1_range, []))
    client.append_row = AsyncMock(return_value={})
    client.update_row = AsyncMock(return_value={})
    client.update_range = AsyncMock(return_value={})
    client.clear_range = AsyncMock(return_value={})
    client.update_cells = AsyncMock(return_value={})
    return client


@pytest.fixture
def sheets_client():
    """Mock remote client returning the sample tables."""
    return make_sheets_client()


@pytest.fixture
def client_factory(sheets_client):
    """Factory handed to SyncContext; records the configs it was called with."""
    return MagicMock(return_value=sheets_client)


# ============================================================================
# Context Fixtures
# ============================================================================

class FakeClock:
    """Settable clock for TTL tests."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sync_settings(tmp_path):
    """Settings isolated to a temporary data directory."""
    return SyncSettings(
        spreadsheet_id=SAMPLE_SPREADSHEET_ID,
        config_spreadsheet_id="",
        public_api_key=None,
        data_dir=str(tmp_path / "data"),
        _env_file=None,
    )


@pytest.fixture
def storage(tmp_path):
    return BlobStorage(tmp_path / "blobs")


@pytest.fixture
def ctx(sync_settings, client_factory, clock):
    """SyncContext wired to the mock client factory and fake clock."""
    return SyncContext.from_settings(sync_settings, client_factory=client_factory, clock=clock)


@pytest.fixture
def logged_in(ctx):
    """Store a valid session so the authenticated tier is used."""
    ctx.sessions.save(
        SessionData(
            access_token=SAMPLE_TOKEN,
            expires_at=int(time.time()) + 3600,
            email="ops@example.com",
        )
    )
    return ctx


# ============================================================================
# CLI Testing Fixtures
# ============================================================================

@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner."""
    from typer.testing import CliRunner
    return CliRunner()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the CLI at an empty data directory with no remote credentials."""
    data_dir = tmp_path / "cli-data"
    monkeypatch.setenv("LEADSHEET_DATA_DIR", str(data_dir))
    monkeypatch.setenv("LEADSHEET_SPREADSHEET_ID", SAMPLE_SPREADSHEET_ID)
    monkeypatch.delenv("LEADSHEET_PUBLIC_API_KEY", raising=False)
    monkeypatch.delenv("LEADSHEET_CONFIG_SPREADSHEET_ID", raising=False)
    return data_dir
