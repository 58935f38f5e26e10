"""Tests for the write path."""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest

from leadsheet.api.client import SheetsError
from leadsheet.models import AutoActionRule, Lead, SLARule, StageRule
from leadsheet.sync.resolver import TieredResolver
from leadsheet.sync.schema import TABLE_FLOWS, SchemaMap
from leadsheet.sync.writer import LeadWriter, next_lead_id, prepare_new_lead
from tests.conftest import FLOWS_HEADERS, MOCK_FLOW, SAMPLE_SPREADSHEET_ID, make_sheets_client, make_tables


class TestNextLeadId:
    """Tests for next_lead_id."""

    def test_increments_within_year(self):
        existing = ["LD-2025-001", "LD-2025-009", "LD-2024-120", "FLOW-2025-050", ""]
        assert next_lead_id(existing, today=date(2025, 6, 1)) == "LD-2025-010"

    def test_new_year_restarts(self):
        assert next_lead_id(["LD-2025-041"], today=date(2026, 1, 2)) == "LD-2026-001"

    def test_widens_past_three_digits(self):
        assert next_lead_id(["LD-2025-999"], today=date(2025, 12, 1)) == "LD-2025-1000"


class TestPrepareNewLead:
    """Tests for prepare_new_lead."""

    def test_fills_bookkeeping(self):
        now = datetime(2025, 2, 23, 11, 0, tzinfo=timezone.utc)
        lead = prepare_new_lead(Lead(lead_id="LD-2025-004", status="New"), now=now)

        assert lead.flow_id == "FLOW-2025-004"
        assert lead.created_by == "System"
        assert lead.identity_status == "Active"
        assert lead.created_at == now.isoformat()
        assert lead.start_date == "2025-02-23"
        assert lead.stage == "New"

    def test_stage_falls_back_to_status(self):
        lead = prepare_new_lead(Lead(lead_id="LD-2025-004", status="Qualified", stage=""))

        assert lead.status == lead.stage == "Qualified"

    def test_keeps_existing_values(self):
        lead = prepare_new_lead(Lead(lead_id="LD-2025-004", created_by="Muskan", flow_id="FLOW-X"))

        assert lead.created_by == "Muskan"
        assert lead.flow_id == "FLOW-X"


class TestOfflineWrites:
    """Without a session every write lands in the offline store."""

    @pytest.mark.asyncio
    async def test_add_lead(self, ctx, client_factory):
        ok = await LeadWriter(ctx).add_lead(Lead(lead_id="LD-2025-004", company_name="Acme"))

        assert ok
        stored = ctx.offline.snapshot().find("LD-2025-004")
        assert stored.company_name == "Acme"
        assert stored.row_index == -1
        assert ctx.offline.local_row_index("LD-2025-004") is not None
        client_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_add_lead_without_id(self, ctx):
        writer = LeadWriter(ctx)
        seed_ids = [lead.lead_id for lead in ctx.offline.snapshot().leads]

        assert await writer.add_lead(Lead(lead_id="", company_name="Acme"))
        first = writer.last_added
        assert await writer.add_lead(Lead(lead_id="  ", company_name="Globex"))
        second = writer.last_added

        assert first.lead_id == next_lead_id(seed_ids)
        assert second.lead_id == next_lead_id(seed_ids + [first.lead_id])
        assert first.flow_id == f"FLOW-{first.lead_id.split('-', 1)[1]}"
        assert second.flow_id != first.flow_id

        data = await TieredResolver(ctx).resolve()
        ids = [lead.lead_id for lead in data.leads]
        assert "" not in ids
        assert len(set(ids)) == len(ids) == 5
        assert data.find(second.lead_id).company_name == "Globex"

    @pytest.mark.asyncio
    async def test_update_lead(self, ctx):
        lead = ctx.offline.snapshot().find("LD-2025-003")
        lead.yds_poc = "Muskan"

        assert await LeadWriter(ctx).update_lead(lead)
        assert ctx.offline.snapshot().find("LD-2025-003").yds_poc == "Muskan"

    @pytest.mark.asyncio
    async def test_update_unknown_lead(self, ctx):
        assert await LeadWriter(ctx).update_lead(Lead(lead_id="LD-2025-404")) is False

    @pytest.mark.asyncio
    async def test_save_rules(self, ctx):
        writer = LeadWriter(ctx)

        assert await writer.save_stage_rules([StageRule("New", "Assigned", ["owner"])])
        assert await writer.save_sla_rules([SLARule("New", 12)])
        assert await writer.save_auto_actions([AutoActionRule("Won", "Send Invoice", 1)])

        data = ctx.offline.snapshot()
        assert data.stage_rules == (StageRule("New", "Assigned", ["owner"]),)
        assert data.sla_rules[0].threshold_hours == 12
        assert data.auto_actions[0].trigger_stage == "Won"


class TestRemoteWrites:
    """With a session writes go to the remote tables."""

    @pytest.mark.asyncio
    async def test_add_lead_appends_both_rows(self, logged_in, sheets_client):
        ok = await LeadWriter(logged_in).add_lead(Lead(lead_id="LD-2025-004", company_name="Acme"))

        assert ok
        calls = sheets_client.append_row.await_args_list
        assert [c.args[0] for c in calls] == ["Leads!A1:ZZ", "LEAD_FLOWS!A1:ZZ"]
        identity_row, flow_row = calls[0].args[1], calls[1].args[1]
        assert identity_row[0] == "LD-2025-004"
        assert flow_row[0] == "FLOW-2025-004"

    @pytest.mark.asyncio
    async def test_add_lead_without_id_appends_synthesized_id(self, logged_in, sheets_client):
        writer = LeadWriter(logged_in)

        assert await writer.add_lead(Lead(lead_id="", company_name="Acme"))

        identity_row = sheets_client.append_row.await_args_list[0].args[1]
        assert identity_row[0] == writer.last_added.lead_id
        assert identity_row[0].startswith("LD-")

    @pytest.mark.asyncio
    async def test_update_overwrites_flow_row(self, logged_in, sheets_client):
        data = await TieredResolver(logged_in).resolve()
        lead = data.leads[0]
        lead.yds_poc = "Ashwini"

        assert await LeadWriter(logged_in).update_lead(lead)

        sheet, row_index, row = sheets_client.update_row.await_args.args
        assert (sheet, row_index) == ("LEAD_FLOWS", 2)
        assert row[FLOWS_HEADERS.index("owner")] == "Ashwini"
        assert row[FLOWS_HEADERS.index("updated_at")] != MOCK_FLOW["updated_at"]

    @pytest.mark.asyncio
    async def test_update_uses_live_header_order(self, logged_in, client_factory):
        flows_headers = list(reversed(FLOWS_HEADERS))
        client = make_sheets_client(make_tables(flows_headers=flows_headers))
        client_factory.return_value = client

        data = await TieredResolver(logged_in).resolve()
        assert await LeadWriter(logged_in).update_lead(data.leads[0])

        row = client.update_row.await_args.args[2]
        assert row[flows_headers.index("lead_id")] == "LD-2025-001"
        assert row[flows_headers.index("flow_id")] == "FLOW-2025-001"

    @pytest.mark.asyncio
    async def test_update_without_row_refused(self, logged_in, sheets_client):
        ok = await LeadWriter(logged_in).update_lead(Lead(lead_id="LD-2025-004"))

        assert ok is False
        sheets_client.update_row.assert_not_called()

    @pytest.mark.asyncio
    async def test_remote_failure_returns_false(self, logged_in, sheets_client):
        logged_in.schema_maps.save(SAMPLE_SPREADSHEET_ID, {TABLE_FLOWS: SchemaMap.from_header_row(FLOWS_HEADERS)})
        sheets_client.update_row = AsyncMock(side_effect=SheetsError("API error: 500", 500))

        ok = await LeadWriter(logged_in).update_lead(Lead(lead_id="LD-2025-001", row_index=2))

        assert ok is False

    @pytest.mark.asyncio
    async def test_add_failure_returns_false(self, logged_in, sheets_client):
        sheets_client.append_row = AsyncMock(side_effect=SheetsError("Rate limit exceeded", 429))
        assert await LeadWriter(logged_in).add_lead(Lead(lead_id="LD-2025-004")) is False

    @pytest.mark.asyncio
    async def test_save_rules_replaces_table(self, logged_in, sheets_client):
        ok = await LeadWriter(logged_in).save_sla_rules([SLARule("New", 12, "High", "New SLA")])

        assert ok
        sheets_client.clear_range.assert_awaited_once_with("SLA_Rules!A:F")
        a1_range, rows = sheets_client.update_range.await_args.args
        assert a1_range == "SLA_Rules!A1"
        assert rows[0][:2] == ["rule_name", "stage"]
        assert rows[1] == ["New SLA", "New", "", 12, "High", ""]

    @pytest.mark.asyncio
    async def test_cache_not_invalidated_by_write(self, logged_in):
        await TieredResolver(logged_in).resolve()
        writer = LeadWriter(logged_in)
        await writer.add_lead(Lead(lead_id="LD-2025-004"))

        assert logged_in.cache.get(SAMPLE_SPREADSHEET_ID) is not None
        writer.invalidate_cache()
        assert logged_in.cache.get(SAMPLE_SPREADSHEET_ID) is None
