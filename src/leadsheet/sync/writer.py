"""Write path - remote append/overwrite when authenticated, offline store otherwise.

Remote writes report failure as ``False``; there is no retry and no rollback.
A single write does not invalidate the cache, callers re-fetch.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Iterable

from ..api.client import SheetsConfig, SheetsError
from ..config import sheet_name
from ..models import INITIAL_STAGE, AutoActionRule, Lead, SLARule, StageRule
from .codec import encode_lead
from .context import SyncContext
from .dates import format_date, today as local_today
from .resolver import (
    HEADER_AUTO_ACTION_CSV,
    HEADER_SLA_RULES_CSV,
    HEADER_STAGE_RULES_CSV,
)
from .schema import TABLE_FLOWS, TABLE_IDENTITY

logger = logging.getLogger(__name__)

_LEAD_ID_RE = re.compile(r"^LD-(\d{4})-(\d+)$")


def next_lead_id(existing: Iterable[str], today: date | None = None) -> str:
    """Next ``LD-<year>-<NNN>`` id after the highest one issued this year."""
    year = (today or local_today()).year
    highest = 0
    for lead_id in existing:
        match = _LEAD_ID_RE.match((lead_id or "").strip())
        if match and int(match.group(1)) == year:
            highest = max(highest, int(match.group(2)))
    return f"LD-{year}-{highest + 1:03d}"


def prepare_new_lead(lead: Lead, now: datetime | None = None) -> Lead:
    """Fill the bookkeeping fields a brand-new lead is written with."""
    now = now or datetime.now(timezone.utc)
    stamp = now.isoformat()
    suffix = lead.lead_id.split("-", 1)[-1] if lead.lead_id else ""
    prepared = replace(
        lead,
        flow_id=lead.flow_id or f"FLOW-{suffix}",
        created_by=lead.created_by or "System",
        identity_status=lead.identity_status or "Active",
        created_at=lead.created_at or stamp,
        updated_at=stamp,
        start_date=lead.start_date or format_date(now.date()),
        stage_changed_date=lead.stage_changed_date or format_date(now.date()),
    )
    prepared.set_stage(lead.status or lead.stage or INITIAL_STAGE)
    return prepared


def _stage_rule_row(rule: StageRule) -> list[Any]:
    return [
        rule.from_stage,
        rule.to_stage,
        rule.trigger,
        rule.auto_set_field,
        rule.auto_set_value,
        ",".join(rule.requires_field),
    ]


def _sla_rule_row(rule: SLARule) -> list[Any]:
    return [
        rule.rule_name,
        rule.stage,
        rule.condition,
        rule.threshold_hours,
        rule.alert_level,
        rule.alert_action,
    ]


def _auto_action_row(rule: AutoActionRule) -> list[Any]:
    return [rule.trigger_stage, rule.trigger_event, rule.default_next_action, rule.default_days]


class LeadWriter:
    """Persist lead and configuration changes through the active tier.

    Usage:
        writer = LeadWriter(ctx)
        ok = await writer.update_lead(lead)
    """

    def __init__(self, ctx: SyncContext):
        self.ctx = ctx
        self.last_added: Lead | None = None

    @property
    def authenticated(self) -> bool:
        return self.ctx.session() is not None

    def invalidate_cache(self) -> None:
        self.ctx.cache.invalidate()

    # ------------------------------------------------------------------
    # Leads
    # ------------------------------------------------------------------

    async def add_lead(self, lead: Lead) -> bool:
        """Append a new lead. A blank ``lead_id`` gets the next free id."""
        if not lead.lead_id.strip():
            existing = [known.lead_id for known in self.ctx.offline.snapshot().leads]
            lead = replace(lead, lead_id=next_lead_id(existing))
        lead = prepare_new_lead(lead)
        self.last_added = lead
        config = self.ctx.authenticated_config()
        if config is None:
            position = self.ctx.offline.append_lead(lead)
            logger.info("Stored %s offline at position %s", lead.lead_id, position)
            return True

        settings = self.ctx.settings
        rows = encode_lead(lead, self.ctx.schema_maps.current(self.ctx.spreadsheet_id))
        try:
            async with self.ctx.client(config) as sheets:
                await sheets.append_row(settings.leads_range, rows[TABLE_IDENTITY])
                await sheets.append_row(settings.flows_range, rows[TABLE_FLOWS])
        except SheetsError as e:
            logger.warning("Failed to add lead %s: %s", lead.lead_id, e)
            return False
        return True

    async def update_lead(self, lead: Lead) -> bool:
        config = self.ctx.authenticated_config()
        if config is None:
            return self.ctx.offline.update_lead(lead)

        if lead.row_index < 2:
            logger.warning("Cannot update %s remotely: no known row (row_index=%s)", lead.lead_id, lead.row_index)
            return False

        lead = replace(lead, updated_at=datetime.now(timezone.utc).isoformat())
        rows = encode_lead(lead, self.ctx.schema_maps.current(self.ctx.spreadsheet_id))
        try:
            async with self.ctx.client(config) as sheets:
                await sheets.update_row(self.ctx.settings.flows_sheet, lead.row_index, rows[TABLE_FLOWS])
        except SheetsError as e:
            logger.warning("Failed to update lead %s: %s", lead.lead_id, e)
            return False
        return True

    # ------------------------------------------------------------------
    # Configuration tables
    # ------------------------------------------------------------------

    async def save_stage_rules(self, rules: list[StageRule]) -> bool:
        return await self._save_config(
            "stage_rules", rules, HEADER_STAGE_RULES_CSV, [_stage_rule_row(r) for r in rules]
        )

    async def save_sla_rules(self, rules: list[SLARule]) -> bool:
        return await self._save_config(
            "sla_rules", rules, HEADER_SLA_RULES_CSV, [_sla_rule_row(r) for r in rules]
        )

    async def save_auto_actions(self, rules: list[AutoActionRule]) -> bool:
        return await self._save_config(
            "auto_actions", rules, HEADER_AUTO_ACTION_CSV, [_auto_action_row(r) for r in rules]
        )

    async def _save_config(self, kind: str, rules: list[Any], header_csv: str, rows: list[list[Any]]) -> bool:
        session = self.ctx.session()
        if session is None:
            self.ctx.offline.save_config(kind, rules)
            return True

        a1_range = self.ctx.settings.config_ranges[kind]
        config = SheetsConfig(self.ctx.settings.config_sheet_id, access_token=session.access_token)
        try:
            async with self.ctx.client(config) as sheets:
                await sheets.clear_range(a1_range)
                await sheets.update_range(f"{sheet_name(a1_range)}!A1", [header_csv.split(","), *rows])
        except SheetsError as e:
            logger.warning("Failed to save %s: %s", kind, e)
            return False
        return True
