"""Tiered resolver - cache, authenticated cloud, public cloud, local offline store.

The resolver never raises to its caller. Every tier failure is logged and
falls through; when all remote tiers fail the offline snapshot is returned,
carrying the last error for diagnostics.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, TypeVar

from ..api.client import SheetsClient, SheetsConfig, SheetsError
from ..models import (
    AutoActionRule,
    DataSource,
    LegendItem,
    SLARule,
    StageRule,
    SystemData,
)
from .codec import decode_tables
from .context import SyncContext
from .schema import (
    TABLE_FLOWS,
    TABLE_IDENTITY,
    SchemaMap,
    SchemaReport,
    diagnose,
    normalize_header,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

HEADER_STAGE_RULES_CSV = "from_stage,to_stage,trigger,auto_set_field,auto_set_value,requires_field"
HEADER_SLA_RULES_CSV = "rule_name,stage,condition,threshold_hours,alert_level,alert_action"
HEADER_AUTO_ACTION_CSV = "trigger_stage,trigger_event,default_next_action,default_days"
HEADER_LEGEND_CSV = "list_name,value,display_order,color,is_default,is_active,probability"

# Alternate header spellings seen in older configuration sheets
_ALIASES = {
    "sla_hours": "threshold_hours",
    "escalation_level": "alert_level",
    "days_to_followup": "default_days",
    "next_action": "default_next_action",
    "required_fields": "requires_field",
    "requires_fields": "requires_field",
}

_TRUE_VALUES = {"true", "yes", "y", "1"}


# ----------------------------------------------------------------------
# Configuration table parsers
# ----------------------------------------------------------------------


def _records(rows: list[list[Any]], canonical_csv: str, key_header: str) -> list[dict[str, Any]]:
    """Rows -> dicts keyed by normalized header.

    When the first row does not look like a header row (no ``key_header``),
    every row is data laid out in the canonical column order.
    """
    if not rows:
        return []
    header = [_ALIASES.get(normalize_header(h), normalize_header(h)) for h in rows[0]]
    if key_header in header:
        body = rows[1:]
    else:
        header = canonical_csv.split(",")
        body = rows

    records = []
    for row in body:
        if not any(cell not in (None, "") for cell in row):
            continue
        record: dict[str, Any] = {}
        for index, key in enumerate(header):
            if key and key not in record:
                record[key] = row[index] if index < len(row) else ""
        records.append(record)
    return records


def _str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    text = _str(value).lower()
    if not text:
        return default
    return text in _TRUE_VALUES


def _number(value: Any, cast: Callable[[Any], T], default: T) -> T:
    try:
        return cast(float(_str(value)))
    except (TypeError, ValueError):
        return default


def _split_fields(value: Any) -> list[str]:
    text = _str(value).replace("|", ",").replace(";", ",")
    return [part.strip() for part in text.split(",") if part.strip()]


def parse_stage_rules(rows: list[list[Any]]) -> list[StageRule]:
    rules = []
    for r in _records(rows, HEADER_STAGE_RULES_CSV, "from_stage"):
        from_stage, to_stage = _str(r.get("from_stage")), _str(r.get("to_stage"))
        if not from_stage or not to_stage:
            continue
        rules.append(
            StageRule(
                from_stage=from_stage,
                to_stage=to_stage,
                requires_field=_split_fields(r.get("requires_field")),
                trigger=_str(r.get("trigger")),
                auto_set_field=_str(r.get("auto_set_field")),
                auto_set_value=_str(r.get("auto_set_value")),
            )
        )
    return rules


def parse_sla_rules(rows: list[list[Any]]) -> list[SLARule]:
    rules = []
    for r in _records(rows, HEADER_SLA_RULES_CSV, "stage"):
        stage = _str(r.get("stage"))
        threshold = _number(r.get("threshold_hours"), float, None)
        if not stage or threshold is None:
            logger.debug("Skipping SLA rule without stage or threshold: %s", r)
            continue
        rules.append(
            SLARule(
                stage=stage,
                threshold_hours=threshold,
                alert_level=_str(r.get("alert_level")),
                rule_name=_str(r.get("rule_name")),
                condition=_str(r.get("condition")),
                alert_action=_str(r.get("alert_action")),
            )
        )
    return rules


def parse_auto_actions(rows: list[list[Any]]) -> list[AutoActionRule]:
    rules = []
    for r in _records(rows, HEADER_AUTO_ACTION_CSV, "trigger_stage"):
        stage, action = _str(r.get("trigger_stage")), _str(r.get("default_next_action"))
        if not stage or not action:
            continue
        rules.append(
            AutoActionRule(
                trigger_stage=stage,
                default_next_action=action,
                default_days=_number(r.get("default_days"), int, 0),
                trigger_event=_str(r.get("trigger_event")) or "on_enter",
            )
        )
    return rules


def parse_legends(rows: list[list[Any]]) -> list[LegendItem]:
    items = []
    for r in _records(rows, HEADER_LEGEND_CSV, "list_name"):
        list_name, value = _str(r.get("list_name")), _str(r.get("value"))
        if not list_name or not value:
            continue
        probability = _number(r.get("probability"), float, None)
        items.append(
            LegendItem(
                list_name=list_name,
                value=value,
                display_order=_number(r.get("display_order"), int, 0),
                color=_str(r.get("color")),
                is_default=_bool(r.get("is_default")),
                is_active=_bool(r.get("is_active"), default=True),
                probability=probability,
            )
        )
    return items


def with_health(data: SystemData) -> SystemData:
    """Recompute the derived health fields of every lead in a snapshot."""
    from ..workflow.health import annotate_lead

    leads = tuple(annotate_lead(lead, data.sla_rules) for lead in data.leads)
    return replace(data, leads=leads)


# ----------------------------------------------------------------------
# Resolver
# ----------------------------------------------------------------------


class TieredResolver:
    """Resolve the current SystemData from the best available tier.

    Usage:
        resolver = TieredResolver(SyncContext.from_settings(settings))
        data = await resolver.resolve()
        print(data.data_source, data.read_only, len(data.leads))
    """

    def __init__(self, ctx: SyncContext):
        self.ctx = ctx
        self.last_error: str | None = None
        self._report: SchemaReport | None = None

    def schema_report(self) -> SchemaReport | None:
        """Header drift found by the last successful cloud fetch."""
        return self._report

    async def resolve(self, force_refresh: bool = False) -> SystemData:
        ctx = self.ctx
        spreadsheet_id = ctx.spreadsheet_id

        if not force_refresh:
            cached = ctx.cache.get(spreadsheet_id)
            if cached is not None:
                logger.info("Serving %s leads from cache", len(cached.leads))
                return with_health(cached)

        self.last_error = None

        auth_config = ctx.authenticated_config()
        if auth_config is not None:
            data = await self._try_tier("authenticated", auth_config, read_only=False)
            if data is not None:
                return data
        else:
            logger.debug("No active session; skipping authenticated tier")

        public_config = ctx.public_config()
        if public_config is not None:
            data = await self._try_tier("public", public_config, read_only=True)
            if data is not None:
                return data

        return self._local()

    async def _try_tier(self, name: str, config: SheetsConfig, read_only: bool) -> SystemData | None:
        try:
            data = await self.fetch(config, read_only=read_only)
        except SheetsError as e:
            logger.warning("%s tier failed, falling through: %s", name.capitalize(), e)
            self.last_error = str(e)
            return None
        except (AttributeError, TypeError, ValueError, KeyError) as e:
            logger.warning("%s tier returned unusable data: %s", name.capitalize(), e)
            self.last_error = f"Malformed response: {e}"
            return None

        self.ctx.cache.put(self.ctx.spreadsheet_id, data)
        self.ctx.offline.replace_from(data)
        logger.info("Resolved %s leads from the %s tier", len(data.leads), name)
        return data

    def _local(self) -> SystemData:
        try:
            data = self.ctx.offline.snapshot(error=self.last_error)
        except (TypeError, ValueError, KeyError, OSError) as e:
            logger.warning("Offline store unreadable: %s", e)
            return SystemData(error=self.last_error or str(e))
        logger.info("Serving %s leads from the offline store", len(data.leads))
        return with_health(data)

    async def fetch(self, config: SheetsConfig, read_only: bool) -> SystemData:
        """Full fetch from one remote tier. Raises SheetsError on transport failure."""
        settings = self.ctx.settings
        lead_ranges = [settings.leads_range, settings.flows_range]

        async with self.ctx.client(config) as sheets:
            tables = await sheets.batch_get(lead_ranges)

            config_id = settings.config_sheet_id
            if config_id == config.spreadsheet_id:
                config_tables = await self._fetch_config(sheets)
            else:
                async with self.ctx.client(replace(config, spreadsheet_id=config_id)) as config_sheets:
                    config_tables = await self._fetch_config(config_sheets)

        identity_rows = tables.get(settings.leads_range) or []
        flow_rows = tables.get(settings.flows_range) or []
        maps = {
            TABLE_IDENTITY: SchemaMap.from_header_row(identity_rows[0] if identity_rows else []),
            TABLE_FLOWS: SchemaMap.from_header_row(flow_rows[0] if flow_rows else []),
        }
        self.ctx.schema_maps.save(self.ctx.spreadsheet_id, maps)

        sla_rules = parse_sla_rules(config_tables["sla_rules"])
        leads = decode_tables(identity_rows[1:], flow_rows[1:], maps)

        data = with_health(SystemData(
            leads=tuple(leads),
            stage_rules=tuple(parse_stage_rules(config_tables["stage_rules"])),
            sla_rules=tuple(sla_rules),
            auto_actions=tuple(parse_auto_actions(config_tables["auto_actions"])),
            legends=tuple(parse_legends(config_tables["legends"])),
            data_source=DataSource.CLOUD,
            read_only=read_only,
        ))

        report = diagnose(maps)
        vocabulary = set(data.options.stages)
        report.unknown_stages = sorted({lead.status for lead in leads if lead.status not in vocabulary})
        if report.unknown_stages:
            logger.warning("Leads use stages outside the vocabulary: %s", ", ".join(report.unknown_stages))
        self._report = report
        return data

    async def _fetch_config(self, sheets: SheetsClient) -> dict[str, list[list[Any]]]:
        """Fetch the configuration ranges in parallel; a failed range is empty."""
        ranges = self.ctx.settings.config_ranges
        results = await asyncio.gather(
            *(sheets.get_range(a1_range) for a1_range in ranges.values()),
            return_exceptions=True,
        )

        tables: dict[str, list[list[Any]]] = {}
        for (kind, a1_range), result in zip(ranges.items(), results):
            if isinstance(result, Exception):
                logger.warning("Could not load %s (%s): %s", kind, a1_range, result)
                tables[kind] = []
            elif isinstance(result, BaseException):
                raise result
            else:
                tables[kind] = result
        return tables
