"""Lead intake from external source sheets.

Source rows are mapped onto Lead attributes with configurable field-map
rules, validated, and pushed through the normal write path. Imported rows are
marked in the source sheet so the next scan skips them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from .api.client import SheetsConfig, SheetsError
from .models import LEAD_FIELD_NAMES, Lead
from .sync.dates import format_date, parse_date, today
from .sync.schema import normalize_header
from .sync.writer import LeadWriter, next_lead_id
from .workflow.requirements import resolve_field
from .workflow.routing import route_new_lead

logger = logging.getLogger(__name__)


def normalize_phone(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def normalize_qty(value: str) -> int:
    digits = re.sub(r"\D", "", str(value or ""))
    return int(digits) if digits else 0


def lower_case(value: str) -> str:
    return (value or "").strip().lower()


def title_case(value: str) -> str:
    return re.sub(r"\S+", lambda m: m.group(0)[:1].upper() + m.group(0)[1:].lower(), value or "").strip()


def date_parse(value: str) -> str:
    """Canonical date, or today when the cell is empty or unreadable."""
    parsed = parse_date(value)
    return format_date(parsed or today())


def trim(value: str) -> str:
    return (value or "").strip()


def boolify(value: str) -> str:
    return "Yes" if str(value).strip().lower() in ("yes", "true", "1") else "No"


TRANSFORMS: dict[str, Callable[[str], Any]] = {
    "normalize_phone": normalize_phone,
    "normalize_qty": normalize_qty,
    "parse_int": normalize_qty,
    "lower_case": lower_case,
    "title_case": title_case,
    "date_parse": date_parse,
    "trim": trim,
    "none": trim,
    "boolify": boolify,
}

# Intake field spellings that differ from Lead attributes
INTAKE_ALIASES = {
    "full_name": "contact_person",
    "contact": "contact_person",
    "source_refs": "source",
    "note/description": "remarks",
    "comments": "remarks",
    "order_information": "order_info",
}

# Write-back columns in source sheets
WRITEBACK_ID_HEADERS = ("yds_lead_id", "yds lead id", "crm_id", "crm_row_id")
WRITEBACK_STATUS_HEADERS = ("crm_status", "status", "import_status", "yds_lead_status", "ydc - status")
WRITEBACK_AT_HEADERS = ("crm_processed_at", "processed_at", "import_date")
WRITEBACK_BY_HEADERS = ("crm_processed_by", "processed_by", "imported_by")

HANDLED_STATUSES = ("imported", "ignored")

# Lead attribute -> raw headers tried when no rule filled it
HEADER_FALLBACKS: dict[str, tuple[str, ...]] = {
    "company_name": ("company", "company_name", "business name", "company / brand"),
    "contact_person": ("contact", "contact person", "name", "lead name", "first name", "full name"),
    "number": ("phone", "mobile", "whatsapp", "phone / whatsapp"),
    "email": ("email",),
    "city": ("city", "location"),
    "source_row_id": ("lead_id", "source_lead_id"),
    "yds_poc": ("allocated to", "yds - poc"),
    "estimated_qty": ("est qty",),
    "order_info": ("requirement (verbatim)", "order information"),
    "intent": ("lead category",),
    "store_url": ("website/social url",),
    "platform_type": ("currently using",),
    "next_action_date": ("next follow up", "next_action_date"),
}


def _transform_key(name: str) -> str:
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", (name or "").strip()).lower()


def intake_attr(name: str) -> str:
    key = normalize_header(name)
    return INTAKE_ALIASES.get(key) or resolve_field(name)


@dataclass
class FieldMapRule:
    source_layer: str
    source_header: str
    intake_field: str
    transform: str = ""
    is_required: bool = False

    @property
    def attr(self) -> str:
        return intake_attr(self.intake_field)

    def apply(self, raw: Any) -> Any:
        text = "" if raw is None else str(raw)
        if not text.strip():
            return ""
        func = TRANSFORMS.get(_transform_key(self.transform))
        if func is None:
            if self.transform:
                logger.debug("Unknown transform %s, trimming instead", self.transform)
            return text.strip()
        return func(text)


@dataclass
class IntakeRow:
    layer: str
    source_row_index: int  # 1-based sheet row
    fields: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    source_sheet_id: str = ""
    source_tab: str = ""
    id_col: int = -1
    status_col: int = -1
    at_col: int = -1
    by_col: int = -1

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_lead(self, lead_id: str, default_owner: str = "Unassigned") -> Lead:
        values = {k: v for k, v in self.fields.items() if k in LEAD_FIELD_NAMES}
        values["lead_id"] = lead_id
        if "estimated_qty" in values and not isinstance(values["estimated_qty"], int):
            values["estimated_qty"] = normalize_qty(values["estimated_qty"])
        values.setdefault("source_row_id", str(self.source_row_index))
        lead = Lead.from_dict(values)
        return route_new_lead(lead, default_owner)


def _find_column(index: dict[str, int], names: Iterable[str]) -> int:
    for name in names:
        col = index.get(normalize_header(name))
        if col is not None:
            return col
    return -1


def _cell(row: list[Any], col: int) -> str:
    if col < 0 or col >= len(row) or row[col] is None:
        return ""
    return str(row[col]).strip()


def parse_source_rows(
    headers: list[Any],
    rows: list[list[Any]],
    layer: str,
    rules: Iterable[FieldMapRule],
    source_type: str = "Manual",
    sheet_id: str = "",
    tab: str = "",
) -> list[IntakeRow]:
    """Map the data rows of one source sheet (header row excluded).

    Rows already marked imported/ignored, or carrying a written-back CRM id,
    are skipped. Later rules for the same field take precedence.
    """
    index: dict[str, int] = {}
    for col, label in enumerate(headers):
        key = normalize_header(label)
        if key and key not in index:
            index[key] = col

    id_col = _find_column(index, WRITEBACK_ID_HEADERS)
    status_col = _find_column(index, WRITEBACK_STATUS_HEADERS)
    at_col = _find_column(index, WRITEBACK_AT_HEADERS)
    by_col = _find_column(index, WRITEBACK_BY_HEADERS)

    layer_rules = [r for r in rules if r.source_layer == layer]
    required = {r.attr for r in layer_rules if r.is_required}

    parsed: list[IntakeRow] = []
    for offset, row in enumerate(rows):
        row = list(row or [])
        if not any(_cell(row, c) for c in range(len(row))):
            continue
        if _cell(row, status_col).lower() in HANDLED_STATUSES:
            continue
        if _cell(row, id_col):
            continue

        values: dict[str, Any] = {}
        for rule in reversed(layer_rules):
            col = index.get(normalize_header(rule.source_header), -1)
            value = rule.apply(row[col] if 0 <= col < len(row) else None)
            if value not in ("", 0, None) and not values.get(rule.attr):
                values[rule.attr] = value
            else:
                values.setdefault(rule.attr, "")

        for attr, names in HEADER_FALLBACKS.items():
            if not values.get(attr):
                found = _cell(row, _find_column(index, names))
                if found:
                    values[attr] = found

        if not values.get("source"):
            values["source"] = source_type

        errors = [f"{attr} is required" for attr in sorted(required) if values.get(attr) in (None, "", 0)]
        if not values.get("company_name") and not values.get("contact_person"):
            errors.append("Identity missing (company or contact required)")

        parsed.append(
            IntakeRow(
                layer=layer,
                source_row_index=offset + 2,
                fields={k: v for k, v in values.items() if v not in (None, "")},
                errors=errors,
                source_sheet_id=sheet_id,
                source_tab=tab,
                id_col=id_col if id_col >= 0 else len(headers),
                status_col=status_col,
                at_col=at_col,
                by_col=by_col,
            )
        )
    return parsed


@dataclass
class IntakeResult:
    success: int = 0
    failed: int = 0
    lead_ids: list[str] = field(default_factory=list)


async def write_back(writer: LeadWriter, row: IntakeRow, lead_id: str, status: str = "Imported") -> bool:
    """Mark a source row as handled. Needs an authenticated session."""
    session = writer.ctx.session()
    if session is None or not row.source_sheet_id or not row.source_tab:
        return False

    cells: dict[int, Any] = {}
    if lead_id:
        cells[row.id_col] = lead_id
    if row.status_col >= 0:
        cells[row.status_col] = status
    if row.at_col >= 0:
        cells[row.at_col] = datetime.now(timezone.utc).isoformat()
    if row.by_col >= 0:
        cells[row.by_col] = "leadsheet"

    config = SheetsConfig(row.source_sheet_id, access_token=session.access_token)
    try:
        async with writer.ctx.client(config) as sheets:
            await sheets.update_cells(row.source_tab, row.source_row_index, cells)
    except SheetsError as e:
        logger.warning("Write-back failed for %s row %s: %s", row.layer, row.source_row_index, e)
        return False
    return True


async def push_rows(
    rows: Iterable[IntakeRow],
    writer: LeadWriter,
    existing_ids: Iterable[str] = (),
) -> IntakeResult:
    """Add every valid row as a new lead; invalid rows count as failed."""
    result = IntakeResult()
    issued = list(existing_ids)
    default_owner = writer.ctx.settings.default_owner

    for row in rows:
        if not row.is_valid:
            result.failed += 1
            continue

        lead_id = next_lead_id(issued)
        lead = row.to_lead(lead_id, default_owner)
        if not await writer.add_lead(lead):
            result.failed += 1
            continue

        issued.append(lead_id)
        result.success += 1
        result.lead_ids.append(lead_id)
        await write_back(writer, row, lead_id)

    return result
