"""Row codec: header-mapped rows <-> Lead.

Every logical field is looked up through the table's SchemaMap, never by a
fixed position. Columns the codec does not know are kept in ``Lead.extras``
and written back on encode.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Iterable, Mapping

from ..models import INITIAL_STAGE, Lead
from .dates import parse_date, to_wire_date
from .schema import TABLE_FLOWS, TABLE_IDENTITY, SchemaMap, normalize_header

logger = logging.getLogger(__name__)

PRIORITY_HIGH = "🔴 High"
PRIORITY_MEDIUM = "🟡 Med"
PRIORITY_LOW = "🟢 Low"
PRIORITY_UNSET = "⚪"

TEXT = "text"
INT = "int"
DATE = "date"


@dataclass(frozen=True)
class FieldSpec:
    """One logical Lead attribute and the remote header it lives under."""

    attr: str
    header: str
    kind: str = TEXT

    @property
    def key(self) -> str:
        return normalize_header(self.header)


# Lead attribute -> Leads header
IDENTITY_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("lead_id", "lead_id"),
    FieldSpec("contact_person", "name"),
    FieldSpec("number", "phone"),
    FieldSpec("email", "email"),
    FieldSpec("company_name", "company"),
    FieldSpec("city", "city"),
    FieldSpec("source", "source_refs"),
    FieldSpec("category", "category"),
    FieldSpec("created_by", "created_by"),
    FieldSpec("tags", "tags"),
    FieldSpec("identity_status", "Status"),
    FieldSpec("created_at", "created_at"),
    FieldSpec("lead_score", "lead_score"),
    FieldSpec("remarks", "note/description"),
    FieldSpec("source_row_id", "source_row_id"),
    FieldSpec("info", "Info"),
)

# Lead attribute -> LEAD_FLOWS header
FLOW_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("flow_id", "flow_id"),
    FieldSpec("lead_id", "lead_id"),
    FieldSpec("original_channel", "original_channel"),
    FieldSpec("channel", "channel"),
    FieldSpec("yds_poc", "owner"),
    FieldSpec("status", "status"),
    FieldSpec("stage", "stage"),
    FieldSpec("source_flow_tag", "source_flow_tag"),
    FieldSpec("created_at", "created_at"),
    FieldSpec("updated_at", "updated_at"),
    FieldSpec("start_date", "start_date", DATE),
    FieldSpec("expected_close_date", "expected_close_date", DATE),
    FieldSpec("won_date", "won_date", DATE),
    FieldSpec("lost_date", "lost_date", DATE),
    FieldSpec("lost_reason", "lost_reason"),
    FieldSpec("notes", "notes"),
    FieldSpec("estimated_qty", "estimated_qty", INT),
    FieldSpec("product_type", "product_type"),
    FieldSpec("print_type", "print_type"),
    FieldSpec("priority", "priority"),
    FieldSpec("contact_status", "contact_status"),
    FieldSpec("payment_update", "payment_update"),
    FieldSpec("next_action", "next_action_type"),
    FieldSpec("next_action_date", "next_action_date", DATE),
    FieldSpec("intent", "intent"),
    FieldSpec("category", "category"),
    FieldSpec("customer_type", "customer_type"),
    FieldSpec("stage_changed_date", "stage_changed_date", DATE),
    FieldSpec("last_contact_date", "last_contact_date", DATE),
    FieldSpec("first_response_time", "first_response_time"),
    FieldSpec("platform_type", "platform_type"),
    FieldSpec("integration_ready", "integration_ready"),
    FieldSpec("store_url", "store_url"),
    FieldSpec("sample_required", "sample_required"),
    FieldSpec("sample_status", "sample_status"),
)

# Attributes carried by both tables where the flow row is the fresher source.
FLOW_PREFERRED = frozenset({"category"})

_LEAD_DEFAULTS = {f.name: f.default for f in fields(Lead) if f.name != "extras"}


def calculate_priority(estimated_qty: int) -> str:
    """Priority ladder from the estimated order quantity."""
    if estimated_qty >= 100:
        return PRIORITY_HIGH
    if estimated_qty >= 50:
        return PRIORITY_MEDIUM
    if estimated_qty > 0:
        return PRIORITY_LOW
    return PRIORITY_UNSET


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip().replace(",", "")))
    except (TypeError, ValueError):
        return 0


def _coerce(kind: str, value: Any) -> Any:
    if kind == INT:
        return _int(value)
    if kind == DATE:
        # Serial day numbers arrive as numbers under UNFORMATTED_VALUE
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return to_wire_date(value)
        return to_wire_date(_text(value))
    return _text(value)


def _cell(row: list[Any], index: int | None) -> Any:
    if index is None or index >= len(row):
        return None
    return row[index]


class TableCodec:
    """Decode/encode one table's rows through its SchemaMap."""

    def __init__(self, table: str, specs: Iterable[FieldSpec]):
        self.table = table
        self.specs = tuple(specs)
        self.known_keys = frozenset(spec.key for spec in self.specs)

    def decode(self, row: list[Any], schema_map: SchemaMap) -> dict[str, Any]:
        """Row -> ``{attr: value, ..., "extras": {...}}``."""
        row = list(row or [])
        values: dict[str, Any] = {}
        for spec in self.specs:
            values[spec.attr] = _coerce(spec.kind, _cell(row, schema_map.index_of(spec.header)))

        extras: dict[str, str] = {}
        for key, index in schema_map.columns.items():
            if key in self.known_keys:
                continue
            cell = _cell(row, index)
            if cell not in (None, ""):
                extras[key] = _text(cell)
        values["extras"] = extras
        return values

    def encode(self, values: Mapping[str, Any], schema_map: SchemaMap) -> list[Any]:
        """Values -> row sized to the highest mapped column, unmapped cells empty."""
        row: list[Any] = [""] * schema_map.width
        for spec in self.specs:
            index = schema_map.index_of(spec.header)
            if index is None:
                continue
            value = values.get(spec.attr, _LEAD_DEFAULTS.get(spec.attr, ""))
            if spec.kind == INT:
                row[index] = _int(value)
            elif spec.kind == DATE:
                row[index] = to_wire_date(value)
            else:
                row[index] = _text(value)

        extras = values.get("extras") or {}
        for key, index in schema_map.columns.items():
            if key not in self.known_keys and key in extras:
                row[index] = extras[key]
        return row


IDENTITY_CODEC = TableCodec(TABLE_IDENTITY, IDENTITY_FIELDS)
FLOW_CODEC = TableCodec(TABLE_FLOWS, FLOW_FIELDS)


def _merge(identity: dict[str, Any], flow: dict[str, Any]) -> dict[str, Any]:
    merged = dict(identity)
    extras = dict(identity.get("extras") or {})
    for attr, value in flow.items():
        if attr == "extras":
            extras.update(value)
        elif attr in FLOW_PREFERRED:
            if value not in ("", None):
                merged[attr] = value
            else:
                merged.setdefault(attr, value)
        elif merged.get(attr) in (None, ""):
            merged[attr] = value
    merged["extras"] = extras
    return merged


def decode_lead(
    identity_row: list[Any] | None,
    flow_row: list[Any],
    maps: Mapping[str, SchemaMap],
    row_index: int = -1,
) -> Lead:
    """Join one flow row with its identity row into a Lead."""
    identity = IDENTITY_CODEC.decode(identity_row or [], maps[TABLE_IDENTITY])
    flow = FLOW_CODEC.decode(flow_row, maps[TABLE_FLOWS])
    values = _merge(identity, flow)

    stage = values.get("status") or values.get("stage") or INITIAL_STAGE
    values["status"] = stage
    values["stage"] = stage

    if values.get("priority") in ("", PRIORITY_UNSET):
        values["priority"] = calculate_priority(values.get("estimated_qty", 0))

    created = parse_date(values.get("created_at"))
    values["date"] = created.isoformat() if created else ""
    values["order_info"] = values.get("notes") or values.get("info") or ""
    values["row_index"] = row_index

    return Lead.from_dict(values)


def encode_lead(lead: Lead, maps: Mapping[str, SchemaMap]) -> dict[str, list[Any]]:
    """Lead -> ``{table: row}`` for the identity and flow tables."""
    values = lead.to_dict()
    stage = lead.status or lead.stage or INITIAL_STAGE
    values["status"] = stage
    values["stage"] = stage
    return {
        TABLE_IDENTITY: IDENTITY_CODEC.encode(values, maps[TABLE_IDENTITY]),
        TABLE_FLOWS: FLOW_CODEC.encode(values, maps[TABLE_FLOWS]),
    }


def decode_tables(
    identity_rows: list[list[Any]],
    flow_rows: list[list[Any]],
    maps: Mapping[str, SchemaMap],
) -> list[Lead]:
    """Decode data rows (header rows excluded) of both lead tables.

    Each flow row yields one Lead joined to its identity row by ``lead_id``.
    ``row_index`` is the 1-based sheet row of the flow record. Flow rows
    without a matching identity row are skipped.
    """
    identity_map = maps[TABLE_IDENTITY]
    flow_map = maps[TABLE_FLOWS]
    id_col = identity_map.index_of("lead_id")
    flow_id_col = flow_map.index_of("lead_id")
    if id_col is None or flow_id_col is None:
        logger.warning("Lead tables have no lead_id column; nothing to join")
        return []

    identities: dict[str, list[Any]] = {}
    for row in identity_rows:
        lead_id = _text(_cell(row, id_col)).strip()
        if lead_id and lead_id not in identities:
            identities[lead_id] = row

    leads: list[Lead] = []
    orphans = 0
    for offset, row in enumerate(flow_rows):
        lead_id = _text(_cell(row, flow_id_col)).strip()
        if not lead_id:
            continue
        identity_row = identities.get(lead_id)
        if identity_row is None:
            orphans += 1
            logger.debug("Skipping flow row %s: no identity row for %s", offset + 2, lead_id)
            continue
        leads.append(decode_lead(identity_row, row, maps, row_index=offset + 2))

    if orphans:
        logger.warning("Skipped %s flow rows without a matching identity row", orphans)
    return leads
