"""Header normalization, schema maps and schema diagnostics.

A human can reorder, re-case or re-space the header row of any table. All
column lookups therefore go through ``normalize_header`` and a ``SchemaMap``
rebuilt from the live header row on every full fetch.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from ..storage import BlobStorage

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

TABLE_IDENTITY = "leads"
TABLE_FLOWS = "lead_flows"

HEADER_LEAD_CSV = (
    "lead_id,name,phone,email,company,city,source_refs,category,created_by,tags,"
    "Status,created_at,lead_score,note/description,source_row_id,Info"
)
HEADER_LEAD_FLOW_CSV = (
    "flow_id,lead_id,original_channel,channel,owner,status,stage,source_flow_tag,"
    "created_at,updated_at,start_date,expected_close_date,won_date,lost_date,"
    "lost_reason,notes,estimated_qty,product_type,print_type,priority,"
    "contact_status,payment_update,next_action_type,next_action_date,intent,"
    "category,customer_type,"
    # v2 additions
    "stage_changed_date,last_contact_date,first_response_time,platform_type,"
    "integration_ready,store_url,sample_required,sample_status"
)

EXPECTED_HEADERS: dict[str, list[str]] = {
    TABLE_IDENTITY: HEADER_LEAD_CSV.split(","),
    TABLE_FLOWS: HEADER_LEAD_FLOW_CSV.split(","),
}

SCHEMA_MAP_KEY = "schema_map"

_SEPARATOR_RUN = re.compile(r"[\s_]+")


def normalize_header(label: Any) -> str:
    """Canonical lookup key for a header label.

    Lower-cased, trimmed, with internal whitespace/underscore runs collapsed
    to a single ``_``. Idempotent. ``None`` and blank labels map to ``""``.
    """
    if label is None:
        return ""
    return _SEPARATOR_RUN.sub("_", str(label).strip().lower())


@dataclass(frozen=True)
class SchemaMap:
    """Normalized header -> zero-based column index for one table."""

    headers: tuple[str, ...] = ()
    columns: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_header_row(cls, row: Iterable[Any]) -> "SchemaMap":
        headers = tuple("" if h is None else str(h) for h in row)
        columns: dict[str, int] = {}
        for index, label in enumerate(headers):
            key = normalize_header(label)
            if not key or key in columns:
                continue
            columns[key] = index
        return cls(headers=headers, columns=MappingProxyType(columns))

    @classmethod
    def canonical(cls, table: str) -> "SchemaMap":
        return cls.from_header_row(EXPECTED_HEADERS[table])

    def index_of(self, header: str) -> int | None:
        return self.columns.get(normalize_header(header))

    def __contains__(self, header: object) -> bool:
        return isinstance(header, str) and normalize_header(header) in self.columns

    def __len__(self) -> int:
        return len(self.columns)

    @property
    def width(self) -> int:
        """Row length needed to hold every mapped column."""
        return max(self.columns.values(), default=-1) + 1


@dataclass
class SchemaReport:
    """Header drift found on the last full fetch. Informational only."""

    missing_tables: list[str] = field(default_factory=list)
    missing_headers: dict[str, list[str]] = field(default_factory=dict)
    unexpected_headers: dict[str, list[str]] = field(default_factory=dict)
    unknown_stages: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (
            self.missing_tables
            or any(self.missing_headers.values())
            or self.unknown_stages
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "missing_tables": self.missing_tables,
            "missing_headers": self.missing_headers,
            "unexpected_headers": self.unexpected_headers,
            "unknown_stages": self.unknown_stages,
        }


def diagnose(
    maps: Mapping[str, SchemaMap],
    expected: Mapping[str, list[str]] | None = None,
) -> SchemaReport:
    """Compare live schema maps against the expected header lines."""
    expected = expected if expected is not None else EXPECTED_HEADERS
    report = SchemaReport()

    for table, headers in expected.items():
        schema_map = maps.get(table)
        if schema_map is None or not len(schema_map):
            report.missing_tables.append(table)
            continue

        wanted = {normalize_header(h): h for h in headers}
        missing = [label for key, label in wanted.items() if key not in schema_map.columns]
        unexpected = [
            label for label in schema_map.headers
            if normalize_header(label) and normalize_header(label) not in wanted
        ]
        if missing:
            report.missing_headers[table] = missing
            logger.warning("Table %s is missing expected headers: %s", table, ", ".join(missing))
        if unexpected:
            report.unexpected_headers[table] = unexpected

    return report


class SchemaMapStore:
    """Persists the schema maps of one spreadsheet as a single blob.

    Maps are stored as their raw header rows and rebuilt on load. A blob
    written for a different spreadsheet id is treated as absent.
    """

    def __init__(self, storage: BlobStorage):
        self.storage = storage

    def load(self, spreadsheet_id: str) -> dict[str, SchemaMap] | None:
        blob = self.storage.load(SCHEMA_MAP_KEY)
        if not isinstance(blob, dict):
            return None
        if blob.get("spreadsheet_id") != spreadsheet_id:
            logger.info("Discarding schema map persisted for another spreadsheet")
            return None
        tables = blob.get("tables") or {}
        return {table: SchemaMap.from_header_row(row) for table, row in tables.items()}

    def save(self, spreadsheet_id: str, maps: Mapping[str, SchemaMap]) -> None:
        self.storage.save(
            SCHEMA_MAP_KEY,
            {
                "spreadsheet_id": spreadsheet_id,
                "version": SCHEMA_VERSION,
                "updated_at": datetime.now(timezone.utc).isoformat(),
                "tables": {table: list(m.headers) for table, m in maps.items()},
            },
        )

    def invalidate(self) -> None:
        self.storage.remove(SCHEMA_MAP_KEY)

    def current(self, spreadsheet_id: str) -> dict[str, SchemaMap]:
        """Persisted maps, falling back to the canonical header order."""
        maps = self.load(spreadsheet_id) or {}
        for table in EXPECTED_HEADERS:
            if table not in maps or not len(maps[table]):
                maps[table] = SchemaMap.canonical(table)
        return maps
