"""Offline store - durable local mirror of SystemData.

Seeded from the bundled reference dataset the first time it is used, updated
by every local write and by every successful cloud fetch. It never expires.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any, Iterable

import yaml

from ..models import (
    AutoActionRule,
    DataSource,
    Lead,
    LegendItem,
    SLARule,
    StageRule,
    SystemData,
)
from ..storage import BlobStorage

logger = logging.getLogger(__name__)

OFFLINE_KEY = "offline_store"
REFERENCE_PATH = Path(__file__).resolve().parent.parent / "data" / "reference.yaml"

CONFIG_KINDS = ("stage_rules", "sla_rules", "auto_actions", "legends")


def _stage_rules_from_reference(entries: list[dict[str, Any]]) -> list[StageRule]:
    """Accept explicit ``from_stage``/``to_stage`` pairs or ``stage``/``next``/``requires`` graphs."""
    requires_by_stage = {e["stage"]: list(e.get("requires") or []) for e in entries if "stage" in e}
    rules: list[StageRule] = []
    for entry in entries:
        if "from_stage" in entry:
            rules.append(StageRule(**entry))
            continue
        for target in entry.get("next") or []:
            rules.append(
                StageRule(
                    from_stage=entry["stage"],
                    to_stage=target,
                    requires_field=requires_by_stage.get(target, []),
                )
            )
    return rules


def _legends_from_reference(lists: dict[str, list[str]]) -> list[LegendItem]:
    items = []
    for list_name, values in lists.items():
        for order, value in enumerate(values or [], start=1):
            items.append(
                LegendItem(list_name=list_name, value=str(value), display_order=order, is_default=order == 1)
            )
    return items


def load_reference(path: str | Path | None = None) -> SystemData:
    """Load the bundled reference dataset (or another file of the same shape)."""
    path = Path(path) if path else REFERENCE_PATH
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Reference data must contain a YAML mapping: {path}")

    return SystemData(
        leads=tuple(Lead.from_dict(d) for d in data.get("leads") or []),
        stage_rules=tuple(_stage_rules_from_reference(data.get("stage_rules") or [])),
        sla_rules=tuple(SLARule(**d) for d in data.get("sla_rules") or []),
        auto_actions=tuple(AutoActionRule(**d) for d in data.get("auto_actions") or []),
        legends=tuple(_legends_from_reference(data.get("legends") or {})),
        data_source=DataSource.LOCAL,
        read_only=True,
    )


class OfflineStore:
    """Local mirror persisted as one blob.

    Locally created leads keep ``row_index == -1``; their synthesized table
    positions live in ``local_row_indexes`` until the next cloud fetch.
    """

    def __init__(self, storage: BlobStorage, seed_path: str | Path | None = None):
        self.storage = storage
        self.seed_path = seed_path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _seed(self) -> dict[str, Any]:
        data = load_reference(self.seed_path)
        logger.info("Seeding offline store with %s reference leads", len(data.leads))
        blob = {"data": data.to_dict(), "local_row_indexes": {}}
        self.storage.save(OFFLINE_KEY, blob)
        return blob

    def _load(self) -> dict[str, Any]:
        blob = self.storage.load(OFFLINE_KEY)
        if not isinstance(blob, dict) or "data" not in blob:
            return self._seed()
        blob.setdefault("local_row_indexes", {})
        return blob

    def _write(self, data: SystemData, local_row_indexes: dict[str, int]) -> None:
        self.storage.save(
            OFFLINE_KEY,
            {"data": data.to_dict(), "local_row_indexes": local_row_indexes},
        )

    def _state(self) -> tuple[SystemData, dict[str, int]]:
        blob = self._load()
        return SystemData.from_dict(blob["data"]), dict(blob["local_row_indexes"])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self, error: str | None = None) -> SystemData:
        data, _ = self._state()
        return data.tagged(DataSource.LOCAL, read_only=True, error=error)

    def local_row_index(self, lead_id: str) -> int | None:
        _, indexes = self._state()
        return indexes.get(lead_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def replace_from(self, system_data: SystemData) -> None:
        """Mirror a cloud snapshot. Local-only leads the cloud has not seen are kept."""
        current, indexes = self._state()
        cloud_ids = {lead.lead_id for lead in system_data.leads}
        pending = [
            lead for lead in current.leads
            if lead.is_local_only and lead.lead_id not in cloud_ids and lead.lead_id in indexes
        ]
        leads = tuple(system_data.leads) + tuple(pending)
        kept_indexes = {lead.lead_id: indexes[lead.lead_id] for lead in pending}
        self._write(replace(system_data, leads=leads), kept_indexes)

    def append_lead(self, lead: Lead) -> int:
        """Append a lead and return its synthesized row position."""
        data, indexes = self._state()
        known = [existing.row_index for existing in data.leads] + list(indexes.values())
        # header is row 1, so the first synthesized position is 2
        position = max(known + [1]) + 1
        stored = replace(lead, row_index=-1)
        indexes[stored.lead_id] = position
        self._write(replace(data, leads=(stored,) + tuple(data.leads)), indexes)
        return position

    def update_lead(self, lead: Lead) -> bool:
        """Replace by ``lead_id``. An unknown id changes nothing and returns False."""
        data, indexes = self._state()
        leads = list(data.leads)
        for i, existing in enumerate(leads):
            if existing.lead_id == lead.lead_id:
                leads[i] = lead
                self._write(replace(data, leads=tuple(leads)), indexes)
                return True
        logger.warning("Offline update skipped: lead %s not in store", lead.lead_id)
        return False

    def save_config(self, kind: str, rules: Iterable[Any]) -> None:
        if kind not in CONFIG_KINDS:
            raise ValueError(f"Unknown config kind: {kind}")
        data, indexes = self._state()
        payload = {kind: [asdict(r) for r in rules]}
        merged = SystemData.from_dict({**data.to_dict(), **payload})
        self._write(merged, indexes)
