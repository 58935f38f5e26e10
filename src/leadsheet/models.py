"""Lead pipeline data models - dataclasses shared by the sync engine and the rule engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

INITIAL_STAGE = "New"
TERMINAL_STAGES = frozenset({"Won", "Lost"})

DEFAULT_STAGES = [
    "New",
    "Assigned",
    "Contacted",
    "Qualified",
    "Sample/Proposal",
    "Negotiation",
    "Ready to Route",
    "Won",
    "Lost",
]


class DataSource(str, Enum):
    """Which tier served a snapshot."""
    CLOUD = "cloud"
    CACHE = "cache"
    LOCAL = "local"


@dataclass
class Lead:
    """A lead as seen by the app: identity + flow fields joined on ``lead_id``.

    Derived fields (``days_open``, ``sla_status``, ``sla_health``,
    ``action_overdue``) are recomputed by ``workflow.health.annotate_lead`` and
    are never read back as ground truth.
    """

    lead_id: str

    # Identity (Leads table)
    contact_person: str = ""
    number: str = ""
    email: str = ""
    company_name: str = ""
    city: str = ""
    source: str = ""
    created_by: str = ""
    tags: str = ""
    identity_status: str = ""
    created_at: str = ""
    lead_score: str = ""
    remarks: str = ""
    source_row_id: str = ""
    info: str = ""

    # Flow (LEAD_FLOWS table)
    flow_id: str = ""
    original_channel: str = ""
    channel: str = ""
    yds_poc: str = ""
    status: str = INITIAL_STAGE
    stage: str = INITIAL_STAGE
    source_flow_tag: str = ""
    updated_at: str = ""
    start_date: str = ""
    expected_close_date: str = ""
    won_date: str = ""
    lost_date: str = ""
    lost_reason: str = ""
    notes: str = ""
    estimated_qty: int = 0
    product_type: str = ""
    print_type: str = ""
    priority: str = ""
    contact_status: str = ""
    payment_update: str = ""
    next_action: str = ""
    next_action_date: str = ""
    intent: str = ""
    category: str = ""
    customer_type: str = ""
    stage_changed_date: str = ""
    last_contact_date: str = ""
    first_response_time: str = ""
    platform_type: str = ""
    integration_ready: str = ""
    store_url: str = ""
    sample_required: str = ""
    sample_status: str = ""

    # UI helpers
    date: str = ""
    order_info: str = ""
    contact_attempts: int = 0

    # Derived
    days_open: str = ""
    sla_status: str = ""
    sla_health: str = ""
    action_overdue: str = ""

    # Sheet row of the flow record (1-based, header is row 1); -1 until first sync.
    row_index: int = -1
    # Columns the codec did not recognise, keyed by normalized header.
    extras: dict[str, str] = field(default_factory=dict)

    @property
    def is_closed(self) -> bool:
        return self.status in TERMINAL_STAGES

    def set_stage(self, stage: str) -> None:
        """Move to ``stage``; status and stage are kept identical."""
        self.status = stage
        self.stage = stage

    @property
    def is_local_only(self) -> bool:
        return self.row_index < 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Lead":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs.setdefault("lead_id", "")
        lead = cls(**kwargs)
        lead.extras = dict(lead.extras or {})
        return lead


LEAD_FIELD_NAMES = frozenset(f.name for f in fields(Lead))


@dataclass
class StageRule:
    from_stage: str
    to_stage: str
    requires_field: list[str] = field(default_factory=list)
    trigger: str = ""
    auto_set_field: str = ""
    auto_set_value: str = ""


@dataclass
class SLARule:
    stage: str
    threshold_hours: float
    alert_level: str = ""
    rule_name: str = ""
    condition: str = ""
    alert_action: str = ""


@dataclass
class AutoActionRule:
    trigger_stage: str
    default_next_action: str
    default_days: int = 0
    trigger_event: str = "on_enter"


@dataclass
class LegendItem:
    list_name: str
    value: str
    display_order: int = 0
    color: str = ""
    is_default: bool = False
    is_active: bool = True
    probability: float | None = None


# Legend list name (without the ``_list`` suffix) -> AppOptions attribute
LEGEND_LISTS = {
    "stage": "stages",
    "owner": "owners",
    "source": "sources",
    "category": "categories",
    "priority": "priorities",
    "product_type": "product_types",
    "print_type": "print_types",
    "contact_status": "contact_status",
    "payment_update": "payment_status",
    "payment_status": "payment_status",
    "design_status": "design_status",
    "lost_reason": "lost_reasons",
    "customer_type": "customer_types",
    "platform_type": "platform_types",
    "sample_status": "sample_status",
    "order_status": "order_status",
    "next_action_type": "next_action_types",
    "intent": "intents",
    "workflow_type": "workflow_types",
}


@dataclass
class AppOptions:
    """Option vocabularies offered by the settings surface."""

    stages: list[str] = field(default_factory=lambda: list(DEFAULT_STAGES))
    owners: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    priorities: list[str] = field(default_factory=list)
    product_types: list[str] = field(default_factory=list)
    print_types: list[str] = field(default_factory=list)
    contact_status: list[str] = field(default_factory=list)
    payment_status: list[str] = field(default_factory=list)
    design_status: list[str] = field(default_factory=list)
    lost_reasons: list[str] = field(default_factory=list)
    customer_types: list[str] = field(default_factory=list)
    platform_types: list[str] = field(default_factory=list)
    sample_status: list[str] = field(default_factory=list)
    order_status: list[str] = field(default_factory=list)
    next_action_types: list[str] = field(default_factory=list)
    intents: list[str] = field(default_factory=list)
    workflow_types: list[str] = field(default_factory=list)

    @classmethod
    def from_legends(cls, legends: list[LegendItem] | tuple[LegendItem, ...]) -> "AppOptions":
        buckets: dict[str, list[LegendItem]] = {}
        for item in legends:
            if not item.is_active or not item.value:
                continue
            key = item.list_name.strip().lower().replace(" ", "_")
            if key.endswith("_list"):
                key = key[: -len("_list")]
            attr = LEGEND_LISTS.get(key)
            if attr:
                buckets.setdefault(attr, []).append(item)

        options = cls()
        for attr, items in buckets.items():
            ordered = sorted(items, key=lambda i: i.display_order)
            setattr(options, attr, [i.value for i in ordered])
        return options


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class SystemData:
    """Read-model snapshot handed to callers. Superseded, never mutated."""

    leads: tuple[Lead, ...] = ()
    stage_rules: tuple[StageRule, ...] = ()
    sla_rules: tuple[SLARule, ...] = ()
    auto_actions: tuple[AutoActionRule, ...] = ()
    legends: tuple[LegendItem, ...] = ()
    data_source: DataSource = DataSource.LOCAL
    read_only: bool = True
    error: str | None = None
    fetched_at: str = field(default_factory=_now_iso)

    @property
    def options(self) -> AppOptions:
        return AppOptions.from_legends(self.legends)

    def find(self, lead_id: str) -> Lead | None:
        for lead in self.leads:
            if lead.lead_id == lead_id:
                return lead
        return None

    def tagged(self, data_source: DataSource, read_only: bool, error: str | None = None) -> "SystemData":
        return replace(self, data_source=data_source, read_only=read_only, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "leads": [lead.to_dict() for lead in self.leads],
            "stage_rules": [asdict(r) for r in self.stage_rules],
            "sla_rules": [asdict(r) for r in self.sla_rules],
            "auto_actions": [asdict(r) for r in self.auto_actions],
            "legends": [asdict(item) for item in self.legends],
            "data_source": self.data_source.value,
            "read_only": self.read_only,
            "error": self.error,
            "fetched_at": self.fetched_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SystemData":
        return cls(
            leads=tuple(Lead.from_dict(d) for d in data.get("leads", [])),
            stage_rules=tuple(StageRule(**d) for d in data.get("stage_rules", [])),
            sla_rules=tuple(SLARule(**d) for d in data.get("sla_rules", [])),
            auto_actions=tuple(AutoActionRule(**d) for d in data.get("auto_actions", [])),
            legends=tuple(LegendItem(**d) for d in data.get("legends", [])),
            data_source=DataSource(data.get("data_source", DataSource.LOCAL.value)),
            read_only=bool(data.get("read_only", True)),
            error=data.get("error"),
            fetched_at=data.get("fetched_at") or _now_iso(),
        )
