"""SLA health classification - derived from persisted fields, never stored as truth."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time
from typing import Iterable

from ..models import Lead, SLARule
from ..sync.dates import days_between, parse_date

HEALTHY = "Healthy"
WARNING = "Warning"
VIOLATED = "Violated"

HEALTH_ICONS = {HEALTHY: "🟢", WARNING: "🟡", VIOLATED: "🔴"}


@dataclass(frozen=True)
class LeadHealth:
    status: str
    label: str
    urgency: str
    is_overdue: bool = False


def find_sla_rule(stage: str, sla_rules: Iterable[SLARule]) -> SLARule | None:
    wanted = (stage or "").strip().lower()
    for rule in sla_rules:
        if rule.stage.strip().lower() == wanted:
            return rule
    return None


def stage_start(lead: Lead) -> date | None:
    """When the lead entered its current stage (falls back to creation)."""
    return (
        parse_date(lead.stage_changed_date)
        or parse_date(lead.date)
        or parse_date(lead.created_at)
    )


def days_in_stage(lead: Lead, today: date | None = None) -> int:
    start = stage_start(lead)
    if start is None:
        return 0
    return days_between(start, today or date.today())


def days_open(lead: Lead, today: date | None = None) -> int:
    created = parse_date(lead.date) or parse_date(lead.created_at)
    if created is None:
        return 0
    return days_between(created, today or date.today())


def determine_lead_health(
    lead: Lead,
    sla_rules: Iterable[SLARule] = (),
    now: datetime | None = None,
) -> LeadHealth:
    """Classify a lead.

    Closed leads are always healthy. Otherwise an overdue next action is a
    violation, a next action due today is a warning, and a stage dwell longer
    than the matching SLA rule allows is a violation.
    """
    if lead.is_closed:
        return LeadHealth(HEALTHY, "Closed", "okay")

    now = now or datetime.now()
    today = now.date()

    due = parse_date(lead.next_action_date)
    if due is not None:
        if due < today:
            return LeadHealth(VIOLATED, "Overdue", "critical", is_overdue=True)
        if due == today:
            return LeadHealth(WARNING, "Due Today", "warning")

    rule = find_sla_rule(lead.status, sla_rules)
    if rule is not None:
        start = stage_start(lead)
        if start is not None:
            entered = datetime.combine(start, time.min, tzinfo=now.tzinfo)
            hours = (now - entered).total_seconds() / 3600
            if hours > rule.threshold_hours:
                return LeadHealth(VIOLATED, "Stagnant", "critical")

    return LeadHealth(HEALTHY, "OK", "okay")


def annotate_lead(
    lead: Lead,
    sla_rules: Iterable[SLARule] = (),
    now: datetime | None = None,
) -> Lead:
    """Return a copy with the derived fields recomputed."""
    now = now or datetime.now()
    health = determine_lead_health(lead, sla_rules, now)
    if health.is_overdue:
        overdue = "OVERDUE"
    elif health.status == WARNING:
        overdue = "DUE SOON"
    else:
        overdue = "OK"
    return replace(
        lead,
        sla_status=health.status,
        sla_health=HEALTH_ICONS[health.status],
        days_open=f"{days_open(lead, now.date())}d",
        action_overdue=overdue,
    )
