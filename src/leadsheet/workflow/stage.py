"""Stage moves: check, apply, and the two combined."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from ..models import LEAD_FIELD_NAMES, AutoActionRule, Lead, SLARule, StageRule
from ..sync.dates import format_date
from .actions import next_action_for
from .health import annotate_lead
from .requirements import missing_fields, resolve_field
from .transitions import FORBIDDEN_TRANSITIONS, validate_transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionCheck:
    allowed: bool
    reason: str = ""
    missing: tuple[str, ...] = ()


@dataclass(frozen=True)
class MoveResult:
    check: TransitionCheck
    lead: Lead

    @property
    def ok(self) -> bool:
        return self.check.allowed


def check_transition(
    lead: Lead,
    to_stage: str,
    stage_rules: Sequence[StageRule] = (),
    forbidden: Mapping[str, Sequence[str]] = FORBIDDEN_TRANSITIONS,
) -> TransitionCheck:
    """Validate a move without changing anything."""
    if to_stage == lead.status:
        return TransitionCheck(False, f"Lead is already in {to_stage}")

    result = validate_transition(lead.status, to_stage, forbidden)
    if not result.allowed:
        return TransitionCheck(False, result.reason)

    missing = missing_fields(lead, to_stage, stage_rules, from_stage=lead.status)
    if missing:
        return TransitionCheck(
            False,
            f"Missing required fields for {to_stage}: {', '.join(missing)}",
            tuple(missing),
        )
    return TransitionCheck(True)


def _auto_set(lead: Lead, to_stage: str, stage_rules: Iterable[StageRule]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for rule in stage_rules:
        if rule.from_stage == lead.status and rule.to_stage == to_stage and rule.auto_set_field:
            attr = resolve_field(rule.auto_set_field)
            if attr in LEAD_FIELD_NAMES:
                changes[attr] = rule.auto_set_value
            else:
                logger.debug("Ignoring auto-set of unknown field %s", rule.auto_set_field)
    return changes


def apply_transition(
    lead: Lead,
    to_stage: str,
    stage_rules: Sequence[StageRule] = (),
    auto_actions: Sequence[AutoActionRule] = (),
    sla_rules: Sequence[SLARule] = (),
    now: datetime | None = None,
) -> Lead:
    """Return a new Lead moved to ``to_stage`` with all stage side effects applied.

    Does not validate; call ``check_transition`` first or use ``move_lead``.
    """
    now = now or datetime.now()
    today = now.date()
    stamp = format_date(today)

    changes: dict[str, Any] = {
        "stage_changed_date": stamp,
        "last_contact_date": stamp,
    }

    if to_stage == "Won":
        changes["won_date"] = stamp
        changes["lost_date"] = ""
        if lead.payment_update == "Pending":
            changes["payment_update"] = "Done"
    elif to_stage == "Lost":
        changes["lost_date"] = stamp
        changes["won_date"] = ""

    if to_stage == "Assigned" and not lead.first_response_time:
        changes["first_response_time"] = stamp

    changes.update(_auto_set(lead, to_stage, stage_rules))

    action = next_action_for(to_stage, auto_actions, today)
    if action is not None:
        changes["next_action"] = action.action
        changes["next_action_date"] = action.due_date

    moved = replace(lead, **changes)
    moved.set_stage(to_stage)
    return annotate_lead(moved, sla_rules, now)


def move_lead(
    lead: Lead,
    to_stage: str,
    stage_rules: Sequence[StageRule] = (),
    auto_actions: Sequence[AutoActionRule] = (),
    sla_rules: Sequence[SLARule] = (),
    now: datetime | None = None,
) -> MoveResult:
    """Check then apply. A rejected move returns the lead unchanged."""
    check = check_transition(lead, to_stage, stage_rules)
    if not check.allowed:
        return MoveResult(check, lead)
    return MoveResult(check, apply_transition(lead, to_stage, stage_rules, auto_actions, sla_rules, now))
