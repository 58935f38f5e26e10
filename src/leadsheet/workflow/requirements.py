"""Category-aware required-field resolution.

The required set for a move is built by running an ordered list of
``RequirementRule`` objects left to right. Each rule that applies adds and
then removes field names. Stage defaults come first, then configured stage
rules for the exact from/to pair, then category overrides.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence

from ..models import LEAD_FIELD_NAMES, Lead, StageRule

REQUIRED_FIELDS_BY_STAGE: dict[str, list[str]] = {
    "Assigned": ["yds_poc", "priority"],
    "Qualified": ["intent", "category"],
    "Won": ["payment_update"],
}

PLACEHOLDER_VALUES = frozenset({"Unassigned", "Pending", "Not Contacted", "Not Needed"})

# "Pending" is a real answer for these
PENDING_ALLOWED = frozenset({"payment_update", "integration_ready"})

QUANTITY_FIELDS = frozenset({"estimated_qty", "contact_attempts"})

SAMPLE_DISPATCH_STAGES = frozenset({"Dispatch Sample", "Sample Feedback"})

# Config/header spellings -> Lead attribute
FIELD_ALIASES = {
    "owner": "yds_poc",
    "next_action_type": "next_action",
    "phone": "number",
    "name": "contact_person",
    "company": "company_name",
}

Predicate = Callable[[Lead, str, str | None], bool]

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def resolve_field(name: str) -> str:
    """Map a configured field name (``ydsPoc``, ``Estimated Qty``, ``owner``) to a Lead attribute."""
    snake = _CAMEL_BOUNDARY.sub("_", name.strip())
    snake = re.sub(r"[\s_]+", "_", snake).lower()
    return FIELD_ALIASES.get(snake, snake)


@dataclass(frozen=True)
class RequirementRule:
    name: str
    applies: Predicate
    add: tuple[str, ...] = ()
    remove: tuple[str, ...] = ()


def category_kind(lead: Lead) -> str:
    """First matching category family, in precedence order."""
    category = (lead.category or "").lower()
    if "dropship" in category or "partner" in category:
        return "dropship"
    if "customisation" in category or "customization" in category:
        return "customisation"
    if "sampling" in category:
        return "sampling"
    if "corporate" in category or "vendor" in category:
        return "corporate"
    return ""


def _to(*stages: str) -> Predicate:
    return lambda lead, to_stage, from_stage: to_stage in stages


def _kind(kind: str, *stages: str) -> Predicate:
    def applies(lead: Lead, to_stage: str, from_stage: str | None) -> bool:
        return category_kind(lead) == kind and (not stages or to_stage in stages)
    return applies


def _pair(rule: StageRule) -> Predicate:
    def applies(lead: Lead, to_stage: str, from_stage: str | None) -> bool:
        if rule.to_stage != to_stage:
            return False
        return from_stage is None or rule.from_stage == from_stage
    return applies


CATEGORY_RULES: tuple[RequirementRule, ...] = (
    RequirementRule(
        "dropship-onboarding",
        _kind("dropship", "Assigned", "Qualified"),
        add=("platform_type", "integration_ready", "customer_type"),
    ),
    RequirementRule("dropship-no-print", _kind("dropship"), remove=("print_type",)),
    RequirementRule("customisation-print", _kind("customisation", "Qualified", "Proposal"), add=("print_type",)),
    RequirementRule("sampling-no-qty", _kind("sampling"), remove=("estimated_qty",)),
    RequirementRule(
        "sampling-dispatch",
        _kind("sampling", *SAMPLE_DISPATCH_STAGES),
        add=("sample_required", "sample_status"),
    ),
    RequirementRule(
        "corporate-volume",
        _kind("corporate", "Qualified"),
        add=("estimated_qty", "product_type"),
    ),
)


def build_rules(stage_rules: Iterable[StageRule] = ()) -> list[RequirementRule]:
    """Default table, then configured pairs, then category overrides."""
    rules = [
        RequirementRule(f"default:{stage}", _to(stage), add=tuple(fields))
        for stage, fields in REQUIRED_FIELDS_BY_STAGE.items()
    ]
    for rule in stage_rules:
        if rule.requires_field:
            rules.append(
                RequirementRule(
                    f"stage:{rule.from_stage}->{rule.to_stage}",
                    _pair(rule),
                    add=tuple(resolve_field(f) for f in rule.requires_field),
                )
            )
    rules.extend(CATEGORY_RULES)
    return rules


def required_fields(
    lead: Lead,
    to_stage: str,
    stage_rules: Iterable[StageRule] = (),
    from_stage: str | None = None,
) -> list[str]:
    """Ordered, de-duplicated attribute names required to enter ``to_stage``."""
    required: dict[str, None] = {}
    for rule in build_rules(stage_rules):
        if not rule.applies(lead, to_stage, from_stage):
            continue
        for name in rule.add:
            required[name] = None
        for name in rule.remove:
            required.pop(name, None)
    return list(required)


def field_value(lead: Lead, attr: str) -> Any:
    if attr in LEAD_FIELD_NAMES:
        return getattr(lead, attr)
    return lead.extras.get(attr)


def is_missing(attr: str, value: Any) -> bool:
    if value is None:
        return True
    if attr in QUANTITY_FIELDS:
        try:
            return int(float(value)) <= 0
        except (TypeError, ValueError):
            return True
    text = str(value).strip()
    if not text:
        return True
    if text == "Pending" and attr in PENDING_ALLOWED:
        return False
    return text in PLACEHOLDER_VALUES


def missing_fields(
    lead: Lead,
    to_stage: str,
    stage_rules: Sequence[StageRule] = (),
    from_stage: str | None = None,
) -> list[str]:
    """Required attributes that are empty, zero, or still a placeholder."""
    return [
        attr for attr in required_fields(lead, to_stage, stage_rules, from_stage)
        if is_missing(attr, field_value(lead, attr))
    ]
