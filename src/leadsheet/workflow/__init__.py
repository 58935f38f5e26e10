"""Workflow rule engine - pure functions over a Lead and its rule sets."""

from .actions import AUTO_NEXT_ACTIONS_DEFAULT, NextAction, next_action_for
from .health import LeadHealth, annotate_lead, days_in_stage, determine_lead_health
from .requirements import (
    REQUIRED_FIELDS_BY_STAGE,
    RequirementRule,
    missing_fields,
    required_fields,
    resolve_field,
)
from .routing import route_new_lead
from .stage import MoveResult, TransitionCheck, apply_transition, check_transition, move_lead
from .transitions import FORBIDDEN_TRANSITIONS, TransitionResult, validate_transition

__all__ = [
    "AUTO_NEXT_ACTIONS_DEFAULT",
    "FORBIDDEN_TRANSITIONS",
    "LeadHealth",
    "MoveResult",
    "NextAction",
    "REQUIRED_FIELDS_BY_STAGE",
    "RequirementRule",
    "TransitionCheck",
    "TransitionResult",
    "annotate_lead",
    "apply_transition",
    "check_transition",
    "days_in_stage",
    "determine_lead_health",
    "missing_fields",
    "move_lead",
    "next_action_for",
    "required_fields",
    "resolve_field",
    "route_new_lead",
    "validate_transition",
]
