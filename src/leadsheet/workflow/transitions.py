"""Stage transition validation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

# from_stage -> stages that may never follow it directly
FORBIDDEN_TRANSITIONS: dict[str, list[str]] = {
    "New": ["Won"],
    "Won": ["New"],
}


@dataclass(frozen=True)
class TransitionResult:
    allowed: bool
    reason: str = ""


def validate_transition(
    from_stage: str,
    to_stage: str,
    forbidden: Mapping[str, Sequence[str]] = FORBIDDEN_TRANSITIONS,
) -> TransitionResult:
    """Reject only explicitly forbidden moves.

    A pair with no configured stage rule is allowed.
    """
    if to_stage in forbidden.get(from_stage, ()):
        return TransitionResult(False, f"Cannot move directly from {from_stage} to {to_stage}")
    return TransitionResult(True)
