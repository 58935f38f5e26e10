"""Auto next action on stage entry."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from ..models import AutoActionRule
from ..sync.dates import add_days

# stage -> (action, days until due)
AUTO_NEXT_ACTIONS_DEFAULT: dict[str, tuple[str, int]] = {
    "New": ("Assign Owner", 0),
    "Assigned": ("First Call Attempt", 1),
    "Won": ("Confirm Payment", 0),
}

ON_ENTER = "on_enter"


@dataclass(frozen=True)
class NextAction:
    action: str
    due_date: str


def next_action_for(
    stage: str,
    auto_actions: Iterable[AutoActionRule] = (),
    today: date | None = None,
) -> NextAction | None:
    """Configured rule for ``stage``, else the built-in default, else None."""
    wanted = stage.strip().lower()
    for rule in auto_actions:
        if rule.trigger_stage.strip().lower() != wanted:
            continue
        if rule.trigger_event and rule.trigger_event != ON_ENTER:
            continue
        return NextAction(rule.default_next_action, add_days(rule.default_days, today))

    default = AUTO_NEXT_ACTIONS_DEFAULT.get(stage)
    if default:
        action, days = default
        return NextAction(action, add_days(days, today))
    return None
