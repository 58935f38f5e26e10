"""Initial routing of freshly created leads."""

from __future__ import annotations

from dataclasses import replace

from ..models import INITIAL_STAGE, Lead
from ..sync.codec import PRIORITY_UNSET, calculate_priority


def channel_for(category: str, intent: str) -> str:
    text = f"{category or ''} {intent or ''}".lower()
    if "drop" in text:
        return "Dropshipping"
    if "pod" in text:
        return "POD"
    return "B2B"


def route_new_lead(lead: Lead, default_owner: str = "Unassigned") -> Lead:
    """Assign channel, owner, priority and the initial stage."""
    channel = channel_for(lead.category, lead.intent)
    priority = lead.priority
    if priority in ("", PRIORITY_UNSET):
        priority = calculate_priority(lead.estimated_qty)
    routed = replace(
        lead,
        channel=channel,
        original_channel=lead.original_channel or channel,
        yds_poc=lead.yds_poc or default_owner,
        priority=priority,
    )
    routed.set_stage(INITIAL_STAGE)
    return routed
