"""Plan identifiers and tier lookup."""

from typing import Dict

from ..core.config import ChatSettings, PlanTier

PLAN_BASIC = "basic"
PLAN_PREMIUM = "premium"


def plan_tiers(settings: ChatSettings) -> Dict[str, PlanTier]:
    return {PLAN_BASIC: settings.basic, PLAN_PREMIUM: settings.premium}


def get_plan_tier(settings: ChatSettings, plan: str) -> PlanTier:
    """Return the tier for a plan. Only the two known plans are accepted."""
    tiers = plan_tiers(settings)
    if plan not in tiers:
        raise ValueError(f"Unknown plan: {plan!r}")
    return tiers[plan]
