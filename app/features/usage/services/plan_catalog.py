import enum
from dataclasses import dataclass
from typing import Dict, Optional


class PlanTier(str, enum.Enum):
    """Plan tiers. `guest` is never stored; it describes unauthenticated callers."""
    guest = "guest"
    free = "free"
    lite = "lite"
    plus = "plus"
    pro = "pro"
    agency = "agency"


@dataclass(frozen=True)
class PlanLimits:
    # None means unbounded
    audit_limit: Optional[int]
    max_tokens: int


# Guest limit is lifetime per IP, every other limit is per calendar month.
GUEST_AUDIT_LIMIT = 1

PLAN_CATALOG: Dict[PlanTier, PlanLimits] = {
    PlanTier.guest: PlanLimits(audit_limit=GUEST_AUDIT_LIMIT, max_tokens=2000),
    PlanTier.free: PlanLimits(audit_limit=3, max_tokens=2000),
    PlanTier.lite: PlanLimits(audit_limit=5, max_tokens=2500),
    PlanTier.plus: PlanLimits(audit_limit=12, max_tokens=3000),
    PlanTier.pro: PlanLimits(audit_limit=None, max_tokens=4000),
    PlanTier.agency: PlanLimits(audit_limit=None, max_tokens=8000),
}


def resolve_plan(plan: Optional[str]) -> PlanTier:
    """Map a stored plan string to a tier. Unknown or empty values become free."""
    if isinstance(plan, PlanTier):
        return plan
    try:
        return PlanTier((plan or "").strip().lower())
    except ValueError:
        return PlanTier.free


def get_plan_limits(plan: Optional[str]) -> PlanLimits:
    return PLAN_CATALOG[resolve_plan(plan)]


def audit_limit_for(plan: Optional[str]) -> Optional[int]:
    return get_plan_limits(plan).audit_limit


def token_budget_for(plan: Optional[str]) -> int:
    return get_plan_limits(plan).max_tokens
