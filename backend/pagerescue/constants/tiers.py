"""
tiers.py
- Purpose: Per-tier vision quota, request size cap, credit pricing and fallback concurrency.
- Design: One table; the ledger and the fallback client both read from here.
"""

from dataclasses import dataclass
from enum import Enum


class AccountTier(str, Enum):
    FREE = "free"
    PRO = "pro"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


@dataclass(frozen=True)
class TierPolicy:
    monthly_page_limit: int | None  # None = unlimited
    max_pages_per_request: int | None  # None = unlimited
    credits_per_page: float
    max_concurrency: int


CREDITS_PER_PAGE = 0.1

TIER_POLICIES: dict[AccountTier, TierPolicy] = {
    AccountTier.FREE: TierPolicy(
        monthly_page_limit=20, max_pages_per_request=10, credits_per_page=CREDITS_PER_PAGE, max_concurrency=2
    ),
    AccountTier.PRO: TierPolicy(
        monthly_page_limit=200, max_pages_per_request=30, credits_per_page=CREDITS_PER_PAGE, max_concurrency=3
    ),
    AccountTier.PREMIUM: TierPolicy(
        monthly_page_limit=1000, max_pages_per_request=50, credits_per_page=CREDITS_PER_PAGE, max_concurrency=4
    ),
    AccountTier.ENTERPRISE: TierPolicy(
        monthly_page_limit=None, max_pages_per_request=None, credits_per_page=0.0, max_concurrency=6
    ),
}

DEFAULT_BATCH_CONCURRENCY = 3


def tier_policy(tier: AccountTier | str | None) -> TierPolicy:
    """Unknown tiers get FREE limits (matches how legacy rows are treated)."""
    try:
        return TIER_POLICIES[AccountTier(tier)]
    except ValueError:
        return TIER_POLICIES[AccountTier.FREE]
