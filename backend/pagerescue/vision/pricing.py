"""pagerescue/vision/pricing.py

Rough provider cost estimate, stored next to usage rows for reporting.
Not used for billing: users are billed in credits (see constants/tiers.py).
"""

# ~10k input tokens per rendered page at 1024px; flash-tier vision pricing.
TOKENS_PER_PAGE_ESTIMATE = 10_000
COST_PER_MILLION_TOKENS_USD = 0.075


def estimate_vision_cost(page_count: int, *, tokens_used: int | None = None) -> float:
    tokens = tokens_used if tokens_used else page_count * TOKENS_PER_PAGE_ESTIMATE
    return round(tokens / 1_000_000 * COST_PER_MILLION_TOKENS_USD, 6)
