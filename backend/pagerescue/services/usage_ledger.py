# pagerescue/services/usage_ledger.py
"""
usage_ledger.py
- Purpose: Vision quota and credit accounting per account.
- Owns: eligibility checks, monthly resets, charging successful fallback pages.
- Design: Service object with injected persistence (QuotaStore). The shipped
  store is SqlQuotaStore over the quota repos; tests can swap in anything that
  satisfies the protocol.
- Rule: usage is recorded only for pages whose fallback text was accepted.
  Callers own that rule; the ledger just charges what it is told.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pagerescue.constants.tiers import AccountTier, tier_policy
from pagerescue.core import ErrorCode, ErrorReason, LedgerError
from pagerescue.core.errors import bad_request, not_found
from pagerescue.models.base import utcnow
from pagerescue.repos.quota.read import QuotaReadRepo
from pagerescue.repos.quota.write import QuotaWriteRepo

logger = logging.getLogger("pagerescue.usage_ledger")


# ---- store-facing types ----

@dataclass(frozen=True)
class QuotaSnapshot:
    account_id: str
    tier: str
    pages_used_this_month: int
    credits_balance: float
    last_reset_at: datetime


@dataclass(frozen=True)
class UsageEntry:
    account_id: str
    document_id: str | None
    page_numbers: list[int]
    pages_consumed: int
    credits_consumed: float
    tokens_used: int | None
    estimated_cost: float | None
    created_at: datetime


class QuotaStore(Protocol):
    def get_quota(self, account_id: str) -> QuotaSnapshot | None: ...

    def create_quota(self, account_id: str, *, tier: str, credits_balance: float, now: datetime) -> QuotaSnapshot: ...

    def reset_month(self, account_id: str, *, cutoff: datetime, now: datetime) -> bool: ...

    def reset_all_before(self, cutoff: datetime, *, now: datetime) -> int: ...

    def record_usage(
        self,
        account_id: str,
        *,
        pages: int,
        credits: float,
        document_id: str | None,
        page_numbers: list[int],
        tokens_used: int | None,
        estimated_cost: float | None,
        now: datetime,
    ) -> None: ...

    def usage_totals(self, account_id: str) -> tuple[int, float, int]: ...

    def list_usage(self, account_id: str, *, limit: int, offset: int) -> list[UsageEntry]: ...


def _snapshot(row) -> QuotaSnapshot:
    return QuotaSnapshot(
        account_id=row.account_id,
        tier=row.tier,
        pages_used_this_month=row.pages_used_this_month,
        credits_balance=row.credits_balance,
        last_reset_at=row.last_reset_at,
    )


class SqlQuotaStore:
    """QuotaStore over a SQLAlchemy Session. Every write commits its own transaction."""

    def __init__(self, db: Session):
        self.db = db
        self.read = QuotaReadRepo(db)
        self.write = QuotaWriteRepo(db)

    def _fail(self, op: str, account_id: str | None, e: Exception) -> LedgerError:
        self.write.rollback()
        logger.error(
            "ledger.store_failed",
            extra={"op": op, "account_id": account_id, "error_type": type(e).__name__, "error": str(e)},
        )
        return LedgerError(f"Usage ledger {op} failed: {e}", details={"op": op, "account_id": account_id})

    def get_quota(self, account_id: str) -> QuotaSnapshot | None:
        try:
            row = self.read.get_quota(account_id)
        except SQLAlchemyError as e:
            raise self._fail("read", account_id, e) from e
        return _snapshot(row) if row else None

    def create_quota(self, account_id: str, *, tier: str, credits_balance: float, now: datetime) -> QuotaSnapshot:
        try:
            row = self.write.create_quota(account_id, tier=tier, credits_balance=credits_balance, now=now)
            self.write.commit()
        except SQLAlchemyError as e:
            raise self._fail("create", account_id, e) from e
        return _snapshot(row)

    def reset_month(self, account_id: str, *, cutoff: datetime, now: datetime) -> bool:
        try:
            count = self.write.reset_month(account_id, cutoff=cutoff, now=now)
            self.write.commit()
        except SQLAlchemyError as e:
            raise self._fail("reset", account_id, e) from e
        return count > 0

    def reset_all_before(self, cutoff: datetime, *, now: datetime) -> int:
        try:
            count = self.write.reset_all_before(cutoff, now=now)
            self.write.commit()
        except SQLAlchemyError as e:
            raise self._fail("bulk_reset", None, e) from e
        return count

    def record_usage(
        self,
        account_id: str,
        *,
        pages: int,
        credits: float,
        document_id: str | None,
        page_numbers: list[int],
        tokens_used: int | None,
        estimated_cost: float | None,
        now: datetime,
    ) -> None:
        try:
            updated = self.write.increment_usage(account_id, pages=pages, credits=credits)
            if not updated:
                self.write.rollback()
                raise LedgerError(
                    f"Cannot record usage for unknown account {account_id}",
                    details={"op": "record", "account_id": account_id, "reason": ErrorReason.ACCOUNT_NOT_FOUND.value},
                )
            self.write.add_usage_record(
                account_id,
                document_id=document_id,
                page_numbers=page_numbers,
                pages_consumed=pages,
                credits_consumed=credits,
                tokens_used=tokens_used,
                estimated_cost=estimated_cost,
                now=now,
            )
            self.write.commit()
        except SQLAlchemyError as e:
            raise self._fail("record", account_id, e) from e

    def usage_totals(self, account_id: str) -> tuple[int, float, int]:
        try:
            return self.read.usage_totals(account_id)
        except SQLAlchemyError as e:
            raise self._fail("read", account_id, e) from e

    def list_usage(self, account_id: str, *, limit: int, offset: int) -> list[UsageEntry]:
        try:
            rows = self.read.list_usage(account_id, limit=limit, offset=offset)
        except SQLAlchemyError as e:
            raise self._fail("read", account_id, e) from e
        return [
            UsageEntry(
                account_id=r.account_id,
                document_id=r.document_id,
                page_numbers=list(r.page_numbers or []),
                pages_consumed=r.pages_consumed,
                credits_consumed=r.credits_consumed,
                tokens_used=r.tokens_used,
                estimated_cost=r.estimated_cost,
                created_at=r.created_at,
            )
            for r in rows
        ]


# ---- ledger-facing types ----

@dataclass(frozen=True)
class Eligibility:
    allowed: bool
    reason: str | None = None
    reason_code: ErrorCode | None = None
    remaining_pages: int | None = None  # None = unlimited
    monthly_limit: int | None = None
    tier: str | None = None  # stored tier; prices the charge


@dataclass(frozen=True)
class UsageStats:
    account_id: str
    tier: str
    pages_used_this_month: int
    monthly_limit: int | None
    remaining_pages: int | None
    credits_balance: float
    total_pages: int = 0
    total_credits: float = 0.0
    total_tokens: int = 0


def _same_month(a: datetime, b: datetime) -> bool:
    return (a.year, a.month) == (b.year, b.month)


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class UsageLedger:
    def __init__(self, store: QuotaStore, *, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self._clock = clock

    @staticmethod
    def credits_for(tier: AccountTier | str | None, pages: int) -> float:
        return round(tier_policy(tier).credits_per_page * pages, 4)

    def ensure_account(
        self,
        account_id: str,
        tier: AccountTier | str = AccountTier.FREE,
        credits: float = 0.0,
    ) -> QuotaSnapshot:
        existing = self.store.get_quota(account_id)
        if existing is not None:
            return existing
        tier_value = AccountTier(tier).value
        logger.info("ledger.account_created", extra={"account_id": account_id, "tier": tier_value})
        return self.store.create_quota(account_id, tier=tier_value, credits_balance=credits, now=self._clock())

    def reset_if_new_month(self, account_id: str) -> bool:
        quota = self.store.get_quota(account_id)
        if quota is None:
            return False
        now = self._clock()
        if _same_month(quota.last_reset_at, now) or quota.last_reset_at > now:
            return False
        if not self.store.reset_month(account_id, cutoff=_month_start(now), now=now):
            # Another writer reset it first; its counter may already hold new usage.
            return False
        logger.info(
            "ledger.month_reset",
            extra={"account_id": account_id, "pages_used_before": quota.pages_used_this_month},
        )
        return True

    def reset_monthly_counters(self) -> int:
        """Bulk reset for a scheduled job. Returns how many accounts were reset."""
        now = self._clock()
        count = self.store.reset_all_before(_month_start(now), now=now)
        logger.info("ledger.bulk_reset", extra={"accounts_reset": count})
        return count

    def check_eligibility(self, account_id: str, page_count: int) -> Eligibility:
        if page_count < 0:
            raise bad_request(message="page_count must be >= 0", details={"page_count": page_count})

        quota = self.store.get_quota(account_id)
        if quota is None:
            return Eligibility(
                allowed=False,
                reason=ErrorReason.ACCOUNT_NOT_FOUND.value,
                reason_code=ErrorCode.ACCOUNT_NOT_FOUND,
            )

        if not _same_month(quota.last_reset_at, self._clock()):
            # Re-read even when another writer won the reset.
            self.reset_if_new_month(account_id)
            quota = self.store.get_quota(account_id) or quota

        policy = tier_policy(quota.tier)
        limit = policy.monthly_page_limit
        used = quota.pages_used_this_month
        remaining = None if limit is None else max(0, limit - used)

        cap = policy.max_pages_per_request
        if cap is not None and page_count > cap:
            logger.info(
                "ledger.denied",
                extra={"account_id": account_id, "reason_code": ErrorCode.TOO_MANY_PAGES.value,
                       "requested": page_count, "max_pages_per_request": cap},
            )
            return Eligibility(
                allowed=False,
                reason=ErrorReason.TOO_MANY_PAGES.value,
                reason_code=ErrorCode.TOO_MANY_PAGES,
                remaining_pages=remaining,
                monthly_limit=limit,
                tier=quota.tier,
            )

        if limit is not None and used + page_count > limit:
            logger.info(
                "ledger.denied",
                extra={"account_id": account_id, "reason_code": ErrorCode.QUOTA_EXCEEDED.value,
                       "pages_used": used, "monthly_limit": limit, "requested": page_count},
            )
            return Eligibility(
                allowed=False,
                reason=ErrorReason.QUOTA_EXCEEDED.value,
                reason_code=ErrorCode.QUOTA_EXCEEDED,
                remaining_pages=remaining,
                monthly_limit=limit,
                tier=quota.tier,
            )

        needed = self.credits_for(quota.tier, page_count)
        if needed > quota.credits_balance + 1e-9:
            logger.info(
                "ledger.denied",
                extra={"account_id": account_id, "reason_code": ErrorCode.INSUFFICIENT_CREDITS.value,
                       "credits_needed": needed, "credits_balance": quota.credits_balance},
            )
            return Eligibility(
                allowed=False,
                reason=ErrorReason.INSUFFICIENT_CREDITS.value,
                reason_code=ErrorCode.INSUFFICIENT_CREDITS,
                remaining_pages=remaining,
                monthly_limit=limit,
                tier=quota.tier,
            )

        return Eligibility(allowed=True, remaining_pages=remaining, monthly_limit=limit, tier=quota.tier)

    def record_usage(
        self,
        account_id: str,
        pages_consumed: int,
        credits_consumed: float,
        *,
        document_id: str | None = None,
        page_numbers: list[int] | None = None,
        tokens_used: int | None = None,
        estimated_cost: float | None = None,
    ) -> None:
        if pages_consumed < 0 or credits_consumed < 0:
            raise bad_request(
                message="Usage amounts must be >= 0",
                details={"pages_consumed": pages_consumed, "credits_consumed": credits_consumed},
            )
        if pages_consumed == 0:
            return

        # Charges always land in the current month.
        self.reset_if_new_month(account_id)
        self.store.record_usage(
            account_id,
            pages=pages_consumed,
            credits=credits_consumed,
            document_id=document_id,
            page_numbers=list(page_numbers or []),
            tokens_used=tokens_used,
            estimated_cost=estimated_cost,
            now=self._clock(),
        )
        logger.info(
            "ledger.usage_recorded",
            extra={
                "account_id": account_id,
                "document_id": document_id,
                "pages_consumed": pages_consumed,
                "credits_consumed": credits_consumed,
            },
        )

    def get_usage_stats(self, account_id: str) -> UsageStats:
        self.reset_if_new_month(account_id)
        quota = self.store.get_quota(account_id)
        if quota is None:
            raise not_found(ErrorReason.ACCOUNT_NOT_FOUND.value, details={"account_id": account_id})

        limit = tier_policy(quota.tier).monthly_page_limit
        total_pages, total_credits, total_tokens = self.store.usage_totals(account_id)
        return UsageStats(
            account_id=account_id,
            tier=quota.tier,
            pages_used_this_month=quota.pages_used_this_month,
            monthly_limit=limit,
            remaining_pages=None if limit is None else max(0, limit - quota.pages_used_this_month),
            credits_balance=quota.credits_balance,
            total_pages=total_pages,
            total_credits=total_credits,
            total_tokens=total_tokens,
        )

    def list_usage_history(self, account_id: str, *, limit: int = 50, offset: int = 0) -> list[UsageEntry]:
        return self.store.list_usage(account_id, limit=limit, offset=offset)
