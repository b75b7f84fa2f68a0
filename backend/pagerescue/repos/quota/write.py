"""
quota/write.py
- Purpose: Write-side DB operations for AccountQuota and UsageRecord.
- Design: No business logic. Only persistence and minimal mapping.
- Counters are incremented in SQL, never read-modify-write in Python.
"""

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from pagerescue.models.account_quota import AccountQuota
from pagerescue.models.base import utcnow
from pagerescue.models.usage_record import UsageRecord


class QuotaWriteRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_quota(
        self,
        account_id: str,
        *,
        tier: str,
        credits_balance: float = 0.0,
        now: datetime | None = None,
    ) -> AccountQuota:
        row = AccountQuota(
            account_id=account_id,
            tier=tier,
            pages_used_this_month=0,
            credits_balance=credits_balance,
            last_reset_at=now or utcnow(),
        )
        self.db.add(row)
        self.db.flush()
        return row

    def increment_usage(self, account_id: str, *, pages: int, credits: float) -> int:
        result = self.db.execute(
            update(AccountQuota)
            .where(AccountQuota.account_id == account_id)
            .values(
                pages_used_this_month=AccountQuota.pages_used_this_month + pages,
                credits_balance=AccountQuota.credits_balance - credits,
                updated_at=utcnow(),
            )
        )
        return result.rowcount

    def add_usage_record(
        self,
        account_id: str,
        *,
        document_id: str | None,
        page_numbers: list[int],
        pages_consumed: int,
        credits_consumed: float,
        tokens_used: int | None = None,
        estimated_cost: float | None = None,
        now: datetime | None = None,
    ) -> UsageRecord:
        row = UsageRecord(
            account_id=account_id,
            document_id=document_id,
            page_numbers=list(page_numbers),
            pages_consumed=pages_consumed,
            credits_consumed=credits_consumed,
            tokens_used=tokens_used,
            estimated_cost=estimated_cost,
            created_at=now or utcnow(),
        )
        self.db.add(row)
        self.db.flush()
        return row

    def reset_month(self, account_id: str, *, cutoff: datetime, now: datetime) -> int:
        """Zero one counter unless another writer already reset it this month."""
        result = self.db.execute(
            update(AccountQuota)
            .where(AccountQuota.account_id == account_id, AccountQuota.last_reset_at < cutoff)
            .values(pages_used_this_month=0, last_reset_at=now, updated_at=utcnow())
        )
        return result.rowcount

    def reset_all_before(self, cutoff: datetime, *, now: datetime) -> int:
        """Zero every counter last reset before `cutoff` (start of the current month)."""
        result = self.db.execute(
            update(AccountQuota)
            .where(AccountQuota.last_reset_at < cutoff)
            .values(pages_used_this_month=0, last_reset_at=now, updated_at=utcnow())
        )
        return result.rowcount

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
