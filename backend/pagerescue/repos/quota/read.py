"""
quota/read.py
- Purpose: Read-side DB operations for AccountQuota and UsageRecord.
- Design: Keep query logic here for reuse and testability.
"""

from sqlalchemy import func
from sqlalchemy.orm import Session

from pagerescue.models.account_quota import AccountQuota
from pagerescue.models.usage_record import UsageRecord


class QuotaReadRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_quota(self, account_id: str) -> AccountQuota | None:
        return self.db.query(AccountQuota).filter(AccountQuota.account_id == account_id).first()

    def list_usage(self, account_id: str, *, limit: int = 50, offset: int = 0) -> list[UsageRecord]:
        return (
            self.db.query(UsageRecord)
            .filter(UsageRecord.account_id == account_id)
            .order_by(UsageRecord.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def usage_totals(self, account_id: str) -> tuple[int, float, int]:
        """(pages, credits, tokens) summed over every usage row for the account."""
        pages, credits, tokens = (
            self.db.query(
                func.coalesce(func.sum(UsageRecord.pages_consumed), 0),
                func.coalesce(func.sum(UsageRecord.credits_consumed), 0.0),
                func.coalesce(func.sum(UsageRecord.tokens_used), 0),
            )
            .filter(UsageRecord.account_id == account_id)
            .one()
        )
        return int(pages), float(credits), int(tokens)
