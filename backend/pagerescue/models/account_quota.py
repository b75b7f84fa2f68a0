"""
account_quota.py
- Purpose: Per-account monthly vision page quota and prepaid credit balance.
- Note: monthly limit is not stored; it derives from tier (constants/tiers.py).
"""

from datetime import datetime
from sqlalchemy import String, Integer, Float, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from pagerescue.models.base import Base, utcnow


class AccountQuota(Base):
    __tablename__ = "account_quotas"

    account_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tier: Mapped[str] = mapped_column(String(16), nullable=False, default="free")  # free, pro, premium, enterprise

    pages_used_this_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    credits_balance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    last_reset_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=utcnow, onupdate=utcnow, nullable=False)
