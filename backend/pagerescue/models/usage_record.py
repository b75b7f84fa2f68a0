"""
usage_record.py
- Purpose: Append-only log of charged vision fallback batches (one row per document run).
"""

import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Float, DateTime, JSON, ForeignKey, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pagerescue.models.base import Base, utcnow


class UsageRecord(Base):
    __tablename__ = "usage_records"
    __table_args__ = (Index("ix_usage_records_account_created", "account_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(64), ForeignKey("account_quotas.account_id"), nullable=False)
    document_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    page_numbers: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    pages_consumed: Mapped[int] = mapped_column(Integer, nullable=False)
    credits_consumed: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    tokens_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    estimated_cost: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=utcnow, nullable=False)
