"""
models package
- Purpose: Import all ORM models so Alembic autogenerate discovers them.
- Important: Alembic only sees models that are imported somewhere.
"""

from pagerescue.models.account_quota import AccountQuota
from pagerescue.models.usage_record import UsageRecord

__all__ = [
    "AccountQuota",
    "UsageRecord",
]
