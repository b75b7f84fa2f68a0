"""
db/base.py
- Purpose: Provide Base + ensure models are imported for Alembic.
"""

from pagerescue.models.base import Base
import pagerescue.models  # noqa: F401  (ensures models are imported)

__all__ = ["Base"]
