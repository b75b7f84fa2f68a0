from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pagerescue.core.config import settings

# Sync engine; the ledger does short transactions only.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
