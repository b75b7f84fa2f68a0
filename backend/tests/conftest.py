import asyncio
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pagerescue.db.base import Base
from pagerescue.resilience.circuit_breaker import CircuitBreaker
from pagerescue.resilience.rate_limit import MinIntervalRateLimiter
from pagerescue.resilience.retry import RetryPolicy
from pagerescue.services.usage_ledger import SqlQuotaStore, UsageLedger
from pagerescue.vision.client import FallbackClient
from pagerescue.vision.types import PageImage, VisionResponse


GOOD_PAGE = (
    "The quarterly report summarizes revenue growth across every region.\n"
    "Operating costs remained stable while investment in research increased.\n"
    "Management expects continued expansion during the next fiscal year.\n"
)

GIBBERISH_PAGE = "#@$% ^&*~ <>|| @@## $$%% ^^&& **~~ <<>> ||@@ ##$$ %%^^"


def recovered(page_number: int) -> str:
    return f"Recovered text for page {page_number}.\n\n{GOOD_PAGE}"


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeVisionProvider:
    """
    Scripted provider. `script[page_number]` is a list consumed one entry per call:
    a str is returned as text, an exception instance is raised, "hang" never returns.
    Pages without a script get recovered(page_number).
    """

    name = "fake"

    def __init__(self, script=None):
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.calls = []
        self.requests = []

    async def extract_text(self, req):
        self.calls.append(req.page_number)
        self.requests.append(req)
        steps = self.script.get(req.page_number)
        step = steps.pop(0) if steps else recovered(req.page_number)
        if step == "hang":
            await asyncio.Event().wait()
        if isinstance(step, BaseException):
            raise step
        return VisionResponse(
            trace_id=req.trace_id,
            provider=self.name,
            model=req.model,
            output_text=step,
            latency_ms=1,
            input_tokens=100,
            output_tokens=50,
        )


class FakePageImages:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.requested = []

    async def get_page_image(self, page_number):
        self.requested.append(page_number)
        if page_number in self.failing:
            raise RuntimeError(f"cannot render page {page_number}")
        return PageImage(page_number=page_number, data=b"\x89PNG fake")


def make_fallback_client(provider=None, *, breaker=None, timeout_seconds=0.05, max_attempts=3, retry_delay_ms=0):
    return FallbackClient(
        provider or FakeVisionProvider(),
        model="fake-vision",
        breaker=breaker or CircuitBreaker("test", failure_threshold=5, cooldown_seconds=60),
        rate_limiter=MinIntervalRateLimiter(0),
        retry_policy=RetryPolicy(max_attempts=max_attempts, initial_delay_ms=retry_delay_ms, jitter=0),
        timeout_seconds=timeout_seconds,
    )


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autoflush=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def ledger_clock():
    return FakeClock(datetime(2026, 3, 15, 12, 0, 0))


@pytest.fixture
def ledger(db_session, ledger_clock):
    return UsageLedger(SqlQuotaStore(db_session), clock=ledger_clock)
