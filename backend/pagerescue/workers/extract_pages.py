"""pagerescue/workers/extract_pages.py

Worker entrypoint: PDF bytes -> baseline pages -> tiered fallback -> ExtractionResult.
"""

import asyncio
import uuid

from sqlalchemy.orm import Session

from pagerescue.core.request_context import clear_context, set_context
from pagerescue.db.session import SessionLocal
from pagerescue.pdf.extract import extract_page_texts
from pagerescue.pdf.render import PdfPageImageProvider
from pagerescue.resilience.cancellation import CancellationToken
from pagerescue.services.extraction_orchestrator import (
    ExtractionOptions,
    ExtractionOrchestrator,
    ExtractionResult,
)
from pagerescue.services.usage_ledger import SqlQuotaStore, UsageLedger
from pagerescue.vision.client import FallbackClient, build_fallback_client


async def extract_pdf(
    db: Session,
    pdf_bytes: bytes,
    options: ExtractionOptions | dict | None = None,
    *,
    fallback_client: FallbackClient | None = None,
    cancel_token: CancellationToken | None = None,
) -> ExtractionResult:
    baseline = extract_page_texts(pdf_bytes)
    orchestrator = ExtractionOrchestrator(
        fallback_client or build_fallback_client(),
        UsageLedger(SqlQuotaStore(db)),
    )
    return await orchestrator.extract_with_fallback(
        baseline.page_texts,
        PdfPageImageProvider(pdf_bytes),
        options,
        cancel_token=cancel_token,
    )


def run_extract_pdf(
    db: Session | None,
    pdf_bytes: bytes,
    options: ExtractionOptions | dict | None = None,
    *,
    trace_id: str | None = None,
    fallback_client: FallbackClient | None = None,
    cancel_token: CancellationToken | None = None,
) -> ExtractionResult:
    """Sync entrypoint for job runners. Opens (and closes) its own session when db is None."""
    if trace_id is None:
        trace_id = str(uuid.uuid4())

    if isinstance(options, ExtractionOptions):
        document_id, account_id = options.document_id, options.account_id
    else:
        document_id, account_id = (options or {}).get("document_id"), (options or {}).get("account_id")

    own_session = db is None
    if own_session:
        db = SessionLocal()

    set_context(trace_id=trace_id, document_id=document_id, account_id=account_id)
    try:
        return asyncio.run(
            extract_pdf(db, pdf_bytes, options, fallback_client=fallback_client, cancel_token=cancel_token)
        )
    finally:
        clear_context()
        if own_session:
            db.close()
