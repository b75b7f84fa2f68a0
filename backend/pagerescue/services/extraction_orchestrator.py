# pagerescue/services/extraction_orchestrator.py
"""
extraction_orchestrator.py
- Purpose: Tiered page rescue for one document.
    baseline text -> quality gate -> quota check -> vision fallback for problem pages -> merge -> charge
- Owns: deciding which pages go to the fallback, merging per page, charging only accepted pages.
- Design: Thick service over two collaborators (FallbackClient, UsageLedger).
  Provider trouble is absorbed per page; ledger failures and cancellation propagate.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from pagerescue.constants.statuses import ExtractionMethod, OcrStatus
from pagerescue.constants.tiers import AccountTier, tier_policy
from pagerescue.core import ErrorReason
from pagerescue.core.errors import bad_request
from pagerescue.pdf.quality import analyze_document, quality_summary, severe_fraction
from pagerescue.pdf.types import QUALITY_THRESHOLD, DocumentQualityReport
from pagerescue.resilience.cancellation import CancellationToken
from pagerescue.services.usage_ledger import UsageLedger
from pagerescue.vision.client import FallbackClient
from pagerescue.vision.pricing import estimate_vision_cost
from pagerescue.vision.types import PageExtractionOptions, PageImage

logger = logging.getLogger("pagerescue.extraction_orchestrator")

FULL_OCR_SEVERE_FRACTION = 0.5


class ExtractionOptions(BaseModel):
    """Caller options for one document. Fallback is opt-in because it costs credits."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = False
    account_id: str | None = None
    account_tier: AccountTier = AccountTier.FREE
    max_concurrency: int | None = Field(default=None, ge=1, le=16)
    quality_threshold: int = Field(default=QUALITY_THRESHOLD, ge=0, le=100)
    document_id: str | None = None
    continue_on_error: bool = True

    @model_validator(mode="after")
    def _account_required_when_enabled(self) -> "ExtractionOptions":
        if self.enabled and not (self.account_id and self.account_id.strip()):
            raise ValueError("account_id is required when fallback is enabled")
        return self


class PageImageProvider(Protocol):
    async def get_page_image(self, page_number: int) -> PageImage: ...


@dataclass(frozen=True)
class ExtractionResult:
    content: str
    page_texts: list[str]
    total_pages: int
    extraction_method: ExtractionMethod
    quality: DocumentQualityReport
    vision_pages_used: list[int] = field(default_factory=list)
    failed_fallback_pages: list[int] = field(default_factory=list)
    needs_full_ocr: bool = False
    ocr_status: OcrStatus = OcrStatus.NOT_NEEDED
    fallback_skipped_reason: str | None = None
    pages_charged: int = 0
    credits_charged: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


def _coerce_options(options: ExtractionOptions | dict | None) -> ExtractionOptions:
    if isinstance(options, ExtractionOptions):
        return options
    try:
        return ExtractionOptions.model_validate(options or {})
    except ValidationError as e:
        raise bad_request(
            message="Invalid extraction options",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def _validate_pages(document_pages: Sequence[str]) -> list[str]:
    if document_pages is None or isinstance(document_pages, (str, bytes)):
        raise bad_request(message="document_pages must be a list of page texts")
    pages = list(document_pages)
    for i, text in enumerate(pages):
        if text is None:
            pages[i] = ""
        elif not isinstance(text, str):
            raise bad_request(
                message="document_pages entries must be strings",
                details={"page_number": i + 1, "type": type(text).__name__},
            )
    return pages


def _method_for(vision_pages: int, total_pages: int) -> ExtractionMethod:
    if total_pages and vision_pages == total_pages:
        return ExtractionMethod.FALLBACK
    if vision_pages:
        return ExtractionMethod.HYBRID
    return ExtractionMethod.BASELINE


class ExtractionOrchestrator:
    def __init__(self, fallback_client: FallbackClient, ledger: UsageLedger):
        self.fallback_client = fallback_client
        self.ledger = ledger

    async def extract_with_fallback(
        self,
        document_pages: Sequence[str],
        page_images: PageImageProvider | None,
        options: ExtractionOptions | dict | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ExtractionResult:
        opts = _coerce_options(options)
        pages = _validate_pages(document_pages)
        started = time.perf_counter()

        quality = analyze_document(pages, threshold=opts.quality_threshold)
        problem_pages = quality.problem_page_numbers

        logger.info(
            "extraction.quality_scored",
            extra={
                "document_id": opts.document_id,
                "total_pages": quality.total_pages,
                "overall_score": quality.overall_score,
                "problem_pages": len(problem_pages),
                "suggested_method": quality.suggested_method.value,
            },
        )

        if not problem_pages:
            return self._build_result(pages, quality, started=started)

        if not opts.enabled:
            return self._skip(pages, quality, ErrorReason.FALLBACK_DISABLED.value, opts, started=started)

        if page_images is None:
            raise bad_request(message="page_images is required when fallback is enabled")

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        eligibility = self.ledger.check_eligibility(opts.account_id, len(problem_pages))
        if not eligibility.allowed:
            return self._skip(pages, quality, eligibility.reason, opts, started=started)

        # ---- fallback ----
        images, image_failures = await self._fetch_images(page_images, problem_pages, opts)

        concurrency = opts.max_concurrency or tier_policy(opts.account_tier).max_concurrency
        results = []
        if images:
            results = await self.fallback_client.extract_pages(
                images,
                PageExtractionOptions(concurrency=concurrency, continue_on_error=opts.continue_on_error),
                cancel_token=cancel_token,
            )

        merged = list(pages)
        vision_pages: list[int] = []
        failed_pages: list[int] = list(image_failures)
        tokens_used = 0
        for r in results:
            if r.ok:
                merged[r.page_number - 1] = r.text
                vision_pages.append(r.page_number)
                tokens_used += r.tokens_used
            else:
                failed_pages.append(r.page_number)
                logger.warning(
                    "extraction.page_fallback_failed",
                    extra={
                        "document_id": opts.document_id,
                        "page_number": r.page_number,
                        "failure_kind": r.failure.kind.value,
                        "attempts": r.failure.attempts,
                        "error": r.failure.message,
                    },
                )

        # Nothing is charged for a document the caller abandoned.
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        vision_pages.sort()
        failed_pages.sort()

        credits = 0.0
        if vision_pages:
            credits = self.ledger.credits_for(eligibility.tier or opts.account_tier, len(vision_pages))
            self.ledger.record_usage(
                opts.account_id,
                len(vision_pages),
                credits,
                document_id=opts.document_id,
                page_numbers=vision_pages,
                tokens_used=tokens_used or None,
                estimated_cost=estimate_vision_cost(len(vision_pages), tokens_used=tokens_used or None),
            )

        return self._build_result(
            merged,
            quality,
            started=started,
            vision_pages=vision_pages,
            failed_pages=failed_pages,
            credits=credits,
        )

    async def _fetch_images(
        self,
        page_images: PageImageProvider,
        page_numbers: list[int],
        opts: ExtractionOptions,
    ) -> tuple[list[PageImage], list[int]]:
        images: list[PageImage] = []
        failures: list[int] = []
        for page_number in page_numbers:
            try:
                images.append(await page_images.get_page_image(page_number))
            except Exception as e:
                # Page keeps its baseline text.
                failures.append(page_number)
                logger.warning(
                    "extraction.page_image_failed",
                    extra={
                        "document_id": opts.document_id,
                        "page_number": page_number,
                        "error_type": type(e).__name__,
                        "error": str(e),
                    },
                )
        return images, failures

    def _skip(
        self,
        pages: list[str],
        quality: DocumentQualityReport,
        reason: str | None,
        opts: ExtractionOptions,
        *,
        started: float,
    ) -> ExtractionResult:
        logger.info(
            "extraction.fallback_skipped",
            extra={
                "document_id": opts.document_id,
                "reason": reason,
                "problem_pages": len(quality.problem_page_numbers),
            },
        )
        return self._build_result(pages, quality, started=started, skipped_reason=reason)

    def _build_result(
        self,
        merged: list[str],
        quality: DocumentQualityReport,
        *,
        started: float,
        vision_pages: list[int] | None = None,
        failed_pages: list[int] | None = None,
        credits: float = 0.0,
        skipped_reason: str | None = None,
    ) -> ExtractionResult:
        vision_pages = vision_pages or []
        total_pages = len(merged)

        # Re-score what the caller actually gets; fallback may have fixed the worst pages.
        final_quality = analyze_document(merged) if vision_pages else quality
        needs_full_ocr = severe_fraction(final_quality) > FULL_OCR_SEVERE_FRACTION

        processing_ms = int((time.perf_counter() - started) * 1000)
        result = ExtractionResult(
            content="\n\n".join(merged),
            page_texts=merged,
            total_pages=total_pages,
            extraction_method=_method_for(len(vision_pages), total_pages),
            quality=quality,
            vision_pages_used=vision_pages,
            failed_fallback_pages=failed_pages or [],
            needs_full_ocr=needs_full_ocr,
            ocr_status=OcrStatus.PENDING_CONSENT if needs_full_ocr else OcrStatus.NOT_NEEDED,
            fallback_skipped_reason=skipped_reason,
            pages_charged=len(vision_pages),
            credits_charged=credits,
            metadata={
                "processing_time_ms": processing_ms,
                "baseline_pages": total_pages - len(vision_pages),
                "vision_pages": len(vision_pages),
                "quality_summary": quality_summary(quality),
            },
        )

        logger.info(
            "extraction.completed",
            extra={
                "total_pages": total_pages,
                "extraction_method": result.extraction_method.value,
                "vision_pages": len(vision_pages),
                "failed_fallback_pages": len(result.failed_fallback_pages),
                "needs_full_ocr": needs_full_ocr,
                "processing_time_ms": processing_ms,
            },
        )
        return result
