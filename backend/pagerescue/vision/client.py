# pagerescue/vision/client.py
"""
Fallback client: one page image in, one PageResult out.

Call stack per page:
    circuit breaker -> retry with backoff -> rate limiter -> provider (under timeout)

Failures are page-scoped. extract_page never raises for provider trouble or a
cancelled token; it returns PageResult(failure=...) so a batch keeps going and
the caller decides what a cancelled document means. Only task cancellation
(CancelledError) escapes.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Protocol, Sequence

from pagerescue.constants.tiers import DEFAULT_BATCH_CONCURRENCY
from pagerescue.core import ExtractionCancelledError
from pagerescue.core.config import settings
from pagerescue.resilience.batch import run_batch
from pagerescue.resilience.cancellation import CancellationToken
from pagerescue.resilience.circuit_breaker import CircuitBreaker
from pagerescue.resilience.errors import CircuitOpenError, RetryExhaustedError
from pagerescue.resilience.rate_limit import MinIntervalRateLimiter
from pagerescue.resilience.retry import RetryPolicy, retry_with_backoff
from pagerescue.vision.errors import (
    VisionEmptyResponseError,
    VisionError,
    VisionInvalidInputError,
    VisionNonRetryableError,
    VisionRateLimitedError,
    VisionRetryableError,
    VisionTimeoutError,
)
from pagerescue.vision.prompts.registry import render_prompt
from pagerescue.vision.telemetry import VisionCallLog, log_vision_call, now_ms
from pagerescue.vision.types import (
    PageExtractionOptions,
    PageFailure,
    PageFailureKind,
    PageImage,
    PageResult,
    VisionRequest,
    VisionResponse,
)

logger = logging.getLogger("pagerescue.vision.client")


class VisionProvider(Protocol):
    name: str

    async def extract_text(self, req: VisionRequest) -> VisionResponse: ...


def _is_retryable(e: BaseException) -> bool:
    return isinstance(e, VisionRetryableError)


def _counts_against_provider(e: BaseException) -> bool:
    # A rejected page image says nothing about provider health.
    return not isinstance(e, VisionNonRetryableError)


def _failure_kind(e: BaseException) -> PageFailureKind:
    if isinstance(e, RetryExhaustedError):
        return _failure_kind(e.last_error)
    if isinstance(e, CircuitOpenError):
        return PageFailureKind.CIRCUIT_OPEN
    if isinstance(e, ExtractionCancelledError):
        return PageFailureKind.CANCELLED
    if isinstance(e, VisionTimeoutError):
        return PageFailureKind.TIMEOUT
    if isinstance(e, VisionRateLimitedError):
        return PageFailureKind.RATE_LIMITED
    if isinstance(e, VisionEmptyResponseError):
        return PageFailureKind.EMPTY_RESPONSE
    if isinstance(e, VisionInvalidInputError):
        return PageFailureKind.INVALID_INPUT
    return PageFailureKind.PROVIDER_ERROR


def default_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.VISION_MAX_ATTEMPTS,
        initial_delay_ms=settings.VISION_RETRY_INITIAL_DELAY_MS,
        multiplier=settings.VISION_RETRY_MULTIPLIER,
        max_delay_ms=settings.VISION_RETRY_MAX_DELAY_MS,
        jitter=settings.VISION_RETRY_JITTER,
    )


class FallbackClient:
    def __init__(
        self,
        provider: VisionProvider,
        *,
        model: str | None = None,
        breaker: CircuitBreaker | None = None,
        rate_limiter: MinIntervalRateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float | None = None,
        prompt_name: str | None = None,
        prompt_version: str | None = None,
    ):
        self.provider = provider
        self.model = model or settings.GEMINI_VISION_MODEL
        self.breaker = breaker or CircuitBreaker(
            f"vision:{provider.name}",
            failure_threshold=settings.BREAKER_FAILURE_THRESHOLD,
            cooldown_seconds=settings.BREAKER_COOLDOWN_SECONDS,
            success_threshold=settings.BREAKER_SUCCESS_THRESHOLD,
            is_failure=_counts_against_provider,
        )
        self.rate_limiter = rate_limiter or MinIntervalRateLimiter(
            settings.VISION_MIN_REQUEST_INTERVAL_MS / 1000.0
        )
        self.retry_policy = retry_policy or default_retry_policy()
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.VISION_TIMEOUT_SECONDS
        self.prompt_name = prompt_name or settings.VISION_PROMPT_NAME
        self.prompt_version = prompt_version or settings.VISION_PROMPT_VERSION

    # ---- single page ----

    async def extract_page(
        self,
        image: PageImage,
        options: PageExtractionOptions | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> PageResult:
        options = options or PageExtractionOptions()
        trace_id = str(uuid.uuid4())
        prompt_version = options.prompt_version or self.prompt_version

        req = VisionRequest(
            trace_id=trace_id,
            page_number=image.page_number,
            image=image,
            prompt_name=self.prompt_name,
            prompt_version=prompt_version,
            prompt=render_prompt(
                self.prompt_name,
                prompt_version,
                {
                    "page_number": image.page_number,
                    "__EXTRA_INSTRUCTIONS__": options.extra_instructions or "",
                },
            ),
            provider=self.provider.name,
            model=self.model,
            temperature=settings.VISION_TEMPERATURE,
            max_output_tokens=settings.VISION_MAX_OUTPUT_TOKENS,
            timeout_seconds=self.timeout_seconds,
        )

        attempts = 0

        async def _attempt() -> VisionResponse:
            nonlocal attempts
            attempts += 1
            await self.rate_limiter.acquire()
            try:
                resp = await asyncio.wait_for(self.provider.extract_text(req), timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                raise VisionTimeoutError(
                    f"Vision call for page {image.page_number} exceeded {self.timeout_seconds}s"
                ) from e
            if not resp.output_text or not resp.output_text.strip():
                raise VisionEmptyResponseError(f"Provider returned no text for page {image.page_number}")
            return resp

        def _on_retry(attempt: int, err: BaseException, delay: float) -> None:
            logger.info(
                "vision.retry",
                extra={
                    "page_number": image.page_number,
                    "attempt": attempt,
                    "delay_ms": int(delay * 1000),
                    "error_type": type(err).__name__,
                },
            )

        start_ms = now_ms()
        try:
            resp = await self.breaker.call(
                lambda: retry_with_backoff(
                    _attempt,
                    policy=self.retry_policy,
                    is_retryable=_is_retryable,
                    on_retry=_on_retry,
                    cancel_token=cancel_token,
                )
            )
        except (VisionError, RetryExhaustedError, CircuitOpenError, ExtractionCancelledError) as e:
            kind = _failure_kind(e)
            log_vision_call(
                VisionCallLog(
                    trace_id=trace_id,
                    provider=req.provider,
                    model=req.model,
                    page_number=image.page_number,
                    prompt_name=req.prompt_name,
                    prompt_version=req.prompt_version,
                    latency_ms=now_ms() - start_ms,
                    attempts=attempts,
                    ok=False,
                    error_type=kind.value,
                )
            )
            return PageResult(
                page_number=image.page_number,
                failure=PageFailure(kind=kind, message=str(e), attempts=attempts),
                attempts=attempts,
                latency_ms=now_ms() - start_ms,
                model=self.model,
            )

        latency_ms = now_ms() - start_ms
        log_vision_call(
            VisionCallLog(
                trace_id=trace_id,
                provider=req.provider,
                model=req.model,
                page_number=image.page_number,
                prompt_name=req.prompt_name,
                prompt_version=req.prompt_version,
                latency_ms=latency_ms,
                attempts=attempts,
                ok=True,
                tokens_used=resp.tokens_used,
            )
        )
        if settings.VISION_LOG_TEXT:
            logger.debug("vision.text", extra={"page_number": image.page_number, "text": resp.output_text[:500]})

        return PageResult(
            page_number=image.page_number,
            text=resp.output_text.strip(),
            attempts=attempts,
            latency_ms=latency_ms,
            tokens_used=resp.tokens_used,
            model=resp.model,
        )

    # ---- batch ----

    async def extract_pages(
        self,
        images: Sequence[PageImage],
        options: PageExtractionOptions | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> list[PageResult]:
        """
        One PageResult per input image, in input order. Never raises for page trouble.

        Pages the caller cancelled come back as CANCELLED failures. With
        continue_on_error=False the first failed page stops the batch: nothing
        new is dispatched, in-flight pages stop retrying, and the pages that
        were not finished come back as ABORTED failures.
        """
        options = options or PageExtractionOptions(concurrency=DEFAULT_BATCH_CONCURRENCY)
        batch_token = CancellationToken(parent=cancel_token)

        async def _worker(image: PageImage) -> PageResult:
            result = await self.extract_page(image, options, cancel_token=batch_token)
            if not result.ok and not options.continue_on_error and not batch_token.cancelled:
                logger.warning(
                    "vision.batch_aborted",
                    extra={"page_number": image.page_number, "failure_kind": result.failure.kind.value},
                )
                batch_token.cancel(f"Stopped after page {image.page_number} failed")
            return result

        batch = await run_batch(
            list(images),
            _worker,
            concurrency=options.concurrency,
            cancel_token=batch_token,
        )

        caller_cancelled = batch_token.cancelled_by_parent
        stop_kind = PageFailureKind.CANCELLED if caller_cancelled else PageFailureKind.ABORTED

        results: list[PageResult] = []
        for item in batch:
            if item.ok:
                result = item.value
                if result.failure is not None and result.failure.kind is PageFailureKind.CANCELLED:
                    result = replace(result, failure=replace(result.failure, kind=stop_kind))
                results.append(result)
            elif item.skipped:
                results.append(
                    PageResult(
                        page_number=item.item.page_number,
                        failure=PageFailure(kind=stop_kind, message=batch_token.reason or "Not dispatched"),
                    )
                )
            else:
                results.append(
                    PageResult(
                        page_number=item.item.page_number,
                        failure=PageFailure(kind=_failure_kind(item.error), message=str(item.error)),
                    )
                )
        return results


def build_fallback_client(provider: VisionProvider | None = None) -> FallbackClient:
    """Client wired from settings. Defaults to the Gemini provider."""
    if provider is None:
        if settings.VISION_PROVIDER != "gemini":
            raise VisionNonRetryableError(f"Unsupported VISION_PROVIDER: {settings.VISION_PROVIDER}")
        from pagerescue.vision.providers.gemini import GeminiVisionProvider

        provider = GeminiVisionProvider()
    return FallbackClient(provider)
