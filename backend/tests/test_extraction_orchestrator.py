import asyncio

import pytest
from pydantic import ValidationError

from conftest import (
    GIBBERISH_PAGE,
    GOOD_PAGE,
    FakePageImages,
    FakeVisionProvider,
    make_fallback_client,
    recovered,
)
from pagerescue.constants.statuses import ExtractionMethod, OcrStatus
from pagerescue.constants.tiers import AccountTier
from pagerescue.core import AppError, ErrorCode, ErrorReason, ExtractionCancelledError, LedgerError
from pagerescue.resilience.cancellation import CancellationToken
from pagerescue.services.extraction_orchestrator import ExtractionOptions, ExtractionOrchestrator
from pagerescue.vision.errors import VisionServerError


def _options(**overrides):
    base = dict(enabled=True, account_id="acct-1", account_tier=AccountTier.PRO, document_id="doc-1")
    base.update(overrides)
    return ExtractionOptions(**base)


def _run(orchestrator, pages, images=None, options=None, **kwargs):
    return asyncio.run(
        orchestrator.extract_with_fallback(
            pages,
            images if images is not None else FakePageImages(),
            options if options is not None else _options(),
            **kwargs,
        )
    )


@pytest.fixture
def provider():
    return FakeVisionProvider()


@pytest.fixture
def orchestrator(provider, ledger):
    ledger.ensure_account("acct-1", AccountTier.PRO, credits=50.0)
    return ExtractionOrchestrator(make_fallback_client(provider, timeout_seconds=0.01), ledger)


def test_clean_document_never_touches_fallback_or_ledger(orchestrator, provider, ledger):
    images = FakePageImages()
    result = _run(orchestrator, [GOOD_PAGE, GOOD_PAGE], images)

    assert result.extraction_method is ExtractionMethod.BASELINE
    assert result.page_texts == [GOOD_PAGE, GOOD_PAGE]
    assert result.fallback_skipped_reason is None
    assert provider.calls == []
    assert images.requested == []
    assert ledger.get_usage_stats("acct-1").pages_used_this_month == 0


def test_empty_page_is_rescued(orchestrator, ledger):
    result = _run(orchestrator, [GOOD_PAGE, "", GOOD_PAGE])

    assert result.extraction_method is ExtractionMethod.HYBRID
    assert result.vision_pages_used == [2]
    assert result.page_texts[1] == recovered(2).strip()
    assert result.pages_charged == 1
    assert result.credits_charged == pytest.approx(0.1)
    assert result.content == "\n\n".join(result.page_texts)
    assert ledger.get_usage_stats("acct-1").pages_used_this_month == 1


def test_timed_out_page_keeps_baseline_and_is_not_charged(provider, orchestrator, ledger):
    pages = [GOOD_PAGE] * 10
    pages[2] = ""
    pages[6] = GIBBERISH_PAGE
    provider.script[7] = ["hang", "hang", "hang"]

    result = _run(orchestrator, pages)

    assert result.total_pages == 10
    assert result.page_texts[6] == GIBBERISH_PAGE
    assert result.page_texts[2] == recovered(3).strip()
    assert result.vision_pages_used == [3]
    assert result.failed_fallback_pages == [7]
    assert result.pages_charged == 1
    assert result.extraction_method is ExtractionMethod.HYBRID

    stats = ledger.get_usage_stats("acct-1")
    assert stats.pages_used_this_month == 1
    assert ledger.list_usage_history("acct-1")[0].page_numbers == [3]


def test_account_at_limit_gets_baseline_text(provider, ledger):
    ledger.ensure_account("free-1", AccountTier.FREE, credits=10.0)
    ledger.record_usage("free-1", 20, 2.0)
    orchestrator = ExtractionOrchestrator(make_fallback_client(provider), ledger)
    pages = [GOOD_PAGE, "", GIBBERISH_PAGE, GOOD_PAGE]

    assert not ledger.check_eligibility("free-1", 2).allowed

    result = _run(orchestrator, pages, options=_options(account_id="free-1", account_tier=AccountTier.FREE))

    assert result.extraction_method is ExtractionMethod.BASELINE
    assert result.page_texts == pages
    assert result.fallback_skipped_reason == ErrorReason.QUOTA_EXCEEDED.value
    assert result.vision_pages_used == []
    assert provider.calls == []
    assert ledger.get_usage_stats("free-1").pages_used_this_month == 20


def test_disabled_fallback_skips_everything(provider, ledger):
    orchestrator = ExtractionOrchestrator(make_fallback_client(provider), ledger)

    result = _run(orchestrator, [GOOD_PAGE, ""], options=ExtractionOptions())

    assert result.extraction_method is ExtractionMethod.BASELINE
    assert result.fallback_skipped_reason == ErrorReason.FALLBACK_DISABLED.value
    assert result.quality.problem_page_numbers == [2]
    assert provider.calls == []


@pytest.mark.parametrize("failing", [set(), {1}, {2, 4}, {1, 2, 3, 4}])
def test_charges_exactly_the_successful_pages(provider, orchestrator, ledger, failing):
    for page in failing:
        provider.script[page] = [VisionServerError("503")] * 3
    pages = ["", GIBBERISH_PAGE, "", GIBBERISH_PAGE]

    result = _run(orchestrator, pages)

    succeeded = sorted({1, 2, 3, 4} - failing)
    assert result.vision_pages_used == succeeded
    assert result.failed_fallback_pages == sorted(failing)
    assert result.pages_charged == len(succeeded)
    assert ledger.get_usage_stats("acct-1").pages_used_this_month == len(succeeded)
    assert len(result.page_texts) == 4
    assert all(isinstance(t, str) for t in result.page_texts)
    for page in failing:
        assert result.page_texts[page - 1] == pages[page - 1]


def test_all_pages_rescued_reports_fallback_method(orchestrator):
    result = _run(orchestrator, ["", GIBBERISH_PAGE])

    assert result.extraction_method is ExtractionMethod.FALLBACK
    assert result.needs_full_ocr is False
    assert result.ocr_status is OcrStatus.NOT_NEEDED
    assert result.metadata["vision_pages"] == 2
    assert result.metadata["baseline_pages"] == 0


def test_unrescued_document_asks_for_full_ocr(provider, orchestrator, ledger):
    for page in (1, 2, 3):
        provider.script[page] = [VisionServerError("503")] * 3

    result = _run(orchestrator, ["", GIBBERISH_PAGE, "", GOOD_PAGE])

    assert result.needs_full_ocr is True
    assert result.ocr_status is OcrStatus.PENDING_CONSENT
    assert result.extraction_method is ExtractionMethod.BASELINE
    assert result.pages_charged == 0
    assert ledger.list_usage_history("acct-1") == []


def test_page_without_image_stays_baseline(provider, orchestrator):
    images = FakePageImages(failing={2})

    result = _run(orchestrator, ["", "", GOOD_PAGE], images)

    assert result.vision_pages_used == [1]
    assert result.failed_fallback_pages == [2]
    assert result.page_texts[1] == ""
    assert provider.calls == [1]


def test_cancellation_mid_batch_charges_nothing(ledger):
    token = CancellationToken()

    class CancellingProvider(FakeVisionProvider):
        async def extract_text(self, req):
            token.cancel("user stopped")
            return await super().extract_text(req)

    provider = CancellingProvider()
    orchestrator = ExtractionOrchestrator(make_fallback_client(provider), ledger)
    ledger.ensure_account("acct-1", AccountTier.PRO, credits=50.0)

    with pytest.raises(ExtractionCancelledError):
        _run(orchestrator, ["", "", ""], options=_options(max_concurrency=1), cancel_token=token)

    assert provider.calls == [1]
    assert ledger.get_usage_stats("acct-1").pages_used_this_month == 0


def test_already_cancelled_token_stops_before_quota_check(orchestrator, provider):
    token = CancellationToken()
    token.cancel()

    with pytest.raises(ExtractionCancelledError):
        _run(orchestrator, [""], cancel_token=token)
    assert provider.calls == []


def test_ledger_failure_propagates(orchestrator, ledger, monkeypatch):
    def broken(*args, **kwargs):
        raise LedgerError("ledger offline")

    monkeypatch.setattr(ledger, "record_usage", broken)

    with pytest.raises(LedgerError):
        _run(orchestrator, [""])


def test_invalid_option_dict_is_a_validation_error(orchestrator):
    with pytest.raises(AppError) as exc_info:
        _run(orchestrator, [""], options={"enabled": True})
    assert exc_info.value.code is ErrorCode.VALIDATION_ERROR


def test_options_are_immutable_and_checked():
    with pytest.raises(ValidationError):
        ExtractionOptions(enabled=True)
    with pytest.raises(ValidationError):
        ExtractionOptions(max_concurrency=0)
    with pytest.raises(ValidationError):
        ExtractionOptions(unknown_flag=True)

    opts = ExtractionOptions()
    assert opts.quality_threshold == 61
    with pytest.raises(ValidationError):
        opts.enabled = True


def test_non_string_pages_are_rejected(orchestrator):
    with pytest.raises(AppError):
        _run(orchestrator, [GOOD_PAGE, 42])


def test_empty_document(orchestrator):
    result = _run(orchestrator, [])

    assert result.total_pages == 0
    assert result.page_texts == []
    assert result.extraction_method is ExtractionMethod.BASELINE


def test_custom_threshold_changes_which_pages_go_to_fallback(orchestrator, provider):
    medium = "Quarterly revenue grew across every region while costs stayed flat overall."

    result = _run(orchestrator, [GOOD_PAGE, medium], options=_options(quality_threshold=80))

    assert result.quality.problem_page_numbers == [2]
    assert provider.calls == [2]


def test_stop_on_first_error_keeps_rescued_pages_and_charges_them(ledger):
    provider = FakeVisionProvider({2: [VisionServerError("503")] * 3})
    orchestrator = ExtractionOrchestrator(make_fallback_client(provider), ledger)
    ledger.ensure_account("acct-1", AccountTier.PRO, credits=50.0)

    result = _run(
        orchestrator,
        ["", "", "", GOOD_PAGE],
        options=_options(max_concurrency=1, continue_on_error=False),
    )

    assert provider.calls == [1, 2, 2, 2]
    assert result.vision_pages_used == [1]
    assert result.failed_fallback_pages == [2, 3]
    assert result.page_texts == [recovered(1).strip(), "", "", GOOD_PAGE]
    assert result.extraction_method is ExtractionMethod.HYBRID
    assert result.pages_charged == 1
    assert ledger.get_usage_stats("acct-1").pages_used_this_month == 1


def test_stop_on_first_error_with_nothing_rescued_returns_baseline(provider, orchestrator, ledger):
    provider.script = {1: [VisionServerError("503")] * 3}

    result = _run(orchestrator, ["", "", GOOD_PAGE], options=_options(max_concurrency=1, continue_on_error=False))

    assert provider.calls == [1, 1, 1]
    assert result.extraction_method is ExtractionMethod.BASELINE
    assert result.failed_fallback_pages == [1, 2]
    assert result.pages_charged == 0
    assert ledger.list_usage_history("acct-1") == []


def test_oversized_request_is_skipped(provider, ledger):
    ledger.ensure_account("free-1", AccountTier.FREE, credits=10.0)
    orchestrator = ExtractionOrchestrator(make_fallback_client(provider), ledger)

    result = _run(orchestrator, [""] * 11, options=_options(account_id="free-1", account_tier=AccountTier.FREE))

    assert result.fallback_skipped_reason == ErrorReason.TOO_MANY_PAGES.value
    assert result.extraction_method is ExtractionMethod.BASELINE
    assert provider.calls == []
