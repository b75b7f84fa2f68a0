"""pagerescue/pdf/types.py

Lightweight dataclasses for baseline extraction + page quality scoring outputs.
Design goals:
- deterministic scoring (no network, no LLM)
- cheap, explainable score + issue flags per page
"""

from dataclasses import dataclass, field
from enum import Enum

from pagerescue.constants.statuses import SuggestedMethod

# Pages scoring below this go to the vision fallback. Shared by the validator,
# the orchestrator default and the tests.
QUALITY_THRESHOLD = 61

FAILED_BAND_MAX = 30


class IssueKind(str, Enum):
    EMPTY = "empty"
    GIBBERISH = "gibberish"
    TRUNCATED = "truncated"
    ENCODING_CORRUPTED = "encoding_corrupted"
    LOW_DENSITY = "low_density"
    STRUCTURE_BROKEN = "structure_broken"


# Issues that mean the page text is unusable, not just degraded.
SEVERE_ISSUES = frozenset({IssueKind.EMPTY, IssueKind.GIBBERISH})


class Recommendation(str, Enum):
    USE_BASELINE = "use_baseline"
    USE_FALLBACK = "use_fallback"


@dataclass(frozen=True)
class BaselinePages:
    page_texts: list[str]
    page_count: int
    pages_with_text: int
    strategy: str  # "pymupdf" | "pdfplumber" | "pypdf"


@dataclass(frozen=True)
class PageQualityReport:
    page_number: int
    score: int  # 0 - 100
    issues: frozenset[IssueKind]
    char_count: int
    word_count: int
    line_count: int
    special_char_ratio: float
    single_char_ratio: float
    recommendation: Recommendation
    notes: list[str] = field(default_factory=list)

    @property
    def band(self) -> str:
        if self.score <= FAILED_BAND_MAX:
            return "failed"
        if self.score < QUALITY_THRESHOLD:
            return "poor"
        return "acceptable"

    @property
    def needs_fallback(self) -> bool:
        return self.recommendation is Recommendation.USE_FALLBACK


@dataclass(frozen=True)
class DocumentQualityReport:
    pages: list[PageQualityReport]
    total_pages: int
    overall_score: float
    problem_page_numbers: list[int]
    suggested_method: SuggestedMethod
    successful_pages: int
    poor_pages: int
    failed_pages: int
