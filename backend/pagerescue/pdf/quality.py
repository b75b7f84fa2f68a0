"""pagerescue/pdf/quality.py

Cheap, explainable heuristics to score baseline text extraction per page.

The score starts at 100 and every finding deducts a fixed amount. Deductions
are step functions of the measured ratios, so a page with strictly more of a
penalized pattern never scores higher. Each ratio is measured over tokens the
other detectors cannot add, so one kind of damage never dilutes another. Any
single major issue is enough to put a page below QUALITY_THRESHOLD.
"""

import re

from pagerescue.constants.statuses import SuggestedMethod
from pagerescue.pdf.types import (
    FAILED_BAND_MAX,
    QUALITY_THRESHOLD,
    SEVERE_ISSUES,
    DocumentQualityReport,
    IssueKind,
    PageQualityReport,
    Recommendation,
)

MIN_NON_WHITESPACE_CHARS = 5
STRUCTURE_MIN_CHARS = 2000
STRUCTURE_MAX_LINES = 5
FULL_OCR_PROBLEM_FRACTION = 0.5

# (threshold, deduction) pairs, checked top-down; first hit wins.
_SPECIAL_CHAR_STEPS = [(0.30, 45), (0.20, 15)]
_SINGLE_CHAR_STEPS = [(0.30, 40), (0.15, 10)]
_MEANINGFUL_CHAR_STEPS = [(50, 45), (100, 25)]

_ENCODING_DEDUCTION = 45
_SUSPICIOUS_RUN_DEDUCTION = 20
_STRUCTURE_DEDUCTION = 40
_SPARSE_LINES_DEDUCTION = 20
_SHORT_WORDS_DEDUCTION = 15
_WORD_VARIETY_DEDUCTION = 15
_ARTIFACT_DEDUCTION = 5

SHORT_WORD_MIN_TOKENS = 10
SHORT_WORD_AVG_LENGTH = 3.0
WORD_VARIETY_MIN_WORDS = 100
WORD_VARIETY_HIGH = 0.95
WORD_VARIETY_LOW = 0.2
WHITESPACE_ARTIFACT_MAX = 5
CAMEL_CASE_ARTIFACT_MAX = 10

# Punctuation that shows up in ordinary prose; everything else non-alphanumeric counts as "special".
_PROSE_PUNCTUATION = set(".,!?:;-()[]{}\"'")
_PROSE_STRIP = "".join(sorted(_PROSE_PUNCTUATION))

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0e-\x1f\x7f]")
_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")
_NON_ASCII_RUN = re.compile(r"[^\x00-\x7f\s]{20,}")
# Dot and dash leaders in tables of contents are layout, not corruption.
_REPEATED_CHAR_RUN = re.compile(r"([^\s.\-_=])\1{10,}")
_WHITESPACE_RUN = re.compile(r"[ \t]{5,}")
_CAMEL_CASE_BREAK = re.compile(r"[a-z][A-Z]")


def _is_single_letter(token: str) -> bool:
    return len(token) == 1 and token.isalpha()


def _special_char_ratio(words: list[str]) -> float:
    # Single-letter tokens are the truncation detector's business; they neither
    # add to nor dilute the special character ratio.
    counted = [w for w in words if not _is_single_letter(w)]
    total = sum(len(w) for w in counted)
    if not total:
        return 0.0
    special = sum(1 for w in counted for ch in w if not ch.isalnum() and ch not in _PROSE_PUNCTUATION)
    return special / total


def _single_char_ratio(words: list[str]) -> float:
    # Only tokens carrying letters; symbol runs do not dilute the ratio.
    lettered = [w for w in words if any(ch.isalpha() for ch in w)]
    if not lettered:
        return 0.0
    return sum(1 for w in lettered if _is_single_letter(w)) / len(lettered)


def _alnum(token: str) -> str:
    return "".join(ch for ch in token if ch.isalnum())


def _clean_words(words: list[str]) -> list[str]:
    # Plain words only; tokens carrying special characters belong to the gibberish check.
    stripped = (w.strip(_PROSE_STRIP) for w in words)
    return [w for w in stripped if w.isalnum()]


def _meaningful_char_count(words: list[str]) -> int:
    # Letters/digits inside multi-character words: the text a reader could actually use.
    return sum(len(_alnum(w)) for w in words if len(w) > 1)


def _average_word_length(words: list[str]) -> tuple[float, int]:
    lengths = [len(w) for w in _clean_words(words)]
    if not lengths:
        return 0.0, 0
    return sum(lengths) / len(lengths), len(lengths)


def _word_variety(words: list[str]) -> tuple[float, int]:
    normalized = [w.lower() for w in _clean_words(words) if len(w) > 1]
    if not normalized:
        return 0.0, 0
    return len(set(normalized)) / len(normalized), len(normalized)


def _step_deduction(value: float, steps: list[tuple[float, int]], *, above: bool = True) -> tuple[int, float | None]:
    for threshold, deduction in steps:
        hit = value > threshold if above else value < threshold
        if hit:
            return deduction, threshold
    return 0, None


def _recommend(score: int, threshold: int) -> Recommendation:
    return Recommendation.USE_FALLBACK if score < threshold else Recommendation.USE_BASELINE


def analyze_page(page_text: str, page_number: int, *, threshold: int = QUALITY_THRESHOLD) -> PageQualityReport:
    raw = page_text or ""
    char_count = len(raw)
    words = raw.split()
    word_count = len(words)
    lines = [ln for ln in raw.split("\n") if ln.strip()]
    line_count = len(lines)

    non_ws = sum(1 for ch in raw if not ch.isspace())
    if non_ws < MIN_NON_WHITESPACE_CHARS:
        return PageQualityReport(
            page_number=page_number,
            score=0,
            issues=frozenset({IssueKind.EMPTY}),
            char_count=char_count,
            word_count=word_count,
            line_count=line_count,
            special_char_ratio=0.0,
            single_char_ratio=0.0,
            recommendation=_recommend(0, threshold),
            notes=["Empty page - no text extracted"],
        )

    score = 100
    issues: set[IssueKind] = set()
    notes: list[str] = []

    # 1) Density
    meaningful = _meaningful_char_count(words)
    deduction, limit = _step_deduction(meaningful, _MEANINGFUL_CHAR_STEPS, above=False)
    if deduction:
        score -= deduction
        issues.add(IssueKind.LOW_DENSITY)
        notes.append(f"Low meaningful character count (< {int(limit)})")
    elif line_count > 3 and meaningful / line_count < 10:
        score -= _SPARSE_LINES_DEDUCTION
        issues.add(IssueKind.LOW_DENSITY)
        notes.append("Very low text density per line")

    # 2) Gibberish
    special_ratio = _special_char_ratio(words)
    deduction, limit = _step_deduction(special_ratio, _SPECIAL_CHAR_STEPS)
    if deduction:
        score -= deduction
        if limit == _SPECIAL_CHAR_STEPS[0][0]:
            issues.add(IssueKind.GIBBERISH)
            notes.append("High special character ratio (> 30%) - possible gibberish")
        else:
            notes.append("Elevated special character ratio (> 20%)")

    # 3) Truncation (text split into single letters)
    single_ratio = _single_char_ratio(words)
    deduction, limit = _step_deduction(single_ratio, _SINGLE_CHAR_STEPS)
    if deduction:
        score -= deduction
        if limit == _SINGLE_CHAR_STEPS[0][0]:
            issues.add(IssueKind.TRUNCATED)
            notes.append("Too many single-character words (> 30%) - truncation detected")
        else:
            notes.append("Many single-character words (> 15%)")

    avg_word_length, plain_words = _average_word_length(words)
    if plain_words > SHORT_WORD_MIN_TOKENS and avg_word_length < SHORT_WORD_AVG_LENGTH:
        score -= _SHORT_WORDS_DEDUCTION
        notes.append("Unusually short average word length")

    # 4) Encoding
    if "\ufffd" in raw or _CONTROL_CHARS.search(raw):
        score -= _ENCODING_DEDUCTION
        issues.add(IssueKind.ENCODING_CORRUPTED)
        notes.append("Replacement or control characters detected")
    elif _NON_ASCII_RUN.search(raw) or _REPEATED_CHAR_RUN.search(raw):
        score -= _SUSPICIOUS_RUN_DEDUCTION
        issues.add(IssueKind.ENCODING_CORRUPTED)
        notes.append("Suspicious character patterns detected")

    # 5) Structure
    if (
        char_count > STRUCTURE_MIN_CHARS
        and not _PARAGRAPH_BREAK.search(raw)
        and line_count <= STRUCTURE_MAX_LINES
    ):
        score -= _STRUCTURE_DEDUCTION
        issues.add(IssueKind.STRUCTURE_BROKEN)
        notes.append("No paragraph structure detected in substantial text")

    # 6) Word distribution
    variety, counted_words = _word_variety(words)
    if counted_words > WORD_VARIETY_MIN_WORDS:
        if variety > WORD_VARIETY_HIGH:
            score -= _WORD_VARIETY_DEDUCTION
            notes.append("Unusually high unique word ratio - possible gibberish")
        elif variety < WORD_VARIETY_LOW:
            score -= _WORD_VARIETY_DEDUCTION
            notes.append("Unusually low unique word ratio - possible encoding issue")

    # 7) Extraction artifacts
    if len(_WHITESPACE_RUN.findall(raw)) > WHITESPACE_ARTIFACT_MAX:
        score -= _ARTIFACT_DEDUCTION
        notes.append("Excessive whitespace detected")
    if len(_CAMEL_CASE_BREAK.findall(raw)) > CAMEL_CASE_ARTIFACT_MAX:
        score -= _ARTIFACT_DEDUCTION
        notes.append("Many camelCase anomalies")

    score = max(0, min(100, score))

    return PageQualityReport(
        page_number=page_number,
        score=score,
        issues=frozenset(issues),
        char_count=char_count,
        word_count=word_count,
        line_count=line_count,
        special_char_ratio=round(special_ratio, 3),
        single_char_ratio=round(single_ratio, 3),
        recommendation=_recommend(score, threshold),
        notes=notes,
    )


def analyze_document(page_texts: list[str], *, threshold: int = QUALITY_THRESHOLD) -> DocumentQualityReport:
    pages = [analyze_page(text, i + 1, threshold=threshold) for i, text in enumerate(page_texts)]
    total_pages = len(pages)

    problem_pages = [p.page_number for p in pages if p.needs_fallback]
    failed_pages = sum(1 for p in pages if p.score <= FAILED_BAND_MAX)
    poor_pages = sum(1 for p in pages if FAILED_BAND_MAX < p.score < threshold)
    successful_pages = total_pages - failed_pages - poor_pages

    overall = sum(p.score for p in pages) / total_pages if total_pages else 0.0

    if total_pages and len(problem_pages) / total_pages > FULL_OCR_PROBLEM_FRACTION:
        suggested = SuggestedMethod.FULL_OCR
    elif problem_pages:
        suggested = SuggestedMethod.HYBRID
    else:
        suggested = SuggestedMethod.BASELINE

    return DocumentQualityReport(
        pages=pages,
        total_pages=total_pages,
        overall_score=round(overall, 2),
        problem_page_numbers=problem_pages,
        suggested_method=suggested,
        successful_pages=successful_pages,
        poor_pages=poor_pages,
        failed_pages=failed_pages,
    )


def is_severe(page: PageQualityReport) -> bool:
    return bool(page.issues & SEVERE_ISSUES)


def severe_fraction(report: DocumentQualityReport) -> float:
    if not report.total_pages:
        return 0.0
    return sum(1 for p in report.pages if is_severe(p)) / report.total_pages


def quality_summary(report: DocumentQualityReport) -> str:
    """Human-readable multi-line summary for progress UIs and logs."""
    parts: list[str] = []

    if report.successful_pages == report.total_pages:
        parts.append(f"All {report.total_pages} pages extracted successfully")
    else:
        if report.successful_pages:
            parts.append(f"{report.successful_pages} pages extracted successfully")
        if report.poor_pages:
            parts.append(f"{report.poor_pages} pages with reduced quality")
        if report.failed_pages:
            parts.append(f"{report.failed_pages} pages failed extraction")

    parts.append(f"Overall quality: {round(report.overall_score)}/100")

    if report.problem_page_numbers:
        parts.append("Problematic pages: " + ", ".join(str(n) for n in report.problem_page_numbers))

    return "\n".join(parts)
