import pytest

from conftest import GIBBERISH_PAGE, GOOD_PAGE
from pagerescue.constants.statuses import SuggestedMethod
from pagerescue.pdf.quality import analyze_document, analyze_page, is_severe, quality_summary, severe_fraction
from pagerescue.pdf.types import QUALITY_THRESHOLD, IssueKind, Recommendation


def test_empty_page_scores_zero_and_needs_fallback():
    report = analyze_page("", 1)

    assert report.score == 0
    assert report.issues == frozenset({IssueKind.EMPTY})
    assert report.recommendation is Recommendation.USE_FALLBACK
    assert report.band == "failed"


def test_whitespace_only_page_is_empty():
    report = analyze_page("  \n\t \n  ", 4)
    assert report.issues == frozenset({IssueKind.EMPTY})
    assert report.page_number == 4


def test_clean_prose_is_accepted():
    report = analyze_page(GOOD_PAGE, 1)

    assert report.score == 100
    assert report.issues == frozenset()
    assert report.recommendation is Recommendation.USE_BASELINE
    assert report.band == "acceptable"


def test_gibberish_page_is_severe():
    report = analyze_page(GIBBERISH_PAGE, 2)

    assert IssueKind.GIBBERISH in report.issues
    assert report.needs_fallback
    assert is_severe(report)
    assert report.special_char_ratio > 0.3


def test_single_letter_runs_flag_truncation():
    text = "T h e r e p o r t w a s f i l e d o n t i m e b y t h e t e a m " * 4
    report = analyze_page(text, 1)

    assert IssueKind.TRUNCATED in report.issues
    assert report.needs_fallback


def test_replacement_characters_flag_encoding():
    report = analyze_page(GOOD_PAGE.replace("revenue", "rev\ufffdnue"), 1)

    assert IssueKind.ENCODING_CORRUPTED in report.issues
    assert report.score < QUALITY_THRESHOLD


def test_control_characters_flag_encoding():
    report = analyze_page(GOOD_PAGE + "\x07\x1b", 1)
    assert IssueKind.ENCODING_CORRUPTED in report.issues


def test_long_single_line_flags_broken_structure():
    text = "quarterly revenue increased steadily " * 60
    assert len(text) > 2000

    report = analyze_page(text, 1)

    assert IssueKind.STRUCTURE_BROKEN in report.issues
    assert report.needs_fallback


def test_short_text_is_low_density():
    report = analyze_page("Revenue summary for March", 1)

    assert IssueKind.LOW_DENSITY in report.issues
    assert report.needs_fallback


def test_moderately_short_text_is_only_penalized():
    # 50-99 meaningful characters: a minor deduction that alone keeps the page.
    text = "Quarterly revenue grew across every region while costs stayed flat overall."
    report = analyze_page(text, 1)

    assert IssueKind.LOW_DENSITY in report.issues
    assert report.score == 75
    assert not report.needs_fallback


@pytest.mark.parametrize("extra", [1, 2, 3, 5, 8, 13, 21, 34])
def test_more_gibberish_never_scores_higher(extra):
    fewer = GOOD_PAGE + " ".join(["@#$%"] * extra)
    more = GOOD_PAGE + " ".join(["@#$%"] * (extra + 1))

    assert analyze_page(more, 1).score <= analyze_page(fewer, 1).score


@pytest.mark.parametrize("extra", [1, 5, 10, 20, 30, 40, 60])
def test_more_single_letters_never_score_higher(extra):
    fewer = GOOD_PAGE + " x" * extra
    more = GOOD_PAGE + " x" * (extra + 1)

    assert analyze_page(more, 1).score <= analyze_page(fewer, 1).score


@pytest.mark.parametrize(
    "text",
    ["", "ok", GOOD_PAGE, GIBBERISH_PAGE, "a b c d e f g", GOOD_PAGE * 30, "Revenue summary for March"],
)
@pytest.mark.parametrize("threshold", [QUALITY_THRESHOLD, 40, 90])
def test_recommendation_matches_threshold(text, threshold):
    report = analyze_page(text, 1, threshold=threshold)
    assert (report.recommendation is Recommendation.USE_FALLBACK) == (report.score < threshold)


def test_document_suggests_hybrid_for_some_problem_pages():
    report = analyze_document([GOOD_PAGE, "", GOOD_PAGE, GOOD_PAGE])

    assert report.total_pages == 4
    assert report.problem_page_numbers == [2]
    assert report.suggested_method is SuggestedMethod.HYBRID
    assert report.failed_pages == 1
    assert report.successful_pages == 3
    assert report.overall_score == 75.0


def test_document_suggests_full_ocr_when_most_pages_fail():
    report = analyze_document(["", GIBBERISH_PAGE, GOOD_PAGE])

    assert report.suggested_method is SuggestedMethod.FULL_OCR
    assert severe_fraction(report) == pytest.approx(2 / 3)


def test_clean_document_stays_baseline():
    report = analyze_document([GOOD_PAGE, GOOD_PAGE])

    assert report.suggested_method is SuggestedMethod.BASELINE
    assert quality_summary(report).startswith("All 2 pages extracted successfully")


def test_empty_document():
    report = analyze_document([])

    assert report.total_pages == 0
    assert report.overall_score == 0.0
    assert report.suggested_method is SuggestedMethod.BASELINE


def test_quality_summary_lists_problem_pages():
    summary = quality_summary(analyze_document([GOOD_PAGE, "", GOOD_PAGE]))

    assert "2 pages extracted successfully" in summary
    assert "1 pages failed extraction" in summary
    assert "Problematic pages: 2" in summary


MIXED_PAGES = [
    "information " * 12 + "@" * 46 + " " + " ".join("abcdefghijklmnopqr"),
    "T h e r e p o r t " * 3 + "information " * 12 + "@#$% " * 5,
    GOOD_PAGE + " ".join(["@#$%"] * 20) + " x" * 12,
    "quarterly revenue " * 10 + "~~^^ " * 8 + "q r s t " * 6,
]


@pytest.mark.parametrize("text", MIXED_PAGES)
def test_added_single_letters_never_hide_gibberish(text):
    assert analyze_page(text + " a b c", 1).score <= analyze_page(text, 1).score


@pytest.mark.parametrize("text", MIXED_PAGES)
def test_added_gibberish_never_hides_truncation(text):
    assert analyze_page(text + " @#$% ~^&*", 1).score <= analyze_page(text, 1).score


def test_single_letters_do_not_dilute_special_ratio():
    base = "information " * 12 + "@" * 46
    padded = base + " a b c d e f"

    assert analyze_page(padded, 1).special_char_ratio == analyze_page(base, 1).special_char_ratio


def test_few_long_lines_without_blank_line_flag_broken_structure():
    line = "quarterly revenue increased steadily " * 20
    text = "\n".join([line] * 3)
    assert len(text) > 2000

    report = analyze_page(text, 1)

    assert IssueKind.STRUCTURE_BROKEN in report.issues


def test_many_lines_count_as_structure():
    line = "quarterly revenue increased steadily " * 20
    report = analyze_page("\n".join([line] * 6), 1)

    assert IssueKind.STRUCTURE_BROKEN not in report.issues


def test_paragraph_break_counts_as_structure():
    line = "quarterly revenue increased steadily " * 20
    report = analyze_page(line + "\n\n" + line + "\n" + line, 1)

    assert IssueKind.STRUCTURE_BROKEN not in report.issues


def test_repeated_character_run_flags_encoding():
    report = analyze_page(GOOD_PAGE + "\nTotal xxxxxxxxxxxxxxxx", 1)

    assert IssueKind.ENCODING_CORRUPTED in report.issues
    assert "Suspicious character patterns detected" in report.notes
    assert not report.needs_fallback


def test_table_of_contents_leaders_are_not_corruption():
    report = analyze_page(GOOD_PAGE + "\nIntroduction .................... 3\nMethods ---------------- 7", 1)
    assert IssueKind.ENCODING_CORRUPTED not in report.issues


def test_long_non_ascii_run_flags_encoding():
    report = analyze_page(GOOD_PAGE + "\n" + "\u00e9" * 25, 1)
    assert IssueKind.ENCODING_CORRUPTED in report.issues


def test_replacement_character_outweighs_suspicious_runs():
    runs_only = analyze_page(GOOD_PAGE + "\nxxxxxxxxxxxxxxxx", 1)
    both = analyze_page(GOOD_PAGE + "\nxxxxxxxxxxxxxxxx \ufffd", 1)

    assert both.score < runs_only.score


def test_short_average_word_length_is_penalized():
    report = analyze_page("to be or no go up at it on by so we do " * 3, 1)
    assert "Unusually short average word length" in report.notes


def test_low_word_variety_is_penalized():
    report = analyze_page("revenue report " * 80, 1)
    assert "Unusually low unique word ratio - possible encoding issue" in report.notes


def test_high_word_variety_is_penalized():
    report = analyze_page(" ".join(f"term{i}" for i in range(120)), 1)
    assert "Unusually high unique word ratio - possible gibberish" in report.notes


def test_short_pages_skip_word_variety():
    assert not any("unique word ratio" in n for n in analyze_page(GOOD_PAGE, 1).notes)


def test_whitespace_and_camel_case_artifacts_are_minor():
    text = GOOD_PAGE + "\n".join(["col     col"] * 6) + "\n" + "theQuick " * 11

    report = analyze_page(text, 1)

    assert "Excessive whitespace detected" in report.notes
    assert "Many camelCase anomalies" in report.notes
    assert report.issues == frozenset()
