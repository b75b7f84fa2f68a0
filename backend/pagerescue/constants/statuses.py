"""
statuses.py
- Purpose: Central source of truth for extraction outcome labels.
- Design: Keep caller-facing values stable and explicit; they get persisted next to documents.
"""

from enum import Enum


class ExtractionMethod(str, Enum):
    BASELINE = "baseline"
    HYBRID = "hybrid"
    FALLBACK = "fallback"
    # Stamped by the external full-document OCR tier; never produced here.
    FULL_OCR = "full_ocr"


class SuggestedMethod(str, Enum):
    BASELINE = "baseline"
    HYBRID = "hybrid"
    FULL_OCR = "full_ocr"


class OcrStatus(str, Enum):
    NOT_NEEDED = "not_needed"
    PENDING_CONSENT = "pending_consent"
