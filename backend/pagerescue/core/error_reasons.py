"""
error_reasons.py
- Purpose: Human-friendly "reason" strings.
- Keep these stable; they may be surfaced in UI next to a partially rescued document.
"""

from enum import Enum


class ErrorReason(str, Enum):
    UNKNOWN = "Unknown error"

    INVALID_INPUT = "Invalid input"
    RESOURCE_NOT_FOUND = "Resource not found"

    PDF_INVALID = "Invalid PDF"
    MISSING_DEPENDENCY = "Missing dependency"
    INTERNAL_ERROR = "Internal server error"

    ACCOUNT_NOT_FOUND = "Account not found"
    QUOTA_EXCEEDED = "Monthly vision extraction limit exceeded"
    INSUFFICIENT_CREDITS = "Insufficient credits"
    TOO_MANY_PAGES = "Too many pages in a single request"
    LEDGER_UNAVAILABLE = "Usage ledger unavailable"

    FALLBACK_DISABLED = "Vision fallback not enabled"
    EXTRACTION_CANCELLED = "Extraction cancelled"
