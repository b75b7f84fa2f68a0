# pagerescue/core/error_codes.py
from enum import Enum

class ErrorCode(str, Enum):
    UNKNOWN = "UNKNOWN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFIG_ERROR = "CONFIG_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # PDF
    PDF_INVALID = "PDF_INVALID"

    # Quota / ledger
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    TOO_MANY_PAGES = "TOO_MANY_PAGES"
    LEDGER_ERROR = "LEDGER_ERROR"

    # Extraction lifecycle
    CANCELLED = "CANCELLED"
