"""
errors.py
- Purpose: AppError used across services/repos for consistent errors.
- Pattern: raise AppError(...) in service/repo; callers inspect code/reason.
"""

from dataclasses import dataclass
from typing import Any

from pagerescue.core.error_codes import ErrorCode
from pagerescue.core.error_reasons import ErrorReason


@dataclass
class AppError(Exception):
    code: ErrorCode
    reason: str
    details: dict[str, Any] | None = None
    message: str | None = None  # Optional human-readable message

    def __str__(self) -> str:
        return self.message if self.message else str(self.reason)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "error": {
                "code": self.code,
                "reason": self.reason,
                "message": self.message if self.message else self.reason,
            }
        }
        if self.details:
            payload["error"]["details"] = self.details
        return payload


class LedgerError(AppError):
    """Persistence failure in the usage ledger. Always propagated: billing depends on it."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.LEDGER_ERROR,
            reason=str(ErrorReason.LEDGER_UNAVAILABLE.value),
            details=details,
            message=message,
        )


class ExtractionCancelledError(AppError):
    def __init__(self, message: str = "Extraction cancelled by caller", *, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.CANCELLED,
            reason=str(ErrorReason.EXTRACTION_CANCELLED.value),
            details=details,
            message=message,
        )


# Convenience constructors (optional but makes services cleaner)
def bad_request(reason: str = ErrorReason.INVALID_INPUT.value, *, message: str | None = None, details: dict | None = None) -> AppError:
    return AppError(code=ErrorCode.VALIDATION_ERROR, reason=str(reason), message=message, details=details)


def not_found(reason: str = ErrorReason.RESOURCE_NOT_FOUND.value, *, details: dict | None = None) -> AppError:
    return AppError(code=ErrorCode.NOT_FOUND, reason=str(reason), details=details)
