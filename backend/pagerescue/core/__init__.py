# pagerescue/core/__init__.py
from pagerescue.core.errors import AppError, ExtractionCancelledError, LedgerError
from pagerescue.core.error_codes import ErrorCode
from pagerescue.core.error_reasons import ErrorReason

__all__ = ["AppError", "ErrorCode", "ErrorReason", "LedgerError", "ExtractionCancelledError"]
