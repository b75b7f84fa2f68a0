"""pagerescue/pdf/extract.py

Deterministic PDF -> per-page baseline text.

Preferred strategy:
1) PyMuPDF (fitz)
2) pdfplumber
3) pypdf (very basic)

Page texts stay separate; the quality gate scores each page on its own.
"""

import io
import logging

from pagerescue.core import AppError, ErrorCode, ErrorReason
from pagerescue.pdf.types import BaselinePages

logger = logging.getLogger("pagerescue.pdf.extract")


def _pages(texts: list[str], strategy: str) -> BaselinePages:
    return BaselinePages(
        page_texts=texts,
        page_count=len(texts),
        pages_with_text=sum(1 for t in texts if t.strip()),
        strategy=strategy,
    )


def _with_pymupdf(pdf_bytes: bytes) -> BaselinePages:
    import fitz  # type: ignore

    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return _pages([doc.load_page(i).get_text("text") or "" for i in range(doc.page_count)], "pymupdf")


def _with_pdfplumber(pdf_bytes: bytes) -> BaselinePages:
    import pdfplumber  # type: ignore

    with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
        return _pages([p.extract_text() or "" for p in pdf.pages], "pdfplumber")


def _with_pypdf(pdf_bytes: bytes) -> BaselinePages:
    from pypdf import PdfReader  # type: ignore

    reader = PdfReader(io.BytesIO(pdf_bytes))
    return _pages([p.extract_text() or "" for p in reader.pages], "pypdf")


_BACKENDS = [
    ("pymupdf", _with_pymupdf),
    ("pdfplumber", _with_pdfplumber),
    ("pypdf", _with_pypdf),
]


def extract_page_texts(pdf_bytes: bytes) -> BaselinePages:
    if not pdf_bytes:
        raise AppError(
            code=ErrorCode.VALIDATION_ERROR,
            reason=ErrorReason.INVALID_INPUT,
            message="Empty PDF bytes",
        )

    last_error: Exception | None = None
    for name, backend in _BACKENDS:
        try:
            return backend(pdf_bytes)
        except Exception as e:
            last_error = e
            logger.debug("pdf.backend_failed", extra={"backend": name, "error_type": type(e).__name__, "error": str(e)})

    raise AppError(
        code=ErrorCode.PDF_INVALID,
        reason=ErrorReason.PDF_INVALID,
        message="No PDF extraction backend could read this document. Install PyMuPDF (fitz) or pdfplumber.",
        details={"error": str(last_error)},
    ) from last_error
