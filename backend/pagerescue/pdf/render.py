"""pagerescue/pdf/render.py

Renders single PDF pages to PNG for the vision fallback.
Only problem pages are ever rendered.
"""

import asyncio

from pagerescue.core import AppError, ErrorCode, ErrorReason
from pagerescue.core.config import settings
from pagerescue.vision.types import PageImage


def render_page_png(pdf_bytes: bytes, page_number: int, *, dpi: int | None = None, max_width: int | None = None) -> bytes:
    import fitz  # type: ignore

    dpi = dpi or settings.PDF_RENDER_DPI
    max_width = max_width or settings.PDF_RENDER_MAX_WIDTH

    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        if page_number < 1 or page_number > doc.page_count:
            raise AppError(
                code=ErrorCode.VALIDATION_ERROR,
                reason=ErrorReason.INVALID_INPUT,
                message=f"Page {page_number} out of range (1-{doc.page_count})",
            )
        page = doc.load_page(page_number - 1)
        zoom = dpi / 72.0
        width_at_zoom = page.rect.width * zoom
        if max_width and width_at_zoom > max_width:
            zoom = max_width / page.rect.width
        pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom))
        return pix.tobytes("png")


class PdfPageImageProvider:
    """Page image provider backed by PyMuPDF. Rendering runs off the event loop."""

    def __init__(self, pdf_bytes: bytes, *, dpi: int | None = None, max_width: int | None = None):
        self.pdf_bytes = pdf_bytes
        self.dpi = dpi
        self.max_width = max_width

    async def get_page_image(self, page_number: int) -> PageImage:
        data = await asyncio.to_thread(
            render_page_png, self.pdf_bytes, page_number, dpi=self.dpi, max_width=self.max_width
        )
        return PageImage(page_number=page_number, data=data, mime_type="image/png")
