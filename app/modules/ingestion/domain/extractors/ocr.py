"""
OCR fallback for scanned PDFs: pdf2image renders each page (poppler),
pytesseract recognizes it (tesseract).
"""

from typing import List, Optional

import pytesseract
import structlog
from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError

from app.shared.core.config import get_settings
from app.shared.core.exceptions import DocumentReadError

logger = structlog.get_logger()

OCR_UNAVAILABLE_MESSAGE = (
    "Document could not be read. Verify the file is not corrupted or password-protected. "
    "Scanned PDFs require poppler and tesseract to be installed for OCR."
)


class OcrService:
    def __init__(self, dpi: Optional[int] = None, language: Optional[str] = None, text_threshold: Optional[int] = None):
        settings = get_settings()
        self.dpi = dpi or settings.OCR_DPI
        self.language = language or settings.OCR_LANGUAGE
        self.text_threshold = settings.OCR_TEXT_THRESHOLD if text_threshold is None else text_threshold

    def is_text_insufficient(self, text: str) -> bool:
        """True when the text layer is too thin to be a real text PDF (likely scanned)."""
        return len((text or "").strip()) < self.text_threshold

    def extract_text_from_image(self, image) -> str:
        return (pytesseract.image_to_string(image, lang=self.language) or "").strip()

    def extract_text_from_pdf_pages(self, content: bytes, num_pages: int) -> str:
        """
        Render and recognize pages one at a time. Rendering stops at the first page
        that fails; a missing renderer or OCR engine raises DocumentReadError.
        """
        if num_pages < 1:
            return ""

        parts: List[str] = []
        for page in range(1, num_pages + 1):
            try:
                images = convert_from_bytes(content, dpi=self.dpi, first_page=page, last_page=page)
            except PDFInfoNotInstalledError as e:
                logger.error("ocr_renderer_unavailable", error=str(e))
                raise DocumentReadError(OCR_UNAVAILABLE_MESSAGE) from e
            except (PDFPageCountError, PDFSyntaxError) as e:
                logger.warning("ocr_page_render_failed", page=page, error=str(e))
                break

            for image in images:
                try:
                    text = self.extract_text_from_image(image)
                except pytesseract.TesseractNotFoundError as e:
                    logger.error("ocr_engine_unavailable", error=str(e))
                    raise DocumentReadError(OCR_UNAVAILABLE_MESSAGE) from e
                if text:
                    parts.append(text)

        logger.info("ocr_completed", pages=num_pages, recognized_pages=len(parts))
        return "\n\n".join(parts)
