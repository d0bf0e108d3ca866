"""
Parser Factory - single entry point for file-type routing.

Detects the format from magic bytes (preferred), MIME type and extension, then
delegates to the matching extractor. PDF backends are an ordered strategy list:

1. Gemini (GEMINI_API_KEY configured)
2. Amazon Textract (TEXTRACT_* configured)
3. Text layer + OCR (always available)
"""

import re
from typing import List, Optional, Protocol, Tuple

import structlog

from app.schemas.billing import ExtractedDocument, ParserResult
from app.shared.core.constants import FileType, PdfExtractor
from app.shared.core.exceptions import ConfigurationError, ExtractionError, UnsupportedFileError
from app.modules.ingestion.domain.extractors.csv_extractor import CsvExtractor
from app.modules.ingestion.domain.extractors.gemini import GeminiExtractor
from app.modules.ingestion.domain.extractors.pdf_extractor import PdfTextExtractor
from app.modules.ingestion.domain.extractors.textract import TextractExtractor
from app.modules.ingestion.domain.extractors.xlsx_extractor import XlsxExtractor

logger = structlog.get_logger()

PDF_MAGIC = b"%PDF"
ZIP_MAGIC = b"PK"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MIME = "application/pdf"
CSV_MIMES = frozenset({"text/csv", "text/plain", "application/csv"})
SNIFF_BYTES = 1024
DELIMITER_CHARS = re.compile(r"[,;\t]")

NOT_CONFIGURED_MESSAGES = {
    PdfExtractor.TEXTRACT: (
        "Amazon Textract is not configured. Set TEXTRACT_ACCESS_KEY_ID, "
        "TEXTRACT_SECRET_ACCESS_KEY and TEXTRACT_REGION."
    ),
    PdfExtractor.GEMINI: "Gemini AI is not configured. Set GEMINI_API_KEY.",
}


class DocumentBackend(Protocol):
    def is_available(self) -> bool: ...

    async def process(self, content: bytes, file_name: str) -> ExtractedDocument: ...


def detect_file_type(content: bytes, file_name: str, mime_type: str = "") -> FileType:
    name = (file_name or "").lower()
    mime = (mime_type or "").lower()

    if content[:4] == PDF_MAGIC:
        return FileType.PDF
    if content[:2] == ZIP_MAGIC and (mime == XLSX_MIME or name.endswith(".xlsx")):
        return FileType.XLSX

    if mime == PDF_MIME or name.endswith(".pdf"):
        return FileType.PDF
    if mime == XLSX_MIME or name.endswith(".xlsx"):
        return FileType.XLSX
    if mime in CSV_MIMES or name.endswith(".csv"):
        return FileType.CSV

    preview = content[:SNIFF_BYTES].decode("utf-8", errors="ignore")
    if "%PDF" not in preview and DELIMITER_CHARS.search(preview):
        return FileType.CSV

    raise UnsupportedFileError(details={"file_name": file_name, "mime_type": mime_type})


class ParserFactory:
    def __init__(
        self,
        csv_extractor: Optional[CsvExtractor] = None,
        xlsx_extractor: Optional[XlsxExtractor] = None,
        pdf_extractor: Optional[PdfTextExtractor] = None,
        textract: Optional[TextractExtractor] = None,
        gemini: Optional[GeminiExtractor] = None,
    ):
        self.csv_extractor = csv_extractor or CsvExtractor()
        self.xlsx_extractor = xlsx_extractor or XlsxExtractor()
        self.pdf_extractor = pdf_extractor or PdfTextExtractor()
        self.textract = textract or TextractExtractor()
        self.gemini = gemini or GeminiExtractor()

    def detect_file_type(self, content: bytes, file_name: str, mime_type: str = "") -> FileType:
        return detect_file_type(content, file_name, mime_type)

    async def parse(
        self,
        content: bytes,
        file_name: str,
        mime_type: str = "",
        provider_hint: Optional[str] = None,
        extractor: PdfExtractor = PdfExtractor.AUTO,
    ) -> ParserResult:
        file_type = self.detect_file_type(content, file_name, mime_type)
        logger.debug("parser_routed", file_name=file_name, file_type=file_type.value)

        if file_type == FileType.CSV:
            return self._parse_tabular(self.csv_extractor, content, file_name, provider_hint, file_type)
        if file_type == FileType.XLSX:
            return self._parse_tabular(self.xlsx_extractor, content, file_name, provider_hint, file_type)
        return await self._parse_pdf(content, file_name, provider_hint, PdfExtractor(extractor))

    @staticmethod
    def _parse_tabular(extractor, content: bytes, file_name: str, provider_hint: Optional[str], file_type: FileType) -> ParserResult:
        extracted = extractor.extract(content, file_name)
        return ParserResult(
            line_items=extractor.normalize_rows(extracted.rows),
            provider_detected=provider_hint or extracted.provider_detected,
            file_type=file_type,
        )

    def pdf_backends(self) -> List[Tuple[PdfExtractor, DocumentBackend]]:
        """Structured backends in automatic-mode priority order."""
        return [
            (PdfExtractor.GEMINI, self.gemini),
            (PdfExtractor.TEXTRACT, self.textract),
        ]

    async def _parse_pdf(
        self,
        content: bytes,
        file_name: str,
        provider_hint: Optional[str],
        extractor: PdfExtractor,
    ) -> ParserResult:
        for name, backend in self.pdf_backends():
            if extractor not in (PdfExtractor.AUTO, name):
                continue
            if not backend.is_available():
                if extractor == name:
                    raise ConfigurationError(NOT_CONFIGURED_MESSAGES[name])
                continue

            logger.info("pdf_backend_selected", backend=name.value, explicit=extractor != PdfExtractor.AUTO)
            try:
                document = await backend.process(content, file_name)
            except ExtractionError as e:
                if extractor == name:
                    raise
                logger.warning("pdf_backend_failed", backend=name.value, file_name=file_name, error=e.message)
                continue
            return ParserResult(
                line_items=document.line_items,
                provider_detected=provider_hint or document.provider_detected,
                file_type=FileType.PDF,
                total_tax=document.total_tax,
                invoice_billing_period=document.invoice_billing_period,
            )

        logger.debug("pdf_text_fallback", file_name=file_name)
        pdf_text = self.pdf_extractor.extract(content, file_name)
        return ParserResult(
            line_items=self.pdf_extractor.normalize_text_to_line_items(pdf_text.text),
            provider_detected=provider_hint or pdf_text.provider_detected,
            file_type=FileType.PDF,
        )
