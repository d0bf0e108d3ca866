"""
Text-layer PDF extractor with OCR fallback.

Used when no structured backend (Gemini, Textract) is configured or succeeds. Each non-blank
line becomes a heuristic line item; the trailing amount on the line is its cost.
Extraction never returns empty, even for a page with no recognizable text.
"""

import io
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

import structlog
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from app.schemas.billing import NormalizedLineItem
from app.shared.core.constants import DEFAULT_CURRENCY
from app.shared.core.exceptions import DocumentReadError
from app.modules.ingestion.domain.extractors.ocr import OcrService, OCR_UNAVAILABLE_MESSAGE
from app.modules.ingestion.domain.provider_detection import ProviderDetector
from app.modules.ingestion.domain.value_parsing import parse_date

logger = structlog.get_logger()

DECIMAL_NUMBER = re.compile(r"\d+[.,]\d+")
COST_TOKEN = re.compile(r"[\d.,]+\s*(?:USD|BRL|EUR)?", re.I)
LINE_DATE = re.compile(r"\d{4}-\d{2}-\d{2}|\d{2}/\d{2}/\d{4}|\d{2}-\d{2}-\d{4}")
LINE_CURRENCY = re.compile(r"\b(USD|BRL|EUR)\b", re.I)
NON_NUMERIC = re.compile(r"[^\d.\-]")

_DATE = r"(\d{4}-\d{2}-\d{2}|\d{2}[/\-]\d{2}[/\-]\d{4})"
INVOICE_ID = re.compile(
    r"(?:invoice\s*#?\s*|invoice\s*id\s*:?\s*|bill[/\s]invoiceid\s*:?\s*)([A-Za-z0-9\-_]+)", re.I
)
BILLING_PERIOD = re.compile(rf"(?:billing\s*period\s*:?\s*|periodo\s*:?\s*){_DATE}\s*[-–to]+\s*{_DATE}", re.I)
PERIOD_START = re.compile(rf"(?:billing\s*period\s*start\s*:?\s*|usage\s*start\s*:?\s*){_DATE}", re.I)

FULL_TEXT_PRODUCT_NAME = "Full text extraction (no table structure detected)"
MAX_PRODUCT_NAME = 200
MAX_FULL_TEXT = 2000


@dataclass
class PdfText:
    text: str
    num_pages: int
    provider_detected: str


def _parse_line_number(token: str) -> Optional[float]:
    cleaned = NON_NUMERIC.sub("", token.replace(",", "."))
    match = re.match(r"^-?\d*\.?\d+", cleaned)
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def extract_invoice_fields(text: str) -> Tuple[Optional[str], Optional[datetime], Optional[datetime]]:
    """Invoice id and billing period from the document header text."""
    invoice_id = None
    start = end = None

    match = INVOICE_ID.search(text)
    if match:
        invoice_id = match.group(1).strip()

    period = BILLING_PERIOD.search(text)
    if period:
        start = parse_date(period.group(1).strip())
        end = parse_date(period.group(2).strip())

    if start is None:
        single = PERIOD_START.search(text)
        if single:
            start = parse_date(single.group(1).strip())

    return invoice_id, start, end


def normalize_text_to_line_items(text: str) -> List[NormalizedLineItem]:
    lines = [line.strip() for line in re.split(r"\r?\n", text or "")]
    items: List[NormalizedLineItem] = []

    for line in filter(None, lines):
        cost = None
        numbers = DECIMAL_NUMBER.findall(line)
        if numbers:
            cost = _parse_line_number(numbers[-1])
        if cost is None:
            tokens = COST_TOKEN.findall(line)
            if tokens:
                cost = _parse_line_number(tokens[-1])

        date_match = LINE_DATE.search(line)
        currency_match = LINE_CURRENCY.search(line)

        items.append(NormalizedLineItem(
            product_name=line[:MAX_PRODUCT_NAME],
            usage_start_date=parse_date(date_match.group(0)) if date_match else None,
            cost_before_tax=cost,
            currency_code=(currency_match.group(1) if currency_match else DEFAULT_CURRENCY).upper()[:3],
            raw_line={"line": line},
        ))

    # Never empty: scanned pages with no recognizable text still yield one record
    if not items:
        items.append(NormalizedLineItem(
            product_name=FULL_TEXT_PRODUCT_NAME,
            currency_code=DEFAULT_CURRENCY,
            raw_line={"text": (text or "").strip()[:MAX_FULL_TEXT]},
        ))

    invoice_id, start, end = extract_invoice_fields(text or "")
    first = items[0]
    if invoice_id:
        first.invoice_id = invoice_id
    if start:
        first.usage_start_date = start
    if end:
        first.usage_end_date = end

    return items


class PdfTextExtractor:
    def __init__(
        self,
        ocr_service: Optional[OcrService] = None,
        provider_detector: Optional[ProviderDetector] = None,
    ):
        self.ocr_service = ocr_service or OcrService()
        self.provider_detector = provider_detector or ProviderDetector()

    def extract(self, content: bytes, file_name: str) -> PdfText:
        text, num_pages = self._read_text_layer(content, file_name)

        if self.ocr_service.is_text_insufficient(text) and num_pages > 0:
            logger.info("pdf_text_insufficient_running_ocr", file_name=file_name, pages=num_pages)
            try:
                ocr_text = self.ocr_service.extract_text_from_pdf_pages(content, num_pages)
            except DocumentReadError:
                raise
            except Exception as e:
                logger.error("pdf_ocr_failed", file_name=file_name, error=str(e))
                raise DocumentReadError(OCR_UNAVAILABLE_MESSAGE) from e
            if ocr_text.strip():
                text = ocr_text

        provider = self.provider_detector.detect(file_name=file_name, content=text)

        return PdfText(text=text, num_pages=num_pages, provider_detected=provider)

    def normalize_text_to_line_items(self, text: str) -> List[NormalizedLineItem]:
        return normalize_text_to_line_items(text)

    @staticmethod
    def _read_text_layer(content: bytes, file_name: str) -> Tuple[str, int]:
        try:
            reader = PdfReader(io.BytesIO(content))
            if reader.is_encrypted and not reader.decrypt(""):
                raise DocumentReadError(details={"file_name": file_name, "reason": "encrypted"})
            pages = [page.extract_text() or "" for page in reader.pages]
        except DocumentReadError:
            raise
        except (PyPdfError, ValueError, KeyError, OSError) as e:
            logger.error("pdf_read_failed", file_name=file_name, error=str(e))
            raise DocumentReadError(details={"file_name": file_name}) from e
        return "\n".join(pages), len(pages)
