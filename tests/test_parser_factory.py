from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.modules.ingestion.domain.extractors.pdf_extractor import PdfText, normalize_text_to_line_items
from app.modules.ingestion.domain.parser_factory import ParserFactory, detect_file_type
from app.schemas.billing import BillingPeriod, ExtractedDocument, NormalizedLineItem
from app.shared.core.constants import FileType, PdfExtractor
from app.shared.core.exceptions import ConfigurationError, ExtractionError, UnsupportedFileError


def _backend(available: bool, provider: str = "aws"):
    backend = MagicMock()
    backend.is_available.return_value = available
    backend.process = AsyncMock(return_value=ExtractedDocument(
        line_items=[NormalizedLineItem(product_name="Amazon Elastic Compute Cloud", cost_before_tax=100.0)],
        provider_detected=provider,
        total_tax=12.5,
        invoice_billing_period=BillingPeriod(start=datetime(2025, 12, 1), end=datetime(2025, 12, 31)),
    ))
    return backend


def _text_fallback(text: str = "Compute Engine 10.50 USD"):
    pdf_extractor = MagicMock()
    pdf_extractor.extract.return_value = PdfText(text=text, num_pages=1, provider_detected="gcp")
    pdf_extractor.normalize_text_to_line_items.side_effect = normalize_text_to_line_items
    return pdf_extractor


class TestDetectFileType:
    def test_pdf_magic_wins_over_name(self):
        assert detect_file_type(b"%PDF-1.7 ...", "upload.bin") == FileType.PDF

    def test_zip_with_xlsx_name(self):
        assert detect_file_type(b"PK\x03\x04....", "report.xlsx") == FileType.XLSX

    def test_extension_and_mime(self):
        assert detect_file_type(b"a,b\n1,2", "export.csv") == FileType.CSV
        assert detect_file_type(b"a,b\n1,2", "export", "text/csv") == FileType.CSV

    def test_csv_sniffed_from_content(self):
        assert detect_file_type(b"service;cost\nEC2;10", "export") == FileType.CSV

    def test_unsupported(self):
        with pytest.raises(UnsupportedFileError):
            detect_file_type(b"\x00\x01\x02\x03", "blob.bin", "application/octet-stream")


@pytest.mark.asyncio
async def test_csv_routing_and_provider_hint(aws_cur_csv):
    factory = ParserFactory(textract=_backend(False), gemini=_backend(False))

    result = await factory.parse(aws_cur_csv, "cur.csv")
    assert result.file_type == FileType.CSV
    assert result.provider_detected == "aws"
    assert len(result.line_items) == 3

    hinted = await factory.parse(aws_cur_csv, "cur.csv", provider_hint="gcp")
    assert hinted.provider_detected == "gcp"


@pytest.mark.asyncio
async def test_auto_prefers_gemini():
    gemini, textract = _backend(True, "azure"), _backend(True)
    factory = ParserFactory(textract=textract, gemini=gemini)

    result = await factory.parse(b"%PDF-1.4", "invoice.pdf")

    gemini.process.assert_awaited_once()
    textract.process.assert_not_called()
    assert result.provider_detected == "azure"
    assert result.total_tax == 12.5
    assert result.invoice_billing_period.end == datetime(2025, 12, 31)


@pytest.mark.asyncio
async def test_auto_skips_unconfigured_backend():
    gemini, textract = _backend(False), _backend(True)
    factory = ParserFactory(textract=textract, gemini=gemini)

    result = await factory.parse(b"%PDF-1.4", "invoice.pdf")

    gemini.process.assert_not_called()
    textract.process.assert_awaited_once_with(b"%PDF-1.4", "invoice.pdf")
    assert result.line_items[0].cost_before_tax == 100.0


@pytest.mark.asyncio
async def test_explicit_backend_not_configured():
    factory = ParserFactory(textract=_backend(False), gemini=_backend(True))
    with pytest.raises(ConfigurationError):
        await factory.parse(b"%PDF-1.4", "invoice.pdf", extractor=PdfExtractor.TEXTRACT)


@pytest.mark.asyncio
async def test_explicit_backend_skips_others():
    gemini, textract = _backend(True), _backend(True)
    factory = ParserFactory(textract=textract, gemini=gemini)

    await factory.parse(b"%PDF-1.4", "invoice.pdf", extractor=PdfExtractor.TEXTRACT)

    gemini.process.assert_not_called()
    textract.process.assert_awaited_once()


@pytest.mark.asyncio
async def test_text_fallback_when_no_backend_configured():
    pdf_extractor = _text_fallback()
    factory = ParserFactory(pdf_extractor=pdf_extractor, textract=_backend(False), gemini=_backend(False))

    result = await factory.parse(b"%PDF-1.4", "invoice.pdf")

    assert result.file_type == FileType.PDF
    assert result.provider_detected == "gcp"
    assert result.total_tax is None
    assert len(result.line_items) == 1
    assert result.line_items[0].cost_before_tax == 10.5


@pytest.mark.asyncio
async def test_failing_backend_hands_over_to_text_layer():
    gemini = _backend(True)
    gemini.process = AsyncMock(side_effect=ExtractionError("gemini down"))
    pdf_extractor = _text_fallback("Compute 10.00")
    factory = ParserFactory(pdf_extractor=pdf_extractor, textract=_backend(False), gemini=gemini)

    result = await factory.parse(b"%PDF-1.4", "invoice.pdf")

    gemini.process.assert_awaited_once()
    pdf_extractor.extract.assert_called_once_with(b"%PDF-1.4", "invoice.pdf")
    assert len(result.line_items) == 1
    assert result.line_items[0].cost_before_tax == 10.0


@pytest.mark.asyncio
async def test_failing_gemini_hands_over_to_textract():
    gemini, textract = _backend(True), _backend(True, "aws")
    gemini.process = AsyncMock(side_effect=ExtractionError("gemini down"))
    factory = ParserFactory(textract=textract, gemini=gemini)

    result = await factory.parse(b"%PDF-1.4", "invoice.pdf")

    textract.process.assert_awaited_once()
    assert result.provider_detected == "aws"
    assert result.line_items[0].cost_before_tax == 100.0


@pytest.mark.asyncio
async def test_explicit_backend_failure_is_raised():
    gemini = _backend(True)
    gemini.process = AsyncMock(side_effect=ExtractionError("gemini down"))
    pdf_extractor = _text_fallback()
    factory = ParserFactory(pdf_extractor=pdf_extractor, textract=_backend(True), gemini=gemini)

    with pytest.raises(ExtractionError):
        await factory.parse(b"%PDF-1.4", "invoice.pdf", extractor=PdfExtractor.GEMINI)
    pdf_extractor.extract.assert_not_called()
