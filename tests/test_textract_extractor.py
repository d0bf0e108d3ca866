from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from app.modules.ingestion.domain.extractors.textract import (
    TextractExtractor,
    parse_expense_response,
    parse_line_item_fields,
    parse_summary_fields,
)
from app.modules.ingestion.domain.provider_detection import ProviderDetector
from app.shared.core.exceptions import ConfigurationError, ExtractionError


def _field(type_text, value, label=None, confidence=None):
    field = {"Type": {"Text": type_text}, "ValueDetection": {"Text": value}}
    if confidence is not None:
        field["ValueDetection"]["Confidence"] = confidence
    if label is not None:
        field["LabelDetection"] = {"Text": label}
    return field


INVOICE_RESPONSE = {
    "ExpenseDocuments": [{
        "SummaryFields": [
            _field("INVOICE_RECEIPT_ID", "INV-42", confidence=99.0),
            _field("VENDOR_NAME", "Amazon Web Services, Inc.", confidence=95.0),
            _field("TAX", "USD 12,50", confidence=90.0),
            _field("OTHER", "Dec 1, 2025 - Dec 31, 2025", label="Billing Period", confidence=88.0),
            _field("OTHER", "123456789012", label="Account ID", confidence=20.0),
        ],
        "LineItemGroups": [{
            "LineItems": [
                {"LineItemExpenseFields": [
                    _field("ITEM", "Amazon Elastic Compute Cloud"),
                    _field("PRICE", "USD 100,00"),
                    _field("OTHER", "us-east-1", label="Region"),
                    _field("EXPENSE_ROW", "Amazon Elastic Compute Cloud USD 100,00"),
                ]},
                {"LineItemExpenseFields": [
                    _field("OTHER", "thanks", label="Note"),
                ]},
            ],
        }],
    }],
}


class TestSummaryFields:
    def test_typed_and_labelled_fields(self):
        summary = parse_summary_fields(INVOICE_RESPONSE["ExpenseDocuments"][0]["SummaryFields"])
        assert summary["invoice_id"] == "INV-42"
        assert summary["vendor_name"] == "Amazon Web Services, Inc."
        assert summary["tax_amount"] == "USD 12,50"
        assert summary["billing_period_start"] == "Dec 1, 2025 - Dec 31, 2025"

    def test_low_confidence_dropped(self):
        summary = parse_summary_fields(INVOICE_RESPONSE["ExpenseDocuments"][0]["SummaryFields"])
        assert "account_id" not in summary

    def test_first_typed_value_wins(self):
        summary = parse_summary_fields([_field("TOTAL", "10"), _field("TOTAL", "20")])
        assert summary["total"] == "10"


def test_line_item_fields_fall_back_to_column_vocabulary():
    fields = parse_line_item_fields([
        _field("ITEM", "Storage"),
        _field("OTHER", "5000", label="Quantidade de uso"),
        _field("EXPENSE_ROW", "Storage 5000"),
    ])
    assert fields == {"description": "Storage", "quantity": "5000"}


def test_parse_expense_response():
    doc = parse_expense_response(INVOICE_RESPONSE, ProviderDetector(), "invoice.pdf")

    assert len(doc.line_items) == 1
    item = doc.line_items[0]
    assert item.product_name == "Amazon Elastic Compute Cloud"
    assert item.cost_before_tax == 100.0
    assert item.region_name == "us-east-1"
    assert item.invoice_id == "INV-42"
    assert item.usage_start_date == datetime(2025, 12, 1)
    assert item.raw_line == {"expenseFields": {
        "description": "Amazon Elastic Compute Cloud",
        "amount": "USD 100,00",
        "region": "us-east-1",
    }}

    assert doc.provider_detected == "aws"
    assert doc.total_tax == 12.5
    assert doc.invoice_billing_period.start == datetime(2025, 12, 1)
    assert doc.invoice_billing_period.end == datetime(2025, 12, 31)


def test_receipt_fallback_when_no_line_items():
    response = {"ExpenseDocuments": [{
        "SummaryFields": [
            _field("INVOICE_RECEIPT_ID", "E0600ABC"),
            _field("VENDOR_NAME", "Microsoft Azure"),
            _field("TOTAL", "USD 50,00"),
        ],
    }]}
    doc = parse_expense_response(response, ProviderDetector(), "fatura.pdf")

    assert len(doc.line_items) == 1
    assert doc.line_items[0].product_name == "Microsoft Azure"
    assert doc.line_items[0].cost_before_tax == 50.0
    assert doc.line_items[0].invoice_id == "E0600ABC"
    assert doc.provider_detected == "azure"


def test_empty_response():
    doc = parse_expense_response({}, ProviderDetector(), "empty.pdf")
    assert doc.line_items == []
    assert doc.total_tax is None
    assert doc.provider_detected == "unknown"


def _configured(extractor):
    extractor.settings = MagicMock(
        textract_configured=True,
        TEXTRACT_REGION="us-east-1",
        TEXTRACT_ACCESS_KEY_ID="AKIATEST",
        TEXTRACT_SECRET_ACCESS_KEY="secret",
    )
    return extractor


@pytest.mark.asyncio
async def test_not_configured():
    with pytest.raises(ConfigurationError):
        await TextractExtractor().process(b"%PDF-1.4", "invoice.pdf")


@pytest.mark.asyncio
async def test_process_inline_bytes():
    mock_client = AsyncMock()
    mock_client.analyze_expense.return_value = INVOICE_RESPONSE

    with patch("aioboto3.Session") as MockSession:
        MockSession.return_value.client.return_value.__aenter__.return_value = mock_client
        extractor = _configured(TextractExtractor())
        doc = await extractor.process(b"%PDF-1.4", "invoice.pdf")

    mock_client.analyze_expense.assert_awaited_once_with(Document={"Bytes": b"%PDF-1.4"})
    assert doc.line_items[0].product_name == "Amazon Elastic Compute Cloud"


@pytest.mark.asyncio
async def test_process_from_s3():
    mock_client = AsyncMock()
    mock_client.analyze_expense.return_value = {"ExpenseDocuments": []}

    with patch("aioboto3.Session") as MockSession:
        MockSession.return_value.client.return_value.__aenter__.return_value = mock_client
        extractor = _configured(TextractExtractor())
        await extractor.process_from_s3("invoices", "2025/01/aws.pdf")

    mock_client.analyze_expense.assert_awaited_once_with(
        Document={"S3Object": {"Bucket": "invoices", "Name": "2025/01/aws.pdf"}}
    )


@pytest.mark.asyncio
async def test_client_error_is_sanitized():
    mock_client = AsyncMock()
    mock_client.analyze_expense.side_effect = ClientError(
        {"Error": {"Code": "AccessDeniedException", "Message": "User is not authorized"}},
        "AnalyzeExpense",
    )

    with patch("aioboto3.Session") as MockSession:
        MockSession.return_value.client.return_value.__aenter__.return_value = mock_client
        extractor = _configured(TextractExtractor())
        with pytest.raises(ExtractionError) as exc:
            await extractor.process(b"%PDF-1.4", "invoice.pdf")

    assert exc.value.message.startswith("Permission denied")
