"""
Amazon Textract AnalyzeExpense Extractor

Traversal: ExpenseDocuments -> SummaryFields + LineItemGroups -> LineItems
-> LineItemExpenseFields. Typed fields are mapped directly; OTHER fields fall
back to label matching against the EN/PT-BR vocabularies.
"""

from typing import Any, Dict, List, Optional

import aioboto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from app.schemas.billing import BillingPeriod, ExtractedDocument, NormalizedLineItem
from app.shared.core.config import get_settings
from app.shared.core.constants import DEFAULT_CURRENCY
from app.shared.core.exceptions import ConfigurationError, ExtractionError
from app.modules.ingestion.domain.extractors.invoice_fields import (
    LINE_ITEM_COLUMN_MAP,
    SUMMARY_FIELD_MAP,
    match_label,
    receipt_fallback_item,
)
from app.modules.ingestion.domain.provider_detection import ProviderDetector
from app.modules.ingestion.domain.value_parsing import parse_amount, parse_billing_period

logger = structlog.get_logger()

# Textract SummaryFields Type.Text -> summary key
TX_SUMMARY: Dict[str, str] = {
    "INVOICE_RECEIPT_ID": "invoice_id",
    "VENDOR_NAME": "vendor_name",
    "INVOICE_RECEIPT_DATE": "invoice_date",
    "DUE_DATE": "due_date",
    "TOTAL": "total",
    "SUBTOTAL": "subtotal",
    "TAX": "tax_amount",
    "DISCOUNT": "discount",
}

# Textract LineItemExpenseFields Type.Text -> line item key
TX_LINE_ITEM: Dict[str, str] = {
    "ITEM": "description",
    "QUANTITY": "quantity",
    "UNIT_PRICE": "unit_price",
    "PRICE": "amount",
    "PRODUCT_CODE": "product_code",
}

# Key/value pairs below this confidence (0-1) are discarded
MIN_CONFIDENCE = 0.4


def _confidence(field: Dict[str, Any]) -> Optional[float]:
    """Textract reports 0-100; None when the response carries no score."""
    detection = field.get("ValueDetection") or {}
    score = detection.get("Confidence")
    if score is None:
        return None
    return float(score) / 100.0


def _is_trusted(field: Dict[str, Any]) -> bool:
    score = _confidence(field)
    return score is None or score >= MIN_CONFIDENCE


def _text(field: Dict[str, Any], key: str) -> str:
    return ((field.get(key) or {}).get("Text") or "").strip()


def _type(field: Dict[str, Any]) -> str:
    return (field.get("Type") or {}).get("Text") or ""


def parse_summary_fields(fields: List[Dict[str, Any]]) -> Dict[str, str]:
    """First value wins per summary key."""
    summary: Dict[str, str] = {}
    for field in fields:
        value = _text(field, "ValueDetection")
        if not value or not _is_trusted(field):
            continue

        type_text = _type(field)
        if type_text in TX_SUMMARY:
            summary.setdefault(TX_SUMMARY[type_text], value)
        elif type_text == "OTHER":
            key = match_label(_text(field, "LabelDetection"), SUMMARY_FIELD_MAP, taken=summary)
            if key:
                summary[key] = value
    return summary


def parse_line_item_fields(fields: List[Dict[str, Any]]) -> Dict[str, str]:
    expense_fields: Dict[str, str] = {}
    for field in fields:
        type_text = _type(field)
        if type_text == "EXPENSE_ROW":
            continue
        value = _text(field, "ValueDetection")

        if type_text in TX_LINE_ITEM:
            expense_fields[TX_LINE_ITEM[type_text]] = value
        elif type_text == "OTHER" and value:
            key = match_label(_text(field, "LabelDetection"), LINE_ITEM_COLUMN_MAP, taken=expense_fields)
            if key:
                expense_fields[key] = value
    return expense_fields


def parse_expense_response(response: Dict[str, Any], provider_detector: ProviderDetector, file_name: str) -> ExtractedDocument:
    line_items: List[NormalizedLineItem] = []
    total_tax: Optional[float] = None
    invoice_period = BillingPeriod()

    for expense_doc in response.get("ExpenseDocuments") or []:
        summary = parse_summary_fields(expense_doc.get("SummaryFields") or [])

        invoice_id = summary.get("invoice_id")
        vendor_name = summary.get("vendor_name")
        account_id = summary.get("account_id")
        currency = (summary.get("currency") or DEFAULT_CURRENCY).upper()[:3]
        header_tax = parse_amount(summary.get("tax_amount"))
        start, end = parse_billing_period(
            summary.get("billing_period_start", ""),
            summary.get("billing_period_end", ""),
        )

        if total_tax is None:
            total_tax = header_tax
        if invoice_period.start is None and invoice_period.end is None:
            invoice_period = BillingPeriod(start=start, end=end)

        doc_items: List[NormalizedLineItem] = []
        for group in expense_doc.get("LineItemGroups") or []:
            for line_item in group.get("LineItems") or []:
                ef = parse_line_item_fields(line_item.get("LineItemExpenseFields") or [])

                product_name = ef.get("description") or None
                cost = parse_amount(ef.get("amount"))
                if not product_name and cost is None:
                    continue

                doc_items.append(NormalizedLineItem(
                    invoice_id=invoice_id,
                    linked_account_id=account_id,
                    product_name=product_name,
                    product_code=ef.get("product_code") or None,
                    service_category=ef.get("service_family") or None,
                    region_name=ef.get("region") or None,
                    usage_quantity=parse_amount(ef.get("quantity")),
                    unit_price=parse_amount(ef.get("unit_price")),
                    unit_of_measure=ef.get("unit_of_measure") or None,
                    cost_before_tax=cost,
                    tax_amount=parse_amount(ef.get("tax_amount")),
                    currency_code=currency,
                    usage_start_date=start,
                    usage_end_date=end,
                    raw_line={"expenseFields": ef},
                ))

        if not doc_items:
            fallback = receipt_fallback_item(
                invoice_id=invoice_id,
                vendor_name=vendor_name,
                total=parse_amount(summary.get("total")),
                currency=currency,
                raw_line=dict(summary),
                account_id=account_id,
                tax_amount=header_tax,
                start=start,
                end=end,
            )
            if fallback is not None:
                doc_items.append(fallback)

        line_items.extend(doc_items)

    provider = provider_detector.from_invoice_text(
        " ".join(item.product_name or "" for item in line_items), file_name
    )

    logger.info(
        "textract_extraction_complete",
        file_name=file_name,
        line_items=len(line_items),
        provider=provider,
    )
    return ExtractedDocument(
        line_items=line_items,
        provider_detected=provider,
        total_tax=total_tax,
        invoice_billing_period=invoice_period,
    )


class TextractExtractor:
    """
    Structured-document backend over Amazon Textract AnalyzeExpense.
    Documents are sent inline or referenced in S3.
    """

    def __init__(self, provider_detector: Optional[ProviderDetector] = None):
        self.settings = get_settings()
        self.session = aioboto3.Session()
        self.provider_detector = provider_detector or ProviderDetector()

    def is_available(self) -> bool:
        return self.settings.textract_configured

    async def process(self, content: bytes, file_name: str) -> ExtractedDocument:
        response = await self._analyze({"Bytes": content}, file_name)
        return parse_expense_response(response, self.provider_detector, file_name)

    async def process_from_s3(self, bucket: str, key: str, file_name: Optional[str] = None) -> ExtractedDocument:
        name = file_name or key
        response = await self._analyze({"S3Object": {"Bucket": bucket, "Name": key}}, name)
        return parse_expense_response(response, self.provider_detector, name)

    async def _analyze(self, document: Dict[str, Any], file_name: str) -> Dict[str, Any]:
        if not self.is_available():
            raise ConfigurationError(
                "Amazon Textract is not configured. Set TEXTRACT_ACCESS_KEY_ID, "
                "TEXTRACT_SECRET_ACCESS_KEY and TEXTRACT_REGION."
            )

        logger.info("textract_extraction_started", file_name=file_name)
        async with self.session.client(
            "textract",
            region_name=self.settings.TEXTRACT_REGION,
            aws_access_key_id=self.settings.TEXTRACT_ACCESS_KEY_ID,
            aws_secret_access_key=self.settings.TEXTRACT_SECRET_ACCESS_KEY,
        ) as client:
            try:
                return await client.analyze_expense(Document=document)
            except (ClientError, BotoCoreError) as e:
                logger.error("textract_extraction_failed", file_name=file_name, error=str(e))
                raise ExtractionError(str(e), details={"file_name": file_name, "backend": "textract"}) from e
