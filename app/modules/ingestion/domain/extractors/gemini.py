"""
Gemini Invoice Extractor

Sends the PDF to Gemini as an inline media part and binds the reply to a
pydantic invoice schema through LangChain structured output.
"""

import base64
from typing import Any, Dict, List, Optional

import structlog
from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import BaseModel, Field, ValidationError, field_validator

from app.schemas.billing import BillingPeriod, ExtractedDocument, NormalizedLineItem
from app.shared.core.config import get_settings
from app.shared.core.constants import DEFAULT_CURRENCY
from app.shared.core.exceptions import ConfigurationError, ExtractionError
from app.modules.ingestion.domain.extractors.invoice_fields import receipt_fallback_item
from app.modules.ingestion.domain.provider_detection import ProviderDetector
from app.modules.ingestion.domain.value_parsing import parse_amount, parse_billing_period

logger = structlog.get_logger()


class GeminiLineItem(BaseModel):
    description: Optional[str] = Field(None, description="Service / product description")
    product_code: Optional[str] = Field(None, description="SKU / product code")
    service_family: Optional[str] = Field(None, description="Service family / product family")
    region: Optional[str] = Field(None, description="Cloud region or location")
    quantity: Optional[float] = Field(None, description="Usage quantity")
    unit_of_measure: Optional[str] = Field(None, description="Unit of measure (e.g. Hrs, GB)")
    unit_price: Optional[float] = Field(None, description="Price per unit")
    amount: Optional[float] = Field(None, description="Line item total (pre-tax)")
    tax_amount: Optional[float] = Field(None, description="Tax for this line item")

    @field_validator("quantity", "unit_price", "amount", "tax_amount", mode="before")
    @classmethod
    def parse_numbers(cls, v: Any) -> Optional[float]:
        return parse_amount(v)


class GeminiInvoice(BaseModel):
    invoice_id: Optional[str] = Field(None, description="Invoice / receipt / document ID")
    vendor_name: Optional[str] = Field(None, description="Vendor / supplier / biller name")
    account_id: Optional[str] = Field(None, description="Payer / linked account ID")
    currency: Optional[str] = Field(None, description="3-letter ISO currency code, e.g. USD")
    invoice_date: Optional[str] = Field(None, description="Invoice issue date (ISO 8601 or as written)")
    due_date: Optional[str] = Field(None, description="Payment due date (ISO 8601 or as written)")
    billing_period_start: Optional[str] = Field(None, description="Billing period start date")
    billing_period_end: Optional[str] = Field(None, description="Billing period end date")
    total: Optional[float] = Field(None, description="Grand total amount (after tax)")
    subtotal: Optional[float] = Field(None, description="Pre-tax subtotal")
    tax_amount: Optional[float] = Field(None, description="Total tax amount")
    discount: Optional[float] = Field(None, description="Total discount applied")
    line_items: List[GeminiLineItem] = Field(
        default_factory=list,
        description="Individual charge line items from the invoice table(s)",
    )

    @field_validator("total", "subtotal", "tax_amount", "discount", mode="before")
    @classmethod
    def parse_numbers(cls, v: Any) -> Optional[float]:
        return parse_amount(v)


EXTRACTION_PROMPT = """
You are a precise financial document parser specialising in cloud provider invoices
(AWS, Azure, GCP, OCI) in English and Brazilian Portuguese.

YOUR TASK: Extract the structured data described below from the attached invoice PDF.

BILLING PERIOD (billing_period_start / billing_period_end)
Look for a header label such as:
  * "Billing period", "Período de faturamento"
  * A date range near the top of the invoice, e.g.:
      "December 1, 2024 - December 31, 2024"
      "Dec 1, 2024 - Jan 1, 2025"
      "01/12/2024 - 31/12/2024"
      "1 de dez. de 2024 - 31 de dez. de 2024"
Always set BOTH billing_period_start AND billing_period_end as YYYY-MM-DD.
If only a single month/year is shown (e.g. "December 2024"), use the first and
last day of that month.
NEVER copy the invoice-issued date or due date into the billing period fields.

TOTAL TAX (tax_amount at the root, not inside line_items)
Look for a SUMMARY row labeled "Total tax", "Tax", "Taxes", "Total de impostos"
or "Imposto total". This is a single document-level number, e.g. "USD 230.23" -> 230.23.

LINE ITEMS (line_items)
Extract EVERY individual charge row from every service table.
Do NOT include summary rows (subtotal, total, taxes) as line items.
Each line item must have at minimum a description and an amount.
Fill a line item's tax_amount only if the row itself shows a per-item tax.

AMOUNTS & CURRENCY
Strip currency symbols and thousand separators, plain numbers only:
  "USD 1,234.56" -> 1234.56
  "R$ 9.629,19" -> 9629.19
currency: 3-letter ISO code (USD, BRL, EUR). Infer from context if not explicit.

GENERAL RULES
Omit a field if its value is not present in the document.
""".strip()


def map_invoice(invoice: GeminiInvoice, provider_detector: ProviderDetector, file_name: str) -> ExtractedDocument:
    currency = (invoice.currency or DEFAULT_CURRENCY).upper()[:3]
    start, end = parse_billing_period(invoice.billing_period_start or "", invoice.billing_period_end or "")

    line_items: List[NormalizedLineItem] = []
    for item in invoice.line_items:
        product_name = (item.description or "").strip() or None
        if not product_name and item.amount is None:
            continue

        line_items.append(NormalizedLineItem(
            invoice_id=invoice.invoice_id,
            linked_account_id=invoice.account_id,
            product_name=product_name,
            product_code=(item.product_code or "").strip() or None,
            service_category=(item.service_family or "").strip() or None,
            region_name=(item.region or "").strip() or None,
            usage_quantity=item.quantity,
            unit_price=item.unit_price,
            unit_of_measure=(item.unit_of_measure or "").strip() or None,
            cost_before_tax=item.amount,
            tax_amount=item.tax_amount,
            currency_code=currency,
            raw_line={"gemini": item.model_dump()},
        ))

    if not line_items:
        fallback = receipt_fallback_item(
            invoice_id=invoice.invoice_id,
            vendor_name=invoice.vendor_name,
            total=invoice.total,
            currency=currency,
            raw_line={"gemini": invoice.model_dump(exclude={"line_items"})},
            account_id=invoice.account_id,
        )
        if fallback is not None:
            line_items.append(fallback)

    provider = provider_detector.from_invoice_text(
        " ".join([invoice.vendor_name or ""] + [i.product_name or "" for i in line_items]),
        file_name,
    )

    logger.info(
        "gemini_extraction_complete",
        file_name=file_name,
        line_items=len(line_items),
        provider=provider,
        total_tax=invoice.tax_amount,
        billing_period_start=start.date().isoformat() if start else None,
        billing_period_end=end.date().isoformat() if end else None,
    )
    return ExtractedDocument(
        line_items=line_items,
        provider_detected=provider,
        total_tax=invoice.tax_amount,
        invoice_billing_period=BillingPeriod(start=start, end=end),
    )


class GeminiExtractor:
    """AI-document backend. Highest priority in automatic mode when configured."""

    def __init__(self, provider_detector: Optional[ProviderDetector] = None, llm: Optional[Any] = None):
        self.settings = get_settings()
        self.provider_detector = provider_detector or ProviderDetector()
        self._llm = llm

    def is_available(self) -> bool:
        return self.settings.gemini_configured

    def _structured_llm(self) -> Any:
        if self._llm is None:
            if not self.is_available():
                raise ConfigurationError("Gemini is not configured. Set GEMINI_API_KEY.")
            self._llm = ChatGoogleGenerativeAI(
                google_api_key=self.settings.GEMINI_API_KEY,
                model=self.settings.GEMINI_MODEL,
                temperature=0,
                timeout=self.settings.GEMINI_TIMEOUT_SECONDS,
            )
        return self._llm.with_structured_output(GeminiInvoice)

    async def process(self, content: bytes, file_name: str) -> ExtractedDocument:
        logger.info("gemini_extraction_started", file_name=file_name, model=self.settings.GEMINI_MODEL)
        message = HumanMessage(content=[
            {
                "type": "media",
                "mime_type": "application/pdf",
                "data": base64.b64encode(content).decode("ascii"),
            },
            {"type": "text", "text": EXTRACTION_PROMPT},
        ])

        try:
            result = await self._structured_llm().ainvoke([message])
        except ConfigurationError:
            raise
        except ValidationError as e:
            logger.error("gemini_invalid_response", file_name=file_name, error=str(e))
            raise ExtractionError(f"Gemini returned an invalid invoice for {file_name}") from e
        except Exception as e:
            logger.error("gemini_api_error", file_name=file_name, error=str(e), error_type=type(e).__name__)
            raise ExtractionError(str(e), details={"file_name": file_name, "backend": "gemini"}) from e

        invoice = self._coerce(result, file_name)
        return map_invoice(invoice, self.provider_detector, file_name)

    @staticmethod
    def _coerce(result: Any, file_name: str) -> GeminiInvoice:
        if isinstance(result, GeminiInvoice):
            return result
        if not result:
            raise ExtractionError(f"Gemini returned an empty response for {file_name}")
        if isinstance(result, dict):
            try:
                return GeminiInvoice.model_validate(result)
            except ValidationError as e:
                raise ExtractionError(f"Gemini returned an invalid invoice for {file_name}") from e
        raise ExtractionError(f"Gemini returned an invalid invoice for {file_name}")
