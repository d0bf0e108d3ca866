"""
Invoice label vocabularies shared by the structured PDF backends.

Headers come from real AWS, Azure and GCP invoices in English and Brazilian
Portuguese, e.g. "Descrição | Quantidade de uso | Valor em USD" next to
"Description | Usage Quantity | Amount in USD".
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from app.schemas.billing import NormalizedLineItem

# Label text -> summary field. Used for key/value pairs the backend cannot type.
SUMMARY_FIELD_MAP: Dict[str, List[str]] = {
    "invoice_id": [
        "invoice id", "invoice number", "invoice #", "invoice no", "bill number",
        "receipt number", "receipt id", "document number", "total invoiced charges",
        "id da fatura", "número da fatura", "número fatura",
    ],
    "account_id": [
        "account id", "payer account id", "linked account id",
        "id da conta", "seção de fatura", "secao de fatura",
    ],
    "vendor_name": [
        "vendor", "supplier", "biller", "from", "sold by", "seller", "company",
        "service provider", "amazon web services, inc.",
        "amazon aws serviços brasil ltda.", "amazon aws servicos brasil ltda.",
        "provedor de serviços", "provedor de servicos",
    ],
    "invoice_date": [
        "bill issued", "invoice date", "date", "bill date", "issue date", "issued date",
        "date printed", "fatura emitida", "data de impressão", "data de impressao",
    ],
    "due_date": ["due date", "payment due", "payment date", "pay by"],
    "total": [
        "grand total", "total", "total amount", "amount due", "invoice total",
        "balance due", "total due", "total geral",
    ],
    "subtotal": [
        "total pre-tax", "total pre tax", "subtotal", "sub total", "sub-total",
        "net amount", "total antes de impostos",
    ],
    "tax_amount": [
        "total tax", "tax", "tax amount", "vat", "gst", "sales tax", "tax total",
        "vat amount", "taxes", "total de impostos", "imposto",
    ],
    "discount": ["discount", "total discount", "discount amount"],
    "currency": [
        "currency", "currency code", "billing currency", "total currency",
        "imposto currency", "preço efetivo currency", "preco efetivo currency",
    ],
    "billing_period_start": [
        "billing period", "billing period start", "period start", "service start",
        "from date", "start date", "usage start",
        "período de faturamento", "periodo de faturamento", "data (utc)", "data utc",
    ],
    "billing_period_end": [
        "billing period end", "period end", "service end", "to date", "end date", "usage end",
        "período de serviço (utc)", "periodo de servico (utc)",
        "período de serviço", "periodo de servico",
    ],
}

# Table column header -> line item field. Used for columns the backend cannot type.
LINE_ITEM_COLUMN_MAP: Dict[str, List[str]] = {
    "description": [
        "description", "service", "item", "product", "name", "details",
        "line item", "charge", "product name", "service name",
        "descrição", "descricao", "tipo de produto", "tipo de transação", "tipo de transacao",
    ],
    "quantity": [
        "usage quantity", "quantity", "qty", "usage", "units", "hours", "count",
        "quantidade de uso", "quantidade",
    ],
    "unit_price": [
        "unit price", "unit cost", "rate", "price per unit", "unit rate", "blended rate",
        "preço de payg", "preco de payg", "preço efetivo", "preco efetivo",
    ],
    "amount": [
        "amount", "cost", "price", "charge", "line total", "extended price", "extended amount",
        "valor em usd", "amount in usd", "pre-tax charges", "post-tax charges",
        "encargos/créditos", "encargos/creditos", "total",
    ],
    "tax_amount": ["taxes", "tax", "imposto"],
    "region": [
        "region", "location", "zone", "area", "availability domain", "aws region",
        "armregionname", "localização", "localizacao", "local",
    ],
    "product_code": [
        "product code", "sku", "service code", "part number", "code", "item code",
        "sku do produto",
    ],
    "unit_of_measure": ["unit of measure", "unit type", "uom", "tipo de unidade"],
    "service_family": ["service family", "product family", "família do produto", "familia do produto"],
    "exchange_rate": ["taxa de câmbio", "taxa de cambio", "exchange rate"],
}

RECEIPT_FALLBACK_NAME = "Cloud Invoice"


def match_label(label: str, vocabulary: Mapping[str, List[str]], taken: Optional[Mapping[str, Any]] = None) -> Optional[str]:
    """
    Field whose candidates equal, contain, or are contained by the label.
    Fields already present in `taken` are skipped.
    """
    lowered = (label or "").lower().strip()
    if not lowered:
        return None
    for field, candidates in vocabulary.items():
        if taken is not None and field in taken:
            continue
        if any(lowered == c or c in lowered or lowered in c for c in candidates):
            return field
    return None


def receipt_fallback_item(
    invoice_id: Optional[str],
    vendor_name: Optional[str],
    total: Optional[float],
    currency: str,
    raw_line: Dict[str, Any],
    account_id: Optional[str] = None,
    tax_amount: Optional[float] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Optional[NormalizedLineItem]:
    """Single receipt-style item for invoices whose tables yielded nothing."""
    if invoice_id is None and total is None and vendor_name is None:
        return None
    return NormalizedLineItem(
        invoice_id=invoice_id,
        linked_account_id=account_id,
        product_name=vendor_name or RECEIPT_FALLBACK_NAME,
        cost_before_tax=total,
        tax_amount=tax_amount,
        currency_code=currency,
        usage_start_date=start,
        usage_end_date=end,
        raw_line=raw_line,
    )
