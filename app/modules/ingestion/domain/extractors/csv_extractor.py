"""
CSV billing export extractor (AWS CUR, Azure Cost Management, GCP billing,
Azure PT-BR invoice transactions).

Column keys are ranked most-specific first. Azure PT-BR headers look like:
DATA (UTC), PERÍODO DE SERVIÇO (UTC), TIPO DE TRANSAÇÃO, FAMÍLIA DO PRODUTO,
SKU DO PRODUTO, PREÇO EFETIVO, QUANTIDADE, TAXA DE CÂMBIO, ENCARGOS/CRÉDITOS,
IMPOSTO, TOTAL (each money column followed by a "... CURRENCY" twin).
"""

import io
import re
from typing import Dict, List, Optional

import pandas as pd
import structlog

from app.schemas.billing import ExtractedRows, NormalizedLineItem
from app.shared.core.constants import DEFAULT_CURRENCY
from app.modules.ingestion.domain.field_resolver import RawRow, find_column, find_value
from app.modules.ingestion.domain.provider_detection import ProviderDetector
from app.modules.ingestion.domain.value_parsing import parse_date, parse_number, split_period

logger = structlog.get_logger()

# Currency columns are excluded at lookup time; generic 'total'/'cost' come last
COST_KEYS = [
    "costbeforetax",
    "unblendedcost",
    "pretaxcost",
    "blendedcost",
    "totalcost",
    "cost.amount",
    "encargos/créditos",
    "encargos/creditos",
    "encargos créditos",
    "preço efetivo",
    "preco efetivo",
    "preço de payg",
    "preco de payg",
    "total",
    "cost",
]

UNIT_PRICE_KEYS = [
    "unitprice", "blendedrate", "unblendedrate",
    "preço efetivo", "preco efetivo",
    "preço de payg", "preco de payg",
]

QUANTITY_KEYS = ["usagequantity", "quantity", "quantidade", "usageamount"]
EXCHANGE_RATE_KEYS = ["taxa de câmbio", "taxa de cambio", "exchange rate", "exchangerate"]

INVOICE_ID_KEYS = ["invoiceid", "bill/invoiceid"]
ACCOUNT_KEYS = ["linkedaccountid", "bill/payeraccountid", "seção de fatura", "secao de fatura"]
RESOURCE_KEYS = ["resourceid", "lineitem/resourceid"]
PRODUCT_CODE_KEYS = ["productcode", "lineitem/productcode", "sku do produto"]
PRODUCT_NAME_KEYS = [
    "productname", "lineitem/productname", "metername",
    "sku do produto", "tipo de produto", "família do produto", "familia do produto",
]
CATEGORY_KEYS = [
    "servicecategory", "lineitem/usagetype", "metercategory",
    "família do produto", "familia do produto", "tipo de transação", "tipo de transacao",
]
REGION_KEYS = ["region", "product/region", "armregionname", "local", "location", "localização", "localizacao"]
EMBEDDED_REGION_KEYS = ["sku do produto", "tipo de produto"]
UNIT_KEYS = ["unitofmeasure", "pricing/unit", "tipo de unidade"]
TAX_KEYS = ["taxamount", "taxtotal", "imposto"]
CURRENCY_KEYS = [
    "currencycode", "currency",
    "total currency", "encargos/créditos currency", "encargos/creditos currency",
    "preço efetivo currency", "preco efetivo currency",
    "imposto currency",
]
PERIOD_KEYS = ["período de serviço (utc)", "periodo de servico (utc)", "período de serviço", "periodo de servico"]
START_DATE_KEYS = ["usagestartdate", "usage start date", "data (utc)", "data utc"]
END_DATE_KEYS = ["usageenddate", "usage end date"]

SKU_CODE_SEGMENT = re.compile(r"^[A-Z0-9]+$")
SEP_DIRECTIVE = re.compile(r"^SEP=", re.I)


def extract_region_from_product_name(name: Optional[str]) -> Optional[str]:
    """
    Azure PT-BR has no region column; the region trails the SKU name.
    "...PostgreSQL - B1MS - Sul do Brasil" -> "Sul do Brasil"
    """
    if not name:
        return None
    parts = name.split(" - ")
    if len(parts) < 2:
        return None
    last = parts[-1].strip()
    if len(last) > 3 and not SKU_CODE_SEGMENT.match(last):
        return last
    if len(parts) >= 3:
        previous = parts[-2].strip()
        if len(previous) > 3 and not SKU_CODE_SEGMENT.match(previous):
            return previous
    return None


def _first_number(row: RawRow, keys: List[str]) -> Optional[float]:
    """Ranked lookup that skips currency-code columns and unparseable values."""
    for key in keys:
        column = find_column(row, key)
        if column is not None:
            number = parse_number(row[column])
            if number is not None:
                return number
    return None


def normalize_row(row: RawRow) -> NormalizedLineItem:
    """Resolve one raw tabular row into a NormalizedLineItem."""
    region = find_value(row, REGION_KEYS) or extract_region_from_product_name(
        find_value(row, EMBEDDED_REGION_KEYS)
    )

    currency = (find_value(row, CURRENCY_KEYS) or DEFAULT_CURRENCY).upper()[:3]

    period = split_period(find_value(row, PERIOD_KEYS))
    start = parse_date(period[0]) if period else None
    end = parse_date(period[1]) if period else None
    if start is None:
        start = parse_date(find_value(row, START_DATE_KEYS))
    if end is None:
        end = parse_date(find_value(row, END_DATE_KEYS))

    raw_line: Dict[str, object] = dict(row)
    raw_line["exchangeRate"] = parse_number(find_value(row, EXCHANGE_RATE_KEYS))

    return NormalizedLineItem(
        invoice_id=find_value(row, INVOICE_ID_KEYS) or None,
        linked_account_id=find_value(row, ACCOUNT_KEYS) or None,
        resource_id=find_value(row, RESOURCE_KEYS) or None,
        product_code=find_value(row, PRODUCT_CODE_KEYS) or None,
        product_name=find_value(row, PRODUCT_NAME_KEYS) or None,
        service_category=find_value(row, CATEGORY_KEYS) or None,
        usage_start_date=start,
        usage_end_date=end,
        usage_quantity=parse_number(find_value(row, QUANTITY_KEYS)),
        unit_price=_first_number(row, UNIT_PRICE_KEYS),
        unit_of_measure=find_value(row, UNIT_KEYS) or None,
        cost_before_tax=_first_number(row, COST_KEYS),
        tax_amount=parse_number(find_value(row, TAX_KEYS)),
        currency_code=currency or DEFAULT_CURRENCY,
        region_name=region or None,
        is_spot_instance=False,
        raw_line=raw_line,
    )


def normalize_rows(rows: List[RawRow]) -> List[NormalizedLineItem]:
    return [normalize_row(row) for row in rows]


def strip_directive_line(content: str) -> str:
    """Drop an Excel 'SEP=;' hint line."""
    trimmed = content.lstrip()
    if SEP_DIRECTIVE.match(trimmed):
        newline = trimmed.find("\n")
        return "" if newline == -1 else trimmed[newline + 1:]
    return content


def detect_delimiter(content: str) -> str:
    first_line = content.split("\n", 1)[0]
    if ";" in first_line:
        return ";"
    if "\t" in first_line:
        return "\t"
    return ","


class CsvExtractor:
    def __init__(self, provider_detector: Optional[ProviderDetector] = None):
        self.provider_detector = provider_detector or ProviderDetector()

    def extract(self, content: bytes, file_name: str) -> ExtractedRows:
        text = content.decode("utf-8-sig", errors="replace")
        text = strip_directive_line(text)
        rows = self._read_rows(text, detect_delimiter(text))

        provider = self.provider_detector.detect(file_name=file_name, columns=rows[0].keys() if rows else ())

        logger.info("csv_extracted", file_name=file_name, rows=len(rows), provider=provider)
        return ExtractedRows(rows=rows, provider_detected=provider)

    def normalize_rows(self, rows: List[RawRow]) -> List[NormalizedLineItem]:
        return normalize_rows(rows)

    @staticmethod
    def _read_rows(text: str, delimiter: str) -> List[Dict[str, str]]:
        if not text.strip():
            return []

        # Ragged rows: keep the leading fields instead of failing the file
        header_width = len(text.split("\n", 1)[0].split(delimiter))
        df = pd.read_csv(
            io.StringIO(text),
            sep=delimiter,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
            index_col=False,
            on_bad_lines=lambda fields: fields[:header_width],
        )
        df.columns = [str(c).strip() for c in df.columns]
        df = df.fillna("").apply(lambda column: column.astype(str).str.strip())
        return df.to_dict(orient="records")
