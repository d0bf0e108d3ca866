from datetime import datetime

from app.modules.ingestion.domain.extractors.csv_extractor import (
    CsvExtractor,
    detect_delimiter,
    extract_region_from_product_name,
    normalize_row,
    strip_directive_line,
)


def test_semicolon_delimiter_detected():
    content = "Descrição;Quantidade;Valor\nCompute;10;5,5\n"
    assert detect_delimiter(content) == ";"

    extracted = CsvExtractor().extract(content.encode("utf-8"), "fatura.csv")
    assert extracted.rows == [{"Descrição": "Compute", "Quantidade": "10", "Valor": "5,5"}]


def test_tab_and_comma_delimiters():
    assert detect_delimiter("a\tb\n1\t2") == "\t"
    assert detect_delimiter("a,b\n1;2") == ","


def test_sep_directive_line_is_dropped():
    content = "SEP=;\nA;B\n1;2\n"
    assert strip_directive_line(content) == "A;B\n1;2\n"

    extracted = CsvExtractor().extract(content.encode("utf-8"), "export.csv")
    assert extracted.rows == [{"A": "1", "B": "2"}]


def test_ragged_rows_keep_leading_fields():
    content = "a,b,c\n1,2,3\n4,5,6,7\n"
    extracted = CsvExtractor().extract(content.encode("utf-8"), "ragged.csv")
    assert extracted.rows == [
        {"a": "1", "b": "2", "c": "3"},
        {"a": "4", "b": "5", "c": "6"},
    ]


def test_ragged_first_row_does_not_shift_columns():
    content = "a,b,c\n4,5,6,7\n1,2,3\n"
    extracted = CsvExtractor().extract(content.encode("utf-8"), "ragged.csv")
    assert extracted.rows == [
        {"a": "4", "b": "5", "c": "6"},
        {"a": "1", "b": "2", "c": "3"},
    ]


def test_empty_file_has_no_rows():
    extracted = CsvExtractor().extract(b"   ", "empty.csv")
    assert extracted.rows == []
    assert extracted.provider_detected == "unknown"


def test_provider_from_columns(aws_cur_csv):
    extracted = CsvExtractor().extract(aws_cur_csv, "billing-january.csv")
    assert extracted.provider_detected == "aws"
    assert len(extracted.rows) == 3


def test_file_name_wins_over_columns(aws_cur_csv):
    extracted = CsvExtractor().extract(aws_cur_csv, "azure-export.csv")
    assert extracted.provider_detected == "azure"


def test_normalize_aws_cur_row(aws_cur_csv):
    extractor = CsvExtractor()
    rows = extractor.extract(aws_cur_csv, "billing.csv").rows
    item = extractor.normalize_rows(rows)[0]

    assert item.product_code == "AmazonEC2"
    assert item.product_name == "Amazon Elastic Compute Cloud"
    assert item.service_category == "BoxUsage:m5.xlarge"
    assert item.usage_quantity == 100.0
    assert item.cost_before_tax == 50.0
    assert item.currency_code == "USD"
    assert item.region_name == "us-east-1"
    assert item.usage_start_date == datetime(2025, 1, 1)
    assert item.raw_line["lineItem/UsageType"] == "BoxUsage:m5.xlarge"


def test_normalize_azure_ptbr_row():
    row = {
        "PERÍODO DE SERVIÇO (UTC)": "01/12/2025 - 31/12/2025",
        "SKU DO PRODUTO": "Azure Database for PostgreSQL - B1MS - Sul do Brasil",
        "QUANTIDADE": "744",
        "ENCARGOS/CRÉDITOS": "12,50",
        "ENCARGOS/CRÉDITOS CURRENCY": "BRL",
    }
    item = normalize_row(row)

    assert item.region_name == "Sul do Brasil"
    assert item.currency_code == "BRL"
    assert item.usage_quantity == 744.0
    assert item.cost_before_tax == 12.5
    assert item.usage_start_date == datetime(2025, 12, 1)
    assert item.usage_end_date == datetime(2025, 12, 31)


def test_region_from_product_name():
    assert extract_region_from_product_name("Storage - LRS - East US 2") == "East US 2"
    assert extract_region_from_product_name("Virtual Machines - D2S") is None
    assert extract_region_from_product_name("NoSeparator") is None
