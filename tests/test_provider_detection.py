from app.modules.ingestion.domain.provider_detection import ProviderDetector


def test_from_file_name():
    detector = ProviderDetector()
    assert detector.from_file_name("aws_cur_2025-01.csv") == "aws"
    assert detector.from_file_name("azure-export.xlsx") == "azure"
    assert detector.from_file_name("gcp_billing.csv") == "gcp"
    assert detector.from_file_name("report.csv") == "unknown"


def test_from_columns():
    detector = ProviderDetector()
    assert detector.from_columns(["lineItem/UsageType", "lineItem/UnblendedCost"]) == "aws"
    assert detector.from_columns(["MeterCategory", "PreTaxCost"]) == "azure"
    assert detector.from_columns(["service.description", "cost.amount"]) == "gcp"
    assert detector.from_columns(["Compartment", "OCPU Hours"]) == "oci"
    assert detector.from_columns(["Foo", "Bar"]) == "unknown"


def test_detect_precedence():
    detector = ProviderDetector()
    # File name wins over content
    assert detector.detect(file_name="azure.pdf", content="Amazon Web Services") == "azure"
    # Falls through to content
    assert detector.detect(file_name="invoice.pdf", content="Oracle Cloud Infrastructure") == "oci"
    assert detector.detect() == "unknown"


def test_from_invoice_text():
    detector = ProviderDetector()
    assert detector.from_invoice_text("Amazon Web Services, Inc.") == "aws"
    assert detector.from_invoice_text("Encargos do periodo") == "azure"
    assert detector.from_invoice_text("Google Cloud") == "gcp"
    assert detector.from_invoice_text("", file_name="oci-invoice.pdf") == "oci"
