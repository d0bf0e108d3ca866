import re
from typing import Iterable

from app.shared.core.constants import CloudProvider
from app.modules.ingestion.domain.field_resolver import has_any_column

AWS_INDICATORS = (
    "lineitem/usagetype",
    "lineitem/unblendedcost",
    "product/region",
    "product/sku",
    "bill/billingperiod",
    "aws_cur",
    "amazon",
)
AZURE_INDICATORS = (
    "metercategory",
    "pretaxcost",
    "resourcegroup",
    "armregionname",
    "armskuname",
    "azure",
    "microsoft",
    # Azure PT-BR invoice columns
    "encargos/cr",
    "preço de payg",
    "taxa de câmbio",
    "seção de fatura",
)
GCP_INDICATORS = (
    "service.description",
    "cost.amount",
    "project.id",
    "gcp",
    "google cloud",
)
OCI_INDICATORS = ("oracle", "oci", "compartment", "ocpu")

AWS_COLUMNS = ("lineitem/usagetype", "lineitem/unblendedcost", "product/region")
AZURE_COLUMNS = ("metercategory", "pretaxcost", "armregionname")
GCP_COLUMNS = ("service.description", "cost.amount", "project.id")
OCI_COLUMNS = ("compartment", "ocpu", "oracle")

# Raw text layer of a PDF
AWS_CONTENT = re.compile(r"amazon|lineitem")
AZURE_CONTENT = re.compile(r"azure|microsoft|meter")
GCP_CONTENT = re.compile(r"google|gcp")
OCI_CONTENT = re.compile(r"oracle|oci")

# Vendor names and descriptions returned by structured invoice backends
AWS_INVOICE = re.compile(r"amazon|aws|lineitem")
AZURE_INVOICE = re.compile(r"azure|microsoft|encargos|família do produto|familia do produto|taxa de câmbio")


class ProviderDetector:
    """
    Infers the source cloud from a file name, column names, or document text.
    Each signal is a binary membership test; callers apply precedence
    (file name, then columns, then content).
    """

    def from_file_name(self, file_name: str) -> str:
        lower = (file_name or "").lower()
        if any(i in lower for i in AWS_INDICATORS):
            return CloudProvider.AWS.value
        if any(i in lower for i in AZURE_INDICATORS):
            return CloudProvider.AZURE.value
        if any(i in lower for i in GCP_INDICATORS):
            return CloudProvider.GCP.value
        if any(i in lower for i in OCI_INDICATORS):
            return CloudProvider.OCI.value
        return CloudProvider.UNKNOWN.value

    def from_columns(self, columns: Iterable[str]) -> str:
        columns = list(columns)
        if has_any_column(columns, AWS_COLUMNS):
            return CloudProvider.AWS.value
        if has_any_column(columns, AZURE_COLUMNS):
            return CloudProvider.AZURE.value
        if has_any_column(columns, GCP_COLUMNS):
            return CloudProvider.GCP.value
        if has_any_column(columns, OCI_COLUMNS):
            return CloudProvider.OCI.value
        return CloudProvider.UNKNOWN.value

    def from_content(self, text: str) -> str:
        lower = (text or "").lower()
        if AWS_CONTENT.search(lower):
            return CloudProvider.AWS.value
        if AZURE_CONTENT.search(lower):
            return CloudProvider.AZURE.value
        if GCP_CONTENT.search(lower):
            return CloudProvider.GCP.value
        if OCI_CONTENT.search(lower):
            return CloudProvider.OCI.value
        return CloudProvider.UNKNOWN.value

    def detect(self, file_name: str = "", columns: Iterable[str] = (), content: str = "") -> str:
        """Apply file name -> columns -> content precedence, first known result wins."""
        for provider in (
            self.from_file_name(file_name),
            self.from_columns(columns),
            self.from_content(content),
        ):
            if provider != CloudProvider.UNKNOWN.value:
                return provider
        return CloudProvider.UNKNOWN.value

    def from_invoice_text(self, text: str, file_name: str = "") -> str:
        """Provider of a structured invoice, from vendor name, item descriptions and file name."""
        lower = f"{text or ''} {file_name or ''}".lower()
        if AWS_INVOICE.search(lower):
            return CloudProvider.AWS.value
        if AZURE_INVOICE.search(lower):
            return CloudProvider.AZURE.value
        if GCP_CONTENT.search(lower):
            return CloudProvider.GCP.value
        if OCI_CONTENT.search(lower):
            return CloudProvider.OCI.value
        return CloudProvider.UNKNOWN.value
