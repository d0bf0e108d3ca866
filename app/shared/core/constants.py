from enum import Enum


class CloudProvider(str, Enum):
    AWS = "aws"
    AZURE = "azure"
    GCP = "gcp"
    OCI = "oci"
    UNKNOWN = "unknown"


class ServiceCategory(str, Enum):
    """Canonical OCI-style service categories. Closed set."""
    COMPUTE = "Compute"
    STORAGE = "Storage"
    NETWORK = "Network"
    DATABASE = "Database"
    GENAI = "GenAI"
    OTHER = "Other"


class IngestionStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class UploadStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FileType(str, Enum):
    PDF = "pdf"
    CSV = "csv"
    XLSX = "xlsx"


class PdfExtractor(str, Enum):
    """Explicit PDF backend override. AUTO applies the default priority chain."""
    AUTO = "auto"
    TEXTRACT = "textract"
    GEMINI = "gemini"


# OCI SKU for the Windows Server license (per OCPU-hour)
WINDOWS_OCI_SKU = "B88318"

DEFAULT_CURRENCY = "USD"
