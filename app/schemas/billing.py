"""
Billing Ingestion Schemas - Canonical Line Item Layer
"""

from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field

from app.shared.core.constants import FileType, ServiceCategory


class NormalizedLineItem(BaseModel):
    """One billing line as extracted from a CSV row, XLSX row, or PDF invoice."""
    invoice_id: Optional[str] = None
    linked_account_id: Optional[str] = None
    resource_id: Optional[str] = None
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    service_category: Optional[str] = Field(None, description="Raw category hint, before mapping")
    usage_start_date: Optional[datetime] = None
    usage_end_date: Optional[datetime] = None
    usage_quantity: Optional[float] = Field(None, description="Quantity in the provider's native unit")
    unit_price: Optional[float] = None
    unit_of_measure: Optional[str] = None
    cost_before_tax: Optional[float] = None
    tax_amount: Optional[float] = None
    currency_code: str = "USD"
    region_name: Optional[str] = None
    is_spot_instance: bool = False
    raw_line: Optional[Dict[str, Any]] = None


class NormalizedBillingRecord(NormalizedLineItem):
    """A line item enriched with OCI category, equivalent quantity and tax flags."""
    service_category: ServiceCategory = ServiceCategory.OTHER
    oci_equivalent_quantity: Optional[float] = Field(
        None, description="vCPU-adjusted for x86 Compute, otherwise the source quantity"
    )
    is_generative_ai: bool = False
    is_windows_licensed: bool = False
    windows_sku_code: Optional[str] = None
    is_paid_sku: bool = True
    brl_tax_amount: Optional[float] = None
    cost_after_tax: Optional[float] = None


class CostSummaryItem(BaseModel):
    key: str
    label: str
    cost: float
    currency_code: str


class CostSummary(BaseModel):
    """Per-upload totals. All monetary values are rounded to cents."""
    total_per_service: List[CostSummaryItem] = Field(default_factory=list)
    total_per_region: List[CostSummaryItem] = Field(default_factory=list)
    subtotal: float = 0.0
    total_tax: Optional[float] = Field(None, description="Invoice-level tax from the document summary")
    grand_total: float = 0.0
    currency_code: str = "USD"
    billing_period_start: Optional[datetime] = None
    billing_period_end: Optional[datetime] = None


class BillingPeriod(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class ExtractedRows(BaseModel):
    """Raw rows of a tabular file plus the provider inferred while reading it."""
    rows: List[Dict[str, str]] = Field(default_factory=list)
    provider_detected: str = "unknown"


class ExtractedDocument(BaseModel):
    """Output of a structured PDF backend (Textract or Gemini)."""
    line_items: List[NormalizedLineItem] = Field(default_factory=list)
    provider_detected: str = "unknown"
    total_tax: Optional[float] = None
    invoice_billing_period: Optional[BillingPeriod] = None


class ParserResult(BaseModel):
    line_items: List[NormalizedLineItem] = Field(default_factory=list)
    provider_detected: str = "unknown"
    file_type: FileType
    total_tax: Optional[float] = None
    invoice_billing_period: Optional[BillingPeriod] = None


class DocumentUploadResult(BaseModel):
    upload_id: str
    file_name: str
    file_type: str
    cloud_provider_detected: str
    billing_period: BillingPeriod
    total_tax: Optional[float] = None
    line_items: List[NormalizedLineItem] = Field(default_factory=list)
    cost_summary: CostSummary


class UploadListEntry(BaseModel):
    upload_id: str
    file_name: str
    file_type: str
    cloud_provider_detected: str
    status: str
    error_message: Optional[str] = None
    item_count: int = 0
    billing_period: BillingPeriod
    uploaded_at: datetime


class UploadList(BaseModel):
    uploads: List[UploadListEntry] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20


class CollectedFile(BaseModel):
    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
