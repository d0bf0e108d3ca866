"""
Lift-and-Shift Modeling Schemas
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class LiftAndShiftRow(BaseModel):
    source_service: str
    service_category: str
    source_provider: str
    source_cost: float
    source_currency_code: str = "USD"
    oci_sku_part_number: str
    oci_sku_name: str
    oci_equivalent_quantity: Optional[float] = None
    oci_unit: str
    oci_unit_price: float
    oci_estimated_cost: float
    savings_amount: float
    savings_pct: float
    is_spot_converted: bool = Field(False, description="AWS Spot usage repriced as OCI on-demand")
    has_windows_license: bool = Field(False, description="Windows Server license (B88318) added")
    windows_license_cost: float = 0.0
    pricing_method: Optional[str] = Field(None, description="quantity or ratio")
    pricing_formula: Optional[str] = None


class CategoryBreakdown(BaseModel):
    source_cost: float = 0.0
    oci_cost: float = 0.0
    savings: float = 0.0


class LiftAndShiftSummary(BaseModel):
    total_source_cost: float = 0.0
    total_oci_estimated_cost: float = 0.0
    total_savings: float = 0.0
    total_savings_pct: float = 0.0
    by_category: Dict[str, CategoryBreakdown] = Field(default_factory=dict)


class LiftAndShiftResult(BaseModel):
    upload_id: str
    source_provider: str = "unknown"
    currency_code: str = "USD"
    rows: List[LiftAndShiftRow] = Field(default_factory=list)
    summary: LiftAndShiftSummary = Field(default_factory=LiftAndShiftSummary)
