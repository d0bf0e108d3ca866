"""
Lift-and-shift cost estimation rules.

Pure functions. Path selection per record:
- Other category: ratio-based, always
- known quantity and positive source cost: quantity-based, kept only when the
  result is zero or within 0.05x-20x of the source cost
- everything else: ratio-based
Windows Compute records then get the license surcharge on top.
"""

from dataclasses import dataclass
from typing import Optional

from app.shared.core.constants import ServiceCategory
from app.modules.modeling.domain.sku_catalog import DEFAULT_SAVINGS_FACTOR, SAVINGS_FACTOR

# OCI Always Free outbound egress per month (10 TB)
OCI_FREE_NETWORK_EGRESS_GB = 10 * 1024

OCI_COST_VS_SOURCE_MIN_RATIO = 0.05
OCI_COST_VS_SOURCE_MAX_RATIO = 20

QUANTITY_METHOD = "quantity"
RATIO_METHOD = "ratio"


@dataclass(frozen=True)
class CostEstimate:
    oci_estimated_cost: float
    savings_amount: float
    savings_pct: float
    windows_license_cost: float
    method: str
    quantity_based_cost: Optional[float] = None


def savings_factor(category: ServiceCategory) -> float:
    return SAVINGS_FACTOR.get(category, DEFAULT_SAVINGS_FACTOR)


def ratio_estimate(source_cost: float, category: ServiceCategory) -> float:
    if source_cost <= 0:
        return 0.0
    return round(source_cost * (1 - savings_factor(category)), 4)


def quantity_estimate(quantity: float, unit_price: float, category: ServiceCategory) -> float:
    if category == ServiceCategory.NETWORK:
        if quantity <= OCI_FREE_NETWORK_EGRESS_GB:
            return 0.0
        return round((quantity - OCI_FREE_NETWORK_EGRESS_GB) * unit_price, 4)
    return round(quantity * unit_price, 4)


def is_plausible(quantity_cost: float, source_cost: float) -> bool:
    """Zero, or within the accepted band relative to the source cost."""
    if quantity_cost == 0:
        return True
    ratio = quantity_cost / source_cost
    return OCI_COST_VS_SOURCE_MIN_RATIO <= ratio <= OCI_COST_VS_SOURCE_MAX_RATIO


def windows_surcharge(
    base_cost: float,
    quantity: Optional[float],
    source_cost: float,
    windows_price: float,
    compute_base_price: float,
) -> float:
    """Quantity x license price when quantity is known, else scaled from the base estimate."""
    if quantity is not None and quantity > 0 and source_cost > 0:
        return round(quantity * windows_price, 4)
    if source_cost > 0 and compute_base_price > 0:
        return round(base_cost * (windows_price / compute_base_price), 4)
    return 0.0


def estimate(
    category: ServiceCategory,
    source_cost: float,
    quantity: Optional[float],
    unit_price: float,
    is_windows: bool = False,
    windows_price: float = 0.0,
    compute_base_price: float = 0.0,
) -> CostEstimate:
    ratio_cost = ratio_estimate(source_cost, category)
    method = RATIO_METHOD
    quantity_cost: Optional[float] = None
    oci_cost = ratio_cost

    if category != ServiceCategory.OTHER and quantity is not None and quantity > 0 and source_cost > 0:
        quantity_cost = quantity_estimate(quantity, unit_price, category)
        if is_plausible(quantity_cost, source_cost):
            oci_cost = quantity_cost
            method = QUANTITY_METHOD

    license_cost = 0.0
    if is_windows and category == ServiceCategory.COMPUTE:
        license_cost = windows_surcharge(oci_cost, quantity, source_cost, windows_price, compute_base_price)
        oci_cost = round(oci_cost + license_cost, 4)

    savings = round(source_cost - oci_cost, 4)
    pct = round(savings / source_cost * 100, 2) if source_cost > 0 else 0.0

    return CostEstimate(
        oci_estimated_cost=oci_cost,
        savings_amount=savings,
        savings_pct=pct,
        windows_license_cost=license_cost,
        method=method,
        quantity_based_cost=quantity_cost,
    )
