"""
Lift-and-Shift Modeling Module

- LiftAndShiftModeler: Compares unified billing records against OCI equivalents
- OciPriceService: Resolves OCI unit prices (cache, live price list, fallback)
- InstanceResolver: Maps source instance types to OCI SKUs and OCPU counts
"""

from .domain.service import LiftAndShiftModeler
from .domain.pricing import OciPriceService
from .domain.instance_resolver import InstanceResolver

__all__ = ["LiftAndShiftModeler", "OciPriceService", "InstanceResolver"]
