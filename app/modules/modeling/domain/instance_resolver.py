"""
Per-Instance OCI SKU Resolver

Extracts the source instance type from a billing record (product code, product
name, raw CUR fields), resolves its vCPU count, converts it to OCPUs and picks
the OCI paid SKU for that family.

Resolution ladder (most specific wins):
1. instance-level - instance type matched and vCPU count known
2. family-level   - instance family matched, vCPU count unknown (OCPU multiplier 1)
3. None           - caller falls back to the category-level SKU
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from app.shared.core.constants import CloudProvider, ServiceCategory
from app.modules.modeling.domain.sku_catalog import (
    SkuDescriptor,
    SkuPatternTable,
    OCI_E4_FLEX,
    OCI_MYSQL,
    AWS_FAMILY_TO_OCI_SKU,
    AWS_SIZE_TO_VCPU,
    AZURE_FAMILY_TO_OCI_SKU,
    GCP_FAMILY_TO_OCI_SKU,
    DB_ENGINE_TO_OCI_SKU,
)

logger = structlog.get_logger()

INSTANCE_LEVEL = "instance-level"
FAMILY_LEVEL = "family-level"

# "BoxUsage:m5.xlarge", "SpotUsage:c5.2xlarge", "Amazon EC2 - m5.xlarge", "m5.xlarge"
AWS_INSTANCE_PATTERN = re.compile(
    r"(?:(?:BoxUsage|SpotUsage|HeavyUsage|UnusedBox|DedicatedUsage|InstanceUsage|HostUsage)[:\s]+)?"
    r"([a-z][a-z0-9]*\.[0-9]*(?:nano|micro|small|medium|large|xlarge|metal[a-z0-9-]*))",
    re.I,
)
# "Standard_D4s_v3"
AZURE_SKU_PATTERN = re.compile(r"\b(Standard_[A-Z][A-Za-z0-9]+_v\d+|Standard_[A-Z][A-Za-z0-9]+)\b")
# "n2-standard-8"
GCP_MACHINE_PATTERN = re.compile(r"\b([a-z][a-z0-9]*(?:-[a-z]+)*-\d+)\b", re.I)
AWS_SIZE_SUFFIX_PATTERN = re.compile(r"\.(\d*(?:nano|micro|small|medium|large|xlarge|metal[a-z0-9-]*))\s*$", re.I)
AZURE_VCPU_PATTERN = re.compile(r"Standard_[A-Z]+(\d+)", re.I)
GCP_FIXED_SHAPES = re.compile(r"e2-(micro|small|medium)", re.I)
GCP_VCPU_SUFFIX = re.compile(r"-(\d+)$")
DB_INSTANCE_CLASS_PATTERN = re.compile(r"\bdb\.[a-z][a-z0-9]*\.[a-z0-9]+\b", re.I)
VCORE_PATTERN = re.compile(r"(\d+)\s*v[Cc]ore", re.I)
ARM_INSTANCE_PATTERN = re.compile(r"\b(graviton|ampere|a1\.|aarch64|arm64|t4g\.|m6g\.|c6g\.|r6g\.|t2a)", re.I)

# CUR columns that may carry the instance type when code and name do not
AWS_RAW_FIELDS = ("lineItem/UsageType", "product/instanceType", "usageType", "instanceType")


@dataclass(frozen=True)
class InstanceResolution:
    instance_type: str
    vcpu_count: Optional[int]
    # x86: ceil(vcpu / 2), ARM: vcpu, unknown vCPU: 1
    ocpu_count: int
    oci_sku: SkuDescriptor
    resolution_method: str


def _match(text: str, pattern: re.Pattern, group: int = 1) -> Optional[str]:
    if not text:
        return None
    match = pattern.search(text)
    return match.group(group) if match else None


def _match_family(instance_type: str, table: SkuPatternTable) -> SkuDescriptor:
    for pattern, sku in table:
        if pattern.search(instance_type):
            return sku
    return OCI_E4_FLEX


def to_ocpu_count(vcpu_count: Optional[int], is_arm: bool) -> int:
    """1 OCPU = 2 x86 vCPUs. ARM shapes bill natively per core."""
    if vcpu_count is None:
        return 1
    if is_arm:
        return vcpu_count
    return max(1, math.ceil(vcpu_count / 2))


def is_arm_instance(instance_type: str) -> bool:
    return bool(ARM_INSTANCE_PATTERN.search(instance_type))


def extract_aws_vcpu_count(instance_type: str) -> Optional[int]:
    """'m5.xlarge' -> 4, 'c5.2xlarge' -> 8, 'r5.metal' -> 96."""
    match = AWS_SIZE_SUFFIX_PATTERN.search(instance_type.lower())
    if not match:
        return None
    return AWS_SIZE_TO_VCPU.get(match.group(1))


def extract_azure_vcpu_count(arm_sku_name: str) -> Optional[int]:
    """'Standard_D4s_v3' -> 4, 'Standard_B8ms' -> 8."""
    match = AZURE_VCPU_PATTERN.search(arm_sku_name)
    return int(match.group(1)) if match else None


def extract_gcp_vcpu_count(machine_type: str) -> Optional[int]:
    """'n2-standard-8' -> 8. Shared-core e2 shapes count as 2."""
    if GCP_FIXED_SHAPES.search(machine_type):
        return 2
    match = GCP_VCPU_SUFFIX.search(machine_type)
    return int(match.group(1)) if match else None


class InstanceResolver:
    """
    Resolves OCI SKU and OCPU multiplier for normalized billing records.
    Never raises; returns None when no instance token can be found.
    """

    def resolve_for_record(self, record: Any) -> Optional[InstanceResolution]:
        provider = (_field(record, "provider") or "").lower()
        product_code = _field(record, "product_code") or ""
        product_name = _field(record, "product_name") or ""
        category = _field(record, "service_category") or ""
        raw_data = _field(record, "raw_data")

        try:
            if category == ServiceCategory.DATABASE.value:
                return self.resolve_database(product_code, product_name)

            if provider == CloudProvider.AWS.value:
                return self.resolve_aws(product_code, product_name, raw_data)
            if provider == CloudProvider.AZURE.value:
                return self.resolve_azure(product_code, product_name)
            if provider == CloudProvider.GCP.value:
                return self.resolve_gcp(product_code, product_name)
            return self.resolve_generic(product_code, product_name)
        except (TypeError, ValueError) as e:
            logger.warning("instance_resolution_failed", product_code=product_code, error=str(e))
            return None

    def resolve_aws(
        self,
        product_code: str,
        product_name: str,
        raw_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[InstanceResolution]:
        instance_type = _match(product_code, AWS_INSTANCE_PATTERN) or _match(product_name, AWS_INSTANCE_PATTERN)

        if not instance_type and raw_data:
            for key in AWS_RAW_FIELDS:
                value = raw_data.get(key)
                if isinstance(value, str):
                    instance_type = _match(value, AWS_INSTANCE_PATTERN)
                    if instance_type:
                        break

        if not instance_type:
            return None

        sku = _match_family(instance_type, AWS_FAMILY_TO_OCI_SKU)
        vcpu_count = extract_aws_vcpu_count(instance_type)
        return _resolution(instance_type, vcpu_count, sku, is_arm_instance(instance_type) or sku.is_arm)

    def resolve_azure(self, product_code: str, product_name: str) -> Optional[InstanceResolution]:
        arm_sku_name = (
            _match(product_code, AZURE_SKU_PATTERN)
            or _match(product_name, AZURE_SKU_PATTERN)
            or _match(f"{product_code} {product_name}", AZURE_SKU_PATTERN)
        )
        if not arm_sku_name:
            return None

        sku = _match_family(arm_sku_name, AZURE_FAMILY_TO_OCI_SKU)
        return _resolution(arm_sku_name, extract_azure_vcpu_count(arm_sku_name), sku, sku.is_arm)

    def resolve_gcp(self, product_code: str, product_name: str) -> Optional[InstanceResolution]:
        machine_type = (
            _match(product_code, GCP_MACHINE_PATTERN)
            or _match(product_name, GCP_MACHINE_PATTERN)
            or _match(f"{product_code} {product_name}", GCP_MACHINE_PATTERN)
        )
        if not machine_type:
            return None

        sku = _match_family(machine_type, GCP_FAMILY_TO_OCI_SKU)
        return _resolution(machine_type, extract_gcp_vcpu_count(machine_type), sku, sku.is_arm)

    def resolve_database(self, product_code: str, product_name: str) -> InstanceResolution:
        """Provider-agnostic: engines like MySQL or PostgreSQL span every source cloud."""
        combined = f"{product_name} {product_code}"

        for pattern, sku in DB_ENGINE_TO_OCI_SKU:
            if not pattern.search(combined):
                continue

            # AWS: "db.m5.large" -> 2 vCPU; Azure: "General Purpose, 4 vCores"
            db_class = DB_INSTANCE_CLASS_PATTERN.search(combined)
            vcpu_count: Optional[int] = None
            if db_class:
                size = db_class.group(0).rsplit(".", 1)[-1].lower()
                vcpu_count = AWS_SIZE_TO_VCPU.get(size)
            else:
                vcore = VCORE_PATTERN.search(combined)
                if vcore:
                    vcpu_count = int(vcore.group(1))

            instance_type = db_class.group(0) if db_class else combined[:60]
            return _resolution(instance_type, vcpu_count, sku, False)

        return InstanceResolution(
            instance_type=product_code or product_name,
            vcpu_count=None,
            ocpu_count=1,
            oci_sku=OCI_MYSQL,
            resolution_method=FAMILY_LEVEL,
        )

    def resolve_generic(self, product_code: str, product_name: str) -> Optional[InstanceResolution]:
        """Unknown provider: best-effort AWS-style instance type detection."""
        instance_type = _match(f"{product_code} {product_name}", AWS_INSTANCE_PATTERN)
        if not instance_type:
            return None

        sku = _match_family(instance_type, AWS_FAMILY_TO_OCI_SKU)
        vcpu_count = extract_aws_vcpu_count(instance_type)
        return _resolution(instance_type, vcpu_count, sku, is_arm_instance(instance_type) or sku.is_arm)

    @staticmethod
    def build_formula(
        resolution: InstanceResolution,
        usage_hours: float,
        unit_price: float,
        currency_code: str,
    ) -> str:
        """
        Human-readable pricing formula for audit, e.g.
        "2 OCPU (m5.xlarge: 4vCPU/2) x 744h x 0.025 USD/OCPU-h [B88298 VM.Standard.E4.Flex] [instance-level]"
        """
        if resolution.vcpu_count is not None:
            divisor = "" if resolution.oci_sku.is_arm else "/2"
            ocpu_part = (
                f"{resolution.ocpu_count} OCPU "
                f"({resolution.instance_type}: {resolution.vcpu_count}vCPU{divisor})"
            )
        else:
            ocpu_part = f"{resolution.ocpu_count} OCPU ({resolution.instance_type}, family-level)"

        return (
            f"{ocpu_part} x {_fmt(usage_hours)}h x {_fmt(unit_price)} {currency_code}/OCPU-h"
            f" [{resolution.oci_sku.part_number} {resolution.oci_sku.instance_family}]"
            f" [{resolution.resolution_method}]"
        )


def _resolution(
    instance_type: str,
    vcpu_count: Optional[int],
    sku: SkuDescriptor,
    is_arm: bool,
) -> InstanceResolution:
    return InstanceResolution(
        instance_type=instance_type,
        vcpu_count=vcpu_count,
        ocpu_count=to_ocpu_count(vcpu_count, is_arm),
        oci_sku=sku,
        resolution_method=INSTANCE_LEVEL if vcpu_count is not None else FAMILY_LEVEL,
    )


def _field(record: Any, name: str) -> Any:
    value = record.get(name) if isinstance(record, dict) else getattr(record, name, None)
    # Enum members (ServiceCategory, CloudProvider) compare by value
    return getattr(value, "value", value)


def _fmt(value: float) -> str:
    return f"{value:g}" if isinstance(value, float) else str(value)
