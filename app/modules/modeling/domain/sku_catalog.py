"""
OCI SKU Catalog

Static reference data for the lift-and-shift modeler: OCI paid SKUs, the
source instance family tables that point at them, and per-category defaults.
All prices are USD Pay-As-You-Go list prices used when neither the local price
cache nor the live Oracle price list returns a value. Free Tier is never applied.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.shared.core.constants import ServiceCategory, WINDOWS_OCI_SKU


@dataclass(frozen=True)
class SkuDescriptor:
    part_number: str
    sku_name: str
    unit: str  # 'OCPU-hours' | 'GB-month' | 'GB' | 'GB-hours' | 'units'
    fallback_unit_price: float
    instance_family: str = ""
    is_arm: bool = False


# Compute shapes
OCI_E4_FLEX = SkuDescriptor("B88298", "VM.Standard.E4.Flex - OCPU per Hour", "OCPU-hours", 0.025, "VM.Standard.E4.Flex")
OCI_OPT3_FLEX = SkuDescriptor("B89878", "VM.Optimized3.Flex - OCPU per Hour", "OCPU-hours", 0.054, "VM.Optimized3.Flex")
OCI_A1_FLEX = SkuDescriptor("B94073", "VM.Standard.A1.Flex - OCPU per Hour", "OCPU-hours", 0.01, "VM.Standard.A1.Flex", is_arm=True)

# Database engines (instance resolver)
OCI_MYSQL = SkuDescriptor("B89021", "MySQL Database Service - OCPU per Hour", "OCPU-hours", 0.0544, "MySQL Database Service")
OCI_POSTGRESQL = SkuDescriptor("B91399", "PostgreSQL Database Service - OCPU per Hour", "OCPU-hours", 0.0544, "PostgreSQL Database Service")
OCI_SQL_SERVER_STANDARD = SkuDescriptor("B91600", "SQL Server Standard License - OCPU per Hour", "OCPU-hours", 0.37, "SQL Server Standard")
OCI_ORACLE_DB_SE2 = SkuDescriptor("B87905", "Oracle Database Standard Edition 2 - OCPU per Hour", "OCPU-hours", 0.2188, "Oracle Database SE2")

# Windows Server license, charged per OCPU-hour on top of the compute shape
WINDOWS_LICENSE_PRICE_PER_OCPU_HOUR = 0.092
OCI_WINDOWS_LICENSE = SkuDescriptor(
    WINDOWS_OCI_SKU, "Windows Server License - OCPU per Hour", "OCPU-hours",
    WINDOWS_LICENSE_PRICE_PER_OCPU_HOUR, "Windows Server",
)

SkuPatternTable = List[Tuple[re.Pattern, SkuDescriptor]]

# First match wins. More specific prefixes first.
AWS_FAMILY_TO_OCI_SKU: SkuPatternTable = [
    (re.compile(r"^(a1|t4g|m6g|m7g|c6g|c7g|r6g|r7g|g\d+g|inf\d+|trn\d+)", re.I), OCI_A1_FLEX),
    (re.compile(r"^(c\d|hpc\d)", re.I), OCI_OPT3_FLEX),
    (re.compile(r"^(t|m|r|x|z|i|d|f|g|p|vt|dl|im|is|u)", re.I), OCI_E4_FLEX),
]

# Canonical AWS size suffix -> vCPU count
AWS_SIZE_TO_VCPU: Dict[str, int] = {
    "nano": 2,
    "micro": 2,
    "small": 2,
    "medium": 2,
    "large": 2,
    "xlarge": 4,
    "2xlarge": 8,
    "3xlarge": 12,
    "4xlarge": 16,
    "6xlarge": 24,
    "8xlarge": 32,
    "9xlarge": 36,
    "10xlarge": 40,
    "12xlarge": 48,
    "16xlarge": 64,
    "18xlarge": 72,
    "24xlarge": 96,
    "32xlarge": 128,
    "48xlarge": 192,
    "56xlarge": 224,
    "96xlarge": 384,
    # Bare metal: use the largest standard size of the family as baseline
    "metal": 96,
    "metal-24xl": 96,
    "metal-32xl": 128,
    "metal-48xl": 192,
}

AZURE_FAMILY_TO_OCI_SKU: SkuPatternTable = [
    (re.compile(r"^Standard_F", re.I), OCI_OPT3_FLEX),
    (re.compile(r"^Standard_D(\d+)p", re.I), OCI_A1_FLEX),
    (re.compile(r"^Standard_E(\d+)p", re.I), OCI_A1_FLEX),
    (re.compile(r"^Standard_(D|E|B|A|L|M|N|H|G|ND|NC|NV|DC|Eb|Ep|Db|Dp|Lsv|Msv|Mv)", re.I), OCI_E4_FLEX),
]

GCP_FAMILY_TO_OCI_SKU: SkuPatternTable = [
    (re.compile(r"^t2a", re.I), OCI_A1_FLEX),
    (re.compile(r"^(c2|c2d|c3|h3|n2-highcpu)", re.I), OCI_OPT3_FLEX),
    (re.compile(r"^(n1|n2|n4|e2|m1|m2|m3|a2|g2|t2d)", re.I), OCI_E4_FLEX),
]

# Matched against "productName productCode"
DB_ENGINE_TO_OCI_SKU: SkuPatternTable = [
    (re.compile(r"sql[\s_-]?server[\s_-]?standard|sqlstd|mssql.?std", re.I), OCI_SQL_SERVER_STANDARD),
    (re.compile(r"\boracle[\s_-]?db|oracle[\s_-]?database|oracle.?standard", re.I), OCI_ORACLE_DB_SE2),
    (re.compile(r"postgres|pgsql|aurora[\s_-]?postgres", re.I), OCI_POSTGRESQL),
    (re.compile(r"mysql|mariadb|aurora[\s_-]?mysql|aurora(?!.*postgres)", re.I), OCI_MYSQL),
    (re.compile(r"dynamo|redis|elasticache|cosmos|cassandra|mongo|docdb|neptune|bigtable|spanner|firestore", re.I), OCI_MYSQL),
]

# Category-level database sub-types, used when the record is modeled without
# instance-level detail. PostgreSQL stays PostgreSQL, SQL Server stays SQL Server.
DATABASE_DEFAULT_SKU = SkuDescriptor("B89021", "MySQL HeatWave - OCPU per Hour", "OCPU-hours", 0.0544, "MySQL HeatWave")

DATABASE_SUBTYPE_MAP: SkuPatternTable = [
    (
        re.compile(r"sql.?server|sqlserver|mssql|sql express", re.I),
        SkuDescriptor("B88439", "DBCS SQL Server Standard - OCPU per Hour (incl. license)", "OCPU-hours", 0.37, "DBCS SQL Server"),
    ),
    (
        re.compile(r"postgres|aurora.?postgres|pg\b", re.I),
        SkuDescriptor("B103399", "PostgreSQL Database - OCPU per Hour", "OCPU-hours", 0.0544, "PostgreSQL Database"),
    ),
    (
        re.compile(r"redshift|athena|bigquery|synapse|data.?warehouse|dwh", re.I),
        SkuDescriptor("B91962", "Autonomous Data Warehouse - OCPU per Hour", "OCPU-hours", 0.26, "Autonomous Data Warehouse"),
    ),
    (
        re.compile(r"dynamo|documentdb|mongodb|neptune|cosmos|firestore|nosql", re.I),
        SkuDescriptor("B89037", "NoSQL Database - On-Demand", "units", 0.0025, "NoSQL Database"),
    ),
    (
        re.compile(r"elasticache|redis|memcache|cache for redis", re.I),
        SkuDescriptor("B103069", "Cache with Redis - GB per Hour", "GB-hours", 0.013, "Cache with Redis"),
    ),
    (
        re.compile(r"mysql|aurora.?mysql|mariadb|aurora\b", re.I),
        DATABASE_DEFAULT_SKU,
    ),
]

CATEGORY_SKU_MAP: Dict[ServiceCategory, SkuDescriptor] = {
    ServiceCategory.COMPUTE: OCI_E4_FLEX,
    ServiceCategory.STORAGE: SkuDescriptor("B89879", "Block Volume Storage Capacity - GB per Month", "GB-month", 0.0255, "Block Volume"),
    ServiceCategory.NETWORK: SkuDescriptor("B90046", "Outbound Data Transfer - GB", "GB", 0.0085, "Outbound Data Transfer"),
    ServiceCategory.DATABASE: DATABASE_DEFAULT_SKU,
    ServiceCategory.GENAI: SkuDescriptor("B103447", "OCI Generative AI - On-Demand Inference", "units", 0.006, "OCI Generative AI"),
    ServiceCategory.OTHER: SkuDescriptor("B88298", "VM.Standard.E4.Flex - OCPU per Hour (fallback)", "OCPU-hours", 0.025, "VM.Standard.E4.Flex"),
}

# Ratio-based savings factors: estimate = source cost x (1 - factor)
SAVINGS_FACTOR: Dict[ServiceCategory, float] = {
    ServiceCategory.COMPUTE: 0.35,
    ServiceCategory.STORAGE: 0.28,
    ServiceCategory.NETWORK: 0.55,
    ServiceCategory.DATABASE: 0.40,
    ServiceCategory.GENAI: 0.25,
    ServiceCategory.OTHER: 0.30,
}
DEFAULT_SAVINGS_FACTOR = 0.30


def _all_descriptors() -> List[SkuDescriptor]:
    descriptors: List[SkuDescriptor] = [
        OCI_E4_FLEX, OCI_OPT3_FLEX, OCI_A1_FLEX,
        OCI_MYSQL, OCI_POSTGRESQL, OCI_SQL_SERVER_STANDARD, OCI_ORACLE_DB_SE2,
    ]
    descriptors.extend(CATEGORY_SKU_MAP.values())
    descriptors.extend(sku for _, sku in DATABASE_SUBTYPE_MAP)
    descriptors.append(OCI_WINDOWS_LICENSE)
    return descriptors


# part number -> USD fallback price. First registration of a part number wins.
FALLBACK_PRICE_BY_PART_NUMBER: Dict[str, float] = {}
for _sku in _all_descriptors():
    FALLBACK_PRICE_BY_PART_NUMBER.setdefault(_sku.part_number, _sku.fallback_unit_price)


def fallback_price(part_number: str) -> float:
    return FALLBACK_PRICE_BY_PART_NUMBER.get(part_number, 0.0)


def category_sku(category: Optional[str]) -> SkuDescriptor:
    try:
        return CATEGORY_SKU_MAP[ServiceCategory(category)]
    except ValueError:
        return CATEGORY_SKU_MAP[ServiceCategory.OTHER]


def resolve_database_sku(product_name: str, product_code: str) -> SkuDescriptor:
    """Pick the database sub-type SKU from product name and code (default MySQL HeatWave)."""
    combined = f"{product_name} {product_code}"
    for pattern, sku in DATABASE_SUBTYPE_MAP:
        if pattern.search(combined):
            return sku
    return DATABASE_DEFAULT_SKU
