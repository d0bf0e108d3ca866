"""
Normalization Engine

Maps extracted line items onto the canonical OCI service categories and applies
the FinOps rules used by lift-and-shift modeling:

- x86 Compute: 1 OCPU = 2 vCPUs (ARM shapes are OCPU-native)
- 'windows' anywhere in name/code/category flags license SKU B88318
- Every record is priced at the Paid SKU rate; free tier is never applied
- BRL invoices carry a 13% indirect tax (IOF)

Pure functions, no I/O.
"""

import re
from typing import List, Optional, Tuple

from app.schemas.billing import NormalizedBillingRecord, NormalizedLineItem
from app.shared.core.constants import CloudProvider, ServiceCategory, WINDOWS_OCI_SKU

CategoryTable = List[Tuple[re.Pattern, ServiceCategory]]

# AWS CUR lineItem/UsageType and product names
AWS_USAGE_TYPE_MAP: CategoryTable = [
    (re.compile(r"BoxUsage|SpotUsage|DedicatedUsage|InstanceUsage|HeavyUsage|UnusedBox", re.I), ServiceCategory.COMPUTE),
    (re.compile(r"EBS|VolumeUsage|S3|StorageBytes|Glacier|EFS", re.I), ServiceCategory.STORAGE),
    (re.compile(r"DataTransfer|NatGateway|VPN|CloudFront|DirectConnect|TransitGateway", re.I), ServiceCategory.NETWORK),
    (re.compile(r"RDS|Aurora|DynamoDB|ElastiCache|Redshift|DocumentDB|Neptune", re.I), ServiceCategory.DATABASE),
    (re.compile(r"SageMaker|Bedrock|Comprehend|Rekognition|Polly|Transcribe|Translate", re.I), ServiceCategory.GENAI),
]

# Azure Cost Management MeterCategory
AZURE_METER_CATEGORY_MAP: CategoryTable = [
    (re.compile(r"Virtual Machines|Container Instances|App Service|Functions|Kubernetes", re.I), ServiceCategory.COMPUTE),
    (re.compile(r"Storage|Managed Disks|Data Lake|Backup", re.I), ServiceCategory.STORAGE),
    (re.compile(r"Bandwidth|VPN Gateway|Load Balancer|ExpressRoute|Traffic Manager|CDN", re.I), ServiceCategory.NETWORK),
    (re.compile(r"SQL Database|Azure Database|Cosmos DB|Cache for Redis|Synapse", re.I), ServiceCategory.DATABASE),
    (re.compile(r"Azure OpenAI|Cognitive Services|Machine Learning|Bot Service", re.I), ServiceCategory.GENAI),
]

# GCP billing export service.description
GCP_SERVICE_MAP: CategoryTable = [
    (re.compile(r"Compute Engine|Cloud Run|GKE|App Engine", re.I), ServiceCategory.COMPUTE),
    (re.compile(r"Cloud Storage|Persistent Disk|Filestore", re.I), ServiceCategory.STORAGE),
    (re.compile(r"Networking|Cloud CDN|Cloud Armor|Interconnect", re.I), ServiceCategory.NETWORK),
    (re.compile(r"Cloud SQL|BigQuery|Cloud Spanner|Firestore|Bigtable|AlloyDB", re.I), ServiceCategory.DATABASE),
    (re.compile(r"Vertex AI|AI Platform|Document AI|Translation API|Vision AI", re.I), ServiceCategory.GENAI),
]

GENERIC_KEYWORD_MAP: CategoryTable = [
    (re.compile(r"\b(vm|compute|instance|cpu|ecpu|ocpu|vcpu|server|node)\b", re.I), ServiceCategory.COMPUTE),
    (re.compile(r"\b(storage|disk|bucket|blob|volume|ebs|efs|fss|object store)\b", re.I), ServiceCategory.STORAGE),
    (re.compile(r"\b(network|bandwidth|data.?transfer|vpn|nat|cdn|dns|load.?balance|egress)\b", re.I), ServiceCategory.NETWORK),
    (re.compile(r"\b(database|sql|rds|aurora|cosmos|mongodb|postgresql|mysql|redis|autonomous)\b", re.I), ServiceCategory.DATABASE),
    (re.compile(r"\b(genai|generative|llm|openai|bedrock|sagemaker|vertex|copilot|cognitive|ai.?service)\b", re.I), ServiceCategory.GENAI),
]

PROVIDER_CATEGORY_MAPS = {
    CloudProvider.AWS.value: AWS_USAGE_TYPE_MAP,
    CloudProvider.AZURE.value: AZURE_METER_CATEGORY_MAP,
    CloudProvider.GCP.value: GCP_SERVICE_MAP,
}

ARM_KEYWORDS = re.compile(r"\b(graviton|ampere|a1\.|aarch64|arm64)\b")
VCPU_KEYWORDS = re.compile(r"\b(vcpu|vcore|boxusage|ec2|virtual.?machine|vm\b|instance|core)\b")

# Brazil IOF + indirect taxes on cloud services
BRL_TAX_RATE = 0.13


def resolve_category(raw_category: str, product_name: str, provider: str) -> ServiceCategory:
    """Provider table first, then the generic keywords. First match wins."""
    combined = f"{raw_category} {product_name}"

    for pattern, category in PROVIDER_CATEGORY_MAPS.get((provider or "").lower(), []):
        if pattern.search(combined):
            return category

    for pattern, category in GENERIC_KEYWORD_MAP:
        if pattern.search(combined):
            return category

    return ServiceCategory.OTHER


def compute_oci_equivalent(
    usage_quantity: Optional[float],
    category: ServiceCategory,
    product_name: str,
    raw_category: str,
) -> Optional[float]:
    if usage_quantity is None:
        return None
    if category != ServiceCategory.COMPUTE:
        return usage_quantity

    combined = f"{product_name} {raw_category}".lower()
    if ARM_KEYWORDS.search(combined):
        return usage_quantity
    if VCPU_KEYWORDS.search(combined):
        return usage_quantity / 2
    return usage_quantity


def detect_windows_license(product_name: str, product_code: str, raw_category: str) -> bool:
    return "windows" in f"{product_name} {product_code} {raw_category}".lower()


def derive_unit_price(item: NormalizedLineItem) -> Optional[float]:
    if item.cost_before_tax is not None and item.usage_quantity is not None and item.usage_quantity > 0:
        return round(item.cost_before_tax / item.usage_quantity, 10)
    return None


def apply_brl_tax(item: NormalizedLineItem) -> Tuple[Optional[float], Optional[float]]:
    """(brl_tax_amount, cost_after_tax)"""
    if (item.currency_code or "").upper() != "BRL" or item.cost_before_tax is None:
        return None, item.cost_before_tax

    tax = round(item.cost_before_tax * BRL_TAX_RATE, 4)
    return tax, round(item.cost_before_tax + tax, 4)


class NormalizationEngine:
    def normalize(self, item: NormalizedLineItem, provider: str) -> NormalizedBillingRecord:
        raw_category = item.service_category or ""
        product_name = item.product_name or ""
        product_code = item.product_code or ""

        category = resolve_category(raw_category, product_name, provider)
        is_windows = detect_windows_license(product_name, product_code, raw_category)
        brl_tax, cost_after_tax = apply_brl_tax(item)

        fields = item.model_dump(exclude={"service_category", "unit_price"})
        return NormalizedBillingRecord(
            **fields,
            service_category=category,
            unit_price=derive_unit_price(item),
            oci_equivalent_quantity=compute_oci_equivalent(item.usage_quantity, category, product_name, raw_category),
            is_generative_ai=category == ServiceCategory.GENAI,
            is_windows_licensed=is_windows,
            windows_sku_code=WINDOWS_OCI_SKU if is_windows else None,
            is_paid_sku=True,
            brl_tax_amount=brl_tax,
            cost_after_tax=cost_after_tax,
        )

    def normalize_all(self, items: List[NormalizedLineItem], provider: str) -> List[NormalizedBillingRecord]:
        return [self.normalize(item, provider) for item in items]
