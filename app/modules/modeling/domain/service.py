"""
Lift-and-Shift Cost Modeler

Compares every unified billing record of an upload against its OCI equivalent.
Re-running for the same upload replaces the previous rows.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.billing import UnifiedBilling
from app.models.modeling import OciCostModeling
from app.schemas.modeling import CategoryBreakdown, LiftAndShiftResult, LiftAndShiftRow, LiftAndShiftSummary
from app.shared.core.constants import CloudProvider, ServiceCategory, WINDOWS_OCI_SKU
from app.modules.modeling.domain.estimator import QUANTITY_METHOD, estimate, savings_factor
from app.modules.modeling.domain.instance_resolver import InstanceResolution, InstanceResolver
from app.modules.modeling.domain.persistence import ModelingRepository, PriceCacheRepository
from app.modules.modeling.domain.pricing import OciPriceService
from app.modules.modeling.domain.sku_catalog import (
    CATEGORY_SKU_MAP,
    WINDOWS_LICENSE_PRICE_PER_OCPU_HOUR,
    SkuDescriptor,
    category_sku,
    resolve_database_sku,
)

logger = structlog.get_logger()

SPOT_PATTERN = re.compile(r"\bspot\b", re.I)


@dataclass
class SkuPlan:
    """Target SKU and billing quantity for one record."""
    sku: SkuDescriptor
    quantity: Optional[float]
    resolution: Optional[InstanceResolution] = None


def _category(value: Any) -> ServiceCategory:
    try:
        return ServiceCategory(value)
    except ValueError:
        return ServiceCategory.OTHER


def _fmt(value: float) -> str:
    return f"{value:g}"


class LiftAndShiftModeler:
    def __init__(
        self,
        db: AsyncSession,
        price_service: Optional[OciPriceService] = None,
        instance_resolver: Optional[InstanceResolver] = None,
    ):
        self.repository = ModelingRepository(db)
        self.price_service = price_service or OciPriceService(PriceCacheRepository(db))
        self.instance_resolver = instance_resolver or InstanceResolver()

    def plan_sku(self, record: UnifiedBilling) -> SkuPlan:
        category = _category(record.service_category)

        if category == ServiceCategory.DATABASE:
            return SkuPlan(
                sku=resolve_database_sku(record.product_name or "", record.product_code or ""),
                quantity=record.oci_equivalent_quantity,
            )

        if category == ServiceCategory.COMPUTE:
            resolution = self.instance_resolver.resolve_for_record(record)
            if resolution is not None:
                quantity = None
                if record.usage_quantity is not None:
                    quantity = record.usage_quantity * resolution.ocpu_count
                return SkuPlan(sku=resolution.oci_sku, quantity=quantity, resolution=resolution)

        return SkuPlan(sku=category_sku(category.value), quantity=record.oci_equivalent_quantity)

    async def model(self, upload_id: str, currency_code: str = "USD") -> LiftAndShiftResult:
        logger.info("lift_and_shift_started", upload_id=str(upload_id), currency=currency_code)

        records = await self.repository.find_billing_records(upload_id)
        if not records:
            return self.empty_result(upload_id, currency_code)

        await self.repository.delete_by_upload(upload_id)

        provider = next(
            (r.provider for r in records if r.provider and r.provider != CloudProvider.UNKNOWN.value),
            records[0].provider or CloudProvider.UNKNOWN.value,
        )

        plans = [self.plan_sku(record) for record in records]
        part_numbers = {plan.sku.part_number for plan in plans}
        part_numbers.add(WINDOWS_OCI_SKU)
        prices = await self.price_service.fetch_prices(part_numbers, currency_code)

        windows_price = prices.get(WINDOWS_OCI_SKU) or WINDOWS_LICENSE_PRICE_PER_OCPU_HOUR
        compute_sku = CATEGORY_SKU_MAP[ServiceCategory.COMPUTE]
        compute_base_price = prices.get(compute_sku.part_number) or compute_sku.fallback_unit_price

        rows: List[LiftAndShiftRow] = []
        inserts: List[Dict[str, Any]] = []
        spot_count = windows_count = 0

        for position, (record, plan) in enumerate(zip(records, plans)):
            category = _category(record.service_category)
            product_name = record.product_name or ""
            product_code = record.product_code or ""
            unit_price = prices.get(plan.sku.part_number) or plan.sku.fallback_unit_price

            source_cost = record.cost_after_tax
            if source_cost is None:
                source_cost = record.cost_before_tax if record.cost_before_tax is not None else 0.0

            is_spot = provider == CloudProvider.AWS.value and bool(
                SPOT_PATTERN.search(f"{product_name} {product_code} {record.source_resource_id or ''}")
            )
            if is_spot:
                spot_count += 1
                logger.debug("spot_converted_to_on_demand", upload_id=str(upload_id), product=product_name)

            has_windows = bool(record.is_windows_licensed) and category == ServiceCategory.COMPUTE
            result = estimate(
                category=category,
                source_cost=source_cost,
                quantity=plan.quantity,
                unit_price=unit_price,
                is_windows=has_windows,
                windows_price=windows_price,
                compute_base_price=compute_base_price,
            )

            if result.quantity_based_cost is not None and result.method != QUANTITY_METHOD:
                logger.debug(
                    "unit_mismatch_fallback",
                    upload_id=str(upload_id),
                    product=product_name,
                    quantity_based_cost=result.quantity_based_cost,
                    ratio_based_cost=result.oci_estimated_cost - result.windows_license_cost,
                )
            if has_windows:
                windows_count += 1
                logger.debug(
                    "windows_license_added",
                    upload_id=str(upload_id),
                    product=product_name,
                    license_cost=result.windows_license_cost,
                )

            row = LiftAndShiftRow(
                source_service=product_name or product_code or category.value,
                service_category=category.value,
                source_provider=record.provider or provider,
                source_cost=source_cost,
                source_currency_code=record.currency_code or currency_code,
                oci_sku_part_number=plan.sku.part_number,
                oci_sku_name=plan.sku.sku_name,
                oci_equivalent_quantity=plan.quantity,
                oci_unit=plan.sku.unit,
                oci_unit_price=unit_price,
                oci_estimated_cost=result.oci_estimated_cost,
                savings_amount=result.savings_amount,
                savings_pct=result.savings_pct,
                is_spot_converted=is_spot,
                has_windows_license=has_windows,
                windows_license_cost=result.windows_license_cost,
                pricing_method=result.method,
                pricing_formula=self.pricing_formula(plan, record, category, source_cost, unit_price, currency_code, result.method),
            )
            rows.append(row)
            inserts.append({
                **row.model_dump(),
                "upload_id": record.upload_id,
                "billing_id": record.id,
                "position": position,
            })

        await self.repository.insert_many(inserts)

        if spot_count:
            logger.info("spot_instances_converted", upload_id=str(upload_id), count=spot_count)
        if windows_count:
            logger.info(
                "windows_licenses_charged",
                upload_id=str(upload_id),
                count=windows_count,
                part_number=WINDOWS_OCI_SKU,
                unit_price=windows_price,
            )

        result = self.build_result(upload_id, provider, currency_code, rows)
        logger.info(
            "lift_and_shift_complete",
            upload_id=str(upload_id),
            records=len(rows),
            total_source_cost=result.summary.total_source_cost,
            total_oci_cost=result.summary.total_oci_estimated_cost,
            savings_pct=result.summary.total_savings_pct,
        )
        return result

    async def get_modeling_result(self, upload_id: str, currency_code: str = "USD") -> Optional[LiftAndShiftResult]:
        """Rebuild a previous result from stored rows. No pricing lookups."""
        stored = await self.repository.find_modeled_rows(upload_id)
        if not stored:
            return None

        rows = [self._row_from_model(row, currency_code) for row in stored]
        provider = next(
            (r.source_provider for r in rows if r.source_provider != CloudProvider.UNKNOWN.value),
            CloudProvider.UNKNOWN.value,
        )
        return self.build_result(upload_id, provider, currency_code, rows)

    @staticmethod
    def pricing_formula(
        plan: SkuPlan,
        record: UnifiedBilling,
        category: ServiceCategory,
        source_cost: float,
        unit_price: float,
        currency_code: str,
        method: str,
    ) -> str:
        if method != QUANTITY_METHOD:
            return (
                f"{_fmt(source_cost)} {currency_code} x (1 - {_fmt(savings_factor(category))})"
                f" [{plan.sku.part_number}] [ratio]"
            )
        if plan.resolution is not None:
            return InstanceResolver.build_formula(plan.resolution, record.usage_quantity or 0.0, unit_price, currency_code)
        return (
            f"{_fmt(plan.quantity or 0.0)} {plan.sku.unit} x {_fmt(unit_price)} {currency_code}"
            f" [{plan.sku.part_number}] [category-level]"
        )

    @staticmethod
    def _row_from_model(row: OciCostModeling, currency_code: str) -> LiftAndShiftRow:
        return LiftAndShiftRow(
            source_service=row.source_service or "Unknown",
            service_category=row.service_category or ServiceCategory.OTHER.value,
            source_provider=row.source_provider or CloudProvider.UNKNOWN.value,
            source_cost=row.source_cost or 0.0,
            source_currency_code=row.source_currency_code or currency_code,
            oci_sku_part_number=row.oci_sku_part_number or "",
            oci_sku_name=row.oci_sku_name or "",
            oci_equivalent_quantity=row.oci_equivalent_quantity,
            oci_unit=row.oci_unit or "",
            oci_unit_price=row.oci_unit_price or 0.0,
            oci_estimated_cost=row.oci_estimated_cost or 0.0,
            savings_amount=row.savings_amount or 0.0,
            savings_pct=row.savings_pct or 0.0,
            is_spot_converted=bool(row.is_spot_converted),
            has_windows_license=bool(row.has_windows_license),
            windows_license_cost=row.windows_license_cost or 0.0,
            pricing_method=row.pricing_method,
            pricing_formula=row.pricing_formula,
        )

    @staticmethod
    def build_result(
        upload_id: str,
        provider: str,
        currency_code: str,
        rows: Sequence[LiftAndShiftRow],
    ) -> LiftAndShiftResult:
        by_category: Dict[str, CategoryBreakdown] = {}
        total_source = total_oci = 0.0

        for row in rows:
            total_source += row.source_cost
            total_oci += row.oci_estimated_cost
            bucket = by_category.setdefault(row.service_category, CategoryBreakdown())
            bucket.source_cost += row.source_cost
            bucket.oci_cost += row.oci_estimated_cost
            bucket.savings += row.savings_amount

        for bucket in by_category.values():
            bucket.source_cost = round(bucket.source_cost, 4)
            bucket.oci_cost = round(bucket.oci_cost, 4)
            bucket.savings = round(bucket.savings, 4)

        total_source = round(total_source, 4)
        total_oci = round(total_oci, 4)
        total_savings = round(total_source - total_oci, 4)

        return LiftAndShiftResult(
            upload_id=str(upload_id),
            source_provider=provider,
            currency_code=currency_code,
            rows=list(rows),
            summary=LiftAndShiftSummary(
                total_source_cost=total_source,
                total_oci_estimated_cost=total_oci,
                total_savings=total_savings,
                total_savings_pct=round(total_savings / total_source * 100, 2) if total_source > 0 else 0.0,
                by_category=by_category,
            ),
        )

    @staticmethod
    def empty_result(upload_id: str, currency_code: str) -> LiftAndShiftResult:
        return LiftAndShiftResult(
            upload_id=str(upload_id),
            source_provider=CloudProvider.UNKNOWN.value,
            currency_code=currency_code,
        )
