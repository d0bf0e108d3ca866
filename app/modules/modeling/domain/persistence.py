import uuid
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.billing import UnifiedBilling
from app.models.modeling import OciCostModeling
from app.models.pricing import OciPriceCache

logger = structlog.get_logger()


def _as_uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class ModelingRepository:
    """Reads unified billing records and stores lift-and-shift rows per upload."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_billing_records(self, upload_id: Any) -> List[UnifiedBilling]:
        result = await self.db.execute(
            select(UnifiedBilling)
            .where(UnifiedBilling.upload_id == _as_uuid(upload_id))
            .order_by(UnifiedBilling.position)
        )
        return list(result.scalars().all())

    async def find_modeled_rows(self, upload_id: Any) -> List[OciCostModeling]:
        result = await self.db.execute(
            select(OciCostModeling)
            .where(
                OciCostModeling.upload_id == _as_uuid(upload_id),
                OciCostModeling.oci_estimated_cost.is_not(None),
            )
            .order_by(OciCostModeling.position)
        )
        return list(result.scalars().all())

    async def delete_by_upload(self, upload_id: Any) -> int:
        result = await self.db.execute(
            delete(OciCostModeling).where(OciCostModeling.upload_id == _as_uuid(upload_id))
        )
        await self.db.commit()
        return result.rowcount or 0

    async def insert_many(self, rows: Sequence[Dict[str, Any]]) -> None:
        if not rows:
            return
        self.db.add_all([OciCostModeling(**row) for row in rows])
        await self.db.commit()


class PriceCacheRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, part_number: str, currency_code: str) -> Optional[OciPriceCache]:
        result = await self.db.execute(
            select(OciPriceCache).where(
                OciPriceCache.part_number == part_number,
                OciPriceCache.currency_code == currency_code,
            )
        )
        return result.scalar_one_or_none()

    async def get_many(self, part_numbers: Sequence[str], currency_code: str) -> Dict[str, float]:
        """part number -> cached unit price, for every part with a cached row."""
        if not part_numbers:
            return {}
        result = await self.db.execute(
            select(OciPriceCache).where(
                OciPriceCache.part_number.in_(list(part_numbers)),
                OciPriceCache.currency_code == currency_code,
            )
        )
        return {row.part_number: row.unit_price for row in result.scalars().all()}

    async def upsert(
        self,
        part_number: str,
        currency_code: str,
        unit_price: float,
        sku_name: Optional[str] = None,
        metric_name: Optional[str] = None,
        service_category: Optional[str] = None,
    ) -> OciPriceCache:
        row = await self.get(part_number, currency_code)
        if row is None:
            row = OciPriceCache(part_number=part_number, currency_code=currency_code, unit_price=unit_price)
            self.db.add(row)
        row.unit_price = unit_price
        row.sku_name = sku_name or row.sku_name
        row.metric_name = metric_name or row.metric_name
        row.service_category = service_category or row.service_category
        await self.db.commit()
        logger.debug("oci_price_cached", part_number=part_number, currency=currency_code, unit_price=unit_price)
        return row
