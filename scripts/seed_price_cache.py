import asyncio
import sys
import os

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app.shared.db.session import async_session_maker, engine, init_db
from app.modules.modeling.domain.persistence import PriceCacheRepository
from app.modules.modeling.domain.sku_catalog import CATEGORY_SKU_MAP, OCI_WINDOWS_LICENSE


async def seed_data(currency_code: str = "USD"):
    """Seed the local price cache with the catalog list prices of the category SKUs."""
    print("Seeding OCI price cache...")
    await init_db()

    async with async_session_maker() as db:
        repo = PriceCacheRepository(db)
        for category, sku in CATEGORY_SKU_MAP.items():
            await repo.upsert(
                sku.part_number,
                currency_code,
                sku.fallback_unit_price,
                sku_name=sku.sku_name,
                metric_name=sku.unit,
                service_category=category.value,
            )
            print(f"  + {sku.part_number} {sku.sku_name}: {sku.fallback_unit_price} {currency_code}")

        await repo.upsert(
            OCI_WINDOWS_LICENSE.part_number,
            currency_code,
            OCI_WINDOWS_LICENSE.fallback_unit_price,
            sku_name=OCI_WINDOWS_LICENSE.sku_name,
            metric_name=OCI_WINDOWS_LICENSE.unit,
            service_category="Compute",
        )

    print("Seeding complete!")
    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(seed_data(sys.argv[1] if len(sys.argv) > 1 else "USD"))
