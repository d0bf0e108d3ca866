import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from app.models.billing import DocumentUpload, UnifiedBilling
from app.models.modeling import OciCostModeling
from app.modules.modeling.domain.pricing import OciPriceService
from app.modules.modeling.domain.service import LiftAndShiftModeler
from app.shared.core.constants import ServiceCategory


@pytest.fixture(autouse=True)
def no_live_prices():
    with patch.object(OciPriceService, "fetch_live_price", AsyncMock(return_value=None)) as live:
        yield live


async def _seed(db, records):
    upload = DocumentUpload(original_name="cur.csv", mime_type="text/csv", size=1, status="completed")
    db.add(upload)
    await db.flush()
    db.add_all([
        UnifiedBilling(upload_id=upload.id, position=position, **record)
        for position, record in enumerate(records)
    ])
    await db.commit()
    return upload.id


WINDOWS_ON_DEMAND = {
    "provider": "aws",
    "product_code": "BoxUsage:m5.xlarge",
    "product_name": "Windows Server m5.xlarge",
    "service_category": ServiceCategory.COMPUTE.value,
    "usage_quantity": 100.0,
    "oci_equivalent_quantity": 50.0,
    "cost_before_tax": 50.0,
    "cost_after_tax": 50.0,
    "is_windows_licensed": True,
    "windows_sku_code": "B88318",
}

SPOT_NO_QUANTITY = {
    "provider": "aws",
    "product_name": "EC2 Spot m5.large",
    "service_category": ServiceCategory.COMPUTE.value,
    "cost_before_tax": 20.0,
    "cost_after_tax": 20.0,
}


@pytest.mark.asyncio
async def test_windows_and_spot_rows(db):
    upload_id = await _seed(db, [WINDOWS_ON_DEMAND, SPOT_NO_QUANTITY])

    result = await LiftAndShiftModeler(db).model(str(upload_id))

    windows, spot = result.rows
    assert windows.oci_sku_part_number == "B88298"
    assert windows.oci_equivalent_quantity == 200.0
    assert windows.pricing_method == "quantity"
    assert windows.has_windows_license is True
    assert windows.windows_license_cost == pytest.approx(18.4)
    assert windows.oci_estimated_cost == pytest.approx(23.4)
    assert windows.pricing_formula == (
        "2 OCPU (m5.xlarge: 4vCPU/2) x 100h x 0.025 USD/OCPU-h [B88298 VM.Standard.E4.Flex] [instance-level]"
    )

    assert spot.is_spot_converted is True
    assert spot.has_windows_license is False
    assert spot.pricing_method == "ratio"
    assert spot.oci_estimated_cost == 13.0
    assert spot.pricing_formula == "20 USD x (1 - 0.35) [B88298] [ratio]"

    assert result.source_provider == "aws"
    assert result.summary.total_source_cost == 70.0
    assert result.summary.total_oci_estimated_cost == pytest.approx(36.4)
    assert result.summary.total_savings == pytest.approx(33.6)
    assert result.summary.total_savings_pct == 48.0
    assert list(result.summary.by_category) == ["Compute"]


@pytest.mark.asyncio
async def test_stored_result_keeps_flags(db):
    upload_id = await _seed(db, [WINDOWS_ON_DEMAND, SPOT_NO_QUANTITY])
    modeler = LiftAndShiftModeler(db)
    fresh = await modeler.model(str(upload_id))

    with patch.object(OciPriceService, "fetch_prices", AsyncMock()) as fetch:
        stored = await modeler.get_modeling_result(str(upload_id))
    fetch.assert_not_called()

    assert [r.has_windows_license for r in stored.rows] == [True, False]
    assert [r.is_spot_converted for r in stored.rows] == [False, True]
    assert stored.summary == fresh.summary


@pytest.mark.asyncio
async def test_remodeling_replaces_rows(db):
    upload_id = await _seed(db, [WINDOWS_ON_DEMAND, SPOT_NO_QUANTITY])
    modeler = LiftAndShiftModeler(db)

    first = await modeler.model(str(upload_id))
    second = await modeler.model(str(upload_id))

    count = await db.scalar(
        select(func.count()).select_from(OciCostModeling).where(OciCostModeling.upload_id == upload_id)
    )
    assert count == 2
    assert second.summary.model_dump() == first.summary.model_dump()
    assert second.summary.total_oci_estimated_cost == pytest.approx(36.4)
    assert [row.model_dump() for row in second.rows] == [row.model_dump() for row in first.rows]


@pytest.mark.asyncio
async def test_database_and_other_categories(db):
    upload_id = await _seed(db, [
        {
            "provider": "azure",
            "product_name": "Azure Database for PostgreSQL",
            "service_category": ServiceCategory.DATABASE.value,
            "cost_before_tax": 100.0,
            "cost_after_tax": 100.0,
        },
        {
            "provider": "azure",
            "product_name": "Support plan",
            "service_category": ServiceCategory.OTHER.value,
            "usage_quantity": 1.0,
            "oci_equivalent_quantity": 1.0,
            "cost_before_tax": 29.0,
            "cost_after_tax": 29.0,
        },
    ])

    result = await LiftAndShiftModeler(db).model(str(upload_id))

    database, other = result.rows
    assert database.oci_sku_part_number == "B103399"
    assert database.oci_estimated_cost == 60.0
    assert other.pricing_method == "ratio"
    assert other.oci_estimated_cost == pytest.approx(20.3)
    assert result.source_provider == "azure"


@pytest.mark.asyncio
async def test_brl_cost_after_tax_is_source_cost(db):
    upload_id = await _seed(db, [{
        "provider": "azure",
        "product_name": "Storage - LRS",
        "service_category": ServiceCategory.STORAGE.value,
        "cost_before_tax": 100.0,
        "brl_tax_amount": 13.0,
        "cost_after_tax": 113.0,
        "currency_code": "BRL",
    }])

    result = await LiftAndShiftModeler(db).model(str(upload_id), currency_code="BRL")

    row = result.rows[0]
    assert row.source_cost == 113.0
    assert row.source_currency_code == "BRL"
    assert result.currency_code == "BRL"


@pytest.mark.asyncio
async def test_upload_without_records(db):
    modeler = LiftAndShiftModeler(db)
    upload_id = str(uuid.uuid4())

    result = await modeler.model(upload_id)

    assert result.rows == []
    assert result.summary.total_source_cost == 0.0
    assert result.summary.total_savings_pct == 0.0
    assert await modeler.get_modeling_result(upload_id) is None
