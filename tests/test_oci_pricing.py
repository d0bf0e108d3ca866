from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.modules.modeling.domain.persistence import PriceCacheRepository
from app.modules.modeling.domain.pricing import OciPriceService, parse_price_list_response
from app.modules.modeling.domain.sku_catalog import fallback_price


PRICE_LIST_RESPONSE = {
    "items": [{
        "partNumber": "B88298",
        "prices": [{
            "currencyCode": "USD",
            "prices": [
                {"model": "FREE_TIER", "value": 0},
                {"model": "PAY_AS_YOU_GO", "value": 0.03},
            ],
        }],
    }],
}


class TestParsePriceList:
    def test_pay_as_you_go_value(self):
        assert parse_price_list_response(PRICE_LIST_RESPONSE) == 0.03

    def test_first_price_when_no_payg(self):
        payload = {"items": [{"prices": [{"prices": [{"model": "MONTHLY_COMMIT", "value": "0.02"}]}]}]}
        assert parse_price_list_response(payload) == 0.02

    def test_empty(self):
        assert parse_price_list_response({}) is None
        assert parse_price_list_response({"items": [{"prices": []}]}) is None
        assert parse_price_list_response({"items": [{"prices": [{"prices": []}]}]}) is None


@pytest.mark.asyncio
async def test_cache_tier_wins(db):
    cache = PriceCacheRepository(db)
    await cache.upsert("B88298", "USD", 0.021, sku_name="VM.Standard.E4.Flex")

    with patch.object(OciPriceService, "fetch_live_price", AsyncMock(return_value=0.03)) as live:
        prices = await OciPriceService(cache).fetch_prices(["B88298"], "USD")

    assert prices == {"B88298": 0.021}
    live.assert_not_called()


@pytest.mark.asyncio
async def test_live_tier_is_memoized():
    with patch.object(OciPriceService, "fetch_live_price", AsyncMock(return_value=0.03)) as live:
        service = OciPriceService()
        assert await service.get_unit_price("B88298") == 0.03
        assert await service.get_unit_price("B88298") == 0.03

    live.assert_awaited_once()


@pytest.mark.asyncio
async def test_fallback_when_live_returns_nothing():
    with patch.object(OciPriceService, "fetch_live_price", AsyncMock(return_value=None)):
        prices = await OciPriceService().fetch_prices(["B89879", "B90046"])

    assert prices == {"B89879": 0.0255, "B90046": 0.0085}


@pytest.mark.asyncio
async def test_transport_error_falls_back():
    with patch.object(OciPriceService, "fetch_live_price", AsyncMock(side_effect=httpx.ConnectError("down"))):
        price = await OciPriceService().get_unit_price("B88298")

    assert price == fallback_price("B88298")


@pytest.mark.asyncio
async def test_unexpected_failure_is_isolated_per_part():
    async def live(part_number, currency_code):
        if part_number == "B89879":
            raise RuntimeError("boom")
        return 0.03

    with patch.object(OciPriceService, "fetch_live_price", AsyncMock(side_effect=live)):
        prices = await OciPriceService().fetch_prices(["B88298", "B89879", "", "  "])

    assert prices == {"B88298": 0.03, "B89879": 0.0255}


@pytest.mark.asyncio
async def test_cache_upsert_updates_existing_row(db):
    cache = PriceCacheRepository(db)
    await cache.upsert("B88298", "USD", 0.021, sku_name="VM.Standard.E4.Flex")
    await cache.upsert("B88298", "USD", 0.022)

    row = await cache.get("B88298", "USD")
    assert row.unit_price == 0.022
    assert row.sku_name == "VM.Standard.E4.Flex"
    assert await cache.get_many(["B88298", "B00000"], "USD") == {"B88298": 0.022}
