"""
OCI Price Service

Unit price per OCI part number, tried tier by tier:

1. Local price cache table
2. Live Oracle price list (memoized per process, retried on transport errors)
3. Fallback constant from the SKU catalog

A failing tier is logged and the next one is tried; it never aborts the batch.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.shared.core.config import get_settings
from app.modules.modeling.domain.persistence import PriceCacheRepository
from app.modules.modeling.domain.sku_catalog import fallback_price

logger = structlog.get_logger()

PAY_AS_YOU_GO = "PAY_AS_YOU_GO"

# (part_number, currency) -> live unit price. Entries are never overwritten.
_LIVE_PRICE_MEMO: Dict[Tuple[str, str], Optional[float]] = {}
MAX_MEMO_ENTRIES = 2048

PriceTier = Tuple[str, Callable[[], Awaitable[Optional[float]]]]


def parse_price_list_response(payload: Dict[str, Any]) -> Optional[float]:
    """Pay-as-you-go value of the first item in an Oracle price list response."""
    items = payload.get("items") or []
    if not items:
        return None
    containers = items[0].get("prices") or []
    if not containers:
        return None
    inner = containers[0].get("prices") or []
    payg = next((p for p in inner if p.get("model") == PAY_AS_YOU_GO), inner[0] if inner else None)
    if payg is None or payg.get("value") is None:
        return None
    return float(payg["value"])


def clear_price_memo() -> None:
    _LIVE_PRICE_MEMO.clear()


class OciPriceService:
    def __init__(self, cache_repository: Optional[PriceCacheRepository] = None):
        self.settings = get_settings()
        self.cache_repository = cache_repository

    async def get_unit_price(self, part_number: str, currency_code: str = "USD") -> float:
        cached = await self._cached_prices([part_number], currency_code)
        return await self._resolve(part_number, currency_code, cached.get(part_number))

    async def fetch_prices(self, part_numbers: Iterable[str], currency_code: str = "USD") -> Dict[str, float]:
        """
        Resolve every part number concurrently.
        An unexpected failure for one part is replaced by its fallback price.
        """
        parts: List[str] = sorted({p for p in part_numbers if p and p.strip()})
        cached = await self._cached_prices(parts, currency_code)

        results = await asyncio.gather(
            *(self._resolve(part, currency_code, cached.get(part)) for part in parts),
            return_exceptions=True,
        )

        prices: Dict[str, float] = {}
        for part, result in zip(parts, results):
            if isinstance(result, BaseException):
                logger.warning("oci_price_lookup_failed", part_number=part, error=str(result))
                prices[part] = fallback_price(part)
            else:
                prices[part] = result
        return prices

    def price_tiers(self, part_number: str, currency_code: str, cached: Optional[float]) -> List[PriceTier]:
        async def from_cache() -> Optional[float]:
            return cached

        async def from_live() -> Optional[float]:
            return await self._memoized_live_price(part_number, currency_code)

        return [("cache", from_cache), ("live", from_live)]

    async def _resolve(self, part_number: str, currency_code: str, cached: Optional[float]) -> float:
        for tier, lookup in self.price_tiers(part_number, currency_code, cached):
            try:
                price = await lookup()
            except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
                logger.warning("oci_price_tier_failed", tier=tier, part_number=part_number, error=str(e))
                continue
            if price is not None and price > 0:
                logger.debug("oci_price_resolved", tier=tier, part_number=part_number, unit_price=price)
                return price

        price = fallback_price(part_number)
        logger.warning("oci_price_fallback", part_number=part_number, currency=currency_code, unit_price=price)
        return price

    async def _cached_prices(self, part_numbers: List[str], currency_code: str) -> Dict[str, float]:
        if self.cache_repository is None:
            return {}
        try:
            return await self.cache_repository.get_many(part_numbers, currency_code)
        except SQLAlchemyError as e:
            logger.warning("oci_price_cache_unavailable", error=str(e))
            return {}

    async def _memoized_live_price(self, part_number: str, currency_code: str) -> Optional[float]:
        key = (part_number, currency_code)
        if key in _LIVE_PRICE_MEMO:
            return _LIVE_PRICE_MEMO[key]

        price = await self.fetch_live_price(part_number, currency_code)
        if len(_LIVE_PRICE_MEMO) < MAX_MEMO_ENTRIES:
            _LIVE_PRICE_MEMO.setdefault(key, price)
        return price

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def fetch_live_price(self, part_number: str, currency_code: str) -> Optional[float]:
        async with httpx.AsyncClient(timeout=self.settings.OCI_PRICE_TIMEOUT_SECONDS) as client:
            response = await client.get(
                self.settings.OCI_PRICE_API_URL,
                params={"partNumber": part_number, "currencyCode": currency_code},
            )
            response.raise_for_status()
            return parse_price_list_response(response.json())
