"""
Cost Summary Aggregator

Per-upload totals by service and region. Sums are kept unrounded and rounded
half-up to cents only when the summary is assembled.
"""

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional, Sequence

from app.schemas.billing import CostSummary, CostSummaryItem, NormalizedLineItem
from app.shared.core.constants import DEFAULT_CURRENCY

UNKNOWN_KEY = "Unknown"
CENTS = Decimal("0.01")


def round_money(value: float) -> float:
    """Half-up rounding to 2 places on the decimal representation."""
    return float(Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP))


def _cost(item: NormalizedLineItem) -> Optional[float]:
    cost = item.cost_before_tax
    if cost is None or math.isnan(cost):
        return None
    return cost


def _category_key(item: NormalizedLineItem) -> str:
    category = getattr(item.service_category, "value", item.service_category)
    return category or item.product_name or item.product_code or UNKNOWN_KEY


def _region_key(item: NormalizedLineItem) -> str:
    return item.region_name or UNKNOWN_KEY


class CostSummaryService:
    def build(self, line_items: Sequence[NormalizedLineItem], total_tax: Optional[float] = None) -> CostSummary:
        subtotal = 0.0
        currencies = set()
        for item in line_items:
            cost = _cost(item)
            if cost is not None:
                subtotal += cost
            if item.currency_code:
                currencies.add(item.currency_code)

        start = end = None
        for item in line_items:
            if item.usage_start_date:
                if start is None or item.usage_start_date < start:
                    start = item.usage_start_date
                if end is None or item.usage_start_date > end:
                    end = item.usage_start_date
            if item.usage_end_date and (end is None or item.usage_end_date > end):
                end = item.usage_end_date

        rounded_subtotal = round_money(subtotal)
        rounded_tax = round_money(total_tax) if total_tax is not None else None

        return CostSummary(
            total_per_service=self.aggregate_by(line_items, _category_key),
            total_per_region=self.aggregate_by(line_items, _region_key),
            subtotal=rounded_subtotal,
            total_tax=rounded_tax,
            grand_total=round_money(rounded_subtotal + (rounded_tax or 0.0)),
            currency_code=currencies.pop() if len(currencies) == 1 else DEFAULT_CURRENCY,
            billing_period_start=start,
            billing_period_end=end,
        )

    def aggregate_by(
        self,
        line_items: Sequence[NormalizedLineItem],
        key_fn: Callable[[NormalizedLineItem], str],
    ) -> List[CostSummaryItem]:
        """Insertion-ordered totals per key; the last costed item's currency labels every entry."""
        totals: Dict[str, float] = {}
        currency = DEFAULT_CURRENCY
        for item in line_items:
            key = key_fn(item) or UNKNOWN_KEY
            cost = item.cost_before_tax if item.cost_before_tax is not None else 0.0
            if math.isnan(cost):
                continue
            totals[key] = totals.get(key, 0.0) + cost
            if item.currency_code:
                currency = item.currency_code

        return [
            CostSummaryItem(key=key, label=key, cost=round_money(cost), currency_code=currency)
            for key, cost in totals.items()
        ]
