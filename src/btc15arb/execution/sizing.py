"""Minimum-size reconciliation across venues.

Polymarket: max(5 shares, $1 notional), predict.fun: $1 notional.
모든 레그의 floor를 동시에 만족하는 최소 정수 수량.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal
from typing import Iterable

from btc15arb.models.opportunity import Leg
from btc15arb.models.quote import Venue


@dataclass(frozen=True)
class VenueFloor:
    """venue별 최소 주문 조건."""

    min_shares: int = 1
    min_value: Decimal = Decimal("1")

    def accepts(self, price: Decimal, size: int) -> bool:
        return size >= self.min_shares and price * size >= self.min_value


DEFAULT_FLOORS: dict[Venue, VenueFloor] = {
    Venue.POLYMARKET: VenueFloor(min_shares=5, min_value=Decimal("1")),
    Venue.PREDICTFUN: VenueFloor(min_shares=1, min_value=Decimal("1")),
}


def shares_for_value(price: Decimal, min_value: Decimal) -> int:
    """ceil(min_value / price)."""
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    return int((min_value / price).to_integral_value(rounding=ROUND_CEILING))


def reconcile_size(
    legs: Iterable[Leg],
    floors: dict[Venue, VenueFloor] = DEFAULT_FLOORS,
) -> int:
    """모든 레그의 최소 수량/금액 조건을 만족하는 최소 정수 수량.

    size = max(각 venue min_shares, 각 레그 ceil(min_value / price))

    Raises:
        ValueError: 레그가 없거나 가격이 0 이하.
    """
    size = 0
    count = 0
    for leg in legs:
        count += 1
        floor = floors.get(leg.venue, VenueFloor())
        size = max(size, floor.min_shares, shares_for_value(leg.price, floor.min_value))
    if count == 0:
        raise ValueError("no legs to size")
    return size


def scale_size(size: Decimal, percent: Decimal) -> int:
    """size * percent / 100, 정수 내림 (copy trade)."""
    return int((size * percent / 100).to_integral_value(rounding=ROUND_FLOOR))


def floors_from_limits(
    pm_min_shares: int,
    pf_min_shares: int,
    min_order_value: Decimal,
) -> dict[Venue, VenueFloor]:
    return {
        Venue.POLYMARKET: VenueFloor(pm_min_shares, min_order_value),
        Venue.PREDICTFUN: VenueFloor(pf_min_shares, min_order_value),
    }
