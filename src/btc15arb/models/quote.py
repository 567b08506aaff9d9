"""Quote data models: venue, outcome, best bid/ask."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

CENT = Decimal("0.01")
ONE = Decimal("1")


class Venue(Enum):
    """거래 플랫폼."""

    POLYMARKET = "PM"
    PREDICTFUN = "PF"

    @property
    def label(self) -> str:
        return "Polymarket" if self is Venue.POLYMARKET else "predict.fun"


class Outcome(Enum):
    """바이너리 결과 (Up/Down)."""

    UP = "UP"
    DOWN = "DOWN"

    @property
    def opposite(self) -> Outcome:
        return Outcome.DOWN if self is Outcome.UP else Outcome.UP


def to_price(value) -> Decimal | None:
    """Parse a venue price into a cent-precision Decimal.

    문자열/float/Decimal 모두 허용. 파싱 불가 또는 [0, 1] 범위 밖이면 None.
    float는 str()을 거쳐서 변환 (이진 부동소수 오차 방지).
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, float):
            value = str(value)
        price = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not price.is_finite() or price < 0 or price > ONE:
        return None
    return price.quantize(CENT, rounding=ROUND_HALF_UP)


def complement(price: Decimal | None) -> Decimal | None:
    """1 - price (반대 outcome 가격). None 그대로 통과."""
    if price is None:
        return None
    return (ONE - price).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class Quote:
    """한 venue의 한 outcome에 대한 best bid/ask.

    None은 '아직 데이터 없음'을 의미.
    """

    venue: Venue
    outcome: Outcome
    best_bid: Decimal | None = None
    best_ask: Decimal | None = None
    updated_at: float = field(default=0.0)

    @property
    def has_data(self) -> bool:
        return self.best_bid is not None or self.best_ask is not None


@dataclass(frozen=True)
class QuoteSnapshot:
    """Immutable view of all four quotes for one evaluation pass."""

    quotes: tuple[Quote, ...]

    def get(self, venue: Venue, outcome: Outcome) -> Quote:
        for quote in self.quotes:
            if quote.venue is venue and quote.outcome is outcome:
                return quote
        return Quote(venue=venue, outcome=outcome)

    def ask(self, venue: Venue, outcome: Outcome) -> Decimal | None:
        return self.get(venue, outcome).best_ask

    def bid(self, venue: Venue, outcome: Outcome) -> Decimal | None:
        return self.get(venue, outcome).best_bid

    @classmethod
    def from_prices(cls, prices: dict) -> QuoteSnapshot:
        """Build a snapshot from ``{(venue, outcome): (bid, ask)}``.

        Test/REPL 편의용. 가격은 to_price()로 정규화.
        """
        quotes = []
        for (venue, outcome), (bid, ask) in prices.items():
            quotes.append(Quote(
                venue=venue,
                outcome=outcome,
                best_bid=to_price(bid),
                best_ask=to_price(ask),
            ))
        return cls(quotes=tuple(quotes))
