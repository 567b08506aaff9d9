"""Opportunity and OpportunityKind data models."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from btc15arb.models.quote import Outcome, Venue


class OpportunityKind(Enum):
    """기회 유형."""

    CROSS_SPREAD = "cross_spread"        # Up(X) + Down(Y) < $1.00
    DIRECTIONAL_ARB = "directional_arb"  # bid_A(O) > ask_B(O)


@dataclass(frozen=True)
class Leg:
    """매수 레그 하나 (항상 BUY @ ask)."""

    venue: Venue
    outcome: Outcome
    price: Decimal

    def describe(self) -> str:
        return f"{self.venue.value} {self.outcome.value} @ {self.price}"


@dataclass
class Opportunity:
    """감지된 기회. 매 틱마다 새로 계산, 저장하지 않음."""

    kind: OpportunityKind
    legs: tuple[Leg, ...]
    unit_profit: Decimal
    label: str = ""
    executable: bool = False
    reference_price: Decimal | None = None  # directional: 상대 venue bid

    @property
    def profit_cents(self) -> Decimal:
        return self.unit_profit * 100

    @property
    def unit_cost(self) -> Decimal:
        return sum((leg.price for leg in self.legs), Decimal("0"))

    @property
    def venues(self) -> set[Venue]:
        return {leg.venue for leg in self.legs}

    def describe(self) -> str:
        legs = " + ".join(leg.describe() for leg in self.legs)
        return f"[{self.label or self.kind.value}] {legs} → {self.profit_cents:.1f}¢"
