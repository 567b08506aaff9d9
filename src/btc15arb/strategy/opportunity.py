"""Opportunity calculator: pure scoring of one quote snapshot.

Cross-spread:  Up(X) ask + Down(Y) ask < 1.00 → profit = 1 - sum (바이너리 정산 보장)
Directional:   bid_A(O) > ask_B(O) → B에서 매수, profit = bid - ask
부작용 없음. 가격 누락 조합은 '기회 없음' (에러 아님).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from btc15arb.models.opportunity import Leg, Opportunity, OpportunityKind
from btc15arb.models.quote import ONE, Outcome, QuoteSnapshot, Venue

PM = Venue.POLYMARKET
PF = Venue.PREDICTFUN

# (Up venue, Down venue): 순서가 동률 시 우선순위
CROSS_SPREAD_COMBOS: tuple[tuple[Venue, Venue], ...] = (
    (PM, PF),
    (PF, PM),
)

# (outcome, bid venue, buy venue)
DIRECTIONAL_COMBOS: tuple[tuple[Outcome, Venue, Venue], ...] = (
    (Outcome.UP, PM, PF),
    (Outcome.UP, PF, PM),
    (Outcome.DOWN, PM, PF),
    (Outcome.DOWN, PF, PM),
)

ALL_KINDS = (OpportunityKind.CROSS_SPREAD, OpportunityKind.DIRECTIONAL_ARB)


def cross_spread_profit(ask_up: Decimal, ask_down: Decimal) -> Decimal:
    """1 - (ask_up + ask_down)."""
    return ONE - (ask_up + ask_down)


def detect_cross_spread(snapshot: QuoteSnapshot) -> list[Opportunity]:
    """두 cross-spread 조합 중 profit > 0 인 것."""
    found = []
    for up_venue, down_venue in CROSS_SPREAD_COMBOS:
        ask_up = snapshot.ask(up_venue, Outcome.UP)
        ask_down = snapshot.ask(down_venue, Outcome.DOWN)
        if ask_up is None or ask_down is None:
            continue
        profit = cross_spread_profit(ask_up, ask_down)
        if profit <= 0:
            continue
        found.append(Opportunity(
            kind=OpportunityKind.CROSS_SPREAD,
            legs=(
                Leg(up_venue, Outcome.UP, ask_up),
                Leg(down_venue, Outcome.DOWN, ask_down),
            ),
            unit_profit=profit,
            label=f"{up_venue.value}_UP+{down_venue.value}_DOWN",
        ))
    return found


def detect_directional(snapshot: QuoteSnapshot) -> list[Opportunity]:
    """네 directional 조합 (Up/Down × 어느 venue가 싼지) 독립 평가."""
    found = []
    for outcome, bid_venue, buy_venue in DIRECTIONAL_COMBOS:
        bid = snapshot.bid(bid_venue, outcome)
        ask = snapshot.ask(buy_venue, outcome)
        if bid is None or ask is None or bid <= ask:
            continue
        found.append(Opportunity(
            kind=OpportunityKind.DIRECTIONAL_ARB,
            legs=(Leg(buy_venue, outcome, ask),),
            unit_profit=bid - ask,
            label=f"BUY_{buy_venue.value}_{outcome.value}<{bid_venue.value}_BID",
            reference_price=bid,
        ))
    return found


def evaluate(
    snapshot: QuoteSnapshot,
    min_profit_cents: Decimal,
    kinds: Iterable[OpportunityKind] = ALL_KINDS,
) -> list[Opportunity]:
    """모든 기회 계산 → profit 내림차순. executable = profit_cents >= 최소값.

    임계값 미만 기회도 표시용으로 반환.
    """
    kinds = set(kinds)
    opportunities: list[Opportunity] = []
    if OpportunityKind.CROSS_SPREAD in kinds:
        opportunities.extend(detect_cross_spread(snapshot))
    if OpportunityKind.DIRECTIONAL_ARB in kinds:
        opportunities.extend(detect_directional(snapshot))

    for opp in opportunities:
        opp.executable = opp.profit_cents >= min_profit_cents

    # stable sort: 동률이면 조합 순서 유지
    return sorted(opportunities, key=lambda o: o.unit_profit, reverse=True)


def pick_best(opportunities: Iterable[Opportunity]) -> Optional[Opportunity]:
    """실행 가능한 기회 중 profit 최대 하나. 동률이면 앞선 것."""
    best: Optional[Opportunity] = None
    for opp in opportunities:
        if not opp.executable:
            continue
        if best is None or opp.unit_profit > best.unit_profit:
            best = opp
    return best


def parse_kinds(names: Iterable[str]) -> tuple[OpportunityKind, ...]:
    """설정 문자열 ("cross_spread", ...) → OpportunityKind."""
    return tuple(OpportunityKind(name) for name in names)
