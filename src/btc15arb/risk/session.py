"""Per-round session state: trade counter, spend per (venue, side), flags."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from btc15arb.models.quote import Outcome, Venue

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class SessionState:
    """봇 세션 상태. 한 이벤트 루프에서만 변경 (single writer).

    spent / trades_executed / low_balance_alerted 는 윈도우 롤오버마다 리셋.
    pending_trade / last_trade_time 은 롤오버와 무관 (진행 중 실행 보호).
    """

    trades_executed: int = 0
    pending_trade: bool = False
    last_trade_time: float = 0.0
    spent: dict[tuple[Venue, Outcome], Decimal] = field(default_factory=dict)
    low_balance_alerted: set[Venue] = field(default_factory=set)
    round_label: str = ""
    rounds: int = 0
    total_trades: int = 0
    partial_fills: int = 0

    def spent_on(self, venue: Venue, outcome: Outcome) -> Decimal:
        return self.spent.get((venue, outcome), ZERO)

    def venue_spent(self, venue: Venue) -> Decimal:
        return sum(
            (amount for (v, _), amount in self.spent.items() if v is venue),
            ZERO,
        )

    def record_spend(self, venue: Venue, outcome: Outcome, amount: Decimal) -> None:
        key = (venue, outcome)
        self.spent[key] = self.spent.get(key, ZERO) + amount

    def record_trade(self, partial: bool = False) -> None:
        self.trades_executed += 1
        self.total_trades += 1
        if partial:
            self.partial_fills += 1

    def reset_round(self, label: str = "") -> None:
        """새 15분 윈도우: 카운터, 지출, 알림 플래그 초기화."""
        logger.info(
            "Round reset: %s → %s (trades=%d, spent=%s)",
            self.round_label or "-", label or "-",
            self.trades_executed, {f"{v.value}_{o.value}": str(a) for (v, o), a in self.spent.items()},
        )
        self.trades_executed = 0
        self.spent.clear()
        self.low_balance_alerted.clear()
        self.round_label = label
        self.rounds += 1
