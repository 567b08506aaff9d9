"""Risk guard: admission control: pending flag, cooldown, trade cap, budgets."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Optional

from btc15arb.models.quote import Outcome, Venue
from btc15arb.risk.session import SessionState

logger = logging.getLogger(__name__)


@dataclass
class RiskResult:
    """리스크 체크 결과."""

    approved: bool
    reasons: list[str] = field(default_factory=list)


class RiskGuard:
    """Gate every execution attempt.

    Args:
        balances: venue별 라운드 예산 (USD).
        max_trades: 라운드당 최대 실행 횟수.
        cooldown_secs: 실행 시도 후 대기 시간.
        max_position_per_side: (venue, outcome)당 최대 지출.
        low_balance_threshold: 이 값 미만이면 1회 알림.
        clock: 시간 함수 (테스트에서 교체).
    """

    def __init__(
        self,
        balances: dict[Venue, Decimal],
        max_trades: int = 10,
        cooldown_secs: float = 5.0,
        max_position_per_side: Optional[Decimal] = None,
        low_balance_threshold: Decimal = Decimal("20"),
        clock: Callable[[], float] = time.time,
    ):
        self.balances = dict(balances)
        self.max_trades = max_trades
        self.cooldown_secs = cooldown_secs
        self.max_position_per_side = max_position_per_side
        self.low_balance_threshold = low_balance_threshold
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def cooldown_remaining(self, session: SessionState, now: Optional[float] = None) -> float:
        if not session.last_trade_time:
            return 0.0
        now = self.now() if now is None else now
        return max(0.0, self.cooldown_secs - (now - session.last_trade_time))

    def check(self, session: SessionState, now: Optional[float] = None) -> RiskResult:
        """실행 가능 여부.

        Returns:
            RiskResult(approved, reasons).
        """
        reasons: list[str] = []
        if session.pending_trade:
            reasons.append("Execution in flight")
        remaining = self.cooldown_remaining(session, now)
        if remaining > 0:
            reasons.append(f"Cooldown: {remaining:.1f}s remaining")
        if session.trades_executed >= self.max_trades:
            reasons.append(
                f"Max trades reached: {session.trades_executed}/{self.max_trades}"
            )
        return RiskResult(approved=not reasons, reasons=reasons)

    def begin(self, session: SessionState, now: Optional[float] = None) -> None:
        """실행 시작: pending 설정 + 쿨다운 시작점 기록."""
        session.pending_trade = True
        session.last_trade_time = self.now() if now is None else now

    def release(self, session: SessionState) -> None:
        session.pending_trade = False

    # ------------------------------------------------------------------
    # Budget
    # ------------------------------------------------------------------

    def venue_remaining(self, session: SessionState, venue: Venue) -> Decimal:
        return self.balances.get(venue, Decimal("0")) - session.venue_spent(venue)

    def remaining(self, session: SessionState, venue: Venue, outcome: Outcome) -> Decimal:
        """min(venue 예산 - venue 지출, side 한도 - side 지출)."""
        remaining = self.venue_remaining(session, venue)
        if self.max_position_per_side is not None:
            side_left = self.max_position_per_side - session.spent_on(venue, outcome)
            remaining = min(remaining, side_left)
        return remaining

    def low_balance_venues(self, session: SessionState) -> list[Venue]:
        """임계값 아래로 새로 떨어진 venue. 반환 시 alerted 플래그 설정 (1회성)."""
        newly_low = []
        for venue in self.balances:
            if venue in session.low_balance_alerted:
                continue
            if self.venue_remaining(session, venue) < self.low_balance_threshold:
                session.low_balance_alerted.add(venue)
                newly_low.append(venue)
                logger.warning(
                    "Low balance on %s: $%s remaining",
                    venue.value, self.venue_remaining(session, venue),
                )
        return newly_low
