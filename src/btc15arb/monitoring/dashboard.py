"""Console dashboard renderer.

박스 그리기 문자 + ANSI 색상. 매 quote 업데이트마다 전체 다시 그림.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from btc15arb.models.market import MarketWindow
from btc15arb.models.opportunity import Opportunity
from btc15arb.models.quote import Outcome, QuoteSnapshot, Venue
from btc15arb.risk.session import SessionState
from btc15arb.strategy.sync_gate import SyncStatus

CLEAR_SCREEN = "\033[2J\033[H"
GREEN = "\033[32m"
RED = "\033[31m"
YELLOW = "\033[33m"
RESET = "\033[0m"


def _fmt(price: Optional[Decimal]) -> str:
    return f"{price:.2f}" if price is not None else " -- "


class DashboardRenderer:
    """콘솔 대시보드 렌더링."""

    WIDTH = 60

    def __init__(self, color: bool = True):
        self.color = color

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{RESET}" if self.color else text

    def _row(self, text: str) -> str:
        return f"║ {text:<{self.WIDTH - 2}} ║"

    def render_status(
        self,
        mode: str,
        pm_window: Optional[MarketWindow],
        pf_window: Optional[MarketWindow],
        snapshot: QuoteSnapshot,
        sync: SyncStatus,
        opportunities: list[Opportunity],
        session: SessionState,
        remaining: dict[Venue, Decimal],
        max_trades: int,
        cooldown_left: float = 0.0,
        last_event: str = "",
    ) -> str:
        """현재 상태 전체 화면.

        Args:
            mode: "DRY RUN" / "LIVE" + 전략 이름.
            remaining: venue별 남은 라운드 예산.
            cooldown_left: 남은 쿨다운 (초).
            last_event: 마지막 실행/에러 한 줄.
        """
        w = self.WIDTH
        now = datetime.now(tz=timezone.utc).strftime("%H:%M:%S UTC")
        sync_text = sync.describe()
        # 색상 코드는 폭 계산에서 제외하기 위해 padding 후 칠함
        sync_line = f"║ {sync_text:<{w - 2}} ║"
        if self.color:
            color = GREEN if sync.in_sync else RED
            sync_line = sync_line.replace(sync_text, self._paint(sync_text, color), 1)

        lines = [
            f"╔{'═' * w}╗",
            self._row(f"btc15arb · {mode:<28} {now:>17}"),
            f"╠{'═' * w}╣",
            self._row(f"PM: {(pm_window.title if pm_window else 'searching...')[:w - 6]}"),
            self._row(f"PF: {(pf_window.title if pf_window else 'searching...')[:w - 6]}"),
            sync_line,
            f"╠{'═' * w}╣",
            self._row(f"{'':<10}{'UP bid':>10}{'UP ask':>10}{'DOWN bid':>12}{'DOWN ask':>12}"),
        ]
        for venue in Venue:
            lines.append(self._row(
                f"{venue.label:<10}"
                f"{_fmt(snapshot.bid(venue, Outcome.UP)):>10}"
                f"{_fmt(snapshot.ask(venue, Outcome.UP)):>10}"
                f"{_fmt(snapshot.bid(venue, Outcome.DOWN)):>12}"
                f"{_fmt(snapshot.ask(venue, Outcome.DOWN)):>12}"
            ))

        lines.append(f"╠{'═' * w}╣")
        if opportunities:
            for opp in opportunities[:4]:
                flag = "★" if opp.executable else " "
                lines.append(self._row(f"{flag} {opp.describe()}"[: w - 2]))
        else:
            lines.append(self._row("No opportunities"))

        lines.append(f"╠{'═' * w}╣")
        lines.append(self._row(
            f"Trades: {session.trades_executed}/{max_trades}"
            f"   Partial: {session.partial_fills}"
            f"   Pending: {'yes' if session.pending_trade else 'no'}"
        ))
        lines.append(self._row(
            "Budget: " + "  ".join(
                f"{v.value} ${remaining.get(v, Decimal('0')):.2f}" for v in Venue
            )
            + (f"   Cooldown {cooldown_left:.1f}s" if cooldown_left > 0 else "")
        ))
        if last_event:
            lines.append(self._row(last_event[: w - 2]))
        lines.append(f"╚{'═' * w}╝")
        return "\n".join(lines)

    def render_startup(self, config: dict) -> str:
        """시작 배너: 모드/전략/예산 표시."""
        w = self.WIDTH
        dry_run = config.get("dry_run", True)
        mode = "DRY RUN" if dry_run else "⚡ LIVE TRADING"
        lines = [
            f"╔{'═' * w}╗",
            f"║{'btc15arb · BTC 15m cross-venue arbitrage':^{w}}║",
            f"╠{'═' * w}╣",
            self._row(f"Mode:        {mode}"),
            self._row(f"Strategy:    {config.get('strategy', '-')}"),
            self._row(f"Min profit:  {config.get('min_profit_cents', '-')}¢"),
            self._row(f"Max trades:  {config.get('max_trades', '-')} / round"),
            self._row(
                f"Budget:      PM ${config.get('pm_balance', '-')}"
                f" · PF ${config.get('pf_balance', '-')}"
            ),
            self._row(f"Telegram:    {'ON' if config.get('telegram') else 'OFF'}"),
            f"╚{'═' * w}╝",
        ]
        return "\n".join(lines)
