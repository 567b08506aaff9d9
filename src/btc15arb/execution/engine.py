"""Execution engine: one chosen opportunity → sized, budgeted limit orders.

흐름:
    1) 수량: 모든 레그의 venue floor를 만족하는 최소 정수
    2) 예산: 레그별 cost vs 남은 예산. 하나라도 부족하면 전체 중단 (SKIPPED)
    3) 레그 순차 제출 (venue별 lock 직렬화, 타임아웃). 레그별 성공/실패 독립 기록
    4) 세션 갱신: 성공 레그만 지출 반영, COMPLETE/PARTIAL은 트레이드 카운트
PARTIAL은 naked exposure: ERROR 로그 + 저널 + 텔레그램. 자동 unwind 없음.
절대 raise 하지 않음 (ExecutionReport로 결과 전달).
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from decimal import ROUND_HALF_UP
from typing import Callable, Optional

from btc15arb.execution.platform import VenueTradingClient
from btc15arb.execution.sizing import DEFAULT_FLOORS, VenueFloor, reconcile_size
from btc15arb.models.market import MarketWindow
from btc15arb.models.opportunity import Leg, Opportunity
from btc15arb.models.order import (
    ExecutionReport,
    ExecutionStatus,
    Order,
    OrderResult,
    OrderStatus,
)
from btc15arb.models.quote import Venue
from btc15arb.monitoring.telegram import TelegramAlerter
from btc15arb.monitoring.trade_journal import TradeJournal
from btc15arb.risk.guard import RiskGuard
from btc15arb.risk.session import SessionState

logger = logging.getLogger(__name__)

WindowProvider = Callable[[Venue], Optional[MarketWindow]]


class ExecutionEngine:
    """Submit opportunity legs through per-venue trading clients.

    dry_run=True: 시뮬레이션 (클라이언트 미호출, 지출/카운트는 동일하게 반영).
    dry_run=False: VenueTradingClient로 실제 주문.
    """

    def __init__(
        self,
        clients: dict[Venue, VenueTradingClient],
        guard: RiskGuard,
        window_provider: WindowProvider,
        floors: Optional[dict[Venue, VenueFloor]] = None,
        dry_run: bool = True,
        timeout: float = 10.0,
        alerter: Optional[TelegramAlerter] = None,
        journal: Optional[TradeJournal] = None,
    ):
        self._clients = clients
        self._guard = guard
        self._window_provider = window_provider
        self.floors = floors or DEFAULT_FLOORS
        self.dry_run = dry_run
        self.timeout = timeout
        self._alerter = alerter
        self._journal = journal
        self._locks: dict[Venue, asyncio.Lock] = {venue: asyncio.Lock() for venue in Venue}
        self._open_orders: list[Order] = []
        self._dry_ids = itertools.count(1)
        self.history: list[ExecutionReport] = []

    @property
    def open_orders(self) -> list[Order]:
        """아직 SUBMITTED 상태인 주문 (취소 대상)."""
        return [o for o in self._open_orders if o.status is OrderStatus.SUBMITTED]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self, opportunity: Opportunity, session: SessionState,
    ) -> ExecutionReport:
        """기회 하나 실행. 결과는 ExecutionReport (raise 안 함)."""
        try:
            size = reconcile_size(opportunity.legs, self.floors)
        except ValueError as exc:
            return self._skip(opportunity, f"invalid size: {exc}")

        windows: dict[Venue, MarketWindow] = {}
        for leg in opportunity.legs:
            window = self._window_provider(leg.venue)
            if window is None:
                return self._skip(opportunity, f"no active market on {leg.venue.value}", size)
            windows[leg.venue] = window

        shortfall = self._check_budget(opportunity, size, session)
        if shortfall:
            return self._skip(opportunity, shortfall, size)

        logger.info(
            "%s Executing %s | size=%d",
            self._mode, opportunity.describe(), size,
        )

        orders: list[Order] = []
        for leg in opportunity.legs:
            orders.append(await self._submit_leg(windows[leg.venue], leg, size))

        report = ExecutionReport(
            opportunity=opportunity,
            status=self._classify(orders),
            size=size,
            orders=orders,
        )
        await self._settle(report, session)
        return report

    async def cancel_open_orders(self) -> int:
        """열린 주문 전부 취소 시도 (desync / 롤오버). 취소된 개수 반환."""
        pending = self.open_orders
        cancelled = 0
        for order in pending:
            if order.dry_run:
                order.status = OrderStatus.CANCELLED
                cancelled += 1
                continue
            client = self._clients.get(order.venue)
            if client is None or not order.order_id:
                continue
            async with self._locks[order.venue]:
                try:
                    ok = await asyncio.wait_for(
                        client.cancel_order(order.order_id), timeout=self.timeout,
                    )
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.warning("Cancel %s failed: %s", order.order_id, exc)
                    ok = False
            if ok:
                order.status = OrderStatus.CANCELLED
                cancelled += 1
            else:
                logger.warning(
                    "Could not cancel %s order %s", order.venue.value, order.order_id,
                )
        # 이전 윈도우 주문은 재시도하지 않음. 취소 대기 중 새로 제출된 주문은 유지
        handled = {id(o) for o in pending}
        self._open_orders = [o for o in self.open_orders if id(o) not in handled]
        if pending:
            logger.info("Cancelled %d/%d open orders", cancelled, len(pending))
        return cancelled

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @property
    def _mode(self) -> str:
        return "[DRY RUN]" if self.dry_run else "[LIVE]"

    def _check_budget(
        self, opportunity: Opportunity, size: int, session: SessionState,
    ) -> str:
        """부족한 레그가 있으면 사유 문자열, 없으면 ""."""
        needed: dict = {}
        for leg in opportunity.legs:
            key = (leg.venue, leg.outcome)
            needed[key] = needed.get(key, 0) + leg.price * size
        for (venue, outcome), cost in needed.items():
            available = self._guard.remaining(session, venue, outcome)
            if cost > available:
                return (
                    f"insufficient balance: {venue.value} {outcome.value} "
                    f"needs ${cost:.2f}, ${available:.2f} left"
                )
        return ""

    def _skip(
        self, opportunity: Opportunity, reason: str, size: int = 0,
    ) -> ExecutionReport:
        logger.warning("%s Skipped %s: %s", self._mode, opportunity.label, reason)
        report = ExecutionReport(
            opportunity=opportunity,
            status=ExecutionStatus.SKIPPED,
            size=size,
            reason=reason,
        )
        self.history.append(report)
        if self._journal is not None:
            self._journal.record_execution(report)
        return report

    async def _submit_leg(self, window: MarketWindow, leg: Leg, size: int) -> Order:
        price = leg.price.quantize(window.tick_size, rounding=ROUND_HALF_UP)
        order = Order(
            venue=leg.venue,
            outcome=leg.outcome,
            price=price,
            size=size,
            dry_run=self.dry_run,
        )

        if self.dry_run:
            order.order_id = f"dry-{leg.venue.value}-{next(self._dry_ids)}"
            logger.info(
                "[DRY RUN] Would submit: BUY %s %s %d @ $%s",
                leg.venue.value, leg.outcome.value, size, price,
            )
            self._open_orders.append(order)
            return order

        client = self._clients.get(leg.venue)
        if client is None:
            result = OrderResult(success=False, error="no_client")
        else:
            async with self._locks[leg.venue]:
                try:
                    result = await asyncio.wait_for(
                        client.place_limit_order(window, leg.outcome, price, size),
                        timeout=self.timeout,
                    )
                except asyncio.CancelledError:
                    raise
                except asyncio.TimeoutError:
                    result = OrderResult(success=False, error="timeout")
                except Exception as exc:
                    logger.error(
                        "[LIVE] %s %s leg raised: %s",
                        leg.venue.value, leg.outcome.value, exc,
                    )
                    result = OrderResult(success=False, error=str(exc))

        if result.success:
            order.order_id = result.order_id
            order.status = OrderStatus.SUBMITTED
            self._open_orders.append(order)
        else:
            order.status = OrderStatus.REJECTED
            order.error = result.error or "unknown"
            logger.warning(
                "[LIVE] %s %s leg rejected: %s",
                leg.venue.value, leg.outcome.value, order.error,
            )
        return order

    @staticmethod
    def _classify(orders: list[Order]) -> ExecutionStatus:
        succeeded = sum(1 for o in orders if o.succeeded)
        if succeeded == len(orders):
            return ExecutionStatus.COMPLETE
        if succeeded == 0:
            return ExecutionStatus.FAILED
        return ExecutionStatus.PARTIAL

    async def _settle(self, report: ExecutionReport, session: SessionState) -> None:
        """세션 반영 + 로그/저널/알림."""
        for order in report.filled_orders:
            session.record_spend(order.venue, order.outcome, order.cost)
        if report.counts_as_trade:
            session.record_trade(partial=report.status is ExecutionStatus.PARTIAL)

        self.history.append(report)
        if self._journal is not None:
            self._journal.record_execution(report)

        if report.status is ExecutionStatus.PARTIAL:
            naked = ", ".join(
                f"{o.venue.value} {o.outcome.value} {o.size}@{o.price}"
                for o in report.filled_orders
            )
            logger.error(
                "%s PARTIAL %s: naked exposure %s (no unwind)",
                self._mode, report.opportunity.label, naked,
            )
            if self._alerter is not None:
                await self._alerter.alert_partial(report)
        else:
            level = logging.INFO if report.status is ExecutionStatus.COMPLETE else logging.WARNING
            logger.log(
                level,
                "%s %s %s | size=%d cost=$%.2f expected=$%.2f",
                self._mode, report.status.value, report.opportunity.label,
                report.size, report.total_cost, report.expected_profit,
            )
            if self._alerter is not None:
                await self._alerter.alert_trade(report)

        if self._alerter is not None:
            for venue in self._guard.low_balance_venues(session):
                await self._alerter.alert_low_balance(
                    venue, self._guard.venue_remaining(session, venue),
                )
        else:
            self._guard.low_balance_venues(session)
