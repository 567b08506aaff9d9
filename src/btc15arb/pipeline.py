"""Arbitrage pipeline: quote update → sync gate → opportunity → risk → execute.

전체 오케스트레이션. 하나의 이벤트 루프에서 실행:
    - venue별 피드 태스크 (push: 매 quote 변경마다 evaluate())
    - 마켓 refresh 루프 (clock: refresh_interval 또는 15분 경계 직후)
    - 실행 태스크 최대 1개 (pending_trade 플래그, 진행 중 발견된 기회는 버림)
_state_lock 으로 실행과 롤오버를 직렬화 (롤오버 도중 이전 윈도우 quote로 실행 금지).
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, TextIO

from btc15arb.config import BotConfig
from btc15arb.discovery.resolver import MarketResolver
from btc15arb.discovery.time_window import compute_expected_label, seconds_until_next_window
from btc15arb.execution.engine import ExecutionEngine
from btc15arb.models.market import MarketWindow
from btc15arb.models.opportunity import Opportunity
from btc15arb.models.order import ExecutionReport
from btc15arb.models.quote import Venue
from btc15arb.monitoring.dashboard import CLEAR_SCREEN, DashboardRenderer
from btc15arb.monitoring.telegram import TelegramAlerter
from btc15arb.risk.guard import RiskGuard
from btc15arb.risk.session import SessionState
from btc15arb.strategy.opportunity import evaluate, parse_kinds, pick_best
from btc15arb.strategy.sync_gate import SyncStatus, sync_status
from btc15arb.websocket.feed import VenueFeed
from btc15arb.websocket.quote_book import QuoteBook

logger = logging.getLogger(__name__)

BOUNDARY_SLACK_SECS = 1.0
DASHBOARD_MIN_INTERVAL = 0.25


@dataclass
class PipelineStats:
    """세션 통계 (대시보드/종료 요약용)."""

    evaluations: int = 0
    opportunities_seen: int = 0
    executions_started: int = 0
    desync_evaluations: int = 0
    rollovers: int = 0


class ArbPipeline:
    """Cross-venue pipeline for the BTC 15-minute windows.

    Args:
        config: BotConfig (임계값, 쿨다운, 전략).
        book: 두 피드가 공유하는 QuoteBook.
        feeds: venue → VenueFeed.
        resolvers: venue → MarketResolver.
        engine: ExecutionEngine.
        guard: RiskGuard.
        dashboard: None이면 화면 출력 없음.
    """

    def __init__(
        self,
        config: BotConfig,
        book: QuoteBook,
        feeds: dict[Venue, VenueFeed],
        resolvers: dict[Venue, MarketResolver],
        engine: ExecutionEngine,
        guard: RiskGuard,
        session: Optional[SessionState] = None,
        alerter: Optional[TelegramAlerter] = None,
        dashboard: Optional[DashboardRenderer] = None,
        out: TextIO = sys.stdout,
    ):
        self.config = config
        self.book = book
        self.feeds = feeds
        self.resolvers = resolvers
        self.engine = engine
        self.guard = guard
        self.session = session or SessionState()
        self._alerter = alerter
        self._dashboard = dashboard
        self._out = out
        self._kinds = parse_kinds(config.opportunity_kinds)
        self._state_lock = asyncio.Lock()
        self._rolling_over = False
        self._desync_cancel_sent = False
        self._tasks: set[asyncio.Task] = set()
        self._release_handle: Optional[asyncio.TimerHandle] = None
        self._last_draw = 0.0
        self.opportunities: list[Opportunity] = []
        self.sync = SyncStatus(in_sync=False)
        self.last_event = ""
        self.last_report: Optional[ExecutionReport] = None
        self.stats = PipelineStats()

        for feed in feeds.values():
            feed.set_on_update(self.on_quote_update)

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    def window(self, venue: Venue) -> Optional[MarketWindow]:
        resolver = self.resolvers.get(venue)
        return resolver.current if resolver else None

    def current_sync(self) -> SyncStatus:
        return sync_status(self.window(Venue.POLYMARKET), self.window(Venue.PREDICTFUN))

    # ------------------------------------------------------------------
    # Push path: every quote change
    # ------------------------------------------------------------------

    def on_quote_update(self, venue: Venue) -> None:
        self.evaluate()

    def evaluate(self) -> Optional[Opportunity]:
        """동기 평가 패스. 실행할 기회를 골랐으면 반환 (실행은 태스크로)."""
        self.stats.evaluations += 1
        snapshot = self.book.snapshot()
        self.opportunities = evaluate(snapshot, self.config.min_profit_cents, self._kinds)
        self.stats.opportunities_seen += len(self.opportunities)
        self.sync = self.current_sync()
        self._draw()

        if not self.sync.in_sync:
            self.stats.desync_evaluations += 1
            self._on_desync()
            return None
        self._desync_cancel_sent = False

        if not self.config.trading_enabled or self._rolling_over:
            return None

        best = pick_best(self.opportunities)
        if best is None:
            return None

        verdict = self.guard.check(self.session)
        if not verdict.approved:
            logger.debug("Blocked %s: %s", best.label, "; ".join(verdict.reasons))
            return None

        self.guard.begin(self.session)
        self.stats.executions_started += 1
        self._spawn(self._run_execution(best))
        return best

    def _on_desync(self) -> None:
        """윈도우 불일치: 실행 차단 + (에피소드당 1회) 열린 주문 취소."""
        if self._desync_cancel_sent:
            return
        self._desync_cancel_sent = True
        logger.warning("Venues out of sync: %s", self.sync.describe())
        self._spawn(self.engine.cancel_open_orders())

    async def _run_execution(self, opportunity: Opportunity) -> None:
        try:
            async with self._state_lock:
                if self._rolling_over or not self.current_sync().in_sync:
                    logger.info("Dropped %s: window changed before execution", opportunity.label)
                    return
                report = await self.engine.execute(opportunity, self.session)
            self.last_report = report
            self.last_event = (
                f"{report.status.value} {opportunity.label} x{report.size}"
                + (f" ({report.reason})" if report.reason else "")
            )
        except Exception as exc:
            logger.exception("Execution error for %s", opportunity.label)
            self.last_event = f"ERROR {opportunity.label}: {exc}"
            if self._alerter is not None:
                await self._alerter.alert_error(f"Execution error: {exc}")
        finally:
            self._schedule_release()
            self._draw(force=True)

    def _schedule_release(self) -> None:
        """쿨다운 후 pending_trade 해제."""
        if self._release_handle is not None:
            self._release_handle.cancel()
        loop = asyncio.get_running_loop()
        self._release_handle = loop.call_later(
            self.config.cooldown_secs, self.guard.release, self.session,
        )

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """대기 중인 실행/취소 태스크 완료 대기 (테스트/종료용)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Clock path: market refresh / rollover
    # ------------------------------------------------------------------

    async def refresh_markets(self, now: Optional[datetime] = None) -> list[Venue]:
        """두 venue 재조회. 새 윈도우가 잡힌 venue 목록 반환."""
        changed: list[tuple[Venue, MarketWindow]] = []
        for venue, resolver in self.resolvers.items():
            try:
                window, is_new = await resolver.refresh(now)
            except Exception:
                logger.exception("[%s] Market refresh failed", venue.value)
                continue
            if is_new and window is not None:
                changed.append((venue, window))

        if changed:
            await self._rollover(changed, now)
        self.sync = self.current_sync()
        if not self.sync.in_sync:
            self._on_desync()
        self._draw(force=True)
        return [venue for venue, _ in changed]

    async def _rollover(
        self,
        changed: list[tuple[Venue, MarketWindow]],
        now: Optional[datetime] = None,
    ) -> None:
        """새 라운드: 열린 주문 취소 → 세션 리셋 → quote 초기화 → 피드 재구독."""
        async with self._state_lock:
            self._rolling_over = True
            try:
                await self.engine.cancel_open_orders()
                self.session.reset_round(str(compute_expected_label(now)))
                for venue, window in changed:
                    self.book.clear_venue(venue)
                    feed = self.feeds.get(venue)
                    if feed is not None:
                        await feed.retarget(window)
                self.stats.rollovers += 1
                self.last_event = "New round: " + ", ".join(
                    f"{venue.value} {window.title}" for venue, window in changed
                )
            finally:
                self._rolling_over = False

    def next_refresh_delay(self, now: Optional[datetime] = None) -> float:
        """min(refresh_interval, 다음 15분 경계 + 1초)."""
        return min(
            self.config.refresh_interval,
            seconds_until_next_window(now) + BOUNDARY_SLACK_SECS,
        )

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self, stop_event: asyncio.Event) -> None:
        """stop_event 까지 실행. 피드는 백그라운드 태스크."""
        feed_tasks = [asyncio.create_task(feed.run()) for feed in self.feeds.values()]
        try:
            while not stop_event.is_set():
                try:
                    await self.refresh_markets()
                except Exception:
                    logger.exception("Refresh cycle error")
                try:
                    await asyncio.wait_for(
                        stop_event.wait(), timeout=self.next_refresh_delay(),
                    )
                except asyncio.TimeoutError:
                    pass
        finally:
            for feed in self.feeds.values():
                await feed.stop()
            for task in feed_tasks:
                task.cancel()
            await asyncio.gather(*feed_tasks, return_exceptions=True)
            await self.drain()
            if self._release_handle is not None:
                self._release_handle.cancel()
            logger.info(
                "Pipeline stopped: %d evaluations, %d executions, %d rollovers",
                self.stats.evaluations, self.stats.executions_started, self.stats.rollovers,
            )

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def render(self) -> str:
        mode = ("DRY RUN" if self.config.dry_run else "LIVE") + f" · {self.config.strategy}"
        return self._dashboard.render_status(
            mode=mode,
            pm_window=self.window(Venue.POLYMARKET),
            pf_window=self.window(Venue.PREDICTFUN),
            snapshot=self.book.snapshot(),
            sync=self.sync,
            opportunities=self.opportunities,
            session=self.session,
            remaining={v: self.guard.venue_remaining(self.session, v) for v in Venue},
            max_trades=self.guard.max_trades,
            cooldown_left=self.guard.cooldown_remaining(self.session),
            last_event=self.last_event,
        )

    def _draw(self, force: bool = False) -> None:
        if self._dashboard is None:
            return
        now = time.monotonic()
        if not force and now - self._last_draw < DASHBOARD_MIN_INTERVAL:
            return
        self._last_draw = now
        self._out.write(CLEAR_SCREEN + self.render() + "\n")
        self._out.flush()
