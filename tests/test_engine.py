"""Tests for the execution engine: sizing, budget, sequential legs, PARTIAL, cancel."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from btc15arb.execution.engine import ExecutionEngine
from btc15arb.models.opportunity import Leg, Opportunity, OpportunityKind
from btc15arb.models.order import ExecutionStatus, OrderStatus
from btc15arb.monitoring.telegram import TelegramAlerter
from btc15arb.monitoring.trade_journal import TradeJournal
from btc15arb.risk.guard import RiskGuard
from conftest import DOWN, PF, PM, UP, FakeTradingClient

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def spread_opportunity() -> Opportunity:
    return Opportunity(
        kind=OpportunityKind.CROSS_SPREAD,
        legs=(Leg(PM, UP, Decimal("0.50")), Leg(PF, DOWN, Decimal("0.45"))),
        unit_profit=Decimal("0.05"),
        label="PM_UP+PF_DOWN",
        executable=True,
    )


def directional_opportunity() -> Opportunity:
    return Opportunity(
        kind=OpportunityKind.DIRECTIONAL_ARB,
        legs=(Leg(PF, UP, Decimal("0.50")),),
        unit_profit=Decimal("0.05"),
        label="BUY_PF_UP<PM_BID",
        executable=True,
        reference_price=Decimal("0.55"),
    )


@pytest.fixture
def windows(pm_window, pf_window):
    return {PM: pm_window, PF: pf_window}


@pytest.fixture
def alerter():
    return AsyncMock(spec=TelegramAlerter)


@pytest.fixture
def live_engine(fake_clients, guard, windows, alerter):
    return ExecutionEngine(
        clients=fake_clients,
        guard=guard,
        window_provider=windows.get,
        dry_run=False,
        alerter=alerter,
    )


class SlowClient(FakeTradingClient):
    async def place_limit_order(self, window, outcome, price, size, side="BUY"):
        await asyncio.sleep(1)
        return await super().place_limit_order(window, outcome, price, size, side)


class GatedCancelClient(FakeTradingClient):
    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()

    async def cancel_order(self, order_id):
        await self.gate.wait()
        return await super().cancel_order(order_id)


# ---------------------------------------------------------------------------
# Live execution
# ---------------------------------------------------------------------------


class TestLiveExecution:
    async def test_complete_cross_spread(self, live_engine, fake_clients, session, alerter):
        report = await live_engine.execute(spread_opportunity(), session)

        assert report.status is ExecutionStatus.COMPLETE
        assert report.size == 5
        assert fake_clients[PM].placed == [(PM, UP, Decimal("0.50"), 5, "BUY")]
        assert fake_clients[PF].placed == [(PF, DOWN, Decimal("0.45"), 5, "BUY")]
        assert [o.order_id for o in report.orders] == ["PM-1", "PF-1"]
        assert session.spent_on(PM, UP) == Decimal("2.50")
        assert session.spent_on(PF, DOWN) == Decimal("2.25")
        assert session.trades_executed == 1
        assert len(live_engine.open_orders) == 2
        alerter.alert_trade.assert_awaited_once_with(report)

    async def test_directional_single_leg(self, live_engine, fake_clients, session):
        report = await live_engine.execute(directional_opportunity(), session)
        assert report.status is ExecutionStatus.COMPLETE
        assert report.size == 2
        assert fake_clients[PM].placed == []
        assert fake_clients[PF].placed == [(PF, UP, Decimal("0.50"), 2, "BUY")]

    async def test_legs_submitted_in_order(self, live_engine, fake_clients, session):
        calls = []
        for venue, client in fake_clients.items():
            original = client.place_limit_order

            async def record(*args, _venue=venue, _orig=original, **kwargs):
                calls.append(_venue)
                return await _orig(*args, **kwargs)

            client.place_limit_order = record
        await live_engine.execute(spread_opportunity(), session)
        assert calls == [PM, PF]

    async def test_second_leg_raises_partial(self, fake_clients, guard, windows, alerter, session):
        fake_clients[PF] = FakeTradingClient(raises=RuntimeError("boom"))
        engine = ExecutionEngine(fake_clients, guard, windows.get, dry_run=False, alerter=alerter)

        report = await engine.execute(spread_opportunity(), session)

        assert report.status is ExecutionStatus.PARTIAL
        assert report.orders[0].status is OrderStatus.SUBMITTED
        assert report.orders[1].status is OrderStatus.REJECTED
        assert report.orders[1].error == "boom"
        # 성공 레그만 지출 반영, 트레이드는 카운트
        assert session.spent_on(PM, UP) == Decimal("2.50")
        assert session.spent_on(PF, DOWN) == 0
        assert session.trades_executed == 1
        assert session.partial_fills == 1
        assert report.expected_profit == 0
        alerter.alert_partial.assert_awaited_once_with(report)
        alerter.alert_trade.assert_not_awaited()

    async def test_all_legs_rejected_failed(self, guard, windows, session):
        clients = {PM: FakeTradingClient(fail=True), PF: FakeTradingClient(fail=True)}
        engine = ExecutionEngine(clients, guard, windows.get, dry_run=False)

        report = await engine.execute(spread_opportunity(), session)

        assert report.status is ExecutionStatus.FAILED
        assert all(o.error == "rejected by venue" for o in report.orders)
        assert session.trades_executed == 0
        assert session.spent == {}
        assert engine.open_orders == []

    async def test_leg_timeout(self, guard, windows, session):
        clients = {PM: SlowClient(), PF: FakeTradingClient()}
        engine = ExecutionEngine(clients, guard, windows.get, dry_run=False, timeout=0.01)

        report = await engine.execute(spread_opportunity(), session)

        assert report.status is ExecutionStatus.PARTIAL
        assert report.orders[0].error == "timeout"
        assert report.orders[1].succeeded

    async def test_missing_client_rejects_leg(self, guard, windows, session):
        engine = ExecutionEngine({PM: FakeTradingClient()}, guard, windows.get, dry_run=False)
        report = await engine.execute(spread_opportunity(), session)
        assert report.status is ExecutionStatus.PARTIAL
        assert report.orders[1].error == "no_client"


# ---------------------------------------------------------------------------
# Pre-submit checks
# ---------------------------------------------------------------------------


class TestSkips:
    async def test_insufficient_budget_aborts_whole_opportunity(
        self, live_engine, fake_clients, session,
    ):
        session.record_spend(PM, DOWN, Decimal("52"))

        report = await live_engine.execute(spread_opportunity(), session)

        assert report.status is ExecutionStatus.SKIPPED
        assert report.reason.startswith("insufficient balance: PM UP")
        assert fake_clients[PM].placed == []
        assert fake_clients[PF].placed == []
        assert session.trades_executed == 0

    async def test_side_cap_applies(self, fake_clients, windows, session, clock):
        guard = RiskGuard(
            {PM: Decimal("100"), PF: Decimal("100")},
            max_position_per_side=Decimal("2"),
            clock=clock,
        )
        engine = ExecutionEngine(fake_clients, guard, windows.get, dry_run=False)
        report = await engine.execute(spread_opportunity(), session)
        assert report.status is ExecutionStatus.SKIPPED

    async def test_no_active_window(self, fake_clients, guard, pm_window, session):
        engine = ExecutionEngine(fake_clients, guard, {PM: pm_window}.get, dry_run=False)
        report = await engine.execute(spread_opportunity(), session)
        assert report.status is ExecutionStatus.SKIPPED
        assert "no active market on PF" in report.reason
        assert fake_clients[PM].placed == []

    async def test_skip_recorded_in_history(self, live_engine, session):
        session.record_spend(PF, DOWN, Decimal("108"))
        report = await live_engine.execute(spread_opportunity(), session)
        assert live_engine.history == [report]


# ---------------------------------------------------------------------------
# Dry run
# ---------------------------------------------------------------------------


class TestDryRun:
    async def test_no_client_calls(self, fake_clients, guard, windows, session):
        engine = ExecutionEngine(fake_clients, guard, windows.get, dry_run=True)

        report = await engine.execute(spread_opportunity(), session)

        assert report.status is ExecutionStatus.COMPLETE
        assert fake_clients[PM].placed == []
        assert fake_clients[PF].placed == []
        assert [o.order_id for o in report.orders] == ["dry-PM-1", "dry-PF-2"]
        assert all(o.dry_run for o in report.orders)
        assert session.spent_on(PM, UP) == Decimal("2.50")
        assert session.trades_executed == 1

    async def test_dry_cancel_marks_cancelled(self, fake_clients, guard, windows, session):
        engine = ExecutionEngine(fake_clients, guard, windows.get, dry_run=True)
        report = await engine.execute(spread_opportunity(), session)

        assert await engine.cancel_open_orders() == 2
        assert all(o.status is OrderStatus.CANCELLED for o in report.orders)
        assert fake_clients[PM].cancelled == []


# ---------------------------------------------------------------------------
# Cancel / side effects
# ---------------------------------------------------------------------------


class TestCancelOpenOrders:
    async def test_cancel_live_orders(self, live_engine, fake_clients, session):
        await live_engine.execute(spread_opportunity(), session)

        assert await live_engine.cancel_open_orders() == 2
        assert fake_clients[PM].cancelled == ["PM-1"]
        assert fake_clients[PF].cancelled == ["PF-1"]
        assert live_engine.open_orders == []

    async def test_cancel_failure_not_retried(self, live_engine, fake_clients, session):
        fake_clients[PM].cancel_ok = False
        await live_engine.execute(spread_opportunity(), session)

        assert await live_engine.cancel_open_orders() == 1
        assert live_engine.open_orders == []
        assert await live_engine.cancel_open_orders() == 0
        assert fake_clients[PM].cancelled == ["PM-1"]

    async def test_nothing_open(self, live_engine):
        assert await live_engine.cancel_open_orders() == 0

    async def test_order_placed_during_cancel_stays_tracked(
        self, fake_clients, guard, windows, session,
    ):
        fake_clients[PM] = GatedCancelClient()
        engine = ExecutionEngine(
            clients=fake_clients, guard=guard, window_provider=windows.get, dry_run=False,
        )
        await engine.execute(spread_opportunity(), session)

        cancel_task = asyncio.create_task(engine.cancel_open_orders())
        await asyncio.sleep(0)
        # PM 취소 대기 중 PF에 새 주문
        report = await engine.execute(directional_opportunity(), session)
        fake_clients[PM].gate.set()
        assert await cancel_task == 2

        new_order = report.orders[0]
        assert new_order.status is OrderStatus.SUBMITTED
        assert engine.open_orders == [new_order]
        assert await engine.cancel_open_orders() == 1
        assert fake_clients[PF].cancelled == ["PF-1", new_order.order_id]


class TestSideEffects:
    async def test_low_balance_alert(self, fake_clients, windows, session, clock, alerter):
        guard = RiskGuard(
            {PM: Decimal("21"), PF: Decimal("100")},
            low_balance_threshold=Decimal("20"),
            clock=clock,
        )
        engine = ExecutionEngine(fake_clients, guard, windows.get, dry_run=False, alerter=alerter)

        await engine.execute(spread_opportunity(), session)
        await engine.execute(spread_opportunity(), session)

        alerter.alert_low_balance.assert_awaited_once_with(PM, Decimal("18.50"))

    async def test_journal_records_execution(self, live_engine, session, tmp_path):
        live_engine._journal = TradeJournal(str(tmp_path))
        await live_engine.execute(spread_opportunity(), session)

        entries = live_engine._journal.read()
        assert len(entries) == 1
        assert entries[0]["event"] == "execution"
        assert entries[0]["status"] == "COMPLETE"
        assert entries[0]["size"] == 5
        assert [o["venue"] for o in entries[0]["orders"]] == ["PM", "PF"]
