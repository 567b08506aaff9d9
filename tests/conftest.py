"""Shared test fixtures for btc15arb."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from websockets.exceptions import ConnectionClosedOK

from btc15arb.models.market import MarketWindow
from btc15arb.models.order import OrderResult
from btc15arb.models.quote import Outcome, QuoteSnapshot, Venue
from btc15arb.risk.guard import RiskGuard
from btc15arb.risk.session import SessionState

PM = Venue.POLYMARKET
PF = Venue.PREDICTFUN
UP = Outcome.UP
DOWN = Outcome.DOWN

# 2026-01-05 09:20 ET (EST, UTC-5) → 9:15AM-9:30AM 윈도우
NOW_915 = datetime(2026, 1, 5, 14, 20, tzinfo=timezone.utc)

PM_TITLE = "Bitcoin Up or Down - January 5, 9:15AM-9:30AM ET"
PF_TITLE = "BTC/USD Up or Down - January 5, 9:15-9:30AM ET"
PF_TITLE_NEXT = "BTC/USD Up or Down - January 5, 9:30-9:45AM ET"


def snapshot(**prices) -> QuoteSnapshot:
    """snapshot(pm_up=(bid, ask), pf_down=(bid, ask), ...)."""
    mapping = {}
    for key, (bid, ask) in prices.items():
        venue_key, outcome_key = key.split("_")
        venue = PM if venue_key == "pm" else PF
        outcome = UP if outcome_key == "up" else DOWN
        mapping[(venue, outcome)] = (bid, ask)
    return QuoteSnapshot.from_prices(mapping)


@pytest.fixture
def pm_window() -> MarketWindow:
    return MarketWindow(
        venue=PM,
        market_id="pm_mkt_1",
        title=PM_TITLE,
        up_token_id="pm_up_tok",
        down_token_id="pm_down_tok",
    )


@pytest.fixture
def pf_window() -> MarketWindow:
    return MarketWindow(
        venue=PF,
        market_id="4242",
        title=PF_TITLE,
        up_token_id="pf_up_chain",
        down_token_id="pf_down_chain",
    )


@pytest.fixture
def session() -> SessionState:
    return SessionState()


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, secs: float) -> None:
        self.now += secs


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def guard(clock) -> RiskGuard:
    return RiskGuard(
        balances={PM: Decimal("53"), PF: Decimal("108")},
        max_trades=10,
        cooldown_secs=5.0,
        max_position_per_side=Decimal("500"),
        low_balance_threshold=Decimal("20"),
        clock=clock,
    )


class FakeTradingClient:
    """VenueTradingClient double: records calls, configurable failures."""

    def __init__(self, fail: bool = False, raises: Exception | None = None):
        self.fail = fail
        self.raises = raises
        self.placed: list[tuple] = []
        self.cancelled: list[str] = []
        self.cancel_ok = True
        self._next = 0

    def is_configured(self) -> bool:
        return True

    async def get_active_market(self):
        return None

    async def get_market_details(self, market_id):
        return None

    async def place_limit_order(self, window, outcome, price, size, side="BUY"):
        self.placed.append((window.venue, outcome, price, size, side))
        if self.raises is not None:
            raise self.raises
        if self.fail:
            return OrderResult(success=False, error="rejected by venue")
        self._next += 1
        return OrderResult(success=True, order_id=f"{window.venue.value}-{self._next}")

    async def cancel_order(self, order_id):
        self.cancelled.append(order_id)
        return self.cancel_ok

    async def get_balance(self):
        return Decimal("100")


@pytest.fixture
def fake_clients() -> dict:
    return {PM: FakeTradingClient(), PF: FakeTradingClient()}


class FakeWebSocket:
    """websockets 연결 double. feed()로 프레임 주입, close()로 종료."""

    def __init__(self):
        self.sent: list[dict] = []
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def feed(self, payload) -> None:
        raw = payload if isinstance(payload, str) else json.dumps(payload)
        self._queue.put_nowait(raw)

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    async def recv(self):
        item = await self._queue.get()
        if item is None:
            raise ConnectionClosedOK(None, None)
        return item

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)
