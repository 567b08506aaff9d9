"""Copy trade: replay a followed trader's Polymarket activity at a scaled size.

한 폴링 사이클에 들어온 같은 (asset, side) 거래들은 하나의 합성 주문으로 합산
(총 수량 + VWAP)한 뒤 copy % 와 최소 주문 조건을 적용. 개별 $1 미만 거래가
전부 거절되는 것을 방지.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional

from btc15arb.discovery.data_client import DataApiClient
from btc15arb.discovery.gamma_client import GammaClient
from btc15arb.execution.polymarket_client import PolymarketTradingClient
from btc15arb.execution.sizing import VenueFloor, scale_size
from btc15arb.models.quote import to_price
from btc15arb.monitoring.telegram import TelegramAlerter
from btc15arb.monitoring.trade_journal import TradeJournal

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
POLYMARKET_FLOOR = VenueFloor(min_shares=5, min_value=Decimal("1"))
ZERO = Decimal("0")
DEFAULT_TICK_SIZE = Decimal("0.01")


def is_valid_address(user: str) -> bool:
    return bool(ADDRESS_PATTERN.match(user or ""))


def _decimal(value) -> Optional[Decimal]:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


@dataclass
class Activity:
    """Data API activity (TRADE만 사용)."""

    tx_hash: str
    asset: str
    side: str
    size: Decimal
    price: Decimal
    timestamp: int = 0
    title: str = ""
    outcome: str = ""

    @staticmethod
    def from_api(raw: dict) -> Optional[Activity]:
        """raw dict → Activity. TRADE 아니거나 파싱 실패 시 None."""
        if raw.get("type") != "TRADE":
            return None
        size = _decimal(raw.get("size"))
        price = _decimal(raw.get("price"))
        side = str(raw.get("side", "")).upper()
        if size is None or price is None or size <= 0 or side not in ("BUY", "SELL"):
            return None
        if not raw.get("asset"):
            return None
        return Activity(
            tx_hash=str(raw.get("transactionHash", "")),
            asset=str(raw["asset"]),
            side=side,
            size=size,
            price=price,
            timestamp=int(raw.get("timestamp") or 0),
            title=raw.get("title", ""),
            outcome=raw.get("outcome", ""),
        )


@dataclass
class AggregatedTrade:
    """같은 (asset, side) 거래들의 합."""

    asset: str
    side: str
    total_size: Decimal
    avg_price: Decimal
    count: int = 1
    title: str = ""
    outcome: str = ""

    @property
    def notional(self) -> Decimal:
        return self.total_size * self.avg_price


@dataclass
class CopyOrder:
    """스케일링 후 실제 제출할 (또는 건너뛸) 주문."""

    source: AggregatedTrade
    size: int
    price: Optional[Decimal]
    skipped: bool = False
    reason: str = ""
    order_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def asset(self) -> str:
        return self.source.asset

    @property
    def side(self) -> str:
        return self.source.side


@dataclass
class Liquidity:
    shares: Decimal = ZERO
    avg_price: Decimal = ZERO
    cost: Decimal = ZERO


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def aggregate_trades(activities: Iterable[Activity]) -> list[AggregatedTrade]:
    """(asset, side)별 합산. avg_price = Σ size·price / Σ size (VWAP).

    처음 등장한 순서 유지.
    """
    groups: dict[tuple[str, str], list[Activity]] = {}
    for activity in activities:
        groups.setdefault((activity.asset, activity.side), []).append(activity)

    aggregated = []
    for (asset, side), items in groups.items():
        total = sum((a.size for a in items), ZERO)
        if total <= 0:
            continue
        weighted = sum((a.size * a.price for a in items), ZERO)
        aggregated.append(AggregatedTrade(
            asset=asset,
            side=side,
            total_size=total,
            avg_price=weighted / total,
            count=len(items),
            title=items[0].title,
            outcome=items[0].outcome,
        ))
    return aggregated


def plan_copy_order(
    trade: AggregatedTrade,
    copy_percent: Decimal,
    floor: VenueFloor = POLYMARKET_FLOOR,
) -> CopyOrder:
    """copy % 적용 → 정수 수량 (내림). floor 미만이면 skipped ("too small")."""
    size = scale_size(trade.total_size, copy_percent)
    price = to_price(trade.avg_price)
    if price is None or price <= 0:
        return CopyOrder(trade, size, None, skipped=True, reason="invalid price")
    if size < floor.min_shares:
        return CopyOrder(
            trade, size, price, skipped=True,
            reason=f"too small: {size} shares < {floor.min_shares}",
        )
    if price * size < floor.min_value:
        return CopyOrder(
            trade, size, price, skipped=True,
            reason=f"too small: ${price * size:.2f} < ${floor.min_value}",
        )
    return CopyOrder(trade, size, price)


def available_liquidity(book: Optional[dict], side: str, price: Decimal) -> Liquidity:
    """지정가 이하 asks (BUY) / 이상 bids (SELL) 합계."""
    if not book:
        return Liquidity()
    levels = book.get("asks" if side == "BUY" else "bids") or []
    shares = cost = ZERO
    for level in levels:
        if not isinstance(level, dict):
            continue
        p = _decimal(level.get("price"))
        s = _decimal(level.get("size"))
        if p is None or s is None:
            continue
        if (side == "BUY" and p <= price) or (side == "SELL" and p >= price):
            shares += s
            cost += s * p
    avg = cost / shares if shares > 0 else ZERO
    return Liquidity(shares=shares, avg_price=avg, cost=cost)


# ---------------------------------------------------------------------------
# CopyTrader: polling loop
# ---------------------------------------------------------------------------


class CopyTrader:
    """Follow one wallet: poll activity → aggregate → scale → place.

    Args:
        user: 따라갈 지갑 주소 (0x + 40 hex).
        copy_percent: 원본 수량 대비 % (정수 내림).
        dry_run: True면 주문 미제출, 계획만 로그.
    """

    def __init__(
        self,
        data_client: DataApiClient,
        trading_client: PolymarketTradingClient,
        user: str,
        copy_percent: Decimal = Decimal("10"),
        poll_interval: float = 2.0,
        dry_run: bool = True,
        gamma: Optional[GammaClient] = None,
        floor: VenueFloor = POLYMARKET_FLOOR,
        alerter: Optional[TelegramAlerter] = None,
        journal: Optional[TradeJournal] = None,
    ):
        if not is_valid_address(user):
            raise ValueError(f"Invalid user address: {user!r}")
        self._data = data_client
        self._trading = trading_client
        self._gamma = gamma
        self.user = user
        self.copy_percent = copy_percent
        self.poll_interval = poll_interval
        self.dry_run = dry_run
        self.floor = floor
        self._alerter = alerter
        self._journal = journal
        self._seen: set[str] = set()
        self._primed = False
        self.placed: list[CopyOrder] = []
        self.skipped: list[CopyOrder] = []

    @staticmethod
    def _key(raw: dict) -> str:
        tx = raw.get("transactionHash")
        if tx:
            return str(tx)
        return f"{raw.get('asset')}:{raw.get('timestamp')}:{raw.get('size')}:{raw.get('side')}"

    async def prime(self) -> int:
        """기존 활동을 seen으로 등록 (시작 전 거래는 복사 안 함)."""
        items = await self._data.fetch_activity(self.user)
        for raw in items:
            if isinstance(raw, dict):
                self._seen.add(self._key(raw))
        self._primed = True
        logger.info("[COPY] Primed with %d existing activities for %s", len(items), self.user)
        return len(items)

    async def poll_once(self) -> list[CopyOrder]:
        """새 활동만 처리 (오래된 것부터). 처리한 CopyOrder 목록 반환."""
        if not self._primed:
            await self.prime()
            return []

        items = await self._data.fetch_activity(self.user)
        fresh = []
        for raw in reversed(items):
            if not isinstance(raw, dict):
                continue
            key = self._key(raw)
            if key in self._seen:
                continue
            self._seen.add(key)
            activity = Activity.from_api(raw)
            if activity is not None:
                fresh.append(activity)

        if not fresh:
            return []

        orders = []
        for trade in aggregate_trades(fresh):
            plan = plan_copy_order(trade, self.copy_percent, self.floor)
            await self._handle(plan)
            orders.append(plan)
        return orders

    async def _handle(self, plan: CopyOrder) -> None:
        trade = plan.source
        if self._gamma is not None and plan.price is not None:
            book = await self._gamma.fetch_orderbook(trade.asset)
            liq = available_liquidity(book, trade.side, plan.price)
            logger.info(
                "[COPY] Liquidity @ %s: %s shares (avg %.3f)",
                plan.price, liq.shares, liq.avg_price,
            )

        logger.info(
            "[COPY] %s %s (%d trades, %s shares @ %.4f) → %d shares",
            trade.side, trade.title[:40] or trade.asset[:12], trade.count,
            trade.total_size, trade.avg_price, plan.size,
        )

        if plan.skipped:
            logger.info("[COPY] Skipped: %s", plan.reason)
            self.skipped.append(plan)
            self._record(plan)
            return

        if self.dry_run:
            logger.info("[DRY RUN] Would copy: %s %d @ %s", trade.side, plan.size, plan.price)
            self.placed.append(plan)
            self._record(plan)
            return

        tick_size, neg_risk = await self._market_params(trade.asset)
        plan.price = trade.avg_price.quantize(tick_size, rounding=ROUND_HALF_UP)
        result = await self._trading.place_token_order(
            trade.asset, plan.price, plan.size, side=trade.side,
            tick_size=tick_size, neg_risk=neg_risk,
        )
        plan.order_id = result.order_id
        plan.error = result.error
        if result.success:
            self.placed.append(plan)
            if self._alerter is not None:
                await self._alerter.send(
                    f"📋 <b>Copied</b> {trade.side} {plan.size} @ ${plan.price}\n"
                    f"{trade.title[:60]}"
                )
        else:
            logger.warning("[COPY] Order failed: %s", result.error)
        self._record(plan)

    async def _market_params(self, asset: str) -> tuple[Decimal, bool]:
        """토큰별 tick size / neg risk 조회. 조회 실패 시 기본값 (0.01, False)."""
        if self._gamma is None:
            return DEFAULT_TICK_SIZE, False
        tick_size = await self._gamma.get_tick_size(asset)
        neg_risk = await self._gamma.get_neg_risk(asset)
        return tick_size or DEFAULT_TICK_SIZE, bool(neg_risk)

    def _record(self, plan: CopyOrder) -> None:
        if self._journal is None:
            return
        self._journal.write(
            "copy_trade",
            asset=plan.asset,
            side=plan.side,
            source_size=plan.source.total_size,
            source_avg_price=plan.source.avg_price,
            source_count=plan.source.count,
            size=plan.size,
            price=plan.price,
            skipped=plan.skipped,
            reason=plan.reason,
            order_id=plan.order_id,
            error=plan.error,
            dry_run=self.dry_run,
        )

    async def run(self, stop_event: asyncio.Event) -> None:
        """stop_event 까지 폴링. 폴링 에러는 로그 후 계속."""
        await self.prime()
        while not stop_event.is_set():
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[COPY] Poll error")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
