"""Venue feed base: persistent WebSocket with forever-retry reconnect.

각 venue 피드는 이 클래스를 상속해서 on_open() (구독)과 parse() (프레임 해석)만 구현.
연결이 끊기면 ReconnectPolicy가 정한 지연 후 재연결 + 재구독 (최대 횟수 없음).
"""

from __future__ import annotations

import asyncio
import json
import logging
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Protocol

import websockets
from websockets.exceptions import ConnectionClosed

from btc15arb.models.market import MarketWindow
from btc15arb.models.quote import Venue, to_price
from btc15arb.websocket.quote_book import QuoteBook

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = 5.0

UpdateCallback = Callable[[Venue], None]
ConnectFactory = Callable[[str], Awaitable]


class ReconnectPolicy(Protocol):
    """재연결 지연 정책. attempt는 1부터 시작."""

    def delay(self, attempt: int) -> float:
        ...


class FixedDelayReconnect:
    """고정 지연, 백오프 증가 없음, 재시도 한도 없음."""

    def __init__(self, delay_secs: float = DEFAULT_RECONNECT_DELAY):
        self.delay_secs = delay_secs

    def delay(self, attempt: int) -> float:
        return self.delay_secs


class ExponentialBackoffReconnect:
    """지수 백오프 (상한 있음). FixedDelayReconnect 대체용."""

    def __init__(self, base: float = 1.0, cap: float = 60.0):
        self.base = base
        self.cap = cap

    def delay(self, attempt: int) -> float:
        return min(self.cap, self.base * (2 ** max(0, attempt - 1)))


# ---------------------------------------------------------------------------
# Orderbook helpers
# ---------------------------------------------------------------------------


def _level(entry) -> tuple[Optional[Decimal], float]:
    """오더북 레벨 하나 → (price, size). {price,size} dict 또는 [p, s] 리스트."""
    if isinstance(entry, dict):
        price, size = entry.get("price"), entry.get("size", 1)
    elif isinstance(entry, (list, tuple)) and entry:
        price = entry[0]
        size = entry[1] if len(entry) > 1 else 1
    else:
        return None, 0.0
    try:
        size = float(size)
    except (TypeError, ValueError):
        size = 0.0
    return to_price(price), size


def best_levels(bids, asks) -> tuple[Optional[Decimal], Optional[Decimal]]:
    """(best_bid, best_ask). best bid = 최고 bid, best ask = 최저 ask. 수량 0 레벨 무시."""
    bid_prices = []
    for entry in bids or []:
        price, size = _level(entry)
        if price is not None and size > 0:
            bid_prices.append(price)
    ask_prices = []
    for entry in asks or []:
        price, size = _level(entry)
        if price is not None and size > 0:
            ask_prices.append(price)
    return (
        max(bid_prices) if bid_prices else None,
        min(ask_prices) if ask_prices else None,
    )


# ---------------------------------------------------------------------------
# VenueFeed
# ---------------------------------------------------------------------------


class VenueFeed:
    """Async WebSocket feed for one venue's active MarketWindow.

    Args:
        book: 공유 QuoteBook (이 피드는 자기 venue만 씀).
        url: WebSocket 엔드포인트.
        policy: ReconnectPolicy. 기본 FixedDelayReconnect(5s).
        on_update: quote 변경 시 호출되는 콜백 (push-driven 평가).
        connect: 연결 팩토리 (테스트에서 교체).
    """

    venue: Venue = Venue.POLYMARKET
    name: str = "feed"

    def __init__(
        self,
        book: QuoteBook,
        url: str,
        policy: Optional[ReconnectPolicy] = None,
        on_update: Optional[UpdateCallback] = None,
        connect: Optional[ConnectFactory] = None,
    ):
        self._book = book
        self._url = url
        self._policy = policy or FixedDelayReconnect()
        self._on_update = on_update
        self._connect = connect or websockets.connect
        self._window: Optional[MarketWindow] = None
        self._ws = None
        self._running = False
        self._connected = False
        self._retarget = False
        self._wake = asyncio.Event()
        self._reconnects: int = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def window(self) -> Optional[MarketWindow]:
        return self._window

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def reconnects(self) -> int:
        return self._reconnects

    def set_on_update(self, callback: Optional[UpdateCallback]) -> None:
        self._on_update = callback

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """메인 루프: connect → subscribe → listen → (끊기면) 대기 → 재연결.

        stop()이 호출될 때까지 반환하지 않음.
        """
        self._running = True
        attempt = 0
        while self._running:
            if self._window is None:
                # 아직 마켓 없음: retarget() 대기
                self._wake.clear()
                await self._wake.wait()
                continue

            self._retarget = False
            await self._connect_once()
            if not self._running:
                break
            if self._retarget:
                logger.info("[%s] Retargeting to %s", self.name, self._window.title)
                attempt = 0
                continue

            attempt += 1
            self._reconnects += 1
            delay = self._policy.delay(attempt)
            logger.info("[%s] Disconnected, reconnecting in %.1fs", self.name, delay)
            self._wake.clear()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    async def _connect_once(self) -> None:
        try:
            ws = await self._connect(self._url)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[%s] Connect failed: %s", self.name, exc)
            return

        self._ws = ws
        self._connected = True
        logger.info("[%s] Connected to %s", self.name, self._url)
        try:
            await self.on_open()
            while self._running and not self._retarget:
                raw = await ws.recv()
                await self.handle_message(raw)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as exc:
            logger.info("[%s] Connection closed: %s", self.name, exc)
        except Exception as exc:
            logger.warning("[%s] Listen error: %s", self.name, exc)
        finally:
            self._connected = False
            self._ws = None
            await self._close_ws(ws)

    async def retarget(self, window: MarketWindow) -> None:
        """새 마켓으로 전환. 현재 연결을 닫고 즉시 재구독."""
        self._window = window
        self._retarget = True
        self._wake.set()
        if self._ws is not None:
            await self._close_ws(self._ws)

    async def stop(self) -> None:
        """루프 종료 + 소켓 닫기."""
        self._running = False
        self._wake.set()
        if self._ws is not None:
            await self._close_ws(self._ws)

    async def _close_ws(self, ws) -> None:
        try:
            await ws.close()
        except Exception as exc:
            logger.debug("[%s] Close error: %s", self.name, exc)

    async def send_json(self, payload: dict) -> None:
        if self._ws is None:
            logger.debug("[%s] Cannot send: not connected", self.name)
            return
        await self._ws.send(json.dumps(payload))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def handle_message(self, raw) -> bool:
        """수신 프레임 처리. quote가 바뀌면 True + on_update 호출. 절대 raise 안 함."""
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.debug("[%s] Non-JSON frame: %s", self.name, str(raw)[:100])
            return False

        try:
            changed = await self.parse(data)
        except (ValueError, TypeError, KeyError, IndexError, AttributeError) as exc:
            logger.debug("[%s] Dropped malformed frame: %s", self.name, exc)
            return False

        if changed and self._on_update is not None:
            try:
                self._on_update(self.venue)
            except Exception:
                logger.exception("[%s] on_update callback failed", self.name)
        return changed

    # ------------------------------------------------------------------
    # Venue hooks
    # ------------------------------------------------------------------

    async def on_open(self) -> None:
        """연결 직후 구독 메시지 전송."""
        raise NotImplementedError

    async def parse(self, data) -> bool:
        """파싱된 JSON → QuoteBook 갱신. 변경 여부 반환."""
        raise NotImplementedError
