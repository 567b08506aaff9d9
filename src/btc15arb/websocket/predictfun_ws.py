"""predict.fun orderbook feed.

- 구독: {"method": "subscribe", "requestId": n, "params": ["predictOrderbook/{id}"]}
- 하트비트: {"type": "M", "topic": "heartbeat", "data": X} → {"method": "heartbeat", "data": X}
  (그대로 echo 안 하면 서버가 idle 연결을 끊음)
- 오더북: Up outcome 기준 [[price, size], ...]. Down은 1 - Up 으로 유도.
"""

from __future__ import annotations

import logging
from typing import Optional

from btc15arb.models.quote import Outcome, Venue, complement
from btc15arb.websocket.feed import (
    ConnectFactory,
    ReconnectPolicy,
    UpdateCallback,
    VenueFeed,
    best_levels,
)
from btc15arb.websocket.quote_book import QuoteBook

logger = logging.getLogger(__name__)

WS_URL = "wss://ws.predict.fun/ws"
ORDERBOOK_TOPIC = "predictOrderbook/{market_id}"


def build_url(api_key: str = "", base: str = WS_URL) -> str:
    return f"{base}?apiKey={api_key}" if api_key else base


class PredictFunFeed(VenueFeed):
    """Best bid/ask for the active predict.fun market (Up direct, Down derived)."""

    venue = Venue.PREDICTFUN
    name = "PF"

    def __init__(
        self,
        book: QuoteBook,
        api_key: str = "",
        url: Optional[str] = None,
        policy: Optional[ReconnectPolicy] = None,
        on_update: Optional[UpdateCallback] = None,
        connect: Optional[ConnectFactory] = None,
    ):
        super().__init__(
            book,
            url or build_url(api_key),
            policy=policy,
            on_update=on_update,
            connect=connect,
        )
        self._request_id = 0
        self._heartbeats = 0

    @property
    def topic(self) -> Optional[str]:
        if self._window is None:
            return None
        return ORDERBOOK_TOPIC.format(market_id=self._window.market_id)

    @property
    def heartbeats(self) -> int:
        return self._heartbeats

    async def on_open(self) -> None:
        if self.topic is None:
            return
        self._request_id += 1
        await self.send_json({
            "method": "subscribe",
            "requestId": self._request_id,
            "params": [self.topic],
        })
        logger.info("[PF] Subscribed to %s", self.topic)

    async def parse(self, data) -> bool:
        if not isinstance(data, dict):
            return False

        msg_type = data.get("type")
        topic = data.get("topic") or ""

        if msg_type == "R":
            # 구독 응답
            if data.get("success") is False:
                logger.warning("[PF] Request failed: %s", data)
            return False

        if msg_type != "M":
            return False

        if topic == "heartbeat":
            self._heartbeats += 1
            await self.send_json({"method": "heartbeat", "data": data.get("data")})
            return False

        if topic != self.topic:
            return False

        book = data.get("data")
        if not isinstance(book, dict):
            return False

        up_bid, up_ask = best_levels(book.get("bids"), book.get("asks"))
        changed_up = self._book.update(self.venue, Outcome.UP, up_bid, up_ask)
        # Down ask = 1 - Up bid, Down bid = 1 - Up ask
        changed_down = self._book.update(
            self.venue, Outcome.DOWN, complement(up_ask), complement(up_bid),
        )
        return changed_up or changed_down
