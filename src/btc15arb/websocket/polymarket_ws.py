"""Polymarket CLOB market-channel feed.

프레임 종류:
    - 오더북 스냅샷 배열: [{asset_id, bids, asks}, ...]
    - 단일 오더북: {asset_id, bids, asks}
    - 증분: {price_changes: [{asset_id, best_bid, best_ask}, ...]}
"""

from __future__ import annotations

import logging
from typing import Optional

from btc15arb.models.quote import Venue, to_price
from btc15arb.websocket.feed import (
    ConnectFactory,
    ReconnectPolicy,
    UpdateCallback,
    VenueFeed,
    best_levels,
)
from btc15arb.websocket.quote_book import QuoteBook

logger = logging.getLogger(__name__)

WS_URL = "wss://ws-subscriptions-clob.polymarket.com/ws/market"


class PolymarketFeed(VenueFeed):
    """Best bid/ask for the active Polymarket Up/Down tokens."""

    venue = Venue.POLYMARKET
    name = "PM"

    def __init__(
        self,
        book: QuoteBook,
        url: str = WS_URL,
        policy: Optional[ReconnectPolicy] = None,
        on_update: Optional[UpdateCallback] = None,
        connect: Optional[ConnectFactory] = None,
    ):
        super().__init__(book, url, policy=policy, on_update=on_update, connect=connect)

    async def on_open(self) -> None:
        """토큰별 구독 메시지 (Up, Down)."""
        if self._window is None:
            return
        for token_id in (self._window.up_token_id, self._window.down_token_id):
            await self.send_json({"type": "Market", "assets_ids": [token_id]})
        logger.info("[PM] Subscribed to %s", self._window.title)

    async def parse(self, data) -> bool:
        if isinstance(data, list):
            results = [self._apply_book(msg) for msg in data if isinstance(msg, dict)]
            return any(results)
        if not isinstance(data, dict):
            return False
        if isinstance(data.get("price_changes"), list):
            results = [
                self._apply_change(change)
                for change in data["price_changes"]
                if isinstance(change, dict)
            ]
            return any(results)
        if data.get("asset_id") and ("bids" in data or "asks" in data):
            return self._apply_book(data)
        return False

    def _apply_book(self, msg: dict) -> bool:
        """오더북 스냅샷 → best bid/ask."""
        outcome = self._outcome(msg.get("asset_id"))
        if outcome is None:
            return False
        best_bid, best_ask = best_levels(msg.get("bids"), msg.get("asks"))
        return self._book.update(self.venue, outcome, best_bid, best_ask)

    def _apply_change(self, change: dict) -> bool:
        """price_changes 항목. 빠진 필드는 기존 값 유지."""
        outcome = self._outcome(change.get("asset_id"))
        if outcome is None:
            return False
        current = self._book.get(self.venue, outcome)
        best_bid = current.best_bid
        best_ask = current.best_ask
        if "best_bid" in change:
            best_bid = to_price(change["best_bid"])
        if "best_ask" in change:
            best_ask = to_price(change["best_ask"])
        return self._book.update(self.venue, outcome, best_bid, best_ask)

    def _outcome(self, asset_id):
        if self._window is None or not asset_id:
            return None
        return self._window.outcome_for(str(asset_id))
