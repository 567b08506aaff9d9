"""Market resolvers: "what is the active 15-minute BTC window right now?"

venue마다 하나. 각 resolver가 자기 venue의 MarketWindow를 소유.
찾지 못하면 None (일시적 상황 - 다음 refresh에서 재시도).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from btc15arb.discovery.gamma_client import GammaClient
from btc15arb.discovery.time_window import (
    compute_expected_label,
    parse_window_label,
    polymarket_title,
)
from btc15arb.execution.predictfun_client import PredictFunClient
from btc15arb.models.market import MarketWindow
from btc15arb.models.quote import Venue

logger = logging.getLogger(__name__)


class MarketResolver:
    """Base resolver: owns the current MarketWindow for one venue."""

    venue: Venue = Venue.POLYMARKET

    def __init__(self):
        self.current: Optional[MarketWindow] = None

    async def find_market(self, now: Optional[datetime] = None) -> Optional[MarketWindow]:
        raise NotImplementedError

    async def refresh(
        self, now: Optional[datetime] = None,
    ) -> tuple[Optional[MarketWindow], bool]:
        """재조회. (window, changed) 반환. 못 찾으면 기존 window 유지 + changed=False."""
        found = await self.find_market(now)
        if found is None:
            logger.info("[%s] No active market found, keeping current", self.venue.value)
            return self.current, False

        changed = not found.same_contract(self.current)
        if changed:
            previous = self.current.title if self.current else "-"
            logger.info(
                "[%s] New window: %s (was %s)", self.venue.value, found.title, previous,
            )
            self.current = found
        return self.current, changed


class PolymarketResolver(MarketResolver):
    """Gamma public-search by expected title, then CLOB tick size / neg risk."""

    venue = Venue.POLYMARKET

    def __init__(self, gamma: GammaClient):
        super().__init__()
        self._gamma = gamma

    async def find_market(self, now: Optional[datetime] = None) -> Optional[MarketWindow]:
        expected = compute_expected_label(now)
        query = polymarket_title(now)
        events = await self._gamma.search_events(query)

        window = None
        for event in events:
            if not isinstance(event, dict):
                continue
            if parse_window_label(event.get("title")) != expected:
                continue
            for raw_mkt in event.get("markets") or []:
                if isinstance(raw_mkt, dict):
                    window = MarketWindow.from_gamma_response(raw_mkt, event)
                if window is not None:
                    break
            if window is not None:
                break

        if window is None:
            logger.info("[PM] No market for %s", query)
            return None

        tick_size = await self._gamma.get_tick_size(window.up_token_id)
        if tick_size is not None:
            window.tick_size = tick_size
        neg_risk = await self._gamma.get_neg_risk(window.up_token_id)
        if neg_risk is not None:
            window.neg_risk = neg_risk
        return window


class PredictFunResolver(MarketResolver):
    """First REGISTERED BTC/USD Up or Down market, then its details."""

    venue = Venue.PREDICTFUN

    def __init__(self, client: PredictFunClient):
        super().__init__()
        self._client = client

    async def find_market(self, now: Optional[datetime] = None) -> Optional[MarketWindow]:
        market = await self._client.get_active_market()
        if market is None:
            logger.info("[PF] No REGISTERED BTC/USD Up or Down market")
            return None

        details = await self._client.get_market_details(str(market.get("id", "")))
        merged = dict(market)
        if details:
            merged.update(details)
        window = MarketWindow.from_predictfun_response(merged)
        if window is None:
            logger.warning("[PF] Market %s missing Up/Down outcomes", market.get("id"))
        return window
