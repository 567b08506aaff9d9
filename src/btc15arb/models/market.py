"""MarketWindow: the active 15-minute contract pair on one venue."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from btc15arb.discovery.time_window import WindowLabel, parse_window_label
from btc15arb.models.quote import Outcome, Venue

logger = logging.getLogger(__name__)


def _as_list(value) -> list:
    """Gamma API는 outcomes/clobTokenIds를 JSON 문자열로 줄 때가 있음."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return []
    return value if isinstance(value, list) else []


def _find_index(names: list, wanted: str) -> int:
    for i, name in enumerate(names):
        if str(name).strip().lower() == wanted:
            return i
    return -1


@dataclass
class MarketWindow:
    """One venue's currently active BTC Up/Down contract.

    Polymarket: market_id는 Gamma market id, 토큰은 CLOB token id.
    predict.fun: market_id는 정수 id (문자열로 보관), 토큰은 onChainId.
    """

    venue: Venue
    market_id: str
    title: str
    up_token_id: str
    down_token_id: str
    tick_size: Decimal = Decimal("0.01")
    neg_risk: bool = False
    fee_rate_bps: int = 0
    yield_bearing: bool = False
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def label(self) -> Optional[WindowLabel]:
        """타이틀에서 추출한 시간 윈도우 라벨. 없으면 None."""
        return parse_window_label(self.title)

    def token_for(self, outcome: Outcome) -> str:
        return self.up_token_id if outcome is Outcome.UP else self.down_token_id

    def outcome_for(self, token_id: str) -> Optional[Outcome]:
        if token_id == self.up_token_id:
            return Outcome.UP
        if token_id == self.down_token_id:
            return Outcome.DOWN
        return None

    def same_contract(self, other: Optional[MarketWindow]) -> bool:
        """같은 계약인지 (market id + Up 토큰 기준)."""
        if other is None:
            return False
        return (
            self.market_id == other.market_id
            and self.up_token_id == other.up_token_id
        )

    # ------------------------------------------------------------------
    # Venue-specific parsers (raw dict → MarketWindow)
    # ------------------------------------------------------------------

    @staticmethod
    def from_gamma_response(raw_mkt: dict, event: dict) -> Optional[MarketWindow]:
        """Gamma public-search event/market → MarketWindow. 파싱 실패 시 None."""
        outcomes = _as_list(raw_mkt.get("outcomes"))
        token_ids = _as_list(raw_mkt.get("clobTokenIds"))
        if len(outcomes) < 2 or len(token_ids) < 2:
            return None

        up_idx = _find_index(outcomes, "up")
        down_idx = _find_index(outcomes, "down")
        if up_idx < 0 or down_idx < 0:
            logger.debug("Gamma market without Up/Down outcomes: %s", outcomes)
            return None

        title = event.get("title") or raw_mkt.get("question") or ""
        return MarketWindow(
            venue=Venue.POLYMARKET,
            market_id=str(raw_mkt.get("id", "")),
            title=title,
            up_token_id=str(token_ids[up_idx]),
            down_token_id=str(token_ids[down_idx]),
            neg_risk=bool(raw_mkt.get("negRisk", False)),
            raw=raw_mkt,
        )

    @staticmethod
    def from_predictfun_response(raw: dict) -> Optional[MarketWindow]:
        """predict.fun /markets/{id} data → MarketWindow. 파싱 실패 시 None."""
        outcomes = raw.get("outcomes")
        if not isinstance(outcomes, list):
            return None

        up = down = None
        for outcome in outcomes:
            if not isinstance(outcome, dict):
                continue
            name = str(outcome.get("name", "")).strip().lower()
            if name == "up":
                up = outcome
            elif name == "down":
                down = outcome
        if up is None or down is None:
            return None
        if not up.get("onChainId") or not down.get("onChainId"):
            return None

        try:
            fee_rate_bps = int(raw.get("feeRateBps") or 0)
        except (TypeError, ValueError):
            fee_rate_bps = 0

        return MarketWindow(
            venue=Venue.PREDICTFUN,
            market_id=str(raw.get("id", "")),
            title=raw.get("title", ""),
            up_token_id=str(up["onChainId"]),
            down_token_id=str(down["onChainId"]),
            neg_risk=bool(raw.get("isNegRisk", False)),
            fee_rate_bps=fee_rate_bps,
            yield_bearing=bool(raw.get("isYieldBearing", False)),
            raw=raw,
        )
