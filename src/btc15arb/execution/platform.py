"""VenueTradingClient: per-venue trading capability consumed by the engine.

서명/인증은 이 경계 안쪽 (py_clob_client, PredictOrderSigner)에서 처리.
모든 메서드는 실패 시 raise 대신 None/False/OrderResult(success=False) 반환.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable

from btc15arb.models.market import MarketWindow
from btc15arb.models.order import OrderResult
from btc15arb.models.quote import Outcome


@runtime_checkable
class VenueTradingClient(Protocol):
    def is_configured(self) -> bool:
        ...

    async def get_active_market(self) -> Optional[dict]:
        ...

    async def get_market_details(self, market_id: str) -> Optional[dict]:
        ...

    async def place_limit_order(
        self,
        window: MarketWindow,
        outcome: Outcome,
        price: Decimal,
        size: int,
        side: str = "BUY",
    ) -> OrderResult:
        ...

    async def cancel_order(self, order_id: str) -> bool:
        ...

    async def get_balance(self) -> Optional[Decimal]:
        ...
