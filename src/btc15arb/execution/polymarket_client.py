"""Polymarket trading client: py_clob_client 래퍼.

ClobClient는 동기 HTTP라 asyncio.to_thread + wait_for(timeout)로 감싸서
이벤트 루프(quote 처리)를 막지 않게 함. 절대 raise 하지 않음.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Optional

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import (
    AssetType,
    BalanceAllowanceParams,
    OrderArgs,
    OrderType,
    PartialCreateOrderOptions,
)

from btc15arb.discovery.gamma_client import CLOB_API_URL, GammaClient
from btc15arb.discovery.time_window import polymarket_title
from btc15arb.models.market import MarketWindow
from btc15arb.models.order import OrderResult
from btc15arb.models.quote import Outcome

logger = logging.getLogger(__name__)

POLYGON_CHAIN_ID = 137
SIGNATURE_TYPE_POLY_PROXY = 2
USDC_DECIMALS = Decimal("1000000")


class PolymarketTradingClient:
    """VenueTradingClient for Polymarket CLOB.

    Args:
        clob_client: 인증된 ClobClient. None이면 미설정 (주문 불가).
        gamma: 마켓 조회용 GammaClient.
        timeout: CLOB 호출 타임아웃 (초).
    """

    def __init__(
        self,
        clob_client: Optional[ClobClient] = None,
        gamma: Optional[GammaClient] = None,
        timeout: float = 10.0,
    ):
        self._client = clob_client
        self._gamma = gamma or GammaClient()
        self.timeout = timeout

    @classmethod
    def from_credentials(
        cls,
        private_key: str,
        funder: str,
        gamma: Optional[GammaClient] = None,
        timeout: float = 10.0,
    ) -> PolymarketTradingClient:
        """private key + funder로 ClobClient 생성, API creds derive."""
        client = ClobClient(
            host=CLOB_API_URL,
            chain_id=POLYGON_CHAIN_ID,
            key=private_key,
            signature_type=SIGNATURE_TYPE_POLY_PROXY,
            funder=funder,
        )
        client.set_api_creds(client.create_or_derive_api_creds())
        logger.info("Polymarket CLOB client ready (funder=%s)", funder[:10])
        return cls(clob_client=client, gamma=gamma, timeout=timeout)

    def is_configured(self) -> bool:
        return self._client is not None

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    async def get_active_market(self) -> Optional[dict]:
        """현재 15분 윈도우 이벤트 (Gamma 검색 첫 결과)."""
        events = await self._gamma.search_events(polymarket_title())
        return events[0] if events else None

    async def get_market_details(self, market_id: str) -> Optional[dict]:
        return await self._gamma.get_market(market_id)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def place_limit_order(
        self,
        window: MarketWindow,
        outcome: Outcome,
        price: Decimal,
        size: int,
        side: str = "BUY",
    ) -> OrderResult:
        """GTC 지정가 주문. 실패 시 OrderResult(success=False)."""
        result = await self.place_token_order(
            window.token_for(outcome),
            price,
            size,
            side=side,
            tick_size=window.tick_size,
            neg_risk=window.neg_risk,
        )
        if result.success:
            logger.info(
                "[PM ORDER] %s %s %d @ %s → %s",
                side, outcome.value, size, price, result.order_id,
            )
        return result

    async def place_token_order(
        self,
        token_id: str,
        price: Decimal,
        size: int,
        side: str = "BUY",
        tick_size: Decimal = Decimal("0.01"),
        neg_risk: bool = False,
    ) -> OrderResult:
        """토큰 ID 기준 GTC 주문 (copy trade는 MarketWindow 없이 사용)."""
        if self._client is None:
            return OrderResult(success=False, error="client_not_configured")

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    self._submit, token_id, float(price), float(size), side,
                    str(tick_size), neg_risk,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error("[PM ORDER] Timed out after %.1fs", self.timeout)
            return OrderResult(success=False, error="timeout")
        except Exception as exc:
            logger.error("[PM ORDER] Submit failed: %s", exc)
            return OrderResult(success=False, error=str(exc))

        if not isinstance(response, dict):
            return OrderResult(
                success=False,
                error=f"invalid_response_type: {type(response).__name__}",
            )

        order_id = response.get("orderID") or response.get("order_id")
        if response.get("success") is False or not order_id:
            error = response.get("errorMsg") or response.get("error") or "no_order_id_in_response"
            return OrderResult(success=False, error=str(error))
        return OrderResult(success=True, order_id=str(order_id))

    def _submit(
        self,
        token_id: str,
        price: float,
        size: float,
        side: str,
        tick_size: str,
        neg_risk: bool,
    ):
        order_args = OrderArgs(token_id=token_id, price=price, size=size, side=side)
        options = PartialCreateOrderOptions(tick_size=tick_size, neg_risk=neg_risk)
        signed_order = self._client.create_order(order_args, options)
        return self._client.post_order(signed_order, OrderType.GTC)

    async def cancel_order(self, order_id: str) -> bool:
        if self._client is None:
            return False
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self._client.cancel, order_id),
                timeout=self.timeout,
            )
        except Exception as exc:
            logger.warning("[PM CANCEL] %s failed: %s", order_id, exc)
            return False
        if not isinstance(response, dict):
            return False
        return order_id in (response.get("canceled") or [])

    async def get_balance(self) -> Optional[Decimal]:
        """USDC collateral 잔고 (USD). 실패 시 None."""
        if self._client is None:
            return None
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    self._client.get_balance_allowance,
                    BalanceAllowanceParams(asset_type=AssetType.COLLATERAL),
                ),
                timeout=self.timeout,
            )
            return Decimal(str(response["balance"])) / USDC_DECIMALS
        except Exception as exc:
            logger.warning("[PM BALANCE] failed: %s", exc)
            return None
