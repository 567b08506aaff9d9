"""predict.fun REST client: markets, orders, balance.

인증: x-api-key 헤더 + Bearer JWT.
주문 서명 (EIP-712)은 PredictOrderSigner가 담당 - PREDICTFUN_SIGNER="module:factory"로 주입.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Protocol

from btc15arb.discovery.gamma_client import DEFAULT_TIMEOUT, JsonHttpClient
from btc15arb.models.market import MarketWindow
from btc15arb.models.order import OrderResult
from btc15arb.models.quote import Outcome

logger = logging.getLogger(__name__)

API_BASE = "https://api.predict.fun/v1"
WEI = Decimal(10) ** 18
MARKET_PAGE_SIZE = 150


class PredictOrderSigner(Protocol):
    """predict.fun 계정 서명자 (SDK OrderBuilder 등)."""

    account: str

    async def sign_auth_message(self, message: str) -> str:
        ...

    async def build_limit_order(
        self,
        *,
        token_id: str,
        side: str,
        price_wei: int,
        quantity_wei: int,
        fee_rate_bps: int,
        neg_risk: bool,
        yield_bearing: bool,
    ) -> dict:
        """서명된 주문 반환: {"order": {..., "hash": ...}, "pricePerShare": str}."""
        ...


def load_signer(path: str) -> PredictOrderSigner:
    """"package.module:factory" → factory() 호출 결과."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Signer path must look like 'module:factory', got {path!r}")
    factory = getattr(importlib.import_module(module_name), attr)
    return factory()


def to_wei(value: Decimal) -> int:
    return int((Decimal(value) * WEI).to_integral_value())


def is_btc_window_market(market: dict) -> bool:
    """BTC/USD Up or Down + REGISTERED 상태인지."""
    title = market.get("title") or ""
    return (
        "BTC/USD" in title
        and "Up or Down" in title
        and market.get("status") == "REGISTERED"
    )


class PredictFunClient(JsonHttpClient):
    """VenueTradingClient for predict.fun.

    Args:
        api_key: x-api-key 값.
        auth_token: 미리 발급된 JWT. 없으면 authenticate()에서 signer로 발급.
        signer: PredictOrderSigner. None이면 주문 불가 (조회만 가능).
    """

    def __init__(
        self,
        api_key: str = "",
        auth_token: str = "",
        signer: Optional[PredictOrderSigner] = None,
        base_url: str = API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        super().__init__(base_url, timeout=timeout)
        self.api_key = api_key
        self._signer = signer
        self._token = auth_token
        self._refresh_headers()

    def _refresh_headers(self) -> None:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        self.headers = headers

    def is_configured(self) -> bool:
        return bool(self.api_key and self._signer is not None)

    @property
    def authenticated(self) -> bool:
        return bool(self._token)

    async def authenticate(self) -> bool:
        """GET /auth/message → 서명 → POST /auth → JWT. 이미 토큰 있으면 skip."""
        if self._token:
            return True
        if self._signer is None:
            logger.warning("[PF AUTH] No signer configured")
            return False

        msg = await self._get_dict(f"{self.base_url}/auth/message")
        message = ((msg or {}).get("data") or {}).get("message")
        if not message:
            logger.error("[PF AUTH] Could not fetch auth message")
            return False

        signature = await self._signer.sign_auth_message(message)
        result = await self._request("POST", "/auth", {
            "signer": self._signer.account,
            "message": message,
            "signature": signature,
        })
        token = ((result or {}).get("data") or {}).get("token")
        if not (result or {}).get("success") or not token:
            logger.error("[PF AUTH] Auth failed: %s", (result or {}).get("message"))
            return False

        self._token = token
        self._refresh_headers()
        logger.info("[PF AUTH] Authenticated as %s", self._signer.account)
        return True

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------

    async def get_active_market(self) -> Optional[dict]:
        """첫 번째 REGISTERED BTC/USD Up or Down 마켓. 없으면 None."""
        data = await self._get_dict(
            f"{self.base_url}/markets", {"first": str(MARKET_PAGE_SIZE)},
        )
        if not data or not data.get("success"):
            return None
        for market in data.get("data") or []:
            if isinstance(market, dict) and is_btc_window_market(market):
                return market
        return None

    async def get_market_details(self, market_id: str) -> Optional[dict]:
        data = await self._get_dict(f"{self.base_url}/markets/{market_id}")
        if not data or not data.get("success"):
            return None
        details = data.get("data")
        return details if isinstance(details, dict) else None

    async def get_balance(self) -> Optional[Decimal]:
        """USDT 잔고. /users/me/balance 실패 시 /account/balance 폴백."""
        for path in ("/users/me/balance", "/account/balance"):
            data = await self._get_dict(f"{self.base_url}{path}")
            if not data:
                continue
            body = data.get("data") or {}
            value = body.get("available", body.get("balance"))
            if value is None:
                continue
            try:
                return Decimal(str(value))
            except (InvalidOperation, ValueError):
                continue
        return None

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
        """서명 후 POST /orders (LIMIT). 실패 시 OrderResult(success=False)."""
        if self._signer is None:
            return OrderResult(success=False, error="signer_not_configured")
        try:
            signed = await self._signer.build_limit_order(
                token_id=window.token_for(outcome),
                side=side,
                price_wei=to_wei(price),
                quantity_wei=to_wei(Decimal(size)),
                fee_rate_bps=window.fee_rate_bps,
                neg_risk=window.neg_risk,
                yield_bearing=window.yield_bearing,
            )
            order = signed["order"]
            result = await self._request("POST", "/orders", {
                "data": {
                    "order": order,
                    "pricePerShare": str(signed["pricePerShare"]),
                    "strategy": "LIMIT",
                },
            })
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[PF ORDER] Submit failed: %s", exc)
            return OrderResult(success=False, error=str(exc))

        if not result or not result.get("success"):
            error = (result or {}).get("message") or "Unknown error"
            return OrderResult(success=False, error=str(error))

        order_id = (result.get("data") or {}).get("orderId") or order.get("hash")
        logger.info(
            "[PF ORDER] %s %s %d @ %s → %s", side, outcome.value, size, price, order_id,
        )
        return OrderResult(success=True, order_id=str(order_id) if order_id else None)

    async def cancel_order(self, order_id: str) -> bool:
        """DELETE /orders. 실패 시 False."""
        result = await self._request(
            "DELETE", "/orders", {"data": {"orderIds": [order_id]}},
        )
        return bool(result and result.get("success"))

    async def _request(self, method: str, path: str, payload: dict) -> Optional[dict]:
        """POST/DELETE JSON. 실패 시 None (재시도 없음: 주문 중복 방지)."""
        await self.open()
        url = f"{self.base_url}{path}"
        try:
            async with self._session.request(
                method, url, json=payload, headers=self.headers,
            ) as resp:
                data = await resp.json(content_type=None)
                if resp.status >= 400:
                    logger.warning("predict.fun %s %s returned %d", method, path, resp.status)
                return data if isinstance(data, dict) else None
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("predict.fun %s %s error: %s", method, path, exc)
            return None
