"""Gamma / CLOB read-only API client with retry and error handling."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)

GAMMA_API_URL = "https://gamma-api.polymarket.com"
CLOB_API_URL = "https://clob.polymarket.com"
DEFAULT_TIMEOUT = 10  # seconds
DEFAULT_MAX_RETRIES = 3


class JsonHttpClient:
    """aiohttp 세션 + 재시도 GET 헬퍼.

    Usage:
        async with GammaClient() as client:
            events = await client.search_events("Bitcoin Up or Down - ...")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        headers: Optional[dict] = None,
    ):
        self.base_url = base_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.max_retries = max_retries
        self.headers = headers or {}
        self._session: Optional[aiohttp.ClientSession] = None

    async def open(self) -> None:
        """Open aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)

    async def close(self) -> None:
        """Close aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # HTTP helpers with retry
    # ------------------------------------------------------------------

    async def _get_json(self, url: str, params: Optional[dict] = None):
        """GET → JSON. 429시 지수 백오프. 실패 시 None 반환 (크래시 방지)."""
        await self.open()
        for attempt in range(1, self.max_retries + 1):
            try:
                async with self._session.get(
                    url, params=params, headers=self.headers,
                ) as resp:
                    if resp.status == 200:
                        return await resp.json(content_type=None)
                    if resp.status == 429:
                        wait = 1.0 * (2 ** (attempt - 1))
                        logger.warning(
                            "API 429 rate limit %s (attempt %d/%d), backing off %.1fs",
                            url, attempt, self.max_retries, wait,
                        )
                        await asyncio.sleep(wait)
                        continue
                    logger.warning(
                        "API %s returned %d (attempt %d/%d)",
                        url, resp.status, attempt, self.max_retries,
                    )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "API %s error (attempt %d/%d): %s",
                    url, attempt, self.max_retries, exc,
                )

            if attempt < self.max_retries:
                await asyncio.sleep(0.1 * (2 ** (attempt - 1)))

        return None

    async def _get_dict(self, url: str, params: Optional[dict] = None) -> Optional[dict]:
        data = await self._get_json(url, params)
        return data if isinstance(data, dict) else None

    async def _get_list(self, url: str, params: Optional[dict] = None) -> list[dict]:
        data = await self._get_json(url, params)
        return data if isinstance(data, list) else []


class GammaClient(JsonHttpClient):
    """Polymarket market discovery: Gamma search + CLOB metadata."""

    def __init__(
        self,
        base_url: str = GAMMA_API_URL,
        clob_url: str = CLOB_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        super().__init__(base_url, timeout=timeout, max_retries=max_retries)
        self.clob_url = clob_url

    async def search_events(self, query: str, limit_per_type: int = 5) -> list[dict]:
        """GET /public-search: 타이틀로 이벤트 검색. 실패 시 빈 리스트."""
        url = f"{self.base_url}/public-search"
        params = {
            "q": query,
            "type": "events",
            "limit_per_type": str(limit_per_type),
        }
        data = await self._get_dict(url, params)
        if not data:
            return []
        events = data.get("events")
        return events if isinstance(events, list) else []

    async def get_market(self, market_id: str) -> Optional[dict]:
        """GET /markets/{id}: 마켓 직접 조회. 실패 시 None."""
        return await self._get_dict(f"{self.base_url}/markets/{market_id}")

    async def get_tick_size(self, token_id: str) -> Optional[Decimal]:
        """GET clob /tick-size. 실패 시 None."""
        data = await self._get_dict(
            f"{self.clob_url}/tick-size", {"token_id": token_id},
        )
        if not data:
            return None
        try:
            return Decimal(str(data.get("minimum_tick_size")))
        except (InvalidOperation, TypeError, ValueError):
            return None

    async def get_neg_risk(self, token_id: str) -> Optional[bool]:
        """GET clob /neg-risk. 실패 시 None."""
        data = await self._get_dict(
            f"{self.clob_url}/neg-risk", {"token_id": token_id},
        )
        if not data or "neg_risk" not in data:
            return None
        return bool(data["neg_risk"])

    async def fetch_orderbook(self, token_id: str) -> Optional[dict]:
        """GET clob /book: 토큰 오더북. 실패 시 None."""
        return await self._get_dict(f"{self.clob_url}/book", {"token_id": token_id})
