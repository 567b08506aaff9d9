"""Polymarket Data API client: followed trader activity."""

from __future__ import annotations

import logging

from btc15arb.discovery.gamma_client import DEFAULT_TIMEOUT, JsonHttpClient

logger = logging.getLogger(__name__)

DATA_API_URL = "https://data-api.polymarket.com"


class DataApiClient(JsonHttpClient):
    """GET /activity for a wallet address."""

    def __init__(self, base_url: str = DATA_API_URL, timeout: float = DEFAULT_TIMEOUT):
        super().__init__(base_url, timeout=timeout)

    async def fetch_activity(self, user: str, limit: int = 50) -> list[dict]:
        """최신순 활동 목록. 실패 시 빈 리스트."""
        params = {
            "user": user,
            "limit": str(limit),
            "sortBy": "TIMESTAMP",
            "sortDirection": "DESC",
        }
        return await self._get_list(f"{self.base_url}/activity", params)
