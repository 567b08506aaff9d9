"""Telegram Bot API alerts.

체결, PARTIAL (naked leg), 잔고 부족, 에러 알림 전송.
봇 토큰 미설정 시 모든 메서드가 no-op (크래시 없음). 실패는 로그만, 재시도 없음.
"""

from __future__ import annotations

import html
import logging
from decimal import Decimal
from typing import Optional

import aiohttp

from btc15arb.models.order import ExecutionReport
from btc15arb.models.quote import Venue

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
SEND_TIMEOUT = 10  # seconds


class TelegramAlerter:
    """Telegram 알림 발송기.

    Args:
        bot_token: Telegram Bot API 토큰. None이면 비활성.
        chat_id: 메시지 대상 채팅 ID. None이면 비활성.
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
    ):
        self._bot_token = bot_token
        self._chat_id = chat_id

    @property
    def enabled(self) -> bool:
        """토큰과 chat_id 모두 설정됐을 때만 활성."""
        return bool(self._bot_token and self._chat_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(self, text: str) -> bool:
        """메시지 전송. 성공 시 True. 비활성/실패 시 False (raise 안 함)."""
        if not self.enabled:
            return False
        try:
            return await self._send_message(text)
        except Exception as exc:
            logger.error("Failed to send Telegram message: %s", exc)
            return False

    async def alert_trade(self, report: ExecutionReport) -> bool:
        """체결 결과 알림 (COMPLETE / FAILED)."""
        return await self.send(self._format_trade(report))

    async def alert_partial(self, report: ExecutionReport) -> bool:
        """한 레그만 성공: naked exposure 경고."""
        return await self.send(self._format_partial(report))

    async def alert_low_balance(self, venue: Venue, remaining: Decimal) -> bool:
        return await self.send(
            f"⚠️ <b>Low Balance</b>\n"
            f"{venue.label}: ${remaining:.2f} remaining this round"
        )

    async def alert_error(self, message: str, level: str = "error") -> bool:
        """에러/경고/정보 알림."""
        emoji = {"error": "🚨", "warning": "⚠️"}.get(level, "ℹ️")
        return await self.send(f"{emoji} <b>{level.upper()}</b>\n{html.escape(message)}")

    # ------------------------------------------------------------------
    # Internal: HTTP
    # ------------------------------------------------------------------

    async def _send_message(self, text: str, parse_mode: str = "HTML") -> bool:
        """Telegram sendMessage API 호출."""
        url = f"{TELEGRAM_API_URL}/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": parse_mode,
        }
        timeout = aiohttp.ClientTimeout(total=SEND_TIMEOUT)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, json=payload) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    logger.warning("Telegram API %d: %s", resp.status, body[:200])
                    return False
                return True

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _format_legs(report: ExecutionReport) -> str:
        lines = []
        for order in report.orders:
            mark = "✅" if order.succeeded else "❌"
            line = (
                f"{mark} {order.venue.value} {order.outcome.value} "
                f"{order.size} @ ${order.price}"
            )
            if order.error:
                line += f" ({html.escape(order.error[:80])})"
            lines.append(line)
        return "\n".join(lines)

    def _format_trade(self, report: ExecutionReport) -> str:
        opp = report.opportunity
        dry = " [DRY RUN]" if any(o.dry_run for o in report.orders) else ""
        return (
            f"💰 <b>{opp.kind.value} {report.status.value}</b>{dry}\n"
            f"{'━' * 24}\n"
            f"{opp.label}: {opp.profit_cents:.1f}¢/share\n"
            f"Size: {report.size}\n"
            f"{self._format_legs(report)}\n"
            f"Cost: ${report.total_cost:.2f}\n"
            f"Expected Profit: ${report.expected_profit:.2f}"
        )

    def _format_partial(self, report: ExecutionReport) -> str:
        naked = ", ".join(
            f"{o.venue.value} {o.outcome.value} {o.size}@{o.price}"
            for o in report.filled_orders
        )
        return (
            f"🚨 <b>PARTIAL FILL</b>\n"
            f"{'━' * 24}\n"
            f"{report.opportunity.label}\n"
            f"{self._format_legs(report)}\n"
            f"Naked exposure: <b>{naked or '-'}</b>\n"
            f"No unwind attempted - manual review needed"
        )
