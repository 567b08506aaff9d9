"""Append-only trade journal.

실행/시도/에러 이벤트를 JSONL로 기록: data/trades_YYYY-MM-DD.jsonl
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Optional

from btc15arb.models.order import ExecutionReport

logger = logging.getLogger(__name__)


def _default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return str(value)


def report_to_dict(report: ExecutionReport) -> dict:
    opp = report.opportunity
    return {
        "kind": opp.kind.value,
        "label": opp.label,
        "status": report.status.value,
        "reason": report.reason,
        "size": report.size,
        "unit_profit": opp.unit_profit,
        "total_cost": report.total_cost,
        "expected_profit": report.expected_profit,
        "orders": [
            {
                "venue": o.venue.value,
                "outcome": o.outcome.value,
                "side": o.side,
                "price": o.price,
                "size": o.size,
                "status": o.status.value,
                "order_id": o.order_id,
                "error": o.error,
                "dry_run": o.dry_run,
            }
            for o in report.orders
        ],
    }


class TradeJournal:
    """JSONL 저널. 파일은 날짜별로 분리, 항상 append."""

    def __init__(self, data_dir: str = "data", prefix: str = "trades"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        self._entries: int = 0

    def path_for(self, when: Optional[datetime] = None) -> Path:
        when = when or datetime.now(tz=timezone.utc)
        return self.data_dir / f"{self.prefix}_{when.strftime('%Y-%m-%d')}.jsonl"

    def write(self, event: str, **payload) -> None:
        """이벤트 한 줄 기록. 디스크 에러는 로그만 (루프 중단 없음)."""
        now = datetime.now(tz=timezone.utc)
        entry = {"ts": now.isoformat(), "event": event, **payload}
        try:
            with self.path_for(now).open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry, default=_default) + "\n")
            self._entries += 1
        except OSError as exc:
            logger.error("Journal write failed: %s", exc)

    def record_execution(self, report: ExecutionReport) -> None:
        self.write("execution", **report_to_dict(report))

    @property
    def entries(self) -> int:
        return self._entries

    def read(self, when: Optional[datetime] = None) -> list[dict]:
        """하루치 저널 로드 (리포트/테스트용)."""
        path = self.path_for(when)
        if not path.exists():
            return []
        entries = []
        with path.open(encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.debug("Skipping corrupt journal line")
        return entries
