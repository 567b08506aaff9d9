"""15-minute window labels: compute for "now", parse from venue titles.

두 venue의 타이틀 포맷이 다름:
    Polymarket:  "Bitcoin Up or Down - January 5, 9:15AM-9:30AM ET"
    predict.fun: "BTC/USD Up or Down - January 5, 9:15-9:30AM ET"
시작 시각의 AM/PM이 빠진 경우 종료 시각의 것을 상속 (12시를 넘어가는 경우는 반전).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

EASTERN = ZoneInfo("America/New_York")
WINDOW_MINUTES = 15

LABEL_PATTERN = re.compile(
    r"(\d{1,2}):(\d{2})\s*(AM|PM)?\s*-\s*(\d{1,2}):(\d{2})\s*(AM|PM)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class WindowLabel:
    """Normalized "H:MM{AM|PM}-H:MM{AM|PM}" window label."""

    start: str
    end: str
    start_meridiem: str
    end_meridiem: str

    def __str__(self) -> str:
        return f"{self.start}{self.start_meridiem}-{self.end}{self.end_meridiem}"


def _infer_start_meridiem(start_hour: int, end_hour: int, end_meridiem: str) -> str:
    # 11:45-12:00PM → 시작은 AM, 11:45-12:00AM → 시작은 PM
    if start_hour == 11 and end_hour == 12:
        return "AM" if end_meridiem == "PM" else "PM"
    return end_meridiem


def parse_window_label(title: Optional[str]) -> Optional[WindowLabel]:
    """타이틀에서 시간 윈도우 라벨 추출. 매칭 실패 시 None."""
    if not title:
        return None
    match = LABEL_PATTERN.search(title)
    if match is None:
        return None

    start_h, start_m, start_mer, end_h, end_m, end_mer = match.groups()
    try:
        start_hour = int(start_h)
        end_hour = int(end_h)
    except ValueError:
        return None

    end_mer = end_mer.upper()
    if start_mer:
        start_mer = start_mer.upper()
    else:
        start_mer = _infer_start_meridiem(start_hour, end_hour, end_mer)

    return WindowLabel(
        start=f"{start_hour}:{start_m}",
        end=f"{end_hour}:{end_m}",
        start_meridiem=start_mer,
        end_meridiem=end_mer,
    )


# ---------------------------------------------------------------------------
# Expected label for "now"
# ---------------------------------------------------------------------------


def _to_eastern(now: Optional[datetime]) -> datetime:
    if now is None:
        now = datetime.now(tz=timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(EASTERN)


def window_bounds(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """현재 15분 버킷의 (start, end): US Eastern 기준."""
    et = _to_eastern(now)
    start = et.replace(
        minute=(et.minute // WINDOW_MINUTES) * WINDOW_MINUTES,
        second=0,
        microsecond=0,
    )
    return start, start + timedelta(minutes=WINDOW_MINUTES)


def _clock(dt: datetime) -> tuple[str, str]:
    hour = dt.hour % 12 or 12
    return f"{hour}:{dt.minute:02d}", ("AM" if dt.hour < 12 else "PM")


def compute_expected_label(now: Optional[datetime] = None) -> WindowLabel:
    """현재 시각의 15분 버킷 라벨. 종료 시각의 AM/PM은 종료 시각 자체에서 계산."""
    start, end = window_bounds(now)
    start_clock, start_mer = _clock(start)
    end_clock, end_mer = _clock(end)
    return WindowLabel(
        start=start_clock,
        end=end_clock,
        start_meridiem=start_mer,
        end_meridiem=end_mer,
    )


def polymarket_title(now: Optional[datetime] = None) -> str:
    """Polymarket 검색용 기대 타이틀.

    예: "Bitcoin Up or Down - January 5, 9:15AM-9:30AM ET"
    """
    start, _ = window_bounds(now)
    label = compute_expected_label(now)
    return f"Bitcoin Up or Down - {start.strftime('%B')} {start.day}, {label} ET"


def seconds_until_next_window(now: Optional[datetime] = None) -> float:
    """다음 15분 경계까지 남은 초."""
    et = _to_eastern(now)
    _, end = window_bounds(et)
    return max(0.0, (end - et).total_seconds())
