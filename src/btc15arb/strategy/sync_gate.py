"""Sync gate: both venues must be trading the same 15-minute window."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from btc15arb.discovery.time_window import WindowLabel, parse_window_label
from btc15arb.models.market import MarketWindow


def are_in_sync(title_a: Optional[str], title_b: Optional[str]) -> bool:
    """시작/종료 시각과 AM/PM이 모두 같을 때만 True. 대칭."""
    label_a = parse_window_label(title_a)
    label_b = parse_window_label(title_b)
    if label_a is None or label_b is None:
        return False
    return label_a == label_b


@dataclass(frozen=True)
class SyncStatus:
    in_sync: bool
    pm_label: Optional[WindowLabel] = None
    pf_label: Optional[WindowLabel] = None

    def describe(self) -> str:
        pm = str(self.pm_label) if self.pm_label else "?"
        pf = str(self.pf_label) if self.pf_label else "?"
        state = "SYNCED" if self.in_sync else "OUT OF SYNC"
        return f"{state} (PM {pm} | PF {pf})"


def sync_status(
    pm_window: Optional[MarketWindow],
    pf_window: Optional[MarketWindow],
) -> SyncStatus:
    """두 venue의 현재 윈도우 비교."""
    pm_title = pm_window.title if pm_window else None
    pf_title = pf_window.title if pf_window else None
    return SyncStatus(
        in_sync=are_in_sync(pm_title, pf_title),
        pm_label=parse_window_label(pm_title),
        pf_label=parse_window_label(pf_title),
    )
