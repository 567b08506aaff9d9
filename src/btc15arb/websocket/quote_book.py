"""In-memory quote store for both venues.

(venue, outcome) → Quote. 각 venue의 피드만 자기 venue를 갱신 (single writer).
계산기는 snapshot()으로 읽기만 함.
"""

from __future__ import annotations

import time
from decimal import Decimal

from btc15arb.models.quote import Outcome, Quote, QuoteSnapshot, Venue


class QuoteBook:
    """Best bid/ask per (venue, outcome)."""

    def __init__(self):
        self._quotes: dict[tuple[Venue, Outcome], Quote] = {}
        self._updates: int = 0
        self.clear()

    def update(
        self,
        venue: Venue,
        outcome: Outcome,
        best_bid: Decimal | None,
        best_ask: Decimal | None,
    ) -> bool:
        """Quote 갱신. 값이 바뀌었으면 True."""
        quote = self._quotes[(venue, outcome)]
        changed = quote.best_bid != best_bid or quote.best_ask != best_ask
        quote.best_bid = best_bid
        quote.best_ask = best_ask
        quote.updated_at = time.time()
        self._updates += 1
        return changed

    def get(self, venue: Venue, outcome: Outcome) -> Quote:
        return self._quotes[(venue, outcome)]

    def snapshot(self) -> QuoteSnapshot:
        """현재 상태의 불변 복사본."""
        return QuoteSnapshot(quotes=tuple(
            Quote(
                venue=q.venue,
                outcome=q.outcome,
                best_bid=q.best_bid,
                best_ask=q.best_ask,
                updated_at=q.updated_at,
            )
            for q in self._quotes.values()
        ))

    def clear_venue(self, venue: Venue) -> None:
        """한 venue의 quote 초기화 (윈도우 롤오버 시)."""
        for outcome in Outcome:
            self._quotes[(venue, outcome)] = Quote(venue=venue, outcome=outcome)

    def clear(self) -> None:
        for venue in Venue:
            self.clear_venue(venue)

    @property
    def updates(self) -> int:
        """Total updates applied since start."""
        return self._updates
