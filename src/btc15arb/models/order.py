"""Order, OrderResult and ExecutionReport data models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

from btc15arb.models.opportunity import Opportunity
from btc15arb.models.quote import Outcome, Venue


class OrderStatus(Enum):
    SUBMITTED = "SUBMITTED"
    FILLED = "FILLED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class ExecutionStatus(Enum):
    """한 기회에 대한 실행 결과."""

    COMPLETE = "COMPLETE"   # 모든 레그 성공
    PARTIAL = "PARTIAL"     # 일부 레그만 성공: naked exposure
    FAILED = "FAILED"       # 모든 레그 실패
    SKIPPED = "SKIPPED"     # 잔고 부족 등으로 미제출


@dataclass
class OrderResult:
    """VenueTradingClient.place_limit_order() 반환값. 절대 raise 하지 않음."""

    success: bool
    order_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Order:
    """제출된 레그 하나."""

    venue: Venue
    outcome: Outcome
    price: Decimal
    size: int
    side: str = "BUY"
    order_id: Optional[str] = None
    status: OrderStatus = OrderStatus.SUBMITTED
    error: Optional[str] = None
    dry_run: bool = False
    created_at: float = field(default_factory=time.time)

    @property
    def cost(self) -> Decimal:
        return self.price * self.size

    @property
    def succeeded(self) -> bool:
        return self.status in (OrderStatus.SUBMITTED, OrderStatus.FILLED)


@dataclass
class ExecutionReport:
    """ExecutionEngine.execute() 결과."""

    opportunity: Opportunity
    status: ExecutionStatus
    size: int = 0
    orders: list[Order] = field(default_factory=list)
    reason: str = ""

    @property
    def filled_orders(self) -> list[Order]:
        return [o for o in self.orders if o.succeeded]

    @property
    def failed_orders(self) -> list[Order]:
        return [o for o in self.orders if not o.succeeded]

    @property
    def total_cost(self) -> Decimal:
        return sum((o.cost for o in self.filled_orders), Decimal("0"))

    @property
    def expected_profit(self) -> Decimal:
        if self.status is not ExecutionStatus.COMPLETE:
            return Decimal("0")
        return self.opportunity.unit_profit * self.size

    @property
    def counts_as_trade(self) -> bool:
        """COMPLETE/PARTIAL은 라운드 트레이드 카운트에 포함."""
        return self.status in (ExecutionStatus.COMPLETE, ExecutionStatus.PARTIAL)
