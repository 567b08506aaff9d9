"""Data models for btc15arb."""

from btc15arb.models.market import MarketWindow
from btc15arb.models.opportunity import Leg, Opportunity, OpportunityKind
from btc15arb.models.order import (
    ExecutionReport,
    ExecutionStatus,
    Order,
    OrderResult,
    OrderStatus,
)
from btc15arb.models.quote import Outcome, Quote, QuoteSnapshot, Venue, to_price

__all__ = [
    "MarketWindow",
    "Leg",
    "Opportunity",
    "OpportunityKind",
    "ExecutionReport",
    "ExecutionStatus",
    "Order",
    "OrderResult",
    "OrderStatus",
    "Outcome",
    "Quote",
    "QuoteSnapshot",
    "Venue",
    "to_price",
]
