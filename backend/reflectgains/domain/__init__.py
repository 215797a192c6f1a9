"""Domain values and models for wallet cost-basis analysis."""

from .fixed_point import USD_SCALE, FixedPoint
from .models import (
    AnalysisReport,
    CostBasisReport,
    LogEvent,
    MarketCapComparison,
    TokenSnapshot,
    TopCoin,
    Transaction,
    TransactionDetail,
)

__all__ = [
    "AnalysisReport",
    "CostBasisReport",
    "FixedPoint",
    "LogEvent",
    "MarketCapComparison",
    "TokenSnapshot",
    "TopCoin",
    "Transaction",
    "TransactionDetail",
    "USD_SCALE",
]
