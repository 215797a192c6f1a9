"""Typed domain representations used across ingestion, pricing and reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .fixed_point import FixedPoint


@dataclass(slots=True)
class Transaction:
    """A normalized transfer of the analysed token into or out of a wallet.

    Created by the normalizer, annotated once by the price resolver and then
    only read.
    """

    hash: str
    block_number: int | None
    timestamp: int
    from_address: str
    to_address: str
    token_amount: FixedPoint
    usd_value: FixedPoint | None = None
    cost_basis_per_token: FixedPoint | None = None
    token_symbol: str | None = None
    raw_data: dict[str, Any] | None = None

    @property
    def occurred_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    @property
    def short_hash(self) -> str:
        return self.hash[:8]

    def is_inflow(self, wallet: str) -> bool:
        return self.to_address.lower() == wallet.lower()


@dataclass(slots=True)
class LogEvent:
    """A decoded log entry from a transaction detail record."""

    name: str | None
    params: list[str]
    sender_address: str
    ticker_symbol: str | None

    @property
    def is_transfer(self) -> bool:
        return self.name == "Transfer" and len(self.params) >= 3

    @property
    def transfer_from(self) -> str:
        return self.params[0]

    @property
    def transfer_to(self) -> str:
        return self.params[1]

    @property
    def transfer_amount(self) -> int:
        return int(self.params[2])


@dataclass(slots=True)
class TransactionDetail:
    """Full transaction record used by the indirect pricing tiers."""

    tx_hash: str
    value_quote: FixedPoint
    from_address: str
    gas_quote_rate: FixedPoint
    log_events: list[LogEvent] = field(default_factory=list)


@dataclass(slots=True)
class CostBasisReport:
    """Aggregated holdings derived from the priced transaction history.

    ``average_cost_basis_per_token`` and ``tokens_per_usd`` are ``None`` when
    they are undefined (net balance of zero, or nothing spent).
    """

    net_balance: FixedPoint
    total_bought: FixedPoint
    total_sold: FixedPoint
    total_spent_usd: FixedPoint
    average_cost_basis_per_token: FixedPoint | None
    tokens_per_usd: FixedPoint | None
    transaction_count: int = 0


@dataclass(slots=True)
class TokenSnapshot:
    """Current token metadata supplied by the token-info collaborators."""

    contract: str
    name: str | None
    symbol: str
    decimals: int
    current_price_usd: FixedPoint
    circulating_supply: FixedPoint


@dataclass(slots=True)
class TopCoin:
    name: str
    code: str
    cap: FixedPoint

    @property
    def url(self) -> str:
        return f"https://www.livecoinwatch.com/price/{self.name}-{self.code}"


@dataclass(slots=True)
class MarketCapComparison:
    rank: int
    coin: TopCoin
    potential_usd: FixedPoint


@dataclass(slots=True)
class AnalysisReport:
    """Everything one analysis run produces for display."""

    contract: str
    wallet: str
    snapshot: TokenSnapshot
    transactions: list[Transaction]
    cost_basis: CostBasisReport
    balance: FixedPoint
    balance_usd: FixedPoint
    gains: FixedPoint
    gains_usd: FixedPoint
    market_cap_usd: FixedPoint
    ownership_per_ten_thousand: FixedPoint | None
    earnings_percent: FixedPoint | None
    comparison: MarketCapComparison | None = None
    unpriced_transactions: list[str] = field(default_factory=list)
    display_suffix: str = ""
