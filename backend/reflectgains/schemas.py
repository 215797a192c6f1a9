from datetime import datetime
from typing import Any

from pydantic import BaseModel, field_validator

from .domain import (
    AnalysisReport,
    CostBasisReport,
    FixedPoint,
    TokenSnapshot,
    TopCoin,
    Transaction,
)
from .services.valuation import ValuationProjector


def _coerce_fixed(value: Any) -> str | None:
    """Serialize fixed-point values as exact decimal strings."""

    if value is None:
        return None
    if isinstance(value, FixedPoint):
        return value.to_plain_string()
    return str(value)


class TokenInfo(BaseModel):
    contract: str
    name: str | None = None
    symbol: str
    decimals: int
    price_usd: str
    circulating_supply: str
    market_cap_usd: str

    @field_validator("price_usd", "circulating_supply", "market_cap_usd", mode="before")
    @classmethod
    def _coerce_amounts(cls, value: Any) -> str | None:
        return _coerce_fixed(value)

    @classmethod
    def from_snapshot(cls, snapshot: TokenSnapshot) -> "TokenInfo":
        return cls(
            contract=snapshot.contract,
            name=snapshot.name,
            symbol=snapshot.symbol,
            decimals=snapshot.decimals,
            price_usd=snapshot.current_price_usd,
            circulating_supply=snapshot.circulating_supply,
            market_cap_usd=ValuationProjector(snapshot).market_cap,
        )


class TopCoinOut(BaseModel):
    rank: int
    name: str
    code: str
    cap: str
    url: str

    @field_validator("cap", mode="before")
    @classmethod
    def _coerce_cap(cls, value: Any) -> str | None:
        return _coerce_fixed(value)

    @classmethod
    def from_coin(cls, coin: TopCoin, rank: int) -> "TopCoinOut":
        return cls(rank=rank, name=coin.name, code=coin.code, cap=coin.cap, url=coin.url)


class TopCoinList(BaseModel):
    total: int
    items: list[TopCoinOut]


class TransactionOut(BaseModel):
    hash: str
    block_number: int | None = None
    occurred_at: datetime
    from_address: str
    to_address: str
    direction: str
    tokens: str
    usd_value: str | None = None
    cost_basis_per_token: str | None = None
    current_usd: str

    @field_validator("tokens", "usd_value", "cost_basis_per_token", "current_usd", mode="before")
    @classmethod
    def _coerce_amounts(cls, value: Any) -> str | None:
        return _coerce_fixed(value)

    @classmethod
    def from_transaction(
        cls, transaction: Transaction, wallet: str, projector: ValuationProjector
    ) -> "TransactionOut":
        return cls(
            hash=transaction.hash,
            block_number=transaction.block_number,
            occurred_at=transaction.occurred_at,
            from_address=transaction.from_address,
            to_address=transaction.to_address,
            direction="in" if transaction.is_inflow(wallet) else "out",
            tokens=transaction.token_amount,
            usd_value=transaction.usd_value,
            cost_basis_per_token=transaction.cost_basis_per_token,
            current_usd=projector.to_usd(transaction.token_amount),
        )


class CostBasisOut(BaseModel):
    net_balance: str
    total_bought: str
    total_sold: str
    total_spent_usd: str
    average_cost_basis_per_token: str | None = None
    tokens_per_usd: str | None = None
    transaction_count: int

    @field_validator(
        "net_balance",
        "total_bought",
        "total_sold",
        "total_spent_usd",
        "average_cost_basis_per_token",
        "tokens_per_usd",
        mode="before",
    )
    @classmethod
    def _coerce_amounts(cls, value: Any) -> str | None:
        return _coerce_fixed(value)

    @classmethod
    def from_report(cls, report: CostBasisReport) -> "CostBasisOut":
        return cls(
            net_balance=report.net_balance,
            total_bought=report.total_bought,
            total_sold=report.total_sold,
            total_spent_usd=report.total_spent_usd,
            average_cost_basis_per_token=report.average_cost_basis_per_token,
            tokens_per_usd=report.tokens_per_usd,
            transaction_count=report.transaction_count,
        )


class MarketCapComparisonOut(BaseModel):
    coin: TopCoinOut
    potential_usd: str

    @field_validator("potential_usd", mode="before")
    @classmethod
    def _coerce_potential(cls, value: Any) -> str | None:
        return _coerce_fixed(value)


class Analysis(BaseModel):
    contract: str
    wallet: str
    token: TokenInfo
    balance: str
    balance_usd: str
    gains: str
    gains_usd: str
    ownership_per_ten_thousand: str | None = None
    earnings_percent: str | None = None
    cost_basis: CostBasisOut
    comparison: MarketCapComparisonOut | None = None
    transactions: list[TransactionOut]
    unpriced_transactions: list[str]
    display_suffix: str = ""

    @field_validator(
        "balance",
        "balance_usd",
        "gains",
        "gains_usd",
        "ownership_per_ten_thousand",
        "earnings_percent",
        mode="before",
    )
    @classmethod
    def _coerce_amounts(cls, value: Any) -> str | None:
        return _coerce_fixed(value)

    @classmethod
    def from_report(cls, report: AnalysisReport) -> "Analysis":
        projector = ValuationProjector(report.snapshot)
        comparison = None
        if report.comparison is not None:
            comparison = MarketCapComparisonOut(
                coin=TopCoinOut.from_coin(report.comparison.coin, report.comparison.rank),
                potential_usd=report.comparison.potential_usd,
            )
        return cls(
            contract=report.contract,
            wallet=report.wallet,
            token=TokenInfo.from_snapshot(report.snapshot),
            balance=report.balance,
            balance_usd=report.balance_usd,
            gains=report.gains,
            gains_usd=report.gains_usd,
            ownership_per_ten_thousand=report.ownership_per_ten_thousand,
            earnings_percent=report.earnings_percent,
            cost_basis=CostBasisOut.from_report(report.cost_basis),
            comparison=comparison,
            transactions=[
                TransactionOut.from_transaction(tx, report.wallet, projector)
                for tx in report.transactions
            ],
            unpriced_transactions=list(report.unpriced_transactions),
            display_suffix=report.display_suffix,
        )
