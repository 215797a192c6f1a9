from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Callable

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest

from reflectgains.core.config import Settings
from reflectgains.domain import (
    USD_SCALE,
    AnalysisReport,
    CostBasisReport,
    FixedPoint,
    MarketCapComparison,
    TokenSnapshot,
    TopCoin,
    Transaction,
)
from reflectgains.repositories import InMemoryPriceCache

CONTRACT = "0xaad87f47cdea777faf87e7602e91e3a6afbe4d57"
WALLET = "0x1111111111111111111111111111111111111111"
PAIR = "0x2222222222222222222222222222222222222222"
ROUTER = "0x3333333333333333333333333333333333333333"
OTHER = "0x4444444444444444444444444444444444444444"


def usd(value: str) -> FixedPoint:
    return FixedPoint.from_string(value, USD_SCALE)


def tokens(whole: int | str, decimals: int = 18) -> FixedPoint:
    return FixedPoint.from_string(str(whole), decimals)


def make_transaction(
    tx_hash: str,
    *,
    to_address: str = WALLET,
    from_address: str = PAIR,
    amount: FixedPoint | None = None,
    usd_value: FixedPoint | None = None,
    timestamp: int = 1_620_000_000,
) -> Transaction:
    return Transaction(
        hash=tx_hash,
        block_number=7_000_000,
        timestamp=timestamp,
        from_address=from_address,
        to_address=to_address,
        token_amount=amount if amount is not None else tokens(1),
        usd_value=usd_value,
    )


def transfer_event(
    sender: str,
    ticker: str,
    from_address: str,
    to_address: str,
    amount: int,
) -> dict[str, Any]:
    return {
        "decoded": {
            "name": "Transfer",
            "params": [
                {"value": from_address},
                {"value": to_address},
                {"value": str(amount)},
            ],
        },
        "sender_address": sender,
        "sender_contract_ticker_symbol": ticker,
    }


def transaction_payload(
    *,
    value_quote: float = 0,
    gas_quote_rate: float = 0,
    from_address: str = WALLET,
    log_events: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    return {
        "data": {
            "items": [
                {
                    "value_quote": value_quote,
                    "from_address": from_address,
                    "gas_quote_rate": gas_quote_rate,
                    "log_events": log_events or [],
                }
            ]
        }
    }


class FakeDetailSource:
    """Serves canned transaction payloads and counts lookups."""

    def __init__(self, payloads: dict[str, Any]) -> None:
        self.payloads = payloads
        self.calls: list[str] = []

    def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        self.calls.append(tx_hash)
        payload = self.payloads[tx_hash]
        if isinstance(payload, Exception):
            raise payload
        return payload


class FakeHistorySource:
    def __init__(self, rate: float | None = None, error: Exception | None = None) -> None:
        self.rate = rate
        self.error = error
        self.calls: list[tuple[str, int]] = []

    def get_price_history(self, symbol: str, timestamp_ms: int) -> dict[str, Any]:
        self.calls.append((symbol, timestamp_ms))
        if self.error is not None:
            raise self.error
        if self.rate is None:
            return {"history": []}
        return {"history": [{"date": timestamp_ms, "rate": self.rate}]}


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    settings = Settings(
        database_url="sqlite:///:memory:",
        price_resolution_concurrency=2,
        default_top_coin_index=1,
    )
    monkeypatch.setattr("reflectgains.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("reflectgains.core.config.settings", settings)
    return settings


@pytest.fixture
def price_cache() -> InMemoryPriceCache:
    return InMemoryPriceCache()


@pytest.fixture
def snapshot() -> TokenSnapshot:
    return TokenSnapshot(
        contract=CONTRACT,
        name="Pye",
        symbol="PYE",
        decimals=18,
        current_price_usd=usd("0.03"),
        circulating_supply=tokens(1_000_000),
    )


@pytest.fixture
def make_report(snapshot) -> Callable[..., AnalysisReport]:
    def _build(**overrides: Any) -> AnalysisReport:
        transactions = [
            make_transaction("0xaaa", amount=tokens(1000), usd_value=usd("10")),
            make_transaction("0xbbb", amount=tokens(2000), usd_value=usd("40")),
        ]
        cost_basis = CostBasisReport(
            net_balance=tokens(3000),
            total_bought=tokens(3000),
            total_sold=tokens(0),
            total_spent_usd=usd("50"),
            average_cost_basis_per_token=usd("0.016666666666666666"),
            tokens_per_usd=tokens(60),
            transaction_count=2,
        )
        coin = TopCoin(name="Bitcoin", code="BTC", cap=FixedPoint(600_000_000_000, 0))
        values: dict[str, Any] = {
            "contract": CONTRACT,
            "wallet": WALLET,
            "snapshot": snapshot,
            "transactions": transactions,
            "cost_basis": cost_basis,
            "balance": tokens(3300),
            "balance_usd": usd("99"),
            "gains": tokens(300),
            "gains_usd": usd("9"),
            "market_cap_usd": usd("30000"),
            "ownership_per_ten_thousand": FixedPoint(33000, 3),
            "earnings_percent": FixedPoint(9800, 2),
            "comparison": MarketCapComparison(rank=1, coin=coin, potential_usd=usd("1980000000")),
        }
        values.update(overrides)
        return AnalysisReport(**values)

    return _build
