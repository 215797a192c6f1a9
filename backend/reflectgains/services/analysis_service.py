"""End-to-end analysis of one wallet's history with one token."""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from loguru import logger
from web3 import Web3
from web3.exceptions import Web3Exception

from ingestion.chain import ChainReader
from ingestion.client import BscScanClient, CovalentClient, LiveCoinWatchClient, PancakeSwapClient
from ingestion.normalize import parse_top_coins
from ingestion.service import fetch_transactions, load_token_snapshot
from reflectgains.core.config import Settings, get_settings
from reflectgains.core.errors import CollaboratorUnavailable, InvalidAddress, NoTransactionsFound
from reflectgains.domain import (
    AnalysisReport,
    FixedPoint,
    MarketCapComparison,
    TokenSnapshot,
    TopCoin,
)
from reflectgains.domain.formatting import choose_display_suffix
from reflectgains.repositories import PriceCache

from .cost_basis import aggregate_cost_basis
from .price_resolver import PriceResolver
from .valuation import ValuationProjector

_COLLABORATOR_ERRORS = (httpx.HTTPError, OSError, ValueError, Web3Exception)


def checked_address(value: str, field: str) -> str:
    """Lower-case ``value`` or raise :class:`InvalidAddress` if it is not a hex address."""

    address = value.strip().lower()
    if not Web3.is_address(address):
        raise InvalidAddress(field, value)
    return address


@dataclass(slots=True)
class Collaborators:
    """Upstream clients. Long-lived processes share one set so client caches persist."""

    transfers: BscScanClient
    details: CovalentClient
    prices: LiveCoinWatchClient
    tokens: PancakeSwapClient
    chain: ChainReader

    @classmethod
    def create(cls) -> "Collaborators":
        return cls(
            transfers=BscScanClient(),
            details=CovalentClient(),
            prices=LiveCoinWatchClient(),
            tokens=PancakeSwapClient(),
            chain=ChainReader(),
        )

    def close(self) -> None:
        for client in (self.transfers, self.details, self.prices, self.tokens):
            client.close()


class AnalysisService:
    """Run the normalize -> price -> aggregate -> project pipeline.

    Clients passed in (directly or through ``collaborators``) belong to the
    caller; :meth:`close` only closes the ones the service created itself.
    """

    def __init__(
        self,
        cache: PriceCache,
        *,
        settings: Settings | None = None,
        collaborators: Collaborators | None = None,
        transfers: BscScanClient | None = None,
        details: CovalentClient | None = None,
        prices: LiveCoinWatchClient | None = None,
        tokens: PancakeSwapClient | None = None,
        chain: ChainReader | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        if collaborators is not None:
            transfers = transfers or collaborators.transfers
            details = details or collaborators.details
            prices = prices or collaborators.prices
            tokens = tokens or collaborators.tokens
            chain = chain or collaborators.chain
        self._owned: list = []
        self.transfers = transfers or self._own(BscScanClient())
        self.details = details or self._own(CovalentClient())
        self.prices = prices or self._own(LiveCoinWatchClient())
        self.tokens = tokens or self._own(PancakeSwapClient())
        self.chain = chain or ChainReader()
        self.resolver = PriceResolver(
            self.details,
            self.prices,
            cache,
            max_workers=max_workers or self.settings.price_resolution_concurrency,
        )

    def _own(self, client):
        self._owned.append(client)
        return client

    # ------------------------------------------------------------------
    # Collaborator reads

    def token_snapshot(self, contract: str) -> TokenSnapshot:
        contract = checked_address(self.settings.resolve_contract(contract), "contract")
        try:
            return load_token_snapshot(
                contract, tokens=self.tokens, prices=self.prices, chain=self.chain
            )
        except CollaboratorUnavailable:
            raise
        except _COLLABORATOR_ERRORS as exc:
            raise CollaboratorUnavailable("token-info", str(exc)) from exc

    def top_coins(self) -> list[TopCoin]:
        try:
            return parse_top_coins(self.prices.list_top_coins())
        except CollaboratorUnavailable:
            raise
        except (httpx.HTTPError, ValueError) as exc:
            raise CollaboratorUnavailable("top-coins", str(exc)) from exc

    def wallet_balance(self, contract: str, wallet: str, *, decimals: int, source: str = "chain") -> FixedPoint:
        """Live balance, read on-chain or from the balances API."""

        contract = checked_address(contract, "contract")
        wallet = checked_address(wallet, "wallet")
        try:
            if source == "covalent":
                raw, reported_decimals = self.details.get_token_balance(wallet, contract)
                return FixedPoint.from_units(raw, reported_decimals).rescale(decimals)
            return FixedPoint.from_units(self.chain.balance_of(contract, wallet), decimals)
        except CollaboratorUnavailable:
            raise
        except _COLLABORATOR_ERRORS as exc:
            raise CollaboratorUnavailable("balance", str(exc)) from exc

    # ------------------------------------------------------------------
    # Pipeline

    def analyze(
        self,
        contract: str,
        wallet: str,
        *,
        balance: FixedPoint | None = None,
        balance_source: str = "chain",
        top_coin_index: int | None = None,
    ) -> AnalysisReport:
        contract = checked_address(self.settings.resolve_contract(contract), "contract")
        wallet = checked_address(wallet, "wallet")
        logger.info("Analyzing {} for wallet {}", contract, wallet)

        snapshot = self.token_snapshot(contract)
        coins = self.top_coins()
        decimals = snapshot.decimals
        if balance is None:
            balance = self.wallet_balance(contract, wallet, decimals=decimals, source=balance_source)
        else:
            balance = balance.rescale(decimals)

        try:
            transactions = fetch_transactions(self.transfers, wallet, contract, decimals=decimals)
        except httpx.HTTPError as exc:
            raise CollaboratorUnavailable(self.transfers.name, str(exc)) from exc
        if not transactions:
            raise NoTransactionsFound(wallet, contract)

        unpriced = self.resolver.annotate_all(
            transactions, contract=contract, symbol=snapshot.symbol
        )
        cost_basis = aggregate_cost_basis(transactions, wallet, decimals=decimals)

        projector = ValuationProjector(snapshot)
        balance_usd = projector.to_usd(balance)
        gains = balance - cost_basis.net_balance
        spent = cost_basis.total_spent_usd
        earnings_percent = None
        if spent:
            earnings_percent = ((balance_usd - spent) * 100).divide(spent, 2)

        comparison = None
        if coins:
            index = self.settings.default_top_coin_index if top_coin_index is None else top_coin_index
            index = max(0, min(index, len(coins) - 1))
            coin = coins[index]
            comparison = MarketCapComparison(
                rank=index + 1,
                coin=coin,
                potential_usd=projector.scale_to_market_cap(balance, coin.cap),
            )

        report = AnalysisReport(
            contract=contract,
            wallet=wallet,
            snapshot=snapshot,
            transactions=transactions,
            cost_basis=cost_basis,
            balance=balance,
            balance_usd=balance_usd,
            gains=gains,
            gains_usd=projector.to_usd(gains),
            market_cap_usd=projector.market_cap,
            ownership_per_ten_thousand=projector.ownership_per_ten_thousand(balance),
            earnings_percent=earnings_percent,
            comparison=comparison,
            unpriced_transactions=unpriced,
            display_suffix=choose_display_suffix(
                [balance, cost_basis.net_balance, *(tx.token_amount for tx in transactions)],
                decimals,
            ),
        )
        logger.info(
            "Analysis of {} for {} complete: {} transactions, net {} tokens, spent ${}",
            contract,
            wallet,
            len(transactions),
            cost_basis.net_balance,
            spent,
        )
        return report

    def close(self) -> None:
        for client in self._owned:
            client.close()
        self._owned.clear()

    def __enter__(self) -> "AnalysisService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["AnalysisService", "Collaborators", "checked_address"]
