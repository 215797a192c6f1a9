"""Per-transaction USD pricing.

Each transaction is priced by the first tier that produces a nonzero value:

1. the quote attached to the transaction record,
2. the wrapped native coin flowing through the swap counterparties, valued
   at the transaction's own gas quote rate,
3. the token's historical USD rate times the tokens moved in or out.

Every result, including a deliberate zero, is memoized under ``txn-<hash>``.
A stored ``"0"`` is treated as a miss so unresolved transactions get another
attempt on later runs.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import httpx
from loguru import logger

from ingestion.normalize import first_history_rate, parse_transaction_detail
from reflectgains.core.config import settings
from reflectgains.core.errors import PriceUnresolved
from reflectgains.domain import USD_SCALE, FixedPoint, Transaction, TransactionDetail
from reflectgains.repositories import PriceCache, cache_key

UNRESOLVED_SENTINEL = "0"


class TransactionDetailSource(Protocol):
    def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        ...


class PriceHistorySource(Protocol):
    def get_price_history(self, symbol: str, timestamp_ms: int) -> dict[str, Any]:
        ...


@dataclass(slots=True)
class PricingRequest:
    tx_hash: str
    contract: str
    symbol: str
    timestamp: int
    token_decimals: int

    @property
    def timestamp_ms(self) -> int:
        return self.timestamp * 1000


class PricingTier(Protocol):
    """One strategy in the fallback chain. ``None`` means "no estimate"."""

    name: str

    def estimate(self, request: PricingRequest, detail: TransactionDetail) -> FixedPoint | None:
        ...


class DirectQuoteTier:
    name = "direct_quote"

    def estimate(self, request: PricingRequest, detail: TransactionDetail) -> FixedPoint | None:
        quote = detail.value_quote.rescale(USD_SCALE)
        return quote if quote else None


class ReferenceAssetTraceTier:
    """Value a swap by the wrapped native coin its counterparties moved.

    Counterparties that sent the analysed token to the transaction sender were
    paid in the reference asset (a buy); counterparties that received it paid
    the reference asset out (a sell). The net reference amount is taken as an
    absolute value.
    """

    name = "reference_trace"

    def __init__(self, reference_symbol: str | None = None, reference_decimals: int | None = None) -> None:
        self.reference_symbol = reference_symbol or settings.reference_asset_symbol
        self.reference_decimals = (
            settings.reference_asset_decimals if reference_decimals is None else reference_decimals
        )

    def estimate(self, request: PricingRequest, detail: TransactionDetail) -> FixedPoint | None:
        contract = request.contract.lower()
        wallet = detail.from_address
        transfers = [event for event in detail.log_events if event.is_transfer]

        senders: list[str] = []
        receivers: list[str] = []
        for event in transfers:
            if event.sender_address != contract:
                continue
            if event.transfer_from == wallet:
                receivers.append(event.transfer_to)
            elif event.transfer_to == wallet:
                senders.append(event.transfer_from)

        reference = [event for event in transfers if event.ticker_symbol == self.reference_symbol]
        net = 0
        for sender in senders:
            for event in reference:
                if event.transfer_to == sender:
                    net += event.transfer_amount
        for receiver in receivers:
            for event in reference:
                if event.transfer_from == receiver:
                    net -= event.transfer_amount

        if net == 0:
            return None
        amount = FixedPoint(abs(net), self.reference_decimals)
        value = (detail.gas_quote_rate * amount).rescale(USD_SCALE)
        return value if value else None


class HistoricalPriceTier:
    """Tokens moved in or out of the sender times the token's historical rate."""

    name = "historical_price"

    def __init__(self, history_source: PriceHistorySource) -> None:
        self.history_source = history_source

    def estimate(self, request: PricingRequest, detail: TransactionDetail) -> FixedPoint | None:
        contract = request.contract.lower()
        wallet = detail.from_address
        tokens = 0
        for event in detail.log_events:
            if not event.is_transfer or event.sender_address != contract:
                continue
            if event.transfer_from == wallet or event.transfer_to == wallet:
                tokens += event.transfer_amount

        payload = self.history_source.get_price_history(request.symbol, request.timestamp_ms)
        rate = first_history_rate(payload)
        if rate is None:
            raise PriceUnresolved(request.tx_hash, f"no historical rate for {request.symbol}")

        value = (rate * FixedPoint(tokens, request.token_decimals)).rescale(USD_SCALE)
        return value if value else None


class PriceResolver:
    """Resolve and memoize USD values for individual transactions."""

    def __init__(
        self,
        detail_source: TransactionDetailSource,
        history_source: PriceHistorySource,
        cache: PriceCache,
        *,
        tiers: Sequence[PricingTier] | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.detail_source = detail_source
        self.cache = cache
        self.tiers: list[PricingTier] = list(
            tiers
            if tiers is not None
            else (DirectQuoteTier(), ReferenceAssetTraceTier(), HistoricalPriceTier(history_source))
        )
        self.max_workers = max_workers or settings.price_resolution_concurrency
        self._cache_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Cache

    def cached_value(self, tx_hash: str) -> FixedPoint | None:
        with self._cache_lock:
            cached = self.cache.get(cache_key(tx_hash))
        if cached is None or cached == UNRESOLVED_SENTINEL:
            return None
        try:
            return FixedPoint.from_string(cached, USD_SCALE)
        except ValueError:
            logger.warning("Ignoring unreadable cached price {!r} for {}", cached, tx_hash)
            return None

    def _store(self, tx_hash: str, value: FixedPoint) -> None:
        with self._cache_lock:
            self.cache.set(cache_key(tx_hash), value.to_plain_string())

    # ------------------------------------------------------------------
    # Resolution

    def _fetch_detail(self, tx_hash: str) -> TransactionDetail:
        try:
            payload = self.detail_source.get_transaction(tx_hash)
            return parse_transaction_detail(payload, tx_hash)
        except httpx.HTTPError as exc:
            raise PriceUnresolved(tx_hash, f"transaction lookup failed: {exc}") from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise PriceUnresolved(tx_hash, f"malformed transaction record: {exc}") from exc

    def resolve(self, request: PricingRequest) -> FixedPoint:
        """Return the USD value of one transaction, consulting the cache first.

        Raises :class:`PriceUnresolved` when a collaborator fails; nothing is
        cached in that case.
        """

        cached = self.cached_value(request.tx_hash)
        if cached is not None:
            logger.debug("Price cache hit for {}", request.tx_hash)
            return cached

        detail = self._fetch_detail(request.tx_hash)
        value = FixedPoint.zero(USD_SCALE)
        for tier in self.tiers:
            try:
                estimate = tier.estimate(request, detail)
            except httpx.HTTPError as exc:
                raise PriceUnresolved(request.tx_hash, f"{tier.name} lookup failed: {exc}") from exc
            except (ValueError, KeyError, TypeError, IndexError) as exc:
                raise PriceUnresolved(request.tx_hash, f"{tier.name} payload malformed: {exc}") from exc
            if estimate:
                logger.debug("Priced {} via {}: {}", request.tx_hash, tier.name, estimate)
                value = estimate
                break

        self._store(request.tx_hash, value)
        return value

    def annotate(self, transaction: Transaction, *, contract: str, symbol: str) -> bool:
        """Fill ``usd_value`` and ``cost_basis_per_token``. Returns False if unpriced."""

        request = PricingRequest(
            tx_hash=transaction.hash,
            contract=contract,
            symbol=symbol,
            timestamp=transaction.timestamp,
            token_decimals=transaction.token_amount.scale,
        )
        priced = True
        try:
            value = self.resolve(request)
        except PriceUnresolved as exc:
            logger.warning("{}; counting it as $0", exc)
            value = FixedPoint.zero(USD_SCALE)
            priced = False

        transaction.usd_value = value
        if transaction.token_amount:
            transaction.cost_basis_per_token = value.divide(transaction.token_amount, USD_SCALE)
        return priced

    def _annotate_isolated(self, transaction: Transaction, contract: str, symbol: str) -> bool:
        try:
            return self.annotate(transaction, contract=contract, symbol=symbol)
        except Exception:
            logger.exception("Unexpected failure pricing {}", transaction.hash)
            transaction.usd_value = FixedPoint.zero(USD_SCALE)
            return False

    def annotate_all(
        self, transactions: Sequence[Transaction], *, contract: str, symbol: str
    ) -> list[str]:
        """Price every transaction, returning the hashes that could not be priced.

        One failing transaction never stops the others.
        """

        unpriced: set[str] = set()
        if self.max_workers <= 1 or len(transactions) <= 1:
            for transaction in transactions:
                if not self._annotate_isolated(transaction, contract, symbol):
                    unpriced.add(transaction.hash)
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    executor.submit(self._annotate_isolated, transaction, contract, symbol): transaction
                    for transaction in transactions
                }
                for future in as_completed(futures):
                    if not future.result():
                        unpriced.add(futures[future].hash)

        logger.info(
            "Priced {} of {} transactions", len(transactions) - len(unpriced), len(transactions)
        )
        return [transaction.hash for transaction in transactions if transaction.hash in unpriced]


__all__ = [
    "DirectQuoteTier",
    "HistoricalPriceTier",
    "PriceHistorySource",
    "PriceResolver",
    "PricingRequest",
    "PricingTier",
    "ReferenceAssetTraceTier",
    "TransactionDetailSource",
    "UNRESOLVED_SENTINEL",
]
