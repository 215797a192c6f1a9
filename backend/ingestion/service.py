from __future__ import annotations

from contextlib import contextmanager

import httpx
from loguru import logger
from sqlalchemy.orm import Session

from reflectgains.core.errors import CollaboratorUnavailable
from reflectgains.db import SessionLocal
from reflectgains.domain import TokenSnapshot, Transaction

from .chain import ChainReader
from .client import BscScanClient, LiveCoinWatchClient, PancakeSwapClient
from .normalize import normalize_transfers, parse_token_snapshot


@contextmanager
def session_scope() -> Session:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def load_token_snapshot(
    contract: str,
    *,
    tokens: PancakeSwapClient,
    prices: LiveCoinWatchClient,
    chain: ChainReader,
) -> TokenSnapshot:
    """Combine DEX token info, an optional live quote and on-chain supply."""

    data = tokens.get_token(contract)
    live_rate = None
    symbol = data.get("symbol")
    if symbol:
        try:
            live_rate = prices.get_current_rate(symbol)
        except (httpx.HTTPError, CollaboratorUnavailable) as exc:
            logger.warning("No live quote for {} ({}); using DEX price", symbol, exc)

    decimals = chain.decimals(contract)
    supply = chain.circulating_supply(contract)
    return parse_token_snapshot(
        data,
        contract=contract,
        decimals=decimals,
        circulating_supply=supply,
        live_rate=live_rate,
    )


def fetch_transactions(
    transfers: BscScanClient, wallet: str, contract: str, *, decimals: int
) -> list[Transaction]:
    raw = transfers.get_token_transfers(wallet, contract)
    try:
        transactions = normalize_transfers(raw, decimals)
    except ValueError as exc:
        raise CollaboratorUnavailable(transfers.name, f"malformed transfer record: {exc}") from exc
    if len(transactions) != len(raw):
        logger.info("Merged {} split transfer records", len(raw) - len(transactions))
    return transactions
