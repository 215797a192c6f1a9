from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from reflectgains.domain import (
    USD_SCALE,
    FixedPoint,
    LogEvent,
    TokenSnapshot,
    TopCoin,
    Transaction,
    TransactionDetail,
)


def _lower(value: Any) -> str:
    return str(value or "").lower()


def _parse_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_fixed(value: Any, scale: int) -> FixedPoint:
    """Parse a JSON number or numeric string, treating missing values as zero."""

    if value is None or value == "":
        return FixedPoint.zero(scale)
    try:
        return FixedPoint.from_number(value, scale)
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Expected a numeric value, got {value!r}") from exc


def merge_adjacent_duplicates(records: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Merge transfer records that repeat the hash of the record right before them.

    The transfer API occasionally splits one transaction across consecutive
    entries. Later entries are folded into the earlier one by summing
    ``value``. Duplicates that are not adjacent are left alone. The input
    list and its records are not modified.
    """

    merged = [dict(record) for record in records]
    for index in range(len(merged) - 1, 0, -1):
        current, previous = merged[index], merged[index - 1]
        if current.get("hash") != previous.get("hash"):
            continue
        values = [_parse_int(previous.get("value")), _parse_int(current.get("value"))]
        if None in values:
            raise ValueError(f"Transfer {current.get('hash')!r} has no integer value")
        previous["value"] = str(sum(values))
        del merged[index]
    return merged


def normalize_transfer(raw: dict[str, Any], decimals: int | None = None) -> Transaction:
    token_decimals = _parse_int(raw.get("tokenDecimal"))
    if token_decimals is None:
        token_decimals = decimals if decimals is not None else 18
    value = _parse_int(raw.get("value"))
    if value is None:
        raise ValueError(f"Transfer {raw.get('hash')!r} has no integer value")

    return Transaction(
        hash=str(raw.get("hash") or ""),
        block_number=_parse_int(raw.get("blockNumber")),
        timestamp=_parse_int(raw.get("timeStamp") or raw.get("timestamp")) or 0,
        from_address=_lower(raw.get("from")),
        to_address=_lower(raw.get("to")),
        token_amount=FixedPoint.from_units(value, token_decimals),
        token_symbol=raw.get("tokenSymbol"),
        raw_data=raw,
    )


def normalize_transfers(
    records: Sequence[dict[str, Any]], decimals: int | None = None
) -> list[Transaction]:
    """Merge adjacent duplicates and convert raw transfer records, keeping their order."""

    return [normalize_transfer(record, decimals) for record in merge_adjacent_duplicates(records)]


def _parse_log_event(raw: dict[str, Any]) -> LogEvent:
    decoded = raw.get("decoded") or {}
    params = decoded.get("params") or []
    return LogEvent(
        name=decoded.get("name"),
        params=[_lower(param.get("value")) if isinstance(param, dict) else _lower(param) for param in params],
        sender_address=_lower(raw.get("sender_address")),
        ticker_symbol=raw.get("sender_contract_ticker_symbol"),
    )


def parse_transaction_detail(payload: dict[str, Any], tx_hash: str) -> TransactionDetail:
    """Build a :class:`TransactionDetail` from a transaction record.

    Accepts either the bare record or the ``{"data": {"items": [...]}}``
    envelope. Raises ``ValueError`` when the payload is malformed.
    """

    if not isinstance(payload, dict):
        raise ValueError("transaction payload must be an object")
    record: Any = payload
    data = payload.get("data")
    if isinstance(data, dict):
        items = data.get("items")
        if not isinstance(items, list) or not items:
            raise ValueError("transaction payload has no items")
        record = items[0]
    if not isinstance(record, dict):
        raise ValueError("transaction record must be an object")

    raw_events = record.get("log_events") or []
    if not isinstance(raw_events, list):
        raise ValueError("log_events must be a list")

    return TransactionDetail(
        tx_hash=tx_hash,
        value_quote=_parse_fixed(record.get("value_quote"), USD_SCALE),
        from_address=_lower(record.get("from_address")),
        gas_quote_rate=_parse_fixed(record.get("gas_quote_rate"), USD_SCALE),
        log_events=[_parse_log_event(event) for event in raw_events if isinstance(event, dict)],
    )


def first_history_rate(payload: Any) -> FixedPoint | None:
    """Return ``history[0].rate`` of a price history record, if present."""

    if not isinstance(payload, dict):
        return None
    history = payload.get("history")
    if not isinstance(history, list) or not history or not isinstance(history[0], dict):
        return None
    rate = history[0].get("rate")
    if rate is None:
        return None
    return _parse_fixed(rate, USD_SCALE)


def parse_token_snapshot(
    token_payload: dict[str, Any],
    *,
    contract: str,
    decimals: int,
    circulating_supply: int,
    live_rate: Any = None,
) -> TokenSnapshot:
    data = token_payload.get("data") if isinstance(token_payload.get("data"), dict) else token_payload
    symbol = data.get("symbol")
    if not symbol:
        raise ValueError("token payload is missing a symbol")
    price_source = live_rate if live_rate is not None else data.get("price")
    return TokenSnapshot(
        contract=contract,
        name=data.get("name"),
        symbol=str(symbol),
        decimals=decimals,
        current_price_usd=_parse_fixed(price_source, USD_SCALE),
        circulating_supply=FixedPoint.from_units(circulating_supply, decimals),
    )


def parse_top_coins(payload: Any) -> list[TopCoin]:
    if not isinstance(payload, list):
        raise ValueError("top coin payload must be a list")
    coins: list[TopCoin] = []
    for raw in payload:
        if not isinstance(raw, dict):
            continue
        try:
            cap = Decimal(str(raw.get("cap") or 0))
        except InvalidOperation:
            continue
        if not cap.is_finite():
            continue
        coins.append(
            TopCoin(
                name=str(raw.get("name") or raw.get("code") or ""),
                code=str(raw.get("code") or ""),
                cap=FixedPoint.from_number(cap, 0),
            )
        )
    return coins
