from __future__ import annotations

import threading
import time
from typing import Any

import httpx
from loguru import logger

from reflectgains.core.config import settings
from reflectgains.core.errors import CollaboratorUnavailable


class _JsonClient:
    """Shared plumbing for the thin JSON API wrappers below."""

    name = "upstream"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=transport,
        )

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        logger.debug("{} GET {}", self.name, path)
        response = self.client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    def _post(self, path: str, payload: dict[str, Any]) -> Any:
        logger.debug("{} POST {} body={}", self.name, path, payload)
        response = self.client.post(path, json=payload)
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class BscScanClient(_JsonClient):
    """Token transfer history for a wallet/contract pair."""

    name = "bscscan"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        start_block: int | None = None,
        end_block: int | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url or str(settings.bscscan_base_url), timeout=timeout, transport=transport
        )
        self.api_key = api_key if api_key is not None else settings.bscscan_api_key
        self.start_block = start_block if start_block is not None else settings.bscscan_start_block
        self.end_block = end_block if end_block is not None else settings.bscscan_end_block

    def get_token_transfers(self, wallet: str, contract: str) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "module": "account",
            "action": "tokentx",
            "address": wallet,
            "contractaddress": contract,
            "startblock": self.start_block,
            "endblock": self.end_block,
            "sort": "asc",
        }
        if self.api_key:
            params["apikey"] = self.api_key
        logger.info("Fetching {} transfers for wallet {}", contract, wallet)
        payload = self._get("/api", params=params)
        result = payload.get("result") if isinstance(payload, dict) else None
        if isinstance(result, list):
            return result
        message = payload.get("message") if isinstance(payload, dict) else None
        if message and "no transactions found" in str(message).lower():
            return []
        raise CollaboratorUnavailable(self.name, f"unexpected transfer payload: {message or result!r}")


class CovalentClient(_JsonClient):
    """Transaction detail records and wallet balances."""

    name = "covalent"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        chain_id: int | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url or str(settings.covalent_base_url), timeout=timeout, transport=transport
        )
        self.api_key = api_key if api_key is not None else settings.covalent_api_key
        self.chain_id = chain_id or settings.chain_id

    def _params(self) -> dict[str, Any]:
        return {"key": self.api_key} if self.api_key else {}

    def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        return self._get(f"/v1/{self.chain_id}/transaction_v2/{tx_hash}/", params=self._params())

    def get_token_balance(self, wallet: str, contract: str) -> tuple[int, int]:
        """Return ``(balance, decimals)`` of ``contract`` held by ``wallet``."""

        payload = self._get(f"/v1/{self.chain_id}/address/{wallet}/balances_v2/", params=self._params())
        items = ((payload or {}).get("data") or {}).get("items") or []
        target = contract.lower()
        for item in items:
            if str(item.get("contract_address", "")).lower() == target:
                return int(item.get("balance") or 0), int(item.get("contract_decimals") or 0)
        raise CollaboratorUnavailable(self.name, f"wallet {wallet} holds no {contract} balance")


class LiveCoinWatchClient(_JsonClient):
    """Current quotes, historical quotes and the ranked coin list."""

    name = "livecoinwatch"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        history_window_ms: int | None = None,
        top_coins_limit: int | None = None,
        top_coins_cache_seconds: float | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        key = api_key if api_key is not None else settings.livecoinwatch_api_key
        super().__init__(
            base_url or str(settings.livecoinwatch_base_url),
            timeout=timeout,
            headers={"x-api-key": key} if key else None,
            transport=transport,
        )
        self.history_window_ms = history_window_ms or settings.price_history_window_ms
        self.top_coins_limit = top_coins_limit or settings.top_coins_limit
        self.top_coins_cache_seconds = (
            settings.top_coins_cache_seconds
            if top_coins_cache_seconds is None
            else top_coins_cache_seconds
        )
        self._top_coins: list[dict[str, Any]] | None = None
        self._top_coins_fetched_at = 0.0
        self._top_coins_lock = threading.Lock()

    def get_current_rate(self, symbol: str) -> Any:
        payload = self._post(
            "/coins/single", {"currency": "USD", "code": symbol, "meta": False}
        )
        rate = payload.get("rate") if isinstance(payload, dict) else None
        if rate is None:
            raise CollaboratorUnavailable(self.name, f"no current rate for {symbol}")
        return rate

    def get_price_history(self, symbol: str, timestamp_ms: int) -> dict[str, Any]:
        return self._post(
            "/coins/single/history",
            {
                "currency": "USD",
                "code": symbol,
                "start": timestamp_ms - self.history_window_ms,
                "end": timestamp_ms + self.history_window_ms,
            },
        )

    def list_top_coins(self) -> list[dict[str, Any]]:
        with self._top_coins_lock:
            now = time.monotonic()
            if (
                self._top_coins
                and now - self._top_coins_fetched_at < self.top_coins_cache_seconds
            ):
                return self._top_coins
            try:
                payload = self._post(
                    "/coins/list",
                    {
                        "currency": "USD",
                        "sort": "rank",
                        "order": "ascending",
                        "offset": 0,
                        "limit": self.top_coins_limit,
                        "meta": True,
                    },
                )
            except httpx.HTTPError:
                if self._top_coins:
                    logger.warning("Top coin refresh failed; serving cached list")
                    return self._top_coins
                raise
            if not isinstance(payload, list):
                raise CollaboratorUnavailable(self.name, "top coin payload is not a list")
            self._top_coins = payload
            self._top_coins_fetched_at = now
            return payload


class PancakeSwapClient(_JsonClient):
    """Token name, symbol and DEX price."""

    name = "pancakeswap"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url or str(settings.pancakeswap_base_url), timeout=timeout, transport=transport
        )

    def get_token(self, contract: str) -> dict[str, Any]:
        payload = self._get(f"/api/v2/tokens/{contract}")
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise CollaboratorUnavailable(self.name, f"no token data for {contract}")
        return data
