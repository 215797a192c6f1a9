from functools import lru_cache
from typing import Any

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/reflectgains.db",
        description="SQLAlchemy compatible database URL backing the price cache",
    )
    chain_id: int = Field(default=56, description="Chain identifier passed to Covalent")
    rpc_url: AnyUrl | str = Field(
        default="https://bsc-dataseed3.binance.org/",
        description="JSON-RPC endpoint used for on-chain contract reads",
    )
    bscscan_base_url: AnyUrl = Field(
        default="https://api.bscscan.com",
        description="Base URL for the BscScan account API",
    )
    bscscan_api_key: str | None = Field(default=None, description="BscScan API key")
    bscscan_start_block: int = Field(default=1_000_000, ge=0)
    bscscan_end_block: int = Field(default=999_999_999, ge=0)
    covalent_base_url: AnyUrl = Field(
        default="https://api.covalenthq.com",
        description="Base URL for the Covalent transaction and balance API",
    )
    covalent_api_key: str | None = Field(default=None, description="Covalent API key")
    livecoinwatch_base_url: AnyUrl = Field(
        default="https://api.livecoinwatch.com",
        description="Base URL for LiveCoinWatch price quotes",
    )
    livecoinwatch_api_key: str | None = Field(
        default=None, description="LiveCoinWatch API key"
    )
    price_history_window_ms: int = Field(
        default=150_000,
        description="Half-width of the window (milliseconds) used for historical price lookups",
        ge=1,
    )
    top_coins_limit: int = Field(default=100, ge=1, le=500)
    top_coins_cache_seconds: float = Field(
        default=300.0,
        description="How long the top coin list is reused before refreshing",
        ge=0,
    )
    pancakeswap_base_url: AnyUrl = Field(
        default="https://api.pancakeswap.info",
        description="Base URL for PancakeSwap token info",
    )
    reference_asset_symbol: str = Field(
        default="WBNB",
        description="Ticker of the wrapped native coin used to trace swap value",
    )
    reference_asset_decimals: int = Field(default=18, ge=0)
    dead_address: str = Field(
        default="0x000000000000000000000000000000000000dead",
        description="Burn address excluded from circulating supply",
    )
    well_known_contracts: dict[str, str] = Field(
        default_factory=lambda: {"pye": "0xaad87f47cdea777faf87e7602e91e3a6afbe4d57"},
        description="Short names accepted in place of a contract address",
    )
    http_timeout_seconds: float = Field(default=10.0, gt=0)
    price_resolution_concurrency: int = Field(
        default=4,
        description="Number of transactions priced concurrently during an analysis",
    )
    default_top_coin_index: int = Field(
        default=49,
        description="Zero-based index into the top coin list used for the comparison",
        ge=0,
    )

    @field_validator("price_resolution_concurrency")
    @classmethod
    def _validate_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("price_resolution_concurrency must be at least 1")
        return value

    @field_validator("well_known_contracts", mode="after")
    @classmethod
    def _normalize_contracts(cls, value: Any) -> dict[str, str]:
        if not value:
            return {}
        return {
            str(name).strip().lower(): str(address).strip().lower()
            for name, address in value.items()
            if str(name).strip() and str(address).strip()
        }

    def resolve_contract(self, name_or_address: str) -> str:
        key = name_or_address.strip().lower()
        return self.well_known_contracts.get(key, key)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
