from decimal import Decimal
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    database_url: str = "sqlite+aiosqlite:///./rcn.db"
    redis_url: str = "redis://localhost:6379/0"
    secret_key: str = "change-me"

    # Shop-facing API security
    shop_api_key: str = ""

    # Admin allow-list (comma separated wallet addresses)
    admin_addresses: Annotated[list[str], NoDecode] = Field(default_factory=list)

    @field_validator("admin_addresses", mode="before")
    @classmethod
    def _parse_address_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []

    # Tier policy
    tier_silver_threshold: Decimal = Decimal("200")
    tier_gold_threshold: Decimal = Decimal("1000")
    tier_bronze_bonus_percent: Decimal = Decimal("0")
    tier_silver_bonus_percent: Decimal = Decimal("10")
    tier_gold_bonus_percent: Decimal = Decimal("20")

    # Redemption policy
    redemption_cross_shop_cap_percent: Decimal = Decimal("20")
    redemption_cross_shop_ceilings: Annotated[dict[str, Decimal], NoDecode] = Field(default_factory=dict)
    redemption_max_per_transaction: Decimal | None = None
    redemption_lock_backend: Literal["memory", "redis"] = "memory"
    redemption_lock_timeout_seconds: float = 5.0
    redemption_lock_lease_seconds: float = 30.0

    @field_validator("redemption_cross_shop_ceilings", mode="before")
    @classmethod
    def _parse_ceilings(cls, value: object) -> dict[str, Decimal]:
        if value is None or value == "":
            return {}
        if isinstance(value, str):
            ceilings: dict[str, Decimal] = {}
            for pair in value.split(","):
                if "=" not in pair:
                    continue
                shop_id, amount = pair.split("=", 1)
                if shop_id.strip():
                    ceilings[shop_id.strip()] = Decimal(amount.strip())
            return ceilings
        if isinstance(value, dict):
            return {str(key): Decimal(str(amount)) for key, amount in value.items()}
        return {}

    # Chain balance source
    chain_balance_backend: Literal["ledger", "rpc"] = "ledger"
    chain_rpc_url: str | None = None
    chain_token_contract: str | None = None
    chain_token_decimals: int = 18
    chain_balance_timeout_seconds: float = 5.0


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
