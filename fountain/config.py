"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache): single instance per process
    - refund_fraction + fee_fraction never exceeds 1 (payout cannot exceed the deposit)
    - Amounts are integers in the settlement token's base unit (1 unit = 10^8 base units)

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: local ledger + local log work out-of-the-box
"""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_UNITS_PER_UNIT = 100_000_000


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://fountain:fountain@db:5432/fountain"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres provides postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10
    # Local runs create tables on startup; deployments run alembic instead
    auto_create_schema: bool = False

    # Protocol economics
    issuance_price: int = BASE_UNITS_PER_UNIT
    max_quota: int = 1000
    max_accrue_per_request: int = 1000
    refund_fraction: float = 0.8
    fee_fraction: float = 0.2

    # Eligibility rules
    allow_early_termination: bool = False
    verify_credential_balance: bool = True
    verify_escrow_balance: bool = True
    credential_removal_mode: Literal["burn", "wipe"] = "burn"

    # Accounts and token kinds
    treasury_account: str = "0.0.6552092"
    escrow_account: str = "0.0.6552093"
    credential_token: str = "DRIP"
    reward_token: str = "WISH"
    settlement_token: str = "HBAR"
    intent_signing_key: str = "dev-signing-key-change-me"

    # Ledger gateway
    ledger_backend: Literal["memory", "http"] = "memory"
    ledger_base_url: str = "http://ledger-gateway:8080"
    ledger_api_token: str = ""
    ledger_timeout_seconds: float = 30.0
    ledger_read_retries: int = 3
    ledger_base_delay_ms: int = 500
    ledger_max_delay_ms: int = 10_000

    # Coordination
    consumer_max_concurrency: int = 8
    halt_on_malformed_message: bool = False
    relay_wait_timeout_seconds: float = 60.0
    orchestration_timeout_seconds: float = 30.0

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @model_validator(mode="after")
    def check_economics(self) -> "Settings":
        if self.refund_fraction < 0 or self.fee_fraction < 0:
            raise ValueError("payout fractions must be non-negative")
        if self.refund_fraction + self.fee_fraction > 1:
            raise ValueError("refund_fraction + fee_fraction must not exceed 1")
        if self.max_quota < 1 or self.max_accrue_per_request < 1:
            raise ValueError("max_quota and max_accrue_per_request must be >= 1")
        if self.issuance_price < 1:
            raise ValueError("issuance_price must be >= 1")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
