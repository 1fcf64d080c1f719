"""
Configuration for the wallet ledger.

Values come from ``WALLET_*`` environment variables or a ``.env`` file.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WALLET_",
        env_file=".env",
        extra="ignore",
    )

    database_url: str = Field(
        default="sqlite:///data/wallet.db",
        description="SQLAlchemy database URL",
    )
    admin_key: Optional[SecretStr] = Field(
        default=None,
        description="Shared secret for privileged operations; unset denies all",
    )
    default_home_balance: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Home balance allocated to every new user",
    )
    recent_entries_limit: int = Field(default=20, ge=1, le=500)
    serialize_withdrawals: bool = Field(
        default=True,
        description="Hold a per-uid lock across the withdrawal check and debit",
    )
    cors_origins: str = Field(default="", description="Comma separated origins")
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
