"""
Configuration loader for folioledger.

What it does:
- Reads static settings from `config/config.yaml` (starting cash, benchmark
  ticker, quote provider, storage backend, fetch/backoff tuning).
- Resolves secrets from environment variables: `FINNHUB_API_KEY`,
  `SUPABASE_URL`, `SUPABASE_SERVICE_ROLE_KEY`; the edit gate comes from
  `PORTFOLIO_ENABLE_EDIT` ("true"/"1" enables mutations).
- Validates the resulting configuration using Pydantic models.

Where it is used:
- Called by `folioledger.main` to build the engine, its quote provider and
  its storage backend.
"""

import os
from typing import Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from ..ledger.model import EditPermission


class FetchConfig(BaseModel):
    """Tunable parameters for quote request timeouts and backoff."""
    timeout_ms: int = 5_000
    max_retries: int = 2
    backoff_initial_ms: int = 250
    backoff_max_ms: int = 2_000


class QuotesConfig(BaseModel):
    provider: Literal["finnhub", "ccxt", "static"] = "finnhub"
    api_key: str = ""
    exchange: str = "binance"
    quote_currency: str = "USDT"
    prices: Dict[str, float] = Field(default_factory=dict)
    fetch: FetchConfig = Field(default_factory=FetchConfig)


class StorageConfig(BaseModel):
    backend: Literal["sqlite", "supabase", "memory"] = "sqlite"
    sqlite_path: str = "data/portfolio.sqlite"
    supabase_url: str = ""
    supabase_key: str = ""
    export_dir: str = "data"


class Settings(BaseModel):
    """Runtime settings assembled from YAML + environment variables."""
    initial_cash: float = 10_000.0
    benchmark: str = "SPY"
    can_edit: bool = False
    quotes: QuotesConfig = Field(default_factory=QuotesConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("initial_cash")
    @classmethod
    def positive_cash(cls, v):
        if v <= 0:
            raise ValueError("initial_cash must be positive")
        return v

    @field_validator("benchmark")
    @classmethod
    def upper_benchmark(cls, v):
        if not v or not v.strip():
            raise ValueError("benchmark ticker is required")
        return v.strip().upper()

    @model_validator(mode="after")
    def credentials_present(self):
        if self.quotes.provider == "finnhub" and not self.quotes.api_key:
            raise ValueError("Missing required quote credential. Expected env var: FINNHUB_API_KEY")
        if self.storage.backend == "supabase" and not (self.storage.supabase_url and self.storage.supabase_key):
            raise ValueError(
                "Missing required storage credentials. Expected env vars: SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY"
            )
        return self

    @property
    def permission(self) -> EditPermission:
        return EditPermission(can_edit=self.can_edit)


def _env_flag(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_settings(path: str = "config/config.yaml") -> Settings:
    """Load YAML config, overlay env-var secrets and return validated Settings.

    A missing file is not an error: defaults apply and env vars still count.
    """
    config: Dict = {}
    if os.path.exists(path):
        with open(path, "r") as f:
            config = yaml.safe_load(f) or {}
    quotes = dict(config.get("quotes") or {})
    storage = dict(config.get("storage") or {})
    quotes["api_key"] = os.getenv("FINNHUB_API_KEY", quotes.get("api_key", ""))
    storage["supabase_url"] = os.getenv("SUPABASE_URL", storage.get("supabase_url", ""))
    storage["supabase_key"] = os.getenv("SUPABASE_SERVICE_ROLE_KEY", storage.get("supabase_key", ""))
    can_edit = _env_flag("PORTFOLIO_ENABLE_EDIT")
    if can_edit is None:
        can_edit = bool(config.get("can_edit", False))
    return Settings(
        initial_cash=config.get("initial_cash", 10_000.0),
        benchmark=config.get("benchmark", "SPY"),
        can_edit=can_edit,
        quotes=QuotesConfig(**quotes),
        storage=StorageConfig(**storage),
    )
