# src/bullion/config/settings.py
"""
Settings - Pydantic-based Configuration Management

Provides centralized configuration management using Pydantic Settings.
Values come from environment variables (or a .env file); complex values such
as the FX table are given as JSON. Every validator runs when Settings is
instantiated, so malformed static configuration (unknown currency in the FX
table, negative TTL, ...) fails at process startup.

Files that USE this module:
- bullion.app (builds every component from settings)
- bullion.adapters.providers.* (URLs, timeouts, derivation parameters)
- bullion.application.* (TTL, fallback and alert policy defaults)

Files that this module USES:
- bullion.shared.validators (validation functions for settings)
- bullion.domain.currency (DEFAULT_FX_RATES)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

from pathlib import Path  # Object-oriented filesystem paths
from typing import Dict, List, Literal, Optional  # Type hints

from pydantic import Field, field_validator  # Data validation and field configuration
from pydantic_settings import BaseSettings, SettingsConfigDict  # Settings management with Pydantic

from bullion.domain.currency import DEFAULT_FX_RATES  # Static USD -> currency table
from bullion.domain.models import Instrument  # Instrument identifiers
from bullion.shared.validators import (
    validate_api_key,  # Validate API key format
    validate_fx_table,  # Validate the static FX table
    validate_http_url,  # Validate provider URLs
    validate_instrument_name,  # Validate derivation table keys
)

KNOWN_SOURCES = ("gold_api", "metal_price_api", "goodreturns")

# Ratio of each derived instrument to the gold price
DEFAULT_DERIVATION_RATIOS: Dict[str, float] = {
    "silver": 0.0125,
    "platinum": 0.50,
    "palladium": 0.65,
    "gold_22k": 0.9167,  # 22/24 purity
}

# +/- fraction applied to derived prices
DEFAULT_DERIVATION_JITTER: Dict[str, float] = {
    "silver": 0.05,
    "platinum": 0.05,
    "palladium": 0.05,
    "gold_22k": 0.0,
}


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # --- Scheduling & caching ---
    refresh_interval_minutes: float = Field(default=5.0, alias="REFRESH_INTERVAL_MINUTES", gt=0, le=1440)
    cache_ttl_seconds: float = Field(default=60.0, alias="CACHE_TTL_SECONDS", ge=0)

    # --- HTTP Settings ---
    http_timeout_seconds: int = Field(default=10, alias="HTTP_TIMEOUT_SECONDS", ge=1, le=60)
    upstream_max_requests_per_minute: int = Field(
        default=30, alias="UPSTREAM_MAX_REQUESTS_PER_MINUTE", ge=1, le=10_000
    )

    # --- Price sources (tried in order) ---
    price_sources: List[str] = Field(default_factory=lambda: ["gold_api"], alias="PRICE_SOURCES")
    gold_api_url: str = Field(default="https://api.gold-api.com", alias="GOLD_API_URL")
    metal_price_api_url: str = Field(default="https://api.metalpriceapi.com/v1", alias="METAL_PRICE_API_URL")
    metals_api_key: str = Field(default="", alias="METALS_API_KEY")
    goodreturns_url: str = Field(default="https://www.goodreturns.in/gold-rates/", alias="GOODRETURNS_URL")

    # --- Pricing tables ---
    fx_rates: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_FX_RATES), alias="FX_RATES")
    derivation_ratios: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_DERIVATION_RATIOS), alias="DERIVATION_RATIOS"
    )
    derivation_jitter: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_DERIVATION_JITTER), alias="DERIVATION_JITTER"
    )
    track_gold_22k: bool = Field(default=True, alias="TRACK_GOLD_22K")

    # --- Fallback generator ---
    fallback_step_pct: float = Field(default=0.5, alias="FALLBACK_STEP_PCT", ge=0, le=10)
    fallback_max_drift_pct: float = Field(default=5.0, alias="FALLBACK_MAX_DRIFT_PCT", ge=0, lt=100)
    random_seed: Optional[int] = Field(default=None, alias="RANDOM_SEED")

    # --- Alerts ---
    alert_retrigger_mode: Literal["edge", "level"] = Field(default="edge", alias="ALERT_RETRIGGER_MODE")

    # --- Persistence ---
    store_backend: Literal["json", "memory"] = Field(default="json", alias="STORE_BACKEND")
    store_path: Path = Field(default=Path("./data/bullion.json"), alias="STORE_PATH")

    # --- Logging (for server deployment) ---
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")
    log_dir: Optional[str] = Field(default=None, alias="LOG_DIR")
    log_stdout: bool = Field(default=True, alias="BULLION_LOG_STDOUT")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, alias="LOG_MAX_BYTES")  # 10MB
    log_backup_count: int = Field(default=5, alias="LOG_BACKUP_COUNT")

    @property
    def refresh_interval_seconds(self) -> float:
        return self.refresh_interval_minutes * 60.0

    @field_validator("fx_rates")
    @classmethod
    def validate_fx_rates(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Reject unknown currencies, missing currencies, non-positive rates and USD != 1."""
        problems = validate_fx_table(v)
        if problems:
            raise ValueError("Invalid FX_RATES: " + "; ".join(problems))
        return {code.upper(): float(rate) for code, rate in v.items()}

    @field_validator("derivation_ratios")
    @classmethod
    def validate_ratios(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Validate overrides and merge them onto the defaults so every derivable instrument has a ratio."""
        for name, ratio in v.items():
            if not validate_instrument_name(name) or name == Instrument.GOLD.value:
                raise ValueError(f"DERIVATION_RATIOS: {name!r} is not a derivable instrument")
            if ratio <= 0:
                raise ValueError(f"DERIVATION_RATIOS: ratio for {name} must be positive")
        return {**DEFAULT_DERIVATION_RATIOS, **{name: float(ratio) for name, ratio in v.items()}}

    @field_validator("derivation_jitter")
    @classmethod
    def validate_jitter(cls, v: Dict[str, float]) -> Dict[str, float]:
        for name, jitter in v.items():
            if not validate_instrument_name(name):
                raise ValueError(f"DERIVATION_JITTER: unknown instrument {name!r}")
            if not 0 <= jitter < 1:
                raise ValueError(f"DERIVATION_JITTER: jitter for {name} must be in [0, 1)")
        return v

    @field_validator("price_sources")
    @classmethod
    def validate_price_sources(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("PRICE_SOURCES must name at least one source")
        unknown = [name for name in v if name not in KNOWN_SOURCES]
        if unknown:
            raise ValueError(f"PRICE_SOURCES: unknown source(s) {unknown}; known: {list(KNOWN_SOURCES)}")
        return v

    @field_validator("gold_api_url", "metal_price_api_url", "goodreturns_url")
    @classmethod
    def validate_urls(cls, v: str) -> str:
        if not validate_http_url(v):
            raise ValueError(f"Invalid URL: {v!r}")
        return v

    @field_validator("metals_api_key")
    @classmethod
    def validate_metals_api_key(cls, v: str) -> str:
        if not validate_api_key(v):
            raise ValueError("Invalid METALS_API_KEY format")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError("LOG_LEVEL must be DEBUG, INFO, WARNING, ERROR or CRITICAL")
        return level


# Global settings instance
settings = Settings()


# ============================================================================
# Deployment
# ============================================================================
#
# Serving loop (refresh every REFRESH_INTERVAL_MINUTES, first cycle at boot):
#    nohup python -m bullion > bullion.out 2>&1 &
#
# Batch / cron path (one cycle per invocation):
#    */1 * * * * cd /srv/bullion && python -m bullion --once
#
# Health report:
#    python -m bullion --health
#
# ============================================================================
