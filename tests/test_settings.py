# tests/test_settings.py
"""
Settings Tests - Defaults and Fail-Fast Validation

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- bullion.config.settings (Settings)
- bullion.shared.validators (validate_fx_table, validate_api_key)
- bullion.shared.rate_limiter (RateLimiter)
"""
import pytest
from pydantic import ValidationError

from bullion.config.settings import Settings
from bullion.shared.rate_limiter import RateLimitConfig, RateLimiter
from bullion.shared.validators import validate_api_key, validate_fx_table

from conftest import FakeClock


def _settings(**values):
    return Settings(_env_file=None, **values)


class TestSettings:
    def test_defaults(self):
        settings = _settings()
        assert settings.refresh_interval_seconds == 300
        assert settings.cache_ttl_seconds == 60
        assert settings.fx_rates == {"USD": 1.0, "EUR": 0.92, "GBP": 0.79, "INR": 83.12}
        assert settings.alert_retrigger_mode == "edge"
        assert settings.price_sources == ["gold_api"]

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CACHE_TTL_SECONDS", "15")
        monkeypatch.setenv("PRICE_SOURCES", '["metal_price_api", "gold_api"]')
        monkeypatch.setenv("ALERT_RETRIGGER_MODE", "level")
        settings = _settings()
        assert settings.cache_ttl_seconds == 15
        assert settings.price_sources == ["metal_price_api", "gold_api"]
        assert settings.alert_retrigger_mode == "level"

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValidationError):
            _settings(CACHE_TTL_SECONDS=-1)

    def test_unknown_fx_currency_rejected(self, monkeypatch):
        monkeypatch.setenv("FX_RATES", '{"USD": 1, "EUR": 0.9, "GBP": 0.8, "INR": 83, "JPY": 150}')
        with pytest.raises(ValidationError, match="JPY"):
            _settings()

    def test_incomplete_fx_table_rejected(self):
        with pytest.raises(ValidationError, match="missing rate for INR"):
            _settings(FX_RATES={"USD": 1.0, "EUR": 0.9, "GBP": 0.8})

    def test_unknown_source_rejected(self):
        with pytest.raises(ValidationError, match="unknown source"):
            _settings(PRICE_SOURCES=["kitco"])

    def test_bad_retrigger_mode_rejected(self):
        with pytest.raises(ValidationError):
            _settings(ALERT_RETRIGGER_MODE="sometimes")

    def test_gold_is_not_derivable(self):
        with pytest.raises(ValidationError):
            _settings(DERIVATION_RATIOS={"gold": 1.0})

    def test_partial_ratio_override_keeps_other_defaults(self, monkeypatch):
        monkeypatch.setenv("DERIVATION_RATIOS", '{"silver": 0.013}')
        settings = _settings()
        assert settings.derivation_ratios == {
            "silver": 0.013,
            "platinum": 0.50,
            "palladium": 0.65,
            "gold_22k": 0.9167,
        }

    def test_log_level_normalised(self):
        assert _settings(LOG_LEVEL="debug").log_level == "DEBUG"


class TestValidators:
    def test_fx_table_usd_must_be_one(self):
        problems = validate_fx_table({"USD": 2.0, "EUR": 0.9, "GBP": 0.8, "INR": 83})
        assert problems == ["USD rate must be 1.0, got 2.0"]

    def test_fx_table_non_positive(self):
        problems = validate_fx_table({"USD": 1.0, "EUR": 0, "GBP": 0.8, "INR": 83})
        assert problems == ["non-positive rate for EUR: 0"]

    @pytest.mark.parametrize("key,ok", [("", True), ("a" * 32, True), ("short", False), ("bad key!" * 4, False)])
    def test_api_key(self, key, ok):
        assert validate_api_key(key) is ok


class TestRateLimiter:
    def test_window_slides(self):
        clock = FakeClock(0.0)
        limiter = RateLimiter(clock=clock)
        config = RateLimitConfig(max_requests=2, time_window=60)

        assert limiter.is_allowed("gold_api", config)
        assert limiter.is_allowed("gold_api", config)
        assert not limiter.is_allowed("gold_api", config)
        assert limiter.get_retry_after("gold_api", config) == 60

        clock.advance(61)
        assert limiter.is_allowed("gold_api", config)

    def test_identifiers_are_independent(self):
        limiter = RateLimiter(clock=FakeClock(0.0))
        config = RateLimitConfig(max_requests=1, time_window=60)
        assert limiter.is_allowed("a", config)
        assert limiter.is_allowed("b", config)

    def test_retry_after_counts_down(self):
        clock = FakeClock(0.0)
        limiter = RateLimiter(clock=clock)
        config = RateLimitConfig(max_requests=1, time_window=10)
        assert limiter.get_retry_after("x", config) == 0.0
        limiter.is_allowed("x", config)
        clock.advance(4)
        assert not limiter.is_allowed("x", config)
        assert limiter.get_retry_after("x", config) == 6
        clock.advance(6)
        assert limiter.get_retry_after("x", config) == 0.0
        assert limiter.is_allowed("x", config)
