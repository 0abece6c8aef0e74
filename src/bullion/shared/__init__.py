# src/bullion/shared/__init__.py
"""
Shared Utilities - Cross-cutting Concerns

This package contains shared utilities used across all layers:
- Validation
- Upstream rate limiting
- Logging configuration
"""

from bullion.shared.rate_limiter import RateLimitConfig, RateLimiter, upstream_limiter
from bullion.shared.validators import (
    validate_api_key,
    validate_currency_code,
    validate_fx_table,
    validate_http_url,
    validate_instrument_name,
)

__all__ = [
    "RateLimitConfig",
    "RateLimiter",
    "upstream_limiter",
    "validate_api_key",
    "validate_currency_code",
    "validate_fx_table",
    "validate_http_url",
    "validate_instrument_name",
]
