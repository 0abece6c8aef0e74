# src/bullion/shared/validators.py
"""
Input Validation Utilities - Configuration Validation

This module provides validation functions used by the settings layer so
malformed static configuration fails at process startup rather than at
request time.

Files that USE this module:
- bullion.config.settings (uses validation functions in Settings field validators)

Files that this module USES:
- bullion.domain.models (Currency and Instrument enumerations)
"""
import re
from typing import Mapping
from urllib.parse import urlparse

from bullion.domain.models import Currency, Instrument


def validate_currency_code(code: str) -> bool:
    """Return True if ``code`` is a supported currency code (case-insensitive)."""
    if not code:
        return False
    return code.upper() in {c.value for c in Currency}


def validate_instrument_name(name: str) -> bool:
    """Return True if ``name`` is a known instrument identifier."""
    return name in {i.value for i in Instrument}


def validate_fx_table(rates: Mapping[str, float]) -> list[str]:
    """
    Check a static FX table.

    Args:
        rates: USD -> currency multipliers keyed by currency code

    Returns:
        List of problems (empty when the table is valid)
    """
    problems: list[str] = []
    for code, rate in rates.items():
        if not validate_currency_code(code):
            problems.append(f"unknown currency {code!r}")
        elif rate is None or rate <= 0:
            problems.append(f"non-positive rate for {code}: {rate!r}")
    present = {code.upper() for code in rates}
    for currency in Currency:
        if currency.value not in present:
            problems.append(f"missing rate for {currency.value}")
    usd = {code.upper(): rate for code, rate in rates.items()}.get("USD")
    if usd is not None and usd != 1.0:
        problems.append(f"USD rate must be 1.0, got {usd!r}")
    return problems


def validate_api_key(api_key: str) -> bool:
    """
    Validate API key format.

    Empty keys are allowed (the corresponding source is simply unusable);
    non-empty keys must be 16-128 characters of letters, digits, '-' or '_'.
    """
    if not api_key:
        return True
    return bool(re.match(r"^[A-Za-z0-9_\-]{16,128}$", api_key))


def validate_http_url(url: str) -> bool:
    """Return True for absolute http(s) URLs with a host."""
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
