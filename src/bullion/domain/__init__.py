# src/bullion/domain/__init__.py
"""
Domain Layer - Pure Business Logic

This package contains domain models, errors and the currency projector.
No I/O dependencies.
"""

from bullion.domain.currency import DEFAULT_FX_RATES, project, project_snapshot
from bullion.domain.errors import (
    ConfigurationError,
    DomainError,
    InvalidPriceError,
    PersistenceError,
    PriceDataMissingError,
    ProviderUnavailableError,
)
from bullion.domain.models import (
    AlertCondition,
    AlertRule,
    AlertTriggerEvent,
    CachedSnapshot,
    Currency,
    Instrument,
    PriceSnapshot,
    StoredPriceRow,
)

__all__ = [
    "AlertCondition",
    "AlertRule",
    "AlertTriggerEvent",
    "CachedSnapshot",
    "Currency",
    "Instrument",
    "PriceSnapshot",
    "StoredPriceRow",
    "DomainError",
    "InvalidPriceError",
    "ProviderUnavailableError",
    "PersistenceError",
    "PriceDataMissingError",
    "ConfigurationError",
    "DEFAULT_FX_RATES",
    "project",
    "project_snapshot",
]
