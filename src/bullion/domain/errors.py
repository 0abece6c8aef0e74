# src/bullion/domain/errors.py
"""
Domain Errors - Business Logic Exceptions

This module defines domain-specific exceptions that represent
business rule violations and failures at the engine's boundaries.
"""


class DomainError(Exception):
    """Base exception for domain errors."""
    pass


class InvalidPriceError(DomainError):
    """Raised when a price value is invalid (e.g., negative or zero)."""
    pass


class ProviderUnavailableError(DomainError):
    """Raised when an upstream price source cannot deliver a snapshot."""
    pass


class PersistenceError(DomainError):
    """Raised when the row store fails to read or write."""
    pass


class PriceDataMissingError(DomainError):
    """Raised when no stored price exists for an instrument."""
    pass


class ConfigurationError(DomainError):
    """Raised when static configuration cannot be wired into components."""
    pass
