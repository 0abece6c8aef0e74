# src/bullion/domain/models.py
"""
Domain Models - Pure Business Objects

This module contains domain models representing core business concepts:
- Instruments and currencies the engine tracks
- Price snapshots (one fetch cycle in one currency)
- Persisted price rows with derived analytics
- Alert rules and trigger events

Files that USE this module:
- bullion.application.* (all services use domain models)
- bullion.adapters.* (adapters create and use domain models)
- tests.* (tests use domain models for test data)

Files that this module USES:
- bullion.domain.errors (InvalidPriceError for snapshot validation)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

from dataclasses import dataclass, field  # Decorators for creating data classes
from datetime import datetime, timezone  # Date/time utilities for timestamps
from enum import Enum  # Enumerations for instruments, currencies and conditions
from typing import Any, Dict, FrozenSet, Mapping, Optional  # Type hints

from bullion.domain.errors import InvalidPriceError  # Raised on non-positive prices


class Instrument(str, Enum):
    """Tracked precious metals. GOLD_22K is an optional secondary gold grade."""
    GOLD = "gold"
    SILVER = "silver"
    PLATINUM = "platinum"
    PALLADIUM = "palladium"
    GOLD_22K = "gold_22k"


class Currency(str, Enum):
    """Supported quote currencies. USD is the base."""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    INR = "INR"


class AlertCondition(str, Enum):
    ABOVE = "above"
    BELOW = "below"


BASE_CURRENCY = Currency.USD
CORE_INSTRUMENTS = (Instrument.GOLD, Instrument.SILVER, Instrument.PLATINUM, Instrument.PALLADIUM)
SUPPORTED_CURRENCIES = tuple(Currency)


def tracked_instruments(include_gold_22k: bool = True) -> tuple[Instrument, ...]:
    """Return the instrument set in display order, optionally with the 22k grade."""
    if include_gold_22k:
        return CORE_INSTRUMENTS + (Instrument.GOLD_22K,)
    return CORE_INSTRUMENTS


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a stored timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (both "...Z" and "+00:00") and Unix seconds.
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)):
        ts = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass(frozen=True)
class PriceSnapshot:
    """
    One fetch cycle's prices in a single currency.

    All values in a snapshot come from the same upstream fetch (or the same
    fallback generation pass); a snapshot is never patched with values from
    another cycle. Instances are immutable and replaced wholesale.

    Attributes:
        currency: Currency the prices are quoted in
        prices: Mapping of instrument to positive price (per troy ounce)
        timestamp: Unix timestamp (seconds) of the reading
        source: Label of the source that produced the reading
        derived: Instruments whose price was derived from a ratio, not observed
        is_fallback: True when produced by the local fallback generator
    """
    currency: Currency
    prices: Mapping[Instrument, float]
    timestamp: int
    source: str = "unknown"
    derived: FrozenSet[Instrument] = field(default_factory=frozenset)
    is_fallback: bool = False

    def __post_init__(self) -> None:
        if not self.prices:
            raise InvalidPriceError("Snapshot must contain at least one price")
        for instrument, price in self.prices.items():
            if price is None or not price > 0:
                raise InvalidPriceError(f"Non-positive price for {instrument.value}: {price!r}")

    def price(self, instrument: Instrument) -> Optional[float]:
        return self.prices.get(instrument)

    @property
    def instruments(self) -> tuple[Instrument, ...]:
        return tuple(self.prices)


@dataclass(frozen=True)
class CachedSnapshot:
    """
    Base snapshot plus its projection into every supported currency.

    Attributes:
        base: The authoritative base-currency (USD) snapshot
        by_currency: Projected snapshots keyed by currency (includes the base)
        captured_at: Clock reading (seconds) when the snapshot was captured
    """
    base: PriceSnapshot
    by_currency: Mapping[Currency, PriceSnapshot]
    captured_at: float

    def age(self, now: float) -> float:
        return now - self.captured_at


@dataclass(frozen=True)
class StoredPriceRow:
    """
    Persisted price record for one instrument in one refresh cycle.

    Only the USD price is required; other currency columns are nullable.
    The bid/ask/high/low values are synthetic placeholders derived from the
    USD price, not observed market data.
    """
    instrument: Instrument
    price_usd: float
    timestamp: datetime
    price_eur: Optional[float] = None
    price_gbp: Optional[float] = None
    price_inr: Optional[float] = None
    bid_price: Optional[float] = None
    ask_price: Optional[float] = None
    change_24h: float = 0.0
    change_percentage: float = 0.0
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    source: Optional[str] = None
    id: Optional[int] = None

    def price_in(self, currency: Currency) -> Optional[float]:
        """Return the stored price column for a currency (None when not stored)."""
        return {
            Currency.USD: self.price_usd,
            Currency.EUR: self.price_eur,
            Currency.GBP: self.price_gbp,
            Currency.INR: self.price_inr,
        }[currency]

    def to_row(self) -> Dict[str, Any]:
        """
        Convert to the storage row shape.

        Returns:
            Dictionary keyed by column name, timestamp as ISO-8601 string
        """
        row: Dict[str, Any] = {
            "metal_type": self.instrument.value,
            "price_usd": self.price_usd,
            "price_eur": self.price_eur,
            "price_gbp": self.price_gbp,
            "price_inr": self.price_inr,
            "bid_price": self.bid_price,
            "ask_price": self.ask_price,
            "change_24h": self.change_24h,
            "change_percentage": self.change_percentage,
            "high_24h": self.high_24h,
            "low_24h": self.low_24h,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.id is not None:
            row["id"] = self.id
        return row

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StoredPriceRow":
        """
        Build a StoredPriceRow from a storage row.

        Raises:
            KeyError: If a required column is missing
            ValueError: If a value cannot be parsed
        """
        def _opt(name: str) -> Optional[float]:
            value = row.get(name)
            return None if value is None else float(value)

        return cls(
            instrument=Instrument(row["metal_type"]),
            price_usd=float(row["price_usd"]),
            timestamp=parse_timestamp(row["timestamp"]),
            price_eur=_opt("price_eur"),
            price_gbp=_opt("price_gbp"),
            price_inr=_opt("price_inr"),
            bid_price=_opt("bid_price"),
            ask_price=_opt("ask_price"),
            change_24h=float(row.get("change_24h") or 0.0),
            change_percentage=float(row.get("change_percentage") or 0.0),
            high_24h=_opt("high_24h"),
            low_24h=_opt("low_24h"),
            source=row.get("source"),
            id=row.get("id"),
        )


@dataclass(frozen=True)
class AlertRule:
    """
    User-defined price threshold, owned by the alerting subsystem.

    The engine only reads active rules and stamps ``triggered_at``.
    """
    id: int
    user_id: str
    instrument: Instrument
    target_price: float
    condition: AlertCondition
    currency: Currency = Currency.USD
    is_active: bool = True
    triggered_at: Optional[datetime] = None

    @property
    def is_armed(self) -> bool:
        return self.triggered_at is None

    def is_crossed(self, current_price: float) -> bool:
        """True when the current price satisfies the rule's condition."""
        if self.condition is AlertCondition.ABOVE:
            return current_price >= self.target_price
        return current_price <= self.target_price

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AlertRule":
        triggered_raw = row.get("triggered_at")
        return cls(
            id=int(row["id"]),
            user_id=str(row["user_id"]),
            instrument=Instrument(row["metal_type"]),
            target_price=float(row["target_price"]),
            condition=AlertCondition(str(row["condition"]).lower()),
            currency=Currency(str(row.get("currency") or "USD").upper()),
            is_active=bool(row.get("is_active", True)),
            triggered_at=parse_timestamp(triggered_raw) if triggered_raw else None,
        )


@dataclass(frozen=True)
class AlertTriggerEvent:
    """History entry recorded once per detected threshold crossing."""
    alert_id: int
    triggered_price: float
    triggered_at: datetime
    notification_sent: bool = False

    def to_row(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "triggered_price": self.triggered_price,
            "triggered_at": self.triggered_at.isoformat(),
            "notification_sent": self.notification_sent,
        }
