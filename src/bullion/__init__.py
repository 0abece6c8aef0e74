# src/bullion/__init__.py
"""
Bullion - Precious Metal Price Engine

Fetches spot prices for gold, silver, platinum and palladium from unreliable,
rate-limited upstream sources, projects them into USD/EUR/GBP/INR, persists a
time series with derived analytics and evaluates user price alerts.
"""

__version__ = "1.0.0"
