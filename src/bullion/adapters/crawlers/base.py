# src/bullion/adapters/crawlers/base.py
"""
Base Crawler with Caching Mechanism

This module provides a base class for web crawlers that scrape gold rates
from public HTML pages. Each crawler instance keeps its own short TTL cache
and a single-flight guard, so a slow page load is performed at most once at
a time and repeated requests inside the TTL never hit the site again.

Files that USE this module:
- bullion.adapters.crawlers.goodreturns_crawler (GoodReturnsCrawler extends BaseCrawler)
- bullion.adapters.providers.goodreturns (ScrapedGoldSource wraps a crawler)

Files that this module USES:
- bullion.shared.rate_limiter (shared upstream budget)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

import logging  # Standard library for logging messages
import re  # Regular expressions for parsing text patterns
import threading  # Lock for the single-flight guard
from abc import ABC, abstractmethod  # Abstract base classes for defining interfaces
from dataclasses import dataclass, replace  # Decorator for creating data classes
from datetime import datetime, timedelta, timezone  # Date/time utilities for caching timestamps
from typing import Optional  # Type hints for optional values

import requests  # HTTP library for making web requests

from bullion.shared.rate_limiter import RateLimitConfig, RateLimiter, per_minute, upstream_limiter

log = logging.getLogger(__name__)  # Create logger for this module

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


class CrawlerError(RuntimeError):
    """Raised when a page cannot be fetched or yields no prices."""


@dataclass(frozen=True)
class CrawlerResult:
    """Gold rates scraped from a page, in the page's currency per gram."""

    gold_24k_per_gram: Optional[float] = None
    gold_22k_per_gram: Optional[float] = None
    timestamp: Optional[datetime] = None


class BaseCrawler(ABC):
    """
    Base class for web crawlers with TTL-based caching.

    The cache lives on the instance; concurrent ``fetch`` calls are
    serialised so only one page load is in flight per crawler.
    """

    name: str = "crawler"

    def __init__(
        self,
        url: str,
        cache_minutes: float = 1.0,
        timeout: int = 10,
        limiter: Optional[RateLimiter] = None,
        limit: Optional[RateLimitConfig] = None,
    ):
        """
        Initialize base crawler.

        Args:
            url: URL to crawl
            cache_minutes: Cache TTL in minutes (minimum time between requests)
            timeout: HTTP request timeout in seconds
            limiter: Rate limiter shared with other upstream sources
            limit: Request budget for this crawler
        """
        self.url = url
        self.timeout = timeout
        self.ttl = timedelta(minutes=cache_minutes)
        self.limiter = limiter or upstream_limiter
        self.limit = limit or per_minute(6)
        self._cache_data: Optional[CrawlerResult] = None
        self._cache_ts: Optional[datetime] = None
        self._lock = threading.Lock()

    def _cache_valid(self) -> bool:
        """
        Check if cached data is still valid based on TTL.

        Returns:
            True if cache exists and is within TTL, False otherwise
        """
        if self._cache_data is None or self._cache_ts is None:
            return False
        return datetime.now(timezone.utc) - self._cache_ts < self.ttl

    def _fetch_html(self) -> str:
        """
        Fetch HTML content from the URL.

        Returns:
            HTML content as string

        Raises:
            CrawlerError: If the budget is exhausted or the request fails or times out
        """
        if not self.limiter.is_allowed(self.name, self.limit):
            retry_after = self.limiter.get_retry_after(self.name, self.limit)
            log.warning("%s: request budget exhausted, next slot in %.0fs", self.name, retry_after)
            raise CrawlerError(f"{self.name} rate limit reached, retry in {retry_after:.0f}s")
        try:
            log.info("Fetching HTML from %s", self.url)
            resp = requests.get(self.url, timeout=self.timeout, headers={"User-Agent": USER_AGENT})
            resp.raise_for_status()
            return resp.text
        except requests.exceptions.Timeout:
            log.error("Crawler timeout after %d seconds for %s", self.timeout, self.url)
            raise CrawlerError(f"Crawler timeout after {self.timeout}s for {self.url}")
        except requests.exceptions.RequestException as e:
            log.error("Crawler request failed for %s: %s", self.url, e)
            raise CrawlerError(f"Crawler request failed for {self.url}: {e}")

    @abstractmethod
    def _parse_html(self, html: str) -> CrawlerResult:
        """
        Parse HTML content and extract prices.

        Args:
            html: HTML content to parse

        Returns:
            CrawlerResult with extracted prices
        """
        raise NotImplementedError

    @staticmethod
    def _parse_price(text: Optional[str]) -> Optional[float]:
        """
        Parse a rupee amount such as "₹ 7,245" or "Rs. 6,641.50" from text.

        Returns:
            Price as float or None if no amount is found
        """
        if not text:
            return None
        match = re.search(r"(?:₹|Rs\.?)\s*([0-9][0-9,]*(?:\.[0-9]+)?)", text)
        if not match:
            return None
        try:
            value = float(match.group(1).replace(",", ""))
        except ValueError:
            return None
        return value if value > 0 else None

    def fetch(self) -> CrawlerResult:
        """
        Fetch and parse prices from the website.

        Uses caching to prevent too frequent requests. If cache is valid,
        returns cached data. Otherwise, fetches fresh data and updates cache.

        Returns:
            CrawlerResult with prices

        Raises:
            CrawlerError: If fetch or parsing fails
        """
        with self._lock:
            if self._cache_valid():
                log.debug("Using cached crawler data for %s", self.url)
                return self._cache_data  # type: ignore[return-value]

            html = self._fetch_html()
            try:
                result = self._parse_html(html)
            except Exception as e:
                log.error("Failed to parse data from %s: %s", self.url, e, exc_info=True)
                raise CrawlerError(f"Failed to parse data from {self.url}: {e}") from e

            if result.gold_24k_per_gram is None and result.gold_22k_per_gram is None:
                raise CrawlerError(f"No gold rates found on {self.url}")

            now = datetime.now(timezone.utc)
            result = replace(result, timestamp=now)
            self._cache_data = result
            self._cache_ts = now
            log.info("Crawler data updated for %s (ttl=%s minutes)", self.url, self.ttl.total_seconds() / 60)
            return result
