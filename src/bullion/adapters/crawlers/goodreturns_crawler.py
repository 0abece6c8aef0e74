# src/bullion/adapters/crawlers/goodreturns_crawler.py
"""
GoodReturns.in Crawler

Crawler for the Indian gold-rate page on goodreturns.in. Extracts the 24
karat and 22 karat prices per gram in INR.

The page carries the figures in several places; the crawler tries the
headline elements first and falls back to the "1 Gram" rows of the rate
tables.

Files that USE this module:
- bullion.adapters.providers.goodreturns (ScrapedGoldSource)
- tests.test_crawlers (unit tests)

Files that this module USES:
- bullion.adapters.crawlers.base (BaseCrawler base class, CrawlerResult dataclass)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

import logging  # Standard library for logging messages
import re  # Regular expressions for finding headings and captions

from typing import Optional  # Type hints for optional return values

from bs4 import BeautifulSoup  # HTML parsing library for extracting data from web pages

from bullion.adapters.crawlers.base import BaseCrawler, CrawlerResult  # Base crawler class and result dataclass

log = logging.getLogger(__name__)  # Create logger for this module


class GoodReturnsCrawler(BaseCrawler):
    """Crawler for https://www.goodreturns.in/gold-rates/."""

    name = "goodreturns"

    def _parse_html(self, html: str) -> CrawlerResult:
        soup = BeautifulSoup(html, "html.parser")

        price_24k = self._headline_24k(soup)
        price_22k = self._headline_22k(soup)

        if price_24k is None:
            price_24k = self._table_gram_price(soup, "24")
        if price_22k is None:
            price_22k = self._table_gram_price(soup, "22")

        if price_24k:
            log.debug("Found 24k gold price per gram: %.2f", price_24k)
        if price_22k:
            log.debug("Found 22k gold price per gram: %.2f", price_22k)
        if not price_24k and not price_22k:
            log.warning("Could not extract any gold prices from goodreturns HTML")

        return CrawlerResult(
            gold_24k_per_gram=price_24k,
            gold_22k_per_gram=price_22k,
        )

    def _headline_24k(self, soup: BeautifulSoup) -> Optional[float]:
        # "The price of gold in India today is ₹7,245 per gram for 24 karat gold ..."
        for p in soup.find_all("p"):
            text = p.get_text(" ", strip=True)
            if "per gram for 24 karat gold" in text:
                price = self._parse_price(text)
                if price:
                    return price
        return None

    def _headline_22k(self, soup: BeautifulSoup) -> Optional[float]:
        for a in soup.find_all("a"):
            if "22k Gold" in a.get_text(" ", strip=True):
                span = a.find("span")
                price = self._parse_price(span.get_text(" ", strip=True) if span else a.get_text(" ", strip=True))
                if price:
                    return price
        return None

    def _table_gram_price(self, soup: BeautifulSoup, karat: str) -> Optional[float]:
        heading = soup.find(["h2", "h3"], string=re.compile(rf"{karat}\s*Carat Gold", re.I))
        if heading is None:
            return None
        table = heading.find_next("table")
        if table is None:
            return None
        for row in table.find_all("tr"):
            cells = row.find_all(["td", "th"])
            if len(cells) < 2:
                continue
            if cells[0].get_text(strip=True).lower().startswith("1 gram"):
                return self._parse_price(cells[1].get_text(" ", strip=True))
        return None
