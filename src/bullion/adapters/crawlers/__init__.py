"""
Web Crawlers - HTML Scraping for Gold Rates

Crawlers fetch rates from public web pages, with per-instance TTL caching
and a single-flight guard.
"""

from bullion.adapters.crawlers.base import BaseCrawler, CrawlerError, CrawlerResult
from bullion.adapters.crawlers.goodreturns_crawler import GoodReturnsCrawler

__all__ = ["BaseCrawler", "CrawlerError", "CrawlerResult", "GoodReturnsCrawler"]
