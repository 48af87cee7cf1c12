"""Content extractors."""

from link_analyzer.scrapers.base import BaseExtractor
from link_analyzer.scrapers.twitter_scraper import TwitterScraper
from link_analyzer.scrapers.universal_scraper import UniversalScraper

__all__ = [
    "BaseExtractor",
    "TwitterScraper",
    "UniversalScraper",
]
