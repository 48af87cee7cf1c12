"""Twitter/X scraper that reads posts through public Nitter mirrors."""

from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlsplit, urlunsplit

import httpx
from bs4 import BeautifulSoup

from link_analyzer.core.config import settings
from link_analyzer.core.models import PlatformTag, ScrapeMethod, ScrapeResult
from link_analyzer.scrapers.base import BaseExtractor
from link_analyzer.utils.metrics import scrape_attempts_counter

TWITTER_HOSTS = frozenset({
    "twitter.com",
    "www.twitter.com",
    "mobile.twitter.com",
    "x.com",
    "www.x.com",
    "mobile.x.com",
})

MIN_TWEET_CHARS = 10
EXCERPT_CHARS = 200
PROBE_TIMEOUT_SECONDS = 5.0

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "es-ES,es;q=0.9",
}

STAT_ICONS = {
    "icon-comment": "replies",
    "icon-retweet": "retweets",
    "icon-heart": "likes",
}


def to_mirror_url(url: str, instance: str) -> str:
    """Point a twitter.com / x.com URL at a Nitter instance."""
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    if host not in TWITTER_HOSTS:
        return url
    return urlunsplit(("https", instance, parts.path, "", ""))


def parse_stats(soup: BeautifulSoup) -> Dict[str, int]:
    """Reply, retweet and like counters from a Nitter page."""
    stats = {"replies": 0, "retweets": 0, "likes": 0}

    for container in soup.select(".tweet-stats .icon-container"):
        raw = container.get_text(strip=True).replace(",", "")
        try:
            value = int(raw)
        except ValueError:
            value = 0

        for icon_class, key in STAT_ICONS.items():
            if container.select_one(f".{icon_class}") is not None:
                stats[key] = value
                break

    return stats


def parse_tweet_page(html: str) -> Optional[Dict[str, Any]]:
    """Pull the post, author, timestamp, stats and thread out of a Nitter page.

    Returns None when the page holds no real post text, which is how
    mirrors that answer 200 with an error page show up.
    """
    soup = BeautifulSoup(html, "html.parser")

    first = soup.select_one(".tweet-content")
    tweet_text = first.get_text().strip() if first else ""
    if len(tweet_text) < MIN_TWEET_CHARS:
        return None

    full_name = _first_text(soup, ".fullname")
    username = _first_text(soup, ".username")
    date_link = soup.select_one(".tweet-date a")
    timestamp = date_link.get("title") if date_link else None

    thread: List[str] = []
    for index, element in enumerate(soup.select(".timeline-item .tweet-content")):
        # The first item is the main post, already captured
        if index == 0:
            continue
        text = element.get_text().strip()
        if text:
            thread.append(text)

    return {
        "text": tweet_text,
        "full_name": full_name,
        "username": username,
        "timestamp": timestamp,
        "stats": parse_stats(soup),
        "thread": thread,
    }


def _first_text(soup: BeautifulSoup, selector: str) -> str:
    element = soup.select_one(selector)
    return element.get_text(strip=True) if element else ""


class TwitterScraper(BaseExtractor):
    """Fetches tweets from Nitter mirrors, failing over in order."""

    name = "nitter"

    def __init__(
        self,
        instances: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__()
        self.instances = list(instances if instances is not None else settings.nitter_instances)
        self.timeout = timeout or settings.social_timeout_seconds
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            headers=BROWSER_HEADERS,
            timeout=self.timeout,
            follow_redirects=True,
        )

    async def extract(self, url: str, platform: PlatformTag = PlatformTag.TWITTER) -> Optional[ScrapeResult]:
        """Return the first valid mirror result, or None so the caller can try the browser."""
        self.logger.info(f"Scraping Twitter: {url[:60]}")

        for instance in self.instances:
            mirror_url = to_mirror_url(url, instance)
            self.logger.debug(f"Trying instance {instance}")

            try:
                response = await self.client.get(mirror_url, headers=BROWSER_HEADERS, timeout=self.timeout)
            except Exception as e:
                # InvalidURL and friends are not HTTPError subclasses
                self.logger.warning(f"Error with {instance}: {e}")
                scrape_attempts_counter.labels(extractor=self.name, outcome="error").inc()
                continue

            if not response.is_success:
                self.logger.warning(f"{instance} returned {response.status_code}")
                scrape_attempts_counter.labels(extractor=self.name, outcome="http_error").inc()
                continue

            parsed = parse_tweet_page(response.text)
            if parsed is None:
                self.logger.warning(f"{instance} returned no valid content")
                scrape_attempts_counter.labels(extractor=self.name, outcome="empty").inc()
                continue

            result = self._build_result(parsed, instance)
            stats = parsed["stats"]
            self.logger.info(
                f"Tweet extracted from {instance}",
                replies=stats["replies"],
                retweets=stats["retweets"],
                likes=stats["likes"],
            )
            scrape_attempts_counter.labels(extractor=self.name, outcome="social").inc()
            return result

        self.logger.error("All Nitter instances failed, the browser scraper will be used")
        return None

    def _build_result(self, parsed: Dict[str, Any], instance: str) -> ScrapeResult:
        author = parsed["full_name"] or parsed["username"]
        thread = parsed["thread"]

        content = parsed["text"]
        if thread:
            content += "\n\n" + "\n\n".join(thread)

        return ScrapeResult(
            title=f"Tweet by {author}" if author else "Tweet",
            content=content,
            excerpt=parsed["text"][:EXCERPT_CHARS],
            author=author or None,
            method=ScrapeMethod.SOCIAL,
            metadata={
                "username": parsed["username"],
                "timestamp": parsed["timestamp"],
                "stats": parsed["stats"],
                "is_thread": bool(thread),
                "thread_length": len(thread) + 1,
                "mirror": instance,
            },
        )

    async def check_mirror_availability(self) -> Optional[str]:
        """First mirror that answers at all, for startup diagnostics."""
        for instance in self.instances:
            try:
                response = await self.client.get(
                    f"https://{instance}",
                    headers={"User-Agent": "Mozilla/5.0"},
                    timeout=PROBE_TIMEOUT_SECONDS,
                )
            except Exception as e:
                self.logger.debug(f"Mirror {instance} unreachable: {e}")
                continue
            if response.is_success:
                return instance
        return None

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
