"""Browser-based extractor for arbitrary pages: readability first, visible text as fallback."""

import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from readability import Document

from link_analyzer.core.config import settings
from link_analyzer.core.logging import get_logger
from link_analyzer.core.models import PlatformTag, ScrapeMethod, ScrapeResult
from link_analyzer.scrapers.base import BaseExtractor
from link_analyzer.scrapers.browser_base import BrowserSession
from link_analyzer.utils.metrics import scrape_attempts_counter

logger = get_logger(__name__)

MIN_READABILITY_CHARS = 100
EXCERPT_CHARS = 300
ELLIPSIS = "..."

NOISE_SELECTORS = "script, style, nav, footer, header, aside, iframe"

VISIBLE_TEXT_JS = f"""
() => {{
    document.querySelectorAll('{NOISE_SELECTORS}').forEach(el => el.remove());
    return document.body ? document.body.innerText : '';
}}
"""


@dataclass(frozen=True)
class WaitPolicy:
    """How to decide a page has loaded."""

    wait_until: str
    timeout_ms: int
    extra_wait_ms: int


WAIT_POLICIES: Dict[PlatformTag, WaitPolicy] = {
    PlatformTag.LINKEDIN: WaitPolicy("networkidle", 60000, 3000),
    PlatformTag.INSTAGRAM: WaitPolicy("networkidle", 45000, 2000),
    PlatformTag.TWITTER: WaitPolicy("domcontentloaded", 30000, 2000),
    PlatformTag.MEDIUM: WaitPolicy("domcontentloaded", 30000, 1000),
}

DEFAULT_EXTRA_WAIT_MS = 2000

AUTHOR_SELECTORS: Dict[PlatformTag, Tuple[str, ...]] = {
    PlatformTag.LINKEDIN: (
        ".feed-shared-actor__name",
        ".update-components-actor__name",
        '[data-control-name="actor"]',
    ),
    PlatformTag.MEDIUM: (
        'a[rel="author"]',
        ".author-name",
        '[data-testid="authorName"]',
    ),
    PlatformTag.TWITTER: (
        '[data-testid="User-Name"]',
    ),
    PlatformTag.SUBSTACK: (
        ".byline-names a",
        ".profile-hover-card-target a",
    ),
}

GENERIC_AUTHOR_SELECTORS: Tuple[str, ...] = (
    '[rel="author"]',
    ".author",
    ".by-author",
    '[itemprop="author"]',
)


def get_wait_policy(platform: PlatformTag, default_timeout_ms: Optional[int] = None) -> WaitPolicy:
    """Wait policy for a platform; unlisted platforms use the configured default timeout."""
    policy = WAIT_POLICIES.get(platform)
    if policy is not None:
        return policy
    return WaitPolicy(
        "domcontentloaded",
        default_timeout_ms or settings.scraping_timeout,
        DEFAULT_EXTRA_WAIT_MS,
    )


def clean_text(text: str) -> str:
    """Collapse horizontal whitespace and cap blank lines at one."""
    text = re.sub(r"[^\S\n]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def truncate_content(content: str, max_length: Optional[int] = None) -> str:
    """Cut content to the budget, preferring a sentence end in the last 20% of the window."""
    max_length = max_length or settings.max_content_length
    if len(content) <= max_length:
        return content

    truncated = content[:max_length]
    last_boundary = max(truncated.rfind("."), truncated.rfind("!"), truncated.rfind("?"))

    if last_boundary > max_length * 0.8:
        return truncated[:last_boundary + 1] + ELLIPSIS

    return truncated + ELLIPSIS


def reduce_article(html: str, url: str) -> Optional[Tuple[str, str]]:
    """Run readability over rendered HTML.

    Returns (title, text) when the main article has more than
    MIN_READABILITY_CHARS characters of text, otherwise None.
    """
    try:
        document = Document(html, url=url)
        summary_html = document.summary(html_partial=True)
        title = document.short_title() or ""
    except Exception as e:
        # readability raises its own Unparseable plus lxml errors on odd markup
        logger.debug(f"Readability could not parse page: {e}")
        return None

    text = BeautifulSoup(summary_html, "html.parser").get_text("\n")
    text = clean_text(text)
    if len(text) <= MIN_READABILITY_CHARS:
        return None
    return title, text


class UniversalScraper(BaseExtractor):
    """Renders a page in headless Chromium and extracts its readable text."""

    name = "universal"

    def __init__(
        self,
        headless: Optional[bool] = None,
        default_timeout_ms: Optional[int] = None,
        max_content_length: Optional[int] = None,
        session_factory: Callable[..., BrowserSession] = BrowserSession,
    ) -> None:
        super().__init__()
        self.headless = settings.headless if headless is None else headless
        self.default_timeout_ms = default_timeout_ms or settings.scraping_timeout
        self.max_content_length = max_content_length or settings.max_content_length
        self.session_factory = session_factory

    async def extract(self, url: str, platform: PlatformTag) -> Optional[ScrapeResult]:
        self.logger.info(f"Scraping {platform.value}: {url[:60]}")
        start = time.monotonic()
        policy = get_wait_policy(platform, self.default_timeout_ms)

        try:
            async with self.session_factory(headless=self.headless) as session:
                page = await session.new_page()

                self.logger.debug(
                    "Loading page",
                    wait_until=policy.wait_until,
                    timeout_s=policy.timeout_ms / 1000,
                )
                await page.goto(url, wait_until=policy.wait_until, timeout=policy.timeout_ms)

                # Give client-side rendering time to settle
                await page.wait_for_timeout(policy.extra_wait_ms)

                result = await self._extract_from_page(page, url, platform)

        except PlaywrightTimeoutError as e:
            self.logger.error(f"Timeout scraping {url}: {e}")
            self.logger.error("Consider raising SCRAPING_TIMEOUT in .env")
            scrape_attempts_counter.labels(extractor=self.name, outcome="timeout").inc()
            return None
        except Exception as e:
            self.logger.error(f"Error scraping {url}: {e}", exc_info=True)
            scrape_attempts_counter.labels(extractor=self.name, outcome="error").inc()
            return None

        elapsed = time.monotonic() - start
        if result is None:
            scrape_attempts_counter.labels(extractor=self.name, outcome="empty").inc()
            return None

        scrape_attempts_counter.labels(extractor=self.name, outcome=result.method.value).inc()
        self.logger.info(
            f"Extracted with {result.method.value}",
            chars=len(result.content),
            elapsed_s=round(elapsed, 2),
        )
        return result

    async def _extract_from_page(self, page: Page, url: str, platform: PlatformTag) -> Optional[ScrapeResult]:
        html = await page.content()
        page_title = await page.title()

        article = reduce_article(html, url)
        if article is not None:
            title, text = article
            method = ScrapeMethod.READABILITY
        else:
            self.logger.warning("Readability failed, using visible text fallback")
            title = page_title
            text = clean_text(await page.evaluate(VISIBLE_TEXT_JS) or "")
            method = ScrapeMethod.FALLBACK

        if not text:
            self.logger.warning(f"No visible text on {url}")
            return None

        return ScrapeResult(
            title=title or page_title,
            content=truncate_content(text, self.max_content_length),
            excerpt=text[:EXCERPT_CHARS],
            author=await self.extract_author(page, platform),
            method=method,
        )

    async def extract_author(self, page: Page, platform: PlatformTag) -> Optional[str]:
        """First non-empty text among the platform selectors, then the generic ones."""
        selectors = AUTHOR_SELECTORS.get(platform, ()) + GENERIC_AUTHOR_SELECTORS

        for selector in selectors:
            try:
                element = await page.query_selector(selector)
                if element is None:
                    continue
                text = await element.text_content()
            except PlaywrightError as e:
                self.logger.debug(f"Author selector {selector} failed: {e}")
                continue
            if text and text.strip():
                return text.strip()

        return None
