"""Scoped Playwright browser session."""

from typing import Optional, Sequence

from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route, async_playwright

from link_analyzer.core.logging import get_logger

logger = get_logger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]

BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media"})


class BrowserSession:
    """One isolated browser per use, torn down on every exit path.

    Usage:
        async with BrowserSession() as session:
            page = await session.new_page()
    """

    def __init__(
        self,
        headless: bool = True,
        user_agent: str = USER_AGENT,
        locale: str = "es-ES",
        blocked_resources: Sequence[str] = BLOCKED_RESOURCE_TYPES,
    ) -> None:
        self.headless = headless
        self.user_agent = user_agent
        self.locale = locale
        self.blocked_resources = frozenset(blocked_resources)
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None

    async def start(self) -> None:
        """Launch the browser and open a context."""
        self.playwright = await async_playwright().start()

        logger.debug("Starting browser", headless=self.headless)
        self.browser = await self.playwright.chromium.launch(
            headless=self.headless,
            args=BROWSER_ARGS,
        )

        self.context = await self.browser.new_context(
            viewport={'width': 1920, 'height': 1080},
            user_agent=self.user_agent,
            locale=self.locale,
            java_script_enabled=True,
            ignore_https_errors=True,
        )

        # Hide the webdriver flag from bot checks
        await self.context.add_init_script("""
            Object.defineProperty(navigator, 'webdriver', {
                get: () => undefined
            });
        """)

    async def new_page(self) -> Page:
        """Open a page that aborts heavy resource requests."""
        if self.context is None:
            raise RuntimeError("BrowserSession used outside 'async with'")

        page = await self.context.new_page()
        await page.route("**/*", self._filter_resources)
        return page

    async def _filter_resources(self, route: Route) -> None:
        if route.request.resource_type in self.blocked_resources:
            await route.abort()
        else:
            await route.continue_()

    async def close(self) -> None:
        """Close context, browser and driver; each step runs even if an earlier one raises."""
        context, browser, playwright = self.context, self.browser, self.playwright
        self.context = self.browser = self.playwright = None

        try:
            if context:
                await context.close()
        finally:
            try:
                if browser:
                    await browser.close()
            finally:
                if playwright:
                    await playwright.stop()

    async def __aenter__(self) -> "BrowserSession":
        try:
            await self.start()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
