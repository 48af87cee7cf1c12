"""Scrape orchestration and the per-URL processing pipeline."""

import asyncio
import time
from typing import Awaitable, Callable, Iterable, Optional

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_incrementing

from link_analyzer.core.config import settings
from link_analyzer.core.exceptions import AnalysisError, LinkAnalyzerError, ScrapeError
from link_analyzer.core.logging import LogContext, get_logger
from link_analyzer.core.models import (
    Analysis,
    BatchSummary,
    LinkRecord,
    PlatformTag,
    ProcessingStatus,
    ScrapeResult,
)
from link_analyzer.scrapers.base import BaseExtractor
from link_analyzer.scrapers.twitter_scraper import TwitterScraper
from link_analyzer.scrapers.universal_scraper import UniversalScraper
from link_analyzer.services.data_service import AnalysisStore
from link_analyzer.services.llm_processor import OllamaAnalyzer
from link_analyzer.utils.metrics import task_duration, tasks_counter
from link_analyzer.utils.url_detector import detect_platform, is_scrapeable

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

HIGH_RELEVANCE = 4
AUTH_REQUIRED_MESSAGE = "URL requires authentication"


class ScrapeOrchestrator:
    """Chooses the extractor for a platform and retries with a growing pause."""

    def __init__(
        self,
        social: Optional[BaseExtractor] = None,
        generic: Optional[BaseExtractor] = None,
        max_retries: Optional[int] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.social = social or TwitterScraper()
        self.generic = generic or UniversalScraper()
        self.max_retries = max_retries or settings.max_retries
        self._sleep = sleep

    async def _attempt(self, url: str, platform: PlatformTag) -> ScrapeResult:
        result = None

        if platform == PlatformTag.TWITTER:
            result = await self.social.extract(url, platform)
            if result is None or not result.is_valid:
                logger.warning("Social scraper failed, falling back to browser")
                result = None

        if result is None:
            result = await self.generic.extract(url, platform)

        if result is None or not result.is_valid:
            raise ScrapeError(f"No content extracted from {url}")
        return result

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            f"Attempt {retry_state.attempt_number}/{self.max_retries} failed, retrying",
            wait_s=retry_state.next_action.sleep if retry_state.next_action else None,
        )

    async def scrape_with_retry(self, url: str, platform: PlatformTag) -> ScrapeResult:
        """Scrape a URL, waiting attempt x 2 seconds between attempts.

        Raises ScrapeError, chained to the last failure, once attempts run out.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_incrementing(start=2, increment=2),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    logger.info(f"Scraping attempt {attempt.retry_state.attempt_number}/{self.max_retries}")
                    result = await self._attempt(url, platform)
        except Exception as e:
            raise ScrapeError(f"Scraping failed after {self.max_retries} attempts: {e}") from e

        return result

    async def close(self) -> None:
        await self.social.close()
        await self.generic.close()


class LinkProcessor:
    """Runs one URL through dedup, scrape, analysis and persistence.

    Every failure is caught here, recorded in the store and reported as a
    ProcessingStatus; nothing propagates to the queue.
    """

    def __init__(
        self,
        store: Optional[AnalysisStore] = None,
        orchestrator: Optional[ScrapeOrchestrator] = None,
        analyzer: Optional[OllamaAnalyzer] = None,
        min_content_length: Optional[int] = None,
        batch_delay: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.store = store or AnalysisStore()
        self.orchestrator = orchestrator or ScrapeOrchestrator()
        self.analyzer = analyzer or OllamaAnalyzer()
        self.min_content_length = min_content_length or settings.min_content_length
        self.batch_delay = settings.batch_delay_seconds if batch_delay is None else batch_delay
        self._sleep = sleep

    async def process_url(
        self,
        url: str,
        platform: PlatformTag,
        sender_id: Optional[str] = None,
    ) -> ProcessingStatus:
        start = time.monotonic()

        with LogContext(url=url, platform=platform.value):
            try:
                status = await self._process(url, platform, sender_id)
            except LinkAnalyzerError as e:
                logger.error(f"Error processing {url}: {e}")
                await self.store.log_error(url, platform, str(e), sender_id)
                status = ProcessingStatus.FAILED
            except Exception as e:
                logger.error(f"Unexpected error processing {url}: {e}", exc_info=True)
                await self.store.log_error(url, platform, str(e), sender_id)
                status = ProcessingStatus.FAILED

        tasks_counter.labels(platform=platform.value, status=status.value).inc()
        task_duration.labels(status=status.value).observe(time.monotonic() - start)
        return status

    async def _process(self, url: str, platform: PlatformTag, sender_id: Optional[str]) -> ProcessingStatus:
        logger.info(f"Processing URL: {url}")

        if await self.store.exists(url):
            logger.info("URL already processed, skipping")
            return ProcessingStatus.SKIPPED

        if not is_scrapeable(url):
            logger.warning(f"URL not scrapeable: {url}")
            await self.store.log_error(url, platform, AUTH_REQUIRED_MESSAGE, sender_id)
            return ProcessingStatus.FAILED

        scraped = await self.orchestrator.scrape_with_retry(url, platform)
        if len(scraped.content) < self.min_content_length:
            raise ScrapeError(
                f"Insufficient content: {len(scraped.content)} chars (minimum {self.min_content_length})"
            )
        logger.info(f"Content extracted: {len(scraped.content)} chars", method=scraped.method.value)

        analysis = await self.analyzer.analyze(scraped.content, url, platform)
        if analysis is None:
            raise AnalysisError("Analysis with Ollama failed")

        record_id = await self.store.save(
            LinkRecord.from_results(url, platform, sender_id, scraped, analysis)
        )
        self._log_result(record_id, analysis)
        return ProcessingStatus.SUCCESS

    def _log_result(self, record_id: int, analysis: Analysis) -> None:
        logger.info(
            "URL processed successfully",
            record_id=record_id,
            relevancia=analysis.relevancia,
            categoria=analysis.categoria.value,
        )
        if analysis.relevancia >= HIGH_RELEVANCE:
            logger.info(
                f"High relevance content ({analysis.relevancia}/5)",
                temas=", ".join(analysis.temas_principales[:3]),
            )

    async def process_batch(self, urls: Iterable[str], sender_id: Optional[str] = None) -> BatchSummary:
        """Process URLs one after another, detecting each platform."""
        urls = list(urls)
        summary = BatchSummary(total=len(urls))
        logger.info(f"Processing batch of {len(urls)} URLs")

        for index, url in enumerate(urls):
            status = await self.process_url(url, detect_platform(url), sender_id)
            summary.record(status)

            if index < len(urls) - 1:
                await self._sleep(self.batch_delay)

        logger.info(
            "Batch completed",
            succeeded=summary.succeeded,
            failed=summary.failed,
            skipped=summary.skipped,
        )
        return summary

    async def close(self) -> None:
        await self.orchestrator.close()
        await self.analyzer.close()
