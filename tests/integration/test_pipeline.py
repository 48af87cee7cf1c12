import pytest
from unittest.mock import AsyncMock, MagicMock, call

from link_analyzer.core.exceptions import ScrapeError
from link_analyzer.core.models import PlatformTag, ProcessingStatus, ScrapeMethod, ScrapeResult
from link_analyzer.services.scraper_service import AUTH_REQUIRED_MESSAGE, LinkProcessor

URL = "https://example.com/agents"


@pytest.fixture
def orchestrator(scrape_result):
    mock = MagicMock()
    mock.scrape_with_retry = AsyncMock(return_value=scrape_result)
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def analyzer(analysis):
    mock = MagicMock()
    mock.analyze = AsyncMock(return_value=analysis)
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def processor(store, orchestrator, analyzer):
    return LinkProcessor(store=store, orchestrator=orchestrator, analyzer=analyzer, sleep=AsyncMock())


class TestLinkProcessor:
    """Scrape, analyze and persist one URL."""

    @pytest.mark.asyncio
    async def test_happy_path(self, processor, store, orchestrator, analyzer, scrape_result):
        status = await processor.process_url(URL, PlatformTag.GENERIC, "34600000000")

        assert status == ProcessingStatus.SUCCESS
        orchestrator.scrape_with_retry.assert_awaited_once_with(URL, PlatformTag.GENERIC)
        analyzer.analyze.assert_awaited_once_with(scrape_result.content, URL, PlatformTag.GENERIC)

        row = await store.get_by_url(URL)
        assert row.processed_at is not None
        assert row.title == scrape_result.title
        assert row.author == scrape_result.author
        assert row.relevancia == 4
        assert row.whatsapp_sender == "34600000000"

    @pytest.mark.asyncio
    async def test_duplicate_is_skipped(self, processor, orchestrator, analyzer):
        first = await processor.process_url(URL, PlatformTag.GENERIC)
        second = await processor.process_url(URL, PlatformTag.GENERIC)

        assert first == ProcessingStatus.SUCCESS
        assert second == ProcessingStatus.SKIPPED
        assert orchestrator.scrape_with_retry.await_count == 1
        assert analyzer.analyze.await_count == 1

    @pytest.mark.asyncio
    async def test_short_content_rejected(self, processor, store, orchestrator, analyzer):
        orchestrator.scrape_with_retry.return_value = ScrapeResult(
            content="Demasiado corto", method=ScrapeMethod.FALLBACK
        )

        status = await processor.process_url(URL, PlatformTag.GENERIC)

        assert status == ProcessingStatus.FAILED
        analyzer.analyze.assert_not_called()
        row = await store.get_by_url(URL)
        assert row.processed_at is None
        assert "Insufficient content" in row.error_log

    @pytest.mark.asyncio
    async def test_login_wall_not_scraped(self, processor, store, orchestrator):
        url = "https://example.com/login?next=/feed"

        status = await processor.process_url(url, PlatformTag.GENERIC)

        assert status == ProcessingStatus.FAILED
        orchestrator.scrape_with_retry.assert_not_called()
        assert (await store.get_by_url(url)).error_log == AUTH_REQUIRED_MESSAGE

    @pytest.mark.asyncio
    async def test_scrape_failure_recorded(self, processor, store, orchestrator, analyzer):
        orchestrator.scrape_with_retry.side_effect = ScrapeError("Scraping failed after 2 attempts")

        status = await processor.process_url(URL, PlatformTag.GENERIC)

        assert status == ProcessingStatus.FAILED
        analyzer.analyze.assert_not_called()
        assert (await store.get_by_url(URL)).error_log == "Scraping failed after 2 attempts"

    @pytest.mark.asyncio
    async def test_analysis_failure_recorded(self, processor, store, analyzer):
        analyzer.analyze.return_value = None

        status = await processor.process_url(URL, PlatformTag.GENERIC)

        assert status == ProcessingStatus.FAILED
        row = await store.get_by_url(URL)
        assert row.processed_at is None
        assert "Ollama" in row.error_log

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, processor, store, analyzer):
        analyzer.analyze.side_effect = RuntimeError("kaboom")

        status = await processor.process_url(URL, PlatformTag.GENERIC)

        assert status == ProcessingStatus.FAILED
        assert (await store.get_by_url(URL)).error_log == "kaboom"

    @pytest.mark.asyncio
    async def test_error_row_does_not_block_later_success(self, processor, store, analyzer, analysis):
        analyzer.analyze.side_effect = [None, analysis]

        first = await processor.process_url(URL, PlatformTag.GENERIC)
        second = await processor.process_url(URL, PlatformTag.GENERIC)

        assert first == ProcessingStatus.FAILED
        assert second == ProcessingStatus.SUCCESS
        row = await store.get_by_url(URL)
        assert row.error_log is None
        assert row.processed_at is not None


class TestProcessBatch:
    """Sequential batch runs."""

    @pytest.mark.asyncio
    async def test_batch_detects_platform_per_url(self, store, orchestrator, analyzer):
        sleep = AsyncMock()
        processor = LinkProcessor(
            store=store, orchestrator=orchestrator, analyzer=analyzer, batch_delay=1.0, sleep=sleep
        )
        urls = ["https://x.com/jdoe/status/1", "https://example.com/a", "https://example.com/a"]

        summary = await processor.process_batch(urls, "cli")

        assert summary.total == 3
        assert summary.succeeded == 2
        assert summary.skipped == 1
        assert summary.failed == 0
        assert orchestrator.scrape_with_retry.await_args_list == [
            call("https://x.com/jdoe/status/1", PlatformTag.TWITTER),
            call("https://example.com/a", PlatformTag.GENERIC),
        ]
        assert sleep.await_args_list == [call(1.0), call(1.0)]

    @pytest.mark.asyncio
    async def test_batch_continues_after_failure(self, store, orchestrator, analyzer, scrape_result):
        orchestrator.scrape_with_retry.side_effect = [ScrapeError("down"), scrape_result]
        processor = LinkProcessor(store=store, orchestrator=orchestrator, analyzer=analyzer, sleep=AsyncMock())

        summary = await processor.process_batch(["https://example.com/a", "https://example.com/b"])

        assert summary.failed == 1
        assert summary.succeeded == 1
        assert await store.exists("https://example.com/b")
