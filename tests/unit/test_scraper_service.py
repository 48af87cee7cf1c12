import pytest
from unittest.mock import AsyncMock, MagicMock, call

from link_analyzer.core.exceptions import ScrapeError
from link_analyzer.core.models import PlatformTag, ScrapeMethod, ScrapeResult
from link_analyzer.services.scraper_service import ScrapeOrchestrator

URL = "https://example.com/article"
TWEET_URL = "https://x.com/jdoe/status/1"


def extractor(*results) -> MagicMock:
    mock = MagicMock()
    mock.extract = AsyncMock(side_effect=list(results))
    mock.close = AsyncMock()
    return mock


def social_result() -> ScrapeResult:
    return ScrapeResult(title="Tweet by Jane", content="A tweet with enough text", method=ScrapeMethod.SOCIAL)


class TestScrapeOrchestrator:
    """Extractor selection, fallback and retry bounds."""

    @pytest.mark.asyncio
    async def test_generic_success_first_attempt(self, scrape_result):
        generic = extractor(scrape_result)
        social = extractor()
        sleep = AsyncMock()
        orchestrator = ScrapeOrchestrator(social=social, generic=generic, max_retries=2, sleep=sleep)

        result = await orchestrator.scrape_with_retry(URL, PlatformTag.GENERIC)

        assert result is scrape_result
        social.extract.assert_not_called()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retry_bound_and_backoff(self):
        generic = extractor(None, None, None)
        sleep = AsyncMock()
        orchestrator = ScrapeOrchestrator(social=extractor(), generic=generic, max_retries=3, sleep=sleep)

        with pytest.raises(ScrapeError) as exc_info:
            await orchestrator.scrape_with_retry(URL, PlatformTag.GENERIC)

        assert generic.extract.await_count == 3
        assert sleep.await_args_list == [call(2), call(4)]
        assert isinstance(exc_info.value.__cause__, ScrapeError)
        assert "3 attempts" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_second_attempt_succeeds(self, scrape_result):
        generic = extractor(None, scrape_result)
        sleep = AsyncMock()
        orchestrator = ScrapeOrchestrator(social=extractor(), generic=generic, max_retries=2, sleep=sleep)

        result = await orchestrator.scrape_with_retry(URL, PlatformTag.GENERIC)

        assert result is scrape_result
        assert generic.extract.await_count == 2
        sleep.assert_awaited_once_with(2)

    @pytest.mark.asyncio
    async def test_blank_content_counts_as_failure(self):
        blank = ScrapeResult(content="   ", method=ScrapeMethod.FALLBACK)
        generic = extractor(blank, blank)
        orchestrator = ScrapeOrchestrator(social=extractor(), generic=generic, max_retries=2, sleep=AsyncMock())

        with pytest.raises(ScrapeError):
            await orchestrator.scrape_with_retry(URL, PlatformTag.GENERIC)

    @pytest.mark.asyncio
    async def test_twitter_uses_social_first(self):
        social = extractor(social_result())
        generic = extractor()
        orchestrator = ScrapeOrchestrator(social=social, generic=generic, max_retries=2, sleep=AsyncMock())

        result = await orchestrator.scrape_with_retry(TWEET_URL, PlatformTag.TWITTER)

        assert result.method == ScrapeMethod.SOCIAL
        generic.extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_twitter_falls_back_to_browser_in_same_attempt(self, scrape_result):
        social = extractor(None)
        generic = extractor(scrape_result)
        sleep = AsyncMock()
        orchestrator = ScrapeOrchestrator(social=social, generic=generic, max_retries=2, sleep=sleep)

        result = await orchestrator.scrape_with_retry(TWEET_URL, PlatformTag.TWITTER)

        assert result is scrape_result
        social.extract.assert_awaited_once_with(TWEET_URL, PlatformTag.TWITTER)
        generic.extract.assert_awaited_once_with(TWEET_URL, PlatformTag.TWITTER)
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_twitter_both_fail_every_attempt(self):
        social = extractor(None, None)
        generic = extractor(None, None)
        orchestrator = ScrapeOrchestrator(social=social, generic=generic, max_retries=2, sleep=AsyncMock())

        with pytest.raises(ScrapeError):
            await orchestrator.scrape_with_retry(TWEET_URL, PlatformTag.TWITTER)

        assert social.extract.await_count == 2
        assert generic.extract.await_count == 2

    @pytest.mark.asyncio
    async def test_close_closes_both_extractors(self):
        social, generic = extractor(), extractor()
        orchestrator = ScrapeOrchestrator(social=social, generic=generic)

        await orchestrator.close()

        social.close.assert_awaited_once()
        generic.close.assert_awaited_once()
