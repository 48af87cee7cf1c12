from abc import ABC, abstractmethod
from typing import Optional

from link_analyzer.core.logging import get_logger
from link_analyzer.core.models import PlatformTag, ScrapeResult


class BaseExtractor(ABC):
    """Base class for all content extractors.

    Extractors never raise for ordinary failures: they log the cause and
    return None so the orchestrator can retry or fall back.
    """

    name: str = "base"

    def __init__(self) -> None:
        self.logger = get_logger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def extract(self, url: str, platform: PlatformTag) -> Optional[ScrapeResult]:
        """Fetch a URL and return its content, or None on failure."""
        pass

    async def close(self) -> None:
        """Release long-lived resources, if any."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
