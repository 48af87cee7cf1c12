"""Chat transport boundary and the router that turns messages into link tasks."""

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional, Tuple

from link_analyzer.core.config import settings
from link_analyzer.core.logging import get_logger
from link_analyzer.core.models import InboundMessage, LinkTask, ProcessingStatus
from link_analyzer.services.scheduler import SequentialWorkQueue
from link_analyzer.services.scraper_service import LinkProcessor
from link_analyzer.utils.url_detector import detect_platform, extract_urls

logger = get_logger(__name__)

PREVIEW_CHARS = 50


class ChatTransport(ABC):
    """Source of eligible chat messages and sink for replies.

    Implementations decide which messages are eligible (for example only
    self-sent ones, never status broadcasts) before yielding them.
    """

    @abstractmethod
    def messages(self) -> AsyncIterator[InboundMessage]:
        """Yield inbound messages until the transport closes."""

    @abstractmethod
    async def send(self, chat_id: str, text: str) -> None:
        """Send a text message to a chat."""

    async def close(self) -> None:
        pass


class ChannelTransport(ChatTransport):
    """In-process transport backed by an asyncio.Queue."""

    def __init__(self) -> None:
        self._inbox: "asyncio.Queue[Optional[InboundMessage]]" = asyncio.Queue()
        self.sent: List[Tuple[str, str]] = []

    async def put(self, message: InboundMessage) -> None:
        await self._inbox.put(message)

    async def close(self) -> None:
        await self._inbox.put(None)

    async def messages(self) -> AsyncIterator[InboundMessage]:
        while True:
            message = await self._inbox.get()
            if message is None:
                return
            yield message

    async def send(self, chat_id: str, text: str) -> None:
        self.sent.append((chat_id, text))
        logger.info(f"Message to {chat_id}: {text}")


def _preview(url: str) -> str:
    return f"{url[:PREVIEW_CHARS]}..."


class MessageRouter:
    """Detects URLs in inbound messages and feeds them to the work queue."""

    def __init__(
        self,
        transport: ChatTransport,
        processor: LinkProcessor,
        queue: Optional[SequentialWorkQueue] = None,
        send_confirmations: Optional[bool] = None,
        send_results: Optional[bool] = None,
        send_errors: Optional[bool] = None,
    ):
        self.transport = transport
        self.processor = processor
        self.queue = queue or SequentialWorkQueue(self.handle_task)
        self.send_confirmations = settings.send_confirmations if send_confirmations is None else send_confirmations
        self.send_results = settings.send_results if send_results is None else send_results
        self.send_errors = settings.send_errors if send_errors is None else send_errors

    async def handle_message(self, message: InboundMessage) -> List[LinkTask]:
        """Enqueue one task per URL in the message and start draining."""
        try:
            urls = extract_urls(message.text)
            if not urls:
                logger.debug("Ignored message without URLs", chat_id=message.chat_id)
                return []

            logger.info(
                f"Message received ({'group' if message.is_group else 'direct'})",
                sender=message.sender_id,
                urls=len(urls),
            )

            if self.send_confirmations:
                await self._notify(message.chat_id, f"🤖 Detecté {len(urls)} URL(s). Procesando...")

            tasks = [
                LinkTask(
                    url=url,
                    platform=detect_platform(url),
                    sender_id=message.sender_id,
                    chat_id=message.chat_id,
                )
                for url in urls
            ]
            for task in tasks:
                self.queue.enqueue(task)

            self.queue.start()
            return tasks

        except Exception as e:
            logger.error(f"Error handling message: {e}", exc_info=True)
            return []

    async def handle_task(self, task: LinkTask) -> ProcessingStatus:
        status = await self.processor.process_url(task.url, task.platform, task.sender_id)

        if status == ProcessingStatus.FAILED:
            if self.send_errors:
                await self._notify(task.chat_id, f"❌ Error procesando: {_preview(task.url)}")
        elif self.send_results:
            await self._notify(task.chat_id, f"✅ Procesado: {_preview(task.url)}")

        return status

    async def _notify(self, chat_id: str, text: str) -> None:
        try:
            await self.transport.send(chat_id, text)
        except Exception as e:
            logger.error(f"Error sending message to {chat_id}: {e}")

    async def run(self) -> None:
        """Consume the transport until it closes, then finish queued work."""
        logger.info("Listening for messages")
        try:
            async for message in self.transport.messages():
                await self.handle_message(message)
        finally:
            await self.queue.join()
            logger.info("Message router stopped")
