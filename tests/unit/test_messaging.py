import pytest
from unittest.mock import AsyncMock, MagicMock

from link_analyzer.core.models import InboundMessage, PlatformTag, ProcessingStatus
from link_analyzer.services.messaging import ChannelTransport, MessageRouter
from link_analyzer.services.scheduler import SequentialWorkQueue


def message(text: str, chat_id: str = "chat-1") -> InboundMessage:
    return InboundMessage(text=text, sender_id="34600000000", chat_id=chat_id)


def make_router(status=ProcessingStatus.SUCCESS, **flags):
    transport = ChannelTransport()
    processor = MagicMock()
    processor.process_url = AsyncMock(return_value=status)
    router = MessageRouter(transport, processor, **flags)
    router.queue = SequentialWorkQueue(router.handle_task, inter_task_delay=0, sleep=AsyncMock())
    return router, transport, processor


class TestMessageRouter:
    """Message to task routing and notifications."""

    @pytest.mark.asyncio
    async def test_one_task_per_url(self):
        router, _, processor = make_router()

        tasks = await router.handle_message(message(
            "Lee https://x.com/jdoe/status/1 y https://example.com/post/2"
        ))
        await router.queue.join()

        assert [t.platform for t in tasks] == [PlatformTag.TWITTER, PlatformTag.GENERIC]
        assert all(t.chat_id == "chat-1" and t.sender_id == "34600000000" for t in tasks)
        assert processor.process_url.await_count == 2
        processor.process_url.assert_any_await("https://x.com/jdoe/status/1", PlatformTag.TWITTER, "34600000000")

    @pytest.mark.asyncio
    async def test_message_without_urls_ignored(self):
        router, transport, processor = make_router(send_confirmations=True)

        assert await router.handle_message(message("hola, ¿qué tal?")) == []
        processor.process_url.assert_not_called()
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_notifications_disabled_by_default_flags(self):
        router, transport, _ = make_router(send_confirmations=False, send_results=False, send_errors=False)

        await router.handle_message(message("https://example.com/a"))
        await router.queue.join()

        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_confirmation_and_result(self):
        router, transport, _ = make_router(send_confirmations=True, send_results=True, send_errors=True)

        await router.handle_message(message("https://example.com/a"))
        await router.queue.join()

        assert transport.sent == [
            ("chat-1", "🤖 Detecté 1 URL(s). Procesando..."),
            ("chat-1", "✅ Procesado: https://example.com/a..."),
        ]

    @pytest.mark.asyncio
    async def test_error_notification(self):
        router, transport, _ = make_router(
            status=ProcessingStatus.FAILED, send_confirmations=False, send_results=True, send_errors=True
        )

        await router.handle_message(message("https://example.com/a"))
        await router.queue.join()

        assert transport.sent == [("chat-1", "❌ Error procesando: https://example.com/a...")]

    @pytest.mark.asyncio
    async def test_send_failure_is_logged_only(self):
        router, transport, processor = make_router(send_confirmations=True, send_results=False, send_errors=False)
        transport.send = AsyncMock(side_effect=RuntimeError("socket closed"))

        tasks = await router.handle_message(message("https://example.com/a"))
        await router.queue.join()

        assert len(tasks) == 1
        processor.process_url.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_consumes_transport_until_closed(self):
        router, transport, processor = make_router()

        await transport.put(message("https://example.com/a"))
        await transport.put(message("sin enlaces"))
        await transport.put(message("https://example.com/b"))
        await transport.close()

        await router.run()

        urls = [c.args[0] for c in processor.process_url.await_args_list]
        assert urls == ["https://example.com/a", "https://example.com/b"]
