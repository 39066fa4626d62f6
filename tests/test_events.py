"""Tests for the server-sent event streams."""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from matchbox.api.events import event_stream, stream_messages, stream_notifications


def _payload(frame):
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: "):].strip())


class TestEventStream:
    """Framing and lifecycle of the SSE generator."""

    @pytest.mark.asyncio
    async def test_connected_event_then_data(self, hub):
        subscription = await hub.subscribe("u1")
        stream = event_stream(subscription, ping_interval=5)

        assert _payload(await stream.__anext__()) == {"type": "connected", "user_id": "u1"}

        await hub.publish("u1", "match", {"target_id": 9, "message": "You matched with Grace"})
        event = _payload(await stream.__anext__())

        assert event["type"] == "match"
        assert event["target_id"] == 9
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_idle_stream_sends_ping(self, hub):
        subscription = await hub.subscribe("u1")
        stream = event_stream(subscription, ping_interval=0.01)
        await stream.__anext__()

        frame = await stream.__anext__()

        assert frame.startswith("event: ping\ndata: ")
        assert "time" in json.loads(frame.split("data: ", 1)[1])
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_closing_stream_unsubscribes(self, hub):
        subscription = await hub.subscribe("u1")
        stream = event_stream(subscription, ping_interval=5)
        await stream.__anext__()

        await stream.aclose()

        assert subscription.closed
        assert hub.subscriber_count("u1") == 0

    @pytest.mark.asyncio
    async def test_client_disconnect_ends_stream(self, hub):
        subscription = await hub.subscribe("u1")
        frames = [
            frame
            async for frame in event_stream(
                subscription, ping_interval=5, is_disconnected=AsyncMock(return_value=True)
            )
        ]

        assert len(frames) == 1
        assert subscription.closed

    @pytest.mark.asyncio
    async def test_hub_shutdown_ends_stream(self, session_factory):
        from matchbox.services.notification_hub import NotificationHub

        hub = NotificationHub(session_factory, buffer_size=2)
        subscription = await hub.subscribe("u1")
        stream = event_stream(subscription, ping_interval=5)
        await stream.__anext__()

        await hub.shutdown()

        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()


class TestStreamRoutes:
    """Route handlers return a configured StreamingResponse."""

    @staticmethod
    def _request():
        request = MagicMock()
        request.is_disconnected = AsyncMock(return_value=False)
        return request

    @pytest.mark.asyncio
    async def test_messages_stream_only_forwards_messages(self, hub):
        response = await stream_messages(self._request(), user_id="u1", hub=hub)

        assert response.media_type == "text/event-stream"
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"

        body = response.body_iterator
        await body.__anext__()
        await hub.publish("u1", "match", {"target_id": 1, "message": "m"})
        await hub.publish("u1", "message", {"target_id": 1, "match_id": 1, "message": "hi"})

        assert _payload(await body.__anext__())["type"] == "message"
        await body.aclose()

    @pytest.mark.asyncio
    async def test_notifications_stream_forwards_everything(self, hub):
        response = await stream_notifications(self._request(), user_id="u1", hub=hub)

        body = response.body_iterator
        await body.__anext__()
        await hub.publish("u1", "match", {"target_id": 1, "message": "m"})

        assert _payload(await body.__anext__())["type"] == "match"
        await body.aclose()
