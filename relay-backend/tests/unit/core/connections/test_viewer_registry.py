"""Unit tests for the viewer registry."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.connections.viewer_registry import ViewerRegistry
from tests.helpers.gateway import wait_until


def _viewer(fail: bool = False) -> MagicMock:
    websocket = MagicMock()
    websocket.send_text = AsyncMock(side_effect=RuntimeError("closed") if fail else None)
    return websocket


class TestViewerRegistry:

    @pytest.mark.asyncio
    async def test_register_and_unregister(self):
        registry = ViewerRegistry()
        viewer = _viewer()

        assert await registry.register(viewer) == 1
        assert await registry.register(viewer) == 1
        assert registry.count() == 1

        assert await registry.unregister(viewer) is True
        assert await registry.unregister(viewer) is False
        assert registry.count() == 0

    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_viewer(self):
        registry = ViewerRegistry()
        viewers = [_viewer(), _viewer()]
        for viewer in viewers:
            await registry.register(viewer)

        delivered = await registry.broadcast({"type": "chat.delta", "runId": "r1", "text": "やあ"})

        assert delivered == 2
        for viewer in viewers:
            sent = viewer.send_text.await_args.args[0]
            assert "やあ" in sent
            assert json.loads(sent) == {"type": "chat.delta", "runId": "r1", "text": "やあ"}

    @pytest.mark.asyncio
    async def test_failed_viewer_is_dropped(self):
        registry = ViewerRegistry()
        healthy, stale = _viewer(), _viewer(fail=True)
        await registry.register(stale)
        await registry.register(healthy)

        assert await registry.broadcast({"type": "expression", "value": "smile"}) == 1
        assert registry.count() == 1

        await registry.broadcast({"type": "expression", "value": "normal"})
        assert stale.send_text.await_count == 1
        assert healthy.send_text.await_count == 2

    @pytest.mark.asyncio
    async def test_broadcast_without_viewers(self):
        assert await ViewerRegistry().broadcast({"type": "audio"}) == 0

    @pytest.mark.asyncio
    async def test_stalled_viewer_is_dropped_after_send_timeout(self):
        registry = ViewerRegistry(send_timeout=0.05)
        stalled, healthy = MagicMock(), _viewer()

        async def hang(data):
            await asyncio.Event().wait()

        stalled.send_text = AsyncMock(side_effect=hang)
        await registry.register(stalled)
        await registry.register(healthy)

        delivered = await asyncio.wait_for(registry.broadcast({"type": "expression", "value": "smile"}), 1.0)

        assert delivered == 1
        assert registry.count() == 1
        healthy.send_text.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_publish_returns_before_delivery(self):
        registry = ViewerRegistry()
        release = asyncio.Event()
        viewer = MagicMock()

        async def send_text(data):
            await release.wait()

        viewer.send_text = AsyncMock(side_effect=send_text)
        await registry.register(viewer)

        registry.publish({"type": "chat.delta", "runId": "r1", "text": "a"})
        registry.publish({"type": "chat.delta", "runId": "r1", "text": "b"})
        await wait_until(lambda: viewer.send_text.await_count == 1)
        assert registry.backlog == 1

        release.set()
        await asyncio.wait_for(registry.flush(), 1.0)

        texts = [json.loads(call.args[0])["text"] for call in viewer.send_text.await_args_list]
        assert texts == ["a", "b"]
        await registry.aclose()
