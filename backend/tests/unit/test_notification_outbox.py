"""
Unit Tests for the Notification Outbox
"""
import json
import pytest
from unittest.mock import AsyncMock

from leadflow.domain.services.notification_outbox import NotificationOutbox


class TestMemoryOutbox:
    """Outbox without Redis"""

    @pytest.mark.asyncio
    async def test_publish_then_drain_in_order(self, outbox, relay):
        """Test notifications are delivered FIFO"""
        await outbox.publish("a", {"n": 1})
        await outbox.publish("b", {"n": 2})

        delivered = await outbox.drain()

        assert delivered == 2
        assert [c.args for c in relay.send.await_args_list] == [("a", {"n": 1}), ("b", {"n": 2})]
        assert await outbox.pending() == 0

    @pytest.mark.asyncio
    async def test_failed_delivery_stays_at_head(self, outbox, relay):
        """Test a relay failure stops the drain and keeps the item for retry"""
        relay.send.side_effect = [None, RuntimeError("relay down")]
        await outbox.publish("a", {})
        await outbox.publish("b", {})
        await outbox.publish("c", {})

        delivered = await outbox.drain()

        assert delivered == 1
        assert await outbox.pending() == 2

        relay.send.side_effect = None
        relay.send.reset_mock()
        assert await outbox.drain() == 2
        assert [c.args[0] for c in relay.send.await_args_list] == ["b", "c"]

    @pytest.mark.asyncio
    async def test_rejected_event_does_not_block_queue(self, relay):
        """Test an event the relay always rejects is dead-lettered so later events still go out"""
        async def send(event, payload):
            if event == "bad":
                raise RuntimeError("400 Bad Request")

        relay.send.side_effect = send
        outbox = NotificationOutbox(relay, max_attempts=3)
        await outbox.publish("bad", {})
        await outbox.publish("dialer.started", {"account_id": "acct-1"})

        for _ in range(3):
            await outbox.drain()

        sent = [c.args[0] for c in relay.send.await_args_list]
        assert sent == ["bad", "bad", "bad", "dialer.started"]
        assert await outbox.pending() == 0
        assert await outbox.dead_letters() == 1

    @pytest.mark.asyncio
    async def test_retry_keeps_attempt_count(self, outbox, relay):
        """Test a transient failure stays at the head with its attempt count"""
        relay.send.side_effect = RuntimeError("relay down")
        await outbox.publish("a", {})

        await outbox.drain()
        await outbox.drain()

        assert await outbox.pending() == 1
        assert json.loads(outbox._memory[0])["attempts"] == 2
        assert await outbox.dead_letters() == 0

    @pytest.mark.asyncio
    async def test_drain_respects_max_items(self, outbox):
        """Test drain delivers at most max_items"""
        for i in range(5):
            await outbox.publish("e", {"i": i})

        assert await outbox.drain(max_items=3) == 3
        assert await outbox.pending() == 2

    @pytest.mark.asyncio
    async def test_publish_never_raises(self, relay):
        """Test a broken queue reports False instead of raising"""
        broken = AsyncMock()
        broken.rpush.side_effect = ConnectionError("gone")
        outbox = NotificationOutbox(relay, redis_client=broken)

        assert await outbox.publish("a", {}) is False


class TestRedisOutbox:
    """Outbox backed by a Redis list"""

    @pytest.mark.asyncio
    async def test_publish_pushes_json(self, relay):
        """Test publish appends a JSON item to the configured key"""
        client = AsyncMock()
        outbox = NotificationOutbox(relay, redis_client=client, key="test:outbox")

        await outbox.publish("call.completed", {"call_id": "c1"})

        key, item = client.rpush.await_args.args
        assert key == "test:outbox"
        assert json.loads(item)["event"] == "call.completed"
        assert json.loads(item)["payload"] == {"call_id": "c1"}

    @pytest.mark.asyncio
    async def test_failed_item_pushed_back_to_front(self, relay):
        """Test a failed delivery is returned to the head of the list"""
        item = json.dumps({"event": "x", "payload": {}})
        client = AsyncMock()
        client.lpop.side_effect = [item]
        relay.send.side_effect = RuntimeError("relay down")
        outbox = NotificationOutbox(relay, redis_client=client, key="test:outbox")

        delivered = await outbox.drain()

        assert delivered == 0
        key, pushed = client.lpush.await_args.args
        assert key == "test:outbox"
        assert json.loads(pushed) == {"event": "x", "payload": {}, "attempts": 1}

    @pytest.mark.asyncio
    async def test_exhausted_item_moved_to_dead_list(self, relay):
        """Test an item on its last attempt goes to <key>:dead and draining continues"""
        bad = json.dumps({"event": "bad", "payload": {}, "attempts": 2})
        good = json.dumps({"event": "dialer.started", "payload": {}})
        client = AsyncMock()
        client.lpop.side_effect = [bad, good, None]
        relay.send.side_effect = [RuntimeError("400 Bad Request"), None]
        outbox = NotificationOutbox(relay, redis_client=client, key="test:outbox", max_attempts=3)

        delivered = await outbox.drain()

        assert delivered == 1
        key, dead = client.rpush.await_args.args
        assert key == "test:outbox:dead"
        assert json.loads(dead)["attempts"] == 3
        client.lpush.assert_not_called()

    @pytest.mark.asyncio
    async def test_unreachable_redis_falls_back_to_memory(self, relay, monkeypatch):
        """Test a failed ping leaves the outbox in memory mode"""
        client = AsyncMock()
        client.ping.side_effect = ConnectionError("refused")
        monkeypatch.setattr(
            "leadflow.domain.services.notification_outbox.redis.from_url",
            lambda *args, **kwargs: client,
        )
        outbox = NotificationOutbox(relay, redis_url="redis://localhost:6379")

        await outbox.initialize()
        await outbox.publish("a", {})

        assert await outbox.pending() == 1
        client.rpush.assert_not_called()
