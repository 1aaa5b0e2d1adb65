"""
Notification Outbox
Redis-backed queue of pending workflow-relay notifications
"""
import json
import logging
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, Optional

import redis.asyncio as redis

from leadflow.core.config import ConfigManager
from leadflow.domain.interfaces.workflow_relay import WorkflowRelay

logger = logging.getLogger(__name__)


class NotificationOutbox:
    """
    Decouples relay delivery from the operation that produced the event.

    `publish` only enqueues and never raises; `drain` delivers in FIFO order
    and stops at the first failure, leaving the failed item at the head for
    the next drain with its attempt count bumped. An item that has failed
    `max_attempts` times is moved to the `<key>:dead` list and the drain
    carries on with the rest. Uses a Redis list when reachable, an
    in-process deque otherwise.
    """

    DEFAULT_KEY = "leadflow:relay:outbox"
    DEFAULT_MAX_ATTEMPTS = 5

    def __init__(
        self,
        relay: WorkflowRelay,
        redis_client=None,
        redis_url: Optional[str] = None,
        key: Optional[str] = None,
        max_attempts: Optional[int] = None
    ):
        self.relay = relay
        self._redis = redis_client
        self._redis_url = redis_url
        self._config = ConfigManager()
        self.key = key or self._config.get("relay.outbox_key", self.DEFAULT_KEY)
        self.dead_key = f"{self.key}:dead"
        self.max_attempts = max_attempts or int(
            self._config.get("relay.max_attempts", self.DEFAULT_MAX_ATTEMPTS)
        )
        self._memory: Deque[str] = deque()
        self._dead: Deque[str] = deque()
        self._initialized = redis_client is not None

    async def initialize(self) -> None:
        """Connect to Redis, falling back to memory-only mode."""
        if self._initialized:
            return
        self._initialized = True

        if not self._redis_url:
            logger.warning("No Redis URL configured - outbox running in memory-only mode")
            return

        try:
            client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            await client.ping()
            self._redis = client
            logger.info(f"NotificationOutbox connected to Redis: {self._redis_url}")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            logger.warning("Outbox running in memory-only mode")
            self._redis = None

    async def publish(self, event: str, payload: Dict[str, Any]) -> bool:
        """Enqueue a notification. Returns False if it could not be queued."""
        if not self._initialized:
            await self.initialize()

        item = json.dumps({
            "event": event,
            "payload": payload,
            "queued_at": datetime.utcnow().isoformat(),
        }, default=str)

        try:
            if self._redis is not None:
                await self._redis.rpush(self.key, item)
            else:
                self._memory.append(item)
            logger.debug(f"Queued relay event '{event}'")
            return True
        except Exception as e:
            logger.error(f"Failed to queue relay event '{event}': {e}", exc_info=True)
            return False

    async def drain(self, max_items: int = 100) -> int:
        """
        Deliver queued notifications.

        Returns:
            Number of notifications delivered
        """
        if not self._initialized:
            await self.initialize()

        delivered = 0
        while delivered < max_items:
            item = await self._pop()
            if item is None:
                break

            message = json.loads(item)
            try:
                await self.relay.send(message["event"], message["payload"])
            except Exception as e:
                attempts = message.get("attempts", 0) + 1
                if attempts >= self.max_attempts:
                    logger.error(
                        f"Relay delivery failed {attempts} times for '{message['event']}', "
                        f"moving it to {self.dead_key}: {e}"
                    )
                    message["attempts"] = attempts
                    await self._dead_letter(json.dumps(message, default=str))
                    continue
                logger.warning(
                    f"Relay delivery failed for '{message['event']}' "
                    f"(attempt {attempts}/{self.max_attempts}), will retry: {e}"
                )
                message["attempts"] = attempts
                await self._push_front(json.dumps(message, default=str))
                break
            delivered += 1

        if delivered:
            logger.info(f"Outbox drained {delivered} notification(s)")
        return delivered

    async def pending(self) -> int:
        if not self._initialized:
            await self.initialize()
        if self._redis is not None:
            return await self._redis.llen(self.key)
        return len(self._memory)

    async def dead_letters(self) -> int:
        """Number of events that exhausted their delivery attempts."""
        if not self._initialized:
            await self.initialize()
        if self._redis is not None:
            return await self._redis.llen(self.dead_key)
        return len(self._dead)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.close()
            self._redis = None

    async def _pop(self) -> Optional[str]:
        if self._redis is not None:
            return await self._redis.lpop(self.key)
        return self._memory.popleft() if self._memory else None

    async def _push_front(self, item: str) -> None:
        if self._redis is not None:
            await self._redis.lpush(self.key, item)
        else:
            self._memory.appendleft(item)

    async def _dead_letter(self, item: str) -> None:
        if self._redis is not None:
            await self._redis.rpush(self.dead_key, item)
        else:
            self._dead.append(item)
