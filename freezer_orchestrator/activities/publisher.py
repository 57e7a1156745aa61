"""Publishes validated classification results to a durable Redis queue."""

import json
from typing import Optional

import redis.asyncio as aioredis
from loguru import logger
from redis.exceptions import RedisError

from ..errors import PublishError
from ..models.telemetry import ClassificationResult


class ResultPublisher:
    """Enqueues results onto a Redis list; consumers pop from the other end."""

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        queue_name: str = "classification-results",
    ) -> None:
        self.redis_url = redis_url
        self.queue_name = queue_name
        self._redis: Optional[aioredis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if not self._redis:
            self._redis = aioredis.from_url(
                self.redis_url, encoding="utf-8", decode_responses=True
            )
            logger.info(f"Connected to Redis for result queue '{self.queue_name}'")

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Disconnected result publisher from Redis")

    async def publish(self, result: ClassificationResult) -> int:
        """
        Enqueue one serialized result.

        Delivery is at-least-once: a replayed publish step may enqueue the same
        message again, so consumers dedupe on device id and timestamp.

        Returns:
            Queue length after the push
        """
        if not self._redis:
            await self.connect()

        message = json.dumps(result.to_wire())
        try:
            length = await self._redis.rpush(self.queue_name, message)
        except RedisError as e:
            raise PublishError(
                f"Unable to publish result to queue '{self.queue_name}'. ({e})"
            ) from e

        logger.info(
            f"Published classification for device {result.device_id} "
            f"to '{self.queue_name}' (depth {length})"
        )
        return length
