"""State manager for orchestration instance persistence using Redis."""

import json
from datetime import datetime
from typing import Any, List, Optional

import redis.asyncio as aioredis
from loguru import logger

from ..models.workflow import (
    RuntimeStatus,
    StateTransition,
    StepError,
    StepProgress,
    StepRecord,
    WorkflowInstance,
)

HISTORY_TTL_SECONDS = 30 * 24 * 60 * 60


class WorkflowStateManager:
    """Manages instance state, step logs and audit trail in Redis."""

    def __init__(self, redis_url: str = "redis://localhost:6379/0") -> None:
        """Initialize state manager with Redis connection."""
        self.redis_url = redis_url
        self._redis: Optional[aioredis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if not self._redis:
            self._redis = aioredis.from_url(
                self.redis_url, encoding="utf-8", decode_responses=True
            )
            logger.info("Connected to Redis for orchestration state management")

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Disconnected from Redis")

    def _instance_key(self, instance_id: str) -> str:
        return f"orchestration:instance:{instance_id}"

    def _history_key(self, instance_id: str) -> str:
        return f"orchestration:history:{instance_id}"

    def _active_key(self) -> str:
        return "orchestration:active"

    async def save_instance(self, instance: WorkflowInstance) -> None:
        """Save instance state and keep the active index in sync."""
        if not self._redis:
            await self.connect()

        instance.last_updated_at = datetime.utcnow()
        data = instance.model_dump_json()

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._instance_key(instance.id), data)
            if instance.status.is_terminal:
                pipe.srem(self._active_key(), instance.id)
            else:
                pipe.sadd(self._active_key(), instance.id)
            await pipe.execute()

        logger.debug(
            f"Saved instance state: {instance.id} - {instance.status.value} "
            f"({instance.custom_status})"
        )

    async def get_instance(self, instance_id: str) -> Optional[WorkflowInstance]:
        """Retrieve an instance from Redis."""
        if not self._redis:
            await self.connect()

        data = await self._redis.get(self._instance_key(instance_id))
        if not data:
            return None

        return WorkflowInstance.model_validate_json(data)

    async def _require_instance(self, instance_id: str) -> WorkflowInstance:
        instance = await self.get_instance(instance_id)
        if not instance:
            raise ValueError(f"Instance not found: {instance_id}")
        return instance

    async def update_status(
        self,
        instance_id: str,
        new_status: RuntimeStatus,
        custom_status: Optional[str] = None,
        output: Any = None,
        error: Optional[StepError] = None,
    ) -> WorkflowInstance:
        """Update runtime status with transition tracking."""
        instance = await self._require_instance(instance_id)

        transition = StateTransition(
            from_status=instance.status,
            to_status=new_status,
            trigger=f"Status change: {instance.status.value} -> {new_status.value}",
            metadata={
                "custom_status": custom_status,
                "error": error.model_dump(mode="json") if error else None,
            },
        )

        instance.status = new_status
        if custom_status:
            instance.custom_status = custom_status
        if output is not None:
            instance.output = output
        if error:
            instance.error = error

        if new_status == RuntimeStatus.RUNNING and not instance.started_at:
            instance.started_at = datetime.utcnow()
        elif new_status.is_terminal:
            instance.completed_at = datetime.utcnow()

        await self.save_instance(instance)
        await self._save_transition(instance_id, transition)
        return instance

    async def set_custom_status(self, instance_id: str, custom_status: str) -> WorkflowInstance:
        """Record the orchestrator stage without a runtime status change."""
        instance = await self._require_instance(instance_id)
        if instance.custom_status != custom_status:
            instance.custom_status = custom_status
            await self.save_instance(instance)
        return instance

    async def record_progress(self, instance_id: str, progress: StepProgress) -> WorkflowInstance:
        """Persist the attempts spent so far on a step that is still being retried."""
        instance = await self._require_instance(instance_id)
        instance.step_in_progress = progress
        await self.save_instance(instance)
        logger.debug(
            f"Step {progress.step_id} of {instance_id} at attempt {progress.attempts}"
        )
        return instance

    async def record_step(self, instance_id: str, record: StepRecord) -> WorkflowInstance:
        """Checkpoint a step result in the instance log."""
        instance = await self._require_instance(instance_id)
        instance.steps[record.step_id] = record
        if instance.step_in_progress and instance.step_in_progress.step_id == record.step_id:
            instance.step_in_progress = None
        await self.save_instance(instance)
        logger.debug(
            f"Checkpointed step {record.step_id} for {instance_id}: {record.status.value}"
        )
        return instance

    async def _save_transition(
        self, instance_id: str, transition: StateTransition
    ) -> None:
        """Save status transition to history."""
        if not self._redis:
            await self.connect()

        history_key = self._history_key(instance_id)
        await self._redis.rpush(history_key, transition.model_dump_json())
        await self._redis.expire(history_key, HISTORY_TTL_SECONDS)

    async def get_history(self, instance_id: str) -> List[StateTransition]:
        """Retrieve complete status transition history."""
        if not self._redis:
            await self.connect()

        transitions = await self._redis.lrange(self._history_key(instance_id), 0, -1)
        return [StateTransition.model_validate(json.loads(t)) for t in transitions]

    async def list_active_instances(self) -> List[WorkflowInstance]:
        """List instances that have not reached a terminal status."""
        if not self._redis:
            await self.connect()

        instances = []
        for instance_id in await self._redis.smembers(self._active_key()):
            instance = await self.get_instance(instance_id)
            if instance and not instance.status.is_terminal:
                instances.append(instance)

        return sorted(instances, key=lambda i: i.created_at)

    async def delete_instance(self, instance_id: str) -> bool:
        """Delete an instance and its history."""
        if not self._redis:
            await self.connect()

        deleted = await self._redis.delete(
            self._instance_key(instance_id), self._history_key(instance_id)
        )
        await self._redis.srem(self._active_key(), instance_id)
        if deleted:
            logger.info(f"Deleted instance: {instance_id}")
        return bool(deleted)
