"""Durable orchestration engine replaying decision functions over a persisted step log."""

import asyncio
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger
from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
)

from ..activities.base import Activity
from ..errors import ErrorKind, NonDeterministicOrchestrationError
from ..models.workflow import (
    ActivityResult,
    RetryPolicy,
    RuntimeStatus,
    StateTransition,
    StepError,
    StepProgress,
    StepRecord,
    StepStatus,
    WorkflowInstance,
)
from .actions import (
    CallActivity,
    CompleteOrchestration,
    FailOrchestration,
    Orchestration,
    OrchestrationState,
)
from .state_manager import WorkflowStateManager

Sleep = Callable[[float], Awaitable[None]]


class WorkflowEngine:
    """
    Durable execution engine for registered orchestrations.

    Features:
    - Instances run as independent asyncio tasks (pending → running → completed/failed)
    - Every activity result is checkpointed before the orchestrator advances
    - Replay consults the step log so completed activities are never re-invoked
    - Retry policies per activity call, on retryable failures only
    - Non-terminal instances are resumed after a restart
    """

    def __init__(
        self,
        state_manager: WorkflowStateManager,
        sleep: Optional[Sleep] = None,
        resume_delay_seconds: float = 5.0,
    ) -> None:
        """Initialize engine with state manager."""
        self.state_manager = state_manager
        self.resume_delay_seconds = resume_delay_seconds
        self._sleep: Sleep = sleep or asyncio.sleep
        self._orchestrations: Dict[str, Orchestration] = {}
        self._activities: Dict[str, Activity] = {}
        self._running_instances: Dict[str, asyncio.Task] = {}
        self._scheduled_resumes: Dict[str, asyncio.Task] = {}

    def register_orchestration(self, orchestration: Orchestration) -> None:
        self._orchestrations[orchestration.name] = orchestration
        logger.info(f"Registered orchestration: {orchestration.name}")

    def register_activity(self, name: str, activity: Activity) -> None:
        self._activities[name] = activity
        logger.info(f"Registered activity: {name}")

    async def start_instance(self, name: str, input: Any = None) -> WorkflowInstance:
        """Persist a new instance and start running it in the background."""
        orchestration = self._orchestrations.get(name)
        if not orchestration:
            raise ValueError(f"Orchestration not found: {name}")

        instance = WorkflowInstance(
            id=str(uuid.uuid4()),
            name=name,
            status=RuntimeStatus.PENDING,
            custom_status=orchestration.initial_status,
            input=input,
        )

        await self.state_manager.save_instance(instance)
        logger.info(f"Created orchestration instance: {instance.id} ({name})")

        self._spawn(instance.id)
        return instance

    async def resume_instance(self, instance_id: str) -> bool:
        """Re-enter a non-terminal instance; completed steps are replayed from the log."""
        if instance_id in self._running_instances:
            return False

        instance = await self.state_manager.get_instance(instance_id)
        if not instance or instance.status.is_terminal:
            return False

        logger.info(
            f"Resuming instance {instance_id} with {len(instance.steps)} checkpointed steps"
        )
        self._spawn(instance_id)
        return True

    async def resume_pending(self) -> List[str]:
        """Resume every non-terminal instance found in the state store."""
        resumed = []
        for instance in await self.state_manager.list_active_instances():
            if await self.resume_instance(instance.id):
                resumed.append(instance.id)

        if resumed:
            logger.info(f"Resumed {len(resumed)} orchestration instances")
        return resumed

    def _spawn(self, instance_id: str) -> None:
        task = asyncio.create_task(self._run_instance(instance_id))
        self._running_instances[instance_id] = task

    def _schedule_resume(self, instance_id: str) -> None:
        if instance_id not in self._scheduled_resumes:
            self._scheduled_resumes[instance_id] = asyncio.create_task(
                self._resume_later(instance_id)
            )

    async def _resume_later(self, instance_id: str) -> None:
        """Keep trying to resume an instance until the state store answers again."""
        try:
            while True:
                await self._sleep(self.resume_delay_seconds)
                try:
                    await self.resume_instance(instance_id)
                    return
                except RedisError as e:
                    logger.warning(f"State store still unavailable for {instance_id}: {e}")
        finally:
            self._scheduled_resumes.pop(instance_id, None)

    async def wait_for_instance(
        self, instance_id: str, timeout: Optional[float] = None
    ) -> Optional[WorkflowInstance]:
        """Wait for the in-process task of an instance, then return its state."""
        task = self._running_instances.get(instance_id)
        if task:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return await self.state_manager.get_instance(instance_id)

    async def _run_instance(self, instance_id: str) -> None:
        """Drive an instance to a terminal status by replaying its decision function."""
        try:
            instance = await self.state_manager.get_instance(instance_id)
            if not instance:
                raise ValueError(f"Instance not found: {instance_id}")

            orchestration = self._orchestrations.get(instance.name)
            if not orchestration:
                raise ValueError(f"Orchestration not found: {instance.name}")

            if instance.status == RuntimeStatus.PENDING:
                instance = await self.state_manager.update_status(
                    instance_id, RuntimeStatus.RUNNING
                )

            while True:
                state = OrchestrationState(
                    instance_id=instance.id,
                    input=instance.input,
                    completed_steps=dict(instance.steps),
                )
                action = orchestration.decide(state)

                if isinstance(action, CallActivity):
                    if action.step_id in instance.steps:
                        raise NonDeterministicOrchestrationError(
                            f"Step '{action.step_id}' requested again after it was checkpointed"
                        )
                    if action.custom_status:
                        await self.state_manager.set_custom_status(
                            instance_id, action.custom_status
                        )
                    record = await self._execute_activity(instance, action)
                    instance = await self.state_manager.record_step(instance_id, record)
                    continue

                if isinstance(action, CompleteOrchestration):
                    await self.state_manager.update_status(
                        instance_id,
                        RuntimeStatus.COMPLETED,
                        custom_status=action.custom_status,
                        output=action.output,
                    )
                    logger.info(f"Orchestration instance completed: {instance_id}")
                    return

                if isinstance(action, FailOrchestration):
                    await self.state_manager.update_status(
                        instance_id,
                        RuntimeStatus.FAILED,
                        custom_status=action.custom_status,
                        error=action.error,
                    )
                    logger.error(
                        f"Orchestration instance failed: {instance_id} - "
                        f"{action.error.kind.value}: {action.error.message}"
                    )
                    return

                raise TypeError(f"Unsupported orchestration action: {action!r}")

        except RedisError as e:
            # State store unavailable; the instance stays non-terminal for resume.
            logger.error(
                f"State store error while running {instance_id}: {e} "
                f"(resuming in {self.resume_delay_seconds}s)"
            )
            self._schedule_resume(instance_id)

        except Exception as e:
            logger.error(f"Orchestration instance failed: {instance_id} - {e}")
            await self._mark_failed(instance_id, StepError.from_exception(e))

        finally:
            self._running_instances.pop(instance_id, None)

    async def _mark_failed(self, instance_id: str, error: StepError) -> None:
        instance = await self.state_manager.get_instance(instance_id)
        if instance and not instance.status.is_terminal:
            await self.state_manager.update_status(
                instance_id, RuntimeStatus.FAILED, error=error
            )

    async def _execute_activity(self, instance: WorkflowInstance, call: CallActivity) -> StepRecord:
        """Run one activity call, with retries when the call carries a policy.

        Retried calls persist their attempt count before every attempt, so a
        resumed instance continues the same retry budget and backoff schedule.
        """
        activity = self._activities.get(call.activity)
        if not activity:
            raise ValueError(f"Activity not registered: {call.activity}")

        progress = instance.step_in_progress
        if not progress or progress.step_id != call.step_id:
            progress = StepProgress(step_id=call.step_id)
        prior_attempts = progress.attempts
        attempts = prior_attempts
        policy = call.retry_policy

        if prior_attempts:
            logger.info(
                f"Continuing step {call.step_id} for {instance.id} after {prior_attempts} attempt(s)"
            )
        else:
            logger.info(f"Executing step {call.step_id} ({call.activity}) for {instance.id}")

        async def attempt() -> ActivityResult:
            nonlocal attempts
            attempts += 1
            if policy:
                progress.attempts = attempts
                await self.state_manager.record_progress(instance.id, progress)
            result = await activity(call.payload)
            if policy and result.should_retry:
                progress.last_error = result.error
                await self.state_manager.record_progress(instance.id, progress)
            return result

        if not policy:
            result = await attempt()
        elif prior_attempts >= policy.max_attempts:
            result = ActivityResult.failure(
                progress.last_error
                or StepError(
                    kind=ErrorKind.UNEXPECTED,
                    message=f"All {policy.max_attempts} attempts were used before the restart",
                )
            )
        else:
            result = await self._call_with_retry(attempt, call, policy, prior_attempts)

        record = StepRecord(
            step_id=call.step_id,
            activity=call.activity,
            status=StepStatus.COMPLETED if result.ok else StepStatus.FAILED,
            output=result.output,
            error=result.error,
            attempts=attempts,
            started_at=progress.started_at,
            completed_at=datetime.utcnow(),
        )

        if result.ok:
            logger.info(f"Step completed: {call.step_id} after {attempts} attempt(s)")
        else:
            logger.error(
                f"Step failed: {call.step_id} after {attempts} attempt(s) - "
                f"{result.error.kind.value}: {result.error.message}"
            )
        return record

    async def _call_with_retry(
        self,
        attempt: Callable[[], Awaitable[ActivityResult]],
        call: CallActivity,
        policy: RetryPolicy,
        prior_attempts: int = 0,
    ) -> ActivityResult:
        def log_retry(retry_state: RetryCallState) -> None:
            result = retry_state.outcome.result()
            logger.warning(
                f"Retrying step {call.step_id} in {retry_state.next_action.sleep}s "
                f"(attempt {prior_attempts + retry_state.attempt_number}/{policy.max_attempts} "
                f"failed: {result.error.message})"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts - prior_attempts),
            wait=lambda retry_state: policy.delay_for(
                prior_attempts + retry_state.attempt_number
            ),
            retry=retry_if_result(lambda result: result.should_retry),
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
            before_sleep=log_retry,
            sleep=self._sleep,
        )
        return await retrying(attempt)

    async def get_instance(self, instance_id: str) -> Optional[WorkflowInstance]:
        """Get current instance state."""
        return await self.state_manager.get_instance(instance_id)

    async def get_history(self, instance_id: str) -> List[StateTransition]:
        return await self.state_manager.get_history(instance_id)

    async def shutdown(self) -> None:
        """Cancel in-process tasks; their instances stay non-terminal and resume on restart."""
        timers = list(self._scheduled_resumes.values())
        for timer in timers:
            timer.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

        tasks = list(self._running_instances.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Suspended {len(tasks)} running orchestration instances")
        self._running_instances.clear()
