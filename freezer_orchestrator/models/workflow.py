"""Workflow models and schemas for durable orchestration instances."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..errors import ErrorKind, OrchestratorError


class RuntimeStatus(str, Enum):
    """Lifecycle states of an orchestration instance."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RuntimeStatus.COMPLETED, RuntimeStatus.FAILED)


class StepStatus(str, Enum):
    """Outcome of a checkpointed step."""

    COMPLETED = "completed"
    FAILED = "failed"


class RetryPolicy(BaseModel):
    """Retry configuration for an activity call."""

    first_retry_delay_seconds: float = Field(default=15.0, ge=0.0)
    max_attempts: int = Field(default=5, ge=1)
    backoff_coefficient: float = Field(default=2.0, ge=1.0)
    max_retry_interval_seconds: float = Field(default=300.0, ge=0.0)

    @model_validator(mode="after")
    def validate_interval(self) -> "RetryPolicy":
        """Ensure the cap never undercuts the first delay."""
        if self.max_retry_interval_seconds < self.first_retry_delay_seconds:
            raise ValueError(
                "max_retry_interval_seconds must be >= first_retry_delay_seconds"
            )
        return self

    def delay_for(self, retry_number: int) -> float:
        """Delay before the given retry (1 for the first retry)."""
        delay = self.first_retry_delay_seconds * (
            self.backoff_coefficient ** (retry_number - 1)
        )
        return min(delay, self.max_retry_interval_seconds)


class StepError(BaseModel):
    """Typed failure preserved on step records and failed instances."""

    kind: ErrorKind
    message: str
    retryable: bool = False

    @classmethod
    def from_exception(cls, exc: Exception) -> "StepError":
        if isinstance(exc, OrchestratorError):
            return cls(kind=exc.kind, message=str(exc), retryable=exc.retryable)
        return cls(
            kind=ErrorKind.UNEXPECTED,
            message=f"{type(exc).__name__}: {exc}",
            retryable=False,
        )


class ActivityResult(BaseModel):
    """Tagged result of a single activity attempt."""

    ok: bool
    output: Any = None
    error: Optional[StepError] = None

    @classmethod
    def success(cls, output: Any) -> "ActivityResult":
        return cls(ok=True, output=output)

    @classmethod
    def failure(cls, error: StepError) -> "ActivityResult":
        return cls(ok=False, error=error)

    @property
    def should_retry(self) -> bool:
        return not self.ok and self.error is not None and self.error.retryable


class StepRecord(BaseModel):
    """Checkpoint of an activity call; replay reads these instead of re-invoking."""

    step_id: str
    activity: str
    status: StepStatus
    output: Any = None
    error: Optional[StepError] = None
    attempts: int = Field(default=1, ge=1)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.COMPLETED


class StepProgress(BaseModel):
    """Attempts already spent on a step that has not been checkpointed yet."""

    step_id: str
    attempts: int = Field(default=0, ge=0)
    last_error: Optional[StepError] = None
    started_at: datetime = Field(default_factory=datetime.utcnow)


class WorkflowInstance(BaseModel):
    """Persisted state of one orchestration instance."""

    id: str = Field(..., description="Opaque instance identifier")
    name: str = Field(..., description="Registered orchestration name")
    status: RuntimeStatus = Field(default=RuntimeStatus.PENDING)
    custom_status: Optional[str] = None
    input: Any = None
    steps: Dict[str, StepRecord] = Field(default_factory=dict)
    step_in_progress: Optional[StepProgress] = None

    # Results
    output: Any = None
    error: Optional[StepError] = None

    # Timing
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_updated_at: datetime = Field(default_factory=datetime.utcnow)


class StateTransition(BaseModel):
    """Runtime status transition record."""

    from_status: RuntimeStatus
    to_status: RuntimeStatus
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    trigger: str = Field(..., description="What triggered the transition")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class StepSummary(BaseModel):
    """Step view exposed by the status endpoint."""

    step_id: str
    status: StepStatus
    attempts: int
    error: Optional[StepError] = None


class InstanceStatusResponse(BaseModel):
    """API response for instance status."""

    instance_id: str
    name: str
    runtime_status: RuntimeStatus
    custom_status: Optional[str]
    created_at: datetime
    last_updated_at: datetime
    completed_at: Optional[datetime]
    output: Any = None
    error: Optional[StepError] = None
    steps: List[StepSummary] = Field(default_factory=list)

    @classmethod
    def from_instance(cls, instance: WorkflowInstance) -> "InstanceStatusResponse":
        return cls(
            instance_id=instance.id,
            name=instance.name,
            runtime_status=instance.status,
            custom_status=instance.custom_status,
            created_at=instance.created_at,
            last_updated_at=instance.last_updated_at,
            completed_at=instance.completed_at,
            output=instance.output,
            error=instance.error,
            steps=[
                StepSummary(
                    step_id=record.step_id,
                    status=record.status,
                    attempts=record.attempts,
                    error=record.error,
                )
                for record in instance.steps.values()
            ],
        )


class ValidationAcceptedResponse(BaseModel):
    """API response returned once an orchestration instance has been started."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    message: str
    status_query_get_uri: str = Field(..., alias="statusQueryGetUri")
