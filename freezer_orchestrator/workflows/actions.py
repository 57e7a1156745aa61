"""Actions returned by orchestrator decision functions and the state they decide on."""

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Union

from ..models.workflow import RetryPolicy, StepError, StepRecord


@dataclass(frozen=True)
class OrchestrationState:
    """Everything an orchestrator may look at: the instance input and its step log."""

    instance_id: str
    input: Any
    completed_steps: Mapping[str, StepRecord] = field(default_factory=dict)

    def step(self, step_id: str) -> Optional[StepRecord]:
        return self.completed_steps.get(step_id)


@dataclass(frozen=True)
class CallActivity:
    """Invoke a registered activity and checkpoint its result under ``step_id``."""

    step_id: str
    activity: str
    payload: Any = None
    retry_policy: Optional[RetryPolicy] = None
    custom_status: Optional[str] = None


@dataclass(frozen=True)
class CompleteOrchestration:
    output: Any = None
    custom_status: Optional[str] = None


@dataclass(frozen=True)
class FailOrchestration:
    error: StepError
    custom_status: Optional[str] = None


Action = Union[CallActivity, CompleteOrchestration, FailOrchestration]


@dataclass(frozen=True)
class Orchestration:
    """
    A registered orchestration.

    ``decide`` must be deterministic: given the same state it returns the same
    action, and it performs no I/O, clock or random reads. The engine replays
    it against the persisted step log after every step and after restarts.
    """

    name: str
    decide: Callable[[OrchestrationState], Action]
    initial_status: Optional[str] = None
