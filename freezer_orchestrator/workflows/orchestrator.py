"""Model validation orchestrator: call the model, validate, publish when approved."""

from enum import Enum
from typing import Optional

from ..models.telemetry import ClassificationResult, TelemetryBatch
from ..models.workflow import RetryPolicy
from .actions import (
    Action,
    CallActivity,
    CompleteOrchestration,
    FailOrchestration,
    Orchestration,
    OrchestrationState,
)

MODEL_ORCHESTRATOR = "ModelOrchestrator"

CALL_MODEL = "CallModel"
VALIDATE_CLASSIFICATION = "ValidateClassification"
PUBLISH_RESULT = "PublishResult"

CALL_MODEL_STEP = "call_model"
VALIDATE_STEP = "validate"
PUBLISH_STEP = "publish"


class ValidationStage(str, Enum):
    """Orchestrator states, reported as the instance custom status."""

    STARTED = "started"
    AWAITING_MODEL = "awaiting_model"
    VALIDATING = "validating"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"


class ModelValidationOrchestrator:
    """
    Decision logic of the model validation workflow.

    ``decide`` is a pure function of the instance input and the step log:

    - no model call yet: call the model under the retry policy
    - classification available, not validated: validate it
    - validated and approved, not published: publish it
    - validated and rejected: complete without publishing
    - published: complete
    - any failed step: fail with that step's error
    """

    def __init__(self, retry_policy: Optional[RetryPolicy] = None) -> None:
        self.retry_policy = retry_policy or RetryPolicy()

    def as_orchestration(self) -> Orchestration:
        return Orchestration(
            name=MODEL_ORCHESTRATOR,
            decide=self.decide,
            initial_status=ValidationStage.STARTED.value,
        )

    def decide(self, state: OrchestrationState) -> Action:
        call_model = state.step(CALL_MODEL_STEP)
        if call_model is None:
            batch = TelemetryBatch.model_validate(state.input)
            return CallActivity(
                step_id=CALL_MODEL_STEP,
                activity=CALL_MODEL,
                payload=batch.to_wire(),
                retry_policy=self.retry_policy,
                custom_status=ValidationStage.AWAITING_MODEL.value,
            )
        if not call_model.succeeded:
            return FailOrchestration(call_model.error, ValidationStage.FAILED.value)

        classification = ClassificationResult.model_validate(call_model.output)

        validate = state.step(VALIDATE_STEP)
        if validate is None:
            return CallActivity(
                step_id=VALIDATE_STEP,
                activity=VALIDATE_CLASSIFICATION,
                payload=classification.to_wire(),
                custom_status=ValidationStage.VALIDATING.value,
            )
        if not validate.succeeded:
            return FailOrchestration(validate.error, ValidationStage.FAILED.value)

        approved = bool(validate.output)
        if not approved:
            return CompleteOrchestration(
                self._output(classification, approved, published=False),
                ValidationStage.COMPLETED.value,
            )

        publish = state.step(PUBLISH_STEP)
        if publish is None:
            return CallActivity(
                step_id=PUBLISH_STEP,
                activity=PUBLISH_RESULT,
                payload=classification.to_wire(),
                custom_status=ValidationStage.PUBLISHING.value,
            )
        if not publish.succeeded:
            return FailOrchestration(publish.error, ValidationStage.FAILED.value)

        return CompleteOrchestration(
            self._output(classification, approved, published=True),
            ValidationStage.COMPLETED.value,
        )

    @staticmethod
    def _output(classification: ClassificationResult, approved: bool, published: bool) -> dict:
        return {
            "classification": classification.to_wire(),
            "approved": approved,
            "published": published,
        }
