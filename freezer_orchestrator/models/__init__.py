"""Data models package."""

from .telemetry import ClassificationResult, TelemetryBatch, TelemetryReading
from .workflow import (
    ActivityResult,
    InstanceStatusResponse,
    RetryPolicy,
    RuntimeStatus,
    StateTransition,
    StepError,
    StepProgress,
    StepRecord,
    StepStatus,
    StepSummary,
    ValidationAcceptedResponse,
    WorkflowInstance,
)

__all__ = [
    "TelemetryReading",
    "TelemetryBatch",
    "ClassificationResult",
    "RuntimeStatus",
    "StepStatus",
    "RetryPolicy",
    "StepError",
    "ActivityResult",
    "StepRecord",
    "StepProgress",
    "StepSummary",
    "WorkflowInstance",
    "StateTransition",
    "InstanceStatusResponse",
    "ValidationAcceptedResponse",
]
