"""Durable orchestration package: decision functions, engine and state persistence."""

from .actions import (
    CallActivity,
    CompleteOrchestration,
    FailOrchestration,
    Orchestration,
    OrchestrationState,
)
from .engine import WorkflowEngine
from .orchestrator import ModelValidationOrchestrator, ValidationStage
from .state_manager import WorkflowStateManager

__all__ = [
    "CallActivity",
    "CompleteOrchestration",
    "FailOrchestration",
    "Orchestration",
    "OrchestrationState",
    "ModelValidationOrchestrator",
    "ValidationStage",
    "WorkflowEngine",
    "WorkflowStateManager",
]
