"""Activities invoked by the orchestrator: call the model, validate, publish."""

from .base import Activity, activity
from .model_client import ModelClientConfig, RemoteModelClient
from .publisher import ResultPublisher
from .validator import validate_classification

__all__ = [
    "Activity",
    "activity",
    "ModelClientConfig",
    "RemoteModelClient",
    "ResultPublisher",
    "validate_classification",
]
