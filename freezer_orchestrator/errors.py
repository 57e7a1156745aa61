"""Error taxonomy shared by the activities, the engine and the HTTP layer."""

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of step and instance failures."""

    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    MODEL_REJECTED = "model_rejected"
    DECODE = "decode"
    PUBLISH = "publish"
    NONDETERMINISM = "nondeterminism"
    UNEXPECTED = "unexpected"


class OrchestratorError(Exception):
    """Base class for typed failures surfaced to the orchestration engine."""

    kind: ErrorKind = ErrorKind.UNEXPECTED
    retryable: bool = False


class PayloadValidationError(OrchestratorError):
    """Ingress payload could not be decoded into a telemetry batch."""

    kind = ErrorKind.VALIDATION


class ConfigurationError(OrchestratorError):
    """A required setting is missing."""

    kind = ErrorKind.CONFIGURATION


class TransportError(OrchestratorError):
    """Connection failure, timeout or transient unavailability of the model endpoint."""

    kind = ErrorKind.TRANSPORT
    retryable = True


class ModelRejectedError(OrchestratorError):
    """The model endpoint answered with a non-retryable error status."""

    kind = ErrorKind.MODEL_REJECTED


class DecodeError(OrchestratorError):
    """The model endpoint answered with a body that is not a classification result."""

    kind = ErrorKind.DECODE


class PublishError(OrchestratorError):
    """The result queue could not be reached."""

    kind = ErrorKind.PUBLISH


class NonDeterministicOrchestrationError(OrchestratorError):
    """Replay asked for a step that the instance log already holds."""

    kind = ErrorKind.NONDETERMINISM
