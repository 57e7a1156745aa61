"""Decision over a model classification."""

from ..models.telemetry import ClassificationResult


def validate_classification(result: ClassificationResult) -> bool:
    """Return whether a classification is safe to act on.

    A result flagged with an error is never acted on, whatever its outcome.
    """
    if result.has_error:
        return False
    return result.result
