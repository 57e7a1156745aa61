"""Tests for the classification validator."""

from datetime import datetime

import pytest

from freezer_orchestrator.activities.validator import validate_classification
from freezer_orchestrator.models.telemetry import ClassificationResult


def make_result(has_error: bool, outcome: bool) -> ClassificationResult:
    return ClassificationResult(
        device_id="freezer-01",
        timestamp=datetime(2024, 3, 1, 12, 0, 5),
        result=outcome,
        has_error=has_error,
        error_message="model failure" if has_error else None,
    )


@pytest.mark.unit
@pytest.mark.parametrize(
    "has_error, outcome, expected",
    [
        (False, True, True),
        (False, False, False),
        (True, True, False),
        (True, False, False),
    ],
)
def test_validate_classification(has_error, outcome, expected):
    """An error flag always vetoes; otherwise the outcome flag decides."""
    assert validate_classification(make_result(has_error, outcome)) is expected


@pytest.mark.unit
def test_validate_is_deterministic():
    result = make_result(False, True)

    assert {validate_classification(result) for _ in range(10)} == {True}
