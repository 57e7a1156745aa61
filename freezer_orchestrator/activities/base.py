"""Adapter turning leaf operations into engine activities with tagged results."""

import inspect
from typing import Any, Awaitable, Callable, Type

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from ..errors import ErrorKind, OrchestratorError
from ..models.workflow import ActivityResult, StepError

Activity = Callable[[Any], Awaitable[ActivityResult]]


def _to_json(value: Any) -> Any:
    if hasattr(value, "to_wire"):
        return value.to_wire()
    return TypeAdapter(type(value)).dump_python(value, mode="json")


def activity(func: Callable[[Any], Any], input_type: Type[Any], name: str = "") -> Activity:
    """
    Wrap ``func`` so it accepts a JSON payload and never raises.

    The payload is validated into ``input_type``; the return value is
    serialized back to JSON so it can be checkpointed. Typed
    ``OrchestratorError`` failures keep their kind and retryability, anything
    else becomes a non-retryable ``unexpected`` failure.
    """
    adapter = TypeAdapter(input_type)
    activity_name = name or getattr(func, "__name__", "activity")

    async def run(payload: Any) -> ActivityResult:
        try:
            argument = adapter.validate_python(payload)
        except ValidationError as e:
            logger.error(f"Activity {activity_name} received an invalid payload: {e}")
            return ActivityResult.failure(
                StepError(kind=ErrorKind.UNEXPECTED, message=f"Invalid activity input: {e}")
            )

        try:
            value = func(argument)
            if inspect.isawaitable(value):
                value = await value
        except OrchestratorError as e:
            logger.error(f"Activity {activity_name} failed ({e.kind.value}): {e}")
            return ActivityResult.failure(StepError.from_exception(e))
        except Exception as e:
            logger.exception(f"Activity {activity_name} raised unexpectedly: {e}")
            return ActivityResult.failure(StepError.from_exception(e))

        return ActivityResult.success(_to_json(value))

    run.__name__ = activity_name
    return run
