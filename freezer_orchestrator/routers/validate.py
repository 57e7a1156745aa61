"""Ingress endpoints: start validation orchestrations and query their status."""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from loguru import logger
from pydantic import ValidationError

from ..errors import PayloadValidationError
from ..models.telemetry import TelemetryBatch
from ..models.workflow import InstanceStatusResponse, ValidationAcceptedResponse
from ..workflows.engine import WorkflowEngine
from ..workflows.orchestrator import MODEL_ORCHESTRATOR

router = APIRouter(tags=["validation"])


def get_engine(request: Request) -> WorkflowEngine:
    """Return the engine created by the application lifespan."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Orchestration engine is not running",
        )
    return engine


def parse_telemetry_batch(body: bytes) -> TelemetryBatch:
    """Decode a raw ingress body, raising PayloadValidationError when it is malformed."""
    try:
        return TelemetryBatch.model_validate_json(body)
    except ValidationError as e:
        raise PayloadValidationError(
            f"Invalid telemetry payload: {e.error_count()} validation error(s)"
        ) from e


@router.post(
    "/validate",
    response_model=ValidationAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Validate a telemetry batch against the classification model",
)
async def validate_telemetry(
    request: Request,
    response: Response,
    engine: WorkflowEngine = Depends(get_engine),
) -> ValidationAcceptedResponse:
    """
    Start one model validation orchestration for a telemetry batch.

    The body must look like
    ``{"allevents": [{"temperature": 4.2, "ambienttemperature": 21.0,
    "timeCreated": "...", "ConnectionDeviceId": "...",
    "ConnectionDeviceGenerationId": "..."}]}``.

    The orchestration runs asynchronously; poll ``statusQueryGetUri`` for
    its progress. Malformed bodies are rejected with 400 and start nothing.
    """
    try:
        batch = parse_telemetry_batch(await request.body())
    except PayloadValidationError as e:
        logger.error(f"Rejected telemetry payload: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    instance = await engine.start_instance(MODEL_ORCHESTRATOR, batch.to_wire())

    status_uri = str(request.url_for("get_instance_status", instance_id=instance.id))
    response.headers["Location"] = status_uri
    logger.info(
        f"Started validation instance {instance.id} for {len(batch.readings)} readings"
    )

    return ValidationAcceptedResponse(
        id=instance.id,
        message="Model has been called.",
        status_query_get_uri=status_uri,
    )


@router.get(
    "/instances/{instance_id}",
    response_model=InstanceStatusResponse,
    name="get_instance_status",
    summary="Get orchestration instance status",
)
async def get_instance_status(
    instance_id: str, engine: WorkflowEngine = Depends(get_engine)
) -> InstanceStatusResponse:
    """
    Get the current status of an orchestration instance.

    ``runtime_status`` is one of pending, running, completed, failed.
    ``custom_status`` is the orchestrator stage: started, awaiting_model,
    validating, publishing, completed or failed. Failed instances carry the
    originating error.
    """
    instance = await engine.get_instance(instance_id)
    if not instance:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Instance not found: {instance_id}",
        )
    return InstanceStatusResponse.from_instance(instance)


@router.get(
    "/instances/{instance_id}/history",
    summary="Get orchestration instance history",
)
async def get_instance_history(
    instance_id: str, engine: WorkflowEngine = Depends(get_engine)
) -> dict:
    """Get the audit trail of runtime status transitions."""
    instance = await engine.get_instance(instance_id)
    if not instance:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Instance not found: {instance_id}",
        )

    history = await engine.get_history(instance_id)
    return {
        "instance_id": instance_id,
        "total_transitions": len(history),
        "history": [h.model_dump(mode="json") for h in history],
    }
