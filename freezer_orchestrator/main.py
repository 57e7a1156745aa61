"""FastAPI entry point for the freezer orchestrator service."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .activities import (
    ModelClientConfig,
    RemoteModelClient,
    ResultPublisher,
    activity,
    validate_classification,
)
from .config import OrchestratorSettings, get_settings
from .models.telemetry import ClassificationResult, TelemetryBatch
from .routers import validate
from .workflows.engine import Sleep, WorkflowEngine
from .workflows.orchestrator import (
    CALL_MODEL,
    PUBLISH_RESULT,
    VALIDATE_CLASSIFICATION,
    ModelValidationOrchestrator,
)
from .workflows.state_manager import WorkflowStateManager


def build_engine(
    settings: OrchestratorSettings,
    state_manager: WorkflowStateManager,
    model_client: RemoteModelClient,
    publisher: ResultPublisher,
    sleep: Optional[Sleep] = None,
) -> WorkflowEngine:
    """Register the model validation orchestration and its activities on a new engine."""

    engine = WorkflowEngine(
        state_manager, sleep=sleep, resume_delay_seconds=settings.state_store_retry_seconds
    )
    engine.register_orchestration(
        ModelValidationOrchestrator(settings.call_model_retry_policy()).as_orchestration()
    )
    engine.register_activity(
        CALL_MODEL, activity(model_client.classify, TelemetryBatch, name=CALL_MODEL)
    )
    engine.register_activity(
        VALIDATE_CLASSIFICATION,
        activity(validate_classification, ClassificationResult, name=VALIDATE_CLASSIFICATION),
    )
    engine.register_activity(
        PUBLISH_RESULT, activity(publisher.publish, ClassificationResult, name=PUBLISH_RESULT)
    )
    return engine


def create_app(settings: Optional[OrchestratorSettings] = None) -> FastAPI:
    """Create a FastAPI application running the model validation orchestration."""

    resolved_settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_manager = WorkflowStateManager(resolved_settings.redis_url)
        model_client = RemoteModelClient(
            ModelClientConfig(
                endpoint_url=resolved_settings.ml_endpoint,
                timeout_seconds=resolved_settings.ml_request_timeout_seconds,
            )
        )
        publisher = ResultPublisher(
            resolved_settings.redis_url, resolved_settings.result_queue_name
        )
        engine = build_engine(resolved_settings, state_manager, model_client, publisher)
        app.state.engine = engine

        if not resolved_settings.ml_endpoint:
            logger.warning("MLENDPOINT is not set; model calls will fail until it is configured")

        if resolved_settings.resume_on_startup:
            await engine.resume_pending()

        try:
            yield
        finally:
            await engine.shutdown()
            await model_client.close()
            await publisher.disconnect()
            await state_manager.disconnect()
            app.state.engine = None

    app = FastAPI(title=resolved_settings.app_name, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=resolved_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(validate.router)

    @app.get("/health", tags=["health"])
    def health_check() -> Dict[str, Optional[str]]:
        """Report service status and the configured model endpoint."""

        return {
            "status": "ok",
            "service": resolved_settings.app_name,
            "model_endpoint": resolved_settings.ml_endpoint,
        }

    @app.get("/ready", tags=["health"])
    def readiness_check() -> Dict[str, object]:
        """Readiness check endpoint for Kubernetes."""

        return {
            "status": "ready",
            "service": resolved_settings.app_name,
            "orchestration_ready": getattr(app.state, "engine", None) is not None,
            "model_endpoint_configured": bool(resolved_settings.ml_endpoint),
        }

    return app


app = create_app()
