"""Local test configuration for the freezer orchestrator service."""

from __future__ import annotations

import json
import sys
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any, Dict, List

import httpx
import pytest
import pytest_asyncio

# -- Path management ------------------------------------------------------
# The service uses a flat ``freezer_orchestrator/`` package layout. Without an
# editable install the repository root is not on ``sys.path`` when pytest
# starts, so it is added here before the package is imported.
SERVICE_ROOT = Path(__file__).resolve().parent.parent
if str(SERVICE_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVICE_ROOT))

import fakeredis.aioredis

from freezer_orchestrator.activities import (
    ModelClientConfig,
    RemoteModelClient,
    ResultPublisher,
)
from freezer_orchestrator.config import OrchestratorSettings
from freezer_orchestrator.main import build_engine, create_app
from freezer_orchestrator.models.telemetry import TelemetryBatch
from freezer_orchestrator.workflows.engine import WorkflowEngine
from freezer_orchestrator.workflows.state_manager import WorkflowStateManager

MODEL_URL = "http://model.test/score"
QUEUE_NAME = "classification-results-test"


@pytest.fixture
def test_settings() -> OrchestratorSettings:
    """Provide test-specific settings."""
    return OrchestratorSettings(
        app_name="freezer-orchestrator-test",
        cors_origins=["http://localhost:3000", "http://localhost:8000"],
        ml_endpoint=MODEL_URL,
        redis_url="redis://localhost:6379/15",
        result_queue_name=QUEUE_NAME,
        resume_on_startup=False,
    )


@pytest.fixture
def telemetry_payload() -> Dict[str, Any]:
    """Ingress body with one reading, as sent by stream analytics."""
    return {
        "allevents": [
            {
                "temperature": -17.5,
                "ambienttemperature": 21.3,
                "timeCreated": "2024-03-01T12:00:00+00:00",
                "ConnectionDeviceId": "freezer-01",
                "ConnectionDeviceGenerationId": "637000000000000001",
            }
        ]
    }


@pytest.fixture
def telemetry_batch(telemetry_payload) -> TelemetryBatch:
    return TelemetryBatch.model_validate(telemetry_payload)


@pytest.fixture
def classification_payload() -> Dict[str, Any]:
    """Model endpoint answer for an approved classification."""
    return {
        "ConnectionDeviceId": "freezer-01",
        "timestamp": "2024-03-01T12:00:05+00:00",
        "hasError": False,
        "result": True,
        "errorMessage": None,
    }


class ModelEndpoint:
    """Scriptable stand-in for the remote model, mounted with ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(503)

    def respond_with(self, body: Any, status_code: int = 200) -> None:
        self.handler = lambda request: httpx.Response(status_code, json=body)

    def fail_with(self, exc_type: type = httpx.ConnectError) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise exc_type("model endpoint unreachable", request=request)

        self.handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def last_json(self) -> Any:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def model_endpoint() -> ModelEndpoint:
    return ModelEndpoint()


@pytest_asyncio.fixture
async def model_client(model_endpoint) -> AsyncGenerator[RemoteModelClient, None]:
    """Model client wired to the scripted endpoint."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(model_endpoint))
    yield RemoteModelClient(ModelClientConfig(endpoint_url=MODEL_URL), http_client=http_client)
    await http_client.aclose()


@pytest_asyncio.fixture
async def fake_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield redis
    await redis.flushall()
    await redis.aclose()


@pytest.fixture
def state_manager(fake_redis) -> WorkflowStateManager:
    """State manager backed by fakeredis."""
    manager = WorkflowStateManager("redis://localhost:6379/15")
    manager._redis = fake_redis
    return manager


@pytest.fixture
def publisher(fake_redis) -> ResultPublisher:
    """Publisher sharing the fakeredis server with the state manager."""
    result_publisher = ResultPublisher("redis://localhost:6379/15", QUEUE_NAME)
    result_publisher._redis = fake_redis
    return result_publisher


@pytest.fixture
def sleeps() -> List[float]:
    """Delays requested by the engine between retries."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return sleep


@pytest_asyncio.fixture
async def engine(
    test_settings, state_manager, model_client, publisher, fake_sleep
) -> AsyncGenerator[WorkflowEngine, None]:
    """Fully wired engine that never really sleeps between retries."""
    workflow_engine = build_engine(
        test_settings, state_manager, model_client, publisher, sleep=fake_sleep
    )
    yield workflow_engine
    await workflow_engine.shutdown()


@pytest.fixture
def app(test_settings):
    """Create FastAPI app with test settings."""
    return create_app(test_settings)
