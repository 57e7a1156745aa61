"""Tests for the validation ingress and instance status endpoints."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from freezer_orchestrator.errors import ErrorKind, PayloadValidationError
from freezer_orchestrator.models.workflow import (
    RuntimeStatus,
    StateTransition,
    StepError,
    WorkflowInstance,
)
from freezer_orchestrator.routers.validate import get_engine, parse_telemetry_batch
from freezer_orchestrator.workflows.orchestrator import MODEL_ORCHESTRATOR


@pytest.fixture
def mock_engine():
    """Mock workflow engine for API tests."""
    engine = MagicMock()
    engine.start_instance = AsyncMock(
        return_value=WorkflowInstance(id="instance-123", name=MODEL_ORCHESTRATOR)
    )
    engine.get_instance = AsyncMock(return_value=None)
    engine.get_history = AsyncMock(return_value=[])
    return engine


@pytest.fixture
def client(app, mock_engine):
    """TestClient with the engine dependency replaced."""
    app.dependency_overrides[get_engine] = lambda: mock_engine
    return TestClient(app)


@pytest.mark.unit
class TestValidateEndpoint:
    def test_valid_batch_starts_one_instance(self, client, mock_engine, telemetry_payload):
        response = client.post("/validate", json=telemetry_payload)

        assert response.status_code == status.HTTP_202_ACCEPTED
        data = response.json()
        assert data["id"] == "instance-123"
        assert data["message"] == "Model has been called."
        assert data["statusQueryGetUri"].endswith("/instances/instance-123")
        assert response.headers["location"] == data["statusQueryGetUri"]

        mock_engine.start_instance.assert_awaited_once()
        name, batch = mock_engine.start_instance.await_args.args
        assert name == MODEL_ORCHESTRATOR
        assert batch["allevents"][0]["ConnectionDeviceId"] == "freezer-01"

    @pytest.mark.parametrize(
        "body",
        [
            b"{not json",
            b"",
            b'{"allevents": [{"temperature": 1.0}]}',
            b'{"events": []}',
            b"[]",
        ],
    )
    def test_malformed_body_is_rejected_without_starting(self, client, mock_engine, body):
        response = client.post(
            "/validate", content=body, headers={"Content-Type": "application/json"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "Invalid telemetry payload" in response.json()["detail"]
        mock_engine.start_instance.assert_not_called()

    def test_empty_batch_starts_instance(self, client, mock_engine):
        response = client.post("/validate", json={"allevents": []})

        assert response.status_code == status.HTTP_202_ACCEPTED
        mock_engine.start_instance.assert_awaited_once_with(
            MODEL_ORCHESTRATOR, {"allevents": []}
        )

    def test_missing_reading_field_is_rejected(self, client, mock_engine, telemetry_payload):
        del telemetry_payload["allevents"][0]["timeCreated"]

        response = client.post("/validate", content=json.dumps(telemetry_payload))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        mock_engine.start_instance.assert_not_called()

    def test_parse_raises_typed_error(self):
        with pytest.raises(PayloadValidationError) as exc_info:
            parse_telemetry_batch(b'{"allevents": "nope"}')

        assert exc_info.value.kind == ErrorKind.VALIDATION
        assert str(exc_info.value).startswith("Invalid telemetry payload")

    def test_engine_not_running_is_unavailable(self, app, telemetry_payload):
        response = TestClient(app).post("/validate", json=telemetry_payload)

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE


@pytest.mark.unit
class TestInstanceEndpoints:
    def test_status_not_found(self, client):
        response = client.get("/instances/missing")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_status_of_failed_instance_preserves_error(self, client, mock_engine):
        mock_engine.get_instance.return_value = WorkflowInstance(
            id="instance-123",
            name=MODEL_ORCHESTRATOR,
            status=RuntimeStatus.FAILED,
            custom_status="failed",
            error=StepError(kind=ErrorKind.TRANSPORT, message="unreachable", retryable=True),
        )

        response = client.get("/instances/instance-123")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["runtime_status"] == "failed"
        assert data["custom_status"] == "failed"
        assert data["error"]["kind"] == "transport"
        assert data["error"]["message"] == "unreachable"

    def test_history(self, client, mock_engine):
        mock_engine.get_instance.return_value = WorkflowInstance(
            id="instance-123", name=MODEL_ORCHESTRATOR, status=RuntimeStatus.RUNNING
        )
        mock_engine.get_history.return_value = [
            StateTransition(
                from_status=RuntimeStatus.PENDING,
                to_status=RuntimeStatus.RUNNING,
                trigger="Status change: pending -> running",
            )
        ]

        response = client.get("/instances/instance-123/history")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total_transitions"] == 1
        assert data["history"][0]["to_status"] == "running"

    def test_history_not_found(self, client):
        response = client.get("/instances/missing/history")

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.integration
@pytest.mark.asyncio
class TestValidateEndToEnd:
    """Ingress through the real engine, scripted model and in-memory Redis."""

    async def test_accepted_batch_completes(
        self, app, engine, model_endpoint, telemetry_payload, classification_payload
    ):
        model_endpoint.respond_with(classification_payload)
        app.state.engine = engine

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
            accepted = await http.post("/validate", json=telemetry_payload)
            assert accepted.status_code == status.HTTP_202_ACCEPTED
            instance_id = accepted.json()["id"]

            await engine.wait_for_instance(instance_id, timeout=5.0)
            response = await http.get(f"/instances/{instance_id}")

        data = response.json()
        assert data["runtime_status"] == "completed"
        assert data["custom_status"] == "completed"
        assert data["output"]["published"] is True
        assert [s["step_id"] for s in data["steps"]] == ["call_model", "validate", "publish"]
        assert model_endpoint.calls == 1

    async def test_malformed_batch_touches_nothing(
        self, app, engine, model_endpoint, state_manager, fake_redis
    ):
        app.state.engine = engine

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
            response = await http.post("/validate", content=b'{"allevents": [{}]}')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert await state_manager.list_active_instances() == []
        assert await fake_redis.keys("*") == []
        assert model_endpoint.calls == 0
