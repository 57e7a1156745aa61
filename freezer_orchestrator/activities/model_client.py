"""HTTP client for the remote classification model."""

from dataclasses import dataclass
from typing import Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from ..errors import ConfigurationError, DecodeError, ModelRejectedError, TransportError
from ..models.telemetry import ClassificationResult, TelemetryBatch

RETRYABLE_STATUS_CODES = frozenset({429})


@dataclass
class ModelClientConfig:
    """Connection settings for the remote model endpoint."""

    endpoint_url: Optional[str] = None
    timeout_seconds: float = 100.0


class RemoteModelClient:
    """
    Issues one POST per call to the classification endpoint.

    Failures are raised as typed errors:
    - ``ConfigurationError`` when no endpoint is configured (checked on use)
    - ``TransportError`` on connection errors, timeouts, 429 and 5xx answers
    - ``ModelRejectedError`` on any other non-2xx answer
    - ``DecodeError`` when the body is not a classification result

    Retrying is left to the caller; see ``RetryPolicy``.
    """

    def __init__(
        self,
        config: ModelClientConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def classify(self, batch: TelemetryBatch) -> ClassificationResult:
        """Send a telemetry batch to the model and decode its classification."""
        endpoint = (self.config.endpoint_url or "").strip()
        if not endpoint:
            raise ConfigurationError(
                "Model endpoint is not configured. Set MLENDPOINT in the environment."
            )

        logger.debug(f"Posting {len(batch.readings)} readings to model endpoint {endpoint}")

        try:
            response = await self._get_client().post(
                endpoint,
                json=batch.to_wire(),
                headers={"Content-Type": "application/json"},
                timeout=self.config.timeout_seconds,
            )
        except httpx.TransportError as e:
            raise TransportError(
                f"Unable to send request to model endpoint. ({type(e).__name__}: {e})"
            ) from e

        if response.status_code >= 500 or response.status_code in RETRYABLE_STATUS_CODES:
            raise TransportError(
                f"Model endpoint unavailable (HTTP {response.status_code})"
            )
        if response.is_error:
            raise ModelRejectedError(
                f"Model endpoint rejected the request (HTTP {response.status_code}): "
                f"{response.text[:200]}"
            )

        return self._decode(response)

    def _decode(self, response: httpx.Response) -> ClassificationResult:
        try:
            return ClassificationResult.model_validate_json(response.content)
        except ValidationError as e:
            raise DecodeError(f"Unable to deserialize model response. ({e})") from e