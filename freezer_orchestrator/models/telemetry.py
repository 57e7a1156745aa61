"""Telemetry and classification schemas exchanged with ingress and the model endpoint."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TelemetryReading(BaseModel):
    """Single sensor reading as emitted by the stream analytics job."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    temperature: float
    ambient_temperature: float = Field(..., alias="ambienttemperature")
    time_created: datetime = Field(..., alias="timeCreated")
    device_id: str = Field(..., alias="ConnectionDeviceId")
    device_generation_id: str = Field(..., alias="ConnectionDeviceGenerationId")


class TelemetryBatch(BaseModel):
    """One ingress payload; the unit of work of an orchestration instance."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    readings: List[TelemetryReading] = Field(..., alias="allevents")

    def to_wire(self) -> dict:
        """Serialize using the field names the model endpoint expects."""
        return self.model_dump(mode="json", by_alias=True)


class ClassificationResult(BaseModel):
    """Outcome returned by the remote classification model."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    device_id: str = Field(..., alias="ConnectionDeviceId")
    timestamp: datetime
    result: bool
    has_error: bool = Field(..., alias="hasError")
    error_message: Optional[str] = Field(None, alias="errorMessage")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
