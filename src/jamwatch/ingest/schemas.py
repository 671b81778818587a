"""Pydantic schemas for inbound submissions."""

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from jamwatch.domain import Direction, IncidentType, Street, TrafficStatus
from jamwatch.errors import ReportValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class ReportSubmission(BaseModel):
    """A congestion report as sent by a client or the traffic probe."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    street: Street
    status: TrafficStatus
    direction: Direction
    user_fingerprint: str = Field(..., alias="userFingerprint", min_length=1, max_length=100)
    speed: float | None = Field(None, ge=0, description="Probe-measured speed in km/h")
    is_auto_submit: bool = Field(False, alias="isAutoSubmit")


class IncidentSubmission(BaseModel):
    """An incident report (accident, roadworks, ...)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    street: Street
    incident_type: IncidentType = Field(..., alias="incidentType")
    direction: Direction
    user_fingerprint: str = Field(..., alias="userFingerprint", min_length=1, max_length=100)


class VisitSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_fingerprint: str = Field(..., alias="userFingerprint", min_length=1, max_length=100)


def validation_details(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(part) for part in error["loc"]], "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]


def parse_submission(model: type[ModelT], payload: dict[str, Any]) -> ModelT:
    """Validate a raw payload, raising ReportValidationError with field details."""
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ReportValidationError(validation_details(exc)) from exc


class ChatSubmission(BaseModel):
    """A street chat message; surrounding whitespace is dropped before length checks."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, str_strip_whitespace=True)

    street: Street
    message: str = Field(..., min_length=1, max_length=500)
    user_fingerprint: str = Field(..., alias="userFingerprint", min_length=1, max_length=100)
