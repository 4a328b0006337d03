"""
Irrigation Schemas
==================

Request bodies for the irrigation session and decision-engine endpoints.
Duration bounds are enforced by the session registry, not here, so HTTP and
automatic callers get the same ValidationError.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from fieldflow.enums import SessionType


class StartSessionRequest(BaseModel):
    duration: int = Field(..., description="Planned minutes (1-120)")
    type: SessionType = Field(default=SessionType.MANUAL)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, str):
            return SessionType(v.lower())
        return v


class StopSessionRequest(BaseModel):
    status: Literal["completed", "cancelled"] = "completed"


class EmergencyStopRequest(BaseModel):
    allUsers: bool = Field(default=False, description="Operator kill switch: stop every active session")


class TrainingCycleRequest(BaseModel):
    epochs: int = Field(default=50, ge=1, le=1000)
