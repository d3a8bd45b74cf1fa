"""Pydantic schemas for the action API envelope and action payloads."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from schemas.records import JobActuals, JobRecord


# --- Envelope ---

class ActionRequest(BaseModel):
    """``{action, payload}`` as posted by every client."""
    action: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)


class ActionResponse(BaseModel):
    """``{status, data}`` on success, ``{status, message}`` on error."""
    status: Literal["success", "error"]
    data: Any | None = None
    message: str | None = None
    retryable: bool | None = None

    @classmethod
    def success(cls, data: Any) -> "ActionResponse":
        return cls(status="success", data=data)

    @classmethod
    def error(cls, message: str, retryable: bool = False) -> "ActionResponse":
        return cls(status="error", message=message, retryable=retryable or None)

    def to_body(self) -> dict:
        if self.status == "success":
            return {"status": "success", "data": self.data}
        return self.model_dump(exclude_none=True, exclude={"data"})


# --- Tool results ---

class ToolResult(BaseModel):
    """Result of a single ledger or bookkeeping step."""
    tool_name: str
    success: bool
    message: str
    data: dict | None = None


# --- Payloads ---

class PayloadModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)


class TenantPayload(PayloadModel):
    tenant_id: str = Field(min_length=1)


class SyncUpPayload(TenantPayload):
    state: dict[str, Any]


class HeartbeatPayload(TenantPayload):
    last_sync_timestamp: str | int | float | None = None


class JobPayload(TenantPayload):
    estimate_id: str = Field(min_length=1)


class CompleteJobPayload(JobPayload):
    actuals: JobActuals = Field(default_factory=JobActuals)


class CreateWorkOrderPayload(TenantPayload):
    estimate_data: JobRecord
    folder_id: str | None = None


class SendMessagePayload(JobPayload):
    content: str = ""
    sender: str | None = None


class SavePdfPayload(TenantPayload):
    file_name: str = Field(min_length=1)
    base64_data: str = Field(min_length=1)
    estimate_id: str | None = None
    folder_id: str | None = None


class UploadImagePayload(PayloadModel):
    base64_data: str = Field(min_length=1)
    tenant_id: str | None = None
    file_name: str | None = None
    folder_id: str | None = None
    estimate_id: str | None = None


class SignupPayload(PayloadModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    company_name: str = Field(min_length=1)
    email: str | None = None


class LoginPayload(PayloadModel):
    username: str = Field(min_length=1)
    password: str


class CrewLoginPayload(PayloadModel):
    username: str = Field(min_length=1)
    pin: str | int


class UpdatePasswordPayload(PayloadModel):
    username: str = Field(min_length=1)
    current_password: str
    new_password: str = Field(min_length=1)


class TrialPayload(PayloadModel):
    name: str = ""
    email: str = ""
    phone: str = ""
