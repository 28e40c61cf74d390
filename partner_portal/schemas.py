from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class ActorPayload(BaseModel):
    id: str = Field(min_length=1)
    name: str = ""
    type: Literal["user", "admin", "system"] = "admin"


class PartnerStatusUpdateRequest(BaseModel):
    status: Literal["active", "suspended"]
    actor: ActorPayload
    reason: str = ""


class PartnerTierChangeRequest(BaseModel):
    tier: str = Field(min_length=1)
    reason: Literal["achievement", "annual_renewal", "manual"] = "manual"
    actor: ActorPayload


class DealStatusUpdateRequest(BaseModel):
    status: Literal["pending_approval", "approved", "in_progress", "closed_won", "closed_lost", "rejected"]
    actor: ActorPayload


class CredentialRevokeRequest(BaseModel):
    actor: ActorPayload
    reason: str = Field(min_length=1)


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
