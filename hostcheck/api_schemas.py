from __future__ import annotations

from typing import Any, Literal
from pydantic import BaseModel, Field

from hostcheck.probe import Probe


class HealthResponse(BaseModel):
    status: str = Field(description="Health status")


class ConfigResponse(BaseModel):
    platform_domain: str
    tick_seconds: float = Field(gt=0)
    step_timeout_seconds: float = Field(gt=0)
    http_timeout_seconds: float = Field(gt=0)


class ProbeSubmitRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048, description="Hostname or URL to check")


class ProbeSubmitResponse(BaseModel):
    id: str
    state: str


class ProbeDetails(BaseModel):
    http_code: int
    response_time_ms: int
    body_size: int
    content_type: str | None = None
    cache_age: str | None = None


class ProbeStatusResponse(BaseModel):
    id: str
    url: str
    state: str
    result: str | None = None
    result_type: Literal["it_works", "heroku_error", "user_error"] | None = None
    result_details: ProbeDetails | None = None
    message: str | None = None
    created_at: str
    updated_at: str | None = None


class ProbeDeleteResponse(BaseModel):
    ok: bool
    id: str


class QueueResponse(BaseModel):
    length: int = Field(ge=0)
    ids: list[str] = Field(default_factory=list)


def probe_status_payload(probe: Probe, message: str | None) -> dict[str, Any]:
    return {
        "id": probe.id,
        "url": probe.url,
        "state": probe.state,
        "result": probe.result,
        "result_type": probe.result_type,
        "result_details": probe.result_details,
        "message": message,
        "created_at": probe.created_at,
        "updated_at": probe.updated_at,
    }
