# Common API response schemas.
# Created: 2026-10-19

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chatrelay.store.models import now_iso


class APIModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ResponseMeta(APIModel):
    request_id: str
    timestamp: str = Field(default_factory=now_iso)


class ErrorBody(APIModel):
    message: str
    code: str
    details: Any = None


class ErrorEnvelope(APIModel):
    """Standard error envelope."""

    success: bool = False
    error: ErrorBody
    meta: ResponseMeta


class SuccessEnvelope(APIModel):
    """Standard success envelope."""

    success: bool = True
    data: Any = None
    meta: ResponseMeta


class Pagination(APIModel):
    page: int
    limit: int
    total: int
    has_more: bool


class StatusResponse(APIModel):
    """Status string response."""

    status: str = "ok"
    version: str | None = None
