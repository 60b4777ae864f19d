# Response envelopes: every JSON reply carries success, payload and meta.requestId.
# Created: 2026-10-19

from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse

from chatrelay.api.v1.schemas.common import ErrorBody, ErrorEnvelope, ResponseMeta, SuccessEnvelope
from chatrelay.chat.errors import ChatErrorCode, ValidationFailure


def success_response(data: Any, request_id: str, status_code: int = 200) -> JSONResponse:
    envelope = SuccessEnvelope(data=data, meta=ResponseMeta(request_id=request_id))
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(mode="json", by_alias=True),
        headers={"X-Request-Id": request_id},
    )


def error_response(
    request_id: str,
    status_code: int,
    message: str,
    code: ChatErrorCode | str,
    details: Any = None,
) -> JSONResponse:
    envelope = ErrorEnvelope(
        error=ErrorBody(message=message, code=str(getattr(code, "value", code)), details=details),
        meta=ResponseMeta(request_id=request_id),
    )
    body = envelope.model_dump(mode="json", by_alias=True)
    if details is None:
        body["error"].pop("details", None)
    return JSONResponse(status_code=status_code, content=body, headers={"X-Request-Id": request_id})


def failure_response(failure: ValidationFailure, request_id: str) -> JSONResponse:
    return error_response(
        request_id,
        failure.status_code,
        failure.message,
        failure.code,
        failure.details,
    )
