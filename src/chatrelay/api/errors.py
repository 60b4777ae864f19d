# API exception handling: maps every non-streaming failure onto the error envelope.
# Created: 2026-10-19

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from chatrelay.api.responses import error_response
from chatrelay.chat.errors import ChatErrorCode
from chatrelay.store.models import generate_id

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[int, ChatErrorCode] = {
    400: ChatErrorCode.INVALID_INPUT,
    401: ChatErrorCode.UNAUTHORIZED,
    404: ChatErrorCode.NOT_FOUND,
    413: ChatErrorCode.PAYLOAD_TOO_LARGE,
    415: ChatErrorCode.INVALID_INPUT,
    422: ChatErrorCode.VALIDATION_ERROR,
}


class APIError(HTTPException):
    """An HTTPException that carries an envelope error code."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: ChatErrorCode,
        details: Any = None,
    ):
        super().__init__(status_code=status_code, detail=message)
        self.code = code
        self.details = details


def request_id_of(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = generate_id()
        request.state.request_id = request_id
    return request_id


def _code_for_status(status_code: int) -> ChatErrorCode:
    if status_code >= 500:
        return ChatErrorCode.INTERNAL_SERVER_ERROR
    return _STATUS_CODES.get(status_code, ChatErrorCode.INVALID_INPUT)


async def _api_error_handler(request: Request, exc: APIError):
    return error_response(request_id_of(request), exc.status_code, str(exc.detail), exc.code, exc.details)


async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(
        request_id_of(request),
        exc.status_code,
        str(exc.detail),
        _code_for_status(exc.status_code),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
    ]
    return error_response(
        request_id_of(request),
        400,
        "Invalid request data",
        ChatErrorCode.VALIDATION_ERROR,
        details,
    )


async def _unhandled_error_handler(request: Request, exc: Exception):
    request_id = request_id_of(request)
    logger.exception("Unhandled error on %s %s (request_id=%s)", request.method, request.url.path, request_id)
    return error_response(
        request_id,
        500,
        "An unexpected error occurred",
        ChatErrorCode.INTERNAL_SERVER_ERROR,
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, _api_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
