# Shared FastAPI dependencies for the API layer.
# Created: 2026-10-19

from __future__ import annotations

from fastapi import Request

from chatrelay.api.errors import APIError, request_id_of
from chatrelay.api.services import ChatServices
from chatrelay.chat.errors import ChatErrorCode

USER_ID_HEADER = "X-User-Id"


def get_services(request: Request) -> ChatServices:
    return request.app.state.services


def get_request_id(request: Request) -> str:
    return request_id_of(request)


def get_user_id(request: Request) -> str:
    """Identity of the caller, as established by the auth layer in front of us.

    An upstream middleware may set ``request.state.user_id``; otherwise the
    gateway forwards it in ``X-User-Id``. Requests with neither are rejected.
    """
    user_id = getattr(request.state, "user_id", None) or request.headers.get(USER_ID_HEADER, "")
    user_id = user_id.strip()
    if not user_id:
        raise APIError(401, "Authentication required", ChatErrorCode.UNAUTHORIZED)
    return user_id
