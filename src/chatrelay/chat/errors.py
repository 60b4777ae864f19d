# Error codes and failure types shared by the chat pipeline.
# Created: 2026-10-19

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ChatErrorCode(str, Enum):
    """Wire-level error codes carried in the error envelope."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    MESSAGE_NOT_FOUND = "MESSAGE_NOT_FOUND"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


@dataclass(frozen=True)
class ValidationFailure:
    """A rejected request, returned (not raised) so callers can map it to a response."""

    status_code: int
    code: ChatErrorCode
    message: str
    details: Any = None


class UnknownModelError(ValueError):
    """Raised by the resolver in strict mode when the requested model is not recognized."""

    def __init__(self, model_id: str):
        super().__init__(f"Model '{model_id}' is not supported")
        self.model_id = model_id


class ChatRelayClientError(Exception):
    """Base class for errors raised by the HTTP client."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MessageNotFoundError(ChatRelayClientError):
    """The target message does not exist (yet) on the server."""

    def __init__(self, message: str = "Message not found"):
        super().__init__(message, status_code=404)


class MetadataUpdateError(ChatRelayClientError):
    """The server answered a metadata patch without success."""
