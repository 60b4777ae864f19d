# Chat request normalizer: turns a raw POST /chat body into a NormalizedChatRequest.
# Created: 2026-10-19
#
# Clients send either flat string content or AI-SDK style typed parts; both are
# decoded here into one shape so nothing downstream has to sniff payloads.

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    ValidationError,
    field_validator,
)

from chatrelay.chat.errors import ChatErrorCode, ValidationFailure

FORWARDABLE_ROLES = frozenset({"user", "assistant"})


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


class TextPart(BaseModel):
    type: Literal["text"]
    text: Any = None

    def as_text(self) -> str:
        return self.text if isinstance(self.text, str) else ""


class OtherPart(BaseModel):
    """Any non-text part (images, tool calls, reasoning). Contributes no text."""

    model_config = ConfigDict(extra="allow")

    type: Any = None

    def as_text(self) -> str:
        return ""


def _part_tag(value: Any) -> str:
    kind = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return "text" if kind == "text" else "other"


MessagePart = Annotated[
    Union[Annotated[TextPart, Tag("text")], Annotated[OtherPart, Tag("other")]],
    Discriminator(_part_tag),
]


def _only_dicts(value: Any) -> Any:
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    return value


class RawChatMessage(BaseModel):
    """One entry of the ``messages`` array, before coercion."""

    model_config = ConfigDict(extra="ignore")

    role: str | None = None
    content: str | list[MessagePart] | None = None
    parts: list[MessagePart] | None = None
    id: str | None = None

    @field_validator("role", "id", mode="before")
    @classmethod
    def _non_string_to_none(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value
        if isinstance(value, list):
            return _only_dicts(value)
        return None

    @field_validator("parts", mode="before")
    @classmethod
    def _coerce_parts(cls, value: Any) -> Any:
        return _only_dicts(value) if isinstance(value, list) else None

    @property
    def is_forwardable(self) -> bool:
        return self.role in FORWARDABLE_ROLES

    def text(self) -> str:
        """Flatten the message body: string content, content parts, or ``parts``."""
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            return "".join(part.as_text() for part in self.content)
        if self.parts is not None:
            return "".join(part.as_text() for part in self.parts)
        return ""


class RawChatRequest(BaseModel):
    """Untyped inbound payload for ``POST /api/v1/chat``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    session_id: str | None = Field(default=None, alias="sessionId")
    messages: list[RawChatMessage] | None = None
    message: str | None = None  # legacy single-message shape
    selected_model: str | None = Field(default=None, alias="selectedModel")
    web_search_enabled: bool | None = Field(default=None, alias="webSearchEnabled")

    @field_validator("messages", mode="before")
    @classmethod
    def _drop_non_objects(cls, value: Any) -> Any:
        return _only_dicts(value)


# ---------------------------------------------------------------------------
# Normalized projection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ForwardedMessage:
    role: str
    content: str
    id: str | None = None

    def to_dict(self) -> dict[str, str]:
        data = {"role": self.role, "content": self.content}
        if self.id:
            data["id"] = self.id
        return data


@dataclass(frozen=True)
class NormalizedChatRequest:
    """Validated view of a chat request. Built once per request, never mutated."""

    message: str
    payload_messages: tuple[ForwardedMessage, ...]
    provided_session_id: str | None
    web_search_requested: bool
    preferred_model: str | None = None


def is_json_content_type(content_type: str | None) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _unsupported_media_type() -> ValidationFailure:
    return ValidationFailure(
        status_code=415,
        code=ChatErrorCode.INVALID_INPUT,
        message="Content-Type must be application/json",
    )


def _too_large(max_input_bytes: int, received_bytes: int) -> ValidationFailure:
    return ValidationFailure(
        status_code=413,
        code=ChatErrorCode.PAYLOAD_TOO_LARGE,
        message="Request too large",
        details={"maxBytes": max_input_bytes, "receivedBytes": received_bytes},
    )


def precheck(
    content_type: str | None,
    content_length: str | None,
    *,
    max_input_bytes: int,
) -> ValidationFailure | None:
    """Reject from headers alone, before the body is read.

    A missing or malformed Content-Length passes; :func:`normalize` still
    measures the body it is given.
    """
    if not is_json_content_type(content_type):
        return _unsupported_media_type()
    try:
        declared = int(content_length) if content_length is not None else None
    except ValueError:
        declared = None
    if declared is not None and declared > max_input_bytes:
        return _too_large(max_input_bytes, declared)
    return None


def normalize(
    body: bytes | str,
    content_type: str | None,
    *,
    max_input_bytes: int,
) -> NormalizedChatRequest | ValidationFailure:
    """Validate a raw request body.

    Checks run cheapest-first: content type, then size, then JSON parsing,
    then schema and message content. Nothing here raises; every rejection is
    returned as a :class:`ValidationFailure`.
    """
    if not is_json_content_type(content_type):
        return _unsupported_media_type()

    raw_bytes = body.encode("utf-8") if isinstance(body, str) else body
    if len(raw_bytes) > max_input_bytes:
        return _too_large(max_input_bytes, len(raw_bytes))

    try:
        data = json.loads(raw_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return ValidationFailure(
            status_code=400,
            code=ChatErrorCode.INVALID_INPUT,
            message="Invalid JSON in request body",
        )

    if not isinstance(data, dict):
        return ValidationFailure(
            status_code=400,
            code=ChatErrorCode.INVALID_INPUT,
            message="Request body must be a JSON object",
        )

    try:
        raw = RawChatRequest.model_validate(data)
    except ValidationError as exc:
        return ValidationFailure(
            status_code=400,
            code=ChatErrorCode.VALIDATION_ERROR,
            message="Invalid request data",
            details=[
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            ],
        )

    return normalize_raw(raw)


def normalize_raw(raw: RawChatRequest) -> NormalizedChatRequest | ValidationFailure:
    """Project an already-decoded request into its normalized form."""
    if raw.messages:
        payload = tuple(
            ForwardedMessage(role=m.role, content=m.text(), id=m.id)
            for m in raw.messages
            if m.is_forwardable
        )
    elif raw.message:
        payload = (ForwardedMessage(role="user", content=raw.message),)
    else:
        payload = ()

    # Latest forwardable turn that actually carries text.
    message = next((m.content.strip() for m in reversed(payload) if m.content.strip()), "")
    if not message:
        return ValidationFailure(
            status_code=400,
            code=ChatErrorCode.INVALID_INPUT,
            message="Message content cannot be empty",
        )

    session_id = raw.session_id.strip() if raw.session_id else None
    preferred = raw.selected_model.strip() if raw.selected_model else None

    return NormalizedChatRequest(
        message=message,
        payload_messages=payload,
        provided_session_id=session_id or None,
        web_search_requested=bool(raw.web_search_enabled),
        preferred_model=preferred or None,
    )
