"""Chat request pipeline: normalize, resolve a model, stream, collect."""

from chatrelay.chat.collector import AppendResult, AssistantResponseCollector, append_with_limit
from chatrelay.chat.errors import ChatErrorCode, UnknownModelError, ValidationFailure
from chatrelay.chat.model_resolver import ModelResolution, ModelResolver, ToolChoice
from chatrelay.chat.request import NormalizedChatRequest, normalize
from chatrelay.chat.streaming import StreamChunk, create_stream_error_handler, extract_chunk

__all__ = [
    "AppendResult",
    "AssistantResponseCollector",
    "ChatErrorCode",
    "ModelResolution",
    "ModelResolver",
    "NormalizedChatRequest",
    "StreamChunk",
    "ToolChoice",
    "UnknownModelError",
    "ValidationFailure",
    "append_with_limit",
    "create_stream_error_handler",
    "extract_chunk",
    "normalize",
]
