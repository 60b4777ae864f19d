# Model resolver: picks the back-end model and tool policy for a chat turn.
# Created: 2026-10-19
#
# Pure function of (headers, normalized request, settings). Re-evaluated on
# every request; decisions are never cached.

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from chatrelay.chat.errors import UnknownModelError
from chatrelay.chat.request import NormalizedChatRequest
from chatrelay.config import Settings

logger = logging.getLogger(__name__)

BYOK_HEADER = "X-BYOK-Key"


class ToolChoice(str, Enum):
    AUTO = "auto"  # tools optional
    NONE = "none"  # tools disabled
    REQUIRED = "required"  # model must call a tool


@dataclass(frozen=True)
class ModelResolution:
    """Result of a model routing decision."""

    effective_model_id: str
    has_web_search: bool
    tool_choice: ToolChoice
    reason: str


def extract_byok_key(headers: Mapping[str, str]) -> str | None:
    """Return the caller's own upstream key, or None when absent or blank."""
    value = headers.get(BYOK_HEADER)
    if value is None:
        value = headers.get(BYOK_HEADER.lower())
    if value is None:
        return None
    value = value.strip()
    return value or None


class ModelResolver:
    """Routes a chat request to a model.

    Rules, first match wins:
    - BYOK header present -> BYOK model, no web search, tool choice "none".
      The platform never attaches its own tool credentials to a caller's key.
    - Web search requested -> analytical model, web search, tool choice "required".
    - Otherwise -> preferred model if recognized, else the default; tool choice "auto".
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def resolve(
        self,
        headers: Mapping[str, str],
        normalized: NormalizedChatRequest,
    ) -> ModelResolution:
        if extract_byok_key(headers):
            return ModelResolution(
                effective_model_id=self.settings.byok_model_id,
                has_web_search=False,
                tool_choice=ToolChoice.NONE,
                reason="Caller supplied their own key",
            )

        if normalized.web_search_requested:
            return ModelResolution(
                effective_model_id=self.settings.analytical_model_id,
                has_web_search=True,
                tool_choice=ToolChoice.REQUIRED,
                reason="Web search requested",
            )

        preferred = normalized.preferred_model
        if preferred and preferred in self.settings.recognized_model_ids:
            return ModelResolution(
                effective_model_id=preferred,
                has_web_search=False,
                tool_choice=ToolChoice.AUTO,
                reason="Client model preference accepted",
            )

        if preferred:
            if self.settings.strict_model_selection:
                raise UnknownModelError(preferred)
            logger.debug("Ignoring unrecognized model preference %r", preferred)

        return ModelResolution(
            effective_model_id=self.settings.default_model_id,
            has_web_search=False,
            tool_choice=ToolChoice.AUTO,
            reason="Default model",
        )
