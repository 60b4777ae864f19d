"""Client-side helpers: the HTTP API client and the metadata retry queue."""

from chatrelay.client.api_client import ChatRelayClient
from chatrelay.client.metadata_queue import (
    MetadataPatch,
    MetadataRetryQueue,
    PendingMetadataEntry,
)

__all__ = [
    "ChatRelayClient",
    "MetadataPatch",
    "MetadataRetryQueue",
    "PendingMetadataEntry",
]
