# ChatRelay HTTP API layer
# Created: 2026-10-19
#
# Versioned REST + SSE endpoints mounted at /api/v1/.
