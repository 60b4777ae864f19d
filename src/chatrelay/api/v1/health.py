# Health router: liveness probe.
# Created: 2026-10-19

from __future__ import annotations

from fastapi import APIRouter

from chatrelay import __version__
from chatrelay.api.v1.schemas.common import StatusResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=StatusResponse)
async def get_health_status():
    """Report that the service is up."""
    return StatusResponse(version=__version__)
