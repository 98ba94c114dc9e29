"""Miscellaneous routes: health and liveness."""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from previewhub import __version__
from previewhub.server.events import now_ms
from previewhub.server.hub import Hub, get_hub
from previewhub.server.routes._models import HealthResponse

router = APIRouter(tags=["misc"])


# ═══════════════════════════════════════════════════════════════
# HEALTH
# ═══════════════════════════════════════════════════════════════


@router.get("/api/health")
async def health(hub: Hub = Depends(get_hub)) -> HealthResponse:
    """Health check with live session counters."""
    sessions = list(hub.registry.sessions())
    return HealthResponse(
        status="healthy",
        version=__version__,
        workspaces=len(sessions),
        connections=sum(s.connection_count for s in sessions),
        processes=hub.supervisor.running_count,
        uptime=round(hub.uptime, 3),
        timestamp=now_ms(),
    )


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    """Liveness probe."""
    return "previewhub is running"
