"""Execution route: start a process in a workspace.

The response only acknowledges the launch. Output and completion are
delivered to the workspace's sockets as `process-output` and
`process-completed` events.
"""

import logging

from fastapi import APIRouter, Depends

from previewhub.process.supervisor import TerminalSize
from previewhub.server.hub import Hub, get_hub
from previewhub.server.routes._models import ExecuteRequest, ExecuteResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["execute"])


@router.post("/execute/{preview_id}")
async def execute(
    preview_id: str,
    request: ExecuteRequest,
    hub: Hub = Depends(get_hub),
) -> ExecuteResponse:
    """Spawn a process; returns while it is still running."""
    logger.debug("Execute in %s: %s %s", preview_id, request.command, request.args)
    session = await hub.registry.get_or_create(preview_id)
    geometry = (
        TerminalSize(columns=request.terminal.cols, lines=request.terminal.rows)
        if request.terminal
        else None
    )
    handle = await hub.supervisor.spawn(
        session,
        request.command,
        request.args,
        cwd=request.cwd,
        mode=request.mode,
        env=request.env,
        geometry=geometry,
    )
    return ExecuteResponse(process_id=handle.id, mode=handle.mode.value)
