"""File routes: CRUD on workspace files.

Writes create the workspace on first use; reads, listings and removals
answer 404 for a workspace that is not live.
"""

import logging

from fastapi import APIRouter, Depends, Query

from previewhub.foundation.errors import missing_field, workspace_not_found
from previewhub.server.hub import Hub, get_hub
from previewhub.server.routes._models import (
    DirEntryItem,
    MkdirRequest,
    ReadDirResponse,
    ReadFileResponse,
    RemoveRequest,
    SuccessResponse,
    WriteFileRequest,
)
from previewhub.workspace.session import Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


def _live_session(hub: Hub, preview_id: str) -> Session:
    session = hub.registry.get(preview_id)
    if session is None:
        raise workspace_not_found(preview_id)
    return session


@router.post("/write/{preview_id}")
async def write_file(
    preview_id: str,
    request: WriteFileRequest,
    hub: Hub = Depends(get_hub),
) -> SuccessResponse:
    session = await hub.registry.get_or_create(preview_id)
    await hub.files.write(session, request.path, request.content)
    return SuccessResponse()


@router.post("/mkdir/{preview_id}")
async def make_directory(
    preview_id: str,
    request: MkdirRequest,
    hub: Hub = Depends(get_hub),
) -> SuccessResponse:
    session = await hub.registry.get_or_create(preview_id)
    await hub.files.mkdir(session, request.path, recursive=request.recursive)
    return SuccessResponse()


@router.get("/readdir/{preview_id}")
async def read_directory(
    preview_id: str,
    path: str = "",
    with_file_types: bool = Query(False, alias="withFileTypes"),
    hub: Hub = Depends(get_hub),
) -> ReadDirResponse:
    """List a directory; names only unless `withFileTypes` is set."""
    session = _live_session(hub, preview_id)
    entries = await hub.files.list_directory(session, path)
    if with_file_types:
        return ReadDirResponse(entries=[DirEntryItem.model_validate(e.to_dict()) for e in entries])
    return ReadDirResponse(entries=[e.name for e in entries])


@router.post("/rm/{preview_id}")
async def remove_path(
    preview_id: str,
    request: RemoveRequest,
    hub: Hub = Depends(get_hub),
) -> SuccessResponse:
    session = _live_session(hub, preview_id)
    await hub.files.remove(session, request.path, recursive=request.recursive)
    return SuccessResponse()


@router.get("/read/{preview_id}")
async def read_file(
    preview_id: str,
    path: str | None = None,
    hub: Hub = Depends(get_hub),
) -> ReadFileResponse:
    if not path:
        raise missing_field("path")
    session = _live_session(hub, preview_id)
    content = await hub.files.read(session, path)
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    return ReadFileResponse(content=content)
