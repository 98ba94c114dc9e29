"""Preview routes: serve workspace files to a browser.

A directory is served as its `index.html`, else its first `.html` file,
else a generated listing.
"""

import asyncio
import html
from pathlib import Path

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, HTMLResponse

from previewhub.foundation.errors import ErrorCode, file_error, workspace_not_found
from previewhub.server.hub import Hub, get_hub
from previewhub.workspace.paths import safe_path

router = APIRouter(prefix="/preview", tags=["preview"])


def _pick_page(directory: Path) -> Path | None:
    index = directory / "index.html"
    if index.is_file():
        return index
    pages = sorted(p for p in directory.iterdir() if p.suffix == ".html" and p.is_file())
    return pages[0] if pages else None


def _listing(preview_id: str, directory: Path, key: str) -> str:
    base = f"/preview/{preview_id}" if key == "." else f"/preview/{preview_id}/{key}"
    items = "\n".join(
        f'    <li><a href="{html.escape(base)}/{html.escape(child.name)}">'
        f"{html.escape(child.name)}{'/' if child.is_dir() else ''}</a></li>"
        for child in sorted(directory.iterdir(), key=lambda p: p.name)
    )
    title = html.escape(f"{preview_id}/{'' if key == '.' else key}")
    return (
        "<!DOCTYPE html>\n"
        f"<html>\n<head><title>{title}</title></head>\n<body>\n"
        f"  <h1>{title}</h1>\n  <ul>\n{items}\n  </ul>\n</body>\n</html>\n"
    )


async def _serve(hub: Hub, preview_id: str, path: str) -> FileResponse | HTMLResponse:
    session = hub.registry.get(preview_id)
    if session is None:
        raise workspace_not_found(preview_id)

    target, key = safe_path(session.directory, path)
    if await asyncio.to_thread(target.is_file):
        return FileResponse(target)
    if not await asyncio.to_thread(target.is_dir):
        raise file_error(ErrorCode.FILE_NOT_FOUND, key)

    page = await asyncio.to_thread(_pick_page, target)
    if page is not None:
        return FileResponse(page)
    return HTMLResponse(await asyncio.to_thread(_listing, preview_id, target, key))


@router.get("/{preview_id}", response_model=None)
async def preview_root(preview_id: str, hub: Hub = Depends(get_hub)) -> FileResponse | HTMLResponse:
    return await _serve(hub, preview_id, "")


@router.get("/{preview_id}/{path:path}", response_model=None)
async def preview_file(
    preview_id: str,
    path: str,
    hub: Hub = Depends(get_hub),
) -> FileResponse | HTMLResponse:
    return await _serve(hub, preview_id, path)
