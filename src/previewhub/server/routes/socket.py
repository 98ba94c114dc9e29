"""Workspace WebSocket: one connection per viewer of a workspace.

Lifecycle:
    CONNECTING   accept, validate `previewId` (missing/invalid -> close 1008)
    ESTABLISHED  attach to the Session, ack with `connection-established`,
                 then dispatch inbound frames until the peer goes away
    CLOSED       detach; the registry arms the idle sweep when nobody is left

Malformed frames get an `error` reply on this connection only and never
close it.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from previewhub.foundation.errors import InvalidArgument, StorageError
from previewhub.server.events import (
    Connection,
    connection_established,
    error_event,
    preview_ready,
    refresh_preview,
)
from previewhub.server.hub import Hub, get_socket_hub
from previewhub.server.routes._models import (
    INBOUND_TYPES,
    FileChangeMessage,
    PreviewReadyMessage,
    TerminalInputMessage,
    TerminalResizeMessage,
    inbound_adapter,
)
from previewhub.workspace.session import Session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["socket"])

POLICY_VIOLATION = 1008
INTERNAL_ERROR = 1011


@router.websocket("/")
@router.websocket("/ws")
async def workspace_socket(
    websocket: WebSocket,
    preview_id: str | None = Query(None, alias="previewId"),
    process_id: str | None = Query(None, alias="processId"),
) -> None:
    """Attach a viewer to a workspace and relay its messages."""
    hub = get_socket_hub(websocket)
    await websocket.accept()

    if not preview_id:
        logger.warning("Rejecting socket without previewId")
        await websocket.close(code=POLICY_VIOLATION, reason="previewId is required")
        return

    try:
        session = await hub.registry.get_or_create(preview_id)
    except InvalidArgument as e:
        logger.warning("Rejecting socket: %s", e)
        await websocket.close(code=POLICY_VIOLATION, reason=e.message)
        return
    except StorageError as e:
        logger.error("Cannot open workspace %s: %s", preview_id, e)
        await websocket.close(code=INTERNAL_ERROR, reason="workspace unavailable")
        return

    connection = Connection(websocket, subject_process_id=process_id)
    hub.registry.attach(session, connection)
    logger.info(
        "Client connected to %s (process %s, %d connected)",
        session.id,
        process_id,
        session.connection_count,
    )

    try:
        await hub.broadcaster.send(
            connection,
            connection_established(session.id, process_id, session.connection_count),
        )
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = (message.get("bytes") or b"").decode("utf-8", errors="replace")
            await handle_message(hub, session, connection, raw)
    except WebSocketDisconnect:
        pass
    finally:
        hub.registry.detach(session, connection)
        logger.info("Client disconnected from %s (%d left)", session.id, session.connection_count)


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'message'}: {err['msg']}"
        for err in error.errors()
    )


async def _reject(hub: Hub, connection: Connection, error: str, message: str | None = None) -> None:
    logger.debug("Rejected socket message: %s %s", error, message or "")
    await hub.broadcaster.send(connection, error_event(error, message))


async def handle_message(hub: Hub, session: Session, connection: Connection, raw: str) -> None:
    """Decode one inbound frame and act on it."""
    try:
        payload: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        await _reject(hub, connection, "Invalid JSON", str(e))
        return

    if not isinstance(payload, dict) or "type" not in payload:
        await _reject(hub, connection, "Missing type field in message")
        return

    message_type = payload["type"]
    if message_type not in INBOUND_TYPES:
        await _reject(hub, connection, f"Unknown message type: {message_type}")
        return

    try:
        message = inbound_adapter.validate_python(payload)
    except ValidationError as e:
        await _reject(hub, connection, f"Invalid {message_type} message", _describe(e))
        return

    match message:
        case FileChangeMessage():
            await hub.broadcaster.broadcast(session.id, refresh_preview(session.id))

        case PreviewReadyMessage():
            await hub.broadcaster.broadcast(session.id, preview_ready(session.id))

        case TerminalInputMessage(input=text, process_id=target):
            target = target or connection.subject_process_id
            if not target:
                await _reject(hub, connection, "Missing processId for terminal-input")
                return
            await hub.supervisor.write_input(session, target, text)

        case TerminalResizeMessage(cols=cols, rows=rows, process_id=target):
            target = target or connection.subject_process_id
            if not target:
                await _reject(hub, connection, "Missing processId for terminal-resize")
                return
            hub.supervisor.resize(session, target, cols, rows)
