"""Workspace event fan-out.

Every event that concerns a workspace (file changes, process output,
completion, preview readiness) goes through the Broadcaster, which delivers
it to all connections attached to that workspace's Session.

Delivery rules:
- The event is serialized once and the same text is sent to everyone
- Broadcasts for one Session are serialized, so all viewers see the same order
- A connection that is closed, errors, or is too slow is skipped for this
  event only; membership is owned by the connection handler, not by us
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

if TYPE_CHECKING:
    from previewhub.workspace.registry import SessionRegistry

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Milliseconds since the epoch, the timestamp unit on the wire."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class HubEvent:
    """One message on the wire: a `type` plus flat payload fields."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for WebSocket transmission."""
        return {"type": self.type, **self.data}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


@dataclass(slots=True, eq=False)
class Connection:
    """A live WebSocket attached to one workspace."""

    websocket: WebSocket
    subject_process_id: str | None = None

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, text: str) -> None:
        await self.websocket.send_text(text)


# ═══════════════════════════════════════════════════════════════
# EVENT CONSTRUCTORS
# ═══════════════════════════════════════════════════════════════


def connection_established(session_id: str, process_id: str | None, client_count: int) -> HubEvent:
    return HubEvent(
        "connection-established",
        {
            "previewId": session_id,
            "processId": process_id,
            "timestamp": now_ms(),
            "clientCount": client_count,
        },
    )


def file_change(session_id: str, path: str) -> HubEvent:
    return HubEvent("file-change", {"previewId": session_id, "path": path})


def refresh_preview(session_id: str) -> HubEvent:
    return HubEvent("refresh-preview", {"previewId": session_id})


def preview_ready(session_id: str) -> HubEvent:
    return HubEvent(
        "preview-ready",
        {"previewId": session_id, "url": f"/preview/{session_id}", "timestamp": now_ms()},
    )


def process_output(session_id: str, process_id: str, output: str, stream: str) -> HubEvent:
    return HubEvent(
        "process-output",
        {"previewId": session_id, "processId": process_id, "output": output, "stream": stream},
    )


def process_completed(
    session_id: str,
    process_id: str,
    exit_code: int,
    stdout: str = "",
    stderr: str = "",
) -> HubEvent:
    """Terminal event for a process; negative exit codes mean killed by signal."""
    return HubEvent(
        "process-completed",
        {
            "previewId": session_id,
            "processId": process_id,
            "exitCode": exit_code,
            "stdout": stdout,
            "stderr": stderr,
        },
    )


def error_event(error: str, message: str | None = None) -> HubEvent:
    data: dict[str, Any] = {"error": error, "timestamp": now_ms()}
    if message:
        data["message"] = message
    return HubEvent("error", data)


# ═══════════════════════════════════════════════════════════════
# BROADCASTER
# ═══════════════════════════════════════════════════════════════


class Broadcaster:
    """Fan-out of events to every connection of a Session.

    Usage:
        broadcaster = Broadcaster(registry)

        # From a process watcher, a file write, a socket message...
        await broadcaster.broadcast(session.id, process_output(...))

        # Direct reply to the originating connection
        await broadcaster.send(connection, error_event("Missing type field"))
    """

    def __init__(self, registry: "SessionRegistry", send_timeout: float = 5.0) -> None:
        self._registry = registry
        self.send_timeout = send_timeout

    async def broadcast(self, session_id: str, event: HubEvent) -> int:
        """Send an event to every open connection of a Session.

        Returns:
            Number of connections the event was delivered to
        """
        session = self._registry.get(session_id)
        if session is None or not session.connections:
            return 0

        text = event.to_json()
        delivered = 0
        async with session.send_lock:
            # Snapshot: attach/detach may happen while we are suspended in a send
            for connection in list(session.connections):
                if await self._deliver(connection, text, event.type):
                    delivered += 1
        return delivered

    async def send(self, connection: Connection, event: HubEvent) -> bool:
        """Send an event to a single connection."""
        return await self._deliver(connection, event.to_json(), event.type)

    async def _deliver(self, connection: Connection, text: str, event_type: str) -> bool:
        if not connection.is_open:
            logger.debug("Skipping closed connection for %s event", event_type)
            return False
        try:
            await asyncio.wait_for(connection.send(text), timeout=self.send_timeout)
        except TimeoutError:
            logger.warning("Send of %s event timed out after %.1fs", event_type, self.send_timeout)
            return False
        except Exception as e:
            logger.warning("Failed to send %s event: %s", event_type, e)
            return False
        return True
