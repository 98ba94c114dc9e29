"""The Hub: every core service of one server instance, owned together.

There are no module-level singletons. `create_app()` builds one Hub and
stores it on `app.state.hub`; routes reach it through `get_hub()`.
"""

import logging
import time
from dataclasses import dataclass, field

from fastapi import Request, WebSocket

from previewhub.foundation.config import HubConfig
from previewhub.process.supervisor import ProcessSupervisor
from previewhub.server.events import Broadcaster
from previewhub.workspace.files import FileStore
from previewhub.workspace.registry import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Hub:
    """Session registry, broadcaster, file store and supervisor for one app."""

    config: HubConfig
    registry: SessionRegistry
    broadcaster: Broadcaster
    files: FileStore
    supervisor: ProcessSupervisor
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def build(cls, config: HubConfig) -> "Hub":
        registry = SessionRegistry(
            config.storage.data_root,
            idle_grace_seconds=config.storage.idle_grace_seconds,
        )
        broadcaster = Broadcaster(registry, send_timeout=config.server.send_timeout_seconds)
        return cls(
            config=config,
            registry=registry,
            broadcaster=broadcaster,
            files=FileStore(broadcaster),
            supervisor=ProcessSupervisor(registry, broadcaster, config.process),
        )

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    async def shutdown(self) -> None:
        """Stop child processes, then forget every session."""
        await self.supervisor.shutdown()
        self.registry.shutdown()
        logger.info("Hub shut down")


def get_hub(request: Request) -> Hub:
    """FastAPI dependency returning the app's Hub."""
    return request.app.state.hub


def get_socket_hub(websocket: WebSocket) -> Hub:
    return websocket.app.state.hub
