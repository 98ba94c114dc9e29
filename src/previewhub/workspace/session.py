"""Session state for one workspace.

A Session is the in-memory record behind a workspace id: its directory on
persistent storage, the live connections viewing it, a best-effort file
cache, and the processes it owns. All durable state lives on disk; this
record only exists while the workspace is in use.
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from previewhub.process.handles import ProcessHandle
    from previewhub.server.events import Connection


@dataclass(slots=True, eq=False)
class Session:
    """In-memory state for a single workspace."""

    id: str
    directory: Path
    connections: set["Connection"] = field(default_factory=set)
    file_cache: dict[str, str | bytes] = field(default_factory=dict)
    processes: dict[str, "ProcessHandle"] = field(default_factory=dict)

    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    """Serializes broadcasts so every viewer sees events in emission order."""

    @property
    def connection_count(self) -> int:
        return len(self.connections)

    @property
    def is_idle(self) -> bool:
        """No viewer attached and nothing running."""
        return not self.connections and not self.processes
