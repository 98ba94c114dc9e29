"""Session registry: workspace id -> Session.

Sessions are created lazily on first reference and dropped after they have
been idle (no connections, no running processes) for a grace period. A
sweep that finds no connections but live interactive processes closes their
stdin instead, so abandoned shells read EOF and exit on their own. The
directory on disk is never deleted; a later reference recreates the entry
over the same directory.

All map mutations happen between suspension points, so check-then-update
is atomic on the event loop. Directory creation is the only await during
creation; concurrent callers for the same id share that one in-flight task.
"""

import asyncio
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

from previewhub.foundation.errors import storage_error
from previewhub.process.handles import InteractiveProcess
from previewhub.workspace.paths import validate_workspace_id
from previewhub.workspace.session import Session

if TYPE_CHECKING:
    from previewhub.server.events import Connection

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns every live Session and its idle sweep."""

    def __init__(self, data_root: Path, idle_grace_seconds: float = 300.0) -> None:
        self.data_root = data_root
        self.idle_grace_seconds = idle_grace_seconds
        self._sessions: dict[str, Session] = {}
        self._pending: dict[str, asyncio.Task[Session]] = {}
        self._sweeps: dict[str, asyncio.Task[None]] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def sessions(self) -> Iterator[Session]:
        """Iterate over a snapshot of the live sessions."""
        return iter(list(self._sessions.values()))

    def get(self, session_id: str) -> Session | None:
        """Non-creating lookup."""
        return self._sessions.get(session_id)

    async def get_or_create(self, session_id: str) -> Session:
        """Return the Session for `session_id`, creating it if needed.

        Raises:
            InvalidArgument: If the id is not a safe directory name
            StorageError: If the directory cannot be created
        """
        if session := self._sessions.get(session_id):
            return session

        validate_workspace_id(session_id)

        task = self._pending.get(session_id)
        if task is None:
            task = asyncio.create_task(self._create(session_id))
            self._pending[session_id] = task
            task.add_done_callback(lambda _t, sid=session_id: self._pending.pop(sid, None))

        # shield: one caller being cancelled must not cancel creation for the others
        return await asyncio.shield(task)

    async def _create(self, session_id: str) -> Session:
        directory = self.data_root / session_id
        try:
            await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)
            resolved = await asyncio.to_thread(directory.resolve)
        except OSError as e:
            logger.error("Failed to create workspace directory %s: %s", directory, e)
            raise storage_error("mkdir", str(directory), e) from e

        # Another path (a remove/recreate cycle) may have registered it meanwhile
        if existing := self._sessions.get(session_id):
            return existing

        session = Session(id=session_id, directory=resolved)
        self._sessions[session_id] = session
        logger.info("Created session %s at %s", session_id, resolved)
        # Nothing is attached yet; a lazily created session still expires
        self.schedule_idle_sweep(session_id)
        return session

    def attach(self, session: Session, connection: "Connection") -> None:
        """Add a connection and cancel any pending idle sweep."""
        session.connections.add(connection)
        self._cancel_sweep(session.id)
        logger.debug("Attached connection to %s (%d total)", session.id, len(session.connections))

    def detach(self, session: Session, connection: "Connection") -> None:
        """Remove a connection; arm the idle sweep when none remain."""
        session.connections.discard(connection)
        logger.debug("Detached connection from %s (%d left)", session.id, len(session.connections))
        if not session.connections:
            self.schedule_idle_sweep(session.id)

    def schedule_idle_sweep(self, session_id: str) -> None:
        """Arm (or re-arm) the one-shot idle sweep for a session."""
        if session_id not in self._sessions:
            return
        self._cancel_sweep(session_id)
        self._sweeps[session_id] = asyncio.create_task(
            self._sweep_after_grace(session_id),
            name=f"idle-sweep:{session_id}",
        )

    def _cancel_sweep(self, session_id: str) -> None:
        if task := self._sweeps.pop(session_id, None):
            task.cancel()

    async def _sweep_after_grace(self, session_id: str) -> None:
        await asyncio.sleep(self.idle_grace_seconds)

        # Only remove our own registration; a re-arm replaces the task
        if self._sweeps.get(session_id) is asyncio.current_task():
            del self._sweeps[session_id]

        session = self._sessions.get(session_id)
        if session is None:
            return
        if session.connections:
            return
        if session.processes:
            # Abandoned shells get EOF; their exit re-arms the sweep
            closed = sum(
                1
                for handle in session.processes.values()
                if isinstance(handle, InteractiveProcess) and handle.close_input()
            )
            logger.debug(
                "Idle sweep for %s skipped: %d process(es) still running, %d stdin closed",
                session_id,
                len(session.processes),
                closed,
            )
            return

        self.remove(session_id)
        logger.info("Removed idle session %s", session_id)

    def remove(self, session_id: str) -> Session | None:
        """Drop a session from the registry (storage is left untouched)."""
        self._cancel_sweep(session_id)
        return self._sessions.pop(session_id, None)

    def shutdown(self) -> None:
        """Cancel every pending sweep and forget all sessions."""
        for task in self._sweeps.values():
            task.cancel()
        self._sweeps.clear()
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()
        self._sessions.clear()
