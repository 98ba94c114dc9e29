"""Process supervisor: spawn, stream, and reap workspace processes.

Each spawned child gets one watcher task, which runs two reader tasks (stdout
and stderr) and then waits for the exit status. Every chunk read is
broadcast to the workspace as soon as it arrives; exit produces exactly one
`process-completed` event.

    spawn() ──► create_subprocess_shell (one-shot)  ──► Session.processes[id]
          │   create_subprocess_exec  (interactive)
          │
          └──► watcher ──► readers ──► process-output*
                      └──► wait()  ──► process-completed
"""

import asyncio
import codecs
import logging
import os
import shlex
import signal
import uuid
from contextlib import suppress
from dataclasses import dataclass

from previewhub.foundation.config import ProcessConfig
from previewhub.foundation.errors import spawn_error, storage_error
from previewhub.process.handles import (
    InteractiveProcess,
    OneShotProcess,
    ProcessHandle,
    ProcessMode,
)
from previewhub.process.normalize import normalize_command, select_mode
from previewhub.server.events import Broadcaster, process_completed, process_output
from previewhub.workspace.paths import safe_path
from previewhub.workspace.registry import SessionRegistry
from previewhub.workspace.session import Session

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024

# Exit codes reported when the child never started (shell conventions)
EXIT_COMMAND_NOT_FOUND = 127
EXIT_NOT_EXECUTABLE = 126
EXIT_SPAWN_FAILED = -1


@dataclass(frozen=True, slots=True)
class TerminalSize:
    """Client terminal geometry."""

    columns: int
    lines: int


def command_line(command: str, args: tuple[str, ...]) -> str:
    """Shell command line for a one-shot run.

    The command is passed through as written, so pipelines and `&&` chains
    work; arguments are quoted.
    """
    return f"{command} {shlex.join(args)}" if args else command


def _launch_exit_code(error: OSError) -> int:
    match error:
        case FileNotFoundError():
            return EXIT_COMMAND_NOT_FOUND
        case PermissionError():
            return EXIT_NOT_EXECUTABLE
        case _:
            return EXIT_SPAWN_FAILED


class ProcessSupervisor:
    """Owns every child process started on behalf of a workspace."""

    def __init__(
        self,
        registry: SessionRegistry,
        broadcaster: Broadcaster,
        config: ProcessConfig | None = None,
    ) -> None:
        self._registry = registry
        self._broadcaster = broadcaster
        self.config = config or ProcessConfig()
        self._watchers: dict[str, asyncio.Task[int]] = {}

    @property
    def running_count(self) -> int:
        return len(self._watchers)

    def resolve(
        self,
        command: str,
        args: list[str] | tuple[str, ...] = (),
        mode: ProcessMode | str | None = None,
    ) -> tuple[str, tuple[str, ...], ProcessMode]:
        """Normalize a command and pick its mode without launching it."""
        command, argv = normalize_command(command, args, self.config.shell_substitutions)
        return command, argv, select_mode(command, mode, self.config.interactive_commands)

    def _build_env(
        self,
        geometry: TerminalSize | None,
        overrides: dict[str, str] | None,
    ) -> dict[str, str]:
        env = dict(os.environ)
        env.update(
            {
                "TERM": "xterm-256color",
                "COLORTERM": "truecolor",
                "TERM_PROGRAM": self.config.term_program,
            }
        )
        if geometry:
            env["COLUMNS"] = str(geometry.columns)
            env["LINES"] = str(geometry.lines)
        if overrides:
            env.update(overrides)
        return env

    async def spawn(
        self,
        session: Session,
        command: str,
        args: list[str] | tuple[str, ...] = (),
        cwd: str = "/",
        mode: ProcessMode | str | None = None,
        env: dict[str, str] | None = None,
        geometry: TerminalSize | None = None,
    ) -> ProcessHandle:
        """Start a process in the workspace and begin streaming its output.

        Args:
            session: Owning workspace session
            command: Executable to run, or a shell command line for one-shot runs
                (substitutions applied first)
            args: Command arguments (shell-quoted for one-shot runs)
            cwd: Working directory relative to the workspace (created if absent)
            mode: Explicit mode; inferred from the command when omitted
            env: Extra environment variables (highest priority)
            geometry: Initial terminal size

        Returns:
            The RUNNING handle

        Raises:
            InvalidArgument: If cwd escapes the workspace
            StorageError: If the working directory cannot be created
            SpawnError: If the process could not be started
        """
        requested = command
        command, argv, resolved_mode = self.resolve(command, args, mode)

        workdir, cwd_key = safe_path(session.directory, cwd)
        try:
            await asyncio.to_thread(workdir.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise storage_error("mkdir", cwd_key, e) from e

        process_id = str(uuid.uuid4())
        interactive = resolved_mode is ProcessMode.INTERACTIVE

        options = {
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
            "cwd": str(workdir),
            "env": self._build_env(geometry, env),
            "start_new_session": True,
        }
        try:
            if interactive:
                proc = await asyncio.create_subprocess_exec(
                    command, *argv, stdin=asyncio.subprocess.PIPE, **options
                )
            else:
                proc = await asyncio.create_subprocess_shell(
                    command_line(command, argv), stdin=asyncio.subprocess.DEVNULL, **options
                )
        except OSError as e:
            exit_code = _launch_exit_code(e)
            logger.error("Failed to start %s in %s: %s", command, session.id, e)
            await self._broadcaster.broadcast(
                session.id,
                process_completed(session.id, process_id, exit_code, stderr=str(e)),
            )
            raise spawn_error(requested, e, process_id=process_id) from e

        match resolved_mode:
            case ProcessMode.INTERACTIVE:
                handle: ProcessHandle = InteractiveProcess(
                    id=process_id,
                    command=command,
                    args=argv,
                    working_directory=cwd_key,
                    process=proc,
                    columns=geometry.columns if geometry else None,
                    lines=geometry.lines if geometry else None,
                )
            case ProcessMode.ONE_SHOT:
                handle = OneShotProcess(
                    id=process_id,
                    command=command,
                    args=argv,
                    working_directory=cwd_key,
                    process=proc,
                )

        session.processes[process_id] = handle
        task = asyncio.create_task(self._watch(session, handle), name=f"process:{process_id}")
        self._watchers[process_id] = task
        task.add_done_callback(lambda _t, pid=process_id: self._watchers.pop(pid, None))

        logger.info(
            "Started %s process %s (pid %d) in %s: %s %s",
            resolved_mode.value,
            process_id,
            proc.pid,
            session.id,
            command,
            " ".join(argv),
        )
        return handle

    async def wait(self, handle: ProcessHandle) -> int | None:
        """Wait for a process to exit and its completion event to go out.

        Returns:
            The exit code, or None if the watcher was cancelled before exit
        """
        task = self._watchers.get(handle.id)
        if task is not None:
            await asyncio.wait([task])
        return handle.exit_code

    async def _pump(
        self,
        session: Session,
        handle: ProcessHandle,
        stream: asyncio.StreamReader | None,
        name: str,
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while chunk := await stream.read(READ_CHUNK_SIZE):
            if text := decoder.decode(chunk):
                await self._emit(session, handle, name, text)
        if tail := decoder.decode(b"", final=True):
            await self._emit(session, handle, name, tail)

    async def _emit(self, session: Session, handle: ProcessHandle, stream: str, text: str) -> None:
        if isinstance(handle, OneShotProcess):
            handle.record(stream, text)
        await self._broadcaster.broadcast(
            session.id,
            process_output(session.id, handle.id, text, stream),
        )

    async def _watch(self, session: Session, handle: ProcessHandle) -> int:
        proc = handle.process
        readers = [
            asyncio.create_task(self._pump(session, handle, proc.stdout, "stdout")),
            asyncio.create_task(self._pump(session, handle, proc.stderr, "stderr")),
        ]
        try:
            await asyncio.gather(*readers)
            exit_code = await proc.wait()
        finally:
            for reader in readers:
                reader.cancel()
            session.processes.pop(handle.id, None)

        handle.mark_exited(exit_code)
        logger.info("Process %s in %s exited with %d", handle.id, session.id, exit_code)

        match handle:
            case OneShotProcess():
                event = process_completed(session.id, handle.id, exit_code, handle.stdout, handle.stderr)
            case _:
                event = process_completed(session.id, handle.id, exit_code)
        await self._broadcaster.broadcast(session.id, event)

        # The last process of an unattended workspace starts the idle clock
        if session.is_idle and self._registry.get(session.id) is session:
            self._registry.schedule_idle_sweep(session.id)
        return exit_code

    async def write_input(self, session: Session, process_id: str, text: str) -> bool:
        """Forward text to an interactive process's stdin.

        Unknown ids, one-shot processes and closed pipes are logged and ignored.
        """
        handle = session.processes.get(process_id)
        match handle:
            case InteractiveProcess():
                stdin = handle.stdin
                if stdin is None or stdin.is_closing():
                    logger.warning("stdin of process %s is closed; input dropped", process_id)
                    return False
                try:
                    stdin.write(text.encode("utf-8"))
                    await stdin.drain()
                except (BrokenPipeError, ConnectionResetError) as e:
                    logger.warning("Input to process %s failed: %s", process_id, e)
                    return False
                return True
            case None:
                logger.warning("Input for unknown process %s in %s ignored", process_id, session.id)
            case _:
                logger.warning("Process %s is not interactive; input ignored", process_id)
        return False

    def resize(self, session: Session, process_id: str, columns: int, lines: int) -> bool:
        """Record a terminal size hint on an interactive process.

        No PTY is allocated, so the running program may ignore the new size.
        """
        handle = session.processes.get(process_id)
        match handle:
            case InteractiveProcess():
                handle.resize(columns, lines)
                logger.debug("Process %s resized to %dx%d", process_id, columns, lines)
                return True
            case None:
                logger.warning("Resize for unknown process %s in %s ignored", process_id, session.id)
            case _:
                logger.warning("Process %s is not interactive; resize ignored", process_id)
        return False

    def _signal_all(self, sig: signal.Signals) -> None:
        for session in self._registry.sessions():
            for handle in list(session.processes.values()):
                if handle.process.returncode is not None:
                    continue
                with suppress(ProcessLookupError, PermissionError):
                    os.killpg(handle.pid, sig)

    async def shutdown(self) -> None:
        """Terminate every remaining child: SIGTERM, then SIGKILL after the grace period."""
        if not self._watchers:
            return

        logger.info("Terminating %d running process(es)", len(self._watchers))
        self._signal_all(signal.SIGTERM)
        _, pending = await asyncio.wait(
            list(self._watchers.values()),
            timeout=self.config.kill_grace_seconds,
        )
        if not pending:
            return

        logger.warning("%d process(es) ignored SIGTERM; killing", len(pending))
        self._signal_all(signal.SIGKILL)
        _, pending = await asyncio.wait(pending, timeout=self.config.kill_grace_seconds)
        for task in pending:
            task.cancel()
