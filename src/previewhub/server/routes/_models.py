"""Shared Pydantic models for the HTTP routes and the socket protocol.

All models inherit from CamelModel, which converts snake_case Python fields
to the camelCase names used on the wire (`processId`, `withFileTypes`, ...).
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def _to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    parts = string.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class CamelModel(BaseModel):
    """Base model with camelCase JSON serialization."""

    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
    )


# ═══════════════════════════════════════════════════════════════
# SOCKET MESSAGES (client -> server)
# ═══════════════════════════════════════════════════════════════


class FileChangeMessage(CamelModel):
    """A client changed a file; every viewer should refresh."""

    type: Literal["file-change"]
    path: str | None = None


class PreviewReadyMessage(CamelModel):
    """A client reports that the preview can be loaded."""

    type: Literal["preview-ready"]


class TerminalInputMessage(CamelModel):
    """Keystrokes for an interactive process.

    `processId` may be omitted when the connection was opened with one.
    """

    type: Literal["terminal-input"]
    input: str
    process_id: str | None = None


class TerminalResizeMessage(CamelModel):
    type: Literal["terminal-resize"]
    cols: int = Field(gt=0)
    rows: int = Field(gt=0)
    process_id: str | None = None


InboundMessage = Annotated[
    FileChangeMessage | PreviewReadyMessage | TerminalInputMessage | TerminalResizeMessage,
    Field(discriminator="type"),
]

inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)

INBOUND_TYPES = ("file-change", "preview-ready", "terminal-input", "terminal-resize")


# ═══════════════════════════════════════════════════════════════
# FILE REQUESTS
# ═══════════════════════════════════════════════════════════════


class WriteFileRequest(CamelModel):
    path: str
    content: str


class MkdirRequest(CamelModel):
    path: str
    recursive: bool = True


class RemoveRequest(CamelModel):
    path: str
    recursive: bool = False


class SuccessResponse(CamelModel):
    success: bool = True


class ReadFileResponse(CamelModel):
    content: str


class DirEntryItem(CamelModel):
    name: str
    is_file: bool
    is_directory: bool
    is_symbolic_link: bool


class ReadDirResponse(CamelModel):
    entries: list[str] | list[DirEntryItem]


# ═══════════════════════════════════════════════════════════════
# EXECUTION
# ═══════════════════════════════════════════════════════════════


class TerminalGeometry(CamelModel):
    cols: int = Field(gt=0)
    rows: int = Field(gt=0)


class ExecuteRequest(CamelModel):
    """Start a process in a workspace.

    `mode` is inferred from the command when omitted: shells listed in
    `process.interactive_commands` get a writable stdin.
    """

    command: str = Field(min_length=1)
    args: list[str] = Field(default_factory=list)
    cwd: str = "/"
    terminal: TerminalGeometry | None = None
    mode: Literal["one_shot", "interactive"] | None = None
    env: dict[str, str] | None = None


class ExecuteResponse(CamelModel):
    process_id: str
    mode: Literal["one_shot", "interactive"]


# ═══════════════════════════════════════════════════════════════
# HEALTH
# ═══════════════════════════════════════════════════════════════


class HealthResponse(CamelModel):
    status: str
    version: str
    workspaces: int
    connections: int
    processes: int
    uptime: float
    timestamp: int
