"""Pytest fixtures for previewhub tests."""

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from previewhub.foundation.config import HubConfig, StorageConfig
from previewhub.server.events import HubEvent
from previewhub.server.main import create_app
from previewhub.workspace.registry import SessionRegistry


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    """Workspace root inside the test's temp directory."""
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def config(data_root: Path) -> HubConfig:
    """Default config pointed at the temp data root."""
    return HubConfig(storage=StorageConfig(data_root=data_root))


@pytest.fixture
def registry(data_root: Path) -> SessionRegistry:
    return SessionRegistry(data_root, idle_grace_seconds=300.0)


@pytest.fixture
def recording_broadcaster() -> MagicMock:
    """Broadcaster stand-in that records every (session_id, event) pair."""
    broadcaster = MagicMock()
    broadcaster.broadcast = AsyncMock(return_value=0)
    broadcaster.send = AsyncMock(return_value=True)
    return broadcaster


@pytest.fixture
def make_websocket() -> Callable[..., MagicMock]:
    """Factory for fake WebSockets with an awaitable `send_text`."""

    def _make(connected: bool = True) -> MagicMock:
        ws = MagicMock()
        ws.client_state = WebSocketState.CONNECTED if connected else WebSocketState.DISCONNECTED
        ws.application_state = WebSocketState.CONNECTED
        ws.send_text = AsyncMock()
        return ws

    return _make


@pytest.fixture
def app(config: HubConfig) -> FastAPI:
    return create_app(config)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    """Test client with the app lifespan running (hub shut down on exit)."""
    with TestClient(app) as test_client:
        yield test_client


def sent_messages(ws: MagicMock) -> list[dict[str, Any]]:
    """Decode every frame sent to a fake WebSocket."""
    return [json.loads(call.args[0]) for call in ws.send_text.await_args_list]


def broadcast_events(broadcaster: MagicMock, event_type: str | None = None) -> list[HubEvent]:
    """Events passed to a recording broadcaster, optionally filtered by type."""
    events = [call.args[1] for call in broadcaster.broadcast.await_args_list]
    if event_type is None:
        return events
    return [e for e in events if e.type == event_type]
