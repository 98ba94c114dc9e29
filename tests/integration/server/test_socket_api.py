"""Integration tests for the workspace WebSocket and end-to-end execution.

These exercise the whole stack: socket attach, REST-triggered processes,
and events fanned out to every viewer.
"""

from typing import Any

import pytest
from fastapi.testclient import TestClient
from starlette.testclient import WebSocketTestSession
from starlette.websockets import WebSocketDisconnect


def _receive_until(ws: WebSocketTestSession, event_type: str, limit: int = 50) -> list[dict[str, Any]]:
    """Collect messages up to and including the first one of `event_type`."""
    messages = []
    for _ in range(limit):
        message = ws.receive_json()
        messages.append(message)
        if message["type"] == event_type:
            return messages
    raise AssertionError(f"no {event_type} within {limit} messages: {messages}")


class TestHandshake:
    def test_missing_preview_id_closes_with_policy_violation(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()

        assert exc_info.value.code == 1008

    def test_invalid_preview_id_closes_with_policy_violation(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?previewId=..") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()

        assert exc_info.value.code == 1008

    def test_ack_on_root_path(self, client: TestClient) -> None:
        with client.websocket_connect("/?previewId=w1&processId=p1") as ws:
            ack = ws.receive_json()

        assert ack["type"] == "connection-established"
        assert ack["previewId"] == "w1"
        assert ack["processId"] == "p1"
        assert ack["clientCount"] == 1
        assert isinstance(ack["timestamp"], int)

    def test_client_count_grows(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?previewId=w1") as first:
            assert first.receive_json()["clientCount"] == 1
            with client.websocket_connect("/ws?previewId=w1") as second:
                assert second.receive_json()["clientCount"] == 2

    def test_detach_on_close(self, client: TestClient) -> None:
        hub = client.app.state.hub

        with client.websocket_connect("/ws?previewId=w1") as ws:
            ws.receive_json()
            assert hub.registry.get("w1").connection_count == 1

        assert hub.registry.get("w1").connection_count == 0


class TestMessages:
    def test_malformed_messages_keep_connection_open(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?previewId=w1") as ws:
            ws.receive_json()

            ws.send_text("{broken")
            assert ws.receive_json()["error"] == "Invalid JSON"

            ws.send_json({"path": "a.txt"})
            assert ws.receive_json()["error"] == "Missing type field in message"

            ws.send_json({"type": "teleport"})
            assert ws.receive_json()["error"] == "Unknown message type: teleport"

            ws.send_json({"type": "file-change"})
            assert ws.receive_json() == {"type": "refresh-preview", "previewId": "w1"}

    def test_file_change_reaches_every_viewer(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?previewId=w1") as a, client.websocket_connect("/ws?previewId=w1") as b:
            a.receive_json()
            b.receive_json()

            a.send_json({"type": "file-change", "path": "index.html"})

            assert a.receive_json()["type"] == "refresh-preview"
            assert b.receive_json()["type"] == "refresh-preview"

    def test_preview_ready(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?previewId=w1") as ws:
            ws.receive_json()
            ws.send_json({"type": "preview-ready"})

            message = ws.receive_json()

        assert message["type"] == "preview-ready"
        assert message["url"] == "/preview/w1"

    def test_rest_write_is_announced(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?previewId=w1") as ws:
            ws.receive_json()

            client.post("/api/files/write/w1", json={"path": "/a.txt", "content": "x"})

            assert ws.receive_json() == {"type": "file-change", "previewId": "w1", "path": "a.txt"}


class TestExecution:
    def test_one_shot_output_and_completion(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?previewId=w1") as ws:
            ws.receive_json()

            response = client.post("/api/execute/w1", json={"command": "echo", "args": ["hello"]})
            assert response.status_code == 200
            body = response.json()
            assert body["mode"] == "one_shot"

            messages = _receive_until(ws, "process-completed")

        output = "".join(m["output"] for m in messages if m["type"] == "process-output")
        completed = messages[-1]
        assert output == "hello\n"
        assert completed["processId"] == body["processId"]
        assert completed["exitCode"] == 0
        assert completed["stdout"] == "hello\n"

    def test_compound_command_line(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?previewId=w1") as ws:
            ws.receive_json()

            response = client.post("/api/execute/w1", json={"command": "echo a && echo b"})
            assert response.status_code == 200

            completed = _receive_until(ws, "process-completed")[-1]

        assert completed["exitCode"] == 0
        assert completed["stdout"] == "a\nb\n"

    def test_interactive_shell_over_socket(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?previewId=w1") as ws:
            ws.receive_json()

            response = client.post(
                "/api/execute/w1",
                json={"command": "/bin/jsh", "args": ["--osc"], "terminal": {"cols": 100, "rows": 30}},
            )
            body = response.json()
            assert body["mode"] == "interactive"
            process_id = body["processId"]

            ws.send_json({"type": "terminal-resize", "processId": process_id, "cols": 120, "rows": 40})
            ws.send_json({"type": "terminal-input", "processId": process_id, "input": "echo from-shell\n"})
            ws.send_json({"type": "terminal-input", "processId": process_id, "input": "exit\n"})

            messages = _receive_until(ws, "process-completed")

        output = "".join(m["output"] for m in messages if m["type"] == "process-output")
        assert "from-shell" in output
        assert messages[-1]["exitCode"] == 0
        assert messages[-1]["stdout"] == ""

    def test_command_not_found(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?previewId=w1") as ws:
            ws.receive_json()

            response = client.post(
                "/api/execute/w1",
                json={"command": "no-such-binary-here", "mode": "interactive"},
            )
            completed = ws.receive_json()

        assert response.status_code == 500
        body = response.json()
        assert body["errorId"] == "PH-3003"
        assert body["kind"] == "spawn"
        assert completed["type"] == "process-completed"
        assert completed["processId"] == body["processId"]
        assert completed["exitCode"] == 127

    def test_missing_command_is_400(self, client: TestClient) -> None:
        response = client.post("/api/execute/w1", json={"args": ["x"]})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing required parameter: command"

    def test_explicit_mode(self, client: TestClient) -> None:
        response = client.post(
            "/api/execute/w1",
            json={"command": "/bin/sh", "args": ["-c", "true"], "mode": "one_shot"},
        )

        assert response.status_code == 200
        assert response.json()["mode"] == "one_shot"
