"""HTTP/WebSocket server for previewhub.

Usage:
    previewhub serve --port 8080

Architecture:
    Browser ←WebSocket→ FastAPI → Hub (registry, broadcaster, files, supervisor)

The application factory lives in `previewhub.server.main.create_app`.
"""
