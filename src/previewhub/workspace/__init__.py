"""Workspaces: per-id directories, their live sessions, and file access."""

from previewhub.workspace.paths import normalize_relative, safe_path, validate_workspace_id
from previewhub.workspace.registry import SessionRegistry
from previewhub.workspace.session import Session

__all__ = [
    "Session",
    "SessionRegistry",
    "normalize_relative",
    "safe_path",
    "validate_workspace_id",
]
