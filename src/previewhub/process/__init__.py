"""Process supervision for workspace commands."""

from previewhub.process.handles import (
    InteractiveProcess,
    OneShotProcess,
    ProcessHandle,
    ProcessMode,
    ProcessStatus,
)

__all__ = [
    "InteractiveProcess",
    "OneShotProcess",
    "ProcessHandle",
    "ProcessMode",
    "ProcessStatus",
]
