"""Foundation - base config, errors and logging shared by every other module.

This package has no dependencies on other previewhub modules.
"""

from previewhub.foundation.config import (
    HubConfig,
    ProcessConfig,
    ServerConfig,
    ShellSubstitution,
    StorageConfig,
    load_config,
)
from previewhub.foundation.errors import (
    ErrorCode,
    HubError,
    InvalidArgument,
    NotFound,
    SpawnError,
    StorageError,
)

__all__ = [
    "ErrorCode",
    "HubConfig",
    "HubError",
    "InvalidArgument",
    "NotFound",
    "ProcessConfig",
    "ServerConfig",
    "ShellSubstitution",
    "SpawnError",
    "StorageConfig",
    "StorageError",
    "load_config",
]
