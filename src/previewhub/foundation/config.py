"""previewhub configuration management.

Loads configuration from .previewhub/config.yaml with sensible defaults.
All settings can be overridden via environment variables (PREVIEWHUB_*).

Config locations (in priority order):
1. Environment variables (PREVIEWHUB_SECTION_KEY, plus PORT)
2. Explicit path passed to load_config()
3. .previewhub/config.yaml (project-local)
4. ~/.previewhub/config.yaml (user-global)
5. Built-in defaults

There is no module-level config singleton: the CLI loads one HubConfig and
hands it to create_app(), which passes it to every component that needs it.
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from previewhub.foundation.errors import config_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ShellSubstitution:
    """Replacement for a requested shell that is not usable on this host."""

    target: str
    """Command actually executed."""

    strip_args: tuple[str, ...] = ()
    """Flags understood only by the requested shell; removed before launch."""


def _default_substitutions() -> dict[str, ShellSubstitution]:
    return {
        "/bin/jsh": ShellSubstitution(target="/bin/sh", strip_args=("--osc",)),
        "/bin/bash": ShellSubstitution(target="/bin/sh"),
    }


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """HTTP/WebSocket listener settings."""

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: tuple[str, ...] = ("*",)
    ping_interval_seconds: float = 30.0
    """Keep-alive ping interval handed to uvicorn."""

    send_timeout_seconds: float = 5.0
    """Upper bound for delivering one event to one connection."""


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Workspace storage settings."""

    data_root: Path = Path("/data")
    """Persistent root; each workspace is a directory named by its id."""

    idle_grace_seconds: float = 300.0
    """How long a workspace with no connections stays registered."""


@dataclass(frozen=True, slots=True)
class ProcessConfig:
    """Process supervision settings."""

    shell_substitutions: dict[str, ShellSubstitution] = field(default_factory=_default_substitutions)
    """Requested command -> substitute, applied before every launch."""

    interactive_commands: tuple[str, ...] = ("/bin/sh",)
    """Commands (after substitution) that get a writable stdin by default."""

    term_program: str = "previewhub"
    kill_grace_seconds: float = 5.0
    """SIGTERM -> SIGKILL delay used when the server shuts down."""


@dataclass(frozen=True, slots=True)
class HubConfig:
    """Root configuration for previewhub."""

    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    process: ProcessConfig = field(default_factory=ProcessConfig)

    debug: bool = False
    """Enable DEBUG logging by default."""

    log_dir: Path | None = None
    """Directory for per-run log files (disabled when unset)."""

    def to_dict(self) -> dict[str, Any]:
        """Plain-data view (paths and tuples flattened) for display."""
        data = asdict(self)
        data["storage"]["data_root"] = str(self.storage.data_root)
        data["log_dir"] = str(self.log_dir) if self.log_dir else None
        data["server"]["cors_origins"] = list(self.server.cors_origins)
        data["process"]["interactive_commands"] = list(self.process.interactive_commands)
        data["process"]["shell_substitutions"] = {
            source: {"target": sub.target, "strip_args": list(sub.strip_args)}
            for source, sub in self.process.shell_substitutions.items()
        }
        return data


_SECTIONS: dict[str, set[str]] = {
    "server": {"host", "port", "cors_origins", "ping_interval_seconds", "send_timeout_seconds"},
    "storage": {"data_root", "idle_grace_seconds"},
    "process": {"interactive_commands", "term_program", "kill_grace_seconds"},
}
_TOP_LEVEL = {"debug", "log_dir"}
_LIST_KEYS = {"cors_origins", "interactive_commands"}


def _deep_update(base: dict, updates: dict) -> dict:
    """Recursively update a dict with another dict."""
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def _coerce(key: str, value: str) -> Any:
    """Coerce an environment string to the type the key expects."""
    if key in _LIST_KEYS:
        return [part.strip() for part in value.split(",") if part.strip()]
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit() or (value.startswith("-") and value[1:].isdigit()):
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value


def _apply_env_overrides(config_dict: dict, environ: dict[str, str] | None = None) -> dict:
    """Apply environment variable overrides.

    Environment variables follow pattern: PREVIEWHUB_SECTION_KEY

    Examples:
        PREVIEWHUB_SERVER_PORT=9000
        PREVIEWHUB_STORAGE_DATA_ROOT=/srv/previews
        PREVIEWHUB_STORAGE_IDLE_GRACE_SECONDS=60
        PREVIEWHUB_PROCESS_INTERACTIVE_COMMANDS=/bin/sh,/bin/ash
        PREVIEWHUB_DEBUG=true

    The bare PORT variable (set by most PaaS runtimes) is honored too, with
    lower priority than PREVIEWHUB_SERVER_PORT.
    """
    env = os.environ if environ is None else environ
    prefix = "PREVIEWHUB_"

    if port := env.get("PORT"):
        config_dict["server"]["port"] = _coerce("port", port)

    for key, value in env.items():
        if not key.startswith(prefix):
            continue
        path_str = key[len(prefix):].lower()

        if path_str in _TOP_LEVEL:
            config_dict[path_str] = _coerce(path_str, value)
            continue

        for section, keys in _SECTIONS.items():
            if not path_str.startswith(section + "_"):
                continue
            name = path_str[len(section) + 1:]
            if name in keys:
                config_dict[section][name] = _coerce(name, value)
            break

    return config_dict


def _parse_substitutions(raw: Any) -> dict[str, ShellSubstitution]:
    """Parse the shell substitution table.

    Accepts either the long form `{source: {target, strip_args}}` or the
    shorthand `{source: target}`.
    """
    if not isinstance(raw, dict):
        raise config_error("process.shell_substitutions", "expected a mapping")

    table: dict[str, ShellSubstitution] = {}
    for source, spec in raw.items():
        if isinstance(spec, ShellSubstitution):
            table[str(source)] = spec
        elif isinstance(spec, str):
            table[str(source)] = ShellSubstitution(target=spec)
        elif isinstance(spec, dict) and spec.get("target"):
            table[str(source)] = ShellSubstitution(
                target=str(spec["target"]),
                strip_args=tuple(str(a) for a in spec.get("strip_args") or ()),
            )
        else:
            raise config_error(f"process.shell_substitutions.{source}", "expected a target command")
    return table


def _require(key: str, ok: bool, detail: str) -> None:
    if not ok:
        raise config_error(key, detail)


def _dict_to_config(data: dict) -> HubConfig:
    """Convert a dict to HubConfig, validating value ranges."""
    server_data = dict(data.get("server") or {})
    storage_data = dict(data.get("storage") or {})
    process_data = dict(data.get("process") or {})

    try:
        server = ServerConfig(
            host=str(server_data.get("host", "0.0.0.0")),
            port=int(server_data.get("port", 8080)),
            cors_origins=tuple(server_data.get("cors_origins") or ()),
            ping_interval_seconds=float(server_data.get("ping_interval_seconds", 30.0)),
            send_timeout_seconds=float(server_data.get("send_timeout_seconds", 5.0)),
        )
        storage = StorageConfig(
            data_root=Path(storage_data.get("data_root", "/data")).expanduser(),
            idle_grace_seconds=float(storage_data.get("idle_grace_seconds", 300.0)),
        )
        process = ProcessConfig(
            shell_substitutions=_parse_substitutions(
                process_data.get("shell_substitutions", _default_substitutions())
            ),
            interactive_commands=tuple(process_data.get("interactive_commands") or ()),
            term_program=str(process_data.get("term_program", "previewhub")),
            kill_grace_seconds=float(process_data.get("kill_grace_seconds", 5.0)),
        )
    except (TypeError, ValueError) as e:
        raise config_error("config", str(e)) from e

    _require("server.port", 0 < server.port < 65536, "must be between 1 and 65535")
    _require("server.send_timeout_seconds", server.send_timeout_seconds > 0, "must be positive")
    _require("storage.idle_grace_seconds", storage.idle_grace_seconds >= 0, "must not be negative")
    _require("process.kill_grace_seconds", process.kill_grace_seconds >= 0, "must not be negative")

    log_dir = data.get("log_dir")
    return HubConfig(
        server=server,
        storage=storage,
        process=process,
        debug=bool(data.get("debug", False)),
        log_dir=Path(log_dir).expanduser() if log_dir else None,
    )


def load_config(
    path: str | Path | None = None,
    *,
    environ: dict[str, str] | None = None,
) -> HubConfig:
    """Load configuration from file with defaults and env overrides.

    Args:
        path: Optional explicit config file path.
        environ: Environment to read overrides from (default: os.environ).

    Returns:
        Merged HubConfig instance.
    """
    config_dict = HubConfig().to_dict()

    config_paths = []
    if path:
        config_paths.append(Path(path))
    config_paths.extend([
        Path(".previewhub/config.yaml"),
        Path.home() / ".previewhub" / "config.yaml",
    ])

    for config_path in config_paths:
        if config_path.exists():
            try:
                with open(config_path) as f:
                    file_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Skipping unreadable config file %s: %s", config_path, e)
                continue
            if not isinstance(file_config, dict):
                raise config_error(str(config_path), "top level must be a mapping")
            _deep_update(config_dict, file_config)
            # The substitution table is replaced, not merged, so defaults can be dropped
            file_process = file_config.get("process")
            if isinstance(file_process, dict) and "shell_substitutions" in file_process:
                config_dict["process"]["shell_substitutions"] = file_process["shell_substitutions"] or {}
            logger.debug("Loaded config from %s", config_path)
            break  # Use first found config

    config_dict = _apply_env_overrides(config_dict, environ)
    return _dict_to_config(config_dict)
