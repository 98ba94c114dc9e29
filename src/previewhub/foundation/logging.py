"""Logging configuration for previewhub.

Provides centralized logging setup with sensible defaults:
- Default: INFO level (a server should say what it is doing)
- --debug flag: DEBUG level with full context
- PREVIEWHUB_DEBUG=true or PREVIEWHUB_LOG_LEVEL=DEBUG env vars: Override for CI/scripting
- Persistent logs: optional per-run files in `log_dir` with rotation

Usage:
    from previewhub.foundation.logging import configure_logging
    configure_logging(debug=args.debug)

Priority for level resolution (highest to lowest):
    1. Explicit `level` parameter (programmatic override)
    2. PREVIEWHUB_LOG_LEVEL env var (any level: DEBUG, INFO, WARNING, etc.)
    3. PREVIEWHUB_DEBUG=true env var (simple boolean)
    4. `debug=True` parameter (--debug flag / config file)
    5. INFO (default)
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

_DEBUG_FORMAT = "%(asctime)s %(name)s [%(levelname)s] %(message)s"
_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Noisy libraries we want to quiet even in debug mode
_NOISY_LOGGERS = (
    "asyncio",
    "uvicorn.access",
    "watchfiles",
    "websockets",
)

_MAX_LOG_SESSIONS = 10  # Keep last N run logs


def _cleanup_old_logs(log_dir: Path, max_sessions: int = _MAX_LOG_SESSIONS) -> None:
    """Remove old run logs, keeping only the most recent N.

    Args:
        log_dir: Directory containing log files
        max_sessions: Maximum number of run logs to retain
    """
    if not log_dir.exists():
        return

    log_files = sorted(
        log_dir.glob("previewhub_*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,  # Newest first
    )

    for old_log in log_files[max_sessions:]:
        try:
            old_log.unlink()
        except OSError:
            pass  # Another process may have removed it already


def configure_logging(
    *,
    debug: bool = False,
    level: int | str | None = None,
    stream: object = None,
    log_dir: Path | None = None,
) -> None:
    """Configure logging for the previewhub server.

    Call this early in the CLI entrypoint, before the app is created.

    Args:
        debug: Enable DEBUG level with detailed format
        level: Override log level (int or string like "DEBUG", "INFO")
        stream: Output stream (default: stderr)
        log_dir: If set, also write a per-run log file there (newest 10 kept)
    """
    resolved_level: int
    if level is not None:
        resolved_level = _parse_level(level)
    elif env_level := os.environ.get("PREVIEWHUB_LOG_LEVEL"):
        resolved_level = _parse_level(env_level)
    elif os.environ.get("PREVIEWHUB_DEBUG", "").lower() in ("true", "1", "yes"):
        resolved_level = logging.DEBUG
    elif debug:
        resolved_level = logging.DEBUG
    else:
        resolved_level = logging.INFO

    console_format = _DEBUG_FORMAT if resolved_level <= logging.DEBUG else _DEFAULT_FORMAT

    root_logger = logging.getLogger()
    # File handler captures everything; console still filters to resolved_level
    root_logger.setLevel(logging.DEBUG if log_dir else resolved_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(resolved_level)
    console_handler.setFormatter(logging.Formatter(console_format))
    root_logger.addHandler(console_handler)

    if log_dir:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            _cleanup_old_logs(log_dir)

            timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            log_file = log_dir / f"previewhub_{timestamp}.log"

            file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(_DEBUG_FORMAT))
            root_logger.addHandler(file_handler)

        except OSError as e:
            # Non-fatal: keep serving with console logging only
            sys.stderr.write(f"Warning: Could not enable persistent logging: {e}\n")

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.debug(
        "Logging configured: level=%s, debug=%s, log_dir=%s",
        logging.getLevelName(resolved_level),
        debug,
        log_dir,
    )


def _parse_level(level: int | str) -> int:
    """Parse log level from int or string."""
    if isinstance(level, int):
        return level
    numeric = getattr(logging, level.upper(), None)
    if isinstance(numeric, int):
        return numeric
    try:
        return int(level)
    except ValueError:
        return logging.INFO
