"""Command normalization and execution mode selection."""

import logging
from collections.abc import Mapping, Sequence

from previewhub.foundation.config import ShellSubstitution
from previewhub.process.handles import ProcessMode

logger = logging.getLogger(__name__)


def normalize_command(
    command: str,
    args: Sequence[str],
    substitutions: Mapping[str, ShellSubstitution],
) -> tuple[str, tuple[str, ...]]:
    """Apply the shell substitution table.

    Args:
        command: Requested executable
        args: Requested arguments
        substitutions: Requested command -> replacement

    Returns:
        (command, args) actually launched
    """
    sub = substitutions.get(command)
    if sub is None:
        return command, tuple(args)

    kept = tuple(a for a in args if a not in sub.strip_args)
    logger.info(
        "Substituting %s -> %s%s",
        command,
        sub.target,
        f" (dropped {', '.join(a for a in args if a in sub.strip_args)})" if len(kept) != len(args) else "",
    )
    return sub.target, kept


def select_mode(
    command: str,
    explicit: ProcessMode | str | None,
    interactive_commands: Sequence[str],
) -> ProcessMode:
    """Pick the execution mode for an (already normalized) command.

    An explicit mode always wins; otherwise known shells are interactive.
    """
    if explicit is not None:
        return ProcessMode(explicit)
    return ProcessMode.INTERACTIVE if command in interactive_commands else ProcessMode.ONE_SHOT
