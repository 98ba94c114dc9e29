"""Path security for workspaces.

Every identifier and relative path that arrives from a client goes through
here before it touches the filesystem:

1. Workspace ids are matched against a conservative allow-list pattern
2. Relative paths are resolved against the workspace directory
3. The resolved path must stay inside that directory (jail)
"""

import posixpath
import re
from pathlib import Path, PurePosixPath

from previewhub.foundation.errors import ErrorCode, file_error, invalid_workspace_id

_WORKSPACE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


def validate_workspace_id(workspace_id: str | None) -> str:
    """Return the id unchanged if it is safe to use as a directory name.

    Raises:
        InvalidArgument: If the id is empty, too long, or could escape the root
    """
    if not workspace_id:
        raise invalid_workspace_id("", "must not be empty")
    if ".." in workspace_id:
        raise invalid_workspace_id(workspace_id, "must not contain '..'")
    if not _WORKSPACE_ID.match(workspace_id):
        raise invalid_workspace_id(
            workspace_id,
            "use 1-128 letters, digits, '.', '_' or '-', starting with a letter or digit",
        )
    return workspace_id


def normalize_relative(user_path: str) -> str:
    """Normalize a client path to the cache key form.

    Leading slashes and `.` segments are dropped and `..` is folded
    lexically, so `/src/app.js`, `./src//app.js` and `lib/../src/app.js`
    share one key. The workspace root itself is `.`.
    """
    parts = [p for p in PurePosixPath(user_path.replace("\\", "/")).parts if p not in ("/", ".")]
    return posixpath.normpath("/".join(parts)) if parts else "."


def safe_path(root: Path, user_path: str) -> tuple[Path, str]:
    """Canonicalize a client path inside a workspace directory.

    Args:
        root: Resolved workspace directory
        user_path: Client-provided path (absolute paths are taken as workspace-relative)

    Returns:
        (absolute path inside root, normalized relative key). The final
        component is not dereferenced, so a symlink can be removed as itself.

    Raises:
        InvalidArgument: If the path, or whatever it links to, escapes the workspace
    """
    key = normalize_relative(user_path)
    if key == ".":
        return root, key

    candidate = root / key
    try:
        candidate.resolve().relative_to(root)
        target = candidate.parent.resolve() / candidate.name
        target.relative_to(root)
    except ValueError as err:
        raise file_error(ErrorCode.PATH_ESCAPES_WORKSPACE, user_path, cause=err) from err

    return target, key
