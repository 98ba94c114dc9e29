"""File store: workspace files on disk plus an in-memory overlay cache.

The filesystem is the source of truth. The cache only short-circuits
repeated reads of paths this process has written or read before; it is
never consulted for listings.

Disk I/O runs in a worker thread so a slow volume never stalls the loop.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from previewhub.foundation.errors import ErrorCode, file_error, storage_error
from previewhub.server.events import Broadcaster, file_change
from previewhub.workspace.paths import normalize_relative, safe_path
from previewhub.workspace.session import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DirEntry:
    """One entry of a directory listing."""

    name: str
    is_file: bool
    is_directory: bool
    is_symbolic_link: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "isFile": self.is_file,
            "isDirectory": self.is_directory,
            "isSymbolicLink": self.is_symbolic_link,
        }


def _write_to_disk(target: Path, content: str | bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        target.write_bytes(content)
    else:
        target.write_text(content, encoding="utf-8", newline="")


def _as_content(data: bytes) -> str | bytes:
    """Text when the bytes are valid UTF-8, otherwise the bytes unchanged."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data


def _scan(directory: Path) -> list[DirEntry]:
    entries = []
    for child in directory.iterdir():
        is_link = child.is_symlink()
        entries.append(
            DirEntry(
                name=child.name,
                is_file=child.is_file() and not is_link,
                is_directory=child.is_dir() and not is_link,
                is_symbolic_link=is_link,
            )
        )
    entries.sort(key=lambda e: e.name)
    return entries


class FileStore:
    """Read, write, list and remove files inside a Session's directory."""

    def __init__(self, broadcaster: Broadcaster) -> None:
        self._broadcaster = broadcaster

    async def write(self, session: Session, path: str, content: str | bytes) -> str:
        """Write a file, creating parent directories, and announce the change.

        Returns:
            The normalized relative path
        """
        target, key = safe_path(session.directory, path)
        if target == session.directory:
            raise file_error(ErrorCode.PATH_ESCAPES_WORKSPACE, path)

        try:
            await asyncio.to_thread(_write_to_disk, target, content)
        except OSError as e:
            logger.error("Write failed for %s in %s: %s", key, session.id, e)
            raise storage_error("write", key, e) from e

        # Cached in the form a disk read would produce
        session.file_cache[key] = _as_content(content) if isinstance(content, bytes) else content
        logger.debug("Wrote %s in %s", key, session.id)
        await self._broadcaster.broadcast(session.id, file_change(session.id, key))
        return key

    async def read(self, session: Session, path: str) -> str | bytes:
        """Return file content, from cache when possible.

        Valid UTF-8 comes back as `str`; anything else as the raw `bytes`.
        """
        target, key = safe_path(session.directory, path)

        if key in session.file_cache:
            return session.file_cache[key]

        try:
            content = _as_content(await asyncio.to_thread(target.read_bytes))
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise file_error(ErrorCode.FILE_NOT_FOUND, key, cause=e) from e
        except OSError as e:
            logger.error("Read failed for %s in %s: %s", key, session.id, e)
            raise storage_error("read", key, e) from e

        session.file_cache[key] = content
        return content

    async def remove(self, session: Session, path: str, recursive: bool = False) -> str:
        """Remove a file or directory and evict it (and anything beneath) from the cache."""
        target, key = safe_path(session.directory, path)
        if target == session.directory:
            raise file_error(ErrorCode.PATH_ESCAPES_WORKSPACE, path)

        def _remove() -> None:
            if target.is_symlink() or target.is_file():
                target.unlink()
            elif target.is_dir():
                if recursive:
                    shutil.rmtree(target)
                elif any(target.iterdir()):
                    raise file_error(ErrorCode.DIRECTORY_NOT_EMPTY, key)
                else:
                    target.rmdir()
            else:
                raise file_error(ErrorCode.FILE_NOT_FOUND, key)

        try:
            await asyncio.to_thread(_remove)
        except OSError as e:
            logger.error("Remove failed for %s in %s: %s", key, session.id, e)
            raise storage_error("remove", key, e) from e

        self.evict(session, key)
        prefix = key + "/"
        for cached in [k for k in session.file_cache if k.startswith(prefix)]:
            del session.file_cache[cached]

        logger.debug("Removed %s in %s", key, session.id)
        await self._broadcaster.broadcast(session.id, file_change(session.id, key))
        return key

    async def list_directory(self, session: Session, path: str = "") -> list[DirEntry]:
        """List a directory straight from disk, sorted by name."""
        target, key = safe_path(session.directory, path)
        try:
            return await asyncio.to_thread(_scan, target)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise file_error(ErrorCode.DIRECTORY_NOT_FOUND, key, cause=e) from e
        except OSError as e:
            raise storage_error("readdir", key, e) from e

    async def mkdir(self, session: Session, path: str, recursive: bool = True) -> str:
        target, key = safe_path(session.directory, path)
        try:
            await asyncio.to_thread(target.mkdir, parents=recursive, exist_ok=recursive)
        except FileNotFoundError as e:
            raise file_error(ErrorCode.DIRECTORY_NOT_FOUND, str(Path(key).parent), cause=e) from e
        except OSError as e:
            raise storage_error("mkdir", key, e) from e
        return key

    def evict(self, session: Session, path: str) -> None:
        """Drop one cache entry; the next read goes to disk."""
        session.file_cache.pop(normalize_relative(path), None)
