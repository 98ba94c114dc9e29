"""Tests for FileStore: disk I/O, cache overlay and change events."""

from unittest.mock import MagicMock, patch

import pytest

from conftest import broadcast_events
from previewhub.foundation.errors import ErrorCode, InvalidArgument, NotFound, StorageError
from previewhub.workspace.files import FileStore
from previewhub.workspace.registry import SessionRegistry


@pytest.fixture
def store(recording_broadcaster: MagicMock) -> FileStore:
    return FileStore(recording_broadcaster)


class TestWriteAndRead:
    @pytest.mark.asyncio
    async def test_write_then_read_from_cache_and_disk(
        self, store: FileStore, registry: SessionRegistry
    ) -> None:
        session = await registry.get_or_create("w1")

        await store.write(session, "src/app.js", "console.log(1)")

        assert session.file_cache["src/app.js"] == "console.log(1)"
        assert await store.read(session, "src/app.js") == "console.log(1)"

        store.evict(session, "/src/app.js")
        assert "src/app.js" not in session.file_cache
        assert await store.read(session, "src/app.js") == "console.log(1)"
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_cache_hit_does_not_touch_disk(self, store: FileStore, registry: SessionRegistry) -> None:
        session = await registry.get_or_create("w1")
        await store.write(session, "a.txt", "cached")
        (session.directory / "a.txt").write_text("changed behind our back")

        assert await store.read(session, "a.txt") == "cached"
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_write_creates_parents_and_broadcasts(
        self, store: FileStore, registry: SessionRegistry, recording_broadcaster: MagicMock
    ) -> None:
        session = await registry.get_or_create("w1")

        key = await store.write(session, "./deep//nested/file.txt", "x")

        assert key == "deep/nested/file.txt"
        assert (session.directory / "deep" / "nested" / "file.txt").read_text() == "x"
        events = broadcast_events(recording_broadcaster, "file-change")
        assert [e.data for e in events] == [{"previewId": "w1", "path": "deep/nested/file.txt"}]
        assert recording_broadcaster.broadcast.await_args.args[0] == "w1"
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_write_bytes_verbatim(self, store: FileStore, registry: SessionRegistry) -> None:
        session = await registry.get_or_create("w1")

        await store.write(session, "logo.bin", b"\x00\xffdata")

        assert (session.directory / "logo.bin").read_bytes() == b"\x00\xffdata"
        registry.shutdown()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("content", "expected"),
        [
            (b"\xff\x00abc", b"\xff\x00abc"),
            ("caf\u00e9".encode(), "caf\u00e9"),
            ("line\r\nnext", "line\r\nnext"),
        ],
    )
    async def test_cache_and_disk_reads_agree(
        self, store: FileStore, registry: SessionRegistry, content: str | bytes, expected: str | bytes
    ) -> None:
        session = await registry.get_or_create("w1")
        await store.write(session, "blob", content)

        cached = await store.read(session, "blob")
        store.evict(session, "blob")
        from_disk = await store.read(session, "blob")

        assert cached == from_disk == expected
        assert type(cached) is type(from_disk)
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_write_failure_leaves_cache_untouched(
        self, store: FileStore, registry: SessionRegistry, recording_broadcaster: MagicMock
    ) -> None:
        session = await registry.get_or_create("w1")

        with patch("previewhub.workspace.files._write_to_disk", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                await store.write(session, "a.txt", "x")

        assert "a.txt" not in session.file_cache
        assert not (session.directory / "a.txt").exists()
        recording_broadcaster.broadcast.assert_not_awaited()
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_read_missing_file(self, store: FileStore, registry: SessionRegistry) -> None:
        session = await registry.get_or_create("w1")

        with pytest.raises(NotFound) as exc_info:
            await store.read(session, "missing.txt")

        assert exc_info.value.code == ErrorCode.FILE_NOT_FOUND
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_read_directory_is_not_found(self, store: FileStore, registry: SessionRegistry) -> None:
        session = await registry.get_or_create("w1")
        (session.directory / "sub").mkdir()

        with pytest.raises(NotFound):
            await store.read(session, "sub")
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_path_escape_rejected(self, store: FileStore, registry: SessionRegistry) -> None:
        session = await registry.get_or_create("w1")

        with pytest.raises(InvalidArgument):
            await store.write(session, "../w2/evil.txt", "x")
        with pytest.raises(InvalidArgument):
            await store.write(session, "/", "x")
        registry.shutdown()


class TestRemove:
    @pytest.mark.asyncio
    async def test_remove_file_evicts_and_broadcasts(
        self, store: FileStore, registry: SessionRegistry, recording_broadcaster: MagicMock
    ) -> None:
        session = await registry.get_or_create("w1")
        await store.write(session, "a.txt", "x")

        await store.remove(session, "/a.txt")

        assert not (session.directory / "a.txt").exists()
        assert "a.txt" not in session.file_cache
        paths = [e.data["path"] for e in broadcast_events(recording_broadcaster, "file-change")]
        assert paths == ["a.txt", "a.txt"]
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_non_empty_directory_needs_recursive(
        self, store: FileStore, registry: SessionRegistry
    ) -> None:
        session = await registry.get_or_create("w1")
        await store.write(session, "src/a.js", "a")
        await store.write(session, "src/lib/b.js", "b")
        await store.write(session, "srcfile.js", "c")

        with pytest.raises(InvalidArgument) as exc_info:
            await store.remove(session, "src")
        assert exc_info.value.code == ErrorCode.DIRECTORY_NOT_EMPTY

        await store.remove(session, "src", recursive=True)

        assert not (session.directory / "src").exists()
        assert set(session.file_cache) == {"srcfile.js"}
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_remove_empty_directory(self, store: FileStore, registry: SessionRegistry) -> None:
        session = await registry.get_or_create("w1")
        await store.mkdir(session, "empty")

        await store.remove(session, "empty")

        assert not (session.directory / "empty").exists()
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_remove_missing(self, store: FileStore, registry: SessionRegistry) -> None:
        session = await registry.get_or_create("w1")

        with pytest.raises(NotFound):
            await store.remove(session, "nope.txt")
        registry.shutdown()


class TestListAndMkdir:
    @pytest.mark.asyncio
    async def test_list_directory_sorted_with_types(
        self, store: FileStore, registry: SessionRegistry
    ) -> None:
        session = await registry.get_or_create("w1")
        await store.write(session, "b.txt", "b")
        await store.write(session, "a/inner.txt", "a")
        (session.directory / "c-link").symlink_to(session.directory / "b.txt")

        entries = await store.list_directory(session, "/")

        assert [e.name for e in entries] == ["a", "b.txt", "c-link"]
        a, b, link = entries
        assert a.is_directory and not a.is_file
        assert b.is_file and not b.is_directory
        assert link.is_symbolic_link and not link.is_file
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_list_bypasses_cache(self, store: FileStore, registry: SessionRegistry) -> None:
        session = await registry.get_or_create("w1")
        (session.directory / "external.txt").write_text("made outside")

        entries = await store.list_directory(session, "")

        assert [e.name for e in entries] == ["external.txt"]
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_list_missing_directory(self, store: FileStore, registry: SessionRegistry) -> None:
        session = await registry.get_or_create("w1")

        with pytest.raises(NotFound) as exc_info:
            await store.list_directory(session, "nope")

        assert exc_info.value.code == ErrorCode.DIRECTORY_NOT_FOUND
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_mkdir(self, store: FileStore, registry: SessionRegistry, recording_broadcaster) -> None:
        session = await registry.get_or_create("w1")

        key = await store.mkdir(session, "/x/y/z")

        assert key == "x/y/z"
        assert (session.directory / "x" / "y" / "z").is_dir()
        recording_broadcaster.broadcast.assert_not_awaited()
        registry.shutdown()

    @pytest.mark.asyncio
    async def test_mkdir_non_recursive_missing_parent(
        self, store: FileStore, registry: SessionRegistry
    ) -> None:
        session = await registry.get_or_create("w1")

        with pytest.raises(NotFound):
            await store.mkdir(session, "x/y", recursive=False)
        registry.shutdown()


class TestIsolation:
    @pytest.mark.asyncio
    async def test_operations_on_one_workspace_leave_another_alone(
        self, store: FileStore, registry: SessionRegistry, recording_broadcaster: MagicMock
    ) -> None:
        w1 = await registry.get_or_create("w1")
        w2 = await registry.get_or_create("w2")
        await store.write(w2, "shared-name.txt", "w2 content")
        recording_broadcaster.broadcast.reset_mock()

        await store.write(w1, "shared-name.txt", "w1 content")
        await store.remove(w1, "shared-name.txt")

        assert w2.file_cache == {"shared-name.txt": "w2 content"}
        assert (w2.directory / "shared-name.txt").read_text() == "w2 content"
        assert {call.args[0] for call in recording_broadcaster.broadcast.await_args_list} == {"w1"}
        registry.shutdown()
