"""
Tests for project file access.
"""
import pytest

from quonx.errors import InvalidPathError, NotFoundError, UnreadableFileError
from quonx.utils.file_store import ProjectFileStore


@pytest.fixture
def file_store(project_dir):
    return ProjectFileStore(str(project_dir))


class TestProjectFileStore:
    """Root confinement, reads and writes"""

    @pytest.mark.asyncio
    async def test_read(self, file_store):
        assert await file_store.read("src/app.py") == "print('hello')\n"

    @pytest.mark.asyncio
    async def test_read_missing(self, file_store):
        with pytest.raises(NotFoundError):
            await file_store.read("src/missing.py")

    @pytest.mark.asyncio
    async def test_read_binary_file(self, file_store, project_dir):
        (project_dir / "blob.bin").write_bytes(b"\xff\xfe\x00\x81")

        with pytest.raises(UnreadableFileError) as exc_info:
            await file_store.read("blob.bin")

        assert exc_info.value.error_code == "UNREADABLE_FILE"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["../outside.txt", "src/../../outside.txt", "/etc/passwd"])
    async def test_paths_outside_root_are_rejected(self, file_store, path):
        with pytest.raises(InvalidPathError):
            await file_store.read(path)

    @pytest.mark.asyncio
    async def test_write_creates_directories(self, file_store, project_dir):
        await file_store.write("docs/notes.md", "# Notes\n")

        assert (project_dir / "docs" / "notes.md").read_text(encoding="utf-8") == "# Notes\n"

    @pytest.mark.asyncio
    async def test_write_outside_root_is_rejected(self, file_store):
        with pytest.raises(InvalidPathError):
            await file_store.write("../escape.txt", "x")

    def test_list_directory_puts_directories_first(self, file_store):
        entries = file_store.list_directory()

        assert [e["name"] for e in entries] == ["src", "README.md"]
        assert entries[0]["type"] == "directory"
        assert entries[1]["size"] == len("# Demo\n")

    def test_list_missing_directory(self, file_store):
        with pytest.raises(NotFoundError):
            file_store.list_directory("nope")
