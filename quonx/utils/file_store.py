"""Project file access confined to a root directory."""
import os
from typing import Any, Dict, List

import aiofiles
import logging

from quonx.errors import InvalidPathError, NotFoundError, UnreadableFileError

logger = logging.getLogger(__name__)

SKIPPED_DIRECTORIES = {".git", "node_modules", "__pycache__", ".venv", "dist", "build"}


class ProjectFileStore:
    """Reads and writes files under a project root."""

    def __init__(self, root: str):
        self.root = os.path.realpath(root)

    def resolve(self, relative_path: str) -> str:
        """
        Map a relative path to an absolute one inside the root.

        Raises:
            InvalidPathError: If the path escapes the root
        """
        if relative_path is None or os.path.isabs(relative_path):
            raise InvalidPathError(str(relative_path))

        absolute = os.path.realpath(os.path.join(self.root, relative_path))
        if absolute != self.root and not absolute.startswith(self.root + os.sep):
            raise InvalidPathError(relative_path)
        return absolute

    async def read(self, relative_path: str) -> str:
        """
        Read a UTF-8 text file under the root.

        Raises:
            InvalidPathError: If the path escapes the root
            NotFoundError: If there is no such file
            UnreadableFileError: If the file is binary or cannot be opened
        """
        file_path = self.resolve(relative_path)
        if not os.path.isfile(file_path):
            raise NotFoundError(f"File not found: {relative_path}", details={"path": relative_path})

        try:
            async with aiofiles.open(file_path, 'r', encoding='utf-8') as f:
                return await f.read()
        except UnicodeDecodeError:
            raise UnreadableFileError(relative_path, "not UTF-8 text")
        except OSError as e:
            raise UnreadableFileError(relative_path, e.strerror or str(e))

    async def write(self, relative_path: str, content: str):
        file_path = self.resolve(relative_path)
        if file_path == self.root:
            raise InvalidPathError(relative_path)

        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        async with aiofiles.open(file_path, 'w', encoding='utf-8') as f:
            await f.write(content)
        logger.info(f"Saved file {relative_path}")

    def list_directory(self, relative_path: str = "") -> List[Dict[str, Any]]:
        """
        List one directory level, directories first.

        Args:
            relative_path: Directory relative to the root, empty for the root itself

        Returns:
            Entries with name, path, type and size
        """
        directory = self.resolve(relative_path or ".")
        if not os.path.isdir(directory):
            raise NotFoundError(f"Directory not found: {relative_path}", details={"path": relative_path})

        entries = []
        with os.scandir(directory) as it:
            for entry in it:
                if entry.name in SKIPPED_DIRECTORIES:
                    continue
                is_dir = entry.is_dir()
                entries.append({
                    "name": entry.name,
                    "path": os.path.relpath(entry.path, self.root),
                    "type": "directory" if is_dir else "file",
                    "size": 0 if is_dir else entry.stat().st_size,
                })

        entries.sort(key=lambda e: (e["type"] != "directory", e["name"].lower()))
        return entries
