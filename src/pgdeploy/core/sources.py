"""
Script and core-migration sources.

A script source is a byte-content provider keyed by project-relative path. The
core migration source supplies the ordered "core" migration set that the
planner slots between pre- and post-deploy scripts; it lives outside the
manifest's declared lists.
"""

import hashlib
import os
from pathlib import Path
from typing import Protocol

SKIPPED_DIRECTORIES = frozenset({".git", ".pgdeploy", "__pycache__"})
DEFAULT_MIGRATIONS_GLOB = "migrations/**/*.sql"


class ScriptSource(Protocol):
    """Byte-content provider keyed by relative POSIX path"""

    root: Path

    def is_file(self, path: str) -> bool: ...

    def list_files(self) -> list[str]: ...

    def read_bytes(self, path: str) -> bytes: ...

    def absolute(self, path: str) -> Path: ...


class FileSystemScriptSource:
    """Script source backed by a project directory

    Attributes:
        root: Project root; all paths are relative to it
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self._files: list[str] | None = None

    def absolute(self, path: str) -> Path:
        return self.root / path

    def is_file(self, path: str) -> bool:
        return self.absolute(path).is_file()

    def list_files(self) -> list[str]:
        """Every regular file under the root, as sorted relative POSIX paths.

        The listing is computed once per source instance.
        """
        if self._files is None:
            files: list[str] = []
            for directory, subdirs, filenames in os.walk(self.root):
                subdirs[:] = sorted(d for d in subdirs if d not in SKIPPED_DIRECTORIES)
                relative_dir = Path(directory).relative_to(self.root)
                for filename in filenames:
                    files.append((relative_dir / filename).as_posix())
            self._files = sorted(files)
        return list(self._files)

    def read_bytes(self, path: str) -> bytes:
        return self.absolute(path).read_bytes()


def fingerprint_bytes(content: bytes) -> str:
    """Content fingerprint used by the execution tracker (SHA-256 hex digest)."""
    return hashlib.sha256(content).hexdigest()


class CoreMigrationSource(Protocol):
    """Supplies the ordered core migration entries (paths or glob patterns)"""

    def entries(self) -> list[str]: ...


class DirectoryMigrationSource:
    """Core migrations discovered by a glob pattern, ordered lexicographically"""

    def __init__(self, pattern: str = DEFAULT_MIGRATIONS_GLOB) -> None:
        self.pattern = pattern

    def entries(self) -> list[str]:
        return [self.pattern]


class StaticMigrationSource:
    """Core migrations given as an explicit ordered list"""

    def __init__(self, paths: list[str] | None = None) -> None:
        self.paths = list(paths or [])

    def entries(self) -> list[str]:
        return list(self.paths)
