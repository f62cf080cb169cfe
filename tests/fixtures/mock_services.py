import posixpath
import threading
from typing import Dict, List

from schemaforge.domain.repositories.interfaces import IConfigSource


class MockConfigSource(IConfigSource):
    """In-memory file tree for loader tests; records every read."""

    def __init__(self, files: Dict[str, str]):
        self.files = dict(files)
        self.reads: List[str] = []
        self._lock = threading.Lock()

    def exists(self, path: str) -> bool:
        return path in self.files

    def read_text(self, path: str) -> str:
        with self._lock:
            self.reads.append(path)
        return self.files[path]

    def resolve(self, base: str, relative: str) -> str:
        if relative.startswith("/"):
            return relative
        return posixpath.normpath(posixpath.join(posixpath.dirname(base), relative))


class FailingConfigSource(MockConfigSource):
    """Raises OSError for the listed paths even though they exist."""

    def __init__(self, files: Dict[str, str], failing: List[str]):
        super().__init__(files)
        self.failing = set(failing)

    def read_text(self, path: str) -> str:
        if path in self.failing:
            raise OSError(f"permission denied: {path}")
        return super().read_text(path)
