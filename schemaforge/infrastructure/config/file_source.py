from pathlib import Path

from schemaforge.domain.repositories.interfaces import IConfigSource


class LocalFileSource(IConfigSource):
    """Reads configuration files from the local filesystem."""

    def __init__(self, encoding: str = "utf-8"):
        self._encoding = encoding

    def exists(self, path: str) -> bool:
        return Path(path).is_file()

    def read_text(self, path: str) -> str:
        return Path(path).read_text(encoding=self._encoding)

    def resolve(self, base: str, relative: str) -> str:
        candidate = Path(relative)
        if candidate.is_absolute():
            return str(candidate)
        return str(Path(base).parent / candidate)
