from abc import ABC, abstractmethod
from typing import Optional

from schemaforge.domain.entities.schema import SchemaGraph


class IConfigSource(ABC):
    """File existence/read capability supplied by the caller."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return True if ``path`` can be read."""
        pass

    @abstractmethod
    def read_text(self, path: str) -> str:
        """Return the full text content of ``path``."""
        pass

    @abstractmethod
    def resolve(self, base: str, relative: str) -> str:
        """Resolve ``relative`` against the directory containing ``base``."""
        pass


class ISnapshotStore(ABC):
    """Persists the canonical graph of the last successful generation."""

    @abstractmethod
    def read(self) -> Optional[SchemaGraph]:
        """Return the last snapshot, or None when there is none yet."""
        pass

    @abstractmethod
    def write(self, graph: SchemaGraph) -> None:
        """Replace the stored snapshot with ``graph``."""
        pass
