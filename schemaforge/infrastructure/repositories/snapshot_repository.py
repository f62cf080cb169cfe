import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from schemaforge.domain.entities.schema import SchemaGraph
from schemaforge.domain.errors import SnapshotCorrupted
from schemaforge.domain.repositories.interfaces import ISnapshotStore
from schemaforge.infrastructure.serialization.snapshot_codec import graph_from_document, graph_to_document

logger = logging.getLogger(__name__)


class JsonFileSnapshotStore(ISnapshotStore):
    """
    Keeps the last snapshot as a JSON file.
    Each write overwrites it and keeps exactly one prior snapshot next to it
    (``snapshot.json`` -> ``snapshot.prev.json``).
    """

    def __init__(self, path: str):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def previous_path(self) -> Path:
        return self._path.with_name(f"{self._path.stem}.prev{self._path.suffix}")

    def read(self) -> Optional[SchemaGraph]:
        if not self._path.exists():
            logger.info(f"[JsonFileSnapshotStore] No snapshot at {self._path}")
            return None
        return self._read_file(self._path)

    def read_previous(self) -> Optional[SchemaGraph]:
        if not self.previous_path.exists():
            return None
        return self._read_file(self.previous_path)

    def write(self, graph: SchemaGraph) -> None:
        document = graph_to_document(graph)
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=str(self._path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, sort_keys=True, ensure_ascii=False)
            if self._path.exists():
                os.replace(self._path, self.previous_path)
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.info(f"[JsonFileSnapshotStore] Snapshot written to {self._path}")

    @staticmethod
    def _read_file(path: Path) -> SchemaGraph:
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except ValueError as e:
            raise SnapshotCorrupted(f"Snapshot is not valid JSON: {e}", str(path))
        return graph_from_document(data, str(path))


class InMemorySnapshotStore(ISnapshotStore):
    """Snapshot store kept in process memory; stores the serialized form."""

    def __init__(self, graph: Optional[SchemaGraph] = None):
        self._document: Optional[Dict[str, Any]] = graph_to_document(graph) if graph is not None else None
        self._previous: Optional[Dict[str, Any]] = None
        self.writes = 0

    def read(self) -> Optional[SchemaGraph]:
        if self._document is None:
            return None
        return graph_from_document(self._document, "memory")

    def read_previous(self) -> Optional[SchemaGraph]:
        if self._previous is None:
            return None
        return graph_from_document(self._previous, "memory")

    def write(self, graph: SchemaGraph) -> None:
        self._previous = self._document
        self._document = graph_to_document(graph)
        self.writes += 1
