"""Assembles the raw documents of a configuration (root, imports, services)."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Dict, List, Optional, Tuple

import yaml

from schemaforge.domain.entities.config import (
    ConfigurationBundle,
    ROOT_ROLE,
    is_service_role,
    service_role,
)
from schemaforge.domain.errors import (
    ConfigLoadFailed,
    DuplicateServiceName,
    MissingConfigFile,
    SchemaForgeError,
    UnreadableConfig,
)
from schemaforge.domain.repositories.interfaces import IConfigSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _FileJob:
    role: str
    path: str
    referenced_from: str


def parse_document(text: str, path: str) -> Dict[str, Any]:
    """Parse YAML (or JSON) text into a mapping; pure function of its input."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise UnreadableConfig(f"Not valid YAML: {e}", location=path)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise UnreadableConfig(
            f"Top level must be a mapping, got {type(data).__name__}", location=path,
        )
    return data


class ConfigurationLoader:
    """
    Reads the root configuration and every file it references.
    Single Responsibility: assemble raw documents; no schema validation.
    """

    def __init__(self, source: IConfigSource, max_workers: int = 4):
        self._source = source
        self._max_workers = max(1, max_workers)

    def load(self, root_path: str) -> ConfigurationBundle:
        root_doc = self._read(_FileJob(ROOT_ROLE, root_path, ""))
        if isinstance(root_doc, SchemaForgeError):
            raise ConfigLoadFailed([root_doc])

        errors: List[SchemaForgeError] = []
        jobs = self._collect_jobs(root_path, root_doc, errors)

        logger.info(f"[ConfigurationLoader] Root {root_path} references {len(jobs)} file(s)")

        if jobs:
            with ThreadPoolExecutor(max_workers=min(self._max_workers, len(jobs))) as pool:
                results = list(pool.map(self._read, jobs))
        else:
            results = []

        documents: Dict[str, Dict[str, Any]] = {ROOT_ROLE: root_doc}
        sources: Dict[str, str] = {ROOT_ROLE: root_path}
        roles: List[str] = [ROOT_ROLE]
        for job, result in zip(jobs, results):
            if isinstance(result, SchemaForgeError):
                errors.append(result)
                continue
            documents[job.role] = result
            sources[job.role] = job.path
            roles.append(job.role)

        if errors:
            logger.warning(f"[ConfigurationLoader] {len(errors)} file error(s) while loading {root_path}")
            raise ConfigLoadFailed(errors)

        return ConfigurationBundle(
            root_path=root_path,
            documents=documents,
            sources=sources,
            roles=tuple(roles),
        )

    def _read(self, job: _FileJob):
        """Read and parse one file; errors are returned so siblings still run."""
        location = job.referenced_from or job.path
        if not self._source.exists(job.path):
            return MissingConfigFile(
                f"File '{job.path}' for role '{job.role}' does not exist", location=location,
            )
        try:
            text = self._source.read_text(job.path)
        except (OSError, UnicodeDecodeError) as e:
            return UnreadableConfig(f"Cannot read '{job.path}': {e}", location=location)
        try:
            document = parse_document(text, job.path)
        except UnreadableConfig as e:
            return e
        logger.debug(f"[ConfigurationLoader] Loaded {job.role} from {job.path}")
        return document

    def _collect_jobs(
        self, root_path: str, root_doc: Dict[str, Any], errors: List[SchemaForgeError]
    ) -> List[_FileJob]:
        jobs: List[_FileJob] = []

        for role, relative in self._import_entries(root_doc, root_path, errors):
            if role == ROOT_ROLE or is_service_role(role) or any(j.role == role for j in jobs):
                errors.append(UnreadableConfig(f"Import role '{role}' is reserved or repeated", location=root_path))
                continue
            jobs.append(_FileJob(role, self._source.resolve(root_path, relative), root_path))

        seen: Dict[str, int] = {}
        for index, (name, relative) in enumerate(self._service_entries(root_doc, root_path, errors)):
            if name in seen:
                errors.append(DuplicateServiceName(
                    f"Service '{name}' is declared more than once (entries {seen[name] + 1} and {index + 1})",
                    location=root_path,
                ))
                continue
            seen[name] = index
            jobs.append(_FileJob(service_role(name), self._source.resolve(root_path, relative), root_path))

        return jobs

    @staticmethod
    def _import_entries(
        root_doc: Dict[str, Any], root_path: str, errors: List[SchemaForgeError]
    ) -> List[Tuple[str, str]]:
        imports = root_doc.get("imports")
        if imports is None:
            return []
        if isinstance(imports, dict):
            entries = list(imports.items())
        elif isinstance(imports, list):
            entries = [(PurePath(str(p)).stem, p) for p in imports]
        else:
            errors.append(UnreadableConfig("'imports' must be a mapping of role to path", location=root_path))
            return []

        valid = []
        for role, path in entries:
            if not isinstance(path, str) or not path:
                errors.append(UnreadableConfig(f"Import '{role}' must name a file path", location=root_path))
                continue
            valid.append((str(role), path))
        return valid

    @staticmethod
    def _service_entries(
        root_doc: Dict[str, Any], root_path: str, errors: List[SchemaForgeError]
    ) -> List[Tuple[str, str]]:
        services = root_doc.get("services")
        if services is None:
            return []
        if isinstance(services, dict):
            services = [{"name": k, "path": v} for k, v in services.items()]
        if not isinstance(services, list):
            errors.append(UnreadableConfig("'services' must be a list of service entries", location=root_path))
            return []

        entries = []
        for i, entry in enumerate(services, 1):
            name: Optional[str] = None
            path: Optional[str] = None
            if isinstance(entry, str):
                name, path = PurePath(entry).stem, entry
            elif isinstance(entry, dict):
                name = entry.get("name")
                path = entry.get("path") or entry.get("file")
                if name is None and isinstance(path, str):
                    name = PurePath(path).stem
            if not isinstance(name, str) or not name or not isinstance(path, str) or not path:
                errors.append(UnreadableConfig(
                    f"Service entry {i} needs a name and a path", location=root_path,
                ))
                continue
            entries.append((name, path))
        return entries
