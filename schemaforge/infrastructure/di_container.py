"""Dependency Injection Container."""

from typing import Optional
import os
import logging

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_PATH = ".schemaforge/snapshot.json"
DEFAULT_LOADER_WORKERS = 4


class DIContainer:
    """
    Dependency Injection Container.
    Follows Dependency Inversion Principle.
    """

    def __init__(self):
        self._snapshot_path: str = os.getenv("SCHEMAFORGE_SNAPSHOT_PATH", DEFAULT_SNAPSHOT_PATH)
        self._loader_workers: int = _int_env("SCHEMAFORGE_LOADER_WORKERS", DEFAULT_LOADER_WORKERS)
        self._services = {}

    def configure(self, snapshot_path: Optional[str] = None, loader_workers: Optional[int] = None):
        """Configure the container; explicit values win over the environment."""
        if snapshot_path is not None:
            self._snapshot_path = snapshot_path
        if loader_workers is not None:
            self._loader_workers = loader_workers
        self._services.clear()

    @property
    def snapshot_path(self) -> str:
        return self._snapshot_path

    def get_config_source(self):
        """Get configuration file source."""
        if "config_source" not in self._services:
            from schemaforge.infrastructure.config.file_source import LocalFileSource
            self._services["config_source"] = LocalFileSource()
        return self._services["config_source"]

    def get_loader(self):
        """Get configuration loader."""
        if "loader" not in self._services:
            from schemaforge.infrastructure.config.loader import ConfigurationLoader
            self._services["loader"] = ConfigurationLoader(self.get_config_source(), self._loader_workers)
        return self._services["loader"]

    def get_resolver(self):
        """Get configuration resolver."""
        if "resolver" not in self._services:
            from schemaforge.domain.services.resolver import ConfigurationResolver
            self._services["resolver"] = ConfigurationResolver()
        return self._services["resolver"]

    def get_snapshot_store(self):
        """Get snapshot store."""
        if "snapshot_store" not in self._services:
            from schemaforge.infrastructure.repositories.snapshot_repository import JsonFileSnapshotStore
            self._services["snapshot_store"] = JsonFileSnapshotStore(self._snapshot_path)
            logger.debug(f"[DIContainer] Snapshot store at {self._snapshot_path}")
        return self._services["snapshot_store"]

    def get_diff_engine(self):
        """Get diff engine."""
        if "diff_engine" not in self._services:
            from schemaforge.domain.services.diff_engine import DiffEngine
            self._services["diff_engine"] = DiffEngine()
        return self._services["diff_engine"]

    def get_planner(self):
        """Get migration planner."""
        if "planner" not in self._services:
            from schemaforge.domain.services.migration_planner import MigrationPlanner
            self._services["planner"] = MigrationPlanner()
        return self._services["planner"]

    def get_resolve_use_case(self):
        from schemaforge.application.use_case.resolve_configuration import ResolveConfigurationUseCase
        return ResolveConfigurationUseCase(self.get_loader(), self.get_resolver())

    def get_plan_use_case(self):
        from schemaforge.application.use_case.plan_migration import PlanMigrationUseCase
        return PlanMigrationUseCase(self.get_snapshot_store(), self.get_diff_engine(), self.get_planner())

    def get_orchestrator(self):
        """Get generation orchestrator."""
        from schemaforge.application.orchestrators.generation_orchestrator import GenerationOrchestrator
        return GenerationOrchestrator(
            self.get_resolve_use_case(),
            self.get_plan_use_case(),
            self.get_snapshot_store(),
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[DIContainer] Ignoring non-integer {name}={raw!r}, using {default}")
        return default
