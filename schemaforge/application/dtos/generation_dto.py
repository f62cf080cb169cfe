"""Data Transfer Objects for application layer."""

from dataclasses import dataclass
from typing import Optional

from schemaforge.domain.entities.evolution import MigrationPlan
from schemaforge.domain.entities.schema import SchemaGraph


@dataclass(frozen=True)
class GenerationRequest:
    """Request to resolve a configuration and plan its migration."""
    config_path: str
    allow_breaking: bool = False
    dry_run: bool = False


@dataclass(frozen=True)
class GenerationResponse:
    """Canonical graph plus the plan for the migration-file emitter."""
    graph: SchemaGraph
    plan: MigrationPlan
    fingerprint: str
    previous_fingerprint: Optional[str] = None
    snapshot_written: bool = False

    @property
    def migration_required(self) -> bool:
        return not self.plan.is_empty
