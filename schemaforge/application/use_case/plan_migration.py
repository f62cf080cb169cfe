"""Use case for generating the migration plan."""
from typing import Optional, Tuple

from schemaforge.domain.entities.evolution import MigrationPlan
from schemaforge.domain.entities.schema import SchemaGraph
from schemaforge.domain.repositories.interfaces import ISnapshotStore
from schemaforge.domain.services.diff_engine import DiffEngine
from schemaforge.domain.services.migration_planner import MigrationPlanner
from schemaforge.infrastructure.serialization.snapshot_codec import graph_fingerprint


class PlanMigrationUseCase:
    """
    Use case: Diff the new graph against the last snapshot and plan it.
    Single Responsibility: Produce the migration plan; never persists.
    """

    def __init__(self, snapshot_store: ISnapshotStore, diff_engine: DiffEngine, planner: MigrationPlanner):
        self._snapshots = snapshot_store
        self._diff_engine = diff_engine
        self._planner = planner

    def execute(self, graph: SchemaGraph, allow_breaking: bool = False, gate: bool = True) -> MigrationPlan:
        """
        Build the plan. With ``gate`` the planner raises UnconfirmedBreakingChange
        when breaking operations exist and ``allow_breaking`` is False.
        """
        _, plan = self.execute_with_baseline(graph, allow_breaking, gate)
        return plan

    def execute_with_baseline(
        self, graph: SchemaGraph, allow_breaking: bool = False, gate: bool = True
    ) -> Tuple[Optional[SchemaGraph], MigrationPlan]:
        baseline = self._snapshots.read()
        operations = self._diff_engine.compute_diff(baseline, graph)
        before = graph_fingerprint(baseline) if baseline is not None else None
        after = graph_fingerprint(graph)
        if gate:
            plan = self._planner.build_plan(operations, allow_breaking, before, after)
        else:
            plan = self._planner.preview(operations, before, after)
        return baseline, plan
