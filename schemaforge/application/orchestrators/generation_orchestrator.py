"""Main orchestrator for one generation run."""
import logging
from typing import Callable, Optional

from schemaforge.application.dtos.generation_dto import GenerationRequest, GenerationResponse
from schemaforge.application.use_case.plan_migration import PlanMigrationUseCase
from schemaforge.application.use_case.resolve_configuration import ResolveConfigurationUseCase
from schemaforge.domain.entities.evolution import MigrationPlan
from schemaforge.domain.repositories.interfaces import ISnapshotStore
from schemaforge.infrastructure.serialization.snapshot_codec import graph_fingerprint

logger = logging.getLogger(__name__)

PlanEmitter = Callable[[MigrationPlan], None]


class GenerationOrchestrator:
    """
    Main orchestrator coordinating resolution, planning and the snapshot.
    Single Responsibility: Coordinate use cases; the snapshot is only
    replaced after a run that passed every check and whose plan was handed on.

    Two concurrent runs against the same snapshot are not coordinated here;
    callers must serialize them.
    """

    def __init__(
        self,
        resolve_use_case: ResolveConfigurationUseCase,
        plan_use_case: PlanMigrationUseCase,
        snapshot_store: ISnapshotStore,
    ):
        self._resolve = resolve_use_case
        self._plan = plan_use_case
        self._snapshots = snapshot_store

    def generate(self, request: GenerationRequest, emit_plan: Optional[PlanEmitter] = None) -> GenerationResponse:
        """
        Process a complete generation request.

        ``emit_plan`` receives a non-empty plan before the snapshot is
        replaced; if it raises, the snapshot is left untouched.
        """

        # Step 1: Resolve
        graph = self._resolve.execute(request.config_path)
        fingerprint = graph_fingerprint(graph)

        # Step 2: Plan against the last snapshot (raises on unconfirmed breaking changes)
        baseline, plan = self._plan.execute_with_baseline(
            graph,
            allow_breaking=request.allow_breaking,
            gate=not request.dry_run,
        )
        logger.info(
            f"[GenerationOrchestrator] {len(plan.operations)} operation(s), "
            f"{len(plan.pending_confirmation)} breaking"
        )

        if request.dry_run:
            logger.info("[GenerationOrchestrator] Dry run - snapshot left untouched")
            return self._response(graph, plan, fingerprint, written=False)

        # Step 3: Hand the plan on
        if emit_plan is not None and not plan.is_empty:
            emit_plan(plan)

        # Step 4: Persist the new baseline
        written = False
        if baseline is not None and plan.before_fingerprint == fingerprint:
            logger.info("[GenerationOrchestrator] Schema unchanged - snapshot left untouched")
        else:
            self._snapshots.write(graph)
            written = True

        return self._response(graph, plan, fingerprint, written)

    @staticmethod
    def _response(graph, plan, fingerprint, written) -> GenerationResponse:
        return GenerationResponse(
            graph=graph,
            plan=plan,
            fingerprint=fingerprint,
            previous_fingerprint=plan.before_fingerprint,
            snapshot_written=written,
        )
