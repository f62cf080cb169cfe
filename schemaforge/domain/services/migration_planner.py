from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from schemaforge.domain.entities.evolution import (
    Classification,
    MigrationOperation,
    MigrationPlan,
    OperationKind,
)
from schemaforge.domain.entities.field import Constraint
from schemaforge.domain.entities.schema import TableSpec
from schemaforge.domain.errors import UnconfirmedBreakingChange

logger = logging.getLogger(__name__)

# creations first, destructive operations last
RANKS: Dict[OperationKind, int] = {
    OperationKind.CREATE_TABLE: 0,
    OperationKind.ADD_FIELD: 1,
    OperationKind.ADD_CONSTRAINT: 1,
    OperationKind.ALTER_FIELD_TYPE: 2,
    OperationKind.DROP_CONSTRAINT: 3,
    OperationKind.DROP_FIELD: 4,
    OperationKind.DROP_TABLE: 5,
}

BREAKING_CONSTRAINT_ADDS = frozenset({Constraint.REQUIRED, Constraint.UNIQUE, Constraint.PRIMARY_KEY})


class MigrationClassifier:
    """
    Assigns safe/breaking to an operation.
    The engine cannot inspect data, so anything that may reject existing
    rows or lose data is breaking.
    """

    def classify(self, op: MigrationOperation) -> Classification:
        kind = op.kind
        if kind == OperationKind.CREATE_TABLE:
            return Classification.SAFE
        if kind == OperationKind.ADD_FIELD:
            new = op.new_field
            if new is not None and new.is_required and not new.has_value_source:
                return Classification.BREAKING
            return Classification.SAFE
        if kind == OperationKind.ADD_CONSTRAINT:
            if op.constraint in BREAKING_CONSTRAINT_ADDS:
                return Classification.BREAKING
            return Classification.SAFE
        if kind == OperationKind.DROP_CONSTRAINT:
            return Classification.SAFE
        if kind in (OperationKind.DROP_TABLE, OperationKind.DROP_FIELD, OperationKind.ALTER_FIELD_TYPE):
            return Classification.BREAKING
        raise ValueError(f"Unhandled operation kind: {kind}")


class MigrationPlanner:
    """
    Ranks classified operations into one total order and gates breaking ones.
    Single Responsibility: ordering and partitioning only.
    """

    def __init__(self, classifier: Optional[MigrationClassifier] = None):
        self._classifier = classifier or MigrationClassifier()

    def build_plan(
        self,
        operations: Iterable[MigrationOperation],
        allow_breaking: bool = False,
        before_fingerprint: Optional[str] = None,
        after_fingerprint: Optional[str] = None,
    ) -> MigrationPlan:
        """Build the plan; raise UnconfirmedBreakingChange unless allowed."""
        plan = self.preview(operations, before_fingerprint, after_fingerprint)
        if plan.has_breaking_changes and not allow_breaking:
            logger.warning(
                f"[MigrationPlanner] Refusing plan with {len(plan.pending_confirmation)} breaking operation(s)"
            )
            raise UnconfirmedBreakingChange(plan)
        return plan

    def preview(
        self,
        operations: Iterable[MigrationOperation],
        before_fingerprint: Optional[str] = None,
        after_fingerprint: Optional[str] = None,
    ) -> MigrationPlan:
        """Build the ranked plan without applying the confirmation gate."""
        unique = self._deduplicate(operations)
        classified = [
            replace(op, classification=self._classifier.classify(op), rank=RANKS[op.kind])
            for op in unique
        ]
        ordered = self._order(classified)

        plan = MigrationPlan(
            operations=tuple(ordered),
            auto_apply=tuple(op for op in ordered if op.is_safe),
            pending_confirmation=tuple(op for op in ordered if op.is_breaking),
            before_fingerprint=before_fingerprint,
            after_fingerprint=after_fingerprint,
        )
        logger.info(
            f"[MigrationPlanner] {len(plan.auto_apply)} safe, "
            f"{len(plan.pending_confirmation)} breaking operation(s)"
        )
        return plan

    def _order(self, operations: List[MigrationOperation]) -> List[MigrationOperation]:
        created = {op.table: op.new_table for op in operations if op.kind == OperationKind.CREATE_TABLE}
        dropped = {op.table: op.old_table for op in operations if op.kind == OperationKind.DROP_TABLE}
        create_levels = _dependency_levels(created)
        drop_levels = _dependency_levels(dropped)

        def sort_key(op: MigrationOperation) -> Tuple:
            level = 0
            if op.kind == OperationKind.CREATE_TABLE:
                # referenced tables are created first
                level = create_levels.get(op.table, 0)
            elif op.kind == OperationKind.DROP_TABLE:
                # referencing tables are dropped first
                level = -drop_levels.get(op.table, 0)
            return (
                op.rank,
                level,
                op.table,
                op.field or "",
                op.constraint.value if op.constraint else "",
            )

        return sorted(operations, key=sort_key)

    @staticmethod
    def _deduplicate(operations: Iterable[MigrationOperation]) -> List[MigrationOperation]:
        seen: Dict[Tuple, MigrationOperation] = {}
        for op in operations:
            key = (op.kind, op.table, op.field, op.constraint)
            if key in seen:
                logger.debug(f"[MigrationPlanner] Skipped duplicate operation: {op.describe()}")
                continue
            seen[key] = op
        return list(seen.values())


def _dependency_levels(tables: Dict[str, Optional[TableSpec]]) -> Dict[str, int]:
    """Depth of each table in the foreign-key graph restricted to ``tables``."""
    levels: Dict[str, int] = {}

    def visit(name: str, path: Tuple[str, ...]) -> int:
        if name in levels:
            return levels[name]
        spec = tables.get(name)
        if spec is None or name in path:
            return 0
        refs = [r for r in spec.referenced_tables() if r in tables]
        level = 1 + max((visit(r, path + (name,)) for r in refs), default=-1)
        levels[name] = level
        return level

    for name in sorted(tables):
        visit(name, ())
    return levels
