from typing import List, Optional
import logging

from schemaforge.domain.entities.evolution import MigrationOperation, OperationKind
from schemaforge.domain.entities.field import Constraint, FieldSpec
from schemaforge.domain.entities.schema import SchemaGraph, TableSpec

logger = logging.getLogger(__name__)


class DiffEngine:
    """
    Computes structural differences between two canonical schema graphs.
    Single Responsibility: Only handles diff computation; no classification.

    Renames are never inferred: a renamed table or field always shows up as
    a drop plus an add.
    """

    def compute_diff(self, before: Optional[SchemaGraph], after: SchemaGraph) -> List[MigrationOperation]:
        """
        Compute the operations that turn ``before`` into ``after``.
        ``before`` may be None when no snapshot exists yet.
        """
        before = before or SchemaGraph()
        changes: List[MigrationOperation] = []

        before_tables = before.tables_by_name
        after_tables = after.tables_by_name

        for table in after.tables:
            if table.name not in before_tables:
                changes.append(MigrationOperation(
                    kind=OperationKind.CREATE_TABLE,
                    table=table.name,
                    new_table=table,
                    reason=f"Table '{table.name}' is new",
                ))
            else:
                changes.extend(self._compare_fields(before_tables[table.name], table))

        for table in before.tables:
            if table.name not in after_tables:
                # the drop subsumes the table's own fields
                changes.append(MigrationOperation(
                    kind=OperationKind.DROP_TABLE,
                    table=table.name,
                    old_table=table,
                    reason=f"Table '{table.name}' was removed",
                ))

        logger.info(f"[DiffEngine] {len(changes)} operation(s) between snapshots")
        return changes

    def _compare_fields(self, old: TableSpec, new: TableSpec) -> List[MigrationOperation]:
        changes: List[MigrationOperation] = []
        old_names = set(old.field_names())
        new_names = set(new.field_names())

        for f in new.fields:
            if f.name not in old_names:
                changes.append(MigrationOperation(
                    kind=OperationKind.ADD_FIELD,
                    table=new.name,
                    field=f.name,
                    new_field=f,
                    reason=f"Field '{f.name}' is new",
                ))
            else:
                changes.extend(self._compare_field(new.name, old.get_field(f.name), f))

        for f in old.fields:
            if f.name not in new_names:
                changes.append(MigrationOperation(
                    kind=OperationKind.DROP_FIELD,
                    table=new.name,
                    field=f.name,
                    old_field=f,
                    reason=f"Field '{f.name}' was removed",
                ))
        return changes

    def _compare_field(self, table: str, old: FieldSpec, new: FieldSpec) -> List[MigrationOperation]:
        changes: List[MigrationOperation] = []

        # type, bounds, default, enum and reference changes fold into one alter
        if not old.same_shape(new):
            if old.universal_type != new.universal_type:
                reason = f"Type changes from {old.universal_type.value} to {new.universal_type.value}"
            else:
                reason = "Bounds, default, enum values or reference changed"
            changes.append(MigrationOperation(
                kind=OperationKind.ALTER_FIELD_TYPE,
                table=table,
                field=new.name,
                old_field=old,
                new_field=new,
                reason=reason,
            ))

        for constraint in Constraint:
            was, now = old.has(constraint), new.has(constraint)
            if was == now:
                continue
            changes.append(MigrationOperation(
                kind=OperationKind.ADD_CONSTRAINT if now else OperationKind.DROP_CONSTRAINT,
                table=table,
                field=new.name,
                constraint=constraint,
                old_field=old,
                new_field=new,
                reason=f"Constraint '{constraint.value}' {'added' if now else 'removed'}",
            ))
        return changes
