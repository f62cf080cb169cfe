from dataclasses import dataclass
from typing import Optional, Tuple
from enum import Enum

from schemaforge.domain.entities.field import Constraint, FieldSpec
from schemaforge.domain.entities.schema import TableSpec


class OperationKind(Enum):
    """Types of schema changes. Renames are never inferred."""
    CREATE_TABLE = "create_table"
    DROP_TABLE = "drop_table"
    ADD_FIELD = "add_field"
    DROP_FIELD = "drop_field"
    ALTER_FIELD_TYPE = "alter_field_type"
    ADD_CONSTRAINT = "add_constraint"
    DROP_CONSTRAINT = "drop_constraint"


class Classification(Enum):
    SAFE = "safe"
    BREAKING = "breaking"


@dataclass(frozen=True)
class MigrationOperation:
    """Represents a single atomic schema change."""
    kind: OperationKind
    table: str
    field: Optional[str] = None
    constraint: Optional[Constraint] = None
    old_field: Optional[FieldSpec] = None
    new_field: Optional[FieldSpec] = None
    old_table: Optional[TableSpec] = None
    new_table: Optional[TableSpec] = None
    reason: str = ""
    classification: Optional[Classification] = None
    rank: Optional[int] = None

    @property
    def is_safe(self) -> bool:
        return self.classification == Classification.SAFE

    @property
    def is_breaking(self) -> bool:
        return self.classification == Classification.BREAKING

    def describe(self) -> str:
        target = self.table if self.field is None else f"{self.table}.{self.field}"
        if self.constraint is not None:
            return f"{self.kind.value}({target}, {self.constraint.value})"
        return f"{self.kind.value}({target})"


@dataclass(frozen=True)
class MigrationPlan:
    """Ordered, classified plan handed to the migration-file emitter."""
    operations: Tuple[MigrationOperation, ...] = ()
    auto_apply: Tuple[MigrationOperation, ...] = ()
    pending_confirmation: Tuple[MigrationOperation, ...] = ()
    before_fingerprint: Optional[str] = None
    after_fingerprint: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.operations

    @property
    def has_breaking_changes(self) -> bool:
        return bool(self.pending_confirmation)
