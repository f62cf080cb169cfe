from dataclasses import dataclass, field
from typing import Any, FrozenSet, Optional, Tuple
from enum import Enum


class UniversalType(Enum):
    """Field types shared by every target language."""
    STRING = "string"
    TEXT = "text"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    UUID = "uuid"
    TIMESTAMP = "timestamp"
    DATE = "date"
    JSON = "json"


class Constraint(Enum):
    """Closed set of constraint flags a field may carry."""
    REQUIRED = "required"
    UNIQUE = "unique"
    INDEXED = "indexed"
    PRIMARY_KEY = "primary_key"
    AUTO_INCREMENT = "auto_increment"
    AUTO_ADD = "auto_add"
    AUTO_UPDATE = "auto_update"


LENGTH_TYPES = frozenset({UniversalType.STRING, UniversalType.TEXT})
NUMERIC_TYPES = frozenset({UniversalType.INTEGER, UniversalType.FLOAT})
TEMPORAL_TYPES = frozenset({UniversalType.TIMESTAMP, UniversalType.DATE})


@dataclass(frozen=True)
class Bounds:
    """Optional length and value limits of a field."""
    max_length: Optional[int] = None
    min_length: Optional[int] = None
    min_value: Optional[Any] = None
    max_value: Optional[Any] = None

    def is_empty(self) -> bool:
        return (
            self.max_length is None
            and self.min_length is None
            and self.min_value is None
            and self.max_value is None
        )


@dataclass(frozen=True)
class FieldReference:
    """Foreign key pointer to ``table.field``."""
    table: str
    field: str

    def __str__(self) -> str:
        return f"{self.table}.{self.field}"


@dataclass(frozen=True)
class FieldSpec:
    """One declared field of a table."""
    name: str
    universal_type: UniversalType
    constraints: FrozenSet[Constraint] = field(default_factory=frozenset)
    bounds: Bounds = field(default_factory=Bounds)
    default: Optional[Any] = None
    has_default: bool = False
    enum_values: Tuple[Any, ...] = ()
    reference: Optional[FieldReference] = None

    def has(self, constraint: Constraint) -> bool:
        return constraint in self.constraints

    @property
    def is_primary_key(self) -> bool:
        return Constraint.PRIMARY_KEY in self.constraints

    @property
    def is_required(self) -> bool:
        # primary_key implies required
        return self.is_primary_key or Constraint.REQUIRED in self.constraints

    @property
    def is_unique(self) -> bool:
        return self.is_primary_key or Constraint.UNIQUE in self.constraints

    @property
    def has_value_source(self) -> bool:
        """True when the database can fill the column without the caller."""
        return (
            self.has_default
            or Constraint.AUTO_ADD in self.constraints
            or Constraint.AUTO_UPDATE in self.constraints
            or Constraint.AUTO_INCREMENT in self.constraints
        )

    def same_shape(self, other: "FieldSpec") -> bool:
        """Compare everything except the name and the constraint flags."""
        return (
            self.universal_type == other.universal_type
            and self.bounds == other.bounds
            and self.has_default == other.has_default
            and _same_literal(self.default, other.default)
            and self.enum_values == other.enum_values
            and self.reference == other.reference
        )


def _same_literal(a: Any, b: Any) -> bool:
    # 1 == 1.0 == True in Python; a change of literal kind is still a change
    return type(a) is type(b) and a == b
