from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple
from enum import Enum

from schemaforge.domain.entities.field import FieldSpec


class RelationKind(Enum):
    """Cardinality of a relation between two tables."""
    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"


@dataclass(frozen=True)
class RelationSpec:
    """Typed edge from the declaring table to ``target``."""
    name: str
    kind: RelationKind
    target: str
    field: str
    through: Optional[str] = None

    def owning_table(self, declaring_table: str) -> str:
        """Table that physically holds ``field``."""
        if self.kind == RelationKind.ONE_TO_MANY:
            return self.target
        if self.kind == RelationKind.MANY_TO_MANY:
            return self.through or declaring_table
        return declaring_table


@dataclass(frozen=True)
class TableSpec:
    """A model/table with its ordered fields."""
    name: str
    fields: Tuple[FieldSpec, ...]
    relations: Tuple[RelationSpec, ...] = ()
    source: str = ""

    def get_field(self, name: str) -> Optional[FieldSpec]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def primary_keys(self) -> Tuple[FieldSpec, ...]:
        return tuple(f for f in self.fields if f.is_primary_key)

    def referenced_tables(self) -> Tuple[str, ...]:
        """Tables this one points at through foreign keys, in field order."""
        seen = []
        for f in self.fields:
            if f.reference and f.reference.table != self.name and f.reference.table not in seen:
                seen.append(f.reference.table)
        return tuple(seen)


@dataclass(frozen=True)
class RateLimit:
    """Requests allowed per period."""
    requests: int
    period_seconds: int


@dataclass(frozen=True)
class AuthPolicy:
    required: bool = False
    permissions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class EndpointSpec:
    """A route declaration; rendered by the emitters, not by this engine."""
    path: str
    methods: Tuple[str, ...] = ("GET",)
    permissions: Tuple[str, ...] = ()
    auth_required: bool = False
    table: Optional[str] = None


@dataclass(frozen=True)
class ServiceSpec:
    """Groups tables and endpoints for naming; not part of migrations."""
    name: str
    source: str
    base_path: str = ""
    tables: Tuple[str, ...] = ()
    endpoints: Tuple[EndpointSpec, ...] = ()
    auth: AuthPolicy = field(default_factory=AuthPolicy)
    rate_limit: Optional[RateLimit] = None


@dataclass(frozen=True)
class GlobalSettings:
    """Project-wide settings from the root, security and api documents."""
    project_name: str = ""
    database_provider: str = "postgresql"
    auth_enabled: bool = False
    auth_mode: str = "none"
    api_prefix: str = ""
    rate_limit: Optional[RateLimit] = None
    endpoints: Tuple[EndpointSpec, ...] = ()


@dataclass(frozen=True)
class SchemaGraph:
    """Canonical, resolved schema of one configuration generation."""
    tables: Tuple[TableSpec, ...] = ()
    services: Tuple[ServiceSpec, ...] = ()
    settings: GlobalSettings = field(default_factory=GlobalSettings)

    @property
    def tables_by_name(self) -> Mapping[str, TableSpec]:
        return MappingProxyType({t.name: t for t in self.tables})

    def get_table(self, name: str) -> Optional[TableSpec]:
        for t in self.tables:
            if t.name == name:
                return t
        return None

    def table_names(self) -> Tuple[str, ...]:
        return tuple(t.name for t in self.tables)

    def get_service(self, name: str) -> Optional[ServiceSpec]:
        for s in self.services:
            if s.name == name:
                return s
        return None
