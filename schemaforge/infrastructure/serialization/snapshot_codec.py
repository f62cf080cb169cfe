"""
Document models for persisted snapshots and emitted migration plans.
Snapshots must round-trip a SchemaGraph exactly: field order, constraint
sets, bounds and the literal kind of defaults.
"""

import hashlib
import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from schemaforge.domain.entities.evolution import Classification, MigrationOperation, MigrationPlan, OperationKind
from schemaforge.domain.entities.field import Bounds, Constraint, FieldReference, FieldSpec, UniversalType
from schemaforge.domain.entities.schema import (
    AuthPolicy,
    EndpointSpec,
    GlobalSettings,
    RateLimit,
    RelationKind,
    RelationSpec,
    SchemaGraph,
    ServiceSpec,
    TableSpec,
)
from schemaforge.domain.errors import SnapshotCorrupted
from schemaforge.domain.services.constraint_parser import format_field_definition

SNAPSHOT_FORMAT_VERSION = 1

Number = Union[int, float]


class BoundsModel(BaseModel):
    max_length: Optional[int] = None
    min_length: Optional[int] = None
    min_value: Optional[Number] = None
    max_value: Optional[Number] = None


class ReferenceModel(BaseModel):
    table: str
    field: str


class FieldModel(BaseModel):
    """Serialized FieldSpec."""
    name: str
    type: UniversalType
    constraints: List[Constraint] = Field(default_factory=list, description="Declared flags in canonical order")
    bounds: BoundsModel = Field(default_factory=BoundsModel)
    has_default: bool = False
    default: Any = None
    enum_values: List[Any] = Field(default_factory=list)
    reference: Optional[ReferenceModel] = None


class RelationModel(BaseModel):
    name: str
    kind: RelationKind
    target: str
    field: str
    through: Optional[str] = None


class TableModel(BaseModel):
    name: str
    source: str = ""
    fields: List[FieldModel] = Field(default_factory=list, description="Fields in declaration order")
    relations: List[RelationModel] = Field(default_factory=list)


class RateLimitModel(BaseModel):
    requests: int
    period_seconds: int


class AuthModel(BaseModel):
    required: bool = False
    permissions: List[str] = Field(default_factory=list)


class EndpointModel(BaseModel):
    path: str
    methods: List[str] = Field(default_factory=lambda: ["GET"])
    permissions: List[str] = Field(default_factory=list)
    auth_required: bool = False
    table: Optional[str] = None


class ServiceModel(BaseModel):
    name: str
    source: str
    base_path: str = ""
    tables: List[str] = Field(default_factory=list)
    endpoints: List[EndpointModel] = Field(default_factory=list)
    auth: AuthModel = Field(default_factory=AuthModel)
    rate_limit: Optional[RateLimitModel] = None


class SettingsModel(BaseModel):
    project_name: str = ""
    database_provider: str = "postgresql"
    auth_enabled: bool = False
    auth_mode: str = "none"
    api_prefix: str = ""
    rate_limit: Optional[RateLimitModel] = None
    endpoints: List[EndpointModel] = Field(default_factory=list)


class GraphModel(BaseModel):
    tables: List[TableModel] = Field(default_factory=list)
    services: List[ServiceModel] = Field(default_factory=list)
    settings: SettingsModel = Field(default_factory=SettingsModel)


class SnapshotDocument(BaseModel):
    """What the snapshot store persists."""
    format_version: int = SNAPSHOT_FORMAT_VERSION
    fingerprint: str
    graph: GraphModel


class OperationModel(BaseModel):
    kind: OperationKind
    table: str
    field: Optional[str] = None
    constraint: Optional[Constraint] = None
    classification: Classification
    rank: int
    reason: str = ""
    old_definition: Optional[str] = None
    new_definition: Optional[str] = None
    old_field: Optional[FieldModel] = None
    new_field: Optional[FieldModel] = None
    new_table: Optional[TableModel] = None


class PlanDocument(BaseModel):
    """What the migration-file emitter receives."""
    before_fingerprint: Optional[str] = None
    after_fingerprint: Optional[str] = None
    operations: List[OperationModel] = Field(default_factory=list)
    auto_apply: List[OperationModel] = Field(default_factory=list)
    pending_confirmation: List[OperationModel] = Field(default_factory=list)


# ---------------------------------------------------------------- to models

def _field_model(spec: FieldSpec) -> FieldModel:
    return FieldModel(
        name=spec.name,
        type=spec.universal_type,
        constraints=[c for c in Constraint if c in spec.constraints],
        bounds=BoundsModel(
            max_length=spec.bounds.max_length,
            min_length=spec.bounds.min_length,
            min_value=spec.bounds.min_value,
            max_value=spec.bounds.max_value,
        ),
        has_default=spec.has_default,
        default=spec.default,
        enum_values=list(spec.enum_values),
        reference=ReferenceModel(table=spec.reference.table, field=spec.reference.field) if spec.reference else None,
    )


def _table_model(table: TableSpec) -> TableModel:
    return TableModel(
        name=table.name,
        source=table.source,
        fields=[_field_model(f) for f in table.fields],
        relations=[
            RelationModel(name=r.name, kind=r.kind, target=r.target, field=r.field, through=r.through)
            for r in table.relations
        ],
    )


def _rate_model(rate: Optional[RateLimit]) -> Optional[RateLimitModel]:
    if rate is None:
        return None
    return RateLimitModel(requests=rate.requests, period_seconds=rate.period_seconds)


def _endpoint_model(ep: EndpointSpec) -> EndpointModel:
    return EndpointModel(
        path=ep.path,
        methods=list(ep.methods),
        permissions=list(ep.permissions),
        auth_required=ep.auth_required,
        table=ep.table,
    )


def graph_model(graph: SchemaGraph) -> GraphModel:
    s = graph.settings
    return GraphModel(
        tables=[_table_model(t) for t in graph.tables],
        services=[
            ServiceModel(
                name=svc.name,
                source=svc.source,
                base_path=svc.base_path,
                tables=list(svc.tables),
                endpoints=[_endpoint_model(ep) for ep in svc.endpoints],
                auth=AuthModel(required=svc.auth.required, permissions=list(svc.auth.permissions)),
                rate_limit=_rate_model(svc.rate_limit),
            )
            for svc in graph.services
        ],
        settings=SettingsModel(
            project_name=s.project_name,
            database_provider=s.database_provider,
            auth_enabled=s.auth_enabled,
            auth_mode=s.auth_mode,
            api_prefix=s.api_prefix,
            rate_limit=_rate_model(s.rate_limit),
            endpoints=[_endpoint_model(ep) for ep in s.endpoints],
        ),
    )


def _canonical_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _fingerprint(model: GraphModel) -> str:
    data = model.model_dump(mode="json")
    return hashlib.sha256(_canonical_json(data).encode("utf-8")).hexdigest()


def graph_fingerprint(graph: SchemaGraph) -> str:
    """SHA-256 of the canonical JSON form of ``graph``."""
    return _fingerprint(graph_model(graph))


def graph_to_document(graph: SchemaGraph) -> Dict[str, Any]:
    model = graph_model(graph)
    return SnapshotDocument(fingerprint=_fingerprint(model), graph=model).model_dump(mode="json")


# -------------------------------------------------------------- from models

def _field_spec(model: FieldModel) -> FieldSpec:
    return FieldSpec(
        name=model.name,
        universal_type=model.type,
        constraints=frozenset(model.constraints),
        bounds=Bounds(
            max_length=model.bounds.max_length,
            min_length=model.bounds.min_length,
            min_value=model.bounds.min_value,
            max_value=model.bounds.max_value,
        ),
        default=model.default,
        has_default=model.has_default,
        enum_values=tuple(model.enum_values),
        reference=FieldReference(model.reference.table, model.reference.field) if model.reference else None,
    )


def _rate_limit(model: Optional[RateLimitModel]) -> Optional[RateLimit]:
    if model is None:
        return None
    return RateLimit(requests=model.requests, period_seconds=model.period_seconds)


def _endpoint(model: EndpointModel) -> EndpointSpec:
    return EndpointSpec(
        path=model.path,
        methods=tuple(model.methods),
        permissions=tuple(model.permissions),
        auth_required=model.auth_required,
        table=model.table,
    )


def graph_from_model(model: GraphModel) -> SchemaGraph:
    s = model.settings
    return SchemaGraph(
        tables=tuple(
            TableSpec(
                name=t.name,
                fields=tuple(_field_spec(f) for f in t.fields),
                relations=tuple(
                    RelationSpec(name=r.name, kind=r.kind, target=r.target, field=r.field, through=r.through)
                    for r in t.relations
                ),
                source=t.source,
            )
            for t in model.tables
        ),
        services=tuple(
            ServiceSpec(
                name=svc.name,
                source=svc.source,
                base_path=svc.base_path,
                tables=tuple(svc.tables),
                endpoints=tuple(_endpoint(ep) for ep in svc.endpoints),
                auth=AuthPolicy(required=svc.auth.required, permissions=tuple(svc.auth.permissions)),
                rate_limit=_rate_limit(svc.rate_limit),
            )
            for svc in model.services
        ),
        settings=GlobalSettings(
            project_name=s.project_name,
            database_provider=s.database_provider,
            auth_enabled=s.auth_enabled,
            auth_mode=s.auth_mode,
            api_prefix=s.api_prefix,
            rate_limit=_rate_limit(s.rate_limit),
            endpoints=tuple(_endpoint(ep) for ep in s.endpoints),
        ),
    )


def graph_from_document(data: Any, location: str = "") -> SchemaGraph:
    """Decode a stored snapshot, verifying its version and fingerprint."""
    try:
        document = SnapshotDocument.model_validate(data)
    except ValidationError as e:
        raise SnapshotCorrupted(f"Snapshot does not match the expected shape: {e}", location)
    if document.format_version != SNAPSHOT_FORMAT_VERSION:
        raise SnapshotCorrupted(
            f"Unsupported snapshot format version {document.format_version}", location,
        )
    graph = graph_from_model(document.graph)
    if graph_fingerprint(graph) != document.fingerprint:
        raise SnapshotCorrupted("Snapshot fingerprint does not match its content", location)
    return graph


# -------------------------------------------------------------------- plans

def _operation_model(op: MigrationOperation) -> OperationModel:
    return OperationModel(
        kind=op.kind,
        table=op.table,
        field=op.field,
        constraint=op.constraint,
        classification=op.classification,
        rank=op.rank,
        reason=op.reason,
        old_definition=format_field_definition(op.old_field) if op.old_field else None,
        new_definition=format_field_definition(op.new_field) if op.new_field else None,
        old_field=_field_model(op.old_field) if op.old_field else None,
        new_field=_field_model(op.new_field) if op.new_field else None,
        new_table=_table_model(op.new_table) if op.new_table else None,
    )


def plan_to_document(plan: MigrationPlan) -> Dict[str, Any]:
    return PlanDocument(
        before_fingerprint=plan.before_fingerprint,
        after_fingerprint=plan.after_fingerprint,
        operations=[_operation_model(op) for op in plan.operations],
        auto_apply=[_operation_model(op) for op in plan.auto_apply],
        pending_confirmation=[_operation_model(op) for op in plan.pending_confirmation],
    ).model_dump(mode="json")


def plan_to_json(plan: MigrationPlan) -> str:
    """Byte-stable JSON rendering of a plan."""
    return json.dumps(plan_to_document(plan), sort_keys=True, indent=2, ensure_ascii=False)
