import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from schemaforge.domain.entities.config import (
    API_ROLE,
    ConfigurationBundle,
    ROOT_ROLE,
    SECURITY_ROLE,
    SERVICE_ROLE_PREFIX,
)
from schemaforge.domain.entities.field import FieldSpec
from schemaforge.domain.entities.rules import NamingConvention
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
from schemaforge.domain.errors import (
    DanglingRelation,
    DuplicateTableName,
    FieldDefinitionError,
    IncompatibleReferenceType,
    InvalidConfigStructure,
    InvalidIdentifier,
    InvalidPermissionString,
    MissingPrimaryKey,
    ResolutionFailed,
    SchemaForgeError,
)
from schemaforge.domain.services.constraint_parser import ConstraintParser

logger = logging.getLogger(__name__)

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"})
PERIODS = {
    "s": 1, "sec": 1, "second": 1, "seconds": 1,
    "m": 60, "min": 60, "minute": 60, "minutes": 60,
    "h": 3600, "hour": 3600, "hours": 3600,
    "d": 86400, "day": 86400, "days": 86400,
}
_RATE_RE = re.compile(r"^\s*(\d+)\s*/\s*([A-Za-z]+)\s*$")


@dataclass
class _TableDraft:
    """Table collected in phase one, before cross-table validation."""
    name: str
    source: str
    order: int
    fields: List[FieldSpec] = field(default_factory=list)
    relations: List[RelationSpec] = field(default_factory=list)
    failed_fields: Set[str] = field(default_factory=set)

    def get_field(self, name: str) -> Optional[FieldSpec]:
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass
class _Permission:
    value: Any
    location: str


class ConfigurationResolver:
    """
    Merges the raw documents of a bundle into one canonical SchemaGraph.
    Phase one indexes every table from every file; phase two validates
    relations and references against that index. Every issue is collected.
    """

    def __init__(self, parser: Optional[ConstraintParser] = None, naming: Optional[NamingConvention] = None):
        self._parser = parser or ConstraintParser()
        self._naming = naming or NamingConvention()

    def resolve(self, bundle: ConfigurationBundle) -> SchemaGraph:
        structure: List[SchemaForgeError] = []

        # Phase 1: collect every table of every document
        drafts = self._collect_tables(bundle, structure)
        pk_errors = self._check_primary_keys(drafts)
        index, duplicate_errors = self._build_index(drafts)
        identifier_errors = self._check_identifiers(drafts)

        settings, permissions = self._resolve_settings(bundle, structure)
        services = self._resolve_services(bundle, drafts, structure, permissions)

        # Phase 2: cross-table validation against the complete index
        relation_errors = self._check_relations(index, settings, services, bundle.source_of(API_ROLE))
        reference_errors = self._check_references(index)
        permission_errors = self._check_permissions(settings, permissions)

        errors = (
            structure + pk_errors + duplicate_errors + identifier_errors
            + relation_errors + reference_errors + permission_errors
        )
        if errors:
            logger.info(f"[ConfigurationResolver] Resolution failed with {len(errors)} issue(s)")
            raise ResolutionFailed(errors)

        tables = tuple(
            TableSpec(
                name=d.name,
                fields=tuple(d.fields),
                relations=tuple(d.relations),
                source=d.source,
            )
            for d in sorted(index.values(), key=lambda d: (d.order, d.name))
        )
        graph = SchemaGraph(tables=tables, services=tuple(services), settings=settings)
        logger.info(
            f"[ConfigurationResolver] Resolved {len(tables)} table(s) across {len(services)} service(s)"
        )
        return graph

    # ------------------------------------------------------------- phase one

    def _collect_tables(self, bundle: ConfigurationBundle, errors: List[SchemaForgeError]) -> List[_TableDraft]:
        drafts: List[_TableDraft] = []
        model_roles = [r for r in bundle.roles if r == ROOT_ROLE or r.startswith(SERVICE_ROLE_PREFIX)]
        for order, role in enumerate(model_roles):
            source = bundle.source_of(role)
            models = bundle.document(role).get("models")
            if models is None:
                continue
            if not isinstance(models, dict):
                errors.append(InvalidConfigStructure("'models' must be a mapping of table name to table", source))
                continue
            for table_name, body in models.items():
                if not isinstance(table_name, str):
                    errors.append(_key_error("Table", table_name, source))
                    continue
                drafts.append(self._collect_table(table_name, body, source, order, errors))
        return drafts

    def _collect_table(
        self, name: str, body: Any, source: str, order: int, errors: List[SchemaForgeError]
    ) -> _TableDraft:
        draft = _TableDraft(name=name, source=source, order=order)
        location = f"{source}: {name}"
        if not isinstance(body, dict) or not isinstance(body.get("fields"), dict):
            errors.append(InvalidConfigStructure(f"Table '{name}' needs a 'fields' mapping", location))
            draft.failed_fields.add("*")
            return draft

        for field_name, definition in body["fields"].items():
            if not isinstance(field_name, str):
                errors.append(_key_error("Field", field_name, location))
                # the primary key may be the field whose name was lost
                draft.failed_fields.add("*")
                continue
            try:
                draft.fields.append(self._parser.parse(field_name, definition))
            except FieldDefinitionError as e:
                errors.append(e.at(f"{location}.{field_name}"))
                draft.failed_fields.add(field_name)

        relations = body.get("relations") or {}
        if not isinstance(relations, dict):
            errors.append(InvalidConfigStructure(f"'relations' of '{name}' must be a mapping", location))
            return draft
        for rel_name, rel in relations.items():
            if not isinstance(rel_name, str):
                errors.append(_key_error("Relation", rel_name, location))
                continue
            relation = self._parse_relation(rel_name, rel, f"{location}.relations.{rel_name}", errors)
            if relation is not None:
                draft.relations.append(relation)
        return draft

    @staticmethod
    def _parse_relation(
        name: str, raw: Any, location: str, errors: List[SchemaForgeError]
    ) -> Optional[RelationSpec]:
        if not isinstance(raw, dict):
            errors.append(InvalidConfigStructure("Relation must be a mapping with type, table and field", location))
            return None
        kinds = {k.value: k for k in RelationKind}
        raw_type = raw.get("type")
        kind = kinds.get(raw_type) if isinstance(raw_type, str) else None
        if kind is None:
            errors.append(InvalidConfigStructure(
                f"Relation type must be one of {', '.join(kinds)}, got {raw_type!r}", location,
            ))
            return None
        target, owning_field, through = raw.get("table"), raw.get("field"), raw.get("through")
        if not isinstance(target, str) or not isinstance(owning_field, str):
            errors.append(InvalidConfigStructure("Relation needs string 'table' and 'field'", location))
            return None
        if kind == RelationKind.MANY_TO_MANY and not isinstance(through, str):
            errors.append(InvalidConfigStructure("many_to_many relation needs a 'through' table", location))
            return None
        return RelationSpec(name=name, kind=kind, target=target, field=owning_field, through=through)

    def _check_primary_keys(self, drafts: List[_TableDraft]) -> List[SchemaForgeError]:
        errors: List[SchemaForgeError] = []
        for d in drafts:
            pks = [f.name for f in d.fields if f.is_primary_key]
            if len(pks) == 1:
                continue
            if not pks and d.failed_fields:
                # the primary key may be among the fields that failed to parse
                continue
            if not pks:
                message = f"Table '{d.name}' has no primary_key field"
            else:
                message = f"Table '{d.name}' has {len(pks)} primary_key fields ({', '.join(pks)}); exactly one is required"
            errors.append(MissingPrimaryKey(message, f"{d.source}: {d.name}"))
        return errors

    @staticmethod
    def _build_index(drafts: List[_TableDraft]) -> Tuple[Dict[str, _TableDraft], List[SchemaForgeError]]:
        index: Dict[str, _TableDraft] = {}
        errors: List[SchemaForgeError] = []
        for d in drafts:
            first = index.get(d.name)
            if first is None:
                index[d.name] = d
                continue
            errors.append(DuplicateTableName(
                f"Table '{d.name}' is declared in both '{first.source}' and '{d.source}'",
                d.source,
            ))
        return index, errors

    def _check_identifiers(self, drafts: List[_TableDraft]) -> List[SchemaForgeError]:
        errors: List[SchemaForgeError] = []
        for d in drafts:
            problem = self._naming.identifier_problem(d.name)
            if problem:
                errors.append(InvalidIdentifier(f"Table name {problem}", f"{d.source}: {d.name}"))
            names = [f.name for f in d.fields] + sorted(n for n in d.failed_fields if n != "*")
            for name in names:
                problem = self._naming.identifier_problem(name)
                if problem:
                    errors.append(InvalidIdentifier(f"Field name {problem}", f"{d.source}: {d.name}.{name}"))
        return errors

    # -------------------------------------------------------------- settings

    def _resolve_settings(
        self, bundle: ConfigurationBundle, errors: List[SchemaForgeError]
    ) -> Tuple[GlobalSettings, List[_Permission]]:
        root = bundle.document(ROOT_ROLE)
        root_source = bundle.source_of(ROOT_ROLE)
        security = bundle.document(SECURITY_ROLE)
        security_source = bundle.source_of(SECURITY_ROLE)
        api = bundle.document(API_ROLE)
        api_source = bundle.source_of(API_ROLE)
        permissions: List[_Permission] = []

        project = root.get("project") or {}
        project_name = project if isinstance(project, str) else project.get("name", "") if isinstance(project, dict) else ""

        database = root.get("database") or {}
        if isinstance(database, str):
            provider = database
        elif isinstance(database, dict):
            provider = database.get("provider", "postgresql")
        else:
            provider = None
        if not isinstance(provider, str) or not provider:
            errors.append(InvalidConfigStructure("'database.provider' must be a non-empty string", root_source))
            provider = "postgresql"

        auth: Dict[str, Any] = {}
        auth_sources: Dict[str, str] = {}
        for doc, source in ((root, root_source), (security, security_source)):
            section = doc.get("auth")
            if section is None:
                continue
            if not isinstance(section, dict):
                errors.append(InvalidConfigStructure("'auth' must be a mapping", source))
                continue
            auth.update(section)
            auth_sources.update((key, source) for key in section)

        enabled = auth.get("enabled", False)
        if not isinstance(enabled, bool):
            errors.append(InvalidConfigStructure("'auth.enabled' must be true or false", auth_sources["enabled"]))
            enabled = False
        mode = auth.get("mode", "jwt" if enabled else "none")
        if not isinstance(mode, str):
            errors.append(InvalidConfigStructure("'auth.mode' must be a string", auth_sources["mode"]))
            mode = "none"

        for i, value in enumerate(self._as_list(security.get("permissions"), "permissions", security_source, errors)):
            permissions.append(_Permission(value, f"{security_source}: permissions[{i}]"))
        roles = security.get("roles") or {}
        if not isinstance(roles, dict):
            errors.append(InvalidConfigStructure("'roles' must be a mapping", security_source))
            roles = {}
        for role_name, role in roles.items():
            raw = role.get("permissions") if isinstance(role, dict) else role
            location = f"{security_source}: roles.{role_name}"
            for i, value in enumerate(self._as_list(raw, "permissions", location, errors)):
                permissions.append(_Permission(value, f"{location}.permissions[{i}]"))

        prefix = api.get("prefix", api.get("base_path", ""))
        if not isinstance(prefix, str):
            errors.append(InvalidConfigStructure("'prefix' must be a string", api_source))
            prefix = ""
        rate_limit = self._parse_rate_limit(api.get("rate_limit"), api_source, errors)
        endpoints = self._parse_endpoints(api.get("endpoints"), api_source, errors, permissions)

        settings = GlobalSettings(
            project_name=str(project_name or ""),
            database_provider=provider,
            auth_enabled=enabled,
            auth_mode=mode,
            api_prefix=prefix,
            rate_limit=rate_limit,
            endpoints=endpoints,
        )
        return settings, permissions

    def _resolve_services(
        self,
        bundle: ConfigurationBundle,
        drafts: List[_TableDraft],
        errors: List[SchemaForgeError],
        permissions: List[_Permission],
    ) -> List[ServiceSpec]:
        services: List[ServiceSpec] = []
        for role in bundle.service_roles():
            name = role[len(SERVICE_ROLE_PREFIX):]
            source = bundle.source_of(role)
            doc = bundle.document(role)

            declared = doc.get("name")
            if declared is not None and declared != name:
                errors.append(InvalidConfigStructure(
                    f"Service file declares name '{declared}' but is registered as '{name}'", source,
                ))

            base_path = doc.get("base_path", "")
            if not isinstance(base_path, str):
                errors.append(InvalidConfigStructure("'base_path' must be a string", source))
                base_path = ""

            auth = AuthPolicy()
            raw_auth = doc.get("auth")
            if raw_auth is not None:
                if isinstance(raw_auth, dict):
                    values = self._as_list(raw_auth.get("permissions"), "auth.permissions", source, errors)
                    for i, value in enumerate(values):
                        permissions.append(_Permission(value, f"{source}: auth.permissions[{i}]"))
                    auth = AuthPolicy(
                        required=bool(raw_auth.get("required", False)),
                        permissions=tuple(str(v) for v in values),
                    )
                else:
                    errors.append(InvalidConfigStructure("'auth' must be a mapping", source))

            tables = tuple(sorted(d.name for d in drafts if d.source == source))
            services.append(ServiceSpec(
                name=name,
                source=source,
                base_path=base_path,
                tables=tables,
                endpoints=self._parse_endpoints(doc.get("endpoints"), source, errors, permissions),
                auth=auth,
                rate_limit=self._parse_rate_limit(doc.get("rate_limit"), source, errors),
            ))
        return services

    def _parse_endpoints(
        self, raw: Any, source: str, errors: List[SchemaForgeError], permissions: List[_Permission]
    ) -> Tuple[EndpointSpec, ...]:
        endpoints = []
        for i, entry in enumerate(self._as_list(raw, "endpoints", source, errors)):
            location = f"{source}: endpoints[{i}]"
            if not isinstance(entry, dict) or not isinstance(entry.get("path"), str):
                errors.append(InvalidConfigStructure("Endpoint needs a string 'path'", location))
                continue
            methods = entry.get("methods", entry.get("method", ["GET"]))
            if isinstance(methods, str):
                methods = [methods]
            if not isinstance(methods, list):
                errors.append(InvalidConfigStructure("'methods' must be a list", location))
                continue
            methods = [str(m).upper() for m in methods]
            unknown = [m for m in methods if m not in HTTP_METHODS]
            if unknown:
                errors.append(InvalidConfigStructure(f"Unknown HTTP method(s): {', '.join(unknown)}", location))
                continue
            values = self._as_list(entry.get("permissions"), "permissions", location, errors)
            for j, value in enumerate(values):
                permissions.append(_Permission(value, f"{location}.permissions[{j}]"))
            table = entry.get("table")
            endpoints.append(EndpointSpec(
                path=entry["path"],
                methods=tuple(methods),
                permissions=tuple(str(v) for v in values),
                auth_required=bool(entry.get("auth", bool(values))),
                table=str(table) if table is not None else None,
            ))
        return tuple(endpoints)

    @staticmethod
    def _parse_rate_limit(raw: Any, source: str, errors: List[SchemaForgeError]) -> Optional[RateLimit]:
        if raw is None:
            return None
        requests: Any = None
        per: Any = None
        if isinstance(raw, str):
            match = _RATE_RE.match(raw)
            if match:
                requests, per = int(match.group(1)), match.group(2)
        elif isinstance(raw, dict):
            requests, per = raw.get("requests"), raw.get("per", "minute")

        if isinstance(per, str):
            period = PERIODS.get(per.lower())
        elif isinstance(per, int) and not isinstance(per, bool) and per > 0:
            period = per
        else:
            period = None

        if not isinstance(requests, int) or isinstance(requests, bool) or requests <= 0 or period is None:
            errors.append(InvalidConfigStructure(
                f"Invalid rate_limit {raw!r}; use '100/minute' or {{requests: 100, per: minute}}",
                source,
            ))
            return None
        return RateLimit(requests=requests, period_seconds=period)

    @staticmethod
    def _as_list(raw: Any, key: str, location: str, errors: List[SchemaForgeError]) -> List[Any]:
        if raw is None:
            return []
        if not isinstance(raw, list):
            errors.append(InvalidConfigStructure(f"'{key}' must be a list", location))
            return []
        return raw

    # ------------------------------------------------------------- phase two

    def _check_relations(
        self,
        index: Dict[str, _TableDraft],
        settings: GlobalSettings,
        services: List[ServiceSpec],
        api_source: str,
    ) -> List[SchemaForgeError]:
        errors: List[SchemaForgeError] = []
        for d in index.values():
            for rel in d.relations:
                location = f"{d.source}: {d.name}.relations.{rel.name}"
                if rel.target not in index:
                    errors.append(DanglingRelation(
                        f"Relation '{rel.name}' targets unknown table '{rel.target}'", location,
                    ))
                    continue
                owner_name = rel.owning_table(d.name)
                owner = index.get(owner_name)
                if owner is None:
                    errors.append(DanglingRelation(
                        f"Relation '{rel.name}' goes through unknown table '{owner_name}'", location,
                    ))
                    continue
                if owner.get_field(rel.field) is None and not ({rel.field, "*"} & owner.failed_fields):
                    errors.append(DanglingRelation(
                        f"Relation '{rel.name}' uses field '{rel.field}' which does not exist on '{owner_name}'",
                        location,
                    ))

        endpoint_groups = [(settings.endpoints, api_source)] + [(s.endpoints, s.source) for s in services]
        for endpoints, source in endpoint_groups:
            for ep in endpoints:
                if ep.table is not None and ep.table not in index:
                    errors.append(DanglingRelation(
                        f"Endpoint '{ep.path}' is bound to unknown table '{ep.table}'", source,
                    ))
        return errors

    @staticmethod
    def _check_references(index: Dict[str, _TableDraft]) -> List[SchemaForgeError]:
        errors: List[SchemaForgeError] = []
        for d in index.values():
            for f in d.fields:
                ref = f.reference
                if ref is None:
                    continue
                location = f"{d.source}: {d.name}.{f.name}"
                target = index.get(ref.table)
                if target is None:
                    errors.append(DanglingRelation(f"Reference to unknown table '{ref.table}'", location))
                    continue
                target_field = target.get_field(ref.field)
                if target_field is None:
                    if ref.field not in target.failed_fields and "*" not in target.failed_fields:
                        errors.append(DanglingRelation(f"Reference to unknown field '{ref}'", location))
                    continue
                if target_field.universal_type != f.universal_type:
                    errors.append(IncompatibleReferenceType(
                        f"'{f.name}' is {f.universal_type.value} but references '{ref}' "
                        f"which is {target_field.universal_type.value}",
                        location,
                    ))
        return errors

    def _check_permissions(self, settings: GlobalSettings, permissions: List[_Permission]) -> List[SchemaForgeError]:
        if not settings.auth_enabled:
            return []
        errors: List[SchemaForgeError] = []
        for p in permissions:
            if not self._naming.is_valid_permission(p.value):
                errors.append(InvalidPermissionString(
                    f"Permission {p.value!r} does not match resource:action:scope", p.location,
                ))
        return errors


def _key_error(what: str, key: Any, location: str) -> InvalidConfigStructure:
    # YAML 1.1 reads on/off/yes/no as booleans and bare digits as numbers
    return InvalidConfigStructure(
        f"{what} name {key!r} is not a string; quote it in the YAML source", location,
    )
