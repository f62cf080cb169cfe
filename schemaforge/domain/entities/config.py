from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Tuple

ROOT_ROLE = "root"
SECURITY_ROLE = "security"
API_ROLE = "api"
SERVICE_ROLE_PREFIX = "service:"


def service_role(name: str) -> str:
    return f"{SERVICE_ROLE_PREFIX}{name}"


def is_service_role(role: str) -> bool:
    return role.startswith(SERVICE_ROLE_PREFIX)


@dataclass(frozen=True)
class ConfigurationBundle:
    """
    Raw documents of one configuration, keyed by logical file role.
    Built once per run by the loader and passed to the resolver by parameter.
    """
    root_path: str
    documents: Mapping[str, Dict[str, Any]] = field(default_factory=dict)
    sources: Mapping[str, str] = field(default_factory=dict)
    roles: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "documents", MappingProxyType(dict(self.documents)))
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))
        if not self.roles:
            object.__setattr__(self, "roles", tuple(self.documents.keys()))

    def document(self, role: str) -> Dict[str, Any]:
        return self.documents.get(role) or {}

    def source_of(self, role: str) -> str:
        return self.sources.get(role, role)

    def service_roles(self) -> Iterator[str]:
        return (r for r in self.roles if is_service_role(r))
