"""Structured errors raised by the parser, loader, resolver and planner."""

from dataclasses import dataclass
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class ValidationIssue:
    """Display form of an error: kind, location, message."""
    kind: str
    location: str
    message: str

    def __str__(self) -> str:
        if self.location:
            return f"[{self.kind}] {self.location}: {self.message}"
        return f"[{self.kind}] {self.message}"


class SchemaForgeError(Exception):
    """Base class for every error this engine surfaces."""

    def __init__(self, message: str, location: str = ""):
        super().__init__(message)
        self.message = message
        self.location = location

    @property
    def kind(self) -> str:
        return type(self).__name__

    def at(self, location: str) -> "SchemaForgeError":
        """Attach a location (file, table, field) unless one is already set."""
        if not self.location:
            self.location = location
        return self

    def to_issue(self) -> ValidationIssue:
        return ValidationIssue(self.kind, self.location, self.message)

    def __str__(self) -> str:
        return str(self.to_issue())


# Parser

class FieldDefinitionError(SchemaForgeError):
    """Error pointing at one token of a field-definition string."""

    def __init__(self, message: str, token: str = "", position: int = 0, location: str = ""):
        super().__init__(message, location)
        self.token = token
        self.position = position


class MalformedFieldDefinition(FieldDefinitionError):
    pass


class ConstraintTypeMismatch(FieldDefinitionError):
    pass


# Loader

class MissingConfigFile(SchemaForgeError):
    pass


class DuplicateServiceName(SchemaForgeError):
    pass


class UnreadableConfig(SchemaForgeError):
    pass


# Resolver

class InvalidConfigStructure(SchemaForgeError):
    pass


class DuplicateTableName(SchemaForgeError):
    pass


class MissingPrimaryKey(SchemaForgeError):
    pass


class InvalidIdentifier(SchemaForgeError):
    pass


class DanglingRelation(SchemaForgeError):
    pass


class IncompatibleReferenceType(SchemaForgeError):
    pass


class InvalidPermissionString(SchemaForgeError):
    pass


# Snapshot store

class SnapshotCorrupted(SchemaForgeError):
    pass


# Planner

class UnconfirmedBreakingChange(SchemaForgeError):
    """Breaking operations were planned and no override was given."""

    def __init__(self, plan, message: Optional[str] = None):
        pending = plan.pending_confirmation
        if message is None:
            listed = ", ".join(op.describe() for op in pending)
            message = (
                f"{len(pending)} breaking operation(s) require explicit confirmation: {listed}"
            )
        super().__init__(message)
        self.plan = plan


# Aggregates

class AggregateError(SchemaForgeError):
    """Carries every error discovered in one pass."""

    def __init__(self, errors: Sequence[SchemaForgeError], summary: str):
        if not errors:
            raise ValueError("AggregateError requires at least one error")
        super().__init__(f"{summary} ({len(errors)} error(s))")
        self.errors: List[SchemaForgeError] = list(errors)

    @property
    def issues(self) -> List[ValidationIssue]:
        return [e.to_issue() for e in self.errors]

    def kinds(self) -> List[str]:
        return [e.kind for e in self.errors]

    def __str__(self) -> str:
        lines = [self.message]
        lines.extend(f"  {issue}" for issue in self.issues)
        return "\n".join(lines)


class ConfigLoadFailed(AggregateError):
    def __init__(self, errors: Sequence[SchemaForgeError]):
        super().__init__(errors, "Configuration could not be loaded")


class ResolutionFailed(AggregateError):
    def __init__(self, errors: Sequence[SchemaForgeError]):
        super().__init__(errors, "Configuration is invalid")
