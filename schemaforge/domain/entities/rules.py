import re
from dataclasses import dataclass, field
from typing import FrozenSet

# Words reserved in at least one target language (SQL, Python, TypeScript/JS,
# Go, Java, C#, Rust). Compared case-insensitively.
RESERVED_WORDS: FrozenSet[str] = frozenset({
    # SQL
    "select", "from", "where", "table", "insert", "update", "delete", "create",
    "drop", "alter", "index", "join", "group", "order", "by", "having", "limit",
    "offset", "union", "primary", "foreign", "key", "references", "constraint",
    "default", "null", "not", "and", "or", "check", "column", "grant", "user",
    "values", "into", "distinct", "between", "like", "all", "any", "case",
    "when", "then", "end", "exists", "unique",
    # Python
    "false", "none", "true", "as", "assert", "async", "await", "break", "class",
    "continue", "def", "del", "elif", "else", "except", "finally", "for",
    "global", "if", "import", "in", "is", "lambda", "nonlocal", "pass", "raise",
    "return", "try", "while", "with", "yield",
    # TypeScript / JavaScript
    "catch", "const", "debugger", "do", "enum", "export", "extends", "function",
    "implements", "instanceof", "interface", "let", "new", "package", "private",
    "protected", "public", "static", "super", "switch", "this", "throw",
    "typeof", "var", "void",
    # Go
    "chan", "defer", "fallthrough", "func", "go", "goto", "map", "range",
    "select", "struct", "type",
    # Java / C#
    "abstract", "boolean", "byte", "char", "double", "final", "float", "int",
    "long", "native", "short", "synchronized", "throws", "transient",
    "volatile", "object", "string", "base", "namespace", "using",
    # Rust
    "crate", "fn", "impl", "loop", "match", "mod", "move", "mut", "pub", "ref",
    "self", "trait", "unsafe", "use", "where",
})


@dataclass(frozen=True)
class NamingConvention:
    """Naming rules shared by all target languages."""
    identifier_pattern: str = r"^[A-Za-z_][A-Za-z0-9_]*$"
    permission_pattern: str = (
        r"^(?:[a-z][a-z0-9_]*|\*):(?:[a-z][a-z0-9_]*|\*):(?:[a-z][a-z0-9_]*|\*)$"
    )
    reserved_words: FrozenSet[str] = field(default_factory=lambda: RESERVED_WORDS)

    def is_valid_identifier(self, name: str) -> bool:
        return isinstance(name, str) and re.match(self.identifier_pattern, name) is not None

    def is_reserved(self, name: str) -> bool:
        return name.lower() in self.reserved_words

    def identifier_problem(self, name: str):
        """Return a human readable reason when ``name`` is unusable, else None."""
        if not self.is_valid_identifier(name):
            return (
                f"'{name}' must start with a letter or underscore and contain "
                f"only letters, digits and underscores"
            )
        if self.is_reserved(name):
            return f"'{name}' is reserved in SQL or a generated language; choose another name"
        return None

    def is_valid_permission(self, permission: str) -> bool:
        return isinstance(permission, str) and re.match(self.permission_pattern, permission) is not None
