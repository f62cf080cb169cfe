import json
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from schemaforge.domain.entities.field import (
    Bounds,
    Constraint,
    FieldReference,
    FieldSpec,
    LENGTH_TYPES,
    NUMERIC_TYPES,
    TEMPORAL_TYPES,
    UniversalType,
)
from schemaforge.domain.errors import ConstraintTypeMismatch, MalformedFieldDefinition

logger = logging.getLogger(__name__)

FLAG_NAMES = {c.value: c for c in Constraint}
VALUED_NAMES = ("max_length", "min_length", "min_value", "max_value", "default", "enum", "references")
TYPE_NAMES = {t.value: t for t in UniversalType}
ENUM_TYPES = frozenset({UniversalType.STRING, UniversalType.TEXT, UniversalType.INTEGER, UniversalType.FLOAT})

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_REFERENCE_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\.([A-Za-z_][A-Za-z0-9_]*)$")
_QUOTES = ("'", '"')


@dataclass(frozen=True)
class _Token:
    """One comma-separated segment of a definition string."""
    text: str
    position: int
    name: str
    value: Optional[str] = None
    value_position: int = 0


class ConstraintParser:
    """
    Parses the constraint mini-language: ``type ("," constraint)*``.
    Single Responsibility: string -> FieldSpec, failing fast on anything unknown.
    """

    def parse(self, name: str, definition: Any) -> FieldSpec:
        if not isinstance(definition, str):
            raise MalformedFieldDefinition(
                f"Field definition must be a string, got {type(definition).__name__}",
                token=str(definition), position=0,
            )

        tokens = self._tokenize(definition)
        if not tokens or not tokens[0].text:
            raise MalformedFieldDefinition("Field definition is empty; expected a type", token="", position=0)

        universal_type = self._parse_type(tokens[0])

        flags: List[Constraint] = []
        valued: Dict[str, _Token] = {}
        seen = set()
        for token in tokens[1:]:
            if not token.name:
                raise MalformedFieldDefinition("Empty constraint", token=token.text, position=token.position)
            if token.name in seen:
                raise MalformedFieldDefinition(
                    f"Constraint '{token.name}' is given more than once",
                    token=token.text, position=token.position,
                )
            seen.add(token.name)

            if token.name in FLAG_NAMES:
                if token.value is not None:
                    raise MalformedFieldDefinition(
                        f"Constraint '{token.name}' is a flag and takes no value",
                        token=token.text, position=token.position,
                    )
                flags.append(self._check_flag(FLAG_NAMES[token.name], universal_type, token))
            elif token.name in VALUED_NAMES:
                if token.value is None:
                    raise MalformedFieldDefinition(
                        f"Constraint '{token.name}' requires a value ({token.name}=...)",
                        token=token.text, position=token.position,
                    )
                valued[token.name] = token
            else:
                raise MalformedFieldDefinition(
                    f"Unknown constraint '{token.name}'", token=token.text, position=token.position,
                )

        bounds = self._parse_bounds(universal_type, valued)
        enum_values = self._parse_enum(universal_type, valued.get("enum"))

        has_default = "default" in valued
        default = None
        if has_default:
            default = self._coerce_literal(universal_type, valued["default"], allow_quoted=True)
            if enum_values and default not in enum_values:
                token = valued["default"]
                raise MalformedFieldDefinition(
                    f"Default {default!r} is not one of the enum values",
                    token=token.text, position=token.value_position,
                )

        self._check_default_sources(tokens, has_default, flags)

        reference = self._parse_reference(valued.get("references"))

        spec = FieldSpec(
            name=name,
            universal_type=universal_type,
            constraints=frozenset(flags),
            bounds=bounds,
            default=default,
            has_default=has_default,
            enum_values=enum_values,
            reference=reference,
        )
        logger.debug(f"[ConstraintParser] Parsed {name}: {definition!r}")
        return spec

    # ------------------------------------------------------------------ lexing

    def _tokenize(self, definition: str) -> List[_Token]:
        segments: List[Tuple[str, int]] = []
        quote = None
        start = 0
        quote_start = 0
        for i, ch in enumerate(definition):
            if quote:
                if ch == quote:
                    quote = None
            elif ch in _QUOTES:
                quote = ch
                quote_start = i
            elif ch == ",":
                segments.append((definition[start:i], start))
                start = i + 1
        if quote:
            raise MalformedFieldDefinition(
                "Unterminated quoted value", token=definition[quote_start:], position=quote_start,
            )
        segments.append((definition[start:], start))

        tokens = []
        for raw, offset in segments:
            stripped = raw.strip()
            position = offset + (len(raw) - len(raw.lstrip()))
            tokens.append(self._split_assignment(stripped, position))
        return tokens

    def _split_assignment(self, text: str, position: int) -> _Token:
        eq = self._find_unquoted(text, "=")
        if eq < 0:
            return _Token(text=text, position=position, name=text)
        name = text[:eq].strip()
        raw_value = text[eq + 1:]
        value = raw_value.strip()
        value_position = position + eq + 1 + (len(raw_value) - len(raw_value.lstrip()))
        return _Token(text=text, position=position, name=name, value=value, value_position=value_position)

    @staticmethod
    def _find_unquoted(text: str, char: str) -> int:
        quote = None
        for i, ch in enumerate(text):
            if quote:
                if ch == quote:
                    quote = None
            elif ch in _QUOTES:
                quote = ch
            elif ch == char:
                return i
        return -1

    # ----------------------------------------------------------------- parsing

    def _parse_type(self, token: _Token) -> UniversalType:
        if token.value is not None or token.name not in TYPE_NAMES:
            raise MalformedFieldDefinition(
                f"Expected a type ({', '.join(TYPE_NAMES)}) as the first token, got '{token.text}'",
                token=token.text, position=token.position,
            )
        return TYPE_NAMES[token.name]

    def _check_flag(self, flag: Constraint, universal_type: UniversalType, token: _Token) -> Constraint:
        if flag == Constraint.AUTO_INCREMENT and universal_type != UniversalType.INTEGER:
            raise ConstraintTypeMismatch(
                f"auto_increment requires an integer field, not {universal_type.value}",
                token=token.text, position=token.position,
            )
        if flag in (Constraint.AUTO_ADD, Constraint.AUTO_UPDATE) and universal_type not in TEMPORAL_TYPES:
            raise ConstraintTypeMismatch(
                f"{flag.value} requires a timestamp or date field, not {universal_type.value}",
                token=token.text, position=token.position,
            )
        return flag

    def _parse_bounds(self, universal_type: UniversalType, valued: Dict[str, _Token]) -> Bounds:
        values: Dict[str, Any] = {}
        for key in ("max_length", "min_length"):
            token = valued.get(key)
            if token is None:
                continue
            if universal_type not in LENGTH_TYPES:
                raise ConstraintTypeMismatch(
                    f"{key} applies to string or text fields, not {universal_type.value}",
                    token=token.text, position=token.position,
                )
            if not _INT_RE.match(token.value) or int(token.value) < 0:
                raise ConstraintTypeMismatch(
                    f"{key} must be a non-negative integer, got '{token.value}'",
                    token=token.value, position=token.value_position,
                )
            values[key] = int(token.value)

        for key in ("min_value", "max_value"):
            token = valued.get(key)
            if token is None:
                continue
            if universal_type not in NUMERIC_TYPES:
                raise ConstraintTypeMismatch(
                    f"{key} applies to integer or float fields, not {universal_type.value}",
                    token=token.text, position=token.position,
                )
            values[key] = self._coerce_literal(universal_type, token, allow_quoted=False)

        self._check_range(valued, values, "min_length", "max_length")
        self._check_range(valued, values, "min_value", "max_value")
        return Bounds(**values)

    @staticmethod
    def _check_range(valued: Dict[str, _Token], values: Dict[str, Any], low: str, high: str) -> None:
        if low in values and high in values and values[low] > values[high]:
            token = valued[high]
            raise MalformedFieldDefinition(
                f"{low}={values[low]} is greater than {high}={values[high]}",
                token=token.text, position=token.position,
            )

    def _parse_enum(self, universal_type: UniversalType, token: Optional[_Token]) -> Tuple[Any, ...]:
        if token is None:
            return ()
        if universal_type not in ENUM_TYPES:
            raise ConstraintTypeMismatch(
                f"enum applies to string, text, integer or float fields, not {universal_type.value}",
                token=token.text, position=token.position,
            )

        items: List[Tuple[str, int]] = []
        start = 0
        quote = None
        raw = token.value
        for i, ch in enumerate(raw):
            if quote:
                if ch == quote:
                    quote = None
            elif ch in _QUOTES:
                quote = ch
            elif ch == "|":
                items.append((raw[start:i], start))
                start = i + 1
        items.append((raw[start:], start))

        values: List[Any] = []
        for text, offset in items:
            item = text.strip()
            position = token.value_position + offset + (len(text) - len(text.lstrip()))
            if not item:
                raise MalformedFieldDefinition("Empty enum value", token=token.value, position=position)
            item_token = _Token(text=item, position=position, name="enum", value=item, value_position=position)
            value = self._coerce_literal(universal_type, item_token, allow_quoted=True)
            if any(_same(value, v) for v in values):
                raise MalformedFieldDefinition(
                    f"Duplicate enum value {value!r}", token=item, position=position,
                )
            values.append(value)
        return tuple(values)

    def _parse_reference(self, token: Optional[_Token]) -> Optional[FieldReference]:
        if token is None:
            return None
        match = _REFERENCE_RE.match(token.value)
        if not match:
            raise MalformedFieldDefinition(
                f"references must have the form table.field, got '{token.value}'",
                token=token.value, position=token.value_position,
            )
        return FieldReference(table=match.group(1), field=match.group(2))

    @staticmethod
    def _check_default_sources(tokens: List[_Token], has_default: bool, flags: List[Constraint]) -> None:
        sources = []
        for token in tokens[1:]:
            if token.name == "default" and has_default:
                sources.append(token)
            elif token.name in (Constraint.AUTO_ADD.value, Constraint.AUTO_UPDATE.value):
                sources.append(token)
        if len(sources) > 1:
            token = sources[1]
            raise MalformedFieldDefinition(
                "A field takes at most one default source (default, auto_add or auto_update); "
                f"'{sources[0].name}' and '{token.name}' both given",
                token=token.text, position=token.position,
            )

    def _coerce_literal(self, universal_type: UniversalType, token: _Token, allow_quoted: bool) -> Any:
        raw = token.value
        quoted = len(raw) >= 2 and raw[0] in _QUOTES and raw[-1] == raw[0]
        if not quoted and any(q in raw for q in _QUOTES):
            raise MalformedFieldDefinition(
                "Quotes must wrap the whole value", token=raw, position=token.value_position,
            )
        text = raw[1:-1] if quoted else raw

        def mismatch(expected: str) -> ConstraintTypeMismatch:
            return ConstraintTypeMismatch(
                f"'{raw}' is not a valid {expected} for a {universal_type.value} field",
                token=raw, position=token.value_position,
            )

        if quoted and not allow_quoted:
            raise mismatch("number")

        if universal_type in LENGTH_TYPES:
            return text
        if universal_type == UniversalType.INTEGER:
            if quoted or not _INT_RE.match(text):
                raise mismatch("integer")
            return int(text)
        if universal_type == UniversalType.FLOAT:
            if quoted or not _FLOAT_RE.match(text):
                raise mismatch("number")
            return float(text)
        if universal_type == UniversalType.BOOLEAN:
            if quoted or text.lower() not in ("true", "false"):
                raise mismatch("boolean (true/false)")
            return text.lower() == "true"
        if universal_type == UniversalType.UUID:
            try:
                uuid.UUID(text)
            except ValueError:
                raise mismatch("uuid")
            return text
        if universal_type == UniversalType.TIMESTAMP:
            try:
                datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                raise mismatch("ISO-8601 timestamp")
            return text
        if universal_type == UniversalType.DATE:
            try:
                date.fromisoformat(text)
            except ValueError:
                raise mismatch("ISO-8601 date")
            return text
        # JSON literals are stored as their source text to keep FieldSpec hashable
        try:
            json.loads(text)
        except ValueError:
            raise mismatch("JSON literal")
        return text


def _same(a: Any, b: Any) -> bool:
    return type(a) is type(b) and a == b


def format_field_definition(spec: FieldSpec) -> str:
    """Canonical definition string; parsing it yields an equal FieldSpec."""
    parts = [spec.universal_type.value]
    parts.extend(c.value for c in Constraint if c in spec.constraints)

    bounds = spec.bounds
    for key in ("max_length", "min_length", "min_value", "max_value"):
        value = getattr(bounds, key)
        if value is not None:
            parts.append(f"{key}={_format_literal(value, quote_strings=False)}")
    if spec.has_default:
        parts.append(f"default={_format_literal(spec.default, quote_strings=True)}")
    if spec.enum_values:
        parts.append("enum=" + "|".join(_format_literal(v, quote_strings=False) for v in spec.enum_values))
    if spec.reference is not None:
        parts.append(f"references={spec.reference}")
    return ", ".join(parts)


def _format_literal(value: Any, quote_strings: bool) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    text = str(value)
    needs_quotes = (
        quote_strings
        or text != text.strip()
        or not text
        or any(ch in text for ch in ",|=")
    )
    if not needs_quotes:
        return text
    quote = '"' if "'" in text else "'"
    return f"{quote}{text}{quote}"


_default_parser = ConstraintParser()


def parse_field_definition(name: str, definition: Any) -> FieldSpec:
    """Parse ``definition`` (e.g. ``"string, required, max_length=255"``)."""
    return _default_parser.parse(name, definition)
