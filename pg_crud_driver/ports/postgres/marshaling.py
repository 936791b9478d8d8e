"""Attribute <-> column marshaling driven by live column metadata."""

from __future__ import annotations

import json
import math
import numbers
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, is_dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from ...core.entities import AttributeSpec, EntitySchema, SemanticType, primary_key_value
from ...core.errors import (
    UnexpectedNullError,
    UnknownColumnError,
    UnsupportedColumnTypeError,
)
from ...core.types import Attributes, ColumnFragment, RowMapping
from .statements import quote_identifier, quote_literal

INTEGER_TYPES = frozenset({"smallint", "integer", "bigint"})
TEXT_TYPES = frozenset({"text", "character varying", "character"})
TIMESTAMP_TYPES = frozenset({"timestamp without time zone"})
JSON_TYPES = frozenset({"json", "jsonb"})
ARRAY_TYPES = frozenset({"ARRAY"})

COMPATIBLE_COLUMN_TYPES: Dict[SemanticType, frozenset[str]] = {
    SemanticType.NUMERIC: INTEGER_TYPES,
    SemanticType.STRING: TEXT_TYPES,
    SemanticType.SYMBOL: TEXT_TYPES,
    SemanticType.TIMESTAMP: TIMESTAMP_TYPES,
    SemanticType.DOCUMENT: JSON_TYPES,
    SemanticType.ARRAY: ARRAY_TYPES,
}

INTEGER_ELEMENT_TYPES = frozenset({"int2", "int4", "int8"})
TEXT_ELEMENT_TYPES = frozenset({"text", "varchar", "bpchar", "uuid"})


@dataclass(frozen=True)
class ColumnInfo:
    """Introspected description of one table column."""

    name: str
    data_type: str
    nullable: bool
    element_type: Optional[str] = None

    @classmethod
    def from_row(cls, row: RowMapping) -> ColumnInfo:
        data_type = str(row["data_type"])
        element_type = None
        if data_type in ARRAY_TYPES:
            element_type = str(row["udt_name"]).lstrip("_")
        return cls(
            name=str(row["column_name"]),
            data_type=data_type,
            nullable=str(row["is_nullable"]).upper() == "YES",
            element_type=element_type,
        )


def _encode_integer_element(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise TypeError(f"Array element {value!r} is not an integer.")
    return str(int(value))


def _encode_text_element(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


ELEMENT_ENCODERS: Dict[str, Callable[[Any], str]] = {
    **{name: _encode_integer_element for name in INTEGER_ELEMENT_TYPES},
    **{name: _encode_text_element for name in TEXT_ELEMENT_TYPES},
}

COMPATIBLE_ELEMENT_TYPES: Dict[SemanticType, frozenset[str]] = {
    SemanticType.NUMERIC: INTEGER_ELEMENT_TYPES,
    SemanticType.STRING: TEXT_ELEMENT_TYPES,
    SemanticType.SYMBOL: TEXT_ELEMENT_TYPES,
}


class AttributeMarshaler:
    """Encodes entity attributes into SQL fragments and decodes rows back.

    One marshaler serves one table binding; its column metadata never changes
    after construction.
    """

    def __init__(self, schema: EntitySchema, table: str, columns: Mapping[str, ColumnInfo]):
        self.schema = schema
        self.table = table
        self.columns = dict(columns)

    def encode(self, conn: Any, attribute_name: str, value: Any) -> ColumnFragment:
        """Return `(escaped column identifier, SQL literal)` for one attribute."""

        column = self.columns.get(attribute_name)
        spec = self.schema.attributes.get(attribute_name)
        if column is None or spec is None:
            raise UnknownColumnError(attribute_name, self.table)

        identifier = quote_identifier(attribute_name)
        if value is None:
            if column.nullable:
                return identifier, "NULL"
            raise UnexpectedNullError(attribute_name, self.schema.entity_name)

        semantic_type = self._check_pairing(spec, column)
        if semantic_type is SemanticType.NUMERIC:
            return identifier, self._numeric_literal(spec, column, value)
        if semantic_type is SemanticType.STRING:
            return identifier, quote_literal(conn, str(value))
        if semantic_type is SemanticType.SYMBOL:
            text = value.value if isinstance(value, Enum) else value
            return identifier, quote_literal(conn, str(text))
        if semantic_type is SemanticType.TIMESTAMP:
            return identifier, quote_literal(conn, _timestamp_text(value))
        if semantic_type is SemanticType.DOCUMENT:
            return identifier, quote_literal(conn, _document_text(value))
        if semantic_type is SemanticType.ARRAY:
            return identifier, quote_literal(conn, self._array_text(spec, column, value))
        raise UnsupportedColumnTypeError(
            column.data_type, attribute_name, self.schema.entity_name
        )

    def decode(self, row: RowMapping) -> Attributes:
        """Convert one raw row into a mapping of typed attribute values."""

        attributes: Attributes = {}
        for name, raw in row.items():
            spec = self.schema.attributes.get(name)
            column = self.columns.get(name)
            if spec is None or column is None:
                continue
            attributes[name] = self.decode_value(spec, column, raw)
        return attributes

    def decode_value(self, spec: AttributeSpec, column: ColumnInfo, raw: Any) -> Any:
        if raw is None:
            if column.nullable:
                return None
            raise UnexpectedNullError(spec.name, self.schema.entity_name)

        semantic_type = self._check_pairing(spec, column)
        if semantic_type is SemanticType.NUMERIC:
            return _numeric_value(spec.annotation, raw)
        if semantic_type is SemanticType.STRING:
            return str(raw)
        if semantic_type is SemanticType.SYMBOL:
            return spec.enum_type(raw) if spec.enum_type is not None else str(raw)
        if semantic_type is SemanticType.TIMESTAMP:
            return raw if isinstance(raw, datetime) else datetime.fromisoformat(str(raw))
        if semantic_type is SemanticType.DOCUMENT:
            return _document_value(spec, raw)
        if semantic_type is SemanticType.ARRAY:
            items = raw if isinstance(raw, (list, tuple)) else parse_array_literal(str(raw))
            return [_element_value(column.element_type, item) for item in items]
        raise UnsupportedColumnTypeError(column.data_type, spec.name, self.schema.entity_name)

    def _check_pairing(self, spec: AttributeSpec, column: ColumnInfo) -> SemanticType:
        semantic_type = spec.semantic_type
        if semantic_type is None:
            raise UnsupportedColumnTypeError(
                column.data_type, spec.name, self.schema.entity_name
            )
        if column.data_type not in COMPATIBLE_COLUMN_TYPES[semantic_type]:
            raise UnsupportedColumnTypeError(
                column.data_type, spec.name, self.schema.entity_name
            )
        if semantic_type is SemanticType.ARRAY:
            self._check_element_pairing(spec, column)
        return semantic_type

    def _check_element_pairing(self, spec: AttributeSpec, column: ColumnInfo) -> None:
        element = column.element_type or ""
        compatible = frozenset(ELEMENT_ENCODERS)
        if spec.element_type is not None:
            compatible = COMPATIBLE_ELEMENT_TYPES.get(spec.element_type, frozenset())
        if element not in compatible:
            raise UnsupportedColumnTypeError(
                f"{element}[]", spec.name, self.schema.entity_name
            )

    def _numeric_literal(self, spec: AttributeSpec, column: ColumnInfo, value: Any) -> str:
        """Integer-family literal; fractional and non-finite values are refused."""

        if isinstance(value, bool) or not isinstance(value, (numbers.Real, Decimal)):
            raise UnsupportedColumnTypeError(
                column.data_type, spec.name, self.schema.entity_name
            )
        if isinstance(value, numbers.Integral):
            return str(int(value))
        if not _is_integral_number(value):
            raise UnsupportedColumnTypeError(
                column.data_type, spec.name, self.schema.entity_name
            )
        return str(int(value))

    def _array_text(self, spec: AttributeSpec, column: ColumnInfo, value: Any) -> str:
        element = column.element_type or ""
        encoder = ELEMENT_ENCODERS[element]
        if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
            raise TypeError(
                f"Attribute {spec.name!r} on {self.schema.entity_name} must be a list."
            )
        if spec.references is not None:
            value = [primary_key_value(item) for item in value]
        try:
            items = ["NULL" if item is None else encoder(item) for item in value]
        except TypeError as exc:
            raise UnsupportedColumnTypeError(
                f"{element}[]", spec.name, self.schema.entity_name
            ) from exc
        return "{" + ",".join(items) + "}"


def parse_array_literal(text: str) -> List[Optional[str]]:
    """Parse a one-dimensional engine array literal such as `{1,"a b",NULL}`."""

    text = text.strip()
    if not (text.startswith("{") and text.endswith("}")):
        raise ValueError(f"Not an array literal: {text!r}.")
    body = text[1:-1]
    items: List[Optional[str]] = []
    if not body:
        return items

    index = 0
    while index <= len(body):
        if index < len(body) and body[index] == '"':
            index += 1
            chars: List[str] = []
            while index < len(body) and body[index] != '"':
                if body[index] == "\\":
                    index += 1
                    if index == len(body):
                        break
                chars.append(body[index])
                index += 1
            if index >= len(body):
                raise ValueError(f"Unterminated quoted element in array literal: {text!r}.")
            items.append("".join(chars))
            index += 1
        else:
            end = body.find(",", index)
            end = len(body) if end == -1 else end
            token = body[index:end].strip()
            items.append(None if token.upper() == "NULL" else token)
            index = end
        index += 1
    return items


def _is_integral_number(value: Any) -> bool:
    if isinstance(value, Decimal):
        return value.is_finite() and value == value.to_integral_value()
    return math.isfinite(value) and float(value).is_integer()


def _timestamp_text(value: Any) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise TypeError(f"Expected datetime, got {type(value).__name__}.")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(sep=" ")


def _document_text(value: Any) -> str:
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    return json.dumps(value, separators=(",", ":"), default=str)


def _document_value(spec: AttributeSpec, raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        raw = bytes(raw).decode("utf-8")
    data = json.loads(raw) if isinstance(raw, str) else raw
    if spec.document_type is not None and isinstance(data, Mapping):
        return spec.document_type(**data)
    return data


def _numeric_value(annotation: Any, raw: Any) -> Any:
    text = str(raw)
    if _annotation_is(annotation, Decimal):
        return Decimal(text)
    if _annotation_is(annotation, float):
        return float(text)
    return raw if isinstance(raw, int) else int(text)


def _element_value(element_type: Optional[str], raw: Any) -> Any:
    if raw is None:
        return None
    if element_type in INTEGER_ELEMENT_TYPES:
        return int(raw)
    return str(raw)


def _annotation_is(annotation: Any, target: type) -> bool:
    if annotation is target:
        return True
    return target in getattr(annotation, "__args__", ())
