"""Entity schema extraction for dataclass entities.

An entity is a `@dataclass` with exactly one primary key field, declared with
`field(metadata={"pk": True})`. Every other field is an attribute whose
semantic type is derived from its annotation (see `SemanticType`).
"""

from __future__ import annotations

import re
import types
from collections.abc import Mapping
from dataclasses import Field, dataclass, fields, is_dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Any, ClassVar, Dict, List, Optional, Protocol, Type, TypeVar
from typing import Union, get_args, get_origin, get_type_hints

from .types import Attributes
from .validated_entity import ValidationError


class EntityModel(Protocol):
    """Protocol for supported dataclass entity types."""

    __dataclass_fields__: ClassVar[dict[str, Any]]


T = TypeVar("T", bound=EntityModel)


class SemanticType(str, Enum):
    """Closed set of attribute kinds the marshaling layer knows how to store."""

    NUMERIC = "numeric"
    STRING = "string"
    SYMBOL = "symbol"
    TIMESTAMP = "timestamp"
    DOCUMENT = "document"
    ARRAY = "array"


@dataclass(frozen=True)
class AttributeSpec:
    """One declared entity attribute and its semantic type."""

    name: str
    annotation: Any
    semantic_type: Optional[SemanticType]
    element_type: Optional[SemanticType] = None
    enum_type: Optional[Type[Enum]] = None
    document_type: Optional[type] = None
    references: Optional[type] = None


@dataclass(frozen=True)
class EntitySchema:
    """Normalized entity description consumed by table bindings."""

    entity_class: type
    entity_name: str
    table: str
    primary_key: str
    auto_primary_key: bool
    attributes: Dict[str, AttributeSpec]


def require_entity_class(cls: Type[Any]) -> None:
    """Validate that a class is a dataclass entity."""

    if not isinstance(cls, type) or not is_dataclass(cls):
        name = getattr(cls, "__name__", type(cls).__name__)
        raise TypeError(f"{name} must be a dataclass entity.")


def table_name(entity_or_cls: Any) -> str:
    """Resolve table name from entity class or instance.

    Uses `__table__` override when present, otherwise the snake_case class name.
    """

    cls = entity_or_cls if isinstance(entity_or_cls, type) else type(entity_or_cls)
    name = getattr(cls, "__table__", None)
    if isinstance(name, str) and name:
        return name
    return _snake_case(cls.__name__)


def pk_fields(cls: Type[Any]) -> List[Field[Any]]:
    """Return primary key fields defined with `metadata={'pk': True}`."""

    require_entity_class(cls)
    pks = [f for f in fields(cls) if f.metadata.get("pk")]
    if not pks:
        raise ValueError(
            f"{cls.__name__} has no PK field. Use field(metadata={{'pk': True}})."
        )
    return pks


def primary_key(cls: Type[Any]) -> str:
    return entity_schema(cls).primary_key


@lru_cache(maxsize=None)
def entity_schema(cls: Type[Any]) -> EntitySchema:
    """Build (once per class) the schema used by table bindings.

    Raises:
        TypeError: If `cls` is not a dataclass.
        ValueError: If `cls` has zero or multiple primary key fields.
    """

    pks = pk_fields(cls)
    if len(pks) != 1:
        raise ValueError(f"{cls.__name__} must declare exactly 1 PK field.")

    hints = _type_hints(cls)
    attributes = {
        f.name: _attribute_spec(f, hints.get(f.name, f.type)) for f in fields(cls)
    }
    return EntitySchema(
        entity_class=cls,
        entity_name=cls.__name__,
        table=table_name(cls),
        primary_key=pks[0].name,
        auto_primary_key=bool(pks[0].metadata.get("auto")),
        attributes=attributes,
    )


def entity_attributes(obj: Any) -> Attributes:
    """Shallow attribute mapping of an entity instance."""

    require_entity_class(type(obj))
    return {f.name: getattr(obj, f.name) for f in fields(obj)}


def build_entity(cls: Type[T], attributes: Mapping[str, Any]) -> T:
    """Validating constructor: build a well-typed entity from raw attributes.

    Raises:
        ValidationError: On unknown attribute names or failed field checks.
    """

    schema = entity_schema(cls)
    unknown = [name for name in attributes if name not in schema.attributes]
    if unknown:
        raise ValidationError(
            f"{schema.entity_name} has no attributes named {sorted(unknown)!r}."
        )
    try:
        return cls(**dict(attributes))
    except TypeError as exc:
        raise ValidationError(f"Cannot build {schema.entity_name}: {exc}") from exc


def primary_key_value(obj_or_value: Any) -> Any:
    """Return the primary key of an entity instance, or the value itself."""

    if is_dataclass(obj_or_value) and not isinstance(obj_or_value, type):
        return getattr(obj_or_value, entity_schema(type(obj_or_value)).primary_key)
    return obj_or_value


def _attribute_spec(field: Field[Any], annotation: Any) -> AttributeSpec:
    base = unwrap_optional(annotation)
    semantic_type = _declared_type(field) or _semantic_type(base)
    element_type = None
    references = field.metadata.get("references")

    if semantic_type is SemanticType.ARRAY:
        item = _element_annotation(base)
        # Entity-typed items of a reference array are stored as their keys.
        if item is not None and not (references is not None and is_dataclass(item)):
            element_type = _semantic_type(unwrap_optional(item))

    enum_type = base if isinstance(base, type) and issubclass(base, Enum) else None
    document_type = base if is_dataclass(base) and isinstance(base, type) else None
    return AttributeSpec(
        name=field.name,
        annotation=annotation,
        semantic_type=semantic_type,
        element_type=element_type,
        enum_type=enum_type,
        document_type=document_type,
        references=references,
    )


def _declared_type(field: Field[Any]) -> Optional[SemanticType]:
    if field.metadata.get("codec") == "json":
        return SemanticType.DOCUMENT
    if field.metadata.get("references") is not None:
        return SemanticType.ARRAY
    raw = field.metadata.get("type")
    if raw is None:
        return None
    try:
        return SemanticType(raw)
    except ValueError as exc:
        raise ValueError(
            f"Unsupported type {raw!r} on field {field.name!r}. "
            f"Supported types: {[t.value for t in SemanticType]}."
        ) from exc


def _semantic_type(base: Any) -> Optional[SemanticType]:
    if isinstance(base, type):
        if issubclass(base, bool):
            return None
        if issubclass(base, Enum):
            return SemanticType.SYMBOL
        if issubclass(base, (int, float, Decimal)):
            return SemanticType.NUMERIC
        if issubclass(base, str):
            return SemanticType.STRING
        if issubclass(base, datetime):
            return SemanticType.TIMESTAMP
        if is_dataclass(base) or issubclass(base, (dict, Mapping)):
            return SemanticType.DOCUMENT
        if issubclass(base, (list, tuple)):
            return SemanticType.ARRAY
        return None

    origin = get_origin(base)
    if origin in (dict, Mapping):
        return SemanticType.DOCUMENT
    if origin in (list, tuple):
        return SemanticType.ARRAY
    return None


def _element_annotation(base: Any) -> Any:
    args = get_args(base)
    if not args:
        return None
    return args[0]


def unwrap_optional(annotation: Any) -> Any:
    """Strip `Optional[...]` / `X | None` down to `X`."""

    origin = get_origin(annotation)
    if origin is None:
        return annotation

    if origin not in {Union, types.UnionType}:
        return annotation

    all_args = get_args(annotation)
    args = [arg for arg in all_args if arg is not type(None)]
    if len(args) == 1 and len(all_args) == 2:
        return args[0]
    return annotation


def _type_hints(cls: Type[Any]) -> dict[str, Any]:
    try:
        return dict(get_type_hints(cls, include_extras=True))
    except Exception:
        return {}


def _snake_case(name: str) -> str:
    name = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).lower()

