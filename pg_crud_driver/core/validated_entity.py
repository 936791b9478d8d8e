"""Dataclass mixin that validates entity attributes on construction."""

from __future__ import annotations

import types
from abc import ABC
from collections.abc import Callable, Mapping, Sequence
from dataclasses import fields, is_dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Union, get_args, get_origin, get_type_hints


class ValidationError(ValueError):
    """Raised when an entity attribute fails validation."""


class ValidatedEntity(ABC):
    """Base class for entity dataclasses that check their attributes.

    Usage:
    - Inherit this class and decorate the entity with `@dataclass`.
    - Add constraints in field metadata (`required`, `choices`, `min`, `max`,
      `min_len`, `max_len`).
    - Optionally override `entity_validate()` for cross-attribute checks.
    """

    def __post_init__(self) -> None:
        if not is_dataclass(self):
            raise TypeError("ValidatedEntity must be used with @dataclass entities.")
        hints = get_type_hints(type(self), include_extras=True)
        for field in fields(self):
            value = getattr(self, field.name)
            _validate_type(field.name, value, hints.get(field.name, Any))
            _validate_constraints(field.name, value, dict(field.metadata))
        self.entity_validate()

    def entity_validate(self) -> None:
        """Hook for entity-level validation after attribute checks."""


def _validate_type(name: str, value: Any, annotation: Any) -> None:
    if annotation is Any:
        return
    origin = get_origin(annotation)
    args = get_args(annotation)

    if origin in (Union, types.UnionType):
        for option in args:
            try:
                _validate_type(name, value, option)
                return
            except ValidationError:
                continue
        raise ValidationError(
            f"Attribute '{name}' expects {_annotation_name(annotation)}, "
            f"got {type(value).__name__}."
        )

    if origin in (list, tuple, Sequence):
        if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
            raise ValidationError(f"Attribute '{name}' must be a list.")
        if args and args[0] is not Ellipsis:
            for index, item in enumerate(value):
                _validate_type(f"{name}[{index}]", item, args[0])
        return

    if origin in (dict, Mapping):
        if not isinstance(value, Mapping):
            raise ValidationError(f"Attribute '{name}' must be a mapping.")
        return

    if not isinstance(annotation, type):
        return

    if annotation is type(None):
        if value is None:
            return
        raise ValidationError(f"Attribute '{name}' expects None, got {type(value).__name__}.")
    if value is None:
        raise ValidationError(
            f"Attribute '{name}' cannot be None (expected {annotation.__name__})."
        )
    if isinstance(value, bool) and annotation in (int, float, Decimal):
        raise ValidationError(f"Attribute '{name}' expects {annotation.__name__}, got bool.")
    if annotation in (float, Decimal) and isinstance(value, (int, float, Decimal)):
        return
    if issubclass(annotation, Enum) and not isinstance(value, annotation):
        raise ValidationError(
            f"Attribute '{name}' expects {annotation.__name__}, got {value!r}."
        )
    if not isinstance(value, annotation):
        raise ValidationError(
            f"Attribute '{name}' expects {annotation.__name__}, got {type(value).__name__}."
        )


_CONSTRAINTS: tuple[tuple[str, Callable[[Any, Any], bool], str], ...] = (
    ("choices", lambda value, limit: value in set(limit), "must be one of {limit!r}"),
    ("min_len", lambda value, limit: len(value) >= int(limit), "length must be >= {limit}"),
    ("max_len", lambda value, limit: len(value) <= int(limit), "length must be <= {limit}"),
    ("min", lambda value, limit: value >= limit, "must be >= {limit!r}"),
    ("max", lambda value, limit: value <= limit, "must be <= {limit!r}"),
)


def _validate_constraints(name: str, value: Any, metadata: dict[str, Any]) -> None:
    if value is None:
        if metadata.get("required"):
            raise ValidationError(f"Attribute '{name}' is required and cannot be None.")
        return

    for key, check, message in _CONSTRAINTS:
        if key not in metadata:
            continue
        if key.endswith("_len") and not hasattr(value, "__len__"):
            continue
        if not check(value, metadata[key]):
            detail = message.format(limit=metadata[key])
            raise ValidationError(f"Attribute '{name}' {detail}.")


def _annotation_name(annotation: Any) -> str:
    origin = get_origin(annotation)
    if origin is None:
        return getattr(annotation, "__name__", str(annotation))
    inner = ", ".join(map(_annotation_name, get_args(annotation)))
    return f"{getattr(origin, '__name__', origin)}[{inner}]"
