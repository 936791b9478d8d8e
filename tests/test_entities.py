from __future__ import annotations

import unittest
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pg_crud_driver.core.entities import (
    SemanticType,
    build_entity,
    entity_attributes,
    entity_schema,
    primary_key,
    primary_key_value,
    table_name,
    unwrap_optional,
)
from pg_crud_driver.core.validated_entity import ValidatedEntity, ValidationError


class Status(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class Label:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})


@dataclass
class SupportTicket:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    title: str = ""
    priority: int = 0
    status: Status = Status.OPEN
    opened_at: Optional[datetime] = None
    extra: Optional[dict[str, Any]] = None
    raw: str = field(default="{}", metadata={"codec": "json"})
    label_ids: list[int] = field(default_factory=list, metadata={"references": Label})
    tags: list[str] = field(default_factory=list)
    archived: bool = False


@dataclass
class Board:
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    labels: list[Label] = field(default_factory=list, metadata={"references": Label})


@dataclass
class NoKey:
    name: str = ""


@dataclass
class TwoKeys:
    a: int = field(default=0, metadata={"pk": True})
    b: int = field(default=0, metadata={"pk": True})


@dataclass
class BadDeclaredType:
    id: int = field(default=0, metadata={"pk": True})
    value: str = field(default="", metadata={"type": "geometry"})


@dataclass
class Account(ValidatedEntity):
    id: Optional[int] = field(default=None, metadata={"pk": True, "auto": True})
    email: str = field(default="a@example.com", metadata={"min_len": 3, "max_len": 40})
    age: Optional[int] = field(default=None, metadata={"min": 0, "max": 150})
    plan: str = field(default="free", metadata={"choices": ["free", "pro"]})

    def entity_validate(self) -> None:
        if self.plan == "pro" and self.age is not None and self.age < 18:
            raise ValidationError("Pro accounts require adult owners.")


class EntitySchemaTests(unittest.TestCase):
    def test_semantic_types_are_derived_from_annotations(self) -> None:
        attributes = entity_schema(SupportTicket).attributes

        self.assertEqual(attributes["id"].semantic_type, SemanticType.NUMERIC)
        self.assertEqual(attributes["title"].semantic_type, SemanticType.STRING)
        self.assertEqual(attributes["priority"].semantic_type, SemanticType.NUMERIC)
        self.assertEqual(attributes["status"].semantic_type, SemanticType.SYMBOL)
        self.assertIs(attributes["status"].enum_type, Status)
        self.assertEqual(attributes["opened_at"].semantic_type, SemanticType.TIMESTAMP)
        self.assertEqual(attributes["extra"].semantic_type, SemanticType.DOCUMENT)
        self.assertEqual(attributes["raw"].semantic_type, SemanticType.DOCUMENT)
        self.assertEqual(attributes["tags"].semantic_type, SemanticType.ARRAY)
        self.assertEqual(attributes["tags"].element_type, SemanticType.STRING)
        self.assertIsNone(attributes["archived"].semantic_type)

    def test_reference_arrays_hold_numeric_keys(self) -> None:
        spec = entity_schema(SupportTicket).attributes["label_ids"]

        self.assertEqual(spec.semantic_type, SemanticType.ARRAY)
        self.assertEqual(spec.element_type, SemanticType.NUMERIC)
        self.assertIs(spec.references, Label)

    def test_entity_typed_reference_arrays_leave_element_type_open(self) -> None:
        spec = entity_schema(Board).attributes["labels"]

        self.assertEqual(spec.semantic_type, SemanticType.ARRAY)
        self.assertIsNone(spec.element_type)
        self.assertIs(spec.references, Label)

    def test_schema_names_and_primary_key(self) -> None:
        schema = entity_schema(SupportTicket)

        self.assertEqual(schema.entity_name, "SupportTicket")
        self.assertEqual(schema.table, "support_ticket")
        self.assertEqual(schema.primary_key, "id")
        self.assertTrue(schema.auto_primary_key)
        self.assertEqual(primary_key(SupportTicket), "id")

    def test_schema_is_cached(self) -> None:
        self.assertIs(entity_schema(SupportTicket), entity_schema(SupportTicket))

    def test_table_name_from_instance(self) -> None:
        self.assertEqual(table_name(SupportTicket()), "support_ticket")
        self.assertEqual(table_name(Label), "label")

    def test_missing_or_multiple_primary_keys_raise(self) -> None:
        with self.assertRaises(ValueError):
            entity_schema(NoKey)
        with self.assertRaises(ValueError):
            entity_schema(TwoKeys)

    def test_non_dataclass_raises(self) -> None:
        with self.assertRaises(TypeError):
            entity_schema(dict)

    def test_unknown_declared_type_raises(self) -> None:
        with self.assertRaises(ValueError):
            entity_schema(BadDeclaredType)

    def test_unwrap_optional(self) -> None:
        self.assertIs(unwrap_optional(Optional[int]), int)
        self.assertIs(unwrap_optional(int), int)
        self.assertEqual(unwrap_optional(Optional[list[int]]), list[int])


class BuildEntityTests(unittest.TestCase):
    def test_builds_and_flattens(self) -> None:
        ticket = build_entity(SupportTicket, {"id": 1, "title": "Broken", "priority": 2})

        self.assertEqual(ticket.title, "Broken")
        attributes = entity_attributes(ticket)
        self.assertEqual(attributes["id"], 1)
        self.assertEqual(attributes["status"], Status.OPEN)
        self.assertEqual(set(attributes), set(entity_schema(SupportTicket).attributes))

    def test_unknown_attribute_raises(self) -> None:
        with self.assertRaises(ValidationError):
            build_entity(SupportTicket, {"id": 1, "nope": 2})

    def test_primary_key_value(self) -> None:
        self.assertEqual(primary_key_value(Label(id=5)), 5)
        self.assertEqual(primary_key_value(7), 7)


class ValidatedEntityTests(unittest.TestCase):
    def test_valid_entity(self) -> None:
        account = Account(id=1, email="me@example.com", age=30, plan="pro")
        self.assertEqual(account.plan, "pro")

    def test_type_mismatch(self) -> None:
        with self.assertRaises(ValidationError):
            Account(email=123)  # type: ignore[arg-type]

    def test_bool_is_not_an_int(self) -> None:
        with self.assertRaises(ValidationError):
            Account(age=True)

    def test_constraints(self) -> None:
        with self.assertRaises(ValidationError):
            Account(email="ab")
        with self.assertRaises(ValidationError):
            Account(age=-1)
        with self.assertRaises(ValidationError):
            Account(plan="gold")

    def test_entity_level_hook(self) -> None:
        with self.assertRaises(ValidationError):
            Account(age=12, plan="pro")

    def test_build_entity_surfaces_validation_errors(self) -> None:
        with self.assertRaises(ValidationError):
            build_entity(Account, {"id": 1, "age": 200})


if __name__ == "__main__":
    unittest.main()
