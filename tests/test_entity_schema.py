import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from entity_schema import EntityMetadata, FieldDefinition, FieldType, SortOrder, SortSpec, render_display


class TestFieldType(unittest.TestCase):
    def test_aliases(self) -> None:
        cases = {
            "int": FieldType.INTEGER,
            "bool": FieldType.BOOLEAN,
            "datetime": FieldType.TIMESTAMP,
            "currency": FieldType.DECIMAL,
            "foreignKey": FieldType.FOREIGN_KEY,
            "foreign_key": FieldType.FOREIGN_KEY,
            "jsonb": FieldType.TEXT,
            " Email ": FieldType.EMAIL,
        }
        for raw, expected in cases.items():
            with self.subTest(raw=raw):
                self.assertEqual(FieldType.parse(raw), expected)

    def test_unknown_defaults_to_string(self) -> None:
        self.assertEqual(FieldType.parse("geometry"), FieldType.STRING)
        self.assertEqual(FieldType.parse(None), FieldType.STRING)


class TestSortSpec(unittest.TestCase):
    def test_defaults(self) -> None:
        self.assertEqual(SortSpec(), SortSpec("created_at", SortOrder.DESC))
        self.assertEqual(SortSpec.from_json(None), SortSpec())

    def test_order_is_case_insensitive(self) -> None:
        spec = SortSpec.from_json({"field": "priority", "order": "asc"})
        self.assertEqual(spec.to_json(), {"field": "priority", "order": "ASC"})
        self.assertEqual(SortSpec.from_json({"field": "name", "order": "sideways"}).order, SortOrder.DESC)


class TestFieldDefinition(unittest.TestCase):
    def test_constraints_survive_round_trip(self) -> None:
        raw = {
            "type": "foreignKey",
            "required": True,
            "relatedEntity": "customer",
            "displayFields": ["company_name", "email"],
            "description": "Billed party",
        }
        fdef = FieldDefinition.from_json("customer_id", raw)
        self.assertTrue(fdef.is_foreign_key)
        self.assertEqual(fdef.display_fields, ("company_name", "email"))
        self.assertEqual(
            fdef.to_json(),
            {
                "type": "foreign_key",
                "required": True,
                "description": "Billed party",
                "relatedEntity": "customer",
                "displayFields": ["company_name", "email"],
            },
        )

    def test_bad_constraint_values_are_ignored(self) -> None:
        fdef = FieldDefinition.from_json("name", {"type": "string", "maxLength": "long", "min": True, "values": "a,b"})
        self.assertIsNone(fdef.max_length)
        self.assertIsNone(fdef.min)
        self.assertEqual(fdef.enum_values, ())

    def test_default_is_copied(self) -> None:
        raw = {"type": "text", "default": {"tags": ["a"]}}
        fdef = FieldDefinition.from_json("notes", raw)
        raw["default"]["tags"].append("b")
        self.assertEqual(fdef.default, {"tags": ["a"]})

    def test_numeric(self) -> None:
        self.assertTrue(FieldDefinition.from_json("n", {"type": "decimal"}).is_numeric)
        self.assertFalse(FieldDefinition.from_json("n", {"type": "string"}).is_numeric)


class TestEntityMetadata(unittest.TestCase):
    def test_defaults_for_sparse_entity(self) -> None:
        meta = EntityMetadata.from_json("work_order", {"fields": {"id": {"type": "integer"}}})
        self.assertEqual(meta.table_name, "work_orders")
        self.assertEqual(meta.resource, "work_orders")
        self.assertEqual(meta.primary_key, "id")
        self.assertEqual(meta.display_field, "id")
        self.assertEqual(meta.display_name, "Work Order")
        self.assertEqual(meta.display_name_plural, "Work Orders")
        self.assertEqual(meta.default_sort, SortSpec())

    def test_plural_labels(self) -> None:
        cases = {"inventory": "Inventories", "address": "Addresses", "branch": "Branches", "key": "Keys"}
        for name, expected in cases.items():
            with self.subTest(name=name):
                self.assertEqual(EntityMetadata.from_json(name, {}).display_name_plural, expected)

    def test_explicit_plural_wins(self) -> None:
        meta = EntityMetadata.from_json("inventory", {"displayNamePlural": "Inventory"})
        self.assertEqual(meta.display_name_plural, "Inventory")

    def test_display_field_falls_back_to_identity(self) -> None:
        meta = EntityMetadata.from_json("customer", {"identityField": "email"})
        self.assertEqual(meta.display_field, "email")

    def test_field_predicates(self) -> None:
        meta = EntityMetadata.from_json(
            "user",
            {
                "requiredFields": ["email"],
                "immutableFields": ["auth0_id"],
                "fields": {
                    "id": {"type": "integer", "readonly": True},
                    "email": {"type": "email"},
                    "phone": {"type": "phone", "required": True},
                    "auth0_id": {"type": "string"},
                    "created_at": {"type": "timestamp", "readonly": True},
                },
            },
        )
        self.assertTrue(meta.is_required("email"))
        self.assertTrue(meta.is_required("phone"))
        self.assertFalse(meta.is_required("auth0_id"))
        self.assertTrue(meta.is_immutable("auth0_id"))
        self.assertTrue(meta.is_immutable("id"))
        self.assertTrue(meta.is_immutable("created_at"))
        self.assertFalse(meta.is_immutable("email"))
        self.assertTrue(meta.is_readonly("id"))
        self.assertTrue(meta.is_system_field("updated_at"))
        self.assertFalse(meta.is_system_field("email"))
        self.assertIsNone(meta.get_field("missing"))

    def test_to_json_reparses_to_equal_metadata(self) -> None:
        meta = EntityMetadata.from_json(
            "role",
            {"identityField": "name", "icon": "badge", "fields": {"name": {"type": "string", "minLength": 2}}},
        )
        self.assertEqual(EntityMetadata.from_json("role", meta.to_json()), meta)


class TestRenderDisplay(unittest.TestCase):
    def test_precedence(self) -> None:
        record = {"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com", "name": "ada"}
        self.assertEqual(render_display(record, "email", template="{first_name} {last_name}"), "Ada Lovelace")
        self.assertEqual(render_display(record, "email", display_fields=("last_name", "first_name")), "Lovelace Ada")
        self.assertEqual(render_display(record, "email"), "ada@example.com")
        self.assertEqual(render_display(record), "ada")

    def test_missing_values(self) -> None:
        self.assertEqual(render_display({"first_name": "Ada"}, template="{first_name} {last_name}"), "Ada")
        self.assertIsNone(render_display({}, "email", template="{first_name}"))
        self.assertIsNone(render_display(None))


if __name__ == "__main__":
    unittest.main()
