import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from config_sources import StaticDocumentSource
from schema_registry import SchemaRegistry
from table_column_factory import EMPTY_CELL, ForeignKeyDisplayCache, TableColumnFactory, status_style


def _document() -> dict:
    return {
        "customer": {
            "displayField": "company_name",
            "sortableFields": ["id", "company_name"],
            "fields": {
                "id": {"type": "integer"},
                "company_name": {"type": "string"},
                "email": {"type": "email"},
            },
        },
        "work_order": {
            "sortableFields": ["id", "title", "scheduled_start", "is_active", "amount", "priority", "created_at"],
            "fields": {
                "id": {"type": "integer"},
                "title": {"type": "string"},
                "description": {"type": "text"},
                "status": {"type": "enum", "values": ["pending", "in_progress"]},
                "priority": {"type": "integer"},
                "amount": {"type": "decimal"},
                "is_active": {"type": "boolean"},
                "due_on": {"type": "date"},
                "scheduled_start": {"type": "timestamp"},
                "customer_id": {"type": "foreignKey", "relatedEntity": "customer"},
                "created_at": {"type": "timestamp"},
                "updated_at": {"type": "timestamp"},
            },
        },
    }


class FakeLookup:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls = []

    async def list_records(self, entity):
        return []

    async def get(self, entity, record_id):
        self.calls.append((entity, record_id))
        if self.fail:
            raise RuntimeError("backend down")
        return {"id": record_id, "company_name": f"Company {record_id}"}


def _by_id(columns):
    return {c.id: c for c in columns}


class TestTableColumnFactory(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.registry = SchemaRegistry(StaticDocumentSource(_document()))
        await self.registry.initialize()
        self.lookup = FakeLookup()
        self.cache = ForeignKeyDisplayCache()
        self.factory = TableColumnFactory(self.registry, entity_lookup=self.lookup, display_cache=self.cache)

    async def test_default_columns_skip_timestamps(self) -> None:
        ids = [c.id for c in self.factory.for_entity("work_order")]
        self.assertEqual(
            ids,
            ["id", "title", "description", "status", "priority", "amount", "is_active", "due_on", "scheduled_start", "customer_id"],
        )

    async def test_visible_fields_ignore_unknown(self) -> None:
        ids = [c.id for c in self.factory.for_entity("work_order", visible_fields=["title", "nope", "created_at"])]
        self.assertEqual(ids, ["title", "created_at"])

    async def test_labels_widths_and_flags(self) -> None:
        columns = _by_id(self.factory.for_entity("work_order"))
        self.assertEqual(columns["customer_id"].label, "Customer Id")
        self.assertEqual(columns["scheduled_start"].label, "Scheduled Start")
        expected_widths = {
            "id": 0.8,
            "customer_id": 2.0,
            "is_active": 1.3,
            "status": 1.5,
            "description": 3.0,
            "amount": 1.2,
            "scheduled_start": 1.8,
        }
        for name, width in expected_widths.items():
            with self.subTest(column=name):
                self.assertEqual(columns[name].width, width)
        self.assertTrue(columns["title"].sortable)
        self.assertFalse(columns["description"].sortable)
        self.assertTrue(columns["status"].badge)
        self.assertFalse(columns["title"].badge)

    async def test_timestamp_sort_keeps_bad_values_last(self) -> None:
        column = _by_id(self.factory.for_entity("work_order"))["scheduled_start"]
        rows = [
            {"id": 1, "scheduled_start": "2024-03-01T09:00:00Z"},
            {"id": 2, "scheduled_start": None},
            {"id": 3, "scheduled_start": "2024-01-15T15:45:00Z"},
            {"id": 4, "scheduled_start": "not a date"},
            {"id": 5, "scheduled_start": "2024-02-10T00:00:00+05:00"},
        ]
        ascending = [r["id"] for r in column.sort_rows(rows)]
        descending = [r["id"] for r in column.sort_rows(rows, descending=True)]
        self.assertEqual(ascending[:3], [3, 5, 1])
        self.assertEqual(descending[:3], [1, 5, 3])
        self.assertEqual(set(ascending[3:]), {2, 4})
        self.assertEqual(set(descending[3:]), {2, 4})

    async def test_boolean_true_sorts_first(self) -> None:
        column = _by_id(self.factory.for_entity("work_order"))["is_active"]
        rows = [{"is_active": False}, {"is_active": None}, {"is_active": True}]
        self.assertEqual([r["is_active"] for r in column.sort_rows(rows)], [True, False, None])
        self.assertEqual([r["is_active"] for r in column.sort_rows(rows, descending=True)], [False, True, None])

    async def test_numeric_strings_sort_numerically(self) -> None:
        column = _by_id(self.factory.for_entity("work_order"))["amount"]
        rows = [{"amount": "100.5"}, {"amount": 9}, {"amount": "n/a"}, {"amount": "20"}]
        self.assertEqual([r["amount"] for r in column.sort_rows(rows)], [9, "20", "100.5", "n/a"])

    async def test_text_sort_is_case_sensitive(self) -> None:
        column = _by_id(self.factory.for_entity("work_order"))["title"]
        rows = [{"title": "beta"}, {"title": "Alpha"}, {"title": "alpha"}, {"title": "Beta"}]
        self.assertEqual([r["title"] for r in column.sort_rows(rows)], ["Alpha", "Beta", "alpha", "beta"])

    async def test_unsortable_column_refuses(self) -> None:
        column = _by_id(self.factory.for_entity("work_order"))["description"]
        with self.assertRaises(ValueError):
            column.sort_rows([{"description": "a"}])

    async def test_cell_formats(self) -> None:
        columns = _by_id(self.factory.for_entity("work_order"))
        record = {
            "scheduled_start": "2024-01-15T15:45:00Z",
            "due_on": "2024-02-03",
            "amount": "1234.5",
            "priority": 3,
            "is_active": False,
            "status": "in_progress",
            "title": "",
        }
        cases = {
            "scheduled_start": "Jan 15, 2024 3:45 PM",
            "due_on": "Feb 3, 2024",
            "amount": "1234.50",
            "priority": "3",
            "is_active": "No",
            "status": "In Progress",
            "title": EMPTY_CELL,
            "description": EMPTY_CELL,
        }
        for name, expected in cases.items():
            with self.subTest(column=name):
                self.assertEqual(await columns[name].render(record), expected)

    async def test_midnight_renders_as_twelve_am(self) -> None:
        column = _by_id(self.factory.for_entity("work_order"))["scheduled_start"]
        self.assertEqual(await column.render({"scheduled_start": "2024-07-04T00:05:00Z"}), "Jul 4, 2024 12:05 AM")

    async def test_status_style(self) -> None:
        column = _by_id(self.factory.for_entity("work_order"))["status"]
        self.assertEqual(column.cell_style({"status": "pending"}), "warning")
        self.assertEqual(status_style("unheard_of"), "neutral")
        self.assertIsNone(_by_id(self.factory.for_entity("work_order"))["title"].cell_style({"title": "x"}))

    async def test_foreign_key_lookup_is_cached(self) -> None:
        column = _by_id(self.factory.for_entity("work_order"))["customer_id"]
        first = await column.render({"customer_id": 7})
        second = await column.render({"customer_id": "7"})
        self.assertEqual(first, "Company 7")
        self.assertEqual(second, "Company 7")
        self.assertEqual(self.cache.lookups, 1)
        self.assertEqual(self.lookup.calls, [("customer", 7)])
        self.assertEqual(await column.render({"customer_id": None}), EMPTY_CELL)

    async def test_foreign_key_lookup_failure_shows_id(self) -> None:
        failing = FakeLookup(fail=True)
        cache = ForeignKeyDisplayCache()
        factory = TableColumnFactory(self.registry, entity_lookup=failing, display_cache=cache)
        column = _by_id(factory.for_entity("work_order"))["customer_id"]
        with self.assertLogs("tross.columns", level="WARNING"):
            self.assertEqual(await column.render({"customer_id": 4}), "ID: 4")
        self.assertEqual(len(cache), 0)

    async def test_foreign_key_without_lookup_uses_cache_only(self) -> None:
        self.cache._values[("customer", "2")] = "Known Co"
        factory = TableColumnFactory(self.registry, display_cache=self.cache)
        column = _by_id(factory.for_entity("work_order"))["customer_id"]
        self.assertEqual(await column.render({"customer_id": 2}), "Known Co")
        self.assertEqual(await column.render({"customer_id": 3}), "ID: 3")

    async def test_custom_renderers(self) -> None:
        async def shout(record):
            return record["title"].upper()

        columns = _by_id(
            self.factory.for_entity(
                "work_order",
                custom_renderers={"title": shout, "priority": lambda r: f"P{r['priority']}"},
            )
        )
        record = {"title": "fix boiler", "priority": 2}
        self.assertEqual(await columns["title"].render(record), "FIX BOILER")
        self.assertEqual(await columns["priority"].render(record), "P2")

    async def test_to_json(self) -> None:
        payload = _by_id(self.factory.for_entity("work_order"))["status"].to_json()
        self.assertEqual(payload, {"id": "status", "label": "Status", "type": "enum", "width": 1.5, "sortable": False, "badge": True})


if __name__ == "__main__":
    unittest.main()
