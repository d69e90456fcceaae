import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from tross import canonical_dumps, document_fingerprint, pluralize_label, title_case


class TestDocumentFingerprint(unittest.TestCase):
    def test_fingerprint_ignores_key_order(self) -> None:
        a = {"version": "3.0.1", "roles": {"admin": {"priority": 5}}}
        b = {"roles": {"admin": {"priority": 5}}, "version": "3.0.1"}
        self.assertEqual(document_fingerprint(a), document_fingerprint(b))

    def test_fingerprint_changes_with_content(self) -> None:
        self.assertNotEqual(document_fingerprint({"version": "3.0.1"}), document_fingerprint({"version": "3.0.2"}))

    def test_fingerprint_format(self) -> None:
        value = document_fingerprint({"a": 1})
        self.assertTrue(value.startswith("sha256:"))
        self.assertEqual(len(value), len("sha256:") + 64)

    def test_fingerprint_rejects_nan(self) -> None:
        with self.assertRaises(ValueError):
            document_fingerprint({"min": float("nan")})

    def test_canonical_form(self) -> None:
        doc = {"roles": {"viewer": {"priority": 1}, "admin": {"priority": 10}}, "fields": ["email", "company_name"]}
        expected = '{"fields":["email","company_name"],"roles":{"admin":{"priority":10},"viewer":{"priority":1}}}'
        self.assertEqual(canonical_dumps(doc), expected)
        self.assertIn("Café", canonical_dumps({"displayName": "Café"}))


class TestLabels(unittest.TestCase):
    def test_title_case(self) -> None:
        self.assertEqual(title_case("work_order"), "Work Order")
        self.assertEqual(title_case("first_name"), "First Name")
        self.assertEqual(title_case("customer_id"), "Customer Id")
        self.assertEqual(title_case(""), "")

    def test_pluralize_label(self) -> None:
        self.assertEqual(pluralize_label("Work Order"), "Work Orders")
        self.assertEqual(pluralize_label("Inventory"), "Inventories")
        self.assertEqual(pluralize_label("Status"), "Statuses")
        self.assertEqual(pluralize_label("Box"), "Boxes")
        self.assertEqual(pluralize_label("Batch"), "Batches")
        self.assertEqual(pluralize_label("Day"), "Days")


if __name__ == "__main__":
    unittest.main()
