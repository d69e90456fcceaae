import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from config_errors import ConfigurationError
from config_sources import FileDocumentSource, StaticDocumentSource
from nav_composer import FALLBACK_SIDEBAR, FALLBACK_USER_MENU, NavComposer
from nav_config import MenuSurface, NavConfigService, parse_nav_document
from permission_model import PermissionModel
from schema_registry import SchemaRegistry


CONFIG_DIR = os.path.join(ROOT, "app", "config")


def _rule(priority):
    return {"minimumRole": "technician", "minimumPriority": priority, "description": ""}


def _permissions() -> dict:
    crud = lambda read: {"create": _rule(10), "read": _rule(read), "update": _rule(10), "delete": _rule(10)}
    return {
        "version": "3.0.1",
        "roles": {
            "technician": {"priority": 2},
            "admin": {"priority": 10},
        },
        "resources": {
            "work_orders": {"permissions": crud(2)},
            "invoices": {"permissions": crud(5)},
            "dashboard": {"permissions": crud(1)},
            "admin_panel": {"permissions": crud(10)},
        },
    }


def _schema() -> dict:
    return {
        "work_order": {"icon": "assignment", "fields": {"id": {"type": "integer"}}},
        "invoice": {"icon": "receipt", "fields": {"id": {"type": "integer"}}},
    }


def _nav() -> dict:
    return {
        "version": "1.0.0",
        "publicRoutes": [{"id": "login", "path": "/login"}],
        "groups": [
            {"id": "billing", "label": "Billing", "order": 20},
            {"id": "main", "label": "Main", "order": 0},
            {"id": "operations", "label": "Operations", "order": 10},
        ],
        "staticItems": [
            {"id": "home", "label": "Dashboard", "route": "/home", "group": "main", "order": 0, "permissionResource": "dashboard"},
            {"id": "help", "label": "Help", "route": "/help", "order": 0},
            {"id": "reports", "label": "Reports", "route": "/reports", "group": "operations", "order": 5},
            {"id": "admin", "label": "Admin", "route": "/admin", "menuType": "userMenu", "permissionResource": "admin_panel"},
            {"id": "settings", "label": "Settings", "route": "/settings", "menuType": "userMenu", "order": 10},
        ],
        "entityPlacements": {
            "work_order": {"group": "operations", "order": 0},
            "invoice": {"group": "billing", "order": 10},
            "spaceship": {"group": "operations", "order": 20},
        },
    }


class BrokenPermissions:
    def has_permission(self, role, resource, operation):
        raise RuntimeError("permission store unavailable")


class TestNavComposer(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.permissions = PermissionModel(StaticDocumentSource(_permissions()), required_resources=())
        self.registry = SchemaRegistry(StaticDocumentSource(_schema()), known_resources=self.permissions.resource_names)
        self.nav = NavConfigService(StaticDocumentSource(_nav()))
        await self.permissions.initialize()
        await self.registry.initialize()
        await self.nav.initialize()
        self.composer = NavComposer(self.nav, self.registry, self.permissions)

    async def test_read_permission_gates_entity_entries(self) -> None:
        technician = [e.id for e in self.composer.build_sidebar("technician")]
        admin = [e.id for e in self.composer.build_sidebar("admin")]
        self.assertNotIn("entity_invoice", technician)
        self.assertIn("entity_work_order", technician)
        self.assertIn("entity_invoice", admin)

    async def test_order_groups_then_items_then_ungrouped(self) -> None:
        entries = self.composer.build_sidebar("admin")
        self.assertEqual(
            [e.id for e in entries],
            ["home", "entity_work_order", "reports", "entity_invoice", "help"],
        )
        invoice = entries[3]
        self.assertEqual(invoice.label, "Invoices")
        self.assertEqual(invoice.route, "/invoice")
        self.assertEqual(invoice.group_label, "Billing")
        self.assertEqual(invoice.resource, "invoices")

    async def test_unknown_entity_placement_skipped(self) -> None:
        ids = [e.id for e in self.composer.compose(MenuSurface.SIDEBAR)]
        self.assertNotIn("entity_spaceship", ids)

    async def test_missing_role_sees_nothing(self) -> None:
        self.assertEqual(self.composer.build_sidebar(""), [])
        self.assertEqual(self.composer.build_sidebar(None), [])
        self.assertEqual(self.composer.build_sidebar("ghost"), [e for e in self.composer.compose(MenuSurface.SIDEBAR) if e.resource is None])

    async def test_user_menu(self) -> None:
        self.assertEqual([e.id for e in self.composer.build_user_menu("technician")], ["settings"])
        self.assertEqual([e.id for e in self.composer.build_user_menu("admin")], ["admin", "settings"])
        self.assertEqual([e.id for e in self.composer.build("usermenu", "admin")], ["admin", "settings"])

    async def test_route_prefix(self) -> None:
        composer = NavComposer(self.nav, self.registry, self.permissions, route_prefix="/app/")
        entry = [e for e in composer.build_sidebar("admin") if e.entity == "work_order"][0]
        self.assertEqual(entry.route, "/app/work_order")

    async def test_filter_failure_returns_unfiltered(self) -> None:
        composer = NavComposer(self.nav, self.registry, BrokenPermissions())
        with self.assertLogs("tross.nav", level="ERROR") as logs:
            entries = composer.build_sidebar("technician")
        self.assertEqual(entries, composer.compose(MenuSurface.SIDEBAR))
        self.assertTrue(any("nav_filter_failed" in line for line in logs.output))

    async def test_to_json(self) -> None:
        payload = self.composer.build_sidebar("admin")[0].to_json()
        self.assertEqual(payload["groupLabel"], "Main")
        self.assertEqual(payload["resource"], "dashboard")


class TestFallbackMenus(unittest.IsolatedAsyncioTestCase):
    async def test_fallback_when_nav_not_loaded(self) -> None:
        permissions = PermissionModel(StaticDocumentSource(_permissions()), required_resources=())
        await permissions.initialize()
        registry = SchemaRegistry(StaticDocumentSource(_schema()))
        nav = NavConfigService(StaticDocumentSource(_nav()))
        composer = NavComposer(nav, registry, permissions)
        self.assertEqual(composer.build_sidebar("technician"), list(FALLBACK_SIDEBAR))
        self.assertEqual([e.id for e in composer.build_user_menu("technician")], ["settings"])
        self.assertEqual(composer.build_user_menu("admin"), list(FALLBACK_USER_MENU))


class TestNavConfig(unittest.IsolatedAsyncioTestCase):
    def test_public_routes(self) -> None:
        config = parse_nav_document(_nav())
        self.assertTrue(config.is_public_route("/login/"))
        self.assertTrue(config.is_public_route("/login?next=/home"))
        self.assertFalse(config.is_public_route("/home"))
        self.assertEqual(config.get_public_route("login").path, "/login")
        self.assertIsNone(config.get_public_route("missing"))

    def test_invalid_items_fail_load(self) -> None:
        doc = _nav()
        doc["staticItems"].append({"id": "broken", "label": "Broken"})
        with self.assertRaises(ConfigurationError) as ctx:
            parse_nav_document(doc)
        self.assertEqual(ctx.exception.path, "staticItems[5].route")

    def test_surface_parsing(self) -> None:
        self.assertEqual(MenuSurface.parse("userMenu"), MenuSurface.USER_MENU)
        self.assertEqual(MenuSurface.parse(None), MenuSurface.SIDEBAR)

    async def test_packaged_navigation_composes(self) -> None:
        permissions = PermissionModel(FileDocumentSource(os.path.join(CONFIG_DIR, "permissions.json")))
        registry = SchemaRegistry(
            FileDocumentSource(os.path.join(CONFIG_DIR, "entity-metadata.json")),
            known_resources=permissions.resource_names,
        )
        nav = NavConfigService(FileDocumentSource(os.path.join(CONFIG_DIR, "nav-config.json")))
        await registry.initialize()
        await nav.initialize()
        composer = NavComposer(nav, registry, permissions)
        admin = composer.build_sidebar("admin")
        customer = composer.build_sidebar("customer")
        self.assertEqual(len([e for e in admin if e.entity]), 8)
        self.assertLess(len(customer), len(admin))
        self.assertEqual(admin[0].id, "home")


if __name__ == "__main__":
    unittest.main()
