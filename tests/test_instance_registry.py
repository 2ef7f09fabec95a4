import os
import sys
import threading
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from component_registry import ComponentRegistry
from instance_registry import InstanceRegistry, ParsedId, join_id, parse_id
from panel_manager import PanelManager


def _registry() -> InstanceRegistry:
    components = ComponentRegistry()
    return InstanceRegistry(lambda ns: PanelManager(ns, components))


class TestParseId(unittest.TestCase):
    def test_splits_on_first_underscore(self) -> None:
        self.assertEqual(parse_id("shop_edit_order"), ParsedId("shop", "edit_order"))
        self.assertEqual(parse_id("shop_order"), ParsedId("shop", "order"))

    def test_rejects_malformed(self) -> None:
        self.assertIsNone(parse_id("nounderscore"))
        self.assertIsNone(parse_id("_leading"))
        self.assertIsNone(parse_id(""))
        self.assertIsNone(parse_id(None))
        self.assertIsNone(parse_id(42))

    def test_trailing_underscore_gives_empty_local(self) -> None:
        self.assertEqual(parse_id("shop_"), ParsedId("shop", ""))

    def test_join_round_trip(self) -> None:
        for ns, local in (("shop", "order"), ("a", "b_c"), ("crm", "x")):
            self.assertEqual(parse_id(join_id(ns, local)), ParsedId(ns, local))


class TestInstanceRegistry(unittest.TestCase):
    def test_register_get_has_remove(self) -> None:
        registry = _registry()
        manager = PanelManager("shop", ComponentRegistry())
        registry.register("Shop", manager)
        self.assertIs(registry.get("shop"), manager)
        self.assertTrue(registry.has("SHOP"))
        self.assertEqual(registry.namespaces(), ["shop"])
        with self.assertRaises(ValueError):
            registry.register("shop", PanelManager("shop", ComponentRegistry()))
        self.assertTrue(registry.remove("shop"))
        self.assertFalse(registry.remove("shop"))
        self.assertIsNone(registry.get("shop"))

    def test_resolve_without_create(self) -> None:
        registry = _registry()
        self.assertIsNone(registry.resolve("shop_order"))
        self.assertIsNone(registry.resolve("malformed"))

    def test_resolve_creates_once(self) -> None:
        registry = _registry()
        first = registry.resolve("shop_order", create_if_missing=True)
        second = registry.resolve("shop_refund", create_if_missing=True)
        self.assertIsNotNone(first)
        self.assertEqual(first.local, "order")
        self.assertIs(first.manager, second.manager)
        self.assertEqual(first.manager.namespace, "shop")

    def test_concurrent_get_or_create_single_winner(self) -> None:
        created = []
        components = ComponentRegistry()

        def factory(ns: str) -> PanelManager:
            manager = PanelManager(ns, components)
            created.append(manager)
            return manager

        registry = InstanceRegistry(factory)
        barrier = threading.Barrier(8)
        seen = []

        def worker() -> None:
            barrier.wait()
            seen.append(registry.get_or_create("crm"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(created), 1)
        self.assertTrue(all(manager is created[0] for manager in seen))

    def test_get_or_create_rejects_empty_namespace(self) -> None:
        registry = _registry()
        self.assertIsNone(registry.get_or_create("!!!"))
        self.assertEqual(registry.namespaces(), [])


if __name__ == "__main__":
    unittest.main()
