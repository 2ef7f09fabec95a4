import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from component_registry import ComponentRegistry
from panel_errors import Misconfigured
from panel_manager import PanelManager
from panel_types import (
    ActionButtonsField,
    ActionItem,
    FieldDeclaration,
    GroupField,
    PanelDefinition,
    SearchField,
)


class Customer:
    def __init__(self) -> None:
        self.email = "ada@example.com"

    def get_name(self) -> str:
        return "Ada <Lovelace>"


class TestPanelRegistration(unittest.TestCase):
    def setUp(self) -> None:
        self.manager = PanelManager("shop", ComponentRegistry(), route_prefix="/flyouts/v1/")

    def test_register_from_mapping(self) -> None:
        panel = self.manager.register_panel(
            "order",
            {
                "title": "Order",
                "size": "huge",
                "tabs": {"details": "Details", "notes": {"label": "Notes"}},
                "fields": {
                    "customer": {"type": "text", "label": "Customer"},
                    "header": {"type": "header", "editable": True},
                    "actions": {"type": "action_buttons", "buttons": [{"action": "refund", "text": "Refund"}]},
                },
            },
        )
        self.assertEqual(panel.id, "order")
        self.assertEqual(panel.size, "medium")
        self.assertEqual(panel.capability, "panels.manage")
        self.assertEqual(panel.tabs, {"details": "Details", "notes": "Notes"})
        self.assertIsInstance(panel.fields[2], ActionButtonsField)
        self.assertEqual(panel.fields[2].buttons[0].action, "refund")
        self.assertEqual(self.manager.required_assets(), ["image-picker", "action-buttons"])
        self.assertTrue(self.manager.has_panel("order"))
        self.assertIs(self.manager.get_panel("order"), panel)
        self.assertIsNone(self.manager.get_panel("missing"))

    def test_register_requires_local_id(self) -> None:
        with self.assertRaises(ValueError):
            self.manager.register_panel("", PanelDefinition(title="x"))

    def test_register_overwrites(self) -> None:
        self.manager.register_panel("order", PanelDefinition(title="First"))
        self.manager.register_panel("order", PanelDefinition(title="Second"))
        self.assertEqual(self.manager.get_panel("order").title, "Second")
        self.assertEqual(list(self.manager.panels()), ["order"])

    def test_duplicate_names_rejected(self) -> None:
        fields = [FieldDeclaration(key="email"), FieldDeclaration(key="contact", name="email")]
        with self.assertRaises(Misconfigured) as ctx:
            self.manager.register_panel("order", PanelDefinition(fields=fields))
        self.assertEqual(ctx.exception.code, "DUPLICATE_FIELD_NAME")
        self.assertFalse(self.manager.has_panel("order"))


class TestNormalizeFields(unittest.TestCase):
    def setUp(self) -> None:
        self.manager = PanelManager("shop", ComponentRegistry(), nonce_factory=lambda scope: f"nonce-{scope}")

    def test_groups_are_flattened_with_tab(self) -> None:
        group = GroupField(key="address", tab="shipping", fields=[FieldDeclaration(key="street"), FieldDeclaration(key="city", tab="other")])
        fields = self.manager.normalize_fields([FieldDeclaration(key="name"), group], "order")
        self.assertEqual([f.key for f in fields], ["name", "street", "city"])
        self.assertEqual([f.tab for f in fields], [None, "shipping", "other"])
        self.assertEqual(fields[1].name, "street")
        self.assertEqual(fields[1].computed["dom_id"], "flyout-shop-order-street")

    def test_search_fields_get_endpoint_and_nonce(self) -> None:
        search = SearchField(key="product", callback=lambda term, ids: {})
        field = self.manager.normalize_fields([search], "order")[0]
        config = field.to_config()
        self.assertEqual(config["ajax_url"], "/flyouts/v1/search")
        self.assertEqual(config["ajax_params"], {"manager": "shop", "field_key": "product", "flyout": "order"})
        self.assertEqual(config["nonce"], "nonce-shop_order")

    def test_depends_sets_wrapper_attrs(self) -> None:
        field = self.manager.normalize_fields([FieldDeclaration(key="reason", depends={"status": "refunded"})])[0]
        attrs = field.computed["wrapper_attrs"]
        self.assertEqual(attrs["data-depends"], '{"status": "refunded"}')
        self.assertEqual(attrs["class"], "has-dependency")

    def test_originals_are_not_mutated(self) -> None:
        original = FieldDeclaration(key="name")
        self.manager.normalize_fields([original], "order")
        self.assertEqual(original.computed, {})
        self.assertIsNone(original.name)


class TestBuildPanel(unittest.TestCase):
    def setUp(self) -> None:
        self.manager = PanelManager("shop", ComponentRegistry())

    def test_build_resolves_and_places_fields(self) -> None:
        definition = self.manager.register_panel(
            "customer",
            PanelDefinition(
                title="Customer",
                tabs={"profile": "Profile", "more": "More"},
                fields=[
                    FieldDeclaration(key="name", label="Name"),
                    FieldDeclaration(key="email", type="email", tab="more"),
                    FieldDeclaration(key="plan", extra={"value": "explicit"}),
                ],
                save=lambda record_id, data: True,
                delete=lambda record_id: True,
            ),
        )
        panel = self.manager.build_panel(definition, Customer(), 12)
        self.assertEqual(panel.id, "shop_customer")
        self.assertEqual([c.config["name"] for c in panel.body["profile"]], ["name", "plan", "id"])
        self.assertEqual(panel.body["profile"][0].config["value"], "Ada <Lovelace>")
        self.assertEqual(panel.body["profile"][1].config["value"], "explicit")
        self.assertEqual(panel.body["more"][0].config["value"], "ada@example.com")
        self.assertEqual([a["action"] for a in panel.footer], ["save", "delete"])

        html = panel.render()
        self.assertIn('data-flyout-id="shop_customer"', html)
        self.assertIn("Ada &lt;Lovelace&gt;", html)
        self.assertNotIn("<Lovelace>", html)
        self.assertIn('name="id" value="12"', html)
        self.assertIn('data-tab="more"', html)

    def test_new_record_has_no_delete_or_hidden_id(self) -> None:
        definition = self.manager.register_panel(
            "customer",
            PanelDefinition(fields=[FieldDeclaration(key="name")], save=lambda r, d: True, delete=lambda r: True),
        )
        panel = self.manager.build_panel(definition, {}, 0)
        self.assertEqual([a["action"] for a in panel.footer], ["save"])
        self.assertEqual([c.type for c in panel.body["main"]], ["text"])

    def test_declared_id_field_is_not_duplicated(self) -> None:
        definition = self.manager.register_panel(
            "customer",
            PanelDefinition(fields=[FieldDeclaration(key="id", type="hidden"), FieldDeclaration(key="name")], save=lambda r, d: True),
        )
        panel = self.manager.build_panel(definition, {"id": 12, "name": "Ada"}, 12)
        names = [c.config["name"] for c in panel.body["main"]]
        self.assertEqual(names.count("id"), 1)
        self.assertEqual(panel.body["main"][0].config["value"], 12)
        self.assertEqual(panel.render().count('name="id"'), 1)

    def test_components_receive_resolved_data(self) -> None:
        definition = self.manager.register_panel(
            "order",
            PanelDefinition(fields=[FieldDeclaration(key="header", type="header"), ActionButtonsField(key="tools", buttons=[ActionItem("refund", "Refund")])]),
        )
        data = {"title": "Order #1", "subtitle": "Paid"}
        panel = self.manager.build_panel(definition, data, None)
        header = panel.body["main"][0]
        self.assertEqual(header.config["title"], "Order #1")
        html = panel.render()
        self.assertIn("Order #1", html)
        self.assertIn('data-action="refund"', html)

    def test_search_options_are_hydrated(self) -> None:
        calls = []

        def search(term, ids):
            calls.append((term, ids))
            return {5: "Widget"}

        definition = self.manager.register_panel("order", PanelDefinition(fields=[SearchField(key="product", callback=search)]))
        panel = self.manager.build_panel(definition, {"product": 5}, None)
        self.assertEqual(calls, [("", [5])])
        self.assertEqual(panel.body["main"][0].config["options"], {"5": "Widget"})
        self.assertIn("selected", panel.render())

    def test_dependent_fields_are_wrapped(self) -> None:
        definition = self.manager.register_panel("order", PanelDefinition(fields=[FieldDeclaration(key="reason", depends={"status": "refunded"})]))
        html = self.manager.build_panel(definition, {}, None).render()
        self.assertIn("has-dependency", html)
        self.assertIn("data-depends=", html)

    def test_host_errors_propagate(self) -> None:
        class Broken:
            def get_name(self):
                raise RuntimeError("db down")

        definition = self.manager.register_panel("customer", PanelDefinition(fields=[FieldDeclaration(key="name")]))
        with self.assertRaises(RuntimeError):
            self.manager.build_panel(definition, Broken(), 1)


class TestTriggerMarkup(unittest.TestCase):
    def setUp(self) -> None:
        self.manager = PanelManager("shop", ComponentRegistry())
        self.manager.register_panel("order", PanelDefinition(title="Order", capability="orders.edit"))

    def test_button_markup(self) -> None:
        html = self.manager.get_button_markup("order", data={"order_id": 7}, text="Edit", icon="edit")
        self.assertTrue(html.startswith("<button"))
        self.assertIn('class="flyout-trigger button"', html)
        self.assertIn('data-flyout-manager="shop"', html)
        self.assertIn('data-flyout="order"', html)
        self.assertIn('data-flyout-id="shop_order"', html)
        self.assertIn('data-order-id="7"', html)
        self.assertIn("icon-edit", html)

    def test_link_markup_and_capability(self) -> None:
        html = self.manager.get_link_markup("order", "View <order>", css_class="row-link")
        self.assertIn('class="flyout-trigger row-link"', html)
        self.assertIn("View &lt;order&gt;", html)
        self.assertEqual(self.manager.get_link_markup("order", "View", can_perform=lambda cap: cap != "orders.edit"), "")
        self.assertEqual(self.manager.get_button_markup("missing"), "")


if __name__ == "__main__":
    unittest.main()
