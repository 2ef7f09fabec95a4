import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.context import build_context
from panel_errors import NOT_FOUND, NotFound, ValidationFailed
from panel_types import (
    ActionButtonsField,
    ActionItem,
    ActionMenuField,
    FieldDeclaration,
    MenuSeparator,
    NotesField,
    PanelDefinition,
    SearchField,
)


def allow(capability: str) -> bool:
    return True


def deny(capability: str) -> bool:
    return False


class DispatcherCase(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = build_context()
        self.dispatcher = self.ctx.dispatcher
        self.calls = []

    def call(self, operation: str, payload: dict, can_perform=allow):
        return self.dispatcher.dispatch(operation, payload, can_perform)


class TestResolution(DispatcherCase):
    def setUp(self) -> None:
        super().setUp()
        self.ctx.register_panel("shop_order", PanelDefinition(title="Order", load=lambda rid: {"id": rid}))

    def test_unknown_manager_and_panel(self) -> None:
        status, body = self.call("load", {"manager": "crm", "flyout": "order"})
        self.assertEqual((status, body["code"]), (404, "MANAGER_NOT_FOUND"))
        status, body = self.call("load", {"manager": "shop", "flyout": "refund"})
        self.assertEqual((status, body["code"]), (404, "PANEL_NOT_FOUND"))
        self.assertEqual(body["httpStatus"], 404)

    def test_compound_panel_id(self) -> None:
        status, body = self.call("load", {"panel_id": "shop_order", "item_id": "3"})
        self.assertEqual(status, 200)
        self.assertTrue(body["success"])
        status, body = self.call("load", {"panel_id": "_order"})
        self.assertEqual((status, body["code"]), (400, "MALFORMED_IDENTIFIER"))

    def test_unknown_operation(self) -> None:
        status, body = self.call("publish", {"manager": "shop", "flyout": "order"})
        self.assertEqual((status, body["code"]), (404, "OPERATION_NOT_FOUND"))

    def test_permission_checked_before_operation(self) -> None:
        saved = []
        self.ctx.register_panel("shop_secret", PanelDefinition(capability="secrets.edit", save=lambda rid, data: saved.append(data) or True))
        checked = []

        def can_perform(capability: str) -> bool:
            checked.append(capability)
            return False

        status, body = self.call("save", {"manager": "shop", "flyout": "secret", "form_data": {"x": "1"}}, can_perform)
        self.assertEqual((status, body["code"]), (403, "FORBIDDEN"))
        self.assertEqual(checked, ["secrets.edit"])
        self.assertEqual(saved, [])

    def test_capability_filter(self) -> None:
        self.dispatcher.capability_filter = lambda cap, ns, local: "orders.view" if local == "order" else cap
        status, _ = self.call("load", {"manager": "shop", "flyout": "order"}, lambda cap: cap == "orders.view")
        self.assertEqual(status, 200)


class TestLoad(DispatcherCase):
    def register(self, load) -> None:
        self.ctx.register_panel("shop_order", PanelDefinition(title="Order", fields=[FieldDeclaration(key="status")], load=load))

    def test_load_renders_html(self) -> None:
        self.register(lambda rid: {"status": "paid"} if rid == 7 else NOT_FOUND)
        status, body = self.call("load", {"manager": "shop", "flyout": "order", "item_id": 7})
        self.assertEqual(status, 200)
        self.assertIn('value="paid"', body["html"])
        self.assertIn('name="id" value="7"', body["html"])

    def test_not_found_sentinel_and_false(self) -> None:
        self.register(lambda rid: NOT_FOUND)
        status, body = self.call("load", {"manager": "shop", "flyout": "order", "item_id": 1})
        self.assertEqual((status, body["code"]), (404, "RECORD_NOT_FOUND"))
        self.register(lambda rid: False)
        status, body = self.call("load", {"manager": "shop", "flyout": "order", "item_id": 1})
        self.assertEqual(status, 404)

    def test_host_panel_error_passes_through(self) -> None:
        self.register(lambda rid: NotFound("ORDER_ARCHIVED", "Order is archived"))
        status, body = self.call("load", {"manager": "shop", "flyout": "order", "item_id": 1})
        self.assertEqual((status, body["code"]), (404, "ORDER_ARCHIVED"))

        def raises(rid):
            raise ValidationFailed("BAD_ID", "Bad id", detail={"id": rid})

        self.register(raises)
        status, body = self.call("load", {"manager": "shop", "flyout": "order", "item_id": 9})
        self.assertEqual((status, body["code"], body["detail"]), (422, "BAD_ID", {"id": 9}))

    def test_unexpected_exception_is_wrapped(self) -> None:
        def broken(rid):
            raise RuntimeError("db down")

        self.register(broken)
        with self.assertLogs("flyouts.dispatch", level="ERROR"):
            status, body = self.call("load", {"manager": "shop", "flyout": "order", "item_id": 1})
        self.assertEqual((status, body["code"]), (500, "HOST_CALLBACK_FAILED"))
        self.assertEqual(body["detail"], {"error": "db down"})


class TestSaveDelete(DispatcherCase):
    def setUp(self) -> None:
        super().setUp()
        self.events = []
        self.ctx.events.subscribe("panel.saved", self.events.append)
        self.ctx.events.subscribe("panel.deleted", self.events.append)

    def register(self, **callbacks) -> None:
        fields = [FieldDeclaration(key="title"), FieldDeclaration(key="qty", type="number")]
        self.ctx.register_panel("shop_order", PanelDefinition(fields=fields, **callbacks))

    def test_save_sanitizes_and_prefers_form_id(self) -> None:
        def save(record_id, data):
            self.calls.append((record_id, data))
            return True

        self.register(save=save)
        payload = {"manager": "shop", "flyout": "order", "item_id": 3, "form_data": {"title": " <b>Hat</b> ", "qty": "2", "id": "11"}}
        status, body = self.call("save", payload)
        self.assertEqual(status, 200)
        self.assertEqual(body, {"success": True, "message": "Saved successfully."})
        self.assertEqual(self.calls, [(11, {"title": "Hat", "qty": 2, "id": "11"})])
        self.assertEqual(self.events[0]["name"], "panel.saved")
        self.assertEqual(self.events[0]["payload"]["item_id"], 11)

    def test_save_uses_transport_id_without_form_id(self) -> None:
        self.register(save=lambda record_id, data: self.calls.append(record_id) or 99)
        status, body = self.call("save", {"manager": "shop", "flyout": "order", "item_id": "3", "form_data": {"title": "x"}})
        self.assertEqual(status, 200)
        self.assertEqual(self.calls, [3])
        self.assertEqual(body["item_id"], 99)

    def test_save_requires_callback(self) -> None:
        self.register()
        status, body = self.call("save", {"manager": "shop", "flyout": "order", "form_data": {}})
        self.assertEqual((status, body["code"]), (500, "SAVE_NOT_CONFIGURED"))

    def test_validation_rejections(self) -> None:
        self.register(save=lambda rid, data: self.calls.append(data) or True, validate=lambda data: False)
        status, body = self.call("save", {"manager": "shop", "flyout": "order", "form_data": {"title": "x"}})
        self.assertEqual((status, body["code"]), (422, "VALIDATION_FAILED"))
        self.register(save=lambda rid, data: self.calls.append(data) or True, validate=lambda data: {"title": "Too short"})
        status, body = self.call("save", {"manager": "shop", "flyout": "order", "form_data": {"title": "x"}})
        self.assertEqual(body["detail"], {"errors": {"title": "Too short"}})
        self.assertEqual(self.calls, [])
        self.register(save=lambda rid, data: True, validate=lambda data: True)
        status, _ = self.call("save", {"manager": "shop", "flyout": "order", "form_data": {"title": "x"}})
        self.assertEqual(status, 200)

    def test_falsy_save_result(self) -> None:
        self.register(save=lambda rid, data: None)
        status, body = self.call("save", {"manager": "shop", "flyout": "order", "form_data": {}})
        self.assertEqual((status, body["code"]), (500, "SAVE_FAILED"))
        self.assertEqual(self.events, [])

    def test_delete(self) -> None:
        self.register(delete=lambda rid: self.calls.append(rid) or True)
        status, body = self.call("delete", {"manager": "shop", "flyout": "order", "item_id": 5})
        self.assertEqual((status, body["message"]), (200, "Deleted successfully."))
        self.assertEqual(self.calls, [5])
        self.assertEqual(self.events[0]["name"], "panel.deleted")

    def test_delete_errors(self) -> None:
        self.register()
        status, body = self.call("delete", {"manager": "shop", "flyout": "order", "item_id": 5})
        self.assertEqual(body["code"], "DELETE_NOT_CONFIGURED")
        self.register(delete=lambda rid: False)
        status, body = self.call("delete", {"manager": "shop", "flyout": "order", "item_id": 5})
        self.assertEqual((status, body["code"]), (500, "DELETE_FAILED"))


class TestSearch(DispatcherCase):
    def setUp(self) -> None:
        super().setUp()

        def products(term, ids):
            self.calls.append((term, ids))
            catalog = {1: "Hat", 2: "Scarf", 3: "Hat stand"}
            if ids:
                return {i: catalog[i] for i in ids if i in catalog}
            return [{"id": i, "text": label} for i, label in catalog.items() if term.lower() in label.lower()]

        fields = [
            SearchField(key="product", name="product_id", callback=products),
            SearchField(key="legacy", search_callback=lambda term: {"raw": term}),
            SearchField(key="orphan"),
            FieldDeclaration(key="plain"),
        ]
        self.ctx.register_panel("shop_order", PanelDefinition(fields=fields))

    def search(self, **params):
        payload = {"manager": "shop", "flyout": "order"}
        payload.update(params)
        return self.call("search", payload)

    def test_free_text(self) -> None:
        status, body = self.search(field_key="product", term="hat")
        self.assertEqual(status, 200)
        self.assertEqual(body["results"], [{"id": 1, "text": "Hat"}, {"id": 3, "text": "Hat stand"}])
        self.assertEqual(self.calls, [("hat", None)])

    def test_hydration_by_name(self) -> None:
        status, body = self.search(field_key="product_id", include="3,2", term="ignored")
        self.assertEqual(status, 200)
        self.assertEqual(body["results"], [{"id": 3, "text": "Hat stand"}, {"id": 2, "text": "Scarf"}])
        self.assertEqual(self.calls, [("", [3, 2])])

    def test_legacy_callback_shape_is_raw(self) -> None:
        status, body = self.search(field_key="legacy", term="x")
        self.assertEqual(body["results"], {"raw": "x"})

    def test_missing_field_and_callback(self) -> None:
        status, body = self.search(field_key="nope")
        self.assertEqual((status, body["code"]), (404, "FIELD_NOT_FOUND"))
        status, body = self.search(field_key="orphan")
        self.assertEqual((status, body["code"]), (500, "SEARCH_NO_CALLBACK"))
        status, body = self.search(field_key="plain")
        self.assertEqual(body["code"], "SEARCH_NO_CALLBACK")


class TestAction(DispatcherCase):
    def setUp(self) -> None:
        super().setUp()

        def record(name):
            def callback(request):
                self.calls.append((name, request))
                return {"refunded": True} if name == "refund" else None

            return callback

        fields = [
            ActionButtonsField(key="tools", buttons=[ActionItem("print", "Print"), ActionItem("refund", "Refund", callback=record("refund"))]),
            ActionMenuField(key="menu", items=[MenuSeparator(), ActionItem("archive", "Archive", callback=record("archive"))]),
            NotesField(key="notes", add_callback=record("add"), delete_callback=record("delete")),
            ActionButtonsField(key="dupe", buttons=[ActionItem("refund", "Refund again", callback=record("second"))]),
        ]
        self.ctx.register_panel("shop_order", PanelDefinition(fields=fields))

    def act(self, key: str, **extra):
        payload = {"manager": "shop", "flyout": "order", "item_id": 4, "action_key": key}
        payload.update(extra)
        return self.call("action", payload)

    def test_button_result_is_merged(self) -> None:
        status, body = self.act("refund", amount="5")
        self.assertEqual(status, 200)
        self.assertEqual(body["refunded"], True)
        self.assertTrue(body["success"])
        name, request = self.calls[0]
        self.assertEqual(name, "refund")
        self.assertEqual((request["id"], request["action_key"], request["amount"]), (4, "refund", "5"))
        self.assertEqual(len(self.calls), 1)

    def test_menu_and_notes(self) -> None:
        self.assertEqual(self.act("archive")[0], 200)
        self.assertEqual(self.act("add_note", content="hi")[0], 200)
        self.assertEqual(self.act("delete_note")[0], 200)
        self.assertEqual([name for name, _ in self.calls], ["archive", "add", "delete"])

    def test_unknown_action_is_not_found(self) -> None:
        status, body = self.act("explode")
        self.assertEqual((status, body["code"]), (404, "ACTION_NOT_FOUND"))
        status, body = self.act("print")
        self.assertEqual(status, 404)
        status, body = self.act("")
        self.assertEqual(status, 404)

    def test_action_event(self) -> None:
        events = []
        self.ctx.events.subscribe("panel.action", events.append)
        self.act("archive")
        self.assertEqual(events[0]["payload"], {"item_id": 4, "action_key": "archive"})
        self.assertEqual(events[0]["meta"]["namespace"], "shop")


if __name__ == "__main__":
    unittest.main()
