"""JSON request surface: load, save, delete, search and action.

``dispatch`` resolves the addressed panel, checks the caller's capability and
runs the operation. It never raises; every outcome is an ``(http_status,
body)`` pair where errors carry a stable ``code``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

from instance_registry import InstanceRegistry, parse_id
from panel_errors import (
    NOT_FOUND,
    Forbidden,
    InternalFailure,
    MalformedIdentifier,
    Misconfigured,
    NotFound,
    PanelError,
    ValidationFailed,
)
from panel_events import PANEL_ACTION, PANEL_DELETED, PANEL_SAVED, EventValidationError, PanelEventBus, make_event
from panel_manager import PanelManager
from panel_types import DEFAULT_CAPABILITY, ActionItem, FieldDeclaration, PanelDefinition, SearchField
from panelkit.text_clean import clean_text
from sanitizer import Sanitizer
from search_callbacks import normalize_search_results


logger = logging.getLogger("flyouts.dispatch")

CapabilityCheck = Callable[[str], bool]
CapabilityFilter = Callable[[str, str, str], str]

OPERATIONS = ("load", "save", "delete", "search", "action")


@dataclass
class Target:
    manager: PanelManager
    namespace: str
    local: str
    panel: PanelDefinition
    record_id: Any


def _record_id(raw: Any) -> Any:
    if raw is None or isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return raw
    text = clean_text(raw)
    if text.lstrip("-").isdigit():
        return int(text)
    return text or 0


def _has_id(value: Any) -> bool:
    return value not in (None, "", 0)


def _include_ids(raw: Any) -> List[Any]:
    if raw is None or raw == "":
        return []
    items = raw if isinstance(raw, (list, tuple)) else str(raw).split(",")
    ids = []
    for item in items:
        value = _record_id(item)
        if _has_id(value):
            ids.append(value)
    return ids


def _call_host(fn: Callable[..., Any], *args: Any) -> Any:
    """Invoke a host callback; PanelErrors pass through, anything else is wrapped."""
    try:
        return fn(*args)
    except PanelError:
        raise
    except Exception as exc:
        logger.exception("host_callback_failed callback=%s", getattr(fn, "__name__", repr(fn)))
        raise InternalFailure("HOST_CALLBACK_FAILED", "A host callback failed", detail={"error": str(exc)})


def _raise_if_error(result: Any) -> Any:
    if isinstance(result, PanelError):
        raise result
    return result


class RequestDispatcher:
    def __init__(
        self,
        instances: InstanceRegistry,
        sanitizer: Sanitizer,
        events: PanelEventBus | None = None,
        capability_filter: CapabilityFilter | None = None,
    ) -> None:
        self.instances = instances
        self.sanitizer = sanitizer
        self.events = events
        self.capability_filter = capability_filter
        self._handlers: Dict[str, Callable[[Target, Mapping, dict | None], dict]] = {
            "load": self._load,
            "save": self._save,
            "delete": self._delete,
            "search": self._search,
            "action": self._action,
        }

    def dispatch(
        self,
        operation: str,
        payload: Mapping | None,
        can_perform: CapabilityCheck,
        actor: dict | None = None,
    ) -> Tuple[int, dict]:
        payload = payload if isinstance(payload, Mapping) else {}
        try:
            handler = self._handlers.get(operation)
            if handler is None:
                raise NotFound("OPERATION_NOT_FOUND", f"Unknown operation: {operation}")
            target = self._resolve(payload)
            self._authorize(target, can_perform)
            body = handler(target, payload, actor)
        except PanelError as exc:
            logger.info(
                "dispatch_failed op=%s manager=%s flyout=%s code=%s status=%s",
                operation,
                payload.get("manager"),
                payload.get("flyout"),
                exc.code,
                exc.http_status,
            )
            return exc.http_status, exc.to_dict()
        except Exception as exc:
            logger.exception("dispatch_crashed op=%s", operation)
            err = InternalFailure("INTERNAL_ERROR", "Request could not be processed", detail={"error": str(exc)})
            return err.http_status, err.to_dict()
        logger.info("dispatch_ok op=%s manager=%s flyout=%s", operation, target.namespace, target.local)
        return 200, body

    # -- resolution ----------------------------------------------------------

    def _resolve(self, payload: Mapping) -> Target:
        panel_id = payload.get("panel_id")
        if panel_id:
            parsed = parse_id(clean_text(panel_id))
            if parsed is None:
                raise MalformedIdentifier("MALFORMED_IDENTIFIER", f"Malformed panel id: {panel_id}")
            namespace, local = parsed.namespace, parsed.local
        else:
            namespace = clean_text(payload.get("manager"))
            local = clean_text(payload.get("flyout"))
        manager = self.instances.get(namespace)
        if manager is None:
            raise NotFound("MANAGER_NOT_FOUND", f"Unknown panel manager: {namespace}")
        panel = manager.get_panel(local)
        if panel is None:
            raise NotFound("PANEL_NOT_FOUND", f"Unknown panel: {local}")
        return Target(manager, manager.namespace, local, panel, _record_id(payload.get("item_id")))

    def _authorize(self, target: Target, can_perform: CapabilityCheck) -> None:
        capability = target.panel.capability or DEFAULT_CAPABILITY
        if self.capability_filter is not None:
            capability = self.capability_filter(capability, target.namespace, target.local) or capability
        if not can_perform(capability):
            raise Forbidden("FORBIDDEN", "You do not have permission to access this panel", detail={"capability": capability})

    def _fields(self, target: Target) -> List[FieldDeclaration]:
        return target.manager.normalize_fields(target.panel.fields, target.local)

    def _publish(self, name: str, target: Target, payload: dict, actor: dict | None) -> None:
        if self.events is None:
            return
        try:
            event = make_event(name, payload, target.namespace, target.local, actor)
        except EventValidationError as exc:
            logger.warning("event_dropped name=%s error=%s", name, exc)
            return
        self.events.publish(event)

    # -- operations ------------------------------------------------------------

    def _load(self, target: Target, payload: Mapping, actor: dict | None) -> dict:
        panel = target.panel
        data: Any = {}
        if panel.load is not None:
            data = _raise_if_error(_call_host(panel.load, target.record_id))
            if data is NOT_FOUND or data is False:
                raise NotFound("RECORD_NOT_FOUND", "Record not found", detail={"item_id": target.record_id})
        built = _call_host(target.manager.build_panel, panel, data, target.record_id)
        html = _call_host(built.render)
        return {"success": True, "html": html}

    def _save(self, target: Target, payload: Mapping, actor: dict | None) -> dict:
        panel = target.panel
        if panel.save is None:
            raise Misconfigured("SAVE_NOT_CONFIGURED", "This panel has no save handler")
        form_data = payload.get("form_data")
        clean = self.sanitizer.sanitize_form(form_data if isinstance(form_data, Mapping) else {}, self._fields(target))

        if panel.validate is not None:
            verdict = _raise_if_error(_call_host(panel.validate, clean))
            if verdict is False:
                raise ValidationFailed("VALIDATION_FAILED", "Validation failed")
            if isinstance(verdict, Mapping) and verdict:
                raise ValidationFailed("VALIDATION_FAILED", "Validation failed", detail={"errors": dict(verdict)})

        effective_id = _record_id(clean["id"]) if clean.get("id") not in (None, "") else target.record_id
        result = _raise_if_error(_call_host(panel.save, effective_id, clean))
        if not result:
            raise InternalFailure("SAVE_FAILED", "Failed to save")

        body: Dict[str, Any] = {"success": True, "message": "Saved successfully."}
        if not isinstance(result, bool) and isinstance(result, (int, str)):
            body["item_id"] = result
        self._publish(PANEL_SAVED, target, {"item_id": effective_id, "data": clean}, actor)
        return body

    def _delete(self, target: Target, payload: Mapping, actor: dict | None) -> dict:
        panel = target.panel
        if panel.delete is None:
            raise Misconfigured("DELETE_NOT_CONFIGURED", "This panel has no delete handler")
        result = _raise_if_error(_call_host(panel.delete, target.record_id))
        if not result:
            raise InternalFailure("DELETE_FAILED", "Failed to delete")
        self._publish(PANEL_DELETED, target, {"item_id": target.record_id}, actor)
        return {"success": True, "message": "Deleted successfully."}

    def _search(self, target: Target, payload: Mapping, actor: dict | None) -> dict:
        field_key = clean_text(payload.get("field_key"))
        fields = self._fields(target)
        item = next((f for f in fields if f.key == field_key), None)
        if item is None:
            item = next((f for f in fields if f.submit_name == field_key), None)
        if item is None:
            raise NotFound("FIELD_NOT_FOUND", f"Unknown field: {field_key}")

        term = clean_text(payload.get("term"))
        if isinstance(item, SearchField) and item.callback is not None:
            ids = _include_ids(payload.get("include"))
            if ids:
                raw = _call_host(item.callback, "", ids)
            else:
                raw = _call_host(item.callback, term, None)
            return {"success": True, "results": normalize_search_results(_raise_if_error(raw))}
        if isinstance(item, SearchField) and item.search_callback is not None:
            raw = _raise_if_error(_call_host(item.search_callback, term))
            return {"success": True, "results": raw}
        raise Misconfigured("SEARCH_NO_CALLBACK", f"Field {field_key} has no search callback")

    def _find_action(self, fields: List[FieldDeclaration], action_key: str) -> ActionItem | None:
        for item in fields:
            for candidate in item.action_items():
                if candidate.action == action_key and candidate.callback is not None:
                    return candidate
        return None

    def _action(self, target: Target, payload: Mapping, actor: dict | None) -> dict:
        action_key = clean_text(payload.get("action_key"))
        found = self._find_action(self._fields(target), action_key) if action_key else None
        if found is None:
            raise NotFound("ACTION_NOT_FOUND", f"Unknown action: {action_key}")

        request = dict(payload)
        request["id"] = target.record_id
        request["action_key"] = action_key
        result = _raise_if_error(_call_host(found.callback, request))

        body: Dict[str, Any] = {"message": "Action completed."}
        if isinstance(result, Mapping):
            body.update(result)
        body["success"] = True
        self._publish(PANEL_ACTION, target, {"item_id": target.record_id, "action_key": action_key}, actor)
        return body
