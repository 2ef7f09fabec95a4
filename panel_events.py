"""In-memory notifications for completed panel operations."""

from __future__ import annotations

import copy
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List


logger = logging.getLogger("flyouts")

Event = Dict[str, Any]
Handler = Callable[[Event], None]

PANEL_SAVED = "panel.saved"
PANEL_DELETED = "panel.deleted"
PANEL_ACTION = "panel.action"
EVENT_NAMES = (PANEL_SAVED, PANEL_DELETED, PANEL_ACTION)


@dataclass
class EventValidationError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


def _raise(code: str, message: str, path: str | None = None) -> None:
    raise EventValidationError(code=code, message=message, path=path)


def _validate_payload(payload: Any) -> None:
    if not isinstance(payload, dict):
        _raise("PAYLOAD_INVALID", "payload must be an object", "payload")
    try:
        json.dumps(payload, allow_nan=False)
    except (TypeError, ValueError) as exc:
        _raise("PAYLOAD_INVALID", str(exc), "payload")


def validate_event(event: Any) -> None:
    if not isinstance(event, dict):
        _raise("EVENT_INVALID", "event must be object")
    name = event.get("name")
    if not isinstance(name, str) or not name:
        _raise("EVENT_NAME_INVALID", "name must be non-empty string", "name")
    _validate_payload(event.get("payload"))

    meta = event.get("meta")
    if not isinstance(meta, dict):
        _raise("META_INVALID", "meta must be object", "meta")
    if not isinstance(meta.get("event_id"), str):
        _raise("META_EVENT_ID_INVALID", "event_id must be string", "meta.event_id")
    occurred_at = meta.get("occurred_at")
    if not isinstance(occurred_at, str) or not occurred_at.endswith("Z"):
        _raise("META_OCCURRED_AT_INVALID", "occurred_at must be an ISO8601 string ending with 'Z'", "meta.occurred_at")
    if not isinstance(meta.get("namespace"), str) or not isinstance(meta.get("panel"), str):
        _raise("META_PANEL_INVALID", "namespace and panel must be strings", "meta")
    if meta.get("schema_version") != "1":
        _raise("META_SCHEMA_VERSION_INVALID", "schema_version must be '1'", "meta.schema_version")


def make_event(name: str, payload: dict, namespace: str, panel: str, actor: dict | None = None) -> Event:
    meta: Dict[str, Any] = {
        "event_id": str(uuid.uuid4()),
        "occurred_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "namespace": namespace,
        "panel": panel,
        "schema_version": "1",
    }
    if actor is not None:
        meta["actor"] = copy.deepcopy(actor)
    event = {"name": name, "payload": copy.deepcopy(payload), "meta": meta}
    validate_event(event)
    return event


class PanelEventBus:
    def __init__(self) -> None:
        self._subs: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subs.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> bool:
        handlers = self._subs.get(name)
        if not handlers:
            return False
        try:
            handlers.remove(handler)
        except ValueError:
            return False
        if not handlers:
            del self._subs[name]
        return True

    def publish(self, event: Event) -> None:
        validate_event(event)
        for handler in list(self._subs.get(event["name"], [])):
            try:
                handler(event)
            except Exception:
                logger.exception("event_handler_failed name=%s event_id=%s", event["name"], event["meta"]["event_id"])
