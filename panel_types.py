"""Typed panel and field declarations.

Panels are declared either with these dataclasses directly or with loose
mappings (``panel_from_config`` / ``fields_from_config``), which are parsed
into the same typed variants so the action and search walks only ever see
known shapes.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union


DEFAULT_CAPABILITY = "panels.manage"
PANEL_SIZES = ("small", "medium", "large", "full")

LoadCallback = Callable[[Any], Any]
SaveCallback = Callable[[Any, dict], Any]
DeleteCallback = Callable[[Any], Any]
ValidateCallback = Callable[[dict], Any]
SearchCallback = Callable[[str, Optional[List[int]]], Any]
LegacySearchCallback = Callable[[str], Any]
ActionCallback = Callable[[dict], Any]
SanitizeCallback = Callable[[Any], Any]


@dataclass
class ActionItem:
    action: str
    text: str = ""
    callback: Optional[ActionCallback] = None
    style: str = "secondary"
    icon: str = ""
    confirm: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    danger: bool = False

    def to_config(self) -> dict:
        return {
            "action": self.action,
            "text": self.text,
            "style": self.style,
            "icon": self.icon,
            "confirm": self.confirm,
            "data": dict(self.data),
            "enabled": self.enabled,
            "danger": self.danger,
        }


@dataclass
class MenuSeparator:
    type: str = "separator"

    def to_config(self) -> dict:
        return {"type": "separator"}


@dataclass
class FieldDeclaration:
    key: str
    type: str = "text"
    name: Optional[str] = None
    label: str = ""
    tab: Optional[str] = None
    depends: Any = None
    sanitize_callback: Optional[SanitizeCallback] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    computed: Dict[str, Any] = field(default_factory=dict)

    @property
    def submit_name(self) -> str:
        return self.name or self.key

    def action_items(self) -> List[ActionItem]:
        return []

    def to_config(self) -> dict:
        config = dict(self.extra)
        config.update(
            {
                "key": self.key,
                "type": self.type,
                "name": self.submit_name,
                "label": self.label,
            }
        )
        config.update(self.computed)
        return config


@dataclass
class ActionButtonsField(FieldDeclaration):
    type: str = "action_buttons"
    buttons: List[ActionItem] = field(default_factory=list)

    def action_items(self) -> List[ActionItem]:
        return list(self.buttons)

    def to_config(self) -> dict:
        config = super().to_config()
        config["buttons"] = [b.to_config() for b in self.buttons]
        return config


@dataclass
class ActionMenuField(FieldDeclaration):
    type: str = "action_menu"
    items: List[Union[ActionItem, MenuSeparator]] = field(default_factory=list)

    def action_items(self) -> List[ActionItem]:
        return [item for item in self.items if isinstance(item, ActionItem)]

    def to_config(self) -> dict:
        config = super().to_config()
        config["items"] = [item.to_config() for item in self.items]
        return config


@dataclass
class NotesField(FieldDeclaration):
    type: str = "notes"
    add_action: str = "add_note"
    delete_action: str = "delete_note"
    add_callback: Optional[ActionCallback] = None
    delete_callback: Optional[ActionCallback] = None

    def action_items(self) -> List[ActionItem]:
        items = []
        if self.add_callback is not None:
            items.append(ActionItem(action=self.add_action, callback=self.add_callback))
        if self.delete_callback is not None:
            items.append(ActionItem(action=self.delete_action, callback=self.delete_callback))
        return items

    def to_config(self) -> dict:
        config = super().to_config()
        config["add_action"] = self.add_action
        config["delete_action"] = self.delete_action
        config["editable"] = self.extra.get("editable", self.add_callback is not None)
        return config


@dataclass
class SearchField(FieldDeclaration):
    type: str = "ajax_select"
    callback: Optional[SearchCallback] = None
    search_callback: Optional[LegacySearchCallback] = None
    multiple: bool = False

    def to_config(self) -> dict:
        config = super().to_config()
        config["multiple"] = self.multiple
        return config


@dataclass
class GroupField(FieldDeclaration):
    type: str = "group"
    fields: List[FieldDeclaration] = field(default_factory=list)


@dataclass
class PanelDefinition:
    title: str = ""
    subtitle: str = ""
    size: str = "medium"
    tabs: Dict[str, str] = field(default_factory=dict)
    fields: List[FieldDeclaration] = field(default_factory=list)
    actions: List[dict] = field(default_factory=list)
    capability: str = DEFAULT_CAPABILITY
    load: Optional[LoadCallback] = None
    save: Optional[SaveCallback] = None
    delete: Optional[DeleteCallback] = None
    validate: Optional[ValidateCallback] = None
    id: Optional[str] = None


_VARIANTS: Dict[str, type] = {
    "action_buttons": ActionButtonsField,
    "action_menu": ActionMenuField,
    "notes": NotesField,
    "ajax_select": SearchField,
    "group": GroupField,
}


def _action_item(raw: Any) -> Union[ActionItem, MenuSeparator, None]:
    if isinstance(raw, (ActionItem, MenuSeparator)):
        return raw
    if not isinstance(raw, Mapping):
        return None
    if raw.get("type") == "separator":
        return MenuSeparator()
    known = {f.name for f in dataclasses.fields(ActionItem)}
    kwargs = {k: v for k, v in raw.items() if k in known}
    kwargs["action"] = str(kwargs.get("action") or "")
    return ActionItem(**kwargs)


def field_from_config(key: str, config: Any) -> FieldDeclaration:
    if isinstance(config, FieldDeclaration):
        return config
    if not isinstance(config, Mapping):
        config = {}
    ftype = str(config.get("type") or "text")
    cls = _VARIANTS.get(ftype, FieldDeclaration)
    known = {f.name for f in dataclasses.fields(cls)} - {"extra", "computed", "key"}
    kwargs: Dict[str, Any] = {}
    extra: Dict[str, Any] = {}
    for name, value in config.items():
        if name in known:
            kwargs[name] = value
        elif name != "key":
            extra[name] = value
    kwargs["type"] = ftype
    if cls is ActionButtonsField:
        kwargs["buttons"] = [b for b in (_action_item(item) for item in kwargs.get("buttons") or []) if isinstance(b, ActionItem)]
    elif cls is ActionMenuField:
        kwargs["items"] = [i for i in (_action_item(item) for item in kwargs.get("items") or []) if i is not None]
    elif cls is GroupField:
        kwargs["fields"] = fields_from_config(kwargs.get("fields") or [])
    return cls(key=key, extra=extra, **kwargs)


def fields_from_config(fields: Any) -> List[FieldDeclaration]:
    if isinstance(fields, Mapping):
        return [field_from_config(str(key), cfg) for key, cfg in fields.items()]
    if isinstance(fields, (list, tuple)):
        items = []
        for idx, cfg in enumerate(fields):
            if isinstance(cfg, FieldDeclaration):
                items.append(cfg)
                continue
            if not isinstance(cfg, Mapping):
                continue
            key = cfg.get("key") or cfg.get("name") or f"field_{idx}"
            items.append(field_from_config(str(key), cfg))
        return items
    return []


def _tabs(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, Mapping):
        return {}
    tabs = {}
    for tab_id, tab in raw.items():
        label = tab.get("label") if isinstance(tab, Mapping) else tab
        tabs[str(tab_id)] = str(label or tab_id)
    return tabs


def panel_from_config(config: Any) -> PanelDefinition:
    if isinstance(config, PanelDefinition):
        return config
    if not isinstance(config, Mapping):
        config = {}
    known = {f.name for f in dataclasses.fields(PanelDefinition)}
    kwargs = {k: v for k, v in config.items() if k in known}
    kwargs["tabs"] = _tabs(config.get("tabs"))
    kwargs["fields"] = fields_from_config(config.get("fields"))
    kwargs["actions"] = [a for a in (config.get("actions") or []) if isinstance(a, Mapping)]
    if not kwargs.get("capability"):
        kwargs["capability"] = DEFAULT_CAPABILITY
    if kwargs.get("size") not in PANEL_SIZES:
        kwargs["size"] = "medium"
    return PanelDefinition(**kwargs)
