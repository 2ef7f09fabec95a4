"""One namespace's panel catalogue: registration, field normalization, panel build."""

from __future__ import annotations

import dataclasses
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping

from markupsafe import Markup

from component_registry import Component, ComponentRegistry
from component_renderers import render_field, render_template, wrap_dependency
from instance_registry import join_id
from panel_errors import Misconfigured
from panel_types import FieldDeclaration, GroupField, PanelDefinition, SearchField, panel_from_config
from panelkit.text_clean import slug_key
from search_callbacks import results_to_options


logger = logging.getLogger("flyouts.registry")

CapabilityCheck = Callable[[str], bool]
NonceFactory = Callable[[str], str]

_DOM_ID_RE = re.compile(r"[^A-Za-z0-9_-]+")


def _dom_id(*parts: str) -> str:
    return "-".join(p for p in (_DOM_ID_RE.sub("-", part).strip("-") for part in parts) if p)


def _data_attrs(data: Mapping | None) -> Dict[str, Any]:
    attrs = {}
    for key, value in (data or {}).items():
        name = slug_key(str(key).replace("_", "-"))
        if not name:
            continue
        attrs[f"data-{name}"] = json.dumps(value) if isinstance(value, (dict, list, tuple)) else value
    return attrs


def _has_value(value: Any) -> bool:
    return value not in (None, "", 0, [], {})


@dataclass
class Panel:
    """Rendered panel model; ``body`` maps tab id to its ordered components."""

    id: str
    title: str
    subtitle: str = ""
    size: str = "medium"
    tabs: Dict[str, str] = field(default_factory=dict)
    body: Dict[str, List[Component]] = field(default_factory=dict)
    footer: List[dict] = field(default_factory=list)
    record_id: Any = None

    def render(self) -> str:
        tabs = [{"id": tab_id, "label": label, "active": idx == 0} for idx, (tab_id, label) in enumerate(self.tabs.items())]
        body = {tab: Markup("\n".join(c.render() for c in components)) for tab, components in self.body.items()}
        footer = Markup(render_template("action_bar", {"actions": self.footer})) if self.footer else ""
        return render_template(
            "panel",
            {
                "id": self.id,
                "title": self.title,
                "subtitle": self.subtitle,
                "size": self.size,
                "tabs": tabs,
                "body": body,
                "footer": footer,
            },
        )


class PanelManager:
    def __init__(
        self,
        namespace: str,
        components: ComponentRegistry,
        route_prefix: str = "/flyouts/v1",
        nonce_factory: NonceFactory | None = None,
    ) -> None:
        self.namespace = namespace
        self.components = components
        self.route_prefix = route_prefix.rstrip("/")
        self.nonce_factory = nonce_factory
        self._panels: Dict[str, PanelDefinition] = {}
        self._assets: List[str] = []

    # -- catalogue -----------------------------------------------------------

    def register_panel(self, local: str, definition: PanelDefinition | Mapping) -> PanelDefinition:
        if not local:
            raise ValueError("panel id must be non-empty")
        panel = panel_from_config(definition)
        panel = dataclasses.replace(panel, id=local)
        for item in self.normalize_fields(panel.fields, local):
            asset = self.components.get_asset(item.type, item.to_config())
            if asset and asset not in self._assets:
                self._assets.append(asset)
        if local in self._panels:
            logger.info("panel_replaced namespace=%s panel=%s", self.namespace, local)
        self._panels[local] = panel
        return panel

    def get_panel(self, local: str) -> PanelDefinition | None:
        return self._panels.get(local)

    def has_panel(self, local: str) -> bool:
        return local in self._panels

    def panels(self) -> Dict[str, PanelDefinition]:
        return dict(self._panels)

    def required_assets(self) -> List[str]:
        return list(self._assets)

    # -- normalization ---------------------------------------------------------

    def _flatten(self, fields: List[FieldDeclaration], tab: str | None = None) -> List[FieldDeclaration]:
        flat: List[FieldDeclaration] = []
        for item in fields:
            if isinstance(item, GroupField):
                flat.extend(self._flatten(item.fields, item.tab or tab))
                continue
            if item.tab is None and tab is not None:
                item = dataclasses.replace(item, tab=tab)
            flat.append(item)
        return flat

    def normalize_fields(self, fields: List[FieldDeclaration], local: str | None = None) -> List[FieldDeclaration]:
        """Flatten groups and attach the attributes rendering and sanitization need.

        Raises ``Misconfigured`` when two fields submit under the same name.
        """
        normalized: List[FieldDeclaration] = []
        seen: Dict[str, str] = {}
        for item in self._flatten(list(fields)):
            name = item.submit_name
            if name in seen:
                raise Misconfigured(
                    "DUPLICATE_FIELD_NAME",
                    f'Field name "{name}" is used more than once',
                    detail={"name": name, "keys": [seen[name], item.key]},
                )
            seen[name] = item.key
            computed: Dict[str, Any] = {"dom_id": _dom_id("flyout", self.namespace, local or "", name)}
            if isinstance(item, SearchField):
                params = {"manager": self.namespace, "field_key": item.key}
                if local:
                    params["flyout"] = local
                computed["ajax_url"] = f"{self.route_prefix}/search"
                computed["ajax_params"] = params
                if self.nonce_factory is not None:
                    computed["nonce"] = self.nonce_factory(join_id(self.namespace, local or ""))
            if item.depends:
                computed["wrapper_attrs"] = {
                    "data-depends": json.dumps(item.depends),
                    "style": "display:none",
                    "class": "has-dependency",
                }
            normalized.append(dataclasses.replace(item, name=name, computed=computed))
        return normalized

    # -- build -----------------------------------------------------------------

    def _hydrate_options(self, item: SearchField, config: dict) -> None:
        value = config.get("value")
        if item.callback is None or config.get("options") or not _has_value(value):
            return
        ids = list(value) if isinstance(value, (list, tuple)) else [value]
        config["options"] = results_to_options(item.callback("", ids))

    def _default_footer(self, definition: PanelDefinition, record_id: Any) -> List[dict]:
        actions = []
        if definition.save is not None:
            actions.append({"type": "submit", "action": "save", "text": "Save", "style": "primary"})
        if definition.delete is not None and _has_value(record_id):
            actions.append({"type": "button", "action": "delete", "text": "Delete", "style": "danger", "class": "flyout-delete"})
        return actions

    def _instantiate(self, item: FieldDeclaration, config: dict) -> Component:
        component = self.components.create(item.type, config)
        if component is None:
            component = Component(item.type, config, render_field)
        wrapper_attrs = config.get("wrapper_attrs")
        if wrapper_attrs:
            inner = component.renderer
            component = Component(item.type, config, lambda cfg: wrap_dependency(inner(cfg), wrapper_attrs))
        return component

    def build_panel(self, definition: PanelDefinition, data: Any, record_id: Any = None) -> Panel:
        local = definition.id or ""
        tab_ids = list(definition.tabs)
        default_tab = tab_ids[0] if tab_ids else "main"
        body: Dict[str, List[Component]] = {tab: [] for tab in tab_ids} or {"main": []}

        fields = self.normalize_fields(definition.fields, local)
        for item in fields:
            config = item.to_config()
            if self.components.is_component(item.type):
                resolved = self.components.resolve_data(item.type, item.submit_name, data)
            else:
                resolved = {"value": self.components.resolve_value(item.submit_name, data)}
            for key, value in resolved.items():
                if config.get(key) is None:
                    config[key] = value
            if isinstance(item, SearchField):
                self._hydrate_options(item, config)
            tab = item.tab if item.tab in body else default_tab
            body[tab].append(self._instantiate(item, config))

        if _has_value(record_id) and not any(item.submit_name == "id" for item in fields):
            hidden = {"key": "id", "type": "hidden", "name": "id", "value": record_id, "dom_id": _dom_id("flyout", self.namespace, local, "id")}
            body[default_tab].append(Component("hidden", hidden, render_field))

        return Panel(
            id=join_id(self.namespace, local),
            title=definition.title,
            subtitle=definition.subtitle,
            size=definition.size,
            tabs=dict(definition.tabs),
            body=body,
            footer=list(definition.actions) or self._default_footer(definition, record_id),
            record_id=record_id,
        )

    # -- triggers --------------------------------------------------------------

    def _trigger_attrs(self, local: str, css_class: str, data: Mapping | None) -> Dict[str, Any]:
        attrs: Dict[str, Any] = {
            "class": " ".join(c for c in ("flyout-trigger", css_class) if c),
            "data-flyout-manager": self.namespace,
            "data-flyout": local,
            "data-flyout-id": join_id(self.namespace, local),
        }
        for key, value in _data_attrs(data).items():
            attrs.setdefault(key, value)
        return attrs

    def _allowed(self, local: str, can_perform: CapabilityCheck | None) -> bool:
        panel = self.get_panel(local)
        if panel is None:
            return False
        return can_perform is None or bool(can_perform(panel.capability))

    def get_button_markup(
        self,
        local: str,
        data: Mapping | None = None,
        text: str = "Open",
        css_class: str = "button",
        icon: str = "",
        can_perform: CapabilityCheck | None = None,
    ) -> str:
        if not self._allowed(local, can_perform):
            return ""
        attrs = self._trigger_attrs(local, css_class, data)
        return render_template("trigger_button", {"attrs": attrs, "text": text, "icon": icon})

    def get_link_markup(
        self,
        local: str,
        text: str,
        data: Mapping | None = None,
        css_class: str = "",
        can_perform: CapabilityCheck | None = None,
    ) -> str:
        if not self._allowed(local, can_perform):
            return ""
        attrs = self._trigger_attrs(local, css_class, data)
        return render_template("trigger_link", {"attrs": attrs, "text": text})
