"""Component registry: field type -> renderer, data shape, asset and category.

Also home of the value-resolution algorithm that pulls field data out of
whatever the host's load callback returned.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Tuple, Union

from component_renderers import Renderer, render_alert, render_component, render_field, template_renderer
from panelkit.data_source import (
    MISSING,
    DataSource,
    MappingSource,
    ObjectAdapter,
    StructuredSource,
    as_data_source,
    camel_case,
)


logger = logging.getLogger("flyouts.registry")

CATEGORIES = ("display", "interactive", "form", "layout", "data", "utility")

DataFields = Union[str, Tuple[str, ...]]


class InvalidComponent(ValueError):
    """Raised when a component is registered without a usable renderer or data shape."""


@dataclass(frozen=True)
class ComponentDescriptor:
    type: str
    renderer: Renderer
    data_fields: DataFields
    asset: str | None = None
    category: str = "utility"
    description: str = ""

    @property
    def is_composite(self) -> bool:
        return isinstance(self.data_fields, tuple)


@dataclass
class Component:
    type: str
    config: dict
    renderer: Renderer

    def render(self) -> str:
        return self.renderer(self.config)


# -- value resolution ---------------------------------------------------------

Strategy = Callable[[str, DataSource], Any]


def _adapter(source: DataSource) -> ObjectAdapter | None:
    if isinstance(source, MappingSource):
        return ObjectAdapter(source.mapping)
    if isinstance(source, StructuredSource):
        return ObjectAdapter(source.obj)
    return None


def _explicit_data_accessor(key: str, source: DataSource) -> Any:
    adapter = _adapter(source)
    if adapter is None:
        return MISSING
    return adapter.call(f"{key}_data")


def _mapping_entry(key: str, source: DataSource) -> Any:
    if isinstance(source, MappingSource) and key in source.mapping:
        return source.mapping[key]
    return MISSING


def _getter(key: str, source: DataSource) -> Any:
    return ObjectAdapter(source.obj).call(f"get_{key}")


def _attribute(key: str, source: DataSource) -> Any:
    return ObjectAdapter(source.obj).read(key)


def _method(key: str, source: DataSource) -> Any:
    return ObjectAdapter(source.obj).call(key)


def _camel_case_fallback(key: str, source: DataSource) -> Any:
    if "_" not in key.strip("_"):
        return MISSING
    camel = camel_case(key)
    adapter = ObjectAdapter(source.obj)
    for lookup in (
        lambda: adapter.call("get" + camel[:1].upper() + camel[1:]),
        lambda: adapter.read(camel),
        lambda: adapter.call(camel),
    ):
        value = lookup()
        if value is not MISSING:
            return value
    return MISSING


# Order matters: explicit *_data accessors beat mapping entries, which beat
# everything that needs reflection on an object.
SOURCE_STRATEGIES: Tuple[Strategy, ...] = (_explicit_data_accessor, _mapping_entry)
OBJECT_STRATEGIES: Tuple[Strategy, ...] = (_getter, _attribute, _method, _camel_case_fallback)


def resolve_value(key: str, source: Any) -> Any:
    if not source:
        return None
    data_source = as_data_source(source)
    for strategy in SOURCE_STRATEGIES:
        value = strategy(key, data_source)
        if value is not MISSING:
            return value
    if not isinstance(data_source, StructuredSource):
        return None
    for strategy in OBJECT_STRATEGIES:
        value = strategy(key, data_source)
        if value is not MISSING:
            return value
    return None


# -- registry -----------------------------------------------------------------


def _default_components() -> List[ComponentDescriptor]:
    generic = render_component
    return [
        # display
        ComponentDescriptor(
            "header",
            template_renderer("header"),
            (
                "title",
                "subtitle",
                "image",
                "icon",
                "badges",
                "meta",
                "description",
                "attachment_id",
                "editable",
                "image_size",
                "image_shape",
                "fallback_image",
                "fallback_attachment_id",
            ),
            None,
            "display",
            "Unified header for any entity with optional image picker",
        ),
        ComponentDescriptor("alert", render_alert, ("type", "message", "title"), None, "display", "Alert messages with various styles"),
        ComponentDescriptor("empty_state", generic, ("icon", "title", "description", "action_text"), None, "display", "Empty state messages"),
        ComponentDescriptor("articles", generic, "items", "articles", "display", "Article cards with images and excerpts"),
        ComponentDescriptor("timeline", generic, "items", "timeline", "display", "Chronological event timeline"),
        ComponentDescriptor("stats", generic, "items", "stats", "display", "Statistical metric cards with trends"),
        # interactive
        ComponentDescriptor("action_buttons", template_renderer("action_buttons"), "buttons", "action-buttons", "interactive", "Action buttons bound to server callbacks"),
        ComponentDescriptor("action_menu", template_renderer("action_menu"), "items", "action-menu", "interactive", "Dropdown menu of server-side actions"),
        ComponentDescriptor("notes", template_renderer("notes"), "items", "notes", "interactive", "Notes with add/delete actions"),
        ComponentDescriptor("files", generic, "items", "file-manager", "interactive", "File attachments with sorting"),
        ComponentDescriptor("feature_list", generic, "items", "feature-list", "interactive", "Sortable feature list"),
        ComponentDescriptor("key_value_list", template_renderer("key_value_list"), "items", "key-value-list", "interactive", "Sortable key/value rows"),
        ComponentDescriptor("line_items", template_renderer("line_items"), "items", "line-items", "interactive", "Order line items with quantities and pricing"),
        ComponentDescriptor("gallery", generic, "items", "gallery", "interactive", "Multi-image gallery"),
        # form
        ComponentDescriptor("card_choice", generic, ("options", "value"), "card-choice", "form", "Card-style radio/checkbox selections"),
        ComponentDescriptor("ajax_select", render_field, "value", "ajax-select", "form", "Remote search select field"),
        ComponentDescriptor("image", generic, "value", "image-picker", "form", "Single image picker"),
        ComponentDescriptor(
            "price_config",
            template_renderer("price_config"),
            ("amount", "currency", "recurring_interval", "recurring_interval_count"),
            "price-config",
            "form",
            "Price with currency and optional recurring interval",
        ),
        # layout
        ComponentDescriptor("accordion", generic, "items", "accordion", "layout", "Collapsible content sections"),
        ComponentDescriptor("separator", template_renderer("separator"), ("text", "icon"), None, "layout", "Visual dividers with optional text"),
        # data
        ComponentDescriptor("data_table", generic, ("columns", "data"), None, "data", "Structured data table display"),
        ComponentDescriptor("info_grid", generic, "items", None, "data", "Information grid layout"),
        ComponentDescriptor(
            "payment_method",
            generic,
            ("payment_method", "payment_brand", "payment_last4", "risk_score", "risk_level"),
            "payment-method",
            "data",
            "Payment method with brand and risk indicators",
        ),
        ComponentDescriptor(
            "price_summary",
            generic,
            ("items", "subtotal", "tax", "discount", "total", "currency"),
            "price-summary",
            "data",
            "Price summary with line items and totals",
        ),
    ]


def _coerce_data_fields(raw: Any) -> DataFields | None:
    if isinstance(raw, str):
        return raw or None
    if isinstance(raw, Iterable):
        names = tuple(str(name) for name in raw if name)
        return names or None
    return None


class ComponentRegistry:
    def __init__(self) -> None:
        self._components: Dict[str, ComponentDescriptor] = {}
        self._lock = threading.Lock()
        self._initialized = False

    def init(self) -> None:
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            for descriptor in _default_components():
                self._components.setdefault(descriptor.type, descriptor)
            self._initialized = True
        logger.info("components_initialized count=%s", len(self._components))

    def reset(self) -> None:
        with self._lock:
            self._components = {}
            self._initialized = False

    def register(self, type_: str, descriptor: ComponentDescriptor | Mapping) -> ComponentDescriptor:
        self.init()
        if isinstance(descriptor, Mapping):
            renderer = descriptor.get("renderer")
            data_fields = _coerce_data_fields(descriptor.get("data_fields"))
            asset = descriptor.get("asset")
            category = descriptor.get("category") or "utility"
            description = descriptor.get("description") or ""
        elif isinstance(descriptor, ComponentDescriptor):
            renderer = descriptor.renderer
            data_fields = _coerce_data_fields(descriptor.data_fields)
            asset = descriptor.asset
            category = descriptor.category
            description = descriptor.description
        else:
            raise InvalidComponent(f'Component "{type_}" must be a descriptor or mapping')
        if renderer is None or not callable(renderer):
            raise InvalidComponent(f'Component "{type_}" must have a renderer defined')
        if data_fields is None:
            raise InvalidComponent(f'Component "{type_}" must declare its data fields')
        entry = ComponentDescriptor(type_, renderer, data_fields, asset, category, description)
        self._components[type_] = entry
        logger.info("component_registered type=%s category=%s", type_, category)
        return entry

    def unregister(self, type_: str) -> bool:
        self.init()
        if type_ in self._components:
            del self._components[type_]
            return True
        return False

    def get(self, type_: str) -> ComponentDescriptor | None:
        self.init()
        return self._components.get(type_)

    def get_all(self) -> Dict[str, ComponentDescriptor]:
        self.init()
        return dict(self._components)

    def is_component(self, type_: str) -> bool:
        self.init()
        return type_ in self._components

    def get_by_category(self, category: str) -> Dict[str, ComponentDescriptor]:
        self.init()
        return {t: d for t, d in self._components.items() if d.category == category}

    def categories(self) -> Tuple[str, ...]:
        return CATEGORIES

    def describe(self, type_: str) -> str | None:
        descriptor = self.get(type_)
        return descriptor.description if descriptor else None

    def create(self, type_: str, config: dict) -> Component | None:
        descriptor = self.get(type_)
        if descriptor is None:
            return None
        return Component(type_, config, descriptor.renderer)

    def resolve_value(self, key: str, source: Any) -> Any:
        return resolve_value(key, source)

    def resolve_data(self, type_: str, key: str, source: Any) -> dict:
        descriptor = self.get(type_)
        if descriptor is None:
            return {"value": resolve_value(key, source)}
        resolved = resolve_value(key, source)
        if not descriptor.is_composite:
            return {descriptor.data_fields: resolved}
        names = descriptor.data_fields
        if isinstance(resolved, Mapping) and any(resolved.get(name) is not None for name in names):
            return resolved
        return {name: resolve_value(key if name == "value" else name, source) for name in names}

    def get_asset(self, type_: str, field_config: Mapping | None = None) -> str | None:
        self.init()
        if type_ == "header":
            return "image-picker" if (field_config or {}).get("editable") else None
        descriptor = self._components.get(type_)
        return descriptor.asset if descriptor else None

    def get_all_assets(self) -> List[str]:
        self.init()
        assets: List[str] = []
        for descriptor in self._components.values():
            if descriptor.asset and descriptor.asset not in assets:
                assets.append(descriptor.asset)
        return assets
