"""Application context: the one set of registries a process serves panels from."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from app.permissions import has_capability
from component_registry import ComponentRegistry
from instance_registry import InstanceRegistry
from panel_errors import MalformedIdentifier
from panel_events import PanelEventBus
from panel_manager import NonceFactory, PanelManager
from panel_types import PanelDefinition
from panelkit.currency import CurrencyConverter
from request_dispatcher import CapabilityFilter, RequestDispatcher
from sanitizer import ImageCheck, Sanitizer


PermissionChecker = Callable[[Any, str], bool]


@dataclass
class AppContext:
    components: ComponentRegistry
    sanitizer: Sanitizer
    instances: InstanceRegistry
    dispatcher: RequestDispatcher
    events: PanelEventBus
    route_prefix: str
    permission_checker: PermissionChecker = field(default=has_capability)

    def can_perform_for(self, actor: Any) -> Callable[[str], bool]:
        return lambda capability: bool(self.permission_checker(actor, capability))

    def register_panel(self, compound_id: str, config: PanelDefinition | Mapping) -> PanelDefinition:
        resolved = self.instances.resolve(compound_id, create_if_missing=True)
        if resolved is None:
            raise MalformedIdentifier("MALFORMED_IDENTIFIER", f"Malformed panel id: {compound_id!r}")
        return resolved.manager.register_panel(resolved.local, config)

    def panel_button(self, compound_id: str, actor: Any = None, **kwargs: Any) -> str:
        resolved = self.instances.resolve(compound_id)
        if resolved is None:
            return ""
        can_perform = self.can_perform_for(actor) if actor is not None else None
        return resolved.manager.get_button_markup(resolved.local, can_perform=can_perform, **kwargs)

    def panel_link(self, compound_id: str, text: str, actor: Any = None, **kwargs: Any) -> str:
        resolved = self.instances.resolve(compound_id)
        if resolved is None:
            return ""
        can_perform = self.can_perform_for(actor) if actor is not None else None
        return resolved.manager.get_link_markup(resolved.local, text, can_perform=can_perform, **kwargs)


def build_context(
    route_prefix: str = "/flyouts/v1",
    converter: CurrencyConverter | None = None,
    is_valid_image: ImageCheck | None = None,
    nonce_factory: NonceFactory | None = None,
    capability_filter: CapabilityFilter | None = None,
) -> AppContext:
    """Construct and eagerly initialize every registry before requests are served."""
    components = ComponentRegistry()
    components.init()
    sanitizer = Sanitizer(converter=converter, is_valid_image=is_valid_image)
    sanitizer.init()
    prefix = route_prefix.rstrip("/")

    def manager_factory(namespace: str) -> PanelManager:
        return PanelManager(namespace, components, route_prefix=prefix, nonce_factory=nonce_factory)

    instances = InstanceRegistry(manager_factory)
    events = PanelEventBus()
    dispatcher = RequestDispatcher(instances, sanitizer, events=events, capability_filter=capability_filter)
    return AppContext(components, sanitizer, instances, dispatcher, events, prefix)
