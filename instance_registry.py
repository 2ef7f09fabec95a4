"""Process-wide directory of panel managers, one per namespace."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List

from panelkit.text_clean import slug_key

if TYPE_CHECKING:
    from panel_manager import PanelManager


logger = logging.getLogger("flyouts.registry")

ManagerFactory = Callable[[str], "PanelManager"]


@dataclass(frozen=True)
class ParsedId:
    namespace: str
    local: str


@dataclass(frozen=True)
class ResolvedId:
    manager: "PanelManager"
    namespace: str
    local: str


def parse_id(compound_id: Any) -> ParsedId | None:
    """Split ``namespace_local`` on the first underscore.

    Ids without an underscore, or starting with one, are rejected.
    """
    if not isinstance(compound_id, str):
        return None
    pos = compound_id.find("_")
    if pos <= 0:
        return None
    return ParsedId(compound_id[:pos], compound_id[pos + 1 :])


def join_id(namespace: str, local: str) -> str:
    return f"{namespace}_{local}"


class InstanceRegistry:
    def __init__(self, manager_factory: ManagerFactory) -> None:
        self._factory = manager_factory
        self._managers: Dict[str, "PanelManager"] = {}
        self._lock = threading.Lock()

    def register(self, namespace: str, manager: "PanelManager") -> None:
        key = slug_key(namespace)
        if not key:
            raise ValueError(f"invalid namespace: {namespace!r}")
        with self._lock:
            if key in self._managers:
                raise ValueError(f'namespace "{key}" is already registered')
            self._managers[key] = manager
        logger.info("manager_registered namespace=%s", key)

    def get(self, namespace: Any) -> "PanelManager | None":
        return self._managers.get(slug_key(namespace))

    def has(self, namespace: Any) -> bool:
        return slug_key(namespace) in self._managers

    def remove(self, namespace: Any) -> bool:
        with self._lock:
            return self._managers.pop(slug_key(namespace), None) is not None

    def namespaces(self) -> List[str]:
        return list(self._managers)

    def get_or_create(self, namespace: Any) -> "PanelManager | None":
        key = slug_key(namespace)
        if not key:
            return None
        manager = self._managers.get(key)
        if manager is not None:
            return manager
        with self._lock:
            manager = self._managers.get(key)
            if manager is None:
                manager = self._factory(key)
                self._managers[key] = manager
                logger.info("manager_created namespace=%s", key)
        return manager

    def resolve(self, compound_id: Any, create_if_missing: bool = False) -> ResolvedId | None:
        parsed = parse_id(compound_id)
        if parsed is None:
            return None
        if create_if_missing:
            manager = self.get_or_create(parsed.namespace)
        else:
            manager = self.get(parsed.namespace)
        if manager is None:
            return None
        return ResolvedId(manager, slug_key(parsed.namespace), parsed.local)
