"""Actor resolution and role-based capability checks for panel requests."""

from __future__ import annotations

import os
from typing import Any

from fastapi import Request


_CAPABILITIES_BY_ROLE = {
    "admin": {"panels.manage", "panels.read", "panels.edit", "panels.delete"},
    "editor": {"panels.read", "panels.edit"},
    "viewer": {"panels.read"},
}


def auth_disabled() -> bool:
    return os.getenv("FLYOUT_DISABLE_AUTH", "").strip().lower() in ("1", "true", "yes")


def resolve_actor(request: Request) -> dict | None:
    """Actor set by the host's auth middleware, or the dev actor when auth is disabled."""
    user = getattr(request.state, "user", None)
    if isinstance(user, dict) and user.get("id"):
        return {
            "user_id": str(user.get("id")),
            "email": user.get("email"),
            "role": user.get("role") or "viewer",
            "platform_role": user.get("platform_role") or "standard",
        }
    if auth_disabled():
        return {
            "user_id": "dev-user",
            "email": "dev@example.com",
            "role": os.getenv("FLYOUT_DEV_ROLE", "admin").strip().lower() or "admin",
            "platform_role": "standard",
        }
    return None


def has_capability(actor: dict | None, capability: str) -> bool:
    if not isinstance(actor, dict):
        return False
    if actor.get("platform_role") == "superadmin":
        return True
    role = actor.get("role") or "viewer"
    return capability in _CAPABILITIES_BY_ROLE.get(role, set())


def actor_event_meta(actor: Any) -> dict | None:
    if not isinstance(actor, dict) or not actor.get("user_id"):
        return None
    role = actor.get("role")
    return {"id": actor["user_id"], "roles": [role] if isinstance(role, str) else []}
