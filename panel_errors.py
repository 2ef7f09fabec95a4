"""Structured errors surfaced by the panel request surface."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class PanelError(Exception):
    code: str
    message: str
    detail: dict | None = None
    http_status: int = field(default=500)

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message}"

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"code": self.code, "message": self.message, "httpStatus": self.http_status}
        if self.detail:
            body["detail"] = self.detail
        return body


@dataclass
class MalformedIdentifier(PanelError):
    http_status: int = 400


@dataclass
class NotFound(PanelError):
    http_status: int = 404


@dataclass
class Forbidden(PanelError):
    http_status: int = 403


@dataclass
class ValidationFailed(PanelError):
    http_status: int = 422


@dataclass
class Misconfigured(PanelError):
    http_status: int = 500


@dataclass
class InternalFailure(PanelError):
    http_status: int = 500


@dataclass
class SanitizeFallback:
    """Informational: a value went through the generic cleaner. Logged, never raised."""

    field_name: str
    field_type: str
    reason: str


class _NotFoundSentinel:
    def __repr__(self) -> str:  # pragma: no cover - simple formatting
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


# Host load callbacks return this (or False) when the record does not exist.
NOT_FOUND: Any = _NotFoundSentinel()
