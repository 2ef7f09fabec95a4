"""Plain-text cleaners shared by sanitizers, search terms and request parsing."""

from __future__ import annotations

import math
import re
from typing import Any
from urllib.parse import urlparse


_TAG_RE = re.compile(r"<[^>]*>")
_SCRIPT_RE = re.compile(r"<(script|style)[^>]*?>.*?</\1>", re.IGNORECASE | re.DOTALL)
_OCTET_RE = re.compile(r"%[a-fA-F0-9]{2}")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WS_RE = re.compile(r"[\r\n\t ]+")
_KEY_RE = re.compile(r"[^a-z0-9_\-]")
_EMAIL_RE = re.compile(r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)+$")
_HEX_COLOR_RE = re.compile(r"^#([A-Fa-f0-9]{3}){1,2}$")
_URL_SCHEMES = {"http", "https", "mailto", "tel", "ftp"}
_HOST_PORT_RE = re.compile(r"^[A-Za-z0-9.-]+:\d+(?:[/?#]|$)")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else ""
    if isinstance(value, (str, int, float)):
        return str(value)
    return ""


def _sub_until_stable(pattern: re.Pattern, text: str) -> str:
    while True:
        cleaned = pattern.sub("", text)
        if cleaned == text:
            return cleaned
        text = cleaned


def strip_tags(text: str) -> str:
    text = _SCRIPT_RE.sub("", text)
    return _sub_until_stable(_TAG_RE, text)


def clean_text(value: Any) -> str:
    """Single-line plain text: tags, control chars and octets removed, whitespace collapsed."""
    text = strip_tags(_as_text(value))
    text = _CONTROL_RE.sub("", text)
    text = _sub_until_stable(_OCTET_RE, text)
    return _WS_RE.sub(" ", text).strip()


def clean_textarea(value: Any) -> str:
    """Like clean_text but keeps line breaks."""
    text = strip_tags(_as_text(value))
    text = _CONTROL_RE.sub("", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [" ".join(line.split()) for line in text.split("\n")]
    return "\n".join(lines).strip()


def slug_key(value: Any) -> str:
    """Lowercase key restricted to [a-z0-9_-]."""
    return _KEY_RE.sub("", _as_text(value).lower())


def clean_email(value: Any) -> str:
    text = clean_text(value).replace(" ", "")
    return text if _EMAIL_RE.match(text) else ""


def clean_url(value: Any) -> str:
    text = _CONTROL_RE.sub("", strip_tags(_as_text(value)))
    text = re.sub(r"\s+", "", text)
    if not text:
        return ""
    if _HOST_PORT_RE.match(text) and text.split(":", 1)[0].lower() not in _URL_SCHEMES:
        return "http://" + text
    parsed = urlparse(text)
    if parsed.scheme and parsed.scheme.lower() not in _URL_SCHEMES:
        return ""
    if not parsed.scheme and not text.startswith(("/", "#", "?")):
        text = "http://" + text
    return text


def clean_hex_color(value: Any) -> str:
    text = clean_text(value)
    return text if _HEX_COLOR_RE.match(text) else ""


def to_int(value: Any) -> int:
    """Leading-integer parse; anything unparseable is 0."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    match = re.match(r"^\s*([+-]?\d+)", _as_text(value))
    return int(match.group(1)) if match else 0


def to_float(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
        return number if math.isfinite(number) else 0.0
    match = re.match(r"^\s*([+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?)", _as_text(value))
    if not match:
        return 0.0
    number = float(match.group(1))
    return number if math.isfinite(number) else 0.0


def abs_int(value: Any) -> int:
    return abs(to_int(value))


_FALSY_TEXT = {"", "0", "false", "off", "no"}


def is_truthy(value: Any) -> bool:
    """Form-style truthiness: "0", "false", "off" and "no" are false."""
    if isinstance(value, str):
        return value.strip().lower() not in _FALSY_TEXT
    return bool(value)
