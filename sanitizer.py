"""Save-time sanitization pipeline keyed by field type.

Every rule here is idempotent on its own output and never raises: unknown
types and failing host callbacks degrade to the generic cleaner.
"""

from __future__ import annotations

import inspect
import logging
import re
import threading
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List

from panel_errors import SanitizeFallback
from panel_types import FieldDeclaration
from panelkit.currency import CurrencyConverter, DecimalCurrencyConverter
from panelkit.text_clean import (
    abs_int,
    clean_email,
    clean_hex_color,
    clean_text,
    clean_textarea,
    clean_url,
    is_truthy,
    slug_key,
    to_float,
    to_int,
)


logger = logging.getLogger("flyouts.sanitize")

SanitizeFn = Callable[..., Any]
ImageCheck = Callable[[int], bool]

RECURRING_INTERVALS = ("day", "week", "month", "year")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def generic_clean(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, Mapping):
        return {str(key): generic_clean(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [generic_clean(item) for item in value]
    return clean_text(value)


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, Mapping):
        return list(value.values())
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


# -- scalar field rules -------------------------------------------------------


def sanitize_plain(value: Any, config: Mapping) -> Any:
    if isinstance(value, (list, tuple)):
        return [clean_text(item) for item in value]
    return clean_text(value)


def sanitize_textarea(value: Any, config: Mapping) -> str:
    return clean_textarea(value)


def sanitize_email(value: Any, config: Mapping) -> str:
    return clean_email(value)


def sanitize_url(value: Any, config: Mapping) -> str:
    return clean_url(value)


def sanitize_color(value: Any, config: Mapping) -> str:
    return clean_hex_color(value)


def sanitize_password(value: Any, config: Mapping) -> str:
    if value is None or isinstance(value, (Mapping, list, tuple)):
        return ""
    return str(value).strip()


def sanitize_number(value: Any, config: Mapping) -> int | float:
    if isinstance(value, float):
        return to_float(value)
    if isinstance(value, (bool, int)):
        return int(value)
    text = clean_text(value)
    if "." in text:
        return to_float(text)
    return to_int(text)


def sanitize_date(value: Any, config: Mapping) -> str:
    text = clean_text(value)
    if not _DATE_RE.match(text):
        return ""
    try:
        return datetime.strptime(text, "%Y-%m-%d").strftime("%Y-%m-%d")
    except ValueError:
        return ""


def sanitize_toggle(value: Any, config: Mapping) -> str:
    return "1" if is_truthy(value) else "0"


# -- component rules ----------------------------------------------------------


def sanitize_tags(value: Any, config: Mapping) -> List[str]:
    cleaned = []
    for item in _as_list(value):
        if isinstance(item, Mapping):
            item = item.get("value", item.get("text", ""))
        text = clean_text(item)
        if text:
            cleaned.append(text)
    return cleaned


def sanitize_card_choice(value: Any, config: Mapping) -> Any:
    if isinstance(value, (list, tuple)):
        return [text for text in (clean_text(item) for item in value) if text]
    return clean_text(value)


def sanitize_key_value_list(value: Any, config: Mapping) -> List[dict]:
    rows = []
    for item in _as_list(value):
        if not isinstance(item, Mapping):
            continue
        key = slug_key(item.get("key"))
        if not key:
            continue
        rows.append({"key": key, "value": clean_text(item.get("value"))})
    return rows


def sanitize_line_items(value: Any, config: Mapping) -> List[dict]:
    rows = []
    for item in _as_list(value):
        if not isinstance(item, Mapping):
            continue
        item_id = abs_int(item.get("id"))
        if item_id <= 0:
            continue
        quantity = item.get("quantity")
        row: Dict[str, Any] = {"id": item_id}
        if "name" in item:
            row["name"] = clean_text(item.get("name"))
        row["quantity"] = max(1, to_int(quantity if quantity is not None else 1))
        row["price"] = abs_int(item.get("price"))
        rows.append(row)
    return rows


def sanitize_files(value: Any, config: Mapping) -> List[dict]:
    files = []
    for item in _as_list(value):
        if not isinstance(item, Mapping):
            continue
        url = clean_url(item.get("url"))
        attachment_id = abs_int(item.get("attachment_id"))
        if not url and attachment_id <= 0:
            continue
        files.append(
            {
                "name": clean_text(item.get("name")),
                "url": url,
                "attachment_id": attachment_id,
                "lookup_key": slug_key(item.get("lookup_key")),
            }
        )
    return files


def _accepts_config(fn: SanitizeFn) -> bool:
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return True
    try:
        signature.bind(None, None)
    except TypeError:
        return False
    return True


def _call(fn: SanitizeFn, value: Any, config: Mapping) -> Any:
    if _accepts_config(fn):
        return fn(value, config)
    return fn(value)


def _field_config(field: FieldDeclaration | Mapping) -> dict:
    if isinstance(field, FieldDeclaration):
        config = field.to_config()
        config["sanitize_callback"] = field.sanitize_callback
        return config
    return dict(field)


def _any_positive_id(attachment_id: int) -> bool:
    return attachment_id > 0


class Sanitizer:
    """Type-keyed sanitizer registry plus the per-form pipeline.

    ``converter`` turns submitted decimal prices into minor units and
    ``is_valid_image`` vets attachment ids; both are host collaborators.
    """

    def __init__(self, converter: CurrencyConverter | None = None, is_valid_image: ImageCheck | None = None) -> None:
        self.converter = converter or DecimalCurrencyConverter()
        self.is_valid_image = is_valid_image or _any_positive_id
        self._sanitizers: Dict[str, SanitizeFn] = {}
        self._overrides: Dict[str, SanitizeFn] = {}
        self._filters: Dict[str, List[SanitizeFn]] = {}
        self._lock = threading.Lock()
        self._initialized = False

    def _defaults(self) -> Dict[str, SanitizeFn]:
        return {
            "text": sanitize_plain,
            "tel": sanitize_plain,
            "select": sanitize_plain,
            "radio": sanitize_plain,
            "hidden": sanitize_plain,
            "ajax_select": sanitize_plain,
            "textarea": sanitize_textarea,
            "email": sanitize_email,
            "url": sanitize_url,
            "color": sanitize_color,
            "password": sanitize_password,
            "number": sanitize_number,
            "date": sanitize_date,
            "toggle": sanitize_toggle,
            "price_config": self.sanitize_price,
            "line_items": sanitize_line_items,
            "key_value_list": sanitize_key_value_list,
            "tags": sanitize_tags,
            "feature_list": sanitize_tags,
            "card_choice": sanitize_card_choice,
            "files": sanitize_files,
            "image": self.sanitize_image,
            "gallery": self.sanitize_gallery,
            "image_gallery": self.sanitize_gallery,
        }

    def init(self) -> None:
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            for type_, fn in self._defaults().items():
                self._sanitizers.setdefault(type_, fn)
            self._initialized = True
        logger.info("sanitizers_initialized count=%s", len(self._sanitizers))

    # -- registration ---------------------------------------------------------

    def register(self, type_: str, fn: SanitizeFn) -> None:
        self.init()
        self._sanitizers[type_] = fn
        logger.info("sanitizer_registered type=%s", type_)

    def unregister(self, type_: str) -> bool:
        self.init()
        self._overrides.pop(type_, None)
        return self._sanitizers.pop(type_, None) is not None

    def override(self, type_: str, fn: SanitizeFn | None) -> None:
        """Shadow the registered sanitizer for ``type_``; ``None`` lifts the override."""
        if fn is None:
            self._overrides.pop(type_, None)
            return
        self._overrides[type_] = fn

    def add_filter(self, type_: str, fn: SanitizeFn) -> None:
        self._filters.setdefault(type_, []).append(fn)

    def get_all(self) -> Dict[str, SanitizeFn]:
        self.init()
        merged = dict(self._sanitizers)
        merged.update(self._overrides)
        return merged

    # -- image/price rules needing collaborators -------------------------------

    def _valid_image(self, attachment_id: int) -> bool:
        if attachment_id <= 0:
            return False
        try:
            return bool(self.is_valid_image(attachment_id))
        except Exception as exc:
            logger.warning("image_check_failed attachment_id=%s error=%s", attachment_id, exc)
            return False

    def sanitize_image(self, value: Any, config: Mapping) -> int:
        if isinstance(value, Mapping):
            value = value.get("attachment_id", value.get("id"))
        attachment_id = abs_int(value)
        return attachment_id if self._valid_image(attachment_id) else 0

    def sanitize_gallery(self, value: Any, config: Mapping) -> List[int]:
        ids = []
        for item in _as_list(value):
            if isinstance(item, Mapping):
                item = item.get("attachment_id", item.get("id"))
            attachment_id = abs_int(item)
            if self._valid_image(attachment_id):
                ids.append(attachment_id)
        return ids

    def _minor_units(self, amount: Any, currency: str) -> int:
        # Integers are already minor units; text and floats are decimal amounts.
        if isinstance(amount, bool):
            return 0
        if isinstance(amount, int):
            return max(0, amount)
        if amount is None or amount == "":
            return 0
        try:
            minor = int(self.converter.to_minor_units(clean_text(amount), currency))
        except Exception as exc:
            logger.warning("currency_conversion_failed currency=%s error=%s", currency, exc)
            return 0
        return max(0, minor)

    def sanitize_price(self, value: Any, config: Mapping) -> dict:
        data = value if isinstance(value, Mapping) else {"amount": value}
        currency = clean_text(data.get("currency") or config.get("currency") or "USD").upper() or "USD"
        amount = self._minor_units(data.get("amount"), currency)
        price: Dict[str, Any] = {"amount": amount, "currency": currency}
        if "compare_at_amount" in data:
            compare_at = self._minor_units(data.get("compare_at_amount"), currency)
            price["compare_at_amount"] = compare_at if compare_at > amount else 0
        interval = clean_text(data.get("recurring_interval")).lower()
        if interval in RECURRING_INTERVALS:
            count = data.get("recurring_interval_count")
            price["recurring_interval"] = interval
            price["recurring_interval_count"] = max(1, abs_int(count if count not in (None, "") else 1))
        else:
            price["recurring_interval"] = None
            price["recurring_interval_count"] = None
        return price

    # -- pipeline --------------------------------------------------------------

    def _fallback(self, value: Any, field_name: str, field_type: str, reason: str) -> Any:
        event = SanitizeFallback(field_name, field_type, reason)
        if reason == "unregistered_type":
            logger.debug("sanitize_fallback field=%s type=%s reason=%s", event.field_name, event.field_type, event.reason)
        else:
            logger.warning("sanitize_fallback field=%s type=%s reason=%s", event.field_name, event.field_type, event.reason)
        return generic_clean(value)

    def sanitize_field(self, value: Any, field: FieldDeclaration | Mapping) -> Any:
        self.init()
        config = _field_config(field)
        field_type = str(config.get("type") or "text")
        field_name = str(config.get("name") or config.get("key") or "")
        callback = config.get("sanitize_callback")
        if callable(callback):
            try:
                return callback(value)
            except Exception as exc:
                return self._fallback(value, field_name, field_type, f"sanitize_callback_failed: {exc}")
        fn = self._overrides.get(field_type) or self._sanitizers.get(field_type)
        filters = self._filters.get(field_type, [])
        if fn is None and not filters:
            return self._fallback(value, field_name, field_type, "unregistered_type")
        original = value
        try:
            for value_filter in filters:
                value = _call(value_filter, value, config)
            if fn is None:
                return generic_clean(value)
            return _call(fn, value, config)
        except Exception as exc:
            return self._fallback(original, field_name, field_type, f"sanitizer_failed: {exc}")

    def sanitize_form(self, raw: Mapping | None, fields: Iterable[FieldDeclaration | Mapping]) -> dict:
        self.init()
        raw = raw if isinstance(raw, Mapping) else {}
        sanitized: Dict[str, Any] = {}
        for field in fields:
            config = _field_config(field)
            name = str(config.get("name") or config.get("key") or "")
            if not name or name not in raw:
                continue
            sanitized[name] = self.sanitize_field(raw[name], field)
        for key, value in raw.items():
            key = str(key)
            if key not in sanitized:
                sanitized[key] = generic_clean(value)
        return sanitized
