"""Flyout panel kernel utilities."""

from .currency import CurrencyConverter, DecimalCurrencyConverter, currency_decimals
from .data_source import MISSING, ObjectAdapter, as_data_source, camel_case
from .text_clean import clean_text, clean_textarea, is_truthy, slug_key

__all__ = [
    "CurrencyConverter",
    "DecimalCurrencyConverter",
    "MISSING",
    "ObjectAdapter",
    "as_data_source",
    "camel_case",
    "clean_text",
    "clean_textarea",
    "currency_decimals",
    "is_truthy",
    "slug_key",
]
