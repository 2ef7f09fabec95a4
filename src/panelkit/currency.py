"""Currency minor-unit conversion."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Protocol


ZERO_DECIMAL_CURRENCIES = {
    "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
    "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
}
THREE_DECIMAL_CURRENCIES = {"BHD", "JOD", "KWD", "OMR", "TND"}


class CurrencyConverter(Protocol):
    def to_minor_units(self, amount: Any, currency: str) -> int:
        ...

    def from_minor_units(self, amount: int, currency: str) -> float:
        ...


def currency_decimals(currency: str) -> int:
    code = (currency or "").upper()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def _parse_decimal(amount: Any) -> Decimal:
    if isinstance(amount, bool):
        return Decimal(0)
    if isinstance(amount, (int, float)):
        text = repr(amount)
    else:
        text = str(amount or "").strip().replace(",", "").replace(" ", "")
    try:
        value = Decimal(text or "0")
    except InvalidOperation:
        return Decimal(0)
    if not value.is_finite():
        return Decimal(0)
    return value


class DecimalCurrencyConverter:
    """Default converter: ISO 4217 exponent table, half-up rounding."""

    def to_minor_units(self, amount: Any, currency: str) -> int:
        factor = Decimal(10) ** currency_decimals(currency)
        minor = (_parse_decimal(amount) * factor).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        return int(minor)

    def from_minor_units(self, amount: int, currency: str) -> float:
        factor = Decimal(10) ** currency_decimals(currency)
        return float(Decimal(int(amount)) / factor)
