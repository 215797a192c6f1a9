"""Display helpers. All of these truncate, none of them round."""

from __future__ import annotations

from collections.abc import Iterable

from .fixed_point import FixedPoint, _truncating_div

_SUFFIX_DIVISORS = {"M": 1_000_000, "K": 1_000}


def commify(whole: str) -> str:
    """Group an integer string with thousands separators: ``-1234567`` -> ``-1,234,567``."""

    sign = ""
    if whole.startswith(("-", "+")):
        sign, whole = whole[0].replace("+", ""), whole[1:]
    whole = whole.lstrip("0") or "0"
    groups: list[str] = []
    while len(whole) > 3:
        groups.insert(0, whole[-3:])
        whole = whole[:-3]
    groups.insert(0, whole)
    return sign + ",".join(groups)


def format_currency(value: str) -> str:
    """Format a numeric string as a two-decimal amount without rounding.

    ``"1.23456"`` -> ``"1.23"``, ``"5"`` -> ``"5.00"``, ``"1234.5"`` -> ``"1,234.50"``.
    No currency symbol is added.
    """

    whole, _, fraction = value.strip().replace(",", "").partition(".")
    fraction = (fraction + "00")[:2]
    negative = whole.startswith("-")
    digits = whole.lstrip("+-") or "0"
    if negative and digits.strip("0") == "" and fraction == "00":
        negative = False
    grouped = commify(digits)
    return f"{'-' if negative else ''}{grouped}.{fraction}"


def format_usd(amount: FixedPoint) -> str:
    return format_currency(amount.to_plain_string())


def format_token_amount(amount: FixedPoint, suffix: str = "") -> str:
    """Format a token amount, optionally shortened to thousands (K) or millions (M).

    With a suffix only the integer part is shown.
    """

    divisor = _SUFFIX_DIVISORS.get(suffix, 1)
    if divisor == 1:
        return format_currency(amount.to_plain_string())
    shortened = FixedPoint(_truncating_div(amount.mantissa, divisor), amount.scale)
    whole = shortened.to_plain_string().partition(".")[0]
    if whole == "-0":
        whole = "0"
    return commify(whole)


def choose_display_suffix(amounts: Iterable[FixedPoint], decimals: int) -> str:
    """Pick a K/M suffix from the shortest amount so every row stays readable."""

    lengths = [len(str(abs(amount.mantissa))) for amount in amounts]
    if not lengths:
        return ""
    shortest = min(lengths)
    if shortest - decimals > 6:
        return "M"
    if shortest - decimals > 3:
        return "K"
    return ""


__all__ = [
    "choose_display_suffix",
    "commify",
    "format_currency",
    "format_token_amount",
    "format_usd",
]
