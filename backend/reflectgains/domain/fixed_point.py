"""Exact fixed-point arithmetic for token quantities and USD amounts.

Values are an arbitrary precision integer mantissa plus a decimal scale, so
``FixedPoint(1234, 2)`` is ``12.34``. Nothing here ever goes through a binary
float: token amounts are multiplied by prices and ratios repeatedly and any
drift would surface in the displayed totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import total_ordering
from typing import Any

from reflectgains.core.errors import ScaleMismatchError

# Internal precision for USD amounts, matching on-chain wei precision.
USD_SCALE = 18

# Parsed values may not exceed a uint256 in integer digits or carry more
# fractional digits than any token or USD scale in use.
MAX_INTEGER_DIGITS = 78
MAX_FRACTION_DIGITS = 96


def _truncating_div(numerator: int, denominator: int) -> int:
    """Integer division that truncates toward zero like big-number libraries do."""

    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


@total_ordering
@dataclass(frozen=True, slots=True, eq=False)
class FixedPoint:
    mantissa: int
    scale: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.mantissa, bool) or not isinstance(self.mantissa, int):
            raise TypeError(f"mantissa must be an int, got {type(self.mantissa).__name__}")
        if self.scale < 0:
            raise ValueError("scale must be non-negative")

    # ------------------------------------------------------------------
    # Construction

    @classmethod
    def zero(cls, scale: int = 0) -> "FixedPoint":
        return cls(0, scale)

    @classmethod
    def from_units(cls, raw: int | str, decimals: int) -> "FixedPoint":
        """Wrap an integer amount already expressed in the token's smallest unit."""

        if isinstance(raw, str):
            raw = int(raw.strip() or "0")
        return cls(int(raw), decimals)

    @classmethod
    def from_string(cls, value: str, scale: int | None = None) -> "FixedPoint":
        """Parse a decimal string such as ``"1,234.5678"`` or ``"-0.01"``.

        With ``scale`` the result is rescaled, truncating extra digits.
        """

        cleaned = value.strip().replace(",", "")
        try:
            parsed = Decimal(cleaned)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid decimal string: {value!r}") from exc
        return cls._from_decimal(parsed, scale)

    @classmethod
    def from_number(cls, value: Any, scale: int) -> "FixedPoint":
        """Convert a JSON number (int, float, Decimal or numeric string)."""

        if isinstance(value, Decimal):
            return cls._from_decimal(value, scale)
        # Route floats through their shortest repr to avoid binary expansion noise.
        return cls.from_string(str(value), scale)

    @classmethod
    def _from_decimal(cls, value: Decimal, scale: int | None) -> "FixedPoint":
        if not value.is_finite():
            raise ValueError(f"Non-finite decimal value: {value}")
        sign, digits, exponent = value.as_tuple()
        if value and len(digits) + exponent > MAX_INTEGER_DIGITS:
            raise ValueError(f"Decimal value has more than {MAX_INTEGER_DIGITS} integer digits")
        if -exponent > MAX_FRACTION_DIGITS:
            raise ValueError(f"Decimal value has more than {MAX_FRACTION_DIGITS} fractional digits")
        mantissa = int("".join(str(digit) for digit in digits) or "0")
        if exponent >= 0:
            mantissa *= 10**exponent
            natural_scale = 0
        else:
            natural_scale = -exponent
        if sign:
            mantissa = -mantissa
        result = cls(mantissa, natural_scale)
        if scale is not None:
            result = result.rescale(scale)
        return result

    # ------------------------------------------------------------------
    # Scale handling

    def rescale(self, scale: int) -> "FixedPoint":
        """Pad or truncate trailing digits. Truncation never rounds."""

        if scale == self.scale:
            return self
        if scale > self.scale:
            return FixedPoint(self.mantissa * 10 ** (scale - self.scale), scale)
        return FixedPoint(_truncating_div(self.mantissa, 10 ** (self.scale - scale)), scale)

    def _require_same_scale(self, other: "FixedPoint", operation: str) -> None:
        if self.scale != other.scale:
            raise ScaleMismatchError(
                f"Cannot {operation} values with scales {self.scale} and {other.scale}"
            )

    def _aligned(self, other: "FixedPoint") -> tuple[int, int]:
        common = max(self.scale, other.scale)
        return (
            self.mantissa * 10 ** (common - self.scale),
            other.mantissa * 10 ** (common - other.scale),
        )

    # ------------------------------------------------------------------
    # Arithmetic

    def __add__(self, other: object) -> "FixedPoint":
        if not isinstance(other, FixedPoint):
            return NotImplemented
        self._require_same_scale(other, "add")
        return FixedPoint(self.mantissa + other.mantissa, self.scale)

    def __sub__(self, other: object) -> "FixedPoint":
        if not isinstance(other, FixedPoint):
            return NotImplemented
        self._require_same_scale(other, "subtract")
        return FixedPoint(self.mantissa - other.mantissa, self.scale)

    def __mul__(self, other: object) -> "FixedPoint":
        if isinstance(other, FixedPoint):
            return FixedPoint(self.mantissa * other.mantissa, self.scale + other.scale)
        if isinstance(other, int) and not isinstance(other, bool):
            return FixedPoint(self.mantissa * other, self.scale)
        return NotImplemented

    __rmul__ = __mul__

    def divide(self, other: "FixedPoint", scale: int) -> "FixedPoint":
        """Return ``self / other`` truncated to ``scale`` fractional digits."""

        if other.mantissa == 0:
            raise ZeroDivisionError("fixed-point division by zero")
        # self.m / 10^s1 / (other.m / 10^s2) * 10^scale
        exponent = scale + other.scale - self.scale
        numerator = self.mantissa
        denominator = other.mantissa
        if exponent >= 0:
            numerator *= 10**exponent
        else:
            denominator *= 10 ** (-exponent)
        return FixedPoint(_truncating_div(numerator, denominator), scale)

    def __neg__(self) -> "FixedPoint":
        return FixedPoint(-self.mantissa, self.scale)

    def __abs__(self) -> "FixedPoint":
        return FixedPoint(abs(self.mantissa), self.scale)

    @property
    def sign(self) -> int:
        return (self.mantissa > 0) - (self.mantissa < 0)

    def is_zero(self) -> bool:
        return self.mantissa == 0

    def __bool__(self) -> bool:
        return self.mantissa != 0

    # ------------------------------------------------------------------
    # Comparison

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FixedPoint):
            return NotImplemented
        left, right = self._aligned(other)
        return left == right

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, FixedPoint):
            return NotImplemented
        left, right = self._aligned(other)
        return left < right

    def __hash__(self) -> int:
        mantissa, scale = self.mantissa, self.scale
        while scale and mantissa % 10 == 0:
            mantissa //= 10
            scale -= 1
        return hash((mantissa, scale))

    # ------------------------------------------------------------------
    # Conversion

    def to_plain_string(self) -> str:
        """Decimal string with trailing fractional zeros removed (``"0"`` for zero)."""

        digits = str(abs(self.mantissa)).rjust(self.scale + 1, "0")
        whole = digits[: len(digits) - self.scale] if self.scale else digits
        fraction = digits[len(digits) - self.scale :].rstrip("0") if self.scale else ""
        sign = "-" if self.mantissa < 0 else ""
        return f"{sign}{whole}.{fraction}" if fraction else f"{sign}{whole}"

    def to_decimal(self) -> Decimal:
        return Decimal(self.to_plain_string())

    def __str__(self) -> str:
        return self.to_plain_string()

    def __repr__(self) -> str:
        return f"FixedPoint({self.to_plain_string()!r}, scale={self.scale})"


__all__ = ["FixedPoint", "USD_SCALE"]
