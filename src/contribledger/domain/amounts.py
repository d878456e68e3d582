"""AmountNormalizer: native integer base units <-> canonical decimal strings.

Pure integer/string arithmetic. No float or Decimal context is involved so no
rounding can happen.
"""

import re
from decimal import Decimal

from contribledger.exceptions import InvalidAmount

_RE_UINT = re.compile(r"^[0-9]+$")
_RE_DECIMAL = re.compile(r"^([0-9]+)(?:\.([0-9]*))?$")


def _as_native_int(native_units: int | str) -> int:
    if isinstance(native_units, bool):
        raise InvalidAmount(f"Not an integer amount: {native_units!r}")
    if isinstance(native_units, int):
        if native_units < 0:
            raise InvalidAmount(f"Negative amount: {native_units}")
        return native_units
    if isinstance(native_units, str):
        s = native_units.strip()
        if s.lower().startswith("0x"):
            digits = s[2:]
            if not digits or not re.fullmatch(r"[0-9a-fA-F]+", digits):
                raise InvalidAmount(f"Invalid hex amount: {native_units!r}")
            return int(digits, 16)
        if not _RE_UINT.match(s):
            raise InvalidAmount(f"Invalid integer amount: {native_units!r}")
        return int(s)
    raise InvalidAmount(f"Unsupported amount type: {type(native_units).__name__}")


def _check_decimals(decimals: int) -> None:
    if isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0:
        raise InvalidAmount(f"Invalid decimals: {decimals!r}")


def to_canonical(native_units: int | str, decimals: int) -> str:
    """Convert base units (wei, satoshi, stroop, ...) to a human-unit decimal string.

    Accepts an int, a decimal digit string or a 0x-prefixed hex string (EVM quantities).
    Trailing fractional zeros are stripped; "0" for zero.
    """
    _check_decimals(decimals)
    value = _as_native_int(native_units)
    if decimals == 0:
        return str(value)

    whole, frac = divmod(value, 10**decimals)
    frac_str = str(frac).rjust(decimals, "0").rstrip("0")
    if not frac_str:
        return str(whole)
    return f"{whole}.{frac_str}"


def from_canonical(canonical: str, decimals: int) -> str:
    """Inverse of to_canonical: human-unit decimal string -> base-unit integer string."""
    _check_decimals(decimals)
    if not isinstance(canonical, str):
        raise InvalidAmount(f"Canonical amount must be a string, got {type(canonical).__name__}")
    m = _RE_DECIMAL.match(canonical.strip())
    if not m:
        raise InvalidAmount(f"Invalid decimal amount: {canonical!r}")
    whole, frac = m.group(1), (m.group(2) or "")
    frac = frac.rstrip("0")
    if len(frac) > decimals:
        raise InvalidAmount(f"Amount {canonical!r} has more than {decimals} fractional digits")
    return str(int(whole) * 10**decimals + int(frac.ljust(decimals, "0") or "0"))


def decimal_to_native(value: Decimal | str, decimals: int) -> int:
    """Convert a provider-reported human-unit amount (e.g. UTXO vout value) to base units."""
    if isinstance(value, Decimal):
        if value.is_nan() or value.is_infinite() or value < 0:
            raise InvalidAmount(f"Invalid amount: {value}")
        value = format(value, "f")
    return int(from_canonical(str(value), decimals))
