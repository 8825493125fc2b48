import math
import re

from medcapture.models.values import Count, Quantity, Text, TypedValue

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_LEADING_NUMBER = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")


def parse_numeric(raw: object) -> float | None:
    """Read a number out of a raw extracted value.

    Everything except digits, ``.`` and ``-`` is discarded first, then the longest
    leading numeric prefix is parsed, so ``"12.5 g/dL"`` reads as 12.5 and
    ``"1.2.3"`` as 1.2. Serialized objects and arrays are not numbers. Returns
    None when no number can be read.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int | float):
        return None if math.isnan(raw) else float(raw)
    if not isinstance(raw, str) or raw.lstrip().startswith(("{", "[")):
        return None
    cleaned = _NON_NUMERIC.sub("", raw)
    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return None
    return float(match.group(0))


def coerce_value(raw: str, units: str | None = None) -> TypedValue:
    """Classify a raw value as Quantity, Count or Text.

    Units presence, not magnitude, decides between Quantity and Count.
    """
    number = parse_numeric(raw)
    if number is not None and units:
        return Quantity(magnitude=number, units=units)
    if number is not None:
        return Count(magnitude=math.floor(number + 0.5))
    return Text(value=raw or "No value")
