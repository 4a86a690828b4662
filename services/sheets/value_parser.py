"""
Cell value parsing.
Converts free-text spreadsheet cells into numbers, booleans or text.
"""
import math
import re
from typing import Optional, Union

from services.sheets.models import ValueType

_CURRENCY_AND_SEPARATORS = re.compile(r"[$€£¥,]")
_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

TRUE_VALUES = {"true", "yes", "1"}


def parse_numeric(raw: Optional[str]) -> Optional[float]:
    """
    Parse a spreadsheet cell as a number.

    "$1,200" -> 1200.0, "19.2%" -> 0.192, "(2,500)" -> -2500.0, "1.52x" -> 1.52.
    Returns None when no finite number is found; None means "keep searching",
    never zero.
    """
    if raw is None:
        return None

    text = _CURRENCY_AND_SEPARATORS.sub("", str(raw).strip()).strip()
    if not text:
        return None

    # Accounting negative
    if len(text) > 2 and text.startswith("(") and text.endswith(")"):
        inner = parse_numeric(text[1:-1])
        return -inner if inner is not None else None

    if text.endswith("%"):
        inner = parse_numeric(text[:-1])
        return inner / 100 if inner is not None else None

    # Multiple-of-capital notation, kept unscaled
    if text[-1] in ("x", "X") and len(text) > 1:
        return parse_numeric(text[:-1])

    if not _NUMBER_RE.match(text):
        return None

    value = float(text)
    if not math.isfinite(value):
        return None
    return value


def parse_boolean(raw: Optional[str]) -> bool:
    if raw is None:
        return False
    return str(raw).strip().lower() in TRUE_VALUES


def parse_value(raw: Optional[str], value_type: Union[ValueType, str, None] = ValueType.NUMBER):
    """
    Parse a cell according to a mapping entry's value type.

    number / currency / percentage -> float or None
    boolean -> bool
    text -> stripped string, None if empty
    """
    try:
        value_type = ValueType(value_type or ValueType.NUMBER)
    except ValueError:
        value_type = ValueType.NUMBER

    if value_type == ValueType.BOOLEAN:
        return parse_boolean(raw)
    if value_type == ValueType.TEXT:
        text = str(raw).strip() if raw is not None else ""
        return text or None
    return parse_numeric(raw)
