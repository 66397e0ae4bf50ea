"""
Field whitelist filtering for insert and update payloads.

A whitelist maps field name -> FieldKind. When it is empty payloads pass
through untouched. Otherwise:

- fields not in the whitelist are dropped
- an explicit None is kept as None (it means "set NULL", not 0)
- every other value is coerced to its declared kind

Coercion is loose on purpose, matching how form and query-string input
arrives: numeric strings are parsed by their leading numeric prefix
("12abc" -> 12, "abc" -> 0), floats truncate toward zero for int fields,
booleans become 0/1.

Invariants:
    - Only scalar kinds can be declared; anything else is a
      ConfigurationError raised when the filter is built
    - apply() never raises for payload content
"""

from __future__ import annotations

import math
import numbers
import re
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigurationError

_NUMERIC_PREFIX = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


class FieldKind(Enum):
    """Scalar kinds a whitelisted field can be coerced to."""

    INT = "int"
    FLOAT = "float"
    DOUBLE = "double"
    STRING = "string"

    @classmethod
    def parse(cls, name: str, declared: Any) -> FieldKind:
        """Resolve a whitelist declaration.

        Raises:
            ConfigurationError: If the declaration is not a scalar kind
        """
        if isinstance(declared, cls):
            return declared
        if isinstance(declared, str):
            try:
                return cls(declared.strip().lower())
            except ValueError:
                pass
        raise ConfigurationError(
            f"Field '{name}' declares unsupported type {declared!r}; "
            f"expected one of: {', '.join(k.value for k in cls)}",
            setting="field_whitelist",
        )

    def coerce(self, value: Any) -> Any:
        if self is FieldKind.INT:
            return to_int(value)
        if self in (FieldKind.FLOAT, FieldKind.DOUBLE):
            return to_float(value)
        return to_str(value)


def to_float(value: Any) -> float:
    """Loose float conversion; unparseable input becomes 0.0."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, numbers.Real) or isinstance(value, Decimal):
        try:
            return float(value)
        except (OverflowError, ValueError):
            return 0.0
    text = _numeric_prefix(value)
    if text is not None:
        try:
            return float(text)
        except (OverflowError, ValueError):
            return 0.0
    if isinstance(value, (list, tuple, dict, set)):
        return 1.0 if value else 0.0
    return 0.0


def to_int(value: Any) -> int:
    """Loose integer conversion; unparseable input becomes 0.

    Integral strings and Decimals convert exactly, without a float round
    trip, so ids above 2**53 keep every digit.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, (Decimal, numbers.Rational)):
        try:
            return int(value)
        except (OverflowError, ValueError):
            return 0
    text = _numeric_prefix(value)
    if text is not None and not any(c in text for c in ".eE"):
        return int(text)
    number = to_float(value)
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(number)


def _numeric_prefix(value: Any) -> Optional[str]:
    """Leading numeric text of a str/bytes value, "0" if it has none."""
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if not isinstance(value, str):
        return None
    match = _NUMERIC_PREFIX.match(value)
    return match.group(0).strip() if match else "0"


def to_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, bool):
        return "1" if value else ""
    return str(value)


class FieldFilter:
    """Whitelist filter bound to one model.

    Example:
        >>> f = FieldFilter({"age": "int", "name": "string"})
        >>> f.apply({"age": "5", "name": "x", "extra": 1})
        {'age': 5, 'name': 'x'}
    """

    def __init__(self, whitelist: Optional[Mapping[str, Any]] = None) -> None:
        self.kinds: Dict[str, FieldKind] = {
            name: FieldKind.parse(name, declared) for name, declared in (whitelist or {}).items()
        }

    @property
    def enabled(self) -> bool:
        return bool(self.kinds)

    def apply(self, payload: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        if not payload:
            return {}
        if not self.kinds:
            return dict(payload)

        result: Dict[str, Any] = {}
        for name, kind in self.kinds.items():
            if name not in payload:
                continue
            value = payload[name]
            result[name] = None if value is None else kind.coerce(value)
        return result
