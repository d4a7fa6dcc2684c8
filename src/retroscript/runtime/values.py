"""
Runtime values for the RetroScript interpreter.

Every script value is a Value tagged with one of six kinds. Arrays hold a
Python list of Values and objects an insertion-ordered dict of str to Value;
both are shared by reference, so assigning an array to a second variable and
mutating it through either name is visible through both.
"""

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class ValueKind(Enum):
    """The closed set of script value kinds."""
    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(eq=False)
class Value:
    """
    A runtime value with its kind.

    The `data` field holds None, bool, float, str, List[Value] or
    Dict[str, Value] depending on `kind`. Identity matters for arrays and
    objects, so values compare by identity; use values_equal for script
    equality.
    """
    kind: ValueKind
    data: Any

    def __repr__(self) -> str:
        return f"Value({self.kind.value}, {self.data!r})"

    @property
    def type_name(self) -> str:
        return self.kind.value

    def is_truthy(self) -> bool:
        """Check if this value is truthy in boolean context."""
        if self.kind == ValueKind.NULL:
            return False
        if self.kind == ValueKind.BOOLEAN:
            return self.data
        if self.kind == ValueKind.NUMBER:
            return self.data != 0 and not math.isnan(self.data)
        # Strings, arrays and objects are truthy if non-empty
        return len(self.data) > 0

    def is_integral(self) -> bool:
        return (self.kind == ValueKind.NUMBER and math.isfinite(self.data)
                and self.data == int(self.data))


# Convenience constructors

def null_val() -> Value:
    """Create the null value."""
    return Value(ValueKind.NULL, None)


def bool_val(b: bool) -> Value:
    """Create a boolean value."""
    return Value(ValueKind.BOOLEAN, bool(b))


def number_val(x) -> Value:
    """Create a number value (always a float)."""
    return Value(ValueKind.NUMBER, float(x))


def string_val(s: str) -> Value:
    """Create a string value."""
    return Value(ValueKind.STRING, str(s))


def array_val(items: Optional[List[Value]] = None) -> Value:
    """Create an array value. The list is used as-is, not copied."""
    return Value(ValueKind.ARRAY, items if items is not None else [])


def object_val(entries: Optional[Dict[str, Value]] = None) -> Value:
    """Create an object value. The dict is used as-is, not copied."""
    return Value(ValueKind.OBJECT, entries if entries is not None else {})


# Conversion to and from plain Python data

def from_python(obj: Any) -> Value:
    """Wrap plain Python data (e.g. host state or a JSON document) as a Value."""
    if isinstance(obj, Value):
        return obj
    if obj is None:
        return null_val()
    if isinstance(obj, bool):
        return bool_val(obj)
    if isinstance(obj, (int, float)):
        return number_val(obj)
    if isinstance(obj, str):
        return string_val(obj)
    if isinstance(obj, (list, tuple)):
        return array_val([from_python(item) for item in obj])
    if isinstance(obj, dict):
        return object_val({str(k): from_python(v) for k, v in obj.items()})
    return string_val(str(obj))


def to_python(value: Value, _seen: Optional[set] = None) -> Any:
    """
    Unwrap a Value into plain Python data for host collaborators.

    Integral numbers become int. A collection that contains itself is
    replaced by None at the point of recursion.
    """
    if value.kind == ValueKind.NUMBER:
        if value.is_integral():
            return int(value.data)
        return value.data
    if value.kind in (ValueKind.ARRAY, ValueKind.OBJECT):
        seen = _seen if _seen is not None else set()
        if id(value) in seen:
            return None
        seen.add(id(value))
        try:
            if value.kind == ValueKind.ARRAY:
                return [to_python(item, seen) for item in value.data]
            return {k: to_python(v, seen) for k, v in value.data.items()}
        finally:
            seen.discard(id(value))
    return value.data


# Rendering

def format_number(x: float) -> str:
    """Render a number the way scripts see it: 3 not 3.0, Infinity, NaN."""
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "Infinity" if x > 0 else "-Infinity"
    if x == int(x) and abs(x) < 1e21:
        return str(int(x))
    return repr(x)


def _json_ready(value: Value, seen: set) -> Any:
    if value.kind == ValueKind.NUMBER:
        if not math.isfinite(value.data):
            return None
        return int(value.data) if value.is_integral() else value.data
    if value.kind in (ValueKind.ARRAY, ValueKind.OBJECT):
        if id(value) in seen:
            return "[Circular]"
        seen.add(id(value))
        try:
            if value.kind == ValueKind.ARRAY:
                return [_json_ready(item, seen) for item in value.data]
            return {k: _json_ready(v, seen) for k, v in value.data.items()}
        finally:
            seen.discard(id(value))
    return value.data


def to_json(value: Value, indent: Optional[int] = None) -> str:
    """Serialize a value as JSON; non-finite numbers become null."""
    separators = (",", ":") if indent is None else (",", ": ")
    return json.dumps(_json_ready(value, set()), indent=indent,
                      separators=separators, ensure_ascii=False)


def display(value: Value) -> str:
    """The string form used by print, interpolation and string concatenation."""
    if value.kind == ValueKind.NULL:
        return "null"
    if value.kind == ValueKind.BOOLEAN:
        return "true" if value.data else "false"
    if value.kind == ValueKind.NUMBER:
        return format_number(value.data)
    if value.kind == ValueKind.STRING:
        return value.data
    return to_json(value)


# Equality

def values_equal(a: Value, b: Value) -> bool:
    """Structural equality within one kind; values of different kinds are never equal."""
    if a is b:
        return a.kind != ValueKind.NUMBER or not math.isnan(a.data)
    if a.kind != b.kind:
        return False
    if a.kind == ValueKind.ARRAY:
        return (len(a.data) == len(b.data)
                and all(values_equal(x, y) for x, y in zip(a.data, b.data)))
    if a.kind == ValueKind.OBJECT:
        return (a.data.keys() == b.data.keys()
                and all(values_equal(v, b.data[k]) for k, v in a.data.items()))
    return a.data == b.data
