"""
Built-in function registry for the RetroScript interpreter.

Each builtin declares its arity and the kind of each argument. The
registry validates both before the call, so implementations can rely on
receiving the right kinds. Violations raise a catchable ArgumentError.

Argument kinds:
    any         any value
    number      Number only, never coerced
    string      String only
    text        any value, rendered with its display form
    array       Array only
    object      Object only
    sequence    Array or String
    collection  Array, Object or String

Builtins marked `needs_host` receive the HostServices as first argument.
An implementation may return an awaitable; the interpreter awaits it under
the governor.
"""

import inspect
import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .values import (
    Value, ValueKind, null_val, bool_val, number_val, string_val, array_val,
    object_val, from_python, to_python, to_json, display, values_equal,
)
from ..errors import (
    ScriptError, ScriptRuntimeError, ArgumentError, CollaboratorError,
    error_arity, error_type, error_unknown_function,
)

logger = logging.getLogger(__name__)
script_logger = logging.getLogger("retroscript.script")

# Largest array range()/fill() may build
MAX_GENERATED_LENGTH = 1_000_000

# State path holding getStorage/setStorage keys
STORAGE_PREFIX = "storage"

KIND_NAMES = {
    "number": (ValueKind.NUMBER,),
    "string": (ValueKind.STRING,),
    "array": (ValueKind.ARRAY,),
    "object": (ValueKind.OBJECT,),
    "sequence": (ValueKind.ARRAY, ValueKind.STRING),
    "collection": (ValueKind.ARRAY, ValueKind.OBJECT, ValueKind.STRING),
}

NUMERIC_TEXT = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


@dataclass
class BuiltinFunction:
    """
    A built-in function with its implementation and argument contract.

    `kinds` lists the expected kind of each positional argument; when more
    arguments are allowed than kinds are listed, the last kind repeats.
    `max_args` of None means variadic.
    """
    name: str
    implementation: Callable[..., Any]
    min_args: int = 0
    max_args: Optional[int] = 0
    kinds: Tuple[str, ...] = ()
    doc: str = ""
    needs_host: bool = False

    def kind_of(self, index: int) -> str:
        if not self.kinds:
            return "any"
        return self.kinds[min(index, len(self.kinds) - 1)]

    def arity_text(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.min_args == self.max_args:
            return str(self.min_args)
        return f"{self.min_args} to {self.max_args}"

    def validate(self, args: List[Value]) -> None:
        """Check arity and argument kinds, raising ArgumentError."""
        count = len(args)
        if count < self.min_args or (self.max_args is not None and count > self.max_args):
            raise error_arity(self.name, self.arity_text(), count)
        for index, arg in enumerate(args):
            kind = self.kind_of(index)
            allowed = KIND_NAMES.get(kind)
            if allowed is not None and arg.kind not in allowed:
                raise error_type(
                    f"{self.name}() argument {index + 1} must be {kind}, got {arg.type_name}"
                )


# Conversion helpers shared by the implementations

def _text(value: Value) -> str:
    return display(value)


def _int(value: Value, name: str) -> int:
    """Truncate a Number argument to an int index or count."""
    if not math.isfinite(value.data):
        raise error_type(f"{name}() expects a finite number, got {display(value)}")
    return int(value.data)


def _number(x: float) -> Value:
    return number_val(x)


def parse_number(value: Value) -> Optional[float]:
    """Strict conversion to a number; None if the value is not numeric."""
    if value.kind == ValueKind.NUMBER:
        return value.data
    if value.kind == ValueKind.BOOLEAN:
        return 1.0 if value.data else 0.0
    if value.kind == ValueKind.STRING:
        text = value.data.strip()
        if text in ("Infinity", "+Infinity"):
            return math.inf
        if text == "-Infinity":
            return -math.inf
        if NUMERIC_TEXT.match(text):
            return float(text)
    return None


def _find_index(items: List[Value], needle: Value, start: int = 0) -> int:
    for index in range(max(0, start), len(items)):
        if values_equal(items[index], needle):
            return index
    return -1


def _sort_key(value: Value):
    if value.kind == ValueKind.NUMBER:
        return (0, value.data, "")
    return (1, 0.0, display(value))


def _pad(text: str, length: int, pad: str) -> str:
    """Padding to add so text reaches length, with pad repeated and truncated."""
    missing = length - len(text)
    if missing <= 0 or not pad:
        return ""
    return (pad * (missing // len(pad) + 1))[:missing]


def _flatten(items: List[Value], depth: int) -> List[Value]:
    result = []
    for item in items:
        if item.kind == ValueKind.ARRAY and depth > 0:
            result.extend(_flatten(item.data, depth - 1))
        else:
            result.append(item)
    return result


class BuiltinRegistry:
    """
    Registry of all built-in functions.

    Functions are registered by name and can be looked up for execution.
    """

    def __init__(self):
        self._functions: Dict[str, BuiltinFunction] = {}
        self._register_all()

    def get_function(self, name: str) -> Optional[BuiltinFunction]:
        """Look up a function by name."""
        return self._functions.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def names(self) -> List[str]:
        return sorted(self._functions)

    def register(self, func: BuiltinFunction) -> None:
        """Register a function, replacing any builtin of the same name."""
        self._functions[func.name] = func

    def call(self, name: str, args: List[Value], host: Any = None) -> Any:
        """
        Validate and invoke a builtin.

        Returns a Value, or an awaitable resolving to one for builtins that
        wait on a collaborator.
        """
        func = self.get_function(name)
        if func is None:
            raise error_unknown_function(name)
        func.validate(args)
        try:
            if func.needs_host:
                result = func.implementation(host, *args)
            else:
                result = func.implementation(*args)
        except ScriptError:
            raise
        except Exception as e:
            raise self._wrap_failure(func, e) from e
        if inspect.isawaitable(result):
            return self._await_guarded(func, result)
        return result

    async def _await_guarded(self, func: BuiltinFunction, awaitable) -> Value:
        try:
            return await awaitable
        except ScriptError:
            raise
        except Exception as e:
            raise self._wrap_failure(func, e) from e

    def _wrap_failure(self, func: BuiltinFunction, error: Exception) -> ScriptRuntimeError:
        if func.needs_host:
            logger.warning("builtin_collaborator_failed",
                           extra={"builtin": func.name, "error": str(error)})
            return CollaboratorError(f"{func.name}() failed: {error}")
        return ScriptRuntimeError(f"{func.name}() failed: {error}")

    def _register_all(self) -> None:
        """Register all built-in functions."""
        self._register_math_functions()
        self._register_string_functions()
        self._register_array_functions()
        self._register_object_functions()
        self._register_type_functions()
        self._register_time_functions()
        self._register_json_functions()
        self._register_debug_functions()
        self._register_system_functions()

    # --- Math Functions ---

    def _register_math_functions(self) -> None:
        """Register mathematical functions."""

        def _abs(x: Value) -> Value:
            return _number(abs(x.data))

        def _round(x: Value, digits: Value = None) -> Value:
            if not math.isfinite(x.data):
                return x
            scale = 10 ** _int(digits, "round") if digits is not None else 1
            return _number(math.floor(x.data * scale + 0.5) / scale)

        def _floor(x: Value) -> Value:
            return x if not math.isfinite(x.data) else _number(math.floor(x.data))

        def _ceil(x: Value) -> Value:
            return x if not math.isfinite(x.data) else _number(math.ceil(x.data))

        def _min(*args: Value) -> Value:
            return _number(min(a.data for a in args))

        def _max(*args: Value) -> Value:
            return _number(max(a.data for a in args))

        def _pow(base: Value, exponent: Value) -> Value:
            try:
                return _number(math.pow(base.data, exponent.data))
            except OverflowError:
                return _number(math.inf)
            except ValueError:
                return _number(math.nan)

        def _sqrt(x: Value) -> Value:
            if x.data < 0:
                return _number(math.nan)
            return _number(math.sqrt(x.data))

        def _random(host, low: Value = None, high: Value = None) -> Value:
            if low is None:
                return _number(host.random.random())
            lo = _int(low, "random")
            hi = _int(high, "random") if high is not None else 0
            if lo > hi:
                lo, hi = hi, lo
            return _number(host.random.randint(lo, hi))

        self.register(BuiltinFunction("abs", _abs, 1, 1, ("number",), "Absolute value"))
        self.register(BuiltinFunction("round", _round, 1, 2, ("number",),
                                      "Round half up, optionally to a number of digits"))
        self.register(BuiltinFunction("floor", _floor, 1, 1, ("number",)))
        self.register(BuiltinFunction("ceil", _ceil, 1, 1, ("number",)))
        self.register(BuiltinFunction("min", _min, 1, None, ("number",)))
        self.register(BuiltinFunction("max", _max, 1, None, ("number",)))
        self.register(BuiltinFunction("pow", _pow, 2, 2, ("number",)))
        self.register(BuiltinFunction("sqrt", _sqrt, 1, 1, ("number",)))
        self.register(BuiltinFunction(
            "random", _random, 0, 2, ("number",),
            "random() is in [0, 1); random(a, b) is an integer in [a, b]",
            needs_host=True,
        ))

    # --- String Functions ---

    def _register_string_functions(self) -> None:
        """Register string functions. Non-string arguments use their display form."""

        def _substring(s: Value, start: Value, end: Value = None) -> Value:
            text = _text(s)
            a = min(max(_int(start, "substring"), 0), len(text))
            b = len(text) if end is None else min(max(_int(end, "substring"), 0), len(text))
            if a > b:
                a, b = b, a
            return string_val(text[a:b])

        def _substr(s: Value, start: Value, length: Value = None) -> Value:
            text = _text(s)
            a = max(_int(start, "substr"), 0)
            if length is None:
                return string_val(text[a:])
            return string_val(text[a:a + max(_int(length, "substr"), 0)])

        def _slice(seq: Value, start: Value, end: Value = None) -> Value:
            a = _int(start, "slice")
            b = None if end is None else _int(end, "slice")
            if seq.kind == ValueKind.ARRAY:
                return array_val(seq.data[a:b])
            return string_val(seq.data[a:b])

        def _index_of(seq: Value, search: Value, start: Value = None) -> Value:
            offset = 0 if start is None else _int(start, "indexOf")
            if seq.kind == ValueKind.ARRAY:
                return _number(_find_index(seq.data, search, offset))
            return _number(seq.data.find(_text(search), max(0, offset)))

        def _last_index_of(seq: Value, search: Value, start: Value = None) -> Value:
            if seq.kind == ValueKind.ARRAY:
                last = len(seq.data) - 1 if start is None else _int(start, "lastIndexOf")
                for index in range(min(last, len(seq.data) - 1), -1, -1):
                    if values_equal(seq.data[index], search):
                        return _number(index)
                return _number(-1)
            needle = _text(search)
            if start is None:
                return _number(seq.data.rfind(needle))
            end = max(0, _int(start, "lastIndexOf")) + len(needle)
            return _number(seq.data.rfind(needle, 0, end))

        def _contains(seq: Value, search: Value) -> Value:
            if seq.kind == ValueKind.ARRAY:
                return bool_val(_find_index(seq.data, search) >= 0)
            return bool_val(_text(search) in seq.data)

        def _split(s: Value, sep: Value = None) -> Value:
            text = _text(s)
            separator = "" if sep is None else _text(sep)
            if separator == "":
                parts = list(text)
            else:
                parts = text.split(separator)
            return array_val([string_val(p) for p in parts])

        def _join(items: Value, sep: Value = None) -> Value:
            separator = "" if sep is None else _text(sep)
            return string_val(separator.join(_text(item) for item in items.data))

        def _pad_start(s: Value, length: Value, pad: Value = None) -> Value:
            text = _text(s)
            fill = " " if pad is None else _text(pad)
            return string_val(_pad(text, _int(length, "padStart"), fill) + text)

        def _pad_end(s: Value, length: Value, pad: Value = None) -> Value:
            text = _text(s)
            fill = " " if pad is None else _text(pad)
            return string_val(text + _pad(text, _int(length, "padEnd"), fill))

        def _repeat(s: Value, count: Value) -> Value:
            times = max(0, _int(count, "repeat"))
            if len(_text(s)) * times > MAX_GENERATED_LENGTH:
                raise ArgumentError(f"repeat() result longer than {MAX_GENERATED_LENGTH}")
            return string_val(_text(s) * times)

        def _reverse(seq: Value) -> Value:
            if seq.kind == ValueKind.ARRAY:
                return array_val(list(reversed(seq.data)))
            return string_val(_text(seq)[::-1])

        def _char_at(s: Value, index: Value) -> Value:
            text = _text(s)
            i = _int(index, "charAt")
            return string_val(text[i] if 0 <= i < len(text) else "")

        def _char_code(s: Value, index: Value = None) -> Value:
            text = _text(s)
            i = 0 if index is None else _int(index, "charCode")
            return _number(ord(text[i]) if 0 <= i < len(text) else math.nan)

        def _from_char_code(*codes: Value) -> Value:
            try:
                return string_val("".join(chr(_int(c, "fromCharCode")) for c in codes))
            except (ValueError, OverflowError) as e:
                raise ArgumentError(f"fromCharCode(): invalid code point ({e})") from e

        def _length(value: Value) -> Value:
            return _number(len(value.data))

        simple = {
            "upper": lambda s: string_val(_text(s).upper()),
            "lower": lambda s: string_val(_text(s).lower()),
            "trim": lambda s: string_val(_text(s).strip()),
            "trimStart": lambda s: string_val(_text(s).lstrip()),
            "trimEnd": lambda s: string_val(_text(s).rstrip()),
        }
        for name, fn in simple.items():
            self.register(BuiltinFunction(name, fn, 1, 1, ("text",)))

        self.register(BuiltinFunction("length", _length, 1, 1, ("collection",),
                                      "Length of a string or array, or key count of an object"))
        self.register(BuiltinFunction("charAt", _char_at, 2, 2, ("text", "number")))
        self.register(BuiltinFunction("charCode", _char_code, 1, 2, ("text", "number")))
        self.register(BuiltinFunction("fromCharCode", _from_char_code, 0, None, ("number",)))
        self.register(BuiltinFunction(
            "concat", lambda *args: string_val("".join(_text(a) for a in args)),
            0, None, ("text",), "Concatenate display forms of all arguments",
        ))
        self.register(BuiltinFunction("substr", _substr, 2, 3, ("text", "number", "number")))
        self.register(BuiltinFunction("substring", _substring, 2, 3, ("text", "number", "number")))
        self.register(BuiltinFunction("slice", _slice, 2, 3, ("sequence", "number", "number")))
        self.register(BuiltinFunction("indexOf", _index_of, 2, 3, ("sequence", "any", "number")))
        self.register(BuiltinFunction("lastIndexOf", _last_index_of, 2, 3,
                                      ("sequence", "any", "number")))
        self.register(BuiltinFunction("contains", _contains, 2, 2, ("sequence", "any")))
        self.register(BuiltinFunction(
            "startsWith", lambda s, p: bool_val(_text(s).startswith(_text(p))), 2, 2, ("text",)))
        self.register(BuiltinFunction(
            "endsWith", lambda s, p: bool_val(_text(s).endswith(_text(p))), 2, 2, ("text",)))
        self.register(BuiltinFunction(
            "replace", lambda s, a, b: string_val(_text(s).replace(_text(a), _text(b), 1)),
            3, 3, ("text",), "Replace the first occurrence",
        ))
        self.register(BuiltinFunction(
            "replaceAll", lambda s, a, b: string_val(_text(s).replace(_text(a), _text(b))
                                                     if _text(a) else _text(s)),
            3, 3, ("text",),
        ))
        self.register(BuiltinFunction("split", _split, 1, 2, ("text",)))
        self.register(BuiltinFunction("join", _join, 1, 2, ("array", "text")))
        self.register(BuiltinFunction("padStart", _pad_start, 2, 3, ("text", "number", "text")))
        self.register(BuiltinFunction("padEnd", _pad_end, 2, 3, ("text", "number", "text")))
        self.register(BuiltinFunction("repeat", _repeat, 2, 2, ("text", "number")))
        self.register(BuiltinFunction("reverse", _reverse, 1, 1, ("sequence",),
                                      "Reversed copy of a string or array"))

    # --- Array Functions ---

    def _register_array_functions(self) -> None:
        """Register array functions. push/pop/shift/unshift mutate in place."""

        def _count(value: Value) -> Value:
            return _number(len(value.data))

        def _first(arr: Value) -> Value:
            return arr.data[0] if arr.data else null_val()

        def _last(arr: Value) -> Value:
            return arr.data[-1] if arr.data else null_val()

        def _at(arr: Value, index: Value) -> Value:
            i = _int(index, "at")
            return arr.data[i] if 0 <= i < len(arr.data) else null_val()

        def _push(arr: Value, *items: Value) -> Value:
            arr.data.extend(items)
            return arr

        def _pop(arr: Value) -> Value:
            return arr.data.pop() if arr.data else null_val()

        def _shift(arr: Value) -> Value:
            return arr.data.pop(0) if arr.data else null_val()

        def _unshift(arr: Value, *items: Value) -> Value:
            arr.data[0:0] = items
            return arr

        def _includes(arr: Value, item: Value) -> Value:
            return bool_val(_find_index(arr.data, item) >= 0)

        def _find_index_fn(arr: Value, item: Value) -> Value:
            return _number(_find_index(arr.data, item))

        def _find(arr: Value, item: Value) -> Value:
            index = _find_index(arr.data, item)
            return arr.data[index] if index >= 0 else null_val()

        def _sort(arr: Value) -> Value:
            return array_val(sorted(arr.data, key=_sort_key))

        def _sort_desc(arr: Value) -> Value:
            return array_val(sorted(arr.data, key=_sort_key, reverse=True))

        def _unique(arr: Value) -> Value:
            result: List[Value] = []
            for item in arr.data:
                if _find_index(result, item) < 0:
                    result.append(item)
            return array_val(result)

        def _flatten_fn(arr: Value, depth: Value = None) -> Value:
            levels = 1 if depth is None else _int(depth, "flatten")
            return array_val(_flatten(arr.data, levels))

        def _range(first: Value, second: Value = None, step: Value = None) -> Value:
            if second is None:
                start, end = 0.0, first.data
            else:
                start, end = first.data, second.data
            stride = step.data if step is not None and step.data else 1.0
            if not all(math.isfinite(x) for x in (start, end, stride)):
                raise ArgumentError("range() expects finite numbers")
            length = max(0, math.ceil((end - start) / stride))
            if length > MAX_GENERATED_LENGTH:
                raise ArgumentError(f"range() longer than {MAX_GENERATED_LENGTH} elements")
            return array_val([_number(start + i * stride) for i in range(length)])

        def _fill(count: Value, value: Value) -> Value:
            n = max(0, _int(count, "fill"))
            if n > MAX_GENERATED_LENGTH:
                raise ArgumentError(f"fill() longer than {MAX_GENERATED_LENGTH} elements")
            return array_val([value] * n)

        def _numbers(arr: Value, name: str) -> List[float]:
            for item in arr.data:
                if item.kind != ValueKind.NUMBER:
                    raise error_type(f"{name}() expects an array of numbers, got {item.type_name}")
            return [item.data for item in arr.data]

        def _sum(arr: Value) -> Value:
            return _number(math.fsum(_numbers(arr, "sum")))

        def _avg(arr: Value) -> Value:
            numbers = _numbers(arr, "avg")
            return _number(math.fsum(numbers) / len(numbers) if numbers else 0)

        def _product(arr: Value) -> Value:
            return _number(math.prod(_numbers(arr, "product")))

        def _filter(arr: Value, item: Value) -> Value:
            return array_val([x for x in arr.data if values_equal(x, item)])

        def _reject(arr: Value, item: Value) -> Value:
            return array_val([x for x in arr.data if not values_equal(x, item)])

        def _map(arr: Value, operation: Value) -> Value:
            op = operation.data
            if op in ("double", "square"):
                numbers = _numbers(arr, "map")
                if op == "double":
                    return array_val([_number(x * 2) for x in numbers])
                return array_val([_number(x * x) for x in numbers])
            if op == "string":
                return array_val([string_val(display(x)) for x in arr.data])
            if op == "number":
                converted = [parse_number(x) for x in arr.data]
                return array_val([_number(math.nan if x is None else x) for x in converted])
            if op == "boolean":
                return array_val([bool_val(x.is_truthy()) for x in arr.data])
            raise ArgumentError(
                f"map() operation must be double, square, string, number or boolean, got '{op}'"
            )

        def _splice(arr: Value, start: Value, delete_count: Value = None, *items: Value) -> Value:
            copy = list(arr.data)
            a = _int(start, "splice")
            if a < 0:
                a = max(0, len(copy) + a)
            a = min(a, len(copy))
            removed = len(copy) - a if delete_count is None else max(0, _int(delete_count, "splice"))
            copy[a:a + removed] = items
            return array_val(copy)

        def _array_concat(*values: Value) -> Value:
            result: List[Value] = []
            for value in values:
                if value.kind == ValueKind.ARRAY:
                    result.extend(value.data)
                else:
                    result.append(value)
            return array_val(result)

        self.register(BuiltinFunction("count", _count, 1, 1, ("collection",)))
        self.register(BuiltinFunction("first", _first, 1, 1, ("array",)))
        self.register(BuiltinFunction("last", _last, 1, 1, ("array",)))
        self.register(BuiltinFunction("at", _at, 2, 2, ("array", "number")))
        self.register(BuiltinFunction("push", _push, 1, None, ("array", "any"),
                                      "Append items in place; returns the array"))
        self.register(BuiltinFunction("pop", _pop, 1, 1, ("array",),
                                      "Remove and return the last item"))
        self.register(BuiltinFunction("shift", _shift, 1, 1, ("array",),
                                      "Remove and return the first item"))
        self.register(BuiltinFunction("unshift", _unshift, 1, None, ("array", "any"),
                                      "Prepend items in place; returns the array"))
        self.register(BuiltinFunction("includes", _includes, 2, 2, ("array", "any")))
        self.register(BuiltinFunction("findIndex", _find_index_fn, 2, 2, ("array", "any")))
        self.register(BuiltinFunction("find", _find, 2, 2, ("array", "any")))
        self.register(BuiltinFunction("sort", _sort, 1, 1, ("array",),
                                      "Sorted copy: numbers first, then by display form"))
        self.register(BuiltinFunction("sortDesc", _sort_desc, 1, 1, ("array",)))
        self.register(BuiltinFunction("unique", _unique, 1, 1, ("array",)))
        self.register(BuiltinFunction("flatten", _flatten_fn, 1, 2, ("array", "number")))
        self.register(BuiltinFunction("range", _range, 1, 3, ("number",),
                                      "range(end) or range(start, end[, step])"))
        self.register(BuiltinFunction("fill", _fill, 2, 2, ("number", "any")))
        self.register(BuiltinFunction("sum", _sum, 1, 1, ("array",)))
        self.register(BuiltinFunction("avg", _avg, 1, 1, ("array",)))
        self.register(BuiltinFunction("product", _product, 1, 1, ("array",)))
        self.register(BuiltinFunction("filter", _filter, 2, 2, ("array", "any"),
                                      "Items equal to the given value"))
        self.register(BuiltinFunction("reject", _reject, 2, 2, ("array", "any"),
                                      "Items not equal to the given value"))
        self.register(BuiltinFunction("map", _map, 2, 2, ("array", "string")))
        self.register(BuiltinFunction("splice", _splice, 2, None,
                                      ("array", "number", "number", "any"),
                                      "Copy with items removed and inserted"))
        self.register(BuiltinFunction("arrayConcat", _array_concat, 0, None, ("any",)))

    # --- Object Functions ---

    def _register_object_functions(self) -> None:
        """Register object functions. set/remove mutate in place."""

        def _keys(obj: Value) -> Value:
            return array_val([string_val(k) for k in obj.data])

        def _values(obj: Value) -> Value:
            return array_val(list(obj.data.values()))

        def _get(obj: Value, key: Value, default: Value = None) -> Value:
            found = obj.data.get(_text(key))
            if found is not None:
                return found
            return default if default is not None else null_val()

        def _set(obj: Value, key: Value, value: Value) -> Value:
            obj.data[_text(key)] = value
            return obj

        def _has(obj: Value, key: Value) -> Value:
            return bool_val(_text(key) in obj.data)

        def _remove(obj: Value, key: Value) -> Value:
            obj.data.pop(_text(key), None)
            return obj

        def _merge(*objects: Value) -> Value:
            merged: Dict[str, Value] = {}
            for obj in objects:
                merged.update(obj.data)
            return object_val(merged)

        self.register(BuiltinFunction("keys", _keys, 1, 1, ("object",)))
        self.register(BuiltinFunction("values", _values, 1, 1, ("object",)))
        self.register(BuiltinFunction("get", _get, 2, 3, ("object", "text", "any")))
        self.register(BuiltinFunction("set", _set, 3, 3, ("object", "text", "any"),
                                      "Set a key in place; returns the object"))
        self.register(BuiltinFunction("has", _has, 2, 2, ("object", "text")))
        self.register(BuiltinFunction("remove", _remove, 2, 2, ("object", "text"),
                                      "Delete a key in place; returns the object"))
        self.register(BuiltinFunction("merge", _merge, 1, None, ("object",),
                                      "New object with later keys winning"))

    # --- Type Functions ---

    def _register_type_functions(self) -> None:
        """Register type inspection and explicit conversion functions."""

        def _to_number(value: Value, fallback: Value = None) -> Value:
            number = parse_number(value)
            if number is None:
                if fallback is not None:
                    return fallback
                raise error_type(f"toNumber() cannot convert {value.type_name} "
                                 f"'{display(value)}' to a number")
            return _number(number)

        def _to_int(value: Value, fallback: Value = None) -> Value:
            number = parse_number(value)
            if number is None or not math.isfinite(number):
                if fallback is not None:
                    return fallback
                raise error_type(f"toInt() cannot convert {value.type_name} "
                                 f"'{display(value)}' to an integer")
            return _number(math.trunc(number))

        def _kind_check(kind: ValueKind):
            return lambda value: bool_val(value.kind == kind)

        self.register(BuiltinFunction("typeof", lambda v: string_val(v.type_name), 1, 1))
        for name, kind in (("isNull", ValueKind.NULL), ("isNumber", ValueKind.NUMBER),
                           ("isString", ValueKind.STRING), ("isBoolean", ValueKind.BOOLEAN),
                           ("isArray", ValueKind.ARRAY), ("isObject", ValueKind.OBJECT)):
            self.register(BuiltinFunction(name, _kind_check(kind), 1, 1))
        self.register(BuiltinFunction(
            "toNumber", _to_number, 1, 2, ("any",),
            "Strict conversion; '' and null are rejected unless a fallback is given",
        ))
        self.register(BuiltinFunction("toInt", _to_int, 1, 2, ("any",)))
        self.register(BuiltinFunction("toString", lambda v: string_val(display(v)), 1, 1))
        self.register(BuiltinFunction("toBoolean", lambda v: bool_val(v.is_truthy()), 1, 1))

    # --- Time Functions ---

    def _register_time_functions(self) -> None:

        def _now(host) -> Value:
            return _number(math.floor(host.clock.now()))

        def _local(host) -> datetime:
            return datetime.fromtimestamp(host.clock.now() / 1000.0)

        self.register(BuiltinFunction("now", _now, 0, 0, doc="Milliseconds since the epoch",
                                      needs_host=True))
        self.register(BuiltinFunction(
            "time", lambda host: string_val(_local(host).strftime("%H:%M:%S")),
            0, 0, doc="Local time as HH:MM:SS", needs_host=True,
        ))
        self.register(BuiltinFunction(
            "date", lambda host: string_val(_local(host).strftime("%Y-%m-%d")),
            0, 0, doc="Local date as YYYY-MM-DD", needs_host=True,
        ))

    # --- JSON Functions ---

    def _register_json_functions(self) -> None:

        def _to_json(value: Value, indent: Value = None) -> Value:
            spaces = None if indent is None else max(0, _int(indent, "toJSON"))
            return string_val(to_json(value, spaces))

        def _from_json(text: Value) -> Value:
            try:
                return from_python(json.loads(text.data))
            except ValueError as e:
                raise ArgumentError(f"fromJSON(): invalid JSON ({e})") from e

        self.register(BuiltinFunction("toJSON", _to_json, 1, 2, ("any", "number")))
        self.register(BuiltinFunction("fromJSON", _from_json, 1, 1, ("string",)))

    # --- Debug Functions ---

    def _register_debug_functions(self) -> None:

        def _debug(*args: Value) -> Value:
            script_logger.debug("script_debug",
                                extra={"values": [display(a) for a in args]})
            return null_val()

        def _inspect(value: Value) -> Value:
            if value.kind == ValueKind.STRING:
                rendered = json.dumps(value.data, ensure_ascii=False)
            else:
                rendered = display(value)
            return string_val(f"<{value.type_name}> {rendered}")

        def _assert(condition: Value, message: Value = None) -> Value:
            if not condition.is_truthy():
                text = "assertion failed" if message is None else _text(message)
                raise ScriptRuntimeError(text, code="E405")
            return bool_val(True)

        self.register(BuiltinFunction("debug", _debug, 0, None, ("any",),
                                      "Log values at debug level"))
        self.register(BuiltinFunction("inspect", _inspect, 1, 1))
        self.register(BuiltinFunction("assert", _assert, 1, 2, ("any", "text")))

    # --- System Functions ---

    def _register_system_functions(self) -> None:
        """Register host-facing functions (state, commands, environment)."""

        def _get_state(host, path: Value) -> Value:
            return from_python(host.state.get(_text(path)))

        def _set_state(host, path: Value, value: Value) -> Value:
            host.state.set(_text(path), to_python(value))
            return value

        async def _exec(host, command: Value, payload: Value = None) -> Value:
            args = to_python(payload) if payload is not None else {}
            result = await host.commands.execute(_text(command), args)
            return from_python(result)

        def _get_env(host, name: Value = None) -> Value:
            info = {
                "platform": "RetrOS",
                "version": "5.0",
                "language": "RetroScript",
                "timestamp": math.floor(host.clock.now()),
            }
            info.update(host.environment)
            if name is not None:
                return from_python(info.get(_text(name)))
            return from_python(info)

        def _summaries(host, path: str, fields: Tuple[str, ...]) -> Value:
            items = host.state.get(path) or []
            if not isinstance(items, list):
                raise error_type(f"state '{path}' is not a list")
            summaries = []
            for item in items:
                if isinstance(item, dict):
                    summaries.append({k: item[k] for k in fields if k in item})
                else:
                    summaries.append({"id": item})
            return from_python(summaries)

        def _get_windows(host) -> Value:
            return _summaries(host, "windows",
                              ("id", "appId", "title", "minimized", "maximized"))

        def _get_apps(host) -> Value:
            return _summaries(host, "apps", ("id", "name", "category"))

        async def _query(host, kind: Value, *args: Value) -> Value:
            result = await host.commands.execute(
                f"query:{_text(kind)}", {"args": [to_python(a) for a in args]})
            return from_python(result)

        def _get_storage(host, key: Value) -> Value:
            return from_python(host.state.get(f"{STORAGE_PREFIX}.{_text(key)}"))

        def _set_storage(host, key: Value, value: Value) -> Value:
            host.state.set(f"{STORAGE_PREFIX}.{_text(key)}", to_python(value))
            return bool_val(True)

        self.register(BuiltinFunction("getState", _get_state, 1, 1, ("text",),
                                      needs_host=True))
        self.register(BuiltinFunction("setState", _set_state, 2, 2, ("text", "any"),
                                      needs_host=True))
        self.register(BuiltinFunction("exec", _exec, 1, 2, ("text", "object"),
                                      "Run a host command and return its result",
                                      needs_host=True))
        self.register(BuiltinFunction("getEnv", _get_env, 0, 1, ("text",), needs_host=True))
        self.register(BuiltinFunction("getWindows", _get_windows, 0, 0,
                                      doc="Open windows from the 'windows' state key",
                                      needs_host=True))
        self.register(BuiltinFunction("getApps", _get_apps, 0, 0,
                                      doc="Installed apps from the 'apps' state key",
                                      needs_host=True))
        self.register(BuiltinFunction("query", _query, 1, None, ("text", "any"),
                                      "Run the host command query:<type> with the remaining arguments",
                                      needs_host=True))
        self.register(BuiltinFunction("getStorage", _get_storage, 1, 1, ("text",),
                                      needs_host=True))
        self.register(BuiltinFunction("setStorage", _set_storage, 2, 2, ("text", "any"),
                                      needs_host=True))


# Global singleton registry
_registry: Optional[BuiltinRegistry] = None


def get_builtin_registry() -> BuiltinRegistry:
    """Get the global built-in function registry."""
    global _registry
    if _registry is None:
        _registry = BuiltinRegistry()
    return _registry


def call_builtin(name: str, args: List[Value], host: Any = None) -> Any:
    """
    Call a built-in function by name.

    Raises ScriptRuntimeError if the function is not found.
    """
    return get_builtin_registry().call(name, args, host)
