"""
Tests for the builtin function library.
"""

import logging
import math

import pytest

from retroscript import ArgumentError, ScriptRuntimeError, CollaboratorError
from retroscript.runtime import (
    BuiltinFunction, BuiltinRegistry, get_builtin_registry, call_builtin,
    from_python, to_python, number_val, string_val, null_val, array_val,
)


def call(name, *args, host=None):
    return call_builtin(name, [from_python(a) for a in args], host)


def py(name, *args, host=None):
    return to_python(call(name, *args, host=host))


class TestRegistry:
    """Test registry lookup and argument validation."""

    def test_registry_is_shared(self):
        assert get_builtin_registry() is get_builtin_registry()

    def test_catalog_groups(self):
        names = get_builtin_registry().names()
        for name in ("abs", "upper", "push", "keys", "typeof", "now", "toJSON",
                     "debug", "getState", "exec", "random", "map", "range",
                     "getWindows", "getApps", "query", "getStorage", "setStorage"):
            assert name in names

    def test_unknown_function(self):
        with pytest.raises(ScriptRuntimeError) as exc:
            call("nope")
        assert exc.value.code == "E404"

    def test_arity(self):
        with pytest.raises(ArgumentError) as exc:
            call("abs")
        assert "abs() expects 1 argument, got 0" in exc.value.message
        with pytest.raises(ArgumentError):
            call("round", 1, 2, 3)

    def test_number_arguments_never_coerce(self):
        with pytest.raises(ArgumentError) as exc:
            call("abs", "5")
        assert "must be number" in exc.value.message

    def test_custom_builtin(self):
        registry = BuiltinRegistry()
        registry.register(BuiltinFunction("twice", lambda v: number_val(v.data * 2), 1, 1,
                                          ("number",)))
        assert registry.call("twice", [number_val(4)]).data == 8.0

    def test_implementation_failure_is_wrapped(self):
        registry = BuiltinRegistry()

        def broken(v):
            raise ValueError("boom")

        registry.register(BuiltinFunction("broken", broken, 1, 1))
        with pytest.raises(ScriptRuntimeError) as exc:
            registry.call("broken", [null_val()])
        assert "broken() failed: boom" in exc.value.message


class TestMath:

    def test_round_half_up(self):
        assert py("round", 2.5) == 3
        assert py("round", -2.5) == -2
        assert py("round", 3.14159, 2) == 3.14

    def test_floor_ceil_abs(self):
        assert py("floor", 2.7) == 2
        assert py("ceil", 2.1) == 3
        assert py("abs", -4) == 4

    def test_min_max_variadic(self):
        assert py("min", 3, 1, 2) == 1
        assert py("max", 3, 1, 2) == 3

    def test_pow_sqrt(self):
        assert py("pow", 2, 10) == 1024
        assert py("sqrt", 16) == 4
        assert math.isnan(py("sqrt", -1))

    def test_random_ranges(self, host):
        for _ in range(50):
            x = py("random", host=host)
            assert 0 <= x < 1
            n = py("random", 1, 6, host=host)
            assert 1 <= n <= 6
            assert n == int(n)


class TestStrings:

    def test_case_and_trim(self):
        assert py("upper", "abc") == "ABC"
        assert py("lower", "ABC") == "abc"
        assert py("trim", "  x  ") == "x"

    def test_non_strings_use_display_form(self):
        assert py("upper", True) == "TRUE"
        assert py("concat", "n=", 3, "/", None) == "n=3/null"

    def test_length(self):
        assert py("length", "hello") == 5
        assert py("length", [1, 2]) == 2
        assert py("length", {"a": 1}) == 1

    def test_substring_family(self):
        assert py("substring", "hello", 1, 3) == "el"
        assert py("substring", "hello", 3, 1) == "el"
        assert py("substr", "hello", 1, 3) == "ell"
        assert py("slice", "hello", -3) == "llo"
        assert py("slice", [1, 2, 3], 1) == [2, 3]

    def test_search(self):
        assert py("indexOf", "banana", "an") == 1
        assert py("lastIndexOf", "banana", "an") == 3
        assert py("indexOf", [1, 2, 3], 4) == -1
        assert py("contains", "banana", "nan") is True
        assert py("startsWith", "banana", "ba") is True
        assert py("endsWith", "banana", "na") is True

    def test_replace(self):
        assert py("replace", "a-b-c", "-", "+") == "a+b-c"
        assert py("replaceAll", "a-b-c", "-", "+") == "a+b+c"

    def test_split_join(self):
        assert py("split", "a,b,c", ",") == ["a", "b", "c"]
        assert py("split", "abc") == ["a", "b", "c"]
        assert py("join", ["a", 1, True], "-") == "a-1-true"

    def test_padding_and_repeat(self):
        assert py("padStart", "5", 3, "0") == "005"
        assert py("padEnd", "ab", 5, "xy") == "abxyx"
        assert py("repeat", "ab", 3) == "ababab"

    def test_repeat_limit(self):
        with pytest.raises(ArgumentError):
            call("repeat", "x", 10_000_000)

    def test_char_functions(self):
        assert py("charAt", "abc", 1) == "b"
        assert py("charAt", "abc", 9) == ""
        assert py("charCode", "A") == 65
        assert py("fromCharCode", 72, 105) == "Hi"

    def test_reverse(self):
        assert py("reverse", "abc") == "cba"
        assert py("reverse", [1, 2]) == [2, 1]


class TestArrays:

    def test_push_mutates_and_returns_same_array(self):
        arr = from_python([1])
        result = call_builtin("push", [arr, number_val(2), number_val(3)])
        assert result is arr
        assert to_python(arr) == [1, 2, 3]

    def test_pop_shift_unshift(self):
        arr = from_python([1, 2, 3])
        assert call_builtin("pop", [arr]).data == 3.0
        assert call_builtin("shift", [arr]).data == 1.0
        call_builtin("unshift", [arr, number_val(0)])
        assert to_python(arr) == [0, 2]
        empty = array_val([])
        assert call_builtin("pop", [empty]).kind.value == "null"

    def test_first_last_at(self):
        assert py("first", [1, 2]) == 1
        assert py("last", [1, 2]) == 2
        assert py("first", []) is None
        assert py("at", [1, 2], 5) is None

    def test_sort_copies(self):
        arr = from_python([3, "b", 1, "a"])
        assert to_python(call_builtin("sort", [arr])) == [1, 3, "a", "b"]
        assert to_python(arr) == [3, "b", 1, "a"]
        assert py("sortDesc", [1, 3, 2]) == [3, 2, 1]

    def test_unique_flatten(self):
        assert py("unique", [1, 1, "1", 2]) == [1, "1", 2]
        assert py("flatten", [1, [2, [3]]]) == [1, 2, [3]]
        assert py("flatten", [1, [2, [3]]], 2) == [1, 2, 3]

    def test_range_fill(self):
        assert py("range", 4) == [0, 1, 2, 3]
        assert py("range", 1, 10, 3) == [1, 4, 7]
        assert py("range", 3, 0, -1) == [3, 2, 1]
        assert py("fill", 2, "x") == ["x", "x"]

    def test_range_limit(self):
        with pytest.raises(ArgumentError):
            call("range", 1e9)

    def test_aggregates(self):
        assert py("sum", [1, 2, 3]) == 6
        assert py("avg", [1, 2, 3]) == 2
        assert py("avg", []) == 0
        assert py("product", [2, 3]) == 6
        with pytest.raises(ArgumentError):
            call("sum", [1, "2"])

    def test_filter_reject_find(self):
        assert py("filter", [1, 2, 1], 1) == [1, 1]
        assert py("reject", [1, 2, 1], 1) == [2]
        assert py("findIndex", ["a", "b"], "b") == 1
        assert py("includes", ["a"], "a") is True

    def test_map_operations(self):
        assert py("map", [1, 2], "double") == [2, 4]
        assert py("map", [3], "square") == [9]
        assert py("map", [1, True], "string") == ["1", "true"]
        assert py("map", [0, "x"], "boolean") == [False, True]
        with pytest.raises(ArgumentError):
            call("map", [1], "cube")

    def test_splice_returns_copy(self):
        arr = from_python([1, 2, 3, 4])
        result = call_builtin("splice", [arr, number_val(1), number_val(2), string_val("x")])
        assert to_python(result) == [1, "x", 4]
        assert to_python(arr) == [1, 2, 3, 4]

    def test_array_concat(self):
        assert py("arrayConcat", [1], 2, [3, 4]) == [1, 2, 3, 4]


class TestObjects:

    def test_keys_values(self):
        obj = {"b": 1, "a": 2}
        assert py("keys", obj) == ["b", "a"]
        assert py("values", obj) == [1, 2]

    def test_get_with_default(self):
        assert py("get", {"a": 1}, "a") == 1
        assert py("get", {"a": 1}, "b") is None
        assert py("get", {"a": 1}, "b", 0) == 0

    def test_set_and_remove_mutate(self):
        obj = from_python({"a": 1})
        assert call_builtin("set", [obj, string_val("b"), number_val(2)]) is obj
        call_builtin("remove", [obj, string_val("a")])
        assert to_python(obj) == {"b": 2}

    def test_has_merge(self):
        assert py("has", {"a": None}, "a") is True
        assert py("merge", {"a": 1, "b": 1}, {"b": 2}) == {"a": 1, "b": 2}


class TestConversionsAndTypes:

    def test_typeof(self):
        assert py("typeof", None) == "null"
        assert py("typeof", [1]) == "array"
        assert py("isNumber", 1) is True
        assert py("isString", 1) is False

    def test_to_number_is_strict(self):
        assert py("toNumber", "42") == 42
        assert py("toNumber", " 2.5 ") == 2.5
        assert py("toNumber", True) == 1
        for bad in ("", "12px", None, [1]):
            with pytest.raises(ArgumentError):
                call("toNumber", bad)

    def test_to_number_fallback(self):
        assert py("toNumber", "", 0) == 0
        assert py("toNumber", "abc", -1) == -1

    def test_to_int(self):
        assert py("toInt", "7.9") == 7
        assert py("toInt", -7.9) == -7
        assert py("toInt", "x", 0) == 0

    def test_to_string_and_boolean(self):
        assert py("toString", 3) == "3"
        assert py("toString", [1, "a"]) == '[1,"a"]'
        assert py("toBoolean", "") is False
        assert py("toBoolean", "no") is True

    def test_json(self):
        assert py("toJSON", {"a": [1, None]}) == '{"a":[1,null]}'
        assert py("fromJSON", '{"a": [1, 2.5]}') == {"a": [1, 2.5]}
        with pytest.raises(ArgumentError):
            call("fromJSON", "{nope")


class TestDebugAndSystem:

    def test_inspect(self):
        assert py("inspect", "hi") == '<string> "hi"'
        assert py("inspect", [1]) == "<array> [1]"

    def test_assert(self):
        assert py("assert", 1) is True
        with pytest.raises(ScriptRuntimeError) as exc:
            call("assert", False, "must hold")
        assert exc.value.message == "must hold"
        assert exc.value.code == "E405"

    def test_debug_logs(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="retroscript.script"):
            assert py("debug", "x", 1) is None
        assert any(r.getMessage() == "script_debug" for r in caplog.records)

    def test_state(self, host):
        call("setState", "settings.theme", "dark", host=host)
        assert host.state.get("settings.theme") == "dark"
        assert py("getState", "settings", host=host) == {"theme": "dark"}
        assert py("getState", "missing.path", host=host) is None

    def test_time(self, host, clock):
        assert py("now", host=host) == math.floor(clock.now())
        assert len(py("date", host=host)) == 10
        assert len(py("time", host=host)) == 8

    def test_get_windows(self, host):
        host.state.set("windows", [
            {"id": "win-1", "appId": "notepad", "title": "Notes", "minimized": False,
             "maximized": True, "zIndex": 4},
            "win-2",
        ])
        assert py("getWindows", host=host) == [
            {"id": "win-1", "appId": "notepad", "title": "Notes", "minimized": False,
             "maximized": True},
            {"id": "win-2"},
        ]

    def test_get_apps(self, host):
        assert py("getApps", host=host) == []
        host.state.set("apps", [{"id": "calc", "name": "Calculator",
                                 "category": "utility", "icon": "calc.png"}])
        assert py("getApps", host=host) == [
            {"id": "calc", "name": "Calculator", "category": "utility"},
        ]

    def test_summaries_need_a_list(self, host):
        host.state.set("windows", "win-1")
        with pytest.raises(ArgumentError):
            call("getWindows", host=host)

    def test_storage(self, host):
        assert py("getStorage", "theme", host=host) is None
        assert py("setStorage", "theme", {"accent": "teal"}, host=host) is True
        assert host.state.get("storage.theme") == {"accent": "teal"}
        assert py("getStorage", "theme", host=host) == {"accent": "teal"}

    @pytest.mark.asyncio
    async def test_query_runs_query_command(self, host):
        host.commands.register("query:files", lambda args: len(args["args"]))
        result = call("query", "files", "C:/", True, host=host)
        assert to_python(await result) == 2
        assert host.commands.history[-1] == ("query:files", {"args": ["C:/", True]})

    @pytest.mark.asyncio
    async def test_unhandled_query_is_null(self, host):
        assert to_python(await call("query", "nothing", host=host)) is None

    def test_get_env(self, host):
        host.environment["user"] = "ann"
        env = py("getEnv", host=host)
        assert env["platform"] == "RetrOS"
        assert env["user"] == "ann"
        assert py("getEnv", "language", host=host) == "RetroScript"

    @pytest.mark.asyncio
    async def test_exec_awaits_command(self, host):
        host.commands.register("calc:add", lambda args: args["a"] + args["b"])
        result = call("exec", "calc:add", {"a": 2, "b": 3}, host=host)
        assert to_python(await result) == 5

    @pytest.mark.asyncio
    async def test_exec_failure_is_collaborator_error(self, host):
        def fail(args):
            raise RuntimeError("offline")

        host.commands.register("net:ping", fail)
        with pytest.raises(CollaboratorError) as exc:
            await call("exec", "net:ping", host=host)
        assert "offline" in exc.value.message
