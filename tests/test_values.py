"""
Tests for runtime values, environments and conversions.
"""

import math

import pytest

from retroscript import Environment, UndefinedVariableError
from retroscript.runtime import (
    ValueKind, null_val, bool_val, number_val, string_val, array_val, object_val,
    from_python, to_python, to_json, display, values_equal,
)


class TestValues:
    """Test value construction and truthiness."""

    def test_numbers_are_floats(self):
        v = number_val(3)
        assert v.kind == ValueKind.NUMBER
        assert v.data == 3.0
        assert isinstance(v.data, float)

    def test_type_names(self):
        assert null_val().type_name == "null"
        assert bool_val(True).type_name == "boolean"
        assert number_val(1).type_name == "number"
        assert string_val("").type_name == "string"
        assert array_val().type_name == "array"
        assert object_val().type_name == "object"

    def test_truthiness(self):
        assert not null_val().is_truthy()
        assert not bool_val(False).is_truthy()
        assert not number_val(0).is_truthy()
        assert not number_val(math.nan).is_truthy()
        assert not string_val("").is_truthy()
        assert not array_val([]).is_truthy()
        assert not object_val({}).is_truthy()
        assert number_val(-1).is_truthy()
        assert string_val("0").is_truthy()
        assert array_val([null_val()]).is_truthy()

    def test_is_integral(self):
        assert number_val(4).is_integral()
        assert not number_val(4.5).is_integral()
        assert not number_val(math.inf).is_integral()
        assert not string_val("4").is_integral()


class TestDisplay:
    """Test the display form used by print and concatenation."""

    def test_scalars(self):
        assert display(null_val()) == "null"
        assert display(bool_val(True)) == "true"
        assert display(number_val(3)) == "3"
        assert display(number_val(2.5)) == "2.5"
        assert display(number_val(-0.0)) == "0"
        assert display(number_val(math.inf)) == "Infinity"
        assert display(number_val(-math.inf)) == "-Infinity"
        assert display(number_val(math.nan)) == "NaN"

    def test_collections_render_as_json(self):
        value = from_python({"a": [1, 2.5, "x"], "b": None})
        assert display(value) == '{"a":[1,2.5,"x"],"b":null}'

    def test_to_json_indent(self):
        assert to_json(from_python([1]), 2) == "[\n  1\n]"

    def test_circular_collections(self):
        arr = array_val([number_val(1)])
        arr.data.append(arr)
        assert display(arr) == '[1,"[Circular]"]'
        assert to_python(arr) == [1, None]


class TestConversions:
    """Test conversions to and from plain Python data."""

    def test_from_python(self):
        value = from_python({"n": 1, "flags": [True, None], "name": "x"})
        assert value.kind == ValueKind.OBJECT
        assert value.data["n"].data == 1.0
        assert value.data["flags"].data[1].kind == ValueKind.NULL

    def test_to_python_integral_numbers_become_int(self):
        assert to_python(number_val(2)) == 2
        assert isinstance(to_python(number_val(2)), int)
        assert to_python(number_val(2.5)) == 2.5

    def test_round_trip_preserves_structure(self):
        data = {"name": "Ann", "tags": ["a", "b"], "age": 30, "ok": False}
        assert to_python(from_python(data)) == data


class TestEquality:
    """Test script equality."""

    def test_same_kind_only(self):
        assert values_equal(number_val(1), number_val(1))
        assert not values_equal(number_val(1), string_val("1"))
        assert not values_equal(null_val(), bool_val(False))

    def test_structural(self):
        assert values_equal(from_python([1, {"a": 2}]), from_python([1, {"a": 2}]))
        assert not values_equal(from_python([1, 2]), from_python([2, 1]))

    def test_nan_is_not_equal_to_itself(self):
        nan = number_val(math.nan)
        assert not values_equal(nan, nan)


class TestEnvironment:
    """Test scope chains."""

    def test_lookup_through_parents(self):
        root = Environment()
        root.declare("x", number_val(1))
        child = root.extend().extend()
        assert child.get("x").data == 1.0

    def test_undefined(self):
        with pytest.raises(UndefinedVariableError) as exc:
            Environment().get("missing")
        assert "$missing" in exc.value.message

    def test_assign_updates_declaring_scope(self):
        root = Environment()
        root.declare("x", number_val(1))
        block = root.extend()
        block.assign("x", number_val(2))
        assert root.get("x").data == 2.0
        assert "x" not in block.bindings

    def test_assign_new_name_lands_at_function_boundary(self):
        root = Environment()
        frame = root.extend("call", function_boundary=True)
        block = frame.extend()
        block.assign("y", number_val(5))
        assert "y" in frame.bindings
        assert not root.contains("y")

    def test_declare_shadows(self):
        root = Environment()
        root.declare("i", number_val(999))
        loop = root.extend()
        loop.declare("i", number_val(0))
        assert loop.get("i").data == 0.0
        assert root.get("i").data == 999.0
