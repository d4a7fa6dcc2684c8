"""
Tests for the RetroScript interpreter.
"""

import pytest

from retroscript import (
    ScriptEngine, ScriptRuntimeError, LoopLimitError, CallDepthError,
    ScriptTimeoutError, UndefinedVariableError,
)

from conftest import script, make_engine


async def output_of(engine, source, **kwargs):
    result = await engine.run(script(source), **kwargs)
    assert result.success, result.error
    return result.output


class TestArithmetic:
    """Test operators and printing."""

    @pytest.mark.asyncio
    async def test_precedence(self, engine):
        assert await output_of(engine, "print 2 + 3 * 4") == ["14"]
        assert await output_of(engine, "print (2 + 3) * 4") == ["20"]

    @pytest.mark.asyncio
    async def test_numbers_print_without_trailing_zero(self, engine):
        assert await output_of(engine, "print 10 / 4\nprint 6 / 3") == ["2.5", "2"]

    @pytest.mark.asyncio
    async def test_string_concatenation(self, engine):
        output = await output_of(engine, """
            set $n = 3
            print "n=" + $n + ", ok=" + true
        """)
        assert output == ["n=3, ok=true"]

    @pytest.mark.asyncio
    async def test_modulo_keeps_dividend_sign(self, engine):
        assert await output_of(engine, "print -7 % 3") == ["-1"]

    @pytest.mark.asyncio
    async def test_division_by_zero(self, engine):
        result = await engine.run("set $x = 1 / 0")
        assert not result.success
        assert isinstance(result.error, ScriptRuntimeError)
        assert result.error_message == "division by zero"
        assert result.line == 1

    @pytest.mark.asyncio
    async def test_no_implicit_numeric_coercion(self, engine):
        result = await engine.run('print "5" * 2')
        assert not result.success
        assert result.error.code == "E402"

    @pytest.mark.asyncio
    async def test_ordering_across_kinds_is_an_error(self, engine):
        result = await engine.run('if 1 < "2" { print yes }')
        assert not result.success
        assert "cannot compare" in result.error_message

    @pytest.mark.asyncio
    async def test_logical_operators_short_circuit(self, engine):
        output = await output_of(engine, """
            print false && missing(1)
            print true || missing(1)
            print 1 and "x"
        """)
        assert output == ["false", "true", "true"]


class TestVariables:
    """Test scoping rules."""

    @pytest.mark.asyncio
    async def test_loop_counter_does_not_leak(self, engine):
        output = await output_of(engine, """
            set $i = 999
            loop 5 { set $last = $i }
            print $i
            print $last
        """)
        assert output == ["999", "4"]

    @pytest.mark.asyncio
    async def test_function_locals_are_dropped(self, engine):
        result = await engine.run(script("""
            def f {
                set $local = 1
            }
            call f
            print $local
        """))
        assert not result.success
        assert isinstance(result.error, UndefinedVariableError)
        assert result.line == 5

    @pytest.mark.asyncio
    async def test_functions_update_outer_variables(self, engine):
        output = await output_of(engine, """
            set $count = 0
            def bump {
                set $count = $count + 1
            }
            call bump
            call bump
            print $count
        """)
        assert output == ["2"]

    @pytest.mark.asyncio
    async def test_block_assignment_reaches_enclosing_scope(self, engine):
        output = await output_of(engine, """
            if true {
                set $flag = "on"
            }
            print $flag
        """)
        assert output == ["on"]

    @pytest.mark.asyncio
    async def test_host_variables(self, engine):
        output = await output_of(engine, "print $user.name", variables={"user": {"name": "Ann"}})
        assert output == ["Ann"]

    @pytest.mark.asyncio
    async def test_undefined_variable_in_template_is_kept(self, engine):
        output = await output_of(engine, """
            set $name = "Ann"
            print "Hi $name, $missing.value left"
        """)
        assert output == ["Hi Ann, $missing.value left"]

    @pytest.mark.asyncio
    async def test_undefined_variable_in_expression_fails(self, engine):
        result = await engine.run("print $nope + 1")
        assert result.error_message == "undefined variable '$nope'"


class TestControlFlow:
    """Test loops, conditionals and signals."""

    @pytest.mark.asyncio
    async def test_if_else_chain(self, engine):
        source = """
            if $x > 10 {
                print big
            } else if $x > 5 {
                print medium
            } else {
                print small
            }
        """
        for x, expected in ((20, "big"), (7, "medium"), (1, "small")):
            assert await output_of(engine, source, variables={"x": x}) == [expected]

    @pytest.mark.asyncio
    async def test_while_with_break_and_continue(self, engine):
        output = await output_of(engine, """
            set $n = 0
            while true {
                set $n = $n + 1
                if $n == 2 { continue }
                if $n > 4 { break }
                print $n
            }
        """)
        assert output == ["1", "3", "4"]

    @pytest.mark.asyncio
    async def test_foreach_over_kinds(self, engine):
        output = await output_of(engine, """
            foreach $item, $idx in ["a", "b"] { print $idx + ":" + $item }
            foreach $key in {x: 1, y: 2} { print $key }
            foreach $ch in "hi" { print $ch }
        """)
        assert output == ["0:a", "1:b", "x", "y", "h", "i"]

    @pytest.mark.asyncio
    async def test_foreach_iterates_a_snapshot(self, engine):
        output = await output_of(engine, """
            set $items = [1, 2]
            foreach $n in $items { call push($items, $n) }
            print count($items)
        """)
        assert output == ["4"]

    @pytest.mark.asyncio
    async def test_foreach_over_number_fails(self, engine):
        result = await engine.run("foreach $x in 5 { print $x }")
        assert "cannot iterate" in result.error_message

    @pytest.mark.asyncio
    async def test_return_from_nested_loop(self, engine):
        output = await output_of(engine, """
            def find($items, $wanted) {
                foreach $item, $idx in $items {
                    if $item == $wanted { return $idx }
                }
                return -1
            }
            print find([5, 6, 7], 6)
            print find([5], 9)
        """)
        assert output == ["1", "-1"]

    @pytest.mark.asyncio
    async def test_top_level_return_sets_result(self, engine):
        result = await engine.run("return {ok: true}")
        assert result.success
        assert result.result == {"ok": True}


class TestFunctions:

    @pytest.mark.asyncio
    async def test_recursion(self, engine):
        output = await output_of(engine, """
            def fib($n) {
                if $n < 2 { return $n }
                return fib($n - 1) + fib($n - 2)
            }
            print call fib(10)
        """)
        assert output == ["55"]

    @pytest.mark.asyncio
    async def test_hoisting(self, engine):
        output = await output_of(engine, """
            print double(4)
            def double($x) { return $x * 2 }
        """)
        assert output == ["8"]

    @pytest.mark.asyncio
    async def test_closure_sees_defining_scope(self, engine):
        output = await output_of(engine, """
            def outer {
                set $secret = "inner value"
                def reveal { return $secret }
                return reveal()
            }
            print outer()
        """)
        assert output == ["inner value"]

    @pytest.mark.asyncio
    async def test_closure_called_later_from_another_scope(self, engine):
        """Names resolve where the function was defined, not where it is called."""
        output = await output_of(engine, """
            def make {
                set $secret = "lexical"
                def reveal { return $secret }
            }
            def caller {
                set $secret = "dynamic"
                return reveal()
            }
            call make()
            print caller()
        """)
        assert output == ["lexical"]

    @pytest.mark.asyncio
    async def test_spaced_call_arguments(self, engine):
        output = await output_of(engine, """
            def greet($name, $greeting) { print $greeting + ", " + $name }
            call greet World Hello
        """)
        assert output == ["Hello, World"]

    @pytest.mark.asyncio
    async def test_user_function_shadows_builtin(self, engine):
        assert await output_of(engine, """
            def upper($s) { return "shadowed" }
            print upper("x")
        """) == ["shadowed"]

    @pytest.mark.asyncio
    async def test_arity_mismatch(self, engine):
        result = await engine.run(script("""
            def add($a, $b) { return $a + $b }
            print add(1)
        """))
        assert result.error_message == "add() expects 2 arguments, got 1"

    @pytest.mark.asyncio
    async def test_unknown_function(self, engine):
        result = await engine.run("print nothing(1)")
        assert result.error.code == "E404"

    @pytest.mark.asyncio
    async def test_arrays_are_shared_by_reference(self, engine):
        output = await output_of(engine, """
            set $a = [1]
            set $b = $a
            call push($b, 2)
            def add_three($list) { call push($list, 3) }
            call add_three($a)
            print $a
        """)
        assert output == ["[1,2,3]"]


class TestProperties:

    @pytest.mark.asyncio
    async def test_set_and_get(self, engine):
        output = await output_of(engine, """
            set $user = {name: "Ann", tags: []}
            set $user.age = 30
            set $user.tags[0] = "admin"
            print $user.age
            print $user.tags
            print $user["name"]
            print $user.missing
        """)
        assert output == ["30", '["admin"]', "Ann", "null"]

    @pytest.mark.asyncio
    async def test_length_and_index(self, engine):
        output = await output_of(engine, """
            set $s = "hello"
            print $s.length
            print $s[1]
            print [1, 2, 3][5]
        """)
        assert output == ["5", "e", "null"]

    @pytest.mark.asyncio
    async def test_out_of_range_write(self, engine):
        result = await engine.run("set $a = []\nset $a[3] = 1")
        assert not result.success
        assert "out of range" in result.error_message
        assert result.line == 2


class TestTryCatch:
    """Test error recovery."""

    @pytest.mark.asyncio
    async def test_catch_binds_message_and_resumes(self, engine):
        output = await output_of(engine, """
            try {
                set $x = 1 / 0
                print unreachable
            } catch $err {
                print "caught: " + $err
            }
            print after
        """)
        assert output == ["caught: division by zero", "after"]

    @pytest.mark.asyncio
    async def test_catch_collaborator_failure(self, engine):
        output = await output_of(engine, """
            try {
                read C:/missing.txt into $text
            } catch $err {
                print $err
            }
        """)
        assert output == ["read C:/missing.txt failed: file not found: C:/missing.txt"]

    @pytest.mark.asyncio
    async def test_catch_without_variable(self, engine):
        output = await output_of(engine, """
            try { call assert(false) } catch { print recovered }
        """)
        assert output == ["recovered"]

    @pytest.mark.asyncio
    async def test_return_passes_through_try(self, engine):
        output = await output_of(engine, """
            def f {
                try { return "from try" } catch { return "from catch" }
            }
            print f()
        """)
        assert output == ["from try"]

    @pytest.mark.asyncio
    async def test_resource_limits_are_not_catchable(self, host):
        engine = make_engine(host, max_loop_iterations=10)
        result = await engine.run(script("""
            try {
                while true { set $x = 1 }
            } catch {
                print caught
            }
        """))
        assert not result.success
        assert isinstance(result.error, LoopLimitError)
        assert result.output == []


class TestLimits:
    """Test the governor's resource limits."""

    @pytest.mark.asyncio
    async def test_loop_ceiling(self, host):
        engine = make_engine(host, max_loop_iterations=10)
        result = await engine.run(script("""
            set $n = 0
            while true { set $n = $n + 1 }
        """))
        assert isinstance(result.error, LoopLimitError)
        assert result.error_kind == "resource"
        assert "10 iterations" in result.error_message

    @pytest.mark.asyncio
    async def test_default_loop_ceiling(self, engine):
        result = await engine.run("while true { }")
        assert isinstance(result.error, LoopLimitError)
        assert "100000" in result.error_message

    @pytest.mark.asyncio
    async def test_loop_below_ceiling_finishes(self, host):
        engine = make_engine(host, max_loop_iterations=10)
        output = await output_of(engine, """
            set $n = 0
            while $n < 10 { set $n = $n + 1 }
            print $n
        """)
        assert output == ["10"]

    @pytest.mark.asyncio
    async def test_call_depth(self, host):
        engine = make_engine(host, max_call_depth=20)
        result = await engine.run(script("""
            def down($n) { return down($n + 1) }
            print down(0)
        """))
        assert isinstance(result.error, CallDepthError)
        assert result.error_kind == "resource"

    @pytest.mark.asyncio
    async def test_timeout(self, engine, clock):
        result = await engine.run(script("""
            loop 10 {
                print $i
                wait 1000
            }
        """), timeout=3)
        assert isinstance(result.error, ScriptTimeoutError)
        assert result.output == ["0", "1", "2"]
        assert clock.monotonic() == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_wait_within_budget(self, engine, clock):
        await output_of(engine, "wait 250\nsleep")
        assert clock.monotonic() == pytest.approx(1.25)

    @pytest.mark.asyncio
    async def test_wait_rejects_non_numbers(self, engine):
        result = await engine.run('wait "soon"')
        assert result.error.code == "E402"
