"""
Tree-walking interpreter for RetroScript.

Statements run on asyncio so that dialogs, waits and host commands can
suspend a script without blocking the host. Control flow (break, continue,
return) travels back up through block execution as returned signals and
never as exceptions, so try/catch only ever sees genuine errors.
"""

import asyncio
import inspect
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from .values import (
    Value, ValueKind, null_val, bool_val, number_val, string_val, array_val,
    object_val, from_python, to_python, display, values_equal,
)
from .context import Environment, ExecutionContext, UserFunction
from .builtins import BuiltinRegistry, get_builtin_registry
from .governor import Governor

from ..ast import (
    Program, Statement, Block, SetStatement, PrintStatement, IfStatement,
    LoopStatement, ForeachStatement, BreakStatement, ContinueStatement,
    ReturnStatement, FunctionDef, CommandStatement, TryCatch, EventOn,
    EventEmit, ExpressionStatement,
    Expression, Literal, VariableRef, BinaryOp, UnaryOp, LogicalOp,
    Comparison, FunctionCall, ArrayLiteral, ObjectLiteral, Interpolated,
    PropertyAccess,
)
from ..config import EngineLimits
from ..errors import (
    ScriptError, ScriptRuntimeError, UndefinedVariableError,
    CollaboratorError, CallDepthError, CancellationError,
    error_arity, error_type, error_unknown_function,
)
from ..host import HostServices
from ..tokens import TokenType

logger = logging.getLogger(__name__)


# =============================================================================
# Control-flow signals
# =============================================================================

class BreakSignal:
    def __repr__(self) -> str:
        return "BREAK"


class ContinueSignal:
    def __repr__(self) -> str:
        return "CONTINUE"


@dataclass
class ReturnSignal:
    value: Value


BREAK = BreakSignal()
CONTINUE = ContinueSignal()

Signal = Union[BreakSignal, ContinueSignal, ReturnSignal]


@dataclass
class ExecutionResult:
    """Result of running a script."""
    success: bool
    value: Value = field(default_factory=null_val)
    output: List[str] = field(default_factory=list)
    error: Optional[ScriptError] = None
    cancelled: bool = False

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error is not None else None

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error is not None else None

    @property
    def line(self) -> Optional[int]:
        return self.error.line if self.error is not None else None

    @property
    def result(self) -> Any:
        """The return value as plain Python data."""
        return to_python(self.value)


# =============================================================================
# Operators
# =============================================================================

OPERATOR_SYMBOLS = {
    TokenType.PLUS: "+", TokenType.MINUS: "-", TokenType.STAR: "*",
    TokenType.SLASH: "/", TokenType.PERCENT: "%",
    TokenType.EQ: "==", TokenType.NE: "!=", TokenType.LT: "<",
    TokenType.GT: ">", TokenType.LE: "<=", TokenType.GE: ">=",
}


def binary_op(operator: TokenType, left: Value, right: Value) -> Value:
    """Apply an arithmetic operator. Only + accepts non-numbers."""
    if operator == TokenType.PLUS:
        if left.kind == ValueKind.NUMBER and right.kind == ValueKind.NUMBER:
            return number_val(left.data + right.data)
        if left.kind == ValueKind.STRING or right.kind == ValueKind.STRING:
            return string_val(display(left) + display(right))
        if left.kind == ValueKind.ARRAY and right.kind == ValueKind.ARRAY:
            return array_val(left.data + right.data)
        raise error_type(f"cannot add {left.type_name} and {right.type_name}")

    symbol = OPERATOR_SYMBOLS[operator]
    if left.kind != ValueKind.NUMBER or right.kind != ValueKind.NUMBER:
        raise error_type(
            f"operator '{symbol}' expects numbers, got {left.type_name} and {right.type_name}"
        )
    a, b = left.data, right.data
    if operator == TokenType.MINUS:
        return number_val(a - b)
    if operator == TokenType.STAR:
        return number_val(a * b)
    if b == 0:
        raise ScriptRuntimeError("division by zero" if operator == TokenType.SLASH
                                 else "modulo by zero")
    if operator == TokenType.SLASH:
        return number_val(a / b)
    return number_val(math.fmod(a, b))


def compare(operator: TokenType, left: Value, right: Value) -> Value:
    """Apply an equality or ordering comparison."""
    if operator == TokenType.EQ:
        return bool_val(values_equal(left, right))
    if operator == TokenType.NE:
        return bool_val(not values_equal(left, right))

    if not (left.kind == right.kind and left.kind in (ValueKind.NUMBER, ValueKind.STRING)):
        raise error_type(
            f"cannot compare {left.type_name} and {right.type_name} "
            f"with '{OPERATOR_SYMBOLS[operator]}'"
        )
    a, b = left.data, right.data
    if operator == TokenType.LT:
        return bool_val(a < b)
    if operator == TokenType.GT:
        return bool_val(a > b)
    if operator == TokenType.LE:
        return bool_val(a <= b)
    return bool_val(a >= b)


def _index(key: Value, length: int) -> Optional[int]:
    if not key.is_integral():
        raise error_type(f"index must be an integer, got {display(key)}")
    index = int(key.data)
    return index if 0 <= index < length else None


def get_property(base: Value, key: Value) -> Value:
    """Read obj.key, arr[i], str[i] or .length; missing entries are null."""
    if base.kind == ValueKind.OBJECT:
        return base.data.get(display(key), null_val())
    if base.kind in (ValueKind.ARRAY, ValueKind.STRING):
        if key.kind == ValueKind.STRING and key.data == "length":
            return number_val(len(base.data))
        if key.kind != ValueKind.NUMBER:
            raise error_type(f"cannot read property '{display(key)}' of {base.type_name}")
        index = _index(key, len(base.data))
        if index is None:
            return null_val()
        item = base.data[index]
        return item if base.kind == ValueKind.ARRAY else string_val(item)
    raise error_type(f"cannot read property '{display(key)}' of {base.type_name}")


def set_property(base: Value, key: Value, value: Value) -> None:
    """Write obj.key or arr[i] in place; i == length appends."""
    if base.kind == ValueKind.OBJECT:
        base.data[display(key)] = value
        return
    if base.kind == ValueKind.ARRAY:
        if key.kind != ValueKind.NUMBER:
            raise error_type(f"array index must be a number, got {key.type_name}")
        if key.is_integral() and int(key.data) == len(base.data):
            base.data.append(value)
            return
        index = _index(key, len(base.data))
        if index is None:
            raise ScriptRuntimeError(
                f"index {display(key)} out of range for array of length {len(base.data)}"
            )
        base.data[index] = value
        return
    raise error_type(f"cannot set property '{display(key)}' on {base.type_name}")


def _reference_text(expr: Expression) -> str:
    """Source form of an interpolated $a.b reference."""
    if isinstance(expr, VariableRef):
        return f"${expr.name}"
    if isinstance(expr, PropertyAccess) and isinstance(expr.key, Literal):
        return f"{_reference_text(expr.base)}.{expr.key.value}"
    return ""


# =============================================================================
# Interpreter
# =============================================================================

class Interpreter:
    """
    Tree-walking interpreter for RetroScript.

    One Interpreter can run many scripts; all per-run state lives in the
    ExecutionContext created by create_context().
    """

    def __init__(self, host: HostServices, limits: Optional[EngineLimits] = None,
                 registry: Optional[BuiltinRegistry] = None):
        self.host = host
        self.limits = limits or EngineLimits()
        self.registry = registry or get_builtin_registry()
        self._commands: Dict[str, Callable] = {
            "alert": self._command_alert,
            "notify": self._command_notify,
            "confirm": self._command_confirm,
            "prompt": self._command_prompt,
            "write": self._command_write,
            "read": self._command_read,
            "mkdir": self._command_mkdir,
            "delete": self._command_delete,
            "launch": self._command_launch,
            "close": self._command_close,
            "wait": self._command_wait,
            "focus": self._command_window,
            "minimize": self._command_window,
            "maximize": self._command_window,
            "play": self._command_play,
        }

    def create_context(self, program: Program, script_id: str = "script",
                       variables: Optional[Dict[str, Any]] = None,
                       limits: Optional[EngineLimits] = None) -> ExecutionContext:
        """Create the per-run context, with host variables declared at the root."""
        limits = limits or self.limits
        ctx = ExecutionContext(
            program=program,
            host=self.host,
            limits=limits,
            governor=Governor(self.host.clock, limits),
            script_id=script_id,
        )
        for name, value in (variables or {}).items():
            ctx.root.declare(name, from_python(value))
        return ctx

    async def run(self, ctx: ExecutionContext) -> ExecutionResult:
        """
        Execute a program to completion.

        The run ends when the main body has finished and every queued event
        handler has run; its subscriptions are then revoked.
        """
        worker = asyncio.ensure_future(self._handler_worker(ctx))
        try:
            self._hoist_functions(ctx.program.statements, ctx)
            signal = await self._execute_statements(ctx.program.statements, ctx.root, ctx)
            await ctx.governor.suspend(ctx.handler_queue.join())
            if ctx.governor.abort_error is not None:
                raise ctx.governor.abort_error
            value = signal.value if isinstance(signal, ReturnSignal) else null_val()
            return ExecutionResult(success=True, value=value, output=ctx.output)
        except CancellationError as e:
            return ExecutionResult(success=False, output=ctx.output, error=e, cancelled=True)
        except ScriptError as e:
            if e.span is not None and e.source_line is None:
                e.source_line = ctx.source_line(e.span.start.line)
            return ExecutionResult(success=False, output=ctx.output, error=e)
        finally:
            ctx.closed = True
            ctx.revoke_subscriptions()
            ctx.governor.close()
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)

    def _hoist_functions(self, statements: List[Statement], ctx: ExecutionContext) -> None:
        """Top-level functions are callable before their definition."""
        for stmt in statements:
            if isinstance(stmt, FunctionDef):
                ctx.functions[stmt.name] = UserFunction(stmt, ctx.root)

    # =========================================================================
    # Statements
    # =========================================================================

    async def _execute_statements(self, statements: List[Statement], env: Environment,
                                  ctx: ExecutionContext) -> Optional[Signal]:
        for stmt in statements:
            signal = await self._execute_statement(stmt, env, ctx)
            if signal is not None:
                return signal
        return None

    async def _execute_block(self, block: Block, env: Environment,
                             ctx: ExecutionContext) -> Optional[Signal]:
        return await self._execute_statements(block.statements, env, ctx)

    async def _execute_statement(self, stmt: Statement, env: Environment,
                                 ctx: ExecutionContext) -> Optional[Signal]:
        """Execute a statement, attributing errors to the innermost statement."""
        try:
            await ctx.governor.checkpoint()
            return await self._dispatch(stmt, env, ctx)
        except ScriptError as e:
            if not isinstance(e, CancellationError):
                e.locate(stmt.span, ctx.source_line(stmt.span.start.line))
            raise

    async def _dispatch(self, stmt: Statement, env: Environment,
                        ctx: ExecutionContext) -> Optional[Signal]:
        if isinstance(stmt, SetStatement):
            await self._execute_set(stmt, env, ctx)
        elif isinstance(stmt, PrintStatement):
            message = display(await self._evaluate(stmt.message, env, ctx))
            self._print(message, ctx)
        elif isinstance(stmt, IfStatement):
            return await self._execute_if(stmt, env, ctx)
        elif isinstance(stmt, LoopStatement):
            if stmt.count is not None:
                return await self._execute_counted_loop(stmt, env, ctx)
            return await self._execute_while(stmt, env, ctx)
        elif isinstance(stmt, ForeachStatement):
            return await self._execute_foreach(stmt, env, ctx)
        elif isinstance(stmt, BreakStatement):
            return BREAK
        elif isinstance(stmt, ContinueStatement):
            return CONTINUE
        elif isinstance(stmt, ReturnStatement):
            if stmt.value is None:
                return ReturnSignal(null_val())
            return ReturnSignal(await self._evaluate(stmt.value, env, ctx))
        elif isinstance(stmt, FunctionDef):
            ctx.functions[stmt.name] = UserFunction(stmt, env)
        elif isinstance(stmt, CommandStatement):
            await self._execute_command(stmt, env, ctx)
        elif isinstance(stmt, TryCatch):
            return await self._execute_try(stmt, env, ctx)
        elif isinstance(stmt, EventOn):
            await self._execute_on(stmt, env, ctx)
        elif isinstance(stmt, EventEmit):
            await self._execute_emit(stmt, env, ctx)
        elif isinstance(stmt, ExpressionStatement):
            await self._evaluate(stmt.expression, env, ctx)
        elif isinstance(stmt, Block):
            return await self._execute_block(stmt, env.extend(), ctx)
        else:
            raise ScriptRuntimeError(f"unknown statement type: {type(stmt).__name__}")
        return None

    async def _execute_set(self, stmt: SetStatement, env: Environment,
                           ctx: ExecutionContext) -> None:
        target = stmt.target
        if isinstance(target, VariableRef):
            env.assign(target.name, await self._evaluate(stmt.value, env, ctx))
            return
        base = await self._evaluate(target.base, env, ctx)
        key = await self._evaluate(target.key, env, ctx)
        set_property(base, key, await self._evaluate(stmt.value, env, ctx))

    def _print(self, message: str, ctx: ExecutionContext) -> None:
        ctx.output.append(message)
        self._publish(ctx, "script:output", {"scriptId": ctx.script_id, "message": message})

    async def _execute_if(self, stmt: IfStatement, env: Environment,
                          ctx: ExecutionContext) -> Optional[Signal]:
        condition = await self._evaluate(stmt.condition, env, ctx)
        if condition.is_truthy():
            return await self._execute_block(stmt.then_block, env.extend("if"), ctx)
        if stmt.else_block is not None:
            return await self._execute_block(stmt.else_block, env.extend("else"), ctx)
        return None

    async def _execute_counted_loop(self, stmt: LoopStatement, env: Environment,
                                    ctx: ExecutionContext) -> Optional[Signal]:
        count = await self._evaluate(stmt.count, env, ctx)
        if count.kind != ValueKind.NUMBER:
            raise error_type(f"loop count must be a number, got {count.type_name}")
        if not math.isfinite(count.data):
            raise error_type(f"loop count must be finite, got {display(count)}")

        for i in range(max(0, int(count.data))):
            await ctx.governor.checkpoint()
            iteration = env.extend("loop")
            iteration.declare("i", number_val(i))
            signal = await self._execute_block(stmt.body, iteration, ctx)
            if isinstance(signal, BreakSignal):
                break
            if isinstance(signal, ReturnSignal):
                return signal
        return None

    async def _execute_while(self, stmt: LoopStatement, env: Environment,
                             ctx: ExecutionContext) -> Optional[Signal]:
        iteration = 0
        while True:
            await ctx.governor.checkpoint()
            condition = await self._evaluate(stmt.condition, env, ctx)
            if not condition.is_truthy():
                break
            ctx.governor.check_loop(iteration)
            iteration += 1
            signal = await self._execute_block(stmt.body, env.extend("while"), ctx)
            if isinstance(signal, BreakSignal):
                break
            if isinstance(signal, ReturnSignal):
                return signal
        return None

    async def _execute_foreach(self, stmt: ForeachStatement, env: Environment,
                               ctx: ExecutionContext) -> Optional[Signal]:
        iterable = await self._evaluate(stmt.iterable, env, ctx)
        if iterable.kind == ValueKind.ARRAY:
            items = list(iterable.data)
        elif iterable.kind == ValueKind.OBJECT:
            items = [string_val(key) for key in iterable.data]
        elif iterable.kind == ValueKind.STRING:
            items = [string_val(ch) for ch in iterable.data]
        else:
            raise error_type(f"cannot iterate over {iterable.type_name}")

        for index, item in enumerate(items):
            await ctx.governor.checkpoint()
            iteration = env.extend("foreach")
            iteration.declare(stmt.item_var, item)
            if stmt.index_var is not None:
                iteration.declare(stmt.index_var, number_val(index))
            signal = await self._execute_block(stmt.body, iteration, ctx)
            if isinstance(signal, BreakSignal):
                break
            if isinstance(signal, ReturnSignal):
                return signal
        return None

    async def _execute_try(self, stmt: TryCatch, env: Environment,
                           ctx: ExecutionContext) -> Optional[Signal]:
        try:
            return await self._execute_block(stmt.try_block, env.extend("try"), ctx)
        except ScriptRuntimeError as e:
            if e is ctx.governor.abort_error:
                raise
            logger.debug("script_error_caught", extra={"script": ctx.script_id,
                                                        "error": e.message})
            catch_env = env.extend("catch")
            if stmt.error_var is not None:
                catch_env.declare(stmt.error_var, string_val(e.message))
            return await self._execute_block(stmt.catch_block, catch_env, ctx)

    # =========================================================================
    # Events
    # =========================================================================

    async def _execute_on(self, stmt: EventOn, env: Environment, ctx: ExecutionContext) -> None:
        pattern = display(await self._evaluate(stmt.event_name, env, ctx))

        def deliver(event_name: str, payload: Any) -> None:
            if not ctx.closed:
                ctx.handler_queue.put_nowait((stmt, env, event_name, payload))

        token = self._host_call("event subscription", self.host.events.subscribe,
                                pattern, deliver)
        ctx.subscriptions.append(token)

    async def _execute_emit(self, stmt: EventEmit, env: Environment,
                            ctx: ExecutionContext) -> None:
        name = display(await self._evaluate(stmt.event_name, env, ctx))
        payload = None
        if stmt.payload is not None:
            payload = to_python(await self._evaluate(stmt.payload, env, ctx))
        self._publish(ctx, name, payload)

    async def _handler_worker(self, ctx: ExecutionContext) -> None:
        """Run queued `on` handlers one at a time, each to completion."""
        while not ctx.closed:
            stmt, env, event_name, payload = await ctx.handler_queue.get()
            try:
                ctx.governor.handler_started()
                handler_env = env.extend("handler")
                handler_env.declare("event", from_python(payload))
                handler_env.declare("eventName", string_val(event_name))
                await self._execute_block(stmt.body, handler_env, ctx)
            except CancellationError:
                pass
            except ScriptError as e:
                logger.warning("event_handler_failed",
                               extra={"script": ctx.script_id, "event": event_name,
                                      "error": e.message})
                ctx.governor.abort(e)
            finally:
                ctx.governor.handler_finished()
                ctx.handler_queue.task_done()

    def _publish(self, ctx: ExecutionContext, name: str, payload: Any) -> None:
        self._host_call(f"publishing '{name}'", self.host.events.publish, name, payload)

    # =========================================================================
    # Host commands
    # =========================================================================

    def _host_call(self, what: str, fn: Callable, *args: Any) -> Any:
        """Call a synchronous collaborator, turning its failures into CollaboratorError."""
        try:
            return fn(*args)
        except ScriptError:
            raise
        except Exception as e:
            logger.warning("collaborator_failed", extra={"operation": what, "error": str(e)})
            raise CollaboratorError(f"{what} failed: {e}") from e

    async def _host_await(self, ctx: ExecutionContext, what: str, awaitable) -> Any:
        """Await a collaborator under the governor."""
        try:
            return await ctx.governor.suspend(awaitable)
        except ScriptError:
            raise
        except Exception as e:
            logger.warning("collaborator_failed", extra={"operation": what, "error": str(e)})
            raise CollaboratorError(f"{what} failed: {e}") from e

    async def _execute_command(self, stmt: CommandStatement, env: Environment,
                               ctx: ExecutionContext) -> None:
        args = {}
        for name, expr in stmt.arguments.items():
            args[name] = await self._evaluate(expr, env, ctx)
        handler = self._commands.get(stmt.command)
        if handler is not None:
            await handler(stmt, args, env, ctx)
            return
        payload = {"args": to_python(args["args"])} if "args" in args else {}
        await self._host_await(ctx, f"command '{stmt.command}'",
                               self.host.commands.execute(stmt.command, payload))

    async def _command_alert(self, stmt, args, env, ctx) -> None:
        await self._host_await(ctx, "alert", self.host.dialogs.alert(display(args["message"])))

    async def _command_notify(self, stmt, args, env, ctx) -> None:
        self._publish(ctx, "notification:show", {"message": display(args["message"])})

    async def _command_confirm(self, stmt, args, env, ctx) -> None:
        answer = await self._host_await(ctx, "confirm",
                                        self.host.dialogs.confirm(display(args["message"])))
        env.assign(stmt.into, bool_val(bool(answer)))

    async def _command_prompt(self, stmt, args, env, ctx) -> None:
        default = display(args["default"]) if "default" in args else ""
        answer = await self._host_await(
            ctx, "prompt", self.host.dialogs.prompt(display(args["message"]), default))
        env.assign(stmt.into, null_val() if answer is None else string_val(answer))

    async def _command_write(self, stmt, args, env, ctx) -> None:
        path = display(args["path"])
        self._host_call(f"write {path}", self.host.files.write, path, display(args["content"]))

    async def _command_read(self, stmt, args, env, ctx) -> None:
        path = display(args["path"])
        content = self._host_call(f"read {path}", self.host.files.read, path)
        env.assign(stmt.into, string_val(content))

    async def _command_mkdir(self, stmt, args, env, ctx) -> None:
        path = display(args["path"])
        self._host_call(f"mkdir {path}", self.host.files.mkdir, path)

    async def _command_delete(self, stmt, args, env, ctx) -> None:
        path = display(args["path"])
        self._host_call(f"delete {path}", self.host.files.delete, path)

    async def _command_launch(self, stmt, args, env, ctx) -> None:
        params = to_python(args["params"]) if "params" in args else {}
        payload = {"appId": display(args["app"]), "params": params}
        await self._host_await(ctx, "launch", self.host.commands.execute("app:launch", payload))

    async def _command_close(self, stmt, args, env, ctx) -> None:
        if "target" in args:
            window_id = display(args["target"])
        else:
            windows = self._host_call("reading windows", self.host.state.get, "windows")
            if not windows:
                return
            last = windows[-1]
            window_id = last.get("id") if isinstance(last, dict) else last
            if window_id is None:
                return
        await self._host_await(ctx, "close",
                               self.host.commands.execute("window:close", {"windowId": window_id}))

    async def _command_window(self, stmt, args, env, ctx) -> None:
        name = f"window:{stmt.command}"
        await self._host_await(ctx, stmt.command, self.host.commands.execute(
            name, {"windowId": display(args["target"])}))

    async def _command_wait(self, stmt, args, env, ctx) -> None:
        duration = args.get("duration")
        if duration is None:
            ms = 1000.0
        elif duration.kind != ValueKind.NUMBER or math.isnan(duration.data):
            raise error_type(f"wait duration must be a number, got {display(duration)}")
        else:
            ms = max(0.0, duration.data)

        remaining_ms = ctx.governor.remaining() * 1000.0
        if ms > remaining_ms:
            await self._host_await(ctx, "wait", self.host.clock.sleep(remaining_ms))
            raise ctx.governor.timeout_error()
        await self._host_await(ctx, "wait", self.host.clock.sleep(ms))

    async def _command_play(self, stmt, args, env, ctx) -> None:
        self._host_call("play", self.host.sound.play, display(args["sound"]))

    # =========================================================================
    # Expressions
    # =========================================================================

    async def _evaluate(self, expr: Expression, env: Environment, ctx: ExecutionContext) -> Value:
        """Evaluate an expression to produce a Value."""
        if isinstance(expr, Literal):
            return self._eval_literal(expr)
        elif isinstance(expr, VariableRef):
            return env.get(expr.name)
        elif isinstance(expr, BinaryOp):
            left = await self._evaluate(expr.left, env, ctx)
            right = await self._evaluate(expr.right, env, ctx)
            return binary_op(expr.operator, left, right)
        elif isinstance(expr, Comparison):
            left = await self._evaluate(expr.left, env, ctx)
            right = await self._evaluate(expr.right, env, ctx)
            return compare(expr.operator, left, right)
        elif isinstance(expr, LogicalOp):
            return await self._eval_logical_op(expr, env, ctx)
        elif isinstance(expr, UnaryOp):
            return await self._eval_unary_op(expr, env, ctx)
        elif isinstance(expr, FunctionCall):
            return await self._eval_function_call(expr, env, ctx)
        elif isinstance(expr, PropertyAccess):
            base = await self._evaluate(expr.base, env, ctx)
            key = await self._evaluate(expr.key, env, ctx)
            return get_property(base, key)
        elif isinstance(expr, ArrayLiteral):
            return array_val([await self._evaluate(e, env, ctx) for e in expr.elements])
        elif isinstance(expr, ObjectLiteral):
            entries = {}
            for key, value_expr in expr.entries:
                entries[key] = await self._evaluate(value_expr, env, ctx)
            return object_val(entries)
        elif isinstance(expr, Interpolated):
            return await self._eval_interpolated(expr, env, ctx)
        else:
            raise ScriptRuntimeError(f"unknown expression type: {type(expr).__name__}")

    def _eval_literal(self, lit: Literal) -> Value:
        if lit.value is None:
            return null_val()
        if isinstance(lit.value, bool):
            return bool_val(lit.value)
        if isinstance(lit.value, (int, float)):
            return number_val(lit.value)
        return string_val(lit.value)

    async def _eval_logical_op(self, op: LogicalOp, env: Environment,
                               ctx: ExecutionContext) -> Value:
        """Short-circuit && and ||; the result is always a Boolean."""
        left = (await self._evaluate(op.left, env, ctx)).is_truthy()
        if op.operator == TokenType.AND and not left:
            return bool_val(False)
        if op.operator == TokenType.OR and left:
            return bool_val(True)
        return bool_val((await self._evaluate(op.right, env, ctx)).is_truthy())

    async def _eval_unary_op(self, op: UnaryOp, env: Environment,
                             ctx: ExecutionContext) -> Value:
        operand = await self._evaluate(op.operand, env, ctx)
        if op.operator == TokenType.NOT:
            return bool_val(not operand.is_truthy())
        if operand.kind != ValueKind.NUMBER:
            raise error_type(f"cannot negate {operand.type_name}")
        return number_val(-operand.data)

    async def _eval_interpolated(self, expr: Interpolated, env: Environment,
                                 ctx: ExecutionContext) -> Value:
        parts = []
        for segment in expr.segments:
            if isinstance(segment, str):
                parts.append(segment)
                continue
            try:
                parts.append(display(await self._evaluate(segment, env, ctx)))
            except UndefinedVariableError:
                # Unknown names are left as written
                parts.append(_reference_text(segment))
        return string_val("".join(parts))

    async def _eval_function_call(self, call: FunctionCall, env: Environment,
                                  ctx: ExecutionContext) -> Value:
        """Call a user function, else a builtin, else fail."""
        args = []
        for arg in call.arguments:
            args.append(await self._evaluate(arg, env, ctx))

        func = ctx.functions.get(call.name)
        if func is not None:
            return await self._call_user_function(func, args, ctx)

        if call.name in self.registry:
            result = self.registry.call(call.name, args, self.host)
            if inspect.isawaitable(result):
                result = await ctx.governor.suspend(result)
            return result

        raise error_unknown_function(call.name)

    async def _call_user_function(self, func: UserFunction, args: List[Value],
                                  ctx: ExecutionContext) -> Value:
        if len(args) != len(func.params):
            raise error_arity(func.name, str(len(func.params)), len(args))
        if ctx.call_depth >= ctx.limits.max_call_depth:
            raise CallDepthError(f"call depth exceeded {ctx.limits.max_call_depth} "
                                 f"in '{func.name}'")

        frame = func.closure.extend(f"call {func.name}", function_boundary=True)
        for name, value in zip(func.params, args):
            frame.declare(name, value)

        ctx.call_depth += 1
        try:
            signal = await self._execute_block(func.definition.body, frame, ctx)
        except RecursionError as e:
            raise CallDepthError(f"call depth exceeded the interpreter stack in '{func.name}'") from e
        finally:
            ctx.call_depth -= 1

        if isinstance(signal, ReturnSignal):
            return signal.value
        return null_val()
