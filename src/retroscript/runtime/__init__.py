"""
RetroScript runtime - tree-walking interpreter.

This module provides:
- Interpreter: Executes parsed programs on asyncio
- Value: Tagged runtime values shared by reference
- Environment / ExecutionContext: Scopes and per-run state
- BuiltinRegistry: Built-in function implementations
- Governor: Time budget, loop ceiling and cancellation
"""

from .values import (
    Value,
    ValueKind,
    null_val,
    bool_val,
    number_val,
    string_val,
    array_val,
    object_val,
    from_python,
    to_python,
    to_json,
    display,
    values_equal,
)

from .context import (
    Environment,
    ExecutionContext,
    UserFunction,
)

from .builtins import (
    BuiltinFunction,
    BuiltinRegistry,
    get_builtin_registry,
    call_builtin,
)

from .governor import Governor

from .interpreter import (
    Interpreter,
    ExecutionResult,
)

__all__ = [
    # Values
    "Value",
    "ValueKind",
    "null_val",
    "bool_val",
    "number_val",
    "string_val",
    "array_val",
    "object_val",
    "from_python",
    "to_python",
    "to_json",
    "display",
    "values_equal",
    # Context
    "Environment",
    "ExecutionContext",
    "UserFunction",
    # Builtins
    "BuiltinFunction",
    "BuiltinRegistry",
    "get_builtin_registry",
    "call_builtin",
    # Governor
    "Governor",
    # Interpreter
    "Interpreter",
    "ExecutionResult",
]
