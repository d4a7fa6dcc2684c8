"""
Environments and execution context for the RetroScript interpreter.

Environments form a parent-linked chain. A function call gets a child of
the environment the function was defined in, and is dropped on return.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from .values import Value
from ..errors import UndefinedVariableError

if TYPE_CHECKING:
    from ..ast import FunctionDef, Program
    from ..host import HostServices
    from ..config import EngineLimits
    from .governor import Governor


class Environment:
    """
    A single scope of variable bindings linked to its parent.

    `function_boundary` marks the root environment and every call frame;
    assignments to names that no scope declares land in the nearest one.
    """

    def __init__(self, parent: Optional["Environment"] = None,
                 function_boundary: bool = False, name: str = "block"):
        self.bindings: Dict[str, Value] = {}
        self.parent = parent
        self.function_boundary = function_boundary or parent is None
        self.name = name  # For debugging

    def __repr__(self) -> str:
        return f"Environment({self.name}, {sorted(self.bindings)})"

    def extend(self, name: str = "block", function_boundary: bool = False) -> "Environment":
        """Create a child environment."""
        return Environment(self, function_boundary=function_boundary, name=name)

    def lookup(self, name: str) -> Optional["Environment"]:
        """Find the nearest environment that declares name."""
        env = self
        while env is not None:
            if name in env.bindings:
                return env
            env = env.parent
        return None

    def get(self, name: str) -> Value:
        """Look up a variable in this scope or parent scopes."""
        env = self.lookup(name)
        if env is None:
            raise UndefinedVariableError(name)
        return env.bindings[name]

    def contains(self, name: str) -> bool:
        return self.lookup(name) is not None

    def declare(self, name: str, value: Value) -> None:
        """Bind name in this scope, shadowing any outer binding."""
        self.bindings[name] = value

    def assign(self, name: str, value: Value) -> None:
        """
        Update the nearest scope that declares name.

        Undeclared names are declared in the nearest function boundary: the
        root at top level, the call frame inside a function.
        """
        env = self.lookup(name)
        if env is None:
            env = self
            while not env.function_boundary:
                env = env.parent
        env.bindings[name] = value


@dataclass
class UserFunction:
    """A script-defined function and the environment it closes over."""
    definition: "FunctionDef"
    closure: Environment

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def params(self) -> List[str]:
        return self.definition.params


@dataclass
class ExecutionContext:
    """
    Everything one script run owns.

    Tracks:
    - Root environment and function table
    - Event subscriptions and the queue of pending handler invocations
    - Captured output lines
    - The governor supervising time, loops and cancellation
    """
    program: "Program"
    host: "HostServices"
    limits: "EngineLimits"
    governor: "Governor"
    script_id: str = "script"
    root: Environment = field(default_factory=lambda: Environment(name="global"))
    functions: Dict[str, UserFunction] = field(default_factory=dict)
    subscriptions: List[Any] = field(default_factory=list)
    handler_queue: "asyncio.Queue" = field(default_factory=asyncio.Queue)
    output: List[str] = field(default_factory=list)
    call_depth: int = 0
    closed: bool = False

    def source_line(self, line: int) -> Optional[str]:
        return self.program.source_line(line)

    def revoke_subscriptions(self) -> None:
        """Unsubscribe every `on` handler this run registered."""
        subscriptions, self.subscriptions = self.subscriptions, []
        for token in subscriptions:
            self.host.events.unsubscribe(token)
