"""
Syntax tree node definitions for RetroScript.

The tree is produced by the parser and walked directly by the interpreter.
Every node carries the span of the source text it came from so runtime
errors can report the line of the innermost failing statement.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Union, Any, Dict, Tuple
from abc import ABC
from .tokens import SourceSpan, TokenType


# =============================================================================
# Base Classes
# =============================================================================

@dataclass
class AstNode(ABC):
    """Base class for all syntax tree nodes."""
    span: SourceSpan  # Source location for error reporting

    def accept(self, visitor: "AstVisitor") -> Any:
        """Accept a visitor for traversal."""
        method_name = f"visit_{self.__class__.__name__}"
        method = getattr(visitor, method_name, visitor.generic_visit)
        return method(self)


class AstVisitor(ABC):
    """Base class for syntax tree visitors."""

    def generic_visit(self, node: AstNode) -> Any:
        """Default visit method."""
        raise NotImplementedError(f"No visitor for {node.__class__.__name__}")


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class Expression(AstNode):
    """Base class for all expressions."""
    pass


@dataclass
class Literal(Expression):
    """A literal value: None, bool, float or str (bare words included)."""
    value: Union[None, bool, float, str]


@dataclass
class VariableRef(Expression):
    """A $name reference."""
    name: str


@dataclass
class BinaryOp(Expression):
    """An arithmetic operation (+ - * / %)."""
    left: Expression
    operator: TokenType
    right: Expression


@dataclass
class UnaryOp(Expression):
    """Negation (-x) or logical not (!x, not x)."""
    operator: TokenType
    operand: Expression


@dataclass
class LogicalOp(Expression):
    """A short-circuit && or || operation."""
    left: Expression
    operator: TokenType  # AND or OR
    right: Expression


@dataclass
class Comparison(Expression):
    """An equality or ordering comparison."""
    left: Expression
    operator: TokenType  # EQ, NE, LT, GT, LE, GE
    right: Expression


@dataclass
class FunctionCall(Expression):
    """A call of a user function or builtin: name(a, b) or call name a b."""
    name: str
    arguments: List[Expression] = field(default_factory=list)


@dataclass
class ArrayLiteral(Expression):
    """An array literal (e.g., [1, 2, 3])."""
    elements: List[Expression] = field(default_factory=list)


@dataclass
class ObjectLiteral(Expression):
    """An object literal (e.g., {name: "x", size: 3}); entries keep source order."""
    entries: List[Tuple[str, Expression]] = field(default_factory=list)


@dataclass
class Interpolated(Expression):
    """A template string; segments are plain text or expressions to display."""
    segments: List[Union[str, Expression]] = field(default_factory=list)


@dataclass
class PropertyAccess(Expression):
    """Member (obj.key) or index (arr[expr]) access."""
    base: Expression
    key: Expression


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class Statement(AstNode):
    """Base class for all statements."""
    pass


@dataclass
class Block(Statement):
    """A braced sequence of statements."""
    statements: List[Statement] = field(default_factory=list)


@dataclass
class SetStatement(Statement):
    """Assignment to a variable or to a property of an array or object.

    Syntax:
        set $name = expr
        set $obj.key = expr
        set $arr[index] = expr
        $name = expr
    """
    target: Expression  # VariableRef or PropertyAccess
    value: Expression


@dataclass
class PrintStatement(Statement):
    """print/log message."""
    message: Expression


@dataclass
class IfStatement(Statement):
    """if cond [then] { } [else { } | else if ...]."""
    condition: Expression
    then_block: Block
    else_block: Optional[Block] = None


@dataclass
class LoopStatement(Statement):
    """A counted loop (loop N) or a conditional loop (loop while / while).

    Exactly one of count and condition is set.
    """
    body: Block
    count: Optional[Expression] = None
    condition: Optional[Expression] = None


@dataclass
class ForeachStatement(Statement):
    """foreach $item[, $index] in expr { }."""
    item_var: str
    iterable: Expression
    body: Block
    index_var: Optional[str] = None


@dataclass
class BreakStatement(Statement):
    pass


@dataclass
class ContinueStatement(Statement):
    pass


@dataclass
class ReturnStatement(Statement):
    value: Optional[Expression] = None


@dataclass
class FunctionDef(Statement):
    """A user function definition.

    Syntax:
        def name($a, $b) {
            return $a + $b
        }
    """
    name: str
    params: List[str]
    body: Block


@dataclass
class CommandStatement(Statement):
    """A host-facing command (launch, wait, write, confirm, ...).

    Arguments are named expressions; `into` names the variable that
    receives the result for commands that produce one.
    """
    command: str
    arguments: Dict[str, Expression] = field(default_factory=dict)
    into: Optional[str] = None


@dataclass
class TryCatch(Statement):
    """try { } catch [$err] { }."""
    try_block: Block
    catch_block: Block
    error_var: Optional[str] = None


@dataclass
class EventOn(Statement):
    """on event-name { } handler registration."""
    event_name: Expression
    body: Block


@dataclass
class EventEmit(Statement):
    """emit event-name [payload]."""
    event_name: Expression
    payload: Optional[Expression] = None


@dataclass
class ExpressionStatement(Statement):
    """An expression evaluated for its effect, e.g. `call f 1 2`."""
    expression: Expression


@dataclass
class Program(AstNode):
    """A complete parsed script."""
    statements: List[Statement] = field(default_factory=list)
    source: str = ""

    def source_line(self, line: int) -> Optional[str]:
        """Return the text of a 1-indexed source line, if present."""
        lines = self.source.splitlines()
        if 1 <= line <= len(lines):
            return lines[line - 1]
        return None


# =============================================================================
# Visitor Helpers
# =============================================================================

class FormatVisitor(AstVisitor):
    """Debug visitor that renders the tree structure as indented text."""

    def __init__(self, indent: int = 0):
        self.indent = indent
        self.lines: List[str] = []

    def _emit(self, text: str) -> None:
        self.lines.append("  " * self.indent + text)

    def _nested(self, node: AstNode) -> None:
        child = FormatVisitor(self.indent + 2)
        child.generic_visit(node)
        self.lines.extend(child.lines)

    def generic_visit(self, node: AstNode) -> List[str]:
        self._emit(f"{node.__class__.__name__}")
        for name, value in node.__dict__.items():
            if name in ("span", "source"):
                continue
            if isinstance(value, AstNode):
                self._emit(f"  {name}:")
                self._nested(value)
            elif isinstance(value, (list, dict)):
                items = value.items() if isinstance(value, dict) else enumerate(value)
                self._emit(f"  {name}: [")
                for key, item in items:
                    if isinstance(item, tuple):
                        key, item = item
                    if isinstance(item, AstNode):
                        if isinstance(key, str):
                            self._emit(f"    {key}:")
                        self._nested(item)
                    else:
                        self._emit(f"    {item!r}")
                self._emit("  ]")
            elif isinstance(value, TokenType):
                self._emit(f"  {name}: {value.name}")
            else:
                self._emit(f"  {name}: {value!r}")
        return self.lines


def format_ast(node: AstNode) -> str:
    """Render a syntax tree as indented text."""
    return "\n".join(FormatVisitor().generic_visit(node))


def print_ast(node: AstNode) -> None:
    """Print a syntax tree for debugging."""
    print(format_ast(node))
