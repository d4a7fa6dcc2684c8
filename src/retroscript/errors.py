"""
Script errors and diagnostic rendering.

Error code ranges:
- E0xx: Lexical errors
- E1xx: Parser errors
- E4xx: Runtime errors (catchable by try/catch)
- E5xx: Resource limits and cancellation (never catchable)
"""

from dataclasses import dataclass, field
from typing import Optional, List
from .tokens import SourceSpan


@dataclass
class Diagnostic:
    """A single diagnostic message with its source location."""
    code: str                       # E001, E101, etc.
    message: str                    # Human-readable message
    span: Optional[SourceSpan] = None
    source_line: Optional[str] = None   # The actual line of source code
    hints: List[str] = field(default_factory=list)

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = []

        if self.span is not None:
            parts.append(f"{self.span.start}: error[{self.code}]: {self.message}")
        else:
            parts.append(f"error[{self.code}]: {self.message}")

        # Source line with caret
        if show_source and self.span is not None and self.source_line is not None:
            parts.append("  |")
            line_num = str(self.span.start.line)
            parts.append(f"{line_num:>3} | {self.source_line}")

            col = self.span.start.column
            end_col = self.span.end.column if self.span.start.line == self.span.end.line else len(self.source_line) + 1
            underline_len = max(1, end_col - col)
            parts.append(f"    | {' ' * (col - 1)}{'^' * underline_len}")

        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        data = {
            "code": self.code,
            "message": self.message,
            "hints": self.hints,
        }
        if self.span is not None:
            data["range"] = {
                "start": {
                    "line": self.span.start.line,
                    "column": self.span.start.column,
                    "offset": self.span.start.offset,
                },
                "end": {
                    "line": self.span.end.line,
                    "column": self.span.end.column,
                    "offset": self.span.end.offset,
                },
            }
        return data


class ScriptError(Exception):
    """Base exception for all script failures."""

    kind = "error"
    default_code = "E000"

    def __init__(self, message: str, span: Optional[SourceSpan] = None,
                 source_line: Optional[str] = None, code: Optional[str] = None,
                 hints: Optional[List[str]] = None):
        self.message = message
        self.span = span
        self.source_line = source_line
        self.code = code or self.default_code
        self.hints = list(hints or [])
        super().__init__(message)

    @property
    def line(self) -> Optional[int]:
        if self.span is None:
            return None
        return self.span.start.line

    @property
    def diagnostic(self) -> Diagnostic:
        return Diagnostic(
            code=self.code,
            message=self.message,
            span=self.span,
            source_line=self.source_line,
            hints=self.hints,
        )

    def locate(self, span: SourceSpan, source_line: Optional[str] = None) -> "ScriptError":
        """Attach a location unless a more precise one is already set."""
        if self.span is None:
            self.span = span
            self.source_line = source_line
        return self

    def __str__(self) -> str:
        return self.diagnostic.format()


class ScriptSyntaxError(ScriptError):
    """Malformed tokens or statement structure (E0xx, E1xx). Always fatal."""
    kind = "syntax"
    default_code = "E100"


class ScriptRuntimeError(ScriptError):
    """A fault while executing a statement (E4xx). Catchable by try/catch."""
    kind = "runtime"
    default_code = "E400"


class UndefinedVariableError(ScriptRuntimeError):
    """Lookup of a name that no enclosing scope declares."""
    default_code = "E401"

    def __init__(self, name: str, span: Optional[SourceSpan] = None):
        self.name = name
        super().__init__(f"undefined variable '${name}'", span)


class ArgumentError(ScriptRuntimeError):
    """Wrong arity or argument kind for a builtin, function or operator."""
    default_code = "E402"


class CollaboratorError(ScriptRuntimeError):
    """A host collaborator (files, commands, state, dialogs) failed."""
    default_code = "E403"


class ResourceLimitError(ScriptError):
    """Host-protective termination (E5xx). Never catchable by try/catch."""
    kind = "resource"
    default_code = "E500"


class LoopLimitError(ResourceLimitError):
    """A conditional loop exceeded the iteration ceiling."""
    default_code = "E501"


class ScriptTimeoutError(ResourceLimitError):
    """The wall-clock budget of the run expired."""
    default_code = "E502"


class CallDepthError(ResourceLimitError):
    """User function calls nested deeper than the configured limit."""
    default_code = "E503"


class CancellationError(ScriptError):
    """The host aborted the run. Silent and never catchable."""
    kind = "cancelled"
    default_code = "E510"


# --- Lexer and parser error codes ---

def error_lexical(message: str, span: SourceSpan, source_line: str = None) -> ScriptSyntaxError:
    """E001: Malformed input reported by the tokenizer."""
    return ScriptSyntaxError(message, span, source_line, code="E001")


def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: str = None) -> ScriptSyntaxError:
    """E101: Unexpected token."""
    return ScriptSyntaxError(f"expected {expected}, found {found}", span, source_line, code="E101")


def error_unexpected_eof(expected: str, span: SourceSpan, source_line: str = None) -> ScriptSyntaxError:
    """E102: Unexpected end of input."""
    return ScriptSyntaxError(f"unexpected end of input, expected {expected}", span,
                             source_line, code="E102")


def error_invalid_target(span: SourceSpan, source_line: str = None) -> ScriptSyntaxError:
    """E103: Assignment to something that is not a variable or property."""
    return ScriptSyntaxError(
        "invalid assignment target", span, source_line, code="E103",
        hints=["assign to $name, $name.key or $name[index]"],
    )


def error_misplaced_control(keyword: str, span: SourceSpan,
                            source_line: str = None) -> ScriptSyntaxError:
    """E104: break/continue outside of a loop."""
    return ScriptSyntaxError(f"'{keyword}' outside of a loop", span, source_line, code="E104")


# --- Runtime error codes ---

def error_type(message: str) -> ArgumentError:
    """E402: Operand or argument of the wrong kind."""
    return ArgumentError(message)


def error_arity(name: str, expected: str, got: int) -> ArgumentError:
    """E402: Wrong number of arguments."""
    plural = "" if expected == "1" else "s"
    return ArgumentError(f"{name}() expects {expected} argument{plural}, got {got}")


def error_unknown_function(name: str) -> ScriptRuntimeError:
    """E404: Call of a name that is neither a user function nor a builtin."""
    return ScriptRuntimeError(f"unknown function '{name}'", code="E404")
