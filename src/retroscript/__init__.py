"""
RetroScript - the embedded script engine of the RetrOS desktop.

This package provides:
- Lexer: Tokenizes script source
- Parser: Builds the statement tree from tokens
- Interpreter: Runs programs on asyncio under a governor
- ScriptEngine: Parse, run, cancel and autoexec against host collaborators

Usage:
    from retroscript import ScriptEngine

    engine = ScriptEngine()
    result = await engine.run('''
        def greet($name) {
            return "Hello, " + $name
        }
        print call greet("World")
    ''')
    assert result.output == ["Hello, World"]
"""

try:
    from importlib.metadata import PackageNotFoundError, version
except ModuleNotFoundError:  # pragma: no cover
    from importlib_metadata import PackageNotFoundError, version

try:
    __version__ = version("retroscript")
except PackageNotFoundError:  # pragma: no cover - handled when package not installed
    __version__ = "unknown"

from .tokens import (
    Token,
    TokenType,
    SourceLocation,
    SourceSpan,
    KEYWORDS,
)

from .lexer import (
    Lexer,
    tokenize,
)

from .parser import (
    Parser,
    parse,
    parse_expression,
)

from .ast import (
    # Base
    AstNode,
    AstVisitor,
    # Expressions
    Expression,
    Literal,
    VariableRef,
    BinaryOp,
    UnaryOp,
    LogicalOp,
    Comparison,
    FunctionCall,
    ArrayLiteral,
    ObjectLiteral,
    Interpolated,
    PropertyAccess,
    # Statements
    Statement,
    Block,
    SetStatement,
    PrintStatement,
    IfStatement,
    LoopStatement,
    ForeachStatement,
    BreakStatement,
    ContinueStatement,
    ReturnStatement,
    FunctionDef,
    CommandStatement,
    TryCatch,
    EventOn,
    EventEmit,
    ExpressionStatement,
    Program,
    # Helpers
    format_ast,
    print_ast,
)

from .errors import (
    Diagnostic,
    ScriptError,
    ScriptSyntaxError,
    ScriptRuntimeError,
    UndefinedVariableError,
    ArgumentError,
    CollaboratorError,
    ResourceLimitError,
    LoopLimitError,
    ScriptTimeoutError,
    CallDepthError,
    CancellationError,
)

from .config import (
    ConfigError,
    EngineConfig,
    EngineLimits,
    load_config,
)

from .host import (
    HostError,
    HostServices,
    StateStore,
    InMemoryStateStore,
    CommandDispatcher,
    CommandRegistry,
    EventBus,
    LocalEventBus,
    FileAccess,
    InMemoryFileSystem,
    LocalFileSystem,
    DialogService,
    HeadlessDialogs,
    Clock,
    SystemClock,
    SoundPlayer,
    EventSoundPlayer,
)

from .runtime import (
    Interpreter,
    ExecutionResult,
    Value,
    ValueKind,
    Environment,
    ExecutionContext,
    BuiltinFunction,
    BuiltinRegistry,
    get_builtin_registry,
    Governor,
)

from .engine import (
    ScriptEngine,
    ScriptRun,
    run_script,
)

__all__ = [
    "__version__",
    # Tokens
    "Token",
    "TokenType",
    "SourceLocation",
    "SourceSpan",
    "KEYWORDS",
    # Lexer / parser
    "Lexer",
    "tokenize",
    "Parser",
    "parse",
    "parse_expression",
    # AST
    "AstNode",
    "AstVisitor",
    "Expression",
    "Literal",
    "VariableRef",
    "BinaryOp",
    "UnaryOp",
    "LogicalOp",
    "Comparison",
    "FunctionCall",
    "ArrayLiteral",
    "ObjectLiteral",
    "Interpolated",
    "PropertyAccess",
    "Statement",
    "Block",
    "SetStatement",
    "PrintStatement",
    "IfStatement",
    "LoopStatement",
    "ForeachStatement",
    "BreakStatement",
    "ContinueStatement",
    "ReturnStatement",
    "FunctionDef",
    "CommandStatement",
    "TryCatch",
    "EventOn",
    "EventEmit",
    "ExpressionStatement",
    "Program",
    "format_ast",
    "print_ast",
    # Errors
    "Diagnostic",
    "ScriptError",
    "ScriptSyntaxError",
    "ScriptRuntimeError",
    "UndefinedVariableError",
    "ArgumentError",
    "CollaboratorError",
    "ResourceLimitError",
    "LoopLimitError",
    "ScriptTimeoutError",
    "CallDepthError",
    "CancellationError",
    # Config
    "ConfigError",
    "EngineConfig",
    "EngineLimits",
    "load_config",
    # Host
    "HostError",
    "HostServices",
    "StateStore",
    "InMemoryStateStore",
    "CommandDispatcher",
    "CommandRegistry",
    "EventBus",
    "LocalEventBus",
    "FileAccess",
    "InMemoryFileSystem",
    "LocalFileSystem",
    "DialogService",
    "HeadlessDialogs",
    "Clock",
    "SystemClock",
    "SoundPlayer",
    "EventSoundPlayer",
    # Runtime
    "Interpreter",
    "ExecutionResult",
    "Value",
    "ValueKind",
    "Environment",
    "ExecutionContext",
    "BuiltinFunction",
    "BuiltinRegistry",
    "get_builtin_registry",
    "Governor",
    # Engine
    "ScriptEngine",
    "ScriptRun",
    "run_script",
]
