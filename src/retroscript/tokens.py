"""
Token types for the RetroScript tokenizer.

Error code ranges:
- E0xx: Lexical errors (reported through ERROR tokens)
- E1xx: Parser errors
- E4xx: Runtime errors
- E5xx: Resource limit and cancellation errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional


class TokenType(Enum):
    """All token types recognized by the tokenizer."""

    # --- Literals ---
    NUMBER = auto()             # 42, 3.14, 1e-3 (always a float)
    STRING = auto()             # "hello", 'raw'
    TEMPLATE = auto()           # "hello $name" (double quotes, interpolated)

    # --- Names ---
    IDENTIFIER = auto()         # bare words, function and command names
    VARIABLE = auto()           # $name

    # --- Statement keywords ---
    SET = auto()                # set
    PRINT = auto()              # print / log
    IF = auto()                 # if
    THEN = auto()               # then
    ELSE = auto()               # else
    LOOP = auto()               # loop / repeat
    WHILE = auto()              # while
    FOREACH = auto()            # foreach / for
    IN = auto()                 # in
    BREAK = auto()              # break
    CONTINUE = auto()           # continue
    RETURN = auto()             # return
    DEF = auto()                # def / func / function
    CALL = auto()               # call
    TRY = auto()                # try
    CATCH = auto()              # catch
    ON = auto()                 # on
    EMIT = auto()               # emit
    ALERT = auto()              # alert
    NOTIFY = auto()             # notify
    CONFIRM = auto()            # confirm
    PROMPT = auto()             # prompt
    INTO = auto()               # into
    DEFAULT = auto()            # default
    WRITE = auto()              # write
    TO = auto()                 # to
    READ = auto()               # read
    MKDIR = auto()              # mkdir
    DELETE = auto()             # delete / rm
    LAUNCH = auto()             # launch / open
    WITH = auto()               # with
    CLOSE = auto()              # close
    WAIT = auto()               # wait / sleep
    FOCUS = auto()              # focus
    MINIMIZE = auto()           # minimize
    MAXIMIZE = auto()           # maximize
    PLAY = auto()               # play

    # --- Literal keywords ---
    TRUE = auto()               # true
    FALSE = auto()              # false
    NULL = auto()               # null

    # --- Arithmetic operators ---
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # *
    SLASH = auto()              # /
    PERCENT = auto()            # %

    # --- Comparison operators ---
    EQ = auto()                 # ==
    NE = auto()                 # !=
    LT = auto()                 # <
    GT = auto()                 # >
    LE = auto()                 # <=
    GE = auto()                 # >=

    # --- Logical operators ---
    AND = auto()                # && / and
    OR = auto()                 # || / or
    NOT = auto()                # ! / not

    # --- Assignment ---
    ASSIGN = auto()             # =

    # --- Delimiters ---
    LBRACE = auto()             # {
    RBRACE = auto()             # }
    LPAREN = auto()             # (
    RPAREN = auto()             # )
    LBRACKET = auto()           # [
    RBRACKET = auto()           # ]
    COMMA = auto()              # ,
    COLON = auto()              # :
    DOT = auto()                # .
    SEMICOLON = auto()          # ; (statement terminator)

    # --- Layout ---
    NEWLINE = auto()            # statement terminator

    # --- Special ---
    ERROR = auto()              # malformed input, value holds the message
    EOF = auto()                # end of input


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


@dataclass(frozen=True)
class Token:
    """A single token from the tokenizer."""
    type: TokenType
    value: Any              # float for NUMBER, str for names, segments for TEMPLATE
    lexeme: str             # The original source text
    span: SourceSpan        # Location in source

    @property
    def text(self) -> str:
        return self.lexeme

    @property
    def line(self) -> int:
        return self.span.start.line

    @property
    def column(self) -> int:
        return self.span.start.column

    def is_keyword(self) -> bool:
        return self.type in KEYWORD_TYPES

    def __str__(self) -> str:
        if self.type in (TokenType.NUMBER, TokenType.STRING, TokenType.IDENTIFIER,
                         TokenType.VARIABLE, TokenType.ERROR):
            return f"{self.type.name}({self.value!r})"
        return self.type.name


# Keyword mapping - aliases share a token type
KEYWORDS: dict[str, TokenType] = {
    "set": TokenType.SET,
    "print": TokenType.PRINT,
    "log": TokenType.PRINT,
    "if": TokenType.IF,
    "then": TokenType.THEN,
    "else": TokenType.ELSE,
    "loop": TokenType.LOOP,
    "repeat": TokenType.LOOP,
    "while": TokenType.WHILE,
    "foreach": TokenType.FOREACH,
    "for": TokenType.FOREACH,
    "in": TokenType.IN,
    "break": TokenType.BREAK,
    "continue": TokenType.CONTINUE,
    "return": TokenType.RETURN,
    "def": TokenType.DEF,
    "func": TokenType.DEF,
    "function": TokenType.DEF,
    "call": TokenType.CALL,
    "try": TokenType.TRY,
    "catch": TokenType.CATCH,
    "on": TokenType.ON,
    "emit": TokenType.EMIT,
    "alert": TokenType.ALERT,
    "notify": TokenType.NOTIFY,
    "confirm": TokenType.CONFIRM,
    "prompt": TokenType.PROMPT,
    "into": TokenType.INTO,
    "default": TokenType.DEFAULT,
    "write": TokenType.WRITE,
    "to": TokenType.TO,
    "read": TokenType.READ,
    "mkdir": TokenType.MKDIR,
    "delete": TokenType.DELETE,
    "rm": TokenType.DELETE,
    "launch": TokenType.LAUNCH,
    "open": TokenType.LAUNCH,
    "with": TokenType.WITH,
    "close": TokenType.CLOSE,
    "wait": TokenType.WAIT,
    "sleep": TokenType.WAIT,
    "focus": TokenType.FOCUS,
    "minimize": TokenType.MINIMIZE,
    "maximize": TokenType.MAXIMIZE,
    "play": TokenType.PLAY,

    # Logical operators (word form)
    "and": TokenType.AND,
    "or": TokenType.OR,
    "not": TokenType.NOT,

    # Literals (Python capitalisation accepted too)
    "true": TokenType.TRUE,
    "True": TokenType.TRUE,
    "false": TokenType.FALSE,
    "False": TokenType.FALSE,
    "null": TokenType.NULL,
}

KEYWORD_TYPES: frozenset = frozenset(KEYWORDS.values())

# Tokens that end a statement
TERMINATORS: frozenset = frozenset({
    TokenType.NEWLINE, TokenType.SEMICOLON, TokenType.RBRACE, TokenType.EOF,
})
