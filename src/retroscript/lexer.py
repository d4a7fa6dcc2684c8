"""
Tokenizer for RetroScript.

Converts source text into a flat stream of tokens for the parser.
Supports:
- Line comments (# to end of line, never inside a string)
- Newline and ';' statement terminators
- Implicit line continuation inside () and []
- Double quoted strings with escapes and $var interpolation
- Single quoted strings with escapes and no interpolation
- Decimal numbers with optional fraction and exponent
- $name variable references
- All keywords and operators

The tokenizer never raises. Malformed input becomes an ERROR token whose
value is a human-readable message; the parser reports it as a syntax
error with the token's location.
"""

from typing import List, Optional, Iterator, Tuple
from .tokens import Token, TokenType, SourceLocation, SourceSpan, KEYWORDS


# Escape sequences shared by both quote styles
ESCAPES = {
    'n': '\n',
    't': '\t',
    'r': '\r',
    '\\': '\\',
    '"': '"',
    "'": "'",
    '0': '\0',
}


def _is_digit(ch: str) -> bool:
    return '0' <= ch <= '9'


def _is_name_start(ch: str) -> bool:
    return ch.isalpha() or ch == '_'


def _is_name_char(ch: str) -> bool:
    return ch.isalnum() or ch == '_'


class Lexer:
    """
    Tokenizer for RetroScript.

    Usage:
        lexer = Lexer(source_code)
        tokens = lexer.tokenize()

    Or for streaming:
        lexer = Lexer(source_code)
        for token in lexer:
            process(token)
    """

    def __init__(self, source: str, filename: Optional[str] = None):
        self.source = source
        self.filename = filename
        self.pos = 0            # Current position in source
        self.line = 1           # Current line (1-indexed)
        self.column = 1         # Current column (1-indexed)

        # Bracket nesting for implicit line continuation
        self.group_depth = 0    # Count of ( and [ nesting

    def _location(self) -> SourceLocation:
        """Get current source location."""
        return SourceLocation(self.line, self.column, self.pos, self.filename)

    def _span(self, start: SourceLocation) -> SourceSpan:
        """Create a span from start to current position."""
        return SourceSpan(start, self._location())

    def _peek(self, offset: int = 0) -> str:
        """Look at character at current position + offset without consuming."""
        idx = self.pos + offset
        if idx >= len(self.source):
            return '\0'
        return self.source[idx]

    def _advance(self) -> str:
        """Consume and return current character."""
        if self.pos >= len(self.source):
            return '\0'
        ch = self.source[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _match(self, expected: str) -> bool:
        """Consume character if it matches expected."""
        if self._peek() == expected:
            self._advance()
            return True
        return False

    def _is_at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _skip_comment(self) -> None:
        """Skip a line comment (# to end of line), leaving the newline."""
        while self._peek() != '\n' and not self._is_at_end():
            self._advance()

    def _skip_blanks(self) -> None:
        """Skip spaces, tabs, carriage returns and comments."""
        while True:
            ch = self._peek()
            if ch in ' \t\r':
                self._advance()
            elif ch == '#':
                self._skip_comment()
            else:
                return

    def _make_token(self, token_type: TokenType, value, start: SourceLocation,
                    lexeme: Optional[str] = None) -> Token:
        span = self._span(start)
        if lexeme is None:
            lexeme = self.source[start.offset:self.pos]
        return Token(token_type, value, lexeme, span)

    def _error(self, message: str, start: SourceLocation) -> Token:
        return self._make_token(TokenType.ERROR, message, start)

    def _scan_string(self) -> Token:
        """Scan a quoted string; double quotes collect $var segments."""
        start = self._location()
        quote = self._advance()
        interpolate = quote == '"'

        segments: List[Tuple[str, str]] = []
        chars: List[str] = []

        while not self._is_at_end() and self._peek() != quote:
            ch = self._peek()
            if ch == '\n':
                return self._error("unterminated string literal", start)
            if ch == '\\':
                self._advance()
                if self._is_at_end():
                    break
                escaped = self._advance()
                if escaped == '$':
                    chars.append('$')
                else:
                    chars.append(ESCAPES.get(escaped, escaped))
            elif interpolate and ch == '$' and _is_name_start(self._peek(1)):
                self._advance()  # consume '$'
                if chars:
                    segments.append(("text", ''.join(chars)))
                    chars = []
                segments.append(("var", self._scan_dotted_name()))
            else:
                chars.append(self._advance())

        if self._is_at_end():
            return self._error("unterminated string literal", start)

        self._advance()  # consume closing quote
        if not segments:
            return self._make_token(TokenType.STRING, ''.join(chars), start)
        if chars:
            segments.append(("text", ''.join(chars)))
        return self._make_token(TokenType.TEMPLATE, tuple(segments), start)

    def _scan_dotted_name(self) -> str:
        """Scan name(.name)* following a '$' inside a template string."""
        begin = self.pos
        while _is_name_char(self._peek()):
            self._advance()
        while self._peek() == '.' and _is_name_start(self._peek(1)):
            self._advance()
            while _is_name_char(self._peek()):
                self._advance()
        return self.source[begin:self.pos]

    def _scan_number(self) -> Token:
        """Scan a numeric literal; every number is a double."""
        start = self._location()
        while _is_digit(self._peek()):
            self._advance()

        if self._peek() == '.' and _is_digit(self._peek(1)):
            self._advance()  # consume '.'
            while _is_digit(self._peek()):
                self._advance()

        if self._peek() in 'eE' and (
            _is_digit(self._peek(1))
            or (self._peek(1) in '+-' and _is_digit(self._peek(2)))
        ):
            self._advance()
            if self._peek() in '+-':
                self._advance()
            while _is_digit(self._peek()):
                self._advance()

        lexeme = self.source[start.offset:self.pos]
        return self._make_token(TokenType.NUMBER, float(lexeme), start, lexeme)

    def _scan_variable(self) -> Token:
        """Scan a $name variable reference."""
        start = self._location()
        self._advance()  # consume '$'
        if not _is_name_start(self._peek()):
            return self._error("expected variable name after '$'", start)
        while _is_name_char(self._peek()):
            self._advance()
        lexeme = self.source[start.offset:self.pos]
        return self._make_token(TokenType.VARIABLE, lexeme[1:], start, lexeme)

    def _scan_identifier_or_keyword(self) -> Token:
        start = self._location()
        while _is_name_char(self._peek()):
            self._advance()
        lexeme = self.source[start.offset:self.pos]
        token_type = KEYWORDS.get(lexeme, TokenType.IDENTIFIER)
        return self._make_token(token_type, lexeme, start, lexeme)

    def _scan_token(self) -> Token:
        """Scan the next token."""
        self._skip_blanks()
        # Newlines inside ( ) or [ ] continue the line
        while self.group_depth > 0 and self._peek() == '\n':
            self._advance()
            self._skip_blanks()

        if self._is_at_end():
            return self._make_token(TokenType.EOF, None, self._location(), "")

        start = self._location()
        ch = self._peek()

        if ch == '\n':
            self._advance()
            return self._make_token(TokenType.NEWLINE, None, start, "\\n")

        if ch in '"\'':
            return self._scan_string()

        if _is_digit(ch):
            return self._scan_number()

        if ch == '$':
            return self._scan_variable()

        if _is_name_start(ch):
            return self._scan_identifier_or_keyword()

        self._advance()

        # Two-character operators
        if ch == '=' and self._match('='):
            return self._make_token(TokenType.EQ, "==", start)
        if ch == '!' and self._match('='):
            return self._make_token(TokenType.NE, "!=", start)
        if ch == '<' and self._match('='):
            return self._make_token(TokenType.LE, "<=", start)
        if ch == '>' and self._match('='):
            return self._make_token(TokenType.GE, ">=", start)
        if ch == '&':
            if self._match('&'):
                return self._make_token(TokenType.AND, "&&", start)
            return self._error("unexpected character '&' (did you mean '&&'?)", start)
        if ch == '|':
            if self._match('|'):
                return self._make_token(TokenType.OR, "||", start)
            return self._error("unexpected character '|' (did you mean '||'?)", start)

        # Grouping tracked for implicit line continuation
        if ch == '(':
            self.group_depth += 1
            return self._make_token(TokenType.LPAREN, ch, start)
        if ch == ')':
            self.group_depth = max(0, self.group_depth - 1)
            return self._make_token(TokenType.RPAREN, ch, start)
        if ch == '[':
            self.group_depth += 1
            return self._make_token(TokenType.LBRACKET, ch, start)
        if ch == ']':
            self.group_depth = max(0, self.group_depth - 1)
            return self._make_token(TokenType.RBRACKET, ch, start)

        single_char_tokens = {
            '{': TokenType.LBRACE,
            '}': TokenType.RBRACE,
            '+': TokenType.PLUS,
            '-': TokenType.MINUS,
            '*': TokenType.STAR,
            '/': TokenType.SLASH,
            '%': TokenType.PERCENT,
            '<': TokenType.LT,
            '>': TokenType.GT,
            '=': TokenType.ASSIGN,
            '!': TokenType.NOT,
            ':': TokenType.COLON,
            ';': TokenType.SEMICOLON,
            ',': TokenType.COMMA,
            '.': TokenType.DOT,
        }

        if ch in single_char_tokens:
            return self._make_token(single_char_tokens[ch], ch, start)

        return self._error(f"unexpected character '{ch}'", start)

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source, returning a list of tokens."""
        return list(self)

    def __iter__(self) -> Iterator[Token]:
        """Iterate over tokens."""
        while True:
            token = self._scan_token()
            yield token
            if token.type == TokenType.EOF:
                break


def tokenize(source: str, filename: Optional[str] = None) -> List[Token]:
    """
    Convenience function to tokenize source code.

    Args:
        source: The source code to tokenize
        filename: Optional filename for error messages

    Returns:
        List of tokens ending with EOF. Lexical problems are ERROR tokens.
    """
    lexer = Lexer(source, filename)
    return lexer.tokenize()
