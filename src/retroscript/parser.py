"""
Recursive descent parser for RetroScript.

Converts a token stream into a syntax tree. Statements are line oriented:
a newline, ';' or a closing brace ends a statement, and a statement that
ends with a braced block needs no terminator of its own.
"""

import re
from typing import List, Optional, Tuple, FrozenSet

from .tokens import Token, TokenType, SourceSpan, TERMINATORS, KEYWORD_TYPES
from .ast import (
    # Expressions
    Expression, Literal, VariableRef, BinaryOp, UnaryOp, LogicalOp,
    Comparison, FunctionCall, ArrayLiteral, ObjectLiteral, Interpolated,
    PropertyAccess,
    # Statements
    Statement, Block, SetStatement, PrintStatement, IfStatement,
    LoopStatement, ForeachStatement, BreakStatement, ContinueStatement,
    ReturnStatement, FunctionDef, CommandStatement, TryCatch, EventOn,
    EventEmit, ExpressionStatement, Program,
)
from .errors import (
    ScriptSyntaxError,
    error_lexical,
    error_unexpected_token,
    error_unexpected_eof,
    error_invalid_target,
    error_misplaced_control,
)


# $name or $name.key.key inside raw message text
RAW_VARIABLE = re.compile(r"\$([A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*)")

COMPARISON_OPS = frozenset({
    TokenType.EQ, TokenType.NE, TokenType.LT,
    TokenType.GT, TokenType.LE, TokenType.GE,
})

# Tokens that may be glued together into a word such as window:open or sound:*
WORD_TYPES = KEYWORD_TYPES | frozenset({
    TokenType.IDENTIFIER, TokenType.NUMBER, TokenType.COLON,
    TokenType.MINUS, TokenType.STAR, TokenType.DOT, TokenType.SLASH,
})

# Tokens that may begin an argument of `call name a b` or a generic command
ARGUMENT_START = frozenset({
    TokenType.NUMBER, TokenType.STRING, TokenType.TEMPLATE,
    TokenType.TRUE, TokenType.FALSE, TokenType.NULL,
    TokenType.VARIABLE, TokenType.IDENTIFIER,
    TokenType.LPAREN, TokenType.LBRACKET,
    TokenType.MINUS, TokenType.NOT,
})

# Keywords that never name a function even when followed by '('
LITERAL_KEYWORDS = frozenset({
    TokenType.TRUE, TokenType.FALSE, TokenType.NULL,
    TokenType.AND, TokenType.OR, TokenType.NOT,
})


def _adjacent(left: Token, right: Token) -> bool:
    """True if right starts exactly where left ends (no whitespace between)."""
    return left.span.end.offset == right.span.start.offset


class Parser:
    """
    Recursive descent parser for RetroScript.

    Usage:
        parser = Parser(tokens, source=source)
        program = parser.parse_program()

    Expressions use precedence climbing:
        Lowest:  || or
                 && and
                 == != < > <= >=
                 + -
                 * / %
                 unary - ! not
        Highest: postfix .key and [index]
    """

    def __init__(self, tokens: List[Token], filename: Optional[str] = None,
                 source: Optional[str] = None):
        self.tokens = tokens
        self.filename = filename
        self.source = source  # Original source code for raw message text
        self.pos = 0
        self.loop_depth = 0
        self._lines = source.splitlines() if source is not None else []

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        """Get current token."""
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        """Peek at token at current position + offset."""
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[idx]

    def _previous(self) -> Token:
        return self.tokens[max(0, self.pos - 1)]

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        return self._current().type == token_type

    def _check_any(self, token_types) -> bool:
        return self._current().type in token_types

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Consume token of expected type, or raise error."""
        if self._check(token_type):
            return self._advance()
        self._error(expected)

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        """Consume token if it matches any of the given types."""
        if self._current().type in token_types:
            return self._advance()
        return None

    def _skip_newlines(self) -> None:
        while self._check(TokenType.NEWLINE):
            self._advance()

    def _skip_terminators(self) -> None:
        while self._check_any((TokenType.NEWLINE, TokenType.SEMICOLON)):
            self._advance()

    def _at_terminator(self, stops: FrozenSet[TokenType] = TERMINATORS) -> bool:
        return self._current().type in stops

    def _source_line(self, token: Token) -> Optional[str]:
        line = token.span.start.line
        if 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return None

    def _error(self, expected: str) -> None:
        """Raise a syntax error at the current token."""
        token = self._current()
        line = self._source_line(token)
        if token.type == TokenType.ERROR:
            raise error_lexical(token.value, token.span, line)
        if token.type == TokenType.EOF:
            raise error_unexpected_eof(expected, token.span, line)
        found = repr(token.lexeme) if token.lexeme else token.type.name
        raise error_unexpected_token(expected, found, token.span, line)

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to the end of the previous token."""
        end_token = self._previous()
        if end_token.span.end.offset < start.span.start.offset:
            end_token = start
        return SourceSpan(start.span.start, end_token.span.end)

    def _end_statement(self) -> None:
        """Require a statement terminator unless the statement ended in a block."""
        if self._match(TokenType.NEWLINE, TokenType.SEMICOLON):
            return
        if self._check_any((TokenType.RBRACE, TokenType.EOF)):
            return
        if self.pos > 0 and self._previous().type == TokenType.RBRACE:
            return
        self._error("end of statement")

    # =========================================================================
    # Expressions
    # =========================================================================

    def parse_expression(self) -> Expression:
        """Parse one expression, leaving the cursor on the first token after it."""
        return self._parse_or()

    def _parse_or(self) -> Expression:
        start = self._current()
        left = self._parse_and()
        while self._match(TokenType.OR):
            right = self._parse_and()
            left = LogicalOp(span=self._span_from(start), left=left,
                             operator=TokenType.OR, right=right)
        return left

    def _parse_and(self) -> Expression:
        start = self._current()
        left = self._parse_comparison()
        while self._match(TokenType.AND):
            right = self._parse_comparison()
            left = LogicalOp(span=self._span_from(start), left=left,
                             operator=TokenType.AND, right=right)
        return left

    def _parse_comparison(self) -> Expression:
        start = self._current()
        left = self._parse_additive()
        while self._check_any(COMPARISON_OPS):
            op = self._advance().type
            right = self._parse_additive()
            left = Comparison(span=self._span_from(start), left=left, operator=op, right=right)
        return left

    def _parse_additive(self) -> Expression:
        start = self._current()
        left = self._parse_multiplicative()
        while self._check_any((TokenType.PLUS, TokenType.MINUS)):
            op = self._advance().type
            right = self._parse_multiplicative()
            left = BinaryOp(span=self._span_from(start), left=left, operator=op, right=right)
        return left

    def _parse_multiplicative(self) -> Expression:
        start = self._current()
        left = self._parse_unary()
        while self._check_any((TokenType.STAR, TokenType.SLASH, TokenType.PERCENT)):
            op = self._advance().type
            right = self._parse_unary()
            left = BinaryOp(span=self._span_from(start), left=left, operator=op, right=right)
        return left

    def _parse_unary(self) -> Expression:
        start = self._current()
        if self._check_any((TokenType.MINUS, TokenType.NOT)):
            op = self._advance().type
            operand = self._parse_unary()
            return UnaryOp(span=self._span_from(start), operator=op, operand=operand)
        return self._parse_postfix()

    def _parse_postfix(self) -> Expression:
        """Parse a primary followed by directly attached .key or [index] accessors."""
        start = self._current()
        expr = self._parse_primary()
        while True:
            token = self._current()
            if not _adjacent(self._previous(), token):
                break
            if token.type == TokenType.DOT:
                self._advance()
                key = self._parse_member_name()
                expr = PropertyAccess(span=self._span_from(start), base=expr, key=key)
            elif token.type == TokenType.LBRACKET:
                self._advance()
                index = self.parse_expression()
                self._consume(TokenType.RBRACKET, "']'")
                expr = PropertyAccess(span=self._span_from(start), base=expr, key=index)
            else:
                break
        return expr

    def _parse_member_name(self) -> Literal:
        token = self._current()
        if token.type == TokenType.IDENTIFIER or token.type in KEYWORD_TYPES:
            self._advance()
            return Literal(span=token.span, value=token.lexeme)
        self._error("property name")

    def _parse_primary(self) -> Expression:
        token = self._current()

        if token.type == TokenType.NUMBER:
            self._advance()
            return Literal(span=token.span, value=token.value)

        if token.type == TokenType.STRING:
            self._advance()
            return Literal(span=token.span, value=token.value)

        if token.type == TokenType.TEMPLATE:
            self._advance()
            return self._template(token)

        if token.type == TokenType.TRUE:
            self._advance()
            return Literal(span=token.span, value=True)

        if token.type == TokenType.FALSE:
            self._advance()
            return Literal(span=token.span, value=False)

        if token.type == TokenType.NULL:
            self._advance()
            return Literal(span=token.span, value=None)

        if token.type == TokenType.VARIABLE:
            self._advance()
            return VariableRef(span=token.span, name=token.value)

        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self.parse_expression()
            self._consume(TokenType.RPAREN, "')'")
            return expr

        if token.type == TokenType.LBRACKET:
            return self._parse_array_literal()

        if token.type == TokenType.LBRACE:
            return self._parse_object_literal()

        if token.type == TokenType.CALL:
            return self._parse_call_command()

        if token.type == TokenType.IDENTIFIER or (
            token.type in KEYWORD_TYPES and token.type not in LITERAL_KEYWORDS
            and self._peek(1).type == TokenType.LPAREN
        ):
            self._advance()
            if self._check(TokenType.LPAREN) and _adjacent(token, self._current()):
                arguments = self._parse_paren_arguments()
                return FunctionCall(span=self._span_from(token), name=token.lexeme,
                                    arguments=arguments)
            if token.type != TokenType.IDENTIFIER:
                self.pos -= 1
                self._error("expression")
            # Bare words evaluate to their own text
            return Literal(span=token.span, value=token.lexeme)

        self._error("expression")

    def _template(self, token: Token) -> Interpolated:
        segments = []
        for kind, text in token.value:
            if kind == "text":
                segments.append(text)
            else:
                segments.append(self._dotted_reference(text, token.span))
        return Interpolated(span=token.span, segments=segments)

    def _dotted_reference(self, path: str, span: SourceSpan) -> Expression:
        """Build $a.b.c as nested property accesses."""
        name, *keys = path.split(".")
        expr: Expression = VariableRef(span=span, name=name)
        for key in keys:
            expr = PropertyAccess(span=span, base=expr, key=Literal(span=span, value=key))
        return expr

    def _parse_paren_arguments(self) -> List[Expression]:
        self._consume(TokenType.LPAREN, "'('")
        arguments = []
        if not self._check(TokenType.RPAREN):
            arguments.append(self.parse_expression())
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RPAREN):
                    break
                arguments.append(self.parse_expression())
        self._consume(TokenType.RPAREN, "')'")
        return arguments

    def _parse_array_literal(self) -> ArrayLiteral:
        start = self._advance()  # consume '['
        elements = []
        if not self._check(TokenType.RBRACKET):
            elements.append(self.parse_expression())
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RBRACKET):
                    break
                elements.append(self.parse_expression())
        self._consume(TokenType.RBRACKET, "']'")
        return ArrayLiteral(span=self._span_from(start), elements=elements)

    def _parse_object_literal(self) -> ObjectLiteral:
        start = self._advance()  # consume '{'
        entries = []
        self._skip_newlines()
        while not self._check(TokenType.RBRACE):
            key_token = self._current()
            if key_token.type == TokenType.STRING:
                key = key_token.value
            elif key_token.type == TokenType.IDENTIFIER or key_token.type in KEYWORD_TYPES:
                key = key_token.lexeme
            elif key_token.type == TokenType.NUMBER:
                key = key_token.lexeme
            else:
                self._error("object key")
            self._advance()
            self._consume(TokenType.COLON, "':'")
            self._skip_newlines()
            entries.append((key, self.parse_expression()))
            self._skip_newlines()
            if not self._match(TokenType.COMMA):
                break
            self._skip_newlines()
        self._skip_newlines()
        self._consume(TokenType.RBRACE, "'}'")
        return ObjectLiteral(span=self._span_from(start), entries=entries)

    def _parse_call_command(self) -> FunctionCall:
        """Parse `call name arg arg ...` or `call name(a, b)`."""
        start = self._advance()  # consume 'call'
        name_token = self._current()
        if name_token.type != TokenType.IDENTIFIER and name_token.type not in KEYWORD_TYPES:
            self._error("function name")
        self._advance()

        if self._check(TokenType.LPAREN) and _adjacent(name_token, self._current()):
            arguments = self._parse_paren_arguments()
        else:
            arguments = self._parse_spaced_arguments()
        return FunctionCall(span=self._span_from(start), name=name_token.lexeme,
                            arguments=arguments)

    def _parse_spaced_arguments(self) -> List[Expression]:
        """Unary-level arguments separated by whitespace."""
        arguments = []
        while self._check_any(ARGUMENT_START):
            if self._at_bare_word():
                arguments.append(self._parse_word("argument"))
            else:
                arguments.append(self._parse_unary())
        return arguments

    def _at_bare_word(self) -> bool:
        """An identifier that does not start a function call."""
        token = self._current()
        following = self._peek(1)
        return token.type == TokenType.IDENTIFIER and not (
            following.type == TokenType.LPAREN and _adjacent(token, following)
        )

    # =========================================================================
    # Words and messages
    # =========================================================================

    def _parse_word(self, what: str) -> Expression:
        """Parse a name such as notepad, window:open or sound:*, or an expression."""
        token = self._current()
        if token.type in (TokenType.STRING, TokenType.TEMPLATE,
                          TokenType.VARIABLE, TokenType.LPAREN):
            return self.parse_expression()
        if token.type not in WORD_TYPES:
            self._error(what)

        parts = [self._advance().lexeme]
        while self._check_any(WORD_TYPES) and _adjacent(self._previous(), self._current()):
            parts.append(self._advance().lexeme)
        return Literal(span=self._span_from(token), value="".join(parts))

    def _parse_message(self, stops: FrozenSet[TokenType] = TERMINATORS) -> Expression:
        """
        Parse message text for print, alert, notify and dialogs.

        A complete expression is used when one spans the whole message;
        otherwise the raw source text is taken verbatim with $var references
        interpolated.
        """
        start = self._current()
        if self._at_terminator(stops):
            return Literal(span=start.span, value="")

        saved_pos = self.pos
        try:
            expr = self.parse_expression()
            if self._at_terminator(stops):
                return expr
        except ScriptSyntaxError:
            pass

        self.pos = saved_pos
        while not self._at_terminator(stops):
            if self._check(TokenType.ERROR):
                self._error("message text")
            self._advance()
        span = self._span_from(start)
        if self.source is not None:
            raw = self.source[span.start.offset:span.end.offset]
        else:
            raw = " ".join(t.lexeme for t in self.tokens[saved_pos:self.pos])
        return self._interpolate_raw(raw, span)

    def _interpolate_raw(self, raw: str, span: SourceSpan) -> Expression:
        segments = []
        last = 0
        for match in RAW_VARIABLE.finditer(raw):
            if match.start() > last:
                segments.append(raw[last:match.start()])
            segments.append(self._dotted_reference(match.group(1), span))
            last = match.end()
        if last < len(raw):
            segments.append(raw[last:])
        if all(isinstance(s, str) for s in segments):
            return Literal(span=span, value="".join(segments))
        return Interpolated(span=span, segments=segments)

    # =========================================================================
    # Statements
    # =========================================================================

    def _parse_block(self) -> Block:
        """Parse { statements }."""
        self._skip_newlines()
        start = self._consume(TokenType.LBRACE, "'{'")
        statements = []
        while True:
            self._skip_terminators()
            if self._check(TokenType.RBRACE):
                break
            if self._is_at_end():
                self._error("'}'")
            statements.append(self._parse_statement())
            self._end_statement()
        self._consume(TokenType.RBRACE, "'}'")
        return Block(span=self._span_from(start), statements=statements)

    def _parse_loop_body(self) -> Block:
        self.loop_depth += 1
        try:
            return self._parse_block()
        finally:
            self.loop_depth -= 1

    def _parse_detached_body(self) -> Block:
        """Parse a function or handler body, where enclosing loops do not apply."""
        saved_depth = self.loop_depth
        self.loop_depth = 0
        try:
            return self._parse_block()
        finally:
            self.loop_depth = saved_depth

    def _parse_statement(self) -> Statement:
        token = self._current()
        t = token.type

        if t == TokenType.SET:
            return self._parse_set()
        if t == TokenType.VARIABLE:
            return self._parse_variable_statement()
        if t == TokenType.PRINT:
            self._advance()
            return PrintStatement(span=self._span_from(token), message=self._parse_message())
        if t == TokenType.IF:
            return self._parse_if()
        if t == TokenType.LOOP:
            return self._parse_loop()
        if t == TokenType.WHILE:
            self._advance()
            condition = self.parse_expression()
            body = self._parse_loop_body()
            return LoopStatement(span=self._span_from(token), body=body, condition=condition)
        if t == TokenType.FOREACH:
            return self._parse_foreach()
        if t in (TokenType.BREAK, TokenType.CONTINUE):
            self._advance()
            if self.loop_depth == 0:
                raise error_misplaced_control(token.lexeme, token.span, self._source_line(token))
            node = BreakStatement if t == TokenType.BREAK else ContinueStatement
            return node(span=token.span)
        if t == TokenType.RETURN:
            self._advance()
            value = None
            if not self._at_terminator():
                value = self.parse_expression()
            return ReturnStatement(span=self._span_from(token), value=value)
        if t == TokenType.DEF:
            return self._parse_function_def()
        if t == TokenType.TRY:
            return self._parse_try()
        if t == TokenType.ON:
            self._advance()
            event_name = self._parse_word("event name")
            body = self._parse_detached_body()
            return EventOn(span=self._span_from(token), event_name=event_name, body=body)
        if t == TokenType.EMIT:
            return self._parse_emit()
        if t in COMMAND_PARSERS:
            return COMMAND_PARSERS[t](self)
        if t == TokenType.IDENTIFIER:
            following = self._peek(1)
            if following.type == TokenType.LPAREN and _adjacent(token, following):
                return self._parse_expression_statement()
            return self._parse_generic_command()
        if t == TokenType.CALL or t in ARGUMENT_START:
            return self._parse_expression_statement()

        self._error("statement")

    def _parse_expression_statement(self) -> ExpressionStatement:
        start = self._current()
        expr = self.parse_expression()
        return ExpressionStatement(span=self._span_from(start), expression=expr)

    def _parse_target(self, allow_bare: bool = False) -> Expression:
        """Parse an assignment target: $name followed by .key / [index] accessors."""
        token = self._current()
        if token.type == TokenType.VARIABLE:
            self._advance()
            target: Expression = VariableRef(span=token.span, name=token.value)
        elif allow_bare and token.type == TokenType.IDENTIFIER:
            self._advance()
            target = VariableRef(span=token.span, name=token.lexeme)
        else:
            raise error_invalid_target(token.span, self._source_line(token))

        while _adjacent(self._previous(), self._current()):
            if self._match(TokenType.DOT):
                key = self._parse_member_name()
            elif self._match(TokenType.LBRACKET):
                key = self.parse_expression()
                self._consume(TokenType.RBRACKET, "']'")
            else:
                break
            target = PropertyAccess(span=self._span_from(token), base=target, key=key)
        return target

    def _parse_set(self) -> SetStatement:
        start = self._advance()  # consume 'set'
        target = self._parse_target(allow_bare=True)
        self._consume(TokenType.ASSIGN, "'='")
        value = self.parse_expression()
        return SetStatement(span=self._span_from(start), target=target, value=value)

    def _parse_variable_statement(self) -> Statement:
        """`$x = v` assignment, otherwise an expression evaluated for effect."""
        start = self._current()
        saved_pos = self.pos
        target = self._parse_target()
        if self._match(TokenType.ASSIGN):
            value = self.parse_expression()
            return SetStatement(span=self._span_from(start), target=target, value=value)
        self.pos = saved_pos
        return self._parse_expression_statement()

    def _parse_if(self) -> IfStatement:
        start = self._advance()  # consume 'if'
        condition = self.parse_expression()
        self._match(TokenType.THEN)
        then_block = self._parse_block()

        else_block = None
        saved_pos = self.pos
        self._skip_newlines()
        if self._match(TokenType.ELSE):
            if self._check(TokenType.IF):
                nested = self._parse_if()
                else_block = Block(span=nested.span, statements=[nested])
            else:
                else_block = self._parse_block()
        else:
            self.pos = saved_pos

        return IfStatement(span=self._span_from(start), condition=condition,
                           then_block=then_block, else_block=else_block)

    def _parse_loop(self) -> LoopStatement:
        start = self._advance()  # consume 'loop' / 'repeat'
        if self._match(TokenType.WHILE):
            condition = self.parse_expression()
            body = self._parse_loop_body()
            return LoopStatement(span=self._span_from(start), body=body, condition=condition)
        count = self.parse_expression()
        body = self._parse_loop_body()
        return LoopStatement(span=self._span_from(start), body=body, count=count)

    def _parse_foreach(self) -> ForeachStatement:
        start = self._advance()  # consume 'foreach' / 'for'
        item_var = self._consume(TokenType.VARIABLE, "loop variable").value
        index_var = None
        if self._match(TokenType.COMMA):
            index_var = self._consume(TokenType.VARIABLE, "index variable").value
        self._consume(TokenType.IN, "'in'")
        iterable = self.parse_expression()
        body = self._parse_loop_body()
        return ForeachStatement(span=self._span_from(start), item_var=item_var,
                                iterable=iterable, body=body, index_var=index_var)

    def _parse_function_def(self) -> FunctionDef:
        start = self._advance()  # consume 'def'
        name = self._consume(TokenType.IDENTIFIER, "function name").lexeme

        params = []
        if self._match(TokenType.LPAREN):
            if not self._check(TokenType.RPAREN):
                params.append(self._parse_param())
                while self._match(TokenType.COMMA):
                    params.append(self._parse_param())
            self._consume(TokenType.RPAREN, "')'")

        body = self._parse_detached_body()
        return FunctionDef(span=self._span_from(start), name=name, params=params, body=body)

    def _parse_param(self) -> str:
        token = self._match(TokenType.VARIABLE)
        if token is not None:
            return token.value
        return self._consume(TokenType.IDENTIFIER, "parameter name").lexeme

    def _parse_try(self) -> TryCatch:
        start = self._advance()  # consume 'try'
        try_block = self._parse_block()
        self._skip_newlines()
        self._consume(TokenType.CATCH, "'catch'")
        error_var = None
        token = self._match(TokenType.VARIABLE)
        if token is not None:
            error_var = token.value
        catch_block = self._parse_block()
        return TryCatch(span=self._span_from(start), try_block=try_block,
                        catch_block=catch_block, error_var=error_var)

    def _parse_key_values(self) -> ObjectLiteral:
        """Parse key=expr pairs up to the end of the statement."""
        start = self._current()
        entries = []
        while not self._at_terminator():
            key_token = self._current()
            if key_token.type != TokenType.IDENTIFIER and key_token.type not in KEYWORD_TYPES:
                self._error("key=value pair")
            self._advance()
            self._consume(TokenType.ASSIGN, "'='")
            if self._at_bare_word():
                value = self._parse_word("value")
            else:
                value = self.parse_expression()
            entries.append((key_token.lexeme, value))
            self._match(TokenType.COMMA)
        return ObjectLiteral(span=self._span_from(start), entries=entries)

    def _is_key_value_start(self) -> bool:
        token = self._current()
        return ((token.type == TokenType.IDENTIFIER or token.type in KEYWORD_TYPES)
                and self._peek(1).type == TokenType.ASSIGN)

    def _parse_emit(self) -> EventEmit:
        start = self._advance()  # consume 'emit'
        event_name = self._parse_word("event name")
        payload = None
        if self._is_key_value_start():
            payload = self._parse_key_values()
        elif not self._at_terminator():
            payload = self.parse_expression()
        return EventEmit(span=self._span_from(start), event_name=event_name, payload=payload)

    # --- Host commands ---

    def _command(self, start: Token, command: str, into: Optional[str] = None,
                 **arguments: Expression) -> CommandStatement:
        return CommandStatement(span=self._span_from(start), command=command,
                                arguments=arguments, into=into)

    def _parse_into(self) -> str:
        self._consume(TokenType.INTO, "'into'")
        return self._consume(TokenType.VARIABLE, "variable").value

    def _parse_alert(self) -> CommandStatement:
        start = self._advance()
        return self._command(start, "alert", message=self._parse_message())

    def _parse_notify(self) -> CommandStatement:
        start = self._advance()
        return self._command(start, "notify", message=self._parse_message())

    def _parse_confirm(self) -> CommandStatement:
        start = self._advance()
        message = self._parse_message(TERMINATORS | {TokenType.INTO})
        into = self._parse_into()
        return self._command(start, "confirm", into, message=message)

    def _parse_prompt(self) -> CommandStatement:
        start = self._advance()
        message = self._parse_message(TERMINATORS | {TokenType.INTO, TokenType.DEFAULT})
        arguments = {"message": message}
        if self._match(TokenType.DEFAULT):
            arguments["default"] = self._parse_message(TERMINATORS | {TokenType.INTO})
        into = self._parse_into()
        return self._command(start, "prompt", into, **arguments)

    def _parse_write(self) -> CommandStatement:
        start = self._advance()
        content = self._parse_message(TERMINATORS | {TokenType.TO})
        self._consume(TokenType.TO, "'to'")
        path = self._parse_word("file path")
        return self._command(start, "write", content=content, path=path)

    def _parse_read(self) -> CommandStatement:
        start = self._advance()
        path = self._parse_word("file path")
        into = self._parse_into()
        return self._command(start, "read", into, path=path)

    def _parse_mkdir(self) -> CommandStatement:
        start = self._advance()
        return self._command(start, "mkdir", path=self._parse_word("directory path"))

    def _parse_delete(self) -> CommandStatement:
        start = self._advance()
        return self._command(start, "delete", path=self._parse_word("file path"))

    def _parse_launch(self) -> CommandStatement:
        start = self._advance()
        arguments = {"app": self._parse_word("application id")}
        if self._match(TokenType.WITH):
            arguments["params"] = self._parse_key_values()
        return self._command(start, "launch", **arguments)

    def _parse_close(self) -> CommandStatement:
        start = self._advance()
        if self._at_terminator():
            return self._command(start, "close")
        return self._command(start, "close", target=self._parse_word("window id"))

    def _parse_wait(self) -> CommandStatement:
        start = self._advance()
        if self._at_terminator():
            return self._command(start, "wait")
        return self._command(start, "wait", duration=self.parse_expression())

    def _parse_window_command(self) -> CommandStatement:
        start = self._advance()
        return self._command(start, start.lexeme, target=self._parse_word("window id"))

    def _parse_play(self) -> CommandStatement:
        start = self._advance()
        return self._command(start, "play", sound=self._parse_word("sound name"))

    def _parse_generic_command(self) -> CommandStatement:
        """Unknown words dispatch to the host command catalog: name arg arg ..."""
        start = self._current()
        name = self._parse_word("command name")
        arguments = self._parse_spaced_arguments()
        args_span = self._span_from(start)
        return CommandStatement(
            span=self._span_from(start),
            command=name.value,
            arguments={"args": ArrayLiteral(span=args_span, elements=arguments)},
        )

    # =========================================================================
    # Program
    # =========================================================================

    def parse_program(self) -> Program:
        """Parse a complete script."""
        start = self._current()
        statements = []
        while True:
            self._skip_terminators()
            if self._is_at_end():
                break
            statements.append(self._parse_statement())
            self._end_statement()
        return Program(span=self._span_from(start), statements=statements,
                       source=self.source or "")


COMMAND_PARSERS = {
    TokenType.ALERT: Parser._parse_alert,
    TokenType.NOTIFY: Parser._parse_notify,
    TokenType.CONFIRM: Parser._parse_confirm,
    TokenType.PROMPT: Parser._parse_prompt,
    TokenType.WRITE: Parser._parse_write,
    TokenType.READ: Parser._parse_read,
    TokenType.MKDIR: Parser._parse_mkdir,
    TokenType.DELETE: Parser._parse_delete,
    TokenType.LAUNCH: Parser._parse_launch,
    TokenType.CLOSE: Parser._parse_close,
    TokenType.WAIT: Parser._parse_wait,
    TokenType.FOCUS: Parser._parse_window_command,
    TokenType.MINIMIZE: Parser._parse_window_command,
    TokenType.MAXIMIZE: Parser._parse_window_command,
    TokenType.PLAY: Parser._parse_play,
}


def parse(tokens: List[Token], filename: Optional[str] = None,
          source: Optional[str] = None) -> Program:
    """
    Convenience function to parse tokens into a program.

    Args:
        tokens: List of tokens from the tokenizer
        filename: Optional filename for error messages
        source: Optional original source code for raw message text

    Returns:
        Parsed Program

    Raises:
        ScriptSyntaxError: If parsing fails
    """
    parser = Parser(tokens, filename, source)
    return parser.parse_program()


def parse_expression(tokens: List[Token], source: Optional[str] = None) -> Tuple[Expression, int]:
    """
    Parse exactly one expression from the start of a token list.

    Returns:
        The expression and the index of the first token not part of it.
    """
    parser = Parser(tokens, source=source)
    expr = parser.parse_expression()
    return expr, parser.pos
