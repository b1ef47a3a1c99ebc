import logging
from typing import Callable, FrozenSet, List, Optional, Tuple

from ast_nodes import *
from diagnostics import (
    Diagnostic, MISSING_TERMINATOR, SYNTAX_ERROR, UNBALANCED_DELIMITER,
    syntax_error,
)
from lexer import CONSTANTS, KEYWORDS, TYPE_NAMES, Token, TokenType

logger = logging.getLogger(__name__)

# Precedence table for binary operators (higher value = binds tighter)
OPERATOR_PRECEDENCE = {
    TokenType.OR: 10,
    TokenType.AND: 20,
    TokenType.EQ: 30, TokenType.NE: 30,
    TokenType.LT: 30, TokenType.GT: 30,
    TokenType.LE: 30, TokenType.GE: 30,
    TokenType.PLUS: 40, TokenType.MINUS: 40, TokenType.AMPER: 40,
    TokenType.MULTIPLY: 50, TokenType.DIVIDE: 50,
    TokenType.DIV: 50, TokenType.MOD: 50,
}
NOT_PRECEDENCE = 25     # between AND and the comparisons

# Canonical operator spelling stored in the AST
_OPERATOR_TEXT = {
    TokenType.OR: 'OR', TokenType.AND: 'AND',
    TokenType.EQ: '=', TokenType.NE: '<>',
    TokenType.LT: '<', TokenType.GT: '>',
    TokenType.LE: '<=', TokenType.GE: '>=',
    TokenType.PLUS: '+', TokenType.MINUS: '-', TokenType.AMPER: '&',
    TokenType.MULTIPLY: '*', TokenType.DIVIDE: '/',
    TokenType.DIV: 'DIV', TokenType.MOD: 'MOD',
}

_LITERAL_TYPES = {
    TokenType.INTEGER: 'INTEGER', TokenType.REAL: 'REAL',
    TokenType.STRING: 'STRING', TokenType.CHAR_LITERAL: 'CHAR',
    TokenType.TRUE: 'BOOLEAN', TokenType.FALSE: 'BOOLEAN',
    TokenType.NULL: 'NULL',
}

BLOCK_CLOSERS = frozenset({
    TokenType.ENDIF, TokenType.ELSE, TokenType.ENDWHILE, TokenType.ENDFOR,
    TokenType.NEXT, TokenType.UNTIL, TokenType.ENDCASE, TokenType.OTHERWISE,
    TokenType.ENDFUNCTION, TokenType.ENDPROCEDURE,
})

# Display text for token types in "Expected '...'" messages
_TOKEN_TEXT = {t: text for text, t in KEYWORDS.items()}
_TOKEN_TEXT.update({t: text for text, t in TYPE_NAMES.items()})
_TOKEN_TEXT.update({t: text for text, (t, _) in CONSTANTS.items()})
_TOKEN_TEXT.update({
    TokenType.ASSIGN: '←', TokenType.EQ: '=', TokenType.NE: '<>',
    TokenType.LT: '<', TokenType.GT: '>', TokenType.LE: '<=', TokenType.GE: '>=',
    TokenType.PLUS: '+', TokenType.MINUS: '-', TokenType.MULTIPLY: '*',
    TokenType.DIVIDE: '/', TokenType.AMPER: '&',
    TokenType.LPAREN: '(', TokenType.RPAREN: ')',
    TokenType.LBRACKET: '[', TokenType.RBRACKET: ']',
    TokenType.COLON: ':', TokenType.COMMA: ',',
    TokenType.IDENTIFIER: 'identifier', TokenType.INTEGER: 'integer',
    TokenType.EOF: 'end of input',
})

_CLOSING = {'(': ')', '[': ']'}

# Open blocks plus nested operands; deeper programs would exhaust the Python stack
MAX_NESTING_DEPTH = 100
# Binary operators in one expression (bounds the depth of left-leaning chains)
MAX_EXPRESSION_OPERATORS = 200


class ParserError(Exception):
    """Raised inside a production; caught at the statement boundary and recorded."""

    def __init__(self, detail: str, line: int, column: int = 0,
                 code: str = SYNTAX_ERROR, reported: bool = False):
        super().__init__(detail)
        self.detail = detail
        self.line = line
        self.column = column
        self.code = code
        # True when the lexer already produced a diagnostic for this spot
        self.reported = reported


class Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0
        self.current = tokens[0]
        self.previous: Optional[Token] = None
        self.errors: List[Diagnostic] = []

        # Closer sets of the blocks currently open, innermost last
        self._open_blocks: List[FrozenSet[TokenType]] = []
        # Explicit delimiter stack for the expression being parsed: (char, token)
        self._open_delimiters: List[Tuple[str, Token]] = []
        # Expressions never continue past the line they start on
        self._expr_line = 0
        # Operands currently being parsed, innermost last, and operators seen in this expression
        self._expr_depth = 0
        self._expr_operators = 0

        # Statement dispatch table: TokenType → parse method
        self._stmt_dispatch = {
            TokenType.DECLARE: self.parse_declare,
            TokenType.CONSTANT: self.parse_constant,
            TokenType.SET: self.parse_set,
            TokenType.INPUT: self.parse_input,
            TokenType.OUTPUT: self.parse_output,
            TokenType.IF: self.parse_if,
            TokenType.CASE: self.parse_case,
            TokenType.WHILE: self.parse_while,
            TokenType.REPEAT: self.parse_repeat,
            TokenType.FOR: self.parse_for,
            TokenType.PROCEDURE: self.parse_procedure_decl,
            TokenType.FUNCTION: self.parse_function_decl,
            TokenType.CALL: self.parse_call_stmt,
            TokenType.RETURN: self.parse_return,
            TokenType.TYPE: self.parse_type_decl,
            TokenType.IDENTIFIER: self.parse_assignment_or_call,
        }
        self._sync_types = frozenset(self._stmt_dispatch) - {TokenType.IDENTIFIER} | BLOCK_CLOSERS

    # ── Token helpers ──

    def peek(self, offset: int = 0) -> Token:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def advance(self) -> Token:
        old = self.current
        if old.type != TokenType.EOF:
            self.pos += 1
            self.current = self.tokens[self.pos]
        self.previous = old
        return old

    def check(self, *token_types: TokenType) -> bool:
        return self.current.type in token_types

    def match(self, *token_types: TokenType) -> Optional[Token]:
        if self.current.type in token_types:
            return self.advance()
        return None

    def expect(self, token_type: TokenType, context: str) -> Token:
        if self.current.type == token_type:
            return self.advance()
        self._fail_expected(_TOKEN_TEXT.get(token_type, token_type.name), context)

    def _fail_expected(self, text: str, context: str):
        if self.current.type == TokenType.INVALID:
            raise ParserError("invalid token", self.current.line, self.current.column, reported=True)
        anchor = self.previous or self.current
        raise ParserError(f"Expected '{text}' after {context}", anchor.line,
                          anchor.column + len(anchor.lexeme))

    def _at_end(self) -> bool:
        return self.current.type == TokenType.EOF

    @staticmethod
    def _describe(token: Token) -> str:
        if token.type == TokenType.EOF:
            return "end of input"
        return f"'{token.lexeme}'"

    # ── Error recording and recovery ──

    def _record(self, err: ParserError):
        if err.reported:
            return
        diag = syntax_error(err.line, err.column, err.detail, err.code)
        if diag not in self.errors:
            self.errors.append(diag)

    def _synchronize(self):
        """Skip to the next statement boundary: a new line, a statement keyword or a block closer."""
        line = self.previous.line if self.previous else self.current.line
        while not self._at_end():
            if self.current.line > line or self.current.type in self._sync_types:
                break
            self.advance()

    def _parse_header(self, production: Callable):
        """Parse a block header; on failure record it, skip the line and return None."""
        try:
            return production()
        except ParserError as err:
            self._record(err)
            self._synchronize()
            return None

    def _expect_terminator(self, token_type: TokenType, context: str, start: Token) -> bool:
        if self.match(token_type):
            return True
        anchor = self.previous or start
        self.errors.append(syntax_error(
            anchor.line, anchor.column,
            f"Expected '{_TOKEN_TEXT[token_type]}' after {context} starting on line {start.line}",
            MISSING_TERMINATOR,
        ))
        return False

    # ── Top-level parsing ──

    def parse(self) -> Program:
        body = self._parse_block(frozenset())
        logger.debug("Parsed %d top-level statements (%d syntax errors)",
                     len(body), len(self.errors))
        return Program(body, line=1, column=1)

    def _parse_block(self, closers: FrozenSet[TokenType]) -> Tuple[Stmt, ...]:
        """Parse statements until one of `closers` (or a closer of an enclosing block)."""
        stmts: List[Stmt] = []
        if len(self._open_blocks) >= MAX_NESTING_DEPTH:
            raise ParserError("Statements nested too deeply", self.current.line, self.current.column)
        self._open_blocks.append(closers)
        try:
            while not self._at_end():
                if self.current.type in BLOCK_CLOSERS:
                    if self._closes_open_block(self.current.type):
                        break
                    self._record(ParserError(
                        f"Unexpected {self._describe(self.current)} without a matching opening statement",
                        self.current.line, self.current.column))
                    self.advance()
                    continue
                stmts.extend(self._parse_statement_safe())
        finally:
            self._open_blocks.pop()
        return tuple(stmts)

    def _closes_open_block(self, token_type: TokenType) -> bool:
        return any(token_type in closers for closers in self._open_blocks)

    def _parse_statement_safe(self) -> List[Stmt]:
        start_pos = self.pos
        try:
            return self.parse_statement()
        except ParserError as err:
            self._record(err)
            if self.pos == start_pos:
                self.advance()
            self._synchronize()
            return []

    def parse_statement(self) -> List[Stmt]:
        handler = self._stmt_dispatch.get(self.current.type)
        if handler:
            result = handler()
            return result if isinstance(result, list) else [result]

        tok = self.current
        if tok.type == TokenType.INVALID:
            raise ParserError("invalid token", tok.line, tok.column, reported=True)
        if tok.type in (TokenType.RPAREN, TokenType.RBRACKET):
            raise ParserError(f"Unmatched '{tok.lexeme}'", tok.line, tok.column,
                              UNBALANCED_DELIMITER)
        raise ParserError(f"Unexpected {self._describe(tok)} at start of statement",
                          tok.line, tok.column)

    # ── Declarations ──

    def parse_declare(self) -> List[Stmt]:
        start = self.expect(TokenType.DECLARE, "statement start")
        names = [self.expect(TokenType.IDENTIFIER, "DECLARE").lexeme]
        while self.match(TokenType.COMMA):
            names.append(self.expect(TokenType.IDENTIFIER, "','").lexeme)
        self.expect(TokenType.COLON, f"variable name '{names[-1]}'")

        if self.match(TokenType.ARRAY):
            bounds = self._parse_array_bounds()
            self.expect(TokenType.OF, "array bounds")
            element_type = self._parse_type_name("OF")
            return [ArrayDecl(name, bounds, element_type, line=start.line, column=start.column)
                    for name in names]

        type_name = self._parse_type_name("':'")
        return [VarDecl(name, type_name, line=start.line, column=start.column) for name in names]

    def _parse_type_name(self, context: str) -> str:
        """A type keyword, or an identifier (unknown types are reported by the validator)."""
        if self.current.type in TYPE_NAMES.values() or self.check(TokenType.IDENTIFIER):
            return self.advance().lexeme
        self._fail_expected("type name", context)

    def _parse_array_bounds(self) -> Tuple[Tuple[int, int], ...]:
        """`[l:u, l:u]` or `[n]` (meaning 1:n)."""
        open_tok = self.expect(TokenType.LBRACKET, "ARRAY")
        dims = []
        while True:
            first = self._parse_bound_literal()
            if self.match(TokenType.COLON):
                dims.append((first, self._parse_bound_literal()))
            else:
                dims.append((1, first))
            if not self.match(TokenType.COMMA):
                break
        if not self.match(TokenType.RBRACKET):
            raise ParserError(f"Unbalanced brackets - '[' opened at column {open_tok.column} is not closed",
                              open_tok.line, open_tok.column, UNBALANCED_DELIMITER)
        return tuple(dims)

    def _parse_bound_literal(self) -> int:
        negative = self.match(TokenType.MINUS) is not None
        if not self.check(TokenType.INTEGER):
            raise ParserError("Array bounds must be integer literals",
                              self.current.line, self.current.column)
        value = self.advance().value
        return -value if negative else value

    def parse_constant(self) -> ConstDecl:
        """CONSTANT <name> = <value>"""
        start = self.expect(TokenType.CONSTANT, "statement start")
        name = self.expect(TokenType.IDENTIFIER, "CONSTANT").lexeme
        if not self.match(TokenType.EQ, TokenType.ASSIGN):
            self._fail_expected('=', f"constant name '{name}'")
        value = self.parse_expression()
        return ConstDecl(name, value, line=start.line, column=start.column)

    def parse_type_decl(self):
        tok = self.current
        raise ParserError("Record types (TYPE ... ENDTYPE) are not supported", tok.line, tok.column)

    # ── Simple statements ──

    def parse_set(self) -> Assignment:
        """SET <name> TO <value>"""
        start = self.expect(TokenType.SET, "statement start")
        target = self.parse_lvalue()
        self.expect(TokenType.TO, f"SET {target.name}")
        value = self.parse_expression()
        return Assignment(target, value, line=start.line, column=start.column)

    def parse_input(self) -> InputStmt:
        start = self.expect(TokenType.INPUT, "statement start")
        target = self.parse_lvalue()
        return InputStmt(target, line=start.line, column=start.column)

    def parse_output(self) -> OutputStmt:
        start = self.expect(TokenType.OUTPUT, "statement start")
        values = [self.parse_expression()]
        while self.check(TokenType.COMMA) and self.current.line == start.line:
            self.advance()
            values.append(self.parse_expression())
        return OutputStmt(tuple(values), line=start.line, column=start.column)

    def parse_assignment_or_call(self) -> Stmt:
        start = self.current
        if self.peek(1).type == TokenType.LPAREN and self.peek(1).line == start.line:
            self._open_delimiters = []
            call = self._parse_call_expr()
            return CallStmt(call, line=start.line, column=start.column)

        target = self.parse_lvalue()
        if not self.match(TokenType.ASSIGN, TokenType.EQ):
            self._fail_expected('←', f"'{start.lexeme}'")
        value = self.parse_expression()
        return Assignment(target, value, line=start.line, column=start.column)

    def parse_lvalue(self):
        """Identifier or array element: name, name[i], name[i, j], name[i][j]."""
        name_tok = self.expect(TokenType.IDENTIFIER, self._describe(self.previous) if self.previous else "statement start")
        self._expr_line = name_tok.line
        self._open_delimiters = []
        indices = self._parse_indices()
        if indices:
            return ArrayAccess(name_tok.lexeme, indices, line=name_tok.line, column=name_tok.column)
        return Identifier(name_tok.lexeme, line=name_tok.line, column=name_tok.column)

    def parse_call_stmt(self) -> CallStmt:
        start = self.expect(TokenType.CALL, "statement start")
        name_tok = self.expect(TokenType.IDENTIFIER, "CALL")
        args: Tuple[Expr, ...] = ()
        if self.check(TokenType.LPAREN) and self.current.line == name_tok.line:
            self._expr_line = name_tok.line
            self._open_delimiters = []
            args = self._parse_arglist()
        call = CallExpr(name_tok.lexeme, args, line=name_tok.line, column=name_tok.column)
        return CallStmt(call, line=start.line, column=start.column)

    def parse_return(self) -> ReturnStmt:
        start = self.expect(TokenType.RETURN, "statement start")
        value = None
        if self._has_return_expression(start):
            value = self.parse_expression()
        return ReturnStmt(value, line=start.line, column=start.column)

    def _has_return_expression(self, start: Token) -> bool:
        """A RETURN value must start on the same line as the RETURN keyword."""
        if self._at_end() or self.current.line != start.line:
            return False
        return self.current.type not in self._sync_types

    # ── Compound statements ──

    def parse_if(self) -> IfStmt:
        start = self.expect(TokenType.IF, "statement start")
        condition = self._parse_header(self._parse_if_header)
        then_branch = self._parse_block(frozenset({TokenType.ELSE, TokenType.ENDIF}))
        else_branch = None
        if self.match(TokenType.ELSE):
            else_branch = self._parse_block(frozenset({TokenType.ENDIF}))
        self._expect_terminator(TokenType.ENDIF, "IF block", start)
        return IfStmt(condition, then_branch, else_branch, line=start.line, column=start.column)

    def _parse_if_header(self) -> Expr:
        condition = self.parse_expression()
        self.expect(TokenType.THEN, "IF condition")
        return condition

    def parse_while(self) -> WhileStmt:
        start = self.expect(TokenType.WHILE, "statement start")
        condition = self._parse_header(self._parse_while_header)
        body = self._parse_block(frozenset({TokenType.ENDWHILE}))
        self._expect_terminator(TokenType.ENDWHILE, "WHILE loop", start)
        return WhileStmt(condition, body, line=start.line, column=start.column)

    def _parse_while_header(self) -> Expr:
        condition = self.parse_expression()
        self.match(TokenType.DO)  # Optional DO keyword
        return condition

    def parse_repeat(self) -> RepeatUntilStmt:
        start = self.expect(TokenType.REPEAT, "statement start")
        body = self._parse_block(frozenset({TokenType.UNTIL}))
        condition = None
        if self._expect_terminator(TokenType.UNTIL, "REPEAT loop", start):
            condition = self._parse_header(self.parse_expression)
        return RepeatUntilStmt(body, condition, line=start.line, column=start.column)

    def parse_for(self) -> ForStmt:
        start = self.expect(TokenType.FOR, "statement start")
        header = self._parse_header(self._parse_for_header)
        variable, first, last, step = header if header else (None, None, None, None)
        body = self._parse_block(frozenset({TokenType.ENDFOR, TokenType.NEXT}))
        if self.match(TokenType.NEXT):
            self._validate_next_variable(variable)
        else:
            self._expect_terminator(TokenType.ENDFOR, "FOR loop", start)
        return ForStmt(variable, first, last, step, body, line=start.line, column=start.column)

    def _parse_for_header(self):
        name = self.expect(TokenType.IDENTIFIER, "FOR").lexeme
        if not self.match(TokenType.ASSIGN, TokenType.EQ):
            self._fail_expected('←', f"FOR {name}")
        first = self.parse_expression()
        self.expect(TokenType.TO, "FOR start value")
        last = self.parse_expression()
        step = self.parse_expression() if self.match(TokenType.STEP) else None
        return name, first, last, step

    def _validate_next_variable(self, loop_var: Optional[str]):
        """`NEXT v` must name the FOR variable; a mismatch is reported but the loop is kept."""
        next_tok = self.previous
        if self.check(TokenType.IDENTIFIER) and self.current.line == next_tok.line:
            name_tok = self.advance()
            if loop_var is not None and name_tok.lexeme != loop_var:
                self._record(ParserError(
                    f"NEXT variable '{name_tok.lexeme}' does not match FOR variable '{loop_var}'",
                    name_tok.line, name_tok.column))

    def parse_case(self) -> CaseStmt:
        start = self.expect(TokenType.CASE, "statement start")
        selector = self._parse_header(self._parse_case_header)

        branches: List[CaseBranch] = []
        otherwise = None
        self._open_blocks.append(frozenset({TokenType.ENDCASE, TokenType.OTHERWISE}))
        try:
            while not self._at_end() and not self.check(TokenType.ENDCASE):
                if self.check(TokenType.OTHERWISE):
                    otherwise = self.parse_otherwise_branch()
                    break
                if self.current.type in BLOCK_CLOSERS:
                    break
                branch = self._parse_case_branch_safe()
                if branch is not None:
                    branches.append(branch)
        finally:
            self._open_blocks.pop()

        self._expect_terminator(TokenType.ENDCASE, "CASE statement", start)
        return CaseStmt(selector, tuple(branches), otherwise, line=start.line, column=start.column)

    def _parse_case_header(self) -> Expr:
        """`CASE OF <expr>` or `CASE <expr> OF`."""
        if self.match(TokenType.OF):
            return self.parse_expression()
        selector = self.parse_expression()
        self.expect(TokenType.OF, "CASE selector")
        return selector

    def parse_otherwise_branch(self) -> Tuple[Stmt, ...]:
        """OTHERWISE [:] <statements>"""
        self.expect(TokenType.OTHERWISE, "CASE branches")
        self.match(TokenType.COLON)
        return self._parse_block(frozenset({TokenType.ENDCASE}))

    def _parse_case_branch_safe(self) -> Optional[CaseBranch]:
        start_pos = self.pos
        try:
            return self.parse_case_branch()
        except ParserError as err:
            self._record(err)
            if self.pos == start_pos:
                self.advance()
            self._synchronize()
            return None

    def parse_case_branch(self) -> CaseBranch:
        """Parses a single CASE branch: <labels> : <statements>"""
        line = self.current.line
        values = self.parse_case_labels()
        self.expect(TokenType.COLON, "CASE label")
        stmts: List[Stmt] = []
        while not self._at_end() and not self._at_case_branch_end():
            stmts.extend(self._parse_statement_safe())
        return CaseBranch(tuple(values), tuple(stmts), line)

    def _at_case_branch_end(self) -> bool:
        return self.current.type in BLOCK_CLOSERS or self.is_case_label_start()

    def is_case_label_start(self) -> bool:
        if self.current.type in _LITERAL_TYPES:
            return True
        nxt = self.peek(1)
        if self.check(TokenType.MINUS):
            return nxt.type in (TokenType.INTEGER, TokenType.REAL)
        if self.check(TokenType.IDENTIFIER):
            return nxt.type in (TokenType.COLON, TokenType.TO, TokenType.COMMA)
        return False

    def parse_case_labels(self) -> List[Expr]:
        labels = []
        while True:
            self._expr_line = self.current.line
            self._open_delimiters = []
            self._expr_operators = 0
            start = self._parse_unary()
            if self.match(TokenType.TO):
                end = self._parse_unary()
                labels.append(RangeExpr(start, end, line=start.line, column=start.column))
            else:
                labels.append(start)
            if not self.match(TokenType.COMMA):
                break
        return labels

    # ── Routines ──

    def parse_procedure_decl(self) -> List[Stmt]:
        start = self.expect(TokenType.PROCEDURE, "statement start")
        header = self._parse_header(lambda: self._parse_routine_header(False))
        name, params, _ = header if header else (None, (), None)
        body = self._parse_block(frozenset({TokenType.ENDPROCEDURE}))
        self._expect_terminator(TokenType.ENDPROCEDURE, "PROCEDURE", start)
        return self._top_level_only(
            ProcedureDecl(name, params, body, line=start.line, column=start.column), start)

    def parse_function_decl(self) -> List[Stmt]:
        start = self.expect(TokenType.FUNCTION, "statement start")
        header = self._parse_header(lambda: self._parse_routine_header(True))
        name, params, return_type = header if header else (None, (), None)
        body = self._parse_block(frozenset({TokenType.ENDFUNCTION}))
        self._expect_terminator(TokenType.ENDFUNCTION, "FUNCTION", start)
        return self._top_level_only(
            FunctionDecl(name, params, return_type, body, line=start.line, column=start.column), start)

    def _top_level_only(self, decl: Stmt, start: Token) -> List[Stmt]:
        # _open_blocks still holds the top-level entry while a routine is parsed there
        if len(self._open_blocks) > 1:
            self._record(ParserError(
                f"{start.lexeme} declarations are only allowed at the top level",
                start.line, start.column))
            return []
        return [decl]

    def _parse_routine_header(self, is_function: bool):
        name_tok = self.expect(TokenType.IDENTIFIER, self.previous.lexeme)
        params: Tuple[Param, ...] = ()
        if self.match(TokenType.LPAREN):
            if not self.check(TokenType.RPAREN):
                params = self.parse_params()
            if not self.match(TokenType.RPAREN):
                raise ParserError(f"Unbalanced parentheses - parameter list of '{name_tok.lexeme}' is not closed",
                                  name_tok.line, name_tok.column, UNBALANCED_DELIMITER)
        return_type = None
        if is_function:
            self.expect(TokenType.RETURNS, f"FUNCTION {name_tok.lexeme} header")
            return_type = self._parse_type_name("RETURNS")
        return name_tok.lexeme, params, return_type

    def parse_params(self) -> Tuple[Param, ...]:
        params = []
        # BYREF/BYVAL persists across subsequent params
        # e.g. PROCEDURE Swap(BYREF a : INTEGER, b : INTEGER) means both BYREF
        mode = "BYVAL"
        while True:
            if self.match(TokenType.BYREF):
                mode = "BYREF"
            elif self.match(TokenType.BYVAL):
                mode = "BYVAL"

            name = self.expect(TokenType.IDENTIFIER, "parameter list").lexeme
            self.expect(TokenType.COLON, f"parameter '{name}'")
            element_type = None
            if self.match(TokenType.ARRAY):
                type_name = "ARRAY"
                if self.check(TokenType.LBRACKET):
                    self._parse_array_bounds()
                if self.match(TokenType.OF):
                    element_type = self._parse_type_name("OF")
            else:
                type_name = self._parse_type_name(f"parameter '{name}'")
            params.append(Param(name, type_name, mode, element_type))

            if not self.match(TokenType.COMMA):
                break
        return tuple(params)

    # ── Expressions ──

    def parse_expression(self) -> Expr:
        """Entry point for a complete expression; resets the delimiter stack."""
        self._expr_line = self.previous.line if self.previous else self.current.line
        self._open_delimiters = []
        self._expr_operators = 0
        return self._parse_binary(0)

    def _parse_binary(self, min_prec: int) -> Expr:
        left = self._parse_unary()
        while True:
            op_tok = self.current
            prec = OPERATOR_PRECEDENCE.get(op_tok.type)
            if prec is None or prec < min_prec or op_tok.line != self._expr_line:
                break
            self._expr_operators += 1
            if self._expr_operators > MAX_EXPRESSION_OPERATORS:
                raise ParserError(f"Expression has more than {MAX_EXPRESSION_OPERATORS} operators",
                                  op_tok.line, op_tok.column)
            self.advance()
            right = self._parse_binary(prec + 1)
            left = BinaryExpr(left, _OPERATOR_TEXT[op_tok.type], right,
                              line=op_tok.line, column=op_tok.column)
        return left

    def _parse_unary(self) -> Expr:
        self._expr_depth += 1
        try:
            if self._expr_depth + len(self._open_blocks) > MAX_NESTING_DEPTH:
                raise ParserError("Expression nested too deeply", self.current.line, self.current.column)
            return self._parse_operand()
        finally:
            self._expr_depth -= 1

    def _parse_operand(self) -> Expr:
        if self.check(TokenType.NOT) and self.current.line == self._expr_line:
            op_tok = self.advance()
            operand = self._parse_binary(NOT_PRECEDENCE)
            return UnaryExpr("NOT", operand, line=op_tok.line, column=op_tok.column)
        if self.check(TokenType.MINUS) and self.current.line == self._expr_line:
            op_tok = self.advance()
            operand = self._parse_unary()
            if isinstance(operand, Literal) and operand.type_name in ('INTEGER', 'REAL'):
                return Literal(-operand.value, operand.type_name, line=op_tok.line, column=op_tok.column)
            return UnaryExpr("-", operand, line=op_tok.line, column=op_tok.column)
        return self.parse_primary()

    def parse_primary(self) -> Expr:
        tok = self.current
        if tok.line != self._expr_line or tok.type == TokenType.EOF:
            anchor = self.previous or tok
            raise ParserError(f"Expected expression after {self._describe(anchor)}",
                              anchor.line, anchor.column + len(anchor.lexeme))
        if tok.type == TokenType.INVALID:
            raise ParserError("invalid token", tok.line, tok.column, reported=True)

        if tok.type == TokenType.LPAREN:
            return self._parse_grouped_expr()

        if tok.type in _LITERAL_TYPES:
            self.advance()
            return Literal(tok.value, _LITERAL_TYPES[tok.type], line=tok.line, column=tok.column)

        if tok.type == TokenType.IDENTIFIER:
            return self._parse_identifier_expr()

        if tok.type in (TokenType.RPAREN, TokenType.RBRACKET) and not self._open_delimiters:
            raise ParserError(f"Unmatched '{tok.lexeme}'", tok.line, tok.column, UNBALANCED_DELIMITER)

        raise ParserError(f"Unexpected {self._describe(tok)} in expression", tok.line, tok.column)

    def _open(self, char: str) -> Token:
        tok = self.advance()
        self._open_delimiters.append((char, tok))
        return tok

    def _close(self, char: str):
        """Consume the closer for the innermost open delimiter or report the imbalance."""
        open_char, open_tok = self._open_delimiters[-1]
        closer = TokenType.RPAREN if char == '(' else TokenType.RBRACKET
        if self.current.type == closer and self.current.line == open_tok.line:
            self.advance()
            self._open_delimiters.pop()
            return
        kind = "parentheses" if open_char == '(' else "brackets"
        raise ParserError(
            f"Unbalanced {kind} - '{open_char}' opened at column {open_tok.column} "
            f"is not closed by '{_CLOSING[open_char]}'",
            open_tok.line, open_tok.column, UNBALANCED_DELIMITER)

    def _parse_grouped_expr(self) -> Expr:
        self._open('(')
        expr = self._parse_binary(0)
        self._close('(')
        return expr

    def _parse_identifier_expr(self) -> Expr:
        if self.peek(1).type == TokenType.LPAREN and self.peek(1).line == self.current.line:
            return self._parse_call_expr()
        name_tok = self.advance()
        indices = self._parse_indices()
        if indices:
            return ArrayAccess(name_tok.lexeme, indices, line=name_tok.line, column=name_tok.column)
        return Identifier(name_tok.lexeme, line=name_tok.line, column=name_tok.column)

    def _parse_indices(self) -> Tuple[Expr, ...]:
        """Zero or more `[i, j]` groups, flattened: a[i][j] == a[i, j]."""
        indices: List[Expr] = []
        while self.check(TokenType.LBRACKET) and self.current.line == self._expr_line:
            self._open('[')
            indices.append(self._parse_binary(0))
            while self.match(TokenType.COMMA):
                indices.append(self._parse_binary(0))
            self._close('[')
        return tuple(indices)

    def _parse_call_expr(self) -> CallExpr:
        name_tok = self.advance()
        self._expr_line = name_tok.line
        args = self._parse_arglist()
        return CallExpr(name_tok.lexeme, args, line=name_tok.line, column=name_tok.column)

    def _parse_arglist(self) -> Tuple[Expr, ...]:
        """Parse a parenthesised, comma-separated argument list."""
        self._open('(')
        args = []
        if not self.check(TokenType.RPAREN):
            args.append(self._parse_binary(0))
            while self.match(TokenType.COMMA):
                args.append(self._parse_binary(0))
        self._close('(')
        return tuple(args)


def parse(tokens: List[Token]) -> Tuple[Program, List[Diagnostic]]:
    """Parse a token stream into a (possibly partial) Program plus syntax errors."""
    parser = Parser(tokens)
    program = parser.parse()
    return program, parser.errors
