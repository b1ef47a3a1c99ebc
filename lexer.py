import logging
import re
from dataclasses import dataclass
from enum import Enum, auto
from types import MappingProxyType
from typing import Any, List, Tuple

from diagnostics import (
    Diagnostic, INVALID_CHARACTER, INVALID_NUMBER, UNTERMINATED_STRING, lexical_error,
)
from values import MAX_INTEGER_DIGITS

logger = logging.getLogger(__name__)


class TokenKind(Enum):
    """Coarse token classification used for diagnostics and highlighting."""
    KEYWORD = auto()
    IDENTIFIER = auto()
    TYPE_NAME = auto()
    CONSTANT = auto()
    NUMBER = auto()
    STRING = auto()
    CHAR = auto()
    OPERATOR = auto()
    INVALID = auto()
    EOF = auto()


class TokenType(Enum):
    # Literals and identifiers
    INTEGER = auto()
    REAL = auto()
    STRING = auto()
    CHAR_LITERAL = auto()
    IDENTIFIER = auto()

    # Constants
    TRUE = auto()
    FALSE = auto()
    NULL = auto()

    # Comparison / assignment (priority order matters in the regex alternation)
    ASSIGN = auto()      # ← or <-   MUST be recognized before LT
    NE = auto()          # ≠ or <>
    LE = auto()          # ≤ or <=
    GE = auto()          # ≥ or >=
    EQ = auto()          # =
    LT = auto()
    GT = auto()

    # Arithmetic operators
    PLUS = auto()
    MINUS = auto()
    MULTIPLY = auto()
    DIVIDE = auto()
    DIV = auto()         # Integer division keyword
    MOD = auto()         # Remainder keyword
    AMPER = auto()       # & string concatenation

    # Type names
    INTEGER_KW = auto()
    REAL_KW = auto()
    STRING_KW = auto()
    BOOLEAN_KW = auto()
    CHAR_KW = auto()
    DATE_KW = auto()
    ARRAY = auto()
    RECORD = auto()

    # Declarations
    DECLARE = auto()
    CONSTANT = auto()
    SET = auto()
    OF = auto()
    TYPE = auto()

    # Procedures and functions
    PROCEDURE = auto()
    ENDPROCEDURE = auto()
    FUNCTION = auto()
    ENDFUNCTION = auto()
    RETURNS = auto()
    RETURN = auto()
    BYREF = auto()
    BYVAL = auto()
    CALL = auto()

    # Control flow
    IF = auto()
    THEN = auto()
    ELSE = auto()
    ENDIF = auto()
    CASE = auto()
    OTHERWISE = auto()
    ENDCASE = auto()
    FOR = auto()
    TO = auto()
    STEP = auto()
    NEXT = auto()
    ENDFOR = auto()
    REPEAT = auto()
    UNTIL = auto()
    WHILE = auto()
    DO = auto()
    ENDWHILE = auto()

    # Logic
    AND = auto()
    OR = auto()
    NOT = auto()

    # I/O
    INPUT = auto()
    OUTPUT = auto()

    # Delimiters
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    COLON = auto()
    COMMA = auto()

    INVALID = auto()
    EOF = auto()


# Read-only, process-wide tables. Matching is case-sensitive: `if` is an identifier.
KEYWORDS = MappingProxyType({
    'DECLARE': TokenType.DECLARE,
    'CONSTANT': TokenType.CONSTANT,
    'SET': TokenType.SET,
    'OF': TokenType.OF,
    'TYPE': TokenType.TYPE,
    'PROCEDURE': TokenType.PROCEDURE,
    'ENDPROCEDURE': TokenType.ENDPROCEDURE,
    'FUNCTION': TokenType.FUNCTION,
    'ENDFUNCTION': TokenType.ENDFUNCTION,
    'RETURNS': TokenType.RETURNS,
    'RETURN': TokenType.RETURN,
    'BYREF': TokenType.BYREF,
    'BYVAL': TokenType.BYVAL,
    'CALL': TokenType.CALL,
    'IF': TokenType.IF,
    'THEN': TokenType.THEN,
    'ELSE': TokenType.ELSE,
    'ENDIF': TokenType.ENDIF,
    'CASE': TokenType.CASE,
    'OTHERWISE': TokenType.OTHERWISE,
    'ENDCASE': TokenType.ENDCASE,
    'FOR': TokenType.FOR,
    'TO': TokenType.TO,
    'STEP': TokenType.STEP,
    'NEXT': TokenType.NEXT,
    'ENDFOR': TokenType.ENDFOR,
    'REPEAT': TokenType.REPEAT,
    'UNTIL': TokenType.UNTIL,
    'WHILE': TokenType.WHILE,
    'DO': TokenType.DO,
    'ENDWHILE': TokenType.ENDWHILE,
    'INPUT': TokenType.INPUT,
    'OUTPUT': TokenType.OUTPUT,
    'DIV': TokenType.DIV,
    'MOD': TokenType.MOD,
    'AND': TokenType.AND,
    'OR': TokenType.OR,
    'NOT': TokenType.NOT,
})

TYPE_NAMES = MappingProxyType({
    'INTEGER': TokenType.INTEGER_KW,
    'REAL': TokenType.REAL_KW,
    'STRING': TokenType.STRING_KW,
    'BOOLEAN': TokenType.BOOLEAN_KW,
    'CHAR': TokenType.CHAR_KW,
    'DATE': TokenType.DATE_KW,
    'ARRAY': TokenType.ARRAY,
    'RECORD': TokenType.RECORD,
})

CONSTANTS = MappingProxyType({
    'TRUE': (TokenType.TRUE, True),
    'FALSE': (TokenType.FALSE, False),
    'NULL': (TokenType.NULL, None),
})

_OPERATOR_TYPES = frozenset({
    TokenType.ASSIGN, TokenType.NE, TokenType.LE, TokenType.GE, TokenType.EQ,
    TokenType.LT, TokenType.GT, TokenType.PLUS, TokenType.MINUS,
    TokenType.MULTIPLY, TokenType.DIVIDE, TokenType.AMPER,
    TokenType.LPAREN, TokenType.RPAREN, TokenType.LBRACKET,
    TokenType.RBRACKET, TokenType.COLON, TokenType.COMMA,
})

_KIND_BY_TYPE = {
    TokenType.INTEGER: TokenKind.NUMBER,
    TokenType.REAL: TokenKind.NUMBER,
    TokenType.STRING: TokenKind.STRING,
    TokenType.CHAR_LITERAL: TokenKind.CHAR,
    TokenType.IDENTIFIER: TokenKind.IDENTIFIER,
    TokenType.INVALID: TokenKind.INVALID,
    TokenType.EOF: TokenKind.EOF,
}
_KIND_BY_TYPE.update({t: TokenKind.KEYWORD for t in KEYWORDS.values()})
_KIND_BY_TYPE.update({t: TokenKind.TYPE_NAME for t in TYPE_NAMES.values()})
_KIND_BY_TYPE.update({t: TokenKind.CONSTANT for t, _ in CONSTANTS.values()})
_KIND_BY_TYPE.update({t: TokenKind.OPERATOR for t in _OPERATOR_TYPES})

_ESCAPES = {'n': '\n', 't': '\t', '"': '"', "'": "'", '\\': '\\'}
_ESCAPE_RE = re.compile(r'\\(.)')


def _unescape(body: str) -> str:
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


@dataclass(frozen=True)
class Token:
    type: TokenType
    lexeme: str
    line: int
    column: int
    value: Any = None

    @property
    def kind(self) -> TokenKind:
        return _KIND_BY_TYPE[self.type]

    def __repr__(self):
        return f"Token({self.type.name}, {self.lexeme!r}, line={self.line}, col={self.column})"


class Lexer:
    # =====================================================================
    # ORDER IS SEMANTIC: earlier patterns have higher priority in alternation
    # =====================================================================
    TOKEN_SPECS = [
        ('WHITESPACE', r'[ \t\r]+'),
        ('NEWLINE', r'\n'),
        ('COMMENT', r'//[^\n]*|#[^\n]*'),

        # Multi-character operators BEFORE single-character ones
        ('ASSIGN', r'←|<-'),
        ('NE', r'≠|<>'),
        ('LE', r'≤|<='),
        ('GE', r'≥|>='),
        ('EQ', r'='),
        ('LT', r'<'),
        ('GT', r'>'),
        ('PLUS', r'\+'),
        ('MINUS', r'-'),
        ('MULTIPLY', r'\*'),
        ('DIVIDE', r'/'),
        ('AMPER', r'&'),
        ('LPAREN', r'\('),
        ('RPAREN', r'\)'),
        ('LBRACKET', r'\['),
        ('RBRACKET', r'\]'),
        ('COLON', r':'),
        ('COMMA', r','),

        # Literals
        ('REAL', r'\d+\.\d+'),
        ('INTEGER', r'\d+'),
        ('STRING', r'"(?:[^"\\\n]|\\.)*"'),
        ('UNTERMINATED_STRING', r'"[^\n]*'),
        ('CHAR', r"'(?:[^'\\\n]|\\.)'"),

        ('WORD', r'[A-Za-z_][A-Za-z0-9_]*'),
    ]

    _MASTER_REGEX = re.compile('|'.join(f'(?P<{name}>{regex})' for name, regex in TOKEN_SPECS))

    _TOKEN_TYPE_MAP = {
        'ASSIGN': TokenType.ASSIGN, 'NE': TokenType.NE, 'LE': TokenType.LE,
        'GE': TokenType.GE, 'EQ': TokenType.EQ, 'LT': TokenType.LT,
        'GT': TokenType.GT, 'PLUS': TokenType.PLUS, 'MINUS': TokenType.MINUS,
        'MULTIPLY': TokenType.MULTIPLY, 'DIVIDE': TokenType.DIVIDE,
        'AMPER': TokenType.AMPER,
        'LPAREN': TokenType.LPAREN, 'RPAREN': TokenType.RPAREN,
        'LBRACKET': TokenType.LBRACKET, 'RBRACKET': TokenType.RBRACKET,
        'COLON': TokenType.COLON, 'COMMA': TokenType.COMMA,
    }

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 1
        self.column = 1
        self.tokens: List[Token] = []
        self.errors: List[Diagnostic] = []

    def _update_position(self, text):
        newlines = text.count('\n')
        if newlines:
            self.line += newlines
            self.column = len(text) - text.rfind('\n')
        else:
            self.column += len(text)

    def _skip_to_line_end(self) -> str:
        """Consume the rest of the current line (not the newline) and return it."""
        end = self.source.find('\n', self.pos)
        if end == -1:
            end = len(self.source)
        skipped = self.source[self.pos:end]
        self.pos = end
        self._update_position(skipped)
        return skipped

    def _invalid(self, lexeme, line, col, detail, code):
        self.tokens.append(Token(TokenType.INVALID, lexeme, line, col))
        self.errors.append(lexical_error(line, col, detail, code))

    def tokenize(self) -> List[Token]:
        while self.pos < len(self.source):
            match = self._MASTER_REGEX.match(self.source, self.pos)
            start_line, start_col = self.line, self.column

            if not match:
                rest = self._skip_to_line_end()
                self._invalid(rest, start_line, start_col,
                              f"Unexpected character {rest[0]!r}", INVALID_CHARACTER)
                continue

            kind = match.lastgroup
            value = match.group()
            self.pos = match.end()
            self._update_position(value)

            if kind in ('WHITESPACE', 'COMMENT', 'NEWLINE'):
                continue
            if kind == 'UNTERMINATED_STRING':
                self._invalid(value, start_line, start_col,
                              "Unterminated string literal", UNTERMINATED_STRING)
                continue
            if kind == 'INTEGER' and len(value) > MAX_INTEGER_DIGITS:
                self._invalid(value, start_line, start_col,
                              f"Integer literal has more than {MAX_INTEGER_DIGITS} digits", INVALID_NUMBER)
                continue

            self.tokens.append(self._create_token(kind, value, start_line, start_col))

        self.tokens.append(Token(TokenType.EOF, '', self.line, self.column))
        logger.debug("Tokenized %d tokens (%d lexical errors)",
                     len(self.tokens), len(self.errors))
        return self.tokens

    def _create_token(self, kind, value, line, col) -> Token:
        if kind == 'WORD':
            if value in KEYWORDS:
                return Token(KEYWORDS[value], value, line, col, value)
            if value in TYPE_NAMES:
                return Token(TYPE_NAMES[value], value, line, col, value)
            if value in CONSTANTS:
                token_type, literal = CONSTANTS[value]
                return Token(token_type, value, line, col, literal)
            return Token(TokenType.IDENTIFIER, value, line, col, value)

        if kind == 'INTEGER':
            return Token(TokenType.INTEGER, value, line, col, int(value))
        if kind == 'REAL':
            return Token(TokenType.REAL, value, line, col, float(value))
        if kind == 'STRING':
            return Token(TokenType.STRING, value, line, col, _unescape(value[1:-1]))
        if kind == 'CHAR':
            return Token(TokenType.CHAR_LITERAL, value, line, col, _unescape(value[1:-1]))

        mapped = self._TOKEN_TYPE_MAP.get(kind)
        if mapped is not None:
            return Token(mapped, value, line, col, value)

        raise RuntimeError(f"Unhandled token kind: {kind}")


def tokenize(source: str) -> Tuple[List[Token], List[Diagnostic]]:
    """Scan `source` into tokens. Never raises on malformed input."""
    lexer = Lexer(source)
    tokens = lexer.tokenize()
    return tokens, lexer.errors
