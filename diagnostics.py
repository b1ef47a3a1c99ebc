"""
Shared diagnostic and trace-event values for the pseudocode engine.

Lexer, parser, validator and interpreter all report problems as
`Diagnostic` values collected into ordered lists; the interpreter reports
what a program did as `ExecutionEvent` values. None of these are ever
raised: each phase converts its own internal exceptions at its boundary.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class EventKind(Enum):
    OUTPUT = "output"
    ERROR = "error"
    SYSTEM = "system"


# ── Diagnostic codes ──

# Lexical
INVALID_CHARACTER = "INVALID_CHARACTER"
UNTERMINATED_STRING = "UNTERMINATED_STRING"
INVALID_NUMBER = "INVALID_NUMBER"

# Syntax
SYNTAX_ERROR = "SYNTAX_ERROR"
MISSING_TERMINATOR = "MISSING_TERMINATOR"
UNBALANCED_DELIMITER = "UNBALANCED_DELIMITER"

# Semantic (validator)
UNDECLARED_VARIABLE = "UNDECLARED_VARIABLE"
REDECLARED_VARIABLE = "REDECLARED_VARIABLE"
REDECLARED_IDENTIFIER = "REDECLARED_IDENTIFIER"
TYPE_MISMATCH = "TYPE_MISMATCH"
POSSIBLE_TYPE_MISMATCH = "POSSIBLE_TYPE_MISMATCH"
UNKNOWN_TYPE = "UNKNOWN_TYPE"
UNSUPPORTED_TYPE = "UNSUPPORTED_TYPE"
CONSTANT_REASSIGNMENT = "CONSTANT_REASSIGNMENT"
NOT_AN_ARRAY = "NOT_AN_ARRAY"
INDEX_COUNT_MISMATCH = "INDEX_COUNT_MISMATCH"
INDEX_OUT_OF_BOUNDS = "INDEX_OUT_OF_BOUNDS"
INVALID_ARRAY_BOUNDS = "INVALID_ARRAY_BOUNDS"
UNDEFINED_FUNCTION = "UNDEFINED_FUNCTION"
ARGUMENT_COUNT_MISMATCH = "ARGUMENT_COUNT_MISMATCH"
NOT_A_FUNCTION = "NOT_A_FUNCTION"
INVALID_BYREF_ARGUMENT = "INVALID_BYREF_ARGUMENT"
ZERO_STEP = "ZERO_STEP"
INVALID_RETURN = "INVALID_RETURN"
RETURN_OUTSIDE_FUNCTION = "RETURN_OUTSIDE_FUNCTION"
MISSING_RETURN = "MISSING_RETURN"
UNREACHABLE_CODE = "UNREACHABLE_CODE"
UNUSED_VARIABLE = "UNUSED_VARIABLE"
DUPLICATE_CASE_LABEL = "DUPLICATE_CASE_LABEL"
INCOMPLETE_STATEMENT = "INCOMPLETE_STATEMENT"
POSSIBLE_UNDECLARED_VARIABLE = "POSSIBLE_UNDECLARED_VARIABLE"
NAMING_CONVENTION = "NAMING_CONVENTION"

# Runtime
RUNTIME_ERROR = "RUNTIME_ERROR"
DIVISION_BY_ZERO = "DIVISION_BY_ZERO"
INDEX_OUT_OF_RANGE = "INDEX_OUT_OF_RANGE"
STEP_LIMIT_EXCEEDED = "STEP_LIMIT_EXCEEDED"
TIMEOUT = "TIMEOUT"
CANCELLED = "CANCELLED"
STACK_OVERFLOW = "STACK_OVERFLOW"
INPUT_EXHAUSTED = "INPUT_EXHAUSTED"
OUTPUT_LIMIT = "OUTPUT_LIMIT"
NUMERIC_OVERFLOW = "NUMERIC_OVERFLOW"
MEMORY_LIMIT = "MEMORY_LIMIT"

# Engine faults, never attributed to user code
INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class Diagnostic:
    """A single line-numbered error or warning."""
    line_number: int
    message: str
    code: str
    severity: Severity = Severity.ERROR
    column: int = 0

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR


@dataclass(frozen=True)
class ExecutionEvent:
    """One entry of an execution trace."""
    kind: EventKind
    text: str
    line: Optional[int] = None
    code: Optional[str] = None


# ── Message builders ──

def lexical_error(line: int, column: int, detail: str, code: str) -> Diagnostic:
    return Diagnostic(line, f"Line {line}: Lexical Error - {detail}", code,
                      Severity.ERROR, column)


def syntax_error(line: int, column: int, detail: str,
                 code: str = SYNTAX_ERROR) -> Diagnostic:
    return Diagnostic(line, f"Line {line}: Syntax Error - {detail}", code,
                      Severity.ERROR, column)


def semantic_error(line: int, detail: str, code: str, column: int = 0) -> Diagnostic:
    return Diagnostic(line, f"Line {line}: {detail}", code, Severity.ERROR, column)


def semantic_warning(line: int, detail: str, code: str, column: int = 0) -> Diagnostic:
    return Diagnostic(line, f"Line {line}: {detail}", code, Severity.WARNING, column)


def runtime_message(line: int, detail: str) -> str:
    return f"Line {line}: Runtime Error - {detail}"


def sort_diagnostics(diagnostics: Iterable[Diagnostic]) -> List[Diagnostic]:
    """Order by position; ties keep the order in which phases reported them."""
    return sorted(diagnostics, key=lambda d: (d.line_number, d.column))


def format_with_context(diagnostic: Diagnostic, source: str) -> str:
    """Render a diagnostic with its source line and a ^ under the column."""
    lines = source.split('\n')
    if not 1 <= diagnostic.line_number <= len(lines):
        return diagnostic.message
    src_line = lines[diagnostic.line_number - 1]
    if diagnostic.column < 1:
        return f"{diagnostic.message}\n  {src_line}"
    pointer = ' ' * (diagnostic.column - 1) + '^'
    return f"{diagnostic.message}\n  {src_line}\n  {pointer}"
