from dataclasses import dataclass, field
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class Node:
    """Base class for all nodes. Positions are keyword-only so subclasses keep positional fields."""
    line: int = field(default=0, kw_only=True)
    column: int = field(default=0, kw_only=True)


@dataclass(frozen=True)
class Expr(Node):
    """Base class for all expressions."""


@dataclass(frozen=True)
class Stmt(Node):
    """Base class for all statements."""


# ── Expressions ──

@dataclass(frozen=True)
class Literal(Expr):
    value: Union[int, float, str, bool, None]
    type_name: str      # INTEGER, REAL, STRING, CHAR, BOOLEAN or NULL


@dataclass(frozen=True)
class Identifier(Expr):
    name: str


@dataclass(frozen=True)
class ArrayAccess(Expr):
    name: str
    indices: Tuple[Expr, ...]


@dataclass(frozen=True)
class BinaryExpr(Expr):
    left: Expr
    operator: str
    right: Expr


@dataclass(frozen=True)
class UnaryExpr(Expr):
    operator: str
    operand: Expr


@dataclass(frozen=True)
class CallExpr(Expr):
    callee: str
    arguments: Tuple[Expr, ...]


@dataclass(frozen=True)
class RangeExpr(Expr):
    """`low TO high` in a CASE label."""
    start: Expr
    end: Expr


# ── Declarations ──

@dataclass(frozen=True)
class VarDecl(Stmt):
    name: str
    type_name: str


@dataclass(frozen=True)
class ArrayDecl(Stmt):
    name: str
    bounds: Tuple[Tuple[int, int], ...]     # one (lower, upper) pair per dimension
    element_type: str


@dataclass(frozen=True)
class ConstDecl(Stmt):
    name: str
    value: Optional[Expr]


@dataclass(frozen=True)
class Param:
    name: str
    type_name: str
    mode: str = "BYVAL"                     # BYVAL or BYREF
    element_type: Optional[str] = None      # set when type_name is ARRAY


@dataclass(frozen=True)
class FunctionDecl(Stmt):
    name: Optional[str]
    params: Tuple[Param, ...]
    return_type: Optional[str]
    body: Tuple[Stmt, ...]


@dataclass(frozen=True)
class ProcedureDecl(Stmt):
    name: Optional[str]
    params: Tuple[Param, ...]
    body: Tuple[Stmt, ...]


# ── Statements ──

@dataclass(frozen=True)
class Assignment(Stmt):
    target: Union[Identifier, ArrayAccess]
    value: Expr


@dataclass(frozen=True)
class IfStmt(Stmt):
    condition: Optional[Expr]
    then_branch: Tuple[Stmt, ...]
    else_branch: Optional[Tuple[Stmt, ...]] = None


@dataclass(frozen=True)
class WhileStmt(Stmt):
    condition: Optional[Expr]
    body: Tuple[Stmt, ...]


@dataclass(frozen=True)
class RepeatUntilStmt(Stmt):
    body: Tuple[Stmt, ...]
    condition: Optional[Expr]


@dataclass(frozen=True)
class ForStmt(Stmt):
    variable: Optional[str]
    start: Optional[Expr]
    end: Optional[Expr]
    step: Optional[Expr]
    body: Tuple[Stmt, ...]


@dataclass(frozen=True)
class CaseBranch:
    """
    Single branch of a CASE statement.
    values: literals, constants or RangeExpr labels
    body: statements executed on match
    """
    values: Tuple[Expr, ...]
    body: Tuple[Stmt, ...]
    line: int = 0


@dataclass(frozen=True)
class CaseStmt(Stmt):
    selector: Optional[Expr]
    branches: Tuple[CaseBranch, ...]
    otherwise: Optional[Tuple[Stmt, ...]] = None


@dataclass(frozen=True)
class ReturnStmt(Stmt):
    value: Optional[Expr]


@dataclass(frozen=True)
class CallStmt(Stmt):
    """`CALL name(args)` or a bare call used as a statement."""
    call: CallExpr


@dataclass(frozen=True)
class OutputStmt(Stmt):
    values: Tuple[Expr, ...]


@dataclass(frozen=True)
class InputStmt(Stmt):
    target: Union[Identifier, ArrayAccess]


@dataclass(frozen=True)
class Program(Node):
    body: Tuple[Stmt, ...]


# Closed variant sets; each phase is checked against these for coverage.
STATEMENT_TYPES = (
    VarDecl, ArrayDecl, ConstDecl, Assignment, IfStmt, WhileStmt, ForStmt,
    RepeatUntilStmt, CaseStmt, FunctionDecl, ProcedureDecl, ReturnStmt,
    CallStmt, OutputStmt, InputStmt,
)

EXPRESSION_TYPES = (
    Literal, Identifier, ArrayAccess, BinaryExpr, UnaryExpr, CallExpr,
)
