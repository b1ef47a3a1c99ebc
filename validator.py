"""
Static validation of a parsed pseudocode program.

Walks the AST with a scope stack that mirrors the runtime environments and
reports every semantic problem it finds (nothing short-circuits after the
first error):

- undeclared and redeclared names, unknown or unsupported types
- type mismatches that are certain from literals and declarations
- constant reassignment, array misuse, call arity and BYREF arguments
- RETURN placement and a missing RETURN at the end of a function
- unreachable statements, unused variables and duplicate CASE labels
"""
import logging
from typing import Any, Dict, List, NamedTuple, Optional, Set, Tuple

from ast_nodes import *
from builtins_handler import BUILTIN_SIGNATURES
from config import DEFAULT_MAX_ARRAY_ELEMENTS
from diagnostics import (
    ARGUMENT_COUNT_MISMATCH, CONSTANT_REASSIGNMENT, DUPLICATE_CASE_LABEL,
    INCOMPLETE_STATEMENT, INDEX_COUNT_MISMATCH, INDEX_OUT_OF_BOUNDS,
    INVALID_ARRAY_BOUNDS, INVALID_BYREF_ARGUMENT, INVALID_RETURN,
    MISSING_RETURN, NAMING_CONVENTION, NOT_AN_ARRAY, NOT_A_FUNCTION,
    POSSIBLE_TYPE_MISMATCH, POSSIBLE_UNDECLARED_VARIABLE,
    REDECLARED_IDENTIFIER, REDECLARED_VARIABLE, RETURN_OUTSIDE_FUNCTION,
    TYPE_MISMATCH, UNDECLARED_VARIABLE, UNDEFINED_FUNCTION, UNKNOWN_TYPE,
    UNREACHABLE_CODE, UNSUPPORTED_TYPE, UNUSED_VARIABLE, ZERO_STEP,
    Diagnostic, semantic_error, semantic_warning,
)
from symbol_table import SymbolInfo, SymbolTable
from values import (
    NUMERIC_TYPES, TEXT_TYPES, UNSUPPORTED_TYPE_NAMES, DataType, array_size,
    coerce_to, resolve_type,
)

logger = logging.getLogger(__name__)

_LITERAL_TYPES = {
    'INTEGER': DataType.INTEGER, 'REAL': DataType.REAL,
    'STRING': DataType.STRING, 'CHAR': DataType.CHAR,
    'BOOLEAN': DataType.BOOLEAN, 'NULL': DataType.NULL,
}

_ARITHMETIC_OPS = frozenset({'+', '-', '*', '/', 'DIV', 'MOD'})
_COMPARISON_OPS = frozenset({'=', '<>', '<', '>', '<=', '>='})
_EQUALITY_OPS = frozenset({'=', '<>'})
_LOGICAL_OPS = frozenset({'AND', 'OR'})

# Assignments that only fail for some values (REAL 2.5 → INTEGER, "ab" → CHAR)
_NARROWING = frozenset({(DataType.REAL, DataType.INTEGER), (DataType.STRING, DataType.CHAR)})
_WIDENING = frozenset({(DataType.INTEGER, DataType.REAL), (DataType.CHAR, DataType.STRING)})


class Inferred(NamedTuple):
    """Static type of an expression; `dtype` None means unknown."""
    dtype: Optional[DataType]
    literal: bool = False
    value: Any = None


UNKNOWN = Inferred(None)


def _category(dtype: DataType) -> str:
    if dtype in NUMERIC_TYPES:
        return 'numeric'
    if dtype in TEXT_TYPES:
        return 'text'
    return dtype.name


class Validator:
    def __init__(self, max_array_elements: int = DEFAULT_MAX_ARRAY_ELEMENTS):
        self.max_array_elements = max_array_elements
        self.symbols = SymbolTable()
        self.errors: List[Diagnostic] = []
        self.warnings: List[Diagnostic] = []
        # Routine whose body is being checked (None for the main program)
        self._routine: Optional[SymbolInfo] = None
        # id(declaration node) → its registered symbol
        self._routine_symbols: Dict[int, SymbolInfo] = {}
        # Earliest main-program call line per routine, and the routines calling each routine
        self._first_calls: Dict[str, int] = {}
        self._callers: Dict[str, Set[str]] = {}
        # routine name → {global name: (symbol, first reading node)}
        self._global_reads: Dict[str, Dict[str, Tuple[SymbolInfo, Any]]] = {}

        self._stmt_checkers = {
            VarDecl: self._check_var_decl,
            ArrayDecl: self._check_array_decl,
            ConstDecl: self._check_const_decl,
            Assignment: self._check_assignment,
            IfStmt: self._check_if,
            WhileStmt: self._check_while,
            ForStmt: self._check_for,
            RepeatUntilStmt: self._check_repeat,
            CaseStmt: self._check_case,
            FunctionDecl: self._check_routine_decl,
            ProcedureDecl: self._check_routine_decl,
            ReturnStmt: self._check_return,
            CallStmt: self._check_call_stmt,
            OutputStmt: self._check_output,
            InputStmt: self._check_input,
        }
        self._expr_checkers = {
            Literal: self._infer_literal,
            Identifier: self._infer_identifier,
            ArrayAccess: self._infer_array_access,
            BinaryExpr: self._infer_binary,
            UnaryExpr: self._infer_unary,
            CallExpr: self._infer_call,
        }

    # ── Reporting ──

    def _error(self, node, message: str, code: str, line: int = None):
        self.errors.append(semantic_error(line or node.line, message, code, node.column))

    def _warning(self, node, message: str, code: str, line: int = None):
        self.warnings.append(semantic_warning(line or node.line, message, code, node.column))

    # ── Entry point ──

    def validate(self, program: Program) -> Tuple[List[Diagnostic], List[Diagnostic]]:
        routines = [s for s in program.body if isinstance(s, (FunctionDecl, ProcedureDecl))]

        # Pass 1: register routines so calls may precede declarations
        for decl in routines:
            self._register_routine(decl)

        # Pass 2: the main program in the global scope
        self._check_block(program.body)

        # Pass 3: routine bodies against the final global scope
        for decl in routines:
            self._check_routine_body(decl)

        self._report_late_globals()
        self._report_unused(self.symbols.globals)
        logger.debug("Validation finished: %d errors, %d warnings",
                     len(self.errors), len(self.warnings))
        return self.errors, self.warnings

    # ── Declarations and types ──

    def _resolve_declared_type(self, node, type_name: Optional[str]) -> Optional[DataType]:
        if type_name is None:
            return None
        if type_name in UNSUPPORTED_TYPE_NAMES:
            self._error(node, f"Type '{type_name}' is not supported", UNSUPPORTED_TYPE)
            return None
        dtype = resolve_type(type_name)
        if dtype is None:
            self._error(node, f"Unknown type '{type_name}'", UNKNOWN_TYPE)
        return dtype

    def _check_name(self, node, sym: SymbolInfo):
        # Constants (PI) and routines (CalculateArea) are conventionally capitalised
        if sym.kind in ('variable', 'array', 'parameter') and sym.name[:1].isupper():
            self._warning(node, f"Variable name '{sym.name}' should start with a lowercase letter",
                          NAMING_CONVENTION)

    def _declare(self, node, sym: SymbolInfo) -> SymbolInfo:
        self._check_name(node, sym)
        try:
            return self.symbols.declare(sym)
        except NameError:
            existing = self.symbols.lookup_local(sym.name)
            if existing.is_routine or sym.is_routine:
                self._error(node, f"Identifier '{sym.name}' is already defined "
                                  f"(line {existing.declared_line})", REDECLARED_IDENTIFIER)
            else:
                self._error(node, f"Variable '{sym.name}' already declared in this scope "
                                  f"(line {existing.declared_line})", REDECLARED_VARIABLE)
            return existing

    def _register_routine(self, decl):
        if decl.name is None:
            return
        is_function = isinstance(decl, FunctionDecl)
        return_type = None
        if is_function:
            return_type = self._resolve_declared_type(decl, decl.return_type)
        sym = SymbolInfo(
            decl.name, 'function' if is_function else 'procedure', return_type,
            decl.line, params=decl.params, used=True,
        )
        if self._declare(decl, sym) is sym:
            self._routine_symbols[id(decl)] = sym

    def _check_var_decl(self, stmt: VarDecl):
        dtype = self._resolve_declared_type(stmt, stmt.type_name)
        self._declare(stmt, SymbolInfo(stmt.name, 'variable', dtype, stmt.line))

    def _check_array_decl(self, stmt: ArrayDecl):
        valid = True
        for lower, upper in stmt.bounds:
            if lower > upper:
                valid = False
                self._error(stmt, f"Invalid array bounds {lower}:{upper} for '{stmt.name}'",
                            INVALID_ARRAY_BOUNDS)
        size = array_size(stmt.bounds)
        if valid and size > self.max_array_elements:
            self._error(stmt, f"Array '{stmt.name}' has {size} elements; the limit is "
                              f"{self.max_array_elements}", INVALID_ARRAY_BOUNDS)
        element_type = self._resolve_declared_type(stmt, stmt.element_type)
        self._declare(stmt, SymbolInfo(
            stmt.name, 'array', DataType.ARRAY, stmt.line,
            element_type=element_type, bounds=stmt.bounds,
        ))

    def _check_const_decl(self, stmt: ConstDecl):
        inferred = self._infer(stmt.value) if stmt.value is not None else UNKNOWN
        self._declare(stmt, SymbolInfo(
            stmt.name, 'constant', inferred.dtype, stmt.line,
            constant_value=inferred.value if inferred.literal else None,
        ))

    # ── Statements ──

    def _check_block(self, stmts):
        unreachable_reported = False
        terminated = False
        for stmt in stmts:
            if terminated and not unreachable_reported:
                self._warning(stmt, "Unreachable code", UNREACHABLE_CODE)
                unreachable_reported = True
            self._check_statement(stmt)
            terminated = terminated or self._terminates(stmt)

    def _check_statement(self, stmt):
        checker = self._stmt_checkers.get(type(stmt))
        if checker is None:
            raise TypeError(f"No validator for {type(stmt).__name__}")
        checker(stmt)

    def _terminates(self, stmt) -> bool:
        """True when every path through `stmt` ends in RETURN."""
        if isinstance(stmt, ReturnStmt):
            return True
        if isinstance(stmt, IfStmt):
            return (stmt.else_branch is not None
                    and self._block_terminates(stmt.then_branch)
                    and self._block_terminates(stmt.else_branch))
        if isinstance(stmt, CaseStmt):
            return (stmt.otherwise is not None
                    and all(self._block_terminates(b.body) for b in stmt.branches)
                    and self._block_terminates(stmt.otherwise))
        return False

    def _block_terminates(self, stmts) -> bool:
        return any(self._terminates(s) for s in stmts)

    def _incomplete(self, stmt, what: str):
        self._warning(stmt, f"Incomplete {what} statement skipped", INCOMPLETE_STATEMENT)

    def _check_assignment(self, stmt: Assignment):
        value = self._infer(stmt.value)
        target = stmt.target
        if isinstance(target, ArrayAccess):
            element_type = self._check_array_access(target, reading=False)
            self._check_assignable(stmt, element_type, value, f"element of '{target.name}'")
            return

        sym = self.symbols.lookup(target.name)
        if sym is None:
            # Implicit declaration in the innermost scope
            self._declare(stmt, SymbolInfo(target.name, 'variable', None, stmt.line))
            return
        if sym.kind == 'constant':
            self._error(stmt, f"Cannot assign to constant '{target.name}'", CONSTANT_REASSIGNMENT)
            return
        if sym.is_routine:
            self._error(stmt, f"Cannot assign to {sym.kind} '{target.name}'", TYPE_MISMATCH)
            return
        self._check_assignable(stmt, sym.dtype, value, f"'{target.name}'", target_sym=sym)

    def _check_assignable(self, node, target: Optional[DataType], value: Inferred,
                          what: str, target_sym: Optional[SymbolInfo] = None):
        source = value.dtype
        if target is None or source is None or source == DataType.NULL or source == target:
            if source == DataType.ARRAY and target_sym is not None and value.value is not None:
                self._check_array_compatible(node, target_sym, value.value, what)
            return
        if (source, target) in _WIDENING:
            return
        if value.literal and source not in (DataType.ARRAY,):
            try:
                coerce_to(value.value, target)
                return
            except TypeError:
                pass
        elif (source, target) in _NARROWING:
            self._warning(node, f"Possible type mismatch: {source.name} value assigned to "
                                f"{target.name} {what}", POSSIBLE_TYPE_MISMATCH)
            return
        self._error(node, f"Type mismatch: cannot assign {source.name} to {target.name} {what}",
                    TYPE_MISMATCH)

    def _check_array_compatible(self, node, target: SymbolInfo, source: SymbolInfo, what: str):
        if target.bounds is None or source.bounds is None:
            return
        target_shape = tuple(hi - lo + 1 for lo, hi in target.bounds)
        source_shape = tuple(hi - lo + 1 for lo, hi in source.bounds)
        if target_shape != source_shape or target.element_type != source.element_type:
            self._error(node, f"Type mismatch: array '{source.name}' does not match the "
                              f"dimensions and element type of {what}", TYPE_MISMATCH)

    def _check_condition(self, stmt, condition, keyword: str):
        if condition is None:
            self._incomplete(stmt, keyword)
            return
        inferred = self._infer(condition)
        if inferred.dtype not in (None, DataType.BOOLEAN):
            self._error(condition, f"{keyword} condition must be BOOLEAN, got {inferred.dtype.name}",
                        TYPE_MISMATCH, line=stmt.line if condition.line == 0 else None)

    def _check_if(self, stmt: IfStmt):
        self._check_condition(stmt, stmt.condition, "IF")
        self._check_block(stmt.then_branch)
        if stmt.else_branch is not None:
            self._check_block(stmt.else_branch)

    def _check_while(self, stmt: WhileStmt):
        self._check_condition(stmt, stmt.condition, "WHILE")
        self._check_block(stmt.body)

    def _check_repeat(self, stmt: RepeatUntilStmt):
        self._check_block(stmt.body)
        self._check_condition(stmt, stmt.condition, "UNTIL")

    def _check_for(self, stmt: ForStmt):
        if stmt.variable is None or stmt.start is None or stmt.end is None:
            self._incomplete(stmt, "FOR")
            self.symbols.enter_scope()
            self._check_block(stmt.body)
            self._report_unused(self.symbols.exit_scope())
            return

        bound_types = []
        for part, expr in (("start", stmt.start), ("end", stmt.end), ("step", stmt.step)):
            if expr is None:
                continue
            inferred = self._infer(expr)
            if inferred.dtype is not None and inferred.dtype not in NUMERIC_TYPES:
                self._error(expr, f"FOR {part} value must be numeric, got {inferred.dtype.name}",
                            TYPE_MISMATCH)
            if part == "step" and inferred.literal and inferred.value == 0:
                self._error(expr, "FOR loop STEP cannot be zero", ZERO_STEP)
            if part != "end":
                bound_types.append(inferred.dtype)

        loop_type = DataType.REAL if DataType.REAL in bound_types else DataType.INTEGER
        self.symbols.enter_scope()
        self._declare(stmt, SymbolInfo(stmt.variable, 'variable', loop_type, stmt.line, used=True))
        self._check_block(stmt.body)
        self._report_unused(self.symbols.exit_scope())

    def _check_case(self, stmt: CaseStmt):
        if stmt.selector is None:
            self._incomplete(stmt, "CASE")
            selector = UNKNOWN
        else:
            selector = self._infer(stmt.selector)

        seen: Dict[Any, int] = {}
        for branch in stmt.branches:
            for label in branch.values:
                key = self._check_case_label(label, selector)
                if key is None:
                    continue
                if key in seen:
                    self._warning(label, f"Duplicate CASE label (first used on line {seen[key]})",
                                  DUPLICATE_CASE_LABEL, line=branch.line)
                else:
                    seen[key] = branch.line
            self._check_block(branch.body)
        if stmt.otherwise is not None:
            self._check_block(stmt.otherwise)

    def _check_case_label(self, label, selector: Inferred):
        """Check one label against the selector; return a hashable key for duplicate detection."""
        if isinstance(label, RangeExpr):
            low = self._infer(label.start)
            high = self._infer(label.end)
            self._check_label_type(label, low, selector)
            self._check_label_type(label, high, selector)
            if low.literal and high.literal:
                return ('range', low.value, high.value)
            return None
        inferred = self._infer(label)
        self._check_label_type(label, inferred, selector)
        if inferred.literal and inferred.dtype is not None:
            return (_category(inferred.dtype), inferred.value)
        return None

    def _check_label_type(self, label, inferred: Inferred, selector: Inferred):
        if inferred.dtype is None or selector.dtype is None:
            return
        if _category(inferred.dtype) != _category(selector.dtype):
            self._error(label, f"CASE label of type {inferred.dtype.name} cannot match a "
                               f"{selector.dtype.name} selector", TYPE_MISMATCH)

    def _check_routine_decl(self, decl):
        # Bodies are checked in the third pass; the parser only keeps top-level routines
        if decl.name is None:
            self._incomplete(decl, "FUNCTION" if isinstance(decl, FunctionDecl) else "PROCEDURE")

    def _check_routine_body(self, decl):
        sym = self._routine_symbols.get(id(decl))
        if sym is None:
            # Unnamed or duplicate declaration: check the body against a throwaway symbol
            sym = SymbolInfo(decl.name or "?", 'function' if isinstance(decl, FunctionDecl)
                             else 'procedure', declared_line=decl.line, params=decl.params)

        self._routine = sym
        self.symbols.enter_scope()
        for param in decl.params:
            self._declare(decl, SymbolInfo(
                param.name, 'parameter', self._resolve_declared_type(decl, param.type_name),
                decl.line, element_type=self._resolve_declared_type(decl, param.element_type),
                param_mode=param.mode, used=True,
            ))
        self._check_block(decl.body)
        if sym.kind == 'function' and not self._block_terminates(decl.body):
            self._warning(decl, f"Function '{sym.name}' may reach ENDFUNCTION without a RETURN",
                          MISSING_RETURN)
        self._report_unused(self.symbols.exit_scope())
        self._routine = None

    def _check_return(self, stmt: ReturnStmt):
        routine = self._routine
        value = self._infer(stmt.value) if stmt.value is not None else None
        if routine is None:
            self._warning(stmt, "RETURN outside of a function or procedure", RETURN_OUTSIDE_FUNCTION)
            return
        if routine.kind == 'procedure':
            if value is not None:
                self._error(stmt, f"Procedure '{routine.name}' cannot return a value", INVALID_RETURN)
            return
        if value is None:
            self._error(stmt, f"Function '{routine.name}' must return a value", INVALID_RETURN)
            return
        self._check_assignable(stmt, routine.dtype, value, f"return value of '{routine.name}'")

    def _check_call_stmt(self, stmt: CallStmt):
        self._check_call(stmt.call, as_value=False)

    def _check_output(self, stmt: OutputStmt):
        for value in stmt.values:
            self._infer(value)

    def _check_input(self, stmt: InputStmt):
        target = stmt.target
        if isinstance(target, ArrayAccess):
            self._check_array_access(target, reading=False)
            return
        sym = self.symbols.lookup(target.name)
        if sym is None:
            self._declare(stmt, SymbolInfo(target.name, 'variable', None, stmt.line))
        elif sym.kind == 'constant':
            self._error(stmt, f"Cannot INPUT into constant '{target.name}'", CONSTANT_REASSIGNMENT)
        elif sym.dtype == DataType.ARRAY:
            self._error(stmt, f"Cannot INPUT into the whole array '{target.name}'", TYPE_MISMATCH)
        elif sym.is_routine:
            self._error(stmt, f"Cannot INPUT into {sym.kind} '{target.name}'", TYPE_MISMATCH)

    def _report_unused(self, scope: Dict[str, SymbolInfo]):
        for sym in scope.values():
            if sym.kind in ('variable', 'array') and not sym.used:
                self.warnings.append(semantic_warning(
                    sym.declared_line, f"Variable '{sym.name}' is declared but never used",
                    UNUSED_VARIABLE))

    def _note_global_read(self, node, sym: SymbolInfo):
        if self._routine is None or sym.is_routine:
            return
        if self.symbols.globals.get(sym.name) is sym:
            reads = self._global_reads.setdefault(self._routine.name, {})
            reads.setdefault(sym.name, (sym, node))

    def _report_late_globals(self):
        """
        Warn when a routine reads a global that the main program only declares
        after the routine is first called (directly or through other routines).
        """
        first_calls = dict(self._first_calls)
        changed = True
        while changed:
            changed = False
            for callee, callers in self._callers.items():
                for caller in callers:
                    line = first_calls.get(caller)
                    if line is not None and line < first_calls.get(callee, line + 1):
                        first_calls[callee] = line
                        changed = True

        for routine, reads in self._global_reads.items():
            called_on = first_calls.get(routine)
            if called_on is None:
                continue
            for name, (sym, node) in reads.items():
                if sym.declared_line > called_on:
                    self._warning(node, f"Global '{name}' is declared on line {sym.declared_line}, "
                                        f"after '{routine}' is first called on line {called_on}",
                                  POSSIBLE_UNDECLARED_VARIABLE)

    # ── Expressions ──

    def _infer(self, expr) -> Inferred:
        checker = self._expr_checkers.get(type(expr))
        if checker is None:
            raise TypeError(f"No validator for {type(expr).__name__}")
        return checker(expr)

    def _infer_literal(self, expr: Literal) -> Inferred:
        return Inferred(_LITERAL_TYPES[expr.type_name], True, expr.value)

    def _infer_identifier(self, expr: Identifier) -> Inferred:
        sym = self.symbols.lookup(expr.name)
        if sym is None:
            self._error(expr, f"Variable '{expr.name}' used before declaration", UNDECLARED_VARIABLE)
            return UNKNOWN
        sym.used = True
        self._note_global_read(expr, sym)
        if sym.is_routine:
            self._error(expr, f"'{expr.name}' is a {sym.kind}; call it with parentheses",
                        NOT_A_FUNCTION)
            return UNKNOWN
        if sym.kind == 'constant' and sym.constant_value is not None:
            return Inferred(sym.dtype, True, sym.constant_value)
        if sym.dtype == DataType.ARRAY:
            # Carry the symbol so array-to-array assignment can compare shapes
            return Inferred(DataType.ARRAY, False, sym)
        return Inferred(sym.dtype)

    def _infer_array_access(self, expr: ArrayAccess) -> Inferred:
        return Inferred(self._check_array_access(expr, reading=True))

    def _check_array_access(self, expr: ArrayAccess, reading: bool) -> Optional[DataType]:
        """Check indices against the declaration; return the element type if known."""
        sym = self.symbols.lookup(expr.name)
        index_types = [self._infer(index) for index in expr.indices]
        if sym is None:
            self._error(expr, f"Variable '{expr.name}' used before declaration", UNDECLARED_VARIABLE)
            return None
        if reading:
            sym.used = True
            self._note_global_read(expr, sym)
        if sym.dtype is None or (sym.kind == 'parameter' and sym.dtype == DataType.ARRAY):
            # Untyped names and ARRAY parameters have no static bounds
            return sym.element_type if sym.dtype == DataType.ARRAY else None
        if sym.dtype != DataType.ARRAY:
            self._error(expr, f"'{expr.name}' is not an array", NOT_AN_ARRAY)
            return None

        if len(expr.indices) != len(sym.bounds):
            self._error(expr, f"Array '{expr.name}' has {len(sym.bounds)} dimension(s) "
                              f"but {len(expr.indices)} index(es) were given", INDEX_COUNT_MISMATCH)
            return sym.element_type

        for index, inferred, (lower, upper) in zip(expr.indices, index_types, sym.bounds):
            if inferred.dtype is None:
                continue
            if inferred.dtype != DataType.INTEGER:
                if inferred.literal or inferred.dtype != DataType.REAL:
                    self._error(index, f"Array index must be INTEGER, got {inferred.dtype.name}",
                                TYPE_MISMATCH)
                else:
                    self._warning(index, "Possible type mismatch: REAL value used as array index",
                                  POSSIBLE_TYPE_MISMATCH)
            elif inferred.literal and not lower <= inferred.value <= upper:
                self._warning(index, f"Array index {inferred.value} is outside the bounds "
                                     f"{lower}:{upper} of '{expr.name}'", INDEX_OUT_OF_BOUNDS)
        return sym.element_type

    def _infer_unary(self, expr: UnaryExpr) -> Inferred:
        operand = self._infer(expr.operand)
        if operand.dtype is None or operand.dtype == DataType.NULL:
            return Inferred(DataType.BOOLEAN) if expr.operator == "NOT" else UNKNOWN
        if expr.operator == "NOT":
            if operand.dtype != DataType.BOOLEAN:
                self._error(expr, f"NOT requires a BOOLEAN operand, got {operand.dtype.name}",
                            TYPE_MISMATCH)
            return Inferred(DataType.BOOLEAN)
        if operand.dtype not in NUMERIC_TYPES:
            self._error(expr, f"Unary minus requires a numeric operand, got {operand.dtype.name}",
                        TYPE_MISMATCH)
            return UNKNOWN
        return Inferred(operand.dtype)

    def _infer_binary(self, expr: BinaryExpr) -> Inferred:
        left = self._infer(expr.left)
        right = self._infer(expr.right)
        op = expr.operator

        if op == '&':
            return Inferred(DataType.STRING)
        if op in _LOGICAL_OPS:
            for side in (left, right):
                if side.dtype is not None and side.dtype != DataType.BOOLEAN:
                    self._error(expr, f"{op} requires BOOLEAN operands, got {side.dtype.name}",
                                TYPE_MISMATCH)
            return Inferred(DataType.BOOLEAN)
        if op in _COMPARISON_OPS:
            self._check_comparison(expr, left.dtype, right.dtype)
            return Inferred(DataType.BOOLEAN)
        return self._infer_arithmetic(expr, left.dtype, right.dtype)

    def _check_comparison(self, expr: BinaryExpr, left, right):
        if left is None or right is None:
            return
        if DataType.NULL in (left, right):
            if expr.operator not in _EQUALITY_OPS:
                self._error(expr, f"Cannot order NULL with '{expr.operator}'", TYPE_MISMATCH)
            return
        if DataType.ARRAY in (left, right):
            self._error(expr, "Arrays cannot be compared", TYPE_MISMATCH)
            return
        if _category(left) != _category(right):
            self._error(expr, f"Cannot compare {left.name} with {right.name}", TYPE_MISMATCH)
        elif left == DataType.BOOLEAN and expr.operator not in _EQUALITY_OPS:
            self._error(expr, f"Cannot order BOOLEAN values with '{expr.operator}'", TYPE_MISMATCH)

    def _infer_arithmetic(self, expr: BinaryExpr, left, right) -> Inferred:
        op = expr.operator
        if left is None or right is None:
            return Inferred(DataType.REAL) if op == '/' else UNKNOWN
        if op == '+' and left in TEXT_TYPES and right in TEXT_TYPES:
            return Inferred(DataType.STRING)
        if left not in NUMERIC_TYPES or right not in NUMERIC_TYPES:
            self._error(expr, f"Operator '{op}' cannot be applied to {left.name} and {right.name}",
                        TYPE_MISMATCH)
            return UNKNOWN
        if op == '/':
            return Inferred(DataType.REAL)
        if op == 'DIV':
            return Inferred(DataType.INTEGER)
        if left == right == DataType.INTEGER:
            return Inferred(DataType.INTEGER)
        return Inferred(DataType.REAL)

    def _infer_call(self, expr: CallExpr) -> Inferred:
        return Inferred(self._check_call(expr, as_value=True))

    def _check_call(self, expr: CallExpr, as_value: bool) -> Optional[DataType]:
        sym = self.symbols.lookup(expr.callee)
        if sym is None or not sym.is_routine:
            signature = BUILTIN_SIGNATURES.get(expr.callee)
            if sym is None and signature is not None:
                arg_types = [self._infer(arg) for arg in expr.arguments]
                self._check_arity(expr, "Function", signature.arity, len(arg_types))
                return signature.returns
            for arg in expr.arguments:
                self._infer(arg)
            if sym is None:
                self._error(expr, f"Function '{expr.callee}' is not defined", UNDEFINED_FUNCTION)
            else:
                self._error(expr, f"'{expr.callee}' is not a function or procedure",
                            UNDEFINED_FUNCTION)
            return None

        if self._routine is None:
            self._first_calls[sym.name] = min(expr.line, self._first_calls.get(sym.name, expr.line))
        else:
            self._callers.setdefault(sym.name, set()).add(self._routine.name)

        if as_value and sym.kind == 'procedure':
            self._error(expr, f"Procedure '{expr.callee}' does not return a value", NOT_A_FUNCTION)

        params = sym.params
        self._check_arity(expr, sym.kind.capitalize(), len(params), len(expr.arguments))
        for position, (arg, param) in enumerate(zip(expr.arguments, params), start=1):
            self._check_argument(expr, position, arg, param)
        for arg in expr.arguments[len(params):]:
            self._infer(arg)
        return sym.dtype

    def _check_arity(self, expr: CallExpr, kind: str, expected: int, got: int):
        if expected != got:
            self._error(expr, f"{kind} '{expr.callee}' expects {expected} argument(s), got {got}",
                        ARGUMENT_COUNT_MISMATCH)

    def _check_argument(self, expr: CallExpr, position: int, arg, param: Param):
        if param.mode == "BYREF" and not isinstance(arg, Identifier):
            self._error(arg, f"Argument {position} of '{expr.callee}' is passed BYREF and must "
                             f"be a variable name", INVALID_BYREF_ARGUMENT)
        inferred = self._infer(arg)
        param_type = resolve_type(param.type_name)
        what = f"parameter '{param.name}' of '{expr.callee}'"
        if param_type == DataType.ARRAY:
            if inferred.dtype not in (None, DataType.ARRAY, DataType.NULL):
                self._error(arg, f"Type mismatch: {what} expects an ARRAY, got "
                                 f"{inferred.dtype.name}", TYPE_MISMATCH)
            elif isinstance(inferred.value, SymbolInfo) and param.element_type is not None:
                expected = resolve_type(param.element_type)
                if expected is not None and inferred.value.element_type not in (None, expected):
                    self._error(arg, f"Type mismatch: {what} expects ARRAY OF "
                                     f"{param.element_type}", TYPE_MISMATCH)
            return
        if inferred.dtype == DataType.ARRAY:
            if param_type is not None:
                self._error(arg, f"Type mismatch: cannot pass ARRAY to {what}", TYPE_MISMATCH)
            return
        self._check_assignable(arg, param_type, inferred, what)


def validate(program: Program) -> Tuple[List[Diagnostic], List[Diagnostic]]:
    """Return (errors, warnings) for a parsed program. Pure: the AST is not modified."""
    return Validator().validate(program)
