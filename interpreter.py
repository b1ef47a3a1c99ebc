import logging
import random
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Union

from ast_nodes import *
from builtins_handler import BUILTIN_NAMES, BuiltinError, call_builtin
from config import ExecutionConfig
from diagnostics import (
    ARGUMENT_COUNT_MISMATCH, CANCELLED, CONSTANT_REASSIGNMENT, DIVISION_BY_ZERO,
    INDEX_OUT_OF_RANGE, INPUT_EXHAUSTED, INTERNAL_ERROR, INVALID_BYREF_ARGUMENT,
    MEMORY_LIMIT, MISSING_RETURN, NOT_AN_ARRAY, NOT_A_FUNCTION, NUMERIC_OVERFLOW, OUTPUT_LIMIT,
    RETURN_OUTSIDE_FUNCTION, RUNTIME_ERROR, STACK_OVERFLOW, STEP_LIMIT_EXCEEDED,
    TIMEOUT, TYPE_MISMATCH, UNDECLARED_VARIABLE, UNDEFINED_FUNCTION, ZERO_STEP,
    EventKind, ExecutionEvent, runtime_message,
)
from symbol_table import Binding, Environment
from values import (
    ArrayValue, Char, DataType, array_size, check_integer, coerce_to,
    default_value, format_value, resolve_type, type_of,
)

logger = logging.getLogger(__name__)


class PseudocodeRuntimeError(Exception):
    """A language-level fault in the running program; ends the run."""

    def __init__(self, message: str, line: int, code: str = RUNTIME_ERROR):
        super().__init__(message)
        self.message = message
        self.line = line
        self.code = code


class InternalError(Exception):
    """An engine fault (e.g. a node type with no visitor); never blamed on user code."""


class CompletionType(Enum):
    NORMAL = auto()
    RETURN = auto()


@dataclass(frozen=True)
class Completion:
    """How a statement finished. RETURN carries the returned value up to the call."""
    type: CompletionType
    value: Any = None
    line: int = 0


NORMAL = Completion(CompletionType.NORMAL)


@dataclass
class ExecutionTrace:
    events: List[ExecutionEvent] = field(default_factory=list)
    success: bool = True
    steps: int = 0


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_text(value) -> bool:
    return isinstance(value, str)


class Interpreter:
    """Tree-walking evaluator. One instance executes one program run."""

    def __init__(self, config: Optional[ExecutionConfig] = None):
        self.config = config or ExecutionConfig()
        self.globals = Environment()
        self.env = self.globals
        self.routines: Dict[str, Union[FunctionDecl, ProcedureDecl]] = {}
        self.events: List[ExecutionEvent] = []
        self.steps = 0
        self.call_depth = 0
        self.current_line = 0
        self._inputs = deque(self.config.inputs)
        self._output_count = 0
        self._dropped_outputs = 0
        self._rng = random.Random(self.config.random_seed)
        self._deadline = 0.0
        self._init_dispatch_tables()

    def _init_dispatch_tables(self):
        self._stmt_visitors = {
            VarDecl: self.visit_VarDecl,
            ArrayDecl: self.visit_ArrayDecl,
            ConstDecl: self.visit_ConstDecl,
            Assignment: self.visit_Assignment,
            IfStmt: self.visit_IfStmt,
            WhileStmt: self.visit_WhileStmt,
            ForStmt: self.visit_ForStmt,
            RepeatUntilStmt: self.visit_RepeatUntilStmt,
            CaseStmt: self.visit_CaseStmt,
            FunctionDecl: self.visit_RoutineDecl,
            ProcedureDecl: self.visit_RoutineDecl,
            ReturnStmt: self.visit_ReturnStmt,
            CallStmt: self.visit_CallStmt,
            OutputStmt: self.visit_OutputStmt,
            InputStmt: self.visit_InputStmt,
        }

        self._expr_evaluators = {
            Literal: self.evaluate_Literal,
            Identifier: self.evaluate_Identifier,
            ArrayAccess: self.evaluate_ArrayAccess,
            BinaryExpr: self.evaluate_BinaryExpr,
            UnaryExpr: self.evaluate_UnaryExpr,
            CallExpr: self.evaluate_CallExpr,
        }

    # ── Run loop ──

    def run(self, program: Program) -> ExecutionTrace:
        """Execute a validated program and return its trace. Never raises."""
        self._deadline = time.monotonic() + self.config.timeout_ms / 1000
        failure = None
        try:
            self._hoist(program.body)
            self.execute_block(program.body)
        except PseudocodeRuntimeError as err:
            failure = ExecutionEvent(EventKind.ERROR, runtime_message(err.line, err.message),
                                     err.line, err.code)
        except RecursionError:
            failure = ExecutionEvent(EventKind.ERROR, runtime_message(self.current_line, "Stack overflow"),
                                     self.current_line, STACK_OVERFLOW)
        except OverflowError:
            # Numbers too large for a REAL or for decimal text, outside an expression
            failure = ExecutionEvent(EventKind.ERROR, runtime_message(self.current_line, "Numeric overflow"),
                                     self.current_line, NUMERIC_OVERFLOW)
        except MemoryError:
            failure = ExecutionEvent(EventKind.ERROR, runtime_message(self.current_line, "Out of memory"),
                                     self.current_line, MEMORY_LIMIT)
        except Exception as exc:
            logger.exception("Interpreter fault near line %d", self.current_line)
            failure = ExecutionEvent(EventKind.SYSTEM,
                                     f"Internal error: {type(exc).__name__}: {exc}",
                                     None, INTERNAL_ERROR)

        if self._dropped_outputs:
            self.events.append(ExecutionEvent(
                EventKind.SYSTEM,
                f"Output limit of {self.config.max_output_events} events reached; "
                f"{self._dropped_outputs} further OUTPUT event(s) dropped",
                None, OUTPUT_LIMIT))
        if failure is not None:
            self.events.append(failure)

        logger.debug("Run finished after %d steps (%d events, %s)", self.steps,
                     len(self.events), "failed" if failure else "ok")
        return ExecutionTrace(self.events, failure is None, self.steps)

    def _hoist(self, body):
        for stmt in body:
            if isinstance(stmt, (FunctionDecl, ProcedureDecl)):
                self.routines[stmt.name] = stmt

    def _tick(self, line: int):
        """Count one step and enforce the step, time and cancellation limits."""
        self.steps += 1
        if self.steps > self.config.max_steps:
            raise PseudocodeRuntimeError("Execution timed out", line, STEP_LIMIT_EXCEEDED)
        if time.monotonic() > self._deadline:
            raise PseudocodeRuntimeError("Execution timed out", line, TIMEOUT)
        cancel_check = self.config.cancel_check
        if cancel_check is not None and cancel_check():
            raise PseudocodeRuntimeError("Execution cancelled", line, CANCELLED)

    def execute(self, stmt: Stmt) -> Completion:
        self.current_line = stmt.line
        self._tick(stmt.line)
        visitor = self._stmt_visitors.get(type(stmt))
        if visitor is None:
            raise InternalError(f"No visit method for {type(stmt).__name__}")
        return visitor(stmt) or NORMAL

    def execute_block(self, stmts) -> Completion:
        for stmt in stmts:
            completion = self.execute(stmt)
            if completion.type is CompletionType.RETURN:
                return completion
        return NORMAL

    def evaluate(self, expr: Expr) -> Any:
        evaluator = self._expr_evaluators.get(type(expr))
        if evaluator is None:
            raise InternalError(f"No evaluate method for {type(expr).__name__}")
        return evaluator(expr)

    # ── Declarations ──

    def visit_VarDecl(self, stmt: VarDecl):
        dtype = resolve_type(stmt.type_name)
        self.env.define(stmt.name, Binding(default_value(dtype), dtype))

    def visit_ArrayDecl(self, stmt: ArrayDecl):
        size = array_size(stmt.bounds)
        if size > self.config.max_array_elements:
            raise PseudocodeRuntimeError(
                f"Array '{stmt.name}' has {size} elements; the limit is {self.config.max_array_elements}",
                stmt.line, MEMORY_LIMIT)
        array = ArrayValue(stmt.bounds, resolve_type(stmt.element_type))
        self.env.define(stmt.name, Binding(array, DataType.ARRAY))

    def visit_ConstDecl(self, stmt: ConstDecl):
        value = self.evaluate(stmt.value)
        if isinstance(value, ArrayValue):
            value = value.copy()
        dtype = type_of(value) if value is not None else None
        self.env.define(stmt.name, Binding(value, dtype, is_constant=True))

    def visit_RoutineDecl(self, stmt):
        # Already hoisted by run()
        pass

    # ── Assignment and I/O ──

    def visit_Assignment(self, stmt: Assignment):
        value = self.evaluate(stmt.value)
        self._store(stmt.target, value, stmt.line)

    def _store(self, target, value: Any, line: int):
        if isinstance(target, ArrayAccess):
            array = self._array_named(target.name, line)
            indices = self._evaluate_indices(target.indices, line)
            try:
                array.set(indices, value)
            except IndexError as e:
                raise PseudocodeRuntimeError(str(e), line, INDEX_OUT_OF_RANGE) from None
            except TypeError as e:
                raise PseudocodeRuntimeError(str(e), line, TYPE_MISMATCH) from None
            return

        try:
            self.env.assign(target.name, value)
        except ValueError:
            raise PseudocodeRuntimeError(f"Cannot assign to constant '{target.name}'",
                                         line, CONSTANT_REASSIGNMENT) from None
        except TypeError as e:
            raise PseudocodeRuntimeError(str(e), line, TYPE_MISMATCH) from None

    def visit_OutputStmt(self, stmt: OutputStmt):
        text = self.config.output_separator.join(
            self._format(self.evaluate(v), stmt.line) for v in stmt.values)
        if self._output_count >= self.config.max_output_events:
            self._dropped_outputs += 1
            return
        self._output_count += 1
        self.events.append(ExecutionEvent(EventKind.OUTPUT, text, stmt.line))

    def visit_InputStmt(self, stmt: InputStmt):
        if not self._inputs:
            raise PseudocodeRuntimeError("No more input available", stmt.line, INPUT_EXHAUSTED)
        raw = self._inputs.popleft()
        self._check_length(len(raw), stmt.line)

        target = stmt.target
        if isinstance(target, ArrayAccess):
            target_type = self._array_named(target.name, stmt.line).element_type
        else:
            binding = self.env.lookup(target.name)
            target_type = binding.dtype if binding is not None else None

        if target_type == DataType.ARRAY:
            raise PseudocodeRuntimeError(f"Cannot INPUT into the whole array '{target.name}'",
                                         stmt.line, TYPE_MISMATCH)
        if target_type is not None:
            value = self._coerce_input(raw, target_type, stmt.line)
        else:
            value = self._auto_parse_input(raw)
        self._store(target, value, stmt.line)

    def _coerce_input(self, raw: str, target_type: DataType, line: int) -> Any:
        """Coerce an input string to the target variable's declared type."""
        text = raw.strip()
        try:
            if target_type == DataType.INTEGER:
                return check_integer(int(text))
            if target_type == DataType.REAL:
                return float(text)
        except ValueError:
            raise PseudocodeRuntimeError(f"Cannot convert input '{raw}' to {target_type.name}",
                                         line, TYPE_MISMATCH) from None
        if target_type == DataType.BOOLEAN:
            if text.upper() in ('TRUE', 'FALSE'):
                return text.upper() == 'TRUE'
            raise PseudocodeRuntimeError(f"Cannot convert input '{raw}' to BOOLEAN",
                                         line, TYPE_MISMATCH)
        if target_type == DataType.CHAR:
            if len(raw) != 1:
                raise PseudocodeRuntimeError(f"CHAR requires exactly one character, got '{raw}'",
                                             line, TYPE_MISMATCH)
            return Char(raw)
        return raw

    @staticmethod
    def _auto_parse_input(raw: str) -> Any:
        """Infer a type for input into an untyped variable."""
        text = raw.strip()
        if text.upper() == 'TRUE':
            return True
        if text.upper() == 'FALSE':
            return False
        try:
            return check_integer(int(text))
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return raw

    # ── Control flow ──

    def _condition(self, expr: Expr, keyword: str, line: int) -> bool:
        value = self.evaluate(expr)
        if not isinstance(value, bool):
            raise PseudocodeRuntimeError(
                f"{keyword} condition must be BOOLEAN, got {type_of(value).name}",
                line, TYPE_MISMATCH)
        return value

    def visit_IfStmt(self, stmt: IfStmt) -> Completion:
        if self._condition(stmt.condition, "IF", stmt.line):
            return self.execute_block(stmt.then_branch)
        if stmt.else_branch is not None:
            return self.execute_block(stmt.else_branch)
        return NORMAL

    def visit_WhileStmt(self, stmt: WhileStmt) -> Completion:
        while True:
            if not self._condition(stmt.condition, "WHILE", stmt.line):
                return NORMAL
            completion = self.execute_block(stmt.body)
            if completion.type is CompletionType.RETURN:
                return completion
            # Each re-check of the condition is a step
            self._tick(stmt.line)

    def visit_RepeatUntilStmt(self, stmt: RepeatUntilStmt) -> Completion:
        while True:
            completion = self.execute_block(stmt.body)
            if completion.type is CompletionType.RETURN:
                return completion
            self._tick(stmt.line)
            if self._condition(stmt.condition, "UNTIL", stmt.line):
                return NORMAL

    def visit_ForStmt(self, stmt: ForStmt) -> Completion:
        start = self._for_bound(stmt.start, "start", stmt.line)
        end = self._for_bound(stmt.end, "end", stmt.line)
        step = self._for_bound(stmt.step, "step", stmt.line) if stmt.step is not None else 1
        if step == 0:
            raise PseudocodeRuntimeError("FOR loop STEP cannot be zero", stmt.line, ZERO_STEP)

        loop_type = DataType.REAL if isinstance(start, float) or isinstance(step, float) else DataType.INTEGER
        loop_env = self.env.child()
        counter = loop_env.define(stmt.variable, Binding(coerce_to(start, loop_type), loop_type))

        previous = self.env
        self.env = loop_env
        try:
            while True:
                current = counter.value
                if (step > 0 and current > end) or (step < 0 and current < end):
                    return NORMAL
                completion = self.execute_block(stmt.body)
                if completion.type is CompletionType.RETURN:
                    return completion
                self._tick(stmt.line)
                counter.set(counter.value + step)
        finally:
            self.env = previous

    def _for_bound(self, expr: Expr, part: str, line: int):
        value = self.evaluate(expr)
        if not _is_number(value):
            raise PseudocodeRuntimeError(
                f"FOR {part} value must be numeric, got {type_of(value).name}", line, TYPE_MISMATCH)
        return value

    def visit_CaseStmt(self, stmt: CaseStmt) -> Completion:
        selector = self.evaluate(stmt.selector)
        for branch in stmt.branches:
            for label in branch.values:
                if self._case_matches(selector, label, branch.line or stmt.line):
                    return self.execute_block(branch.body)
        if stmt.otherwise is not None:
            return self.execute_block(stmt.otherwise)
        return NORMAL

    def _case_matches(self, selector, label, line: int) -> bool:
        if isinstance(label, RangeExpr):
            low = self.evaluate(label.start)
            high = self.evaluate(label.end)
            return self._compare('>=', selector, low, line) and self._compare('<=', selector, high, line)
        return self._compare('=', selector, self.evaluate(label), line)

    # ── Routines ──

    def visit_ReturnStmt(self, stmt: ReturnStmt) -> Completion:
        if self.call_depth == 0:
            raise PseudocodeRuntimeError("RETURN outside of a function or procedure",
                                         stmt.line, RETURN_OUTSIDE_FUNCTION)
        value = self.evaluate(stmt.value) if stmt.value is not None else None
        return Completion(CompletionType.RETURN, value, stmt.line)

    def visit_CallStmt(self, stmt: CallStmt):
        self._call(stmt.call, as_value=False)

    def evaluate_CallExpr(self, expr: CallExpr):
        return self._call(expr, as_value=True)

    def _call(self, expr: CallExpr, as_value: bool) -> Any:
        decl = self.routines.get(expr.callee)
        if decl is None:
            if expr.callee in BUILTIN_NAMES:
                return self._call_builtin(expr)
            raise PseudocodeRuntimeError(f"Function '{expr.callee}' is not defined",
                                         expr.line, UNDEFINED_FUNCTION)
        if as_value and isinstance(decl, ProcedureDecl):
            raise PseudocodeRuntimeError(f"Procedure '{decl.name}' does not return a value",
                                         expr.line, NOT_A_FUNCTION)
        if len(expr.arguments) != len(decl.params):
            raise PseudocodeRuntimeError(
                f"'{decl.name}' expects {len(decl.params)} argument(s), got {len(expr.arguments)}",
                expr.line, ARGUMENT_COUNT_MISMATCH)

        # Arguments are evaluated in the caller's scope before the callee scope exists
        bindings = [self._bind_argument(expr, arg, param)
                    for arg, param in zip(expr.arguments, decl.params)]

        if self.call_depth >= self.config.max_call_depth:
            raise PseudocodeRuntimeError("Stack overflow", expr.line, STACK_OVERFLOW)

        callee_env = Environment(self.globals)
        for param, binding in zip(decl.params, bindings):
            callee_env.define(param.name, binding)

        previous = self.env
        self.env = callee_env
        self.call_depth += 1
        try:
            completion = self.execute_block(decl.body)
        finally:
            self.env = previous
            self.call_depth -= 1
            self.current_line = expr.line

        if isinstance(decl, ProcedureDecl):
            return None
        if completion.type is not CompletionType.RETURN:
            raise PseudocodeRuntimeError(f"Function '{decl.name}' ended without a RETURN",
                                         expr.line, MISSING_RETURN)
        result = Binding(None, resolve_type(decl.return_type))
        try:
            result.set(completion.value)
        except TypeError as e:
            raise PseudocodeRuntimeError(str(e), completion.line, TYPE_MISMATCH) from None
        return result.get()

    def _bind_argument(self, expr: CallExpr, arg: Expr, param: Param) -> Binding:
        dtype = resolve_type(param.type_name)
        if param.mode == "BYREF":
            if not isinstance(arg, Identifier):
                raise PseudocodeRuntimeError(
                    f"BYREF parameter '{param.name}' of '{expr.callee}' needs a variable",
                    expr.line, INVALID_BYREF_ARGUMENT)
            binding = self.env.lookup(arg.name)
            if binding is None:
                raise PseudocodeRuntimeError(f"Variable '{arg.name}' used before declaration",
                                             expr.line, UNDECLARED_VARIABLE)
            if dtype is not None and binding.dtype is not None and binding.dtype != dtype:
                raise PseudocodeRuntimeError(
                    f"Type mismatch: BYREF parameter '{param.name}' is {dtype.name} but "
                    f"'{arg.name}' is {binding.dtype.name}", expr.line, TYPE_MISMATCH)
            return binding

        value = self.evaluate(arg)
        if dtype == DataType.ARRAY:
            self._check_array_argument(expr, param, value)
            return Binding(value.copy() if value is not None else None, DataType.ARRAY)
        binding = Binding(None, dtype)
        try:
            binding.set(value)
        except TypeError as e:
            raise PseudocodeRuntimeError(f"{e} (parameter '{param.name}' of '{expr.callee}')",
                                         expr.line, TYPE_MISMATCH) from None
        return binding

    def _check_array_argument(self, expr: CallExpr, param: Param, value):
        if value is None:
            return
        if not isinstance(value, ArrayValue):
            raise PseudocodeRuntimeError(
                f"Type mismatch: parameter '{param.name}' of '{expr.callee}' expects an ARRAY, "
                f"got {type_of(value).name}", expr.line, TYPE_MISMATCH)
        expected = resolve_type(param.element_type)
        if expected is not None and value.element_type != expected:
            raise PseudocodeRuntimeError(
                f"Type mismatch: parameter '{param.name}' of '{expr.callee}' expects ARRAY OF "
                f"{expected.name}, got ARRAY OF {value.element_type.name}", expr.line, TYPE_MISMATCH)

    def _call_builtin(self, expr: CallExpr):
        args = [self.evaluate(arg) for arg in expr.arguments]
        try:
            return call_builtin(expr.callee, args, self._rng)
        except BuiltinError as e:
            raise PseudocodeRuntimeError(str(e), expr.line) from None
        except OverflowError:
            raise PseudocodeRuntimeError("Numeric overflow", expr.line, NUMERIC_OVERFLOW) from None

    # ── Expressions ──

    def evaluate_Literal(self, expr: Literal):
        if expr.type_name == 'CHAR':
            return Char(expr.value)
        return expr.value

    def evaluate_Identifier(self, expr: Identifier):
        binding = self.env.lookup(expr.name)
        if binding is None:
            if expr.name in self.routines:
                raise PseudocodeRuntimeError(f"'{expr.name}' must be called with parentheses",
                                             expr.line, NOT_A_FUNCTION)
            raise PseudocodeRuntimeError(f"Variable '{expr.name}' used before declaration",
                                         expr.line, UNDECLARED_VARIABLE)
        return binding.get()

    def _array_named(self, name: str, line: int) -> ArrayValue:
        binding = self.env.lookup(name)
        if binding is None:
            raise PseudocodeRuntimeError(f"Variable '{name}' used before declaration",
                                         line, UNDECLARED_VARIABLE)
        if not isinstance(binding.value, ArrayValue):
            raise PseudocodeRuntimeError(f"'{name}' is not an array", line, NOT_AN_ARRAY)
        return binding.value

    def _evaluate_indices(self, exprs, line: int) -> List[int]:
        indices = []
        for expr in exprs:
            index = self.evaluate(expr)
            if type_of(index) != DataType.INTEGER:
                raise PseudocodeRuntimeError(
                    f"Array index must be an INTEGER, got {type_of(index).name}", line, TYPE_MISMATCH)
            indices.append(index)
        return indices

    def evaluate_ArrayAccess(self, expr: ArrayAccess):
        array = self._array_named(expr.name, expr.line)
        indices = self._evaluate_indices(expr.indices, expr.line)
        try:
            return array.get(indices)
        except IndexError as e:
            raise PseudocodeRuntimeError(str(e), expr.line, INDEX_OUT_OF_RANGE) from None

    def evaluate_BinaryExpr(self, expr: BinaryExpr):
        op = expr.operator
        if op in ('AND', 'OR'):
            return self._logical(expr)

        left = self.evaluate(expr.left)
        right = self.evaluate(expr.right)
        if op in self._COMPARISON_OPS:
            return self._compare(op, left, right, expr.line)
        try:
            if op == '&':
                return self._join_text(self._format(left, expr.line),
                                       self._format(right, expr.line), expr.line)
            return self._arithmetic(op, left, right, expr.line)
        except OverflowError:
            raise PseudocodeRuntimeError("Numeric overflow", expr.line, NUMERIC_OVERFLOW) from None

    _COMPARISON_OPS = {
        '=': lambda l, r: l == r, '<>': lambda l, r: l != r,
        '<': lambda l, r: l < r, '>': lambda l, r: l > r,
        '<=': lambda l, r: l <= r, '>=': lambda l, r: l >= r,
    }

    def _logical(self, expr: BinaryExpr) -> bool:
        """Short-circuit AND/OR; both operands must be BOOLEAN."""
        left = self._boolean_operand(expr.operator, self.evaluate(expr.left), expr.line)
        if expr.operator == 'AND' and not left:
            return False
        if expr.operator == 'OR' and left:
            return True
        return self._boolean_operand(expr.operator, self.evaluate(expr.right), expr.line)

    @staticmethod
    def _boolean_operand(op: str, value, line: int) -> bool:
        if not isinstance(value, bool):
            raise PseudocodeRuntimeError(
                f"{op} requires BOOLEAN operands, got {type_of(value).name}", line, TYPE_MISMATCH)
        return value

    def _compare(self, op: str, left, right, line: int) -> bool:
        if left is None or right is None:
            if op not in ('=', '<>'):
                raise PseudocodeRuntimeError(f"Cannot order NULL with '{op}'", line, TYPE_MISMATCH)
            same = left is None and right is None
            return same if op == '=' else not same

        comparable = ((_is_number(left) and _is_number(right))
                      or (_is_text(left) and _is_text(right))
                      or (isinstance(left, bool) and isinstance(right, bool) and op in ('=', '<>')))
        if not comparable:
            raise PseudocodeRuntimeError(
                f"Cannot compare {type_of(left).name} with {type_of(right).name} using '{op}'",
                line, TYPE_MISMATCH)
        return self._COMPARISON_OPS[op](left, right)

    def _check_length(self, length: int, line: int):
        limit = self.config.max_string_length
        if length > limit:
            raise PseudocodeRuntimeError(f"String exceeds the limit of {limit} characters",
                                         line, MEMORY_LIMIT)

    def _join_text(self, left: str, right: str, line: int) -> str:
        self._check_length(len(left) + len(right), line)
        return left + right

    def _format(self, value, line: int) -> str:
        """format_value with the string length limit applied, element by element for arrays."""
        if not isinstance(value, ArrayValue):
            text = format_value(value)
            self._check_length(len(text), line)
            return text
        parts = []
        length = 2
        for element in value.elements:
            part = self._format(element, line)
            length += len(part) + 2
            self._check_length(length, line)
            parts.append(part)
        return "[" + ", ".join(parts) + "]"

    def _arithmetic(self, op: str, left, right, line: int):
        if op == '+' and _is_text(left) and _is_text(right):
            return self._join_text(str(left), str(right), line)
        if not (_is_number(left) and _is_number(right)):
            raise PseudocodeRuntimeError(
                f"Operator '{op}' cannot be applied to {type_of(left).name} and {type_of(right).name}",
                line, TYPE_MISMATCH)

        if op == '+':
            return check_integer(left + right)
        if op == '-':
            return check_integer(left - right)
        if op == '*':
            return check_integer(left * right)

        if right == 0:
            raise PseudocodeRuntimeError("Division by zero", line, DIVISION_BY_ZERO)
        if op == '/':
            return left / right
        if op == 'DIV':
            return self._truncating_div(left, right)
        if op == 'MOD':
            return left - self._truncating_div(left, right) * right
        raise InternalError(f"Unknown operator {op}")

    @staticmethod
    def _truncating_div(left, right) -> int:
        """Integer quotient rounded toward zero."""
        if isinstance(left, int) and isinstance(right, int):
            quotient = abs(left) // abs(right)
            return quotient if (left < 0) == (right < 0) else -quotient
        return int(left / right)

    def evaluate_UnaryExpr(self, expr: UnaryExpr):
        value = self.evaluate(expr.operand)
        if expr.operator == '-':
            if not _is_number(value):
                raise PseudocodeRuntimeError(
                    f"Unary minus requires a numeric operand, got {type_of(value).name}",
                    expr.line, TYPE_MISMATCH)
            return -value
        if expr.operator == 'NOT':
            return not self._boolean_operand('NOT', value, expr.line)
        raise InternalError(f"Unknown unary operator {expr.operator}")


def run(program: Program, config: Optional[ExecutionConfig] = None) -> ExecutionTrace:
    return Interpreter(config).run(program)
