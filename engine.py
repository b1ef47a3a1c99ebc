"""
Host-facing entry points: validate(source) and execute(source, config).

Both are pure functions of their arguments; each call builds its own
token stream, AST and environments, so independent calls may run
concurrently. Results are pydantic models whose JSON form uses the
camelCase keys hosts expect (isValid, lineNumber, executionTimeMs).
"""
import logging
import time
from typing import Any, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ast_nodes import Program
from config import DEFAULT_MAX_ARRAY_ELEMENTS, ExecutionConfig
from diagnostics import (
    INTERNAL_ERROR, Diagnostic, EventKind, ExecutionEvent, Severity,
    sort_diagnostics, syntax_error,
)
from interpreter import Interpreter
from lexer import tokenize
from parser import parse
from validator import Validator

logger = logging.getLogger(__name__)


class _HostModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json(self, **kwargs: Any) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, **kwargs)


class DiagnosticModel(_HostModel):
    line_number: int
    message: str
    code: str
    severity: str = Severity.ERROR.value
    column: Optional[int] = None

    @classmethod
    def from_diagnostic(cls, diagnostic: Diagnostic) -> 'DiagnosticModel':
        return cls(
            line_number=diagnostic.line_number,
            message=diagnostic.message,
            code=diagnostic.code,
            severity=diagnostic.severity.value,
            column=diagnostic.column or None,
        )


class ValidationResult(_HostModel):
    is_valid: bool
    errors: List[DiagnosticModel] = []
    warnings: List[DiagnosticModel] = []


class EventModel(_HostModel):
    kind: str
    text: str
    line: Optional[int] = None
    code: Optional[str] = None

    @classmethod
    def from_event(cls, event: ExecutionEvent) -> 'EventModel':
        return cls(kind=event.kind.value, text=event.text, line=event.line, code=event.code)


class ExecutionResult(_HostModel):
    success: bool
    events: List[EventModel] = []
    execution_time_ms: float = 0.0
    steps: int = 0

    @property
    def output(self) -> List[str]:
        """Text of the OUTPUT events, in order."""
        return [e.text for e in self.events if e.kind == EventKind.OUTPUT.value]


def _internal_fault(exc: Exception) -> Diagnostic:
    return Diagnostic(0, f"Internal error: {type(exc).__name__}: {exc}", INTERNAL_ERROR)


def _analyse(source: str, max_array_elements: int = DEFAULT_MAX_ARRAY_ELEMENTS,
             ) -> Tuple[Program, List[Diagnostic], List[Diagnostic]]:
    """Run lexer, parser and validator; return (program, errors, warnings)."""
    tokens, lex_errors = tokenize(source)
    program, syntax_errors = parse(tokens)
    semantic_errors, warnings = Validator(max_array_elements=max_array_elements).validate(program)
    errors = sort_diagnostics(lex_errors + syntax_errors + semantic_errors)
    logger.debug("Analysis: %d lexical, %d syntax, %d semantic errors, %d warnings",
                 len(lex_errors), len(syntax_errors), len(semantic_errors), len(warnings))
    return program, errors, sort_diagnostics(warnings)


def _analyse_safely(source: str, max_array_elements: int = DEFAULT_MAX_ARRAY_ELEMENTS,
                    ) -> Tuple[Optional[Program], List[Diagnostic], List[Diagnostic]]:
    """`_analyse` with faults turned into a single error diagnostic."""
    try:
        return _analyse(source, max_array_elements)
    except RecursionError:
        logger.warning("Program too deeply nested to analyse")
        return None, [syntax_error(1, 0, "Program is nested too deeply")], []
    except Exception as exc:
        logger.exception("Validation fault")
        return None, [_internal_fault(exc)], []


def validate(source: str) -> ValidationResult:
    """Report every lexical, syntax and semantic problem in `source`."""
    _, errors, warnings = _analyse_safely(source)
    return ValidationResult(
        is_valid=not errors,
        errors=[DiagnosticModel.from_diagnostic(d) for d in errors],
        warnings=[DiagnosticModel.from_diagnostic(d) for d in warnings],
    )


def execute(source: str,
            config: Union[ExecutionConfig, Mapping[str, Any], None] = None) -> ExecutionResult:
    """
    Validate `source` and, only if it is valid, run it.

    An invalid program runs no statement at all: each validation error is
    returned as an ERROR event instead. A mapping `config` is validated into
    an ExecutionConfig as given; hosts relaying client settings should pass
    ExecutionConfig.capped(settings) instead.
    """
    if config is None:
        config = ExecutionConfig()
    elif not isinstance(config, ExecutionConfig):
        config = ExecutionConfig.model_validate(dict(config))

    started = time.perf_counter()
    program, errors, _ = _analyse_safely(source, config.max_array_elements)

    if errors:
        events = [EventModel(kind=EventKind.SYSTEM.value if d.code == INTERNAL_ERROR else EventKind.ERROR.value,
                             text=d.message, line=d.line_number or None, code=d.code)
                  for d in errors]
        success, steps = False, 0
    else:
        trace = Interpreter(config).run(program)
        events = [EventModel.from_event(e) for e in trace.events]
        success, steps = trace.success, trace.steps

    elapsed_ms = (time.perf_counter() - started) * 1000
    return ExecutionResult(success=success, events=events,
                           execution_time_ms=round(elapsed_ms, 3), steps=steps)
