import json

import pytest

import engine
from config import ExecutionConfig
from diagnostics import (
    INTERNAL_ERROR, MISSING_TERMINATOR, SYNTAX_ERROR, UNDECLARED_VARIABLE,
    UNTERMINATED_STRING,
)
from engine import ExecutionResult, ValidationResult, execute, validate


# ── Validate ──

def test_valid_program():
    result = validate("DECLARE n : INTEGER\nn <- 3\nOUTPUT n")
    assert isinstance(result, ValidationResult)
    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []


def test_undeclared_variable_invalidates():
    result = validate("OUTPUT x")
    assert not result.is_valid
    assert [e.code for e in result.errors] == [UNDECLARED_VARIABLE]
    assert result.errors[0].line_number == 1


def test_missing_terminator_reports_expected_keyword_and_line():
    result = validate("IF x THEN OUTPUT 1")
    codes = [e.code for e in result.errors]
    assert MISSING_TERMINATOR in codes
    missing = result.errors[codes.index(MISSING_TERMINATOR)]
    assert "'ENDIF'" in missing.message
    assert missing.line_number == 1


def test_errors_from_all_phases_sorted_by_line():
    result = validate('OUTPUT y\nOUTPUT "open\nIF TRUE THEN')
    assert [e.line_number for e in result.errors] == sorted(e.line_number for e in result.errors)
    codes = {e.code for e in result.errors}
    assert {UNDECLARED_VARIABLE, UNTERMINATED_STRING, MISSING_TERMINATOR} <= codes


def test_warnings_do_not_invalidate():
    result = validate("DECLARE unused : INTEGER")
    assert result.is_valid
    assert [w.severity for w in result.warnings] == ["warning"]


def test_validate_is_idempotent():
    source = "DECLARE x : INTEGER\nx <- \"s\"\nOUTPUT y\nIF x THEN"
    assert validate(source) == validate(source)


def test_validation_json_uses_camel_case():
    payload = json.loads(validate("OUTPUT x").to_json())
    assert payload["isValid"] is False
    error = payload["errors"][0]
    assert error["lineNumber"] == 1
    assert error["code"] == UNDECLARED_VARIABLE
    assert error["message"] == "Line 1: Variable 'x' used before declaration"


# ── Execute ──

def test_program_without_output_succeeds_with_no_events():
    result = execute("DECLARE n : INTEGER\nn <- 2 + 2")
    assert isinstance(result, ExecutionResult)
    assert result.success
    assert result.events == []
    assert result.execution_time_ms >= 0


def test_empty_program():
    result = execute("")
    assert result.success
    assert result.events == []


@pytest.mark.parametrize("expr, expected", [
    ("10 / 4", "2.5"), ("10 DIV 4", "2"), ("10 MOD 4", "2"),
])
def test_division_outputs(expr, expected):
    assert execute(f"OUTPUT {expr}").output == [expected]


def test_division_by_zero_line():
    result = execute("OUTPUT 1\nOUTPUT 10 DIV 0")
    assert not result.success
    assert result.output == ["1"]
    error = result.events[-1]
    assert error.kind == "error"
    assert error.line == 2
    assert "Division by zero" in error.text


def test_for_loop_output_order():
    assert execute("FOR i = 1 TO 3\n OUTPUT i\n ENDFOR").output == ["1", "2", "3"]


def test_infinite_loop_times_out():
    result = execute("WHILE TRUE\n OUTPUT 1\n ENDWHILE", {"maxSteps": 10000})
    assert not result.success
    assert "Execution timed out" in result.events[-1].text


def test_array_index_out_of_bounds():
    result = execute("DECLARE a : ARRAY[1:5] OF INTEGER\nOUTPUT a[10]")
    assert not result.success
    assert result.events[-1].text == "Line 2: Runtime Error - Array index out of bounds"
    assert result.events[-1].line == 2


def test_invalid_program_never_runs():
    result = execute("OUTPUT 1\nOUTPUT x")
    assert not result.success
    assert result.steps == 0
    assert result.output == []
    assert [(e.kind, e.code) for e in result.events] == [("error", UNDECLARED_VARIABLE)]


def test_config_mapping_accepts_both_key_styles():
    source = "INPUT a\nOUTPUT a"
    assert execute(source, {"inputs": ["x"]}).output == ["x"]
    assert execute(source, {"inputs": "y", "outputSeparator": "|"}).output == ["y"]


def test_execution_json_uses_camel_case():
    payload = json.loads(execute("OUTPUT 1").to_json())
    assert payload["success"] is True
    assert "executionTimeMs" in payload
    assert payload["events"] == [{"kind": "output", "text": "1", "line": 1}]


def test_independent_runs_share_no_state():
    source = "DECLARE n : INTEGER\nn <- n + 1\nOUTPUT n"
    assert execute(source).output == ["1"]
    assert execute(source).output == ["1"]


# ── Engine faults ──

class _BrokenValidator:
    def __init__(self, **options):
        pass

    def validate(self, program):
        raise RuntimeError("boom")


def test_validator_fault_is_internal_error(monkeypatch):
    monkeypatch.setattr(engine, "Validator", _BrokenValidator)
    result = validate("OUTPUT 1")
    assert not result.is_valid
    assert result.errors[0].code == INTERNAL_ERROR
    assert "boom" in result.errors[0].message


def test_execute_reports_fault_as_system_event(monkeypatch):
    monkeypatch.setattr(engine, "Validator", _BrokenValidator)
    result = execute("OUTPUT 1", ExecutionConfig())
    assert not result.success
    assert [e.kind for e in result.events] == ["system"]
    assert result.events[0].line is None


class _ExhaustedValidator(_BrokenValidator):
    def validate(self, program):
        raise RecursionError("maximum recursion depth exceeded")


def test_recursion_during_analysis_is_a_syntax_error(monkeypatch):
    monkeypatch.setattr(engine, "Validator", _ExhaustedValidator)
    result = validate("OUTPUT 1")
    assert not result.is_valid
    assert [e.code for e in result.errors] == [SYNTAX_ERROR]
    assert result.errors[0].message == "Line 1: Syntax Error - Program is nested too deeply"

    run = execute("OUTPUT 1")
    assert [e.kind for e in run.events] == ["error"]


def test_deep_nesting_reported_not_crashed():
    result = execute("OUTPUT " + "(" * 600 + "1" + ")" * 600)
    assert not result.success
    assert "system" not in [e.kind for e in result.events]
    assert result.events[0].code == SYNTAX_ERROR
