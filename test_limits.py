from ast_nodes import ArrayDecl, Program
from config import ExecutionConfig
from diagnostics import (
    CANCELLED, INVALID_ARRAY_BOUNDS, MEMORY_LIMIT, NUMERIC_OVERFLOW, OUTPUT_LIMIT,
    STACK_OVERFLOW, STEP_LIMIT_EXCEEDED, TIMEOUT,
)
from engine import execute
from interpreter import Interpreter

INFINITE_OUTPUT = "WHILE TRUE\n  OUTPUT 1\nENDWHILE"
BUSY_LOOP = "x <- 0\nWHILE TRUE\n  x <- x + 1\nENDWHILE"
RUNAWAY_RECURSION = (
    "FUNCTION Down(n : INTEGER) RETURNS INTEGER\n"
    "  RETURN Down(n + 1)\n"
    "ENDFUNCTION\n"
    "OUTPUT Down(1)")


def test_step_limit_stops_infinite_loop():
    result = execute(INFINITE_OUTPUT, ExecutionConfig(max_steps=10_000))
    assert not result.success
    last = result.events[-1]
    assert last.kind == "error"
    assert last.code == STEP_LIMIT_EXCEEDED
    assert last.text.endswith("Runtime Error - Execution timed out")
    assert result.steps == 10_001


def test_step_limit_is_deterministic():
    first = execute(BUSY_LOOP, {"max_steps": 500})
    second = execute(BUSY_LOOP, {"max_steps": 500})
    assert first.events == second.events
    assert first.steps == second.steps


def test_wall_clock_timeout():
    result = execute(BUSY_LOOP, ExecutionConfig(max_steps=10**9, timeout_ms=1))
    assert not result.success
    assert result.events[-1].code == TIMEOUT
    assert result.events[-1].text.endswith("Runtime Error - Execution timed out")


def test_cancel_check_polled_per_step():
    calls = []

    def cancel():
        calls.append(1)
        return len(calls) >= 5

    result = execute(BUSY_LOOP, ExecutionConfig(cancel_check=cancel))
    assert not result.success
    assert result.events[-1].code == CANCELLED
    assert result.events[-1].text.endswith("Runtime Error - Execution cancelled")
    assert result.steps == 5


def test_runaway_recursion_is_a_stack_overflow():
    result = execute(RUNAWAY_RECURSION)
    assert not result.success
    assert result.events[-1].code == STACK_OVERFLOW
    assert result.events[-1].text == "Line 2: Runtime Error - Stack overflow"


def test_call_depth_limit_is_configurable():
    source = (
        "FUNCTION Depth(n : INTEGER) RETURNS INTEGER\n"
        "  IF n = 0 THEN\n"
        "    RETURN 0\n"
        "  ENDIF\n"
        "  RETURN 1 + Depth(n - 1)\n"
        "ENDFUNCTION\n"
        "OUTPUT Depth(10)")
    assert execute(source, {"max_call_depth": 11}).output == ["10"]
    shallow = execute(source, {"max_call_depth": 10})
    assert shallow.events[-1].code == STACK_OVERFLOW


def test_output_cap_drops_with_single_notice():
    result = execute("FOR i = 1 TO 5\n  OUTPUT i\nENDFOR", {"max_output_events": 3})
    assert result.success
    assert result.output == ["1", "2", "3"]
    notice = result.events[-1]
    assert notice.kind == "system"
    assert notice.code == OUTPUT_LIMIT
    assert notice.text == "Output limit of 3 events reached; 2 further OUTPUT event(s) dropped"
    assert [e.kind for e in result.events].count("system") == 1


def test_output_notice_precedes_final_error():
    result = execute(INFINITE_OUTPUT, ExecutionConfig(max_steps=10_000))
    kinds = [e.kind for e in result.events]
    assert kinds.count("output") == 1000
    assert kinds[-2:] == ["system", "error"]
    assert "4000 further OUTPUT event(s) dropped" in result.events[-2].text


def test_limits_do_not_trip_on_normal_programs():
    result = execute("DECLARE x : INTEGER\nFOR i = 1 TO 100\n  x <- i\nENDFOR\nOUTPUT x")
    assert result.success
    assert result.output == ["100"]


# ── Memory and numeric bounds ──

def test_repeated_squaring_is_a_numeric_overflow():
    result = execute("x <- 10\nFOR i = 1 TO 13\n  x <- x * x\nENDFOR\nOUTPUT x")
    assert not result.success
    assert result.output == []
    last = result.events[-1]
    assert last.kind == "error"
    assert last.code == NUMERIC_OVERFLOW
    assert last.text == "Line 3: Runtime Error - Numeric overflow"


def test_oversized_integer_input_is_a_numeric_overflow():
    result = execute("INPUT n\nOUTPUT n", {"inputs": ["9" * 4000]})
    assert not result.success
    assert result.events[-1].kind == "error"
    assert result.events[-1].code == NUMERIC_OVERFLOW


def test_huge_array_rejected_before_running():
    result = execute("DECLARE big : ARRAY[1:100000000000] OF INTEGER\nbig[1] <- 1")
    assert not result.success
    assert [e.kind for e in result.events] == ["error"]
    assert result.events[0].code == INVALID_ARRAY_BOUNDS
    assert result.events[0].text == "Line 1: Array 'big' has 100000000000 elements; the limit is 100000"


def test_array_limit_follows_config():
    source = "DECLARE a : ARRAY[1:50] OF INTEGER\na[1] <- 1\nOUTPUT a[1]"
    assert execute(source).output == ["1"]
    capped = execute(source, {"max_array_elements": 10})
    assert capped.events[0].code == INVALID_ARRAY_BOUNDS


def test_interpreter_checks_array_size_itself():
    program = Program((ArrayDecl("a", ((1, 20),), "INTEGER", line=1),))
    trace = Interpreter(ExecutionConfig(max_array_elements=10)).run(program)
    assert not trace.success
    assert trace.events[-1].code == MEMORY_LIMIT
    assert trace.events[-1].text == "Line 1: Runtime Error - Array 'a' has 20 elements; the limit is 10"


def test_string_doubling_hits_length_limit():
    result = execute('s <- "ab"\nFOR i = 1 TO 10\n  s <- s & s\nENDFOR\nOUTPUT s',
                     {"max_string_length": 100})
    assert not result.success
    last = result.events[-1]
    assert last.code == MEMORY_LIMIT
    assert last.text == "Line 3: Runtime Error - String exceeds the limit of 100 characters"
