import pytest

from ast_nodes import EXPRESSION_TYPES, STATEMENT_TYPES
from diagnostics import (
    ARGUMENT_COUNT_MISMATCH, CONSTANT_REASSIGNMENT, DUPLICATE_CASE_LABEL,
    INDEX_COUNT_MISMATCH, INDEX_OUT_OF_BOUNDS, INVALID_ARRAY_BOUNDS,
    INVALID_BYREF_ARGUMENT, INVALID_RETURN, MISSING_RETURN, NAMING_CONVENTION,
    NOT_AN_ARRAY, NOT_A_FUNCTION, POSSIBLE_TYPE_MISMATCH,
    POSSIBLE_UNDECLARED_VARIABLE, REDECLARED_IDENTIFIER,
    REDECLARED_VARIABLE, RETURN_OUTSIDE_FUNCTION, Severity, TYPE_MISMATCH,
    UNDECLARED_VARIABLE, UNDEFINED_FUNCTION, UNKNOWN_TYPE, UNREACHABLE_CODE,
    UNSUPPORTED_TYPE, UNUSED_VARIABLE, ZERO_STEP,
)
from lexer import tokenize
from parser import parse
from validator import Validator, validate


def check(source):
    tokens, lex_errors = tokenize(source)
    program, syntax_errors = parse(tokens)
    assert lex_errors == [] and syntax_errors == [], [e.message for e in lex_errors + syntax_errors]
    return validate(program)


def error_codes(source):
    errors, _ = check(source)
    return [e.code for e in errors]


def warning_codes(source):
    _, warnings = check(source)
    return [w.code for w in warnings]


def test_every_node_type_has_a_checker():
    v = Validator()
    assert set(v._stmt_checkers) == set(STATEMENT_TYPES)
    assert set(v._expr_checkers) == set(EXPRESSION_TYPES)


def test_clean_program():
    errors, warnings = check(
        "DECLARE total : INTEGER\n"
        "total <- 0\n"
        "FOR i = 1 TO 10\n"
        "  total <- total + i\n"
        "ENDFOR\n"
        "OUTPUT \"Sum: \" & NUM_TO_STR(total)")
    assert errors == []
    assert warnings == []


# ── Names ──

def test_undeclared_variable():
    errors, _ = check("OUTPUT x")
    assert len(errors) == 1
    assert errors[0].code == UNDECLARED_VARIABLE
    assert errors[0].message == "Line 1: Variable 'x' used before declaration"
    assert errors[0].severity is Severity.ERROR


def test_all_errors_are_reported():
    errors, _ = check("OUTPUT a\nOUTPUT b\nOUTPUT c")
    assert [e.line_number for e in errors] == [1, 2, 3]


def test_redeclared_variable():
    errors, _ = check("DECLARE x : INTEGER\nDECLARE x : REAL\nOUTPUT x")
    assert errors[0].code == REDECLARED_VARIABLE
    assert errors[0].message == "Line 2: Variable 'x' already declared in this scope (line 1)"


def test_variable_clashing_with_routine():
    codes = error_codes(
        "DECLARE Total : INTEGER\n"
        "FUNCTION Total() RETURNS INTEGER\n"
        "  RETURN 1\n"
        "ENDFUNCTION")
    assert codes == [REDECLARED_IDENTIFIER]


def test_assignment_declares_implicitly():
    assert error_codes("count <- 1\nOUTPUT count") == []


def test_routine_may_be_called_before_its_declaration():
    source = (
        "OUTPUT Twice(21)\n"
        "FUNCTION Twice(n : INTEGER) RETURNS INTEGER\n"
        "  RETURN n * 2\n"
        "ENDFUNCTION")
    assert error_codes(source) == []


def test_routine_body_sees_globals_declared_later():
    source = (
        "FUNCTION GetTotal() RETURNS INTEGER\n"
        "  RETURN total\n"
        "ENDFUNCTION\n"
        "DECLARE total : INTEGER\n"
        "total <- 5\n"
        "OUTPUT GetTotal()")
    assert error_codes(source) == []


def test_global_declared_after_first_call_is_a_warning():
    errors, warnings = check(
        "FUNCTION GetTotal() RETURNS INTEGER\n"
        "  RETURN total\n"
        "ENDFUNCTION\n"
        "OUTPUT GetTotal()\n"
        "DECLARE total : INTEGER\n"
        "total <- 5")
    assert errors == []
    assert [(w.line_number, w.code) for w in warnings] == [(2, POSSIBLE_UNDECLARED_VARIABLE)]
    assert warnings[0].message == (
        "Line 2: Global 'total' is declared on line 5, after 'GetTotal' is first called on line 4")


def test_late_global_seen_through_an_intermediate_routine():
    _, warnings = check(
        "PROCEDURE Show()\n"
        "  OUTPUT Twice()\n"
        "ENDPROCEDURE\n"
        "FUNCTION Twice() RETURNS INTEGER\n"
        "  RETURN base * 2\n"
        "ENDFUNCTION\n"
        "CALL Show()\n"
        "DECLARE base : INTEGER\n"
        "base <- 1\n"
        "CALL Show()")
    assert [(w.line_number, w.code) for w in warnings] == [(5, POSSIBLE_UNDECLARED_VARIABLE)]
    assert "after 'Twice' is first called on line 7" in warnings[0].message


def test_global_declared_before_first_call_is_clean():
    _, warnings = check(
        "FUNCTION GetTotal() RETURNS INTEGER\n"
        "  RETURN total\n"
        "ENDFUNCTION\n"
        "DECLARE total : INTEGER\n"
        "total <- 5\n"
        "OUTPUT GetTotal()")
    assert warnings == []


def test_for_variable_is_scoped_to_the_loop():
    errors, _ = check("FOR i = 1 TO 3\n  OUTPUT i\nENDFOR\nOUTPUT i")
    assert [(e.line_number, e.code) for e in errors] == [(4, UNDECLARED_VARIABLE)]


def test_routine_name_without_parentheses():
    codes = error_codes(
        "FUNCTION One() RETURNS INTEGER\n  RETURN 1\nENDFUNCTION\nOUTPUT One")
    assert codes == [NOT_A_FUNCTION]


# ── Types ──

def test_unknown_and_unsupported_types():
    errors, _ = check("DECLARE w : WIDGET\nDECLARE d : DATE\nOUTPUT w, d")
    assert [e.code for e in errors] == [UNKNOWN_TYPE, UNSUPPORTED_TYPE]
    assert errors[0].message == "Line 1: Unknown type 'WIDGET'"


def test_string_assigned_to_integer():
    errors, _ = check('DECLARE x : INTEGER\nx <- "hello"\nOUTPUT x')
    assert errors[0].code == TYPE_MISMATCH
    assert errors[0].message == "Line 2: Type mismatch: cannot assign STRING to INTEGER 'x'"


@pytest.mark.parametrize("value, expected", [
    ("3.0", []),                # integral REAL literal fits
    ("2.5", [TYPE_MISMATCH]),
    ("'A'", [TYPE_MISMATCH]),
    ("TRUE", [TYPE_MISMATCH]),
    ("NULL", []),
    ("7 DIV 2", []),
])
def test_assignments_to_integer(value, expected):
    assert error_codes(f"DECLARE n : INTEGER\nn <- {value}\nOUTPUT n") == expected


def test_integer_widens_to_real():
    assert error_codes("DECLARE r : REAL\nr <- 3\nOUTPUT r") == []


def test_narrowing_from_a_variable_is_only_a_warning():
    errors, warnings = check(
        "DECLARE r : REAL\nDECLARE n : INTEGER\nr <- 2\nn <- r\nOUTPUT n")
    assert errors == []
    assert [w.code for w in warnings] == [POSSIBLE_TYPE_MISMATCH]
    assert warnings[0].line_number == 4


def test_one_character_string_literal_fits_char():
    assert error_codes('DECLARE c : CHAR\nc <- "x"\nOUTPUT c') == []
    assert error_codes('DECLARE c : CHAR\nc <- "xy"\nOUTPUT c') == [TYPE_MISMATCH]


def test_condition_must_be_boolean():
    errors, _ = check("IF 1 THEN\n  OUTPUT 1\nENDIF")
    assert errors[0].code == TYPE_MISMATCH
    assert errors[0].message == "Line 1: IF condition must be BOOLEAN, got INTEGER"


def test_arithmetic_on_strings():
    assert error_codes('OUTPUT "a" * 2') == [TYPE_MISMATCH]


def test_comparing_text_with_number():
    assert error_codes('OUTPUT "a" < 2') == [TYPE_MISMATCH]


def test_logical_operands_must_be_boolean():
    assert error_codes("OUTPUT 1 AND TRUE") == [TYPE_MISMATCH]
    assert error_codes("OUTPUT NOT 5") == [TYPE_MISMATCH]


def test_concatenation_accepts_anything():
    assert error_codes('OUTPUT "n = " & 5 & TRUE') == []


def test_constant_reassignment():
    errors, _ = check("CONSTANT Limit = 10\nLimit <- 5")
    assert errors[0].code == CONSTANT_REASSIGNMENT
    assert errors[0].message == "Line 2: Cannot assign to constant 'Limit'"


def test_constant_value_type_is_inferred():
    assert error_codes('CONSTANT Greeting = "hi"\nDECLARE n : INTEGER\nn <- Greeting\nOUTPUT n') == [
        TYPE_MISMATCH]


# ── Arrays ──

def test_indexing_a_scalar():
    assert error_codes("DECLARE x : INTEGER\nOUTPUT x[1]") == [NOT_AN_ARRAY]


def test_wrong_number_of_indices():
    assert error_codes("DECLARE a : ARRAY[1:3] OF INTEGER\nOUTPUT a[1, 2]") == [INDEX_COUNT_MISMATCH]


def test_literal_index_outside_bounds_is_a_warning():
    errors, warnings = check("DECLARE a : ARRAY[1:5] OF INTEGER\nOUTPUT a[10]")
    assert errors == []
    assert [w.code for w in warnings] == [INDEX_OUT_OF_BOUNDS]


def test_string_index():
    assert error_codes('DECLARE a : ARRAY[1:5] OF INTEGER\nOUTPUT a["1"]') == [TYPE_MISMATCH]


def test_reversed_bounds():
    assert error_codes("DECLARE a : ARRAY[5:1] OF INTEGER\nOUTPUT a[2]") == [INVALID_ARRAY_BOUNDS]


def test_oversized_array():
    errors, _ = check("DECLARE a : ARRAY[1:100000000000] OF INTEGER\nOUTPUT a[1]")
    assert [e.code for e in errors] == [INVALID_ARRAY_BOUNDS]
    assert errors[0].message == "Line 1: Array 'a' has 100000000000 elements; the limit is 100000"


def test_array_size_limit_counts_every_dimension():
    tokens, _ = tokenize("DECLARE grid : ARRAY[1:5, 1:3] OF INTEGER\nOUTPUT grid[1, 1]")
    program, _ = parse(tokens)
    errors, _ = Validator(max_array_elements=10).validate(program)
    assert [e.message for e in errors] == ["Line 1: Array 'grid' has 15 elements; the limit is 10"]
    assert Validator(max_array_elements=15).validate(program)[0] == []


def test_element_type_checked_on_assignment():
    assert error_codes('DECLARE a : ARRAY[1:3] OF INTEGER\na[1] <- "x"\nOUTPUT a[1]') == [TYPE_MISMATCH]


def test_array_assignment_needs_matching_shape():
    source = (
        "DECLARE a : ARRAY[1:3] OF INTEGER\n"
        "DECLARE b : ARRAY[0:2] OF INTEGER\n"
        "DECLARE c : ARRAY[1:4] OF INTEGER\n"
        "b <- a\n"
        "c <- a\n"
        "OUTPUT b[0], c[1]")
    errors, _ = check(source)
    assert [(e.line_number, e.code) for e in errors] == [(5, TYPE_MISMATCH)]


# ── Calls ──

def test_undefined_function():
    errors, _ = check("OUTPUT Foo(1)")
    assert errors[0].code == UNDEFINED_FUNCTION
    assert errors[0].message == "Line 1: Function 'Foo' is not defined"


def test_builtin_arity():
    errors, _ = check('OUTPUT LENGTH("a", "b")')
    assert errors[0].code == ARGUMENT_COUNT_MISMATCH
    assert errors[0].message == "Line 1: Function 'LENGTH' expects 1 argument(s), got 2"


def test_user_routine_arity():
    codes = error_codes(
        "PROCEDURE Greet(name : STRING)\n  OUTPUT name\nENDPROCEDURE\nCALL Greet()")
    assert codes == [ARGUMENT_COUNT_MISMATCH]


def test_procedure_used_as_value():
    codes = error_codes("PROCEDURE P()\n  OUTPUT 1\nENDPROCEDURE\nx <- P()")
    assert codes == [NOT_A_FUNCTION]


def test_byref_needs_a_variable():
    source = (
        "PROCEDURE Inc(BYREF n : INTEGER)\n"
        "  n <- n + 1\n"
        "ENDPROCEDURE\n"
        "CALL Inc(5)")
    assert error_codes(source) == [INVALID_BYREF_ARGUMENT]


def test_argument_type():
    source = (
        "FUNCTION Half(n : INTEGER) RETURNS REAL\n"
        "  RETURN n / 2\n"
        "ENDFUNCTION\n"
        "OUTPUT Half(\"ten\")")
    assert error_codes(source) == [TYPE_MISMATCH]


def test_builtin_result_type_is_known():
    assert error_codes('DECLARE n : INTEGER\nn <- UCASE("a")\nOUTPUT n') == [TYPE_MISMATCH]


# ── Control flow ──

def test_zero_step():
    assert error_codes("FOR i = 1 TO 5 STEP 0\n  OUTPUT i\nENDFOR") == [ZERO_STEP]


def test_return_outside_routine_is_a_warning():
    errors, warnings = check("RETURN")
    assert errors == []
    assert [w.code for w in warnings] == [RETURN_OUTSIDE_FUNCTION]


def test_procedure_cannot_return_a_value():
    codes = error_codes("PROCEDURE P()\n  RETURN 1\nENDPROCEDURE\nCALL P()")
    assert codes == [INVALID_RETURN]


def test_function_must_return_a_value():
    codes = error_codes("FUNCTION F() RETURNS INTEGER\n  RETURN\nENDFUNCTION\nOUTPUT F()")
    assert codes == [INVALID_RETURN]


def test_return_type_checked():
    codes = error_codes('FUNCTION F() RETURNS INTEGER\n  RETURN "x"\nENDFUNCTION\nOUTPUT F()')
    assert codes == [TYPE_MISMATCH]


def test_function_may_miss_return():
    errors, warnings = check(
        "FUNCTION Sign(n : INTEGER) RETURNS INTEGER\n"
        "  IF n > 0 THEN\n"
        "    RETURN 1\n"
        "  ENDIF\n"
        "ENDFUNCTION\n"
        "OUTPUT Sign(1)")
    assert errors == []
    assert [w.code for w in warnings] == [MISSING_RETURN]
    assert warnings[0].message == "Line 1: Function 'Sign' may reach ENDFUNCTION without a RETURN"


def test_if_else_both_returning_satisfies_return_check():
    _, warnings = check(
        "FUNCTION Sign(n : INTEGER) RETURNS INTEGER\n"
        "  IF n > 0 THEN\n"
        "    RETURN 1\n"
        "  ELSE\n"
        "    RETURN -1\n"
        "  ENDIF\n"
        "ENDFUNCTION\n"
        "OUTPUT Sign(1)")
    assert warnings == []


def test_unreachable_code():
    _, warnings = check(
        "FUNCTION F() RETURNS INTEGER\n"
        "  RETURN 1\n"
        "  OUTPUT 2\n"
        "  OUTPUT 3\n"
        "ENDFUNCTION\n"
        "OUTPUT F()")
    # Reported once, at the first unreachable statement
    assert [(w.line_number, w.code) for w in warnings] == [(3, UNREACHABLE_CODE)]


def test_unused_variable():
    errors, warnings = check("DECLARE x : INTEGER")
    assert errors == []
    assert warnings[0].code == UNUSED_VARIABLE
    assert warnings[0].message == "Line 1: Variable 'x' is declared but never used"
    assert warnings[0].severity is Severity.WARNING


def test_duplicate_case_label():
    _, warnings = check(
        "DECLARE n : INTEGER\n"
        "n <- 1\n"
        "CASE OF n\n"
        "  1 : OUTPUT \"one\"\n"
        "  1 : OUTPUT \"again\"\n"
        "ENDCASE")
    assert [(w.line_number, w.code) for w in warnings] == [(5, DUPLICATE_CASE_LABEL)]
    assert "first used on line 4" in warnings[0].message


def test_case_label_type_must_match_selector():
    source = "DECLARE n : INTEGER\nn <- 1\nCASE OF n\n  \"a\" : OUTPUT 1\nENDCASE"
    assert error_codes(source) == [TYPE_MISMATCH]


def test_validation_is_repeatable():
    tokens, _ = tokenize("DECLARE x : INTEGER\nx <- \"s\"\nOUTPUT y")
    program, _ = parse(tokens)
    assert validate(program) == validate(program)


# ── Naming ──

@pytest.mark.parametrize("source", [
    "DECLARE Total : INTEGER\nTotal <- 1\nOUTPUT Total",
    "DECLARE Scores : ARRAY[1:3] OF INTEGER\nOUTPUT Scores[1]",
    "FOR Index = 1 TO 2\n  OUTPUT Index\nENDFOR",
    "PROCEDURE Show(Value : INTEGER)\n  OUTPUT Value\nENDPROCEDURE\nCALL Show(1)",
])
def test_capitalised_variable_names_warn(source):
    errors, warnings = check(source)
    assert errors == []
    assert [w.code for w in warnings] == [NAMING_CONVENTION]
    assert "should start with a lowercase letter" in warnings[0].message


def test_constants_and_routines_may_be_capitalised():
    _, warnings = check(
        "CONSTANT MaxSize = 10\n"
        "FUNCTION Double(n : INTEGER) RETURNS INTEGER\n"
        "  RETURN n * 2\n"
        "ENDFUNCTION\n"
        "OUTPUT Double(MaxSize)")
    assert warnings == []


def test_naming_warning_message():
    _, warnings = check("Total <- 1\nOUTPUT Total")
    assert warnings[0].message == "Line 1: Variable name 'Total' should start with a lowercase letter"
