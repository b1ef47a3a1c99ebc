"""
Command-line front end.

Usage:
    python main.py FILE [--check] [--inputs "5,3"] [--max-steps N]
                        [--timeout-ms N] [--max-depth N] [--json] [-v]
    python main.py          # REPL: type a block, finish it with an empty line

Exit status: 0 on success, 1 when validation or execution fails,
2 for usage errors (bad arguments, unreadable file).
"""
import argparse
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from config import ExecutionConfig
from diagnostics import Diagnostic, Severity, format_with_context
from engine import ExecutionResult, ValidationResult, execute, validate
from lexer import TokenType, tokenize

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="main.py",
        description="Validate and run Cambridge-style pseudocode.",
    )
    parser.add_argument("file", nargs="?", help="source file (omit for the REPL)")
    parser.add_argument("--check", action="store_true",
                        help="validate only, do not run")
    parser.add_argument("--inputs", default=None,
                        help="comma-separated values consumed by INPUT statements")
    parser.add_argument("--max-steps", type=int, default=None)
    parser.add_argument("--timeout-ms", type=int, default=None)
    parser.add_argument("--max-depth", type=int, default=None,
                        help="maximum call depth")
    parser.add_argument("--json", action="store_true",
                        help="print the result as JSON")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="log phase details to stderr")
    return parser


def parse_inputs(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [v.strip() for v in raw.split(",") if v.strip()]


def count_input_statements(source: str) -> int:
    tokens, _ = tokenize(source)
    return sum(1 for t in tokens if t.type == TokenType.INPUT)


def make_config(args, inputs: List[str]) -> ExecutionConfig:
    settings = {"inputs": inputs}
    if args.max_steps is not None:
        settings["max_steps"] = args.max_steps
    if args.timeout_ms is not None:
        settings["timeout_ms"] = args.timeout_ms
    if args.max_depth is not None:
        settings["max_call_depth"] = args.max_depth
    return ExecutionConfig(**settings)


def _print_diagnostic(diagnostic, source: str):
    d = Diagnostic(diagnostic.line_number, diagnostic.message, diagnostic.code,
                   Severity(diagnostic.severity), diagnostic.column or 0)
    print(format_with_context(d, source), file=sys.stderr)


def report_validation(result: ValidationResult, source: str, as_json: bool) -> int:
    if as_json:
        print(result.to_json())
    else:
        for d in result.errors + result.warnings:
            _print_diagnostic(d, source)
        if result.is_valid:
            print(f"OK ({len(result.warnings)} warning(s))")
    return EXIT_OK if result.is_valid else EXIT_FAILED


def report_execution(result: ExecutionResult, as_json: bool) -> int:
    if as_json:
        print(result.to_json())
    else:
        for event in result.events:
            if event.kind == "output":
                print(event.text)
            else:
                print(event.text, file=sys.stderr)
    return EXIT_OK if result.success else EXIT_FAILED


def run(source: str, args, inputs: Optional[List[str]] = None) -> int:
    if args.check:
        return report_validation(validate(source), source, args.json)
    result = execute(source, make_config(args, inputs or []))
    return report_execution(result, args.json)


def run_file(filename: str, args) -> int:
    try:
        with open(filename, 'r', encoding='utf-8') as f:
            source = f.read()
    except OSError as e:
        print(f"Cannot read {filename}: {e.strerror}", file=sys.stderr)
        return EXIT_USAGE

    inputs = parse_inputs(args.inputs)
    needed = count_input_statements(source)
    if args.inputs is None and needed and not args.check and sys.stdin.isatty():
        print(f"Found {needed} INPUT statement(s)")
        inputs = parse_inputs(input("Enter all input values (comma-separated): "))
    return run(source, args, inputs)


def repl(args) -> int:
    print("Pseudocode interpreter. Enter a block, then an empty line to run it; 'exit' quits.")
    block: List[str] = []
    while True:
        try:
            line = input("... " if block else ">>> ")
        except EOFError:
            break
        if not block and line.strip().lower() == 'exit':
            break
        if line.strip():
            block.append(line)
            continue
        if block:
            run("\n".join(block), args, parse_inputs(args.inputs))
            block = []
    if block:
        run("\n".join(block), args, parse_inputs(args.inputs))
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")
    try:
        make_config(args, [])
    except ValidationError as e:
        print(f"Invalid limits: {e.error_count()} error(s)\n{e}", file=sys.stderr)
        return EXIT_USAGE
    if args.file:
        return run_file(args.file, args)
    return repl(args)


if __name__ == "__main__":
    sys.exit(main())
