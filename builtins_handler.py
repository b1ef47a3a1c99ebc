"""
Built-in function implementations for the pseudocode engine.

Each built-in is a standalone function that receives evaluated arguments
and returns a result. The dispatch table maps function names to handlers;
the signature table is shared with the validator so arity and result
types are checked statically too.
"""
import math
import random
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from values import Char, DataType, check_integer, format_value, type_of


class BuiltinError(Exception):
    """Bad argument to a built-in; the interpreter reports it as a runtime error."""


class BuiltinSignature(NamedTuple):
    arity: int
    returns: Optional[DataType]


# ── Argument helpers ──

def _text(name: str, value: Any) -> str:
    if type_of(value) not in (DataType.STRING, DataType.CHAR):
        raise BuiltinError(f"{name} expects a STRING argument, got {type_of(value).name}")
    return str(value)


def _number(name: str, value: Any) -> float:
    if type_of(value) not in (DataType.INTEGER, DataType.REAL):
        raise BuiltinError(f"{name} expects a numeric argument, got {type_of(value).name}")
    return value


def _count(name: str, value: Any) -> int:
    if type_of(value) != DataType.INTEGER or value < 0:
        raise BuiltinError(f"{name} expects a non-negative INTEGER count")
    return value


# ── Individual built-in implementations ──

def _builtin_length(args, rng):
    return len(_text('LENGTH', args[0]))

def _builtin_ucase(args, rng):
    result = _text('UCASE', args[0]).upper()
    return Char(result) if isinstance(args[0], Char) else result

def _builtin_lcase(args, rng):
    result = _text('LCASE', args[0]).lower()
    return Char(result) if isinstance(args[0], Char) else result

def _builtin_left(args, rng):
    return _text('LEFT', args[0])[:_count('LEFT', args[1])]

def _builtin_right(args, rng):
    s = _text('RIGHT', args[0])
    n = _count('RIGHT', args[1])
    return s[-n:] if n > 0 else ""

def _builtin_mid(args, rng):
    s = _text('MID', args[0])
    start = _count('MID', args[1])
    if start < 1:
        raise BuiltinError("MID start position must be 1 or more")
    length = _count('MID', args[2])
    return s[start - 1:start - 1 + length]

def _builtin_int(args, rng):
    return int(_number('INT', args[0]))

def _builtin_round(args, rng):
    return float(round(_number('ROUND', args[0]), _count('ROUND', args[1])))

def _builtin_sqrt(args, rng):
    x = _number('SQRT', args[0])
    if x < 0:
        raise BuiltinError("SQRT of a negative number")
    return math.sqrt(x)

def _builtin_num_to_str(args, rng):
    return format_value(_number('NUM_TO_STR', args[0]))

def _builtin_str_to_num(args, rng):
    s = _text('STR_TO_NUM', args[0]).strip()
    try:
        return float(s) if '.' in s else check_integer(int(s))
    except ValueError:
        raise BuiltinError(f"STR_TO_NUM cannot convert {s!r} to a number") from None

def _builtin_asc(args, rng):
    s = _text('ASC', args[0])
    if not s:
        raise BuiltinError("ASC of an empty string")
    return ord(s[0])

def _builtin_chr(args, rng):
    code = _count('CHR', args[0])
    if code > 0x10FFFF:
        raise BuiltinError(f"CHR code {code} is not a valid character")
    return Char(chr(code))

def _builtin_rand(args, rng):
    return rng.random() * _number('RAND', args[0])


# ── Dispatch tables ──

BUILTIN_DISPATCH: Dict[str, Callable[[List[Any], random.Random], Any]] = {
    'LENGTH':     _builtin_length,
    'UCASE':      _builtin_ucase,
    'LCASE':      _builtin_lcase,
    'LEFT':       _builtin_left,
    'RIGHT':      _builtin_right,
    'MID':        _builtin_mid,
    'INT':        _builtin_int,
    'ROUND':      _builtin_round,
    'SQRT':       _builtin_sqrt,
    'NUM_TO_STR': _builtin_num_to_str,
    'STR_TO_NUM': _builtin_str_to_num,
    'ASC':        _builtin_asc,
    'CHR':        _builtin_chr,
    'RAND':       _builtin_rand,
}

BUILTIN_SIGNATURES: Dict[str, BuiltinSignature] = {
    'LENGTH':     BuiltinSignature(1, DataType.INTEGER),
    'UCASE':      BuiltinSignature(1, DataType.STRING),
    'LCASE':      BuiltinSignature(1, DataType.STRING),
    'LEFT':       BuiltinSignature(2, DataType.STRING),
    'RIGHT':      BuiltinSignature(2, DataType.STRING),
    'MID':        BuiltinSignature(3, DataType.STRING),
    'INT':        BuiltinSignature(1, DataType.INTEGER),
    'ROUND':      BuiltinSignature(2, DataType.REAL),
    'SQRT':       BuiltinSignature(1, DataType.REAL),
    'NUM_TO_STR': BuiltinSignature(1, DataType.STRING),
    'STR_TO_NUM': BuiltinSignature(1, None),     # INTEGER or REAL, decided by the text
    'ASC':        BuiltinSignature(1, DataType.INTEGER),
    'CHR':        BuiltinSignature(1, DataType.CHAR),
    'RAND':       BuiltinSignature(1, DataType.REAL),
}

# Set of all built-in function names (for quick membership checks)
BUILTIN_NAMES = frozenset(BUILTIN_DISPATCH)


def call_builtin(name: str, args: List[Any], rng: Optional[random.Random] = None) -> Any:
    """
    Dispatch a built-in function call.

    Raises KeyError if the function name is not recognized and
    BuiltinError for a wrong argument count or an invalid argument.
    """
    handler = BUILTIN_DISPATCH.get(name)
    if handler is None:
        raise KeyError(f"Unknown built-in function: {name}")
    expected = BUILTIN_SIGNATURES[name].arity
    if len(args) != expected:
        raise BuiltinError(f"{name} expects {expected} argument(s), got {len(args)}")
    return handler(args, rng or random.Random())
