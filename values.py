"""
Runtime values of the pseudocode language.

Scalars are plain Python objects (int, float, str, bool, None for NULL);
CHAR values use the `Char` str subclass so they stay distinguishable from
one-character STRINGs. Arrays are `ArrayValue` instances with fixed,
declared bounds and row-major storage.
"""
from enum import Enum, auto
from typing import Any, Iterator, List, Optional, Sequence, Tuple


class DataType(Enum):
    INTEGER = auto()
    REAL = auto()
    STRING = auto()
    BOOLEAN = auto()
    CHAR = auto()
    ARRAY = auto()
    NULL = auto()


TYPE_BY_NAME = {
    'INTEGER': DataType.INTEGER, 'REAL': DataType.REAL,
    'STRING': DataType.STRING, 'BOOLEAN': DataType.BOOLEAN,
    'CHAR': DataType.CHAR, 'ARRAY': DataType.ARRAY,
}

# Recognised by the lexer but not implemented by the engine
UNSUPPORTED_TYPE_NAMES = frozenset({'DATE', 'RECORD'})

# Integers beyond this many bits are a numeric overflow; this keeps every
# integer within the digit limit of Python's int-to-str conversion
MAX_INTEGER_BITS = 13_000
MAX_INTEGER_DIGITS = 3_900

NUMERIC_TYPES = frozenset({DataType.INTEGER, DataType.REAL})
TEXT_TYPES = frozenset({DataType.STRING, DataType.CHAR})


def resolve_type(type_name: Optional[str]) -> Optional[DataType]:
    if type_name is None:
        return None
    return TYPE_BY_NAME.get(type_name)


class Char(str):
    """A CHAR value: a str of length one (or empty for an unset CHAR)."""
    __slots__ = ()


_DEFAULTS = {
    DataType.INTEGER: 0, DataType.REAL: 0.0,
    DataType.STRING: "", DataType.CHAR: Char(""),
    DataType.BOOLEAN: False,
}


def default_value(dtype: Optional[DataType]) -> Any:
    return _DEFAULTS.get(dtype)


def array_size(bounds: Sequence[Tuple[int, int]]) -> int:
    """Element count for `bounds`, computed without allocating anything."""
    total = 1
    for lower, upper in bounds:
        total *= upper - lower + 1
    return total


class ArrayValue:
    """Fixed-size array with declared (lower, upper) bounds per dimension."""

    __slots__ = ('bounds', 'element_type', 'elements')

    def __init__(self, bounds: Sequence[Tuple[int, int]], element_type: DataType,
                 elements: Optional[List[Any]] = None):
        self.bounds = tuple((lo, hi) for lo, hi in bounds)
        self.element_type = element_type
        if elements is None:
            elements = [default_value(element_type)] * self.size
        self.elements = elements

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(hi - lo + 1 for lo, hi in self.bounds)

    @property
    def size(self) -> int:
        return array_size(self.bounds)

    def _offset(self, indices: Sequence[int]) -> int:
        if len(indices) != len(self.bounds):
            raise IndexError(
                f"Incorrect number of indices: expected {len(self.bounds)}, got {len(indices)}")
        offset = 0
        for idx, (lower, upper) in zip(indices, self.bounds):
            if idx < lower or idx > upper:
                raise IndexError("Array index out of bounds")
            offset = offset * (upper - lower + 1) + (idx - lower)
        return offset

    def get(self, indices: Sequence[int]) -> Any:
        return self.elements[self._offset(indices)]

    def set(self, indices: Sequence[int], value: Any):
        offset = self._offset(indices)
        self.elements[offset] = coerce_to(value, self.element_type)

    def copy(self) -> 'ArrayValue':
        return ArrayValue(self.bounds, self.element_type, list(self.elements))

    def is_compatible(self, other: Any) -> bool:
        """Same shape and element type (bounds may be shifted)."""
        return (isinstance(other, ArrayValue)
                and other.shape == self.shape
                and other.element_type == self.element_type)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.elements)

    def __len__(self) -> int:
        return self.size

    def __eq__(self, other):
        if not isinstance(other, ArrayValue):
            return NotImplemented
        return self.bounds == other.bounds and self.elements == other.elements

    def __repr__(self):
        dims = ", ".join(f"{lo}:{hi}" for lo, hi in self.bounds)
        return f"ArrayValue([{dims}] OF {self.element_type.name})"


def type_of(value: Any) -> DataType:
    # bool is checked before int: True is an int in Python
    if value is None:
        return DataType.NULL
    if isinstance(value, bool):
        return DataType.BOOLEAN
    if isinstance(value, int):
        return DataType.INTEGER
    if isinstance(value, float):
        return DataType.REAL
    if isinstance(value, Char):
        return DataType.CHAR
    if isinstance(value, str):
        return DataType.STRING
    if isinstance(value, ArrayValue):
        return DataType.ARRAY
    raise TypeError(f"Not a pseudocode value: {value!r}")


def format_value(value: Any) -> str:
    """Text shown by OUTPUT and produced by `&`."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, ArrayValue):
        return "[" + ", ".join(format_value(v) for v in value.elements) + "]"
    try:
        return str(value)
    except ValueError:
        raise OverflowError("Numeric overflow") from None


def check_integer(value: Any) -> Any:
    """Raise OverflowError for an INTEGER result too large to keep."""
    if isinstance(value, int) and value.bit_length() > MAX_INTEGER_BITS:
        raise OverflowError("Numeric overflow")
    return value


def coerce_to(value: Any, dtype: Optional[DataType]) -> Any:
    """
    Convert `value` for storage in a slot of type `dtype`.

    INTEGER widens to REAL, an integral REAL narrows to INTEGER, a
    one-character STRING becomes a CHAR and a CHAR becomes a STRING.
    NULL fits every slot and an untyped slot (dtype None) takes anything.
    Raises TypeError for every other combination.
    """
    if value is None or dtype is None:
        return value

    source = type_of(value)
    if source == dtype:
        return value

    if dtype == DataType.REAL and source == DataType.INTEGER:
        return float(value)
    if dtype == DataType.INTEGER and source == DataType.REAL:
        if value.is_integer():
            return int(value)
        raise TypeError(f"Type mismatch: cannot assign REAL value {value} to INTEGER")
    if dtype == DataType.STRING and source == DataType.CHAR:
        return str(value)
    if dtype == DataType.CHAR and source == DataType.STRING and len(value) == 1:
        return Char(value)

    raise TypeError(f"Type mismatch: cannot assign {source.name} to {dtype.name}")
