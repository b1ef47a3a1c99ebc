from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from values import ArrayValue, DataType, coerce_to, format_value


# ── Runtime storage ──

@dataclass(eq=False)
class Binding:
    """Mutable container for one named value. BYREF parameters share the caller's Binding."""
    value: Any
    dtype: Optional[DataType] = None    # None for implicitly declared (untyped) names
    is_constant: bool = False

    def get(self) -> Any:
        return self.value

    def set(self, new_value: Any):
        if self.is_constant:
            raise ValueError(f"Cannot modify constant value (currently {format_value(self.value)})")
        self.value = self._check_type_compatibility(new_value)

    def _check_type_compatibility(self, value: Any) -> Any:
        """Apply the assignment rules of the declared type. Arrays are shared, not copied."""
        if isinstance(value, ArrayValue):
            if self.dtype not in (None, DataType.ARRAY):
                raise TypeError(f"Type mismatch: cannot assign ARRAY to {self.dtype.name}")
            if isinstance(self.value, ArrayValue) and not self.value.is_compatible(value):
                raise TypeError("Type mismatch: array dimensions or element types differ")
            return value
        if self.dtype == DataType.ARRAY and value is not None:
            raise TypeError("Type mismatch: cannot assign a scalar to an ARRAY")
        return coerce_to(value, self.dtype)


class Environment:
    """One runtime scope; lookups walk the parent chain outward."""

    def __init__(self, parent: Optional['Environment'] = None):
        self.parent = parent
        self.bindings: Dict[str, Binding] = {}

    def child(self) -> 'Environment':
        return Environment(self)

    def define(self, name: str, binding: Binding) -> Binding:
        # Re-running a DECLARE (e.g. inside a loop) re-initialises the binding
        self.bindings[name] = binding
        return binding

    def has_local(self, name: str) -> bool:
        return name in self.bindings

    def lookup(self, name: str) -> Optional[Binding]:
        env = self
        while env is not None:
            binding = env.bindings.get(name)
            if binding is not None:
                return binding
            env = env.parent
        return None

    def assign(self, name: str, value: Any) -> Binding:
        """Write to the scope that owns `name`, or implicitly declare it here."""
        binding = self.lookup(name)
        if binding is None:
            binding = self.define(name, Binding(None))
        binding.set(value)
        return binding


# ── Static scopes (validator) ──

@dataclass
class SymbolInfo:
    """
    Symbol table entry used by the validator.
    kind: 'variable', 'constant', 'array', 'parameter', 'function' or 'procedure'
    """
    name: str
    kind: str
    dtype: Optional[DataType] = None
    declared_line: int = 0
    element_type: Optional[DataType] = None
    bounds: Optional[Tuple[Tuple[int, int], ...]] = None
    param_mode: Optional[str] = None
    params: tuple = ()
    constant_value: Any = None
    used: bool = False

    @property
    def is_routine(self) -> bool:
        return self.kind in ('function', 'procedure')


class SymbolTable:
    """Stack of static scopes mirroring the runtime Environment chain."""

    def __init__(self):
        # Global scope at [0]; routines and FOR loops push new dicts
        self.scopes: List[Dict[str, SymbolInfo]] = [{}]

    @property
    def scope_level(self) -> int:
        return len(self.scopes) - 1

    @property
    def globals(self) -> Dict[str, SymbolInfo]:
        return self.scopes[0]

    def enter_scope(self):
        self.scopes.append({})

    def exit_scope(self) -> Dict[str, SymbolInfo]:
        """Leave the innermost scope and return its symbols."""
        if self.scope_level == 0:
            raise RuntimeError("Cannot exit global scope")
        return self.scopes.pop()

    def declare(self, sym: SymbolInfo) -> SymbolInfo:
        current_scope = self.scopes[-1]
        if sym.name in current_scope:
            previous = current_scope[sym.name]
            raise NameError(
                f"'{sym.name}' already declared in current scope at line {previous.declared_line}")
        current_scope[sym.name] = sym
        return sym

    def lookup(self, name: str) -> Optional[SymbolInfo]:
        """Search from innermost to outermost scope."""
        for scope in reversed(self.scopes):
            if name in scope:
                return scope[name]
        return None

    def lookup_local(self, name: str) -> Optional[SymbolInfo]:
        return self.scopes[-1].get(name)
