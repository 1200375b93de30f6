"""
Exceptions and diagnostics for the marshalling layer.

Type mismatches found while reading a stack slot are *not* errors here:
``Type.to`` reports them through its return value. The exceptions below cover
the remaining cases:

Error code ranges:
- E50x: Programming errors (no descriptor for a native type, wrong direction)
- E51x: Conversion failures promoted to errors by ``check``
- E52x: Runtime API misuse (invalid ``next`` key, nil table key, bad index)
- E53x: Resource exhaustion in the runtime
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class Diagnostic:
    """A single diagnostic message."""
    code: str                       # E501, E510, etc.
    message: str                    # Human-readable message
    severity: ErrorSeverity = ErrorSeverity.ERROR
    index: Optional[int] = None     # Stack index involved, if any
    expected: Optional[str] = None  # Descriptor name that was requested
    actual: Optional[str] = None    # Runtime type name that was found
    hints: List[str] = field(default_factory=list)

    def format(self) -> str:
        """Format the diagnostic for display."""
        header = f"{self.severity.value}[{self.code}]: {self.message}"
        parts = [header]
        if self.index is not None:
            parts.append(f"  --> stack index {self.index}")
        for hint in self.hints:
            parts.append(f"    = hint: {hint}")
        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "index": self.index,
            "expected": self.expected,
            "actual": self.actual,
            "hints": self.hints,
        }


class LuaTypesError(Exception):
    """Base exception for marshalling errors."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    def __str__(self) -> str:
        return self.diagnostic.format()


class UnsupportedTypeError(LuaTypesError, TypeError):
    """No conversion descriptor exists for a native type (E501)."""
    pass


class PushOnlyTypeError(LuaTypesError, TypeError):
    """A value of this type can be pushed but never read back (E502)."""
    pass


class MultiValueTypeError(LuaTypesError, TypeError):
    """Fixed tuples span several slots and are marshalled by callers (E503)."""
    pass


class PushValueError(LuaTypesError, TypeError):
    """A value pushed as a native type is not an instance of it (E504)."""
    pass


class ConversionError(LuaTypesError):
    """A stack slot could not be converted to the requested type (E510)."""
    pass


class LuaError(LuaTypesError):
    """Misuse of the runtime API (E52x)."""
    pass


class StackOverflowError(LuaTypesError):
    """The runtime stack cannot grow any further (E530)."""
    pass


# --- Programming errors ---

def error_unsupported_type(native: str) -> UnsupportedTypeError:
    """E501: No descriptor for a native type."""
    diag = Diagnostic(
        code="E501",
        message=f"no conversion defined for native type '{native}'",
        expected=native,
        hints=["register a descriptor with TypeRegistry.register()"],
    )
    return UnsupportedTypeError(diag)


def error_push_only(name: str) -> PushOnlyTypeError:
    """E502: Reading back a push-only type."""
    diag = Diagnostic(
        code="E502",
        message=f"values of type '{name}' can only be pushed, not read",
        expected=name,
    )
    return PushOnlyTypeError(diag)


def error_multi_value(name: str, count: int) -> MultiValueTypeError:
    """E503: Single-slot operation on a multi-value type."""
    diag = Diagnostic(
        code="E503",
        message=f"type '{name}' spans {count} values and has no single-slot conversion",
        expected=name,
        hints=["push or read each tuple element with its own type"],
    )
    return MultiValueTypeError(diag)


def error_bad_push_value(name: str, value: object) -> PushValueError:
    """E504: Value does not belong to the type it is pushed as."""
    actual = type(value).__name__
    diag = Diagnostic(
        code="E504",
        message=f"cannot push {actual} value as '{name}'",
        expected=name,
        actual=actual,
    )
    return PushValueError(diag)


def error_unhashable_key(native: str) -> UnsupportedTypeError:
    """E505: Mapping key type whose values cannot be dictionary keys."""
    diag = Diagnostic(
        code="E505",
        message=f"mapping key type '{native}' is not hashable",
        expected=native,
        hints=["use str, bytes, int, float, bool or Tuple[T, ...] keys"],
    )
    return UnsupportedTypeError(diag)


# --- Conversion failures ---

def error_type_mismatch(index: int, expected: str, actual: str) -> ConversionError:
    """E510: Slot holds an incompatible value."""
    diag = Diagnostic(
        code="E510",
        message=f"bad value at index {index} ({expected} expected, got {actual})",
        index=index,
        expected=expected,
        actual=actual,
    )
    return ConversionError(diag)


# --- Runtime misuse ---

def error_invalid_next_key(index: int) -> LuaError:
    """E520: Key passed to next() is not in the table."""
    diag = Diagnostic(
        code="E520",
        message="invalid key to 'next'",
        index=index,
    )
    return LuaError(diag)


def error_invalid_table_key(reason: str) -> LuaError:
    """E521: Table key is nil or NaN."""
    diag = Diagnostic(
        code="E521",
        message=f"table index is {reason}",
    )
    return LuaError(diag)


def error_not_a_table(index: int, actual: str) -> LuaError:
    """E522: Table operation on a non-table slot."""
    diag = Diagnostic(
        code="E522",
        message=f"table expected at index {index}, got {actual}",
        index=index,
        expected="table",
        actual=actual,
    )
    return LuaError(diag)


def error_invalid_index(index: int, top: int) -> LuaError:
    """E523: Index does not address a stack slot."""
    diag = Diagnostic(
        code="E523",
        message=f"invalid stack index {index} (stack top is {top})",
        index=index,
    )
    return LuaError(diag)


# --- Resource exhaustion ---

def error_stack_overflow(limit: int) -> StackOverflowError:
    """E530: Runtime stack limit reached."""
    diag = Diagnostic(
        code="E530",
        message=f"stack overflow (limit is {limit} slots)",
    )
    return StackOverflowError(diag)
