"""
Conversion descriptors between native Python types and runtime stack values.

Each supported native type has one ``Type`` descriptor providing:
    name: diagnostic label ("integer", "number", "boolean", "string", ...)
    push(state, value): write exactly one new slot at the top of the stack
    to(state, index): read the slot at ``index``; returns ``(True, value)``
        on success and ``(False, None)`` on any mismatch, never raising and
        never changing the stack height

Descriptors are resolved from the type annotation, not from values:

    push(state, List[int], [1, 2, 3])
    ok, numbers = to(state, -1, List[int])

Boolean reads are strict (only real booleans convert) while string reads
accept numbers, following the runtime's own string coercion.
"""

import collections.abc
import ctypes
import logging
import numbers
import typing
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Tuple

import numpy as np

from .errors import (
    error_bad_push_value,
    error_multi_value,
    error_push_only,
    error_type_mismatch,
    error_unhashable_key,
    error_unsupported_type,
)
from .stack import StackAutoReset, get_type, get_type_name
from .state import LuaType, State

logger = logging.getLogger(__name__)

FAILED: Tuple[bool, Any] = (False, None)


class Nil:
    """Marker type whose only value, ``NIL``, is pushed as nil."""

    _instance: Optional["Nil"] = None

    def __new__(cls) -> "Nil":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NIL"

    def __bool__(self) -> bool:
        return False


NIL = Nil()


# =============================================================================
# Descriptor Classes
# =============================================================================

@dataclass(frozen=True)
class Type(ABC):
    """Base class for all conversion descriptors."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The type name for diagnostics."""
        pass

    @property
    def signature(self) -> str:
        """Full description including element types."""
        return self.name

    @property
    def can_push(self) -> bool:
        return True

    @property
    def can_read(self) -> bool:
        return True

    @property
    def hashable(self) -> bool:
        """Whether values read back can be used as mapping keys."""
        return True

    @abstractmethod
    def push(self, state: State, value: Any) -> None:
        pass

    def to(self, state: State, index: int) -> Tuple[bool, Any]:
        raise error_push_only(self.signature)

    def _expect(self, value: Any, kinds: Any) -> None:
        if not isinstance(value, kinds):
            raise error_bad_push_value(self.signature, value)

    def __str__(self) -> str:
        return self.signature


@dataclass(frozen=True)
class IntegerType(Type):
    """
    Signed or unsigned integers.

    ``low``/``high`` bound fixed-width types; reads outside the range fail.
    ``unsigned64`` reinterprets the runtime's 64 bits as unsigned.
    """
    native: type = int
    low: Optional[int] = None
    high: Optional[int] = None
    unsigned64: bool = False

    @property
    def name(self) -> str:
        return "integer"

    def push(self, state: State, value: Any) -> None:
        self._expect(value, numbers.Integral)
        state.push_integer(int(value))

    def to(self, state: State, index: int) -> Tuple[bool, Any]:
        n, ok = state.to_integerx(index)
        if not ok:
            return FAILED
        if self.unsigned64:
            n &= 2 ** 64 - 1
        if self.low is not None and n < self.low:
            return FAILED
        if self.high is not None and n > self.high:
            return FAILED
        return True, self.native(n)


@dataclass(frozen=True)
class NumberType(Type):
    """Single or double precision floating point."""
    native: type = float

    @property
    def name(self) -> str:
        return "number"

    def push(self, state: State, value: Any) -> None:
        self._expect(value, numbers.Real)
        state.push_number(float(value))

    def to(self, state: State, index: int) -> Tuple[bool, Any]:
        x, ok = state.to_numberx(index)
        if not ok:
            return FAILED
        return True, self.native(x)


@dataclass(frozen=True)
class BooleanType(Type):
    """Booleans. Numbers, strings and nil never convert."""
    native: type = bool

    @property
    def name(self) -> str:
        return "boolean"

    def push(self, state: State, value: Any) -> None:
        self._expect(value, (bool, np.bool_))
        state.push_boolean(bool(value))

    def to(self, state: State, index: int) -> Tuple[bool, Any]:
        if not state.is_boolean(index):
            return FAILED
        return True, self.native(state.to_boolean(index))


@dataclass(frozen=True)
class NilType(Type):
    """The nil marker. Only ever produced, never read back."""

    @property
    def name(self) -> str:
        return "nil"

    @property
    def can_read(self) -> bool:
        return False

    def push(self, state: State, value: Any = NIL) -> None:
        self._expect(value, (Nil, type(None)))
        state.push_nil()


@dataclass(frozen=True)
class LightUserDataType(Type):
    """Non-owning raw pointers (``ctypes.c_void_p``). Push only."""

    @property
    def name(self) -> str:
        return "lightuserdata"

    @property
    def can_read(self) -> bool:
        return False

    def push(self, state: State, value: Any) -> None:
        self._expect(value, (ctypes.c_void_p, numbers.Integral))
        state.push_lightuserdata(getattr(value, "value", value) or 0)


@dataclass(frozen=True)
class StringType(Type):
    """Text, encoded with the state's configured codec."""

    @property
    def name(self) -> str:
        return "string"

    def push(self, state: State, value: Any) -> None:
        self._expect(value, str)
        state.push_lstring(value.encode(state.config.string_encoding))

    def to(self, state: State, index: int) -> Tuple[bool, Any]:
        data = state.to_lstring(index)
        if data is None:
            return FAILED
        try:
            return True, data.decode(state.config.string_encoding)
        except UnicodeDecodeError:
            return FAILED


@dataclass(frozen=True)
class BytesType(Type):
    """Binary-safe byte strings."""
    native: type = bytes

    @property
    def name(self) -> str:
        return "string"

    @property
    def hashable(self) -> bool:
        return self.native is not bytearray

    def push(self, state: State, value: Any) -> None:
        self._expect(value, (bytes, bytearray, memoryview))
        state.push_lstring(bytes(value))

    def to(self, state: State, index: int) -> Tuple[bool, Any]:
        data = state.to_lstring(index)
        if data is None:
            return FAILED
        return True, self.native(data)


@dataclass(frozen=True)
class StringLiteralType(Type):
    """``Literal["..."]`` string constants. Push only."""
    literals: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return "string"

    @property
    def can_read(self) -> bool:
        return False

    def push(self, state: State, value: Any) -> None:
        self._expect(value, str)
        if self.literals and value not in self.literals:
            raise error_bad_push_value(self.signature, value)
        state.push_lstring(value.encode(state.config.string_encoding))


@dataclass(frozen=True)
class TupleType(Type):
    """Fixed tuples span several slots; callers marshal each element."""
    elements: Tuple[Any, ...] = ()

    @property
    def name(self) -> str:
        return "tuple<>"

    @property
    def can_push(self) -> bool:
        return False

    @property
    def can_read(self) -> bool:
        return False

    def push(self, state: State, value: Any) -> None:
        raise error_multi_value(self.name, len(self.elements))

    def to(self, state: State, index: int) -> Tuple[bool, Any]:
        raise error_multi_value(self.name, len(self.elements))


@dataclass(frozen=True)
class SequenceType(Type):
    """
    Homogeneous ordered sequences, marshalled as array tables.

    Reads accept only tables whose keys are exactly ``1..n`` in traversal
    order. Results are built in a fresh container that is dropped on failure.
    """
    element: Type
    container: type = list

    @property
    def name(self) -> str:
        return "table"

    @property
    def signature(self) -> str:
        return f"table<{self.element.signature}>"

    @property
    def can_read(self) -> bool:
        return self.element.can_read

    @property
    def hashable(self) -> bool:
        return self.container is tuple and self.element.hashable

    def push(self, state: State, value: Any) -> None:
        if isinstance(value, (str, bytes)) or not isinstance(value, collections.abc.Iterable):
            raise error_bad_push_value(self.signature, value)
        items = list(value)
        top = state.get_top()
        try:
            state.new_table(len(items), 0)
            for i, item in enumerate(items):
                self.element.push(state, item)
                state.raw_seti(-2, i + 1)
        except Exception:
            state.set_top(top)
            raise

    def to(self, state: State, index: int) -> Tuple[bool, Any]:
        if not self.can_read:
            raise error_push_only(self.signature)
        if get_type(state, index) != LuaType.TABLE:
            return FAILED
        index = state.abs_index(index)
        items = []
        with StackAutoReset(state):
            state.push_nil()
            while state.next(index):
                if get_type(state, -2) != LuaType.NUMBER:
                    logger.debug("%s: non-numeric key in table at index %d",
                                 self.signature, index)
                    return FAILED
                key, ok = state.to_integerx(-2)
                if not ok or key != len(items) + 1:
                    logger.debug("%s: table at index %d is not an array (element %d)",
                                 self.signature, index, len(items) + 1)
                    return FAILED
                ok, item = self.element.to(state, -1)
                if not ok:
                    logger.debug("%s: element %d is %s", self.signature,
                                 key, get_type_name(state, -1))
                    return FAILED
                state.pop(1)
                items.append(item)
        return True, self.container(items)


@dataclass(frozen=True)
class MappingType(Type):
    """Homogeneous key/value mappings. Duplicate keys: last write wins."""
    key: Type
    value: Type
    container: type = dict

    @property
    def name(self) -> str:
        return "table"

    @property
    def signature(self) -> str:
        return f"table<{self.key.signature}, {self.value.signature}>"

    @property
    def can_read(self) -> bool:
        return self.key.can_read and self.value.can_read

    @property
    def hashable(self) -> bool:
        return False

    def push(self, state: State, value: Any) -> None:
        self._expect(value, collections.abc.Mapping)
        top = state.get_top()
        try:
            state.new_table(0, len(value))
            for k, v in value.items():
                self.key.push(state, k)
                self.value.push(state, v)
                state.raw_set(-3)
        except Exception:
            state.set_top(top)
            raise

    def to(self, state: State, index: int) -> Tuple[bool, Any]:
        if not self.can_read:
            raise error_push_only(self.signature)
        if get_type(state, index) != LuaType.TABLE:
            return FAILED
        index = state.abs_index(index)
        result = {}
        with StackAutoReset(state):
            state.push_nil()
            while state.next(index):
                ok, key = self.key.to(state, -2)
                if not ok:
                    logger.debug("%s: key is %s", self.signature, get_type_name(state, -2))
                    return FAILED
                ok, item = self.value.to(state, -1)
                if not ok:
                    logger.debug("%s: value is %s", self.signature, get_type_name(state, -1))
                    return FAILED
                state.pop(1)
                result[key] = item
        return True, self.container(result)


# =============================================================================
# Type Registry
# =============================================================================

_SEQUENCE_ORIGINS = (list, collections.abc.Sequence, collections.abc.MutableSequence)
_MAPPING_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


def _native_label(native: Any) -> str:
    return getattr(native, "__name__", None) or repr(native)


class TypeRegistry:
    """
    Maps native types to descriptors.

    Scalar types are registered by identity; generic containers
    (``List[T]``, ``Dict[K, V]``, ...) are built from their arguments on
    first use and cached.
    """

    def __init__(self):
        self._scalars: Dict[Any, Type] = {}
        self._cache: Dict[Any, Type] = {}
        self._register_all()

    def register(self, native: Any, descriptor: Type) -> None:
        """Register (or replace) the descriptor for a scalar native type."""
        self._scalars[native] = descriptor
        self._cache.clear()

    def get(self, native: Any) -> Optional[Type]:
        """Look up a descriptor, returning None if the type is unsupported."""
        try:
            return self.resolve(native)
        except TypeError:
            return None

    def resolve(self, native: Any) -> Type:
        """Descriptor for ``native``; raises ``UnsupportedTypeError``."""
        try:
            return self._cache[native]
        except KeyError:
            pass
        except TypeError:  # unhashable annotation
            return self._build(native)
        descriptor = self._build(native)
        self._cache[native] = descriptor
        return descriptor

    def _build(self, native: Any) -> Type:
        try:
            scalar = self._scalars.get(native)
        except TypeError:
            scalar = None
        if scalar is not None:
            return scalar

        origin = typing.get_origin(native)
        args = typing.get_args(native)

        if origin is Literal:
            if args and all(isinstance(a, str) for a in args):
                return StringLiteralType(tuple(args))
        elif origin is tuple and native is not typing.Tuple:
            if len(args) == 2 and args[1] is Ellipsis:
                return SequenceType(self.resolve(args[0]), tuple)
            if args == ((),):
                args = ()
            return TupleType(tuple(args))
        elif origin in _SEQUENCE_ORIGINS and len(args) == 1:
            return SequenceType(self.resolve(args[0]))
        elif origin in _MAPPING_ORIGINS and len(args) == 2:
            key = self.resolve(args[0])
            if not key.hashable:
                raise error_unhashable_key(_native_label(args[0]))
            return MappingType(key, self.resolve(args[1]))

        raise error_unsupported_type(_native_label(native))

    def _register_all(self) -> None:
        """Register all built-in scalar descriptors."""
        self._register_integers()
        self._register_numbers()
        self._register_booleans()
        self._register_strings()
        self.register(Nil, NilType())
        self.register(ctypes.c_void_p, LightUserDataType())

    def _register_integers(self) -> None:
        self.register(int, IntegerType(int))
        for native in (np.int8, np.int16, np.int32, np.int64,
                       np.uint8, np.uint16, np.uint32):
            info = np.iinfo(native)
            self.register(native, IntegerType(native, int(info.min), int(info.max)))
        self.register(np.uint64, IntegerType(np.uint64, unsigned64=True))

    def _register_numbers(self) -> None:
        for native in (float, np.float32, np.float64):
            self.register(native, NumberType(native))

    def _register_booleans(self) -> None:
        for native in (bool, np.bool_):
            self.register(native, BooleanType(native))

    def _register_strings(self) -> None:
        self.register(str, StringType())
        for native in (bytes, bytearray):
            self.register(native, BytesType(native))


_registry: Optional[TypeRegistry] = None


def get_registry() -> TypeRegistry:
    """Get the global descriptor registry."""
    global _registry
    if _registry is None:
        _registry = TypeRegistry()
    return _registry


# =============================================================================
# Conversion helpers
# =============================================================================

def type_for(native: Any) -> Type:
    """Descriptor for a native type from the global registry."""
    return get_registry().resolve(native)


def type_name(native: Any) -> str:
    """Diagnostic name for a native type."""
    return type_for(native).name


def push(state: State, native: Any, value: Any) -> None:
    """Push ``value`` as the runtime representation of ``native``."""
    type_for(native).push(state, value)


def to(state: State, index: int, native: Any) -> Tuple[bool, Any]:
    """Read the slot at ``index`` as ``native``.

    Returns ``(True, value)`` or ``(False, None)``.
    """
    descriptor = type_for(native)
    result = descriptor.to(state, index)
    if not result[0]:
        logger.debug("cannot read %s at index %d (found %s)",
                     descriptor.signature, index, get_type_name(state, index))
    return result


def to_or(state: State, index: int, native: Any, default: Any = None) -> Any:
    """Read the slot at ``index`` as ``native``, or return ``default``."""
    ok, value = to(state, index, native)
    return value if ok else default


def check(state: State, index: int, native: Any) -> Any:
    """Read the slot at ``index`` as ``native`` or raise ``ConversionError``."""
    descriptor = type_for(native)
    ok, value = descriptor.to(state, index)
    if not ok:
        raise error_type_mismatch(index, descriptor.name, get_type_name(state, index))
    return value


def raw_set(state: State, index: int, key_type: Any, key: Any,
            value_type: Any, value: Any) -> None:
    """t[key] = value for the table at ``index``, pushing both with their descriptors."""
    index = state.abs_index(index)
    type_for(key_type).push(state, key)
    type_for(value_type).push(state, value)
    state.raw_set(index)
