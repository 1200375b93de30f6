"""
In-process Lua 5.3-style value stack.

This is the embedding target the marshalling layer talks to. It provides only
the boundary surface conversions need:
- Stack slots addressed by 1-based positive or top-relative negative indices
- Type tags and type names
- Push/read primitives with the runtime's numeric and string coercion rules
- Tables with raw get/set and ``next`` traversal

There is no parser, bytecode or garbage collector here.
"""

import math
import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .config import MarshalConfig, get_default_config
from .errors import (
    error_invalid_index,
    error_invalid_next_key,
    error_invalid_table_key,
    error_not_a_table,
    error_stack_overflow,
)


class LuaType(IntEnum):
    """Dynamic type tags, numbered as in the reference runtime."""
    NONE = -1
    NIL = 0
    BOOLEAN = 1
    LIGHTUSERDATA = 2
    NUMBER = 3
    STRING = 4
    TABLE = 5
    FUNCTION = 6
    USERDATA = 7
    THREAD = 8


TYPE_NAMES: Dict[LuaType, str] = {
    LuaType.NONE: "no value",
    LuaType.NIL: "nil",
    LuaType.BOOLEAN: "boolean",
    LuaType.LIGHTUSERDATA: "userdata",
    LuaType.NUMBER: "number",
    LuaType.STRING: "string",
    LuaType.TABLE: "table",
    LuaType.FUNCTION: "function",
    LuaType.USERDATA: "userdata",
    LuaType.THREAD: "thread",
}

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


# =============================================================================
# Runtime value kinds
# =============================================================================

@dataclass(frozen=True)
class LightUserData:
    """A bare pointer value. Equal when the addresses are equal."""
    address: int

    def __repr__(self) -> str:
        return f"LightUserData(0x{self.address:x})"


@dataclass(eq=False)
class Function:
    """A callable stored in a slot. Compared by identity."""
    fn: Callable[..., Any]


@dataclass(eq=False)
class UserData:
    """A full userdata block owned by the runtime. Compared by identity."""
    payload: Any = None


@dataclass(eq=False)
class Thread:
    """A coroutine handle. Compared by identity."""
    name: str = "thread"


class Table:
    """
    A Lua table.

    Keys are stored tagged so that ``True`` and ``1`` (equal in Python) stay
    distinct. Traversal visits the array part ``1..border`` first, then the
    remaining keys in insertion order.
    """

    def __init__(self, narr: int = 0, nrec: int = 0):
        self.narr = narr
        self.nrec = nrec
        self._entries: Dict[Tuple[LuaType, Any], Tuple[Any, Any]] = {}
        self._order: Optional[List[Tuple[LuaType, Any]]] = None
        self._positions: Optional[Dict[Tuple[LuaType, Any], int]] = None

    def __repr__(self) -> str:
        return f"Table(0x{id(self):x}, {len(self._entries)} entries)"

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def _slot_key(key: Any) -> Tuple[LuaType, Any]:
        if key is None:
            raise error_invalid_table_key("nil")
        if isinstance(key, float):
            if math.isnan(key):
                raise error_invalid_table_key("NaN")
            as_int = float_to_integer(key)
            if as_int is not None:
                key = as_int
        return (tag_of(key), key)

    def get(self, key: Any) -> Any:
        if key is None or (isinstance(key, float) and math.isnan(key)):
            return None
        entry = self._entries.get(self._slot_key(key))
        return entry[1] if entry is not None else None

    def set(self, key: Any, value: Any) -> None:
        slot = self._slot_key(key)
        if value is None:
            if slot in self._entries:
                del self._entries[slot]
                self._order = self._positions = None
            return
        if slot not in self._entries:
            self._order = self._positions = None
        self._entries[slot] = (slot[1], value)

    def border(self) -> int:
        """Largest n such that keys 1..n are all present."""
        n = 0
        while (LuaType.NUMBER, n + 1) in self._entries:
            n += 1
        return n

    def _ordered_keys(self) -> List[Tuple[LuaType, Any]]:
        if self._order is None:
            n = self.border()
            array_part = [(LuaType.NUMBER, i) for i in range(1, n + 1)]
            seen = set(array_part)
            self._order = array_part + [k for k in self._entries if k not in seen]
            self._positions = {slot: i for i, slot in enumerate(self._order)}
        return self._order

    def next(self, key: Any) -> Optional[Tuple[Any, Any]]:
        """Return the entry after ``key`` (``None`` starts), or None at the end.

        Raises ``KeyError`` if ``key`` is not present in the table.
        """
        order = self._ordered_keys()
        if key is None:
            position = 0
        else:
            slot = self._slot_key(key)
            position = self._positions.get(slot)
            if position is None:
                raise KeyError(key)
            position += 1
        if position >= len(order):
            return None
        return self._entries[order[position]]

    def items(self) -> Iterator[Tuple[Any, Any]]:
        for slot in list(self._ordered_keys()):
            yield self._entries[slot]


# =============================================================================
# Coercion rules
# =============================================================================

_LUA_SPACE = " \f\n\r\t\v"
_DEC_INT = re.compile(r"[+-]?[0-9]+\Z")
_HEX_INT = re.compile(r"([+-]?)0[xX]([0-9a-fA-F]+)\Z")
_DEC_FLOAT = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?\Z")
_HEX_FLOAT = re.compile(r"[+-]?0[xX]([0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)([pP][+-]?[0-9]+)?\Z")


def tag_of(value: Any) -> LuaType:
    """Type tag of a runtime value."""
    if value is None:
        return LuaType.NIL
    if isinstance(value, bool):
        return LuaType.BOOLEAN
    if isinstance(value, (int, float)):
        return LuaType.NUMBER
    if isinstance(value, bytes):
        return LuaType.STRING
    if isinstance(value, Table):
        return LuaType.TABLE
    if isinstance(value, LightUserData):
        return LuaType.LIGHTUSERDATA
    if isinstance(value, Function):
        return LuaType.FUNCTION
    if isinstance(value, UserData):
        return LuaType.USERDATA
    if isinstance(value, Thread):
        return LuaType.THREAD
    raise TypeError(f"not a runtime value: {value!r}")


def wrap_int64(n: int) -> int:
    """Reduce an integer to the runtime's 64-bit two's-complement range."""
    return ((n - INT64_MIN) % (2 ** 64)) + INT64_MIN


def float_to_integer(x: float) -> Optional[int]:
    """Exact integer value of ``x``, or None."""
    if not math.isfinite(x) or x != math.floor(x):
        return None
    if not (-(2.0 ** 63) <= x < 2.0 ** 63):
        return None
    return int(x)


def string_to_number(data: bytes) -> Optional[Any]:
    """Convert a numeric string to an int or float, following the runtime."""
    try:
        text = data.decode("ascii").strip(_LUA_SPACE)
    except UnicodeDecodeError:
        return None
    if _DEC_INT.match(text):
        n = int(text)
        if INT64_MIN <= n <= INT64_MAX:
            return n
        return float(n)
    m = _HEX_INT.match(text)
    if m:
        # hex integers wrap around instead of overflowing to float
        n = wrap_int64(int(m.group(2), 16))
        return wrap_int64(-n) if m.group(1) == "-" else n
    if _DEC_FLOAT.match(text):
        return float(text)
    if _HEX_FLOAT.match(text):
        sign = -1.0 if text.startswith("-") else 1.0
        body = text.lstrip("+-")
        if "p" not in body.lower():
            body += "p0"
        return sign * float.fromhex(body)
    return None


def number_to_string(value: Any) -> bytes:
    """Format a number the way the runtime does (``%d`` / ``%.14g``)."""
    if isinstance(value, int):
        return str(value).encode("ascii")
    if math.isinf(value):
        return b"inf" if value > 0 else b"-inf"
    if math.isnan(value):
        return b"nan" if math.copysign(1.0, value) > 0 else b"-nan"
    text = "%.14g" % value
    if not any(c in text for c in ".eni"):
        text += ".0"
    return text.encode("ascii")


# =============================================================================
# State
# =============================================================================

class State:
    """
    A single runtime stack.

    Not thread safe: one ``State`` belongs to one thread at a time.
    """

    def __init__(self, config: Optional[MarshalConfig] = None):
        self.config = config or get_default_config()
        self._stack: List[Any] = []

    def __repr__(self) -> str:
        return f"State(top={len(self._stack)})"

    # --- Stack manipulation ---

    def get_top(self) -> int:
        return len(self._stack)

    def abs_index(self, index: int) -> int:
        """Convert a top-relative index into a bottom-relative one."""
        if index > 0:
            return index
        return len(self._stack) + index + 1

    def _valid(self, index: int) -> bool:
        return index != 0 and 1 <= self.abs_index(index) <= len(self._stack)

    def _get(self, index: int) -> Any:
        if not self._valid(index):
            raise error_invalid_index(index, len(self._stack))
        return self._stack[self.abs_index(index) - 1]

    def _push(self, value: Any) -> None:
        if len(self._stack) >= self.config.max_stack:
            raise error_stack_overflow(self.config.max_stack)
        self._stack.append(value)

    def set_top(self, index: int) -> None:
        """Set the stack height, filling with nil or discarding slots."""
        new_top = index if index >= 0 else len(self._stack) + index + 1
        if new_top < 0:
            raise error_invalid_index(index, len(self._stack))
        if new_top > self.config.max_stack:
            raise error_stack_overflow(self.config.max_stack)
        if new_top < len(self._stack):
            del self._stack[new_top:]
        else:
            self._stack.extend([None] * (new_top - len(self._stack)))

    def pop(self, n: int = 1) -> None:
        self.set_top(-n - 1)

    def push_value(self, index: int) -> None:
        """Push a copy of the value at ``index``."""
        self._push(self._get(index))

    # --- Push primitives ---

    def push_nil(self) -> None:
        self._push(None)

    def push_boolean(self, b: Any) -> None:
        self._push(bool(b))

    def push_integer(self, n: int) -> None:
        self._push(wrap_int64(int(n)))

    def push_number(self, x: float) -> None:
        self._push(float(x))

    def push_lstring(self, data: bytes) -> None:
        self._push(bytes(data))

    def push_string(self, s: Any) -> None:
        """Push ``str`` (encoded with the configured codec) or bytes; None pushes nil."""
        if s is None:
            self._push(None)
        elif isinstance(s, str):
            self._push(s.encode(self.config.string_encoding))
        else:
            self._push(bytes(s))

    def push_lightuserdata(self, address: int) -> None:
        self._push(LightUserData(int(address)))

    def push_function(self, fn: Callable[..., Any]) -> None:
        self._push(Function(fn))

    def push_userdata(self, payload: Any = None) -> UserData:
        block = UserData(payload)
        self._push(block)
        return block

    def push_thread(self) -> Thread:
        thread = Thread()
        self._push(thread)
        return thread

    def new_table(self, narr: int = 0, nrec: int = 0) -> Table:
        """Push a new empty table, pre-sized for ``narr`` array and ``nrec`` hash entries."""
        table = Table(narr, nrec)
        self._push(table)
        return table

    # --- Queries ---

    def type(self, index: int) -> LuaType:
        if not self._valid(index):
            return LuaType.NONE
        return tag_of(self._stack[self.abs_index(index) - 1])

    def typename(self, tag: LuaType) -> str:
        return TYPE_NAMES[LuaType(tag)]

    def is_boolean(self, index: int) -> bool:
        return self.type(index) == LuaType.BOOLEAN

    def to_boolean(self, index: int) -> bool:
        """Truthiness: only nil and false are false."""
        if not self._valid(index):
            return False
        value = self._stack[self.abs_index(index) - 1]
        return value is not None and value is not False

    def to_integerx(self, index: int) -> Tuple[int, bool]:
        """Read an integer; the flag tells whether the conversion succeeded."""
        value = self._stack[self.abs_index(index) - 1] if self._valid(index) else None
        tag = tag_of(value)
        if tag == LuaType.STRING:
            value = string_to_number(value)
            if value is None:
                return 0, False
        elif tag != LuaType.NUMBER:
            return 0, False
        if isinstance(value, int):
            return value, True
        n = float_to_integer(value)
        if n is None:
            return 0, False
        return n, True

    def to_numberx(self, index: int) -> Tuple[float, bool]:
        """Read a number; the flag tells whether the conversion succeeded."""
        value = self._stack[self.abs_index(index) - 1] if self._valid(index) else None
        tag = tag_of(value)
        if tag == LuaType.STRING:
            value = string_to_number(value)
            if value is None:
                return 0.0, False
        elif tag != LuaType.NUMBER:
            return 0.0, False
        return float(value), True

    def to_lstring(self, index: int) -> Optional[bytes]:
        """Read a string, converting numbers. Returns None for other types.

        The slot itself is left unchanged.
        """
        value = self._stack[self.abs_index(index) - 1] if self._valid(index) else None
        tag = tag_of(value)
        if tag == LuaType.STRING:
            return value
        if tag == LuaType.NUMBER:
            return number_to_string(value)
        return None

    def to_pointer(self, index: int) -> Any:
        """Raw runtime value at ``index`` (for debugging and tests)."""
        return self._get(index)

    # --- Tables ---

    def _table(self, index: int) -> Table:
        value = self._get(index)
        if not isinstance(value, Table):
            raise error_not_a_table(index, TYPE_NAMES[tag_of(value)])
        return value

    def raw_set(self, index: int) -> None:
        """t[k] = v where t is at ``index``, v at the top and k just below; pops k and v."""
        table = self._table(index)
        key, value = self._get(-2), self._get(-1)
        table.set(key, value)
        self.pop(2)

    def raw_seti(self, index: int, n: int) -> None:
        """t[n] = v where v is at the top; pops v."""
        table = self._table(index)
        table.set(wrap_int64(n), self._get(-1))
        self.pop(1)

    def raw_get(self, index: int) -> LuaType:
        """Replace the key at the top with t[k]; returns the value's tag."""
        table = self._table(index)
        value = table.get(self._get(-1))
        self._stack[-1] = value
        return tag_of(value)

    def raw_geti(self, index: int, n: int) -> LuaType:
        table = self._table(index)
        value = table.get(wrap_int64(n))
        self._push(value)
        return tag_of(value)

    def raw_len(self, index: int) -> int:
        value = self._get(index)
        if isinstance(value, bytes):
            return len(value)
        if isinstance(value, Table):
            return value.border()
        return 0

    def next(self, index: int) -> bool:
        """
        Table traversal step.

        Pops a key and pushes the next key and value, returning True; at the
        end of the table pushes nothing and returns False.
        """
        table = self._table(index)
        key = self._get(-1)
        try:
            entry = table.next(key)
        except KeyError:
            raise error_invalid_next_key(index) from None
        self.pop(1)
        if entry is None:
            return False
        self._push(entry[0])
        self._push(entry[1])
        return True

    # --- Debugging ---

    def dump(self) -> List[str]:
        """One line per slot, bottom first."""
        lines = []
        for i, value in enumerate(self._stack, start=1):
            tag = tag_of(value)
            if tag == LuaType.STRING:
                shown = repr(value)
            elif tag == LuaType.NUMBER:
                shown = number_to_string(value).decode("ascii")
            elif tag == LuaType.TABLE:
                shown = "{" + ", ".join(
                    f"[{_short(k)}]={_short(v)}" for k, v in value.items()
                ) + "}"
            else:
                shown = repr(value)
            lines.append(f"{i:>3} {TYPE_NAMES[tag]:<9} {shown}")
        return lines


def _short(value: Any) -> str:
    tag = tag_of(value)
    if tag == LuaType.NUMBER:
        return number_to_string(value).decode("ascii")
    if tag == LuaType.TABLE:
        return repr(value)
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "true" if value else "false"
    return repr(value)
