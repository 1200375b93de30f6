"""
Tests for the in-process runtime stack (indices, coercion rules, tables).
"""

import math

import pytest

from luatypes import (
    LuaType, State, Table, LightUserData, MarshalConfig,
    LuaError, StackOverflowError,
)
from luatypes.state import number_to_string, string_to_number, wrap_int64


# --- Stack indexing ---

class TestIndexing:
    """Test positive, negative and invalid indices."""

    def test_positive_and_negative_indices(self):
        """Both conventions address the same slot."""
        state = State()
        state.push_integer(10)
        state.push_integer(20)
        state.push_integer(30)
        assert state.get_top() == 3
        assert state.to_integerx(1) == (10, True)
        assert state.to_integerx(-3) == (10, True)
        assert state.to_integerx(-1) == (30, True)
        assert state.abs_index(-1) == 3
        assert state.abs_index(2) == 2

    def test_invalid_index_is_none(self):
        """Out-of-range indices report the NONE tag."""
        state = State()
        state.push_nil()
        assert state.type(1) == LuaType.NIL
        assert state.type(2) == LuaType.NONE
        assert state.type(-2) == LuaType.NONE
        assert state.type(0) == LuaType.NONE

    def test_set_top_grows_with_nil(self):
        """Raising the top fills with nil."""
        state = State()
        state.set_top(3)
        assert state.get_top() == 3
        assert all(state.type(i) == LuaType.NIL for i in (1, 2, 3))
        state.set_top(1)
        assert state.get_top() == 1

    def test_pop(self):
        """Pop removes slots from the top."""
        state = State()
        for i in range(5):
            state.push_integer(i)
        state.pop(2)
        assert state.get_top() == 3
        assert state.to_integerx(-1) == (2, True)

    def test_push_value_copies(self):
        """push_value duplicates a slot."""
        state = State()
        state.push_string("x")
        state.push_value(1)
        assert state.to_lstring(2) == b"x"

    def test_invalid_set_top(self):
        """Setting the top below zero is an error."""
        state = State()
        with pytest.raises(LuaError):
            state.set_top(-2)

    def test_stack_overflow(self):
        """Pushing past the limit raises StackOverflowError."""
        state = State(MarshalConfig(max_stack=2))
        state.push_nil()
        state.push_nil()
        with pytest.raises(StackOverflowError) as exc:
            state.push_nil()
        assert exc.value.diagnostic.code == "E530"


# --- Type tags ---

class TestTypeTags:
    """Test type tags and names."""

    def test_tags(self):
        state = State()
        state.push_nil()
        state.push_boolean(False)
        state.push_lightuserdata(0x1000)
        state.push_number(1.5)
        state.push_string("s")
        state.new_table()
        state.push_function(len)
        state.push_userdata(object())
        state.push_thread()
        expected = [
            LuaType.NIL, LuaType.BOOLEAN, LuaType.LIGHTUSERDATA, LuaType.NUMBER,
            LuaType.STRING, LuaType.TABLE, LuaType.FUNCTION, LuaType.USERDATA,
            LuaType.THREAD,
        ]
        assert [state.type(i) for i in range(1, 10)] == expected

    def test_typenames(self):
        state = State()
        assert state.typename(LuaType.NONE) == "no value"
        assert state.typename(LuaType.LIGHTUSERDATA) == "userdata"
        assert state.typename(LuaType.USERDATA) == "userdata"
        assert state.typename(LuaType.TABLE) == "table"

    def test_tag_values(self):
        """Tags use the reference runtime's numbering."""
        assert LuaType.NONE == -1
        assert LuaType.NIL == 0
        assert LuaType.THREAD == 8


# --- Coercion ---

class TestCoercion:
    """Test numeric and string coercion rules."""

    def test_integer_wraps(self):
        """Integers wrap to 64 bits."""
        assert wrap_int64(2 ** 63) == -(2 ** 63)
        assert wrap_int64(-1) == -1
        state = State()
        state.push_integer(2 ** 64 + 5)
        assert state.to_integerx(-1) == (5, True)

    def test_float_to_integer(self):
        """Integral floats convert, fractional ones do not."""
        state = State()
        state.push_number(3.0)
        state.push_number(3.5)
        state.push_number(float("inf"))
        assert state.to_integerx(1) == (3, True)
        assert state.to_integerx(2)[1] is False
        assert state.to_integerx(3)[1] is False

    def test_string_to_number(self):
        """Numeric strings convert like the runtime's lexer."""
        assert string_to_number(b"10") == 10
        assert string_to_number(b"  -7\n") == -7
        assert string_to_number(b"0x10") == 16
        assert string_to_number(b"1e2") == 100.0
        assert string_to_number(b".5") == 0.5
        assert string_to_number(b"0x1p4") == 16.0
        assert string_to_number(b"abc") is None
        assert string_to_number(b"inf") is None
        assert string_to_number(b"") is None
        assert string_to_number(b"1 2") is None

    def test_string_integer_coercion(self):
        state = State()
        state.push_string("42")
        state.push_string("4.0")
        state.push_string("4.5")
        assert state.to_integerx(1) == (42, True)
        assert state.to_integerx(2) == (4, True)
        assert state.to_integerx(3)[1] is False
        assert state.to_numberx(3) == (4.5, True)

    def test_non_numbers_do_not_convert(self):
        state = State()
        state.push_boolean(True)
        state.push_nil()
        state.new_table()
        for i in (1, 2, 3):
            assert state.to_integerx(i)[1] is False
            assert state.to_numberx(i)[1] is False
            assert state.to_lstring(i) is None

    def test_number_to_string(self):
        assert number_to_string(42) == b"42"
        assert number_to_string(1.5) == b"1.5"
        assert number_to_string(2.0) == b"2.0"
        assert number_to_string(1e100) == b"1e+100"
        assert number_to_string(float("-inf")) == b"-inf"

    def test_to_lstring_does_not_rewrite_slot(self):
        """Number-to-string coercion leaves the slot a number."""
        state = State()
        state.push_integer(7)
        assert state.to_lstring(-1) == b"7"
        assert state.type(-1) == LuaType.NUMBER

    def test_truthiness(self):
        state = State()
        state.push_nil()
        state.push_boolean(False)
        state.push_integer(0)
        state.push_string("")
        assert [state.to_boolean(i) for i in (1, 2, 3, 4)] == [False, False, True, True]
        assert state.is_boolean(2)
        assert not state.is_boolean(3)


# --- Tables ---

class TestTables:
    """Test table storage and traversal."""

    def test_raw_set_and_get(self):
        state = State()
        state.new_table()
        state.push_string("k")
        state.push_integer(1)
        state.raw_set(-3)
        assert state.get_top() == 1
        state.push_string("k")
        assert state.raw_get(1) == LuaType.NUMBER
        assert state.to_integerx(-1) == (1, True)

    def test_boolean_and_integer_keys_distinct(self):
        """True and 1 are different keys."""
        table = Table()
        table.set(True, b"bool")
        table.set(1, b"int")
        assert table.get(True) == b"bool"
        assert table.get(1) == b"int"
        assert len(table) == 2

    def test_float_keys_normalized(self):
        table = Table()
        table.set(2.0, b"x")
        assert table.get(2) == b"x"

    def test_nil_and_nan_keys_rejected(self):
        table = Table()
        with pytest.raises(LuaError):
            table.set(None, 1)
        with pytest.raises(LuaError):
            table.set(math.nan, 1)
        assert table.get(None) is None

    def test_nil_value_removes(self):
        table = Table()
        table.set(1, b"a")
        table.set(1, None)
        assert len(table) == 0

    def test_next_visits_array_part_first(self):
        """Array part is traversed in order whatever the insertion order."""
        state = State()
        table = state.new_table()
        table.set(b"name", b"x")
        table.set(2, b"b")
        table.set(1, b"a")
        keys = []
        state.push_nil()
        while state.next(1):
            keys.append(state.to_pointer(-2))
            state.pop(1)
        assert keys == [1, 2, b"name"]
        assert state.get_top() == 1

    def test_next_large_table(self):
        """Each step of a traversal finds its key without rescanning."""
        table = Table()
        n = 50_000
        for i in range(1, n + 1):
            table.set(i, i)
        for i in range(n):
            table.set(f"k{i}".encode(), i)
        count = 0
        key = None
        while True:
            entry = table.next(key)
            if entry is None:
                break
            key = entry[0]
            count += 1
        assert count == 2 * n

    def test_next_after_insert(self):
        table = Table()
        table.set(1, b"a")
        assert table.next(1) is None
        table.set(b"x", b"b")
        assert table.next(1) == (b"x", b"b")
        with pytest.raises(KeyError):
            table.next(b"missing")

    def test_next_invalid_key(self):
        state = State()
        state.new_table()
        state.push_string("missing")
        with pytest.raises(LuaError) as exc:
            state.next(1)
        assert exc.value.diagnostic.code == "E520"

    def test_raw_len(self):
        state = State()
        table = state.new_table()
        table.set(1, b"a")
        table.set(2, b"b")
        table.set(4, b"d")
        state.push_string("abc")
        assert state.raw_len(1) == 2
        assert state.raw_len(2) == 3

    def test_raw_seti_and_geti(self):
        state = State()
        state.new_table()
        state.push_integer(9)
        state.raw_seti(1, 3)
        assert state.raw_geti(1, 3) == LuaType.NUMBER
        assert state.raw_geti(1, 4) == LuaType.NIL

    def test_table_op_on_non_table(self):
        state = State()
        state.push_integer(1)
        state.push_nil()
        with pytest.raises(LuaError):
            state.next(1)

    def test_lightuserdata_equality(self):
        assert LightUserData(16) == LightUserData(16)

    def test_dump(self):
        state = State()
        state.push_integer(1)
        state.push_string("a")
        lines = state.dump()
        assert len(lines) == 2
        assert "number" in lines[0]
        assert "string" in lines[1]
