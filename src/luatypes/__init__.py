"""
luatypes - marshal native Python values to and from a Lua-style value stack.

This package provides:
- State: an in-process stack runtime with Lua 5.3 coercion rules
- Stack accessors and StackAutoReset, the scoped stack guard
- values_count: how many stack slots a native type occupies
- Type descriptors: push/to pairs for scalars, strings and containers

Usage:
    from typing import Dict, List
    from luatypes import State, push, to

    state = State()
    push(state, List[int], [1, 2, 3])
    ok, numbers = to(state, -1, List[int])
    ok, flag = to(state, -1, bool)      # (False, None): tables are not booleans
"""

try:
    from importlib.metadata import PackageNotFoundError, version
except ModuleNotFoundError:  # pragma: no cover
    from importlib_metadata import PackageNotFoundError, version

try:
    __version__ = version("luatypes")
except PackageNotFoundError:  # pragma: no cover - handled when package not installed
    __version__ = "unknown"

from .config import (
    MarshalConfig,
    load_config,
    get_default_config,
)

from .errors import (
    Diagnostic,
    ErrorSeverity,
    LuaTypesError,
    UnsupportedTypeError,
    PushOnlyTypeError,
    MultiValueTypeError,
    PushValueError,
    ConversionError,
    LuaError,
    StackOverflowError,
)

from .state import (
    LuaType,
    State,
    Table,
    LightUserData,
    Function,
    UserData,
    Thread,
)

from .stack import (
    get_type,
    get_type_name,
    StackAutoReset,
    stack_auto_reset,
)

from .values import (
    Values,
    values_count,
)

from .types import (
    Nil,
    NIL,
    Type,
    TypeRegistry,
    get_registry,
    type_for,
    type_name,
    push,
    to,
    to_or,
    check,
    raw_set,
)

__all__ = [
    # Config
    'MarshalConfig',
    'load_config',
    'get_default_config',

    # Errors
    'Diagnostic',
    'ErrorSeverity',
    'LuaTypesError',
    'UnsupportedTypeError',
    'PushOnlyTypeError',
    'MultiValueTypeError',
    'PushValueError',
    'ConversionError',
    'LuaError',
    'StackOverflowError',

    # Runtime
    'LuaType',
    'State',
    'Table',
    'LightUserData',
    'Function',
    'UserData',
    'Thread',

    # Stack
    'get_type',
    'get_type_name',
    'StackAutoReset',
    'stack_auto_reset',

    # Arity
    'Values',
    'values_count',

    # Conversions
    'Nil',
    'NIL',
    'Type',
    'TypeRegistry',
    'get_registry',
    'type_for',
    'type_name',
    'push',
    'to',
    'to_or',
    'check',
    'raw_set',
]
