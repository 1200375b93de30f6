"""How many runtime values a native type occupies when it crosses the boundary."""

import typing
from typing import Any

from .errors import error_unsupported_type


def values_count(native: Any) -> int:
    """
    Number of stack slots / return values for ``native``.

    - ``None`` (a function returning nothing) and ``Tuple[()]``: 0
    - ``Tuple[A, B, ...]`` with N fixed elements: N
    - anything else, including ``Tuple[T, ...]``: 1
    """
    if native is None or native is type(None):
        return 0
    if native is typing.Tuple:
        raise error_unsupported_type("typing.Tuple")
    if typing.get_origin(native) is tuple:
        args = typing.get_args(native)
        if len(args) == 2 and args[1] is Ellipsis:
            return 1
        if args == ((),):  # Tuple[()] on older interpreters
            return 0
        return len(args)
    return 1


class Values:
    """Arity in descriptor form: ``Values[Tuple[int, str]].count == 2``."""

    def __init__(self, count: int):
        self.count = count

    def __class_getitem__(cls, native: Any) -> "Values":
        return cls(values_count(native))

    def __repr__(self) -> str:
        return f"Values(count={self.count})"
