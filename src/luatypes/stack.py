"""
Stack accessors and the scoped stack guard.

Usage:
    with StackAutoReset(state):
        state.push_nil()
        while state.next(index):
            ...
    # stack height is back to what it was before the block
"""

from contextlib import contextmanager
from typing import Iterator

from .state import LuaType, State


def get_type(state: State, index: int) -> LuaType:
    """Type tag at ``index``; ``LuaType.NONE`` for an invalid index."""
    return state.type(index)


def get_type_name(state: State, index: int) -> str:
    """Diagnostic name for the type at ``index``."""
    return state.typename(state.type(index))


class StackAutoReset:
    """
    Restores the stack height recorded at construction.

    The reset happens on every exit from a ``with`` block, including early
    returns and exceptions. Nested guards unwind innermost first. Exceptions
    are never suppressed.
    """

    def __init__(self, state: State):
        self.state = state
        self.top = state.get_top()

    def restore(self) -> None:
        self.state.set_top(self.top)

    def __enter__(self) -> "StackAutoReset":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.restore()
        return False


@contextmanager
def stack_auto_reset(state: State) -> Iterator[int]:
    """Generator form of ``StackAutoReset``; yields the recorded height."""
    top = state.get_top()
    try:
        yield top
    finally:
        state.set_top(top)
