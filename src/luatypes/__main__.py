#!/usr/bin/env python3
"""
CLI for inspecting luatypes conversions.

Usage:
    python -m luatypes describe TYPE [TYPE ...]
    python -m luatypes roundtrip TYPE JSON

Examples:
    # Show descriptor name, arity and supported directions
    python -m luatypes describe int "List[float]" "Dict[str, List[int]]" "Tuple[int, str]"

    # Push a value, dump the stack, and read it back
    python -m luatypes roundtrip "Dict[str, List[int]]" '{"a": [1, 2], "b": []}'
"""

import argparse
import ctypes
import json
import logging
import re
import sys
import types
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Tuple

import numpy as np

from .config import MarshalConfig, load_config
from .errors import LuaTypesError
from .state import State
from .types import Nil, type_for
from .values import values_count

TYPE_NAMESPACE: Dict[str, Any] = {
    "int": int,
    "float": float,
    "bool": bool,
    "str": str,
    "bytes": bytes,
    "bytearray": bytearray,
    "list": list,
    "dict": dict,
    "tuple": tuple,
    "None": None,
    "Nil": Nil,
    "List": List,
    "Dict": Dict,
    "Tuple": Tuple,
    "Sequence": Sequence,
    "Mapping": Mapping,
    "Literal": Literal,
    "c_void_p": ctypes.c_void_p,
    "np": np,
    "numpy": np,
}


_TOKEN = re.compile(r"\s*(\.\.\.|[A-Za-z_][A-Za-z_0-9]*|'[^']*'|\"[^\"]*\"|\S)")


def _tokenize(expr: str) -> List[str]:
    tokens = []
    pos = 0
    expr = expr.rstrip()
    while pos < len(expr):
        match = _TOKEN.match(expr, pos)
        if match is None:
            raise ValueError(f"Invalid type expression: {expr}")
        tokens.append(match.group(1))
        pos = match.end()
    return tokens


class _TypeParser:
    """Recursive descent over names, subscripts, string literals and ``...``."""

    def __init__(self, expr: str):
        self.expr = expr
        self.tokens = _tokenize(expr)
        self.pos = 0

    def error(self, detail: str) -> ValueError:
        return ValueError(f"Invalid type expression: {self.expr} ({detail})")

    def peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self, expected: Optional[str] = None) -> str:
        token = self.peek()
        if token is None:
            raise self.error("unexpected end")
        if expected is not None and token != expected:
            raise self.error(f"expected '{expected}', got '{token}'")
        self.pos += 1
        return token

    def parse(self) -> Any:
        result = self.expression()
        if self.peek() is not None:
            raise self.error(f"unexpected '{self.peek()}'")
        if isinstance(result, types.ModuleType):
            raise self.error("module is not a type")
        return result

    def expression(self) -> Any:
        result = self.atom()
        while self.peek() == "[":
            self.take("[")
            args = [self.expression()]
            while self.peek() == ",":
                self.take(",")
                if self.peek() == "]":
                    break
                args.append(self.expression())
            self.take("]")
            try:
                result = result[args[0] if len(args) == 1 else tuple(args)]
            except TypeError as e:
                raise self.error(str(e)) from e
        return result

    def atom(self) -> Any:
        token = self.take()
        if token == "...":
            return Ellipsis
        if token == "(":
            self.take(")")
            return ()
        if len(token) >= 2 and token[0] in "'\"" and token[-1] == token[0]:
            return token[1:-1]
        if not (token[0].isalpha() or token[0] == "_"):
            raise self.error(f"unexpected '{token}'")
        if token not in TYPE_NAMESPACE:
            raise self.error(f"unknown name '{token}'")
        result = TYPE_NAMESPACE[token]
        while self.peek() == ".":
            self.take(".")
            attr = self.take()
            if result is not np or attr.startswith("_"):
                raise self.error(f"attribute access '.{attr}' not allowed")
            result = getattr(np, attr, None)
            if not isinstance(result, type):
                raise self.error(f"'np.{attr}' is not a type")
        return result


def parse_type(expr: str) -> Any:
    """Parse a type expression like ``Dict[str, List[int]]`` or ``np.uint32``."""
    return _TypeParser(expr).parse()


def _setup(args) -> MarshalConfig:
    config = load_config(args.config) if args.config else MarshalConfig()
    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    return config


def cmd_describe(args) -> int:
    """Print name, arity and directions for each type expression."""
    status = 0
    for expr in args.types:
        try:
            native = parse_type(expr)
            count = values_count(native)
            if native is None:
                print(f"{expr}: no value (arity 0)")
                continue
            descriptor = type_for(native)
        except (ValueError, LuaTypesError) as e:
            print(f"Error: {e}", file=sys.stderr)
            status = 1
            continue
        directions = [d for d, ok in (("push", descriptor.can_push),
                                      ("to", descriptor.can_read)) if ok]
        print(f"{expr}: name={descriptor.name} signature={descriptor.signature} "
              f"arity={count} directions={','.join(directions) or 'none'}")
    return status


def _from_json(native: Any, data: Any) -> Any:
    """Turn JSON data into the native value the descriptor expects."""
    if native is Nil:
        return Nil()
    if native is ctypes.c_void_p:
        return ctypes.c_void_p(data)
    if native in (bytes, bytearray):
        return native(data, "utf-8")
    return data


def cmd_roundtrip(args, config: MarshalConfig) -> int:
    """Push a JSON value as TYPE, dump the stack and read it back."""
    try:
        native = parse_type(args.type)
        descriptor = type_for(native)
        value = _from_json(native, json.loads(args.value))
    except (TypeError, ValueError, LuaTypesError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    state = State(config)
    try:
        descriptor.push(state, value)
    except (TypeError, ValueError, LuaTypesError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("Stack:")
    for line in state.dump():
        print(f"  {line}")

    if not descriptor.can_read:
        print(f"{descriptor.signature} is push-only")
        return 0

    ok, result = descriptor.to(state, -1)
    if not ok:
        print(f"Read back failed: {descriptor.signature} at index -1", file=sys.stderr)
        return 1
    print(f"Read back: {result!r}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog='python -m luatypes',
        description='Inspect native <-> stack conversions',
    )
    parser.add_argument('-c', '--config', metavar='FILE',
                        help='YAML or JSON config file')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log conversion failures')

    subparsers = parser.add_subparsers(dest='action', required=True)

    describe_parser = subparsers.add_parser('describe', help='Describe type expressions')
    describe_parser.add_argument('types', nargs='+', help='Type expression, e.g. "List[int]"')

    roundtrip_parser = subparsers.add_parser('roundtrip', help='Push a value and read it back')
    roundtrip_parser.add_argument('type', help='Type expression')
    roundtrip_parser.add_argument('value', help='Value as JSON')

    args = parser.parse_args(argv)

    try:
        config = _setup(args)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.action == 'describe':
        return cmd_describe(args)
    elif args.action == 'roundtrip':
        return cmd_roundtrip(args, config)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
