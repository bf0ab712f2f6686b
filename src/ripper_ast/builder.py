"""
Canonical node factory

The rewriter never constructs nodes directly; it asks a factory, which also
owns the feature flags that pick between alternative node shapes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Iterable, Mapping, Optional, Protocol

from .tree import Node, SourcePosition

ENV_PREFIX = "RIPPER_AST_"
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


class NodeFactory(Protocol):
    emit_index: bool
    emit_encoding: bool
    emit_procarg0: bool
    emit_lambda: bool
    emit_line_file_literals: bool

    def make_node(self, tag: str, children: Iterable[Any],
                  source_map: Optional[SourcePosition] = None) -> Node:
        ...


@dataclass(frozen=True)
class BuilderFlags:
    """Feature flags selecting between legacy and modern node shapes.

    emit_index: `index`/`indexasgn` nodes instead of `[]`/`[]=` sends.
    emit_encoding: `(__ENCODING__)` instead of `Encoding::UTF_8`.
    emit_procarg0: retag a lone block parameter as `procarg0`.
    emit_lambda: `(lambda)` instead of `(send nil :lambda)`.
    emit_line_file_literals: `__LINE__`/`__FILE__` as `int`/`str` literals
        instead of dedicated marker nodes.
    """

    emit_index: bool = False
    emit_encoding: bool = False
    emit_procarg0: bool = False
    emit_lambda: bool = False
    emit_line_file_literals: bool = True

    @classmethod
    def modern(cls) -> BuilderFlags:
        return cls(emit_index=True, emit_encoding=True, emit_procarg0=True, emit_lambda=True)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 base: Optional[BuilderFlags] = None) -> BuilderFlags:
        """Override `base` from RIPPER_AST_EMIT_INDEX-style variables."""
        env = os.environ if environ is None else environ
        flags = base if base is not None else cls()
        overrides = {}

        for field in fields(cls):
            raw = env.get(ENV_PREFIX + field.name.upper())
            if raw is None:
                continue

            value = raw.strip().lower()
            if value in _TRUTHY:
                overrides[field.name] = True
            elif value in _FALSY:
                overrides[field.name] = False
            else:
                raise ValueError(f"{ENV_PREFIX}{field.name.upper()} must be a boolean, got {raw!r}")

        return replace(flags, **overrides)


class Builder:
    """Default factory producing immutable `Node`s."""

    def __init__(self, flags: Optional[BuilderFlags] = None):
        self.flags = flags if flags is not None else BuilderFlags()

    @property
    def emit_index(self) -> bool:
        return self.flags.emit_index

    @property
    def emit_encoding(self) -> bool:
        return self.flags.emit_encoding

    @property
    def emit_procarg0(self) -> bool:
        return self.flags.emit_procarg0

    @property
    def emit_lambda(self) -> bool:
        return self.flags.emit_lambda

    @property
    def emit_line_file_literals(self) -> bool:
        return self.flags.emit_line_file_literals

    def make_node(self, tag: str, children: Iterable[Any],
                  source_map: Optional[SourcePosition] = None) -> Node:
        return Node(tag, children, source_map)

    def __repr__(self) -> str:
        return f"Builder({self.flags!r})"
