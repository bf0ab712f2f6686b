"""Canonical AST nodes and the processor base used to rewrite them.

Nodes follow the parser gem's shape: a type tag, an ordered tuple of children
(nodes, literal values or None) and an optional source location.
"""
from __future__ import annotations

import re
from fractions import Fraction
from typing import Any, Iterable, Iterator, List, NamedTuple, Optional, TypeGuard, Union
from typing_extensions import TypeAlias


class Symbol(str):
    """A Ruby symbol value; compares equal to the plain string it wraps."""
    __slots__ = ()

    def __repr__(self) -> str:
        return f'Symbol({str.__repr__(self)})'


class SourcePosition(NamedTuple):
    line: int
    column: int


class Node:
    """Immutable canonical AST node."""
    __slots__ = ('type', 'children', 'location')

    def __init__(self, type_: str, children: Iterable[Any] = (), location: Optional[SourcePosition] = None):
        object.__setattr__(self, 'type', type_)
        object.__setattr__(self, 'children', tuple(children))
        object.__setattr__(self, 'location', location)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"Node is immutable; use updated() instead of setting {name!r}")

    def updated(self, type_: Optional[str] = None, children: Optional[Iterable[Any]] = None,
                location: Optional[SourcePosition] = None) -> Node:
        """Return new node with updated type and/or children."""
        return Node(
            type_ if type_ is not None else self.type,
            children if children is not None else self.children,
            location if location is not None else self.location,
        )

    def __iter__(self) -> Iterator[Any]:
        return iter(self.children)

    def __len__(self) -> int:
        return len(self.children)

    def __repr__(self) -> str:
        return f'Node({self.type!r}, {list(self.children)!r})'

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Node):
            return False
        return self.type == other.type and self.children == other.children

    def __hash__(self) -> int:
        return hash((self.type, self.children))

    def to_sexp(self, indent: int = 0) -> str:
        """Render in the parser gem's inspect notation: (send nil :foo (int 1))."""
        pad = '  ' * indent
        parts = [f'{pad}({self.type}']
        for child in self.children:
            if isinstance(child, Node):
                parts.append('\n' + child.to_sexp(indent + 1))
            else:
                parts.append(' ' + format_value(child))
        parts.append(')')
        return ''.join(parts)

    pretty = to_sexp


Child: TypeAlias = Union[Node, Symbol, str, int, float, Fraction, complex, None]

_PLAIN_SYMBOL = re.compile(
    r'\A(?:[$@]{0,2}[A-Za-z_][A-Za-z0-9_]*[?!=]?'
    r'|\[\]=?|\*\*|<=>|===?|=~|!=|!~|<<|>>|<=|>=|[-+]@|[-+*/%<>&|^~!])\Z'
)


def _quote(text: str) -> str:
    out: List[str] = ['"']
    for ch in text:
        if ch in '"\\':
            out.append('\\' + ch)
        elif ch == '\n':
            out.append('\\n')
        elif ch == '\t':
            out.append('\\t')
        elif ch == '\r':
            out.append('\\r')
        elif ch == '\x1b':
            out.append('\\e')
        elif ord(ch) < 0x20 or ord(ch) == 0x7f:
            out.append(f'\\x{ord(ch):02X}')
        else:
            out.append(ch)
    out.append('"')
    return ''.join(out)


def format_value(value: Any) -> str:
    if value is None:
        return 'nil'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, Symbol):
        return ':' + value if _PLAIN_SYMBOL.match(value) else ':' + _quote(value)
    if isinstance(value, str):
        return _quote(value)
    if isinstance(value, Fraction):
        if value.denominator == 1:
            return f'{value.numerator}r'
        return f'{value.numerator}/{value.denominator}r'
    if isinstance(value, complex):
        imag = value.imag
        return f'{int(imag)}i' if imag == int(imag) else f'{imag!r}i'
    return repr(value)


class Processor:
    """Base class for canonical-tree rewrites.

    `process` looks up an `on_<type>` handler and falls back to rebuilding the
    node from its processed children. Handlers may return None to drop a node
    from its parent's slot, which keeps the slot itself as an absent child.
    """

    def process(self, node: Optional[Node]) -> Optional[Node]:
        if node is None:
            return None
        if not isinstance(node, Node):
            raise TypeError(f"Not an AST node: {node!r}")

        handler = getattr(self, handler_name(node.type), None)
        if handler is None:
            return self.process_regular_node(node)
        return handler(node)

    def process_all(self, nodes: Iterable[Optional[Node]]) -> List[Optional[Node]]:
        return [self.process(node) for node in nodes]

    def process_regular_node(self, node: Node) -> Node:
        changed = False
        children: List[Any] = []

        for child in node.children:
            if isinstance(child, Node):
                result = self.process(child)
                changed = changed or result is not child
                children.append(result)
            else:
                children.append(child)

        return node.updated(children=children) if changed else node


def handler_name(node_type: str) -> str:
    return 'on_' + node_type.replace('?', '_p')


def is_node(value: Any) -> TypeGuard[Node]:
    return isinstance(value, Node)

def node_type(value: Any) -> Optional[str]:
    return value.type if is_node(value) else None

def find_nodes(node: Any, types: Iterable[str]) -> List[Node]:
    """Collect every node (depth-first, pre-order) whose type is in `types`."""
    lookup = set(types)
    found: List[Node] = []

    def walk(current: Any) -> None:
        if not is_node(current):
            return
        if current.type in lookup:
            found.append(current)
        for child in current.children:
            walk(child)

    walk(node)
    return found
