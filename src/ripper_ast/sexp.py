"""
S-expression notation for canonical trees

`dumps` renders a node the way the parser gem inspects it; `loads` reads the
same notation back, so expected trees can be written as text:

    (masgn
      (mlhs (lvasgn :a) (lvasgn :b))
      (array (int 1) (int 2)))
"""

from __future__ import annotations

from fractions import Fraction
from typing import Any, List, Optional

from lark import Lark, Token, UnexpectedInput, v_args

from .errors import ReaderError
from .reader import STRING_PATTERN, SYMBOL_PATTERN, LiteralValues
from .tree import Node

SEXP_GRAMMAR = rf"""
?start: node

node: "(" TYPE item* ")"

?item: node
     | SYMBOL          -> symbol
     | ":" STRING      -> quoted_symbol
     | STRING          -> string
     | IMAGINARY       -> imaginary
     | RATIONAL        -> rational
     | FLOAT           -> float
     | INT             -> int
     | "nil"           -> nil
     | "true"          -> true
     | "false"         -> false

TYPE: /[A-Za-z_][A-Za-z0-9_]*\??/
SYMBOL: {SYMBOL_PATTERN}
STRING: {STRING_PATTERN}
IMAGINARY.4: /-?\d+(?:\.\d+)?i/
RATIONAL.3: /-?\d+(?:\/\d+)?r/
FLOAT.2: /-?\d+\.\d+(?:e[-+]?\d+)?/
INT: /-?\d+/

%import common.WS
%ignore WS
"""


class SexpNodes(LiteralValues):
    @v_args(inline=True)
    def node(self, type_: Token, *children: Any) -> Node:
        return Node(str(type_), children)

    def rational(self, items: List[Token]) -> Fraction:
        return Fraction(str(items[0])[:-1])

    def imaginary(self, items: List[Token]) -> complex:
        text = str(items[0])[:-1]
        return complex(0, float(text) if '.' in text else int(text))


_parser = None

def _get_parser() -> Lark:
    global _parser
    if _parser is None:
        _parser = Lark(SEXP_GRAMMAR, parser="lalr", maybe_placeholders=False)
    return _parser


def loads(text: str) -> Node:
    try:
        tree = _get_parser().parse(text)
    except UnexpectedInput as exc:
        raise ReaderError(f"Unreadable s-expression: {exc.__class__.__name__}",
                          (exc.line, exc.column)) from exc
    return SexpNodes().transform(tree)


def dumps(node: Optional[Node]) -> str:
    if node is None:
        return 'nil'
    return node.to_sexp()
