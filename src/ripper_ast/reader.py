"""
Reader for Ruby `inspect` output

The concrete-tree producer runs inside Ruby; its results (`Ripper.sexp` and
`Ripper.lex`) come back as the `inspect` rendering of nested arrays, symbols,
strings, integers, nil, true and false. This module reads that text into
plain Python values: arrays become lists, symbols become `Symbol`.
"""

from __future__ import annotations

import logging
from typing import Any, List

from lark import Lark, Token, Transformer, UnexpectedInput, v_args

from .errors import ReaderError
from .literals import decode_escapes
from .token_types import Tok
from .tree import Symbol

logger = logging.getLogger(__name__)

# Terminals shared with the s-expression grammar in sexp.py
SYMBOL_PATTERN = (
    r'/:(?:[$@]{0,2}[A-Za-z_][A-Za-z0-9_]*[?!=]?'
    r'|\[\]=?|\*\*|<=>|===?|=~|!=|!~|<<|>>|<=|>=|[-+]@|[-+*\/%<>&|^~!])/'
)
STRING_PATTERN = r'/"(?:[^"\\]|\\.)*"/s'

RUBY_DATA_GRAMMAR = rf"""
?start: value

?value: array
      | symbol
      | STRING          -> string
      | FLOAT           -> float
      | INT             -> int
      | "nil"           -> nil
      | "true"          -> true
      | "false"         -> false

array: "[" [value ("," value)*] "]"

symbol: SYMBOL
      | ":" STRING      -> quoted_symbol

SYMBOL: {SYMBOL_PATTERN}
STRING: {STRING_PATTERN}
FLOAT.2: /-?\d+\.\d+(?:e[-+]?\d+)?/
INT: /-?\d+/

%import common.WS
%ignore WS
"""


class LiteralValues(Transformer):
    """Terminal and scalar callbacks shared by the Ruby data and s-expression readers."""

    def string(self, items: List[Token]) -> str:
        return unquote(items[0])

    def float(self, items: List[Token]) -> float:
        return float(items[0])

    def int(self, items: List[Token]) -> int:
        return int(items[0])

    def nil(self, _items: List[Token]) -> None:
        return None

    def true(self, _items: List[Token]) -> bool:
        return True

    def false(self, _items: List[Token]) -> bool:
        return False

    def symbol(self, items: List[Token]) -> Symbol:
        return Symbol(str(items[0])[1:])

    def quoted_symbol(self, items: List[Token]) -> Symbol:
        return Symbol(unquote(items[0]))


class RubyData(LiteralValues):
    @v_args(inline=True)
    def array(self, *items: Any) -> list:
        return list(items)


def unquote(token: str) -> str:
    return decode_escapes(str(token)[1:-1])


_parser = None

def _get_parser() -> Lark:
    global _parser
    if _parser is None:
        _parser = Lark(RUBY_DATA_GRAMMAR, parser="lalr", maybe_placeholders=False)
    return _parser


def read_value(text: str) -> Any:
    """Read one Ruby inspect value (e.g. the output of `p Ripper.sexp(src)`)."""
    try:
        tree = _get_parser().parse(text)
    except UnexpectedInput as exc:
        raise ReaderError(f"Unreadable Ruby data: {exc.__class__.__name__}",
                          (exc.line, exc.column)) from exc

    return RubyData().transform(tree)


def read_tokens(text: str) -> List[Tok]:
    """Read `Ripper.lex` output trimmed to [[line, column], kind, text] entries."""
    entries = read_value(text)
    if not isinstance(entries, list):
        raise ReaderError("Token stream must be an array of entries")

    tokens: List[Tok] = []
    for entry in entries:
        if not (isinstance(entry, list) and len(entry) >= 3 and isinstance(entry[0], list)):
            raise ReaderError(f"Malformed token entry {entry!r}")
        tokens.append(Tok.from_lex(entry))

    logger.debug("read %d tokens", len(tokens))
    return tokens
