"""
Escape and literal handling

Ripper reports literal content exactly as written in the source. Whether the
backslash sequences inside a fragment are live depends on the literal that
encloses it ("..." vs '...', <<~EOS vs <<~'EOS', %W vs %w, ...). That is only
visible in the token stream, so a per-call `LiteralTable` is built from the
literal-boundary tokens and consulted by position while rewriting.

Features:
- Ruby double-quote escape decoding (octal, hex, unicode, control/meta)
- Interpolation-context stack driven by opener/terminator tokens
- Heredoc bodies resolved in opening order
- Fragment composition for the string-like node families
"""

from __future__ import annotations

import logging
import re
from bisect import bisect_right
from collections import deque
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from .errors import EscapeDecodeError, Position
from .token_types import OPENERS, TERMINATORS, TK, Tok, literal_tokens
from .tree import Node, SourcePosition, Symbol

logger = logging.getLogger(__name__)

MakeNode = Callable[..., Node]

# ============================================================================
# Escape Decoding
# ============================================================================

class EscapeDecoder:
    """Decodes Ruby double-quote escapes in one content fragment."""

    SIMPLE = {
        'n': '\n',
        't': '\t',
        's': ' ',
        'r': '\r',
        'a': '\a',
        'b': '\b',
        'e': '\x1b',
        'f': '\f',
        'v': '\v',
    }

    OCTAL = '01234567'
    HEX = '0123456789abcdefABCDEF'

    def __init__(self, text: str, position: Optional[Position] = None):
        self.text = text
        self.pos = 0
        self.position = position

    def peek(self, offset: int = 0) -> str:
        idx = self.pos + offset
        return self.text[idx] if idx < len(self.text) else ''

    def advance(self) -> str:
        ch = self.text[self.pos]
        self.pos += 1
        return ch

    def error(self, message: str) -> EscapeDecodeError:
        return EscapeDecodeError(message, self.position)

    def decode(self) -> str:
        out: List[str] = []

        while self.pos < len(self.text):
            ch = self.advance()
            if ch == '\\':
                out.append(self.scan_escape())
            else:
                out.append(ch)

        return ''.join(out)

    def scan_escape(self) -> str:
        """Scan the sequence after a backslash and return its value"""
        if self.pos >= len(self.text):
            raise self.error("Dangling backslash at end of literal")

        ch = self.advance()

        if ch in self.SIMPLE:
            return self.SIMPLE[ch]

        if ch == '\n':
            return ''  # line continuation

        if ch in self.OCTAL:
            digits = ch
            while len(digits) < 3 and self.peek() and self.peek() in self.OCTAL:
                digits += self.advance()
            return chr(int(digits, 8))

        if ch == 'x':
            digits = ''
            while len(digits) < 2 and self.peek() and self.peek() in self.HEX:
                digits += self.advance()
            if not digits:
                raise self.error("Invalid hex escape")
            return chr(int(digits, 16))

        if ch == 'u':
            return self.scan_unicode()

        if ch == 'c':
            return chr(self.control(self.scan_target()))

        if ch == 'C':
            self.expect_dash('C')
            return chr(self.control(self.scan_target()))

        if ch == 'M':
            self.expect_dash('M')
            return chr(self.scan_target() | 0x80)

        return ch

    def scan_unicode(self) -> str:
        if self.peek() == '{':
            self.advance()
            chars: List[str] = []

            while True:
                while self.peek() in (' ', '\t'):
                    self.advance()

                if self.peek() == '}':
                    self.advance()
                    break

                digits = ''
                while self.peek() and self.peek() in self.HEX:
                    digits += self.advance()

                if not digits or len(digits) > 6:
                    raise self.error("Invalid Unicode escape")
                chars.append(self.codepoint(int(digits, 16)))

            if not chars:
                raise self.error("Invalid Unicode escape")
            return ''.join(chars)

        digits = ''
        while len(digits) < 4 and self.peek() and self.peek() in self.HEX:
            digits += self.advance()

        if len(digits) != 4:
            raise self.error("Invalid Unicode escape")
        return self.codepoint(int(digits, 16))

    def codepoint(self, value: int) -> str:
        if value > 0x10FFFF or 0xD800 <= value <= 0xDFFF:
            raise self.error(f"Invalid Unicode codepoint {value:#x}")
        return chr(value)

    def expect_dash(self, letter: str) -> None:
        if self.peek() != '-':
            raise self.error(f"Invalid escape \\{letter}, expected '-'")
        self.advance()

    def scan_target(self) -> int:
        """Character a control/meta escape applies to (may itself be escaped)"""
        if self.pos >= len(self.text):
            raise self.error("Incomplete control or meta escape")

        ch = self.advance()
        if ch != '\\':
            return ord(ch)

        value = self.scan_escape()
        if len(value) != 1:
            raise self.error("Invalid control or meta escape")
        return ord(value)

    @staticmethod
    def control(value: int) -> int:
        return 0x7f if value == ord('?') else value & 0x9f


def decode_escapes(text: str, position: Optional[Position] = None) -> str:
    return EscapeDecoder(text, position).decode()


_RAW_ESCAPE = re.compile(r"\\([\\'])")

def decode_raw(text: str) -> str:
    """Single-quote semantics: only \\\\ and \\' are sequences."""
    return _RAW_ESCAPE.sub(r"\1", text)

# ============================================================================
# Interpolation Context
# ============================================================================

class LiteralContext(NamedTuple):
    interpolate: bool
    opener: TK


class InterpolationContextStack:
    """Stack of escape-liveness flags, one per open literal."""

    def __init__(self):
        self._flags: List[bool] = []
        self._openers: List[TK] = []

    def push(self, interpolate: bool, opener: TK) -> None:
        self._flags.append(interpolate)
        self._openers.append(opener)

    def pop(self, tok: Tok) -> bool:
        if not self._flags:
            raise EscapeDecodeError(f"Unbalanced literal terminator {tok.text!r}", tok.position)
        self._openers.pop()
        return self._flags.pop()

    def top(self) -> LiteralContext:
        return LiteralContext(self._flags[-1], self._openers[-1])

    def __len__(self) -> int:
        return len(self._flags)

    def __bool__(self) -> bool:
        return bool(self._flags)


class _PendingHeredoc(NamedTuple):
    interpolate: bool
    line: int
    depth: int


def _opens_literal(tok: Tok) -> bool:
    # `:foo` is lexed as symbeg ':' followed by an identifier; nothing to close
    return not (tok.type is TK.SYMBEG and tok.text == ':')


def opener_interpolates(tok: Tok) -> bool:
    kind = tok.type
    text = tok.text

    match kind:
        case TK.TSTRING_BEG:
            if text == '"':
                return True
            if text.startswith('%'):
                return text[1:2] == 'Q' or not text[1:2].isalpha()
            return False
        case TK.HEREDOC_BEG:
            ident = text[2:].lstrip('-~')
            return not ident.startswith("'")
        case TK.SYMBEG:
            return text == ':"'
        case TK.BACKTICK | TK.WORDS_BEG | TK.SYMBOLS_BEG:
            return True
        case TK.REGEXP_BEG | TK.QWORDS_BEG | TK.QSYMBOLS_BEG:
            return False

    raise EscapeDecodeError(f"Not a literal opener: {tok.kind}", tok.position)


class LiteralTable:
    """Per-call lookup: content token position -> enclosing literal context."""

    def __init__(self, contexts: Optional[Dict[Tuple[int, int], LiteralContext]] = None):
        self._contexts = dict(contexts or {})
        self._columns: Dict[int, List[int]] = {}
        for line, column in sorted(self._contexts):
            self._columns.setdefault(line, []).append(column)

    @classmethod
    def empty(cls) -> LiteralTable:
        return cls()

    @classmethod
    def from_tokens(cls, tokens: Iterable[Tok]) -> LiteralTable:
        stack = InterpolationContextStack()
        pending: deque[_PendingHeredoc] = deque()
        contexts: Dict[Tuple[int, int], LiteralContext] = {}

        for tok in literal_tokens(tokens):
            # A heredoc body starts on the line after its opener, once the
            # literals that were open around the opener have closed again.
            if pending and tok.line > pending[0].line and len(stack) == pending[0].depth:
                heredoc = pending.popleft()
                stack.push(heredoc.interpolate, TK.HEREDOC_BEG)

            kind = tok.type

            if kind is TK.HEREDOC_BEG:
                pending.append(_PendingHeredoc(opener_interpolates(tok), tok.line, len(stack)))
            elif kind in OPENERS:
                if _opens_literal(tok):
                    stack.push(opener_interpolates(tok), kind)
            elif kind in TERMINATORS:
                stack.pop(tok)
            elif kind is TK.TSTRING_CONTENT:
                if not stack:
                    raise EscapeDecodeError("Literal content outside of any literal", tok.position)
                contexts[tok.position] = stack.top()

        if stack or pending:
            raise EscapeDecodeError(f"Unterminated literal in token stream ({len(stack) + len(pending)} open)")

        logger.debug("literal table built with %d content fragments", len(contexts))
        return cls(contexts)

    def lookup(self, position: Optional[Sequence[int]]) -> Optional[LiteralContext]:
        if position is None:
            return None

        line, column = position[0], position[1]
        context = self._contexts.get((line, column))
        if context is not None:
            return context

        # `<<~` dedent shifts fragment columns in the concrete tree but not in the token stream
        columns = self._columns.get(line)
        if not columns:
            return None
        index = max(bisect_right(columns, column) - 1, 0)
        return self._contexts[(line, columns[index])]

    def decode(self, text: str, position: Optional[Sequence[int]]) -> str:
        """Resolve escapes in a content fragment; unknown positions stay raw."""
        context = self.lookup(position)
        if context is None or context.opener is TK.REGEXP_BEG:
            return text
        if context.interpolate:
            return decode_escapes(text, (position[0], position[1]))
        return decode_raw(text)

    def is_symbol_list(self, position: Optional[Sequence[int]]) -> bool:
        context = self.lookup(position)
        return context is not None and context.opener in (TK.QSYMBOLS_BEG, TK.SYMBOLS_BEG)

    def __len__(self) -> int:
        return len(self._contexts)

# ============================================================================
# Fragment Composition
# ============================================================================

def is_plain(fragment: Optional[Node]) -> bool:
    return fragment is not None and fragment.type == 'str'


def merge_plain(make: MakeNode, fragments: Sequence[Node]) -> List[Node]:
    """Join runs of adjacent `str` fragments into one."""
    merged: List[Node] = []

    for fragment in fragments:
        if merged and is_plain(fragment) and is_plain(merged[-1]):
            last = merged.pop()
            merged.append(make('str', [last.children[0] + fragment.children[0]], last.location))
        else:
            merged.append(fragment)

    return merged


def _location(fragments: Sequence[Node]) -> Optional[SourcePosition]:
    return fragments[0].location if fragments else None


def compose_string(make: MakeNode, fragments: Sequence[Node]) -> Node:
    if not fragments:
        return make('str', [''], None)
    if all(is_plain(f) for f in fragments):
        return make('str', [''.join(f.children[0] for f in fragments)], _location(fragments))
    return make('dstr', list(fragments), _location(fragments))


def compose_xstring(make: MakeNode, fragments: Sequence[Node]) -> Node:
    return make('xstr', merge_plain(make, fragments), _location(fragments))


def compose_symbol(make: MakeNode, fragments: Sequence[Node]) -> Node:
    if not fragments:
        return make('sym', [Symbol('')], None)
    if all(is_plain(f) for f in fragments):
        return make('sym', [Symbol(''.join(f.children[0] for f in fragments))], _location(fragments))
    return make('dsym', list(fragments), _location(fragments))
