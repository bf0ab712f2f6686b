"""
Token kinds for the Ripper token stream

Only literal boundaries and literal content matter to the rewriter; every
other scanner event is carried through as a plain kind string.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence, Tuple


class TK(Enum):
    """Literal token kinds - mirror Ripper's scanner event names"""

    # Openers
    TSTRING_BEG = "tstring_beg"
    HEREDOC_BEG = "heredoc_beg"
    REGEXP_BEG = "regexp_beg"
    SYMBEG = "symbeg"
    BACKTICK = "backtick"
    QWORDS_BEG = "qwords_beg"
    WORDS_BEG = "words_beg"
    QSYMBOLS_BEG = "qsymbols_beg"
    SYMBOLS_BEG = "symbols_beg"

    # Terminators
    TSTRING_END = "tstring_end"
    HEREDOC_END = "heredoc_end"
    REGEXP_END = "regexp_end"
    LABEL_END = "label_end"

    # Content
    TSTRING_CONTENT = "tstring_content"


OPENERS = frozenset({
    TK.TSTRING_BEG,
    TK.HEREDOC_BEG,
    TK.REGEXP_BEG,
    TK.SYMBEG,
    TK.BACKTICK,
    TK.QWORDS_BEG,
    TK.WORDS_BEG,
    TK.QSYMBOLS_BEG,
    TK.SYMBOLS_BEG,
})

TERMINATORS = frozenset({
    TK.TSTRING_END,
    TK.HEREDOC_END,
    TK.REGEXP_END,
    TK.LABEL_END,
})

_BY_NAME = {tk.value: tk for tk in TK}


@dataclass(frozen=True)
class Tok:
    """Scanner token with position info (column is a byte offset, as Ripper reports it)"""

    line: int
    column: int
    kind: str
    text: str

    @classmethod
    def from_lex(cls, entry: Sequence[Any]) -> Tok:
        """Build from one `Ripper.lex` entry: [[line, column], kind, text, ...]."""
        (line, column), kind, text = entry[0], entry[1], entry[2]
        return cls(int(line), int(column), str(kind), str(text))

    @property
    def position(self) -> Tuple[int, int]:
        return (self.line, self.column)

    @property
    def type(self) -> Optional[TK]:
        kind = self.kind[3:] if self.kind.startswith("on_") else self.kind
        return _BY_NAME.get(kind)

    def __repr__(self):
        return f"Tok({self.kind}, {self.text!r}, {self.line}:{self.column})"


def literal_tokens(tokens: Iterable[Tok]) -> List[Tok]:
    """Keep literal-boundary and literal-content tokens, in stream order."""
    return [tok for tok in tokens if tok.type is not None]
