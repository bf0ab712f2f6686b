from __future__ import annotations

from typing import Optional, Tuple

Position = Tuple[int, int]


class RewriteError(Exception):
    """Rewrite error with position info"""
    def __init__(self, message: str, position: Optional[Position] = None):
        self.message = message
        self.position = position
        super().__init__(
            f"{message} at line {position[0]}, col {position[1]}" if position else message
        )


class UnsupportedConstruct(RewriteError):
    """No rewrite rule accepts the concrete node (tag or field shape)."""


class InvalidAssignmentTarget(RewriteError):
    pass


class EscapeDecodeError(RewriteError):
    """Malformed backslash sequence, or literal boundaries that never balance."""


class ReaderError(RewriteError):
    pass


class ProducerError(RewriteError):
    """The external concrete-tree producer is missing or failed."""
