from __future__ import annotations

import logging
import os
import shutil
import subprocess
from typing import Any, Iterable, List, Optional, Protocol, Tuple

from .builder import Builder, BuilderFlags, NodeFactory
from .errors import ProducerError, ReaderError
from .literals import LiteralTable
from .reader import read_tokens, read_value
from .rewriter import Rewriter
from .token_types import Tok
from .tree import Node

logger = logging.getLogger(__name__)

RUBY_ENV = "RIPPER_AST_RUBY"
DEFAULT_TIMEOUT = 30.0

# Prints the concrete tree, then the token stream trimmed to [pos, kind, text].
RIPPER_SCRIPT = (
    'require "ripper"; '
    'src = STDIN.read; '
    'p Ripper.sexp(src); '
    'p Ripper.lex(src).map { |pos, kind, tok, *| [pos, kind, tok] }'
)


class Producer(Protocol):
    def produce(self, source: str) -> Tuple[Any, List[Tok]]:
        ...


class RubyRipperProducer:
    """Concrete trees from an installed Ruby's Ripper."""

    def __init__(self, ruby: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        self.ruby = ruby or os.environ.get(RUBY_ENV) or "ruby"
        self.timeout = timeout

    def executable(self) -> str:
        path = shutil.which(self.ruby)
        if path is None:
            raise ProducerError(f"Ruby executable not found: {self.ruby}")
        return path

    def produce(self, source: str) -> Tuple[Any, List[Tok]]:
        cmd = [self.executable(), "-e", RIPPER_SCRIPT]
        logger.debug("running %s", cmd[0])

        try:
            proc = subprocess.run(
                cmd,
                input=source,
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProducerError(f"Ripper timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise ProducerError(f"Could not run {cmd[0]}: {exc}") from exc

        if proc.returncode != 0:
            raise ProducerError(f"Ripper failed ({proc.returncode}): {proc.stderr.strip()}")

        lines = proc.stdout.splitlines()
        if len(lines) != 2:
            raise ProducerError(f"Unexpected Ripper output ({len(lines)} lines)")

        try:
            concrete = read_value(lines[0])
            tokens = read_tokens(lines[1])
        except ReaderError as exc:
            raise ProducerError(f"Unreadable Ripper output: {exc}") from exc

        if concrete is None:
            # Ripper.sexp returns nil on a syntax error
            raise ProducerError("Ripper rejected the source (syntax error)")

        return concrete, tokens


def rewrite(concrete: Any, tokens: Optional[Iterable[Tok]] = None,
            builder: Optional[NodeFactory] = None, file: str = "(string)") -> Optional[Node]:
    """Rewrite one concrete tree; returns None for an empty program."""
    if builder is None:
        builder = Builder(BuilderFlags.from_env())

    literals = LiteralTable.from_tokens(tokens) if tokens is not None else LiteralTable.empty()
    return Rewriter(builder, file=file, literals=literals).rewrite(concrete)


def parse(source: str, producer: Optional[Producer] = None,
          builder: Optional[NodeFactory] = None, file: str = "(string)") -> Optional[Node]:
    if producer is None:
        producer = RubyRipperProducer()

    concrete, tokens = producer.produce(source)
    return rewrite(concrete, tokens, builder=builder, file=file)
