"""Ripper concrete trees rewritten into parser-gem canonical ASTs."""

from .builder import Builder, BuilderFlags, NodeFactory
from .errors import (
    EscapeDecodeError,
    InvalidAssignmentTarget,
    ProducerError,
    ReaderError,
    RewriteError,
    UnsupportedConstruct,
)
from .literals import LiteralTable
from .minimizer import Minimizer
from .rewriter import Rewriter
from .runner import Producer, RubyRipperProducer, parse, rewrite
from .tree import Node, SourcePosition, Symbol

__all__ = [
    "Builder",
    "BuilderFlags",
    "NodeFactory",
    "EscapeDecodeError",
    "InvalidAssignmentTarget",
    "ProducerError",
    "ReaderError",
    "RewriteError",
    "UnsupportedConstruct",
    "LiteralTable",
    "Minimizer",
    "Rewriter",
    "Producer",
    "RubyRipperProducer",
    "parse",
    "rewrite",
    "Node",
    "SourcePosition",
    "Symbol",
]
