from __future__ import annotations

from fractions import Fraction

import pytest

from tests.support.harness import LEGACY, MODERN, Builder, BuilderFlags, Node, Symbol, loads
from ripper_ast.tree import SourcePosition, find_nodes, format_value


def test_default_flags_are_legacy_shapes() -> None:
    flags = BuilderFlags()

    assert not flags.emit_index
    assert not flags.emit_encoding
    assert not flags.emit_procarg0
    assert not flags.emit_lambda
    assert flags.emit_line_file_literals


def test_modern_flags() -> None:
    assert MODERN == BuilderFlags(emit_index=True, emit_encoding=True, emit_procarg0=True, emit_lambda=True)


@pytest.mark.parametrize("raw", ["1", "true", "YES", " on "])
def test_from_env_truthy(raw: str) -> None:
    flags = BuilderFlags.from_env({"RIPPER_AST_EMIT_INDEX": raw})

    assert flags.emit_index
    assert flags == BuilderFlags(emit_index=True)


@pytest.mark.parametrize("raw", ["0", "false", "No", "off", ""])
def test_from_env_falsy(raw: str) -> None:
    flags = BuilderFlags.from_env({"RIPPER_AST_EMIT_LINE_FILE_LITERALS": raw})

    assert not flags.emit_line_file_literals


def test_from_env_overrides_base() -> None:
    flags = BuilderFlags.from_env({"RIPPER_AST_EMIT_LAMBDA": "0"}, base=MODERN)

    assert flags == BuilderFlags(emit_index=True, emit_encoding=True, emit_procarg0=True)


def test_from_env_ignores_unrelated_variables() -> None:
    assert BuilderFlags.from_env({"RIPPER_AST_RUBY": "ruby", "HOME": "/"}) == LEGACY


def test_from_env_rejects_non_boolean() -> None:
    with pytest.raises(ValueError, match="RIPPER_AST_EMIT_PROCARG0"):
        BuilderFlags.from_env({"RIPPER_AST_EMIT_PROCARG0": "maybe"})


def test_from_env_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RIPPER_AST_EMIT_ENCODING", "true")

    assert BuilderFlags.from_env().emit_encoding


def test_builder_exposes_flags() -> None:
    builder = Builder(MODERN)

    assert builder.emit_index and builder.emit_encoding
    assert builder.emit_procarg0 and builder.emit_lambda
    assert builder.emit_line_file_literals
    assert Builder().flags == LEGACY
    assert repr(builder).startswith("Builder(BuilderFlags(")


def test_builder_makes_located_nodes() -> None:
    node = Builder().make_node("int", [1], SourcePosition(2, 4))

    assert node == Node("int", [1])
    assert node.location == (2, 4)
    assert node.location.line == 2


# ============================================================================
# Nodes
# ============================================================================

def test_nodes_are_immutable() -> None:
    node = Node("int", [1])

    with pytest.raises(AttributeError):
        node.type = "float"
    with pytest.raises(AttributeError):
        node.children = (2,)


def test_updated_returns_a_new_node() -> None:
    node = Node("lvar", [Symbol("a")], SourcePosition(1, 0))
    renamed = node.updated("lvasgn")

    assert renamed == Node("lvasgn", [Symbol("a")])
    assert renamed.location == (1, 0)
    assert node.type == "lvar"
    assert node.updated(children=[Symbol("b")]).children == ("b",)


def test_equality_ignores_location() -> None:
    first = Node("int", [1], SourcePosition(1, 0))
    second = Node("int", [1], SourcePosition(9, 9))

    assert first == second
    assert hash(first) == hash(second)
    assert first != Node("int", [2])
    assert first != ("int", 1)


def test_symbols_compare_as_strings() -> None:
    assert Symbol("a") == "a"
    assert repr(Symbol("a")) == "Symbol('a')"
    assert Node("sym", [Symbol("a")]) == Node("sym", ["a"])


def test_find_nodes_is_preorder() -> None:
    tree = loads("(begin (lvasgn :a (int 1)) (send (lvar :a) :+ (int 2)))")

    assert find_nodes(tree, {"int"}) == [Node("int", [1]), Node("int", [2])]
    assert [node.type for node in find_nodes(tree, ["lvasgn", "lvar"])] == ["lvasgn", "lvar"]
    assert find_nodes(None, ["int"]) == []


@pytest.mark.parametrize(
    "value, text",
    [
        pytest.param(None, "nil", id="nil"),
        pytest.param(True, "true", id="true"),
        pytest.param(False, "false", id="false"),
        pytest.param(42, "42", id="int"),
        pytest.param(1.5, "1.5", id="float"),
        pytest.param(Fraction(3), "3r", id="whole-rational"),
        pytest.param(Fraction(1, 3), "1/3r", id="rational"),
        pytest.param(2j, "2i", id="imaginary"),
        pytest.param(Symbol("foo"), ":foo", id="symbol"),
        pytest.param(Symbol("foo="), ":foo=", id="setter-symbol"),
        pytest.param(Symbol("[]="), ":[]=", id="index-setter-symbol"),
        pytest.param(Symbol("@ivar"), ":@ivar", id="ivar-symbol"),
        pytest.param(Symbol("&&"), ':"&&"', id="quoted-symbol"),
        pytest.param(Symbol("a b"), ':"a b"', id="spaced-symbol"),
        pytest.param("a\tb\n", '"a\\tb\\n"', id="escaped-string"),
        pytest.param('say "hi"', '"say \\"hi\\""', id="quoted-string"),
        pytest.param("\x01", '"\\x01"', id="control-character"),
    ],
)
def test_format_value(value: object, text: str) -> None:
    assert format_value(value) == text


def test_to_sexp_nests_children() -> None:
    node = Node("send", [None, Symbol("puts"), Node("int", [1])])

    assert node.to_sexp() == "(send nil :puts\n  (int 1))"
